"""Scenario runner: deploy a crypt on a fresh chain and harvest it for a while."""

import copy
import logging
import sys
from dataclasses import dataclass, field
from typing import Any

from tqdm import tqdm

from crypt_harvest.analytics import HarvestSummary, summarize_harvests
from crypt_harvest.chain import Chain
from crypt_harvest.config import DeploymentConfig
from crypt_harvest.converter import FixedRateConverter
from crypt_harvest.deploy import Deployment, deploy
from crypt_harvest.errors import InvalidConfiguration
from crypt_harvest.farm import SimulatedFarm
from crypt_harvest.formatters import to_units
from crypt_harvest.models import HarvestResult, LedgerSnapshot
from crypt_harvest.store import take_snapshot
from crypt_harvest.token import Token
from crypt_harvest.validation import validate_harvest_result, validate_price_per_share_monotonic, validate_vault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationParams:
    depositors: int = 3
    #: Human readable want amount each depositor brings
    deposit: str = "1000"
    harvests: int = 30
    #: Seconds between harvests
    interval: int = 6 * 60 * 60
    #: Human readable reward tokens emitted per second
    reward_rate: str = "0.0001"
    #: Want received per reward token, as (numerator, denominator)
    conversion_rate: tuple[int, int] = (1, 2)
    apr_window: int = 7
    #: Harvest index at which the guardian panics, None for never
    panic_at: int | None = None
    #: Withdraw every depositor at the end
    withdraw_all: bool = False

    def __post_init__(self) -> None:
        if self.depositors < 1:
            raise InvalidConfiguration(f"depositors must be >= 1, got {self.depositors}")
        if self.harvests < 0:
            raise InvalidConfiguration(f"harvests must be >= 0, got {self.harvests}")
        if self.interval < 0:
            raise InvalidConfiguration(f"interval must be >= 0, got {self.interval}")
        numerator, denominator = self.conversion_rate
        if numerator < 0 or denominator <= 0:
            raise InvalidConfiguration(f"Invalid conversion rate {numerator}/{denominator}")


@dataclass
class SimulationEnvironment:
    """Accounts and collaborator contracts of a simulated deployment."""

    chain: Chain
    deployer: str
    treasury: str
    strategist: str
    guardian: str
    keeper: str
    depositors: list[str]
    want: Token
    reward: Token
    farm: SimulatedFarm
    converter: FixedRateConverter
    pool_id: int


@dataclass
class SimulationOutcome:
    environment: SimulationEnvironment
    deployment: Deployment
    results: list[HarvestResult] = field(default_factory=list)
    price_history: list[int] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    snapshot: LedgerSnapshot | None = None
    stopped_early: bool = False

    @property
    def summary(self) -> HarvestSummary:
        return summarize_harvests(self.results)


def build_environment(params: SimulationParams, chain: Chain | None = None) -> SimulationEnvironment:
    """Deploy tokens, a farm with one want pool and a converter, and fund nobody yet."""
    chain = chain or Chain()
    deployer = chain.account("deployer")
    want = Token(chain, "WANT", owner=deployer, name="Want LP")
    reward = Token(chain, "RWD", owner=deployer, name="Farm reward")

    farm = SimulatedFarm(chain, owner=deployer)
    reward.add_minter(farm.address, sender=deployer)
    pool_id = farm.add_pool(want.address, {reward.address: to_units(params.reward_rate)}, sender=deployer)

    converter = FixedRateConverter(chain, want.address, owner=deployer, rates={reward.address: params.conversion_rate})
    want.add_minter(converter.address, sender=deployer)

    return SimulationEnvironment(
        chain=chain,
        deployer=deployer,
        treasury=chain.account("treasury"),
        strategist=chain.account("strategist"),
        guardian=chain.account("guardian"),
        keeper=chain.account("keeper"),
        depositors=[chain.account(f"depositor-{i}") for i in range(params.depositors)],
        want=want,
        reward=reward,
        farm=farm,
        converter=converter,
        pool_id=pool_id,
    )


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def default_config(env: SimulationEnvironment, overrides: dict[str, Any] | None = None) -> DeploymentConfig:
    """Deployment config wired to the environment's contracts, with optional overrides applied on top."""
    base = {
        "admin": env.deployer,
        "vault": {
            "want": env.want.address,
            "name": "WANT crypt",
            "symbol": "rfWANT",
        },
        "strategy": {
            "pool_id": env.pool_id,
            "farm": env.farm.address,
            "converter": env.converter.address,
            "reward_tokens": [env.reward.address],
            "treasury": env.treasury,
            "strategist_remitter": env.strategist,
            "strategists": [env.strategist],
            "guardians": [env.guardian],
        },
    }
    return DeploymentConfig.from_dict(_merge(base, overrides or {}))


def run_simulation(
    params: SimulationParams,
    *,
    overrides: dict[str, Any] | None = None,
    progress: bool = True,
) -> SimulationOutcome:
    """Deposit, then advance time and harvest ``params.harvests`` times."""
    env = build_environment(params)
    deployment = deploy(env.chain, default_config(env, overrides))
    vault, strategy = deployment.vault, deployment.strategy
    outcome = SimulationOutcome(environment=env, deployment=deployment)

    amount = to_units(params.deposit, env.want.decimals)
    for depositor in env.depositors:
        env.want.mint(depositor, amount, sender=env.deployer)
        env.want.approve(vault.address, amount, sender=depositor)
        vault.deposit(amount, sender=depositor)
    outcome.price_history.append(vault.get_price_per_full_share())

    with tqdm(
        range(params.harvests), desc="🌾 Harvesting", unit="harvest", file=sys.stderr, disable=not progress
    ) as pbar:
        for i in pbar:
            if params.panic_at is not None and i == params.panic_at:
                strategy.panic(sender=env.guardian)
                tqdm.write(f"🚨 Guardian panicked the strategy before harvest #{i}", file=sys.stderr)
                outcome.stopped_early = True
                break

            env.chain.advance_time(params.interval)
            estimate = strategy.estimate_harvest()
            result = strategy.harvest(sender=env.keeper)
            if (result.profit, result.call_fee) != (estimate.profit, estimate.call_fee):
                outcome.issues.append(
                    f"Harvest #{i}: estimate ({estimate.profit}, {estimate.call_fee}) != "
                    f"realized ({result.profit}, {result.call_fee})"
                )
            outcome.issues.extend(validate_harvest_result(result, warn_only=True))
            outcome.results.append(result)
            outcome.price_history.append(vault.get_price_per_full_share())
            pbar.set_postfix(profit=result.profit)

    if params.withdraw_all:
        for depositor in env.depositors:
            if vault.balance_of(depositor) > 0:
                vault.withdraw_all(sender=depositor)

    outcome.issues.extend(validate_price_per_share_monotonic(outcome.price_history, warn_only=True))
    outcome.issues.extend(validate_vault(vault, warn_only=True))
    outcome.snapshot = take_snapshot(vault)
    logger.info("Simulation finished after %d harvests, %d issues", len(outcome.results), len(outcome.issues))
    return outcome
