"""Deployment sequencing: vault, strategy, wiring, and strategy replacement."""

import logging
from dataclasses import dataclass

from crypt_harvest.chain import Chain, Contract
from crypt_harvest.config import DeploymentConfig, StrategyConfig, VaultConfig
from crypt_harvest.errors import InvalidConfiguration
from crypt_harvest.strategy import Strategy
from crypt_harvest.token import Token
from crypt_harvest.vault import Vault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deployment:
    vault: Vault
    strategy: Strategy


def _require_contract(chain: Chain, address: str, name: str, kind: type[Contract] = Contract) -> None:
    if not chain.is_contract(address):
        raise InvalidConfiguration(f"{name} {address} is not a deployed contract")
    if not isinstance(chain.get(address), kind):
        raise InvalidConfiguration(f"{name} {address} is not a {kind.__name__}")


def deploy_vault(chain: Chain, config: VaultConfig, *, admin: str) -> Vault:
    _require_contract(chain, config.want, "vault.want", Token)
    return Vault(
        chain,
        config.want,
        owner=admin,
        name=config.name,
        symbol=config.symbol,
        deposit_fee_bps=config.deposit_fee_bps,
        withdraw_fee_bps=config.withdraw_fee_bps,
        tvl_cap=config.tvl_cap,
    )


def deploy_strategy(chain: Chain, vault: Vault, config: StrategyConfig, *, admin: str) -> Strategy:
    """Deploy a strategy bound to ``vault``. It still has to be wired with :py:func:`initialize_vault`."""
    _require_contract(chain, config.farm, "strategy.farm")
    _require_contract(chain, config.converter, "strategy.converter")
    for token in config.reward_tokens:
        _require_contract(chain, token, "strategy.reward_tokens", Token)

    return Strategy(
        chain,
        vault=vault.address,
        want=vault.want,
        pool_id=config.pool_id,
        farm=config.farm,
        converter=config.converter,
        reward_tokens=config.reward_tokens,
        treasury=config.treasury,
        strategist_remitter=config.strategist_remitter,
        admin=admin,
        strategists=config.strategists,
        guardians=config.guardians,
        fee_split=config.fee_split,
        harvest_log_capacity=config.harvest_log_capacity,
        harvest_log_cadence=config.harvest_log_cadence,
        permissionless_harvest=config.permissionless_harvest,
    )


def initialize_vault(vault: Vault, strategy: Strategy, *, sender: str) -> None:
    vault.initialize(strategy.address, sender=sender)


def deploy(chain: Chain, config: DeploymentConfig) -> Deployment:
    """Deploy a vault and its strategy from a validated config and wire them together."""
    vault = deploy_vault(chain, config.vault, admin=config.admin)
    strategy = deploy_strategy(chain, vault, config.strategy, admin=config.admin)
    initialize_vault(vault, strategy, sender=config.admin)
    logger.info("Deployed vault %s with strategy %s", vault.address, strategy.address)
    return Deployment(vault=vault, strategy=strategy)


def replace_strategy(chain: Chain, vault: Vault, config: StrategyConfig, *, sender: str) -> Strategy:
    """Retire the active strategy, deploy a new one and wire it.

    The retired strategy drains to the vault, and the new strategy picks the
    funds up when it is wired.
    """
    old = vault.strategy()
    if old is not None:
        old.retire_strat(sender=sender)

    strategy = deploy_strategy(chain, vault, config, admin=vault.owner)
    initialize_vault(vault, strategy, sender=sender)
    logger.info(
        "Vault %s moved from strategy %s to %s",
        vault.address,
        old.address if old is not None else None,
        strategy.address,
    )
    return strategy
