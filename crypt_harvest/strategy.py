"""Single-pool farming strategy: harvest and fee engine plus its state machine."""

import logging
from collections.abc import Iterable

from web3 import Web3

from crypt_harvest.access import AccessControl, Role
from crypt_harvest.analytics import average_apr_bps, split_profit
from crypt_harvest.chain import Chain, Contract
from crypt_harvest.constants import (
    DEFAULT_CALL_FEE_BPS,
    DEFAULT_HARVEST_LOG_CADENCE,
    DEFAULT_STRATEGIST_FEE_BPS,
    DEFAULT_TREASURY_FEE_BPS,
    HARVEST_LOG_CAPACITY,
    MAX_UINT256,
)
from crypt_harvest.converter import RewardConverter
from crypt_harvest.errors import (
    InvalidTransition,
    StrategyPaused,
    StrategyRetired,
    Unauthorized,
    ZeroAmount,
)
from crypt_harvest.farm import ExternalFarm
from crypt_harvest.formatters import bps_of
from crypt_harvest.guard import entrypoint
from crypt_harvest.harvest_log import HarvestLog
from crypt_harvest.models import FeeSplit, HarvestEstimate, HarvestLogEntry, HarvestResult, StrategyLedger, StrategyState
from crypt_harvest.token import Token

logger = logging.getLogger(__name__)


class Strategy(Contract):
    """Farms the vault's want token in one pool of an external farm.

    Harvesting claims the pool rewards, converts them to want, pays the
    treasury, the strategist remitter and the caller, and deposits the rest
    back into the pool.

    The strategy only knows its vault, farm and converter by address.
    """

    def __init__(
        self,
        chain: Chain,
        *,
        vault: str,
        want: str,
        pool_id: int,
        farm: str,
        converter: str,
        reward_tokens: Iterable[str],
        treasury: str,
        strategist_remitter: str,
        admin: str,
        strategists: Iterable[str] = (),
        guardians: Iterable[str] = (),
        fee_split: FeeSplit | None = None,
        harvest_log_capacity: int = HARVEST_LOG_CAPACITY,
        harvest_log_cadence: int = DEFAULT_HARVEST_LOG_CADENCE,
        permissionless_harvest: bool = True,
        label: str = "strategy",
    ):
        super().__init__(chain, label)
        self.vault = Web3.to_checksum_address(vault)
        self.want = Web3.to_checksum_address(want)
        self.pool_id = pool_id
        self.farm = Web3.to_checksum_address(farm)
        self.converter = Web3.to_checksum_address(converter)
        # Ordered and de-duplicated
        self.reward_tokens: tuple[str, ...] = tuple(dict.fromkeys(Web3.to_checksum_address(t) for t in reward_tokens))
        self.treasury = Web3.to_checksum_address(treasury)
        self.strategist_remitter = Web3.to_checksum_address(strategist_remitter)
        self.access = AccessControl(admin, strategists=strategists, guardians=guardians)
        self.fee_split = fee_split or FeeSplit(DEFAULT_TREASURY_FEE_BPS, DEFAULT_STRATEGIST_FEE_BPS, DEFAULT_CALL_FEE_BPS)
        self.permissionless_harvest = permissionless_harvest
        self.state = StrategyState.active
        self.inception_timestamp = chain.timestamp
        self.last_harvest_timestamp: int | None = None
        self.harvest_log = HarvestLog(harvest_log_capacity, harvest_log_cadence, base_timestamp=chain.timestamp)

        self._give_allowances()
        logger.info("Strategy %s deployed for vault %s, pool %d", self.address, self.vault, pool_id)

    #
    # Collaborators
    #

    @property
    def want_token(self) -> Token:
        return self.chain.get(self.want, Token)

    @property
    def farm_contract(self) -> ExternalFarm:
        return self.chain.get(self.farm)

    @property
    def converter_contract(self) -> RewardConverter:
        return self.chain.get(self.converter)

    def _give_allowances(self) -> None:
        self.want_token.approve(self.farm, MAX_UINT256, sender=self.address)
        for token in self.reward_tokens:
            if token != self.want:
                self.chain.get(token, Token).approve(self.converter, MAX_UINT256, sender=self.address)

    #
    # Balances
    #

    def balance_of_want(self) -> int:
        """Want held by the strategy itself."""
        return self.want_token.balance_of(self.address)

    def balance_of_pool(self) -> int:
        """Want deposited in the farm."""
        return self.farm_contract.deposited(self.pool_id, self.address)

    def balance_of(self) -> int:
        return self.balance_of_want() + self.balance_of_pool()

    #
    # Checks
    #

    def _require_not_retired(self) -> None:
        if self.state is StrategyState.retired:
            raise StrategyRetired(f"Strategy {self.address} is retired")

    def _require_vault(self, sender: str, operation: str) -> None:
        if Web3.to_checksum_address(sender) != self.vault:
            raise Unauthorized(sender, operation)

    def _deposit_idle(self) -> int:
        amount = self.balance_of_want()
        if amount > 0:
            self.farm_contract.deposit(self.pool_id, amount, sender=self.address)
        return amount

    def _withdraw_everything_from_farm(self) -> int:
        deployed = self.balance_of_pool()
        if deployed > 0:
            self.farm_contract.withdraw(self.pool_id, deployed, sender=self.address)
        return deployed

    #
    # Vault facing
    #

    @entrypoint
    def deposit(self, *, sender: str) -> int:
        """Put all want the strategy holds to work. Vault only."""
        self._require_vault(sender, "deposit")
        self._require_not_retired()
        if self.state is not StrategyState.active:
            raise StrategyPaused(f"Strategy {self.address} is {self.state.value}")
        return self._deposit_idle()

    @entrypoint
    def withdraw(self, amount: int, *, sender: str) -> int:
        """Send ``amount`` want back to the vault, recalling it from the farm if needed. Vault only.

        :return:
            Amount actually sent, never more than the strategy holds
        """
        self._require_vault(sender, "withdraw")
        self._require_not_retired()
        if amount <= 0:
            raise ZeroAmount("Nothing to withdraw")

        idle = self.balance_of_want()
        if idle < amount:
            recall = min(amount - idle, self.balance_of_pool())
            if recall > 0:
                self.farm_contract.withdraw(self.pool_id, recall, sender=self.address)

        sent = min(amount, self.balance_of_want())
        self.want_token.transfer(self.vault, sent, sender=self.address)
        logger.debug("Strategy %s returned %d want to vault", self.address, sent)
        return sent

    #
    # Harvest
    #

    def estimate_harvest(self) -> HarvestEstimate:
        """What :py:meth:`harvest` would realize right now. Read only."""
        if self.state in (StrategyState.retired, StrategyState.panicked):
            return HarvestEstimate(profit=0, call_fee=0)

        pending = self.farm_contract.pending_rewards(self.pool_id, self.address)
        converter = self.converter_contract
        profit = 0
        for token, amount in pending.items():
            if Web3.to_checksum_address(token) == self.want:
                profit += amount
        for token in self.reward_tokens:
            if token == self.want:
                continue
            held = self.chain.get(token, Token).balance_of(self.address)
            profit += converter.quote(token, pending.get(token, 0) + held)

        return HarvestEstimate(profit=profit, call_fee=bps_of(profit, self.fee_split.call_fee_bps))

    @entrypoint
    def harvest(self, *, sender: str) -> HarvestResult:
        """Claim, convert, pay fees, compound, log.

        A harvest that yields nothing is a successful no-op, keepers call this
        unconditionally.
        """
        self._require_not_retired()
        if self.state is StrategyState.panicked:
            raise StrategyPaused(f"Strategy {self.address} panicked, harvesting is disabled")
        if not self.permissionless_harvest:
            self.access.require("harvest", sender)

        now = self.chain.timestamp
        assets_before = self.balance_of()

        # withdraw(pool, 0) claims rewards without touching the principal
        self.farm_contract.withdraw(self.pool_id, 0, sender=self.address)

        converter = self.converter_contract
        for token in self.reward_tokens:
            if token == self.want:
                continue
            held = self.chain.get(token, Token).balance_of(self.address)
            if held > 0:
                converter.convert(token, held, sender=self.address, recipient=self.address)

        profit = self.balance_of() - assets_before
        if profit <= 0:
            # Nothing to split: report the real balance, log no sample
            self.last_harvest_timestamp = now
            logger.debug("Harvest of %s at %d found nothing to harvest (change %d)", self.address, now, profit)
            return HarvestResult(
                timestamp=now,
                assets_before=assets_before,
                assets_after=assets_before + profit,
                profit=profit,
                treasury_fee=0,
                strategist_fee=0,
                call_fee=0,
            )

        fees = split_profit(profit, self.fee_split)
        want = self.want_token
        for recipient, amount in (
            (self.treasury, fees.treasury_fee),
            (self.strategist_remitter, fees.strategist_fee),
            (sender, fees.call_fee),
        ):
            if amount > 0:
                want.transfer(recipient, amount, sender=self.address)

        self._deposit_idle()

        assets_after = self.balance_of()
        self.harvest_log.record(now, assets_before, assets_after)
        self.last_harvest_timestamp = now

        logger.info(
            "Harvested %s: profit %d, treasury %d, strategist %d, call fee %d, assets %d -> %d",
            self.address,
            profit,
            fees.treasury_fee,
            fees.strategist_fee,
            fees.call_fee,
            assets_before,
            assets_after,
        )
        return HarvestResult(
            timestamp=now,
            assets_before=assets_before,
            assets_after=assets_after,
            profit=profit,
            treasury_fee=fees.treasury_fee,
            strategist_fee=fees.strategist_fee,
            call_fee=fees.call_fee,
        )

    #
    # APR
    #

    @property
    def harvest_log_entries(self) -> list[HarvestLogEntry]:
        return self.harvest_log.entries

    @property
    def harvest_log_cadence(self) -> int:
        return self.harvest_log.cadence

    def average_apr_across_last_n_harvests(self, n: int) -> int:
        """Mean annualized return of the last ``n`` logged harvests, in basis points."""
        return average_apr_bps(self.harvest_log.entries, self.harvest_log.base_timestamp, n)

    @entrypoint
    def update_harvest_log_cadence(self, seconds: int, *, sender: str) -> None:
        self.access.require("update_harvest_log_cadence", sender)
        self._require_not_retired()
        self.harvest_log.cadence = seconds

    #
    # Parameters and roles
    #

    @entrypoint
    def update_fee_split(self, fee_split: FeeSplit, *, sender: str) -> None:
        self.access.require("update_fee_split", sender)
        self._require_not_retired()
        self.fee_split = fee_split
        logger.info("Fee split of %s set to %s", self.address, fee_split)

    @entrypoint
    def set_permissionless_harvest(self, enabled: bool, *, sender: str) -> None:
        self.access.require("set_permissionless_harvest", sender)
        self.permissionless_harvest = enabled

    @entrypoint
    def grant_role(self, role: Role, account: str, *, sender: str) -> None:
        self.access.require("grant_role", sender)
        self.access.grant(role, account)

    @entrypoint
    def revoke_role(self, role: Role, account: str, *, sender: str) -> None:
        self.access.require("revoke_role", sender)
        self.access.revoke(role, account)

    #
    # State machine
    #

    @entrypoint
    def pause(self, *, sender: str) -> None:
        """Stop accepting deposits. Harvests and withdrawals keep working."""
        self.access.require("pause", sender)
        self._require_not_retired()
        if self.state is not StrategyState.active:
            raise InvalidTransition(f"Cannot pause a {self.state.value} strategy")
        self.state = StrategyState.paused
        logger.info("Strategy %s paused by %s", self.address, sender)

    @entrypoint
    def unpause(self, *, sender: str) -> None:
        """Resume and put idle want back into the farm."""
        self.access.require("unpause", sender)
        self._require_not_retired()
        if self.state is not StrategyState.paused:
            # Panicked strategies have no way back, they get retired and replaced
            raise InvalidTransition(f"Cannot unpause a {self.state.value} strategy")
        self.state = StrategyState.active
        self._deposit_idle()
        logger.info("Strategy %s unpaused by %s", self.address, sender)

    @entrypoint
    def panic(self, *, sender: str) -> int:
        """Pull everything out of the farm and stop harvesting.

        :return:
            Amount withdrawn from the farm
        """
        self.access.require("panic", sender)
        self._require_not_retired()
        if self.state not in (StrategyState.active, StrategyState.paused):
            raise InvalidTransition(f"Cannot panic a {self.state.value} strategy")
        self.state = StrategyState.panicked
        withdrawn = self._withdraw_everything_from_farm()
        logger.warning("Strategy %s panicked by %s, %d want recalled from the farm", self.address, sender, withdrawn)
        return withdrawn

    @entrypoint
    def retire_strat(self, *, sender: str) -> int:
        """Return every want token to the vault and become inert.

        Retiring an already retired strategy is a no-op.

        :return:
            Amount sent to the vault
        """
        self.access.require("retire_strat", sender)
        if self.state is StrategyState.retired:
            logger.info("Strategy %s already retired", self.address)
            return 0

        self.state = StrategyState.retired
        self._withdraw_everything_from_farm()
        amount = self.balance_of_want()
        if amount > 0:
            self.want_token.transfer(self.vault, amount, sender=self.address)

        vault = self.chain.get(self.vault)
        if vault.active_strategy == self.address:
            vault.on_strategy_retired(sender=self.address)

        logger.info("Strategy %s retired by %s, %d want returned to vault %s", self.address, sender, amount, self.vault)
        return amount

    def ledger(self) -> StrategyLedger:
        return StrategyLedger(
            address=self.address,
            state=self.state,
            fee_split=self.fee_split,
            harvest_log_cadence=self.harvest_log.cadence,
            inception_timestamp=self.inception_timestamp,
            log_base_timestamp=self.harvest_log.base_timestamp,
            harvest_log=self.harvest_log.entries,
            harvest_log_capacity=self.harvest_log.capacity,
        )
