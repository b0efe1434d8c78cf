"""Share ledger: deposits, withdrawals and strategy wiring."""

import logging

from web3 import Web3

from crypt_harvest.access import AccessControl
from crypt_harvest.chain import Chain, Contract
from crypt_harvest.constants import (
    DEFAULT_DEPOSIT_FEE_BPS,
    DEFAULT_WITHDRAW_FEE_BPS,
    MAX_UINT256,
    PRICE_PER_SHARE_SCALE,
    TOTAL_BASIS_POINTS,
)
from crypt_harvest.errors import (
    AlreadyInitialized,
    InsufficientCapacity,
    InsufficientShares,
    InvalidConfiguration,
    StrategyMismatch,
    StrategyPaused,
    StrategyRetired,
    Unauthorized,
    VaultInsolvent,
    ZeroAmount,
)
from crypt_harvest.formatters import bps_of_rounded_up
from crypt_harvest.guard import entrypoint
from crypt_harvest.models import StrategyState, VaultLedger, WithdrawResult
from crypt_harvest.strategy import Strategy
from crypt_harvest.token import Token

logger = logging.getLogger(__name__)


def _validate_bps(name: str, bps: int) -> int:
    if not isinstance(bps, int) or not 0 <= bps <= TOTAL_BASIS_POINTS:
        raise InvalidConfiguration(f"{name} must be within 0..{TOTAL_BASIS_POINTS} bps, got {bps!r}")
    return bps


class Vault(Contract):
    """Issues shares against one want token and delegates capital to a single strategy.

    Every share/asset conversion floors, so rounding always favours the
    holders who stay in the vault.
    """

    def __init__(
        self,
        chain: Chain,
        want: str,
        *,
        owner: str,
        name: str = "Crypt vault",
        symbol: str = "rfWANT",
        deposit_fee_bps: int = DEFAULT_DEPOSIT_FEE_BPS,
        withdraw_fee_bps: int = DEFAULT_WITHDRAW_FEE_BPS,
        tvl_cap: int = MAX_UINT256,
        label: str = "vault",
    ):
        super().__init__(chain, label)
        self.want = Web3.to_checksum_address(want)
        self.name = name
        self.symbol = symbol
        self.access = AccessControl(owner)
        self.deposit_fee_bps = _validate_bps("deposit_fee_bps", deposit_fee_bps)
        self.withdraw_fee_bps = _validate_bps("withdraw_fee_bps", withdraw_fee_bps)
        if tvl_cap < 0:
            raise InvalidConfiguration(f"tvl_cap must be non-negative, got {tvl_cap}")
        self.tvl_cap = tvl_cap
        self.total_supply = 0
        self.shares: dict[str, int] = {}
        self.active_strategy: str | None = None
        self.cumulative_deposits: dict[str, int] = {}
        self.cumulative_withdrawals: dict[str, int] = {}
        logger.info("Vault %s (%s) deployed for want %s", self.address, symbol, self.want)

    @property
    def owner(self) -> str:
        return self.access.admin

    @property
    def want_token(self) -> Token:
        return self.chain.get(self.want, Token)

    @property
    def decimals(self) -> int:
        return self.want_token.decimals

    def strategy(self) -> Strategy | None:
        if self.active_strategy is None:
            return None
        return self.chain.get(self.active_strategy, Strategy)

    #
    # Views
    #

    def available(self) -> int:
        """Want held idle by the vault."""
        return self.want_token.balance_of(self.address)

    def balance(self) -> int:
        """Total managed assets: idle plus whatever the strategy holds."""
        strategy = self.strategy()
        deployed = strategy.balance_of() if strategy is not None else 0
        return self.available() + deployed

    total_assets = balance

    def balance_of(self, holder: str) -> int:
        return self.shares.get(Web3.to_checksum_address(holder), 0)

    def get_price_per_full_share(self) -> int:
        """Want value of one whole share, scaled by 1e18."""
        if self.total_supply == 0:
            return PRICE_PER_SHARE_SCALE
        return self.balance() * PRICE_PER_SHARE_SCALE // self.total_supply

    #
    # Deposits
    #

    def _check_strategy_accepts_deposits(self) -> None:
        strategy = self.strategy()
        if strategy is not None and strategy.state in (StrategyState.paused, StrategyState.panicked):
            raise StrategyPaused(f"Strategy {strategy.address} is {strategy.state.value}, deposits are blocked")

    def _deposit(self, amount: int, sender: str) -> int:
        sender = Web3.to_checksum_address(sender)
        if amount <= 0:
            raise ZeroAmount("Deposit amount must be positive")
        self._check_strategy_accepts_deposits()

        pool = self.balance()
        if pool + amount > self.tvl_cap:
            raise InsufficientCapacity(f"Deposit of {amount} would bring total assets to {pool + amount}, cap is {self.tvl_cap}")

        if self.total_supply == 0:
            shares = amount
        elif pool == 0:
            raise VaultInsolvent(f"{self.total_supply} shares outstanding against zero assets")
        else:
            shares = amount * self.total_supply // pool
        shares -= bps_of_rounded_up(shares, self.deposit_fee_bps)
        if shares == 0:
            raise ZeroAmount(f"Deposit of {amount} is too small to mint a share")

        self.want_token.transfer_from(sender, self.address, amount, sender=self.address)
        self.shares[sender] = self.shares.get(sender, 0) + shares
        self.total_supply += shares
        self.cumulative_deposits[sender] = self.cumulative_deposits.get(sender, 0) + amount
        self._earn()

        logger.info("Deposit of %d by %s minted %d shares", amount, sender, shares)
        return shares

    @entrypoint
    def deposit(self, amount: int, *, sender: str) -> int:
        """Take ``amount`` want from the sender and mint shares for it.

        The sender must have approved the vault for ``amount``.

        :return:
            Shares minted
        """
        return self._deposit(amount, sender)

    @entrypoint
    def deposit_all(self, *, sender: str) -> int:
        return self._deposit(self.want_token.balance_of(sender), sender)

    def _earn(self) -> int:
        strategy = self.strategy()
        idle = self.available()
        if strategy is None or idle == 0 or strategy.state is not StrategyState.active:
            return 0
        self.want_token.transfer(strategy.address, idle, sender=self.address)
        strategy.deposit(sender=self.address)
        return idle

    @entrypoint
    def earn(self, *, sender: str) -> int:
        """Forward the idle balance to the active strategy. Returns the amount forwarded."""
        return self._earn()

    #
    # Withdrawals
    #

    def _withdraw(self, shares: int, sender: str) -> WithdrawResult:
        sender = Web3.to_checksum_address(sender)
        if shares <= 0:
            raise ZeroAmount("Withdrawal must burn a positive number of shares")
        held = self.balance_of(sender)
        if shares > held:
            raise InsufficientShares(f"{sender} holds {held} shares, asked to burn {shares}")

        owed = shares * self.balance() // self.total_supply
        self.shares[sender] = held - shares
        self.total_supply -= shares

        idle = self.available()
        if idle < owed:
            strategy = self.strategy()
            if strategy is not None:
                strategy.withdraw(owed - idle, sender=self.address)
            # The strategy may return less than asked
            owed = min(owed, self.available())

        fee = bps_of_rounded_up(owed, self.withdraw_fee_bps)
        paid = owed - fee
        if paid > 0:
            self.want_token.transfer(sender, paid, sender=self.address)
        self.cumulative_withdrawals[sender] = self.cumulative_withdrawals.get(sender, 0) + paid

        logger.info("Withdrawal of %d shares by %s paid %d (fee %d)", shares, sender, paid, fee)
        return WithdrawResult(shares=shares, owed=owed, fee=fee, paid=paid)

    @entrypoint
    def withdraw(self, shares: int, *, sender: str) -> WithdrawResult:
        """Burn shares and pay out their want value minus the withdrawal fee.

        The fee stays in the vault for the remaining holders.
        """
        return self._withdraw(shares, sender)

    @entrypoint
    def withdraw_all(self, *, sender: str) -> WithdrawResult:
        return self._withdraw(self.balance_of(sender), sender)

    @entrypoint
    def transfer(self, recipient: str, shares: int, *, sender: str) -> None:
        sender = Web3.to_checksum_address(sender)
        recipient = Web3.to_checksum_address(recipient)
        if shares <= 0:
            raise ZeroAmount("Share transfer must be positive")
        held = self.balance_of(sender)
        if shares > held:
            raise InsufficientShares(f"{sender} holds {held} shares, asked to transfer {shares}")
        self.shares[sender] = held - shares
        self.shares[recipient] = self.shares.get(recipient, 0) + shares

    #
    # Strategy wiring
    #

    @entrypoint
    def initialize(self, strategy_address: str, *, sender: str) -> None:
        """Wire the strategy. Only possible while no strategy is active."""
        self.access.require("initialize", sender)
        if self.active_strategy is not None:
            raise AlreadyInitialized(f"Vault {self.address} already runs strategy {self.active_strategy}")

        strategy = self.chain.get(strategy_address, Strategy)
        if strategy.vault != self.address:
            raise StrategyMismatch(f"Strategy {strategy.address} is bound to vault {strategy.vault}")
        if strategy.want != self.want:
            raise StrategyMismatch(f"Strategy {strategy.address} farms {strategy.want}, vault holds {self.want}")
        if strategy.state is StrategyState.retired:
            raise StrategyRetired(f"Strategy {strategy.address} is retired")

        self.active_strategy = strategy.address
        logger.info("Vault %s initialized with strategy %s", self.address, strategy.address)
        self._earn()

    @entrypoint
    def on_strategy_retired(self, *, sender: str) -> None:
        """Called back by the active strategy while it retires."""
        if self.active_strategy is None or Web3.to_checksum_address(sender) != self.active_strategy:
            raise Unauthorized(sender, "on_strategy_retired")
        logger.info("Strategy %s retired from vault %s", self.active_strategy, self.address)
        self.active_strategy = None

    #
    # Administration
    #

    @entrypoint
    def update_deposit_fee(self, bps: int, *, sender: str) -> None:
        self.access.require("update_deposit_fee", sender)
        self.deposit_fee_bps = _validate_bps("deposit_fee_bps", bps)
        logger.info("Vault %s deposit fee set to %d bps", self.address, bps)

    @entrypoint
    def update_withdraw_fee(self, bps: int, *, sender: str) -> None:
        self.access.require("update_withdraw_fee", sender)
        self.withdraw_fee_bps = _validate_bps("withdraw_fee_bps", bps)
        logger.info("Vault %s withdrawal fee set to %d bps", self.address, bps)

    @entrypoint
    def update_tvl_cap(self, cap: int, *, sender: str) -> None:
        self.access.require("update_tvl_cap", sender)
        if cap < 0:
            raise InvalidConfiguration(f"tvl_cap must be non-negative, got {cap}")
        self.tvl_cap = cap

    @entrypoint
    def remove_tvl_cap(self, *, sender: str) -> None:
        self.access.require("remove_tvl_cap", sender)
        self.tvl_cap = MAX_UINT256

    @entrypoint
    def in_case_tokens_get_stuck(self, token: str, *, sender: str) -> int:
        """Send a stray token balance to the owner. The want token cannot be rescued."""
        self.access.require("in_case_tokens_get_stuck", sender)
        token = Web3.to_checksum_address(token)
        if token == self.want:
            raise InvalidConfiguration("The want token cannot be rescued")
        stuck = self.chain.get(token, Token)
        amount = stuck.balance_of(self.address)
        if amount > 0:
            stuck.transfer(self.owner, amount, sender=self.address)
        return amount

    def ledger(self) -> VaultLedger:
        strategy = self.strategy()
        want = self.want_token
        return VaultLedger(
            address=self.address,
            want=self.want,
            total_supply=self.total_supply,
            shares={holder: amount for holder, amount in self.shares.items() if amount > 0},
            idle=self.available(),
            strategy_balance=strategy.balance_of() if strategy is not None else 0,
            deposit_fee_bps=self.deposit_fee_bps,
            withdraw_fee_bps=self.withdraw_fee_bps,
            tvl_cap=self.tvl_cap,
            price_per_full_share=self.get_price_per_full_share(),
            active_strategy=self.active_strategy,
            symbol=want.symbol,
            decimals=want.decimals,
        )
