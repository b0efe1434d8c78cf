"""Data models for the crypt vault engine."""

import enum
from dataclasses import dataclass, field

from crypt_harvest.constants import TOTAL_BASIS_POINTS
from crypt_harvest.errors import InvalidConfiguration


class StrategyState(enum.Enum):
    """Lifecycle of a strategy instance."""

    #: Deposits and harvests proceed normally
    active = "active"

    #: New deposits blocked, harvest and withdrawal recall still work
    paused = "paused"

    #: All capital pulled out of the farm, harvesting disabled
    panicked = "panicked"

    #: Funds returned to the vault, instance is inert
    retired = "retired"


@dataclass(frozen=True)
class FeeSplit:
    """Basis-point shares of harvested profit. Whatever is left compounds."""

    treasury_bps: int
    strategist_bps: int
    call_fee_bps: int

    def __post_init__(self) -> None:
        for name in ("treasury_bps", "strategist_bps", "call_fee_bps"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise InvalidConfiguration(f"{name} must be a non-negative int, got {value!r}")
        if self.total_bps > TOTAL_BASIS_POINTS:
            raise InvalidConfiguration(f"fee split sums to {self.total_bps} bps, above {TOTAL_BASIS_POINTS}")

    @property
    def total_bps(self) -> int:
        return self.treasury_bps + self.strategist_bps + self.call_fee_bps


@dataclass(frozen=True)
class HarvestLogEntry:
    """One APR sample: strategy assets around a harvest."""

    timestamp: int
    assets_before: int
    assets_after: int

    @property
    def profit(self) -> int:
        return self.assets_after - self.assets_before


@dataclass(frozen=True)
class HarvestEstimate:
    """What the next harvest would realize."""

    profit: int
    call_fee: int


@dataclass(frozen=True)
class HarvestResult:
    """Realized outcome of a harvest call."""

    timestamp: int
    assets_before: int
    assets_after: int
    profit: int
    treasury_fee: int
    strategist_fee: int
    call_fee: int

    @property
    def compounded(self) -> int:
        return self.profit - self.treasury_fee - self.strategist_fee - self.call_fee

    @property
    def is_empty(self) -> bool:
        return self.profit <= 0


@dataclass(frozen=True)
class FeeBreakdown:
    """Fee waterfall applied to a gross profit."""

    treasury_fee: int
    strategist_fee: int
    call_fee: int
    compounded: int


@dataclass(frozen=True)
class WithdrawResult:
    """Outcome of burning shares."""

    shares: int
    owed: int
    fee: int
    paid: int


@dataclass(frozen=True)
class VaultLedger:
    """Persistable view of the share ledger."""

    address: str
    want: str
    total_supply: int
    shares: dict[str, int]
    idle: int
    strategy_balance: int
    deposit_fee_bps: int
    withdraw_fee_bps: int
    tvl_cap: int
    price_per_full_share: int
    active_strategy: str | None = None
    symbol: str = ""
    decimals: int = 18

    @property
    def total_assets(self) -> int:
        return self.idle + self.strategy_balance


@dataclass(frozen=True)
class StrategyLedger:
    """Persistable view of the harvest engine."""

    address: str
    state: StrategyState
    fee_split: FeeSplit
    harvest_log_cadence: int
    inception_timestamp: int
    log_base_timestamp: int
    harvest_log: list[HarvestLogEntry] = field(default_factory=list)
    harvest_log_capacity: int = 0


@dataclass(frozen=True)
class LedgerSnapshot:
    """Vault and strategy state at a point in time."""

    taken_at: int
    vault: VaultLedger
    strategy: StrategyLedger | None
