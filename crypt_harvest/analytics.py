"""Yield analytics for crypt strategies.

- Fee waterfall applied to harvested profit
- Annualized return of single harvest log entries
- Average APR over the most recent harvests
- Totals over a series of harvests
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from fractions import Fraction

from crypt_harvest.constants import SECONDS_PER_YEAR, TOTAL_BASIS_POINTS
from crypt_harvest.errors import InsufficientHistory, InvalidConfiguration
from crypt_harvest.formatters import bps_of
from crypt_harvest.models import FeeBreakdown, FeeSplit, HarvestLogEntry, HarvestResult


@dataclass(frozen=True)
class HarvestSummary:
    """Totals over a series of harvests."""

    harvests: int
    empty_harvests: int
    gross_profit: int
    treasury_fees: int
    strategist_fees: int
    call_fees: int
    compounded: int
    first_timestamp: int | None
    last_timestamp: int | None

    @property
    def total_fees(self) -> int:
        return self.treasury_fees + self.strategist_fees + self.call_fees


def split_profit(profit: int, fee_split: FeeSplit) -> FeeBreakdown:
    """Apply the fee split to a gross profit.

    Each fee is floored independently, the rounding dust compounds. The parts
    always add up to ``profit`` exactly.
    """
    treasury_fee = bps_of(profit, fee_split.treasury_bps)
    strategist_fee = bps_of(profit, fee_split.strategist_bps)
    call_fee = bps_of(profit, fee_split.call_fee_bps)
    return FeeBreakdown(
        treasury_fee=treasury_fee,
        strategist_fee=strategist_fee,
        call_fee=call_fee,
        compounded=profit - treasury_fee - strategist_fee - call_fee,
    )


def annualized_return(entry: HarvestLogEntry, elapsed: int) -> Fraction:
    """Return of one log entry scaled to a year, as an exact fraction (0.1 = 10%).

    Entries with no capital at risk or no elapsed time carry no information and count as zero.
    """
    if entry.assets_before <= 0 or elapsed <= 0:
        return Fraction(0)
    return Fraction(entry.profit, entry.assets_before) * Fraction(SECONDS_PER_YEAR, elapsed)


def entry_elapsed(entries: Sequence[HarvestLogEntry], index: int, base_timestamp: int) -> int:
    """Seconds between an entry and the one before it (or the log base for the oldest)."""
    previous = entries[index - 1].timestamp if index > 0 else base_timestamp
    return entries[index].timestamp - previous


def entry_apr_bps(entries: Sequence[HarvestLogEntry], index: int, base_timestamp: int) -> int:
    r = annualized_return(entries[index], entry_elapsed(entries, index, base_timestamp))
    return int(r * TOTAL_BASIS_POINTS)


def average_apr_bps(entries: Sequence[HarvestLogEntry], base_timestamp: int, n: int) -> int:
    """Mean annualized return of the newest ``n`` entries, in basis points.

    :param entries:
        Harvest log, oldest first

    :param base_timestamp:
        Timestamp preceding the oldest entry: strategy inception, or the
        timestamp of the last entry evicted from the log

    :return:
        Basis points truncated toward zero
    """
    if n < 1:
        raise InvalidConfiguration(f"n must be >= 1, got {n}")
    if not entries:
        raise InsufficientHistory("No harvests logged yet")

    start = max(0, len(entries) - n)
    window = range(start, len(entries))
    total = sum(
        (annualized_return(entries[i], entry_elapsed(entries, i, base_timestamp)) for i in window),
        Fraction(0),
    )
    mean = total / len(window)
    return int(mean * TOTAL_BASIS_POINTS)


def summarize_harvests(results: Iterable[HarvestResult]) -> HarvestSummary:
    harvests = 0
    empty = 0
    gross = treasury = strategist = call = compounded = 0
    first_ts: int | None = None
    last_ts: int | None = None

    for r in results:
        harvests += 1
        if r.is_empty:
            empty += 1
        gross += r.profit
        treasury += r.treasury_fee
        strategist += r.strategist_fee
        call += r.call_fee
        compounded += r.compounded
        if first_ts is None:
            first_ts = r.timestamp
        last_ts = r.timestamp

    return HarvestSummary(
        harvests=harvests,
        empty_harvests=empty,
        gross_profit=gross,
        treasury_fees=treasury,
        strategist_fees=strategist,
        call_fees=call,
        compounded=compounded,
        first_timestamp=first_ts,
        last_timestamp=last_ts,
    )
