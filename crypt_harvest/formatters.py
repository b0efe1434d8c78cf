"""Formatting and conversion utilities."""

from datetime import datetime, timezone
from decimal import Decimal

from web3 import Web3

from crypt_harvest.constants import PRICE_PER_SHARE_SCALE, TOTAL_BASIS_POINTS


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip()
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def bps_of(amount: int, bps: int) -> int:
    """Basis-point share of an amount, floored."""
    return amount * bps // TOTAL_BASIS_POINTS


def ceil_div(numer: int, denom: int) -> int:
    """Ceiling division."""
    if denom == 0:
        raise ZeroDivisionError("denom must be > 0")
    return (numer + denom - 1) // denom


def bps_of_rounded_up(amount: int, bps: int) -> int:
    """Basis-point share of an amount, rounded up."""
    return ceil_div(amount * bps, TOTAL_BASIS_POINTS)


def to_units(amount: int | str | Decimal, decimals: int = 18) -> int:
    """Convert a human readable token amount to raw units, e.g. "1.5" -> 1.5e18."""
    if decimals == 18:
        return Web3.to_wei(Decimal(str(amount)), "ether")
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


def from_units(raw: int, decimals: int = 18) -> Decimal:
    """Convert raw token units to a Decimal amount."""
    if decimals == 18:
        # from_wei() only accepts uint256 values
        value = Decimal(Web3.from_wei(abs(raw), "ether"))
        return -value if raw < 0 else value
    return Decimal(raw) / (Decimal(10) ** decimals)


def format_bp(bp: int) -> str:
    """Format basis points as percentage."""
    return f"{(Decimal(bp) / Decimal(100)):.2f}%"


def format_amount(raw: int, *, decimals: int = 18, symbol: str = "", places: int = 6) -> str:
    """Format raw token units with a symbol."""
    value = from_units(raw, decimals)
    s = f"{value:.{places}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return f"{s} {symbol}".rstrip()


def format_price_per_share(ppfs: int, *, places: int = 6) -> str:
    """Format getPricePerFullShare() output as a plain ratio."""
    ratio = Decimal(ppfs) / Decimal(PRICE_PER_SHARE_SCALE)
    return f"{ratio:.{places}f}"


def format_timestamp(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_duration(seconds: int) -> str:
    """Compact duration, e.g. 1d 2h 3m."""
    if seconds <= 0:
        return "0s"
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs and not days:
        parts.append(f"{secs}s")
    return " ".join(parts)


def short_address(address: str | None) -> str:
    if not address:
        return "-"
    return f"{address[:10]}...{address[-6:]}"
