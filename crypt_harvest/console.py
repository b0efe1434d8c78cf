"""Console output formatting."""

from functools import partial

from crypt_harvest.analytics import HarvestSummary, average_apr_bps, entry_apr_bps
from crypt_harvest.constants import MAX_UINT256
from crypt_harvest.formatters import (
    format_amount,
    format_bp,
    format_duration,
    format_price_per_share,
    format_timestamp,
    short_address,
)
from crypt_harvest.models import HarvestResult, LedgerSnapshot, StrategyState

STATE_EMOJI = {
    StrategyState.active: "🟢",
    StrategyState.paused: "🟡",
    StrategyState.panicked: "🔴",
    StrategyState.retired: "⚫",
}


def print_vault_report(snapshot: LedgerSnapshot, *, apr_window: int = 7) -> None:
    """Print vault and strategy state."""
    v = snapshot.vault
    amount = partial(format_amount, decimals=v.decimals, symbol=v.symbol)

    print("=" * 70)
    print("🏦 CRYPT VAULT REPORT")
    print(f"   🕐 {format_timestamp(snapshot.taken_at)}")
    print("=" * 70)

    print(f"\n📦 Vault: {v.address}")
    print(f"   Want: {v.want}")
    print("   " + "─" * 50)
    print(f"   💰 Total assets:       {amount(v.total_assets)}")
    print(f"      • Idle in vault:    {amount(v.idle)}")
    print(f"      • In strategy:      {amount(v.strategy_balance)}")
    print(f"   🧾 Shares outstanding: {format_amount(v.total_supply, decimals=v.decimals)}  ({len(v.shares)} holders)")
    print(f"   📈 Price per share:    {format_price_per_share(v.price_per_full_share)}")
    print(f"   💸 Deposit fee:        {format_bp(v.deposit_fee_bps)}")
    print(f"   💸 Withdrawal fee:     {format_bp(v.withdraw_fee_bps)}")
    cap = "unlimited" if v.tvl_cap == MAX_UINT256 else amount(v.tvl_cap)
    print(f"   🧢 TVL cap:            {cap}")

    s = snapshot.strategy
    if s is None:
        print("\nℹ️ No active strategy.")
        return

    print(f"\n{STATE_EMOJI[s.state]} Strategy: {s.address}")
    print(f"   State: {s.state.value}")
    print("   " + "─" * 50)
    print("   💸 Fee split on harvest profit:")
    print(f"      • Treasury:   {format_bp(s.fee_split.treasury_bps)}")
    print(f"      • Strategist: {format_bp(s.fee_split.strategist_bps)}")
    print(f"      • Call fee:   {format_bp(s.fee_split.call_fee_bps)}")
    print(f"   ⏱️  Harvest log: {len(s.harvest_log)}/{s.harvest_log_capacity} entries, cadence {format_duration(s.harvest_log_cadence)}")

    if not s.harvest_log:
        print("   📊 APR: n/a (no harvests logged yet)")
        return

    window = min(apr_window, len(s.harvest_log))
    apr = average_apr_bps(s.harvest_log, s.log_base_timestamp, apr_window)
    print(f"   📊 APR (last {window} harvests): {format_bp(apr)}")
    print("   🌾 Recent harvests (latest first):")
    for i in range(len(s.harvest_log) - 1, len(s.harvest_log) - 1 - window, -1):
        e = s.harvest_log[i]
        print(
            f"      • {format_timestamp(e.timestamp)}  profit {amount(e.profit)}  "
            f"APR {format_bp(entry_apr_bps(s.harvest_log, i, s.log_base_timestamp))}"
        )


def print_harvest_result(result: HarvestResult, *, symbol: str = "", decimals: int = 18) -> None:
    amount = partial(format_amount, decimals=decimals, symbol=symbol)
    if result.profit < 0:
        print(f"🌾 {format_timestamp(result.timestamp)}: loss {amount(-result.profit)}, no fees taken")
        return
    if result.is_empty:
        print(f"🌾 {format_timestamp(result.timestamp)}: nothing to harvest")
        return
    print(
        f"🌾 {format_timestamp(result.timestamp)}: profit {amount(result.profit)}  •  "
        f"treasury {amount(result.treasury_fee)}  •  strategist {amount(result.strategist_fee)}  •  "
        f"call fee {amount(result.call_fee)}  •  compounded {amount(result.compounded)}"
    )


def print_harvest_summary(summary: HarvestSummary, *, symbol: str = "", decimals: int = 18) -> None:
    amount = partial(format_amount, decimals=decimals, symbol=symbol)
    print("\n" + "=" * 70)
    print("🌾 HARVEST SUMMARY")
    print("=" * 70)
    print(f"   Harvests:       {summary.harvests} ({summary.empty_harvests} empty)")
    if summary.first_timestamp is not None and summary.last_timestamp is not None:
        span = summary.last_timestamp - summary.first_timestamp
        print(f"   Period:         {format_duration(span)}")
    print(f"   Gross profit:   {amount(summary.gross_profit)}")
    print(f"   Fees paid:      {amount(summary.total_fees)}")
    print(f"      • Treasury:   {amount(summary.treasury_fees)}")
    print(f"      • Strategist: {amount(summary.strategist_fees)}")
    print(f"      • Callers:    {amount(summary.call_fees)}")
    print(f"   Compounded:     {amount(summary.compounded)}")


def print_holder_balances(snapshot: LedgerSnapshot) -> None:
    v = snapshot.vault
    if not v.shares:
        return
    print("\n👥 Holders:")
    for holder, shares in sorted(v.shares.items(), key=lambda kv: kv[1], reverse=True):
        value = shares * v.total_assets // v.total_supply if v.total_supply else 0
        print(
            f"   • {short_address(holder)}  {format_amount(shares, decimals=v.decimals)} shares  "
            f"≈ {format_amount(value, decimals=v.decimals, symbol=v.symbol)}"
        )
