"""Invariant checks on live vaults, strategies and harvest results."""

from collections.abc import Sequence

from crypt_harvest.constants import TOTAL_BASIS_POINTS
from crypt_harvest.models import HarvestResult, StrategyState
from crypt_harvest.vault import Vault


def _report(issues: list[str], msg: str, warn_only: bool) -> None:
    issues.append(msg)
    if not warn_only:
        raise ValueError(msg)


def validate_vault(vault: Vault, *, warn_only: bool = False) -> list[str]:
    """
    Validate share ledger and strategy wiring invariants.

    Returns list of validation warnings/errors. If warn_only=False, raises ValueError on the first one.
    """
    issues: list[str] = []

    # 1. Total supply is the sum of holder balances
    held = sum(vault.shares.values())
    if held != vault.total_supply:
        _report(issues, f"Vault {vault.address}: share balances sum to {held}, total supply is {vault.total_supply}", warn_only)

    # 2. No negative balances
    for holder, shares in vault.shares.items():
        if shares < 0:
            _report(issues, f"Vault {vault.address}: negative share balance {shares} for {holder}", warn_only)

    # 3. Fee rates in range
    for name, bps in (("deposit_fee_bps", vault.deposit_fee_bps), ("withdraw_fee_bps", vault.withdraw_fee_bps)):
        if not 0 <= bps <= TOTAL_BASIS_POINTS:
            _report(issues, f"Vault {vault.address}: {name} out of range: {bps}", warn_only)

    # 4. Outstanding shares must be backed by something
    if vault.total_supply > 0 and vault.balance() == 0:
        _report(issues, f"Vault {vault.address}: {vault.total_supply} shares outstanding against zero assets", warn_only)

    # 5. Strategy wiring
    strategy = vault.strategy()
    if strategy is not None:
        if strategy.vault != vault.address:
            _report(issues, f"Vault {vault.address}: strategy {strategy.address} is bound to {strategy.vault}", warn_only)
        if strategy.state is StrategyState.retired:
            _report(issues, f"Vault {vault.address}: active strategy {strategy.address} is retired", warn_only)
        if strategy.state is StrategyState.panicked and strategy.balance_of_pool() > 0:
            _report(
                issues,
                f"Strategy {strategy.address}: panicked but still has {strategy.balance_of_pool()} in the farm",
                warn_only,
            )

    return issues


def validate_harvest_result(result: HarvestResult, *, warn_only: bool = False) -> list[str]:
    """Check the harvest conservation law: nothing is created or lost while paying fees."""
    issues: list[str] = []

    fees = result.treasury_fee + result.strategist_fee + result.call_fee
    if result.assets_after + fees != result.assets_before + result.profit:
        _report(
            issues,
            f"Harvest at {result.timestamp}: assets_after({result.assets_after}) + fees({fees}) != "
            f"assets_before({result.assets_before}) + profit({result.profit})",
            warn_only,
        )
    if result.profit < 0:
        _report(issues, f"Harvest at {result.timestamp}: negative profit {result.profit}", warn_only)
    if fees > result.profit:
        _report(issues, f"Harvest at {result.timestamp}: fees {fees} exceed profit {result.profit}", warn_only)

    return issues


def validate_price_per_share_monotonic(history: Sequence[int], *, warn_only: bool = True) -> list[str]:
    """
    Check a series of getPricePerFullShare() readings never went down.

    Defaults to warn_only: a strategy loss legitimately lowers the price.
    """
    issues: list[str] = []
    for i in range(1, len(history)):
        if history[i] < history[i - 1]:
            _report(issues, f"Price per share dropped at step {i}: {history[i - 1]} -> {history[i]}", warn_only)
    return issues
