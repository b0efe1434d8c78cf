from fractions import Fraction

import pytest

from crypt_harvest.access import Role
from crypt_harvest.constants import SECONDS_PER_YEAR
from crypt_harvest.errors import (
    InsufficientHistory,
    InvalidConfiguration,
    InvalidTransition,
    StrategyPaused,
    StrategyRetired,
    Unauthorized,
)
from crypt_harvest.formatters import to_units
from crypt_harvest.models import FeeSplit, StrategyState
from crypt_harvest.validation import validate_harvest_result


@pytest.fixture()
def deposited(vault, alice, fund):
    """Alice deposits 1000 want, which the strategy puts in the farm."""
    amount = fund(alice, "1000")
    vault.deposit(amount, sender=alice)
    return amount


def test_harvest_pays_fees_and_compounds(env, strategy, deposited):
    env.chain.advance_time(3600)

    result = strategy.harvest(sender=env.keeper)

    # 3600 reward tokens converted 1:2 into want
    assert result.profit == to_units("1800")
    assert result.treasury_fee == to_units("54")
    assert result.strategist_fee == to_units("18")
    assert result.call_fee == to_units("9")
    assert result.compounded == to_units("1719")
    assert result.assets_before == deposited
    assert result.assets_after == deposited + to_units("1719")

    assert env.want.balance_of(env.treasury) == result.treasury_fee
    assert env.want.balance_of(env.strategist) == result.strategist_fee
    assert env.want.balance_of(env.keeper) == result.call_fee
    assert strategy.balance_of_pool() == result.assets_after
    assert strategy.balance_of_want() == 0
    assert strategy.last_harvest_timestamp == env.chain.timestamp


def test_harvest_conserves_assets(env, strategy, deposited):
    env.chain.advance_time(12_345)
    result = strategy.harvest(sender=env.keeper)

    fees = result.treasury_fee + result.strategist_fee + result.call_fee
    assert result.assets_after + fees == result.assets_before + result.profit
    assert validate_harvest_result(result) == []


def test_estimate_matches_next_harvest(env, strategy, deposited):
    env.chain.advance_time(7777)

    estimate = strategy.estimate_harvest()
    log_before = strategy.harvest_log_entries
    result = strategy.harvest(sender=env.keeper)

    assert (result.profit, result.call_fee) == (estimate.profit, estimate.call_fee)
    assert log_before == []


def test_estimate_is_read_only(env, strategy, deposited):
    env.chain.advance_time(600)
    before = strategy.ledger()

    strategy.estimate_harvest()
    strategy.estimate_harvest()

    assert strategy.ledger() == before
    assert strategy.balance_of() == deposited


def test_zero_profit_harvest_is_a_noop(env, strategy, deposited):
    env.chain.advance_time(3600)
    strategy.harvest(sender=env.keeper)
    log_before = strategy.harvest_log_entries
    keeper_before = env.want.balance_of(env.keeper)

    # Same block, nothing accrued
    result = strategy.harvest(sender=env.keeper)

    assert result.is_empty
    assert result.call_fee == 0
    assert strategy.harvest_log_entries == log_before
    assert env.want.balance_of(env.keeper) == keeper_before


def test_empty_harvest_still_records_when_it_ran(env, strategy):
    env.chain.advance_time(600)

    result = strategy.harvest(sender=env.keeper)

    assert result.is_empty
    assert result.assets_after == result.assets_before == 0
    assert strategy.last_harvest_timestamp == env.chain.timestamp
    assert strategy.harvest_log_entries == []


def test_harvest_can_be_restricted_to_strategists(env, strategy, deposited):
    strategy.set_permissionless_harvest(False, sender=env.deployer)
    env.chain.advance_time(60)

    with pytest.raises(Unauthorized):
        strategy.harvest(sender=env.keeper)
    assert strategy.harvest(sender=env.strategist).profit > 0


def test_pause_keeps_harvest_and_withdrawals_working(env, vault, strategy, alice, deposited):
    strategy.pause(sender=env.guardian)
    assert strategy.state is StrategyState.paused

    env.chain.advance_time(3600)
    assert strategy.harvest(sender=env.keeper).profit > 0

    result = vault.withdraw(deposited // 2, sender=alice)
    assert env.want.balance_of(alice) == result.paid

    with pytest.raises(InvalidTransition):
        strategy.pause(sender=env.guardian)
    strategy.unpause(sender=env.deployer)
    assert strategy.state is StrategyState.active


def test_unpause_redeploys_idle_want(env, strategy, deposited):
    strategy.pause(sender=env.guardian)
    env.want.mint(strategy.address, 5, sender=env.deployer)

    strategy.unpause(sender=env.guardian)

    assert strategy.balance_of_want() == 0
    assert strategy.balance_of_pool() == deposited + 5


def test_panic_pulls_everything_out_of_the_farm(env, vault, strategy, alice, deposited, fund):
    withdrawn = strategy.panic(sender=env.guardian)

    assert withdrawn == deposited
    assert strategy.state is StrategyState.panicked
    assert strategy.balance_of_pool() == 0
    assert strategy.balance_of_want() == deposited
    assert vault.balance() == deposited

    env.chain.advance_time(3600)
    with pytest.raises(StrategyPaused):
        strategy.harvest(sender=env.keeper)
    assert strategy.estimate_harvest().profit == 0

    # No way back from panic except retirement
    with pytest.raises(InvalidTransition):
        strategy.unpause(sender=env.deployer)
    with pytest.raises(InvalidTransition):
        strategy.pause(sender=env.guardian)

    with pytest.raises(StrategyPaused):
        vault.deposit(fund(alice, "1"), sender=alice)

    result = vault.withdraw_all(sender=alice)
    assert result.owed == deposited


def test_retire_returns_everything_to_the_vault(env, vault, strategy, deposited):
    env.chain.advance_time(3600)
    strategy.harvest(sender=env.keeper)
    balance_before = vault.balance()

    sent = strategy.retire_strat(sender=env.strategist)

    assert sent == balance_before
    assert strategy.state is StrategyState.retired
    assert strategy.balance_of() == 0
    assert vault.active_strategy is None
    assert vault.available() == balance_before
    assert vault.balance() == balance_before

    # Second call is a no-op
    assert strategy.retire_strat(sender=env.strategist) == 0

    with pytest.raises(StrategyRetired):
        strategy.harvest(sender=env.keeper)
    with pytest.raises(StrategyRetired):
        strategy.pause(sender=env.guardian)
    with pytest.raises(StrategyRetired):
        strategy.update_harvest_log_cadence(10, sender=env.deployer)


def test_retire_with_nothing_deposited(env, vault, strategy):
    assert strategy.retire_strat(sender=env.deployer) == 0
    assert strategy.state is StrategyState.retired
    assert vault.active_strategy is None


def test_retire_after_panic(env, vault, strategy, deposited):
    strategy.panic(sender=env.guardian)
    assert strategy.retire_strat(sender=env.deployer) == deposited
    assert vault.available() == deposited


@pytest.mark.parametrize(
    "operation, role_holder",
    [
        ("pause", "keeper"),
        ("panic", "strategist"),
        ("retire_strat", "guardian"),
    ],
)
def test_state_transitions_are_role_gated(env, strategy, operation, role_holder):
    with pytest.raises(Unauthorized) as exc_info:
        getattr(strategy, operation)(sender=getattr(env, role_holder))
    assert exc_info.value.operation == operation
    assert strategy.state is StrategyState.active


def test_granted_guardian_can_pause(env, strategy, bob):
    strategy.grant_role(Role.guardian, bob, sender=env.deployer)
    strategy.pause(sender=bob)
    strategy.unpause(sender=bob)

    strategy.revoke_role(Role.guardian, bob, sender=env.deployer)
    with pytest.raises(Unauthorized):
        strategy.pause(sender=bob)
    with pytest.raises(Unauthorized):
        strategy.grant_role(Role.guardian, bob, sender=env.strategist)


def test_update_fee_split(env, strategy, deposited):
    with pytest.raises(Unauthorized):
        strategy.update_fee_split(FeeSplit(0, 0, 0), sender=env.strategist)
    strategy.update_fee_split(FeeSplit(1000, 0, 0), sender=env.deployer)

    env.chain.advance_time(3600)
    result = strategy.harvest(sender=env.keeper)

    assert result.treasury_fee == result.profit // 10
    assert result.strategist_fee == 0
    assert result.call_fee == 0


def test_apr_from_a_single_harvest(env, strategy, deposited):
    env.chain.advance_time(86_400)
    result = strategy.harvest(sender=env.keeper)

    expected = Fraction(result.assets_after - result.assets_before, result.assets_before) * Fraction(
        SECONDS_PER_YEAR, 86_400
    )
    assert strategy.average_apr_across_last_n_harvests(1) == int(expected * 10_000)
    # 41256 want compounded on 1000 in a day
    assert strategy.average_apr_across_last_n_harvests(5) == 150_584_400


def test_apr_needs_history(env, strategy):
    with pytest.raises(InsufficientHistory):
        strategy.average_apr_across_last_n_harvests(3)
    with pytest.raises(InvalidConfiguration):
        strategy.average_apr_across_last_n_harvests(0)


def test_close_harvests_merge_into_one_log_entry(env, strategy, deposited):
    env.chain.advance_time(3600)
    first = strategy.harvest(sender=env.keeper)
    env.chain.advance_time(30)
    second = strategy.harvest(sender=env.keeper)

    (entry,) = strategy.harvest_log_entries
    assert entry.timestamp == env.chain.timestamp
    assert entry.assets_before == first.assets_before
    assert entry.profit == first.compounded + second.compounded

    env.chain.advance_time(3600)
    strategy.harvest(sender=env.keeper)
    assert len(strategy.harvest_log_entries) == 2


def test_frequent_harvests_still_open_new_entries(env, strategy, deposited):
    start = env.chain.timestamp
    for _ in range(120):
        env.chain.advance_time(30)
        strategy.harvest(sender=env.keeper)

    # 60 one-minute samples over the hour, the oldest 30 evicted
    entries = strategy.harvest_log_entries
    assert len(entries) == 30
    assert [b.timestamp - a.timestamp for a, b in zip(entries, entries[1:])] == [60] * 29
    assert entries[-1].timestamp == start + 3600
    assert strategy.harvest_log.base_timestamp == start + 1800


def test_cadence_update_is_admin_only(env, strategy, deposited):
    with pytest.raises(Unauthorized):
        strategy.update_harvest_log_cadence(0, sender=env.strategist)
    with pytest.raises(InvalidConfiguration):
        strategy.update_harvest_log_cadence(-1, sender=env.deployer)

    strategy.update_harvest_log_cadence(0, sender=env.deployer)
    assert strategy.harvest_log_cadence == 0

    env.chain.advance_time(30)
    strategy.harvest(sender=env.keeper)
    env.chain.advance_time(30)
    strategy.harvest(sender=env.keeper)
    assert len(strategy.harvest_log_entries) == 2


def test_vault_only_paths(env, strategy, bob):
    with pytest.raises(Unauthorized):
        strategy.deposit(sender=bob)
    with pytest.raises(Unauthorized):
        strategy.withdraw(1, sender=bob)
