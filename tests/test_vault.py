import pytest

from crypt_harvest.constants import MAX_UINT256, PRICE_PER_SHARE_SCALE
from crypt_harvest.errors import (
    AlreadyInitialized,
    InsufficientBalance,
    InsufficientCapacity,
    InsufficientShares,
    InvalidConfiguration,
    StrategyMismatch,
    StrategyPaused,
    Unauthorized,
    ZeroAmount,
)
from crypt_harvest.formatters import to_units
from crypt_harvest.strategy import Strategy
from crypt_harvest.vault import Vault


def test_initial_state(vault):
    assert vault.balance() == 0
    assert vault.available() == 0
    assert vault.total_supply == 0
    assert vault.get_price_per_full_share() == PRICE_PER_SHARE_SCALE
    assert vault.tvl_cap == MAX_UINT256
    assert vault.withdraw_fee_bps == 10


def test_genesis_deposit_mints_one_to_one_and_forwards_to_strategy(vault, strategy, alice, fund):
    amount = fund(alice, "1000")
    shares = vault.deposit(amount, sender=alice)

    assert shares == amount
    assert vault.balance_of(alice) == amount
    assert vault.available() == 0
    assert strategy.balance_of_pool() == amount
    assert vault.balance() == amount
    assert vault.cumulative_deposits[alice] == amount


def test_price_per_share_stays_one_without_fees_or_harvests(env, vault, alice, bob, fund):
    vault.update_withdraw_fee(0, sender=env.deployer)
    fund(alice, "100")
    fund(bob, "37")

    vault.deposit(to_units("100"), sender=alice)
    assert vault.get_price_per_full_share() == PRICE_PER_SHARE_SCALE
    vault.deposit(to_units("37"), sender=bob)
    assert vault.get_price_per_full_share() == PRICE_PER_SHARE_SCALE
    vault.withdraw(to_units("40"), sender=alice)
    assert vault.get_price_per_full_share() == PRICE_PER_SHARE_SCALE
    vault.withdraw_all(sender=bob)
    assert vault.get_price_per_full_share() == PRICE_PER_SHARE_SCALE
    assert env.want.balance_of(bob) == to_units("37")
    assert env.want.balance_of(alice) == to_units("40")


def test_deposit_then_withdraw_all_charges_exactly_the_withdraw_fee(env, vault, alice, fund):
    amount = fund(alice, "1000")
    vault.deposit(amount, sender=alice)

    result = vault.withdraw_all(sender=alice)

    assert result.owed == amount
    assert result.fee == amount * 10 // 10_000
    assert result.paid == amount - result.fee
    assert env.want.balance_of(alice) == result.paid
    assert vault.balance_of(alice) == 0
    assert vault.total_supply == 0
    # The fee stays behind in the vault
    assert vault.available() == result.fee


def test_second_depositor_mints_proportionally_after_harvest(env, vault, strategy, alice, bob, fund):
    vault.deposit(fund(alice, "1000"), sender=alice)
    env.chain.advance_time(3600)
    strategy.harvest(sender=env.keeper)

    assets, supply = vault.balance(), vault.total_supply
    assert assets > supply
    price_before = vault.get_price_per_full_share()

    amount = fund(bob, "500")
    shares = vault.deposit(amount, sender=bob)

    assert shares == amount * supply // assets
    assert vault.get_price_per_full_share() >= price_before
    # Share ratio matches the ratio of assets brought in, within rounding
    alice_value = vault.balance_of(alice) * vault.balance() // vault.total_supply
    bob_value = vault.balance_of(bob) * vault.balance() // vault.total_supply
    assert abs(bob_value - amount) <= 10
    assert abs(alice_value - assets) <= 10


def test_deposit_fee_reduces_minted_shares(env, vault, alice, fund):
    vault.update_deposit_fee(100, sender=env.deployer)
    amount = fund(alice, "1000")

    shares = vault.deposit(amount, sender=alice)

    assert shares == amount - amount // 100
    assert vault.get_price_per_full_share() > PRICE_PER_SHARE_SCALE


def test_zero_amounts_are_rejected(vault, alice, fund):
    with pytest.raises(ZeroAmount):
        vault.deposit(0, sender=alice)
    vault.deposit(fund(alice, "1"), sender=alice)
    with pytest.raises(ZeroAmount):
        vault.withdraw(0, sender=alice)


def test_withdraw_more_than_held(vault, alice, bob, fund):
    vault.deposit(fund(alice, "10"), sender=alice)
    with pytest.raises(InsufficientShares):
        vault.withdraw(1, sender=bob)
    with pytest.raises(InsufficientShares):
        vault.withdraw(vault.balance_of(alice) + 1, sender=alice)


def test_tvl_cap(env, vault, alice, bob, fund):
    vault.update_tvl_cap(to_units("1500"), sender=env.deployer)
    vault.deposit(fund(alice, "1000"), sender=alice)
    amount = fund(bob, "600")

    with pytest.raises(InsufficientCapacity):
        vault.deposit(amount, sender=bob)
    assert env.want.balance_of(bob) == amount
    assert vault.balance_of(bob) == 0

    # Filling the vault exactly up to the cap is allowed
    assert vault.deposit(to_units("500"), sender=bob) > 0
    assert vault.balance() == vault.tvl_cap
    with pytest.raises(InsufficientCapacity):
        vault.deposit(1, sender=bob)

    vault.remove_tvl_cap(sender=env.deployer)
    assert vault.deposit(to_units("100"), sender=bob) > 0


def test_chunked_withdrawals_cannot_dodge_the_fee(env, vault, alice, fund):
    vault.deposit(fund(alice, "1000"), sender=alice)

    fees = sum(vault.withdraw(999, sender=alice).fee for _ in range(50))

    # A single withdrawal of 49950 shares pays ceil(49.95) = 50
    assert fees >= 50


def test_small_deposits_still_pay_the_deposit_fee(env, vault, alice, fund):
    vault.update_deposit_fee(100, sender=env.deployer)
    fund(alice, "1")

    assert vault.deposit(99, sender=alice) == 98
    with pytest.raises(ZeroAmount):
        vault.deposit(1, sender=alice)


def test_deposit_blocked_while_strategy_paused(env, vault, strategy, alice, fund):
    amount = fund(alice, "100")
    strategy.pause(sender=env.guardian)

    with pytest.raises(StrategyPaused):
        vault.deposit(amount, sender=alice)

    strategy.unpause(sender=env.guardian)
    assert vault.deposit(amount, sender=alice) == amount


def test_withdraw_recalls_shortfall_from_strategy(env, vault, strategy, alice, fund):
    amount = fund(alice, "1000")
    vault.deposit(amount, sender=alice)
    assert vault.available() == 0

    result = vault.withdraw(amount // 2, sender=alice)

    assert result.paid == env.want.balance_of(alice)
    assert strategy.balance_of() == amount // 2
    assert vault.available() == result.fee


def test_failed_deposit_leaves_everything_unchanged(env, vault, strategy, alice):
    env.want.mint(alice, to_units("10"), sender=env.deployer)
    vault_before = vault.ledger()
    strategy_before = strategy.ledger()

    # No approval given
    with pytest.raises(InsufficientBalance):
        vault.deposit(to_units("10"), sender=alice)

    assert vault.ledger() == vault_before
    assert strategy.ledger() == strategy_before
    assert env.want.balance_of(alice) == to_units("10")


def test_share_transfer(vault, alice, bob, fund):
    vault.deposit(fund(alice, "10"), sender=alice)
    vault.transfer(bob, to_units("4"), sender=alice)

    assert vault.balance_of(alice) == to_units("6")
    assert vault.balance_of(bob) == to_units("4")
    assert vault.total_supply == to_units("10")
    with pytest.raises(InsufficientShares):
        vault.transfer(alice, to_units("5"), sender=bob)


def test_admin_operations_require_owner(env, vault, bob):
    with pytest.raises(Unauthorized) as exc_info:
        vault.update_withdraw_fee(0, sender=bob)
    assert exc_info.value.operation == "update_withdraw_fee"
    with pytest.raises(Unauthorized):
        vault.update_tvl_cap(1, sender=bob)
    with pytest.raises(InvalidConfiguration):
        vault.update_deposit_fee(10_001, sender=env.deployer)


def test_rescue_stuck_tokens(env, vault):
    env.reward.mint(vault.address, 123, sender=env.deployer)

    assert vault.in_case_tokens_get_stuck(env.reward.address, sender=env.deployer) == 123
    assert env.reward.balance_of(env.deployer) == 123
    with pytest.raises(InvalidConfiguration):
        vault.in_case_tokens_get_stuck(env.want.address, sender=env.deployer)


def test_initialize_is_one_shot(env, vault, strategy, bob):
    with pytest.raises(Unauthorized):
        vault.initialize(strategy.address, sender=bob)
    with pytest.raises(AlreadyInitialized):
        vault.initialize(strategy.address, sender=env.deployer)


def test_initialize_rejects_strategy_of_another_vault(env, strategy):
    other = Vault(env.chain, env.want.address, owner=env.deployer, label="other-vault")
    with pytest.raises(StrategyMismatch):
        other.initialize(strategy.address, sender=env.deployer)
    assert other.active_strategy is None


def test_deposits_stay_idle_until_a_strategy_is_wired(env, alice):
    vault = Vault(env.chain, env.want.address, owner=env.deployer, label="bare-vault")
    amount = to_units("50")
    env.want.mint(alice, amount, sender=env.deployer)
    env.want.approve(vault.address, amount, sender=alice)

    vault.deposit(amount, sender=alice)
    assert vault.available() == amount

    strategy = Strategy(
        env.chain,
        vault=vault.address,
        want=env.want.address,
        pool_id=env.pool_id,
        farm=env.farm.address,
        converter=env.converter.address,
        reward_tokens=[env.reward.address],
        treasury=env.treasury,
        strategist_remitter=env.strategist,
        admin=env.deployer,
    )
    vault.initialize(strategy.address, sender=env.deployer)

    assert vault.available() == 0
    assert strategy.balance_of_pool() == amount
