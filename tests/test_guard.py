import pytest

from crypt_harvest.chain import Chain
from crypt_harvest.deploy import deploy
from crypt_harvest.errors import InsufficientBalance, ReentrancyDetected
from crypt_harvest.farm import SimulatedFarm
from crypt_harvest.formatters import to_units
from crypt_harvest.guard import entrypoint
from crypt_harvest.simulation import SimulationParams, build_environment, default_config


class HostileFarm(SimulatedFarm):
    """Calls back into the vault or strategy from inside withdraw()."""

    def __init__(self, chain, *, owner):
        super().__init__(chain, owner=owner, label="hostile-farm")
        self.attack = None
        self.fail_deposits = False

    def deposit(self, pool_id, amount, *, sender):
        super().deposit(pool_id, amount, sender=sender)
        if self.fail_deposits:
            raise InsufficientBalance("farm is out of order")

    def withdraw(self, pool_id, amount, *, sender):
        if self.attack is not None:
            self.attack()
        super().withdraw(pool_id, amount, sender=sender)


@pytest.fixture()
def hostile():
    chain = Chain()
    env = build_environment(SimulationParams(depositors=2, reward_rate="1"), chain)
    farm = HostileFarm(chain, owner=env.deployer)
    env.reward.add_minter(farm.address, sender=env.deployer)
    pool_id = farm.add_pool(env.want.address, {env.reward.address: to_units("1")}, sender=env.deployer)

    config = default_config(env, {"strategy": {"farm": farm.address, "pool_id": pool_id}})
    deployment = deploy(chain, config)

    alice = env.depositors[0]
    amount = to_units("100")
    env.want.mint(alice, amount, sender=env.deployer)
    env.want.approve(deployment.vault.address, amount, sender=alice)
    deployment.vault.deposit(amount, sender=alice)
    return env, farm, deployment, alice


def test_farm_cannot_reenter_harvest(hostile):
    env, farm, deployment, _ = hostile
    strategy = deployment.strategy
    env.chain.advance_time(3600)
    farm.attack = lambda: strategy.harvest(sender=env.keeper)
    before = strategy.ledger()

    with pytest.raises(ReentrancyDetected):
        strategy.harvest(sender=env.keeper)

    assert strategy.ledger() == before
    assert env.want.balance_of(env.keeper) == 0
    assert strategy._entered is False
    assert env.chain.depth == 0


def test_farm_cannot_reenter_vault_withdraw(hostile):
    env, farm, deployment, alice = hostile
    vault = deployment.vault
    farm.attack = lambda: vault.withdraw(1, sender=alice)
    shares = vault.balance_of(alice)

    with pytest.raises(ReentrancyDetected):
        vault.withdraw(shares, sender=alice)

    assert vault.balance_of(alice) == shares
    assert vault.total_supply == shares
    assert env.want.balance_of(alice) == 0


def test_failure_after_partial_effects_rolls_everything_back(hostile):
    env, farm, deployment, _ = hostile
    vault = deployment.vault
    bob = env.depositors[1]
    amount = to_units("50")
    env.want.mint(bob, amount, sender=env.deployer)
    env.want.approve(vault.address, amount, sender=bob)
    farm.fail_deposits = True
    supply = vault.total_supply

    # The want transfer and share mint happen before the farm deposit fails
    with pytest.raises(InsufficientBalance):
        vault.deposit(amount, sender=bob)

    assert env.want.balance_of(bob) == amount
    assert env.want.allowance(bob, vault.address) == amount
    assert vault.balance_of(bob) == 0
    assert vault.total_supply == supply
    assert vault.available() == 0


def test_revert_restores_clock_and_storage():
    chain = Chain()
    env = build_environment(SimulationParams(depositors=1), chain)
    snapshot_id = chain.snapshot()
    env.want.mint(env.depositors[0], 10, sender=env.deployer)
    chain.advance_time(100)

    assert chain.revert(snapshot_id)
    assert env.want.balance_of(env.depositors[0]) == 0
    assert chain.timestamp == env.farm.pools[0].last_reward_time
    assert not chain.revert(snapshot_id)


def test_nested_entrypoints_share_the_outer_transaction():
    chain = Chain()
    env = build_environment(SimulationParams(depositors=1), chain)
    calls = []

    class Relay(SimulatedFarm):
        @entrypoint
        def relay(self, *, sender):
            calls.append(chain.depth)
            env.want.mint(sender, 1, sender=env.deployer)
            calls.append(chain.depth)
            raise RuntimeError("boom")

    relay = Relay(chain, owner=env.deployer, label="relay")
    with pytest.raises(RuntimeError):
        relay.relay(sender=env.depositors[0])

    assert calls == [1, 1]
    assert env.want.balance_of(env.depositors[0]) == 0
    assert chain.depth == 0


def test_harvest_reports_a_farm_loss(hostile):
    env, farm, deployment, _ = hostile
    strategy = deployment.strategy
    slashed = to_units("10")

    def slash():
        farm.users[(strategy.pool_id, strategy.address)].amount -= slashed
        farm.pools[strategy.pool_id].total_staked -= slashed

    farm.attack = slash
    result = strategy.harvest(sender=env.keeper)

    assert result.profit == -slashed
    assert result.assets_after == strategy.balance_of() == to_units("90")
    assert result.is_empty
    assert result.call_fee == 0
    assert strategy.harvest_log_entries == []
    assert strategy.last_harvest_timestamp == env.chain.timestamp
