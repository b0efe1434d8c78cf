import pytest

from crypt_harvest.deploy import deploy
from crypt_harvest.formatters import to_units
from crypt_harvest.simulation import SimulationParams, build_environment, default_config


@pytest.fixture()
def env():
    """Tokens, farm and converter on a fresh chain. One reward token per second, converted 1:2 into want."""
    return build_environment(SimulationParams(depositors=3, reward_rate="1", conversion_rate=(1, 2)))


@pytest.fixture()
def chain(env):
    return env.chain


@pytest.fixture()
def deployment(env):
    return deploy(env.chain, default_config(env))


@pytest.fixture()
def vault(deployment):
    return deployment.vault


@pytest.fixture()
def strategy(deployment):
    return deployment.strategy


@pytest.fixture()
def alice(env):
    return env.depositors[0]


@pytest.fixture()
def bob(env):
    return env.depositors[1]


@pytest.fixture()
def fund(env, vault):
    """Mint want to an account and approve the vault for it."""

    def _fund(account: str, amount: int | str) -> int:
        raw = to_units(amount) if isinstance(amount, str) else amount
        env.want.mint(account, raw, sender=env.deployer)
        env.want.approve(vault.address, raw, sender=account)
        return raw

    return _fund
