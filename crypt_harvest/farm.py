"""External yield farm interface and a MasterChef-style simulation of it."""

import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from web3 import Web3

from crypt_harvest.chain import Chain, Contract
from crypt_harvest.constants import ACC_REWARD_PRECISION
from crypt_harvest.errors import InsufficientBalance, InvalidConfiguration, Unauthorized
from crypt_harvest.guard import entrypoint
from crypt_harvest.token import Token

logger = logging.getLogger(__name__)


@runtime_checkable
class ExternalFarm(Protocol):
    """What a strategy needs from the farm it deposits into.

    ``withdraw(pool_id, 0)`` claims pending rewards without touching the
    principal, as MasterChef contracts do.
    """

    address: str

    def deposit(self, pool_id: int, amount: int, *, sender: str) -> None: ...

    def withdraw(self, pool_id: int, amount: int, *, sender: str) -> None: ...

    def pending_rewards(self, pool_id: int, account: str) -> dict[str, int]: ...

    def deposited(self, pool_id: int, account: str) -> int: ...


@dataclass
class PoolInfo:
    lp_token: str
    #: Reward token address -> units emitted per second to the whole pool
    reward_rates: dict[str, int]
    last_reward_time: int
    total_staked: int = 0
    acc_reward_per_share: dict[str, int] = field(default_factory=dict)


@dataclass
class UserInfo:
    amount: int = 0
    reward_debt: dict[str, int] = field(default_factory=dict)


class SimulatedFarm(Contract):
    """Emits reward tokens per second, split pro rata between stakers.

    The farm mints rewards on claim, so it must be a minter of every reward token.
    """

    def __init__(self, chain: Chain, *, owner: str, label: str = "farm"):
        super().__init__(chain, label)
        self.owner = Web3.to_checksum_address(owner)
        self.pools: list[PoolInfo] = []
        self.users: dict[tuple[int, str], UserInfo] = {}

    @entrypoint
    def add_pool(self, lp_token: str, reward_rates: dict[str, int], *, sender: str) -> int:
        """Register a pool. Returns its pool id."""
        if Web3.to_checksum_address(sender) != self.owner:
            raise Unauthorized(sender, "add_pool")
        if any(rate < 0 for rate in reward_rates.values()):
            raise InvalidConfiguration("Reward rates must be non-negative")
        rates = {Web3.to_checksum_address(t): r for t, r in reward_rates.items()}
        self.pools.append(
            PoolInfo(
                lp_token=Web3.to_checksum_address(lp_token),
                reward_rates=rates,
                last_reward_time=self.chain.timestamp,
                acc_reward_per_share={t: 0 for t in rates},
            )
        )
        return len(self.pools) - 1

    @entrypoint
    def set_reward_rate(self, pool_id: int, token: str, rate: int, *, sender: str) -> None:
        if Web3.to_checksum_address(sender) != self.owner:
            raise Unauthorized(sender, "set_reward_rate")
        pool = self._pool(pool_id)
        self._update_pool(pool)
        token = Web3.to_checksum_address(token)
        pool.reward_rates[token] = rate
        pool.acc_reward_per_share.setdefault(token, 0)

    def _pool(self, pool_id: int) -> PoolInfo:
        if not 0 <= pool_id < len(self.pools):
            raise InvalidConfiguration(f"Unknown pool {pool_id}")
        return self.pools[pool_id]

    def _accumulated(self, pool: PoolInfo) -> dict[str, int]:
        """Reward-per-share accumulators as of now, without writing them."""
        elapsed = self.chain.timestamp - pool.last_reward_time
        if elapsed <= 0 or pool.total_staked == 0:
            return dict(pool.acc_reward_per_share)
        return {
            token: pool.acc_reward_per_share.get(token, 0)
            + elapsed * rate * ACC_REWARD_PRECISION // pool.total_staked
            for token, rate in pool.reward_rates.items()
        }

    def _update_pool(self, pool: PoolInfo) -> None:
        pool.acc_reward_per_share = self._accumulated(pool)
        pool.last_reward_time = self.chain.timestamp

    @staticmethod
    def _pending(user: UserInfo, acc: dict[str, int]) -> dict[str, int]:
        return {
            token: user.amount * per_share // ACC_REWARD_PRECISION - user.reward_debt.get(token, 0)
            for token, per_share in acc.items()
        }

    def _pay_pending(self, pool: PoolInfo, user: UserInfo, recipient: str) -> None:
        for token, amount in self._pending(user, pool.acc_reward_per_share).items():
            if amount > 0:
                self.chain.get(token, Token).mint(recipient, amount, sender=self.address)

    def _sync_debt(self, pool: PoolInfo, user: UserInfo) -> None:
        user.reward_debt = {
            token: user.amount * per_share // ACC_REWARD_PRECISION for token, per_share in pool.acc_reward_per_share.items()
        }

    @entrypoint
    def deposit(self, pool_id: int, amount: int, *, sender: str) -> None:
        pool = self._pool(pool_id)
        sender = Web3.to_checksum_address(sender)
        user = self.users.setdefault((pool_id, sender), UserInfo())
        self._update_pool(pool)
        self._pay_pending(pool, user, sender)
        if amount > 0:
            self.chain.get(pool.lp_token, Token).transfer_from(sender, self.address, amount, sender=self.address)
            user.amount += amount
            pool.total_staked += amount
        self._sync_debt(pool, user)

    @entrypoint
    def withdraw(self, pool_id: int, amount: int, *, sender: str) -> None:
        pool = self._pool(pool_id)
        sender = Web3.to_checksum_address(sender)
        user = self.users.setdefault((pool_id, sender), UserInfo())
        if amount > user.amount:
            raise InsufficientBalance(f"Pool {pool_id}: {sender} staked {user.amount}, asked {amount}")
        self._update_pool(pool)
        self._pay_pending(pool, user, sender)
        if amount > 0:
            user.amount -= amount
            pool.total_staked -= amount
            self.chain.get(pool.lp_token, Token).transfer(sender, amount, sender=self.address)
        self._sync_debt(pool, user)

    def pending_rewards(self, pool_id: int, account: str) -> dict[str, int]:
        pool = self._pool(pool_id)
        user = self.users.get((pool_id, Web3.to_checksum_address(account)))
        if user is None:
            return {token: 0 for token in pool.reward_rates}
        return self._pending(user, self._accumulated(pool))

    def deposited(self, pool_id: int, account: str) -> int:
        self._pool(pool_id)
        user = self.users.get((pool_id, Web3.to_checksum_address(account)))
        return user.amount if user else 0
