"""ERC-20 style token ledger."""

import logging

from web3 import Web3

from crypt_harvest.chain import Chain, Contract
from crypt_harvest.constants import MAX_UINT256
from crypt_harvest.errors import InsufficientBalance, InvalidConfiguration, Unauthorized
from crypt_harvest.guard import entrypoint

logger = logging.getLogger(__name__)


class Token(Contract):
    """Balances, allowances and a minter list. Used for the want token and reward tokens."""

    def __init__(self, chain: Chain, symbol: str, *, owner: str, name: str | None = None, decimals: int = 18):
        super().__init__(chain, f"token:{symbol}")
        self.symbol = symbol
        self.name = name or symbol
        self.decimals = decimals
        self.owner = Web3.to_checksum_address(owner)
        self.total_supply = 0
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.minters: set[str] = {self.owner}

    def balance_of(self, account: str) -> int:
        return self.balances.get(Web3.to_checksum_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)), 0)

    def _move(self, source: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise InvalidConfiguration(f"Negative transfer amount {amount}")
        source = Web3.to_checksum_address(source)
        recipient = Web3.to_checksum_address(recipient)
        balance = self.balances.get(source, 0)
        if amount > balance:
            raise InsufficientBalance(f"{self.symbol}: {source} holds {balance}, needs {amount}")
        self.balances[source] = balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        logger.debug("%s transfer %d %s -> %s", self.symbol, amount, source, recipient)

    @entrypoint
    def transfer(self, recipient: str, amount: int, *, sender: str) -> None:
        self._move(sender, recipient, amount)

    @entrypoint
    def approve(self, spender: str, amount: int, *, sender: str) -> None:
        if amount < 0:
            raise InvalidConfiguration(f"Negative allowance {amount}")
        self.allowances[(Web3.to_checksum_address(sender), Web3.to_checksum_address(spender))] = amount

    @entrypoint
    def transfer_from(self, owner: str, recipient: str, amount: int, *, sender: str) -> None:
        key = (Web3.to_checksum_address(owner), Web3.to_checksum_address(sender))
        allowed = self.allowances.get(key, 0)
        if amount > allowed:
            raise InsufficientBalance(f"{self.symbol}: allowance {allowed} of {sender} over {owner} is below {amount}")
        self._move(owner, recipient, amount)
        # Infinite approvals are never decremented
        if allowed != MAX_UINT256:
            self.allowances[key] = allowed - amount

    @entrypoint
    def mint(self, to: str, amount: int, *, sender: str) -> None:
        if Web3.to_checksum_address(sender) not in self.minters:
            raise Unauthorized(sender, "mint")
        if amount < 0:
            raise InvalidConfiguration(f"Negative mint amount {amount}")
        to = Web3.to_checksum_address(to)
        self.balances[to] = self.balances.get(to, 0) + amount
        self.total_supply += amount

    @entrypoint
    def add_minter(self, account: str, *, sender: str) -> None:
        if Web3.to_checksum_address(sender) != self.owner:
            raise Unauthorized(sender, "add_minter")
        self.minters.add(Web3.to_checksum_address(account))
