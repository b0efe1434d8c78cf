"""Reward token -> want token conversion."""

import logging
from typing import Protocol, runtime_checkable

from web3 import Web3

from crypt_harvest.chain import Chain, Contract
from crypt_harvest.errors import InvalidConfiguration, Unauthorized
from crypt_harvest.guard import entrypoint
from crypt_harvest.token import Token

logger = logging.getLogger(__name__)


@runtime_checkable
class RewardConverter(Protocol):
    """Deterministic swap of harvested rewards into want.

    ``convert()`` must return exactly what ``quote()`` promised for the same
    input, otherwise harvest estimates drift from realized harvests.
    """

    address: str

    def quote(self, token: str, amount: int) -> int: ...

    def convert(self, token: str, amount: int, *, sender: str, recipient: str) -> int: ...


class FixedRateConverter(Contract):
    """Swaps at owner-set fractional rates and mints the want it pays out.

    Must be a minter of the want token. Tokens without a rate quote to zero.
    """

    def __init__(self, chain: Chain, want: str, *, owner: str, rates: dict[str, tuple[int, int]] | None = None):
        super().__init__(chain, "converter")
        self.want = Web3.to_checksum_address(want)
        self.owner = Web3.to_checksum_address(owner)
        #: Token -> (numerator, denominator): want out = amount * numerator // denominator
        self.rates: dict[str, tuple[int, int]] = {}
        for token, (numerator, denominator) in (rates or {}).items():
            self._set_rate(token, numerator, denominator)

    def _set_rate(self, token: str, numerator: int, denominator: int) -> None:
        if numerator < 0 or denominator <= 0:
            raise InvalidConfiguration(f"Invalid rate {numerator}/{denominator}")
        self.rates[Web3.to_checksum_address(token)] = (numerator, denominator)

    @entrypoint
    def set_rate(self, token: str, numerator: int, denominator: int, *, sender: str) -> None:
        if Web3.to_checksum_address(sender) != self.owner:
            raise Unauthorized(sender, "set_rate")
        self._set_rate(token, numerator, denominator)

    def quote(self, token: str, amount: int) -> int:
        numerator, denominator = self.rates.get(Web3.to_checksum_address(token), (0, 1))
        return amount * numerator // denominator

    @entrypoint
    def convert(self, token: str, amount: int, *, sender: str, recipient: str) -> int:
        out = self.quote(token, amount)
        if amount == 0:
            return 0
        self.chain.get(token, Token).transfer_from(sender, self.address, amount, sender=self.address)
        if out > 0:
            self.chain.get(self.want, Token).mint(recipient, out, sender=self.address)
        logger.debug("Converted %d of %s into %d want for %s", amount, token, out, recipient)
        return out
