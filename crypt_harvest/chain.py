"""In-process host environment for vaults, strategies and their collaborators.

The :py:class:`Chain` plays the role a forked node plays in the integration
tests of Solidity crypts:

- a clock that only moves when told to (``evm_increaseTime``)
- deterministic checksummed addresses for accounts and contracts
- a registry so contracts refer to each other by address only
- ``evm_snapshot`` / ``evm_revert`` style state snapshots, used to give every
  entry point all-or-nothing semantics
"""

import copy
import itertools
import logging
from typing import Any, TypeVar

from web3 import Web3

from crypt_harvest.constants import GENESIS_TIMESTAMP

logger = logging.getLogger(__name__)

ContractT = TypeVar("ContractT", bound="Contract")


class Contract:
    """Base class for anything that lives at an address on a :py:class:`Chain`.

    Everything in ``vars(self)`` is contract storage and gets captured by
    :py:meth:`state_dict`, except the attributes named in ``transient_attributes``.
    """

    transient_attributes = frozenset({"chain", "address", "_entered"})

    def __init__(self, chain: "Chain", label: str):
        self.chain = chain
        self._entered = False
        self.address = chain.register(self, label)

    def state_dict(self) -> dict[str, Any]:
        return {k: copy.deepcopy(v) for k, v in vars(self).items() if k not in self.transient_attributes}

    def load_state_dict(self, state: dict[str, Any]) -> None:
        for key in [k for k in vars(self) if k not in self.transient_attributes and k not in state]:
            delattr(self, key)
        for key, value in state.items():
            setattr(self, key, copy.deepcopy(value))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.address}>"


class Chain:
    """Clock, address registry and snapshot store."""

    def __init__(self, *, timestamp: int = GENESIS_TIMESTAMP):
        self.timestamp = timestamp
        self.contracts: dict[str, Contract] = {}
        #: Nesting depth of entry point calls, 0 when idle
        self.depth = 0
        self._nonce = itertools.count()
        self._snapshot_ids = itertools.count(1)
        self._snapshots: dict[int, dict[str, Any]] = {}

    def make_address(self, label: str) -> str:
        """Derive a fresh checksummed address from a label."""
        digest = Web3.keccak(text=f"{label}:{next(self._nonce)}")
        return Web3.to_checksum_address(digest[-20:])

    def account(self, label: str) -> str:
        """Create an externally owned account address."""
        return self.make_address(f"account:{label}")

    def register(self, contract: Contract, label: str) -> str:
        address = self.make_address(f"contract:{label}")
        self.contracts[address] = contract
        logger.debug("Registered %s %s at %s", type(contract).__name__, label, address)
        return address

    def get(self, address: str, kind: type[ContractT] = Contract) -> ContractT:
        """Resolve an address handle to the contract living there."""
        contract = self.contracts.get(Web3.to_checksum_address(address))
        if contract is None:
            raise KeyError(f"No contract at {address}")
        if not isinstance(contract, kind):
            raise TypeError(f"Contract at {address} is {type(contract).__name__}, expected {kind.__name__}")
        return contract

    def is_contract(self, address: str) -> bool:
        return Web3.to_checksum_address(address) in self.contracts

    def advance_time(self, seconds: int) -> int:
        """Move the clock forward. Returns the new timestamp."""
        if seconds < 0:
            raise ValueError("Cannot move time backwards")
        self.timestamp += seconds
        return self.timestamp

    def snapshot(self) -> int:
        """Capture the state of every registered contract and the clock."""
        snapshot_id = next(self._snapshot_ids)
        self._snapshots[snapshot_id] = {
            "timestamp": self.timestamp,
            "contracts": {address: c.state_dict() for address, c in self.contracts.items()},
        }
        return snapshot_id

    def revert(self, snapshot_id: int) -> bool:
        """Restore a snapshot.

        Like ``evm_revert``, the snapshot and all newer ones are consumed.

        :return:
            True if a snapshot was reverted
        """
        state = self._snapshots.pop(snapshot_id, None)
        if state is None:
            return False
        for newer in [sid for sid in self._snapshots if sid > snapshot_id]:
            del self._snapshots[newer]
        self.timestamp = state["timestamp"]
        for address, contract_state in state["contracts"].items():
            self.contracts[address].load_state_dict(contract_state)
        return True

    def discard(self, snapshot_id: int) -> None:
        """Drop a snapshot that is no longer needed."""
        self._snapshots.pop(snapshot_id, None)
