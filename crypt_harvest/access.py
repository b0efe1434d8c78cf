"""Role based access control.

Instead of ad hoc ``require(msg.sender == ...)`` checks in every method,
operations are looked up in :py:data:`CAPABILITIES` and checked with one
predicate, :py:meth:`AccessControl.require`.
"""

import enum
import logging
from collections.abc import Iterable

from web3 import Web3

from crypt_harvest.errors import InvalidConfiguration, Unauthorized

logger = logging.getLogger(__name__)


class Role(enum.Enum):
    admin = "admin"
    strategist = "strategist"
    guardian = "guardian"


#: Operation name -> roles allowed to call it
CAPABILITIES: dict[str, frozenset[Role]] = {
    # Strategy state machine
    "pause": frozenset({Role.guardian, Role.admin}),
    "unpause": frozenset({Role.guardian, Role.admin}),
    "panic": frozenset({Role.guardian, Role.admin}),
    "retire_strat": frozenset({Role.strategist, Role.admin}),
    # Only consulted when permissionless harvesting is switched off
    "harvest": frozenset({Role.strategist, Role.admin}),
    # Strategy parameters
    "update_harvest_log_cadence": frozenset({Role.admin}),
    "update_fee_split": frozenset({Role.admin}),
    "set_permissionless_harvest": frozenset({Role.admin}),
    "grant_role": frozenset({Role.admin}),
    "revoke_role": frozenset({Role.admin}),
    # Vault administration
    "initialize": frozenset({Role.admin}),
    "update_deposit_fee": frozenset({Role.admin}),
    "update_withdraw_fee": frozenset({Role.admin}),
    "update_tvl_cap": frozenset({Role.admin}),
    "remove_tvl_cap": frozenset({Role.admin}),
    "in_case_tokens_get_stuck": frozenset({Role.admin}),
}


class AccessControl:
    """Role membership for one contract: a single admin, any number of strategists and guardians."""

    def __init__(self, admin: str, *, strategists: Iterable[str] = (), guardians: Iterable[str] = ()):
        self.members: dict[Role, set[str]] = {
            Role.admin: {Web3.to_checksum_address(admin)},
            Role.strategist: {Web3.to_checksum_address(a) for a in strategists},
            Role.guardian: {Web3.to_checksum_address(a) for a in guardians},
        }

    @property
    def admin(self) -> str:
        (admin,) = self.members[Role.admin]
        return admin

    def has_role(self, role: Role, account: str) -> bool:
        return Web3.to_checksum_address(account) in self.members[role]

    def is_allowed(self, operation: str, account: str) -> bool:
        roles = CAPABILITIES[operation]
        return any(self.has_role(role, account) for role in roles)

    def require(self, operation: str, account: str) -> None:
        """Raise :py:class:`Unauthorized` unless the account holds a role allowed for the operation."""
        if not self.is_allowed(operation, account):
            raise Unauthorized(account, operation)

    def grant(self, role: Role, account: str) -> None:
        """Add a member. Granting admin hands the single admin seat over."""
        account = Web3.to_checksum_address(account)
        if role is Role.admin:
            logger.info("Admin transferred from %s to %s", self.admin, account)
            self.members[Role.admin] = {account}
        else:
            self.members[role].add(account)

    def revoke(self, role: Role, account: str) -> None:
        if role is Role.admin:
            raise InvalidConfiguration("The admin seat cannot be left empty, grant it to another account instead")
        self.members[role].discard(Web3.to_checksum_address(account))
