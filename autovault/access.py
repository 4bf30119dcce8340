"""Owner and admin roles.

- Owner manages who the admin and treasury are, and can hand over ownership
- Admin runs the vault: fees, pause, emergency withdraw, token recovery
- Every restricted vault operation starts with :py:meth:`AccessControl.require`
"""

import enum
import logging
from dataclasses import dataclass

from eth_typing import HexAddress
from eth_utils import is_address

from autovault.address import is_zero_address, normalise_address
from autovault.errors import AuthorizationError, ValidationError


logger = logging.getLogger(__name__)


class Role(enum.Enum):
    """Privilege levels of the vault."""

    owner = "owner"

    admin = "admin"


#: Revert reasons of the CakeVault contracts
_DENIED_REASONS = {
    Role.owner: "Ownable: caller is not the owner",
    Role.admin: "admin: wut?",
}


@dataclass(slots=True, frozen=True)
class AccessCheck:
    """Outcome of a privilege check."""

    caller: HexAddress
    role: Role
    granted: bool

    #: Why the check failed, None when granted
    reason: str | None = None

    def __bool__(self):
        return self.granted


def require_non_zero_address(address: HexAddress | str) -> HexAddress:
    """Reject the zero address for privileged identities.

    :raise ValidationError:
        Not an address, or the zero address was given
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValidationError(f"Not an address: {address}")
    if is_zero_address(address):
        raise ValidationError("Cannot be zero address")
    return normalise_address(address)


class AccessControl:
    """Who holds the owner and admin roles."""

    def __init__(self, owner: HexAddress | str, admin: HexAddress | str):
        self.owner = require_non_zero_address(owner)
        self.admin = require_non_zero_address(admin)

    def holder(self, role: Role) -> HexAddress:
        if role == Role.owner:
            return self.owner
        return self.admin

    def check(self, caller: HexAddress | str, role: Role) -> AccessCheck:
        """Check a caller against a role without raising."""
        caller = normalise_address(caller)
        if caller == self.holder(role):
            return AccessCheck(caller=caller, role=role, granted=True)
        return AccessCheck(caller=caller, role=role, granted=False, reason=_DENIED_REASONS[role])

    def require(self, caller: HexAddress | str, role: Role) -> AccessCheck:
        """Check a caller against a role.

        :raise AuthorizationError:
            Caller does not hold the role
        """
        result = self.check(caller, role)
        if not result:
            logger.info("Denied %s for %s", role.value, result.caller)
            raise AuthorizationError(result.reason)
        return result

    def set_admin(self, admin: HexAddress | str) -> HexAddress:
        self.admin = require_non_zero_address(admin)
        return self.admin

    def transfer_ownership(self, new_owner: HexAddress | str) -> HexAddress:
        self.owner = require_non_zero_address(new_owner)
        return self.owner
