"""Vault error taxonomy.

All vault operations fail synchronously and atomically with one of these.

- :py:class:`ValidationError`: bad amounts, balances, fee ceilings, zero addresses
- :py:class:`AuthorizationError`: caller lacks owner or admin privilege
- :py:class:`StateError`: paused vault, misbehaving collaborator
"""


class VaultError(Exception):
    """Base class for vault operation failures.

    The first argument is the human-readable revert reason.
    """

    def __init__(self, reason: str, *args):
        super().__init__(reason, *args)
        self.reason = reason

    def __str__(self):
        return self.reason


class ValidationError(VaultError):
    """Operation arguments do not pass validation."""


class AuthorizationError(VaultError):
    """Caller does not have the privilege for the operation."""


class StateError(VaultError):
    """Operation is not possible in the current state."""
