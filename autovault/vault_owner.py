"""Vault owner proxy.

An identity that owns the vault and acts as its admin, so that a single
owner key runs all vault administration through one place.

- Set up by transferring vault ownership to :py:attr:`VaultOwner.address`
  and calling :py:meth:`VaultOwner.set_admin`
- Tokens recovered from the vault are forwarded to the proxy owner
"""

import datetime
import logging

from eth_typing import HexAddress

from autovault.access import AccessControl, Role
from autovault.address import derive_address, normalise_address
from autovault.token import Token
from autovault.vault import AutoCompoundingVault


logger = logging.getLogger(__name__)


class VaultOwner:
    """Owner-only facade over the vault owner and admin functions."""

    def __init__(self, vault: AutoCompoundingVault, owner: HexAddress | str, address: HexAddress | str | None = None):
        assert isinstance(vault, AutoCompoundingVault), f"Got {type(vault)}"
        self.vault = vault
        self.address = normalise_address(address) if address else derive_address(f"vault-owner:{vault.address}")
        # The proxy has one role: its owner is also the only one who can use it
        self.access = AccessControl(owner, owner)

    def __repr__(self):
        return f"<VaultOwner {self.address} of {self.vault.address}>"

    @property
    def owner(self) -> HexAddress:
        return self.access.owner

    def transfer_ownership(self, caller: HexAddress | str, new_owner: HexAddress | str):
        self.access.require(caller, Role.owner)
        new_owner = self.access.transfer_ownership(new_owner)
        self.access.set_admin(new_owner)
        logger.info("VaultOwner %s ownership -> %s", self.address, new_owner)

    def set_admin(self, caller: HexAddress | str):
        """Make this proxy the vault admin."""
        self.access.require(caller, Role.owner)
        self.vault.set_admin(self.address, self.address)

    def set_treasury(self, caller: HexAddress | str, treasury: HexAddress | str):
        self.access.require(caller, Role.owner)
        self.vault.set_treasury(self.address, treasury)

    def set_performance_fee(self, caller: HexAddress | str, performance_fee: int):
        self.access.require(caller, Role.owner)
        self.vault.set_performance_fee(self.address, performance_fee)

    def set_call_fee(self, caller: HexAddress | str, call_fee: int):
        self.access.require(caller, Role.owner)
        self.vault.set_call_fee(self.address, call_fee)

    def set_withdraw_fee(self, caller: HexAddress | str, withdraw_fee: int):
        self.access.require(caller, Role.owner)
        self.vault.set_withdraw_fee(self.address, withdraw_fee)

    def set_withdraw_fee_period(self, caller: HexAddress | str, withdraw_fee_period: datetime.timedelta):
        self.access.require(caller, Role.owner)
        self.vault.set_withdraw_fee_period(self.address, withdraw_fee_period)

    def pause(self, caller: HexAddress | str):
        self.access.require(caller, Role.owner)
        self.vault.pause(self.address)

    def unpause(self, caller: HexAddress | str):
        self.access.require(caller, Role.owner)
        self.vault.unpause(self.address)

    def emergency_withdraw(self, caller: HexAddress | str) -> int:
        self.access.require(caller, Role.owner)
        return self.vault.emergency_withdraw(self.address)

    def recover_foreign_token(self, caller: HexAddress | str, token: Token) -> int:
        """Sweep a stuck token from the vault to the proxy owner.

        :return:
            Amount forwarded
        """
        self.access.require(caller, Role.owner)
        amount = self.vault.recover_foreign_token(self.address, token)
        token.transfer(self.address, self.owner, amount)
        return amount
