"""Vault owner proxy."""

import datetime

import pytest
from eth_utils import to_wei

from autovault.errors import AuthorizationError, StateError
from autovault.token import create_token
from autovault.vault_owner import VaultOwner


@pytest.fixture()
def vault_owner(vault, owner) -> VaultOwner:
    """Proxy that owns and administers the vault."""
    proxy = VaultOwner(vault, owner)
    vault.transfer_ownership(owner, proxy.address)
    proxy.set_admin(owner)
    return proxy


def test_vault_owner_setup(vault, vault_owner, owner, admin):
    assert vault.owner == vault_owner.address
    assert vault.admin == vault_owner.address
    assert vault_owner.owner == owner

    # The old admin has no powers left
    with pytest.raises(AuthorizationError, match="admin: wut"):
        vault.pause(admin)


def test_vault_owner_administers_vault(vault, vault_owner, owner, harvester, user_1, user_2):
    """Owner runs every admin function through the proxy."""
    vault_owner.set_performance_fee(owner, 99)
    vault_owner.set_call_fee(owner, 99)
    vault_owner.set_withdraw_fee(owner, 99)
    vault_owner.set_withdraw_fee_period(owner, datetime.timedelta(hours=9))
    vault_owner.set_treasury(owner, user_2)

    assert vault.performance_fee == 99
    assert vault.call_fee == 99
    assert vault.withdraw_fee == 99
    assert vault.withdraw_fee_period == datetime.timedelta(hours=9)
    assert vault.treasury == user_2

    vault_owner.pause(owner)
    with pytest.raises(StateError, match="Pausable: paused"):
        vault.deposit(user_1, to_wei(10, "ether"))
    with pytest.raises(StateError, match="Pausable: paused"):
        vault.harvest(harvester)
    vault_owner.unpause(owner)

    vault.deposit(user_1, to_wei(10, "ether"))
    assert vault_owner.emergency_withdraw(owner) == to_wei(10, "ether")
    assert vault.available() == to_wei(10, "ether")


def test_vault_owner_recover_foreign_token(vault, vault_owner, owner, user_1):
    """Swept tokens end up with the proxy owner."""
    mock_cake = create_token("Mock Cake", "MCAKE")
    mock_cake.mint(None, vault.address, to_wei(99, "ether"))

    assert vault_owner.recover_foreign_token(owner, mock_cake) == to_wei(99, "ether")
    assert mock_cake.balance_of(owner) == to_wei(99, "ether")
    assert mock_cake.balance_of(vault_owner.address) == 0


def test_vault_owner_only_owner(vault_owner, user_1):
    """Everyone but the proxy owner is rejected."""
    calls = [
        lambda: vault_owner.set_admin(user_1),
        lambda: vault_owner.set_treasury(user_1, user_1),
        lambda: vault_owner.set_performance_fee(user_1, 0),
        lambda: vault_owner.set_call_fee(user_1, 0),
        lambda: vault_owner.set_withdraw_fee(user_1, 0),
        lambda: vault_owner.set_withdraw_fee_period(user_1, datetime.timedelta(0)),
        lambda: vault_owner.pause(user_1),
        lambda: vault_owner.unpause(user_1),
        lambda: vault_owner.emergency_withdraw(user_1),
        lambda: vault_owner.transfer_ownership(user_1, user_1),
    ]
    for call in calls:
        with pytest.raises(AuthorizationError, match="Ownable: caller is not the owner"):
            call()


def test_vault_owner_transfer_ownership(vault_owner, owner, user_1):
    vault_owner.transfer_ownership(owner, user_1)
    assert vault_owner.owner == user_1

    with pytest.raises(AuthorizationError):
        vault_owner.pause(owner)

    vault_owner.pause(user_1)
