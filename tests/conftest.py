"""Shared vault fixtures.

- Time is a :py:class:`ManualClock`, so tests can time travel
- Accounts are fresh random addresses
- Three users start with 100 CAKE each and have approved the vault
"""

import pytest
from eth_account import Account
from eth_typing import HexAddress
from eth_utils import to_wei

from autovault.clock import ManualClock
from autovault.config import VaultConfig
from autovault.events import EventLog
from autovault.token import SimulatedToken, create_token
from autovault.vault import AutoCompoundingVault
from autovault.yield_source import SimulatedYieldSource


#: Max uint256 allowance
UNLIMITED = 2**256 - 1


def _new_account() -> HexAddress:
    return Account.create().address


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def owner() -> HexAddress:
    """Deploys the vault."""
    return _new_account()


@pytest.fixture()
def admin() -> HexAddress:
    return _new_account()


@pytest.fixture()
def treasury() -> HexAddress:
    return _new_account()


@pytest.fixture()
def user_1() -> HexAddress:
    return _new_account()


@pytest.fixture()
def user_2() -> HexAddress:
    return _new_account()


@pytest.fixture()
def user_3() -> HexAddress:
    return _new_account()


@pytest.fixture()
def harvester() -> HexAddress:
    """Third party calling harvest for the call fee."""
    return _new_account()


@pytest.fixture()
def cake(user_1, user_2, user_3) -> SimulatedToken:
    """Deposit asset, users funded with 100 CAKE each."""
    token = create_token("PancakeSwap Token", "Cake")
    for user in (user_1, user_2, user_3):
        token.mint(None, user, to_wei(100, "ether"))
    return token


@pytest.fixture()
def yield_source(cake, clock) -> SimulatedYieldSource:
    """Staking pool without emission; tests add rewards explicitly."""
    return SimulatedYieldSource(cake, clock)


@pytest.fixture()
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture()
def vault(cake, yield_source, owner, admin, treasury, clock, user_1, user_2, user_3, event_log) -> AutoCompoundingVault:
    """Vault with the default fees, users have approved it."""
    vault = AutoCompoundingVault(
        cake,
        yield_source,
        owner=owner,
        admin=admin,
        treasury=treasury,
        clock=clock,
        config=VaultConfig(),
    )
    for user in (user_1, user_2, user_3):
        cake.approve(user, vault.address, UNLIMITED)
    vault.subscribe(event_log)
    return vault


@pytest.fixture()
def zero_fees(vault, admin):
    """Set fees to zero."""
    vault.set_performance_fee(admin, 0)
    vault.set_call_fee(admin, 0)
    vault.set_withdraw_fee(admin, 0)
