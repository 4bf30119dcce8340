"""Vault accounting properties.

- Pro rata ownership of the yield
- Share price never goes down
- Failed yield source calls leave the vault untouched
- A collaborator failing halfway through an operation does not move the share price
- Concurrent callers are serialised
"""

import datetime
import random
from concurrent.futures import ThreadPoolExecutor

import pytest
from eth_utils import to_wei

from autovault.address import normalise_address
from autovault.errors import StateError, ValidationError
from autovault.fee import MAX_CALL_FEE, MAX_PERFORMANCE_FEE, MAX_WITHDRAW_FEE
from autovault.token import SimulatedToken, TokenTransferFailed
from autovault.yield_source import SimulatedYieldSource, YieldSourceError


class BlockingToken(SimulatedToken):
    """Token refusing transfers to blocked receivers, like a blacklisting stablecoin."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.blocked = set()

    def _move(self, sender, receiver, amount):
        if normalise_address(receiver) in self.blocked:
            raise TokenTransferFailed("Receiver is blocked")
        super()._move(sender, receiver, amount)


class RefusingYieldSource(SimulatedYieldSource):
    """Staking pool that can be told to refuse new stakes while claims keep working."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        #: Raised from deposit when set
        self.deposit_error: Exception | None = None

    def deposit(self, staker, amount):
        if self.deposit_error is not None:
            raise self.deposit_error
        super().deposit(staker, amount)


@pytest.fixture()
def cake(user_1, user_2, user_3) -> BlockingToken:
    token = BlockingToken("PancakeSwap Token", "Cake")
    for user in (user_1, user_2, user_3):
        token.mint(None, user, to_wei(100, "ether"))
    return token


@pytest.fixture()
def yield_source(cake, clock) -> RefusingYieldSource:
    return RefusingYieldSource(cake, clock)


def test_yield_is_shared_pro_rata(vault, zero_fees, yield_source, harvester, user_1, user_2):
    """Each depositor gets yield in proportion to their shares."""
    vault.deposit(user_1, to_wei(10, "ether"))
    vault.deposit(user_2, to_wei(30, "ether"))

    yield_source.add_reward(to_wei(8, "ether"))
    vault.harvest(harvester)

    assert vault.get_price_per_full_share() == to_wei("1.2", "ether")
    assert vault.get_user_balance(user_1) == to_wei(12, "ether")
    assert vault.get_user_balance(user_2) == to_wei(36, "ether")

    # Late depositor does not get a cut of the past yield
    shares = vault.deposit(user_1, to_wei(12, "ether"))
    assert shares == to_wei(10, "ether")
    assert vault.get_price_per_full_share() == to_wei("1.2", "ether")


def test_zero_fee_round_trip(vault, zero_fees, cake, user_1):
    """Without fees or yield a depositor gets back exactly what they put in."""
    vault.deposit(user_1, to_wei(10, "ether"))
    assert vault.withdraw_all(user_1) == to_wei(10, "ether")
    assert cake.balance_of(user_1) == to_wei(100, "ether")
    assert vault.get_price_per_full_share() == to_wei(1, "ether")


def test_share_price_never_decreases(vault, yield_source, clock, cake, harvester, user_1, user_2, user_3):
    """Random deposits, withdrawals, rewards and harvests with the default fees.

    user_3 keeps a position open the whole time, so the share supply never drops to zero.
    """
    rng = random.Random(1)
    users = [user_1, user_2]

    vault.deposit(user_3, to_wei(10, "ether"))
    price = vault.get_price_per_full_share()

    for _ in range(300):
        action = rng.choice(["deposit", "withdraw", "withdraw_all", "reward", "harvest"])
        user = rng.choice(users)

        if action == "deposit":
            amount = rng.randint(10**12, 5 * 10**18)
            if cake.balance_of(user) >= amount:
                vault.deposit(user, amount)
        elif action == "withdraw":
            value = vault.get_user_balance(user)
            if value > 0:
                vault.withdraw(user, rng.randint(1, value))
        elif action == "withdraw_all":
            if vault.user_info(user).shares > 0:
                vault.withdraw_all(user)
        elif action == "reward":
            yield_source.add_reward(rng.randint(0, 10**18))
        else:
            vault.harvest(harvester)

        clock.advance(datetime.timedelta(minutes=rng.randint(0, 600)))

        new_price = vault.get_price_per_full_share()
        assert new_price >= price, f"Share price dropped after {action}: {price} -> {new_price}"
        price = new_price

        vault.check_invariants()

    assert price > to_wei(1, "ether")


@pytest.mark.parametrize(
    "setter, ceiling",
    [
        ("set_performance_fee", MAX_PERFORMANCE_FEE),
        ("set_call_fee", MAX_CALL_FEE),
        ("set_withdraw_fee", MAX_WITHDRAW_FEE),
    ],
)
def test_fee_bounds(vault, admin, setter, ceiling):
    """Fees can be set up to the ceiling, not above, and not below zero."""
    func = getattr(vault, setter)

    func(admin, ceiling)
    func(admin, 0)

    with pytest.raises(ValidationError):
        func(admin, ceiling + 1)

    with pytest.raises(ValidationError):
        func(admin, -1)


def test_deposit_refunded_when_staking_fails(vault, yield_source, cake, user_1, user_2):
    """A halted yield source makes the deposit fail without moving funds."""
    vault.deposit(user_1, to_wei(10, "ether"))
    yield_source.halt()

    with pytest.raises(YieldSourceError):
        vault.deposit(user_2, to_wei(10, "ether"))

    assert cake.balance_of(user_2) == to_wei(100, "ether")
    assert vault.user_info(user_2).shares == 0
    assert vault.total_shares == to_wei(10, "ether")
    assert vault.available() == 0
    vault.check_invariants()


def test_harvest_fails_when_yield_source_halted(vault, yield_source, cake, treasury, harvester, user_1):
    vault.deposit(user_1, to_wei(10, "ether"))
    yield_source.add_reward(to_wei(1, "ether"))
    yield_source.halt()

    with pytest.raises(StateError):
        vault.harvest(harvester)

    assert vault.last_harvested_time is None
    assert cake.balance_of(treasury) == 0
    assert cake.balance_of(harvester) == 0
    assert vault.balance_of() == to_wei(10, "ether")


def test_withdraw_needing_unstake_fails_when_halted(vault, yield_source, cake, user_1):
    vault.deposit(user_1, to_wei(10, "ether"))
    yield_source.halt()

    with pytest.raises(YieldSourceError):
        vault.withdraw(user_1, to_wei(5, "ether"))

    assert vault.user_info(user_1).shares == to_wei(10, "ether")
    assert cake.balance_of(user_1) == to_wei(90, "ether")


def test_exit_after_emergency_withdraw_from_halted_source(vault, zero_fees, yield_source, cake, admin, user_1, user_2):
    """Emergency withdraw works against a halted yield source, then users exit from idle."""
    vault.deposit(user_1, to_wei(10, "ether"))
    vault.deposit(user_2, to_wei(20, "ether"))
    yield_source.halt()

    assert vault.emergency_withdraw(admin) == to_wei(30, "ether")

    assert vault.withdraw(user_1, to_wei(4, "ether")) == to_wei(4, "ether")
    vault.withdraw_all(user_1)
    vault.withdraw_all(user_2)

    assert cake.balance_of(user_1) == to_wei(100, "ether")
    assert cake.balance_of(user_2) == to_wei(100, "ether")
    assert vault.total_shares == 0
    assert vault.balance_of() == 0


def test_concurrent_deposits(vault, zero_fees, user_1, user_2, user_3):
    """Deposits from many threads all land in the ledger."""
    users = [user_1, user_2, user_3] * 10

    with ThreadPoolExecutor(max_workers=6) as executor:
        list(executor.map(lambda u: vault.deposit(u, to_wei(1, "ether")), users))

    assert vault.total_shares == to_wei(30, "ether")
    assert vault.balance_of() == to_wei(30, "ether")
    for user in (user_1, user_2, user_3):
        assert vault.user_info(user).shares == to_wei(10, "ether")
    vault.check_invariants()


def test_deposit_refunded_on_unexpected_staking_error(vault, yield_source, cake, user_1, user_2):
    """Errors that are not vault errors still give the deposit back."""
    vault.deposit(user_1, to_wei(10, "ether"))
    yield_source.deposit_error = RuntimeError("Pool exploded")

    with pytest.raises(RuntimeError):
        vault.deposit(user_2, to_wei(10, "ether"))

    assert cake.balance_of(user_2) == to_wei(100, "ether")
    assert vault.user_info(user_2).shares == 0
    assert vault.available() == 0
    vault.check_invariants()


def test_harvest_restake_refused_after_claim(vault, yield_source, cake, treasury, harvester, user_1):
    """The claim cannot be undone, so fees are taken once and the price does not fall later."""
    vault.deposit(user_1, to_wei(10, "ether"))
    yield_source.add_reward(to_wei(1, "ether"))
    yield_source.deposit_error = YieldSourceError("deposit: refused")

    with pytest.raises(YieldSourceError):
        vault.harvest(harvester)

    # 2% performance fee and 0.25% call fee out of the 1 CAKE reward
    assert cake.balance_of(treasury) == to_wei("0.02", "ether")
    assert cake.balance_of(harvester) == to_wei("0.0025", "ether")
    assert vault.available() == to_wei("0.9775", "ether")
    assert yield_source.pending_reward(vault.address) == 0
    assert vault.last_harvested_time is None
    assert vault.calculate_total_pending_rewards() == 0
    price = vault.get_price_per_full_share()
    assert price == to_wei("1.09775", "ether")
    vault.check_invariants()

    # Already charged reward is restaked without paying fees twice
    yield_source.deposit_error = None
    event = vault.harvest(harvester)
    assert event.performance_fee == 0
    assert event.call_fee == 0
    assert vault.available() == 0
    assert vault.get_price_per_full_share() == price
    assert cake.balance_of(treasury) == to_wei("0.02", "ether")

    # New reward is charged as usual
    yield_source.add_reward(to_wei(1, "ether"))
    event = vault.harvest(harvester)
    assert event.performance_fee > 0
    assert vault.get_price_per_full_share() > price


def test_withdraw_payout_refused_after_unstake(vault, yield_source, cake, treasury, user_1):
    """The unstake alone does not change what depositors own."""
    vault.deposit(user_1, to_wei(10, "ether"))
    cake.blocked.add(user_1)

    with pytest.raises(TokenTransferFailed):
        vault.withdraw(user_1, to_wei(5, "ether"))

    assert vault.user_info(user_1).shares == to_wei(10, "ether")
    assert cake.balance_of(user_1) == to_wei(90, "ether")
    assert cake.balance_of(treasury) == 0
    assert vault.available() == to_wei(5, "ether")
    assert vault.balance_of() == to_wei(10, "ether")
    assert vault.get_price_per_full_share() == to_wei(1, "ether")
    vault.check_invariants()

    # Served from the idle balance once the receiver is unblocked
    cake.blocked.clear()
    assert vault.withdraw(user_1, to_wei(5, "ether")) == to_wei("4.995", "ether")
    assert cake.balance_of(treasury) == to_wei("0.005", "ether")
    assert yield_source.staked_balance(vault.address) == to_wei(5, "ether")


def test_withdraw_fee_refused_pulls_back_payout(vault, cake, treasury, user_1):
    """Treasury refusing the fee undoes the payout and fails the withdraw."""
    vault.deposit(user_1, to_wei(10, "ether"))
    cake.blocked.add(treasury)

    with pytest.raises(TokenTransferFailed):
        vault.withdraw(user_1, to_wei(5, "ether"))

    assert vault.user_info(user_1).shares == to_wei(10, "ether")
    assert cake.balance_of(user_1) == to_wei(90, "ether")
    assert cake.balance_of(treasury) == 0
    assert vault.balance_of() == to_wei(10, "ether")
    vault.check_invariants()
