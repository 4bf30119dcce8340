"""Underlying yield source collaborator.

The vault stakes its idle deposit asset here and claims the rewards back.

- :py:class:`YieldSource` is the interface the vault consumes
- :py:class:`SimulatedYieldSource` is a MasterChef style single staking pool
  where staked asset earns more of the same asset
"""

import datetime
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from eth_typing import HexAddress

from autovault.address import derive_address, normalise_address
from autovault.clock import Clock
from autovault.errors import StateError
from autovault.token import SimulatedToken, Token


logger = logging.getLogger(__name__)


#: Fixed point precision of the accumulated reward per share counter
ACC_REWARD_PRECISION = 10**12


class YieldSourceError(StateError):
    """Yield source rejected a request."""


class YieldSource(ABC):
    """External protocol that pays yield on a staked asset.

    - Each method acts on behalf of `staker`, who is the vault custody address in practice
    - Requests either complete in full or raise :py:class:`YieldSourceError`
    """

    #: Token minted to stakers as a proof of deposit
    receipt_token: Token

    @abstractmethod
    def deposit(self, staker: HexAddress, amount: int):
        """Stake `amount` of the asset held by `staker`."""

    @abstractmethod
    def withdraw(self, staker: HexAddress, amount: int):
        """Unstake `amount` back to `staker`."""

    @abstractmethod
    def claim(self, staker: HexAddress) -> int:
        """Pay all pending reward to `staker`.

        :return:
            Raw amount of reward paid
        """

    @abstractmethod
    def emergency_withdraw(self, staker: HexAddress) -> int:
        """Return the whole staked principal, forfeiting pending rewards.

        - Must work even when the yield source is otherwise halted

        :return:
            Raw amount returned
        """

    @abstractmethod
    def pending_reward(self, staker: HexAddress) -> int:
        """Reward `staker` would get by claiming now."""

    @abstractmethod
    def staked_balance(self, staker: HexAddress) -> int:
        """Principal `staker` has staked."""


@dataclass(slots=True)
class StakerInfo:
    """Per staker bookkeeping, like MasterChef `UserInfo`."""

    #: Staked principal
    amount: int = 0

    #: Reward already accounted for at the current accumulator value
    reward_debt: int = 0


class SimulatedYieldSource(YieldSource):
    """In-memory staking pool.

    - Rewards are the staked asset itself, minted by the pool
    - `reward_per_second` emission is split pro rata between stakers through
      an accumulated reward per share counter
    - :py:meth:`add_reward` injects a one-off reward for tests
    - With `auto_claim` every deposit and withdraw also pays the pending reward,
      the way MasterChef `enterStaking` and `leaveStaking` do
    - :py:meth:`halt` makes every request except the emergency exit fail
    """

    def __init__(
        self,
        token: SimulatedToken,
        clock: Clock,
        reward_per_second: int = 0,
        reward_start: datetime.datetime | None = None,
        auto_claim: bool = False,
        receipt_token: SimulatedToken | None = None,
        address: HexAddress | str | None = None,
    ):
        assert isinstance(token, SimulatedToken), f"Got {type(token)}"
        assert type(reward_per_second) == int and reward_per_second >= 0, f"Bad emission: {reward_per_second}"
        self.token = token
        self.clock = clock
        self.address = normalise_address(address) if address else derive_address(f"yield-source:{token.address}")
        self.reward_per_second = reward_per_second
        self.auto_claim = auto_claim
        self.halted = False

        if receipt_token is None:
            receipt_token = SimulatedToken(f"{token.symbol} Receipt", f"r{token.symbol}", token.decimals, minter=self.address)
        self.receipt_token = receipt_token

        self.stakers: dict[HexAddress, StakerInfo] = {}
        self.total_staked = 0
        self.acc_reward_per_share = 0

        start = reward_start or clock.now()
        self.last_reward_time = max(start, clock.now())

    def __repr__(self):
        return f"<SimulatedYieldSource {self.token.symbol} staked:{self.total_staked} halted:{self.halted}>"

    def halt(self):
        """Reject everything except emergency withdrawals."""
        logger.warning("Yield source %s halted", self.address)
        self.halted = True

    def resume(self):
        self.halted = False

    def set_reward_per_second(self, reward_per_second: int):
        self.update_pool()
        self.reward_per_second = reward_per_second

    def update_pool(self):
        """Accrue emission up to the current time."""
        now = self.clock.now()
        if now <= self.last_reward_time:
            return

        if self.total_staked == 0 or self.reward_per_second == 0:
            self.last_reward_time = now
            return

        seconds = int((now - self.last_reward_time).total_seconds())
        reward = seconds * self.reward_per_second
        self._distribute(reward)
        self.last_reward_time = now

    def add_reward(self, amount: int):
        """Distribute a one-off reward to the current stakers.

        :raise YieldSourceError:
            Nobody is staking
        """
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        self.update_pool()
        if self.total_staked == 0:
            raise YieldSourceError("add_reward: nobody is staking")
        self._distribute(amount)

    def deposit(self, staker: HexAddress, amount: int):
        self._require_running()
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        staker = normalise_address(staker)
        self.update_pool()
        info = self.stakers.setdefault(staker, StakerInfo())

        if self.auto_claim:
            self._pay_pending(staker, info)

        if amount > 0:
            self.token.transfer(staker, self.address, amount)
            self.receipt_token.mint(self.address, staker, amount)
            info.amount += amount
            self.total_staked += amount

        info.reward_debt = info.amount * self.acc_reward_per_share // ACC_REWARD_PRECISION
        logger.debug("Staked %d for %s, total staked %d", amount, staker, self.total_staked)

    def withdraw(self, staker: HexAddress, amount: int):
        self._require_running()
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        staker = normalise_address(staker)
        info = self.stakers.get(staker, StakerInfo())
        if info.amount < amount:
            raise YieldSourceError("withdraw: not good")

        self.update_pool()

        if self.auto_claim:
            self._pay_pending(staker, info)

        if amount > 0:
            self.receipt_token.burn(self.address, staker, amount)
            info.amount -= amount
            self.total_staked -= amount
            self.token.transfer(self.address, staker, amount)

        info.reward_debt = info.amount * self.acc_reward_per_share // ACC_REWARD_PRECISION
        self.stakers[staker] = info
        logger.debug("Unstaked %d for %s, total staked %d", amount, staker, self.total_staked)

    def claim(self, staker: HexAddress) -> int:
        self._require_running()
        staker = normalise_address(staker)
        self.update_pool()
        info = self.stakers.get(staker)
        if info is None:
            return 0
        return self._pay_pending(staker, info)

    def emergency_withdraw(self, staker: HexAddress) -> int:
        staker = normalise_address(staker)
        info = self.stakers.get(staker)
        if info is None or info.amount == 0:
            return 0

        amount = info.amount
        self.receipt_token.burn(self.address, staker, amount)
        self.total_staked -= amount
        info.amount = 0
        info.reward_debt = 0
        self.token.transfer(self.address, staker, amount)
        logger.warning("Emergency withdraw %d for %s, rewards forfeited", amount, staker)
        return amount

    def pending_reward(self, staker: HexAddress) -> int:
        info = self.stakers.get(normalise_address(staker))
        if info is None:
            return 0

        acc = self.acc_reward_per_share
        now = self.clock.now()
        if now > self.last_reward_time and self.total_staked > 0:
            seconds = int((now - self.last_reward_time).total_seconds())
            acc += seconds * self.reward_per_second * ACC_REWARD_PRECISION // self.total_staked

        return info.amount * acc // ACC_REWARD_PRECISION - info.reward_debt

    def staked_balance(self, staker: HexAddress) -> int:
        info = self.stakers.get(normalise_address(staker))
        return info.amount if info else 0

    def _distribute(self, reward: int):
        if reward == 0:
            return
        self.token.mint(self.address, self.address, reward)
        self.acc_reward_per_share += reward * ACC_REWARD_PRECISION // self.total_staked

    def _pay_pending(self, staker: HexAddress, info: StakerInfo) -> int:
        pending = info.amount * self.acc_reward_per_share // ACC_REWARD_PRECISION - info.reward_debt
        info.reward_debt = info.amount * self.acc_reward_per_share // ACC_REWARD_PRECISION
        if pending > 0:
            self.token.transfer(self.address, staker, pending)
        return pending

    def _require_running(self):
        if self.halted:
            raise YieldSourceError("Yield source is halted")
