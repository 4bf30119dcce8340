"""Auto-compounding vault.

- Depositors put in the deposit asset and get shares
- The vault stakes everything it holds into a :py:class:`~autovault.yield_source.YieldSource`
- Anyone can call :py:meth:`AutoCompoundingVault.harvest` to claim the yield and restake it.
  The caller earns the call fee, the treasury the performance fee,
  and the rest raises the share price for all depositors
- Depositors withdraw in asset units; early withdrawals pay the withdraw fee

Each public mutating method is one atomic operation. Operations are serialised by a per vault lock,
validate and compute first, call the collaborators next and commit local state last.
Events are dispatched to the listeners after the commit.

Example:

.. code-block:: python

    clock = ManualClock()
    cake = create_token("PancakeSwap Token", "Cake")
    source = SimulatedYieldSource(cake, clock, reward_per_second=10**18)
    vault = AutoCompoundingVault(cake, source, owner=owner, admin=admin, treasury=treasury, clock=clock)

    cake.approve(user, vault.address, 2**256 - 1)
    vault.deposit(user, 10 * 10**18)
    clock.advance(datetime.timedelta(hours=1))
    vault.harvest(harvester)
    vault.withdraw_all(user)
"""

import datetime
import functools
import logging
import threading
from decimal import Decimal

from eth_typing import HexAddress

from autovault.access import AccessControl, Role, require_non_zero_address
from autovault.address import derive_address, normalise_address
from autovault.clock import Clock, SystemClock
from autovault.config import VaultConfig
from autovault.errors import StateError, ValidationError
from autovault.events import (
    AdminChanged,
    Deposit,
    EmergencyWithdraw,
    FeeParameterChanged,
    Harvest,
    OwnershipTransferred,
    Pause,
    TokenRecovered,
    TreasuryChanged,
    Unpause,
    VaultEvent,
    VaultEventListener,
    Withdraw,
    dispatch,
)
from autovault.fee import (
    FeeSchedule,
    calculate_fee,
    calculate_harvest_fees,
    calculate_withdraw_fee,
    validate_call_fee,
    validate_performance_fee,
    validate_withdraw_fee,
    validate_withdraw_fee_period,
)
from autovault.ledger import ShareLedger, UserInfo
from autovault.pricing import (
    PRICE_PRECISION,
    calculate_shares_to_burn,
    calculate_shares_to_mint,
    convert_to_assets,
    get_managed_balance,
    get_price_per_full_share,
)
from autovault.token import Token
from autovault.yield_source import YieldSource


logger = logging.getLogger(__name__)


def serialised(func):
    """Run a vault method while holding the vault lock."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return func(self, *args, **kwargs)

    return wrapper


class AutoCompoundingVault:
    """Share based vault over a single asset and a single yield source."""

    def __init__(
        self,
        token: Token,
        yield_source: YieldSource,
        owner: HexAddress | str,
        admin: HexAddress | str,
        treasury: HexAddress | str,
        clock: Clock | None = None,
        config: VaultConfig | None = None,
        address: HexAddress | str | None = None,
    ):
        """Create a vault.

        :param token:
            The deposit asset. Yield source rewards must be paid in the same asset.

        :param yield_source:
            Where idle asset is staked

        :param owner:
            Can change admin and treasury, and hand over ownership

        :param admin:
            Can change fees, pause, emergency withdraw and recover stuck tokens

        :param treasury:
            Receives performance and withdraw fees

        :param clock:
            Block time source. Defaults to the wall clock.

        :param config:
            Initial fees. Defaults to 2% performance, 0.25% call, 0.1% withdraw fee for 72 hours.

        :param address:
            Custody address holding the idle asset. Derived from the token addresses if not given.
        """
        assert isinstance(token, Token), f"Got {type(token)}"
        assert isinstance(yield_source, YieldSource), f"Got {type(yield_source)}"

        if config is None:
            config = VaultConfig()

        self.token = token
        self.yield_source = yield_source
        self.clock = clock or SystemClock()
        self.address = normalise_address(address) if address else derive_address(f"autovault:{token.address}:{yield_source.receipt_token.address}")

        self.access = AccessControl(owner, admin)
        self._treasury = require_non_zero_address(treasury)

        fees = config.get_fee_schedule()
        self._performance_fee = fees.performance_fee
        self._call_fee = fees.call_fee
        self._withdraw_fee = fees.withdraw_fee
        self._withdraw_fee_period = fees.withdraw_fee_period

        self.ledger = ShareLedger()
        self._paused = False
        self._last_harvested_time: datetime.datetime | None = None

        #: Idle asset a failed harvest restake already took fees from
        self._fee_settled_idle = 0

        self.listeners: list[VaultEventListener] = []
        self._lock = threading.RLock()

        logger.info("Created vault %s for %s, fees %s", self.address, token.symbol, fees)

    def __repr__(self):
        return f"<AutoCompoundingVault {self.token.symbol} at {self.address} shares:{self.total_shares}>"

    #
    # Read surface
    #

    @property
    def owner(self) -> HexAddress:
        return self.access.owner

    @property
    def admin(self) -> HexAddress:
        return self.access.admin

    @property
    def treasury(self) -> HexAddress:
        return self._treasury

    @property
    def receipt_token(self) -> Token:
        """Token the yield source mints for the staked asset."""
        return self.yield_source.receipt_token

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def total_shares(self) -> int:
        return self.ledger.total_shares

    @property
    def last_harvested_time(self) -> datetime.datetime | None:
        """None until the first harvest."""
        return self._last_harvested_time

    @property
    def performance_fee(self) -> int:
        return self._performance_fee

    @property
    def call_fee(self) -> int:
        return self._call_fee

    @property
    def withdraw_fee(self) -> int:
        return self._withdraw_fee

    @property
    def withdraw_fee_period(self) -> datetime.timedelta:
        return self._withdraw_fee_period

    def get_fee_schedule(self) -> FeeSchedule:
        return FeeSchedule(
            performance_fee=self._performance_fee,
            call_fee=self._call_fee,
            withdraw_fee=self._withdraw_fee,
            withdraw_fee_period=self._withdraw_fee_period,
        )

    def available(self) -> int:
        """Idle asset held in the vault custody."""
        return self.token.balance_of(self.address)

    def balance_of(self) -> int:
        """Managed balance: idle asset plus what is staked in the yield source."""
        return get_managed_balance(self.available(), self.yield_source.staked_balance(self.address))

    def get_price_per_full_share(self) -> int:
        """Asset value of one share, scaled by 10**18."""
        return get_price_per_full_share(self.balance_of(), self.ledger.total_shares)

    def fetch_share_price(self) -> Decimal:
        """Human readable share price, 1.0 before any yield."""
        return Decimal(self.get_price_per_full_share()) / Decimal(PRICE_PRECISION)

    def user_info(self, user: HexAddress | str) -> UserInfo:
        """Copy of a depositor record. Unknown addresses get an empty record."""
        return self.ledger.get(user)

    def get_user_balance(self, user: HexAddress | str) -> int:
        """Asset value of all shares of a depositor, floor rounded."""
        return convert_to_assets(self.ledger.get_shares(user), self.ledger.total_shares, self.balance_of())

    def calculate_total_pending_rewards(self) -> int:
        """Idle asset plus unclaimed reward, the base the next harvest takes fees from."""
        return self._get_unsettled_idle(self.available()) + self.yield_source.pending_reward(self.address)

    def calculate_harvest_rewards(self) -> int:
        """Call fee the next harvest would pay to its caller."""
        return calculate_fee(self.calculate_total_pending_rewards(), self._call_fee)

    #
    # Listeners
    #

    def subscribe(self, listener: VaultEventListener):
        """Get called synchronously with every event after its state change is committed."""
        assert callable(listener), f"Not callable: {listener}"
        self.listeners.append(listener)

    def unsubscribe(self, listener: VaultEventListener):
        self.listeners.remove(listener)

    #
    # Depositor operations
    #

    @serialised
    def deposit(self, sender: HexAddress | str, amount: int) -> int:
        """Deposit asset and receive shares.

        - The sender must have approved the vault address for `amount`
        - All idle asset, not only this deposit, is staked into the yield source

        :return:
            Number of shares minted

        :raise StateError:
            Vault is paused, or the yield source refused the stake

        :raise ValidationError:
            Zero amount, deposit too small to buy a share, or the token refused the transfer
        """
        assert type(amount) == int, f"Amount must be raw int, got {type(amount)}: {amount}"
        sender = normalise_address(sender)
        self._require_not_paused()
        if amount <= 0:
            raise ValidationError("Nothing to deposit")

        # Price before the deposit lands in custody
        pool = self.balance_of()
        shares = calculate_shares_to_mint(amount, self.ledger.total_shares, pool)
        if shares == 0:
            raise ValidationError("Deposit too small to mint shares")

        self.token.transfer_from(self.address, sender, self.address, amount)
        try:
            self._earn()
        except Exception as e:
            logger.warning("Staking failed on deposit by %s, returning %d: %s", sender, amount, e)
            self.token.transfer(self.address, sender, amount)
            raise
        self._fee_settled_idle = 0

        now = self.clock.now()
        info = self.ledger.mint(sender, shares, now)
        self._snapshot_user_value(sender, info.shares)

        logger.info("Deposit %d by %s for %d shares, total shares %d", amount, sender, shares, self.ledger.total_shares)
        self._emit(Deposit(vault=self.address, timestamp=now, sender=sender, amount=amount, shares=shares, last_deposited_time=now))
        return shares

    @serialised
    def withdraw(self, sender: HexAddress | str, amount: int) -> int:
        """Withdraw `amount` of asset by burning the shares it is worth.

        - Shares are burned rounded up, so the vault never pays more than the shares are worth
        - The withdraw fee is deducted from `amount` if the sender deposited within the withdraw fee period

        :return:
            Asset amount the sender received

        :raise ValidationError:
            Zero amount or the sender's shares are worth less than `amount`
        """
        assert type(amount) == int, f"Amount must be raw int, got {type(amount)}: {amount}"
        sender = normalise_address(sender)
        if amount <= 0:
            raise ValidationError("Nothing to withdraw")

        total_shares = self.ledger.total_shares
        managed = self.balance_of()
        user_value = convert_to_assets(self.ledger.get_shares(sender), total_shares, managed)
        if amount > user_value:
            raise ValidationError("Withdraw amount exceeds balance")

        shares = calculate_shares_to_burn(amount, total_shares, managed)
        return self._withdraw(sender, amount, shares)

    @serialised
    def withdraw_all(self, sender: HexAddress | str) -> int:
        """Burn all shares of the sender and withdraw what they are worth.

        :return:
            Asset amount the sender received
        """
        sender = normalise_address(sender)
        shares = self.ledger.get_shares(sender)
        if shares == 0:
            raise ValidationError("Nothing to withdraw")

        amount = convert_to_assets(shares, self.ledger.total_shares, self.balance_of())
        return self._withdraw(sender, amount, shares)

    @serialised
    def harvest(self, sender: HexAddress | str) -> Harvest:
        """Claim the yield and reinvest it.

        - Fees are taken from the idle balance plus the claimed reward
        - Zero reward is a valid harvest

        :return:
            The emitted harvest event

        :raise StateError:
            Vault is paused, or the yield source refused the claim or the restake
        """
        sender = normalise_address(sender)
        self._require_not_paused()

        idle_before = self.available()
        self.yield_source.claim(self.address)
        claimed = self.available() - idle_before
        base = self._get_unsettled_idle(idle_before) + claimed

        # The claim cannot be undone, so fees are settled before the restake
        performance_fee, call_fee = calculate_harvest_fees(base, self._performance_fee, self._call_fee)
        if performance_fee > 0:
            self.token.transfer(self.address, self._treasury, performance_fee)
        if call_fee > 0:
            self.token.transfer(self.address, sender, call_fee)

        reinvest = self.available()
        try:
            if reinvest > 0:
                self.yield_source.deposit(self.address, reinvest)
        except Exception as e:
            self._fee_settled_idle = self.available()
            logger.warning("Restake failed on harvest by %s, %d stays idle with fees paid: %s", sender, self._fee_settled_idle, e)
            raise
        self._fee_settled_idle = 0

        now = self.clock.now()
        if self._last_harvested_time is None or now > self._last_harvested_time:
            self._last_harvested_time = now

        logger.info(
            "Harvest by %s: idle %d, claimed %d, performance fee %d, call fee %d, reinvested %d",
            sender,
            idle_before,
            claimed,
            performance_fee,
            call_fee,
            reinvest,
        )
        event = Harvest(vault=self.address, timestamp=now, sender=sender, performance_fee=performance_fee, call_fee=call_fee)
        self._emit(event)
        return event

    #
    # Admin operations
    #

    @serialised
    def emergency_withdraw(self, sender: HexAddress | str) -> int:
        """Pull everything out of the yield source into the vault custody.

        - Share balances do not change; depositors withdraw from the idle balance
        - Pending yield source rewards are forfeited

        :return:
            Principal pulled back
        """
        self.access.require(sender, Role.admin)
        amount = self.yield_source.emergency_withdraw(self.address)
        now = self.clock.now()
        logger.warning("Emergency withdraw by %s pulled %d back into the vault", sender, amount)
        self._emit(EmergencyWithdraw(vault=self.address, timestamp=now, sender=normalise_address(sender), amount=amount))
        return amount

    @serialised
    def recover_foreign_token(self, sender: HexAddress | str, token: Token) -> int:
        """Send a token that ended up in the vault by mistake to the admin.

        - The deposit asset and the receipt token can never be swept

        :return:
            Amount swept
        """
        self.access.require(sender, Role.admin)
        assert isinstance(token, Token), f"Got {type(token)}"
        if token.address == self.token.address:
            raise ValidationError("Token cannot be same as deposit token")
        if token.address == self.receipt_token.address:
            raise ValidationError("Token cannot be same as receipt token")

        amount = token.balance_of(self.address)
        token.transfer(self.address, self.admin, amount)

        logger.warning("Recovered %d %s from vault to %s", amount, token.symbol, self.admin)
        self._emit(TokenRecovered(vault=self.address, timestamp=self.clock.now(), token=token.address, receiver=self.admin, amount=amount))
        return amount

    @serialised
    def pause(self, sender: HexAddress | str):
        """Stop deposits and harvests. Withdrawals keep working."""
        self.access.require(sender, Role.admin)
        self._require_not_paused()
        self._paused = True
        logger.info("Vault %s paused by %s", self.address, sender)
        self._emit(Pause(vault=self.address, timestamp=self.clock.now()))

    @serialised
    def unpause(self, sender: HexAddress | str):
        self.access.require(sender, Role.admin)
        if not self._paused:
            raise StateError("Pausable: not paused")
        self._paused = False
        logger.info("Vault %s unpaused by %s", self.address, sender)
        self._emit(Unpause(vault=self.address, timestamp=self.clock.now()))

    @serialised
    def set_performance_fee(self, sender: HexAddress | str, performance_fee: int):
        self.access.require(sender, Role.admin)
        validate_performance_fee(performance_fee)
        previous, self._performance_fee = self._performance_fee, performance_fee
        self._fee_changed("performance_fee", previous, performance_fee)

    @serialised
    def set_call_fee(self, sender: HexAddress | str, call_fee: int):
        self.access.require(sender, Role.admin)
        validate_call_fee(call_fee)
        previous, self._call_fee = self._call_fee, call_fee
        self._fee_changed("call_fee", previous, call_fee)

    @serialised
    def set_withdraw_fee(self, sender: HexAddress | str, withdraw_fee: int):
        self.access.require(sender, Role.admin)
        validate_withdraw_fee(withdraw_fee)
        previous, self._withdraw_fee = self._withdraw_fee, withdraw_fee
        self._fee_changed("withdraw_fee", previous, withdraw_fee)

    @serialised
    def set_withdraw_fee_period(self, sender: HexAddress | str, withdraw_fee_period: datetime.timedelta):
        self.access.require(sender, Role.admin)
        validate_withdraw_fee_period(withdraw_fee_period)
        previous, self._withdraw_fee_period = self._withdraw_fee_period, withdraw_fee_period
        self._fee_changed("withdraw_fee_period", previous, withdraw_fee_period)

    #
    # Owner operations
    #

    @serialised
    def set_admin(self, sender: HexAddress | str, admin: HexAddress | str):
        self.access.require(sender, Role.owner)
        previous = self.access.admin
        new_admin = self.access.set_admin(admin)
        logger.info("Vault %s admin %s -> %s", self.address, previous, new_admin)
        self._emit(AdminChanged(vault=self.address, timestamp=self.clock.now(), previous_admin=previous, new_admin=new_admin))

    @serialised
    def set_treasury(self, sender: HexAddress | str, treasury: HexAddress | str):
        self.access.require(sender, Role.owner)
        previous = self._treasury
        self._treasury = require_non_zero_address(treasury)
        logger.info("Vault %s treasury %s -> %s", self.address, previous, self._treasury)
        self._emit(TreasuryChanged(vault=self.address, timestamp=self.clock.now(), previous_treasury=previous, new_treasury=self._treasury))

    @serialised
    def transfer_ownership(self, sender: HexAddress | str, new_owner: HexAddress | str):
        self.access.require(sender, Role.owner)
        previous = self.access.owner
        owner = self.access.transfer_ownership(new_owner)
        logger.info("Vault %s ownership %s -> %s", self.address, previous, owner)
        self._emit(OwnershipTransferred(vault=self.address, timestamp=self.clock.now(), previous_owner=previous, new_owner=owner))

    #
    # Internals
    #

    def check_invariants(self):
        """Assert the vault books add up.

        - Share supply equals the sum of share balances
        - Outstanding shares are never worth more than the managed balance
        """
        self.ledger.check_consistency()
        managed = self.balance_of()
        total_shares = self.ledger.total_shares
        owed = sum(convert_to_assets(info.shares, total_shares, managed) for _, info in self.ledger.iterate_users())
        assert owed <= managed, f"Depositors are owed {owed}, vault manages {managed}"

    def _withdraw(self, sender: HexAddress, amount: int, shares: int) -> int:
        info = self.ledger.get(sender)
        assert 0 < shares <= info.shares, f"Burning {shares} shares, user has {info.shares}"

        idle = self.available()
        if idle < amount:
            self.yield_source.withdraw(self.address, amount - idle)

        now = self.clock.now()
        fee = calculate_withdraw_fee(amount, self._withdraw_fee, now, info.last_deposited_time, self._withdraw_fee_period)
        payout = amount - fee

        # Payout first, the unstake above leaves the managed balance unchanged
        self.token.transfer(self.address, sender, payout)
        if fee > 0:
            try:
                self.token.transfer(self.address, self._treasury, fee)
            except Exception as e:
                logger.warning("Withdraw fee transfer failed for %s, pulling back payout %d: %s", sender, payout, e)
                self.token.transfer_from(self.address, sender, self.address, payout)
                raise
        self._fee_settled_idle = min(self._fee_settled_idle, self.available())

        info = self.ledger.burn(sender, shares, now)
        self._snapshot_user_value(sender, info.shares)

        logger.info("Withdraw %d by %s for %d shares, fee %d, total shares %d", amount, sender, shares, fee, self.ledger.total_shares)
        self._emit(Withdraw(vault=self.address, timestamp=now, sender=sender, amount=payout, shares=shares, fee=fee))
        return payout

    def _get_unsettled_idle(self, idle: int) -> int:
        """Part of the idle balance the next harvest still takes fees from."""
        return idle - min(self._fee_settled_idle, idle)

    def _earn(self):
        """Stake all idle asset."""
        idle = self.available()
        if idle > 0:
            self.yield_source.deposit(self.address, idle)

    def _snapshot_user_value(self, user: HexAddress, shares: int):
        if shares > 0:
            value = convert_to_assets(shares, self.ledger.total_shares, self.balance_of())
        else:
            value = 0
        self.ledger.set_asset_at_last_user_action(user, value)

    def _fee_changed(self, parameter: str, previous, new_value):
        logger.info("Vault %s %s %s -> %s", self.address, parameter, previous, new_value)
        self._emit(FeeParameterChanged(vault=self.address, timestamp=self.clock.now(), parameter=parameter, previous_value=previous, new_value=new_value))

    def _require_not_paused(self):
        if self._paused:
            raise StateError("Pausable: paused")

    def _emit(self, *events: VaultEvent):
        dispatch(self.listeners, events)
