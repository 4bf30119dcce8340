"""Vault fee policy.

Three fees, each in basis points:

- Performance fee: taken on harvest from idle balance plus the claimed reward, paid to the treasury
- Call fee: taken on harvest from the same base, paid to whoever called harvest
- Withdraw fee: taken from the withdrawn amount if the depositor withdraws
  within the withdraw fee period of their last deposit, paid to the treasury

Performance and call fees are internalised in the share price. Withdraw fee is externalised.
"""

import datetime
from dataclasses import dataclass

from autovault.errors import ValidationError


#: Basis point denominator
FEE_DENOMINATOR = 10_000

#: 5%
MAX_PERFORMANCE_FEE = 500

#: 1%
MAX_CALL_FEE = 100

#: 1%
MAX_WITHDRAW_FEE = 100

MAX_WITHDRAW_FEE_PERIOD = datetime.timedelta(hours=72)

#: 2%
DEFAULT_PERFORMANCE_FEE = 200

#: 0.25%
DEFAULT_CALL_FEE = 25

#: 0.1%
DEFAULT_WITHDRAW_FEE = 10

DEFAULT_WITHDRAW_FEE_PERIOD = datetime.timedelta(hours=72)


@dataclass(slots=True, frozen=True)
class FeeSchedule:
    """Fee parameters of a vault."""

    #: Basis points
    performance_fee: int = DEFAULT_PERFORMANCE_FEE

    #: Basis points
    call_fee: int = DEFAULT_CALL_FEE

    #: Basis points
    withdraw_fee: int = DEFAULT_WITHDRAW_FEE

    #: How long after a deposit the withdraw fee applies
    withdraw_fee_period: datetime.timedelta = DEFAULT_WITHDRAW_FEE_PERIOD

    def __post_init__(self):
        validate_performance_fee(self.performance_fee)
        validate_call_fee(self.call_fee)
        validate_withdraw_fee(self.withdraw_fee)
        validate_withdraw_fee_period(self.withdraw_fee_period)

    @staticmethod
    def zero() -> "FeeSchedule":
        """No fees, the default withdraw fee period."""
        return FeeSchedule(performance_fee=0, call_fee=0, withdraw_fee=0)


def _validate_bps(value: int, ceiling: int, name: str, ceiling_name: str):
    assert type(value) == int, f"{name} must be int basis points, got {type(value)}: {value}"
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")
    if value > ceiling:
        raise ValidationError(f"{name} cannot be more than {ceiling_name}")


def validate_performance_fee(value: int):
    _validate_bps(value, MAX_PERFORMANCE_FEE, "performanceFee", "MAX_PERFORMANCE_FEE")


def validate_call_fee(value: int):
    _validate_bps(value, MAX_CALL_FEE, "callFee", "MAX_CALL_FEE")


def validate_withdraw_fee(value: int):
    _validate_bps(value, MAX_WITHDRAW_FEE, "withdrawFee", "MAX_WITHDRAW_FEE")


def validate_withdraw_fee_period(value: datetime.timedelta):
    assert isinstance(value, datetime.timedelta), f"withdrawFeePeriod must be timedelta, got {type(value)}: {value}"
    if value < datetime.timedelta(0):
        raise ValidationError("withdrawFeePeriod cannot be negative")
    if value > MAX_WITHDRAW_FEE_PERIOD:
        raise ValidationError("withdrawFeePeriod cannot be more than MAX_WITHDRAW_FEE_PERIOD")


def calculate_fee(amount: int, fee_bps: int) -> int:
    """Basis point fee of an amount, floor rounded."""
    return amount * fee_bps // FEE_DENOMINATOR


def calculate_harvest_fees(base: int, performance_fee: int, call_fee: int) -> tuple[int, int]:
    """Fees taken on harvest.

    Both fees are computed independently from the same base,
    not one after another.

    :param base:
        Idle balance before the claim plus the claimed reward

    :return:
        Tuple (performance fee, call fee) in raw asset units
    """
    return calculate_fee(base, performance_fee), calculate_fee(base, call_fee)


def is_withdraw_fee_window(
    now: datetime.datetime,
    last_deposited_time: datetime.datetime | None,
    withdraw_fee_period: datetime.timedelta,
) -> bool:
    """Is the depositor still inside the withdraw fee window."""
    if last_deposited_time is None:
        return False
    return now - last_deposited_time < withdraw_fee_period


def calculate_withdraw_fee(
    amount: int,
    withdraw_fee: int,
    now: datetime.datetime,
    last_deposited_time: datetime.datetime | None,
    withdraw_fee_period: datetime.timedelta,
) -> int:
    """Fee on a withdrawal.

    - Full fee inside the window, exactly zero after it, nothing prorated
    """
    if is_withdraw_fee_window(now, last_deposited_time, withdraw_fee_period):
        return calculate_fee(amount, withdraw_fee)
    return 0
