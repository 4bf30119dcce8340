"""Vault events.

- Each successful state change emits one or more events
- Listeners are plain callables taking the event, called synchronously after the change is committed
- :py:class:`EventLog` keeps them around, like transaction receipt logs
"""

import datetime
import logging
from dataclasses import dataclass, fields
from typing import Callable, Iterable, TypeAlias, TypeVar

from eth_typing import HexAddress


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class VaultEvent:
    """Base class for all events."""

    #: Vault custody address
    vault: HexAddress

    #: Block time of the state change
    timestamp: datetime.datetime

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def get_args(self) -> dict:
        """Event payload without the common fields."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in ("vault", "timestamp")}


@dataclass(slots=True, frozen=True)
class Deposit(VaultEvent):
    sender: HexAddress
    amount: int
    shares: int
    last_deposited_time: datetime.datetime


@dataclass(slots=True, frozen=True)
class Withdraw(VaultEvent):
    sender: HexAddress

    #: Asset amount paid to the sender, withdraw fee deducted
    amount: int

    shares: int

    #: Withdraw fee paid to the treasury
    fee: int


@dataclass(slots=True, frozen=True)
class Harvest(VaultEvent):
    sender: HexAddress
    performance_fee: int
    call_fee: int


@dataclass(slots=True, frozen=True)
class Pause(VaultEvent):
    pass


@dataclass(slots=True, frozen=True)
class Unpause(VaultEvent):
    pass


@dataclass(slots=True, frozen=True)
class EmergencyWithdraw(VaultEvent):
    sender: HexAddress

    #: Principal pulled back from the yield source
    amount: int


@dataclass(slots=True, frozen=True)
class TokenRecovered(VaultEvent):
    token: HexAddress
    receiver: HexAddress
    amount: int


@dataclass(slots=True, frozen=True)
class AdminChanged(VaultEvent):
    previous_admin: HexAddress
    new_admin: HexAddress


@dataclass(slots=True, frozen=True)
class TreasuryChanged(VaultEvent):
    previous_treasury: HexAddress
    new_treasury: HexAddress


@dataclass(slots=True, frozen=True)
class OwnershipTransferred(VaultEvent):
    previous_owner: HexAddress
    new_owner: HexAddress


@dataclass(slots=True, frozen=True)
class FeeParameterChanged(VaultEvent):
    #: performance_fee, call_fee, withdraw_fee or withdraw_fee_period
    parameter: str

    previous_value: int | datetime.timedelta
    new_value: int | datetime.timedelta


#: Anything that wants to hear about vault events
VaultEventListener: TypeAlias = Callable[[VaultEvent], None]

EventType = TypeVar("EventType", bound=VaultEvent)


class EventLog:
    """Record events in emission order.

    Example:

    .. code-block:: python

        log = EventLog()
        vault.subscribe(log)
        vault.harvest(harvester)
        harvest = log.get_last(Harvest)
    """

    def __init__(self):
        self.events: list[VaultEvent] = []

    def __call__(self, event: VaultEvent):
        self.events.append(event)

    def __len__(self):
        return len(self.events)

    def filter(self, event_type: type[EventType]) -> list[EventType]:
        return [e for e in self.events if isinstance(e, event_type)]

    def get_last(self, event_type: type[EventType]) -> EventType | None:
        matches = self.filter(event_type)
        return matches[-1] if matches else None

    def clear(self):
        self.events.clear()


def log_event(event: VaultEvent):
    """Listener writing events to the Python logging."""
    logger.info("%s %s", event.name, event.get_args())


def dispatch(listeners: Iterable[VaultEventListener], events: Iterable[VaultEvent]):
    """Deliver events to all listeners, in order.

    - A failing listener is logged and skipped, the state change it was told about stands
    """
    for event in events:
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %s failed on %s event", listener, event.name)
