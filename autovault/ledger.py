"""Share ledger.

- Depositor address -> :py:class:`UserInfo`
- Keeps `total_shares` equal to the sum of all share balances
"""

import dataclasses
import datetime
from dataclasses import dataclass
from typing import Iterable

from eth_typing import HexAddress

from autovault.address import normalise_address


@dataclass(slots=True)
class UserInfo:
    """Depositor record.

    Created on the first deposit and never removed.
    A depositor who has withdrawn everything keeps a record with zero shares.
    """

    #: Number of shares the depositor owns
    shares: int = 0

    #: When the depositor last deposited.
    #:
    #: Starts the withdraw fee window.
    last_deposited_time: datetime.datetime | None = None

    #: Asset value of the depositor's shares right after their last deposit or withdraw.
    #:
    #: Informational, not used in pricing.
    asset_at_last_user_action: int = 0

    #: When the depositor last deposited or withdrew
    last_user_action_time: datetime.datetime | None = None


class ShareLedger:
    """Share balances of all depositors."""

    def __init__(self):
        self.users: dict[HexAddress, UserInfo] = {}
        self.total_shares = 0

    def __len__(self):
        return len(self.users)

    def get(self, user: HexAddress | str) -> UserInfo:
        """Get a copy of a depositor record.

        Unknown addresses get an empty record.
        """
        info = self.users.get(normalise_address(user))
        if info is None:
            return UserInfo()
        return dataclasses.replace(info)

    def get_shares(self, user: HexAddress | str) -> int:
        info = self.users.get(normalise_address(user))
        return info.shares if info else 0

    def iterate_users(self) -> Iterable[tuple[HexAddress, UserInfo]]:
        for address, info in self.users.items():
            yield address, dataclasses.replace(info)

    def mint(self, user: HexAddress | str, shares: int, now: datetime.datetime) -> UserInfo:
        """Add shares to a depositor and stamp the deposit time."""
        assert type(shares) == int and shares > 0, f"Bad share amount: {shares}"
        info = self.users.setdefault(normalise_address(user), UserInfo())
        info.shares += shares
        info.last_deposited_time = now
        info.last_user_action_time = now
        self.total_shares += shares
        return info

    def burn(self, user: HexAddress | str, shares: int, now: datetime.datetime) -> UserInfo:
        """Remove shares from a depositor and stamp the action time."""
        assert type(shares) == int and shares > 0, f"Bad share amount: {shares}"
        info = self.users[normalise_address(user)]
        assert info.shares >= shares, f"Burning {shares} shares, user has {info.shares}"
        info.shares -= shares
        info.last_user_action_time = now
        self.total_shares -= shares
        return info

    def set_asset_at_last_user_action(self, user: HexAddress | str, amount: int):
        self.users[normalise_address(user)].asset_at_last_user_action = amount

    def check_consistency(self):
        """Verify the share supply invariant.

        :raise AssertionError:
            `total_shares` has drifted from the sum of balances
        """
        total = sum(info.shares for info in self.users.values())
        assert total == self.total_shares, f"Share ledger out of sync: sum of balances {total}, total_shares {self.total_shares}"
