"""Share price history.

Record how the share price moves as the vault is used, for analysis and simulations.
"""

import datetime
from dataclasses import asdict, dataclass
from decimal import Decimal

import pandas as pd

from autovault.events import Deposit, EmergencyWithdraw, Harvest, VaultEvent, Withdraw
from autovault.pricing import PRICE_PRECISION
from autovault.vault import AutoCompoundingVault


#: Events after which a snapshot is taken
SNAPSHOT_EVENTS = (Deposit, Withdraw, Harvest, EmergencyWithdraw)


@dataclass(slots=True, frozen=True)
class SharePriceSnapshot:
    """Vault state right after an event."""

    timestamp: datetime.datetime

    #: Event name that triggered the snapshot
    event: str

    #: Scaled by 10**18
    price_per_full_share: int

    managed_balance: int

    total_shares: int

    #: Idle asset in the vault custody
    available: int

    def get_share_price(self) -> Decimal:
        return Decimal(self.price_per_full_share) / Decimal(PRICE_PRECISION)


class SharePriceHistory:
    """Vault listener snapshotting the share price.

    Example:

    .. code-block:: python

        history = SharePriceHistory(vault)
        vault.subscribe(history)
        ...
        df = history.to_dataframe()
    """

    def __init__(self, vault: AutoCompoundingVault):
        self.vault = vault
        self.snapshots: list[SharePriceSnapshot] = []

    def __call__(self, event: VaultEvent):
        if isinstance(event, SNAPSHOT_EVENTS):
            self.record(event.timestamp, event.name)

    def __len__(self):
        return len(self.snapshots)

    def record(self, timestamp: datetime.datetime, label: str) -> SharePriceSnapshot:
        snapshot = SharePriceSnapshot(
            timestamp=timestamp,
            event=label,
            price_per_full_share=self.vault.get_price_per_full_share(),
            managed_balance=self.vault.balance_of(),
            total_shares=self.vault.total_shares,
            available=self.vault.available(),
        )
        self.snapshots.append(snapshot)
        return snapshot

    def to_dataframe(self) -> pd.DataFrame:
        """Snapshots as a DataFrame indexed by timestamp.

        - `share_price` column is a float for plotting and returns
        """
        df = pd.DataFrame([asdict(s) for s in self.snapshots])
        if len(df) == 0:
            return df
        df["share_price"] = df["price_per_full_share"].astype(float) / PRICE_PRECISION
        return df.set_index("timestamp")

    def calculate_returns(self) -> Decimal:
        """Share price change between the first and the last snapshot.

        :return:
            0.05 for 5% growth. Zero if there is less than two snapshots.
        """
        if len(self.snapshots) < 2:
            return Decimal(0)
        first = self.snapshots[0].get_share_price()
        last = self.snapshots[-1].get_share_price()
        return last / first - 1
