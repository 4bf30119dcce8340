"""Simulate an auto-compounding vault over time.

- Depositors enter the vault, the yield source emits rewards every second,
  a keeper harvests at a fixed interval and a depositor exits at the end
- Prints the share price history and the final balances
- Fees can be given on the command line or with `VAULT_*` environment variables

To run:

.. code-block:: shell

    python scripts/simulate-vault.py --days 30 --harvest-hours 6 --reward-per-second 0.01

    # Without performance fee
    VAULT_PERFORMANCE_FEE=0 python scripts/simulate-vault.py
"""

import argparse
import datetime
import logging
from decimal import Decimal

from eth_account import Account
from tabulate import tabulate

from autovault.clock import ManualClock
from autovault.config import create_vault_config_from_env
from autovault.events import log_event
from autovault.history import SharePriceHistory
from autovault.token import create_token
from autovault.utils import setup_console_logging
from autovault.vault import AutoCompoundingVault
from autovault.yield_source import SimulatedYieldSource


logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Auto-compounding vault simulation.")
    parser.add_argument("--days", type=int, default=30, help="How many days to simulate")
    parser.add_argument("--harvest-hours", type=float, default=6, help="Keeper harvest interval in hours")
    parser.add_argument("--reward-per-second", type=str, default="0.01", help="Yield source emission in tokens per second")
    parser.add_argument("--depositors", type=int, default=3, help="Number of depositors")
    parser.add_argument("--deposit-value", type=str, default="100", help="Deposit of each depositor in tokens")
    parser.add_argument("--simplified-logging", action="store_true", help="Use simplified output without timestamps")
    parser.add_argument("--log-events", action="store_true", help="Log every vault event")
    return parser.parse_args()


def main():
    args = parse_args()
    setup_console_logging(simplified_logging=args.simplified_logging)

    clock = ManualClock()
    cake = create_token("PancakeSwap Token", "Cake")
    yield_source = SimulatedYieldSource(
        cake,
        clock,
        reward_per_second=cake.convert_to_raw(Decimal(args.reward_per_second)),
        auto_claim=True,
    )

    owner, admin, treasury, keeper = [Account.create().address for _ in range(4)]
    vault = AutoCompoundingVault(
        cake,
        yield_source,
        owner=owner,
        admin=admin,
        treasury=treasury,
        clock=clock,
        config=create_vault_config_from_env(),
    )

    history = SharePriceHistory(vault)
    vault.subscribe(history)
    if args.log_events:
        vault.subscribe(log_event)

    deposit_value = cake.convert_to_raw(Decimal(args.deposit_value))
    depositors = [Account.create().address for _ in range(args.depositors)]

    # Depositors arrive one per harvest interval
    interval = datetime.timedelta(hours=args.harvest_hours)
    for depositor in depositors:
        cake.mint(None, depositor, deposit_value)
        cake.approve(depositor, vault.address, deposit_value)
        vault.deposit(depositor, deposit_value)
        clock.advance(interval)

    end = clock.now() + datetime.timedelta(days=args.days)
    while clock.now() < end:
        vault.harvest(keeper)
        clock.advance(interval)

    # First depositor exits, paying no withdraw fee after the fee period
    exited = depositors[0]
    payout = vault.withdraw_all(exited)

    df = history.to_dataframe()
    print("Share price history (last 10 snapshots)")
    print(tabulate(df[["event", "share_price", "total_shares", "available"]].tail(10), headers="keys", tablefmt="grid"))

    rows = []
    for depositor in depositors:
        info = vault.user_info(depositor)
        rows.append(
            [
                depositor,
                cake.convert_to_decimals(info.shares),
                cake.convert_to_decimals(vault.get_user_balance(depositor)),
                cake.convert_to_decimals(cake.balance_of(depositor)),
            ]
        )

    print("\nDepositors")
    print(tabulate(rows, headers=["Address", "Shares", "Value in vault", "Wallet"], tablefmt="grid"))

    print(f"\nFees {vault.get_fee_schedule()}")
    print(f"Share price: {vault.fetch_share_price():.6f}")
    print(f"Share price change: {history.calculate_returns():.4%}")
    print(f"Exit payout of {exited}: {cake.convert_to_decimals(payout):,.6f} {cake.symbol}")
    print(f"Treasury: {cake.fetch_balance_of(treasury):,.6f} {cake.symbol}")
    print(f"Keeper call fees: {cake.fetch_balance_of(keeper):,.6f} {cake.symbol}")
    print(f"Managed balance: {cake.convert_to_decimals(vault.balance_of()):,.6f} {cake.symbol}")

    vault.check_invariants()
    logger.info("All ok")


if __name__ == "__main__":
    main()
