"""Share pricing.

Pure integer math between shares and the underlying asset.

- All divisions round in favour of the vault, never the depositor
- The managed balance must be passed fresh on each call, because harvested yield
  changes it without changing the share supply
"""

import logging


logger = logging.getLogger(__name__)


#: Price per full share is expressed in this many units, like 1 ether
PRICE_PRECISION = 10**18


def get_managed_balance(idle: int, staked: int) -> int:
    """Asset the vault controls: idle in custody plus staked in the yield source."""
    assert idle >= 0 and staked >= 0, f"Negative balance: idle {idle}, staked {staked}"
    return idle + staked


def get_price_per_full_share(managed_balance: int, total_shares: int) -> int:
    """Asset value of one full share, scaled by :py:data:`PRICE_PRECISION`.

    - Before anyone deposits the price is exactly one
    """
    if total_shares == 0:
        return PRICE_PRECISION
    return managed_balance * PRICE_PRECISION // total_shares


def calculate_shares_to_mint(amount: int, total_shares: int, managed_balance_before: int) -> int:
    """How many shares a deposit buys.

    :param managed_balance_before:
        Managed balance before the deposited amount lands in the vault,
        so the depositor does not dilute their own purchase.

    :return:
        Floor rounded share count
    """
    assert type(amount) == int and amount > 0, f"Bad amount: {amount}"
    if total_shares == 0:
        return amount

    # Shares exist but all value has been lost
    assert managed_balance_before > 0, f"Shares {total_shares} but nothing under management"
    return amount * total_shares // managed_balance_before


def convert_to_assets(shares: int, total_shares: int, managed_balance: int) -> int:
    """Asset value of `shares`, floor rounded."""
    if total_shares == 0:
        return 0
    return shares * managed_balance // total_shares


def calculate_shares_to_burn(amount: int, total_shares: int, managed_balance: int) -> int:
    """How many shares a withdrawal of `amount` asset costs.

    - Rounded up, so a withdrawal never takes more value than the burned shares represent
      and withdrawals together cannot exceed the managed balance

    :return:
        Ceiling rounded share count
    """
    assert type(amount) == int and amount > 0, f"Bad amount: {amount}"
    assert managed_balance > 0, "Nothing under management"
    shares = -(-amount * total_shares // managed_balance)
    logger.debug("Withdrawing %d costs %d shares, supply %d, managed %d", amount, shares, total_shares, managed_balance)
    return shares
