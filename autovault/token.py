"""ERC-20 style token collaborator.

- :py:class:`Token` is the interface the vault consumes
- :py:class:`SimulatedToken` is an in-memory ledger with OpenZeppelin ERC-20 semantics,
  used for the deposit asset, the yield source receipt token and any foreign tokens
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from decimal import Decimal

from eth_typing import HexAddress

from autovault.address import derive_address, is_zero_address, normalise_address
from autovault.errors import AuthorizationError, ValidationError


logger = logging.getLogger(__name__)


class TokenTransferFailed(ValidationError):
    """Token refused to move the funds.

    - Insufficient balance or allowance, or a zero address receiver
    """


class Token(ABC):
    """Fungible token the vault moves around.

    - All amounts are raw integer units
    - Transfers either move the full amount or raise :py:class:`TokenTransferFailed`
    """

    #: Token contract address
    address: HexAddress

    #: Token name
    name: str

    #: Token symbol
    symbol: str

    #: Number of decimals in the raw unit
    decimals: int

    def __repr__(self):
        return f"<Token {self.symbol} at {self.address}>"

    def __eq__(self, other):
        if not isinstance(other, Token):
            return False
        return self.address == other.address

    def __hash__(self):
        return hash(self.address)

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw token units to decimals.

        Example:

        .. code-block:: python

            # Convert 1 wei units to decimals
            assert token.convert_to_decimals(1) == Decimal("0.000000000000000001")

        """
        assert type(raw_amount) == int, f"Got {type(raw_amount)}, expected int: {raw_amount}"
        return Decimal(raw_amount) / Decimal(10**self.decimals)

    def convert_to_raw(self, decimal_amount: Decimal | int) -> int:
        """Convert decimalised token amount to raw units.

        Example:

        .. code-block:: python

            # Convert 1.0 USDC to raw unit with 6 decimals
            assert usdc.convert_to_raw(1) == 1_000_000

        """
        return int(decimal_amount * 10**self.decimals)

    def fetch_balance_of(self, address: HexAddress | str) -> Decimal:
        """Get an address token balance.

        :return:
            Converted to decimal using :py:meth:`convert_to_decimals`
        """
        return self.convert_to_decimals(self.balance_of(address))

    @abstractmethod
    def balance_of(self, address: HexAddress | str) -> int:
        """Raw balance of an address."""

    @abstractmethod
    def transfer(self, sender: HexAddress | str, receiver: HexAddress | str, amount: int) -> bool:
        """Move `amount` from `sender` to `receiver`.

        :raise TokenTransferFailed:
            Not enough balance or bad receiver
        """

    @abstractmethod
    def transfer_from(
        self,
        spender: HexAddress | str,
        owner: HexAddress | str,
        receiver: HexAddress | str,
        amount: int,
    ) -> bool:
        """Move `amount` from `owner` to `receiver` using the allowance `owner` gave to `spender`.

        :raise TokenTransferFailed:
            Not enough balance or allowance
        """


class SimulatedToken(Token):
    """In-memory ERC-20.

    - Balances and allowances live in dicts
    - Revert reasons follow OpenZeppelin ERC-20 so they read the same as onchain failures
    - If `minter` is given, only that address can mint and burn
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        decimals: int = 18,
        address: HexAddress | str | None = None,
        minter: HexAddress | str | None = None,
    ):
        assert type(decimals) == int and decimals >= 0, f"Bad decimals: {decimals}"
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.address = normalise_address(address) if address else derive_address(f"token:{symbol}:{name}")
        self.minter = normalise_address(minter) if minter else None
        self.total_supply = 0
        self.balances: dict[HexAddress, int] = defaultdict(int)
        self.allowances: dict[tuple[HexAddress, HexAddress], int] = defaultdict(int)

    def set_minter(self, caller: HexAddress | str, minter: HexAddress | str):
        """Hand minting rights over, like transferring MasterChef ownership of CAKE."""
        self._require_minter(caller)
        self.minter = normalise_address(minter)

    def balance_of(self, address: HexAddress | str) -> int:
        return self.balances.get(normalise_address(address), 0)

    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        return self.allowances.get((normalise_address(owner), normalise_address(spender)), 0)

    def approve(self, owner: HexAddress | str, spender: HexAddress | str, amount: int) -> bool:
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        if is_zero_address(spender):
            raise TokenTransferFailed("ERC20: approve to the zero address")
        self.allowances[(normalise_address(owner), normalise_address(spender))] = amount
        return True

    def mint(self, caller: HexAddress | str | None, receiver: HexAddress | str, amount: int):
        """Create new tokens.

        :param caller:
            Needed only when the token has a minter
        """
        self._require_minter(caller)
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        if is_zero_address(receiver):
            raise TokenTransferFailed("ERC20: mint to the zero address")
        self.balances[normalise_address(receiver)] += amount
        self.total_supply += amount

    def burn(self, caller: HexAddress | str | None, holder: HexAddress | str, amount: int):
        self._require_minter(caller)
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        holder = normalise_address(holder)
        if self.balances[holder] < amount:
            raise TokenTransferFailed("ERC20: burn amount exceeds balance")
        self.balances[holder] -= amount
        self.total_supply -= amount

    def transfer(self, sender: HexAddress | str, receiver: HexAddress | str, amount: int) -> bool:
        self._move(normalise_address(sender), receiver, amount)
        return True

    def transfer_from(
        self,
        spender: HexAddress | str,
        owner: HexAddress | str,
        receiver: HexAddress | str,
        amount: int,
    ) -> bool:
        owner = normalise_address(owner)
        spender = normalise_address(spender)
        # Balance is checked before allowance, matching the OpenZeppelin version CAKE uses
        if self.balances[owner] < amount:
            raise TokenTransferFailed("ERC20: transfer amount exceeds balance")
        if self.allowances[(owner, spender)] < amount:
            raise TokenTransferFailed("ERC20: transfer amount exceeds allowance")
        self._move(owner, receiver, amount)
        self.allowances[(owner, spender)] -= amount
        return True

    def _move(self, sender: HexAddress, receiver: HexAddress | str, amount: int):
        assert type(amount) == int and amount >= 0, f"Bad amount: {amount}"
        if is_zero_address(receiver):
            raise TokenTransferFailed("ERC20: transfer to the zero address")
        receiver = normalise_address(receiver)
        if self.balances[sender] < amount:
            raise TokenTransferFailed("ERC20: transfer amount exceeds balance")
        self.balances[sender] -= amount
        self.balances[receiver] += amount
        logger.debug("%s transfer %d %s -> %s", self.symbol, amount, sender, receiver)

    def _require_minter(self, caller: HexAddress | str | None):
        if self.minter is None:
            return
        if caller is None or normalise_address(caller) != self.minter:
            raise AuthorizationError("Ownable: caller is not the owner")


def create_token(name: str, symbol: str, decimals: int = 18, minter: HexAddress | str | None = None) -> SimulatedToken:
    """Create a simulated ERC-20.

    Example:

    .. code-block:: python

        cake = create_token("PancakeSwap Token", "Cake")
        cake.mint(None, user, 100 * 10**18)
    """
    token = SimulatedToken(name, symbol, decimals, minter=minter)
    logger.info("Created token %s at %s", symbol, token.address)
    return token


