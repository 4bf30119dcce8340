"""Address helpers.

- Identities in the vault are Ethereum style 0x addresses
- All addresses are stored checksummed
"""

from eth_typing import HexAddress
from eth_utils import is_address, keccak, to_checksum_address


#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS: HexAddress = "0x0000000000000000000000000000000000000000"


def normalise_address(address: HexAddress | str) -> HexAddress:
    """Validate and checksum an address.

    :param address:
        0x prefixed address in any case

    :return:
        Checksummed address

    :raise AssertionError:
        If the input does not look like an address
    """
    assert isinstance(address, str), f"Expected str, got {type(address)}: {address}"
    assert is_address(address), f"Not an address: {address}"
    return to_checksum_address(address)


def is_zero_address(address: HexAddress | str) -> bool:
    """Anything that is not an address is not the zero address either."""
    return isinstance(address, str) and is_address(address) and int(address, 16) == 0


def derive_address(label: str) -> HexAddress:
    """Create a stable pseudo address for a simulated component.

    - Last 20 bytes of keccak of the label, like contract address derivation

    Example:

    .. code-block:: python

        vault_address = derive_address("autovault:CAKE")
    """
    return to_checksum_address(keccak(text=label)[-20:])
