"""
Address arithmetic shared by every ledger backend.

CREATE and CREATE2 derivations follow the Ethereum yellow paper so the
sandbox ledger hands out the same addresses a real chain would for the
same sender, nonce and salt.
"""

from typing import Union

import rlp
from eth_utils import is_address, keccak, to_bytes, to_canonical_address, to_checksum_address

from ..constants import ZERO_ADDRESS
from ..exceptions import ConfigurationError


def normalize(address: Union[str, bytes, None]) -> str:
    """Return the checksum form of *address*; None and empty map to zero."""
    if address is None or address == "" or address == b"":
        return ZERO_ADDRESS
    if isinstance(address, bytes):
        return to_checksum_address(address)
    if not is_address(address):
        raise ConfigurationError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def is_zero(address: Union[str, bytes, None]) -> bool:
    return normalize(address) == ZERO_ADDRESS


def same(a: Union[str, bytes, None], b: Union[str, bytes, None]) -> bool:
    return normalize(a) == normalize(b)


def compute_create_address(sender: str, nonce: int) -> str:
    """Address of a contract created by *sender* at *nonce* (CREATE)."""
    encoded = rlp.encode([to_canonical_address(sender), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def compute_create2_address(factory: str, salt: Union[bytes, str, int], init_code_hash: bytes) -> str:
    """Address of a contract created through *factory* with *salt* (CREATE2)."""
    salt_bytes = salt_to_bytes32(salt)
    if len(init_code_hash) != 32:
        raise ValueError("init code hash must be 32 bytes")
    digest = keccak(b"\xff" + to_canonical_address(factory) + salt_bytes + init_code_hash)
    return to_checksum_address(digest[12:])


def salt_to_bytes32(salt: Union[bytes, str, int]) -> bytes:
    if isinstance(salt, int):
        return salt.to_bytes(32, "big")
    if isinstance(salt, str):
        if salt.startswith("0x"):
            raw = to_bytes(hexstr=salt)
        else:
            raw = keccak(text=salt)
    else:
        raw = salt
    if len(raw) > 32:
        raise ValueError("salt longer than 32 bytes")
    return raw.rjust(32, b"\x00")
