"""
XGate Crypto Hashing Module

Keccak-256 helpers used for batch hashes, proposal hashes and
signer-set fingerprints.
"""

from typing import Union

from eth_utils import keccak, decode_hex


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum standard).

    Args:
        data: Input bytes or 0x-prefixed hex string

    Returns:
        32-byte hash
    """
    if isinstance(data, str):
        data = decode_hex(data)
    return keccak(data)


def keccak256_hex(data: Union[bytes, str]) -> str:
    """
    Compute Keccak-256 hash and return as hex string.

    Args:
        data: Input bytes or hex string

    Returns:
        Hex string with 0x prefix
    """
    return '0x' + keccak256(data).hex()


def to_eth_signed_message_hash(message_hash: bytes) -> bytes:
    """
    Wrap a 32-byte hash the way `eth_sign` does before signing.

    keccak256("\\x19Ethereum Signed Message:\\n32" || hash)
    """
    if len(message_hash) != 32:
        raise ValueError(f"Message hash must be 32 bytes, got {len(message_hash)}")
    return keccak(b'\x19Ethereum Signed Message:\n32' + message_hash)
