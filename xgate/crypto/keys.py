"""
secp256k1 keys for operators and governance signers.

A signer's identity is the EIP-55 checksum address of its public key;
nothing else about a key is stored by the gateway.
"""

import secrets
from typing import Tuple

from eth_keys.datatypes import (
    PrivateKey as EthPrivateKey,
    PublicKey as EthPublicKey,
    Signature as EthSignature,
)
from eth_keys.exceptions import ValidationError as EthKeysValidationError

from ..constants import SIGNATURE_LENGTH
from ..exceptions import ValidationError


class InvalidKeyError(ValidationError):
    """Key material is not a valid secp256k1 key."""


class PrivateKey:
    """Signing key. Wraps the eth-keys private key."""

    def __init__(self, key_bytes: bytes):
        if len(key_bytes) != 32:
            raise InvalidKeyError(f"Private key must be 32 bytes, got {len(key_bytes)}")
        try:
            self._key = EthPrivateKey(key_bytes)
        except (EthKeysValidationError, ValueError) as e:
            raise InvalidKeyError(f"Invalid private key: {e}") from e

    @classmethod
    def from_int(cls, key_int: int) -> "PrivateKey":
        return cls(key_int.to_bytes(32, byteorder='big'))

    @classmethod
    def generate(cls) -> "PrivateKey":
        return cls(secrets.token_bytes(32))

    @property
    def public_key(self) -> "PublicKey":
        return PublicKey(self._key.public_key)

    @property
    def address(self) -> str:
        return self.public_key.to_address()

    def to_bytes(self) -> bytes:
        return self._key.to_bytes()

    def sign_msg_hash(self, msg_hash: bytes) -> "Signature":
        """Sign a raw 32-byte digest (no message prefix is added)."""
        if len(msg_hash) != 32:
            raise ValueError(f"Message hash must be 32 bytes, got {len(msg_hash)}")
        return Signature(self._key.sign_msg_hash(msg_hash))

    def __eq__(self, other) -> bool:
        return isinstance(other, PrivateKey) and self._key == other._key

    def __repr__(self) -> str:
        return f"<PrivateKey {self.address}>"


class PublicKey:

    def __init__(self, key: EthPublicKey):
        if not isinstance(key, EthPublicKey):
            raise InvalidKeyError(f"Expected an eth-keys public key, got {type(key).__name__}")
        self._key = key

    @classmethod
    def recover_from_msg_hash(cls, msg_hash: bytes, signature: "Signature") -> "PublicKey":
        return cls(signature.recover_public_key(msg_hash))

    def to_address(self) -> str:
        return self._key.to_checksum_address()

    def __eq__(self, other) -> bool:
        return isinstance(other, PublicKey) and self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key.to_bytes())

    def __repr__(self) -> str:
        return f"<PublicKey {self.to_address()}>"


class Signature:
    """
    Recoverable ECDSA signature.

    The wire form is 65 bytes, r ‖ s ‖ v, with v written as 27/28. Both
    27/28 and 0/1 are accepted on input.
    """

    def __init__(self, signature: EthSignature):
        self._signature = signature

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "Signature":
        return cls(EthSignature(vrs=(v - 27 if v >= 27 else v, r, s)))

    @classmethod
    def from_bytes(cls, sig_bytes: bytes) -> "Signature":
        if len(sig_bytes) != SIGNATURE_LENGTH:
            raise ValueError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(sig_bytes)}")
        r = int.from_bytes(sig_bytes[:32], 'big')
        s = int.from_bytes(sig_bytes[32:64], 'big')
        return cls.from_vrs(sig_bytes[64], r, s)

    @property
    def vrs(self) -> Tuple[int, int, int]:
        """(v, r, s) with v as the 0/1 recovery id."""
        return self._signature.vrs

    def recover_public_key(self, msg_hash: bytes) -> EthPublicKey:
        return self._signature.recover_public_key_from_msg_hash(msg_hash)

    def to_bytes(self) -> bytes:
        v, r, s = self.vrs
        return r.to_bytes(32, 'big') + s.to_bytes(32, 'big') + bytes([v + 27])

    def __repr__(self) -> str:
        v, r, _ = self.vrs
        return f"<Signature v={v} r={hex(r)[:10]}...>"


__all__ = [
    "InvalidKeyError",
    "PrivateKey",
    "PublicKey",
    "Signature",
]
