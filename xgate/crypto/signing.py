"""
XGate Crypto Signing Module

Message-hash signing and signer recovery using secp256k1. This is the
SignatureVerifier the signer registry consumes: it turns a signature into
the checksum address of the key that produced it.
"""

from typing import Iterable, List

from eth_keys.exceptions import BadSignature, ValidationError as EthKeysValidationError

from ..exceptions import ValidationError
from .hashing import to_eth_signed_message_hash
from .keys import PrivateKey, PublicKey, Signature


class MalformedSignatureError(ValidationError):
    """A signature could not be decoded or no key could be recovered from it."""


def sign_message_hash(private_key: PrivateKey, msg_hash: bytes) -> Signature:
    """
    Sign a 32-byte message hash as-is.
    """
    return private_key.sign_msg_hash(msg_hash)


def sign_eth_message_hash(private_key: PrivateKey, msg_hash: bytes) -> bytes:
    """
    Sign *msg_hash* under the eth_sign prefix and return the 65-byte
    r || s || v encoding used on the wire.
    """
    return private_key.sign_msg_hash(to_eth_signed_message_hash(msg_hash)).to_bytes()


def recover_signer(msg_hash: bytes, signature: bytes) -> str:
    """
    Recover the checksum address that signed *msg_hash*.

    Args:
        msg_hash: 32-byte hash that was signed (already prefixed if needed)
        signature: 65-byte r || s || v signature

    Returns:
        Recovered checksum address

    Raises:
        MalformedSignatureError: bad length, out-of-range components, or
            no recoverable public key.
    """
    try:
        sig = Signature.from_bytes(signature)
        return PublicKey.recover_from_msg_hash(msg_hash, sig).to_address()
    except (ValueError, BadSignature, EthKeysValidationError) as e:
        raise MalformedSignatureError(f"Cannot recover signer: {e}") from e


def recover_signers(msg_hash: bytes, signatures: Iterable[bytes]) -> List[str]:
    """Recover one address per signature, in order."""
    return [recover_signer(msg_hash, sig) for sig in signatures]


def verify_signature(address: str, msg_hash: bytes, signature: bytes) -> bool:
    """
    Check that *signature* over *msg_hash* was produced by *address*.

    Returns:
        True if valid, False otherwise
    """
    try:
        return recover_signer(msg_hash, signature).lower() == address.lower()
    except MalformedSignatureError:
        return False
