"""
XGate Crypto Module

This module provides cryptographic primitives for the gateway:
- secp256k1 keys and signer recovery (SignatureVerifier)
- Keccak-256 hashing and the eth_sign message prefix
- Deterministic contract addresses and ABI call encoding
"""

from .keys import InvalidKeyError, PrivateKey, PublicKey, Signature
from .signing import (
    MalformedSignatureError,
    recover_signer,
    recover_signers,
    sign_eth_message_hash,
    sign_message_hash,
    verify_signature,
)
from .hashing import keccak256, keccak256_hex, to_eth_signed_message_hash
from .contract import (
    abi_decode,
    abi_encode,
    compute_function_selector,
    decode_function_arguments,
    decode_function_call,
    encode_function_call,
    generate_contract_address_create2,
)

__all__ = [
    # Keys (secp256k1)
    "InvalidKeyError",
    "PrivateKey",
    "PublicKey",
    "Signature",
    # Signing
    "MalformedSignatureError",
    "recover_signer",
    "recover_signers",
    "sign_eth_message_hash",
    "sign_message_hash",
    "verify_signature",
    # Hashing
    "keccak256",
    "keccak256_hex",
    "to_eth_signed_message_hash",
    # Contract
    "abi_decode",
    "abi_encode",
    "compute_function_selector",
    "decode_function_arguments",
    "decode_function_call",
    "encode_function_call",
    "generate_contract_address_create2",
]
