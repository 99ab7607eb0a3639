"""
Contract Address Generation and Call Encoding

Deterministic (EIP-1014) addresses for deployed tokens and deposit
handlers, plus ABI call-data helpers for governance and multisig calls.
"""

from typing import Any, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import keccak, to_canonical_address, to_checksum_address


def generate_contract_address_create2(sender: str, salt: bytes, init_code: bytes) -> str:
    """
    EIP-1014 address: keccak256(0xff ‖ sender ‖ salt ‖ keccak256(init_code))[12:].

    Raises:
        ValueError: *salt* is not 32 bytes
    """
    if len(salt) != 32:
        raise ValueError(f"Salt must be 32 bytes, got {len(salt)}")
    preimage = b'\xff' + to_canonical_address(sender) + salt + keccak(init_code)
    return to_checksum_address(keccak(preimage)[12:])


def compute_function_selector(function_signature: str) -> bytes:
    """First 4 bytes of keccak256 of e.g. ``"transfer(address,uint256)"``."""
    return keccak(text=function_signature)[:4]


def parse_argument_types(function_signature: str) -> List[str]:
    """``"transfer(address,uint256)"`` -> ``['address', 'uint256']``"""
    inner = function_signature[function_signature.index('(') + 1:function_signature.rindex(')')]
    return [t.strip() for t in inner.split(',')] if inner else []


def encode_function_call(function_signature: str, *args) -> bytes:
    """Selector followed by the ABI-encoded *args*."""
    arg_types = parse_argument_types(function_signature)
    encoded = encode(arg_types, list(args)) if arg_types else b''
    return compute_function_selector(function_signature) + encoded


def decode_function_call(data: bytes) -> Tuple[bytes, bytes]:
    """Split call data into (selector, encoded arguments); short data gives empty parts."""
    if len(data) < 4:
        return b'', b''
    return data[:4], data[4:]


def decode_function_arguments(function_signature: str, data: bytes) -> Tuple[Any, ...]:
    """Decode the arguments of call data already known to match *function_signature*."""
    _, args = decode_function_call(data)
    return abi_decode(parse_argument_types(function_signature), args)


def _checksum_decoded(abi_type: str, value: Any) -> Any:
    # eth_abi yields lowercase addresses; identities here are always checksummed
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type.endswith("]"):
        inner = abi_type[:abi_type.rindex("[")]
        return tuple(_checksum_decoded(inner, item) for item in value)
    return value


def abi_encode(types: Sequence[str], values: Sequence[Any]) -> bytes:
    return encode(list(types), list(values))


def abi_decode(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """Decode *data*; every address, including those inside arrays, comes back checksummed."""
    types = list(types)
    return tuple(_checksum_decoded(t, v) for t, v in zip(types, decode(types, data)))
