"""
Signed command batches.

Wire format (ABI encoded):

    data  = (uint256 chainId, bytes32[] commandIds, string[] commands, bytes[] params)
    proof = (bytes[] signatures)
    input = (bytes data, bytes proof)

Signers sign the eth_sign-prefixed keccak256 of ``data``.
"""

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from eth_abi.exceptions import DecodingError

from ..constants import (
    APPROVE_CONTRACT_CALL_ABI,
    APPROVE_CONTRACT_CALL_WITH_MINT_ABI,
    BATCH_ABI,
    BURN_TOKEN_ABI,
    COMMAND_APPROVE_CONTRACT_CALL,
    COMMAND_APPROVE_CONTRACT_CALL_WITH_MINT,
    COMMAND_BURN_TOKEN,
    COMMAND_DEPLOY_TOKEN,
    COMMAND_MINT_TOKEN,
    COMMAND_TRANSFER_OPERATORSHIP,
    DEPLOY_TOKEN_ABI,
    INPUT_ABI,
    MINT_TOKEN_ABI,
    PROOF_ABI,
    TRANSFER_OPERATORSHIP_ABI,
    ZERO_ADDRESS,
)
from ..crypto import PrivateKey, abi_decode, abi_encode, keccak256, to_eth_signed_message_hash
from ..exceptions import ValidationError


class InvalidCommandsError(ValidationError):
    """Batch cannot be decoded or its arrays disagree in length."""


class UnknownCommandError(ValidationError):
    """Command name is not one of the supported kinds."""


class CommandKind(Enum):
    """The closed set of commands a batch may carry."""
    DEPLOY_TOKEN = COMMAND_DEPLOY_TOKEN
    MINT_TOKEN = COMMAND_MINT_TOKEN
    BURN_TOKEN = COMMAND_BURN_TOKEN
    APPROVE_CONTRACT_CALL = COMMAND_APPROVE_CONTRACT_CALL
    APPROVE_CONTRACT_CALL_WITH_MINT = COMMAND_APPROVE_CONTRACT_CALL_WITH_MINT
    TRANSFER_OPERATORSHIP = COMMAND_TRANSFER_OPERATORSHIP

    @classmethod
    def from_name(cls, name: str) -> "CommandKind":
        try:
            return cls(name)
        except ValueError:
            raise UnknownCommandError(f"Unknown command {name!r}") from None


PARAMS_ABI: Dict[CommandKind, List[str]] = {
    CommandKind.DEPLOY_TOKEN: DEPLOY_TOKEN_ABI,
    CommandKind.MINT_TOKEN: MINT_TOKEN_ABI,
    CommandKind.BURN_TOKEN: BURN_TOKEN_ABI,
    CommandKind.APPROVE_CONTRACT_CALL: APPROVE_CONTRACT_CALL_ABI,
    CommandKind.APPROVE_CONTRACT_CALL_WITH_MINT: APPROVE_CONTRACT_CALL_WITH_MINT_ABI,
    CommandKind.TRANSFER_OPERATORSHIP: TRANSFER_OPERATORSHIP_ABI,
}


def new_command_id() -> bytes:
    """Random 32-byte command identifier."""
    return secrets.token_bytes(32)


@dataclass(frozen=True)
class Command:
    """One instruction of a batch. ``name`` stays a raw string until dispatch."""
    command_id: bytes
    name: str
    params: bytes

    def decode_params(self) -> Tuple[Any, ...]:
        """
        Decode ``params`` with the layout of this command's kind.

        Raises:
            UnknownCommandError, InvalidCommandsError
        """
        kind = CommandKind.from_name(self.name)
        try:
            return abi_decode(PARAMS_ABI[kind], self.params)
        except (DecodingError, ValueError) as e:
            raise InvalidCommandsError(f"Bad params for {self.name}: {e}") from e


@dataclass
class Batch:
    """Ordered commands for one destination chain."""
    chain_id: int
    commands: List[Command] = field(default_factory=list)

    def add(self, name: str, params: bytes, command_id: bytes = None) -> bytes:
        command_id = command_id or new_command_id()
        self.commands.append(Command(command_id=command_id, name=name, params=params))
        return command_id

    def encode(self) -> bytes:
        return abi_encode(BATCH_ABI, [
            self.chain_id,
            [c.command_id for c in self.commands],
            [c.name for c in self.commands],
            [c.params for c in self.commands],
        ])

    @classmethod
    def decode(cls, data: bytes) -> "Batch":
        try:
            chain_id, command_ids, names, params = abi_decode(BATCH_ABI, data)
        except (DecodingError, ValueError) as e:
            raise InvalidCommandsError(f"Cannot decode batch: {e}") from e

        if not (len(command_ids) == len(names) == len(params)):
            raise InvalidCommandsError(
                f"Length mismatch: {len(command_ids)} ids, {len(names)} commands, "
                f"{len(params)} params"
            )

        return cls(
            chain_id=chain_id,
            commands=[
                Command(command_id=cid, name=name, params=p)
                for cid, name, p in zip(command_ids, names, params)
            ],
        )


# ══════════════════════════════════════════════════════════════════════
#  SIGNED INPUT
# ══════════════════════════════════════════════════════════════════════

def batch_message_hash(data: bytes) -> bytes:
    """The hash signers actually sign."""
    return to_eth_signed_message_hash(keccak256(data))


def encode_input(data: bytes, signatures: Sequence[bytes]) -> bytes:
    proof = abi_encode(PROOF_ABI, [list(signatures)])
    return abi_encode(INPUT_ABI, [data, proof])


def decode_input(input_data: bytes) -> Tuple[bytes, List[bytes]]:
    """
    Split signed input into (data, signatures).

    Raises:
        InvalidCommandsError: input or proof cannot be decoded
    """
    try:
        data, proof = abi_decode(INPUT_ABI, input_data)
        (signatures,) = abi_decode(PROOF_ABI, proof)
    except (DecodingError, ValueError) as e:
        raise InvalidCommandsError(f"Cannot decode signed input: {e}") from e
    return data, list(signatures)


def sign_batch(data: bytes, private_keys: Sequence[PrivateKey]) -> bytes:
    """Sign encoded batch *data* with every key and return the wire input."""
    msg_hash = batch_message_hash(data)
    signatures = [key.sign_msg_hash(msg_hash).to_bytes() for key in private_keys]
    return encode_input(data, signatures)


# ══════════════════════════════════════════════════════════════════════
#  PARAM BUILDERS
# ══════════════════════════════════════════════════════════════════════

def deploy_token_params(
    name: str,
    symbol: str,
    decimals: int,
    cap: int,
    token_address: str = ZERO_ADDRESS,
    mint_limit: int = 0,
) -> bytes:
    return abi_encode(DEPLOY_TOKEN_ABI, [name, symbol, decimals, cap, token_address, mint_limit])


def mint_token_params(symbol: str, account: str, amount: int) -> bytes:
    return abi_encode(MINT_TOKEN_ABI, [symbol, account, amount])


def burn_token_params(symbol: str, salt: bytes) -> bytes:
    return abi_encode(BURN_TOKEN_ABI, [symbol, salt])


def approve_contract_call_params(
    source_chain: str,
    source_address: str,
    contract_address: str,
    payload_hash: bytes,
    source_tx_hash: bytes = b'\x00' * 32,
    source_event_index: int = 0,
) -> bytes:
    return abi_encode(APPROVE_CONTRACT_CALL_ABI, [
        source_chain, source_address, contract_address, payload_hash,
        source_tx_hash, source_event_index,
    ])


def approve_contract_call_with_mint_params(
    source_chain: str,
    source_address: str,
    contract_address: str,
    payload_hash: bytes,
    symbol: str,
    amount: int,
    source_tx_hash: bytes = b'\x00' * 32,
    source_event_index: int = 0,
) -> bytes:
    return abi_encode(APPROVE_CONTRACT_CALL_WITH_MINT_ABI, [
        source_chain, source_address, contract_address, payload_hash,
        symbol, amount, source_tx_hash, source_event_index,
    ])


def transfer_operatorship_params(
    operators: Sequence[str],
    weights: Sequence[int],
    threshold: int,
) -> bytes:
    return abi_encode(TRANSFER_OPERATORSHIP_ABI, [list(operators), list(weights), threshold])
