"""
Command Processor

Entry point for relayed batches. A batch is accepted only if the operator
signer set (any epoch inside the retention window) signed it; each command
then runs at most once, keyed by its command id:

  1. decode (data, proof) and verify signatures over data
  2. decode data, check the destination chain id
  3. per command, in order: skip if already executed, otherwise mark it
     executed, run its handler, and unmark it if the handler raises

A failing command never aborts the batch; it stays retryable.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from eth_utils import to_checksum_address

from ..auth.signers import InvalidSignersError, SignerRegistry
from ..constants import MINT_LIMIT_WINDOW
from ..crypto import (
    MalformedSignatureError,
    compute_function_selector,
    decode_function_arguments,
    keccak256,
)
from ..exceptions import AuthorizationError, ExecutionFailure, GatewayException, ValidationError
from ..host import ExecutionFailedError
from ..logger import get_logger
from .commands import Batch, CommandKind, UnknownCommandError, batch_message_hash, decode_input
from .tokens import (
    DepositHandlerArena,
    NotATokenError,
    TokenAlreadyExistsError,
    TokenDeployer,
    TokenError,
    TokenFrozenError,
    TokenRecord,
    TokenRegistry,
    TokenType,
    call_transfer,
    deposit_address,
)

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class InvalidSignaturesError(AuthorizationError):
    """Batch proof is not satisfied by any retained operator epoch."""


class InvalidChainIdError(ValidationError):
    """Batch is addressed to another chain."""


class NotGovernanceError(AuthorizationError):
    """Caller is not the governance contract."""


class MintFailedError(TokenError):
    """Mint or outbound transfer did not succeed."""


class MintLimitExceededError(MintFailedError):
    """Mint would exceed the token's limit for the current window."""


class BurnFailedError(TokenError):
    """Burn or deposit forwarding did not succeed."""


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

def _hex(b: bytes) -> str:
    return "0x" + b.hex()


@dataclass(frozen=True)
class ExecutedEvent:
    command_id: bytes
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "Executed", "commandId": _hex(self.command_id), "timestamp": self.timestamp}


@dataclass(frozen=True)
class CommandFailedEvent:
    command_id: bytes
    command: str
    reason: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "CommandFailed",
            "commandId": _hex(self.command_id),
            "command": self.command,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TokenDeployedEvent:
    symbol: str
    address: str
    token_type: TokenType
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "TokenDeployed",
            "symbol": self.symbol,
            "address": self.address,
            "tokenType": self.token_type.name,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ContractCallApprovedEvent:
    command_id: bytes
    source_chain: str
    source_address: str
    contract_address: str
    payload_hash: bytes
    source_tx_hash: bytes
    source_event_index: int
    symbol: Optional[str] = None
    amount: Optional[int] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "event": "ContractCallApproved" if self.symbol is None else "ContractCallApprovedWithMint",
            "commandId": _hex(self.command_id),
            "sourceChain": self.source_chain,
            "sourceAddress": self.source_address,
            "contractAddress": self.contract_address,
            "payloadHash": _hex(self.payload_hash),
            "sourceTxHash": _hex(self.source_tx_hash),
            "sourceEventIndex": self.source_event_index,
            "timestamp": self.timestamp,
        }
        if self.symbol is not None:
            d["symbol"] = self.symbol
            d["amount"] = self.amount
        return d


@dataclass(frozen=True)
class OperatorshipTransferredEvent:
    epoch: int
    operators: Tuple[str, ...]
    weights: Tuple[int, ...]
    threshold: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "OperatorshipTransferred",
            "epoch": self.epoch,
            "operators": list(self.operators),
            "weights": list(self.weights),
            "threshold": self.threshold,
            "timestamp": self.timestamp,
        }


@dataclass
class BatchResult:
    """What happened to each command of one submitted batch."""
    epoch: int
    executed: List[bytes] = field(default_factory=list)
    skipped: List[bytes] = field(default_factory=list)
    failed: List[bytes] = field(default_factory=list)


# Approval keys: (commandId, sourceChain, sourceAddress, contractAddress, payloadHash)
ApprovalKey = Tuple[bytes, str, str, str, bytes]

_SET_TOKEN_FROZEN = 'setTokenFrozen(string,bool)'
_SET_TOKEN_MINT_LIMIT = 'setTokenMintLimit(string,uint256)'


# ══════════════════════════════════════════════════════════════════════
#  PROCESSOR
# ══════════════════════════════════════════════════════════════════════

class CommandProcessor:
    """
    Signed-batch executor for the gateway.

    Owns the replay guard, the token registry and the contract-call
    approval tables. Operator signatures are checked against *operators*,
    which ``transferOperatorship`` commands rotate.
    """

    def __init__(
        self,
        host,
        address: str,
        operators: SignerRegistry,
        deployer: TokenDeployer,
        chain_id: int,
        governance: Optional[str] = None,
    ):
        self.host = host
        self.address = to_checksum_address(address)
        self.operators = operators
        self.deployer = deployer
        self.chain_id = chain_id
        self.governance = to_checksum_address(governance) if governance else None

        self.tokens = TokenRegistry()
        self.deposit_handlers = DepositHandlerArena(host)

        self._executed: Set[bytes] = set()
        self._approvals: Set[ApprovalKey] = set()
        self._mint_approvals: Set[Tuple[ApprovalKey, str, int]] = set()
        # symbol -> (window, amount minted in that window)
        self._minted: Dict[str, Tuple[int, int]] = {}
        self._events: List[Any] = []

        self._handlers: Dict[CommandKind, Callable[[Tuple[Any, ...], bytes, float], None]] = {
            CommandKind.DEPLOY_TOKEN: self._deploy_token,
            CommandKind.MINT_TOKEN: self._mint_token,
            CommandKind.BURN_TOKEN: self._burn_token,
            CommandKind.APPROVE_CONTRACT_CALL: self._approve_contract_call,
            CommandKind.APPROVE_CONTRACT_CALL_WITH_MINT: self._approve_contract_call_with_mint,
            CommandKind.TRANSFER_OPERATORSHIP: self._transfer_operatorship,
        }

        host.deploy(self.address, self)

    def set_governance(self, governance: str) -> None:
        self.governance = to_checksum_address(governance)
        logger.info(f"Gateway {self.address} governance set to {self.governance}")

    @property
    def events(self) -> List[Any]:
        return list(self._events)

    # ── Batch entry point ─────────────────────────────────────────────

    def execute(self, input_data: bytes, now: Optional[float] = None) -> BatchResult:
        """
        Verify and run a signed batch.

        Raises:
            InvalidCommandsError: input or batch cannot be decoded
            InvalidSignaturesError: no retained operator epoch signed it
            InvalidChainIdError: batch targets another chain
        """
        data, signatures = decode_input(input_data)

        try:
            epoch = self.operators.verify(batch_message_hash(data), signatures)
        except (InvalidSignersError, MalformedSignatureError) as e:
            logger.warning(f"Rejected batch: {e}")
            raise InvalidSignaturesError(str(e)) from e

        batch = Batch.decode(data)
        if batch.chain_id != self.chain_id:
            raise InvalidChainIdError(f"Batch for chain {batch.chain_id}, this is {self.chain_id}")

        now = time.time() if now is None else now
        # Only the current operator set may hand over operatorship, once per batch
        allow_operatorship = epoch == self.operators.current_epoch
        result = BatchResult(epoch=epoch)

        for command in batch.commands:
            command_id = command.command_id
            if command_id in self._executed:
                logger.debug(f"Skipping executed command 0x{command_id.hex()}")
                result.skipped.append(command_id)
                continue

            try:
                kind = CommandKind.from_name(command.name)
            except UnknownCommandError as e:
                self._record_failure(command_id, command.name, e, result)
                continue

            if kind is CommandKind.TRANSFER_OPERATORSHIP:
                if not allow_operatorship:
                    self._record_failure(
                        command_id, command.name,
                        "operatorship transfer not allowed in this batch", result,
                    )
                    continue
                allow_operatorship = False

            self._executed.add(command_id)
            try:
                self._handlers[kind](command.decode_params(), command_id, now)
            except Exception as e:
                self._executed.discard(command_id)
                self._record_failure(command_id, command.name, e, result)
                continue

            self._events.append(ExecutedEvent(command_id=command_id))
            result.executed.append(command_id)
            logger.info(f"Executed {command.name} 0x{command_id.hex()}")

        return result

    def _record_failure(self, command_id: bytes, name: str, reason: Any, result: BatchResult):
        logger.warning(f"Command {name} 0x{command_id.hex()} failed: {reason}")
        self._events.append(CommandFailedEvent(command_id=command_id, command=name, reason=str(reason)))
        result.failed.append(command_id)

    # ── Handlers ──────────────────────────────────────────────────────

    def _deploy_token(self, params, command_id: bytes, now: float) -> None:
        name, symbol, decimals, cap, token_address, mint_limit = params

        if self.tokens.exists(symbol):
            raise TokenAlreadyExistsError(f"Token {symbol} already registered")

        if int(token_address, 16) == 0:
            salt = keccak256(symbol.encode('utf-8'))
            token_address = self.deployer.deploy_token(
                name, symbol, decimals, cap, salt, owner=self.address,
            )
            token_type = TokenType.INTERNAL
        else:
            if not self.host.has_code(token_address):
                raise NotATokenError(f"No contract at {token_address} for {symbol}")
            token_type = TokenType.EXTERNAL

        record = self.tokens.register(TokenRecord(
            symbol=symbol,
            address=to_checksum_address(token_address),
            token_type=token_type,
            mint_limit=mint_limit,
        ))
        self._events.append(TokenDeployedEvent(record.symbol, record.address, token_type))

    def _mint_token(self, params, command_id: bytes, now: float) -> None:
        symbol, account, amount = params
        self._mint(symbol, account, amount, now)

    def _burn_token(self, params, command_id: bytes, now: float) -> None:
        symbol, salt = params
        record = self.tokens.get_or_raise(symbol)

        if record.token_type is TokenType.INTERNAL:
            token = self.host.code_at(record.address)
            try:
                amount = token.burn(self.address, salt)
            except GatewayException as e:
                raise BurnFailedError(f"Burn of {symbol} failed: {e}") from e
        else:
            handler = self.deposit_handlers.allocate(self.address, salt)
            try:
                amount = handler.forward_all(self.host, record.address, self.address)
            except GatewayException as e:
                raise BurnFailedError(f"Deposit of {symbol} could not be collected: {e}") from e
            finally:
                self.deposit_handlers.release(handler)

        logger.info(f"Burned {amount} {symbol} (salt 0x{salt.hex()})")

    def _approve_contract_call(self, params, command_id: bytes, now: float) -> None:
        (source_chain, source_address, contract_address, payload_hash,
         source_tx_hash, source_event_index) = params
        contract_address = to_checksum_address(contract_address)
        key = (command_id, source_chain, source_address, contract_address, payload_hash)
        self._approvals.add(key)
        self._events.append(ContractCallApprovedEvent(
            command_id, source_chain, source_address, contract_address,
            payload_hash, source_tx_hash, source_event_index,
        ))
        logger.info(f"Approved call {source_chain}/{source_address} -> {contract_address}")

    def _approve_contract_call_with_mint(self, params, command_id: bytes, now: float) -> None:
        (source_chain, source_address, contract_address, payload_hash,
         symbol, amount, source_tx_hash, source_event_index) = params
        contract_address = to_checksum_address(contract_address)
        key = (command_id, source_chain, source_address, contract_address, payload_hash)
        self._mint_approvals.add((key, symbol, amount))
        self._events.append(ContractCallApprovedEvent(
            command_id, source_chain, source_address, contract_address,
            payload_hash, source_tx_hash, source_event_index,
            symbol=symbol, amount=amount,
        ))
        logger.info(
            f"Approved call {source_chain}/{source_address} -> {contract_address} "
            f"with {amount} {symbol}"
        )

    def _transfer_operatorship(self, params, command_id: bytes, now: float) -> None:
        operators, weights, threshold = params
        epoch = self.operators.rotate(operators, threshold, weights)
        self._events.append(OperatorshipTransferredEvent(
            epoch=epoch,
            operators=tuple(self.operators.signer_accounts(epoch)),
            weights=tuple(self.operators.signer_weights(epoch)),
            threshold=self.operators.signer_threshold(epoch),
        ))

    # ── Minting ───────────────────────────────────────────────────────

    def _mint(self, symbol: str, account: str, amount: int, now: float) -> None:
        record = self.tokens.get_or_raise(symbol)
        if record.frozen:
            raise TokenFrozenError(f"Token {symbol} is frozen")

        window = int(now // MINT_LIMIT_WINDOW)
        last_window, minted = self._minted.get(symbol, (window, 0))
        if last_window != window:
            minted = 0
        if record.mint_limit and minted + amount > record.mint_limit:
            raise MintLimitExceededError(
                f"Minting {amount} {symbol} exceeds limit {record.mint_limit} "
                f"({minted} already minted this window)"
            )

        if record.token_type is TokenType.INTERNAL:
            token = self.host.code_at(record.address)
            try:
                token.mint(self.address, account, amount)
            except GatewayException as e:
                raise MintFailedError(f"Mint of {symbol} failed: {e}") from e
        else:
            try:
                ok = call_transfer(self.host, self.address, record.address, account, amount)
            except ExecutionFailedError as e:
                raise MintFailedError(f"Transfer of {symbol} failed: {e}") from e
            if not ok:
                raise MintFailedError(f"Transfer of {symbol} returned false")

        self._minted[symbol] = (window, minted + amount)
        logger.info(f"Minted {amount} {symbol} to {account}")

    # ── Contract-call approvals ───────────────────────────────────────

    def is_contract_call_approved(
        self,
        command_id: bytes,
        source_chain: str,
        source_address: str,
        contract_address: str,
        payload_hash: bytes,
    ) -> bool:
        key = (command_id, source_chain, source_address,
               to_checksum_address(contract_address), payload_hash)
        return key in self._approvals

    def is_contract_call_and_mint_approved(
        self,
        command_id: bytes,
        source_chain: str,
        source_address: str,
        contract_address: str,
        payload_hash: bytes,
        symbol: str,
        amount: int,
    ) -> bool:
        key = (command_id, source_chain, source_address,
               to_checksum_address(contract_address), payload_hash)
        return (key, symbol, amount) in self._mint_approvals

    def validate_contract_call(
        self,
        caller: str,
        command_id: bytes,
        source_chain: str,
        source_address: str,
        payload_hash: bytes,
    ) -> bool:
        """
        Consume the approval for *caller*. Returns False if there is none;
        an approval can be consumed only once.
        """
        key = (command_id, source_chain, source_address, to_checksum_address(caller), payload_hash)
        if key not in self._approvals:
            return False
        self._approvals.discard(key)
        logger.info(f"Contract call 0x{command_id.hex()} consumed by {key[3]}")
        return True

    def validate_contract_call_and_mint(
        self,
        caller: str,
        command_id: bytes,
        source_chain: str,
        source_address: str,
        payload_hash: bytes,
        symbol: str,
        amount: int,
        now: Optional[float] = None,
    ) -> bool:
        """Consume a with-mint approval and mint *amount* of *symbol* to *caller*."""
        caller = to_checksum_address(caller)
        entry = ((command_id, source_chain, source_address, caller, payload_hash), symbol, amount)
        if entry not in self._mint_approvals:
            return False

        self._mint_approvals.discard(entry)
        try:
            self._mint(symbol, caller, amount, time.time() if now is None else now)
        except Exception:
            self._mint_approvals.add(entry)
            raise
        logger.info(f"Contract call 0x{command_id.hex()} with {amount} {symbol} consumed by {caller}")
        return True

    # ── Queries ───────────────────────────────────────────────────────

    def is_command_executed(self, command_id: bytes) -> bool:
        return command_id in self._executed

    def token_address(self, symbol: str) -> Optional[str]:
        record = self.tokens.get(symbol)
        return record.address if record else None

    def is_token_frozen(self, symbol: str) -> bool:
        return self.tokens.get_or_raise(symbol).frozen

    def deposit_address(self, salt: bytes) -> str:
        return deposit_address(self.address, salt)

    # ── Governance surface ────────────────────────────────────────────

    def on_call(self, sender: str, call_data: bytes, value: int) -> Optional[bytes]:
        """Only the governance contract may call in, and only to administer tokens."""
        if sender != self.governance:
            raise NotGovernanceError(f"{sender} is not governance of {self.address}")
        if value:
            raise ValidationError("Gateway does not accept native value")

        selector = call_data[:4]
        if selector == compute_function_selector(_SET_TOKEN_FROZEN):
            symbol, frozen = decode_function_arguments(_SET_TOKEN_FROZEN, call_data)
            self.tokens.set_frozen(symbol, frozen)
        elif selector == compute_function_selector(_SET_TOKEN_MINT_LIMIT):
            symbol, limit = decode_function_arguments(_SET_TOKEN_MINT_LIMIT, call_data)
            self.tokens.get_or_raise(symbol).mint_limit = limit
            logger.info(f"Mint limit of {symbol} set to {limit}")
        else:
            raise ExecutionFailure(f"Unsupported governance call 0x{selector.hex()}")
        return None

    def __repr__(self) -> str:
        return (
            f"<CommandProcessor {self.address} chain={self.chain_id} "
            f"epoch={self.operators.current_epoch} tokens={self.tokens.count}>"
        )
