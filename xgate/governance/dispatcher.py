"""
Governance Dispatcher

Turns governance messages approved by the gateway into timelock and
multisig-approval state, and exposes the two execution paths:

  - execute_proposal:          anyone, once the timelock eta has passed
  - execute_multisig_proposal: current signers, once enough have voted,
                               for proposals governance approved

Messages are only accepted from the configured governance chain and
address.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Set

from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ..auth.multisig import VoteLedger, VoteOutcome
from ..constants import (
    GOVERNANCE_APPROVE_MULTISIG_PROPOSAL,
    GOVERNANCE_CANCEL_MULTISIG_APPROVAL,
    GOVERNANCE_CANCEL_TIMELOCK_PROPOSAL,
    GOVERNANCE_MINIMUM_TIME_DELAY,
    GOVERNANCE_PAYLOAD_ABI,
    GOVERNANCE_SCHEDULE_TIMELOCK_PROPOSAL,
)
from ..crypto import abi_decode, abi_encode, encode_function_call, keccak256
from ..exceptions import AuthorizationError, ValidationError
from ..gateway.processor import NotGovernanceError
from ..logger import get_logger
from .timelock import GovernanceError, TimelockProposals

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class NotApprovedError(GovernanceError, AuthorizationError):
    """No gateway approval for the message, or no multisig approval for the proposal."""


class InvalidCommandError(GovernanceError, ValidationError):
    """Governance payload is malformed or names an unknown command."""


class GovernanceCommand(IntEnum):
    """Commands a governance payload may carry."""
    SCHEDULE_TIME_LOCK_PROPOSAL = GOVERNANCE_SCHEDULE_TIMELOCK_PROPOSAL
    CANCEL_TIME_LOCK_PROPOSAL = GOVERNANCE_CANCEL_TIMELOCK_PROPOSAL
    APPROVE_MULTISIG_PROPOSAL = GOVERNANCE_APPROVE_MULTISIG_PROPOSAL
    CANCEL_MULTISIG_APPROVAL = GOVERNANCE_CANCEL_MULTISIG_APPROVAL


def encode_governance_payload(
    command: int,
    target: str,
    call_data: bytes,
    native_value: int = 0,
    eta: int = 0,
) -> bytes:
    return abi_encode(GOVERNANCE_PAYLOAD_ABI, [
        int(command), to_checksum_address(target), call_data, native_value, eta,
    ])


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GovernanceEvent:
    """
    One governance state change.

    Attributes:
        kind:           ProposalScheduled, ProposalCancelled, ProposalExecuted,
                        MultisigApproved, MultisigCancelled or MultisigExecuted
        proposal_hash:  keccak of (target, call data, native value)
        target:         Call target
        call_data:      Call data
        native_value:   Native value sent with the call
        eta:            Scheduled eta (ProposalScheduled only)
    """
    kind: str
    proposal_hash: bytes
    target: str
    call_data: bytes
    native_value: int
    eta: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind,
            "proposalHash": "0x" + self.proposal_hash.hex(),
            "target": self.target,
            "callData": "0x" + self.call_data.hex(),
            "nativeValue": self.native_value,
            "eta": self.eta,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  DISPATCHER
# ══════════════════════════════════════════════════════════════════════

class GovernanceDispatcher:
    """
    Wires a gateway, a TimelockProposals register and a VoteLedger
    together. The dispatcher is itself a contract in *host*: it holds the
    native balance proposals spend and is the sender of their calls.
    """

    def __init__(
        self,
        host,
        address: str,
        gateway,
        ledger: VoteLedger,
        governance_chain: str,
        governance_address: str,
        minimum_delay: int = GOVERNANCE_MINIMUM_TIME_DELAY,
        timelock: Optional[TimelockProposals] = None,
    ):
        self.host = host
        self.address = to_checksum_address(address)
        self.gateway = gateway
        self.ledger = ledger
        self.governance_chain = governance_chain
        self.governance_address = governance_address
        self.timelock = timelock or TimelockProposals(host, self.address, minimum_delay)
        if self.timelock.address != self.address:
            raise ValidationError("Timelock must execute from the dispatcher address")

        self._multisig_approvals: Set[bytes] = set()
        self._events: List[GovernanceEvent] = []

        host.deploy(self.address, self)

    @property
    def events(self) -> List[GovernanceEvent]:
        return list(self._events)

    # ── Governance messages ───────────────────────────────────────────

    def execute(
        self,
        command_id: bytes,
        source_chain: str,
        source_address: str,
        payload: bytes,
        now: Optional[float] = None,
    ) -> GovernanceCommand:
        """
        Apply a governance message the gateway approved for this contract.

        The gateway approval is consumed only when the command succeeds.

        Raises:
            NotGovernanceError: message not from the governance chain/address
            NotApprovedError: gateway holds no matching approval
            InvalidCommandError: payload malformed or command unknown
        """
        if source_chain != self.governance_chain or source_address != self.governance_address:
            raise NotGovernanceError(f"Message from {source_chain}/{source_address} is not governance")

        payload_hash = keccak256(payload)
        if not self.gateway.is_contract_call_approved(
            command_id, source_chain, source_address, self.address, payload_hash,
        ):
            raise NotApprovedError(f"Governance message 0x{command_id.hex()} not approved")

        try:
            command, target, call_data, native_value, eta = abi_decode(GOVERNANCE_PAYLOAD_ABI, payload)
        except (DecodingError, ValueError) as e:
            raise InvalidCommandError(f"Cannot decode governance payload: {e}") from e
        try:
            command = GovernanceCommand(command)
        except ValueError:
            raise InvalidCommandError(f"Unknown governance command {command}") from None

        self._dispatch(command, target, call_data, native_value, eta, now)
        self.gateway.validate_contract_call(
            self.address, command_id, source_chain, source_address, payload_hash,
        )
        return command

    def _dispatch(
        self,
        command: GovernanceCommand,
        target: str,
        call_data: bytes,
        native_value: int,
        eta: int,
        now: Optional[float],
    ) -> None:
        hash_ = self.timelock.proposal_hash(target, call_data, native_value)

        if command is GovernanceCommand.SCHEDULE_TIME_LOCK_PROPOSAL:
            eta = self.timelock.schedule(hash_, eta, now)
            self._emit("ProposalScheduled", hash_, target, call_data, native_value, eta)
        elif command is GovernanceCommand.CANCEL_TIME_LOCK_PROPOSAL:
            self.timelock.cancel(hash_)
            self._emit("ProposalCancelled", hash_, target, call_data, native_value)
        elif command is GovernanceCommand.APPROVE_MULTISIG_PROPOSAL:
            self._multisig_approvals.add(hash_)
            logger.info(f"Multisig proposal 0x{hash_.hex()} approved")
            self._emit("MultisigApproved", hash_, target, call_data, native_value)
        elif command is GovernanceCommand.CANCEL_MULTISIG_APPROVAL:
            self._multisig_approvals.discard(hash_)
            logger.info(f"Multisig approval 0x{hash_.hex()} cancelled")
            self._emit("MultisigCancelled", hash_, target, call_data, native_value)

    def _emit(self, kind, hash_, target, call_data, native_value, eta=0):
        self._events.append(GovernanceEvent(
            kind=kind,
            proposal_hash=hash_,
            target=to_checksum_address(target),
            call_data=call_data,
            native_value=native_value,
            eta=eta,
        ))

    # ── Execution paths ───────────────────────────────────────────────

    def execute_proposal(
        self,
        target: str,
        call_data: bytes,
        native_value: int = 0,
        now: Optional[float] = None,
    ) -> bytes:
        """Run a timelocked proposal whose eta has passed. Callable by anyone."""
        hash_ = self.timelock.proposal_hash(target, call_data, native_value)
        result = self.timelock.execute(hash_, target, call_data, native_value, now)
        self._emit("ProposalExecuted", hash_, target, call_data, native_value)
        return result

    def execute_multisig_proposal(
        self,
        caller: str,
        target: str,
        call_data: bytes,
        native_value: int = 0,
        value: int = 0,
    ) -> VoteOutcome:
        """
        Vote to run a governance-approved proposal without waiting for a
        timelock. The approval is one-shot: it is cleared when the vote
        that reaches the threshold runs the call, whether or not the call
        succeeds.
        """
        target = to_checksum_address(target)
        hash_ = self.timelock.proposal_hash(target, call_data, native_value)
        data = encode_function_call(
            'executeMultisigProposal(address,bytes,uint256)', target, call_data, native_value,
        )

        def _execute():
            if hash_ not in self._multisig_approvals:
                raise NotApprovedError(f"Multisig proposal 0x{hash_.hex()} not approved")
            self._multisig_approvals.discard(hash_)

            self.host.transfer_native(caller, self.address, value)
            try:
                result = self.host.call(self.address, target, call_data, native_value)
            except Exception:
                self.host.transfer_native(self.address, caller, value)
                raise
            self._emit("MultisigExecuted", hash_, target, call_data, native_value)
            return result

        return self.ledger.vote_and_maybe_execute(caller, data, _execute, value=value)

    def rotate_signers(
        self,
        caller: str,
        accounts: Sequence[str],
        threshold: int,
        value: int = 0,
    ) -> VoteOutcome:
        return self.ledger.rotate_signers(caller, accounts, threshold, value=value)

    # ── Queries ───────────────────────────────────────────────────────

    def get_proposal_eta(self, target: str, call_data: bytes, native_value: int = 0) -> int:
        return self.timelock.get_eta(self.timelock.proposal_hash(target, call_data, native_value))

    def is_multisig_proposal_approved(self, target: str, call_data: bytes, native_value: int = 0) -> bool:
        return self.timelock.proposal_hash(target, call_data, native_value) in self._multisig_approvals

    @property
    def signer_epoch(self) -> int:
        return self.ledger.signer_epoch

    def signer_threshold(self, epoch: int) -> int:
        return self.ledger.signer_threshold(epoch)

    def signer_accounts(self, epoch: int) -> List[str]:
        return self.ledger.signer_accounts(epoch)

    def on_call(self, sender: str, call_data: bytes, value: int) -> Optional[bytes]:
        if call_data:
            raise ValidationError("Governance only accepts plain value transfers")
        return None

    def __repr__(self) -> str:
        return (
            f"<GovernanceDispatcher {self.address} governance={self.governance_chain}/"
            f"{self.governance_address} epoch={self.ledger.signer_epoch}>"
        )
