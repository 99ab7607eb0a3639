"""
Per-call multisig voting.

Each distinct (call data, value) pair is an operation. Current-epoch
signers vote on it once each; when their combined weight reaches the
threshold the wrapped action runs and the round is cleared, so the same
operation can be voted on again later. A vote that does not reach the
threshold executes nothing and its attached value is handed back.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from eth_utils import to_checksum_address

from ..crypto import abi_encode, encode_function_call, keccak256
from ..exceptions import AuthorizationError, ValidationError
from ..logger import get_logger
from .signers import SignerRegistry

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class NotSignerError(AuthorizationError):
    """Caller is not a signer of the current epoch."""


class AlreadyVotedError(AuthorizationError):
    """Caller already voted on this operation in the current epoch."""


# ══════════════════════════════════════════════════════════════════════
#  DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Voting:
    """Open round for one (operation, epoch)."""
    voters: Set[str] = field(default_factory=set)
    tally: int = 0


@dataclass(frozen=True)
class VoteOutcome:
    """
    Result of a single vote.

    Attributes:
        operation_hash: keccak of (call data, value)
        epoch:          Signer epoch the vote was counted in
        tally:          Weight collected so far (0 after execution)
        threshold:      Weight required in that epoch
        executed:       Whether this vote triggered execution
        refunded:       Value handed back to the caller (non-executing vote)
        result:         Return value of the executed action
    """
    operation_hash: bytes
    epoch: int
    tally: int
    threshold: int
    executed: bool
    refunded: int = 0
    result: Any = None


@dataclass(frozen=True)
class MultisigOperationExecutedEvent:
    operation_hash: bytes
    epoch: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "MultisigOperationExecuted",
            "operationHash": "0x" + self.operation_hash.hex(),
            "epoch": self.epoch,
            "timestamp": self.timestamp,
        }


def operation_hash(call_data: bytes, value: int = 0) -> bytes:
    return keccak256(abi_encode(['bytes', 'uint256'], [call_data, value]))


# ══════════════════════════════════════════════════════════════════════
#  VOTE LEDGER
# ══════════════════════════════════════════════════════════════════════

class VoteLedger:
    """
    Weighted per-operation voting over a SignerRegistry.

    Votes are keyed by (operation hash, epoch): a rotation implicitly
    abandons every open round because the new epoch starts empty.
    """

    def __init__(self, signers: SignerRegistry):
        self.signers = signers
        self._votings: Dict[Tuple[bytes, int], Voting] = {}
        self._events: List[MultisigOperationExecutedEvent] = []

    @property
    def events(self) -> List[MultisigOperationExecutedEvent]:
        return list(self._events)

    def tally(self, op_hash: bytes) -> int:
        voting = self._votings.get((op_hash, self.signers.current_epoch))
        return voting.tally if voting else 0

    def has_voted(self, op_hash: bytes, account: str) -> bool:
        voting = self._votings.get((op_hash, self.signers.current_epoch))
        return voting is not None and to_checksum_address(account) in voting.voters

    def vote_and_maybe_execute(
        self,
        caller: str,
        call_data: bytes,
        action: Callable[[], Any],
        value: int = 0,
    ) -> VoteOutcome:
        """
        Count *caller*'s vote on (call_data, value) and run *action* once
        the threshold of the current epoch is reached.

        If *action* raises, the round is restored to its state before this
        vote and the error propagates.

        Raises:
            NotSignerError: caller is not a current-epoch signer
            AlreadyVotedError: caller already voted in this round
        """
        if value < 0:
            raise ValidationError("Attached value cannot be negative")

        caller = to_checksum_address(caller)
        epoch = self.signers.current_epoch
        signer_set = self.signers.signer_set(epoch)
        if signer_set is None or not signer_set.contains(caller):
            raise NotSignerError(f"{caller} is not a signer of epoch {epoch}")

        op_hash = operation_hash(call_data, value)
        key = (op_hash, epoch)
        voting = self._votings.get(key)
        if voting is None:
            voting = Voting()
        if caller in voting.voters:
            raise AlreadyVotedError(f"{caller} already voted on 0x{op_hash.hex()}")

        voters = voting.voters | {caller}
        tally = voting.tally + signer_set.weight_of(caller)

        if tally < signer_set.threshold:
            self._votings[key] = Voting(voters=voters, tally=tally)
            if value:
                logger.warning(
                    f"Refunding {value} to {caller}: vote {tally}/{signer_set.threshold} "
                    f"did not execute 0x{op_hash.hex()}"
                )
            else:
                logger.info(
                    f"Vote by {caller} on 0x{op_hash.hex()}: "
                    f"{tally}/{signer_set.threshold} (epoch {epoch})"
                )
            return VoteOutcome(
                operation_hash=op_hash,
                epoch=epoch,
                tally=tally,
                threshold=signer_set.threshold,
                executed=False,
                refunded=value,
            )

        previous = self._votings.pop(key, None)
        try:
            result = action()
        except Exception:
            if previous is not None:
                self._votings[key] = previous
            raise

        self._events.append(MultisigOperationExecutedEvent(operation_hash=op_hash, epoch=epoch))
        logger.info(f"Multisig operation 0x{op_hash.hex()} executed (epoch {epoch})")
        return VoteOutcome(
            operation_hash=op_hash,
            epoch=epoch,
            tally=0,
            threshold=signer_set.threshold,
            executed=True,
            result=result,
        )

    def rotate_signers(
        self,
        caller: str,
        accounts: Sequence[str],
        threshold: int,
        value: int = 0,
    ) -> VoteOutcome:
        """Vote to replace the signer set this ledger counts votes against."""
        call_data = encode_function_call(
            'rotateSigners(address[],uint256)',
            [to_checksum_address(a) for a in accounts],
            threshold,
        )
        return self.vote_and_maybe_execute(
            caller,
            call_data,
            lambda: self.signers.rotate(accounts, threshold),
            value=value,
        )

    # ── Queries mirroring the signer registry ─────────────────────────

    @property
    def signer_epoch(self) -> int:
        return self.signers.current_epoch

    def signer_threshold(self, epoch: int) -> int:
        return self.signers.signer_threshold(epoch)

    def signer_accounts(self, epoch: int) -> List[str]:
        return self.signers.signer_accounts(epoch)

    def is_signer(self, account: str) -> bool:
        return self.signers.is_signer(account)


# ══════════════════════════════════════════════════════════════════════
#  MULTISIG
# ══════════════════════════════════════════════════════════════════════

class Multisig:
    """
    Stand-alone signer-gated executor: arbitrary calls run once enough
    current signers have voted for the same (target, call data, value).
    """

    def __init__(self, host, address: str, ledger: VoteLedger):
        self.host = host
        self.address = to_checksum_address(address)
        self.ledger = ledger
        host.deploy(self.address, self)

    def rotate_signers(
        self,
        caller: str,
        accounts: Sequence[str],
        threshold: int,
        value: int = 0,
    ) -> VoteOutcome:
        return self.ledger.rotate_signers(caller, accounts, threshold, value=value)

    def execute(
        self,
        caller: str,
        target: str,
        call_data: bytes,
        native_value: int = 0,
        value: int = 0,
    ) -> VoteOutcome:
        """
        Vote to call *target* with *call_data*, paying *native_value* from
        this contract's balance. *value* is what the caller attaches; it is
        only taken when this vote triggers execution.
        """
        target = to_checksum_address(target)
        data = encode_function_call(
            'execute(address,bytes,uint256)', target, call_data, native_value,
        )

        def _call():
            self.host.transfer_native(caller, self.address, value)
            try:
                return self.host.call(self.address, target, call_data, native_value)
            except Exception:
                self.host.transfer_native(self.address, caller, value)
                raise

        return self.ledger.vote_and_maybe_execute(caller, data, _call, value=value)

    def on_call(self, sender: str, call_data: bytes, value: int) -> Optional[bytes]:
        if call_data:
            raise ValidationError("Multisig only accepts plain value transfers")
        return None

    def __repr__(self) -> str:
        return f"<Multisig {self.address} epoch={self.ledger.signer_epoch}>"
