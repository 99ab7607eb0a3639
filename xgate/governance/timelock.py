"""
Time-Lock Proposals

A proposal is the call (target, call data, native value); its hash maps to
an eta. eta == 0 means not scheduled. Scheduling never rejects a requested
eta for being too early: it is raised to now + minimum delay instead.
"""

import time
from typing import Dict, Optional

from eth_utils import to_checksum_address

from ..constants import GOVERNANCE_MINIMUM_TIME_DELAY, ZERO_HASH
from ..crypto import abi_encode, keccak256
from ..exceptions import GatewayException, ValidationError
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class GovernanceError(GatewayException):
    """Base exception for governance operations."""


class TimelockError(GovernanceError):
    """Timelock-specific errors."""


class InvalidTimeLockError(TimelockError, ValidationError):
    """Proposal hash is empty."""


class NotReadyError(TimelockError):
    """Proposal is not scheduled, or its eta is still in the future."""


def proposal_hash(target: str, call_data: bytes, native_value: int = 0) -> bytes:
    return keccak256(abi_encode(
        ['address', 'bytes', 'uint256'],
        [to_checksum_address(target), call_data, native_value],
    ))


# ══════════════════════════════════════════════════════════════════════
#  TIMELOCK
# ══════════════════════════════════════════════════════════════════════

class TimelockProposals:
    """
    Proposal hash → eta register that executes calls from *address*.

    Execution clears the eta before calling out, so a proposal runs at
    most once per scheduling; a failed call leaves it cleared and it must
    be scheduled again.
    """

    def __init__(self, host, address: str, minimum_delay: int = GOVERNANCE_MINIMUM_TIME_DELAY):
        if minimum_delay < 0:
            raise ValidationError("minimum_delay cannot be negative")
        self.host = host
        self.address = to_checksum_address(address)
        self.minimum_delay = minimum_delay
        self._etas: Dict[bytes, int] = {}

    @staticmethod
    def proposal_hash(target: str, call_data: bytes, native_value: int = 0) -> bytes:
        return proposal_hash(target, call_data, native_value)

    def get_eta(self, hash_: bytes) -> int:
        return self._etas.get(hash_, 0)

    def schedule(self, hash_: bytes, eta: int, now: Optional[float] = None) -> int:
        """
        Schedule *hash_* for *eta*, raised to at least now + minimum delay.
        Rescheduling overwrites the previous eta.

        Returns:
            The eta actually stored.
        """
        if hash_ == ZERO_HASH:
            raise InvalidTimeLockError("Cannot schedule the zero hash")

        now = int(time.time() if now is None else now)
        minimum_eta = now + self.minimum_delay
        if eta < minimum_eta:
            eta = minimum_eta

        self._etas[hash_] = eta
        logger.info(f"Proposal 0x{hash_.hex()} scheduled for {eta}")
        return eta

    def cancel(self, hash_: bytes) -> None:
        """Clear the eta of *hash_*. Cancelling an unscheduled proposal is a no-op."""
        if self._etas.pop(hash_, 0):
            logger.info(f"Proposal 0x{hash_.hex()} cancelled")

    def execute(
        self,
        hash_: bytes,
        target: str,
        call_data: bytes,
        native_value: int = 0,
        now: Optional[float] = None,
    ) -> bytes:
        """
        Run a ready proposal.

        Raises:
            NotReadyError: not scheduled, or now < eta
            ExecutionFailedError: the target call failed (eta stays cleared)
        """
        eta = self.get_eta(hash_)
        now = time.time() if now is None else now
        if eta == 0:
            raise NotReadyError(f"Proposal 0x{hash_.hex()} is not scheduled")
        if now < eta:
            raise NotReadyError(f"Proposal 0x{hash_.hex()} not ready until {eta} (now {int(now)})")

        del self._etas[hash_]
        logger.info(f"Executing proposal 0x{hash_.hex()} -> {target}")
        return self.host.call(self.address, target, call_data, native_value)

    def __repr__(self) -> str:
        return f"<TimelockProposals scheduled={len(self._etas)} delay={self.minimum_delay}s>"
