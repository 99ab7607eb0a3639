"""
Epoch-indexed weighted signer sets.

Every rotation creates a new epoch holding an immutable signer set
(sorted unique accounts, positive weights, threshold). A message hash is
accepted when the accounts recovered from its signatures carry enough
weight in any epoch of the retention window
[current - window + 1, current], the most recent satisfied epoch winning.
Older epochs stay queryable but no longer authorize anything.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_utils import is_address, to_checksum_address

from ..constants import SIGNER_RETENTION_WINDOW, ZERO_ADDRESS
from ..crypto import abi_encode, keccak256, recover_signers
from ..crypto.signing import MalformedSignatureError
from ..exceptions import ValidationError
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class InvalidSignersError(ValidationError):
    """Signer set is malformed, or signatures do not satisfy any retained epoch."""


class InvalidSignerThresholdError(InvalidSignersError):
    """Threshold is zero or exceeds the total weight."""


class DuplicateSignerError(InvalidSignersError):
    """The same account appears twice in a signer set."""


class DuplicateSignerSetError(InvalidSignersError):
    """The signer set is identical to one already used by an earlier epoch."""


# ══════════════════════════════════════════════════════════════════════
#  SIGNER SET
# ══════════════════════════════════════════════════════════════════════

def _sort_key(account: str) -> int:
    return int(account, 16)


@dataclass(frozen=True)
class SignerSet:
    """
    Immutable weighted signer set for one epoch.

    Attributes:
        accounts:  Checksum addresses, strictly ascending by numeric value
        weights:   Positive weight per account (same order)
        threshold: Minimum combined weight that authorizes a message
    """
    accounts: Tuple[str, ...]
    weights: Tuple[int, ...]
    threshold: int

    @classmethod
    def create(
        cls,
        accounts: Sequence[str],
        threshold: int,
        weights: Optional[Sequence[int]] = None,
    ) -> "SignerSet":
        """
        Validate and build a signer set. Weights default to 1 per account.

        Raises:
            InvalidSignersError: empty, null or unsorted accounts, bad weights
            DuplicateSignerError: repeated account
            InvalidSignerThresholdError: threshold outside (0, total weight]
        """
        if not accounts:
            raise InvalidSignersError("Signer set cannot be empty")

        normalized = []
        for account in accounts:
            if not isinstance(account, str) or not is_address(account):
                raise InvalidSignersError(f"Invalid signer address: {account!r}")
            account = to_checksum_address(account)
            if account == to_checksum_address(ZERO_ADDRESS):
                raise InvalidSignersError("Signer cannot be the zero address")
            normalized.append(account)

        if len(set(normalized)) != len(normalized):
            raise DuplicateSignerError("Signer set contains a duplicate account")

        for prev, cur in zip(normalized, normalized[1:]):
            if _sort_key(prev) >= _sort_key(cur):
                raise InvalidSignersError("Signers must be sorted in ascending order")

        if weights is None:
            weights = [1] * len(normalized)
        if len(weights) != len(normalized):
            raise InvalidSignersError(
                f"Got {len(weights)} weights for {len(normalized)} signers"
            )
        if any(w <= 0 for w in weights):
            raise InvalidSignersError("Signer weights must be positive")

        total = sum(weights)
        if threshold <= 0 or threshold > total:
            raise InvalidSignerThresholdError(
                f"Threshold {threshold} outside (0, {total}]"
            )

        return cls(
            accounts=tuple(normalized),
            weights=tuple(int(w) for w in weights),
            threshold=int(threshold),
        )

    @property
    def total_weight(self) -> int:
        return sum(self.weights)

    @property
    def hash(self) -> bytes:
        """Canonical fingerprint used for the epoch ↔ hash mapping."""
        return keccak256(abi_encode(
            ['address[]', 'uint256[]', 'uint256'],
            [list(self.accounts), list(self.weights), self.threshold],
        ))

    def weight_of(self, account: str) -> int:
        try:
            return self.weights[self.accounts.index(to_checksum_address(account))]
        except ValueError:
            return 0

    def contains(self, account: str) -> bool:
        return self.weight_of(account) > 0

    def weight_of_all(self, accounts: Sequence[str]) -> int:
        return sum(self.weight_of(a) for a in accounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accounts": list(self.accounts),
            "weights": list(self.weights),
            "threshold": self.threshold,
            "hash": "0x" + self.hash.hex(),
        }


@dataclass(frozen=True)
class SignersRotatedEvent:
    """Emitted on every successful rotation."""
    registry: str
    epoch: int
    signer_set_hash: bytes
    accounts: Tuple[str, ...]
    weights: Tuple[int, ...]
    threshold: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "SignersRotated",
            "registry": self.registry,
            "epoch": self.epoch,
            "signerSetHash": "0x" + self.signer_set_hash.hex(),
            "accounts": list(self.accounts),
            "weights": list(self.weights),
            "threshold": self.threshold,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class SignerRegistry:
    """
    Epoch-indexed signer sets with a bounded verification window.

    Epoch 0 means "no signers yet"; the first rotation creates epoch 1.
    """

    def __init__(
        self,
        retention_window: int = SIGNER_RETENTION_WINDOW,
        name: str = "signers",
        unique_sets: bool = True,
    ):
        """
        Args:
            retention_window: Epochs (current included) whose signatures verify
            name: Label used in logs and events
            unique_sets: Reject rotating to a signer set an earlier epoch used
        """
        if retention_window < 1:
            raise ValidationError("retention_window must be >= 1")
        self.retention_window = retention_window
        self.name = name
        self.unique_sets = unique_sets
        self._current_epoch = 0
        self._sets: Dict[int, SignerSet] = {}
        self._epoch_for_hash: Dict[bytes, int] = {}
        self._events: List[SignersRotatedEvent] = []

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def current_epoch(self) -> int:
        return self._current_epoch

    @property
    def events(self) -> List[SignersRotatedEvent]:
        return list(self._events)

    def signer_set(self, epoch: Optional[int] = None) -> Optional[SignerSet]:
        return self._sets.get(self._current_epoch if epoch is None else epoch)

    def signer_threshold(self, epoch: int) -> int:
        signer_set = self._sets.get(epoch)
        return signer_set.threshold if signer_set else 0

    def signer_accounts(self, epoch: int) -> List[str]:
        signer_set = self._sets.get(epoch)
        return list(signer_set.accounts) if signer_set else []

    def signer_weights(self, epoch: int) -> List[int]:
        signer_set = self._sets.get(epoch)
        return list(signer_set.weights) if signer_set else []

    def hash_for_epoch(self, epoch: int) -> Optional[bytes]:
        signer_set = self._sets.get(epoch)
        return signer_set.hash if signer_set else None

    def epoch_for_hash(self, signer_set_hash: bytes) -> int:
        return self._epoch_for_hash.get(signer_set_hash, 0)

    def is_signer(self, account: str, epoch: Optional[int] = None) -> bool:
        signer_set = self.signer_set(epoch)
        return signer_set is not None and signer_set.contains(account)

    def weight_of(self, account: str, epoch: Optional[int] = None) -> int:
        signer_set = self.signer_set(epoch)
        return signer_set.weight_of(account) if signer_set else 0

    def retained_epochs(self) -> List[int]:
        """Epochs still accepted by verify(), most recent first."""
        oldest = max(1, self._current_epoch - self.retention_window + 1)
        return list(range(self._current_epoch, oldest - 1, -1))

    # ── Rotation ──────────────────────────────────────────────────────

    def rotate(
        self,
        accounts: Sequence[str],
        threshold: int,
        weights: Optional[Sequence[int]] = None,
    ) -> int:
        """
        Install a new signer set as the next epoch.

        Returns:
            The new current epoch.

        Raises:
            InvalidSignersError (or a subclass) on any malformed input.
        """
        signer_set = SignerSet.create(accounts, threshold, weights)
        set_hash = signer_set.hash
        if self.unique_sets and set_hash in self._epoch_for_hash:
            raise DuplicateSignerSetError(
                f"Signer set already used by epoch {self._epoch_for_hash[set_hash]}"
            )

        epoch = self._current_epoch + 1
        self._sets[epoch] = signer_set
        self._epoch_for_hash[set_hash] = epoch
        self._current_epoch = epoch

        self._events.append(SignersRotatedEvent(
            registry=self.name,
            epoch=epoch,
            signer_set_hash=set_hash,
            accounts=signer_set.accounts,
            weights=signer_set.weights,
            threshold=signer_set.threshold,
        ))
        logger.info(
            f"[{self.name}] rotated to epoch {epoch}: "
            f"{len(signer_set.accounts)} signers, threshold {signer_set.threshold} "
            f"of {signer_set.total_weight}"
        )
        return epoch

    # ── Verification ──────────────────────────────────────────────────

    def verify(self, message_hash: bytes, signatures: Sequence[bytes]) -> int:
        """
        Verify *signatures* over *message_hash* against the retained epochs.

        Returns:
            The most recent epoch whose threshold the recovered signers meet.

        Raises:
            MalformedSignatureError: a signature cannot be recovered, or two
                signatures recover to the same account.
            InvalidSignersError: no retained epoch is satisfied.
        """
        signers = recover_signers(message_hash, signatures)
        if len(set(signers)) != len(signers):
            raise MalformedSignatureError("Two signatures recover to the same signer")

        for epoch in self.retained_epochs():
            signer_set = self._sets[epoch]
            if signer_set.weight_of_all(signers) >= signer_set.threshold:
                logger.debug(f"[{self.name}] signatures satisfy epoch {epoch}")
                return epoch

        logger.warning(
            f"[{self.name}] {len(signers)} signatures satisfy no epoch in "
            f"window ending at epoch {self._current_epoch}"
        )
        raise InvalidSignersError("Signatures do not meet the threshold of any retained epoch")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "currentEpoch": self._current_epoch,
            "retentionWindow": self.retention_window,
            "epochs": {e: s.to_dict() for e, s in self._sets.items()},
        }

    def __repr__(self) -> str:
        return (
            f"<SignerRegistry {self.name} epoch={self._current_epoch} "
            f"window={self.retention_window}>"
        )
