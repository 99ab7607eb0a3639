"""
Signer authentication: epoch-indexed weighted signer sets and
per-call multisig voting on top of them.
"""

from .signers import (
    DuplicateSignerError,
    DuplicateSignerSetError,
    InvalidSignersError,
    InvalidSignerThresholdError,
    SignerRegistry,
    SignerSet,
    SignersRotatedEvent,
)
from .multisig import (
    AlreadyVotedError,
    Multisig,
    MultisigOperationExecutedEvent,
    NotSignerError,
    VoteLedger,
    VoteOutcome,
    operation_hash,
)

__all__ = [
    "AlreadyVotedError",
    "DuplicateSignerError",
    "DuplicateSignerSetError",
    "InvalidSignersError",
    "InvalidSignerThresholdError",
    "Multisig",
    "MultisigOperationExecutedEvent",
    "NotSignerError",
    "SignerRegistry",
    "SignerSet",
    "SignersRotatedEvent",
    "VoteLedger",
    "VoteOutcome",
    "operation_hash",
]
