"""
XGate Governance

Timelocked proposals and multisig-approved proposals driven by
messages from the governance chain.
"""

from .timelock import (
    GovernanceError,
    InvalidTimeLockError,
    NotReadyError,
    TimelockError,
    TimelockProposals,
    proposal_hash,
)
from .dispatcher import (
    GovernanceCommand,
    GovernanceDispatcher,
    GovernanceEvent,
    InvalidCommandError,
    NotApprovedError,
    encode_governance_payload,
)

__all__ = [
    # Timelock
    "GovernanceError",
    "InvalidTimeLockError",
    "NotReadyError",
    "TimelockError",
    "TimelockProposals",
    "proposal_hash",
    # Dispatcher
    "GovernanceCommand",
    "GovernanceDispatcher",
    "GovernanceEvent",
    "InvalidCommandError",
    "NotApprovedError",
    "encode_governance_payload",
]
