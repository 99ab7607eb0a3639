"""
Gateway: signed command batches, their processor, and the token
collaborators the processor drives.
"""

from .commands import (
    Batch,
    Command,
    CommandKind,
    InvalidCommandsError,
    UnknownCommandError,
    approve_contract_call_params,
    approve_contract_call_with_mint_params,
    batch_message_hash,
    burn_token_params,
    decode_input,
    deploy_token_params,
    encode_input,
    mint_token_params,
    new_command_id,
    sign_batch,
    transfer_operatorship_params,
)
from .tokens import (
    BurnableMintableToken,
    DepositHandler,
    DepositHandlerArena,
    NotATokenError,
    TokenAlreadyExistsError,
    TokenDeployer,
    TokenDoesNotExistError,
    TokenError,
    TokenFrozenError,
    TokenRecord,
    TokenRegistry,
    TokenType,
)
from .processor import (
    BatchResult,
    BurnFailedError,
    CommandProcessor,
    InvalidChainIdError,
    InvalidSignaturesError,
    MintFailedError,
    MintLimitExceededError,
    NotGovernanceError,
)

__all__ = [
    # Commands
    "Batch",
    "Command",
    "CommandKind",
    "InvalidCommandsError",
    "UnknownCommandError",
    "approve_contract_call_params",
    "approve_contract_call_with_mint_params",
    "batch_message_hash",
    "burn_token_params",
    "decode_input",
    "deploy_token_params",
    "encode_input",
    "mint_token_params",
    "new_command_id",
    "sign_batch",
    "transfer_operatorship_params",
    # Tokens
    "BurnableMintableToken",
    "DepositHandler",
    "DepositHandlerArena",
    "NotATokenError",
    "TokenAlreadyExistsError",
    "TokenDeployer",
    "TokenDoesNotExistError",
    "TokenError",
    "TokenFrozenError",
    "TokenRecord",
    "TokenRegistry",
    "TokenType",
    # Processor
    "BatchResult",
    "BurnFailedError",
    "CommandProcessor",
    "InvalidChainIdError",
    "InvalidSignaturesError",
    "MintFailedError",
    "MintLimitExceededError",
    "NotGovernanceError",
]
