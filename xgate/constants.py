"""
XGate Gateway Constants

This module consolidates all global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast

from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

GATEWAY_DEFAULTS = {
    'XGATE_CHAIN_ID':                  '1',
    'XGATE_GOVERNANCE_CHAIN':          'Axelarnet',
    'XGATE_GOVERNANCE_ADDRESS':        'axelar-governance',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW ARE PART OF THE SIGNED WIRE FORMAT. RELAYERS AND SIGNERS MUST AGREE ON
# THEM; CHANGING ONE ON A SINGLE NODE MAKES EVERY BATCH IT RECEIVES FAIL VERIFICATION.

# ==================================================================================
# SIGNER AUTHENTICATION
# ==================================================================================
# Number of signer-set epochs (current included) whose signatures are still accepted
SIGNER_RETENTION_WINDOW = 16

# Length of an r || s || v secp256k1 signature
SIGNATURE_LENGTH = 65

ZERO_ADDRESS = '0x' + '00' * 20
ZERO_HASH = b'\x00' * 32


# ==================================================================================
# COMMAND KINDS
# ==================================================================================
COMMAND_DEPLOY_TOKEN = 'deployToken'
COMMAND_MINT_TOKEN = 'mintToken'
COMMAND_BURN_TOKEN = 'burnToken'
COMMAND_APPROVE_CONTRACT_CALL = 'approveContractCall'
COMMAND_APPROVE_CONTRACT_CALL_WITH_MINT = 'approveContractCallWithMint'
COMMAND_TRANSFER_OPERATORSHIP = 'transferOperatorship'

# ABI layouts of the signed batch and of each command's params
BATCH_ABI = ['uint256', 'bytes32[]', 'string[]', 'bytes[]']
PROOF_ABI = ['bytes[]']
INPUT_ABI = ['bytes', 'bytes']

DEPLOY_TOKEN_ABI = ['string', 'string', 'uint8', 'uint256', 'address', 'uint256']
MINT_TOKEN_ABI = ['string', 'address', 'uint256']
BURN_TOKEN_ABI = ['string', 'bytes32']
APPROVE_CONTRACT_CALL_ABI = ['string', 'string', 'address', 'bytes32', 'bytes32', 'uint256']
APPROVE_CONTRACT_CALL_WITH_MINT_ABI = [
    'string', 'string', 'address', 'bytes32', 'string', 'uint256', 'bytes32', 'uint256',
]
TRANSFER_OPERATORSHIP_ABI = ['address[]', 'uint256[]', 'uint256']


# ==================================================================================
# GOVERNANCE
# ==================================================================================
GOVERNANCE_MINIMUM_TIME_DELAY = 3 * 24 * 60 * 60  # 3 days

GOVERNANCE_SCHEDULE_TIMELOCK_PROPOSAL = 0
GOVERNANCE_CANCEL_TIMELOCK_PROPOSAL = 1
GOVERNANCE_APPROVE_MULTISIG_PROPOSAL = 2
GOVERNANCE_CANCEL_MULTISIG_APPROVAL = 3

GOVERNANCE_PAYLOAD_ABI = ['uint256', 'address', 'bytes', 'uint256', 'uint256']


# ==================================================================================
# TOKENS
# ==================================================================================
TOKEN_MAX_DECIMALS = 255

# Per-token mint limits apply to the cumulative amount minted in each window
MINT_LIMIT_WINDOW = 6 * 60 * 60  # 6 hours

# Init code identifying the ephemeral deposit handler for address derivation
DEPOSIT_HANDLER_INIT_CODE = b'xgate.DepositHandler.v1'
MINTABLE_TOKEN_INIT_CODE = b'xgate.BurnableMintableToken.v1'


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = GATEWAY_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
