"""
Token collaborators of the gateway.

The command processor never manipulates balances itself; it only uses the
narrow capabilities defined here:

  - TokenRegistry:           symbol → TokenRecord (address, kind, frozen flag)
  - TokenDeployer:           deterministic deployment of internal tokens
  - BurnableMintableToken:   capped token the gateway owns (mint / burn by salt)
  - DepositHandlerArena:     short-lived salt-addressed receivers used to pull
                             a pre-funded balance of an external token
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ..constants import DEPOSIT_HANDLER_INIT_CODE, MINTABLE_TOKEN_INIT_CODE, TOKEN_MAX_DECIMALS
from ..crypto import (
    abi_decode,
    abi_encode,
    compute_function_selector,
    decode_function_arguments,
    encode_function_call,
    generate_contract_address_create2,
)
from ..exceptions import ExecutionFailure, ValidationError
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TokenError(ExecutionFailure):
    """Base exception for token operations."""


class TokenAlreadyExistsError(TokenError):
    """Symbol is already registered."""


class TokenDoesNotExistError(TokenError):
    """Symbol is not registered."""


class NotATokenError(TokenError):
    """External token address holds no code."""


class TokenFrozenError(TokenError):
    """Token is frozen by governance."""


class InsufficientBalanceError(TokenError):
    """Raised when sender balance is too low."""


class CapExceededError(TokenError):
    """Mint would exceed the token cap."""


class NotOwnerError(TokenError):
    """Only the owning gateway may mint or burn."""


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class TokenType(IntEnum):
    """How the gateway moves a token."""
    INTERNAL = 1    # Deployed and owned by the gateway: mint / burn directly
    EXTERNAL = 2    # Pre-existing contract: transfer out / pull deposits in


@dataclass
class TokenRecord:
    symbol: str
    address: str
    token_type: TokenType
    frozen: bool = False
    mint_limit: int = 0   # per mint window; 0 = unlimited

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "address": self.address,
            "tokenType": self.token_type.name,
            "frozen": self.frozen,
            "mintLimit": self.mint_limit,
        }


class TokenRegistry:
    """
    Symbol-indexed registry of gateway tokens.

    Entries are only ever written by command handlers of the processor.
    """

    def __init__(self):
        self._tokens: Dict[str, TokenRecord] = {}

    def register(self, record: TokenRecord) -> TokenRecord:
        """
        Raises TokenAlreadyExistsError if symbol already exists.
        """
        if record.symbol in self._tokens:
            raise TokenAlreadyExistsError(f"Token {record.symbol} already registered")
        self._tokens[record.symbol] = record
        logger.info(
            f"Token registered: {record.symbol} at {record.address} "
            f"({record.token_type.name})"
        )
        return record

    def get(self, symbol: str) -> Optional[TokenRecord]:
        return self._tokens.get(symbol)

    def get_or_raise(self, symbol: str) -> TokenRecord:
        record = self.get(symbol)
        if record is None:
            raise TokenDoesNotExistError(f"Token {symbol} not found in registry")
        return record

    def exists(self, symbol: str) -> bool:
        return symbol in self._tokens

    def set_frozen(self, symbol: str, frozen: bool) -> TokenRecord:
        record = self.get_or_raise(symbol)
        record.frozen = frozen
        logger.warning(f"Token {symbol} {'frozen' if frozen else 'unfrozen'}")
        return record

    def list_tokens(self) -> List[str]:
        return list(self._tokens.keys())

    @property
    def count(self) -> int:
        return len(self._tokens)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenCount": len(self._tokens),
            "tokens": {s: r.to_dict() for s, r in self._tokens.items()},
        }

    def __repr__(self) -> str:
        return f"<TokenRegistry tokens={len(self._tokens)}>"


# ══════════════════════════════════════════════════════════════════════
#  INTERNAL TOKEN
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TransferEvent:
    token_symbol: str
    sender: str
    recipient: str
    amount: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Transfer",
            "token": self.token_symbol,
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }


def deposit_address(owner: str, salt: bytes) -> str:
    """Where a deposit handler for *salt* deployed by *owner* lives."""
    return generate_contract_address_create2(owner, salt, DEPOSIT_HANDLER_INIT_CODE)


_TRANSFER = "transfer(address,uint256)"
_BALANCE_OF = "balanceOf(address)"
_TRANSFER_SELECTOR = compute_function_selector(_TRANSFER)
_BALANCE_OF_SELECTOR = compute_function_selector(_BALANCE_OF)


def call_transfer(host, sender: str, token: str, recipient: str, amount: int) -> bool:
    """
    Call ``transfer(recipient, amount)`` on *token* as *sender*.

    Empty return data counts as success so tokens that return nothing
    work alongside ones that return a bool.
    """
    result = host.call(sender, token, encode_function_call(_TRANSFER, recipient, amount))
    if not result:
        return True
    try:
        (ok,) = abi_decode(['bool'], result)
    except (DecodingError, ValueError):
        return False
    return ok


def call_balance_of(host, token: str, account: str) -> int:
    result = host.call(account, token, encode_function_call(_BALANCE_OF, account))
    (balance,) = abi_decode(['uint256'], result)
    return balance
_ZERO = to_checksum_address('0x' + '00' * 20)


class BurnableMintableToken:
    """
    Capped fungible token owned by the gateway.

    Balances are plain integers in the token's smallest unit. Mint and
    burn are restricted to the owner; ``burn(salt)`` destroys whatever
    balance sits at the owner's deposit address for that salt.
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        decimals: int,
        cap: int,
        owner: str,
        address: str,
    ):
        """
        Args:
            name: Human-readable token name
            symbol: Short ticker (e.g. "WETH")
            decimals: Fractional digits
            cap: Maximum total supply (0 = uncapped)
            owner: Gateway allowed to mint and burn
            address: Address this token is deployed at
        """
        if not name:
            raise ValidationError("Token name cannot be empty")
        if not symbol:
            raise ValidationError("Token symbol cannot be empty")
        if decimals < 0 or decimals > TOKEN_MAX_DECIMALS:
            raise ValidationError(f"Decimals must be 0-{TOKEN_MAX_DECIMALS}, got {decimals}")
        if cap < 0:
            raise ValidationError("Cap cannot be negative")

        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.cap = cap
        self.owner = to_checksum_address(owner)
        self.address = to_checksum_address(address)
        self._total_supply = 0
        self._balances: Dict[str, int] = {}
        self._events: List[TransferEvent] = []

    # ── Read-only views ───────────────────────────────────────────────

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(to_checksum_address(account), 0)

    @property
    def events(self) -> List[TransferEvent]:
        return list(self._events)

    def deposit_address(self, salt: bytes) -> str:
        return deposit_address(self.owner, salt)

    # ── Guards ────────────────────────────────────────────────────────

    def _require_owner(self, sender: str):
        if to_checksum_address(sender) != self.owner:
            raise NotOwnerError(f"{sender} is not the owner of {self.symbol}")

    # ── Operations ────────────────────────────────────────────────────

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        sender = to_checksum_address(sender)
        recipient = to_checksum_address(recipient)
        if amount < 0:
            raise ValidationError("Amount cannot be negative")
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{sender} has {balance} {self.symbol}, needs {amount}"
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self._events.append(TransferEvent(self.symbol, sender, recipient, amount))
        return True

    def mint(self, sender: str, account: str, amount: int) -> None:
        self._require_owner(sender)
        if amount < 0:
            raise ValidationError("Amount cannot be negative")
        if self.cap and self._total_supply + amount > self.cap:
            raise CapExceededError(
                f"Minting {amount} {self.symbol} exceeds cap {self.cap}"
            )
        account = to_checksum_address(account)
        self._total_supply += amount
        self._balances[account] = self._balances.get(account, 0) + amount
        self._events.append(TransferEvent(self.symbol, _ZERO, account, amount))

    def burn(self, sender: str, salt: bytes) -> int:
        """Burn the full balance at the deposit address for *salt*."""
        self._require_owner(sender)
        holder = self.deposit_address(salt)
        amount = self._balances.pop(holder, 0)
        self._total_supply -= amount
        self._events.append(TransferEvent(self.symbol, holder, _ZERO, amount))
        return amount

    def on_call(self, sender: str, call_data: bytes, value: int) -> bytes:
        if value:
            raise ValidationError(f"{self.symbol} does not accept native value")
        selector = call_data[:4]
        if selector == _TRANSFER_SELECTOR:
            recipient, amount = decode_function_arguments(_TRANSFER, call_data)
            return abi_encode(['bool'], [self.transfer(sender, recipient, amount)])
        if selector == _BALANCE_OF_SELECTOR:
            (account,) = decode_function_arguments(_BALANCE_OF, call_data)
            return abi_encode(['uint256'], [self.balance_of(account)])
        raise ValidationError(f"Unsupported call to {self.symbol}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "cap": self.cap,
            "owner": self.owner,
            "address": self.address,
            "totalSupply": self._total_supply,
        }

    def __repr__(self) -> str:
        return f"<BurnableMintableToken {self.symbol} supply={self._total_supply}>"


# ══════════════════════════════════════════════════════════════════════
#  DEPLOYER
# ══════════════════════════════════════════════════════════════════════

class TokenDeployer:
    """
    Deploys BurnableMintableToken instances at addresses derived from the
    deployer address, a salt and the constructor arguments.
    """

    def __init__(self, host, address: str):
        self.host = host
        self.address = to_checksum_address(address)

    @staticmethod
    def _init_code(name: str, symbol: str, decimals: int, cap: int) -> bytes:
        return MINTABLE_TOKEN_INIT_CODE + abi_encode(
            ['string', 'string', 'uint8', 'uint256'], [name, symbol, decimals, cap],
        )

    def predict(self, name: str, symbol: str, decimals: int, cap: int, salt: bytes) -> str:
        return generate_contract_address_create2(
            self.address, salt, self._init_code(name, symbol, decimals, cap),
        )

    def deploy_token(
        self,
        name: str,
        symbol: str,
        decimals: int,
        cap: int,
        salt: bytes,
        owner: str,
    ) -> str:
        address = self.predict(name, symbol, decimals, cap, salt)
        token = BurnableMintableToken(name, symbol, decimals, cap, owner=owner, address=address)
        self.host.deploy(address, token)
        logger.info(f"Deployed {symbol} at {address} (owner {token.owner})")
        return address


# ══════════════════════════════════════════════════════════════════════
#  DEPOSIT HANDLERS
# ══════════════════════════════════════════════════════════════════════

class DepositHandler:
    """Ephemeral receiver living at the deposit address of one salt."""

    def __init__(self, owner: str, salt: bytes):
        self.owner = to_checksum_address(owner)
        self.salt = salt
        self.address = deposit_address(self.owner, salt)

    def forward_all(self, host, token: str, recipient: str) -> int:
        """Move the handler's whole balance of *token* to *recipient*."""
        amount = call_balance_of(host, token, self.address)
        if not call_transfer(host, self.address, token, recipient, amount):
            raise TokenError(f"Transfer out of deposit handler {self.address} returned false")
        return amount

    def on_call(self, sender: str, call_data: bytes, value: int) -> Optional[bytes]:
        raise ValidationError("Deposit handlers accept no calls")


class DepositHandlerArena:
    """
    Allocates deposit handlers into the host by salt and releases them, so
    the same salt can be used again by a later burn.
    """

    def __init__(self, host):
        self.host = host
        self._live: Dict[bytes, DepositHandler] = {}

    @property
    def in_use(self) -> int:
        return len(self._live)

    def allocate(self, owner: str, salt: bytes) -> DepositHandler:
        if salt in self._live:
            raise ValidationError(f"Deposit handler for salt 0x{salt.hex()} already allocated")
        handler = DepositHandler(owner, salt)
        self.host.deploy(handler.address, handler)
        self._live[salt] = handler
        return handler

    def release(self, handler: DepositHandler) -> None:
        self._live.pop(handler.salt, None)
        self.host.destroy(handler.address)
