"""
Contract Host

In-memory execution environment the gateway components live in. It keeps
the address → contract registry (what "has code" means), native balances,
and dispatches external calls to contract objects.

A contract is any object exposing

    on_call(sender: str, call_data: bytes, value: int) -> bytes

Calls to addresses without code are plain value transfers, as on an
Ethereum-style chain.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from .exceptions import ExecutionFailure, ValidationError
from .logger import get_logger

logger = get_logger(__name__)


class ExecutionFailedError(ExecutionFailure):
    """An external call reverted."""


class InsufficientNativeBalanceError(ExecutionFailure):
    """Sender cannot cover the native value attached to a call."""


@dataclass
class Account:
    """
    Ethereum-style account (EOA or contract).

    Attributes:
        address: Account address
        balance: Native balance (smallest unit)
        code: Contract object, None for an externally owned account
    """
    address: str
    balance: int = 0
    code: Optional[Any] = None

    @property
    def is_contract(self) -> bool:
        return self.code is not None


class ContractHost:
    """
    Sequential, single-writer execution environment.

    Every public call applies its state transition completely or, if the
    target raises, restores the native balances it touched.
    """

    def __init__(self):
        self._accounts: Dict[str, Account] = {}

    def _account(self, address: str) -> Account:
        address = to_checksum_address(address)
        account = self._accounts.get(address)
        if account is None:
            account = Account(address=address)
            self._accounts[address] = account
        return account

    # ── Code registry ─────────────────────────────────────────────────

    def deploy(self, address: str, contract: Any) -> str:
        """Install *contract* at *address*. Fails if code already lives there."""
        account = self._account(address)
        if account.is_contract:
            raise ValidationError(f"Address {account.address} already has code")
        account.code = contract
        logger.debug(f"Code installed at {account.address}: {type(contract).__name__}")
        return account.address

    def destroy(self, address: str) -> None:
        """Remove code at *address*; the address may be reused afterwards."""
        account = self._account(address)
        account.code = None

    def has_code(self, address: str) -> bool:
        account = self._accounts.get(to_checksum_address(address))
        return account is not None and account.is_contract

    def code_at(self, address: str) -> Optional[Any]:
        account = self._accounts.get(to_checksum_address(address))
        return account.code if account else None

    # ── Native balances ───────────────────────────────────────────────

    def balance_of(self, address: str) -> int:
        account = self._accounts.get(to_checksum_address(address))
        return account.balance if account else 0

    def fund(self, address: str, amount: int) -> None:
        """Credit native balance out of thin air (genesis / tests)."""
        if amount < 0:
            raise ValidationError("Fund amount cannot be negative")
        self._account(address).balance += amount

    def transfer_native(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Transfer amount cannot be negative")
        if amount == 0:
            return
        src = self._account(sender)
        if src.balance < amount:
            raise InsufficientNativeBalanceError(
                f"{src.address} has {src.balance}, needs {amount}"
            )
        src.balance -= amount
        self._account(recipient).balance += amount

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, sender: str, target: str, call_data: bytes = b'', value: int = 0) -> bytes:
        """
        Move *value* from *sender* to *target* and invoke the target's code.

        Raises:
            ExecutionFailedError: the target raised; value transfer undone.
            InsufficientNativeBalanceError: sender cannot cover *value*.
        """
        contract = self.code_at(target)
        if contract is None:
            self.transfer_native(sender, target, value)
            return b''

        snapshot = {addr: acct.balance for addr, acct in self._accounts.items()}
        self.transfer_native(sender, target, value)
        try:
            result = contract.on_call(to_checksum_address(sender), call_data, value)
        except Exception as e:
            self._restore_balances(snapshot)
            logger.warning(f"Call {sender} -> {target} reverted: {e}")
            raise ExecutionFailedError(f"Call to {target} failed: {e}") from e

        return result if result is not None else b''

    def _restore_balances(self, snapshot: Dict[str, int]) -> None:
        for address, account in self._accounts.items():
            account.balance = snapshot.get(address, 0)

    def __repr__(self) -> str:
        contracts = sum(1 for a in self._accounts.values() if a.is_contract)
        return f"<ContractHost accounts={len(self._accounts)} contracts={contracts}>"
