"""
Ledger State Module

Immutable records for the single customer profile, the account and the
transaction log. The whole LedgerState tree is what gets persisted; all
monetary values are Decimal and serialize as strings.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Dict, Optional, Any, Tuple
from enum import Enum

from .currency import Currency


ZERO = Decimal('0')


class TransactionType(Enum):
    """Balance-affecting events recorded in the log"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    LOAN_GRANTED = "loanGranted"
    LOAN_PAID = "loanPaid"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class CustomerProfile:
    """
    The one customer of the ledger. An empty full_name means no customer
    has been created yet.
    """
    full_name: str = ""
    national_id: str = ""
    created_at: Optional[datetime] = None

    @property
    def exists(self) -> bool:
        return self.full_name != ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_name": self.full_name,
            "national_id": self.national_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomerProfile':
        return cls(
            full_name=data["full_name"],
            national_id=data["national_id"],
            created_at=_parse_datetime(data.get("created_at")),
        )


@dataclass(frozen=True)
class AccountState:
    """
    Balance and loan status.

    balance has no floor. loan is 0 when no loan is active and loan_purpose
    is non-empty exactly when loan > 0. is_loading is set while a foreign
    currency deposit waits on conversion.
    """
    balance: Decimal = ZERO
    loan: Decimal = ZERO
    loan_purpose: str = ""
    is_loading: bool = False

    def __post_init__(self):
        if self.loan < ZERO:
            raise ValueError("Loan amount cannot be negative")
        if (self.loan > ZERO) != (self.loan_purpose != ""):
            raise ValueError("Loan purpose must be set exactly when a loan is active")

    @property
    def has_active_loan(self) -> bool:
        return self.loan > ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance": str(self.balance),
            "loan": str(self.loan),
            "loan_purpose": self.loan_purpose,
            "is_loading": self.is_loading,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccountState':
        return cls(
            balance=Decimal(str(data["balance"])),
            loan=Decimal(str(data["loan"])),
            loan_purpose=data["loan_purpose"],
            is_loading=bool(data["is_loading"]),
        )


@dataclass(frozen=True)
class Transaction:
    """
    Immutable record of one successful balance-affecting operation.

    amount and currency are what the caller submitted; base_amount is the
    same value in the base currency and balance_after is the balance once
    the operation was applied.
    """
    id: str
    type: TransactionType
    amount: Decimal
    currency: Currency
    base_amount: Decimal
    balance_after: Decimal
    created_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def purpose(self) -> Optional[str]:
        return self.meta.get("purpose")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "amount": str(self.amount),
            "currency": self.currency.code,
            "base_amount": str(self.base_amount),
            "balance_after": str(self.balance_after),
            "meta": dict(self.meta),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        return cls(
            id=data["id"],
            type=TransactionType(data["type"]),
            amount=Decimal(str(data["amount"])),
            currency=Currency[data["currency"]],
            base_amount=Decimal(str(data["base_amount"])),
            balance_after=Decimal(str(data["balance_after"])),
            meta=dict(data.get("meta") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class LedgerState:
    """Root of the state tree: customer, account and newest-first transactions"""
    customer: CustomerProfile = field(default_factory=CustomerProfile)
    account: AccountState = field(default_factory=AccountState)
    transactions: Tuple[Transaction, ...] = ()

    @classmethod
    def initial(cls) -> 'LedgerState':
        """Default state used when no snapshot is available"""
        return cls()

    # Read-only projections

    @property
    def balance(self) -> Decimal:
        return self.account.balance

    @property
    def loan(self) -> Decimal:
        return self.account.loan

    @property
    def loan_purpose(self) -> str:
        return self.account.loan_purpose

    @property
    def is_loading(self) -> bool:
        return self.account.is_loading

    @property
    def has_customer(self) -> bool:
        return self.customer.exists

    @property
    def latest_transaction(self) -> Optional[Transaction]:
        return self.transactions[0] if self.transactions else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the full tree to JSON-compatible primitives"""
        return {
            "customer": self.customer.to_dict(),
            "account": self.account.to_dict(),
            "transactions": [tx.to_dict() for tx in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerState':
        return cls(
            customer=CustomerProfile.from_dict(data["customer"]),
            account=AccountState.from_dict(data["account"]),
            transactions=tuple(Transaction.from_dict(tx) for tx in data.get("transactions", [])),
        )
