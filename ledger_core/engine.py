"""
Operation Engine Module

State transitions for every ledger operation: create customer, deposit,
withdraw, request loan and pay loan. Each operation takes the current
LedgerState and returns a new one; the state handed in is never modified.
Validation and business-rule failures raise before anything is built.

Deposits in a foreign currency are two-phase: the engine hands back a
Pending result carrying the conversion, and resolving it yields either
Applied or Failed.
"""

from decimal import Decimal
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional, Union

from .currency import Currency, parse_currency, to_amount
from .errors import (
    ConversionFailed, InvalidInput, LoanAlreadyActive, NoActiveLoan, NoCustomer
)
from .gateway import ConversionGateway, StaticRateGateway
from .logging_config import get_logger, log_action
from .recorder import TransactionRecorder
from .state import ZERO, CustomerProfile, LedgerState, TransactionType

logger = get_logger("ledger.engine")


@dataclass(frozen=True)
class Applied:
    """The operation took effect; state is the new ledger state"""
    state: LedgerState


@dataclass(frozen=True)
class Failed:
    """The conversion failed; state is the state the caller handed in, untouched"""
    state: LedgerState
    error: ConversionFailed


@dataclass(frozen=True)
class Pending:
    """
    A foreign-currency deposit waiting on conversion.

    state only differs from the input by is_loading = True. Awaiting
    resolve() performs the single gateway call. The applied state has
    is_loading cleared; callers running several conversions at once track
    the ones still outstanding, as LedgerSession does.
    """
    state: LedgerState
    amount: Decimal
    currency: Currency
    conversion: Callable[[], Awaitable[Decimal]] = field(repr=False, compare=False)
    completion: Callable[[LedgerState, Decimal], LedgerState] = field(repr=False, compare=False)

    async def resolve(
        self, get_state: Optional[Callable[[], LedgerState]] = None
    ) -> Union[Applied, Failed]:
        """
        Run the conversion and apply it.

        Args:
            get_state: Returns the ledger state current when the conversion
                comes back, so operations that ran meanwhile are kept.
                Defaults to the pending state.

        Returns:
            Applied with the credited state, or Failed carrying the
            current state unchanged and the conversion error
        """
        try:
            converted = await self.conversion()
        except ConversionFailed as error:
            current = get_state() if get_state else self.state
            log_action(
                logger, "warning", f"Conversion failed: {error}",
                action="deposit", resource="account",
                extra={"amount": str(self.amount), "currency": self.currency.code}
            )
            return Failed(current, error)

        current = get_state() if get_state else self.state
        return Applied(self.completion(current, converted))


DepositResult = Union[Applied, Pending]


class OperationEngine:
    """
    Applies ledger operations against a LedgerState.

    Every successful balance-affecting operation goes through the
    TransactionRecorder before the new state is returned.
    """

    def __init__(
        self,
        recorder: Optional[TransactionRecorder] = None,
        gateway: Optional[ConversionGateway] = None,
        base_currency: Currency = Currency.INR
    ):
        self.base_currency = base_currency
        self.recorder = recorder or TransactionRecorder()
        self.gateway = gateway or StaticRateGateway(base_currency)

        if self.gateway.base_currency != base_currency:
            raise ValueError(
                f"Gateway converts into {self.gateway.base_currency.code}, "
                f"ledger base currency is {base_currency.code}"
            )

    # Validation helpers

    def _positive_amount(self, value: Any, currency: Currency) -> Decimal:
        amount = to_amount(value, currency)
        if amount <= ZERO:
            raise InvalidInput(f"Amount must be positive, got {value!r}")
        return amount

    @staticmethod
    def _required_text(value: Any, field_name: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(f"{field_name} is required")
        return value.strip()

    # Customer operations

    def create_customer(self, state: LedgerState, full_name: str, national_id: str) -> LedgerState:
        """
        Create the ledger's customer.

        Calling this again replaces the existing profile.

        Raises:
            InvalidInput: If full_name or national_id is empty
        """
        full_name = self._required_text(full_name, "full_name")
        national_id = self._required_text(national_id, "national_id")

        if state.has_customer:
            logger.warning(f"Replacing existing customer profile for {state.customer.full_name}")

        profile = CustomerProfile(
            full_name=full_name,
            national_id=national_id,
            created_at=self.recorder.now()
        )
        log_action(
            logger, "info", "Customer created",
            action="create_customer", resource="customer",
            extra={"full_name": full_name}
        )
        return replace(state, customer=profile)

    def update_customer_name(self, state: LedgerState, full_name: str) -> LedgerState:
        """Rename the existing customer; national ID and creation time are kept"""
        full_name = self._required_text(full_name, "full_name")
        if not state.has_customer:
            raise NoCustomer("No customer to update")

        log_action(
            logger, "info", "Customer renamed",
            action="update_customer_name", resource="customer",
            extra={"full_name": full_name}
        )
        return replace(state, customer=replace(state.customer, full_name=full_name))

    # Account operations

    def deposit(self, state: LedgerState, amount: Any,
                currency: Union[str, Currency, None] = None) -> DepositResult:
        """
        Deposit money, converting it first when it is not in the base currency.

        Args:
            state: Current ledger state
            amount: Positive amount in `currency`
            currency: Currency code or Currency; None means the base currency

        Returns:
            Applied for base-currency deposits, Pending for foreign ones

        Raises:
            InvalidInput: If amount is not positive or currency is unsupported
        """
        currency = self.base_currency if currency is None else parse_currency(currency)
        value = self._positive_amount(amount, currency)

        if currency == self.base_currency:
            return Applied(self._apply_deposit(state, value, currency, value))

        loading = replace(state, account=replace(state.account, is_loading=True))
        log_action(
            logger, "info", f"Deposit of {value} {currency.code} waiting on conversion",
            action="deposit", resource="account",
            extra={"amount": str(value), "currency": currency.code}
        )
        return Pending(
            state=loading,
            amount=value,
            currency=currency,
            conversion=lambda: self.gateway.convert(value, currency),
            completion=lambda current, converted: self._apply_deposit(current, value, currency, converted)
        )

    def _apply_deposit(self, state: LedgerState, amount: Decimal,
                       currency: Currency, base_amount: Decimal) -> LedgerState:
        balance = state.balance + base_amount
        updated = replace(state, account=replace(state.account, balance=balance, is_loading=False))
        updated = self.recorder.record(
            updated, TransactionType.DEPOSIT, amount, balance, currency, base_amount=base_amount
        )
        log_action(
            logger, "info", "Deposit applied",
            action="deposit", resource="account",
            extra={
                "amount": str(amount),
                "currency": currency.code,
                "base_amount": str(base_amount),
                "balance_after": str(balance)
            }
        )
        return updated

    def withdraw(self, state: LedgerState, amount: Any) -> LedgerState:
        """
        Withdraw money in the base currency.

        The balance is allowed to go negative.

        Raises:
            InvalidInput: If amount is not positive
        """
        value = self._positive_amount(amount, self.base_currency)
        balance = state.balance - value

        updated = replace(state, account=replace(state.account, balance=balance))
        updated = self.recorder.record(
            updated, TransactionType.WITHDRAW, value, balance, self.base_currency
        )
        if balance < ZERO:
            logger.info(f"Balance overdrawn to {balance}")
        log_action(
            logger, "info", "Withdrawal applied",
            action="withdraw", resource="account",
            extra={"amount": str(value), "balance_after": str(balance)}
        )
        return updated

    # Loan operations

    def request_loan(self, state: LedgerState, amount: Any, purpose: str) -> LedgerState:
        """
        Grant a loan and credit it to the balance immediately.

        Raises:
            InvalidInput: If amount is not positive or purpose is empty
            LoanAlreadyActive: If a loan is outstanding
        """
        value = self._positive_amount(amount, self.base_currency)
        purpose = self._required_text(purpose, "purpose")

        if state.account.has_active_loan:
            raise LoanAlreadyActive(
                f"A loan of {state.loan} for '{state.loan_purpose}' is already active"
            )

        balance = state.balance + value
        account = replace(state.account, balance=balance, loan=value, loan_purpose=purpose)
        updated = replace(state, account=account)
        updated = self.recorder.record(
            updated, TransactionType.LOAN_GRANTED, value, balance, self.base_currency,
            meta={"purpose": purpose}
        )
        log_action(
            logger, "info", "Loan granted",
            action="request_loan", resource="loan",
            extra={"amount": str(value), "purpose": purpose, "balance_after": str(balance)}
        )
        return updated

    def pay_loan(self, state: LedgerState) -> LedgerState:
        """
        Repay the whole active loan from the balance.

        Raises:
            NoActiveLoan: If there is no loan to pay
        """
        if not state.account.has_active_loan:
            raise NoActiveLoan("There is no active loan to pay back")

        repaid = state.loan
        purpose = state.loan_purpose
        balance = state.balance - repaid

        account = replace(state.account, balance=balance, loan=ZERO, loan_purpose="")
        updated = replace(state, account=account)
        updated = self.recorder.record(
            updated, TransactionType.LOAN_PAID, repaid, balance, self.base_currency,
            meta={"purpose": purpose}
        )
        log_action(
            logger, "info", "Loan paid back",
            action="pay_loan", resource="loan",
            extra={"amount": str(repaid), "purpose": purpose, "balance_after": str(balance)}
        )
        return updated

    # History

    def clear_transactions(self, state: LedgerState) -> LedgerState:
        """Erase the transaction history; balance and loan are untouched"""
        log_action(
            logger, "info", "Transaction history cleared",
            action="clear_transactions", resource="transactions",
            extra={"count": len(state.transactions)}
        )
        return self.recorder.clear(state)
