"""
Ledger Session Module

The interface boundary of the ledger. A LedgerSession owns the current
LedgerState, runs operations through the OperationEngine, swaps in the
resulting state and then notifies its post-commit hooks. Persistence is one
such hook, registered explicitly by open().
"""

from dataclasses import replace
from decimal import Decimal
from threading import RLock
from typing import Any, Callable, List, Optional, Tuple, Union

from .config import LedgerConfig, get_config
from .currency import Currency, format_amount, parse_currency
from .engine import Failed, OperationEngine, Pending
from .errors import NoCustomer, UnknownOperation
from .gateway import ConversionGateway, FrankfurterGateway
from .logging_config import configure_logging, get_logger, log_action
from .persistence import LedgerPersistence
from .recorder import TransactionRecorder
from .state import CustomerProfile, LedgerState, Transaction
from .storage import KeyValueStore, create_store

CommitHook = Callable[[str, LedgerState], None]


# Names accepted by dispatch(), mapped to session methods
OPERATIONS = {
    "create_customer": "create_customer",
    "createCustomer": "create_customer",
    "update_customer_name": "update_customer_name",
    "updateCustomer": "update_customer_name",
    "deposit": "deposit",
    "withdraw": "withdraw",
    "request_loan": "request_loan",
    "requestLoan": "request_loan",
    "pay_loan": "pay_loan",
    "payLoan": "pay_loan",
    "clear_transactions": "clear_transactions",
    "clear": "clear_transactions",
}


class LedgerSession:
    """
    Single-writer access to one ledger.

    Banking operations (deposit, withdraw, loans) require a customer.
    Validation and business-rule errors propagate to the caller with the
    session state unchanged.
    """

    def __init__(
        self,
        engine: OperationEngine,
        state: Optional[LedgerState] = None,
        persistence: Optional[LedgerPersistence] = None
    ):
        self.engine = engine
        self.persistence = persistence
        self._state = state if state is not None else LedgerState.initial()
        self._hooks: List[CommitHook] = []
        self._pending_conversions = 0
        self._lock = RLock()
        self.logger = get_logger("ledger.session")

    @classmethod
    def open(
        cls,
        config: Optional[LedgerConfig] = None,
        store: Optional[KeyValueStore] = None,
        gateway: Optional[ConversionGateway] = None,
        recorder: Optional[TransactionRecorder] = None
    ) -> 'LedgerSession':
        """
        Build a session from configuration and restore the last snapshot.

        Args:
            config: Configuration, defaults to the global one
            store: Key-value store, defaults to the configured backend
            gateway: Conversion gateway, defaults to the configured HTTP service
            recorder: Transaction recorder, defaults to a UTC/uuid4 one

        Returns:
            Session seeded from the stored snapshot or the initial state,
            saving a new snapshot after every committed operation
        """
        config = config or get_config()
        configure_logging(config)
        base_currency = parse_currency(config.base_currency)

        if gateway is None:
            gateway = FrankfurterGateway(
                base_url=config.conversion_url,
                base_currency=base_currency,
                timeout=config.conversion_timeout
            )
        if store is None:
            store = create_store(config)

        persistence = LedgerPersistence(store, key=config.storage_key)
        state = persistence.load_or_default()

        # A conversion cannot outlive the process that started it
        if state.is_loading:
            state = replace(state, account=replace(state.account, is_loading=False))
            get_logger("ledger.session").info("Cleared loading flag left by an interrupted conversion")

        engine = OperationEngine(recorder=recorder, gateway=gateway, base_currency=base_currency)
        session = cls(engine, state=state, persistence=persistence)
        session.add_commit_hook(session._persist)
        return session

    # Hooks

    def add_commit_hook(self, hook: CommitHook) -> None:
        """Call hook(operation, state) after every committed operation"""
        with self._lock:
            self._hooks.append(hook)

    def remove_commit_hook(self, hook: CommitHook) -> None:
        with self._lock:
            try:
                self._hooks.remove(hook)
            except ValueError:
                self.logger.warning(f"Hook {getattr(hook, '__name__', repr(hook))} was not registered")

    def _persist(self, operation: str, state: LedgerState) -> None:
        if self.persistence is not None:
            self.persistence.save(state)

    def _commit(self, operation: str, state: LedgerState) -> LedgerState:
        with self._lock:
            self._state = state
            hooks = list(self._hooks)

        for hook in hooks:
            try:
                hook(operation, state)
            except Exception as e:
                # Log but don't break the committed operation
                self.logger.error(
                    f"Error in commit hook {getattr(hook, '__name__', repr(hook))} after {operation}: {e}"
                )
        return state

    def _require_customer(self, operation: str) -> None:
        if not self._state.has_customer:
            raise NoCustomer(f"Create a customer before calling {operation}")

    # Read accessors

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def balance(self) -> Decimal:
        return self._state.balance

    @property
    def loan(self) -> Decimal:
        return self._state.loan

    @property
    def loan_purpose(self) -> str:
        return self._state.loan_purpose

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def customer(self) -> CustomerProfile:
        return self._state.customer

    @property
    def has_customer(self) -> bool:
        return self._state.has_customer

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        """Transaction log, newest first"""
        return self._state.transactions

    @property
    def base_currency(self) -> Currency:
        return self.engine.base_currency

    @property
    def formatted_balance(self) -> str:
        """Balance for display, e.g. '₹1,250.00'"""
        return format_amount(self._state.balance, self.engine.base_currency)

    # Operations

    def create_customer(self, full_name: str, national_id: str) -> LedgerState:
        return self._commit(
            "create_customer",
            self.engine.create_customer(self._state, full_name, national_id)
        )

    def update_customer_name(self, full_name: str) -> LedgerState:
        return self._commit(
            "update_customer_name",
            self.engine.update_customer_name(self._state, full_name)
        )

    async def deposit(self, amount: Any, currency: Union[str, Currency, None] = None) -> LedgerState:
        """
        Deposit money, awaiting conversion for foreign currencies.

        While the conversion is in flight the session shows is_loading and
        other operations may run; the converted amount is credited to the
        state current when the conversion returns. is_loading stays set until
        every in-flight conversion has returned.

        Raises:
            InvalidInput: If amount or currency is invalid
            NoCustomer: If no customer exists
            ConversionUnavailable, ConversionMalformed: If the conversion
                failed; nothing is credited and is_loading stays set
        """
        self._require_customer("deposit")
        result = self.engine.deposit(self._state, amount, currency)

        if isinstance(result, Pending):
            with self._lock:
                self._pending_conversions += 1
            self._commit("deposit_pending", result.state)
            try:
                result = await result.resolve(lambda: self._state)
            finally:
                with self._lock:
                    self._pending_conversions -= 1

        if isinstance(result, Failed):
            raise result.error

        state = result.state
        if self._pending_conversions and not state.is_loading:
            # Another conversion is still in flight
            state = replace(state, account=replace(state.account, is_loading=True))
        return self._commit("deposit", state)

    def withdraw(self, amount: Any) -> LedgerState:
        self._require_customer("withdraw")
        return self._commit("withdraw", self.engine.withdraw(self._state, amount))

    def request_loan(self, amount: Any, purpose: str) -> LedgerState:
        self._require_customer("request_loan")
        return self._commit("request_loan", self.engine.request_loan(self._state, amount, purpose))

    def pay_loan(self) -> LedgerState:
        self._require_customer("pay_loan")
        return self._commit("pay_loan", self.engine.pay_loan(self._state))

    def clear_transactions(self) -> LedgerState:
        return self._commit("clear_transactions", self.engine.clear_transactions(self._state))

    def dispatch(self, operation: str, *args, **kwargs):
        """
        Run an operation by name.

        Returns whatever the operation returns; for deposit that is a
        coroutine the caller must await.

        Raises:
            UnknownOperation: If operation is not a ledger operation
        """
        method_name = OPERATIONS.get(operation)
        if method_name is None:
            log_action(
                self.logger, "warning", f"Rejected unknown operation {operation!r}",
                action="dispatch", resource="session"
            )
            raise UnknownOperation(f"Unknown operation: {operation!r}")
        return getattr(self, method_name)(*args, **kwargs)

    async def aclose(self) -> None:
        """Close the conversion gateway and the snapshot store"""
        await self.engine.gateway.aclose()
        if self.persistence is not None:
            self.persistence.store.close()
