"""
Transaction Recorder Module

Builds the immutable Transaction record for every successful mutating
operation and prepends it to the log, so the most recent entry comes first.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import replace
from typing import Callable, Dict, Optional, Any
import uuid

from .currency import Currency
from .state import LedgerState, Transaction, TransactionType


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class TransactionRecorder:
    """
    Appends entries to the transaction log of a LedgerState.

    The clock and id factory are injectable so tests can pin timestamps and
    identifiers.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self._clock = clock or _utc_now
        self._id_factory = id_factory or _new_id

    def now(self) -> datetime:
        """Current time according to the recorder's clock"""
        return self._clock()

    def record(
        self,
        state: LedgerState,
        transaction_type: TransactionType,
        amount: Decimal,
        balance_after: Decimal,
        currency: Currency,
        base_amount: Optional[Decimal] = None,
        meta: Optional[Dict[str, Any]] = None
    ) -> LedgerState:
        """
        Record one transaction.

        Args:
            state: State whose log receives the entry
            transaction_type: Kind of balance-affecting event
            amount: Amount as submitted by the caller
            balance_after: Balance once the operation was applied
            currency: Currency of amount
            base_amount: Amount in base currency, defaults to amount
            meta: Extra details such as the loan purpose

        Returns:
            New LedgerState with the entry first in its transaction log
        """
        transaction = Transaction(
            id=self._id_factory(),
            type=transaction_type,
            amount=amount,
            currency=currency,
            base_amount=amount if base_amount is None else base_amount,
            balance_after=balance_after,
            meta=dict(meta or {}),
            created_at=self._clock(),
        )
        return replace(state, transactions=(transaction,) + state.transactions)

    def clear(self, state: LedgerState) -> LedgerState:
        """Empty the transaction log"""
        return replace(state, transactions=())
