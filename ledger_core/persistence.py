"""
Persistence Adapter Module

Writes the full LedgerState as one JSON snapshot under a single key and
reads it back on startup. Persistence is best-effort: unreadable or corrupt
snapshots load as "nothing stored" and failed writes are logged and dropped,
never surfacing in the outcome of the operation that triggered them.
"""

import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import PersistenceUnavailable
from .logging_config import get_logger, log_action
from .state import LedgerState
from .storage import KeyValueStore

SNAPSHOT_VERSION = 1

logger = get_logger("ledger.persistence")


class CustomerSnapshot(BaseModel):
    full_name: str
    national_id: str
    created_at: Optional[str] = None


class AccountSnapshot(BaseModel):
    balance: Decimal
    loan: Decimal = Field(..., ge=0)
    loan_purpose: str
    is_loading: bool = False


class TransactionSnapshot(BaseModel):
    id: str
    type: str
    amount: Decimal
    currency: str
    base_amount: Decimal
    balance_after: Decimal
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class LedgerSnapshot(BaseModel):
    """Schema a stored snapshot must satisfy to be loaded"""
    version: int = SNAPSHOT_VERSION
    customer: CustomerSnapshot
    account: AccountSnapshot
    transactions: List[TransactionSnapshot] = Field(default_factory=list)


class LedgerPersistence:
    """Snapshot persistence of a LedgerState onto a KeyValueStore"""

    def __init__(self, store: KeyValueStore, key: str = "ledger_state"):
        self.store = store
        self.key = key

    def serialize(self, state: LedgerState) -> str:
        """Serialize the full state tree to a JSON document"""
        document = {"version": SNAPSHOT_VERSION}
        document.update(state.to_dict())
        return json.dumps(document)

    def deserialize(self, blob: str) -> LedgerState:
        """
        Rebuild a LedgerState from a JSON document.

        Raises:
            ValueError: If the document is not JSON or not a valid snapshot
        """
        try:
            document = json.loads(blob)
        except RecursionError as e:
            raise ValueError("Snapshot is nested too deeply") from e
        snapshot = LedgerSnapshot.model_validate(document)
        if snapshot.version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version {snapshot.version}")
        try:
            return LedgerState.from_dict(snapshot.model_dump(mode="json"))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid snapshot: {e}") from e

    def load(self) -> Optional[LedgerState]:
        """
        Load the stored snapshot.

        Returns:
            The stored LedgerState, or None if nothing usable is stored
        """
        try:
            blob = self.store.get(self.key)
        except Exception as e:
            logger.warning(f"Could not read snapshot {self.key}: {e}")
            return None

        if blob is None:
            logger.debug(f"No snapshot stored under {self.key}")
            return None

        try:
            state = self.deserialize(blob)
        except (ValueError, RecursionError) as e:
            logger.warning(f"Ignoring unreadable snapshot {self.key}: {e}")
            return None

        log_action(
            logger, "info", "Snapshot loaded",
            action="load", resource=f"snapshot:{self.key}",
            extra={"transactions": len(state.transactions)}
        )
        return state

    def load_or_default(self) -> LedgerState:
        """Load the stored snapshot, falling back to the initial state"""
        state = self.load()
        return state if state is not None else LedgerState.initial()

    def save(self, state: LedgerState) -> bool:
        """
        Overwrite the stored snapshot with state.

        Returns:
            True if the write went through, False if it was dropped
        """
        try:
            self.store.set(self.key, self.serialize(state))
        except Exception as e:
            logger.error(f"Snapshot write to {self.key} dropped: {e}")
            return False

        logger.debug(f"Snapshot written to {self.key}")
        return True

    def clear(self) -> bool:
        """Remove the stored snapshot"""
        try:
            return self.store.delete(self.key)
        except PersistenceUnavailable as e:
            logger.error(f"Could not remove snapshot {self.key}: {e}")
            return False
