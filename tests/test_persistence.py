"""
Tests for snapshot persistence

Saving and loading must reproduce the exact LedgerState, and nothing the
store returns or raises may crash the caller.
"""

import json
import pytest
from decimal import Decimal
from datetime import datetime, timezone

from ledger_core.currency import Currency, ExchangeRate
from ledger_core.engine import OperationEngine
from ledger_core.errors import PersistenceUnavailable
from ledger_core.gateway import StaticRateGateway
from ledger_core.persistence import LedgerPersistence
from ledger_core.state import LedgerState
from ledger_core.storage import InMemoryStore


class BrokenStore(InMemoryStore):
    """Store whose every access fails, like a full or locked backend"""

    def get(self, key):
        raise PersistenceUnavailable("disk unavailable")

    def set(self, key, value):
        raise PersistenceUnavailable("quota exceeded")

    def delete(self, key):
        raise PersistenceUnavailable("disk unavailable")


def populated_state():
    now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    engine = OperationEngine(
        gateway=StaticRateGateway(Currency.INR, [
            ExchangeRate(Currency.USD, Currency.INR, Decimal('83.25'), now)
        ])
    )
    state = engine.create_customer(LedgerState.initial(), "Jane Doe", "X123")
    state = engine.deposit(state, "1250.75").state
    state = engine.request_loan(state, 300, "car")
    state = engine.withdraw(state, 2000)
    return state


class TestRoundTrip:
    """Test save then load reproduces the state"""

    def test_populated_state_round_trip(self):
        persistence = LedgerPersistence(InMemoryStore())
        state = populated_state()

        assert persistence.save(state) is True
        loaded = persistence.load()

        assert loaded == state
        assert loaded.balance == Decimal('-449.25')
        assert loaded.loan_purpose == "car"
        assert loaded.transactions[0].created_at.tzinfo is not None

    def test_initial_state_round_trip(self):
        persistence = LedgerPersistence(InMemoryStore())
        persistence.save(LedgerState.initial())

        assert persistence.load() == LedgerState.initial()

    def test_loading_flag_round_trip(self):
        persistence = LedgerPersistence(InMemoryStore())
        state = populated_state()
        engine = OperationEngine()
        pending = engine.deposit(state, 10, "USD")

        persistence.save(pending.state)

        assert persistence.load() == pending.state
        assert persistence.load().is_loading

    def test_save_overwrites_previous_snapshot(self):
        store = InMemoryStore()
        persistence = LedgerPersistence(store, key="snap")
        persistence.save(populated_state())
        persistence.save(LedgerState.initial())

        assert store.keys() == ["snap"]
        assert persistence.load() == LedgerState.initial()

    def test_snapshot_is_json_document(self):
        store = InMemoryStore()
        LedgerPersistence(store).save(populated_state())

        document = json.loads(store.get("ledger_state"))
        assert document["version"] == 1
        assert document["account"]["balance"] == "-449.25"
        assert document["customer"]["full_name"] == "Jane Doe"
        assert [tx["type"] for tx in document["transactions"]] == ["withdraw", "loanGranted", "deposit"]


class TestCorruptStorage:
    """Test absent or corrupt snapshots load as nothing"""

    def test_absent_snapshot(self):
        persistence = LedgerPersistence(InMemoryStore())

        assert persistence.load() is None
        assert persistence.load_or_default() == LedgerState.initial()

    @pytest.mark.parametrize("blob", [
        "",
        "not json at all",
        "[]",
        "null",
        '{"customer": {}}',
        '{"customer": {"full_name": "", "national_id": ""}, "account": {"balance": "abc", "loan": "0", "loan_purpose": ""}}',
        '{"customer": {"full_name": "", "national_id": ""}, "account": {"balance": "0", "loan": "-5", "loan_purpose": ""}}',
        '{"customer": {"full_name": "", "national_id": ""}, "account": {"balance": "0", "loan": "100", "loan_purpose": ""}}',
        '{"version": 99, "customer": {"full_name": "", "national_id": ""}, "account": {"balance": "0", "loan": "0", "loan_purpose": ""}}',
        '{"customer": {"full_name": "A", "national_id": "B", "created_at": "yesterday"}, "account": {"balance": "0", "loan": "0", "loan_purpose": ""}}',
    ])
    def test_corrupt_snapshot_loads_as_default(self, blob):
        persistence = LedgerPersistence(InMemoryStore({"ledger_state": blob}))

        assert persistence.load() is None
        assert persistence.load_or_default() == LedgerState.initial()

    @pytest.mark.parametrize("blob", ["[" * 100000, '{"a":' * 100000])
    def test_deeply_nested_snapshot_loads_as_default(self, blob):
        persistence = LedgerPersistence(InMemoryStore({"ledger_state": blob}))

        assert persistence.load() is None
        assert persistence.load_or_default() == LedgerState.initial()

    def test_deeply_nested_snapshot_is_rejected_by_deserialize(self):
        with pytest.raises(ValueError, match="nested"):
            LedgerPersistence(InMemoryStore()).deserialize("[" * 100000)

    def test_corrupt_transaction_loads_as_default(self):
        store = InMemoryStore()
        LedgerPersistence(store).save(populated_state())

        document = json.loads(store.get("ledger_state"))
        document["transactions"][0]["currency"] = "XYZ"
        store.set("ledger_state", json.dumps(document))

        assert LedgerPersistence(store).load() is None

    def test_unknown_transaction_type_loads_as_default(self):
        store = InMemoryStore()
        LedgerPersistence(store).save(populated_state())

        document = json.loads(store.get("ledger_state"))
        document["transactions"][0]["type"] = "transfer"
        store.set("ledger_state", json.dumps(document))

        assert LedgerPersistence(store).load() is None


class TestStorageFailures:
    """Test storage failures never escape the adapter"""

    def test_failed_read_is_absence(self):
        persistence = LedgerPersistence(BrokenStore())

        assert persistence.load() is None
        assert persistence.load_or_default() == LedgerState.initial()

    def test_failed_write_is_swallowed(self):
        persistence = LedgerPersistence(BrokenStore())

        assert persistence.save(populated_state()) is False

    def test_failed_clear_is_swallowed(self):
        assert LedgerPersistence(BrokenStore()).clear() is False

    def test_clear(self):
        store = InMemoryStore()
        persistence = LedgerPersistence(store)
        persistence.save(populated_state())

        assert persistence.clear() is True
        assert persistence.load() is None
