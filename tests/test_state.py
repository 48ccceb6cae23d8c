"""
Tests for ledger state records and the transaction recorder
"""

import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from ledger_core.currency import Currency
from ledger_core.recorder import TransactionRecorder
from ledger_core.state import (
    AccountState, CustomerProfile, LedgerState, Transaction, TransactionType
)


class TestLedgerState:
    """Test the state tree"""

    def test_initial_state(self):
        state = LedgerState.initial()

        assert state.balance == Decimal('0')
        assert state.loan == Decimal('0')
        assert state.loan_purpose == ""
        assert state.is_loading is False
        assert state.has_customer is False
        assert state.transactions == ()
        assert state.latest_transaction is None

    def test_state_is_immutable(self):
        state = LedgerState.initial()

        with pytest.raises(FrozenInstanceError):
            state.account = AccountState(balance=Decimal('10'))
        with pytest.raises(FrozenInstanceError):
            state.account.balance = Decimal('10')

    def test_customer_exists_only_with_name(self):
        assert not CustomerProfile().exists
        assert CustomerProfile(full_name="Jane Doe", national_id="X123").exists

    @pytest.mark.parametrize("loan,purpose", [
        (Decimal('-1'), ""),
        (Decimal('100'), ""),
        (Decimal('0'), "car"),
    ])
    def test_account_loan_invariant(self, loan, purpose):
        with pytest.raises(ValueError):
            AccountState(loan=loan, loan_purpose=purpose)

    def test_negative_balance_allowed(self):
        account = AccountState(balance=Decimal('-200'))
        assert account.balance == Decimal('-200')
        assert not account.has_active_loan

    def test_to_dict_uses_strings_for_money(self):
        account = AccountState(balance=Decimal('12.50'), loan=Decimal('300'), loan_purpose="car")
        data = LedgerState(account=account).to_dict()

        assert data["account"] == {
            "balance": "12.50", "loan": "300", "loan_purpose": "car", "is_loading": False
        }
        assert data["customer"]["created_at"] is None
        assert data["transactions"] == []


class TestTransactionRecorder:
    """Test transaction log entries"""

    def setup_method(self):
        self.start = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        self.ticks = 0
        self.ids = iter(f"tx-{i}" for i in range(1, 100))

        def clock():
            self.ticks += 1
            return self.start + timedelta(seconds=self.ticks)

        self.recorder = TransactionRecorder(clock=clock, id_factory=lambda: next(self.ids))

    def test_record_prepends_entry(self):
        state = LedgerState.initial()
        state = self.recorder.record(state, TransactionType.DEPOSIT, Decimal('500'), Decimal('500'), Currency.INR)
        state = self.recorder.record(
            state, TransactionType.LOAN_GRANTED, Decimal('300'), Decimal('800'), Currency.INR,
            meta={"purpose": "car"}
        )

        assert [tx.id for tx in state.transactions] == ["tx-2", "tx-1"]
        latest = state.latest_transaction
        assert latest.type == TransactionType.LOAN_GRANTED
        assert latest.purpose == "car"
        assert latest.balance_after == Decimal('800')
        assert latest.created_at > state.transactions[1].created_at

    def test_base_amount_defaults_to_amount(self):
        state = self.recorder.record(
            LedgerState.initial(), TransactionType.WITHDRAW, Decimal('20'), Decimal('-20'), Currency.INR
        )
        tx = state.latest_transaction

        assert tx.base_amount == Decimal('20')
        assert tx.purpose is None
        assert tx.meta == {}

    def test_foreign_amount_keeps_both_values(self):
        state = self.recorder.record(
            LedgerState.initial(), TransactionType.DEPOSIT, Decimal('10.00'), Decimal('832.50'),
            Currency.USD, base_amount=Decimal('832.50')
        )
        tx = state.latest_transaction

        assert tx.amount == Decimal('10.00')
        assert tx.currency == Currency.USD
        assert tx.base_amount == Decimal('832.50')

    def test_record_does_not_touch_input(self):
        state = LedgerState.initial()
        self.recorder.record(state, TransactionType.DEPOSIT, Decimal('1'), Decimal('1'), Currency.INR)

        assert state.transactions == ()

    def test_clear(self):
        state = self.recorder.record(
            LedgerState.initial(), TransactionType.DEPOSIT, Decimal('1'), Decimal('1'), Currency.INR
        )
        assert self.recorder.clear(state).transactions == ()

    def test_default_clock_and_ids(self):
        recorder = TransactionRecorder()
        state = LedgerState.initial()
        state = recorder.record(state, TransactionType.DEPOSIT, Decimal('1'), Decimal('1'), Currency.INR)
        state = recorder.record(state, TransactionType.DEPOSIT, Decimal('1'), Decimal('2'), Currency.INR)

        first, second = state.transactions
        assert first.id != second.id
        assert first.created_at.tzinfo is not None

    def test_transaction_dict_round_trip(self):
        tx = Transaction(
            id="tx-1", type=TransactionType.LOAN_PAID, amount=Decimal('300.00'),
            currency=Currency.INR, base_amount=Decimal('300.00'), balance_after=Decimal('-100.00'),
            created_at=self.start, meta={"purpose": "car"}
        )
        data = tx.to_dict()

        assert data["type"] == "loanPaid"
        assert data["currency"] == "INR"
        assert Transaction.from_dict(data) == tx
