"""Tests for party and supplier ledger generation."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from freight_ledger.ledger import (
    bill_payment_history,
    build_all_party_ledgers,
    build_party_ledger,
    build_supplier_ledger,
    filter_entries_by_status,
    ledger_summary,
    replace_party_ledger,
)
from freight_ledger.models import (
    Advance,
    Bill,
    BillTrip,
    MemoStatus,
    Party,
    PartyEntryType,
    SettlementStatus,
    SupplierEntryType,
)
from freight_ledger.payments import PaymentForm, apply_bill_payment


@pytest.fixture
def two_bills(party):
    """Two bills of one party; the first has an advance a day after its date."""
    first = Bill(
        id="bill-a",
        bill_no="B-100",
        bill_date=date(2024, 1, 5),
        party_id=party.id,
        trips=[BillTrip(origin="Salem", destination="Madurai", freight=Decimal("30000"))],
        advances=[Advance(amount=Decimal("5000"), date=date(2024, 1, 6))],
        balance=Decimal("25000"),
    )
    second = Bill(
        id="bill-b",
        bill_no="B-101",
        bill_date=date(2024, 1, 10),
        party_id=party.id,
        trips=[BillTrip(origin="Salem", destination="Trichy", freight=Decimal("12000"))],
        balance=Decimal("12000"),
    )
    return first, second


class TestPartyLedgerOrdering:
    """Tests for party ledger entry order."""

    def test_bill_credit_advance_then_next_bill(self, party, two_bills):
        """Test entries follow bill date, then type, whatever the input order."""
        first, second = two_bills

        for bills in ([first, second], [second, first]):
            ledger = build_party_ledger(party, bills, [])

            assert [e.id for e in ledger.entries] == [
                "bill-a_bill_credit",
                "bill-a_advance_0",
                "bill-b_bill_credit",
            ]

    def test_deductions_follow_their_payment(self, party, two_bills):
        """Test a payment's deduction rows come right after it."""
        first, second = two_bills
        form = PaymentForm(
            payment_date=date(2024, 1, 20),
            received_amount=Decimal("24000"),
            tds_deduction=Decimal("1000"),
        )
        paid = apply_bill_payment(first, form, now=datetime(2024, 1, 20, tzinfo=UTC))

        ledger = build_party_ledger(party, [second, paid.updated_bill], [])

        assert [e.type for e in ledger.entries] == [
            PartyEntryType.BILL_CREDIT,
            PartyEntryType.ADVANCE_DEBIT,
            PartyEntryType.PAYMENT_DEBIT,
            PartyEntryType.DEDUCTION_DEBIT,
            PartyEntryType.BILL_CREDIT,
        ]

    def test_running_balance(self, party, two_bills):
        """Test each row carries the cumulative credit minus debit."""
        ledger = build_party_ledger(party, list(two_bills), [])

        assert [e.running_balance for e in ledger.entries] == [
            Decimal("30000"),
            Decimal("25000"),
            Decimal("37000"),
        ]
        assert ledger.outstanding_balance == Decimal("37000")


class TestPartyLedgerTotals:
    """Tests for totals, buckets and conservation."""

    def test_scenario_bill(self, party, bill):
        """Test the outstanding balance equals the bill balance."""
        ledger = build_party_ledger(party, [bill], [])

        assert ledger.id == "auto_party-1"
        assert ledger.total_bill_amount == Decimal("51500")
        assert ledger.total_advances == Decimal("10000")
        assert ledger.outstanding_balance == Decimal("41500")
        assert ledger.pending_bills == 1
        assert ledger.entries[0].particulars == "Bill Amount - Chennai to Bangalore"

    def test_full_payment_clears_outstanding(self, party, bill):
        """Test a full payment leaves nothing outstanding."""
        form = PaymentForm(payment_date=date(2024, 1, 20), received_amount=Decimal("41500"))
        result = apply_bill_payment(bill, form)

        ledger = build_party_ledger(party, [result.updated_bill], [])

        assert ledger.outstanding_balance == Decimal("0")
        assert ledger.total_paid == Decimal("41500")
        assert ledger.paid_bills == 1
        assert ledger.pending_bills == 0

    def test_conservation(self, party, bill, two_bills):
        """Test outstanding = billed - advances - paid - deductions."""
        form = PaymentForm(
            payment_date=date(2024, 1, 20),
            received_amount=Decimal("20000"),
            other_deduction=Decimal("250"),
        )
        partly_paid = apply_bill_payment(bill, form).updated_bill

        ledger = build_party_ledger(party, [partly_paid, *two_bills], [])

        assert ledger.outstanding_balance == (
            ledger.total_bill_amount
            - ledger.total_advances
            - ledger.total_paid
            - ledger.total_deductions
        )
        assert ledger.partially_paid_bills == 1
        assert ledger.pending_bills == 2
        assert ledger.paid_bills + ledger.pending_bills + ledger.partially_paid_bills == 3

    def test_rebuild_is_idempotent(self, party, bill, two_bills):
        """Test rebuilding from the same records gives the same ledger."""
        bills = [bill, *two_bills]

        assert build_party_ledger(party, bills, []) == build_party_ledger(party, bills, [])

    def test_party_without_bills(self, party):
        ledger = build_party_ledger(party, [], [])

        assert ledger.entries == []
        assert ledger.outstanding_balance == Decimal("0")

    def test_other_parties_bills_ignored(self, party, bill):
        other = Party(id="party-2", name="Other")

        ledgers = build_all_party_ledgers([party, other], [bill], [])

        assert [ledger.party_id for ledger in ledgers] == ["party-1"]


class TestBankReceipts:
    """Tests for bank entries settling bills."""

    def test_bank_receipt_posts_payment(self, party, bill, make_bank_entry):
        """Test a linked bank credit becomes a payment row."""
        receipt = make_bank_entry("bank-1", "5000", date(2024, 1, 15), related_id="bill-1")

        ledger = build_party_ledger(party, [bill], [receipt])

        assert ledger.entries[-1].id == "bank-1_payment"
        assert ledger.entries[-1].debit_amount == Decimal("5000")
        assert ledger.outstanding_balance == Decimal("36500")
        assert ledger.partially_paid_bills == 1

    def test_receipt_resolved_by_bill_number(self, party, bill, make_bank_entry):
        receipt = make_bank_entry(
            "bank-1", "5000", date(2024, 1, 15), category="advance", related_name="B-001"
        )

        ledger = build_party_ledger(party, [bill], [receipt])

        assert ledger.total_paid == Decimal("5000")

    def test_advance_recorded_twice_counted_once(self, party, bill, make_bank_entry):
        """Test a bank entry matching an embedded advance is not posted again."""
        duplicate = make_bank_entry("bank-1", "10000", date(2024, 1, 5), related_id="bill-1")

        ledger = build_party_ledger(party, [bill], [duplicate])

        assert ledger.total_advances == Decimal("10000")
        assert ledger.total_paid == Decimal("0")
        assert ledger.outstanding_balance == Decimal("41500")

    def test_linked_advance_consumes_its_entry(self, party, bill, make_bank_entry):
        """Test an advance linked by bank entry id hides that entry."""
        linked = bill.model_copy(
            update={
                "advances": [
                    Advance(amount=Decimal("10000"), date=date(2024, 1, 2), bank_entry_id="bank-9")
                ]
            }
        )
        entry = make_bank_entry("bank-9", "10000", date(2024, 1, 3), related_id="bill-1")

        ledger = build_party_ledger(party, [linked], [entry])

        assert ledger.total_paid == Decimal("0")

    def test_unrelated_entries_ignored(self, party, bill, make_bank_entry):
        """Test debits, expenses and dangling references change nothing."""
        entries = [
            make_bank_entry("bank-1", "700", date(2024, 1, 8), type="debit", related_id="bill-1"),
            make_bank_entry("bank-2", "700", date(2024, 1, 8), category="expense"),
            make_bank_entry("bank-3", "700", date(2024, 1, 8), related_id="missing"),
        ]

        ledger = build_party_ledger(party, [bill], entries)

        assert ledger.outstanding_balance == Decimal("41500")
        assert len(ledger.entries) == 2


class TestSupplierLedger:
    """Tests for supplier ledgers."""

    def test_memo_entries(self, supplier, memo):
        """Test gross credit, commission and mamul debits."""
        ledger = build_supplier_ledger(supplier, [memo], [])

        assert [e.type for e in ledger.entries] == [
            SupplierEntryType.MEMO_CREDIT,
            SupplierEntryType.COMMISSION_DEBIT,
            SupplierEntryType.MAMUL_DEBIT,
        ]
        assert ledger.total_memo_amount == Decimal("20000")
        assert ledger.total_deductions == Decimal("1500")
        assert ledger.outstanding_balance == Decimal("18500")
        assert ledger.pending_memos == 1

    def test_bank_payment(self, supplier, memo, make_bank_entry):
        payment = make_bank_entry(
            "bank-5", "8500", date(2024, 1, 12), type="debit", category="memo", related_id="memo-1"
        )

        ledger = build_supplier_ledger(supplier, [memo], [payment])

        assert ledger.entries[-1].id == "memo-1_payment_bank-5"
        assert ledger.entries[-1].related_bank_entry_id == "bank-5"
        assert ledger.total_paid == Decimal("8500")
        assert ledger.outstanding_balance == Decimal("10000")
        assert ledger.partially_paid_memos == 1

    def test_paid_outside_bank_book(self, supplier, memo):
        """Test a stored paid amount without bank entries is still posted."""
        paid = memo.model_copy(
            update={
                "paid_amount": Decimal("18500"),
                "status": MemoStatus.PAID,
                "paid_date": date(2024, 1, 25),
            }
        )

        ledger = build_supplier_ledger(supplier, [paid], [])

        assert ledger.entries[-1].id == "memo-1_paid"
        assert ledger.entries[-1].date == date(2024, 1, 25)
        assert ledger.outstanding_balance == Decimal("0")
        assert ledger.paid_memos == 1


class TestReporting:
    """Tests for ledger reporting helpers."""

    def test_filter_by_status_keeps_whole_bills(self, party, bill, two_bills):
        form = PaymentForm(payment_date=date(2024, 1, 20), received_amount=Decimal("41500"))
        paid = apply_bill_payment(bill, form).updated_bill
        ledger = build_party_ledger(party, [paid, *two_bills], [])

        entries = filter_entries_by_status(ledger.entries, SettlementStatus.FULLY_PAID)

        assert {e.related_bill_id for e in entries} == {"bill-1"}
        assert len(entries) == 3

    def test_bill_payment_history(self, party, two_bills):
        ledger = build_party_ledger(party, list(two_bills), [])

        history = bill_payment_history(ledger, "bill-a")

        assert [e.id for e in history] == ["bill-a_bill_credit", "bill-a_advance_0"]

    def test_summary_collection_efficiency(self, party, bill):
        ledger = build_party_ledger(party, [bill], [])

        summary = ledger_summary(ledger)

        assert summary["party_id"] == "party-1"
        assert summary["total_billed"] == Decimal("51500")
        assert summary["collection_efficiency"] == Decimal("19.42")
        assert summary["counts"] == {"paid": 0, "pending": 1, "partially_paid": 0}

    def test_summary_without_billing(self, party):
        summary = ledger_summary(build_party_ledger(party, [], []))

        assert summary["collection_efficiency"] == Decimal("0")

    def test_replace_party_ledger(self, party, bill, two_bills):
        """Test the owner's ledger is swapped out, or appended when new."""
        other = Party(id="party-2", name="Other")
        other_bill = bill.model_copy(update={"id": "bill-x", "party_id": "party-2"})
        old = build_party_ledger(party, list(two_bills), [])

        replaced = replace_party_ledger([old], party, [bill, *two_bills], [])
        appended = replace_party_ledger(replaced, other, [other_bill], [])

        assert len(replaced) == 1
        assert replaced[0].total_bill_amount == Decimal("93500")
        assert [ledger.party_id for ledger in appended] == ["party-1", "party-2"]
