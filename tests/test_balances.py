"""Tests for the balance synchronizer."""

from datetime import date
from decimal import Decimal

from freight_ledger.balances import (
    calculate_supplier_balance,
    find_linked_bills,
    find_linked_memos,
    fix_all_balances,
    fix_all_memo_balances,
    recalculate_bill,
    recalculate_bill_after_deletion,
    recalculate_memo,
    recalculate_memo_after_deletion,
    synchronize_party_balance,
)
from freight_ledger.models import BillStatus, MemoStatus


class TestBillBalances:
    """Tests for bill and party balance recomputation."""

    def test_recalculate_ignores_stored_balance(self, bill):
        stale = bill.model_copy(update={"balance": Decimal("99999")})

        assert recalculate_bill(stale) == Decimal("41500")

    def test_recalculate_with_bank_receipt(self, bill, make_bank_entry):
        receipt = make_bank_entry("bank-1", "1500", date(2024, 1, 8), related_id="bill-1")

        assert recalculate_bill(bill, [receipt]) == Decimal("40000")

    def test_fix_all_balances(self, party, bill):
        """Test stale bill and party balances are corrected."""
        stale_bill = bill.model_copy(update={"balance": Decimal("50000")})
        stale_party = party.model_copy(update={"balance": Decimal("1")})

        result = fix_all_balances([stale_bill], [stale_party])

        assert result.changed
        assert result.changed_bill_ids == ["bill-1"]
        assert result.changed_party_ids == ["party-1"]
        assert result.fixed_bills[0].balance == Decimal("41500")
        assert result.fixed_parties[0].balance == Decimal("41500")
        assert result.fixed_parties[0].active_trips == 1

    def test_fix_all_balances_is_a_fixed_point(self, party, bill):
        """Test running the fixer on its own output changes nothing."""
        first = fix_all_balances([bill.model_copy(update={"balance": Decimal("7")})], [party])

        second = fix_all_balances(first.fixed_bills, first.fixed_parties)

        assert not second.changed
        assert second.fixed_bills == first.fixed_bills
        assert second.fixed_parties == first.fixed_parties

    def test_fix_does_not_mutate_inputs(self, party, bill):
        stale = bill.model_copy(update={"balance": Decimal("7")})

        fix_all_balances([stale], [party])

        assert stale.balance == Decimal("7")
        assert party.balance == Decimal("0")

    def test_party_balance_counts_pending_bills_only(self, party, bill):
        settled = bill.model_copy(
            update={"id": "bill-2", "status": BillStatus.RECEIVED, "balance": Decimal("0")}
        )

        assert synchronize_party_balance(party, [bill, settled]) == Decimal("41500")


class TestMemoBalances:
    """Tests for memo and supplier balance recomputation."""

    def test_recalculate_memo(self, memo, make_bank_entry):
        payment = make_bank_entry(
            "bank-2", "500", date(2024, 1, 9), type="debit", category="memo", related_id="memo-1"
        )

        assert recalculate_memo(memo) == Decimal("18500")
        assert recalculate_memo(memo, [payment]) == Decimal("18000")

    def test_fix_all_memo_balances(self, supplier, memo):
        stale = memo.model_copy(update={"balance": Decimal("20000")})

        result = fix_all_memo_balances([stale], [supplier])

        assert result.changed_memo_ids == ["memo-1"]
        assert result.fixed_memos[0].balance == Decimal("18500")
        assert result.fixed_suppliers[0].balance == Decimal("18500")
        assert result.fixed_suppliers[0].active_trips == 1

    def test_supplier_balance_skips_paid_memos(self, supplier, memo):
        paid = memo.model_copy(update={"id": "memo-2", "status": MemoStatus.PAID})

        assert calculate_supplier_balance(supplier, [memo, paid]) == Decimal("18500")


class TestBankEntryDeletion:
    """Tests for re-deriving records after a bank entry is deleted."""

    def test_bill_reopens_when_receipt_removed(self, bill, make_bank_entry):
        """Test a bill settled by a bank receipt goes back to pending."""
        settled = bill.model_copy(
            update={
                "balance": Decimal("0"),
                "status": BillStatus.RECEIVED,
                "net_amount_received": Decimal("41500"),
                "received_date": date(2024, 1, 15),
            }
        )

        fixed = recalculate_bill_after_deletion(settled, [])

        assert fixed.balance == Decimal("41500")
        assert fixed.status is BillStatus.PENDING
        assert fixed.net_amount_received == Decimal("0")
        assert fixed.received_date is None

    def test_bill_with_remaining_receipts(self, bill, make_bank_entry):
        remaining = make_bank_entry("bank-2", "41500", date(2024, 1, 16), related_id="bill-1")

        fixed = recalculate_bill_after_deletion(bill, [remaining])

        assert fixed.balance == Decimal("0")
        assert fixed.status is BillStatus.RECEIVED
        assert fixed.net_amount_received == Decimal("41500")

    def test_memo_paid_amount_from_remaining_payments(self, memo, make_bank_entry):
        paid = memo.model_copy(
            update={"paid_amount": Decimal("18500"), "status": MemoStatus.PAID}
        )
        remaining = make_bank_entry(
            "bank-3", "8000", date(2024, 1, 9), type="debit", category="memo", related_id="memo-1"
        )

        fixed = recalculate_memo_after_deletion(paid, [remaining])

        assert fixed.paid_amount == Decimal("8000")
        assert fixed.balance == Decimal("10500")
        assert fixed.status is MemoStatus.PENDING


class TestLinkedRecords:
    """Tests for finding the record a bank entry points to."""

    def test_find_by_id_then_number(self, bill):
        assert find_linked_bills([bill], related_id="bill-1") == [bill]
        assert find_linked_bills([bill], related_name="B-001") == [bill]
        assert find_linked_bills([bill], related_id="nope") == []

    def test_find_memo(self, memo):
        assert find_linked_memos([memo], related_name="M-001") == [memo]
        assert find_linked_memos([memo]) == []
