"""Tests for bill and memo calculations."""

from datetime import date
from decimal import Decimal

from freight_ledger.calculations import (
    bill_balance,
    bill_rto_amount,
    bill_total_amount,
    bill_total_freight,
    calculate_commission,
    format_currency,
    format_date,
    memo_balance,
    memo_gross_amount,
    memo_total_amount,
    parse_amount,
    party_pending_balance,
)
from freight_ledger.models import Bill, BillStatus, BillTrip


class TestCommission:
    """Tests for supplier commission."""

    def test_default_rate_is_six_percent(self):
        """Test commission uses the configured 6% rate."""
        assert calculate_commission(Decimal("20000")) == Decimal("1200")

    def test_rounds_half_up_to_rupees(self):
        """Test commission is rounded to whole rupees."""
        assert calculate_commission(Decimal("12345")) == Decimal("741")
        assert calculate_commission(Decimal("25")) == Decimal("2")

    def test_explicit_rate(self):
        """Test an explicit rate overrides settings."""
        assert calculate_commission(Decimal("10000"), rate=Decimal("5")) == Decimal("500")

    def test_rate_from_environment(self, monkeypatch):
        """Test the rate is read from COMMISSION_RATE."""
        from freight_ledger.config import get_settings

        monkeypatch.setenv("COMMISSION_RATE", "10")
        get_settings.cache_clear()

        assert calculate_commission(Decimal("1000")) == Decimal("100")


class TestParseAmount:
    """Tests for loose amount parsing."""

    def test_parses_grouped_strings(self):
        assert parse_amount("1,200") == Decimal("1200")

    def test_none_and_blank_are_zero(self):
        assert parse_amount(None) == Decimal("0")
        assert parse_amount("  ") == Decimal("0")

    def test_garbage_is_zero(self):
        assert parse_amount("abc") == Decimal("0")


class TestBillAmounts:
    """Tests for the canonical bill formula."""

    def test_scenario_balance(self, bill):
        """Test freight + detention - mamul - advances."""
        assert bill_total_amount(bill) == Decimal("51500")
        assert bill_balance(bill) == Decimal("41500")
        assert bill.status is BillStatus.PENDING

    def test_total_includes_rto_and_extra_charges(self, bill):
        """Test rto and extra charges are part of the bill total."""
        bill = bill.model_copy(
            update={"rto_amount": Decimal("700"), "extra_charges": Decimal("300")}
        )

        assert bill_total_amount(bill) == Decimal("52500")
        assert bill_balance(bill) == Decimal("42500")

    def test_balance_never_negative(self, bill):
        """Test an overpaid bill has a zero balance."""
        assert bill_balance(bill, bank_received=Decimal("90000")) == Decimal("0")

    def test_stored_balance_is_ignored(self, bill):
        """Test the computed balance does not read the cached field."""
        stale = bill.model_copy(update={"balance": Decimal("1")})

        assert bill_balance(stale) == Decimal("41500")

    def test_total_freight_falls_back_to_stored_total(self):
        """Test bills without trips use totalFreight."""
        bill = Bill(bill_no="B-9", bill_date=date(2024, 1, 1), total_freight=Decimal("8000"))

        assert bill_total_freight(bill) == Decimal("8000")
        assert bill_total_amount(bill) == Decimal("8000")

    def test_rto_falls_back_to_trip_challans(self):
        """Test numeric RTO challans on trips are summed."""
        bill = Bill(
            bill_no="B-10",
            bill_date=date(2024, 1, 1),
            trips=[
                BillTrip(freight=Decimal("1000"), rto_challan="250"),
                BillTrip(freight=Decimal("1000"), rto_challan="CH-77"),
            ],
        )

        assert bill_rto_amount(bill) == Decimal("250")

    def test_party_pending_balance(self, bill):
        """Test only pending bills of the party count."""
        paid = bill.model_copy(
            update={"id": "bill-2", "status": BillStatus.FULLY_PAID, "balance": Decimal("0")}
        )
        other = bill.model_copy(update={"id": "bill-3", "party_id": "party-2"})

        assert party_pending_balance([bill, paid, other], "party-1") == Decimal("41500")


class TestMemoAmounts:
    """Tests for memo totals."""

    def test_scenario_balance(self, memo):
        """Test freight - commission - mamul."""
        assert memo_total_amount(memo) == Decimal("18500")
        assert memo_balance(memo) == Decimal("18500")

    def test_gross_amount(self, memo):
        """Test the gross amount excludes commission and mamul."""
        assert memo_gross_amount(memo) == Decimal("20000")

    def test_balance_uses_paid_amount(self, memo):
        """Test stored and explicit paid amounts."""
        paid = memo.model_copy(update={"paid_amount": Decimal("8500")})

        assert memo_balance(paid) == Decimal("10000")
        assert memo_balance(paid, paid=Decimal("0")) == Decimal("18500")

    def test_balance_clamped_at_zero(self, memo):
        """Test an overpaid memo has a zero balance."""
        assert memo_balance(memo, paid=Decimal("25000")) == Decimal("0")


class TestFormatting:
    """Tests for currency and date formatting."""

    def test_lakh_grouping(self):
        """Test Indian digit grouping and rounding."""
        assert format_currency(Decimal("123456.6")) == "Rs. 1,23,457"
        assert format_currency(Decimal("12345678")) == "Rs. 1,23,45,678"

    def test_small_amounts(self):
        assert format_currency(Decimal("999")) == "Rs. 999"
        assert format_currency(0) == "Rs. 0"

    def test_negative_amount(self):
        assert format_currency(Decimal("-1500")) == "Rs. -1,500"

    def test_custom_prefix(self):
        assert format_currency(Decimal("1000"), prefix="INR") == "INR 1,000"

    def test_date_format(self):
        """Test the default DD/MM/YYYY format."""
        assert format_date(date(2024, 1, 6)) == "06/01/2024"
