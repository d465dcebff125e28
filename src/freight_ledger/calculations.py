"""Financial primitives for bills and memos.

All functions are pure. Negative inputs pass through arithmetically; this is
a bookkeeping tool, not a validator.

Canonical amounts used everywhere in the package:

    bill total  = freight + detention + rto + extra charges - mamul
    bill balance = max(0, bill total - advances - settled payments)
    memo total  = freight + detention + rto + extra charge - commission - mamul
    memo balance = max(0, memo total - advances - paid)

A payment settles its received amount plus its deductions.
"""

from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from freight_ledger.config import get_settings
from freight_ledger.models import ZERO, Advance, Bill, BillPayment, Memo


def _round_rupees(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def calculate_commission(freight: Decimal, rate: Decimal | None = None) -> Decimal:
    """Return the supplier commission on a freight amount, rounded to rupees."""
    if rate is None:
        rate = get_settings().commission_rate
    return _round_rupees(Decimal(freight) * Decimal(rate) / Decimal("100"))


def parse_amount(value: Any) -> Decimal:
    """Parse a loosely typed amount (``"1,200"``, ``None``, ``"abc"``) to Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).replace(",", "").strip() or "0")
    except InvalidOperation:
        return ZERO


def total_advances(advances: Iterable[Advance]) -> Decimal:
    return sum((advance.amount for advance in advances), ZERO)


def total_settled(payments: Iterable[BillPayment]) -> Decimal:
    """Sum of received amounts plus deductions across payments."""
    return sum(
        (payment.received_amount + payment.total_deductions for payment in payments),
        ZERO,
    )


# === Bills ===


def bill_total_freight(bill: Bill) -> Decimal:
    """Sum of trip freights, or the stored total when the bill has no trips."""
    if bill.trips:
        return sum((trip.freight for trip in bill.trips), ZERO)
    return bill.total_freight


def bill_rto_amount(bill: Bill) -> Decimal:
    """Bill-level RTO amount, falling back to numeric trip RTO challans."""
    if bill.rto_amount:
        return bill.rto_amount
    return sum((parse_amount(trip.rto_challan) for trip in bill.trips), ZERO)


def bill_detention(bill: Bill) -> Decimal:
    if bill.detention:
        return bill.detention
    return sum((trip.detention for trip in bill.trips), ZERO)


def bill_mamul(bill: Bill) -> Decimal:
    if bill.mamul:
        return bill.mamul
    return sum((trip.mamul for trip in bill.trips), ZERO)


def bill_total_amount(bill: Bill) -> Decimal:
    """Gross amount receivable on a bill before advances and payments."""
    return (
        bill_total_freight(bill)
        + bill_detention(bill)
        + bill_rto_amount(bill)
        + bill.extra_charges
        - bill_mamul(bill)
    )


def bill_balance(bill: Bill, bank_received: Decimal = ZERO) -> Decimal:
    """Outstanding amount on a bill, never negative.

    Args:
        bill: Bill to evaluate. The stored ``balance`` is ignored.
        bank_received: Amount received through linked bank entries that is
            not already represented by an advance or payment on the bill.
    """
    outstanding = (
        bill_total_amount(bill)
        - total_advances(bill.advances)
        - total_settled(bill.payments)
        - bank_received
    )
    return max(ZERO, outstanding)


def party_pending_balance(bills: Iterable[Bill], party_id: str) -> Decimal:
    """Sum of stored balances of a party's pending bills."""
    return sum(
        (
            bill.balance
            for bill in bills
            if bill.party_id == party_id and not bill.status.is_settled
        ),
        ZERO,
    )


# === Memos ===


def memo_total_amount(memo: Memo) -> Decimal:
    """Net amount payable to the supplier before advances and payments."""
    return (
        memo.freight
        + memo.detention
        + memo.rto_amount
        + memo.extra_charge
        - memo.commission
        - memo.mamul
    )


def memo_gross_amount(memo: Memo) -> Decimal:
    """Amount credited to the supplier before commission and mamul."""
    return memo.freight + memo.detention + memo.rto_amount + memo.extra_charge


def memo_balance(memo: Memo, paid: Decimal | None = None) -> Decimal:
    """Outstanding amount owed on a memo, never negative.

    ``paid`` defaults to the memo's stored ``paid_amount``.
    """
    if paid is None:
        paid = memo.paid_amount
    return max(ZERO, memo_total_amount(memo) - total_advances(memo.advances) - paid)


# === Formatting ===


def _group_indian(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    last_three = digits[-3:]
    remaining = digits[:-3]
    groups: list[str] = []
    while len(remaining) > 2:
        groups.insert(0, remaining[-2:])
        remaining = remaining[:-2]
    if remaining:
        groups.insert(0, remaining)
    return ",".join(groups) + "," + last_three


def format_currency(amount: Decimal | int | float, prefix: str | None = None) -> str:
    """Format an amount as whole rupees with lakh grouping, e.g. ``Rs. 1,23,457``."""
    if prefix is None:
        prefix = get_settings().currency_prefix
    rounded = _round_rupees(Decimal(str(amount)))
    sign = "-" if rounded < 0 else ""
    return f"{prefix} {sign}{_group_indian(str(abs(int(rounded))))}"


def format_date(value: date, fmt: str | None = None) -> str:
    """Format a date as ``DD/MM/YYYY`` unless another format is configured."""
    return value.strftime(fmt or get_settings().date_format)


def trip_details(bill: Bill) -> str:
    return ", ".join(f"{trip.origin} to {trip.destination}" for trip in bill.trips)


def memo_trip_details(memo: Memo) -> str:
    details = f"{memo.origin} to {memo.destination}"
    if memo.vehicle:
        details += f" ({memo.vehicle})"
    return details
