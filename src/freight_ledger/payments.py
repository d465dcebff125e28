"""Bill payment processing and payment reporting."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

import structlog

from freight_ledger.calculations import format_currency, format_date
from freight_ledger.config import get_settings
from freight_ledger.exceptions import PaymentError
from freight_ledger.ledger import payment_entries
from freight_ledger.models import (
    ZERO,
    Bill,
    BillPayment,
    BillStatus,
    CalendarDate,
    DeductionType,
    LedgerModel,
    Money,
    PartyLedgerEntry,
    PaymentDeduction,
)

logger = structlog.get_logger(__name__)


class PaymentForm(LedgerModel):
    """Payment request as entered against a bill."""

    payment_date: CalendarDate
    received_amount: Money = ZERO
    tds_deduction: Money = ZERO
    mamul: Money = ZERO
    payment_charges: Money = ZERO
    commission_deduction: Money = ZERO
    other_deduction: Money = ZERO
    payment_method: str | None = None
    reference: str | None = None
    remarks: str | None = None

    def deduction_amounts(self) -> list[tuple[DeductionType, Decimal]]:
        """Named deductions in their fixed order, zero values included."""
        return [
            (DeductionType.TDS, self.tds_deduction),
            (DeductionType.MAMUL, self.mamul),
            (DeductionType.PAYMENT_CHARGES, self.payment_charges),
            (DeductionType.COMMISSION, self.commission_deduction),
            (DeductionType.OTHER, self.other_deduction),
        ]

    @property
    def total_deductions(self) -> Decimal:
        return sum((amount for _, amount in self.deduction_amounts()), ZERO)


@dataclass
class PaymentResult:
    """Outcome of applying one payment to a bill."""

    payment: BillPayment
    updated_bill: Bill
    ledger_entries: list[PartyLedgerEntry] = field(default_factory=list)

    @property
    def ledger_entry(self) -> PartyLedgerEntry | None:
        """The payment row; deduction rows follow it in ``ledger_entries``."""
        return self.ledger_entries[0] if self.ledger_entries else None


def calculate_remaining_balance(
    bill_amount: Decimal, received_amount: Decimal, total_deductions: Decimal
) -> Decimal:
    return max(ZERO, bill_amount - received_amount - total_deductions)


def is_bill_fully_paid(bill_amount: Decimal, received_amount: Decimal) -> bool:
    """True when the received amount matches the bill within the configured tolerance."""
    return abs(bill_amount - received_amount) < get_settings().balance_tolerance


def _resolve_status(
    remaining: Decimal, total_deductions: Decimal, difference: Decimal
) -> BillStatus:
    if remaining != 0:
        return BillStatus.PENDING
    if total_deductions > 0 or difference > 0:
        return BillStatus.SETTLED_WITH_DEDUCTIONS
    return BillStatus.FULLY_PAID


def _check_form(bill: Bill, form: PaymentForm) -> None:
    if bill.status.is_settled:
        raise PaymentError(
            f"Bill {bill.bill_no} is already settled ({bill.status.value})",
            bill_no=bill.bill_no,
        )
    if form.received_amount < 0:
        raise PaymentError("Received amount cannot be negative", bill_no=bill.bill_no)
    for deduction_type, amount in form.deduction_amounts():
        if amount < 0:
            raise PaymentError(
                f"{deduction_type.label} cannot be negative", bill_no=bill.bill_no
            )


def apply_bill_payment(
    bill: Bill, form: PaymentForm, now: datetime | None = None
) -> PaymentResult:
    """Apply a payment to a bill without mutating it.

    The bill's current ``balance`` is the amount being settled. The returned
    bill carries the new payment appended, the balance replaced by what remains
    and the received/deduction totals accumulated. Ledger rows are a preview
    walking down from the old balance; a full ledger rebuild is authoritative.

    Raises:
        PaymentError: If the bill is already settled or any amount is negative.
    """
    _check_form(bill, form)

    bill_amount = bill.balance
    total_deductions = form.total_deductions
    difference = bill_amount - form.received_amount
    remaining = calculate_remaining_balance(bill_amount, form.received_amount, total_deductions)

    payment_id = uuid4().hex
    deductions = tuple(
        PaymentDeduction(
            id=f"{payment_id}_{deduction_type.value}",
            type=deduction_type,
            amount=amount,
            description=deduction_type.label,
        )
        for deduction_type, amount in form.deduction_amounts()
        if amount > 0
    )
    payment = BillPayment(
        id=payment_id,
        bill_id=bill.id,
        payment_date=form.payment_date,
        bill_amount=bill_amount,
        received_amount=form.received_amount,
        difference_amount=difference,
        deductions=deductions,
        remaining_balance=remaining,
        payment_method=form.payment_method,
        reference=form.reference,
        remarks=form.remarks,
        created_at=now or datetime.now(UTC),
    )

    status = _resolve_status(remaining, total_deductions, difference)
    update: dict[str, Any] = {
        "payments": [*bill.payments, payment],
        "total_deductions": bill.total_deductions + total_deductions,
        "net_amount_received": bill.net_amount_received + form.received_amount,
        "balance": remaining,
        "status": status,
    }
    if status.is_settled:
        kind = "deductions" if total_deductions > 0 else "no deductions"
        update["received_date"] = form.payment_date
        update["received_narration"] = (
            f"Payment processed with {kind}. {form.remarks or ''}".strip()
        )
    updated_bill = bill.model_copy(update=update)

    entries = payment_entries(updated_bill, payment, opening_balance=bill_amount)
    logger.info(
        "payment_applied",
        bill_no=bill.bill_no,
        payment_id=payment_id,
        received=str(form.received_amount),
        deductions=str(total_deductions),
        remaining=str(remaining),
        status=status.value,
    )
    return PaymentResult(payment=payment, updated_bill=updated_bill, ledger_entries=entries)


# === Reporting ===


def payment_summary(payment: BillPayment) -> str:
    """One-line human summary of a payment."""
    if payment.deductions:
        listed = ", ".join(
            f"{d.description or d.type.label}: {format_currency(d.amount)}"
            for d in payment.deductions
        )
        deductions_text = f"Deductions: {listed}"
    else:
        deductions_text = "No deductions"
    return (
        f"Payment of {format_currency(payment.received_amount)} received on "
        f"{format_date(payment.payment_date)}. {deductions_text}. "
        f"Remaining balance: {format_currency(payment.remaining_balance)}"
    )


def _in_range(payment: BillPayment, start: date | None, end: date | None) -> bool:
    if start and payment.payment_date < start:
        return False
    if end and payment.payment_date > end:
        return False
    return True


def deduction_totals_by_type(
    payments: Iterable[BillPayment],
    start: date | None = None,
    end: date | None = None,
) -> dict[DeductionType, Decimal]:
    """Sum deductions per type for payments dated within ``start``..``end`` inclusive."""
    totals = {deduction_type: ZERO for deduction_type in DeductionType}
    for payment in payments:
        if not _in_range(payment, start, end):
            continue
        for deduction in payment.deductions:
            totals[deduction.type] += deduction.amount
    return totals


def payment_report(
    payments: Iterable[BillPayment],
    start: date | None = None,
    end: date | None = None,
) -> dict[str, Any]:
    """Collection report over a date range.

    Returns:
        Dict with payment count, bill/received/deduction totals, deductions
        per type, net collected and the matching payments.
    """
    selected = [payment for payment in payments if _in_range(payment, start, end)]
    total_received = sum((p.received_amount for p in selected), ZERO)
    return {
        "total_payments": len(selected),
        "total_bill_amount": sum((p.bill_amount for p in selected), ZERO),
        "total_received": total_received,
        "total_deductions": sum((p.total_deductions for p in selected), ZERO),
        "deductions_by_type": deduction_totals_by_type(selected),
        "net_collected": total_received,
        "payments": selected,
    }
