"""Running-balance party and supplier ledgers, rebuilt from source records.

Ledgers are projections: every build starts from a zero balance and walks the
owner's bills (or memos) together with the bank entries that settle them. No
ledger is ever patched in place, so the same inputs always give the same
ledger, entry for entry.

Party ledger ordering: entries are grouped by bill date. Within a bill date
credits come first, then advances, then payments each followed by their own
deductions. Ties fall back to the event date, the creation time and the
bill's position.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import structlog

from freight_ledger.calculations import (
    bill_total_amount,
    memo_gross_amount,
    memo_trip_details,
    trip_details,
)
from freight_ledger.links import (
    bank_payments_by_memo,
    bank_receipts_by_bill,
    resolve_bill,
    resolve_memo,
    sum_amounts,
)
from freight_ledger.models import (
    ZERO,
    BankEntry,
    Bill,
    BillPayment,
    EntrySide,
    Memo,
    MemoStatus,
    Party,
    PartyEntryType,
    PartyLedger,
    PartyLedgerEntry,
    SettlementStatus,
    Supplier,
    SupplierEntryType,
    SupplierLedger,
    SupplierLedgerEntry,
)

logger = structlog.get_logger(__name__)

__all__ = [
    "bill_payment_history",
    "bill_settlement",
    "build_all_party_ledgers",
    "build_all_supplier_ledgers",
    "build_party_ledger",
    "build_supplier_ledger",
    "filter_entries_by_status",
    "ledger_summary",
    "memo_paid_amount",
    "memo_settlement",
    "payment_entries",
    "replace_party_ledger",
    "replace_supplier_ledger",
    "resolve_bill",
    "resolve_memo",
]

_EARLIEST = datetime.min.replace(tzinfo=UTC)

_PARTY_PRIORITY = {
    PartyEntryType.BILL_CREDIT: 0,
    PartyEntryType.ADVANCE_DEBIT: 1,
    PartyEntryType.PAYMENT_DEBIT: 2,
    PartyEntryType.DEDUCTION_DEBIT: 2,
}

_SUPPLIER_PRIORITY = {
    SupplierEntryType.MEMO_CREDIT: 0,
    SupplierEntryType.COMMISSION_DEBIT: 1,
    SupplierEntryType.MAMUL_DEBIT: 2,
    SupplierEntryType.ADVANCE_DEBIT: 3,
    SupplierEntryType.PAYMENT_DEBIT: 4,
}


def _stamp(value: datetime | None) -> datetime:
    return value or _EARLIEST


def _sort_key(
    owner_date: date,
    priority: int,
    event_date: date,
    created_at: datetime | None,
    rank: int,
    source: str,
    sub: int = 0,
) -> tuple[Any, ...]:
    return (owner_date, priority, event_date, _stamp(created_at), rank, source, sub)


def _apply_running_balances(entries: list[Any]) -> Decimal:
    balance = ZERO
    for entry in entries:
        balance += entry.credit_amount - entry.debit_amount
        entry.running_balance = balance
    return balance


def _sum_type(entries: Iterable[Any], entry_type: Any) -> Decimal:
    return sum(
        (entry.credit_amount + entry.debit_amount for entry in entries if entry.type is entry_type),
        ZERO,
    )


# === Party ledgers ===


def bill_settlement(bill: Bill, received: Decimal = ZERO) -> SettlementStatus:
    """Settlement bucket of a bill: settled, partly paid or untouched."""
    if bill.status.is_settled:
        return SettlementStatus.FULLY_PAID
    if bill.payments or bill.net_amount_received > 0 or received > 0:
        return SettlementStatus.PARTIALLY_PAID
    return SettlementStatus.PENDING


def payment_entries(
    bill: Bill, payment: BillPayment, opening_balance: Decimal = ZERO
) -> list[PartyLedgerEntry]:
    """Ledger rows for one bill payment: the receipt, then one row per deduction.

    Zero-valued rows are skipped. ``running_balance`` walks down from
    ``opening_balance``; full rebuilds overwrite it.
    """
    rows: list[PartyLedgerEntry] = []
    balance = opening_balance
    if payment.received_amount:
        balance -= payment.received_amount
        rows.append(
            PartyLedgerEntry(
                id=f"{bill.id}_payment_{payment.id}",
                type=PartyEntryType.PAYMENT_DEBIT,
                entry_type=EntrySide.DEBIT,
                date=payment.payment_date,
                bill_no=bill.bill_no,
                bill_date=bill.bill_date,
                particulars=f"Payment Received - {payment.remarks or 'Bill payment'}",
                debit_amount=payment.received_amount,
                running_balance=balance,
                related_bill_id=bill.id,
                related_payment_id=payment.id,
                remarks=payment.reference,
                created_at=payment.created_at,
            )
        )
    for index, deduction in enumerate(payment.deductions):
        if not deduction.amount:
            continue
        balance -= deduction.amount
        label = deduction.description or deduction.type.label
        rows.append(
            PartyLedgerEntry(
                id=f"{bill.id}_deduction_{payment.id}_{index}",
                type=PartyEntryType.DEDUCTION_DEBIT,
                entry_type=EntrySide.DEBIT,
                date=payment.payment_date,
                bill_no=bill.bill_no,
                bill_date=bill.bill_date,
                particulars=f"{label} - {payment.remarks or 'Payment deduction'}",
                debit_amount=deduction.amount,
                running_balance=balance,
                deduction_type=deduction.type,
                related_bill_id=bill.id,
                related_payment_id=payment.id,
                created_at=payment.created_at,
            )
        )
    return rows


def _bill_entries(
    bill: Bill, rank: int, receipts: Sequence[BankEntry]
) -> list[tuple[tuple[Any, ...], PartyLedgerEntry]]:
    keyed: list[tuple[tuple[Any, ...], PartyLedgerEntry]] = []

    def add(
        entry: PartyLedgerEntry,
        event_date: date,
        created: datetime | None,
        source: str,
        sub: int = 0,
    ) -> None:
        priority = _PARTY_PRIORITY[entry.type]
        key = _sort_key(bill.bill_date, priority, event_date, created, rank, source, sub)
        keyed.append((key, entry))

    details = trip_details(bill)
    credit = PartyLedgerEntry(
        id=f"{bill.id}_bill_credit",
        type=PartyEntryType.BILL_CREDIT,
        entry_type=EntrySide.CREDIT,
        date=bill.bill_date,
        bill_no=bill.bill_no,
        bill_date=bill.bill_date,
        particulars=f"Bill Amount - {details}" if details else "Bill Amount",
        credit_amount=bill_total_amount(bill),
        status=bill_settlement(bill, sum_amounts(receipts)),
        related_bill_id=bill.id,
        created_at=bill.created_at,
    )
    add(credit, bill.bill_date, bill.created_at, bill.id)

    for index, advance in enumerate(bill.advances):
        if not advance.amount:
            continue
        entry = PartyLedgerEntry(
            id=f"{bill.id}_advance_{index}",
            type=PartyEntryType.ADVANCE_DEBIT,
            entry_type=EntrySide.DEBIT,
            date=advance.date,
            bill_no=bill.bill_no,
            bill_date=bill.bill_date,
            particulars=f"Advance Received - {advance.narration or 'Bill advance'}",
            debit_amount=advance.amount,
            related_bill_id=bill.id,
            related_payment_id=advance.bank_entry_id,
            created_at=bill.created_at,
        )
        add(entry, advance.date, bill.created_at, f"{index:06d}")

    for receipt in receipts:
        if not receipt.amount:
            continue
        entry = PartyLedgerEntry(
            id=f"{receipt.id}_payment",
            type=PartyEntryType.PAYMENT_DEBIT,
            entry_type=EntrySide.DEBIT,
            date=receipt.date,
            bill_no=bill.bill_no,
            bill_date=bill.bill_date,
            particulars=f"Payment Received - {receipt.narration or 'Bank payment'}",
            debit_amount=receipt.amount,
            related_bill_id=bill.id,
            related_payment_id=receipt.id,
            created_at=receipt.created_at,
        )
        add(entry, receipt.date, receipt.created_at, receipt.id)

    for payment in bill.payments:
        # Deductions share their payment's key so they stay right behind it.
        for sub, entry in enumerate(payment_entries(bill, payment)):
            add(entry, payment.payment_date, payment.created_at, payment.id, sub)
    return keyed


def _bill_rank_key(bill: Bill) -> tuple[Any, ...]:
    return (bill.bill_date, _stamp(bill.created_at), bill.bill_no, bill.id)


def build_party_ledger(
    party: Party, bills: Sequence[Bill], bank_entries: Iterable[BankEntry]
) -> PartyLedger:
    """Rebuild the running ledger of one party from its bills and bank receipts.

    Bank entries that resolve to no bill are ignored. A party without bills
    gets an empty ledger with a zero outstanding balance.
    """
    party_bills = sorted(
        (bill for bill in bills if bill.party_id == party.id), key=_bill_rank_key
    )
    receipts = bank_receipts_by_bill(party_bills, bank_entries)

    keyed: list[tuple[tuple[Any, ...], PartyLedgerEntry]] = []
    for rank, bill in enumerate(party_bills):
        keyed.extend(_bill_entries(bill, rank, receipts.get(bill.id, [])))
    keyed.sort(key=lambda item: item[0])
    entries = [entry for _, entry in keyed]
    outstanding = _apply_running_balances(entries)

    buckets = {status: 0 for status in SettlementStatus}
    for bill in party_bills:
        received = sum_amounts(receipts.get(bill.id, []))
        buckets[bill_settlement(bill, received)] += 1

    ledger = PartyLedger(
        id=f"auto_{party.id}",
        party_id=party.id,
        party_name=party.name,
        entries=entries,
        outstanding_balance=outstanding,
        total_bill_amount=_sum_type(entries, PartyEntryType.BILL_CREDIT),
        total_advances=_sum_type(entries, PartyEntryType.ADVANCE_DEBIT),
        total_paid=_sum_type(entries, PartyEntryType.PAYMENT_DEBIT),
        total_deductions=_sum_type(entries, PartyEntryType.DEDUCTION_DEBIT),
        paid_bills=buckets[SettlementStatus.FULLY_PAID],
        pending_bills=buckets[SettlementStatus.PENDING],
        partially_paid_bills=buckets[SettlementStatus.PARTIALLY_PAID],
    )
    logger.debug(
        "party_ledger_built",
        party_id=party.id,
        bills=len(party_bills),
        entries=len(entries),
        outstanding=str(outstanding),
    )
    return ledger


def build_all_party_ledgers(
    parties: Iterable[Party], bills: Sequence[Bill], bank_entries: Sequence[BankEntry]
) -> list[PartyLedger]:
    """Ledgers for every party that has at least one bill."""
    billed = {bill.party_id for bill in bills}
    return [
        build_party_ledger(party, bills, bank_entries)
        for party in parties
        if party.id in billed
    ]


def replace_party_ledger(
    ledgers: Sequence[PartyLedger],
    party: Party,
    bills: Sequence[Bill],
    bank_entries: Iterable[BankEntry],
) -> list[PartyLedger]:
    """Return ``ledgers`` with the party's ledger fully rebuilt (appended if new)."""
    rebuilt = build_party_ledger(party, bills, bank_entries)
    result = list(ledgers)
    for index, ledger in enumerate(result):
        if ledger.party_id == party.id:
            result[index] = rebuilt
            break
    else:
        result.append(rebuilt)
    return result


def bill_payment_history(ledger: PartyLedger, bill_id: str) -> list[PartyLedgerEntry]:
    """Entries of one bill, in ledger order."""
    return [entry for entry in ledger.entries if entry.related_bill_id == bill_id]


# === Supplier ledgers ===


def memo_paid_amount(memo: Memo, payments: Iterable[BankEntry] = ()) -> Decimal:
    """Amount paid against a memo.

    The stored ``paid_amount`` and the linked bank payments describe the same
    money, so the larger of the two counts.
    """
    return max(memo.paid_amount, sum_amounts(payments))


def memo_settlement(memo: Memo, paid: Decimal = ZERO) -> SettlementStatus:
    if memo.status is MemoStatus.PAID:
        return SettlementStatus.FULLY_PAID
    if paid > 0:
        return SettlementStatus.PARTIALLY_PAID
    return SettlementStatus.PENDING


def _supplier_entry(
    memo: Memo,
    suffix: str,
    entry_type: SupplierEntryType,
    entry_date: date,
    particulars: str,
    amount: Decimal,
    **extra: Any,
) -> SupplierLedgerEntry:
    is_credit = entry_type is SupplierEntryType.MEMO_CREDIT
    return SupplierLedgerEntry(
        id=f"{memo.id}_{suffix}",
        type=entry_type,
        entry_type=EntrySide.CREDIT if is_credit else EntrySide.DEBIT,
        date=entry_date,
        memo_no=memo.memo_no,
        loading_date=memo.loading_date,
        particulars=particulars,
        credit_amount=amount if is_credit else ZERO,
        debit_amount=ZERO if is_credit else amount,
        related_memo_id=memo.id,
        **extra,
    )


def _memo_entries(
    memo: Memo, rank: int, payments: Sequence[BankEntry]
) -> list[tuple[tuple[Any, ...], SupplierLedgerEntry]]:
    keyed: list[tuple[tuple[Any, ...], SupplierLedgerEntry]] = []
    details = memo_trip_details(memo)
    paid = memo_paid_amount(memo, payments)

    def add(
        entry: SupplierLedgerEntry, event_date: date, created: datetime | None, source: str
    ) -> None:
        priority = _SUPPLIER_PRIORITY[entry.type]
        key = _sort_key(memo.loading_date, priority, event_date, created, rank, source)
        keyed.append((key, entry))

    credit = _supplier_entry(
        memo,
        "memo_credit",
        SupplierEntryType.MEMO_CREDIT,
        memo.loading_date,
        f"Memo Amount - {details}",
        memo_gross_amount(memo),
        status=memo_settlement(memo, paid),
        created_at=memo.created_at,
    )
    add(credit, memo.loading_date, memo.created_at, memo.id)

    if memo.commission:
        entry = _supplier_entry(
            memo,
            "commission",
            SupplierEntryType.COMMISSION_DEBIT,
            memo.loading_date,
            f"Commission Deduction - {details}",
            memo.commission,
            created_at=memo.created_at,
        )
        add(entry, memo.loading_date, memo.created_at, memo.id)

    if memo.mamul:
        entry = _supplier_entry(
            memo,
            "mamul",
            SupplierEntryType.MAMUL_DEBIT,
            memo.loading_date,
            f"Mamul Deduction - {details}",
            memo.mamul,
            created_at=memo.created_at,
        )
        add(entry, memo.loading_date, memo.created_at, memo.id)

    for index, advance in enumerate(memo.advances):
        if not advance.amount:
            continue
        entry = _supplier_entry(
            memo,
            f"advance_{index}",
            SupplierEntryType.ADVANCE_DEBIT,
            advance.date,
            f"Advance Paid - {advance.narration or 'Memo advance'}",
            advance.amount,
            related_bank_entry_id=advance.bank_entry_id,
            created_at=memo.created_at,
        )
        add(entry, advance.date, memo.created_at, f"{index:06d}")

    for payment in payments:
        if not payment.amount:
            continue
        entry = _supplier_entry(
            memo,
            f"payment_{payment.id}",
            SupplierEntryType.PAYMENT_DEBIT,
            payment.date,
            f"Payment Made - {payment.narration or 'Bank payment'}",
            payment.amount,
            related_bank_entry_id=payment.id,
            created_at=payment.created_at,
        )
        add(entry, payment.date, payment.created_at, payment.id)

    # Paid outside the bank book: post the difference as one payment.
    unbanked = paid - sum_amounts(payments)
    if unbanked > 0:
        paid_on = memo.paid_date or memo.loading_date
        entry = _supplier_entry(
            memo,
            "paid",
            SupplierEntryType.PAYMENT_DEBIT,
            paid_on,
            "Payment Made - Memo payment",
            unbanked,
            created_at=memo.created_at,
        )
        add(entry, paid_on, memo.created_at, "~paid")
    return keyed


def build_supplier_ledger(
    supplier: Supplier, memos: Sequence[Memo], bank_entries: Iterable[BankEntry]
) -> SupplierLedger:
    """Rebuild the running ledger of one supplier from its memos and bank payments.

    Each memo posts its gross amount, then commission and mamul as debits, so
    the closing balance of a memo equals its outstanding balance.
    """
    supplier_memos = sorted(
        (memo for memo in memos if memo.supplier_id == supplier.id),
        key=lambda memo: (memo.loading_date, _stamp(memo.created_at), memo.memo_no, memo.id),
    )
    payments = bank_payments_by_memo(supplier_memos, bank_entries)

    keyed: list[tuple[tuple[Any, ...], SupplierLedgerEntry]] = []
    for rank, memo in enumerate(supplier_memos):
        keyed.extend(_memo_entries(memo, rank, payments.get(memo.id, [])))
    keyed.sort(key=lambda item: item[0])
    entries = [entry for _, entry in keyed]
    outstanding = _apply_running_balances(entries)

    buckets = {status: 0 for status in SettlementStatus}
    for memo in supplier_memos:
        paid = memo_paid_amount(memo, payments.get(memo.id, []))
        buckets[memo_settlement(memo, paid)] += 1

    ledger = SupplierLedger(
        id=f"auto_{supplier.id}",
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        entries=entries,
        outstanding_balance=outstanding,
        total_memo_amount=_sum_type(entries, SupplierEntryType.MEMO_CREDIT),
        total_advances=_sum_type(entries, SupplierEntryType.ADVANCE_DEBIT),
        total_paid=_sum_type(entries, SupplierEntryType.PAYMENT_DEBIT),
        total_deductions=_sum_type(entries, SupplierEntryType.COMMISSION_DEBIT)
        + _sum_type(entries, SupplierEntryType.MAMUL_DEBIT),
        paid_memos=buckets[SettlementStatus.FULLY_PAID],
        pending_memos=buckets[SettlementStatus.PENDING],
        partially_paid_memos=buckets[SettlementStatus.PARTIALLY_PAID],
    )
    logger.debug(
        "supplier_ledger_built",
        supplier_id=supplier.id,
        memos=len(supplier_memos),
        entries=len(entries),
        outstanding=str(outstanding),
    )
    return ledger


def build_all_supplier_ledgers(
    suppliers: Iterable[Supplier], memos: Sequence[Memo], bank_entries: Sequence[BankEntry]
) -> list[SupplierLedger]:
    """Ledgers for every supplier that has at least one memo."""
    with_memos = {memo.supplier_id for memo in memos}
    return [
        build_supplier_ledger(supplier, memos, bank_entries)
        for supplier in suppliers
        if supplier.id in with_memos
    ]


def replace_supplier_ledger(
    ledgers: Sequence[SupplierLedger],
    supplier: Supplier,
    memos: Sequence[Memo],
    bank_entries: Iterable[BankEntry],
) -> list[SupplierLedger]:
    rebuilt = build_supplier_ledger(supplier, memos, bank_entries)
    result = list(ledgers)
    for index, ledger in enumerate(result):
        if ledger.supplier_id == supplier.id:
            result[index] = rebuilt
            break
    else:
        result.append(rebuilt)
    return result


# === Reporting ===


def filter_entries_by_status(
    entries: Iterable[PartyLedgerEntry], status: SettlementStatus
) -> list[PartyLedgerEntry]:
    """Entries of bills in the given settlement bucket.

    Only bill credit rows carry a status, so every row of a matching bill is kept.
    """
    entries = list(entries)
    bill_ids = {
        entry.related_bill_id
        for entry in entries
        if entry.type is PartyEntryType.BILL_CREDIT and entry.status is status
    }
    return [entry for entry in entries if entry.related_bill_id in bill_ids]


def ledger_summary(ledger: PartyLedger | SupplierLedger) -> dict[str, Any]:
    """Headline totals of a ledger with its collection efficiency in percent."""
    if isinstance(ledger, PartyLedger):
        billed = ledger.total_bill_amount
        owner = {"party_id": ledger.party_id, "name": ledger.party_name}
        counts = {
            "paid": ledger.paid_bills,
            "pending": ledger.pending_bills,
            "partially_paid": ledger.partially_paid_bills,
        }
    else:
        billed = ledger.total_memo_amount
        owner = {"supplier_id": ledger.supplier_id, "name": ledger.supplier_name}
        counts = {
            "paid": ledger.paid_memos,
            "pending": ledger.pending_memos,
            "partially_paid": ledger.partially_paid_memos,
        }

    settled = ledger.total_advances + ledger.total_paid + ledger.total_deductions
    efficiency = (settled / billed * 100).quantize(Decimal("0.01")) if billed else ZERO
    return {
        **owner,
        "entries": len(ledger.entries),
        "total_billed": billed,
        "total_advances": ledger.total_advances,
        "total_paid": ledger.total_paid,
        "total_deductions": ledger.total_deductions,
        "outstanding_balance": ledger.outstanding_balance,
        "collection_efficiency": efficiency,
        "counts": counts,
    }

