"""Balance synchronizer: re-derives cached balances from source records.

Stored ``balance`` fields on bills, memos, parties and suppliers are caches.
Everything here recomputes them from trips, advances, payments and bank
entries and returns corrected copies; nothing is mutated in place.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from freight_ledger.calculations import bill_balance, memo_balance, party_pending_balance
from freight_ledger.ledger import memo_paid_amount
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
    BillStatus,
    Memo,
    MemoStatus,
    Party,
    Supplier,
)
from freight_ledger.validation import validate_bill_balance, validate_memo_balance

logger = structlog.get_logger(__name__)


@dataclass
class SyncResult:
    """Corrected bills and parties."""

    fixed_bills: list[Bill] = field(default_factory=list)
    fixed_parties: list[Party] = field(default_factory=list)
    changed_bill_ids: list[str] = field(default_factory=list)
    changed_party_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changed_bill_ids or self.changed_party_ids)


@dataclass
class MemoSyncResult:
    """Corrected memos and suppliers."""

    fixed_memos: list[Memo] = field(default_factory=list)
    fixed_suppliers: list[Supplier] = field(default_factory=list)
    changed_memo_ids: list[str] = field(default_factory=list)
    changed_supplier_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changed_memo_ids or self.changed_supplier_ids)


# === Bills and parties ===


def recalculate_bill(bill: Bill, bank_entries: Iterable[BankEntry] = ()) -> Decimal:
    """Balance of a bill from its trips, advances, payments and bank receipts.

    The stored ``balance`` is ignored.
    """
    receipts = bank_receipts_by_bill([bill], bank_entries).get(bill.id, [])
    return bill_balance(bill, sum_amounts(receipts))


def synchronize_party_balance(party: Party, bills: Iterable[Bill]) -> Decimal:
    """Party balance: the sum of stored balances of its pending bills."""
    return party_pending_balance(bills, party.id)


def _active_trips(bills: Iterable[Bill], party_id: str) -> int:
    return sum(
        len(bill.trips)
        for bill in bills
        if bill.party_id == party_id and not bill.status.is_settled
    )


def synchronize_party_balances(parties: Iterable[Party], bills: Sequence[Bill]) -> list[Party]:
    return [
        party.model_copy(
            update={
                "balance": synchronize_party_balance(party, bills),
                "active_trips": _active_trips(bills, party.id),
            }
        )
        for party in parties
    ]


def fix_all_balances(
    bills: Sequence[Bill],
    parties: Sequence[Party],
    bank_entries: Iterable[BankEntry] = (),
) -> SyncResult:
    """Recompute every bill balance, then every party balance from the fixed bills.

    Idempotent: feeding the result back in changes nothing.
    """
    receipts = bank_receipts_by_bill(bills, bank_entries)
    result = SyncResult()
    for bill in bills:
        balance = bill_balance(bill, sum_amounts(receipts.get(bill.id, [])))
        if balance != bill.balance:
            result.changed_bill_ids.append(bill.id)
            logger.info(
                "bill_balance_fixed",
                bill_no=bill.bill_no,
                stored=str(bill.balance),
                computed=str(balance),
            )
        result.fixed_bills.append(bill.model_copy(update={"balance": balance}))

    result.fixed_parties = synchronize_party_balances(parties, result.fixed_bills)
    for before, after in zip(parties, result.fixed_parties):
        if (before.balance, before.active_trips) != (after.balance, after.active_trips):
            result.changed_party_ids.append(after.id)

    logger.info(
        "balances_fixed",
        bills=len(bills),
        bills_changed=len(result.changed_bill_ids),
        parties_changed=len(result.changed_party_ids),
    )
    return result


# === Memos and suppliers ===


def recalculate_memo(memo: Memo, bank_entries: Iterable[BankEntry] = ()) -> Decimal:
    """Balance of a memo from its amounts, advances and payments."""
    payments = bank_payments_by_memo([memo], bank_entries).get(memo.id, [])
    return memo_balance(memo, memo_paid_amount(memo, payments))


def calculate_supplier_balance(supplier: Supplier, memos: Iterable[Memo]) -> Decimal:
    """Supplier balance: the sum of stored balances of its pending memos."""
    return sum(
        (
            memo.balance
            for memo in memos
            if memo.supplier_id == supplier.id and memo.status is MemoStatus.PENDING
        ),
        ZERO,
    )


def synchronize_supplier_balances(
    suppliers: Iterable[Supplier], memos: Sequence[Memo]
) -> list[Supplier]:
    return [
        supplier.model_copy(
            update={
                "balance": calculate_supplier_balance(supplier, memos),
                "active_trips": sum(
                    1
                    for memo in memos
                    if memo.supplier_id == supplier.id and memo.status is MemoStatus.PENDING
                ),
            }
        )
        for supplier in suppliers
    ]


def fix_all_memo_balances(
    memos: Sequence[Memo],
    suppliers: Sequence[Supplier],
    bank_entries: Iterable[BankEntry] = (),
) -> MemoSyncResult:
    """Memo counterpart of ``fix_all_balances``."""
    payments = bank_payments_by_memo(memos, bank_entries)
    result = MemoSyncResult()
    for memo in memos:
        balance = memo_balance(memo, memo_paid_amount(memo, payments.get(memo.id, [])))
        if balance != memo.balance:
            result.changed_memo_ids.append(memo.id)
            logger.info(
                "memo_balance_fixed",
                memo_no=memo.memo_no,
                stored=str(memo.balance),
                computed=str(balance),
            )
        result.fixed_memos.append(memo.model_copy(update={"balance": balance}))

    result.fixed_suppliers = synchronize_supplier_balances(suppliers, result.fixed_memos)
    for before, after in zip(suppliers, result.fixed_suppliers):
        if (before.balance, before.active_trips) != (after.balance, after.active_trips):
            result.changed_supplier_ids.append(after.id)

    logger.info(
        "memo_balances_fixed",
        memos=len(memos),
        memos_changed=len(result.changed_memo_ids),
        suppliers_changed=len(result.changed_supplier_ids),
    )
    return result


# === Bank entry deletion ===


def recalculate_bill_after_deletion(bill: Bill, bank_entries: Iterable[BankEntry]) -> Bill:
    """Re-derive a bill after one of its bank receipts was deleted.

    ``bank_entries`` is the book without the deleted entry. A bill left with
    an outstanding balance reopens as pending.
    """
    receipts = bank_receipts_by_bill([bill], bank_entries).get(bill.id, [])
    received = sum_amounts(receipts)
    balance = bill_balance(bill, received)
    check = validate_bill_balance(bill.model_copy(update={"balance": balance}))
    if not check.is_valid and check.corrected_balance is not None:
        balance = check.corrected_balance

    update: dict[str, object] = {
        "balance": balance,
        "net_amount_received": sum((p.received_amount for p in bill.payments), ZERO) + received,
    }
    if balance > 0:
        update.update(status=BillStatus.PENDING, received_date=None, received_narration=None)
    elif not bill.status.is_settled:
        update["status"] = BillStatus.RECEIVED
    logger.info("bill_recalculated_after_deletion", bill_no=bill.bill_no, balance=str(balance))
    return bill.model_copy(update=update)


def recalculate_memo_after_deletion(memo: Memo, bank_entries: Iterable[BankEntry]) -> Memo:
    """Re-derive a memo after one of its bank payments was deleted.

    The paid amount becomes the sum of the remaining linked payments.
    """
    payments = bank_payments_by_memo([memo], bank_entries).get(memo.id, [])
    paid = sum_amounts(payments)
    balance = memo_balance(memo, paid)
    check = validate_memo_balance(memo.model_copy(update={"balance": balance}))
    if not check.is_valid and check.corrected_balance is not None:
        balance = check.corrected_balance

    update: dict[str, object] = {"balance": balance, "paid_amount": paid}
    if balance > 0:
        update.update(status=MemoStatus.PENDING, paid_date=None)
    else:
        update["status"] = MemoStatus.PAID
    logger.info("memo_recalculated_after_deletion", memo_no=memo.memo_no, balance=str(balance))
    return memo.model_copy(update=update)


def find_linked_bills(
    bills: Sequence[Bill], related_id: str | None = None, related_name: str | None = None
) -> list[Bill]:
    """Bills a bank entry points to: by id first, then by bill number."""
    probe = BankEntry.model_construct(related_id=related_id, related_name=related_name)
    bill = resolve_bill(
        probe, {b.id: b for b in bills}, {b.bill_no: b for b in bills}
    )
    return [bill] if bill is not None else []


def find_linked_memos(
    memos: Sequence[Memo], related_id: str | None = None, related_name: str | None = None
) -> list[Memo]:
    probe = BankEntry.model_construct(related_id=related_id, related_name=related_name)
    memo = resolve_memo(
        probe, {m.id: m for m in memos}, {m.memo_no: m for m in memos}
    )
    return [memo] if memo is not None else []
