"""Resolution of bank entries to the bill or memo they settle."""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from freight_ledger.models import (
    ZERO,
    Advance,
    BankCategory,
    BankEntry,
    BankEntryType,
    Bill,
    Memo,
)


def resolve_bill(
    entry: BankEntry,
    bills_by_id: dict[str, Bill],
    bills_by_no: dict[str, Bill],
) -> Bill | None:
    """Find the bill a bank entry settles: by ``related_id`` first, then by bill number."""
    if entry.related_id and entry.related_id in bills_by_id:
        return bills_by_id[entry.related_id]
    if entry.related_name and entry.related_name in bills_by_no:
        return bills_by_no[entry.related_name]
    return None


def resolve_memo(
    entry: BankEntry,
    memos_by_id: dict[str, Memo],
    memos_by_no: dict[str, Memo],
) -> Memo | None:
    """Find the memo a bank entry settles: by ``related_id`` first, then by memo number."""
    if entry.related_id and entry.related_id in memos_by_id:
        return memos_by_id[entry.related_id]
    if entry.related_name and entry.related_name in memos_by_no:
        return memos_by_no[entry.related_name]
    return None


def settles_bill(entry: BankEntry) -> bool:
    return entry.type is BankEntryType.CREDIT and entry.category in (
        BankCategory.BILL,
        BankCategory.ADVANCE,
    )


def settles_memo(entry: BankEntry) -> bool:
    return entry.type is BankEntryType.DEBIT and entry.category in (
        BankCategory.MEMO,
        BankCategory.ADVANCE,
    )


def _unrecorded(entries: list[BankEntry], advances: Sequence[Advance]) -> list[BankEntry]:
    """Drop bank entries already represented by an embedded advance.

    An advance linked by ``bank_entry_id`` consumes that entry. Any other
    advance consumes at most one unlinked entry with the same amount and date.
    """
    linked_ids = {advance.bank_entry_id for advance in advances if advance.bank_entry_id}
    unlinked_advances = [advance for advance in advances if not advance.bank_entry_id]
    result = []
    for entry in entries:
        if entry.id in linked_ids:
            continue
        match = next(
            (
                advance
                for advance in unlinked_advances
                if advance.amount == entry.amount and advance.date == entry.date
            ),
            None,
        )
        if match is None:
            result.append(entry)
        else:
            unlinked_advances.remove(match)
    return result


def bank_receipts_by_bill(
    bills: Sequence[Bill], bank_entries: Iterable[BankEntry]
) -> dict[str, list[BankEntry]]:
    """Group credit bank entries by the bill they settle.

    Entries already recorded as advances on the bill are dropped, entries
    that resolve to no bill are ignored. Each list is in date order.
    """
    bills_by_id = {bill.id: bill for bill in bills}
    bills_by_no = {bill.bill_no: bill for bill in bills}
    grouped: dict[str, list[BankEntry]] = {}
    for entry in bank_entries:
        if not settles_bill(entry):
            continue
        bill = resolve_bill(entry, bills_by_id, bills_by_no)
        if bill is not None:
            grouped.setdefault(bill.id, []).append(entry)
    return {
        bill_id: sorted(
            _unrecorded(entries, bills_by_id[bill_id].advances),
            key=lambda entry: entry.date,
        )
        for bill_id, entries in grouped.items()
    }


def bank_payments_by_memo(
    memos: Sequence[Memo], bank_entries: Iterable[BankEntry]
) -> dict[str, list[BankEntry]]:
    """Group debit bank entries by the memo they pay, like ``bank_receipts_by_bill``."""
    memos_by_id = {memo.id: memo for memo in memos}
    memos_by_no = {memo.memo_no: memo for memo in memos}
    grouped: dict[str, list[BankEntry]] = {}
    for entry in bank_entries:
        if not settles_memo(entry):
            continue
        memo = resolve_memo(entry, memos_by_id, memos_by_no)
        if memo is not None:
            grouped.setdefault(memo.id, []).append(entry)
    return {
        memo_id: sorted(
            _unrecorded(entries, memos_by_id[memo_id].advances),
            key=lambda entry: entry.date,
        )
        for memo_id, entries in grouped.items()
    }


def dangling_bank_entries(
    bank_entries: Iterable[BankEntry],
    bills: Sequence[Bill],
    memos: Sequence[Memo],
) -> list[BankEntry]:
    """Bill or memo bank entries that reference a record which does not exist."""
    bills_by_id = {bill.id: bill for bill in bills}
    bills_by_no = {bill.bill_no: bill for bill in bills}
    memos_by_id = {memo.id: memo for memo in memos}
    memos_by_no = {memo.memo_no: memo for memo in memos}
    dangling = []
    for entry in bank_entries:
        if not (entry.related_id or entry.related_name):
            continue
        if entry.category is BankCategory.BILL:
            if resolve_bill(entry, bills_by_id, bills_by_no) is None:
                dangling.append(entry)
        elif entry.category is BankCategory.MEMO:
            if resolve_memo(entry, memos_by_id, memos_by_no) is None:
                dangling.append(entry)
    return dangling


def sum_amounts(entries: Iterable[BankEntry]) -> Decimal:
    return sum((entry.amount for entry in entries), ZERO)
