"""Bring stored ledgers in line with bills and memos, and audit the result.

Migration only ever adds owners' missing records by rebuilding the whole
owner ledger; a record that already has its credit row is left alone, so a
second run is a no-op.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import structlog

from freight_ledger.config import get_settings
from freight_ledger.ledger import replace_party_ledger, replace_supplier_ledger
from freight_ledger.models import (
    ZERO,
    BankEntry,
    Bill,
    Memo,
    Party,
    PartyEntryType,
    PartyLedger,
    Supplier,
    SupplierEntryType,
    SupplierLedger,
)

logger = structlog.get_logger(__name__)


@dataclass
class MigrationResult:
    total_migrated: int = 0
    owners_updated: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class IntegrityReport:
    """Outcome of ``validate_ledger_integrity``."""

    issues: list[str] = field(default_factory=list)
    total_ledgers: int = 0
    total_entries: int = 0
    entry_counts: dict[str, int] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def _credited_bills(ledgers: Iterable[PartyLedger]) -> set[tuple[str, str]]:
    return {
        (ledger.party_id, entry.related_bill_id)
        for ledger in ledgers
        for entry in ledger.entries
        if entry.type is PartyEntryType.BILL_CREDIT
    }


def _credited_memos(ledgers: Iterable[SupplierLedger]) -> set[tuple[str, str]]:
    return {
        (ledger.supplier_id, entry.related_memo_id)
        for ledger in ledgers
        for entry in ledger.entries
        if entry.type is SupplierEntryType.MEMO_CREDIT
    }


def bills_needing_migration(
    bills: Iterable[Bill], ledgers: Iterable[PartyLedger]
) -> list[Bill]:
    """Bills without a credit row in their party's ledger."""
    credited = _credited_bills(ledgers)
    return [bill for bill in bills if (bill.party_id, bill.id) not in credited]


def check_migration_needed(bills: Iterable[Bill], ledgers: Iterable[PartyLedger]) -> int:
    """Number of bills that still need to be migrated."""
    return len(bills_needing_migration(bills, ledgers))


def migrate_bills_to_ledgers(
    bills: Sequence[Bill],
    ledgers: Sequence[PartyLedger],
    parties: Sequence[Party],
    bank_entries: Sequence[BankEntry] = (),
) -> tuple[list[PartyLedger], MigrationResult]:
    """Rebuild the ledgers of parties with unmigrated bills.

    Bills whose party does not exist are reported in ``errors`` and skipped.
    """
    parties_by_id = {party.id: party for party in parties}
    result = MigrationResult()
    for bill in bills_needing_migration(bills, ledgers):
        if bill.party_id not in parties_by_id:
            result.errors.append(
                f"Party not found for bill {bill.bill_no} (Party ID: {bill.party_id})"
            )
            continue
        result.total_migrated += 1
        if bill.party_id not in result.owners_updated:
            result.owners_updated.append(bill.party_id)

    updated = list(ledgers)
    for party_id in result.owners_updated:
        updated = replace_party_ledger(updated, parties_by_id[party_id], bills, bank_entries)

    logger.info(
        "bills_migrated",
        migrated=result.total_migrated,
        parties=len(result.owners_updated),
        errors=len(result.errors),
    )
    return updated, result


def migrate_memos_to_ledgers(
    memos: Sequence[Memo],
    ledgers: Sequence[SupplierLedger],
    suppliers: Sequence[Supplier],
    bank_entries: Sequence[BankEntry] = (),
) -> tuple[list[SupplierLedger], MigrationResult]:
    suppliers_by_id = {supplier.id: supplier for supplier in suppliers}
    credited = _credited_memos(ledgers)
    result = MigrationResult()
    for memo in memos:
        if (memo.supplier_id, memo.id) in credited:
            continue
        if memo.supplier_id not in suppliers_by_id:
            result.errors.append(
                f"Supplier not found for memo {memo.memo_no} (Supplier ID: {memo.supplier_id})"
            )
            continue
        result.total_migrated += 1
        if memo.supplier_id not in result.owners_updated:
            result.owners_updated.append(memo.supplier_id)

    updated = list(ledgers)
    for supplier_id in result.owners_updated:
        updated = replace_supplier_ledger(
            updated, suppliers_by_id[supplier_id], memos, bank_entries
        )

    logger.info(
        "memos_migrated",
        migrated=result.total_migrated,
        suppliers=len(result.owners_updated),
        errors=len(result.errors),
    )
    return updated, result


def validate_ledger_integrity(
    ledgers: Iterable[PartyLedger | SupplierLedger],
    bills: Iterable[Bill] | None = None,
    memos: Iterable[Memo] | None = None,
) -> IntegrityReport:
    """Audit stored ledgers.

    Checks every running balance against a fresh walk of the entries in their
    stored order, the outstanding balance against the final walk, and that
    every entry refers to an existing bill or memo. References are checked
    only against the collections passed in.
    """
    tolerance = get_settings().balance_tolerance
    bill_ids = None if bills is None else {bill.id for bill in bills}
    memo_ids = None if memos is None else {memo.id for memo in memos}
    report = IntegrityReport()
    counts: Counter[str] = Counter()

    for ledger in ledgers:
        report.total_ledgers += 1
        if isinstance(ledger, PartyLedger):
            name = ledger.party_name
        else:
            name = ledger.supplier_name
        balance = ZERO
        for entry in ledger.entries:
            balance += entry.credit_amount - entry.debit_amount
            report.total_entries += 1
            counts[entry.type.value] += 1
            if abs(entry.running_balance - balance) > tolerance:
                report.issues.append(
                    f"Ledger {name}: Entry {entry.id} has incorrect running balance. "
                    f"Expected: {balance}, Found: {entry.running_balance}"
                )
            if isinstance(ledger, PartyLedger):
                if bill_ids is not None and entry.related_bill_id not in bill_ids:
                    report.issues.append(
                        f"Ledger entry {entry.id} references non-existent bill "
                        f"{entry.related_bill_id}"
                    )
            elif memo_ids is not None and entry.related_memo_id not in memo_ids:
                report.issues.append(
                    f"Ledger entry {entry.id} references non-existent memo "
                    f"{entry.related_memo_id}"
                )
        if abs(ledger.outstanding_balance - balance) > tolerance:
            report.issues.append(
                f"Ledger {name}: Outstanding balance mismatch. "
                f"Expected: {balance}, Found: {ledger.outstanding_balance}"
            )

    report.entry_counts = dict(sorted(counts.items()))
    if report.issues:
        logger.warning("ledger_integrity_issues", issues=len(report.issues))
    return report


def migration_report(result: MigrationResult, integrity: IntegrityReport | None = None) -> str:
    """Plain-text summary of a migration run and, optionally, the audit after it."""
    lines = [
        "=== LEDGER MIGRATION REPORT ===",
        f"Records migrated: {result.total_migrated}",
        f"Owners updated: {len(result.owners_updated)}",
    ]
    if result.errors:
        lines.append("")
        lines.append(f"Errors encountered: {len(result.errors)}")
        lines.extend(f"   {i}. {error}" for i, error in enumerate(result.errors, start=1))

    if integrity is not None:
        lines.append("")
        lines.append("=== VALIDATION RESULTS ===")
        lines.append(f"Status: {'Valid' if integrity.is_valid else 'Issues Found'}")
        lines.append(f"Total Ledgers: {integrity.total_ledgers}")
        lines.append(f"Total Entries: {integrity.total_entries}")
        lines.extend(f"  - {kind}: {count}" for kind, count in integrity.entry_counts.items())
        if integrity.issues:
            lines.append("")
            lines.append("Validation Issues:")
            lines.extend(
                f"   {i}. {issue}" for i, issue in enumerate(integrity.issues, start=1)
            )
    return "\n".join(lines) + "\n"
