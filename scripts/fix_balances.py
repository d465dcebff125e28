#!/usr/bin/env python3
"""Repair cached balances in a snapshot file and rebuild every ledger.

Reads a JSON or YAML snapshot of all collections, recomputes bill, memo,
party and supplier balances, rebuilds party and supplier ledgers, prints the
integrity report and writes the corrected snapshot.

Usage:
    pip install -e .
    python scripts/fix_balances.py data/snapshot.json
    python scripts/fix_balances.py data/snapshot.yaml --output fixed.yaml
"""

import argparse
import sys
from pathlib import Path

from freight_ledger.balances import fix_all_balances, fix_all_memo_balances
from freight_ledger.config import configure_logging
from freight_ledger.ledger import build_all_party_ledgers, build_all_supplier_ledgers
from freight_ledger.migration import MigrationResult, migration_report, validate_ledger_integrity
from freight_ledger.store import dump_snapshot, load_snapshot


def main() -> int:
    parser = argparse.ArgumentParser(description="Fix balances and rebuild ledgers")
    parser.add_argument("snapshot", type=Path, help="Snapshot file (.json, .yaml or .yml)")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Where to write the corrected snapshot (default: overwrite input)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report only, write nothing")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()

    configure_logging(level=args.log_level)

    snapshot = load_snapshot(args.snapshot)
    bill_result = fix_all_balances(snapshot.bills, snapshot.parties, snapshot.bank_entries)
    memo_result = fix_all_memo_balances(snapshot.memos, snapshot.suppliers, snapshot.bank_entries)
    fixed = snapshot.model_copy(
        update={
            "bills": bill_result.fixed_bills,
            "parties": bill_result.fixed_parties,
            "memos": memo_result.fixed_memos,
            "suppliers": memo_result.fixed_suppliers,
        }
    )

    party_ledgers = build_all_party_ledgers(fixed.parties, fixed.bills, fixed.bank_entries)
    supplier_ledgers = build_all_supplier_ledgers(
        fixed.suppliers, fixed.memos, fixed.bank_entries
    )
    integrity = validate_ledger_integrity(
        [*party_ledgers, *supplier_ledgers], fixed.bills, fixed.memos
    )

    summary = MigrationResult(
        total_migrated=len(fixed.bills) + len(fixed.memos),
        owners_updated=[ledger.party_id for ledger in party_ledgers]
        + [ledger.supplier_id for ledger in supplier_ledgers],
    )
    print(migration_report(summary, integrity))
    print(f"Bills fixed: {len(bill_result.changed_bill_ids)}")
    print(f"Parties fixed: {len(bill_result.changed_party_ids)}")
    print(f"Memos fixed: {len(memo_result.changed_memo_ids)}")
    print(f"Suppliers fixed: {len(memo_result.changed_supplier_ids)}")
    for ledger in party_ledgers:
        print(f"  {ledger.party_name}: outstanding {ledger.outstanding_balance}")
    for ledger in supplier_ledgers:
        print(f"  {ledger.supplier_name}: outstanding {ledger.outstanding_balance}")

    if not args.dry_run:
        output = args.output or args.snapshot
        dump_snapshot(fixed, output)
        print(f"\nWrote corrected snapshot to {output}")

    return 0 if integrity.is_valid else 1


if __name__ == "__main__":
    sys.exit(main())
