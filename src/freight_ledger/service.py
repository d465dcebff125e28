"""Ledger workflow over a collection store.

``LedgerService`` is the write path: it applies payments, persists the
corrected records and rebuilds the affected owner's ledger before anyone can
read it again. Each owner has its own ``asyncio.Lock``; a rebuild and every
read of that owner's ledger go through it, so no read ever sees a ledger
halfway through a rebuild. A lock lives only while some task holds or
awaits it.
"""

import asyncio
import weakref
from collections.abc import Sequence
from typing import Any, TypeVar

import structlog

from freight_ledger.balances import (
    MemoSyncResult,
    SyncResult,
    calculate_supplier_balance,
    fix_all_balances,
    fix_all_memo_balances,
    recalculate_bill,
    recalculate_bill_after_deletion,
    recalculate_memo_after_deletion,
    synchronize_party_balance,
)
from freight_ledger.exceptions import MissingReferenceError, RecordNotFoundError
from freight_ledger.ledger import build_party_ledger, build_supplier_ledger
from freight_ledger.links import resolve_bill, resolve_memo, settles_bill, settles_memo
from freight_ledger.models import (
    BankEntry,
    Bill,
    LedgerModel,
    Memo,
    Party,
    PartyLedger,
    Supplier,
    SupplierLedger,
)
from freight_ledger.payments import PaymentForm, PaymentResult, apply_bill_payment
from freight_ledger.store import CollectionStore, fetch_snapshot

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=LedgerModel)


class LedgerService:
    """Applies ledger-affecting changes through a store and keeps ledgers rebuilt."""

    def __init__(self, store: CollectionStore):
        self._store = store
        self._logger = logger.bind(component="ledger_service")
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._party_ledgers: dict[str, PartyLedger] = {}
        self._supplier_ledgers: dict[str, SupplierLedger] = {}

    def _lock(self, kind: str, owner_id: str) -> asyncio.Lock:
        key = f"{kind}:{owner_id}"
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # === Store helpers ===

    async def _load(self, collection: str, model: type[ModelT]) -> list[ModelT]:
        return [model.model_validate(record) for record in await self._store.get_all(collection)]

    async def _load_one(self, collection: str, record_id: str, model: type[ModelT]) -> ModelT:
        try:
            record = await self._store.get(collection, record_id)
        except RecordNotFoundError as e:
            raise MissingReferenceError(model.__name__, record_id) from e
        return model.model_validate(record)

    async def _save(self, collection: str, record: Any) -> None:
        await self._store.update(collection, record.id, record.to_record(exclude_none=False))

    async def _sync_party(
        self, party_id: str, bank_entries: Sequence[BankEntry] | None = None
    ) -> Party:
        # Caller holds the party lock.
        party = await self._load_one("parties", party_id, Party)
        bills = await self._load("bills", Bill)
        party = party.model_copy(update={"balance": synchronize_party_balance(party, bills)})
        await self._save("parties", party)
        await self._rebuild_party(party, bills, bank_entries)
        return party

    async def _sync_supplier(
        self, supplier_id: str, bank_entries: Sequence[BankEntry] | None = None
    ) -> Supplier:
        # Caller holds the supplier lock.
        supplier = await self._load_one("suppliers", supplier_id, Supplier)
        memos = await self._load("memos", Memo)
        supplier = supplier.model_copy(
            update={"balance": calculate_supplier_balance(supplier, memos)}
        )
        await self._save("suppliers", supplier)
        await self._rebuild_supplier(supplier, memos, bank_entries)
        return supplier

    # === Payments ===

    async def record_payment(self, bill_id: str, form: PaymentForm) -> PaymentResult:
        """Apply a payment, persist the bill and party, and rebuild the party ledger.

        The payment settles the bill's balance as derived from its trips,
        advances, earlier payments and linked bank receipts, not the cached
        ``balance`` in the store.

        Raises:
            MissingReferenceError: If the bill or its party does not exist.
            PaymentError: If the payment cannot be applied to the bill.
        """
        bill = await self._load_one("bills", bill_id, Bill)
        party = await self._load_one("parties", bill.party_id, Party)

        async with self._lock("party", party.id):
            # Re-read under the lock so concurrent payments see each other.
            bill = await self._load_one("bills", bill_id, Bill)
            bank_entries = await self._load("bank_entries", BankEntry)
            bill = bill.model_copy(update={"balance": recalculate_bill(bill, bank_entries)})
            result = apply_bill_payment(bill, form)
            await self._save("bills", result.updated_bill)
            party = await self._sync_party(party.id, bank_entries)

        self._logger.info(
            "payment_recorded",
            bill_no=bill.bill_no,
            party_id=party.id,
            status=result.updated_bill.status.value,
        )
        return result

    async def delete_bank_entry(self, entry_id: str) -> Bill | Memo | None:
        """Delete a bank entry and re-derive the bill or memo it settled.

        The deletion, the corrected record, the owner's cached balance and the
        owner's ledger rebuild all happen under the owner's lock.

        Returns the corrected bill or memo, or None for an unlinked entry.
        """
        entry = await self._load_one("bank_entries", entry_id, BankEntry)

        if settles_bill(entry):
            bills = await self._load("bills", Bill)
            bill = resolve_bill(
                entry, {b.id: b for b in bills}, {b.bill_no: b for b in bills}
            )
            if bill is not None:
                async with self._lock("party", bill.party_id):
                    await self._store.delete("bank_entries", entry_id)
                    remaining = await self._load("bank_entries", BankEntry)
                    bill = await self._load_one("bills", bill.id, Bill)
                    fixed_bill = recalculate_bill_after_deletion(bill, remaining)
                    await self._save("bills", fixed_bill)
                    await self._sync_party(bill.party_id, remaining)
                return fixed_bill

        if settles_memo(entry):
            memos = await self._load("memos", Memo)
            memo = resolve_memo(
                entry, {m.id: m for m in memos}, {m.memo_no: m for m in memos}
            )
            if memo is not None:
                async with self._lock("supplier", memo.supplier_id):
                    await self._store.delete("bank_entries", entry_id)
                    remaining = await self._load("bank_entries", BankEntry)
                    memo = await self._load_one("memos", memo.id, Memo)
                    fixed_memo = recalculate_memo_after_deletion(memo, remaining)
                    await self._save("memos", fixed_memo)
                    await self._sync_supplier(memo.supplier_id, remaining)
                return fixed_memo

        await self._store.delete("bank_entries", entry_id)
        self._logger.info("bank_entry_deleted_unlinked", entry_id=entry_id)
        return None

    # === Ledgers ===

    async def _rebuild_party(
        self,
        party: Party,
        bills: Sequence[Bill] | None = None,
        bank_entries: Sequence[BankEntry] | None = None,
    ) -> PartyLedger:
        # Caller holds the party lock.
        if bills is None:
            bills = await self._load("bills", Bill)
        if bank_entries is None:
            bank_entries = await self._load("bank_entries", BankEntry)
        ledger = build_party_ledger(party, bills, bank_entries)
        self._party_ledgers[party.id] = ledger
        self._logger.info(
            "ledger_rebuilt",
            owner="party",
            owner_id=party.id,
            entries=len(ledger.entries),
            outstanding=str(ledger.outstanding_balance),
        )
        return ledger

    async def _rebuild_supplier(
        self,
        supplier: Supplier,
        memos: Sequence[Memo] | None = None,
        bank_entries: Sequence[BankEntry] | None = None,
    ) -> SupplierLedger:
        # Caller holds the supplier lock.
        if memos is None:
            memos = await self._load("memos", Memo)
        if bank_entries is None:
            bank_entries = await self._load("bank_entries", BankEntry)
        ledger = build_supplier_ledger(supplier, memos, bank_entries)
        self._supplier_ledgers[supplier.id] = ledger
        self._logger.info(
            "ledger_rebuilt",
            owner="supplier",
            owner_id=supplier.id,
            entries=len(ledger.entries),
            outstanding=str(ledger.outstanding_balance),
        )
        return ledger

    async def rebuild_party_ledger(self, party_id: str) -> PartyLedger:
        """Fully rebuild one party's ledger from the store."""
        party = await self._load_one("parties", party_id, Party)
        async with self._lock("party", party_id):
            return await self._rebuild_party(party)

    async def rebuild_supplier_ledger(self, supplier_id: str) -> SupplierLedger:
        supplier = await self._load_one("suppliers", supplier_id, Supplier)
        async with self._lock("supplier", supplier_id):
            return await self._rebuild_supplier(supplier)

    async def get_party_ledger(self, party_id: str) -> PartyLedger:
        """Current ledger of a party, rebuilt on first access."""
        async with self._lock("party", party_id):
            if party_id in self._party_ledgers:
                return self._party_ledgers[party_id]
        return await self.rebuild_party_ledger(party_id)

    async def get_supplier_ledger(self, supplier_id: str) -> SupplierLedger:
        async with self._lock("supplier", supplier_id):
            if supplier_id in self._supplier_ledgers:
                return self._supplier_ledgers[supplier_id]
        return await self.rebuild_supplier_ledger(supplier_id)

    async def rebuild_all_ledgers(self) -> tuple[list[PartyLedger], list[SupplierLedger]]:
        """Rebuild the ledger of every party with bills and every supplier with memos."""
        snapshot = await fetch_snapshot(self._store)
        billed = {bill.party_id for bill in snapshot.bills}
        with_memos = {memo.supplier_id for memo in snapshot.memos}

        party_ledgers = []
        for party in snapshot.parties:
            if party.id not in billed:
                continue
            async with self._lock("party", party.id):
                party_ledgers.append(
                    await self._rebuild_party(party, snapshot.bills, snapshot.bank_entries)
                )

        supplier_ledgers = []
        for supplier in snapshot.suppliers:
            if supplier.id not in with_memos:
                continue
            async with self._lock("supplier", supplier.id):
                supplier_ledgers.append(
                    await self._rebuild_supplier(supplier, snapshot.memos, snapshot.bank_entries)
                )
        return party_ledgers, supplier_ledgers

    # === Balances ===

    async def fix_all_balances(self) -> tuple[SyncResult, MemoSyncResult]:
        """Recompute and persist every cached balance, then drop cached ledgers."""
        snapshot = await fetch_snapshot(self._store)
        bill_result = fix_all_balances(snapshot.bills, snapshot.parties, snapshot.bank_entries)
        memo_result = fix_all_memo_balances(
            snapshot.memos, snapshot.suppliers, snapshot.bank_entries
        )
        await self._persist_changes("bills", bill_result.fixed_bills, bill_result.changed_bill_ids)
        await self._persist_changes(
            "parties", bill_result.fixed_parties, bill_result.changed_party_ids
        )
        await self._persist_changes("memos", memo_result.fixed_memos, memo_result.changed_memo_ids)
        await self._persist_changes(
            "suppliers", memo_result.fixed_suppliers, memo_result.changed_supplier_ids
        )
        self._party_ledgers.clear()
        self._supplier_ledgers.clear()
        return bill_result, memo_result

    async def _persist_changes(
        self, collection: str, records: Sequence[Any], changed_ids: Sequence[str]
    ) -> None:
        changed = set(changed_ids)
        for record in records:
            if record.id in changed:
                await self._save(collection, record)

