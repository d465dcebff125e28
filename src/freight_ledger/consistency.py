"""Best-effort consistency checks between collections and between data copies.

``detect_issues`` is pure and only reports. ``ConsistencyFixer`` applies the
suggested remediation through a store, highest severity first; a fix that
fails is logged and the next one still runs.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from freight_ledger.calculations import calculate_commission, memo_total_amount
from freight_ledger.exceptions import LedgerError
from freight_ledger.links import dangling_bank_entries
from freight_ledger.models import (
    COLLECTIONS,
    ZERO,
    LedgerModel,
    LoadingSlip,
    Memo,
    Party,
    Snapshot,
    Supplier,
)
from freight_ledger.store import CollectionStore, fetch_snapshot

logger = structlog.get_logger(__name__)


class IssueType(str, Enum):
    UNLINKED_MEMO = "unlinked_memo"
    UNLINKED_LOADING_SLIP = "unlinked_loading_slip"
    DATA_MISMATCH = "data_mismatch"
    MISSING_SUPPLIER = "missing_supplier"
    MISSING_PARTY = "missing_party"
    DANGLING_BANK_ENTRY = "dangling_bank_entry"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class ActionKind(str, Enum):
    """What the fixer does about an issue."""

    LINK_BY_VEHICLE_DATE = "link_by_vehicle_date"
    CREATE_MEMO_FOR_SLIP = "create_memo_for_slip"
    PUSH_LOCAL_TO_REMOTE = "push_local_to_remote"
    CREATE_SUPPLIER = "create_supplier"
    CREATE_PARTY = "create_party"
    REVIEW = "review"


@dataclass(frozen=True)
class RemediationAction:
    kind: ActionKind
    description: str


@dataclass(frozen=True)
class CollectionMismatch:
    """Record count differs between the local and remote copy of a collection."""

    collection: str
    local_count: int
    remote_count: int

    @property
    def description(self) -> str:
        return f"{self.collection}: Local {self.local_count} vs Remote {self.remote_count}"


@dataclass
class SyncIssue:
    type: IssueType
    description: str
    severity: Severity
    action: RemediationAction
    affected_items: list[Any] = field(default_factory=list)


# === Detection ===


def _missing_names(referenced: Iterable[str], existing: Iterable[str]) -> list[str]:
    known = {name.strip().lower() for name in existing}
    missing: dict[str, str] = {}
    for name in referenced:
        key = name.strip().lower()
        if key and key not in known and key not in missing:
            missing[key] = name.strip()
    return list(missing.values())


def detect_issues(local: Snapshot, remote: Snapshot | None = None) -> list[SyncIssue]:
    """Report cross-link gaps, undefined counterparts and copy mismatches.

    ``remote`` is a second copy of the same data (for example the backend
    while ``local`` is a cache); without it no mismatch check runs.
    """
    issues: list[SyncIssue] = []

    unlinked_memos = [memo for memo in local.memos if not memo.linked_loading_slip_id]
    if unlinked_memos:
        issues.append(
            SyncIssue(
                type=IssueType.UNLINKED_MEMO,
                description=f"{len(unlinked_memos)} memos without linked loading slips",
                severity=Severity.MEDIUM,
                action=RemediationAction(
                    ActionKind.LINK_BY_VEHICLE_DATE,
                    "Link each memo to the loading slip with the same vehicle and date",
                ),
                affected_items=unlinked_memos,
            )
        )

    unlinked_slips = [slip for slip in local.loading_slips if not slip.linked_memo_no]
    if unlinked_slips:
        issues.append(
            SyncIssue(
                type=IssueType.UNLINKED_LOADING_SLIP,
                description=f"{len(unlinked_slips)} loading slips without linked memos",
                severity=Severity.LOW,
                action=RemediationAction(
                    ActionKind.CREATE_MEMO_FOR_SLIP,
                    "Create a memo for every slip that has no memo on the same vehicle and date",
                ),
                affected_items=unlinked_slips,
            )
        )

    if remote is not None:
        mismatches = [
            CollectionMismatch(
                name, len(local.collection(name)), len(remote.collection(name))
            )
            for name in COLLECTIONS
            if len(local.collection(name)) != len(remote.collection(name))
        ]
        if mismatches:
            issues.append(
                SyncIssue(
                    type=IssueType.DATA_MISMATCH,
                    description=f"{len(mismatches)} data mismatches detected",
                    severity=Severity.HIGH,
                    action=RemediationAction(
                        ActionKind.PUSH_LOCAL_TO_REMOTE,
                        "Push the local records of each mismatched collection to the remote store",
                    ),
                    affected_items=mismatches,
                )
            )

    missing_suppliers = _missing_names(
        (memo.supplier_name for memo in local.memos), (s.name for s in local.suppliers)
    )
    if missing_suppliers:
        issues.append(
            SyncIssue(
                type=IssueType.MISSING_SUPPLIER,
                description=f"{len(missing_suppliers)} suppliers referenced but not found",
                severity=Severity.MEDIUM,
                action=RemediationAction(
                    ActionKind.CREATE_SUPPLIER, "Create the missing suppliers"
                ),
                affected_items=missing_suppliers,
            )
        )

    missing_parties = _missing_names(
        (bill.party_name for bill in local.bills), (p.name for p in local.parties)
    )
    if missing_parties:
        issues.append(
            SyncIssue(
                type=IssueType.MISSING_PARTY,
                description=f"{len(missing_parties)} parties referenced but not found",
                severity=Severity.MEDIUM,
                action=RemediationAction(ActionKind.CREATE_PARTY, "Create the missing parties"),
                affected_items=missing_parties,
            )
        )

    dangling = dangling_bank_entries(local.bank_entries, local.bills, local.memos)
    if dangling:
        issues.append(
            SyncIssue(
                type=IssueType.DANGLING_BANK_ENTRY,
                description=f"{len(dangling)} bank entries reference a missing bill or memo",
                severity=Severity.MEDIUM,
                action=RemediationAction(
                    ActionKind.REVIEW,
                    "Correct the bill or memo reference; ledgers ignore these entries",
                ),
                affected_items=dangling,
            )
        )

    logger.info("sync_issues_detected", count=len(issues), types=[i.type.value for i in issues])
    return issues


# === Remediation ===


def _new_record(model: LedgerModel) -> dict[str, Any]:
    record = model.to_record()
    if not record.get("id"):
        record.pop("id", None)
    return record


class ConsistencyFixer:
    """Applies remediation actions through a store and keeps a readable log."""

    def __init__(self, store: CollectionStore):
        self._store = store
        self._logs: list[str] = []
        self._logger = logger.bind(component="consistency_fixer")

    @property
    def logs(self) -> list[str]:
        return list(self._logs)

    def clear_logs(self) -> None:
        self._logs.clear()

    def _log(self, message: str, **context: Any) -> None:
        timestamp = datetime.now(UTC).strftime("%H:%M:%S")
        self._logs.append(f"[{timestamp}] {message}")
        self._logger.info("consistency_fix", message=message, **context)

    async def run(self, local: Snapshot) -> list[SyncIssue]:
        """Detect issues between ``local`` and the store, then fix them."""
        remote = await fetch_snapshot(self._store)
        issues = detect_issues(local, remote)
        await self.fix_issues(issues, local)
        return issues

    async def fix_issues(self, issues: Sequence[SyncIssue], local: Snapshot) -> None:
        if not issues:
            self._log("No issues found. System is synchronized.")
            return
        ordered = sorted(issues, key=lambda issue: issue.severity.rank, reverse=True)
        for issue in ordered:
            self._log(f"Fixing {issue.type.value}: {issue.description}")
            try:
                await self._apply(issue, local)
            except LedgerError as e:
                self._log(f"Failed to fix {issue.type.value}: {e}", error=str(e))
            else:
                self._log(f"Fixed {issue.type.value}")

    async def _apply(self, issue: SyncIssue, local: Snapshot) -> None:
        kind = issue.action.kind
        if kind is ActionKind.LINK_BY_VEHICLE_DATE:
            await self.link_memos_to_slips(issue.affected_items, local.loading_slips)
        elif kind is ActionKind.CREATE_MEMO_FOR_SLIP:
            await self.create_memos_for_slips(issue.affected_items, local.memos)
        elif kind is ActionKind.PUSH_LOCAL_TO_REMOTE:
            await self.push_collections(issue.affected_items, local)
        elif kind is ActionKind.CREATE_SUPPLIER:
            await self.create_suppliers(issue.affected_items)
        elif kind is ActionKind.CREATE_PARTY:
            await self.create_parties(issue.affected_items)
        else:
            for item in issue.affected_items:
                reference = item.related_name or item.related_id
                self._log(f"Needs review: bank entry {item.id} ({reference})")

    async def link_memos_to_slips(
        self, memos: Iterable[Memo], slips: Sequence[LoadingSlip]
    ) -> int:
        """Link each memo to an unlinked slip with the same vehicle and date."""
        claimed: set[str] = set()
        linked = 0
        for memo in memos:
            slip = next(
                (
                    s
                    for s in slips
                    if s.vehicle_no == memo.vehicle
                    and s.date == memo.loading_date
                    and not s.linked_memo_no
                    and s.id not in claimed
                ),
                None,
            )
            if slip is None:
                continue
            try:
                await self._store.update("memos", memo.id, {"linkedLoadingSlipId": slip.id})
                await self._store.update("loading_slips", slip.id, {"linkedMemoNo": memo.memo_no})
            except LedgerError as e:
                self._log(f"Failed to link memo {memo.memo_no}: {e}", error=str(e))
                continue
            claimed.add(slip.id)
            linked += 1
            self._log(f"Linked memo {memo.memo_no} to loading slip {slip.slip_no}")
        return linked

    async def create_memos_for_slips(
        self, slips: Iterable[LoadingSlip], memos: Sequence[Memo]
    ) -> int:
        """Create a pending memo for every slip with no memo on the same vehicle and date."""
        created = 0
        for slip in slips:
            if any(m.vehicle == slip.vehicle_no and m.loading_date == slip.date for m in memos):
                continue
            memo = Memo(
                memo_no=f"MEMO-{slip.slip_no}",
                loading_date=slip.date,
                origin=slip.origin,
                destination=slip.destination,
                supplier_name=slip.supplier_detail,
                party_name=slip.party_name,
                vehicle=slip.vehicle_no,
                freight=slip.freight,
                commission=calculate_commission(slip.freight),
                linked_loading_slip_id=slip.id,
                created_at=datetime.now(UTC),
            )
            memo = memo.model_copy(update={"balance": max(memo_total_amount(memo), ZERO)})
            try:
                await self._store.create("memos", _new_record(memo))
                await self._store.update("loading_slips", slip.id, {"linkedMemoNo": memo.memo_no})
            except LedgerError as e:
                self._log(f"Failed to create memo for slip {slip.slip_no}: {e}", error=str(e))
                continue
            created += 1
            self._log(f"Created memo {memo.memo_no} for loading slip {slip.slip_no}")
        return created

    async def push_collections(
        self, mismatches: Iterable[CollectionMismatch], local: Snapshot
    ) -> None:
        """Upsert every local record of the mismatched collections into the store."""
        for mismatch in mismatches:
            remote_ids = {
                record.get("id") or record.get("_id")
                for record in await self._store.get_all(mismatch.collection)
            }
            for record in local.collection(mismatch.collection):
                if record.id and record.id in remote_ids:
                    await self._store.update(mismatch.collection, record.id, record.to_record())
                else:
                    await self._store.create(mismatch.collection, _new_record(record))
            self._log(f"Synced {mismatch.collection} data to remote")

    async def create_suppliers(self, names: Iterable[str]) -> None:
        for name in names:
            supplier = Supplier(name=name, created_at=datetime.now(UTC))
            try:
                await self._store.create("suppliers", _new_record(supplier))
            except LedgerError as e:
                self._log(f"Failed to create supplier {name}: {e}", error=str(e))
                continue
            self._log(f"Created missing supplier: {name}")

    async def create_parties(self, names: Iterable[str]) -> None:
        for name in names:
            party = Party(name=name, created_at=datetime.now(UTC))
            try:
                await self._store.create("parties", _new_record(party))
            except LedgerError as e:
                self._log(f"Failed to create party {name}: {e}", error=str(e))
                continue
            self._log(f"Created missing party: {name}")
