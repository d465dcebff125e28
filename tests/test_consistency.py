"""Tests for consistency detection and remediation."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from freight_ledger.consistency import (
    ActionKind,
    ConsistencyFixer,
    IssueType,
    Severity,
    detect_issues,
)
from freight_ledger.exceptions import TransportAPIError
from freight_ledger.models import LoadingSlip, Memo, Snapshot
from freight_ledger.store import InMemoryStore


@pytest.fixture
def slip():
    """Loading slip on the memo fixture's vehicle and date."""
    return LoadingSlip(
        id="slip-1",
        slip_no="LS-1",
        date=date(2024, 1, 5),
        vehicle_no="TN01AB1234",
        origin="Chennai",
        destination="Bangalore",
        party_name="Sri Balaji Traders",
        supplier_detail="Ravi Transport",
        freight=Decimal("20000"),
    )


def _types(issues):
    return [issue.type for issue in issues]


class TestDetectIssues:
    """Tests for detect_issues."""

    def test_clean_snapshot(self, party, supplier, bill):
        assert detect_issues(Snapshot(parties=[party], suppliers=[supplier], bills=[bill])) == []

    def test_unlinked_memo_and_slip(self, supplier, memo, slip):
        issues = detect_issues(Snapshot(suppliers=[supplier], memos=[memo], loading_slips=[slip]))

        assert _types(issues) == [IssueType.UNLINKED_MEMO, IssueType.UNLINKED_LOADING_SLIP]
        assert issues[0].severity is Severity.MEDIUM
        assert issues[0].action.kind is ActionKind.LINK_BY_VEHICLE_DATE
        assert issues[1].severity is Severity.LOW

    def test_missing_owners_matched_ignoring_case(self, party, bill, memo):
        renamed = party.model_copy(update={"name": "SRI BALAJI TRADERS "})
        linked = memo.model_copy(update={"linked_loading_slip_id": "slip-1"})

        issues = detect_issues(Snapshot(parties=[renamed], bills=[bill], memos=[linked]))

        assert _types(issues) == [IssueType.MISSING_SUPPLIER]
        assert issues[0].affected_items == ["Ravi Transport"]

    def test_collection_mismatch(self, party, bill):
        local = Snapshot(parties=[party], bills=[bill])

        issues = detect_issues(local, Snapshot(parties=[party]))

        assert _types(issues) == [IssueType.DATA_MISMATCH]
        assert issues[0].severity is Severity.HIGH
        assert issues[0].affected_items[0].description == "bills: Local 1 vs Remote 0"

    def test_dangling_bank_entry(self, party, bill, make_bank_entry):
        entry = make_bank_entry("bank-1", "100", date(2024, 1, 8), related_name="B-404")

        issues = detect_issues(Snapshot(parties=[party], bills=[bill], bank_entries=[entry]))

        assert _types(issues) == [IssueType.DANGLING_BANK_ENTRY]
        assert issues[0].action.kind is ActionKind.REVIEW


class TestConsistencyFixer:
    """Tests for ConsistencyFixer."""

    @pytest.mark.asyncio
    async def test_links_memo_to_slip(self, supplier, memo, slip):
        local = Snapshot(suppliers=[supplier], memos=[memo], loading_slips=[slip])
        store = InMemoryStore.from_snapshot(local)
        fixer = ConsistencyFixer(store)

        await fixer.fix_issues(detect_issues(local), local)

        stored_memo = await store.get("memos", "memo-1")
        stored_slip = await store.get("loading_slips", "slip-1")
        assert stored_memo["linkedLoadingSlipId"] == "slip-1"
        assert stored_slip["linkedMemoNo"] == "M-001"
        # The slip already has a memo on its vehicle and date.
        assert len(await store.get_all("memos")) == 1
        assert any("Linked memo M-001 to loading slip LS-1" in line for line in fixer.logs)

    @pytest.mark.asyncio
    async def test_creates_memo_for_slip(self, slip):
        store = InMemoryStore.from_snapshot(Snapshot(loading_slips=[slip]))
        fixer = ConsistencyFixer(store)

        created = await fixer.create_memos_for_slips([slip], [])

        assert created == 1
        memo = Memo.model_validate((await store.get_all("memos"))[0])
        assert memo.memo_no == "MEMO-LS-1"
        assert memo.commission == Decimal("1200")
        assert memo.balance == Decimal("18800")
        assert memo.linked_loading_slip_id == "slip-1"
        assert (await store.get("loading_slips", "slip-1"))["linkedMemoNo"] == "MEMO-LS-1"

    @pytest.mark.asyncio
    async def test_run_pushes_local_and_creates_owners(self, party, bill, memo, slip):
        """Test a full run against a store missing local records."""
        linked_memo = memo.model_copy(update={"linked_loading_slip_id": "slip-1"})
        linked_slip = slip.model_copy(update={"linked_memo_no": "M-001"})
        local = Snapshot(
            parties=[party], bills=[bill], memos=[linked_memo], loading_slips=[linked_slip]
        )
        store = InMemoryStore()
        fixer = ConsistencyFixer(store)

        issues = await fixer.run(local)

        assert _types(issues)[0] is IssueType.DATA_MISMATCH
        assert [b["id"] for b in await store.get_all("bills")] == ["bill-1"]
        suppliers = await store.get_all("suppliers")
        assert [s["name"] for s in suppliers] == ["Ravi Transport"]
        assert "Synced bills data to remote" in " ".join(fixer.logs)

    @pytest.mark.asyncio
    async def test_failed_fix_is_logged(self):
        store = AsyncMock()
        store.create.side_effect = TransportAPIError("API error: 500", status_code=500)
        fixer = ConsistencyFixer(store)

        await fixer.create_parties(["Acme"])

        assert "Failed to create party Acme" in fixer.logs[0]

    @pytest.mark.asyncio
    async def test_no_issues(self):
        fixer = ConsistencyFixer(InMemoryStore())

        await fixer.fix_issues([], Snapshot())

        assert fixer.logs[0].endswith("No issues found. System is synchronized.")
        fixer.clear_logs()
        assert fixer.logs == []
