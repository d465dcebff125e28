"""Typed entity model for bills, memos, bank entries and ledgers.

Records arrive from the CRUD backend as camelCase JSON documents. They are
validated once, here, so the calculation modules can assume well-typed input:
amounts are ``Decimal`` (missing or null amounts become zero), calendar dates
are ``date`` and creation times are timezone-aware.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
)
from pydantic.alias_generators import to_camel

ZERO = Decimal("0")


def _coerce_money(value: Any) -> Any:
    if value is None:
        return ZERO
    if isinstance(value, str):
        stripped = value.replace(",", "").strip()
        return stripped or ZERO
    return value


def _serialize_money(value: Decimal) -> int | float:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _coerce_date(value: Any) -> Any:
    # Backends store ISO timestamps for some date columns.
    if isinstance(value, str) and len(value) > 10 and value[10] in "T ":
        return value[:10]
    if isinstance(value, datetime):
        return value.date()
    return value


def _ensure_aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _coerce_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    return value


Money = Annotated[
    Decimal,
    BeforeValidator(_coerce_money),
    PlainSerializer(_serialize_money, when_used="json"),
]
CalendarDate = Annotated[date, BeforeValidator(_coerce_date)]
Timestamp = Annotated[datetime | None, AfterValidator(_ensure_aware)]
Text = Annotated[str, BeforeValidator(_coerce_text)]


class BillStatus(str, Enum):
    """Settlement state of a bill."""

    PENDING = "pending"
    FULLY_PAID = "fully_paid"
    SETTLED_WITH_DEDUCTIONS = "settled_with_deductions"
    RECEIVED = "received"

    @property
    def is_settled(self) -> bool:
        return self is not BillStatus.PENDING


class MemoStatus(str, Enum):
    """Settlement state of a memo."""

    PENDING = "pending"
    PAID = "paid"


class DeductionType(str, Enum):
    """Kinds of deductions a party may take when paying a bill."""

    TDS = "tds"
    MAMUL = "mamul"
    PAYMENT_CHARGES = "payment_charges"
    COMMISSION = "commission"
    OTHER = "other"

    @property
    def label(self) -> str:
        return _DEDUCTION_LABELS[self]


_DEDUCTION_LABELS = {
    DeductionType.TDS: "TDS Deduction",
    DeductionType.MAMUL: "Mamul Deduction",
    DeductionType.PAYMENT_CHARGES: "Payment Charges",
    DeductionType.COMMISSION: "Commission Deduction",
    DeductionType.OTHER: "Other Deduction",
}


class BankEntryType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class BankCategory(str, Enum):
    BILL = "bill"
    MEMO = "memo"
    ADVANCE = "advance"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    OTHER = "other"


class EntrySide(str, Enum):
    """Which column of the ledger an entry posts to."""

    CREDIT = "credit"
    DEBIT = "debit"


class PartyEntryType(str, Enum):
    BILL_CREDIT = "bill_credit"
    ADVANCE_DEBIT = "advance_debit"
    PAYMENT_DEBIT = "payment_debit"
    DEDUCTION_DEBIT = "deduction_debit"


class SupplierEntryType(str, Enum):
    MEMO_CREDIT = "memo_credit"
    COMMISSION_DEBIT = "commission_debit"
    MAMUL_DEBIT = "mamul_debit"
    ADVANCE_DEBIT = "advance_debit"
    PAYMENT_DEBIT = "payment_debit"


class SettlementStatus(str, Enum):
    """Per-bill settlement shown on ledger rows."""

    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"


class LedgerModel(BaseModel):
    """Base for all records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self, exclude_none: bool = True) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape the backend stores.

        Pass ``exclude_none=False`` for updates that must clear fields.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=exclude_none)


def _aliased(*names: str, default: Any = ...) -> Any:
    """Field accepting several wire names and serializing under the first."""
    return Field(
        default=default,
        validation_alias=AliasChoices(*names),
        serialization_alias=names[0],
    )


def _record_id() -> Any:
    # Mongo-backed deployments return `_id` instead of `id`.
    return _aliased("id", "_id", default="")


# === Source-of-truth records ===


class Advance(LedgerModel):
    """Partial payment recorded on a bill or memo before settlement."""

    id: str = _record_id()
    amount: Money = ZERO
    date: CalendarDate
    narration: str | None = None
    # Set when the advance was recorded through a bank entry.
    bank_entry_id: str | None = None


class BillTrip(LedgerModel):
    """One shipment leg billed on a Bill."""

    id: str = _record_id()
    cn_no: Text = ""
    loading_date: CalendarDate | None = None
    origin: str = Field(default="", alias="from")
    destination: str = Field(default="", alias="to")
    vehicle: str = _aliased("vehicle", "vehicleNumber", default="")
    weight: Money = ZERO
    freight: Money = ZERO
    rto_challan: Text = ""
    detention: Money = ZERO
    mamul: Money = ZERO


class PaymentDeduction(LedgerModel):
    id: str = _record_id()
    type: DeductionType
    amount: Money = ZERO
    description: str | None = None


class BillPayment(LedgerModel):
    """Immutable record of one payment applied to a bill."""

    model_config = ConfigDict(frozen=True)

    id: str = _record_id()
    bill_id: str
    payment_date: CalendarDate
    bill_amount: Money = ZERO
    received_amount: Money = ZERO
    difference_amount: Money = ZERO
    deductions: tuple[PaymentDeduction, ...] = ()
    remaining_balance: Money = ZERO
    payment_method: str | None = None
    reference: str | None = None
    remarks: str | None = None
    created_at: Timestamp = None

    @property
    def total_deductions(self) -> Decimal:
        return sum((d.amount for d in self.deductions), ZERO)


class Bill(LedgerModel):
    """Receivable raised against a Party."""

    id: str = _record_id()
    bill_no: str = _aliased("billNo", "bill_no", "billNumber")
    bill_date: CalendarDate
    party_id: str = ""
    party_name: str = ""
    trips: list[BillTrip] = Field(default_factory=list)
    total_freight: Money = ZERO
    mamul: Money = ZERO
    detention: Money = ZERO
    rto_amount: Money = ZERO
    extra_charges: Money = ZERO
    advances: list[Advance] = Field(default_factory=list)
    balance: Money = ZERO
    status: BillStatus = BillStatus.PENDING
    payments: list[BillPayment] = Field(default_factory=list)
    total_deductions: Money = ZERO
    net_amount_received: Money = ZERO
    received_date: CalendarDate | None = None
    received_narration: str | None = None
    notes: str | None = None
    created_at: Timestamp = None


class Memo(LedgerModel):
    """Payable owed to a Supplier for one trip."""

    id: str = _record_id()
    memo_no: str = _aliased("memoNo", "memo_no", "memoNumber")
    loading_date: CalendarDate
    origin: str = _aliased("from", "from_location", default="")
    destination: str = _aliased("to", "to_location", default="")
    supplier_id: str = ""
    supplier_name: str = ""
    party_name: str | None = None
    vehicle: str = _aliased("vehicle", "vehicleNumber", default="")
    freight: Money = ZERO
    commission: Money = ZERO
    mamul: Money = ZERO
    detention: Money = ZERO
    rto_amount: Money = ZERO
    extra_charge: Money = ZERO
    advances: list[Advance] = Field(default_factory=list)
    balance: Money = ZERO
    paid_amount: Money = ZERO
    status: MemoStatus = MemoStatus.PENDING
    paid_date: CalendarDate | None = None
    linked_loading_slip_id: str | None = None
    notes: str | None = None
    created_at: Timestamp = None


class BankEntry(LedgerModel):
    """Atomic cash movement, optionally linked to one bill or memo."""

    id: str = _record_id()
    date: CalendarDate
    type: BankEntryType
    amount: Money = ZERO
    narration: str = _aliased("narration", "particulars", default="")
    category: BankCategory = BankCategory.OTHER
    related_id: str | None = None
    related_name: str | None = None
    created_at: Timestamp = None


class Party(LedgerModel):
    """Customer account. ``balance`` is a cached projection, never authoritative."""

    id: str = _record_id()
    name: str
    mobile: str | None = _aliased("mobile", "contact", default=None)
    address: str | None = None
    gst: str | None = None
    balance: Money = ZERO
    active_trips: int = 0
    created_at: Timestamp = None


class Supplier(LedgerModel):
    """Vehicle owner account. ``balance`` is a cached projection of pending memos."""

    id: str = _record_id()
    name: str
    mobile: str | None = _aliased("mobile", "contact", default=None)
    address: str | None = None
    balance: Money = ZERO
    active_trips: int = 0
    created_at: Timestamp = None


class LoadingSlip(LedgerModel):
    id: str = _record_id()
    slip_no: str = _aliased("slipNo", "slip_no", "slipNumber")
    date: CalendarDate = _aliased("date", "loadingDate")
    vehicle_no: str = _aliased("vehicleNo", "vehicle_no", "vehicleNumber", default="")
    origin: str = _aliased("from", "from_location", default="")
    destination: str = _aliased("to", "to_location", default="")
    party_name: str = ""
    supplier_detail: str = ""
    material: str = _aliased("material", "materialType", default="")
    weight: Money = ZERO
    freight: Money = ZERO
    rto_amount: Money = ZERO
    advance_amount: Money = _aliased("advanceAmount", "advance_amount", "advance", default=ZERO)
    linked_memo_no: str | None = None
    linked_bill_no: str | None = None
    created_at: Timestamp = None


# === Derived ledgers ===


class LedgerEntry(LedgerModel):
    """One row of a running account. Shared by party and supplier ledgers."""

    id: str
    entry_type: EntrySide
    date: CalendarDate
    particulars: str = ""
    credit_amount: Money = ZERO
    debit_amount: Money = ZERO
    running_balance: Money = ZERO
    deduction_type: DeductionType | None = None
    status: SettlementStatus | None = None
    remarks: str | None = None
    created_at: Timestamp = None

    @property
    def net_amount(self) -> Decimal:
        return self.credit_amount - self.debit_amount


class PartyLedgerEntry(LedgerEntry):
    type: PartyEntryType
    bill_no: str
    bill_date: CalendarDate
    related_bill_id: str
    related_payment_id: str | None = None


class SupplierLedgerEntry(LedgerEntry):
    type: SupplierEntryType
    memo_no: str
    loading_date: CalendarDate
    related_memo_id: str
    related_bank_entry_id: str | None = None


class PartyLedger(LedgerModel):
    id: str
    party_id: str
    party_name: str
    entries: list[PartyLedgerEntry] = Field(default_factory=list)
    outstanding_balance: Money = ZERO
    total_bill_amount: Money = ZERO
    total_advances: Money = ZERO
    total_paid: Money = ZERO
    total_deductions: Money = ZERO
    paid_bills: int = 0
    pending_bills: int = 0
    partially_paid_bills: int = 0


class SupplierLedger(LedgerModel):
    id: str
    supplier_id: str
    supplier_name: str
    entries: list[SupplierLedgerEntry] = Field(default_factory=list)
    outstanding_balance: Money = ZERO
    total_memo_amount: Money = ZERO
    total_advances: Money = ZERO
    total_paid: Money = ZERO
    total_deductions: Money = ZERO
    paid_memos: int = 0
    pending_memos: int = 0
    partially_paid_memos: int = 0


class Snapshot(LedgerModel):
    """Full in-memory copy of every collection the engine reads."""

    loading_slips: list[LoadingSlip] = Field(default_factory=list)
    memos: list[Memo] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    bank_entries: list[BankEntry] = Field(default_factory=list)
    parties: list[Party] = Field(default_factory=list)
    suppliers: list[Supplier] = Field(default_factory=list)

    def collection(self, name: str) -> list[Any]:
        """Return the collection stored under its backend table name."""
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return getattr(self, name)


COLLECTIONS: tuple[str, ...] = (
    "loading_slips",
    "memos",
    "bills",
    "bank_entries",
    "parties",
    "suppliers",
)

RECORD_TYPES: dict[str, type[LedgerModel]] = {
    "loading_slips": LoadingSlip,
    "memos": Memo,
    "bills": Bill,
    "bank_entries": BankEntry,
    "parties": Party,
    "suppliers": Supplier,
}
