"""Freight Ledger - balance and ledger reconciliation for transport bookkeeping."""

__version__ = "0.1.0"

from freight_ledger.balances import (
    MemoSyncResult,
    SyncResult,
    fix_all_balances,
    fix_all_memo_balances,
    recalculate_bill,
    recalculate_memo,
    synchronize_party_balance,
)
from freight_ledger.config import configure_logging, get_settings
from freight_ledger.exceptions import (
    LedgerError,
    MissingReferenceError,
    PaymentError,
    RecordNotFoundError,
    TransportAPIError,
)
from freight_ledger.ledger import build_party_ledger, build_supplier_ledger
from freight_ledger.payments import PaymentForm, PaymentResult, apply_bill_payment
from freight_ledger.service import LedgerService
from freight_ledger.store import InMemoryStore, TransportAPIClient
from freight_ledger.validation import BalanceCheck, validate_balance

__all__ = [
    # Version
    "__version__",
    # Config
    "configure_logging",
    "get_settings",
    # Errors
    "LedgerError",
    "MissingReferenceError",
    "PaymentError",
    "RecordNotFoundError",
    "TransportAPIError",
    # Core operations
    "apply_bill_payment",
    "build_party_ledger",
    "build_supplier_ledger",
    "fix_all_balances",
    "fix_all_memo_balances",
    "recalculate_bill",
    "recalculate_memo",
    "synchronize_party_balance",
    "validate_balance",
    "BalanceCheck",
    "MemoSyncResult",
    "PaymentForm",
    "PaymentResult",
    "SyncResult",
    # Workflow and persistence
    "InMemoryStore",
    "LedgerService",
    "TransportAPIClient",
]
