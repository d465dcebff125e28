"""Exceptions raised by the freight ledger engine."""

from typing import Any


class LedgerError(Exception):
    """Base exception for ledger engine errors."""


class PaymentError(LedgerError):
    """A payment request cannot be applied to a bill."""

    def __init__(self, message: str, bill_no: str | None = None):
        super().__init__(message)
        self.bill_no = bill_no


class MissingReferenceError(LedgerError):
    """A required owner or record could not be resolved on a write path."""

    def __init__(self, entity: str, reference: str):
        super().__init__(f"{entity} not found: {reference}")
        self.entity = entity
        self.reference = reference


class TransportAPIError(LedgerError):
    """Base exception for transport backend errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class RecordNotFoundError(TransportAPIError):
    """Record does not exist in the backing store."""

    pass
