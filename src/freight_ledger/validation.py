"""Balance sanity checks and record form validation."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog

from freight_ledger.calculations import bill_total_amount, memo_total_amount, parse_amount
from freight_ledger.config import get_settings
from freight_ledger.models import ZERO, Bill, LoadingSlip, Memo

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BalanceCheck:
    """Result of a balance sanity check.

    When ``is_valid`` is False the caller must store ``corrected_balance``.
    """

    is_valid: bool
    corrected_balance: Decimal | None = None
    warning: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    message: str | None = None


VALID = ValidationResult(is_valid=True)


# === Balance guard ===


def _check(label: str, balance: Decimal, maximum: Decimal) -> BalanceCheck:
    maximum = max(ZERO, maximum)
    tolerance = get_settings().balance_tolerance
    if balance > maximum + tolerance:
        warning = (
            f"{label}: Balance ({balance}) exceeded maximum amount ({maximum}). "
            "Resetting to maximum."
        )
        logger.warning("balance_clamped", record=label, balance=str(balance), maximum=str(maximum))
        return BalanceCheck(is_valid=False, corrected_balance=maximum, warning=warning)
    if balance < 0:
        warning = f"{label}: Balance ({balance}) is negative. Resetting to zero."
        logger.warning("balance_clamped", record=label, balance=str(balance), maximum=str(maximum))
        return BalanceCheck(is_valid=False, corrected_balance=ZERO, warning=warning)
    return BalanceCheck(is_valid=True)


def validate_bill_balance(bill: Bill) -> BalanceCheck:
    """Flag a bill whose stored balance is above its total amount or below zero."""
    return _check(f"Bill {bill.bill_no}", bill.balance, bill_total_amount(bill))


def validate_memo_balance(memo: Memo) -> BalanceCheck:
    """Flag a memo whose stored balance is above its net amount or below zero."""
    return _check(f"Memo {memo.memo_no}", memo.balance, memo_total_amount(memo))


def validate_balance(entity: Bill | Memo) -> BalanceCheck:
    if isinstance(entity, Bill):
        return validate_bill_balance(entity)
    return validate_memo_balance(entity)


# === Record numbers ===


def _validate_number(
    kind: str, number: str, existing: Iterable[tuple[str, str]], exclude_id: str | None
) -> ValidationResult:
    if not number or not number.strip():
        return ValidationResult(False, f"{kind} number is required")
    wanted = number.strip().lower()
    for record_id, record_no in existing:
        if record_no.strip().lower() == wanted and record_id != exclude_id:
            return ValidationResult(
                False,
                f'{kind} number "{number}" already exists. Please use a different number.',
            )
    return VALID


def validate_bill_number(
    bill_no: str, bills: Iterable[Bill], exclude_id: str | None = None
) -> ValidationResult:
    """Bill numbers are required and unique, ignoring case.

    ``exclude_id`` skips the bill being edited.
    """
    return _validate_number("Bill", bill_no, ((b.id, b.bill_no) for b in bills), exclude_id)


def validate_memo_number(
    memo_no: str, memos: Iterable[Memo], exclude_id: str | None = None
) -> ValidationResult:
    return _validate_number("Memo", memo_no, ((m.id, m.memo_no) for m in memos), exclude_id)


def validate_loading_slip_number(
    slip_no: str, slips: Iterable[LoadingSlip], exclude_id: str | None = None
) -> ValidationResult:
    return _validate_number(
        "Loading slip", slip_no, ((s.id, s.slip_no) for s in slips), exclude_id
    )


# === Forms ===


def _text(form: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = form.get(key)
        if value is not None:
            return str(value).strip()
    return ""


def _require(
    form: Mapping[str, Any], checks: list[tuple[tuple[str, ...], str]]
) -> ValidationResult:
    for keys, message in checks:
        if not _text(form, *keys):
            return ValidationResult(False, message)
    return VALID


def _positive_freight(form: Mapping[str, Any]) -> ValidationResult:
    if parse_amount(form.get("freight")) <= 0:
        return ValidationResult(False, "Valid freight amount is required")
    return VALID


def validate_bill_form(
    form: Mapping[str, Any], bills: Iterable[Bill], exclude_id: str | None = None
) -> ValidationResult:
    """Validate raw bill form data (camelCase or snake_case keys)."""
    result = validate_bill_number(_text(form, "billNo", "bill_no"), bills, exclude_id)
    if not result.is_valid:
        return result
    return _require(form, [(("partyName", "party_name"), "Party name is required")])


def validate_memo_form(
    form: Mapping[str, Any], memos: Iterable[Memo], exclude_id: str | None = None
) -> ValidationResult:
    result = validate_memo_number(_text(form, "memoNo", "memo_no"), memos, exclude_id)
    if not result.is_valid:
        return result
    result = _require(
        form,
        [
            (("from", "origin"), "From location is required"),
            (("to", "destination"), "To location is required"),
            (("vehicle",), "Vehicle number is required"),
        ],
    )
    if not result.is_valid:
        return result
    return _positive_freight(form)


def validate_loading_slip_form(
    form: Mapping[str, Any], slips: Iterable[LoadingSlip], exclude_id: str | None = None
) -> ValidationResult:
    result = validate_loading_slip_number(_text(form, "slipNo", "slip_no"), slips, exclude_id)
    if not result.is_valid:
        return result
    result = _require(
        form,
        [
            (("vehicleNo", "vehicle_no"), "Vehicle number is required"),
            (("from", "origin"), "From location is required"),
            (("to", "destination"), "To location is required"),
            (("partyName", "party_name"), "Party name is required"),
        ],
    )
    if not result.is_valid:
        return result
    return _positive_freight(form)
