"""Field validation for clients, line items and whole invoices."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date
from numbers import Real
from typing import Any, Dict, List, Optional

from .models import INVOICE_STATUSES

REQUIRED_FIELD = "REQUIRED_FIELD"
MAX_LENGTH_EXCEEDED = "MAX_LENGTH_EXCEEDED"
INVALID_EMAIL_FORMAT = "INVALID_EMAIL_FORMAT"
INVALID_VALUE = "INVALID_VALUE"
INVALID_FORMAT = "INVALID_FORMAT"
INVALID_DATE = "INVALID_DATE"

CLIENT_NAME_MAX = 100
CLIENT_ADDRESS_MAX = 200
CLIENT_PHONE_MAX = 20
DESCRIPTION_MAX = 200
INVOICE_NUMBER_MAX = 50
NOTES_MAX = 2000
QUANTITY_MAX = 1_000_000_000
UNIT_PRICE_MAX = 1_000_000_000_000

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9]([a-zA-Z0-9.-]*[a-zA-Z0-9])?\.[a-zA-Z]{2,}$")
INVOICE_NUMBER_RE = re.compile(r"^[A-Z0-9_-]+$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    code: str = INVALID_VALUE

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass
class ValidationResult:
    errors: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, field_name: str, message: str, code: str) -> None:
        self.errors.append(FieldError(field_name, message, code))

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)


class InvoiceValidationError(ValueError):
    """Raised when invoice input fails validation; carries the offending field."""

    def __init__(self, message: str, field: str = "", code: str = INVALID_VALUE,
                 errors: Optional[List[FieldError]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.code = code
        self.errors = list(errors or [])

    @classmethod
    def from_result(cls, result: ValidationResult) -> "InvoiceValidationError":
        first = result.errors[0]
        return cls(
            f"Validation failed: {first.message} ({first.field})",
            field=first.field,
            code=first.code,
            errors=result.errors,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or "")) and ".." not in email


def validate_client(client: Any) -> ValidationResult:
    result = ValidationResult()
    if not isinstance(client, dict):
        result.add("client", "Client information is required", REQUIRED_FIELD)
        return result

    name = _text(client.get("name"))
    if not name.strip():
        result.add("client.name", "Client name is required", REQUIRED_FIELD)
    elif len(name) > CLIENT_NAME_MAX:
        result.add(
            "client.name",
            f"Client name must be {CLIENT_NAME_MAX} characters or less",
            MAX_LENGTH_EXCEEDED,
        )

    address = _text(client.get("address"))
    if not address.strip():
        result.add("client.address", "Client address is required", REQUIRED_FIELD)
    elif len(address) > CLIENT_ADDRESS_MAX:
        result.add(
            "client.address",
            f"Client address must be {CLIENT_ADDRESS_MAX} characters or less",
            MAX_LENGTH_EXCEEDED,
        )

    email = _text(client.get("email"))
    if not email.strip():
        result.add("client.email", "Client email is required", REQUIRED_FIELD)
    elif not is_valid_email(email):
        result.add("client.email", "Invalid email format", INVALID_EMAIL_FORMAT)

    phone = client.get("phone")
    if phone is not None and not isinstance(phone, str):
        result.add("client.phone", "Client phone must be a string", INVALID_FORMAT)
    elif phone and len(phone) > CLIENT_PHONE_MAX:
        result.add(
            "client.phone",
            f"Client phone must be {CLIENT_PHONE_MAX} characters or less",
            MAX_LENGTH_EXCEEDED,
        )
    return result


def item_unit_price(item: Dict[str, Any]) -> Any:
    """Inbound items may say ``price`` instead of ``unitPrice``."""
    if "unitPrice" in item:
        return item["unitPrice"]
    return item.get("price")


def validate_line_item(item: Any, prefix: str = "items") -> ValidationResult:
    result = ValidationResult()
    if not isinstance(item, dict):
        result.add(prefix, "Line item must be an object", INVALID_FORMAT)
        return result

    description = _text(item.get("description"))
    if not description.strip():
        result.add(f"{prefix}.description", "Description is required", REQUIRED_FIELD)
    elif len(description) > DESCRIPTION_MAX:
        result.add(
            f"{prefix}.description",
            f"Description must be {DESCRIPTION_MAX} characters or less",
            MAX_LENGTH_EXCEEDED,
        )

    quantity = item.get("quantity")
    if not _is_number(quantity):
        result.add(f"{prefix}.quantity", "Quantity must be a number", INVALID_VALUE)
    elif quantity <= 0:
        result.add(f"{prefix}.quantity", "Quantity must be positive", INVALID_VALUE)
    elif quantity > QUANTITY_MAX:
        result.add(f"{prefix}.quantity", f"Quantity cannot exceed {QUANTITY_MAX:,}", INVALID_VALUE)

    unit_price = item_unit_price(item)
    if not _is_number(unit_price):
        result.add(f"{prefix}.unitPrice", "Unit price must be a number", INVALID_VALUE)
    elif unit_price < 0:
        result.add(f"{prefix}.unitPrice", "Unit price cannot be negative", INVALID_VALUE)
    elif unit_price > UNIT_PRICE_MAX:
        result.add(f"{prefix}.unitPrice", f"Unit price cannot exceed {UNIT_PRICE_MAX:,}", INVALID_VALUE)
    return result


def reject_json_constant(token: str) -> Any:
    """``parse_constant`` hook for ``json.loads``: NaN and Infinity are not numbers here."""
    raise ValueError(f"{token} is not a valid JSON number")


def validate_tax_rate(tax_rate: Any) -> ValidationResult:
    result = ValidationResult()
    if not _is_number(tax_rate):
        result.add("taxRate", "Tax rate must be a number", INVALID_VALUE)
    elif tax_rate < 0:
        result.add("taxRate", "Tax rate cannot be negative", INVALID_VALUE)
    elif tax_rate > 100:
        result.add("taxRate", "Tax rate cannot exceed 100%", INVALID_VALUE)
    return result


def validate_invoice_number(invoice_number: Any) -> ValidationResult:
    result = ValidationResult()
    number = _text(invoice_number)
    if not number.strip():
        result.add("invoiceNumber", "Invoice number is required", REQUIRED_FIELD)
    elif len(number) > INVOICE_NUMBER_MAX:
        result.add(
            "invoiceNumber",
            f"Invoice number must be {INVOICE_NUMBER_MAX} characters or less",
            MAX_LENGTH_EXCEEDED,
        )
    elif not INVOICE_NUMBER_RE.match(number):
        result.add(
            "invoiceNumber",
            "Invoice number can only contain uppercase letters, numbers, hyphens, and underscores",
            INVALID_FORMAT,
        )
    return result


def validate_date(value: Any, field_name: str = "date") -> ValidationResult:
    result = ValidationResult()
    text = _text(value)
    label = "Due date" if field_name == "dueDate" else "Date"
    if not text.strip():
        result.add(field_name, f"{label} is required", REQUIRED_FIELD)
    elif not ISO_DATE_RE.match(text):
        result.add(field_name, f"{label} must be in YYYY-MM-DD format", INVALID_FORMAT)
    else:
        try:
            date.fromisoformat(text)
        except ValueError:
            result.add(field_name, f"{label} must be a valid date", INVALID_DATE)
    return result


def validate_invoice(data: Any) -> ValidationResult:
    """Validate an inbound invoice payload and collect every error found."""
    result = ValidationResult()
    if not isinstance(data, dict):
        result.add("invoice", "Invoice data must be an object", INVALID_FORMAT)
        return result

    result.extend(validate_client(data.get("client")))

    items = data.get("items")
    if not isinstance(items, list) or not items:
        result.add("items", "At least one line item is required", REQUIRED_FIELD)
    else:
        for index, item in enumerate(items):
            result.extend(validate_line_item(item, prefix=f"items[{index}]"))

    if data.get("taxRate") is not None:
        result.extend(validate_tax_rate(data["taxRate"]))
    if data.get("invoiceNumber") is not None:
        result.extend(validate_invoice_number(data["invoiceNumber"]))
    if data.get("date") is not None:
        result.extend(validate_date(data["date"], "date"))
    if data.get("dueDate") is not None:
        result.extend(validate_date(data["dueDate"], "dueDate"))

    status = data.get("status")
    if status is not None and status not in INVOICE_STATUSES:
        result.add(
            "status",
            f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}",
            INVALID_VALUE,
        )

    notes = data.get("notes")
    if notes is not None and not isinstance(notes, str):
        result.add("notes", "Notes must be a string", INVALID_FORMAT)
    elif notes and len(notes) > NOTES_MAX:
        result.add("notes", f"Notes must be {NOTES_MAX} characters or less", MAX_LENGTH_EXCEEDED)
    return result


def ensure_valid_invoice(data: Any) -> None:
    result = validate_invoice(data)
    if not result.is_valid:
        raise InvoiceValidationError.from_result(result)
