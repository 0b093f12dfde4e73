"""Invoice domain types and their camelCase wire format."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .formatting import safe_float

STATUS_DRAFT = "draft"
STATUS_SENT = "sent"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"

INVOICE_STATUSES: Tuple[str, ...] = (STATUS_DRAFT, STATUS_SENT, STATUS_PAID, STATUS_OVERDUE)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Client:
    name: str
    address: str
    email: str
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "email": self.email,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Client":
        return cls(
            name=str(data.get("name", "")).strip(),
            address=str(data.get("address", "")).strip(),
            email=str(data.get("email", "")).strip(),
            phone=_optional_str(data.get("phone")),
        )


@dataclass(frozen=True)
class LineItem:
    id: str
    description: str
    quantity: float
    unit_price: float
    line_total: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "lineTotal": self.line_total,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            id=str(data.get("id", "")),
            description=str(data.get("description", "")),
            quantity=safe_float(data.get("quantity")),
            unit_price=safe_float(data.get("unitPrice")),
            line_total=safe_float(data.get("lineTotal")),
        )


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: str
    client: Client
    items: List[LineItem]
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    date: str
    status: str = STATUS_DRAFT
    due_date: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    currency: str = "USD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "client": self.client.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "taxRate": self.tax_rate,
            "taxAmount": self.tax_amount,
            "total": self.total,
            "date": self.date,
            "dueDate": self.due_date,
            "status": self.status,
            "notes": self.notes,
            "currency": self.currency,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        return cls(
            id=str(data["id"]),
            invoice_number=str(data.get("invoiceNumber", "")),
            client=Client.from_dict(data.get("client") or {}),
            items=[LineItem.from_dict(item) for item in data.get("items") or []],
            subtotal=safe_float(data.get("subtotal")),
            tax_rate=safe_float(data.get("taxRate")),
            tax_amount=safe_float(data.get("taxAmount")),
            total=safe_float(data.get("total")),
            date=str(data.get("date", "")),
            status=str(data.get("status", STATUS_DRAFT)),
            due_date=_optional_str(data.get("dueDate")),
            notes=_optional_str(data.get("notes")),
            created_at=str(data.get("createdAt", "")),
            updated_at=str(data.get("updatedAt", "")),
            currency=str(data.get("currency") or "USD").upper(),
        )
