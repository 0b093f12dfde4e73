"""Invoice business operations over the in-memory store."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional

from .calculator import calculate_invoice_totals, round_money
from .config import DEFAULT_CURRENCY, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from .due_dates import DueDateTrackingService, get_due_date_service
from .exports import build_pdf_archive, invoices_to_csv, invoices_to_json, utc_timestamp
from .formatting import iso_date, parse_date
from .models import (
    INVOICE_STATUSES,
    STATUS_DRAFT,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_SENT,
    Client,
    Invoice,
    LineItem,
)
from .numbering import InvoiceNumberingService, get_numbering_service
from .pagination import Page, clamp_page_args, paginate
from .store import InvoiceStore
from .validation import INVALID_VALUE, InvoiceValidationError, ensure_valid_invoice, item_unit_price

logger = logging.getLogger(__name__)

RenderFn = Callable[[Dict[str, Any]], bytes]

SORT_KEYS = ("date", "client.name", "invoiceNumber", "total", "status")
SORT_ORDERS = ("asc", "desc")


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""


class InvoiceNotFoundError(LookupError):
    def __init__(self, message: str = "Invoice not found", invoice_id: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.invoice_id = invoice_id


def load_render_invoice() -> RenderFn:
    try:
        from .rendering import render_invoice
    except ModuleNotFoundError as exc:
        if exc.name == "fpdf":
            raise DependencyError(
                "Missing dependency 'fpdf'. Install project dependencies with "
                "'pip install -e .'."
            ) from exc
        raise
    return render_invoice


def generate_invoice_id() -> str:
    return f"inv_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def generate_item_id() -> str:
    return f"item_{secrets.token_hex(6)}"


def _sort_value(invoice: Invoice, sort_by: str) -> Any:
    if sort_by == "client.name":
        return invoice.client.name.casefold()
    if sort_by == "invoiceNumber":
        return invoice.invoice_number.casefold()
    if sort_by == "total":
        return invoice.total
    if sort_by == "status":
        return invoice.status
    return parse_date(invoice.date) or date.min


def filter_and_sort(
    invoices: Iterable[Invoice],
    search: Optional[str] = None,
    status: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> List[Invoice]:
    """Apply list filters: case-insensitive search, exact status, one sort key."""
    result = list(invoices)
    if status:
        if status not in INVOICE_STATUSES:
            raise InvoiceValidationError(
                f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}",
                field="status",
                code=INVALID_VALUE,
            )
        result = [invoice for invoice in result if invoice.status == status]

    if search:
        term = search.casefold()
        result = [
            invoice
            for invoice in result
            if term in invoice.client.name.casefold()
            or term in invoice.invoice_number.casefold()
            or term in invoice.client.email.casefold()
        ]

    key = sort_by if sort_by in SORT_KEYS else "date"
    descending = (sort_order or "desc") != "asc"
    result.sort(key=lambda invoice: _sort_value(invoice, key), reverse=descending)
    return result


class InvoiceService:
    def __init__(
        self,
        store: Optional[InvoiceStore] = None,
        numbering: Optional[InvoiceNumberingService] = None,
        due_dates: Optional[DueDateTrackingService] = None,
        render: Optional[RenderFn] = None,
    ) -> None:
        self.store = store if store is not None else InvoiceStore()
        self.numbering = numbering if numbering is not None else get_numbering_service()
        self.due_dates = due_dates if due_dates is not None else get_due_date_service()
        self._render = render

    @property
    def render(self) -> RenderFn:
        if self._render is None:
            self._render = load_render_invoice()
        return self._render

    def _build_items(self, raw_items: List[Dict[str, Any]], line_totals: List[float]) -> List[LineItem]:
        items = []
        for raw, line_total in zip(raw_items, line_totals):
            items.append(
                LineItem(
                    id=str(raw.get("id") or generate_item_id()),
                    description=raw["description"].strip(),
                    quantity=float(raw["quantity"]),
                    unit_price=float(item_unit_price(raw)),
                    line_total=line_total,
                )
            )
        return items

    def _calculate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        raw_items = [dict(item, unitPrice=item_unit_price(item)) for item in data["items"]]
        tax_rate = float(data.get("taxRate") or 0)
        totals = calculate_invoice_totals(raw_items, tax_rate)
        return {
            "client": Client.from_dict(data["client"]),
            "items": self._build_items(raw_items, totals.line_totals),
            "subtotal": totals.subtotal,
            "tax_rate": tax_rate,
            "tax_amount": totals.tax_amount,
            "total": totals.total,
            "notes": (data.get("notes") or "").strip() or None,
        }

    def create_invoice(self, data: Any) -> Invoice:
        ensure_valid_invoice(data)
        calculated = self._calculate(data)

        invoice_date = data.get("date") or iso_date(self.due_dates.today())
        now = utc_timestamp()
        invoice = Invoice(
            id=generate_invoice_id(),
            invoice_number=data.get("invoiceNumber") or self.numbering.generate_invoice_number(),
            date=invoice_date,
            due_date=data.get("dueDate") or self.due_dates.calculate_due_date(invoice_date),
            status=data.get("status") or STATUS_DRAFT,
            currency=str(data.get("currency") or DEFAULT_CURRENCY).upper(),
            created_at=now,
            updated_at=now,
            **calculated,
        )
        self.store.put(invoice)
        logger.info("Created invoice %s (%s) total=%.2f", invoice.id, invoice.invoice_number, invoice.total)
        return invoice

    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return self.store.get(invoice_id)

    def require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.store.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id=invoice_id)
        return invoice

    def update_invoice(self, invoice_id: str, data: Any) -> Optional[Invoice]:
        existing = self.store.get(invoice_id)
        if existing is None:
            return None

        ensure_valid_invoice(data)
        calculated = self._calculate(data)
        updated = replace(
            existing,
            invoice_number=data.get("invoiceNumber") or existing.invoice_number,
            date=data.get("date") or existing.date,
            due_date=data.get("dueDate") or existing.due_date,
            status=data.get("status") or existing.status,
            currency=str(data.get("currency") or existing.currency).upper(),
            updated_at=utc_timestamp(),
            **calculated,
        )
        self.store.put(updated)
        logger.info("Updated invoice %s", invoice_id)
        return updated

    def delete_invoice(self, invoice_id: str) -> bool:
        deleted = self.store.delete(invoice_id)
        if deleted:
            logger.info("Deleted invoice %s", invoice_id)
        return deleted

    def bulk_delete_invoices(self, ids: Iterable[Any]) -> Dict[str, int]:
        deleted = 0
        failed = 0
        for invoice_id in ids:
            if isinstance(invoice_id, str) and self.store.delete(invoice_id):
                deleted += 1
            else:
                failed += 1
        logger.info("Bulk delete: %d deleted, %d failed", deleted, failed)
        return {"deleted": deleted, "failed": failed}

    def update_invoice_status(self, invoice_id: str, status: str) -> Optional[Invoice]:
        if status not in INVOICE_STATUSES:
            raise InvoiceValidationError(
                f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}",
                field="status",
                code=INVALID_VALUE,
            )
        invoice = self.store.get(invoice_id)
        if invoice is None:
            return None
        updated = replace(invoice, status=status, updated_at=utc_timestamp())
        self.store.put(updated)
        logger.info("Invoice %s status %s -> %s", invoice_id, invoice.status, status)
        return updated

    def list_invoices(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Page[Invoice]:
        page, limit = clamp_page_args(page, limit, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT)
        invoices = filter_and_sort(self.store.values(), search, status, sort_by, sort_order)
        return paginate(invoices, page, limit)

    def get_stats(self) -> Dict[str, Any]:
        invoices = self.store.values()
        overdue = 0
        for invoice in invoices:
            if invoice.status == STATUS_OVERDUE:
                overdue += 1
            elif invoice.status == STATUS_SENT and invoice.due_date and self.due_dates.is_overdue(invoice.due_date):
                overdue += 1
        return {
            "total": len(invoices),
            "totalRevenue": round_money(sum(invoice.total for invoice in invoices)),
            "paid": sum(1 for invoice in invoices if invoice.status == STATUS_PAID),
            "overdue": overdue,
            "draft": sum(1 for invoice in invoices if invoice.status == STATUS_DRAFT),
            "sent": sum(1 for invoice in invoices if invoice.status == STATUS_SENT),
        }

    @staticmethod
    def export_filters(
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Dict[str, Any]:
        return {
            "search": search or None,
            "status": status or None,
            "sortBy": sort_by if sort_by in SORT_KEYS else "date",
            "sortOrder": sort_order if sort_order in SORT_ORDERS else "desc",
        }

    def export_csv(self, **filters: Optional[str]) -> bytes:
        return invoices_to_csv(self._filtered(**filters))

    def export_json(self, **filters: Optional[str]) -> bytes:
        return invoices_to_json(self._filtered(**filters), self.export_filters(**filters))

    def _filtered(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> List[Invoice]:
        return filter_and_sort(self.store.values(), search, status, sort_by, sort_order)

    def render_pdf(self, invoice_id: str) -> bytes:
        invoice = self.require_invoice(invoice_id)
        return self.render(invoice.to_dict())

    def bulk_download_pdfs(self, ids: Iterable[Any]) -> bytes:
        invoices = []
        seen = set()
        for invoice_id in ids:
            if not isinstance(invoice_id, str) or invoice_id in seen:
                continue
            seen.add(invoice_id)
            invoice = self.store.get(invoice_id)
            if invoice is not None:
                invoices.append(invoice)
        if not invoices:
            raise InvoiceNotFoundError("No valid invoices found for bulk download")
        logger.info("Bulk PDF download of %d invoices", len(invoices))
        return build_pdf_archive(invoices, self.render)

    def apply_due_date_updates(self) -> int:
        """Mark sent invoices that are past due as overdue; returns how many changed."""
        changed = 0
        for invoice in self.store.values():
            new_status = self.due_dates.get_status_update(invoice)
            if new_status is None:
                continue
            self.store.put(replace(invoice, status=new_status, updated_at=utc_timestamp()))
            changed += 1
        if changed:
            logger.info("Due-date tracking moved %d invoices to overdue", changed)
        return changed

    def get_due_date_alerts(self) -> List[Dict[str, Any]]:
        return [alert.to_dict() for alert in self.due_dates.get_due_date_alerts(self.store.values())]

    def get_due_date_stats(self) -> Dict[str, Any]:
        return self.due_dates.get_due_date_stats(self.store.values())

    def get_due_date_config(self) -> Dict[str, Any]:
        return self.due_dates.get_config()

    def update_due_date_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.due_dates.update_config(updates)

    def get_numbering_config(self) -> Dict[str, Any]:
        return self.numbering.get_config()

    def update_numbering_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.numbering.update_config(updates)

    def get_numbering_stats(self) -> Dict[str, Any]:
        return self.numbering.get_stats()

    def reset_numbering(self) -> None:
        self.numbering.reset_numbering()
