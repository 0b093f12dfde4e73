import io
import json
import unittest
import zipfile
from datetime import date
from typing import Any, Dict

from invoice_manager.due_dates import DueDateTrackingService
from invoice_manager.numbering import InvoiceNumberingService
from invoice_manager.service import InvoiceNotFoundError, InvoiceService, filter_and_sort
from invoice_manager.validation import InvoiceValidationError


def fixed_today() -> date:
    return date(2026, 3, 9)


def fake_render(data: Dict[str, Any]) -> bytes:
    if data["client"]["name"] == "Broken Co":
        raise RuntimeError("font exploded")
    return b"%PDF-1.4 " + data["invoiceNumber"].encode("utf-8")


def payload(name: str = "Acme Corp", email: str = "billing@acme.com", **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "client": {"name": name, "address": "1 Main St", "email": email},
        "items": [
            {"description": "Consulting", "quantity": 2, "unitPrice": 150.0},
            {"description": "Travel", "quantity": 1, "price": 45.5},
        ],
        "taxRate": 10,
    }
    data.update(overrides)
    return data


class InvoiceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.service = InvoiceService(
            numbering=InvoiceNumberingService(today=fixed_today),
            due_dates=DueDateTrackingService(today=fixed_today),
            render=fake_render,
        )

    def test_create_invoice_calculates_and_numbers(self) -> None:
        invoice = self.service.create_invoice(payload(notes="  Net 30  ", currency="eur"))

        self.assertTrue(invoice.id.startswith("inv_"))
        self.assertEqual(invoice.invoice_number, "INV-2026-0001")
        self.assertEqual(invoice.date, "2026-03-09")
        self.assertEqual(invoice.due_date, "2026-04-08")
        self.assertEqual(invoice.status, "draft")
        self.assertEqual(invoice.currency, "EUR")
        self.assertEqual(invoice.notes, "Net 30")
        self.assertEqual([item.line_total for item in invoice.items], [300.0, 45.5])
        self.assertEqual(invoice.items[1].unit_price, 45.5)
        self.assertTrue(all(item.id.startswith("item_") for item in invoice.items))
        self.assertEqual(invoice.subtotal, 345.5)
        self.assertEqual(invoice.tax_amount, 34.55)
        self.assertEqual(invoice.total, 380.05)
        self.assertEqual(invoice.created_at, invoice.updated_at)
        self.assertIs(self.service.get_invoice(invoice.id), invoice)

    def test_create_invoice_keeps_supplied_fields(self) -> None:
        invoice = self.service.create_invoice(
            payload(invoiceNumber="CUSTOM-7", date="2026-01-10", dueDate="2026-01-20", status="sent")
        )

        self.assertEqual(invoice.invoice_number, "CUSTOM-7")
        self.assertEqual(invoice.date, "2026-01-10")
        self.assertEqual(invoice.due_date, "2026-01-20")
        self.assertEqual(invoice.status, "sent")
        self.assertEqual(self.service.get_numbering_stats()["totalGenerated"], 0)

    def test_due_date_follows_invoice_date(self) -> None:
        invoice = self.service.create_invoice(payload(date="2026-01-10"))

        self.assertEqual(invoice.due_date, "2026-02-09")

    def test_invalid_invoice_is_rejected_without_consuming_a_number(self) -> None:
        with self.assertRaises(InvoiceValidationError) as ctx:
            self.service.create_invoice(payload(taxRate=-1))

        self.assertEqual(ctx.exception.field, "taxRate")
        self.assertEqual(len(self.service.store), 0)
        self.assertEqual(self.service.numbering.get_next_number(), "INV-2026-0001")

    def test_numbers_are_unique_and_increasing(self) -> None:
        numbers = [self.service.create_invoice(payload()).invoice_number for _ in range(3)]

        self.assertEqual(numbers, ["INV-2026-0001", "INV-2026-0002", "INV-2026-0003"])

    def test_update_invoice_recalculates_and_keeps_identity(self) -> None:
        original = self.service.create_invoice(payload(status="sent"))
        updated = self.service.update_invoice(
            original.id,
            {
                "client": {"name": "Acme Corp", "address": "2 Side St", "email": "billing@acme.com"},
                "items": [{"description": "Retainer", "quantity": 1, "unitPrice": 1000}],
                "taxRate": 0,
            },
        )

        assert updated is not None
        self.assertEqual(updated.id, original.id)
        self.assertEqual(updated.invoice_number, original.invoice_number)
        self.assertEqual(updated.status, "sent")
        self.assertEqual(updated.date, original.date)
        self.assertEqual(updated.due_date, original.due_date)
        self.assertEqual(updated.created_at, original.created_at)
        self.assertEqual(updated.client.address, "2 Side St")
        self.assertEqual(updated.total, 1000.0)
        self.assertEqual(self.service.get_invoice(original.id), updated)

    def test_update_missing_invoice_returns_none(self) -> None:
        self.assertIsNone(self.service.update_invoice("inv_missing", payload()))

    def test_update_validates_input(self) -> None:
        invoice = self.service.create_invoice(payload())

        with self.assertRaises(InvoiceValidationError):
            self.service.update_invoice(invoice.id, payload(items=[]))
        self.assertEqual(self.service.get_invoice(invoice.id), invoice)

    def test_delete_invoice(self) -> None:
        invoice = self.service.create_invoice(payload())

        self.assertTrue(self.service.delete_invoice(invoice.id))
        self.assertFalse(self.service.delete_invoice(invoice.id))
        self.assertIsNone(self.service.get_invoice(invoice.id))

    def test_bulk_delete_counts_failures(self) -> None:
        first = self.service.create_invoice(payload())
        second = self.service.create_invoice(payload())

        result = self.service.bulk_delete_invoices([first.id, "inv_missing", second.id, 42])

        self.assertEqual(result, {"deleted": 2, "failed": 2})
        self.assertEqual(len(self.service.store), 0)

    def test_update_invoice_status(self) -> None:
        invoice = self.service.create_invoice(payload())

        updated = self.service.update_invoice_status(invoice.id, "paid")

        assert updated is not None
        self.assertEqual(updated.status, "paid")
        self.assertIsNone(self.service.update_invoice_status("inv_missing", "paid"))
        with self.assertRaises(InvoiceValidationError):
            self.service.update_invoice_status(invoice.id, "archived")

    def test_require_invoice_raises_not_found(self) -> None:
        with self.assertRaises(InvoiceNotFoundError):
            self.service.require_invoice("inv_missing")

    def test_list_invoices_paginates_newest_first(self) -> None:
        for day in range(1, 13):
            self.service.create_invoice(payload(date=f"2026-02-{day:02d}"))

        page = self.service.list_invoices(page=2, limit=5)

        self.assertEqual(page.meta(), {"page": 2, "limit": 5, "total": 12, "pages": 3})
        self.assertEqual([invoice.date for invoice in page.items], [f"2026-02-{day:02d}" for day in range(7, 2, -1)])

    def test_list_invoices_clamps_limit(self) -> None:
        self.service.create_invoice(payload())

        page = self.service.list_invoices(page=0, limit=1000)

        self.assertEqual((page.page, page.limit), (1, 100))

    def test_list_invoices_search_and_status(self) -> None:
        self.service.create_invoice(payload(name="Acme Corp", status="sent"))
        self.service.create_invoice(payload(name="Globex", email="ap@globex.io", status="sent"))
        self.service.create_invoice(payload(name="Initech", status="paid"))

        by_email = self.service.list_invoices(search="GLOBEX.IO")
        by_status = self.service.list_invoices(status="sent")
        by_number = self.service.list_invoices(search="0003")

        self.assertEqual([invoice.client.name for invoice in by_email.items], ["Globex"])
        self.assertEqual(sorted(invoice.client.name for invoice in by_status.items), ["Acme Corp", "Globex"])
        self.assertEqual([invoice.client.name for invoice in by_number.items], ["Initech"])

    def test_list_invoices_rejects_unknown_status(self) -> None:
        with self.assertRaises(InvoiceValidationError):
            self.service.list_invoices(status="archived")

    def test_filter_and_sort_by_total_and_name(self) -> None:
        small = self.service.create_invoice(payload(name="beta", items=[{"description": "a", "quantity": 1, "unitPrice": 5}]))
        large = self.service.create_invoice(payload(name="Alpha", items=[{"description": "b", "quantity": 1, "unitPrice": 500}]))
        invoices = self.service.store.values()

        by_total = filter_and_sort(invoices, sort_by="total", sort_order="asc")
        by_name = filter_and_sort(invoices, sort_by="client.name", sort_order="asc")

        self.assertEqual([invoice.id for invoice in by_total], [small.id, large.id])
        self.assertEqual([invoice.id for invoice in by_name], [large.id, small.id])

    def test_get_stats(self) -> None:
        self.service.create_invoice(payload())
        self.service.create_invoice(payload(status="paid"))
        self.service.create_invoice(payload(status="sent", date="2026-01-01", dueDate="2026-01-31"))
        self.service.create_invoice(payload(status="overdue"))
        self.service.create_invoice(payload(status="sent"))

        stats = self.service.get_stats()

        self.assertEqual(stats["total"], 5)
        self.assertEqual(stats["totalRevenue"], 1900.25)
        self.assertEqual(stats["paid"], 1)
        self.assertEqual(stats["overdue"], 2)
        self.assertEqual(stats["draft"], 1)
        self.assertEqual(stats["sent"], 2)

    def test_export_csv_respects_filters(self) -> None:
        self.service.create_invoice(payload(name="Acme, Inc.", status="sent", date="2026-03-01"))
        self.service.create_invoice(payload(name="Globex", status="paid"))

        lines = self.service.export_csv(status="sent").decode("utf-8").splitlines()

        self.assertEqual(len(lines), 2)
        self.assertEqual(
            lines[0],
            "Invoice Number,Client Name,Client Email,Date,Due Date,Status,Subtotal,Tax Amount,Total",
        )
        self.assertEqual(
            lines[1],
            'INV-2026-0001,"Acme, Inc.",billing@acme.com,2026-03-01,2026-03-31,sent,345.50,34.55,380.05',
        )

    def test_export_json_envelope(self) -> None:
        self.service.create_invoice(payload())

        exported = json.loads(self.service.export_json(search="acme"))

        self.assertEqual(exported["totalInvoices"], 1)
        self.assertEqual(
            exported["filters"],
            {"search": "acme", "status": None, "sortBy": "date", "sortOrder": "desc"},
        )
        self.assertTrue(exported["exportedAt"].endswith("Z"))
        self.assertEqual(exported["invoices"][0]["invoiceNumber"], "INV-2026-0001")

    def test_render_pdf_uses_renderer(self) -> None:
        invoice = self.service.create_invoice(payload())

        self.assertEqual(self.service.render_pdf(invoice.id), b"%PDF-1.4 INV-2026-0001")
        with self.assertRaises(InvoiceNotFoundError):
            self.service.render_pdf("inv_missing")

    def test_bulk_download_records_failures_and_summary(self) -> None:
        good = self.service.create_invoice(payload(name="Acme Corp"))
        bad = self.service.create_invoice(payload(name="Broken Co"))

        with self.assertLogs("invoice_manager.exports", level="ERROR"):
            archive = self.service.bulk_download_pdfs([good.id, "inv_missing", bad.id])

        with zipfile.ZipFile(io.BytesIO(archive)) as bundle:
            names = bundle.namelist()
            self.assertEqual(
                names,
                [
                    "invoice-INV-2026-0001-Acme_Corp.pdf",
                    "error-INV-2026-0002.txt",
                    "download-summary.txt",
                ],
            )
            self.assertEqual(bundle.read(names[0]), b"%PDF-1.4 INV-2026-0001")
            self.assertIn(b"font exploded", bundle.read(names[1]))
            summary = bundle.read("download-summary.txt").decode("utf-8")
        self.assertIn("Total Invoices: 2", summary)
        self.assertIn("Failed: 1", summary)
        self.assertIn("- INV-2026-0001 - Acme Corp - $380.05", summary)

    def test_bulk_download_without_valid_ids(self) -> None:
        with self.assertRaises(InvoiceNotFoundError):
            self.service.bulk_download_pdfs(["inv_missing", None])

    def test_bulk_download_ignores_repeated_ids(self) -> None:
        invoice = self.service.create_invoice(payload())

        archive = self.service.bulk_download_pdfs([invoice.id, invoice.id])

        with zipfile.ZipFile(io.BytesIO(archive)) as bundle:
            names = bundle.namelist()
            summary = bundle.read("download-summary.txt").decode("utf-8")
        self.assertEqual(names, ["invoice-INV-2026-0001-Acme_Corp.pdf", "download-summary.txt"])
        self.assertIn("Total Invoices: 1", summary)

    def test_apply_due_date_updates_marks_sent_invoices_overdue(self) -> None:
        late = self.service.create_invoice(payload(status="sent", date="2026-01-01", dueDate="2026-01-31"))
        current = self.service.create_invoice(payload(status="sent"))
        paid = self.service.create_invoice(payload(status="paid", date="2026-01-01", dueDate="2026-01-31"))

        self.assertEqual(self.service.apply_due_date_updates(), 1)
        self.assertEqual(self.service.get_invoice(late.id).status, "overdue")
        self.assertEqual(self.service.get_invoice(current.id).status, "sent")
        self.assertEqual(self.service.get_invoice(paid.id).status, "paid")
        self.assertEqual(self.service.apply_due_date_updates(), 0)

    def test_due_date_alerts_and_config_passthrough(self) -> None:
        self.service.create_invoice(payload(status="sent", date="2026-01-01", dueDate="2026-01-31"))
        self.service.update_due_date_config({"defaultDays": 14})

        alerts = self.service.get_due_date_alerts()

        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0]["type"], "overdue")
        self.assertEqual(self.service.get_due_date_config()["defaultDays"], 14)
        self.assertEqual(self.service.get_due_date_stats()["overdue"], 1)
        self.assertEqual(self.service.create_invoice(payload()).due_date, "2026-03-23")

    def test_numbering_passthrough(self) -> None:
        self.service.update_numbering_config({"prefix": "ACME"})
        self.assertEqual(self.service.create_invoice(payload()).invoice_number, "ACME-2026-0001")

        self.service.reset_numbering()

        self.assertEqual(self.service.get_numbering_stats()["nextNumber"], "ACME-2026-0001")
        self.assertEqual(self.service.get_numbering_config()["prefix"], "ACME")

    def test_generated_numbers_survive_an_update(self) -> None:
        self.service.update_numbering_config({"prefix": "ACME_01", "separator": "_", "includeMonth": True})
        invoice = self.service.create_invoice(payload())

        updated = self.service.update_invoice(invoice.id, invoice.to_dict())

        self.assertEqual(updated.invoice_number, "ACME_01_2026_03_0001")

    def test_rejects_quantities_beyond_the_limit(self) -> None:
        items = [{"description": "Bulk", "quantity": 1e15, "unitPrice": 1e15}]

        with self.assertRaises(InvoiceValidationError) as ctx:
            self.service.create_invoice(payload(items=items))

        self.assertEqual(ctx.exception.field, "items[0].quantity")
        self.assertEqual(len(self.service.list_invoices().items), 0)


if __name__ == "__main__":
    unittest.main()
