import io
import json
import os
import tempfile
import unittest
from typing import List, Optional, Tuple
from unittest.mock import patch

from invoice_manager.cli import main

VALID_INPUT = {
    "client": {"name": "Acme Corp", "address": "1 Main St", "email": "billing@acme.com"},
    "items": [
        {"description": "Consulting", "quantity": 2, "unitPrice": 150.0},
        {"description": "Hosting", "quantity": 1, "unitPrice": 19.99},
    ],
    "taxRate": 10,
    "date": "2026-03-01",
}


@patch("invoice_manager.cli.setup_logging")
class CliTests(unittest.TestCase):
    def run_cli(self, argv: List[str], stdin_text: Optional[str] = None) -> Tuple[int, str, str]:
        stdin = io.StringIO(stdin_text or "")
        stdout = io.StringIO()
        stderr = io.StringIO()
        with self.assertRaises(SystemExit) as ctx:
            main(argv, stdin=stdin, stdout=stdout, stderr=stderr)
        return ctx.exception.code, stdout.getvalue(), stderr.getvalue()

    def test_calculate_json_from_stdin(self, _setup_logging) -> None:
        code, out, _ = self.run_cli(["calculate", "--json"], json.dumps(VALID_INPUT))

        self.assertEqual(code, 0)
        result = json.loads(out)
        self.assertEqual(result["subtotal"], 319.99)
        self.assertEqual(result["taxAmount"], 32.0)
        self.assertEqual(result["total"], 351.99)
        self.assertEqual(result["dueDate"], "2026-03-31")
        self.assertTrue(result["invoiceNumber"].startswith("INV-"))

    def test_calculate_text_summary(self, _setup_logging) -> None:
        code, out, _ = self.run_cli(["calculate"], json.dumps(VALID_INPUT))

        self.assertEqual(code, 0)
        self.assertIn("Client: Acme Corp", out)
        self.assertIn("2 x $150.00 = $300.00", out)
        self.assertIn("Tax (10%): $32.00", out)
        self.assertIn("Total: $351.99", out)

    def test_calculate_reports_validation_errors(self, _setup_logging) -> None:
        bad = dict(VALID_INPUT, items=[])

        code, out, err = self.run_cli(["calculate"], json.dumps(bad))

        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("items: At least one line item is required", err)

    def test_invalid_json_input(self, _setup_logging) -> None:
        code, _, err = self.run_cli(["validate"], "{not json")

        self.assertEqual(code, 1)
        self.assertIn("Invalid JSON input", err)

    def test_validate_json_output(self, _setup_logging) -> None:
        bad = dict(VALID_INPUT, taxRate=120)

        code, out, _ = self.run_cli(["validate", "--json"], json.dumps(bad))

        self.assertEqual(code, 1)
        result = json.loads(out)
        self.assertFalse(result["isValid"])
        self.assertEqual(result["errors"][0]["field"], "taxRate")

    def test_validate_valid_input_from_file(self, _setup_logging) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "invoice.json")
            with open(path, "w", encoding="utf-8") as handle:
                json.dump(VALID_INPUT, handle)

            code, out, _ = self.run_cli(["validate", "--input", path])

        self.assertEqual(code, 0)
        self.assertIn("valid", out)

    def test_missing_input_file(self, _setup_logging) -> None:
        code, _, err = self.run_cli(["validate", "-i", "/nonexistent/invoice.json"])

        self.assertEqual(code, 1)
        self.assertIn("Cannot read input", err)

    def test_format_existing_invoice_json(self, _setup_logging) -> None:
        _, calculated, _ = self.run_cli(["calculate", "--json"], json.dumps(dict(VALID_INPUT, currency="EUR")))

        code, out, _ = self.run_cli(["format", "--json"], calculated)

        self.assertEqual(code, 0)
        formatted = json.loads(out)["formatted"]
        self.assertEqual(formatted["total"], "€351.99")
        self.assertEqual(formatted["date"], "Mar 01, 2026")
        self.assertEqual(formatted["items"][1]["unitPrice"], "€19.99")

    def test_generate_writes_output_file(self, _setup_logging) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sample.json")

            code, out, _ = self.run_cli(["generate", "--json", "-o", path])

            with open(path, "r", encoding="utf-8") as handle:
                sample = json.load(handle)

        self.assertEqual(code, 0)
        self.assertIn("saved to", out)
        self.assertEqual(sample["client"]["name"], "Acme Corporation")
        self.assertEqual(sample["subtotal"], 4300.0)
        self.assertEqual(sample["taxAmount"], 365.5)
        self.assertEqual(sample["total"], 4665.5)

    def test_pdf_writes_rendered_bytes(self, _setup_logging) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "invoice.pdf")
            with patch("invoice_manager.service.load_render_invoice", return_value=lambda data: b"%PDF-fake"):
                code, out, _ = self.run_cli(["pdf", "-o", path], json.dumps(VALID_INPUT))

            with open(path, "rb") as handle:
                self.assertEqual(handle.read(), b"%PDF-fake")

        self.assertEqual(code, 0)
        self.assertIn("PDF for INV-", out)

    def test_pdf_reports_unwritable_output(self, _setup_logging) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "missing", "invoice.pdf")
            with patch("invoice_manager.service.load_render_invoice", return_value=lambda data: b"%PDF-fake"):
                code, out, err = self.run_cli(["pdf", "-o", path], json.dumps(VALID_INPUT))

        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("Cannot write output", err)

    def test_calculate_reports_unwritable_output(self, _setup_logging) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "missing", "invoice.txt")
            code, _, err = self.run_cli(["calculate", "-o", path], json.dumps(VALID_INPUT))

        self.assertEqual(code, 1)
        self.assertIn("Cannot write output", err)

    def test_rejects_nan_in_input(self, _setup_logging) -> None:
        raw = json.dumps(VALID_INPUT).replace('"taxRate": 10', '"taxRate": NaN')

        code, _, err = self.run_cli(["validate"], raw)

        self.assertEqual(code, 1)
        self.assertIn("Invalid JSON input: NaN is not a valid JSON number", err)

    def test_serve_passes_host_and_port(self, _setup_logging) -> None:
        with patch("invoice_manager.server.run") as run:
            code, _, _ = self.run_cli(["serve", "--host", "127.0.0.1", "--port", "9000"])

        self.assertEqual(code, 0)
        run.assert_called_once_with("127.0.0.1", 9000, log_level=None)


if __name__ == "__main__":
    unittest.main()
