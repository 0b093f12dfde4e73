"""Command-line interface: calculate, validate, format and render invoices."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, TextIO

from .calculator import format_currency
from .config import HOST, PORT
from .due_dates import DueDateTrackingService
from .formatting import fmt_date, fmt_qty
from .logging_setup import setup_logging
from .models import Invoice
from .numbering import InvoiceNumberingService
from .service import DependencyError, InvoiceService
from .validation import reject_json_constant, validate_invoice

SAMPLE_REQUEST: Dict[str, Any] = {
    "client": {
        "name": "Acme Corporation",
        "address": "123 Business St\nSuite 100\nNew York, NY 10001",
        "email": "billing@acme.example",
        "phone": "+1-555-0123",
    },
    "items": [
        {"description": "Web Development Services", "quantity": 40, "unitPrice": 75.0},
        {"description": "Design Consultation", "quantity": 8, "unitPrice": 100.0},
        {"description": "Project Management", "quantity": 1, "unitPrice": 500.0},
    ],
    "taxRate": 8.5,
    "notes": "Thank you for your business.",
}


class CliError(Exception):
    """Raised for bad input; reported on stderr with exit status 1."""


def read_input(path: Optional[str], stdin: TextIO) -> Dict[str, Any]:
    try:
        if path:
            with open(path, "r", encoding="utf-8") as handle:
                raw = handle.read()
        else:
            raw = stdin.read()
    except OSError as exc:
        raise CliError(f"Cannot read input: {exc}") from exc

    try:
        data = json.loads(raw, parse_constant=reject_json_constant)
    except json.JSONDecodeError as exc:
        raise CliError(f"Invalid JSON input: {exc.msg} (line {exc.lineno}, column {exc.colno})") from exc
    except ValueError as exc:
        raise CliError(f"Invalid JSON input: {exc}") from exc
    if not isinstance(data, dict):
        raise CliError("Invalid JSON input: root must be an object")
    return data


def write_output(text: str, path: Optional[str], stdout: TextIO, label: str) -> None:
    if path:
        try:
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(text)
        except OSError as exc:
            raise CliError(f"Cannot write output: {exc}") from exc
        stdout.write(f"{label} saved to {path}\n")
    else:
        stdout.write(text if text.endswith("\n") else text + "\n")


def offline_service() -> InvoiceService:
    """A throwaway service whose numbering and due dates never touch disk."""
    return InvoiceService(numbering=InvoiceNumberingService(), due_dates=DueDateTrackingService())


def describe_invoice(invoice: Invoice) -> str:
    currency = invoice.currency
    lines = [
        "Invoice Calculation Results:",
        "============================",
        f"Invoice Number: {invoice.invoice_number}",
        f"Client: {invoice.client.name}",
        f"Date: {fmt_date(invoice.date)}",
    ]
    if invoice.due_date:
        lines.append(f"Due Date: {fmt_date(invoice.due_date)}")
    lines.append("")
    lines.append("Line Items:")
    for index, item in enumerate(invoice.items, start=1):
        lines.append(f"  {index}. {item.description}")
        lines.append(
            f"     {fmt_qty(item.quantity)} x {format_currency(item.unit_price, currency)}"
            f" = {format_currency(item.line_total, currency)}"
        )
    lines.append("")
    lines.append(f"Subtotal: {format_currency(invoice.subtotal, currency)}")
    lines.append(f"Tax ({fmt_qty(invoice.tax_rate)}%): {format_currency(invoice.tax_amount, currency)}")
    lines.append(f"Total: {format_currency(invoice.total, currency)}")
    if invoice.notes:
        lines.append("")
        lines.append(f"Notes: {invoice.notes}")
    return "\n".join(lines)


def formatted_fields(invoice: Invoice) -> Dict[str, Any]:
    currency = invoice.currency
    data = invoice.to_dict()
    data["formatted"] = {
        "date": fmt_date(invoice.date),
        "dueDate": fmt_date(invoice.due_date) if invoice.due_date else None,
        "subtotal": format_currency(invoice.subtotal, currency),
        "taxAmount": format_currency(invoice.tax_amount, currency),
        "total": format_currency(invoice.total, currency),
        "items": [
            {
                "description": item.description,
                "quantity": fmt_qty(item.quantity),
                "unitPrice": format_currency(item.unit_price, currency),
                "lineTotal": format_currency(item.line_total, currency),
            }
            for item in invoice.items
        ],
    }
    return data


def cmd_calculate(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    data = read_input(args.input, stdin)
    if not _report_validation(data, stderr):
        return 1
    invoice = offline_service().create_invoice(data)
    if args.json:
        write_output(json.dumps(invoice.to_dict(), indent=2), args.output, stdout, "Invoice calculated and")
    else:
        write_output(describe_invoice(invoice), args.output, stdout, "Invoice calculated and")
    return 0


def cmd_validate(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    data = read_input(args.input, stdin)
    result = validate_invoice(data)
    if args.json:
        stdout.write(
            json.dumps(
                {"isValid": result.is_valid, "errors": [error.to_dict() for error in result.errors]},
                indent=2,
            )
            + "\n"
        )
    elif result.is_valid:
        stdout.write("Invoice data is valid.\n")
    else:
        _print_errors(result.errors, stderr)
    return 0 if result.is_valid else 1


def cmd_format(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    data = read_input(args.input, stdin)
    if "id" in data and "subtotal" in data:
        invoice = Invoice.from_dict(data)
    else:
        if not _report_validation(data, stderr):
            return 1
        invoice = offline_service().create_invoice(data)

    if args.json:
        write_output(json.dumps(formatted_fields(invoice), indent=2), args.output, stdout, "Formatted invoice")
    else:
        write_output(describe_invoice(invoice), args.output, stdout, "Formatted invoice")
    return 0


def cmd_generate(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    invoice = offline_service().create_invoice(SAMPLE_REQUEST)
    if args.json:
        write_output(json.dumps(invoice.to_dict(), indent=2), args.output, stdout, "Sample invoice")
    else:
        write_output(describe_invoice(invoice), args.output, stdout, "Sample invoice")
    return 0


def cmd_pdf(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    data = read_input(args.input, stdin)
    if not _report_validation(data, stderr):
        return 1
    service = offline_service()
    invoice = service.create_invoice(data)
    pdf_bytes = service.render_pdf(invoice.id)
    try:
        with open(args.output, "wb") as handle:
            handle.write(pdf_bytes)
    except OSError as exc:
        raise CliError(f"Cannot write output: {exc}") from exc
    stdout.write(f"PDF for {invoice.invoice_number} saved to {args.output}\n")
    return 0


def cmd_serve(args: argparse.Namespace, stdin: TextIO, stdout: TextIO, stderr: TextIO) -> int:
    from .server import run

    run(args.host, args.port, log_level=args.log_level)
    return 0


def _print_errors(errors: List[Any], stderr: TextIO) -> None:
    stderr.write("Validation errors:\n")
    for error in errors:
        stderr.write(f"  - {error.field}: {error.message}\n")


def _report_validation(data: Dict[str, Any], stderr: TextIO) -> bool:
    result = validate_invoice(data)
    if not result.is_valid:
        _print_errors(result.errors, stderr)
    return result.is_valid


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-cli",
        description="Generate, validate and render invoices from the command line.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INVOICE_LOG_LEVEL or INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    calculate = commands.add_parser("calculate", help="Calculate invoice totals from input data")
    calculate.add_argument("-i", "--input", help="Input file path (JSON); stdin when omitted")
    calculate.add_argument("-o", "--output", help="Output file path")
    calculate.add_argument("--json", action="store_true", help="Output in JSON format")
    calculate.set_defaults(handler=cmd_calculate)

    validate = commands.add_parser("validate", help="Validate invoice data")
    validate.add_argument("-i", "--input", help="Input file path (JSON); stdin when omitted")
    validate.add_argument("--json", action="store_true", help="Output in JSON format")
    validate.set_defaults(handler=cmd_validate)

    fmt = commands.add_parser("format", help="Format invoice data for display")
    fmt.add_argument("-i", "--input", help="Input file path (JSON); stdin when omitted")
    fmt.add_argument("-o", "--output", help="Output file path")
    fmt.add_argument("--json", action="store_true", help="Output in JSON format")
    fmt.set_defaults(handler=cmd_format)

    generate = commands.add_parser("generate", help="Generate a sample invoice")
    generate.add_argument("-o", "--output", help="Output file path")
    generate.add_argument("--json", action="store_true", help="Output in JSON format")
    generate.set_defaults(handler=cmd_generate)

    pdf = commands.add_parser("pdf", help="Render invoice data to a PDF file")
    pdf.add_argument("-i", "--input", help="Input file path (JSON); stdin when omitted")
    pdf.add_argument("-o", "--output", required=True, help="PDF file to write")
    pdf.set_defaults(handler=cmd_pdf)

    serve = commands.add_parser("serve", help="Run the HTTP API server")
    serve.add_argument("--host", default=HOST)
    serve.add_argument("--port", type=int, default=PORT)
    serve.set_defaults(handler=cmd_serve)
    return parser


def main(
    argv: Optional[List[str]] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> None:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    args = build_parser().parse_args(argv)
    if args.command != "serve":
        setup_logging(args.log_level or "WARNING")
    try:
        status = args.handler(args, stdin, stdout, stderr)
    except (CliError, DependencyError) as exc:
        stderr.write(f"{exc}\n")
        raise SystemExit(1) from exc
    raise SystemExit(status)


if __name__ == "__main__":
    main()
