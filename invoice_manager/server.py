"""HTTP JSON API for invoice management and PDF export."""

from __future__ import annotations

import atexit
import errno
import json
import logging
import multiprocessing as mp
import re
import sys
import threading
from concurrent.futures import ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit

from .config import (
    DEFAULT_PAGE_LIMIT,
    HOST,
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_BULK_IDS,
    MAX_CONCURRENT_RENDERS,
    MAX_INFLIGHT_RENDERS,
    MAX_PAGES as MAX_PAGES_CONFIG,
    PORT,
    RENDER_QUEUE_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
)
from .due_dates import DueDateConfigError
from .exports import dated_export_name, pdf_filename, utc_timestamp
from .logging_setup import setup_logging
from .numbering import NumberingConfigError
from .pagination import estimate_page_count, max_items_for_pages
from .service import DependencyError, InvoiceNotFoundError, InvoiceService, load_render_invoice
from .validation import InvoiceValidationError, reject_json_constant

logger = logging.getLogger(__name__)

RENDER_INFLIGHT_SEMAPHORE = threading.BoundedSemaphore(MAX_INFLIGHT_RENDERS)
RENDER_EXECUTOR_LOCK = threading.Lock()
RENDER_EXECUTOR: Optional[ProcessPoolExecutor] = None
ErrorResponse = Tuple[int, Dict[str, Any]]

API_PREFIX = "/api/v1"

DISCONNECT_ERRNOS = {
    errno.EPIPE,
    errno.ECONNRESET,
    errno.ETIMEDOUT,
}


class RenderQueueFullError(RuntimeError):
    """Raised when no render slot frees up within the queue timeout."""


class RenderTimeoutError(RuntimeError):
    """Raised when a single render exceeds the render timeout."""


def is_client_disconnect(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def create_render_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=MAX_CONCURRENT_RENDERS,
        mp_context=mp.get_context("spawn"),
    )


def get_render_executor() -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def restart_render_executor(previous: ProcessPoolExecutor) -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is previous:
            try:
                previous.shutdown(wait=False, cancel_futures=True)
            except RuntimeError as exc:
                logger.warning("Render pool shutdown failed: %s", exc)
            RENDER_EXECUTOR = create_render_executor()
            logger.warning("Render worker pool restarted")
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def shutdown_render_executor() -> None:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        executor = RENDER_EXECUTOR
        RENDER_EXECUTOR = None
    if executor is not None:
        executor.shutdown(wait=False, cancel_futures=True)


atexit.register(shutdown_render_executor)


def pooled_render(payload: Dict[str, Any]) -> bytes:
    """Render one invoice in the worker pool, bounded by the in-flight semaphore."""
    render_invoice = load_render_invoice()
    if not RENDER_INFLIGHT_SEMAPHORE.acquire(timeout=RENDER_QUEUE_TIMEOUT_MS / 1000.0):
        raise RenderQueueFullError("Render queue is full; retry shortly.")

    future = None
    try:
        executor = get_render_executor()
        try:
            future = executor.submit(render_invoice, payload)
        except BrokenProcessPool:
            future = restart_render_executor(executor).submit(render_invoice, payload)
        return future.result(timeout=RENDER_TIMEOUT_MS / 1000.0)
    except FutureTimeoutError as exc:
        if future is not None:
            future.cancel()
        raise RenderTimeoutError(f"Render exceeded timeout of {RENDER_TIMEOUT_MS} ms.") from exc
    finally:
        RENDER_INFLIGHT_SEMAPHORE.release()


def parse_json_body(body: bytes) -> Tuple[Any, Optional[ErrorResponse]]:
    try:
        payload = json.loads(body.decode("utf-8"), parse_constant=reject_json_constant)
    except UnicodeDecodeError:
        return None, (
            400,
            {"error": "invalid_encoding", "detail": "Body must be UTF-8 encoded JSON."},
        )
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "error": "invalid_json",
                "detail": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )
    except ValueError as exc:
        return None, (400, {"error": "invalid_json", "detail": str(exc)})

    if not isinstance(payload, dict):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "JSON root must be an object."},
        )
    return payload, None


def check_invoice_size(payload: Dict[str, Any], max_pages: int) -> Optional[ErrorResponse]:
    items = payload.get("items")
    if not isinstance(items, list):
        return None
    estimated_pages = estimate_page_count(len(items))
    if estimated_pages > max_pages:
        return (
            413,
            {
                "error": "invoice_too_large",
                "detail": f"Invoice would render {estimated_pages} pages; maximum is {max_pages}.",
                "max_items": max_items_for_pages(max_pages),
            },
        )
    return None


def parse_ids(payload: Dict[str, Any]) -> Tuple[Optional[List[Any]], Optional[ErrorResponse]]:
    ids = payload.get("ids")
    if not isinstance(ids, list) or not ids:
        return None, (
            400,
            {"error": "invalid_ids", "detail": "IDs array is required and must not be empty."},
        )
    if len(ids) > MAX_BULK_IDS:
        return None, (
            413,
            {"error": "too_many_ids", "detail": f"At most {MAX_BULK_IDS} ids per request."},
        )
    return ids, None


def query_int(query: Dict[str, List[str]], name: str, default: int) -> int:
    values = query.get(name)
    if not values:
        return default
    try:
        return int(values[0])
    except ValueError:
        return default


def query_str(query: Dict[str, List[str]], name: str) -> Optional[str]:
    values = query.get(name)
    if not values or not values[0].strip():
        return None
    return values[0].strip()


Route = Tuple[str, "re.Pattern[str]", str]

ROUTES: List[Route] = [
    ("GET", re.compile(r"^/(?:health|healthz|ready)?$"), "health"),
    ("GET", re.compile(rf"^{API_PREFIX}/invoices$"), "list_invoices"),
    ("POST", re.compile(rf"^{API_PREFIX}/invoices$"), "create_invoice"),
    ("GET", re.compile(rf"^{API_PREFIX}/invoices/stats$"), "invoice_stats"),
    ("POST", re.compile(rf"^{API_PREFIX}/invoices/bulk-delete$"), "bulk_delete"),
    ("POST", re.compile(rf"^{API_PREFIX}/invoices/bulk-download$"), "bulk_download"),
    ("GET", re.compile(rf"^{API_PREFIX}/invoices/export/(?P<fmt>csv|json)$"), "export"),
    ("GET", re.compile(rf"^{API_PREFIX}/invoices/(?P<invoice_id>[^/]+)$"), "get_invoice"),
    ("PUT", re.compile(rf"^{API_PREFIX}/invoices/(?P<invoice_id>[^/]+)$"), "update_invoice"),
    ("DELETE", re.compile(rf"^{API_PREFIX}/invoices/(?P<invoice_id>[^/]+)$"), "delete_invoice"),
    ("PATCH", re.compile(rf"^{API_PREFIX}/invoices/(?P<invoice_id>[^/]+)/status$"), "update_status"),
    ("GET", re.compile(rf"^{API_PREFIX}/invoices/(?P<invoice_id>[^/]+)/pdf$"), "invoice_pdf"),
    ("POST", re.compile(rf"^{API_PREFIX}/invoices/(?P<invoice_id>[^/]+)/pdf$"), "invoice_pdf"),
    ("GET", re.compile(rf"^{API_PREFIX}/numbering/config$"), "numbering_config"),
    ("PUT", re.compile(rf"^{API_PREFIX}/numbering/config$"), "update_numbering_config"),
    ("GET", re.compile(rf"^{API_PREFIX}/numbering/stats$"), "numbering_stats"),
    ("POST", re.compile(rf"^{API_PREFIX}/numbering/reset$"), "reset_numbering"),
    ("GET", re.compile(rf"^{API_PREFIX}/due-dates/config$"), "due_date_config"),
    ("PUT", re.compile(rf"^{API_PREFIX}/due-dates/config$"), "update_due_date_config"),
    ("GET", re.compile(rf"^{API_PREFIX}/due-dates/alerts$"), "due_date_alerts"),
    ("GET", re.compile(rf"^{API_PREFIX}/due-dates/stats$"), "due_date_stats"),
    ("POST", re.compile(rf"^{API_PREFIX}/due-dates/apply$"), "apply_due_dates"),
]


def match_route(method: str, path: str) -> Tuple[Optional[str], Dict[str, str], bool]:
    """Return (handler name, path params, path known for another method)."""
    path_known = False
    for route_method, pattern, name in ROUTES:
        match = pattern.match(path)
        if match is None:
            continue
        if route_method == method:
            params = {key: unquote(value) for key, value in match.groupdict().items()}
            return name, params, True
        path_known = True
    return None, {}, path_known


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    MAX_PAGES = MAX_PAGES_CONFIG
    server: "InvoiceHTTPServer"

    @property
    def service(self) -> InvoiceService:
        return self.server.service

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_attachment(self, content_type: str, filename: str, body: bytes) -> bool:
        return self._write_response(
            200,
            content_type,
            body,
            {"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    def _send_not_found(self, detail: str = "Invoice not found.") -> bool:
        return self._send_json(404, {"error": "invoice_not_found", "detail": detail})

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "error": "missing_content_length",
                    "detail": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "error": "invalid_content_length",
                    "detail": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "detail": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _read_json(self) -> Optional[Dict[str, Any]]:
        body = self._read_body()
        if body is None:
            return None
        payload, error = parse_json_body(body)
        if error is not None:
            self._send_json(*error)
            return None
        return payload

    def _dispatch(self, method: str) -> None:
        parts = urlsplit(self.path)
        path = parts.path.rstrip("/") or "/"
        name, params, path_known = match_route(method, path)
        if name is None:
            if path_known:
                self._send_json(405, {"error": "method_not_allowed", "detail": f"{method} is not supported here."})
            else:
                self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})
            return

        query = parse_qs(parts.query)
        handler: Callable[..., None] = getattr(self, f"handle_{name}")
        try:
            handler(query=query, **params)
        except InvoiceValidationError as exc:
            self._send_json(
                400,
                {
                    "error": "validation_error",
                    "detail": exc.message,
                    "field": exc.field,
                    "code": exc.code,
                    "errors": [error.to_dict() for error in exc.errors],
                },
            )
        except (NumberingConfigError, DueDateConfigError) as exc:
            self._send_json(400, {"error": "invalid_config", "detail": exc.message, "field": exc.field})
        except InvoiceNotFoundError as exc:
            self._send_not_found(exc.message)
        except RenderQueueFullError as exc:
            retry_after_seconds = max(1, (RENDER_QUEUE_TIMEOUT_MS + 999) // 1000)
            self._send_json(
                503,
                {
                    "error": "server_busy",
                    "detail": str(exc),
                    "retry_after_seconds": retry_after_seconds,
                    "max_concurrent_renders": MAX_CONCURRENT_RENDERS,
                    "max_inflight_renders": MAX_INFLIGHT_RENDERS,
                },
            )
        except RenderTimeoutError as exc:
            self._send_json(504, {"error": "render_timeout", "detail": str(exc)})
        except BrokenProcessPool:
            restart_render_executor(get_render_executor())
            self._send_json(
                503,
                {
                    "error": "render_pool_restarting",
                    "detail": "Render worker pool restarted; retry shortly.",
                },
            )
        except DependencyError as exc:
            logger.error("%s", exc)
            self._send_json(500, {"error": "dependency_missing", "detail": str(exc)})
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            logger.exception("Unhandled error for %s %s", method, self.path)
            self._send_json(500, {"error": "internal_error", "detail": str(exc)})

    # -- handlers -----------------------------------------------------------

    def handle_health(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"status": "ok", "timestamp": utc_timestamp()})

    def handle_list_invoices(self, query: Dict[str, List[str]]) -> None:
        page = self.service.list_invoices(
            page=query_int(query, "page", 1),
            limit=query_int(query, "limit", DEFAULT_PAGE_LIMIT),
            search=query_str(query, "search"),
            status=query_str(query, "status"),
            sort_by=query_str(query, "sortBy"),
            sort_order=query_str(query, "sortOrder"),
        )
        self._send_json(
            200,
            {"data": [invoice.to_dict() for invoice in page.items], "pagination": page.meta()},
        )

    def handle_create_invoice(self, query: Dict[str, List[str]]) -> None:
        payload = self._read_json()
        if payload is None:
            return
        too_large = check_invoice_size(payload, self.MAX_PAGES)
        if too_large is not None:
            self._send_json(*too_large)
            return
        invoice = self.service.create_invoice(payload)
        self._send_json(201, {"data": invoice.to_dict(), "message": "Invoice created successfully"})

    def handle_get_invoice(self, query: Dict[str, List[str]], invoice_id: str) -> None:
        invoice = self.service.get_invoice(invoice_id)
        if invoice is None:
            self._send_not_found()
            return
        self._send_json(200, {"data": invoice.to_dict()})

    def handle_update_invoice(self, query: Dict[str, List[str]], invoice_id: str) -> None:
        payload = self._read_json()
        if payload is None:
            return
        too_large = check_invoice_size(payload, self.MAX_PAGES)
        if too_large is not None:
            self._send_json(*too_large)
            return
        invoice = self.service.update_invoice(invoice_id, payload)
        if invoice is None:
            self._send_not_found()
            return
        self._send_json(200, {"data": invoice.to_dict(), "message": "Invoice updated successfully"})

    def handle_delete_invoice(self, query: Dict[str, List[str]], invoice_id: str) -> None:
        if not self.service.delete_invoice(invoice_id):
            self._send_not_found()
            return
        self._send_json(200, {"message": "Invoice deleted successfully"})

    def handle_update_status(self, query: Dict[str, List[str]], invoice_id: str) -> None:
        payload = self._read_json()
        if payload is None:
            return
        status = payload.get("status")
        if not status:
            self._send_json(400, {"error": "validation_error", "detail": "Status is required.", "field": "status"})
            return
        invoice = self.service.update_invoice_status(invoice_id, status)
        if invoice is None:
            self._send_not_found()
            return
        self._send_json(200, {"data": invoice.to_dict()})

    def handle_invoice_pdf(self, query: Dict[str, List[str]], invoice_id: str) -> None:
        invoice = self.service.require_invoice(invoice_id)
        pdf_bytes = self.service.render_pdf(invoice_id)
        self._send_attachment("application/pdf", pdf_filename(invoice), pdf_bytes)

    def handle_invoice_stats(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": self.service.get_stats()})

    def handle_bulk_delete(self, query: Dict[str, List[str]]) -> None:
        payload = self._read_json()
        if payload is None:
            return
        ids, error = parse_ids(payload)
        if error is not None:
            self._send_json(*error)
            return
        self._send_json(200, {"data": self.service.bulk_delete_invoices(ids or [])})

    def handle_bulk_download(self, query: Dict[str, List[str]]) -> None:
        payload = self._read_json()
        if payload is None:
            return
        ids, error = parse_ids(payload)
        if error is not None:
            self._send_json(*error)
            return
        archive = self.service.bulk_download_pdfs(ids or [])
        self._send_attachment("application/zip", dated_export_name("zip"), archive)

    def handle_export(self, query: Dict[str, List[str]], fmt: str) -> None:
        filters = {
            "search": query_str(query, "search"),
            "status": query_str(query, "status"),
            "sort_by": query_str(query, "sortBy"),
            "sort_order": query_str(query, "sortOrder"),
        }
        if fmt == "csv":
            body = self.service.export_csv(**filters)
            self._send_attachment("text/csv; charset=utf-8", dated_export_name("csv"), body)
        else:
            body = self.service.export_json(**filters)
            self._send_attachment("application/json", dated_export_name("json"), body)

    def handle_numbering_config(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": self.service.get_numbering_config()})

    def handle_update_numbering_config(self, query: Dict[str, List[str]]) -> None:
        payload = self._read_json()
        if payload is None:
            return
        config = payload.get("config")
        if not config:
            self._send_json(
                400,
                {"error": "invalid_config", "detail": "Configuration data is required.", "field": "config"},
            )
            return
        updated = self.service.update_numbering_config(config)
        self._send_json(200, {"data": updated, "message": "Numbering configuration updated successfully"})

    def handle_numbering_stats(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": self.service.get_numbering_stats()})

    def handle_reset_numbering(self, query: Dict[str, List[str]]) -> None:
        self.service.reset_numbering()
        self._send_json(200, {"message": "Invoice numbering reset successfully"})

    def handle_due_date_config(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": self.service.get_due_date_config()})

    def handle_update_due_date_config(self, query: Dict[str, List[str]]) -> None:
        payload = self._read_json()
        if payload is None:
            return
        config = payload.get("config")
        if not config:
            self._send_json(
                400,
                {"error": "invalid_config", "detail": "Configuration data is required.", "field": "config"},
            )
            return
        self._send_json(200, {"data": self.service.update_due_date_config(config)})

    def handle_due_date_alerts(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": self.service.get_due_date_alerts()})

    def handle_due_date_stats(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": self.service.get_due_date_stats()})

    def handle_apply_due_dates(self, query: Dict[str, List[str]]) -> None:
        self._send_json(200, {"data": {"updated": self.service.apply_due_date_updates()}})

    # -- verbs --------------------------------------------------------------

    def do_GET(self) -> None:
        self._dispatch("GET")

    def do_POST(self) -> None:
        self._dispatch("POST")

    def do_PUT(self) -> None:
        self._dispatch("PUT")

    def do_PATCH(self) -> None:
        self._dispatch("PATCH")

    def do_DELETE(self) -> None:
        self._dispatch("DELETE")

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG

    def __init__(self, address: Tuple[str, int], service: InvoiceService) -> None:
        self.service = service
        super().__init__(address, InvoiceHandler)


def create_server(host: str, port: int, service: Optional[InvoiceService] = None) -> InvoiceHTTPServer:
    if service is None:
        service = InvoiceService(render=pooled_render)
    return InvoiceHTTPServer((host, port), service)


def run(host: str = "0.0.0.0", port: int = 8080, log_level: Optional[str] = None) -> None:
    setup_logging(log_level)
    load_render_invoice()
    get_render_executor()
    server = create_server(host, port)
    logger.info("Invoice API server listening on http://%s:%d", host, server.server_address[1])
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
        shutdown_render_executor()


def main() -> None:
    try:
        run(HOST, PORT)
    except DependencyError as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
