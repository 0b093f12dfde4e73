"""In-memory invoice store keyed by invoice id, plus the JSON file writer
used for numbering and due-date settings."""

from __future__ import annotations

import json
import os
import threading
from typing import Any, Dict, List, Optional

from .models import Invoice


class InvoiceStore:
    """Dict-backed stand-in for a database; one lock guards every access."""

    def __init__(self) -> None:
        self._invoices: Dict[str, Invoice] = {}
        self._lock = threading.Lock()

    def get(self, invoice_id: str) -> Optional[Invoice]:
        with self._lock:
            return self._invoices.get(invoice_id)

    def put(self, invoice: Invoice) -> None:
        with self._lock:
            self._invoices[invoice.id] = invoice

    def delete(self, invoice_id: str) -> bool:
        with self._lock:
            return self._invoices.pop(invoice_id, None) is not None

    def values(self) -> List[Invoice]:
        with self._lock:
            return list(self._invoices.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._invoices)


def write_json_atomic(path: str, payload: Any) -> None:
    """Write ``payload`` to a sibling temp file, then swap it into place.

    Readers never see a half-written file. ``OSError`` propagates to the caller.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
    os.replace(tmp_path, path)
