"""Helpers for QBO Query API statements and payloads.

These functions are intentionally "dumb" and deterministic so they can be unit-tested
without calling QuickBooks.

Query responses look like `{"QueryResponse": {"Customer": [...], "startPosition": 1,
"maxResults": 3}}`; the entity key is absent when a page is empty.
Faults look like `{"Fault": {"Error": [{"Message": ..., "Detail": ...}], "type": ...}}`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

DEFAULT_PAGE_SIZE = 1000


@dataclass(slots=True)
class PaginationCursor:
    """Offset state for walking one list query to completion.

    `start_offset` is 0-based; QBO's STARTPOSITION is 1-based.
    """

    page_size: int = DEFAULT_PAGE_SIZE
    start_offset: int = 0
    last_page_size: int | None = None

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError("page_size must be positive")
        if self.start_offset < 0:
            raise ValueError("start_offset must be >= 0")

    def advance(self, count: int) -> bool:
        """Record a page of `count` records; True when more pages may exist.

        A full page is not a termination signal. The offset only moves after
        the comparison says another page must be read.
        """

        self.last_page_size = count
        if count < self.page_size:
            return False
        self.start_offset += self.page_size
        return True


def build_select_statement(
    entity: str,
    *,
    cursor: PaginationCursor,
    where: str | None = None,
) -> str:
    statement = f"SELECT * FROM {entity}"
    if where:
        statement += f" WHERE {where}"
    return f"{statement} STARTPOSITION {cursor.start_offset + 1} MAXRESULTS {cursor.page_size}"


def extract_query_entities(response: dict[str, Any], entity: str) -> list[dict[str, Any]]:
    """Return the records for `entity` from a Query API response ([] when absent)."""

    qr = response.get("QueryResponse") if isinstance(response, dict) else None
    records = (qr or {}).get(entity) if isinstance(qr, dict) else None

    if records is None:
        return []
    if isinstance(records, list):
        return records
    if isinstance(records, dict):
        return [records]
    return []


def find_fault(payload: Any) -> Any | None:
    """Return the provider fault object if `payload` carries one."""

    if not isinstance(payload, dict):
        return None
    fault = payload.get("Fault")
    if fault is None:
        fault = payload.get("fault")
    return fault


def fault_message(fault: Any) -> str:
    if isinstance(fault, dict):
        errors = fault.get("Error") or fault.get("error")
        if isinstance(errors, dict):
            errors = [errors]
        if isinstance(errors, list) and errors:
            first = errors[0] if isinstance(errors[0], dict) else {}
            message = str(first.get("Message") or first.get("message") or "").strip()
            detail = str(first.get("Detail") or first.get("detail") or "").strip()
            if message and detail and detail != message:
                return f"{message}: {detail}"
            if message or detail:
                return message or detail
        if fault.get("type"):
            return f"QBO fault ({fault['type']})"
    elif isinstance(fault, str) and fault.strip():
        return fault.strip()
    return "QBO returned a fault"
