"""QuickBooks Online (QBO) API gateway.

Purpose
- Build authenticated, realm-scoped requests against the QBO v3 API.
- Walk Query API result sets to completion.
- Normalize `Fault` envelopes and transport failures into typed errors.

This module is intentionally independent of FastAPI. It never refreshes or
retries on its own; the caller owns any retry policy.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from qbo_bridge.integrations.qbo_errors import (
    QBONotConnectedError,
    QBOProviderFaultError,
    QBOTransportError,
)
from qbo_bridge.integrations.qbo_query import (
    DEFAULT_PAGE_SIZE,
    PaginationCursor,
    build_select_statement,
    extract_query_entities,
    fault_message,
    find_fault,
)
from qbo_bridge.integrations.qbo_session import QBOOAuthSession

logger = logging.getLogger(__name__)


class QBOGateway:
    def __init__(
        self,
        session: QBOOAuthSession,
        *,
        timeout_seconds: int = 30,
        minor_version: str | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        debug: bool = False,
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._minor_version = minor_version
        self._page_size = page_size
        self._debug = debug

    @staticmethod
    def _base_url(environment: str) -> str:
        return (
            "https://quickbooks.api.intuit.com"
            if environment == "production"
            else "https://sandbox-quickbooks.api.intuit.com"
        )

    @property
    def page_size(self) -> int:
        return self._page_size

    def call(
        self,
        action: str,
        *,
        query: dict[str, str] | None = None,
        url_params: str | None = None,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: Any = None,
        timeout_seconds: int | None = None,
    ) -> dict[str, Any]:
        """Send one request to `/v3/company/<realm>/<action><url_params>`.

        Raises QBONotConnectedError before any IO when no realm is bound,
        QBOProviderFaultError when the body carries a fault (whatever the
        HTTP status), and QBOTransportError for everything else that failed.
        """

        credential = self._session.current_credential()
        if credential is None or not credential.realm_id:
            raise QBONotConnectedError("No company ID. Not connected to QBO?")

        base = self._base_url(credential.environment)
        url = f"{base}/v3/company/{credential.realm_id}/{action}{url_params or ''}"

        params: dict[str, str] = dict(query or {})
        if self._minor_version and "minorversion" not in params:
            params["minorversion"] = self._minor_version

        request_headers = {"Accept": "application/json"}
        request_headers.update(headers or {})
        request_headers["Authorization"] = f"Bearer {credential.access_token}"

        if self._debug:
            # URL and params only, never tokens.
            logger.debug("Contacting QBO: %s %s params=%s", method, url, params)

        try:
            resp = requests.request(
                method,
                url,
                headers=request_headers,
                params=params or None,
                json=body,
                timeout=timeout_seconds or self._timeout_seconds,
            )
        except requests.RequestException as e:
            raise QBOTransportError(f"QBO request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        fault = find_fault(payload)
        if fault is not None:
            raise QBOProviderFaultError(fault_message(fault), fault=fault)

        if resp.status_code >= 400:
            raise QBOTransportError(
                f"HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        if not isinstance(payload, dict):
            raise QBOTransportError(
                "QBO returned a non-JSON response",
                status_code=resp.status_code,
                body=resp.text,
            )
        return payload

    def query(self, statement: str) -> dict[str, Any]:
        """Run a QBO Query API statement."""

        return self.call("query", query={"query": statement})

    def list_all(self, entity: str, *, where: str | None = None) -> list[dict[str, Any]]:
        """Fetch every `entity` record, one page at a time, in request order.

        Each call starts again from offset 0.
        """

        cursor = PaginationCursor(page_size=self._page_size)
        records: list[dict[str, Any]] = []
        while True:
            statement = build_select_statement(entity, cursor=cursor, where=where)
            page = extract_query_entities(self.query(statement), entity)
            records.extend(page)
            if not cursor.advance(len(page)):
                break

        logger.info("Fetched %d %s records from QBO", len(records), entity)
        return records

    def get_company_info(self) -> dict[str, Any]:
        realm_id = self._session.current_tenant_id()
        if not realm_id:
            raise QBONotConnectedError("No company ID. Not connected to QBO?")
        return self.call("companyinfo", url_params=f"/{realm_id}")

    def get_all_customers(self) -> list[dict[str, Any]]:
        return self.list_all("Customer")
