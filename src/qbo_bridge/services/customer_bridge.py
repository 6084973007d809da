"""In-process access to the full customer list.

Collaborators that need customers call `request_customer_list()` and await
the returned future instead of holding a reference to the gateway. Each
request yields exactly one result (records or the raised error); nothing is
queued or replayed for late subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from qbo_bridge.integrations.qbo_client import QBOGateway

logger = logging.getLogger(__name__)

CustomerListener = Callable[[list[dict[str, Any]]], None]


class CustomerListBridge:
    def __init__(self, gateway: QBOGateway) -> None:
        self._gateway = gateway
        self._listeners: list[CustomerListener] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, listener: CustomerListener) -> Callable[[], None]:
        """Register a push listener for results; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def request_customer_list(self) -> asyncio.Future:
        """Start a full customer fetch; the future resolves with the records."""

        task = asyncio.create_task(self._fetch(), name="qbo-customer-list")
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        # Marks the exception retrieved; awaiting callers still get it raised.
        error = task.exception()
        if error is not None:
            logger.warning("Customer list request failed: %s", error)

    async def _fetch(self) -> list[dict[str, Any]]:
        customers = await asyncio.to_thread(self._gateway.get_all_customers)
        for listener in list(self._listeners):
            try:
                listener(customers)
            except Exception:
                logger.exception("Customer list listener failed")
        return customers

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def close(self) -> None:
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()
