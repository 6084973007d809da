"""Background renewal of the QBO access token.

QBO access tokens live about an hour, shorter than typical idle periods, so
the token is refreshed on a fixed interval whether or not requests are in
flight. The task is owned by the app lifespan and cancelled on shutdown.
"""

from __future__ import annotations

import asyncio
import logging

from qbo_bridge.integrations.qbo_errors import QBOError, QBONotConnectedError
from qbo_bridge.integrations.qbo_session import QBOOAuthSession
from qbo_bridge.integrations.qbo_tokens import QBOCredential

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 1800


class TokenRefreshScheduler:
    def __init__(
        self,
        session: QBOOAuthSession,
        *,
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._session = session
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="qbo-token-refresh")
        logger.info("QBO token refresh scheduled every %ss", self._interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("QBO token refresh scheduler stopped")

    async def refresh_once(self) -> QBOCredential | None:
        """Run one refresh; errors are logged, never raised."""

        self.ticks += 1
        try:
            return await asyncio.to_thread(self._session.refresh)
        except QBONotConnectedError:
            logger.debug("Skipping scheduled QBO refresh: not connected")
        except QBOError as e:
            self.failures += 1
            logger.error("Scheduled QBO token refresh failed: %s", e)
        except Exception:
            self.failures += 1
            logger.exception("Unexpected error during scheduled QBO token refresh")
        return None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            await self.refresh_once()
