"""Payment confirmation poller for the checkout success page."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .client import TutorbookClient
from .config import Settings
from .errors import ClientError

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"paid", "failed", "refunded"})
TIMED_OUT = "timeout"

StatusCallback = Callable[[str], None]
ErrorCallback = Callable[[ClientError], None]


class PaymentStatusPoller:
    """
    Poll ``/api/checkout/status/{booking_id}`` until the payment settles.

    One request is in flight at a time; the next one is scheduled only after
    the previous answer arrived. Polling ends on a settled payment (``paid``,
    ``failed`` or ``refunded``), on the timeout (status ``timeout``) or on
    ``stop()``. Request errors are reported through ``on_error`` and polling
    carries on at the next tick.
    """

    def __init__(
        self,
        client: TutorbookClient,
        booking_id: str,
        *,
        settings: Settings | None = None,
        interval: float | None = None,
        timeout: float | None = None,
        on_status: StatusCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        config = settings or client.settings
        self.client = client
        self.booking_id = booking_id
        self.interval = interval if interval is not None else config.poll_interval_seconds
        self.timeout = timeout if timeout is not None else config.poll_timeout_seconds
        self.on_status = on_status
        self.on_error = on_error

        self.status = "pending"
        self.requests_made = 0
        self._in_flight = False
        self._task: asyncio.Task[str] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> str:
        """Final status once polling has ended."""
        if self._task is not None:
            return await self._task
        return self.status

    async def _run(self) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            await self.poll_once()
            if self.status in TERMINAL_STATUSES:
                return self.status
            if loop.time() + self.interval > deadline:
                self._set_status(TIMED_OUT)
                return self.status
            await asyncio.sleep(self.interval)

    async def poll_once(self) -> str:
        if self._in_flight:
            return self.status
        self._in_flight = True
        self.requests_made += 1
        try:
            data = await self.client.get_checkout_status(self.booking_id)
        except ClientError as exc:
            logger.warning(f"Payment status check for {self.booking_id} failed: {exc}")
            if self.on_error:
                self.on_error(exc)
        else:
            self._set_status(str(data.get("paymentStatus") or self.status))
        finally:
            self._in_flight = False
        return self.status

    def _set_status(self, status: str) -> None:
        changed = status != self.status
        self.status = status
        if changed and self.on_status:
            self.on_status(status)
