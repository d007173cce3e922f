"""Outbound transfer events and their best-effort delivery.

The transfer service emits a ``TransferEvent`` after its transaction commits. The
dispatcher queues it without blocking; a worker task running on the application's
event loop fans it out into inbox rows and WebSocket pushes. Delivery is
at-least-once (failed deliveries are retried) and nothing here can fail a transfer.
"""
from __future__ import annotations

import asyncio
import enum
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine

from loguru import logger

from gatepass.models.base import utcnow


class TransferEventKind(str, enum.Enum):
    COMPLETED_INSTANT = "transfer_completed"
    PENDING_CREATED = "transfer_pending"
    CLAIMED = "transfer_claimed"
    CANCELLED = "transfer_cancelled"
    REJECTED = "transfer_rejected"


@dataclass(frozen=True)
class TransferEvent:
    kind: TransferEventKind
    transfer_id: str
    ticket_id: str
    sender_id: int
    recipient_id: int | None = None
    recipient_contact: str | None = None
    recipient_name: str | None = None
    message: str | None = None
    reason: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class OutboundNotification:
    """One message for one recipient: an account id or a bare contact identifier."""

    type: str
    title: str
    message: str
    account_id: int | None = None
    contact: str | None = None


def fan_out(event: TransferEvent, event_title: str | None = None) -> list[OutboundNotification]:
    what = f'a ticket for "{event_title}"' if event_title else "a ticket"
    who = event.recipient_name or event.recipient_contact or "the recipient"
    kind = event.kind
    out: list[OutboundNotification] = []
    if kind == TransferEventKind.COMPLETED_INSTANT:
        out.append(OutboundNotification("ticket_received", "Ticket transferred to you", f"You received {what}.", account_id=event.recipient_id))
        out.append(OutboundNotification("ticket_sent", "Ticket transferred", f"You transferred {what} to {who}.", account_id=event.sender_id))
    elif kind == TransferEventKind.PENDING_CREATED:
        out.append(OutboundNotification("ticket_sent", "Transfer pending", f"{who} will receive {what} once they sign up.", account_id=event.sender_id))
        out.append(OutboundNotification("ticket_waiting", "A ticket is waiting for you", f"Someone sent you {what}. Create an account to claim it.", contact=event.recipient_contact))
    elif kind == TransferEventKind.CLAIMED:
        out.append(OutboundNotification("ticket_claimed", "Ticket claimed", f"{who} claimed {what} you sent.", account_id=event.sender_id))
        out.append(OutboundNotification("ticket_received", "Ticket received", f"You received {what}.", account_id=event.recipient_id))
    elif kind == TransferEventKind.CANCELLED:
        out.append(OutboundNotification("transfer_cancelled", "Transfer cancelled", f"Your transfer of {what} to {who} was cancelled.", account_id=event.sender_id))
    elif kind == TransferEventKind.REJECTED:
        reason = f" ({event.reason})" if event.reason else ""
        out.append(OutboundNotification("transfer_rejected", "Transfer rejected", f"Your transfer of {what} to {who} was rejected{reason}.", account_id=event.sender_id))
    return [n for n in out if n.account_id is not None or n.contact]


DeliveryHandler = Callable[[TransferEvent], Awaitable[None]]


class NotificationDispatcher:
    def __init__(
        self,
        handler: DeliveryHandler,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
    ) -> None:
        self._handler = handler
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[TransferEvent, int]] | None = None
        self._task: asyncio.Task | None = None
        # Events emitted before the worker starts; kept in full and drained on start.
        self._backlog: deque[TransferEvent] = deque()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def backlog(self) -> list[TransferEvent]:
        return list(self._backlog)

    def emit(self, event: TransferEvent) -> None:
        """Queue ``event`` for delivery. Safe to call from any thread; never blocks."""
        if self._loop is None or self._queue is None or self._loop.is_closed():
            self._backlog.append(event)
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, (event, 1))

    def schedule(self, coro: Coroutine[Any, Any, Any]) -> bool:
        """Run ``coro`` on the dispatcher's loop from a worker thread (live pushes).

        Returns False and discards it when the dispatcher is not running.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not self.running:
            coro.close()
            return False
        asyncio.run_coroutine_threadsafe(coro, loop)
        return True

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        while self._backlog:
            self._queue.put_nowait((self._backlog.popleft(), 1))
        self._task = asyncio.create_task(self._run(self._queue), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._queue is not None:
            # Undelivered events wait for the next start
            while not self._queue.empty():
                self._backlog.append(self._queue.get_nowait()[0])
        self._task = None
        self._loop = None
        self._queue = None

    async def join(self) -> None:
        """Wait until everything queued so far (including retries) is handled."""
        if self._queue is not None:
            await self._queue.join()

    async def _run(self, queue: asyncio.Queue) -> None:
        while True:
            event, attempt = await queue.get()
            try:
                await self._handler(event)
            except Exception as exc:  # delivery failures never propagate to the transfer
                if attempt < self.max_attempts:
                    logger.warning(f"Notification for {event.kind.value} {event.transfer_id} failed (attempt {attempt}): {exc!r}; retrying")
                    await asyncio.sleep(self.retry_delay * attempt)
                    queue.put_nowait((event, attempt + 1))
                else:
                    logger.error(f"Notification for {event.kind.value} {event.transfer_id} dropped after {attempt} attempts: {exc!r}")
            else:
                logger.debug(f"Notification for {event.kind.value} {event.transfer_id} sent")
            finally:
                queue.task_done()
