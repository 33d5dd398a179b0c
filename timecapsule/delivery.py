"""
Delivery sweep: find messages whose delivery date has passed and mark them
delivered.

Each store call is bounded by a timeout. A failed query aborts the sweep; a
failed delivery or update only skips that message, which stays due and is
picked up again by the next sweep.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, TypeVar

from timecapsule.db import DbClient, MessageRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CALL_TIMEOUT_SECONDS = 5.0


class DeliveryNotifier(Protocol):
    """The outward delivery action (push, email, ...) for a single message."""

    def deliver(self, message: MessageRecord) -> None:
        ...


class LoggingNotifier:
    """Stub notifier. The delivery channel is not decided yet, so only log."""

    def deliver(self, message: MessageRecord) -> None:
        logger.info(
            "Delivering message: %s to child: %s", message.id, message.child_id
        )


@dataclass
class SweepResult:
    now: float
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    query_failed: bool = False

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed) + len(self.missing)


class DeliveryTimeout(Exception):
    """A store or notifier call did not finish within the configured timeout."""


class DeliverySweep:
    """
    Callable unit of work run on every scheduler tick.

    Never raises: every failure is logged at the point it is caught.
    """

    def __init__(
        self,
        db: DbClient,
        notifier: Optional[DeliveryNotifier] = None,
        *,
        call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.notifier = notifier or LoggingNotifier()
        self.call_timeout_seconds = call_timeout_seconds

    def _call(self, fn: Callable[..., T], *args) -> T:
        # A fresh single-worker executor per call: a hung call keeps only its
        # own thread and never blocks later calls or later sweeps.
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="delivery-call"
        )
        future = executor.submit(fn, *args)
        try:
            return future.result(timeout=self.call_timeout_seconds)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise DeliveryTimeout(
                f"{getattr(fn, '__name__', fn)} timed out after "
                f"{self.call_timeout_seconds:.1f}s"
            ) from exc
        finally:
            executor.shutdown(wait=False)

    def __call__(self, now: Optional[float] = None) -> SweepResult:
        # One "now" for the whole batch.
        result = SweepResult(now=time.time() if now is None else now)
        try:
            self._run(result)
        except Exception:
            logger.exception("Unexpected error in message delivery sweep")
        return result

    def _run(self, result: SweepResult) -> None:
        try:
            due = self._call(self.db.find_due_messages, result.now)
        except Exception:
            result.query_failed = True
            logger.exception("Failed to check messages for delivery")
            return

        if not due:
            return

        for message in due:
            self._deliver_one(message, result)

        logger.info(
            "Delivery sweep finished: %d delivered, %d failed, %d missing",
            len(result.delivered),
            len(result.failed),
            len(result.missing),
        )

    def _deliver_one(self, message: MessageRecord, result: SweepResult) -> None:
        try:
            self._call(self.notifier.deliver, message)
        except Exception:
            result.failed.append(message.id)
            logger.exception("Failed to deliver message %s", message.id)
            return

        try:
            updated = self._call(self.db.mark_delivered, message.id)
        except Exception:
            result.failed.append(message.id)
            logger.exception("Failed to mark message %s as delivered", message.id)
            return

        if updated:
            result.delivered.append(message.id)
        else:
            result.missing.append(message.id)
            logger.warning(
                "Message %s disappeared before it could be marked delivered",
                message.id,
            )
