# discovery_monitor/core/completion.py
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from discovery_monitor.core.phases import classify
from discovery_monitor.models.progress import Outcome, Phase, ProgressEvent

log = logging.getLogger("discovery_monitor.core.completion")


@dataclass(frozen=True)
class Completion:
    correlation_id: str
    outcome: Outcome
    phase: Phase
    result_detail: Optional[str]
    event: ProgressEvent

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS


CompletionCallback = Callable[[Completion], Union[None, Awaitable[None]]]


class CompletionTracker:
    """
    Single-assignment completion signal for one correlation id.

    The first terminal event wins. Later terminal events (a second Finished,
    an Error after Finished, ...) are dropped without complaint; the resolved
    value and the completion callback never fire twice.
    """

    def __init__(self, correlation_id: str, on_complete: Optional[CompletionCallback] = None):
        self.correlation_id = correlation_id
        self._on_complete = on_complete
        self._completion: Optional[Completion] = None
        self._done = asyncio.Event()
        self._abandoned = False
        self._pending: set[asyncio.Task] = set()

    @property
    def resolved(self) -> bool:
        return self._completion is not None

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    @property
    def completion(self) -> Optional[Completion]:
        return self._completion

    def observe(self, event: ProgressEvent) -> bool:
        """Feed one event. Returns True only for the event that resolved the tracker."""
        if event.correlation_id and event.correlation_id != self.correlation_id:
            log.debug(
                "ignoring event for other request",
                extra={"correlation_id": self.correlation_id, "event_request_id": event.correlation_id},
            )
            return False

        outcome = classify(event.phase)
        if outcome is None:
            return False

        if self._completion is not None:
            log.debug(
                "duplicate terminal event ignored",
                extra={
                    "correlation_id": self.correlation_id,
                    "phase": event.phase.value,
                    "resolved_as": self._completion.outcome.value,
                },
            )
            return False

        self._completion = Completion(
            correlation_id=self.correlation_id,
            outcome=outcome,
            phase=event.phase,
            result_detail=event.result,
            event=event,
        )
        self._done.set()
        log.info(
            "discovery request completed",
            extra={"correlation_id": self.correlation_id, "outcome": outcome.value},
        )
        if self._on_complete is not None and not self._abandoned:
            self._fire(self._completion)
        return True

    def _fire(self, completion: Completion) -> None:
        res = self._on_complete(completion)  # type: ignore[misc]
        if inspect.isawaitable(res):
            task = asyncio.ensure_future(res)
            self._pending.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "completion callback failed: %s", exc,
                exc_info=exc,
                extra={"correlation_id": self.correlation_id},
            )

    def abandon(self) -> None:
        """Stop caring about the outcome; a late terminal event is recorded but not announced."""
        self._abandoned = True

    async def aclose(self) -> None:
        """Wait for completion callbacks still running."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def wait(
        self,
        stop: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Completion]:
        """
        Suspend until resolved. Returns None if `stop` fires or `timeout`
        elapses first; the caller then owns cancelling the job.
        """
        if self._completion is not None:
            return self._completion

        waiters = [asyncio.ensure_future(self._done.wait())]
        if stop is not None:
            waiters.append(asyncio.ensure_future(stop.wait()))
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for w in waiters:
                if not w.done():
                    w.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if self._completion is None:
            log.info("stopped waiting for completion", extra={"correlation_id": self.correlation_id})
        return self._completion
