# discovery_monitor/core/controller.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Iterable, Optional, Union

from discovery_monitor.correlation import new_id
from discovery_monitor.core.completion import Completion, CompletionTracker
from discovery_monitor.core.phases import PhaseSnapshot, PhaseStateMachine
from discovery_monitor.core.session import SessionContext
from discovery_monitor.core.spi import (
    Directory,
    EntityEventHandler,
    EventSource,
    JobService,
    ProgressHandler,
    invoke_handler,
)
from discovery_monitor.core.subscriptions import (
    CascadingSubscriptionSet,
    CompositeSubscription,
)
from discovery_monitor.errors import InvalidRequestError, SubscriptionReleaseError
from discovery_monitor.models.discovery import (
    DiscoveryConfig,
    DiscoveryRequest,
    ScanMode,
    ServerRegistrationRequest,
)
from discovery_monitor.models.events import ALL_CATEGORIES, EntityCategory, EntityEvent
from discovery_monitor.models.progress import ProgressEvent

log = logging.getLogger("discovery_monitor.core.controller")

JobRequest = Union[DiscoveryRequest, ServerRegistrationRequest]


def log_progress(event: ProgressEvent) -> None:
    log.info(
        "%s: %s %d/%d (%d found)",
        event.discoverer_id or event.correlation_id,
        event.phase.value,
        event.progress,
        event.total,
        event.discovered,
        extra={"correlation_id": event.correlation_id, "phase": event.phase.value},
    )


def log_entity_event(event: EntityEvent) -> None:
    log.info(
        "%s %s: %s",
        event.category.value if event.category else "entity",
        event.event_type,
        event.id,
    )


def _discoverer_id(entity_id: Optional[str], session: Optional[SessionContext]) -> str:
    if session is not None:
        return session.resolve(EntityCategory.DISCOVERER, entity_id)
    if not entity_id:
        raise InvalidRequestError("missing discoverer id")
    return entity_id


class DiscoveryJobController:
    """
    Submits discovery jobs and watches them through to a terminal phase.

    Every subscription opened here is released on every exit path: normal
    completion, caller stop, submission failure, or task cancellation.
    """

    def __init__(self, events: EventSource, jobs: JobService, directory: Directory):
        self._events = events
        self._jobs = jobs
        self._directory = directory

    # ---- validation -------------------------------------------------------
    @staticmethod
    def prepare(request: JobRequest) -> JobRequest:
        """Reject caller errors before any network call and assign a correlation id."""
        if isinstance(request, DiscoveryRequest):
            if request.discovery is ScanMode.OFF:
                raise InvalidRequestError(
                    "discovery mode Off is not supported for a discovery request",
                    context={"request_id": request.id},
                )
        elif isinstance(request, ServerRegistrationRequest):
            if not request.discovery_url:
                raise InvalidRequestError(
                    "missing discovery url", context={"request_id": request.id}
                )
        else:
            raise InvalidRequestError(f"unsupported request type {type(request).__name__}")
        if not request.id:
            request = request.model_copy(update={"id": new_id()})
        return request

    async def _submit(self, request: JobRequest) -> None:
        if isinstance(request, DiscoveryRequest):
            await self._jobs.submit_discovery(request)
        else:
            await self._jobs.submit_registration(request)
        log.info(
            "request submitted",
            extra={"correlation_id": request.id, "kind": type(request).__name__},
        )

    # ---- fire-and-forget --------------------------------------------------
    async def submit_discovery(self, request: DiscoveryRequest) -> str:
        request = self.prepare(request)
        await self._submit(request)
        return request.id  # type: ignore[return-value]

    async def submit_registration(self, request: ServerRegistrationRequest) -> str:
        request = self.prepare(request)
        await self._submit(request)
        return request.id  # type: ignore[return-value]

    async def cancel(self, correlation_id: str) -> None:
        if not correlation_id:
            raise InvalidRequestError("missing request id to cancel")
        await self._jobs.cancel(correlation_id)
        log.info("cancel requested", extra={"correlation_id": correlation_id})

    # ---- monitored ----------------------------------------------------------
    async def run_monitored(
        self,
        request: JobRequest,
        *,
        on_progress: Optional[ProgressHandler] = None,
        stop: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        cancel_on_stop: bool = True,
    ) -> Optional[Completion]:
        """
        Subscribe, submit, and wait for the job's terminal phase.

        Returns the Completion, or None when `stop` fired / `timeout` elapsed
        first (the job is then cancelled unless `cancel_on_stop` is False).
        A remote Error phase is a Completion with outcome "error", not an
        exception.
        """
        request = self.prepare(request)
        correlation_id: str = request.id  # type: ignore[assignment]
        machine = PhaseStateMachine(correlation_id)
        tracker = CompletionTracker(correlation_id)
        handler = on_progress or log_progress

        async def _on_event(event: ProgressEvent) -> None:
            machine.advance(event)
            try:
                await invoke_handler(handler, event)
            finally:
                tracker.observe(event)

        # subscribe first so no progress event can slip past
        subscription = await self._events.subscribe_progress_by_correlation_id(
            correlation_id, _on_event
        )
        try:
            await self._submit(request)
            completion = await tracker.wait(stop=stop, timeout=timeout)
            if completion is None:
                tracker.abandon()
                if cancel_on_stop:
                    await self.cancel(correlation_id)
            return completion
        finally:
            await subscription.release()

    # ---- active scan --------------------------------------------------------
    async def run_scan(
        self,
        entity_id: Optional[str] = None,
        config: Optional[DiscoveryConfig] = None,
        *,
        stop: asyncio.Event,
        mode: Optional[ScanMode] = None,
        on_progress: Optional[ProgressHandler] = None,
        session: Optional[SessionContext] = None,
    ) -> PhaseSnapshot:
        """
        Put a discoverer into scan mode until `stop` fires, then switch it Off.
        Without an explicit id the discoverer selected in `session` is used.
        Returns the last progress snapshot seen.
        """
        entity_id = _discoverer_id(entity_id, session)
        if mode is None:
            mode = ScanMode.FAST if config is None else ScanMode.SCAN
        if mode is ScanMode.OFF:
            raise InvalidRequestError(
                "scan mode Off is not supported; stop the scan instead",
                context={"entity_id": entity_id},
            )
        config = config or DiscoveryConfig()
        machine = PhaseStateMachine(entity_id)
        handler = on_progress or log_progress

        async def _on_event(event: ProgressEvent) -> None:
            machine.advance(event)
            await invoke_handler(handler, event)

        subscription = await self._events.subscribe_progress_by_entity_id(entity_id, _on_event)
        try:
            await self._jobs.set_scan_mode(entity_id, mode, config)
            log.info("scan started", extra={"entity_id": entity_id, "mode": mode.value})
            try:
                await stop.wait()
            finally:
                await self._jobs.set_scan_mode(entity_id, ScanMode.OFF, DiscoveryConfig())
                log.info("scan stopped", extra={"entity_id": entity_id})
        finally:
            await subscription.release()
        return machine.snapshot

    # ---- passive monitoring -------------------------------------------------
    async def monitor_entity(
        self,
        entity_id: Optional[str] = None,
        *,
        stop: asyncio.Event,
        on_progress: Optional[ProgressHandler] = None,
        session: Optional[SessionContext] = None,
    ) -> PhaseSnapshot:
        """Watch one discoverer's progress until `stop` fires."""
        entity_id = _discoverer_id(entity_id, session)
        machine = PhaseStateMachine(entity_id)
        handler = on_progress or log_progress

        async def _on_event(event: ProgressEvent) -> None:
            machine.advance(event)
            await invoke_handler(handler, event)

        subscription = await self._events.subscribe_progress_by_entity_id(entity_id, _on_event)
        try:
            await stop.wait()
        finally:
            await subscription.release()
        return machine.snapshot

    async def monitor_category(
        self,
        category: EntityCategory,
        *,
        stop: asyncio.Event,
        on_event: Optional[EntityEventHandler] = None,
    ) -> None:
        subscription = await self._events.subscribe_category_events(
            category, on_event or log_entity_event
        )
        try:
            await stop.wait()
        finally:
            await subscription.release()

    # ---- monitor-all --------------------------------------------------------
    async def run_monitor_all(
        self,
        categories: Iterable[EntityCategory] = ALL_CATEGORIES,
        *,
        on_event: Optional[EntityEventHandler] = None,
        on_progress: Optional[ProgressHandler] = None,
    ) -> CompositeSubscription:
        """
        One subscription per category, plus one progress subscription per
        discoverer known right now (when discoverers are monitored). The result
        releases all of them, newest first.
        """
        categories = list(dict.fromkeys(categories))
        event_handler = on_event or log_entity_event
        progress_handler = on_progress or log_progress
        subscriptions = CascadingSubscriptionSet("monitor-all")
        try:
            for category in categories:
                await subscriptions.acquire(
                    lambda c=category: self._events.subscribe_category_events(c, event_handler)
                )
            if EntityCategory.DISCOVERER in categories:
                discoverers = await self._directory.list_all_entities(EntityCategory.DISCOVERER)
                await subscriptions.fan_out(
                    discoverers,
                    lambda d: self._events.subscribe_progress_by_entity_id(d, progress_handler),
                )
        except (Exception, asyncio.CancelledError):
            with contextlib.suppress(SubscriptionReleaseError):
                await subscriptions.close()
            raise
        log.info(
            "monitoring %d subscription(s)",
            len(subscriptions),
            extra={"categories": [c.value for c in categories]},
        )
        return subscriptions.as_composite()
