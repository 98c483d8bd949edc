"""Recording fakes for the event source, job service and directory."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import pytest

from discovery_monitor.core.controller import DiscoveryJobController
from discovery_monitor.core.spi import invoke_handler
from discovery_monitor.core.subscriptions import Subscription
from discovery_monitor.models.discovery import (
    DiscoveryConfig,
    DiscoveryRequest,
    ScanMode,
    ServerRegistrationRequest,
)
from discovery_monitor.models.events import EntityCategory, EntityEvent
from discovery_monitor.models.progress import Phase, ProgressEvent


def progress(
    phase: Phase,
    request_id: Optional[str] = "req-1",
    progress: int = 0,
    total: int = 0,
    **kw: Any,
) -> ProgressEvent:
    return ProgressEvent(
        correlation_id=request_id, phase=phase, progress=progress, total=total, **kw
    )


class CallLog(list):
    """Ordered (action, key) tuples shared by all fakes."""

    def actions(self, action: str) -> List[str]:
        return [key for act, key in self if act == action]


class FakeEventSource:
    def __init__(self, calls: CallLog):
        self.calls = calls
        self.by_request: Dict[str, Callable] = {}
        self.by_entity: Dict[str, Callable] = {}
        self.by_category: Dict[EntityCategory, Callable] = {}
        self.subscriptions: List[Subscription] = []
        self.fail_on: set[str] = set()

    def _subscription(self, key: str) -> Subscription:
        async def _release() -> None:
            self.calls.append(("release", key))

        sub = Subscription(key, _release)
        self.subscriptions.append(sub)
        return sub

    async def _subscribe(self, key: str) -> Subscription:
        await asyncio.sleep(0)
        if key in self.fail_on:
            raise ConnectionError(f"cannot subscribe {key}")
        self.calls.append(("subscribe", key))
        return self._subscription(key)

    async def subscribe_progress_by_correlation_id(self, correlation_id, handler):
        sub = await self._subscribe(f"request:{correlation_id}")
        self.by_request[correlation_id] = handler
        return sub

    async def subscribe_progress_by_entity_id(self, entity_id, handler):
        sub = await self._subscribe(f"entity:{entity_id}")
        self.by_entity[entity_id] = handler
        return sub

    async def subscribe_category_events(self, category, handler):
        sub = await self._subscribe(f"category:{category.value}")
        self.by_category[category] = handler
        return sub

    async def emit(self, correlation_id: str, event: ProgressEvent) -> None:
        await invoke_handler(self.by_request[correlation_id], event)

    async def emit_entity(self, entity_id: str, event: ProgressEvent) -> None:
        await invoke_handler(self.by_entity[entity_id], event)

    async def emit_category(self, category: EntityCategory, event: EntityEvent) -> None:
        await invoke_handler(self.by_category[category], event)


Script = Callable[[Any], Awaitable[None]]


class FakeJobService:
    def __init__(self, calls: CallLog):
        self.calls = calls
        self.requests: List[Any] = []
        self.scan_modes: List[Tuple[str, ScanMode, Optional[DiscoveryConfig]]] = []
        self.script: Optional[Script] = None
        self.fail_submit: Optional[Exception] = None
        self._tasks: List[asyncio.Task] = []

    async def _accept(self, request: Any) -> None:
        if self.fail_submit is not None:
            raise self.fail_submit
        self.calls.append(("submit", request.id))
        self.requests.append(request)
        if self.script is not None:
            # the remote side starts pushing progress after accepting
            self._tasks.append(asyncio.get_running_loop().create_task(self.script(request)))

    async def submit_discovery(self, request: DiscoveryRequest) -> None:
        await self._accept(request)

    async def submit_registration(self, request: ServerRegistrationRequest) -> None:
        await self._accept(request)

    async def cancel(self, correlation_id: str) -> None:
        self.calls.append(("cancel", correlation_id))

    async def set_scan_mode(self, entity_id, mode, config) -> None:
        self.calls.append(("scan_mode", f"{entity_id}:{mode.value}"))
        self.scan_modes.append((entity_id, mode, config))


class FakeDirectory:
    def __init__(self, calls: CallLog, entities: Optional[Dict[EntityCategory, List[str]]] = None):
        self.calls = calls
        self.entities = entities or {}
        self.error: Optional[Exception] = None

    async def list_all_entities(self, category: EntityCategory) -> List[str]:
        self.calls.append(("list", category.value))
        if self.error is not None:
            raise self.error
        return list(self.entities.get(category, []))


@pytest.fixture
def calls() -> CallLog:
    return CallLog()


@pytest.fixture
def events(calls) -> FakeEventSource:
    return FakeEventSource(calls)


@pytest.fixture
def jobs(calls) -> FakeJobService:
    return FakeJobService(calls)


@pytest.fixture
def directory(calls) -> FakeDirectory:
    return FakeDirectory(calls)


@pytest.fixture
def controller(events, jobs, directory) -> DiscoveryJobController:
    return DiscoveryJobController(events, jobs, directory)
