# discovery_monitor/core/spi.py
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

from discovery_monitor.core.subscriptions import SubscriptionHandle
from discovery_monitor.models.discovery import (
    DiscoveryConfig,
    DiscoveryRequest,
    ScanMode,
    ServerRegistrationRequest,
)
from discovery_monitor.models.events import EntityCategory, EntityEvent
from discovery_monitor.models.progress import ProgressEvent

ProgressHandler = Callable[[ProgressEvent], Union[None, Awaitable[None]]]
EntityEventHandler = Callable[[EntityEvent], Union[None, Awaitable[None]]]


async def invoke_handler(handler: Callable[[Any], Any], arg: Any) -> None:
    """Call a sync or async handler."""
    res = handler(arg)
    if inspect.isawaitable(res):
        await res


class EventSource(Protocol):
    """Push channel for progress and entity events. Every call returns a releasable handle."""

    async def subscribe_progress_by_correlation_id(
        self, correlation_id: str, handler: ProgressHandler
    ) -> SubscriptionHandle: ...

    async def subscribe_progress_by_entity_id(
        self, entity_id: str, handler: ProgressHandler
    ) -> SubscriptionHandle: ...

    async def subscribe_category_events(
        self, category: EntityCategory, handler: EntityEventHandler
    ) -> SubscriptionHandle: ...


class JobService(Protocol):
    async def submit_discovery(self, request: DiscoveryRequest) -> None: ...

    async def submit_registration(self, request: ServerRegistrationRequest) -> None: ...

    async def cancel(self, correlation_id: str) -> None: ...

    async def set_scan_mode(
        self, entity_id: str, mode: ScanMode, config: Optional[DiscoveryConfig]
    ) -> None: ...


class Directory(Protocol):
    async def list_all_entities(self, category: EntityCategory) -> List[str]: ...
