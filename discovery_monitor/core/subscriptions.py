# discovery_monitor/core/subscriptions.py
"""
Subscription lifetimes.

A SubscriptionHandle is whatever the event source hands back; releasing it
stops delivery. CascadingSubscriptionSet owns several of them and releases
them newest-first, including when acquisition fails halfway through.
"""
from __future__ import annotations

import asyncio
import logging
from typing import (
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    List,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from discovery_monitor.errors import SubscriptionReleaseError, SubscriptionSetClosedError

log = logging.getLogger("discovery_monitor.core.subscriptions")

Releaser = Callable[[], Awaitable[None]]


@runtime_checkable
class SubscriptionHandle(Protocol):
    async def release(self) -> None: ...


H = TypeVar("H", bound=SubscriptionHandle)


class Subscription:
    """
    Concrete handle: runs its release callbacks newest-first, exactly once.
    Callbacks are registered in acquisition order.
    """

    def __init__(self, name: str, *releasers: Releaser):
        self.name = name
        self._releasers: List[Releaser] = list(releasers)
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def on_release(self, releaser: Releaser) -> None:
        self._releasers.append(releaser)

    async def release(self) -> None:
        if self._released:
            return
        # flip before awaiting so a concurrent abort path sees it
        self._released = True
        errors: List[BaseException] = []
        while self._releasers:
            releaser = self._releasers.pop()
            try:
                await releaser()
            except Exception as e:
                log.exception("release step failed", extra={"subscription": self.name})
                errors.append(e)
        log.info("subscription released", extra={"subscription": self.name})
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise SubscriptionReleaseError(errors, context={"subscription": self.name})

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"Subscription({self.name!r}, released={self._released})"


class CascadingSubscriptionSet:
    """Ordered arena of subscriptions with LIFO release."""

    def __init__(self, name: str = "subscriptions"):
        self.name = name
        self._handles: List[SubscriptionHandle] = []
        self._lock = asyncio.Lock()
        self._closed = False

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[SubscriptionHandle]:
        return iter(list(self._handles))

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self, factory: Callable[[], Awaitable[H]]) -> H:
        """
        Await `factory()` and keep the handle. If the factory fails, everything
        acquired so far is released (newest first) before the failure propagates.
        """
        if self._closed:
            raise SubscriptionSetClosedError(
                f"{self.name} is already released", context={"set": self.name}
            )
        try:
            handle = await factory()
        except (Exception, asyncio.CancelledError):
            log.warning(
                "subscription failed; rolling back %d acquired", len(self._handles),
                extra={"set": self.name},
            )
            try:
                await self.release_all()
            except SubscriptionReleaseError:
                # already logged per handle; the acquisition failure is what the caller needs
                pass
            raise

        if self._closed:
            await handle.release()
            raise SubscriptionSetClosedError(
                f"{self.name} was released while a subscription was being acquired",
                context={"set": self.name},
            )
        self._handles.append(handle)
        return handle

    async def fan_out(
        self,
        entity_ids: Iterable[str],
        factory_for: Callable[[str], Awaitable[H]],
    ) -> List[H]:
        """One subscription per entity id, in enumeration order."""
        acquired: List[H] = []
        for entity_id in entity_ids:
            acquired.append(await self.acquire(lambda eid=entity_id: factory_for(eid)))
        return acquired

    async def release_all(self) -> None:
        """
        Release every handle newest-first. Individual failures do not stop the
        rest; they are raised together afterwards.
        """
        errors: List[BaseException] = []
        async with self._lock:
            while self._handles:
                handle = self._handles.pop()
                try:
                    await handle.release()
                except Exception as e:
                    log.exception("failed to release subscription", extra={"set": self.name})
                    errors.append(e)
        if errors:
            raise SubscriptionReleaseError(errors, context={"set": self.name})

    async def close(self) -> None:
        """Release everything and refuse late arrivals."""
        self._closed = True
        await self.release_all()

    def as_composite(self) -> "CompositeSubscription":
        return CompositeSubscription(self)

    async def __aenter__(self) -> "CascadingSubscriptionSet":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class CompositeSubscription:
    """A whole CascadingSubscriptionSet seen as one releasable handle."""

    def __init__(self, subscriptions: CascadingSubscriptionSet):
        self._set = subscriptions

    @property
    def released(self) -> bool:
        return self._set.closed and len(self._set) == 0

    def __len__(self) -> int:
        return len(self._set)

    async def release(self) -> None:
        await self._set.close()

    async def __aenter__(self) -> "CompositeSubscription":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.release()
