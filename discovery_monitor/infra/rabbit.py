# discovery_monitor/infra/rabbit.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

import aio_pika
import httpx
import orjson
from aio_pika import ExchangeType
from aio_pika.abc import AbstractIncomingMessage, AbstractQueue
from pydantic import ValidationError

from discovery_monitor.config import settings
from discovery_monitor.correlation import corr_headers
from discovery_monitor.core.spi import EntityEventHandler, ProgressHandler, invoke_handler
from discovery_monitor.core.subscriptions import Subscription
from discovery_monitor.errors import SubscriptionError
from discovery_monitor.infra.routing import category_binding, event_name
from discovery_monitor.models.events import EntityCategory, EntityEvent
from discovery_monitor.models.progress import ProgressEvent

logger = logging.getLogger("discovery_monitor.infra.rabbit")

MessageCallback = Callable[[AbstractIncomingMessage], Awaitable[None]]


class QueueSubscription(Subscription):
    """Consumer on one exclusive queue; releasing cancels the consumer and drops the queue."""

    def __init__(self, name: str, queue: AbstractQueue, consumer_tag: str):
        super().__init__(name, self._teardown)
        self.queue = queue
        self.consumer_tag = consumer_tag

    @property
    def connection_id(self) -> str:
        return self.queue.name

    async def _teardown(self) -> None:
        await self.queue.cancel(self.consumer_tag)
        await self.queue.delete(if_unused=False, if_empty=False)


class RabbitEventSource:
    """
    Push event source over RabbitMQ.

    Every subscription gets its own exclusive, auto-delete queue on a shared
    robust connection. Progress subscriptions additionally tell the events
    service to route a request's (or discoverer's) progress to that queue;
    the queue name doubles as the connection id. Category subscriptions bind
    the queue to the topic exchange: <org>.<category>.*.v1
    """

    def __init__(
        self,
        url: Optional[str] = None,
        exchange_name: Optional[str] = None,
        *,
        events_url: Optional[str] = None,
        org: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url or settings.RABBITMQ_URL
        self.exchange_name = exchange_name or settings.RABBITMQ_EXCHANGE
        self.events_url = (events_url or settings.EVENTS_SERVICE_URL).rstrip("/")
        self.org = org or settings.EVENTS_ORG
        self._http = http or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_S)
        self._conn: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self._lock = asyncio.Lock()

    async def _ensure(self) -> None:
        if self._exchange:
            return
        async with self._lock:
            if self._exchange:
                return
            logger.info("Rabbit: connecting...")
            self._conn = await aio_pika.connect_robust(self.url)
            self._channel = await self._conn.channel()
            await self._channel.set_qos(prefetch_count=settings.RABBITMQ_PREFETCH)
            self._exchange = await self._channel.declare_exchange(
                self.exchange_name, ExchangeType.TOPIC, durable=True
            )
            logger.info("Rabbit: connected and exchange declared", extra={"exchange": self.exchange_name})

    async def close(self) -> None:
        try:
            if self._channel and not self._channel.is_closed:
                await self._channel.close()
        finally:
            if self._conn and not self._conn.is_closed:
                await self._conn.close()
            self._conn = self._channel = self._exchange = None
            await self._http.aclose()

    # ---- queues -------------------------------------------------------------
    async def _open_queue(self, name: str, callback: MessageCallback) -> QueueSubscription:
        await self._ensure()
        assert self._channel is not None
        queue = await self._channel.declare_queue(exclusive=True, auto_delete=True)
        tag = await queue.consume(callback)
        logger.info("Rabbit: consuming", extra={"subscription": name, "queue": queue.name})
        return QueueSubscription(name, queue, tag)

    @staticmethod
    def _progress_callback(name: str, handler: ProgressHandler) -> MessageCallback:
        async def _on_message(message: AbstractIncomingMessage) -> None:
            async with message.process(requeue=False):
                try:
                    event = ProgressEvent.model_validate(orjson.loads(message.body))
                except (orjson.JSONDecodeError, ValidationError) as e:
                    logger.exception("Invalid progress message; dropped: %s", e, extra={"subscription": name})
                    return
                try:
                    await invoke_handler(handler, event)
                except Exception as e:
                    logger.exception("Progress handler failed: %s", e, extra={"subscription": name})

        return _on_message

    @staticmethod
    def _category_callback(category: EntityCategory, handler: EntityEventHandler) -> MessageCallback:
        async def _on_message(message: AbstractIncomingMessage) -> None:
            async with message.process(requeue=False):
                try:
                    data = orjson.loads(message.body)
                except orjson.JSONDecodeError as e:
                    logger.exception("Invalid JSON: %s", e)
                    return
                if not isinstance(data, dict):
                    data = {"payload": data}
                event = EntityEvent(
                    category=category,
                    event_type=data.get("eventType") or event_name(message.routing_key or ""),
                    id=data.get("id"),
                    payload=data,
                )
                try:
                    await invoke_handler(handler, event)
                except Exception as e:
                    logger.exception("Event handler failed: %s", e, extra={"category": category.value})

        return _on_message

    # ---- events service registration -----------------------------------------
    async def _register(self, path: str, connection_id: str) -> None:
        r = await self._http.put(
            f"{self.events_url}{path}", json=connection_id, headers=corr_headers()
        )
        r.raise_for_status()

    async def _unregister(self, path: str, connection_id: str) -> None:
        r = await self._http.delete(f"{self.events_url}{path}/{connection_id}", headers=corr_headers())
        r.raise_for_status()

    async def _subscribe_progress(
        self, path: str, name: str, handler: ProgressHandler
    ) -> QueueSubscription:
        try:
            subscription = await self._open_queue(name, self._progress_callback(name, handler))
        except Exception as e:
            raise SubscriptionError(f"could not open queue for {name}: {e}", context={"subscription": name}) from e

        connection_id = subscription.connection_id
        try:
            await self._register(path, connection_id)
        except Exception as e:
            # the queue is useless without the registration; teardown failures are logged by release()
            with contextlib.suppress(Exception):
                await subscription.release()
            raise SubscriptionError(
                f"events service refused {name}: {e}", context={"subscription": name, "path": path}
            ) from e

        subscription.on_release(lambda: self._unregister(path, connection_id))
        logger.info("subscribed", extra={"subscription": name, "connection_id": connection_id})
        return subscription

    # ---- EventSource --------------------------------------------------------
    async def subscribe_progress_by_correlation_id(
        self, correlation_id: str, handler: ProgressHandler
    ) -> QueueSubscription:
        if not correlation_id:
            raise SubscriptionError("missing request id")
        return await self._subscribe_progress(
            f"/v3/discovery/requests/{correlation_id}/events",
            f"progress:request:{correlation_id}",
            handler,
        )

    async def subscribe_progress_by_entity_id(
        self, entity_id: str, handler: ProgressHandler
    ) -> QueueSubscription:
        if not entity_id:
            raise SubscriptionError("missing discoverer id")
        return await self._subscribe_progress(
            f"/v3/discovery/{entity_id}/events",
            f"progress:discoverer:{entity_id}",
            handler,
        )

    async def subscribe_category_events(
        self, category: EntityCategory, handler: EntityEventHandler
    ) -> QueueSubscription:
        name = f"events:{category.value}"
        binding = category_binding(self.org, category)
        try:
            subscription = await self._open_queue(name, self._category_callback(category, handler))
        except Exception as e:
            raise SubscriptionError(f"could not open queue for {name}: {e}", context={"subscription": name}) from e
        try:
            await subscription.queue.bind(self._exchange, routing_key=binding)
        except Exception as e:
            with contextlib.suppress(Exception):
                await subscription.release()
            raise SubscriptionError(
                f"could not subscribe to {category.value} events: {e}",
                context={"subscription": name, "routing_key": binding},
            ) from e
        logger.info("Bound to %s", binding, extra={"subscription": name})
        return subscription
