# discovery_monitor/main.py
from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator

from discovery_monitor.clients.registry import RegistryClient
from discovery_monitor.config import settings
from discovery_monitor.core.controller import DiscoveryJobController
from discovery_monitor.infra.rabbit import RabbitEventSource
from discovery_monitor.logging import setup_logging

logger = logging.getLogger("discovery_monitor.main")


@asynccontextmanager
async def controller_session() -> AsyncIterator[DiscoveryJobController]:
    """Wire the HTTP registry client and the Rabbit event source; close both on exit."""
    registry = RegistryClient()
    events = RabbitEventSource()
    try:
        yield DiscoveryJobController(events, registry, registry)
    finally:
        try:
            await events.close()
        finally:
            await registry.aclose()


async def monitor_all() -> None:
    """Monitor every category and every discoverer until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - windows
            pass

    async with controller_session() as controller:
        handle = await controller.run_monitor_all()
        logger.info("%s monitoring; stop with Ctrl+C", settings.SERVICE_NAME)
        try:
            await stop.wait()
        finally:
            await handle.release()


def run() -> None:
    setup_logging()
    asyncio.run(monitor_all())
