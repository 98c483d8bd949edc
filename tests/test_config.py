import logging

import pytest
from pydantic import ValidationError

from discovery_monitor.config import Settings
from discovery_monitor.logging import setup_logging


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("REGISTRY_SERVICE_URL", "https://registry.example:9042/")
    monkeypatch.setenv("RABBITMQ_PREFETCH", "8")
    s = Settings(_env_file=None)
    assert s.REGISTRY_SERVICE_URL == "https://registry.example:9042"
    assert s.RABBITMQ_PREFETCH == 8


def test_url_without_scheme_is_rejected(monkeypatch):
    monkeypatch.setenv("EVENTS_SERVICE_URL", "events-service:9050")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_setup_logging_is_idempotent():
    logger = logging.getLogger("discovery_monitor")
    before = list(logger.handlers)
    try:
        assert setup_logging("debug") is logger
        handlers = list(logger.handlers)
        assert setup_logging("warning") is logger
        assert logger.handlers == handlers
        assert logger.level == logging.WARNING
    finally:
        for handler in logger.handlers[len(before):]:
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
