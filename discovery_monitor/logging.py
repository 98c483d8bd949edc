import logging, sys

from discovery_monitor.config import settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Attach one stdout handler to the package logger. Safe to call twice."""
    root = logging.getLogger("discovery_monitor")
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if root.handlers:
        return root
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    return root
