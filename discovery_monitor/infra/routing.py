from enum import Enum

from discovery_monitor.models.events import EntityCategory


class Version(str, Enum):
    V1 = "v1"


def rk(org: str, service: str, event: str, version: str = Version.V1.value) -> str:
    """Versioned topic routing key: <org>.<service>.<event>.<version>"""
    return f"{org}.{service}.{event}.{version}"


def category_binding(org: str, category: EntityCategory) -> str:
    # every event of one category, e.g. iiot.discoverer.*.v1
    return rk(org, category.value, "*")


def event_name(routing_key: str) -> str:
    parts = routing_key.split(".")
    return parts[2] if len(parts) >= 4 else routing_key
