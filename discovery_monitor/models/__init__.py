from discovery_monitor.models.discovery import (
    ActivationFilter,
    DiscoveryConfig,
    DiscoveryRequest,
    ScanMode,
    SecurityMode,
    ServerRegistrationRequest,
)
from discovery_monitor.models.events import ALL_CATEGORIES, EntityCategory, EntityEvent
from discovery_monitor.models.progress import Outcome, Phase, ProgressEvent

__all__ = [
    "ActivationFilter",
    "ALL_CATEGORIES",
    "DiscoveryConfig",
    "DiscoveryRequest",
    "EntityCategory",
    "EntityEvent",
    "Outcome",
    "Phase",
    "ProgressEvent",
    "ScanMode",
    "SecurityMode",
    "ServerRegistrationRequest",
]
