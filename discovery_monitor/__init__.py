"""Client-side controller for monitored network discovery jobs."""
from discovery_monitor.core import (
    CascadingSubscriptionSet,
    Completion,
    CompletionTracker,
    DiscoveryJobController,
    PhaseStateMachine,
    SessionContext,
)

__version__ = "0.1.0"

__all__ = [
    "CascadingSubscriptionSet",
    "Completion",
    "CompletionTracker",
    "DiscoveryJobController",
    "PhaseStateMachine",
    "SessionContext",
]
