from discovery_monitor.core.completion import Completion, CompletionTracker
from discovery_monitor.core.controller import DiscoveryJobController
from discovery_monitor.core.phases import PhaseSnapshot, PhaseStateMachine, classify, is_terminal
from discovery_monitor.core.session import SessionContext
from discovery_monitor.core.subscriptions import (
    CascadingSubscriptionSet,
    CompositeSubscription,
    Subscription,
    SubscriptionHandle,
)

__all__ = [
    "CascadingSubscriptionSet",
    "Completion",
    "CompletionTracker",
    "CompositeSubscription",
    "DiscoveryJobController",
    "PhaseSnapshot",
    "PhaseStateMachine",
    "SessionContext",
    "Subscription",
    "SubscriptionHandle",
    "classify",
    "is_terminal",
]
