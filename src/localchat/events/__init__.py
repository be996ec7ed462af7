"""Application lifecycle events."""

from localchat.events.lifecycle import (
    HostStateSource,
    LifecycleRegistry,
    SignalResumeSource,
    Subscription,
    VisibilitySource,
    get_lifecycle_registry,
)

__all__ = [
    "HostStateSource",
    "LifecycleRegistry",
    "SignalResumeSource",
    "Subscription",
    "VisibilitySource",
    "get_lifecycle_registry",
]
