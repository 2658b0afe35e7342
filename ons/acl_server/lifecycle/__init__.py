"""Delegation and record host lifecycles."""

from .delegation import DelegationManager, DelegationView
from .hosts import HostLifecycleManager, HostLocator, HostSummary

__all__ = [
    "DelegationManager",
    "DelegationView",
    "HostLifecycleManager",
    "HostLocator",
    "HostSummary",
]
