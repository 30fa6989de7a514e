"""
Interfaces for the external collaborators of CareWatch.

These protocols define the contracts the pipeline relies on. Storage,
transport and messaging implementations must follow them.

Example:
    >>> from carewatch.interfaces import AttemptStore
    >>> class ListAttemptStore:
    ...     def __init__(self) -> None:
    ...         self.attempts = []
    ...     async def record(self, attempt) -> None:
    ...         self.attempts.append(attempt)

Modules:
    collaborators: Protocols for stores, gateways, event bus and metrics
"""

from carewatch.interfaces.collaborators import (
    AlertStore,
    AttemptStore,
    EventBus,
    GatewayResult,
    MetricsSink,
    ProfileStore,
    TransportGateway,
)

__all__: list[str] = [
    "AlertStore",
    "AttemptStore",
    "EventBus",
    "GatewayResult",
    "MetricsSink",
    "ProfileStore",
    "TransportGateway",
]
