"""Shared test fixtures and in-memory collaborators for CareWatch tests."""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

import pytest

from carewatch.errors import DependencyError, TransportError
from carewatch.interfaces.collaborators import GatewayResult
from carewatch.models.alerts import Alert, EscalationLevel
from carewatch.models.notifications import (
    CareCircleMember,
    NotificationAttempt,
    NotificationChannel,
    RecipientPreferences,
    RecipientProfile,
)
from carewatch.models.vitals import BaselineRanges

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory stores
# ---------------------------------------------------------------------------

class InMemoryProfileStore:
    """ProfileStore backed by dicts."""

    def __init__(self) -> None:
        self.baselines: Dict[str, BaselineRanges] = {}
        self.preferences: Dict[str, RecipientPreferences] = {}
        self.recipients: Dict[str, RecipientProfile] = {}
        self.care_circles: Dict[str, List[CareCircleMember]] = {}
        self.emergency_contacts: Dict[str, List[str]] = {}
        self.preference_reads = 0

    def add_recipient(
        self,
        recipient_id: str,
        phone: Optional[str] = "+15550100",
        email: Optional[str] = "carer@example.com",
        display_name: Optional[str] = None,
    ) -> RecipientProfile:
        profile = RecipientProfile(
            recipient_id=recipient_id, display_name=display_name, phone=phone, email=email
        )
        self.recipients[recipient_id] = profile
        return profile

    async def get_baseline(self, subject_id: str) -> Optional[BaselineRanges]:
        return self.baselines.get(subject_id)

    async def get_preferences(self, recipient_id: str) -> Optional[RecipientPreferences]:
        self.preference_reads += 1
        return self.preferences.get(recipient_id)

    async def get_recipient(self, recipient_id: str) -> Optional[RecipientProfile]:
        return self.recipients.get(recipient_id)

    async def get_care_circle(self, subject_id: str) -> List[CareCircleMember]:
        return list(self.care_circles.get(subject_id, []))

    async def get_emergency_contacts(self, subject_id: str) -> List[str]:
        return list(self.emergency_contacts.get(subject_id, []))


class InMemoryAlertStore:
    """AlertStore backed by a dict keyed by alert id."""

    def __init__(self) -> None:
        self.alerts: Dict[str, Alert] = {}

    async def create(self, alert: Alert) -> str:
        self.alerts[alert.id] = alert
        return alert.id

    async def get(self, alert_id: str, timestamp: Optional[datetime] = None) -> Optional[Alert]:
        alert = self.alerts.get(alert_id)
        if alert is None or (timestamp is not None and alert.timestamp != timestamp):
            return None
        return alert

    async def acknowledge(
        self,
        alert_id: str,
        acknowledged_by: str,
        timestamp: Optional[datetime] = None,
        acknowledged_at: Optional[datetime] = None,
    ) -> Optional[Alert]:
        alert = await self.get(alert_id, timestamp)
        if alert is None:
            return None
        updated = alert.acknowledge(acknowledged_by, acknowledged_at)
        self.alerts[alert_id] = updated
        return updated

    async def escalate(
        self,
        alert_id: str,
        level: EscalationLevel,
        timestamp: Optional[datetime] = None,
        escalated_at: Optional[datetime] = None,
    ) -> Optional[Alert]:
        alert = await self.get(alert_id, timestamp)
        if alert is None:
            return None
        updated = alert.escalate(level, escalated_at)
        self.alerts[alert_id] = updated
        return updated

    async def list_by_subject(self, subject_id: str) -> List[Alert]:
        return sorted(
            (a for a in self.alerts.values() if a.subject_id == subject_id),
            key=lambda a: a.timestamp,
            reverse=True,
        )

    async def list_by_status(self, acknowledged: bool) -> List[Alert]:
        return sorted(
            (a for a in self.alerts.values() if a.acknowledged == acknowledged),
            key=lambda a: a.timestamp,
            reverse=True,
        )


class InMemoryAttemptStore:
    """AttemptStore that keeps attempts in a list, or fails on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.attempts: List[NotificationAttempt] = []
        self.fail = fail

    async def record(self, attempt: NotificationAttempt) -> None:
        if self.fail:
            raise DependencyError("attempt store down")
        self.attempts.append(attempt)


class RecordingEventBus:
    """EventBus that records published events."""

    def __init__(self, fail: bool = False) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = fail

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise DependencyError("bus down")
        self.events.append((topic, payload))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]


class RecordingMetricsSink:
    """MetricsSink that records samples."""

    def __init__(self, fail: bool = False) -> None:
        self.samples: List[Tuple[str, Dict[str, str], float]] = []
        self.fail = fail

    async def record(self, name: str, dims: Dict[str, str], value: float) -> None:
        if self.fail:
            raise DependencyError("metrics down")
        self.samples.append((name, dims, value))

    def named(self, name: str) -> List[Tuple[str, Dict[str, str], float]]:
        return [s for s in self.samples if s[0] == name]


# ---------------------------------------------------------------------------
# Scripted gateway
# ---------------------------------------------------------------------------

Outcome = Union[GatewayResult, Exception]


class ScriptedGateway:
    """
    TransportGateway returning scripted outcomes in order.

    Once the script is exhausted every send is delivered.
    """

    def __init__(self, *outcomes: Outcome, delay: float = 0.0) -> None:
        self.outcomes: Deque[Outcome] = deque(outcomes)
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def send(
        self,
        contact: str,
        message: str,
        correlation_id: str,
        subject: Optional[str] = None,
    ) -> GatewayResult:
        self.calls.append(
            {
                "contact": contact,
                "message": message,
                "correlation_id": correlation_id,
                "subject": subject,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.popleft() if self.outcomes else delivered()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def delivered(latency_ms: float = 5.0) -> GatewayResult:
    return GatewayResult(accepted=True, delivered=True, latency_ms=latency_ms)


def accepted(latency_ms: float = 5.0) -> GatewayResult:
    return GatewayResult(accepted=True, delivered=False, latency_ms=latency_ms)


def rejected(error: str = "rejected") -> GatewayResult:
    return GatewayResult(accepted=False, error=error)


def transport_failure(message: str = "provider returned 503") -> TransportError:
    return TransportError(message)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def attempt_store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def metrics_sink() -> RecordingMetricsSink:
    return RecordingMetricsSink()


@pytest.fixture
def gateways() -> Dict[NotificationChannel, ScriptedGateway]:
    return {channel: ScriptedGateway() for channel in NotificationChannel}
