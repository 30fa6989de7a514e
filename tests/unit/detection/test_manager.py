"""
Tests for the alert lifecycle in `carewatch/detection/manager.py`.

Covers:
- Reading processing (baseline lookup, decision, alert creation)
- Alert creation validation and alerts.created publication
- Acknowledgment (not found, idempotence, event payload)
- Escalation (policy, invalid level, re-escalation overwrite)
- Emergency triggers and periodic escalation checks
- Event bus failures never failing the lifecycle
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from carewatch.detection.manager import (
    TOPIC_ALERT_ACKNOWLEDGED,
    TOPIC_ALERT_CREATED,
    TOPIC_ALERT_ESCALATED,
    AlertManager,
    create_alert_manager,
)
from carewatch.errors import AlertNotFoundError, AlertValidationError
from carewatch.models.alerts import AlertSeverity, AlertType, EscalationLevel
from carewatch.models.notifications import CareCircleMember
from carewatch.models.vitals import BaselineRanges, MetricRange, VitalReading

from conftest import (
    InMemoryAlertStore,
    InMemoryProfileStore,
    RecordingEventBus,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager(
    alert_store: InMemoryAlertStore,
    profile_store: InMemoryProfileStore,
    event_bus: RecordingEventBus,
) -> AlertManager:
    return AlertManager(alert_store, profile_store, event_bus)


class TestProcessReading:
    @pytest.mark.asyncio
    async def test_critical_reading_creates_alert(
        self,
        manager: AlertManager,
        profile_store: InMemoryProfileStore,
        alert_store: InMemoryAlertStore,
        event_bus: RecordingEventBus,
    ) -> None:
        profile_store.baselines["subject-1"] = BaselineRanges(
            heart_rate=MetricRange(min=60, max=100)
        )

        outcome = await manager.process_reading(
            "subject-1", VitalReading(heart_rate=150, timestamp=NOW)
        )

        assert outcome.alert_triggered is True
        assert outcome.alert is not None
        assert outcome.alert.severity == AlertSeverity.CRITICAL
        assert outcome.alert.timestamp == NOW
        assert alert_store.alerts[outcome.alert.id] == outcome.alert
        assert event_bus.topics() == [TOPIC_ALERT_CREATED]

    @pytest.mark.asyncio
    async def test_low_deviation_records_no_alert(
        self,
        manager: AlertManager,
        alert_store: InMemoryAlertStore,
        event_bus: RecordingEventBus,
    ) -> None:
        outcome = await manager.process_reading("subject-1", VitalReading(heart_rate=103))

        assert len(outcome.anomalies) == 1
        assert outcome.alert_triggered is False
        assert outcome.alert is None
        assert alert_store.alerts == {}
        assert event_bus.events == []


class TestCreateAlert:
    @pytest.mark.asyncio
    async def test_creates_pending_alert(
        self, manager: AlertManager, event_bus: RecordingEventBus
    ) -> None:
        alert = await manager.create_alert(
            "subject-1", "medication", "medium", "Missed evening dose"
        )

        assert alert.type == AlertType.MEDICATION
        assert alert.acknowledged is False
        assert alert.escalated is False

        topic, payload = event_bus.events[0]
        assert topic == TOPIC_ALERT_CREATED
        assert payload["alert"]["id"] == alert.id

    @pytest.mark.asyncio
    async def test_invalid_type_rejected(self, manager: AlertManager) -> None:
        with pytest.raises(AlertValidationError):
            await manager.create_alert("subject-1", "weather", "medium", "Rain")

    @pytest.mark.asyncio
    async def test_invalid_severity_rejected(self, manager: AlertManager) -> None:
        with pytest.raises(AlertValidationError):
            await manager.create_alert("subject-1", "medication", "extreme", "Missed dose")

    @pytest.mark.asyncio
    async def test_event_bus_failure_does_not_fail_creation(
        self,
        alert_store: InMemoryAlertStore,
        profile_store: InMemoryProfileStore,
    ) -> None:
        manager = AlertManager(alert_store, profile_store, RecordingEventBus(fail=True))

        alert = await manager.create_alert("subject-1", "device", "high", "Sensor offline")

        assert alert.id in alert_store.alerts


class TestAcknowledgeAlert:
    @pytest.mark.asyncio
    async def test_unknown_alert_raises(self, manager: AlertManager) -> None:
        with pytest.raises(AlertNotFoundError):
            await manager.acknowledge_alert("missing", "carer-1")

    @pytest.mark.asyncio
    async def test_timestamp_mismatch_raises(self, manager: AlertManager) -> None:
        alert = await manager.create_alert("subject-1", "device", "high", "Sensor offline")

        with pytest.raises(AlertNotFoundError):
            await manager.acknowledge_alert(
                alert.id, "carer-1", timestamp=alert.timestamp - timedelta(seconds=1)
            )

    @pytest.mark.asyncio
    async def test_publishes_event_with_care_circle(
        self,
        manager: AlertManager,
        profile_store: InMemoryProfileStore,
        event_bus: RecordingEventBus,
    ) -> None:
        profile_store.care_circles["subject-1"] = [
            CareCircleMember(recipient_id="carer-1"),
            CareCircleMember(recipient_id="carer-2", can_receive_alerts=False),
        ]
        alert = await manager.create_alert("subject-1", "device", "high", "Sensor offline")

        acked = await manager.acknowledge_alert(alert.id, "carer-1", acknowledged_at=NOW)

        assert acked.acknowledged is True
        assert acked.acknowledged_by == "carer-1"
        assert acked.acknowledged_at == NOW

        topic, payload = event_bus.events[-1]
        assert topic == TOPIC_ALERT_ACKNOWLEDGED
        assert payload["acknowledged_by"] == "carer-1"
        assert payload["care_circle_members"] == ["carer-1", "carer-2"]

    @pytest.mark.asyncio
    async def test_second_acknowledgment_is_idempotent(
        self, manager: AlertManager, event_bus: RecordingEventBus
    ) -> None:
        alert = await manager.create_alert("subject-1", "device", "high", "Sensor offline")
        first = await manager.acknowledge_alert(alert.id, "carer-1")

        second = await manager.acknowledge_alert(alert.id, "carer-2")

        assert second.acknowledged_by == "carer-1"
        assert second.acknowledged_at == first.acknowledged_at
        assert event_bus.topics().count(TOPIC_ALERT_ACKNOWLEDGED) == 1


class TestEscalateAlert:
    @pytest.mark.asyncio
    async def test_manual_escalation_goes_to_care_circle(
        self, manager: AlertManager, event_bus: RecordingEventBus
    ) -> None:
        alert = await manager.create_alert("subject-1", "vital_signs", "critical", "HR 150")

        escalated = await manager.escalate_alert(alert.id)

        assert escalated.escalated is True
        assert escalated.escalation_level == EscalationLevel.CARE_CIRCLE
        topic, payload = event_bus.events[-1]
        assert topic == TOPIC_ALERT_ESCALATED
        assert payload["escalation_level"] == "care_circle"
        assert payload["severity"] == "critical"

    @pytest.mark.asyncio
    async def test_invalid_level_rejected_before_lookup(self, manager: AlertManager) -> None:
        with pytest.raises(AlertValidationError):
            await manager.escalate_alert("missing", level="police")

    @pytest.mark.asyncio
    async def test_unknown_alert_raises(self, manager: AlertManager) -> None:
        with pytest.raises(AlertNotFoundError):
            await manager.escalate_alert("missing", level="care_circle")

    @pytest.mark.asyncio
    async def test_re_escalation_overwrites_level(
        self, manager: AlertManager, event_bus: RecordingEventBus
    ) -> None:
        alert = await manager.create_alert("subject-1", "fall_detection", "high", "Fall")
        await manager.escalate_alert(alert.id, level="care_circle")

        again = await manager.escalate_alert(alert.id, level="emergency_services")

        assert again.escalated is True
        assert again.escalation_level == EscalationLevel.EMERGENCY_SERVICES
        assert event_bus.topics().count(TOPIC_ALERT_ESCALATED) == 2


class TestTriggerEmergency:
    @pytest.mark.asyncio
    async def test_critical_emergency_goes_to_emergency_services(
        self, manager: AlertManager, event_bus: RecordingEventBus
    ) -> None:
        alert = await manager.trigger_emergency(
            "subject-1", "fall", "critical", symptoms=["dizziness", "pain"]
        )

        assert alert.type == AlertType.EMERGENCY
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.escalated is True
        assert alert.escalation_level == EscalationLevel.EMERGENCY_SERVICES
        assert alert.message == "Emergency: fall - Symptoms: dizziness, pain"
        assert event_bus.topics() == [TOPIC_ALERT_CREATED, TOPIC_ALERT_ESCALATED]

    @pytest.mark.asyncio
    async def test_non_critical_emergency_becomes_high(self, manager: AlertManager) -> None:
        alert = await manager.trigger_emergency("subject-1", "missed_check_in", "low")

        assert alert.severity == AlertSeverity.HIGH
        assert alert.escalation_level == EscalationLevel.EMERGENCY_CONTACT
        assert alert.message == "Emergency: missed check in"

    @pytest.mark.asyncio
    async def test_invalid_emergency_type_rejected(self, manager: AlertManager) -> None:
        with pytest.raises(AlertValidationError):
            await manager.trigger_emergency("subject-1", "earthquake", "critical")


class TestCheckEscalations:
    @pytest.mark.asyncio
    async def test_escalates_overdue_pending_alerts(
        self, manager: AlertManager, alert_store: InMemoryAlertStore
    ) -> None:
        overdue = await manager.create_alert(
            "subject-1", "vital_signs", "critical", "HR 150",
            timestamp=NOW - timedelta(minutes=45),
        )
        recent = await manager.create_alert(
            "subject-1", "vital_signs", "high", "HR 130",
            timestamp=NOW - timedelta(minutes=5),
        )

        escalated = await manager.check_escalations(now=NOW)

        assert [a.id for a in escalated] == [overdue.id]
        assert escalated[0].escalation_level == EscalationLevel.EMERGENCY_SERVICES
        assert escalated[0].escalated_at == NOW
        assert alert_store.alerts[recent.id].escalated is False

    @pytest.mark.asyncio
    async def test_factory_honours_escalation_window(
        self,
        alert_store: InMemoryAlertStore,
        profile_store: InMemoryProfileStore,
        event_bus: RecordingEventBus,
    ) -> None:
        manager = await create_alert_manager(
            alert_store, profile_store, event_bus, escalation_minutes=5
        )
        alert = await manager.create_alert(
            "subject-1", "vital_signs", "medium", "BP 150/95",
            timestamp=NOW - timedelta(minutes=6),
        )

        escalated = await manager.check_escalations(now=NOW)

        assert [a.id for a in escalated] == [alert.id]
        assert escalated[0].escalation_level == EscalationLevel.EMERGENCY_CONTACT

    @pytest.mark.asyncio
    async def test_naive_reading_time_does_not_break_sweep(
        self, manager: AlertManager, profile_store: InMemoryProfileStore
    ) -> None:
        profile_store.baselines["subject-1"] = BaselineRanges(
            heart_rate=MetricRange(min=60, max=100)
        )
        outcome = await manager.process_reading(
            "subject-1", VitalReading(heart_rate=150, timestamp=datetime(2024, 3, 1, 11, 0))
        )
        assert outcome.alert is not None
        assert outcome.alert.timestamp == NOW - timedelta(hours=1)

        escalated = await manager.check_escalations(now=NOW)

        assert [a.id for a in escalated] == [outcome.alert.id]
