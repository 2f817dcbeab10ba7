"""Tests for the alert store and reconciler."""

from datetime import timedelta

import pytest

from classwatch.models.monitoring import (
    AlertAudience,
    AlertKind,
    AlertSeverity,
    AlertStatus,
    MonitoringAlert,
    TEACHER_ALERT_KINDS,
)
from classwatch.services.alert_service import (
    dismiss_alert,
    get_active_alerts,
    get_alert,
    get_alert_history,
    get_teacher_alerts,
    reconcile_active_alerts,
    resolve_alert,
)
from classwatch.services.evaluation_service import create_teacher_alert
from classwatch.services.ingestion_service import ingest_events


@pytest.fixture
def add_alert(db, now):
    """Insert an alert row directly."""

    async def _add(**overrides) -> MonitoringAlert:
        values = dict(
            room_id="room-1",
            alert_type=AlertKind.STUDENT_DISTRACTED.value,
            severity=AlertSeverity.WARNING.value,
            title="Student Distracted — Asha",
            message="Asha showing distracted behavior for 5 minutes",
            target_email="asha@school.edu",
            notify_coordinator=True,
            notify_academic_operator=True,
            notify_teacher=True,
            status=AlertStatus.ACTIVE.value,
            created_at=now,
        )
        values.update(overrides)
        alert = MonitoringAlert(**values)
        db.add(alert)
        await db.commit()
        return alert

    return _add


class TestAlertLifecycle:
    """Tests for dismiss and resolve transitions."""

    @pytest.mark.asyncio
    async def test_dismiss_active_alert(self, db, now, add_alert):
        """Test dismissal records the actor and time."""
        alert = await add_alert()

        assert await dismiss_alert(db, alert.id, "coord@school.edu", now=now) is True
        stored = await get_alert(db, alert.id)
        assert stored.status == AlertStatus.DISMISSED.value
        assert stored.dismissed_by == "coord@school.edu"
        assert stored.dismissed_at is not None

    @pytest.mark.asyncio
    async def test_dismiss_is_idempotent(self, db, now, add_alert):
        """Test a second dismissal is a no-op that reports failure."""
        alert = await add_alert()

        assert await dismiss_alert(db, alert.id, "coord@school.edu", now=now) is True
        assert await dismiss_alert(db, alert.id, "ops@school.edu", now=now) is False
        stored = await get_alert(db, alert.id)
        assert stored.dismissed_by == "coord@school.edu"

    @pytest.mark.asyncio
    async def test_dismiss_unknown_alert(self, db):
        """Test dismissing a missing alert returns False."""
        assert await dismiss_alert(db, 12345, "coord@school.edu") is False

    @pytest.mark.asyncio
    async def test_resolve_only_from_active(self, db, now, add_alert):
        """Test resolve works once and never reopens a dismissed alert."""
        resolved = await add_alert()
        dismissed = await add_alert(status=AlertStatus.DISMISSED.value)

        assert await resolve_alert(db, resolved.id, now=now) is True
        assert await resolve_alert(db, resolved.id, now=now) is False
        assert await resolve_alert(db, dismissed.id, now=now) is False
        assert (await get_alert(db, resolved.id)).status == AlertStatus.RESOLVED.value
        assert (await get_alert(db, dismissed.id)).status == AlertStatus.DISMISSED.value


class TestActiveAlerts:
    """Tests for role-filtered active alert queries."""

    @pytest.mark.asyncio
    async def test_role_filter(self, db, add_alert):
        """Test alerts are only visible to roles flagged for them."""
        await add_alert(notify_academic_operator=False)
        await add_alert(notify_coordinator=False)

        coordinator = await get_active_alerts(db, AlertAudience.COORDINATOR)
        operator = await get_active_alerts(db, AlertAudience.ACADEMIC_OPERATOR)

        assert len(coordinator) == 1
        assert coordinator[0].notify_coordinator is True
        assert len(operator) == 1
        assert operator[0].notify_academic_operator is True

    @pytest.mark.asyncio
    async def test_severity_then_newest_first(self, db, now, add_alert):
        """Test critical alerts lead, then newer alerts within a severity."""
        old_warning = await add_alert(created_at=now - timedelta(minutes=20))
        new_warning = await add_alert(created_at=now - timedelta(minutes=1))
        info = await add_alert(severity=AlertSeverity.INFO.value, created_at=now)
        critical = await add_alert(severity=AlertSeverity.CRITICAL.value, created_at=now - timedelta(hours=2))

        alerts = await get_active_alerts(db, "coordinator")
        assert [a.id for a in alerts] == [critical.id, new_warning.id, old_warning.id, info.id]

    @pytest.mark.asyncio
    async def test_filters_and_status(self, db, add_alert):
        """Test batch and room filters, and that closed alerts are excluded."""
        await add_alert(batch_id="batch-a", room_id="room-1")
        await add_alert(batch_id="batch-b", room_id="room-2")
        await add_alert(batch_id="batch-a", status=AlertStatus.RESOLVED.value)

        assert len(await get_active_alerts(db, "coordinator")) == 2
        assert len(await get_active_alerts(db, "coordinator", batch_id="batch-a")) == 1
        assert len(await get_active_alerts(db, "coordinator", room_id="room-2")) == 1

    @pytest.mark.asyncio
    async def test_limit_capped(self, db, add_alert):
        """Test the page size is bounded."""
        for _ in range(3):
            await add_alert()
        assert len(await get_active_alerts(db, "coordinator", limit=2)) == 2
        assert len(await get_active_alerts(db, "coordinator", limit=10_000)) == 3

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, db):
        """Test an unknown audience is refused."""
        with pytest.raises(ValueError):
            await get_active_alerts(db, "parent")


class TestAlertHistory:
    """Tests for the 24 hour alert history."""

    @pytest.mark.asyncio
    async def test_history_window_and_total(self, db, now, add_alert):
        """Test only the last 24 hours are returned, in every status."""
        await add_alert(created_at=now - timedelta(hours=25))
        recent = await add_alert(created_at=now - timedelta(hours=1), status=AlertStatus.DISMISSED.value)
        newest = await add_alert(created_at=now)

        alerts, total = await get_alert_history(db, now=now)

        assert total == 2
        assert [a.id for a in alerts] == [newest.id, recent.id]

    @pytest.mark.asyncio
    async def test_history_filters_and_paging(self, db, now, add_alert):
        """Test type filters and offset paging keep the full total."""
        for minutes in range(3):
            await add_alert(created_at=now - timedelta(minutes=minutes))
        await add_alert(alert_type=AlertKind.PHONE_DETECTED.value)

        alerts, total = await get_alert_history(
            db, alert_type=AlertKind.STUDENT_DISTRACTED.value, offset=1, limit=1, now=now
        )
        assert total == 3
        assert len(alerts) == 1


class TestTeacherVisibleAlerts:
    """Tests for the in-room teacher alert feed."""

    @pytest.mark.asyncio
    async def test_only_teacher_flagged_alerts(self, db, now, add_alert):
        """Test teacher alerts about the teacher stay out of the teacher feed."""
        student_alert = await add_alert()
        await create_teacher_alert(
            db,
            room_id="room-1",
            alert_type=AlertKind.TEACHER_CAMERA_OFF,
            severity=AlertSeverity.WARNING,
            teacher_email="rao@school.edu",
            message="Camera off",
            now=now,
        )

        alerts = await get_teacher_alerts(db, "room-1")
        assert [a.id for a in alerts] == [student_alert.id]


class TestReconciler:
    """Tests for resolving alerts whose condition has cleared."""

    @pytest.mark.asyncio
    async def test_resolves_cleared_alert(self, db, now, make_event):
        """Test an alert resolves once its window sum drops below threshold."""
        await ingest_events(db, [make_event(event_type="eyes_closed", duration_seconds=150)], now=now)

        assert await reconcile_active_alerts(db, now=now + timedelta(minutes=5)) == 0
        assert await reconcile_active_alerts(db, now=now + timedelta(minutes=11)) == 1

        alert = (await get_active_alerts(db, "coordinator"))
        assert alert == []
        alerts, _ = await get_alert_history(db, now=now + timedelta(minutes=11))
        assert alerts[0].status == AlertStatus.RESOLVED.value
        assert alerts[0].resolved_at is not None

    @pytest.mark.asyncio
    async def test_teacher_alerts_left_alone(self, db, now):
        """Test teacher alerts have no window condition and stay active."""
        await create_teacher_alert(
            db,
            room_id="room-1",
            alert_type=AlertKind.TEACHER_ABSENT,
            severity=AlertSeverity.CRITICAL,
            teacher_email="rao@school.edu",
            message="Teacher has not joined",
            now=now,
        )

        assert await reconcile_active_alerts(db, now=now + timedelta(hours=1)) == 0
        assert len(await get_active_alerts(db, "coordinator")) == 1

    @pytest.mark.asyncio
    async def test_every_teacher_kind_survives_reconcile(self, db, now):
        """Test no kind accepted from the teacher entry point is ever auto-resolved."""
        for kind in sorted(TEACHER_ALERT_KINDS):
            await create_teacher_alert(
                db,
                room_id="room-1",
                alert_type=kind,
                severity=AlertSeverity.WARNING,
                teacher_email="rao@school.edu",
                message=f"{kind} reported",
                now=now,
            )

        assert await reconcile_active_alerts(db, now=now + timedelta(minutes=1)) == 0
        assert len(await get_active_alerts(db, "coordinator")) == len(TEACHER_ALERT_KINDS)
