"""Tests for the ingestion gateway."""

import pytest
from sqlalchemy import func, select

from classwatch.config import settings
from classwatch.models.monitoring import MonitoringAlert, MonitoringEvent
from classwatch.schemas.monitoring import PerceptionEventIn
from classwatch.services import ingestion_service
from classwatch.services.ingestion_service import ingest_events, retry_failed_evaluations


async def _count(db, model):
    result = await db.execute(select(func.count(model.id)))
    return result.scalar()


class TestIngestEvents:
    """Tests for batch ingestion."""

    @pytest.mark.asyncio
    async def test_empty_batch(self, db):
        """Test an empty batch is accepted with zero counts."""
        result = await ingest_events(db, [])

        assert result["inserted"] == 0
        assert result["alerts_generated"] == 0
        assert result["rejected"] == []
        assert await _count(db, MonitoringEvent) == 0

    @pytest.mark.asyncio
    async def test_events_stored_with_details(self, db, now, make_event):
        """Test stored rows keep the typed details payload."""
        event = make_event(
            event_type="looking_away",
            details={"head_pose_yaw": 42.5, "unknown_key": "dropped"},
        )
        result = await ingest_events(db, [event], now=now)

        assert result["inserted"] == 1
        stored = (await db.execute(select(MonitoringEvent))).scalar_one()
        assert stored.event_type == "looking_away"
        assert stored.confidence == 90
        assert stored.details == {"kind": "looking_away", "head_pose_yaw": 42.5}

    @pytest.mark.asyncio
    async def test_invalid_events_rejected_individually(self, db, now, make_event):
        """Test bad events are reported while the rest of the batch is stored."""
        events = [
            make_event(),
            make_event(event_type="yawning"),
            make_event(participant_email="not-an-email"),
            make_event(duration_seconds=-5),
            make_event(confidence=101),
            make_event(event_type="speaking"),
        ]
        result = await ingest_events(db, events, now=now)

        assert result["inserted"] == 2
        assert [item["index"] for item in result["rejected"]] == [1, 2, 3, 4]
        assert "event_type" in result["rejected"][0]["reason"]
        assert await _count(db, MonitoringEvent) == 2

    @pytest.mark.asyncio
    async def test_oversized_batch_raises(self, db, make_event):
        """Test batches above the configured cap are refused outright."""
        events = [make_event()] * (settings.MAX_EVENTS_PER_BATCH + 1)
        with pytest.raises(ValueError):
            await ingest_events(db, events)
        assert await _count(db, MonitoringEvent) == 0

    @pytest.mark.asyncio
    async def test_accepts_validated_models(self, db, now, make_event):
        """Test already-validated payloads pass straight through."""
        payload = PerceptionEventIn.model_validate(make_event(event_type="hand_raised"))
        result = await ingest_events(db, [payload], now=now)
        assert result["inserted"] == 1

    @pytest.mark.asyncio
    async def test_evaluation_failure_keeps_event(self, db, now, make_event, monkeypatch):
        """Test a failing evaluation neither loses the event nor fails the batch."""

        async def broken_evaluate(*args, **kwargs):
            raise RuntimeError("database hiccup")

        monkeypatch.setattr(ingestion_service, "evaluate_event", broken_evaluate)
        events = [
            make_event(event_type="eyes_closed", duration_seconds=150),
            make_event(event_type="attentive"),
        ]
        result = await ingest_events(db, events, now=now)

        assert result["inserted"] == 2
        assert result["evaluation_failures"] == 2
        assert len(result["failed_event_ids"]) == 2
        assert await _count(db, MonitoringEvent) == 2
        assert await _count(db, MonitoringAlert) == 0


class TestRetryFailedEvaluations:
    """Tests for the deferred evaluation retry."""

    @pytest.mark.asyncio
    async def test_retry_creates_missed_alert(self, db, session_factory, make_event, monkeypatch):
        """Test a retried evaluation produces the alert the first pass missed."""

        async def broken_evaluate(*args, **kwargs):
            raise RuntimeError("database hiccup")

        with monkeypatch.context() as patch:
            patch.setattr(ingestion_service, "evaluate_event", broken_evaluate)
            result = await ingest_events(db, [make_event(event_type="eyes_closed", duration_seconds=150)])

        created = await retry_failed_evaluations(session_factory, result["failed_event_ids"])

        assert created == 1
        assert await _count(db, MonitoringAlert) == 1

    @pytest.mark.asyncio
    async def test_retry_skips_missing_events(self, session_factory):
        """Test unknown event ids are skipped."""
        assert await retry_failed_evaluations(session_factory, [9999]) == 0
