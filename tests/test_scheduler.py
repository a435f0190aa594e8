"""
Tests for background scheduler tasks.

Tests the reconciliation job that drains queued writes.
"""

from unittest.mock import MagicMock, patch

import pytest

from exceptions import DatabaseError
from services import scheduler as scheduler_module
from services.scheduler import init_scheduler, reconcile_pending_writes, shutdown_scheduler


def _tracker(topic, applied=0, remaining=0):
    tracker = MagicMock()
    tracker.topic = topic
    tracker.reconcile.return_value = {"applied": applied, "dropped": 0, "remaining": remaining}
    return tracker


class TestReconcilePendingWrites:
    """Tests for reconcile_pending_writes() background job."""

    @patch("services.scheduler.SessionLocal")
    def test_sums_applied_writes(self, mock_session):
        trackers = [_tracker("fuel-topups", applied=2), _tracker("mileage", applied=1)]

        assert reconcile_pending_writes(trackers) == 3
        mock_session.remove.assert_called_once()

    @patch("services.scheduler.SessionLocal")
    def test_failing_tracker_does_not_stop_others(self, mock_session, caplog):
        broken = _tracker("fuel-topups")
        broken.reconcile.side_effect = DatabaseError("locked")
        healthy = _tracker("mileage", applied=4)

        assert reconcile_pending_writes([broken, healthy]) == 4
        assert "Reconciliation failed for fuel-topups" in caplog.text

    @patch("services.scheduler.SessionLocal")
    def test_session_released_on_unexpected_error(self, mock_session):
        tracker = _tracker("mileage")
        tracker.reconcile.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            reconcile_pending_writes([tracker])
        mock_session.remove.assert_called_once()

    @patch("services.scheduler.SessionLocal")
    def test_logs_remaining(self, mock_session, caplog):
        caplog.set_level("INFO")
        reconcile_pending_writes([_tracker("mileage", remaining=3)])
        assert "3 mileage writes still queued" in caplog.text

    def test_against_real_tracker(self, app, client, sample_topup_payload, monkeypatch):
        """Test queued topups are persisted by the job once the database is back."""
        from app import mileage_tracker, topup_tracker
        from services.repository import TopupRepository

        original = TopupRepository.create

        def fail(self, fields):
            raise DatabaseError("could not connect", retryable=True)

        monkeypatch.setattr(TopupRepository, "create", fail)
        assert client.post("/api/fuel-topups", json=sample_topup_payload).status_code == 202
        monkeypatch.setattr(TopupRepository, "create", original)

        assert reconcile_pending_writes([topup_tracker, mileage_tracker]) == 1
        assert len(topup_tracker.write_queue) == 0


class TestSchedulerLifecycle:

    @patch("services.scheduler.BackgroundScheduler")
    def test_init_registers_interval_job(self, mock_scheduler_cls):
        trackers = [_tracker("fuel-topups")]

        result = init_scheduler(trackers, interval_seconds=15)

        instance = mock_scheduler_cls.return_value
        assert result is instance
        instance.start.assert_called_once()
        args, kwargs = instance.add_job.call_args
        assert args == (reconcile_pending_writes, "interval")
        assert kwargs["seconds"] == 15
        assert kwargs["args"] == [trackers]
        assert kwargs["max_instances"] == 1

        shutdown_scheduler()
        instance.shutdown.assert_called_once()
        assert scheduler_module.scheduler is None

    def test_shutdown_without_scheduler(self):
        scheduler_module.scheduler = None
        shutdown_scheduler()
        assert scheduler_module.scheduler is None
