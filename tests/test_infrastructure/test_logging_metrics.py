"""
Test infrastructure components: logging, metrics and retry.

These tests verify the production hardening infrastructure works correctly.
"""

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from celebration_engine.kernel.errors import StreamVersionConflict
from celebration_engine.kernel.event_store import SQLiteEventStore
from celebration_engine.kernel.events import Event
from celebration_engine.kernel.logging import (
    LogOperation,
    configure_logging,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    is_production,
    redact_context,
    set_correlation_id,
)
from celebration_engine.kernel.metrics import (
    celebrations_by_status,
    commands_processed_total,
    events_appended_total,
    events_loaded_total,
    limit_rejections_total,
    stream_version_conflicts_total,
    tips_truncated_total,
    track_command_duration,
    update_status_gauges,
)
from celebration_engine.kernel.retry import retry_on_sqlite_lock, retry_on_version_conflict


def make_event(event_id: str = "evt-1", version: int = 1, command_id: str = "cmd-1") -> Event:
    return Event(
        event_id=event_id,
        stream_id="donor-1",
        stream_type="donor",
        version=version,
        command_id=command_id,
        event_type="DonorRegistered",
        occurred_at=datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc),
        actor_id="actor-1",
        payload={"user_id": "donor-1"},
    )


class TestLoggingFramework:
    """Test structured logging framework."""

    def test_configure_logging_console(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        assert get_logger(__name__) is not None

    def test_configure_logging_json(self) -> None:
        configure_logging(json_output=True, log_level="DEBUG")
        assert get_logger(__name__) is not None

    def test_correlation_id(self) -> None:
        """Test correlation ID context management."""
        assert len(get_correlation_id()) > 0

        set_correlation_id("checkout-123")
        assert get_correlation_id() == "checkout-123"
        assert generate_correlation_id() != generate_correlation_id()

    def test_log_operation_context_manager(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with LogOperation(logger, "create_celebration", donor_id="ada", email="ada@example.com"):
            pass

    def test_log_operation_with_exception(self) -> None:
        """Errors inside the block are logged and re-raised"""
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with pytest.raises(ValueError):
            with LogOperation(logger, "failing_operation"):
                raise ValueError("Test error")

    def test_redact_context_hides_donor_pii(self) -> None:
        redacted = redact_context(
            {
                "email": "ada@example.com",
                "first_name": "Ada",
                "address": "42 Main St",
                "ip_address": "203.0.113.7",
                "donor_id": "ada",
                "donation_amount": "25",
            }
        )

        assert redacted["email"] == "***REDACTED***"
        assert redacted["first_name"] == "***REDACTED***"
        assert redacted["address"] == "***REDACTED***"
        assert redacted["ip_address"] == "***REDACTED***"
        assert redacted["donor_id"] == "ada"
        assert redacted["donation_amount"] == "25"

    def test_is_production(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "Production")
        assert is_production() is True
        monkeypatch.delenv("ENVIRONMENT")
        assert is_production() is False


class TestMetrics:
    """Test Prometheus metrics collection."""

    def test_events_appended_metric(self, event_store: SQLiteEventStore) -> None:
        counter = events_appended_total.labels(stream_type="donor", event_type="DonorRegistered")
        before = counter._value.get()

        event_store.append("donor-1", 0, [make_event()])

        assert counter._value.get() == before + 1

    def test_events_loaded_metric(self, event_store: SQLiteEventStore) -> None:
        event_store.append("donor-1", 0, [make_event()])
        counter = events_loaded_total.labels(stream_type="donor")
        before = counter._value.get()

        event_store.load_stream("donor-1")

        assert counter._value.get() == before + 1

    def test_version_conflict_metric(self, event_store: SQLiteEventStore) -> None:
        event_store.append("donor-1", 0, [make_event()])
        counter = stream_version_conflicts_total.labels(stream_type="donor")
        before = counter._value.get()

        with pytest.raises(StreamVersionConflict):
            event_store.append("donor-1", 0, [make_event("evt-2", 1, "cmd-2")])

        assert counter._value.get() == before + 1

    def test_limit_rejection_metric(self, validator, test_time) -> None:
        counter = limit_rejections_total.labels(
            compliance_tier="unverified", limit_type="per-donation"
        )
        before = counter._value.get()

        result = validator.validate("unverified", Decimal("75"), [], "pol-1")

        assert result.is_compliant is False
        assert counter._value.get() == before + 1

    def test_tip_truncation_metric(self, pac_tracker, make_pledge, test_time) -> None:
        before = tips_truncated_total._value.get()
        history = [make_pledge("10", test_time.now(), tip="4995")]

        decision = pac_tracker.apply_tip(history, Decimal("10"))

        assert decision.truncated is True
        assert tips_truncated_total._value.get() == before + 1

    def test_track_command_duration_counts_outcomes(self) -> None:
        @track_command_duration("TestCommand")
        def command(fail: bool) -> str:
            if fail:
                raise RuntimeError("boom")
            return "ok"

        success = commands_processed_total.labels(command_type="TestCommand", status="success")
        failure = commands_processed_total.labels(command_type="TestCommand", status="failure")
        ok_before, failed_before = success._value.get(), failure._value.get()

        assert command(False) == "ok"
        with pytest.raises(RuntimeError):
            command(True)

        assert success._value.get() == ok_before + 1
        assert failure._value.get() == failed_before + 1

    def test_status_gauges(self) -> None:
        update_status_gauges({"active": 3, "paused": 1})

        assert celebrations_by_status.labels(status="active")._value.get() == 3
        assert celebrations_by_status.labels(status="paused")._value.get() == 1


class TestRetryLogic:
    """Test retry logic with exponential backoff."""

    def test_retry_on_sqlite_lock(self) -> None:
        call_count = 0

        @retry_on_sqlite_lock(max_attempts=3, min_wait_ms=1, max_wait_ms=2)
        def flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise sqlite3.OperationalError("database is locked")
            return "success"

        assert flaky() == "success"
        assert call_count == 2

    def test_retry_on_version_conflict_revalidates(self) -> None:
        attempts = []

        @retry_on_version_conflict(min_wait_ms=1, max_wait_ms=2)
        def commit() -> int:
            attempts.append(len(attempts))
            if len(attempts) < 3:
                raise StreamVersionConflict("donor-1", len(attempts), len(attempts) + 1)
            return len(attempts)

        assert commit() == 3

    def test_retry_on_version_conflict_gives_up(self) -> None:
        @retry_on_version_conflict(max_attempts=2, min_wait_ms=1, max_wait_ms=2)
        def always_conflicts() -> None:
            raise StreamVersionConflict("donor-1", 1, 2)

        with pytest.raises(StreamVersionConflict):
            always_conflicts()

    def test_other_errors_are_not_retried(self) -> None:
        call_count = 0

        @retry_on_version_conflict(min_wait_ms=1, max_wait_ms=2)
        def broken() -> None:
            nonlocal call_count
            call_count += 1
            raise ValueError("not a conflict")

        with pytest.raises(ValueError):
            broken()
        assert call_count == 1
