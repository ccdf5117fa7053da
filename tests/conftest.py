"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator

import pytest

from celebration_engine.celebration.handlers import CelebrationCommandHandlers
from celebration_engine.celebration.projections import (
    CelebrationRegistry,
    DonorRegistry,
    SystemLog,
)
from celebration_engine.compliance.cycle import ElectionCycleCalculator
from celebration_engine.compliance.limits import LimitEngine
from celebration_engine.compliance.models import PledgeRecord
from celebration_engine.compliance.pac import PacLimitTracker
from celebration_engine.compliance.tiers import ComplianceTierResolver
from celebration_engine.compliance.validation import DonationComplianceValidator
from celebration_engine.congress.elections import StaticElectionDateSource
from celebration_engine.engine import CelebrationEngine
from celebration_engine.kernel.compliance_policy import CompliancePolicy
from celebration_engine.kernel.event_store import SQLiteEventStore
from celebration_engine.kernel.time import TestTimeProvider


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves side files behind)
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2026-03-02 15:00:00 UTC (10:00 in Washington). A midterm
    year: the Eastern calendar year, the 119th Congress' second session
    and the 2026 election cycle are all in play.
    """
    return TestTimeProvider(datetime(2026, 3, 2, 15, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def compliance_policy() -> CompliancePolicy:
    """
    Provide default compliance policy for tests

    Fun fact: $3,500 is the per-candidate, per-election limit after the
    2025 inflation adjustment - it was $1,000 when the limit was set in 1974.
    """
    return CompliancePolicy()


@pytest.fixture
def election_dates() -> StaticElectionDateSource:
    """Authoritative 2026 dates for a couple of states"""
    return StaticElectionDateSource(
        {
            "CA": {"primary": "2026-06-02", "general": "2026-11-03"},
            "GA": {"primary": "2026-05-19", "general": "2026-11-03", "runoff": "2026-06-16"},
        }
    )


@pytest.fixture
def resolver(compliance_policy: CompliancePolicy) -> ComplianceTierResolver:
    return ComplianceTierResolver(compliance_policy)


@pytest.fixture
def cycle_calculator(election_dates: StaticElectionDateSource) -> ElectionCycleCalculator:
    return ElectionCycleCalculator(election_dates)


@pytest.fixture
def limit_engine(
    compliance_policy: CompliancePolicy,
    resolver: ComplianceTierResolver,
    cycle_calculator: ElectionCycleCalculator,
    test_time: TestTimeProvider,
) -> LimitEngine:
    return LimitEngine(compliance_policy, resolver, cycle_calculator, test_time)


@pytest.fixture
def pac_tracker(compliance_policy: CompliancePolicy, test_time: TestTimeProvider) -> PacLimitTracker:
    return PacLimitTracker(compliance_policy, test_time)


@pytest.fixture
def validator(
    compliance_policy: CompliancePolicy,
    resolver: ComplianceTierResolver,
    limit_engine: LimitEngine,
    cycle_calculator: ElectionCycleCalculator,
    test_time: TestTimeProvider,
) -> DonationComplianceValidator:
    return DonationComplianceValidator(
        compliance_policy, resolver, limit_engine, cycle_calculator, test_time
    )


@pytest.fixture
def celebration_handlers(
    test_time: TestTimeProvider, compliance_policy: CompliancePolicy
) -> CelebrationCommandHandlers:
    """
    Provide celebration command handlers for testing

    Handlers are stateless - they take projections as parameters.
    """
    return CelebrationCommandHandlers(test_time, compliance_policy)


@pytest.fixture
def donor_registry() -> DonorRegistry:
    return DonorRegistry()


@pytest.fixture
def celebration_registry() -> CelebrationRegistry:
    return CelebrationRegistry()


@pytest.fixture
def system_log() -> SystemLog:
    return SystemLog()


class RecordingSink:
    """Notification sink that remembers what it was asked to send"""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.fail_for = fail_for or set()

    def notify(self, user_id: str, topic: str, payload: dict[str, Any]) -> None:
        if user_id in self.fail_for:
            raise ConnectionError("mail relay unavailable")
        self.sent.append((user_id, topic, payload))

    def topics_for(self, user_id: str) -> list[str]:
        return [topic for uid, topic, _ in self.sent if uid == user_id]


@pytest.fixture
def notification_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recording_sink_factory():
    """Build sinks that fail for chosen donors"""
    return RecordingSink


@pytest.fixture
def engine(
    temp_db: Path,
    test_time: TestTimeProvider,
    election_dates: StaticElectionDateSource,
    notification_sink: RecordingSink,
) -> CelebrationEngine:
    """A fully wired engine on a fresh database with controllable time"""
    return CelebrationEngine(
        temp_db,
        time_provider=test_time,
        election_dates=election_dates,
        notification_sink=notification_sink,
    )


@pytest.fixture
def make_pledge():
    """
    Factory for pledge history records

    Example:
        make_pledge("25", created_at=..., recipient_id="pol-1", tip="2")
    """

    def _make(
        amount: str,
        created_at: datetime,
        recipient_id: str = "pol-1",
        tip: str = "0",
        **flags: bool,
    ) -> PledgeRecord:
        return PledgeRecord(
            donation_amount=Decimal(amount),
            tip_amount=Decimal(tip),
            recipient_id=recipient_id,
            created_at=created_at,
            **flags,
        )

    return _make
