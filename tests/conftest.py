"""
Shared pytest fixtures for the Membership Lifecycle Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - services: the lifecycle service container
    - clock: frozen, advanceable "now" for every lifecycle service
    - make_member / make_occurrence: ORM factories
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.enums import MemberRole
from app.models.meeting import RecurringMeetingOccurrence
from app.models.member import Member

# Every module that reads the current time through app.utils.helpers.utcnow
_CLOCK_MODULES = (
    "app.services.promotion_eligibility",
    "app.services.participation_events",
    "app.services.maintenance_decision",
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def services(app):
    return app.extensions["lifecycle"]


# ── Time ─────────────────────────────────────────────────────────────────


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, moment: datetime) -> datetime:
        self.now = moment
        return self.now


@pytest.fixture()
def clock(monkeypatch):
    """Freeze service time at NOW; tests move it with ``clock.advance(hours=1)``."""
    frozen = FrozenClock(NOW)
    for module in _CLOCK_MODULES:
        monkeypatch.setattr(f"{module}.utcnow", frozen)
    return frozen


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_member():
    counter = {"n": 0}

    def _make(role=MemberRole.REGULAR, *, member_number=None, enrolled_at=None, name=None, **extra):
        counter["n"] += 1
        member = Member(
            name=name or f"Member {counter['n']}",
            email=f"member{counter['n']}@example.org",
            role=role,
            member_number=member_number,
            **extra,
        )
        if enrolled_at is not None:
            member.enrolled_at = enrolled_at
        _db.session.add(member)
        _db.session.commit()
        return member

    return _make


@pytest.fixture()
def make_occurrence():
    """Meeting one day after NOW; deadlines relative to the meeting date by default."""

    def _make(
        *,
        date=None,
        attendance_code="SPRING-26",
        recording_url="https://media.example.org/meetings/1",
        survey_url="https://forms.example.org/meetings/1",
        application_deadline=None,
        attendance_deadline=None,
        no_deadlines=False,
        title="Monthly FP meeting",
    ):
        date = date or NOW + timedelta(days=1)
        if not no_deadlines:
            application_deadline = application_deadline or date - timedelta(hours=12)
            attendance_deadline = attendance_deadline or date + timedelta(days=7)
        occurrence = RecurringMeetingOccurrence(
            title=title,
            date=date,
            attendance_code=attendance_code,
            recording_url=recording_url,
            survey_url=survey_url,
            application_deadline=application_deadline,
            attendance_deadline=attendance_deadline,
        )
        _db.session.add(occurrence)
        _db.session.commit()
        return occurrence

    return _make
