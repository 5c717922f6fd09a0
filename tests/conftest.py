import os
import tempfile
from datetime import datetime, timezone

import pytest
from flask import Blueprint, jsonify

os.environ.setdefault("APP_LOG", os.path.join(tempfile.gettempdir(), "exam_session_test.log"))
os.environ.setdefault("ENVIRONMENT", "LOCAL")

import persistence  # noqa: E402
from config.session_config import ADMIN_2FA_COOKIE  # noqa: E402
from session_timeout.events import PageEvents  # noqa: E402
from session_timeout.navigation import Navigator  # noqa: E402
from session_timeout.store import MemoryStorage, SessionStore  # noqa: E402

T0 = 1_700_000_000_000  # 2023-11-14T22:13:20Z


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


class FakeJob:
    def __init__(self, scheduler, func, seconds, job_id):
        self.scheduler = scheduler
        self.func = func
        self.seconds = seconds
        self.id = job_id
        self.next_run = scheduler.elapsed + seconds

    def remove(self):
        if self in self.scheduler.jobs:
            self.scheduler.jobs.remove(self)


class FakeScheduler:
    """Virtual-time stand-in for IntervalScheduler."""

    def __init__(self, clock=None):
        self.clock = clock
        self.jobs = []
        self.elapsed = 0
        self.running = False
        self.start_calls = 0

    def start(self):
        self.running = True
        self.start_calls += 1

    def shutdown(self):
        self.running = False
        self.jobs.clear()

    def add_interval(self, func, seconds, job_id):
        job = FakeJob(self, func, seconds, job_id)
        self.jobs.append(job)
        return job

    def job_ids(self):
        return [job.id for job in self.jobs]

    def advance(self, seconds):
        """Move time forward one second at a time, firing due jobs."""
        for _ in range(int(seconds)):
            self.elapsed += 1
            if self.clock is not None:
                self.clock.advance(1000)
            for job in list(self.jobs):
                if job in self.jobs and self.elapsed >= job.next_run:
                    job.next_run += job.seconds
                    job.func()


class FakeAuth:
    def __init__(self, sign_out_error=None, sign_out_exc=None, active_attempt=None):
        self.sign_out_error = sign_out_error
        self.sign_out_exc = sign_out_exc
        self.active_attempt = active_attempt
        self.sign_out_calls = 0
        self.attempt_calls = 0
        self.on_sign_out = None

    def sign_out(self):
        self.sign_out_calls += 1
        if self.on_sign_out is not None:
            self.on_sign_out()
        if self.sign_out_exc is not None:
            raise self.sign_out_exc
        return self.sign_out_error

    def get_active_attempt(self):
        self.attempt_calls += 1
        if isinstance(self.active_attempt, Exception):
            raise self.active_attempt
        return self.active_attempt


class CountingStorage(MemoryStorage):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.writes = 0

    def set_items(self, items):
        self.writes += 1
        super().set_items(items)


def iso(ms):
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def storage():
    return CountingStorage()


@pytest.fixture
def store(storage, clock):
    return SessionStore(storage, clock=clock)


@pytest.fixture
def events():
    return PageEvents()


@pytest.fixture
def auth():
    return FakeAuth()


@pytest.fixture
def navigator():
    return Navigator("/student")


# ----------------------------
# Flask side
# ----------------------------
class FakeDB:
    """In-memory tables behind the persistence helpers."""

    def __init__(self):
        self.tables = {}
        self.active_attempt = None
        self.attempt_lookups = 0
        self._seq = 0

    def add(self, table, **row):
        self._seq += 1
        row.setdefault("id", self._seq)
        row.setdefault("created_at", self._seq)
        self.tables.setdefault(table, []).append(row)
        return row

    def _match(self, row, filters):
        return all(row.get(k) == v for k, v in (filters or {}).items())

    def select(self, table, columns="*", filters=None, order_by=None, descending=False, limit=None):
        rows = [r for r in self.tables.get(table, []) if self._match(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r.get(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            rows = [{c: r.get(c) for c in columns} for r in rows]
        return [dict(r) for r in rows]

    def select_one(self, table, columns="*", filters=None, order_by=None, descending=False):
        rows = self.select(table, columns, filters, order_by, descending, limit=1)
        return rows[0] if rows else None

    def insert(self, table, record):
        return dict(self.add(table, **record))

    def update(self, table, patch, filters):
        count = 0
        for row in self.tables.get(table, []):
            if self._match(row, filters):
                row.update(patch)
                count += 1
        return count

    def fetch_active_attempt(self, student_id):
        self.attempt_lookups += 1
        if isinstance(self.active_attempt, Exception):
            raise self.active_attempt
        return self.active_attempt


@pytest.fixture
def db(monkeypatch):
    fake = FakeDB()
    for name in ("select", "select_one", "insert", "update", "fetch_active_attempt"):
        monkeypatch.setattr(persistence, name, getattr(fake, name))
    return fake


pages_bp = Blueprint("pages_bp", __name__)


@pages_bp.route("/student")
@pages_bp.route("/admin")
@pages_bp.route("/admin/verify-otp")
@pages_bp.route("/exam/<attempt_id>")
@pages_bp.route("/exam/prepare/<exam_id>")
@pages_bp.route("/api/admin/stats")
@pages_bp.route("/api/student/ping")
def page(**kwargs):
    return jsonify({"status": "ok"}), 200


@pytest.fixture
def app(db):
    from app import create_app

    flask_app = create_app({"TESTING": True, "SECRET_KEY": "test-secret"})
    flask_app.register_blueprint(pages_bp)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def login_as(client, role, user_id=1, email="user@example.com"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["role"] = role
        sess["email"] = email


def verify_2fa(client, app, user_id=1):
    from admin_2fa import issue_2fa_token

    client.set_cookie(ADMIN_2FA_COOKIE, issue_2fa_token(app.secret_key, user_id))
