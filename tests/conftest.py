from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

import app as app_module
import config
import db
import streaks


@pytest.fixture
def database(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "habits.db")
    monkeypatch.setattr(config, "UPLOAD_DIR", tmp_path / "uploads")
    monkeypatch.setattr(db, "_db_ready", False)
    db.ensure_db()
    app_module.stats_service.clear()
    yield tmp_path
    app_module.stats_service.clear()


@pytest.fixture
def client(database, monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    app_module.app.config.update(TESTING=True)
    with app_module.app.test_client() as client:
        yield client


def sign_up(client, email="ada@example.com", first_name="Ada", last_name="Lovelace"):
    return client.post(
        "/signup",
        data={
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "password": "secret123",
        },
    )


@pytest.fixture
def signed_in(client):
    sign_up(client)
    return client


@pytest.fixture
def user_id(signed_in):
    return app_module.users.find_by_email("ada@example.com")["id"]


@pytest.fixture
def today() -> date:
    return streaks.to_utc_day(streaks.utc_now())


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeHabits:
    def __init__(self, rows=None):
        self.rows = list(rows or [])

    def list(self, owner_id):
        return [row for row in self.rows if row["user_id"] == owner_id]


class FakeCompletions:
    """In-memory stand-in for the completion repository."""

    def __init__(self):
        self.rows: list[dict] = []
        self.calls = 0

    def add(self, owner_id, habit_id, completed_at):
        self.rows.append({"user_id": owner_id, "habit_id": habit_id, "completed_at": completed_at})

    def completed_at(self, owner_id, habit_id=None, since=None, until=None):
        self.calls += 1
        result = []
        for row in self.rows:
            if row["user_id"] != owner_id:
                continue
            if habit_id is not None and row["habit_id"] != habit_id:
                continue
            day = streaks.to_utc_day(row["completed_at"])
            if since is not None and day < since:
                continue
            if until is not None and day > until:
                continue
            result.append(row["completed_at"])
        return sorted(result)


@pytest.fixture
def fake_habits():
    return FakeHabits(
        [
            {"id": 1, "user_id": 7, "name": "Read", "category": "Learning"},
            {"id": 2, "user_id": 7, "name": "Run", "category": "Health"},
            {"id": 3, "user_id": 8, "name": "Save", "category": "Finance"},
        ]
    )


@pytest.fixture
def fake_completions():
    return FakeCompletions()
