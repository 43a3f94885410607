from __future__ import annotations

from datetime import date

import pytest
import requests

import coach
from coach import CoachError, build_prompt, daily_message, generate_message

MONDAY = date(2026, 10, 19)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self.text = text
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeUsers:
    def __init__(self, first_name="Ada"):
        self.first_name = first_name

    def get(self, owner_id):
        return {"id": owner_id, "first_name": self.first_name}


class FakeGoals:
    def list(self, owner_id):
        return [{"name": "run a marathon", "importance": "I want more energy"}]


class FakeAssessments:
    def complete(self, owner_id):
        return {"old_me": [], "new_me": []}


class FakeMessages:
    def __init__(self):
        self.stored = {}

    def get(self, owner_id, day):
        return self.stored.get((owner_id, day))

    def save(self, owner_id, day, body):
        self.stored[(owner_id, day)] = body


def test_prompt_mentions_name_weekday_and_goals() -> None:
    assessment = {
        "assessment_type": "old_me",
        "limiting_beliefs": "I am lazy",
        "bad_habits": "snacking",
        "time_wasters": "tv",
        "energy_drainers": "stress",
        "growth_blockers": "fear",
    }

    prompt = build_prompt("Ada", FakeGoals().list(1), [assessment], MONDAY)

    assert "tweet for Ada on this Monday" in prompt
    assert "You want to achieve run a marathon because I want more energy." in prompt
    assert "limiting beliefs of I am lazy" in prompt
    assert prompt.endswith("The tweet should not include emojis or hashtags.")


def test_prompt_without_goals_or_assessments() -> None:
    prompt = build_prompt("Ada", [], [], MONDAY)

    assert "no specific goals yet" in prompt
    assert "no assessments yet" in prompt


def test_generate_message_requires_key() -> None:
    with pytest.raises(CoachError, match="API key missing"):
        generate_message("hello", "", "gemini-pro")


def test_generate_message_posts_prompt(monkeypatch) -> None:
    calls = []

    def fake_post(url, params=None, json=None, timeout=None):
        calls.append((url, params, json, timeout))
        return FakeResponse(payload=reply("Keep showing up, Ada."))

    monkeypatch.setattr(coach.requests, "post", fake_post)

    assert generate_message("hello", "k-123", "gemini-pro", timeout=5) == "Keep showing up, Ada."
    url, params, payload, timeout = calls[0]
    assert url.endswith("/models/gemini-pro:generateContent")
    assert params == {"key": "k-123"}
    assert payload == {"contents": [{"parts": [{"text": "hello"}]}]}
    assert timeout == 5


@pytest.mark.parametrize(
    "response, message",
    [
        (FakeResponse(500, text="upstream down"), "API request failed: 500 upstream down"),
        (FakeResponse(payload={"candidates": []}), "Invalid response format"),
        (FakeResponse(payload=None), "Invalid response format"),
    ],
)
def test_generate_message_rejects_bad_responses(monkeypatch, response, message) -> None:
    monkeypatch.setattr(coach.requests, "post", lambda *args, **kwargs: response)

    with pytest.raises(CoachError, match=message):
        generate_message("hello", "k-123", "gemini-pro")


def test_generate_message_wraps_network_errors(monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise requests.ConnectionError("no route")

    monkeypatch.setattr(coach.requests, "post", fail)

    with pytest.raises(CoachError, match="request failed"):
        generate_message("hello", "k-123", "gemini-pro")


def test_daily_message_is_generated_once_per_day(monkeypatch) -> None:
    calls = []

    def fake_post(*args, **kwargs):
        calls.append(kwargs)
        return FakeResponse(payload=reply(f"Message {len(calls)}"))

    monkeypatch.setattr(coach.requests, "post", fake_post)
    messages = FakeMessages()
    args = (FakeUsers(), FakeGoals(), FakeAssessments(), messages, "k-123", "gemini-pro")

    first = daily_message(1, MONDAY, *args)
    second = daily_message(1, MONDAY, *args)
    tomorrow = daily_message(1, date(2026, 10, 20), *args)

    assert first == second == "Message 1"
    assert tomorrow == "Message 2"
    assert len(calls) == 2


def test_daily_message_needs_first_name() -> None:
    with pytest.raises(CoachError, match="User data incomplete"):
        daily_message(
            1, MONDAY, FakeUsers(""), FakeGoals(), FakeAssessments(), FakeMessages(), "k", "gemini-pro"
        )
