from __future__ import annotations

from datetime import date

import pytest

from changes import DELETE, INSERT, ChangeFeed
from repositories import (
    AssessmentRepository,
    CoachMessageRepository,
    CompletionRepository,
    GoalRepository,
    HabitRepository,
    PostRepository,
    SurveyRepository,
    UserRepository,
)

OLD_ME = {
    "limiting_beliefs": "I am not disciplined",
    "bad_habits": "doomscrolling",
    "time_wasters": "tv",
    "energy_drainers": "late nights",
    "growth_blockers": "fear",
}


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def owners(database):
    users = UserRepository()
    return (
        users.create("ada@example.com", "Ada", "Lovelace", "hash"),
        users.create("alan@example.com", "Alan", "Turing", "hash"),
    )


def test_user_lookup(owners) -> None:
    users = UserRepository()
    ada, _ = owners

    assert users.get(ada)["first_name"] == "Ada"
    assert users.find_by_email("alan@example.com")["last_name"] == "Turing"
    assert users.find_by_email("nobody@example.com") is None


def test_habits_are_scoped_to_owner(owners) -> None:
    habits = HabitRepository()
    ada, alan = owners
    habit_id = habits.add(ada, "Read", "Learning", "20 pages")

    assert [row["name"] for row in habits.list(ada)] == ["Read"]
    assert habits.list(alan) == []
    assert habits.get(alan, habit_id) is None
    assert habits.update(alan, habit_id, "Stolen", "Health", "x") is False
    assert habits.delete(alan, habit_id) is False
    assert habits.get(ada, habit_id)["name"] == "Read"


def test_toggle_inserts_then_removes_completion(owners) -> None:
    habits = HabitRepository()
    completions = CompletionRepository()
    ada, _ = owners
    habit_id = habits.add(ada, "Read", "Learning", "20 pages")
    day = date(2026, 10, 19)

    assert completions.toggle(ada, habit_id, day) is True
    assert completions.completed_at(ada, habit_id) == ["2026-10-19T00:00:00Z"]
    assert completions.toggle(ada, habit_id, day) is False
    assert completions.completed_at(ada, habit_id) == []


def test_completed_at_filters_by_range_and_habit(owners) -> None:
    habits = HabitRepository()
    completions = CompletionRepository()
    ada, alan = owners
    read = habits.add(ada, "Read", "Learning", "20 pages")
    run = habits.add(ada, "Run", "Health", "5k")
    completions.add(ada, read, "2026-10-01T00:00:00Z")
    completions.add(ada, read, "2026-10-19T21:15:00Z")
    completions.add(ada, run, "2026-10-10T00:00:00Z")
    completions.add(alan, read, "2026-10-10T00:00:00Z")

    assert completions.completed_at(ada, read, since=date(2026, 10, 2)) == ["2026-10-19T21:15:00Z"]
    assert completions.completed_at(ada, read, until=date(2026, 10, 18)) == ["2026-10-01T00:00:00Z"]
    assert len(completions.completed_at(ada)) == 3
    assert completions.completed_at(alan) == ["2026-10-10T00:00:00Z"]


def test_deleting_habit_removes_its_completions(owners) -> None:
    habits = HabitRepository()
    completions = CompletionRepository()
    ada, _ = owners
    habit_id = habits.add(ada, "Read", "Learning", "20 pages")
    completions.add(ada, habit_id, "2026-10-19T00:00:00Z")

    assert habits.delete(ada, habit_id) is True
    assert completions.completed_at(ada, habit_id) == []


def test_completion_writes_are_published(owners, feed) -> None:
    completions = CompletionRepository(feed)
    ada, _ = owners
    events = []
    feed.subscribe("habit_logs", lambda event, row: events.append((event, row["habit_id"])), user_id=ada)

    completions.toggle(ada, 5, date(2026, 10, 19))
    completions.toggle(ada, 5, date(2026, 10, 19))

    assert events == [(INSERT, 5), (DELETE, 5)]


def test_survey_save_keeps_unspecified_fields(owners) -> None:
    surveys = SurveyRepository()
    ada, _ = owners

    assert surveys.get(ada) is None
    surveys.save(ada, age_category="26-35")
    surveys.save(ada, sex="Female")

    row = surveys.get(ada)
    assert row["sex"] == "Female"
    assert row["age_category"] == "26-35"


def test_complete_assessments_require_every_answer(owners) -> None:
    assessments = AssessmentRepository()
    ada, _ = owners
    assessments.add(ada, "old_me", OLD_ME)
    assessments.add(ada, "old_me", dict(OLD_ME, bad_habits=""))

    complete = assessments.complete(ada)

    assert len(complete["old_me"]) == 1
    assert complete["new_me"] == []
    assert len(assessments.list(ada)) == 2


def test_goals_crud(owners) -> None:
    goals = GoalRepository()
    ada, alan = owners
    first = goals.add(ada, "Run a marathon", "health", "2026-12-01")
    second = goals.add(ada, "Learn Spanish", "travel")

    assert [row["id"] for row in goals.list(ada)] == [second, first]
    assert goals.update(ada, first, "Run a half", "health", "2026-11-01", "/uploads/a.png") is True
    assert goals.get(ada, first)["image_url"] == "/uploads/a.png"
    assert goals.delete(alan, first) is False
    assert goals.delete(ada, first) is True
    assert goals.get(ada, first) is None


def test_posts_crud(owners) -> None:
    posts = PostRepository()
    ada, alan = owners
    post_id = posts.add(ada, "Day 1", "https://example.com/a.jpg", "Started")

    assert posts.get(alan, post_id) is None
    assert posts.update(ada, post_id, "Day one", "https://example.com/b.jpg", "Started!") is True
    assert posts.list(ada)[0]["title"] == "Day one"
    assert posts.delete(ada, post_id) is True
    assert posts.list(ada) == []


def test_coach_message_is_stored_per_day(owners) -> None:
    messages = CoachMessageRepository()
    ada, alan = owners
    day = date(2026, 10, 19)

    messages.save(ada, day, "Keep going")
    messages.save(ada, day, "Keep going strong")

    assert messages.get(ada, day) == "Keep going strong"
    assert messages.get(ada, date(2026, 10, 20)) is None
    assert messages.get(alan, day) is None
