from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Mapping
from urllib.parse import urlparse

import streaks
from repositories import ASSESSMENT_FIELDS

HABIT_CATEGORIES = {
    "Health": "🏃",
    "Productivity": "⚡",
    "Finance": "💰",
    "Relationships": "❤️",
    "Learning": "📚",
    "Spiritual/Mental": "🧘",
}
AGE_CATEGORIES = ["18-25", "26-35", "36-45", "46+"]
SEX_OPTIONS = ["Male", "Female"]

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ASSESSMENT_LABELS = {
    "limiting_beliefs": "What beliefs are holding you back?",
    "bad_habits": "What habits are not serving you well?",
    "time_wasters": "What activities waste your time?",
    "energy_drainers": "What drains your energy?",
    "growth_blockers": "What's preventing your growth?",
    "new_beliefs": "What new beliefs will serve you better?",
    "empowering_habits": "What new habits will you develop?",
    "time_investment": "How will you invest your time differently?",
    "energy_gains": "What will give you more energy?",
    "growth_areas": "What areas will you focus on for growth?",
}

Form = Mapping[str, str]


def field(form: Form, name: str) -> str:
    return (form.get(name) or "").strip()


def default_expiry(today: date | None = None) -> str:
    return ((today or streaks.to_utc_day(streaks.utc_now())) + timedelta(days=30)).isoformat()


def is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_signup(form: Form) -> tuple[dict, dict]:
    data = {
        "first_name": field(form, "first_name"),
        "last_name": field(form, "last_name"),
        "email": field(form, "email").lower(),
        "password": form.get("password", ""),
    }
    errors = {}
    if len(data["first_name"]) < 2:
        errors["first_name"] = "First name must be at least 2 characters"
    if len(data["last_name"]) < 2:
        errors["last_name"] = "Last name must be at least 2 characters"
    if not EMAIL_RE.match(data["email"]):
        errors["email"] = "Invalid email address"
    if len(data["password"]) < 6:
        errors["password"] = "Password must be at least 6 characters"
    return data, errors


def validate_login(form: Form) -> tuple[dict, dict]:
    data = {"email": field(form, "email").lower(), "password": form.get("password", "")}
    errors = {}
    if not data["email"]:
        errors["email"] = "Email is required"
    if not data["password"]:
        errors["password"] = "Password is required"
    return data, errors


def validate_habit(form: Form) -> tuple[dict, dict]:
    data = {
        "name": field(form, "name"),
        "category": field(form, "category"),
        "description": field(form, "description"),
    }
    errors = {}
    if not data["name"]:
        errors["name"] = "Habit name is required"
    if data["category"] not in HABIT_CATEGORIES:
        errors["category"] = "Select a category"
    if not data["description"]:
        errors["description"] = "Habit description is required"
    return data, errors


def validate_goal(form: Form) -> tuple[dict, dict]:
    data = {
        "name": field(form, "name"),
        "importance": field(form, "importance"),
        "expiry_date": field(form, "expiry_date"),
        "image_url": field(form, "image_url"),
    }
    errors = {}
    if not data["name"]:
        errors["name"] = "Goal name is required"
    if not data["importance"]:
        errors["importance"] = "Goal importance is required"
    if not data["expiry_date"]:
        errors["expiry_date"] = "Expiry date is required"
    else:
        try:
            date.fromisoformat(data["expiry_date"])
        except ValueError:
            errors["expiry_date"] = "Enter a date as YYYY-MM-DD"
    return data, errors


def validate_post(form: Form, has_image_file: bool = False) -> tuple[dict, dict]:
    data = {
        "title": field(form, "title"),
        "image_url": field(form, "image_url"),
        "caption": field(form, "caption"),
    }
    errors = {}
    if not data["title"]:
        errors["title"] = "Title is required"
    if not has_image_file and not is_http_url(data["image_url"]):
        errors["image_url"] = "Invalid image URL"
    if not data["caption"]:
        errors["caption"] = "Caption is required"
    return data, errors


def validate_profile_step(form: Form) -> tuple[dict, dict]:
    data = {"sex": field(form, "sex"), "age_category": field(form, "age_category")}
    errors = {}
    if data["sex"] not in SEX_OPTIONS:
        errors["sex"] = "Please select your sex to continue"
    if data["age_category"] not in AGE_CATEGORIES:
        errors["age_category"] = "Please select your age group"
    return data, errors


def validate_goal_builder(form: Form) -> tuple[dict, dict]:
    """Onboarding step pairing one goal with the key habit that serves it."""
    goal, goal_errors = validate_goal(
        {
            "name": form.get("name", ""),
            "importance": form.get("importance", ""),
            "expiry_date": form.get("expiry_date") or default_expiry(),
        }
    )
    habit, habit_errors = validate_habit(
        {
            "name": form.get("habit_name", ""),
            "category": form.get("habit_category", ""),
            "description": form.get("habit_description", ""),
        }
    )
    errors = dict(goal_errors)
    errors.update({f"habit_{key}": message for key, message in habit_errors.items()})
    return {"goal": goal, "habit": habit}, errors


def validate_assessment(kind: str, form: Form) -> tuple[dict, dict]:
    data = {name: field(form, name) for name in ASSESSMENT_FIELDS[kind]}
    errors = {name: "This field is required" for name, value in data.items() if not value}
    return data, errors
