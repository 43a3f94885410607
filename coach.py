from __future__ import annotations

import logging
from datetime import date

import requests

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class CoachError(Exception):
    pass


def describe_assessment(assessment) -> str:
    if assessment["assessment_type"] == "old_me":
        return (
            f"You have limiting beliefs of {assessment['limiting_beliefs']}, "
            f"bad habits of {assessment['bad_habits']}, "
            f"time wasters of {assessment['time_wasters']}, "
            f"energy drainers of {assessment['energy_drainers']}, "
            f"and growth blockers of {assessment['growth_blockers']}."
        )
    if assessment["assessment_type"] == "new_me":
        return (
            f"You have new beliefs of {assessment['new_beliefs']}, "
            f"empowering habits of {assessment['empowering_habits']}, "
            f"time investment of {assessment['time_investment']}, "
            f"energy gains of {assessment['energy_gains']}, "
            f"and growth areas of {assessment['growth_areas']}."
        )
    return ""


def build_prompt(first_name: str, goals: list, assessments: list, today: date) -> str:
    goals_text = " ".join(
        f"You want to achieve {goal['name']} because {goal['importance']}." for goal in goals
    ) or "no specific goals yet"
    assessment_text = " ".join(
        text for text in (describe_assessment(a) for a in assessments) if text
    ) or "no assessments yet"
    return (
        f"Generate a short, supportive and relatable tweet for {first_name} "
        f"on this {today.strftime('%A')} based on their goals: {goals_text} "
        f"and assessments: {assessment_text}. "
        "The tweet should not include emojis or hashtags."
    )


def generate_message(prompt: str, api_key: str, model: str, timeout: int = 15) -> str:
    if not api_key:
        raise CoachError("API key missing")

    payload = {"contents": [{"parts": [{"text": prompt}]}]}
    try:
        response = requests.post(
            GEMINI_URL.format(model=model),
            params={"key": api_key},
            json=payload,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise CoachError(f"request failed: {exc}") from exc

    if not response.ok:
        raise CoachError(f"API request failed: {response.status_code} {response.text}")

    try:
        return response.json()["candidates"][0]["content"]["parts"][0]["text"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise CoachError("Invalid response format from text generation API") from exc


def daily_message(
    owner_id: int,
    today: date,
    users,
    goals,
    assessments,
    messages,
    api_key: str,
    model: str,
    timeout: int = 15,
) -> str:
    """Today's coach message for ``owner_id``, generating and storing it on first use."""
    stored = messages.get(owner_id, today)
    if stored is not None:
        return stored

    user = users.get(owner_id)
    if user is None or not user["first_name"]:
        raise CoachError("User data incomplete")

    complete = assessments.complete(owner_id)
    prompt = build_prompt(
        user["first_name"],
        goals.list(owner_id),
        complete["old_me"] + complete["new_me"],
        today,
    )
    text = generate_message(prompt, api_key, model, timeout)
    messages.save(owner_id, today, text)
    logger.info("Generated coach message for user %s", owner_id)
    return text
