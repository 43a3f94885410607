from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from changes import DELETE, INSERT, UPDATE, ChangeFeed
from db import get_conn
from streaks import to_utc_timestamp

OLD_ME_FIELDS = [
    "limiting_beliefs",
    "bad_habits",
    "time_wasters",
    "energy_drainers",
    "growth_blockers",
]
NEW_ME_FIELDS = [
    "new_beliefs",
    "empowering_habits",
    "time_investment",
    "energy_gains",
    "growth_areas",
]
ASSESSMENT_FIELDS = {"old_me": OLD_ME_FIELDS, "new_me": NEW_ME_FIELDS}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Repository:
    table = ""

    def __init__(self, feed: ChangeFeed | None = None):
        self.feed = feed

    def notify(self, event: str, row: dict[str, Any]) -> None:
        if self.feed is not None:
            self.feed.publish(self.table, event, row)


class UserRepository(Repository):
    table = "users"

    def create(self, email: str, first_name: str, last_name: str, password_hash: str) -> int:
        now = now_iso()
        with get_conn() as conn:
            user_id = conn.insert(
                """
                INSERT INTO users (email, first_name, last_name, password_hash, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (email, first_name, last_name, password_hash, now, now),
            )
        self.notify(INSERT, {"id": user_id, "email": email})
        return user_id

    def get(self, user_id: int):
        with get_conn() as conn:
            return conn.execute(
                "SELECT id, email, first_name, last_name, created_at FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

    def find_by_email(self, email: str):
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email,),
            ).fetchone()


class SurveyRepository(Repository):
    table = "onboarding_surveys"

    def get(self, owner_id: int):
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM onboarding_surveys WHERE user_id = ?",
                (owner_id,),
            ).fetchone()

    def save(self, owner_id: int, sex: str | None = None, age_category: str | None = None) -> None:
        now = now_iso()
        with get_conn() as conn:
            current = conn.execute(
                "SELECT sex, age_category FROM onboarding_surveys WHERE user_id = ?",
                (owner_id,),
            ).fetchone()
            if current is None:
                event = INSERT
                conn.execute(
                    """
                    INSERT INTO onboarding_surveys (user_id, sex, age_category, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (owner_id, sex or "", age_category or "", now, now),
                )
            else:
                event = UPDATE
                conn.execute(
                    """
                    UPDATE onboarding_surveys
                    SET sex = ?, age_category = ?, updated_at = ?
                    WHERE user_id = ?
                    """,
                    (
                        current["sex"] if sex is None else sex,
                        current["age_category"] if age_category is None else age_category,
                        now,
                        owner_id,
                    ),
                )
        self.notify(event, {"user_id": owner_id})


class AssessmentRepository(Repository):
    table = "assessments"

    def add(self, owner_id: int, kind: str, answers: dict[str, str]) -> int:
        fields = ASSESSMENT_FIELDS[kind]
        columns = ", ".join(fields)
        placeholders = ", ".join("?" for _ in fields)
        with get_conn() as conn:
            assessment_id = conn.insert(
                f"""
                INSERT INTO assessments (user_id, assessment_type, {columns}, created_at)
                VALUES (?, ?, {placeholders}, ?)
                """,
                (owner_id, kind, *[answers[field] for field in fields], now_iso()),
            )
        self.notify(INSERT, {"id": assessment_id, "user_id": owner_id, "assessment_type": kind})
        return assessment_id

    def list(self, owner_id: int) -> list:
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM assessments WHERE user_id = ? ORDER BY created_at, id",
                (owner_id,),
            ).fetchall()

    def complete(self, owner_id: int) -> dict[str, list]:
        """Assessments with every answer of their kind filled in, split by kind."""
        result: dict[str, list] = {"old_me": [], "new_me": []}
        for row in self.list(owner_id):
            fields = ASSESSMENT_FIELDS.get(row["assessment_type"])
            if fields and all(row[field] for field in fields):
                result[row["assessment_type"]].append(row)
        return result


class GoalRepository(Repository):
    table = "goals"

    def list(self, owner_id: int) -> list:
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM goals WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (owner_id,),
            ).fetchall()

    def get(self, owner_id: int, goal_id: int):
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM goals WHERE id = ? AND user_id = ?",
                (goal_id, owner_id),
            ).fetchone()

    def add(
        self,
        owner_id: int,
        name: str,
        importance: str,
        expiry_date: str = "",
        image_url: str = "",
    ) -> int:
        with get_conn() as conn:
            goal_id = conn.insert(
                """
                INSERT INTO goals (user_id, name, importance, image_url, expiry_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (owner_id, name, importance, image_url, expiry_date, now_iso()),
            )
        self.notify(INSERT, {"id": goal_id, "user_id": owner_id})
        return goal_id

    def update(
        self,
        owner_id: int,
        goal_id: int,
        name: str,
        importance: str,
        expiry_date: str,
        image_url: str,
    ) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                """
                UPDATE goals
                SET name = ?, importance = ?, expiry_date = ?, image_url = ?
                WHERE id = ? AND user_id = ?
                """,
                (name, importance, expiry_date, image_url, goal_id, owner_id),
            )
            updated = cur.rowcount > 0
        if updated:
            self.notify(UPDATE, {"id": goal_id, "user_id": owner_id})
        return updated

    def delete(self, owner_id: int, goal_id: int) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                "DELETE FROM goals WHERE id = ? AND user_id = ?",
                (goal_id, owner_id),
            )
            deleted = cur.rowcount > 0
        if deleted:
            self.notify(DELETE, {"id": goal_id, "user_id": owner_id})
        return deleted


class HabitRepository(Repository):
    table = "habits"

    def list(self, owner_id: int) -> list:
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM habits WHERE user_id = ? ORDER BY id ASC",
                (owner_id,),
            ).fetchall()

    def get(self, owner_id: int, habit_id: int):
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM habits WHERE id = ? AND user_id = ?",
                (habit_id, owner_id),
            ).fetchone()

    def add(self, owner_id: int, name: str, category: str, description: str) -> int:
        with get_conn() as conn:
            habit_id = conn.insert(
                """
                INSERT INTO habits (user_id, name, category, description, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (owner_id, name, category, description, now_iso()),
            )
        self.notify(INSERT, {"id": habit_id, "user_id": owner_id})
        return habit_id

    def update(
        self, owner_id: int, habit_id: int, name: str, category: str, description: str
    ) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                """
                UPDATE habits
                SET name = ?, category = ?, description = ?
                WHERE id = ? AND user_id = ?
                """,
                (name, category, description, habit_id, owner_id),
            )
            updated = cur.rowcount > 0
        if updated:
            self.notify(UPDATE, {"id": habit_id, "user_id": owner_id})
        return updated

    def delete(self, owner_id: int, habit_id: int) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                "DELETE FROM habits WHERE id = ? AND user_id = ?",
                (habit_id, owner_id),
            )
            deleted = cur.rowcount > 0
            if deleted:
                conn.execute(
                    "DELETE FROM habit_logs WHERE habit_id = ? AND user_id = ?",
                    (habit_id, owner_id),
                )
        if deleted:
            self.notify(DELETE, {"id": habit_id, "user_id": owner_id})
        return deleted


class CompletionRepository(Repository):
    """Completion events for habits. Rows are only inserted or deleted."""

    table = "habit_logs"

    def completed_at(
        self,
        owner_id: int,
        habit_id: int | None = None,
        since: date | None = None,
        until: date | None = None,
    ) -> list[str]:
        query = "SELECT completed_at FROM habit_logs WHERE user_id = ?"
        params: list[Any] = [owner_id]
        if habit_id is not None:
            query += " AND habit_id = ?"
            params.append(habit_id)
        if since is not None:
            query += " AND completed_at >= ?"
            params.append(to_utc_timestamp(since))
        if until is not None:
            query += " AND completed_at <= ?"
            params.append(f"{until.isoformat()}T23:59:59Z")
        query += " ORDER BY completed_at ASC"
        with get_conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [row["completed_at"] for row in rows]

    def find(self, owner_id: int, habit_id: int, completed_at: str):
        with get_conn() as conn:
            return conn.execute(
                """
                SELECT * FROM habit_logs
                WHERE habit_id = ? AND user_id = ? AND completed_at = ?
                """,
                (habit_id, owner_id, completed_at),
            ).fetchone()

    def add(self, owner_id: int, habit_id: int, completed_at: str) -> int:
        with get_conn() as conn:
            log_id = conn.insert(
                """
                INSERT INTO habit_logs (habit_id, user_id, completed_at)
                VALUES (?, ?, ?)
                """,
                (habit_id, owner_id, completed_at),
            )
        self.notify(
            INSERT,
            {"id": log_id, "habit_id": habit_id, "user_id": owner_id, "completed_at": completed_at},
        )
        return log_id

    def delete(self, owner_id: int, log_id: int) -> bool:
        with get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM habit_logs WHERE id = ? AND user_id = ?",
                (log_id, owner_id),
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM habit_logs WHERE id = ?", (log_id,))
            removed = dict(row)
        self.notify(DELETE, removed)
        return True

    def toggle(self, owner_id: int, habit_id: int, day: date) -> bool:
        """Mark ``day`` done, or undo it if already marked. Returns the new state."""
        completed_at = to_utc_timestamp(day)
        existing = self.find(owner_id, habit_id, completed_at)
        if existing is not None:
            self.delete(owner_id, existing["id"])
            return False
        self.add(owner_id, habit_id, completed_at)
        return True


class PostRepository(Repository):
    table = "flexbook_posts"

    def list(self, owner_id: int) -> list:
        with get_conn() as conn:
            return conn.execute(
                """
                SELECT * FROM flexbook_posts
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                (owner_id,),
            ).fetchall()

    def get(self, owner_id: int, post_id: int):
        with get_conn() as conn:
            return conn.execute(
                "SELECT * FROM flexbook_posts WHERE id = ? AND user_id = ?",
                (post_id, owner_id),
            ).fetchone()

    def add(self, owner_id: int, title: str, image_url: str, caption: str) -> int:
        with get_conn() as conn:
            post_id = conn.insert(
                """
                INSERT INTO flexbook_posts (user_id, title, image_url, caption, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (owner_id, title, image_url, caption, now_iso()),
            )
        self.notify(INSERT, {"id": post_id, "user_id": owner_id})
        return post_id

    def update(
        self, owner_id: int, post_id: int, title: str, image_url: str, caption: str
    ) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                """
                UPDATE flexbook_posts
                SET title = ?, image_url = ?, caption = ?
                WHERE id = ? AND user_id = ?
                """,
                (title, image_url, caption, post_id, owner_id),
            )
            updated = cur.rowcount > 0
        if updated:
            self.notify(UPDATE, {"id": post_id, "user_id": owner_id})
        return updated

    def delete(self, owner_id: int, post_id: int) -> bool:
        with get_conn() as conn:
            cur = conn.execute(
                "DELETE FROM flexbook_posts WHERE id = ? AND user_id = ?",
                (post_id, owner_id),
            )
            deleted = cur.rowcount > 0
        if deleted:
            self.notify(DELETE, {"id": post_id, "user_id": owner_id})
        return deleted


class CoachMessageRepository(Repository):
    table = "coach_messages"

    def get(self, owner_id: int, day: date) -> str | None:
        with get_conn() as conn:
            row = conn.execute(
                "SELECT body FROM coach_messages WHERE user_id = ? AND message_date = ?",
                (owner_id, day.isoformat()),
            ).fetchone()
        return row["body"] if row is not None else None

    def save(self, owner_id: int, day: date, body: str) -> None:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO coach_messages (user_id, message_date, body, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, message_date) DO UPDATE SET body = excluded.body
                """,
                (owner_id, day.isoformat(), body, now_iso()),
            )
        self.notify(INSERT, {"user_id": owner_id, "message_date": day.isoformat()})
