from __future__ import annotations

from datetime import date
from functools import wraps
import logging

from flask import (
    Flask,
    abort,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    send_from_directory,
    session,
    url_for,
)
from werkzeug.security import check_password_hash, generate_password_hash

import config
import forms
import storage
import streaks
from changes import ChangeFeed
from coach import CoachError, daily_message
from db import IntegrityError, ensure_db, init_db
from forms import ASSESSMENT_LABELS, HABIT_CATEGORIES
from repositories import (
    ASSESSMENT_FIELDS,
    AssessmentRepository,
    CoachMessageRepository,
    CompletionRepository,
    GoalRepository,
    HabitRepository,
    PostRepository,
    SurveyRepository,
    UserRepository,
)
from stats import StatsService
from storage import UploadError

ONBOARDING_STEPS = 6
DEFAULT_GOAL_IMAGE = (
    "https://res.cloudinary.com/dzkqpbwya/image/upload/v1735751911/"
    "dc36bb83-9d6d-45f9-9c49-401b88da62f5_pt0y7j.jpg"
)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


configure_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.SECRET_KEY
app.config["MAX_CONTENT_LENGTH"] = config.MAX_IMAGE_BYTES + 1024 * 1024

feed = ChangeFeed()
users = UserRepository(feed)
surveys = SurveyRepository(feed)
assessments = AssessmentRepository(feed)
goals = GoalRepository(feed)
habits = HabitRepository(feed)
completions = CompletionRepository(feed)
posts = PostRepository(feed)
coach_messages = CoachMessageRepository(feed)
stats_service = StatsService(habits, completions, feed, window_days=config.STATS_WINDOW_DAYS)


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.user is None:
            return redirect(url_for("login"))
        return view(*args, **kwargs)

    return wrapped


@app.before_request
def load_user() -> None:
    user_id = session.get("user_id")
    if user_id is None:
        g.user = None
        return

    ensure_db()
    g.user = users.get(user_id)
    if g.user is None:
        session.clear()


@app.context_processor
def inject_user():
    return {"current_user": g.get("user"), "now": streaks.utc_now()}


def parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def uploaded_image_url(folder: str, errors: dict) -> str | None:
    """Store the ``image`` upload of the current request, if any, and return its URL."""
    file = request.files.get("image")
    if not storage.has_upload(file):
        return None
    try:
        return storage.public_url(storage.save_image(file, folder))
    except UploadError as exc:
        errors["image"] = str(exc)
        return None


@app.route("/styles.css")
def styles_css():
    public_dir = config.BASE_DIR / "public"
    return send_from_directory(public_dir, "styles.css")


@app.route("/uploads/<path:filename>")
def uploaded_file(filename: str):
    return send_from_directory(config.UPLOAD_DIR, filename)


@app.route("/", methods=["GET"])
def landing():
    if g.user is not None:
        return redirect(url_for("dashboard"))
    return render_template("landing.html")


@app.route("/signup", methods=["GET", "POST"])
def signup():
    ensure_db()
    if g.user is not None:
        return redirect(url_for("dashboard"))

    error = ""
    errors: dict = {}
    data: dict = {}
    if request.method == "POST":
        data, errors = forms.validate_signup(request.form)
        if not errors:
            if users.find_by_email(data["email"]) is not None:
                error = "That email is already registered."
            else:
                try:
                    user_id = users.create(
                        data["email"],
                        data["first_name"],
                        data["last_name"],
                        generate_password_hash(data["password"]),
                    )
                except IntegrityError:
                    error = "That email is already registered."
                else:
                    logger.info("Created user %s", user_id)
                    session["user_id"] = user_id
                    return redirect(url_for("onboarding", step=1))

    return render_template("signup.html", error=error, errors=errors, form=data)


@app.route("/login", methods=["GET", "POST"])
def login():
    ensure_db()
    if g.user is not None:
        return redirect(url_for("dashboard"))

    error = ""
    errors: dict = {}
    if request.method == "POST":
        data, errors = forms.validate_login(request.form)
        if not errors:
            user = users.find_by_email(data["email"])
            if user is None or not check_password_hash(user["password_hash"], data["password"]):
                error = "Invalid email or password."
            else:
                session["user_id"] = user["id"]
                return redirect(url_for("dashboard"))

    return render_template("login.html", error=error, errors=errors)


@app.route("/logout", methods=["POST"])
@login_required
def logout():
    session.clear()
    return redirect(url_for("login"))


@app.route("/onboarding/<int:step>", methods=["GET", "POST"])
@login_required
def onboarding(step: int):
    ensure_db()
    if step < 1 or step > ONBOARDING_STEPS:
        return redirect(url_for("onboarding", step=1))

    user_id = g.user["id"]
    errors: dict = {}
    error = ""
    if request.method == "POST":
        if step == 1:
            data, errors = forms.validate_profile_step(request.form)
            if not errors:
                surveys.save(user_id, sex=data["sex"], age_category=data["age_category"])
        elif step <= 4:
            data, errors = forms.validate_goal_builder(request.form)
            if not errors:
                image_url = uploaded_image_url("goal-images", errors)
                if not errors:
                    goal = data["goal"]
                    habit = data["habit"]
                    goals.add(
                        user_id,
                        goal["name"],
                        goal["importance"],
                        goal["expiry_date"],
                        image_url or "",
                    )
                    habits.add(user_id, habit["name"], habit["category"], habit["description"])
        else:
            kind = "old_me" if step == 5 else "new_me"
            data, errors = forms.validate_assessment(kind, request.form)
            if not errors:
                assessments.add(user_id, kind, data)

        if not errors:
            if step < ONBOARDING_STEPS:
                return redirect(url_for("onboarding", step=step + 1))
            logger.info("User %s finished onboarding", user_id)
            return redirect(url_for("dashboard"))
        error = "Please fix the highlighted fields."

    kind = "old_me" if step == 5 else "new_me"
    return render_template(
        "onboarding.html",
        step=step,
        total_steps=ONBOARDING_STEPS,
        goal_number=step - 1,
        errors=errors,
        error=error,
        form=request.form,
        survey=surveys.get(user_id),
        age_categories=forms.AGE_CATEGORIES,
        sex_options=forms.SEX_OPTIONS,
        categories=HABIT_CATEGORIES,
        assessment_fields=ASSESSMENT_FIELDS.get(kind, []),
        assessment_labels=ASSESSMENT_LABELS,
    )


@app.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    ensure_db()
    user_id = g.user["id"]
    today = streaks.to_utc_day(streaks.utc_now())

    coach_text = ""
    coach_error = ""
    try:
        coach_text = daily_message(
            user_id,
            today,
            users,
            goals,
            assessments,
            coach_messages,
            config.GEMINI_API_KEY,
            config.GEMINI_MODEL,
            config.COACH_TIMEOUT,
        )
    except CoachError as exc:
        logger.warning("Coach message unavailable for user %s: %s", user_id, exc)
        coach_error = f"Failed to generate message: {exc}"

    goal_rows = goals.list(user_id)
    goal_index = parse_int(request.args.get("goal", "0"), 0) % len(goal_rows) if goal_rows else 0
    day, total_days = streaks.day_of_year(streaks.utc_now())
    comparison = assessments.complete(user_id)

    return render_template(
        "dashboard.html",
        coach_text=coach_text,
        coach_error=coach_error,
        day=day,
        total_days=total_days,
        goals=goal_rows,
        goal_index=goal_index,
        default_goal_image=DEFAULT_GOAL_IMAGE,
        month=stats_service.month_progress(user_id),
        old_me=comparison["old_me"],
        new_me=comparison["new_me"],
        assessment_fields=ASSESSMENT_FIELDS,
        assessment_labels=ASSESSMENT_LABELS,
    )


@app.route("/habits", methods=["GET"])
@login_required
def habit_list():
    ensure_db()
    user_id = g.user["id"]
    rows = habits.list(user_id)
    weeks = {habit["id"]: stats_service.week(user_id, habit["id"]) for habit in rows}
    return render_template("habits.html", habits=rows, weeks=weeks, categories=HABIT_CATEGORIES)


@app.route("/habits/add", methods=["GET", "POST"])
@login_required
def add_habit():
    ensure_db()
    user_id = g.user["id"]
    errors: dict = {}
    data: dict = {"category": "Health"}
    if request.method == "POST":
        data, errors = forms.validate_habit(request.form)
        if not errors:
            habits.add(user_id, data["name"], data["category"], data["description"])
            return redirect(url_for("habit_list"))
    return render_template(
        "habit_form.html", habit=None, form=data, errors=errors, categories=HABIT_CATEGORIES
    )


@app.route("/habits/<int:habit_id>/edit", methods=["GET", "POST"])
@login_required
def edit_habit(habit_id: int):
    ensure_db()
    user_id = g.user["id"]
    habit = habits.get(user_id, habit_id)
    if habit is None:
        return redirect(url_for("habit_list"))

    errors: dict = {}
    data = dict(habit)
    if request.method == "POST":
        data, errors = forms.validate_habit(request.form)
        if not errors:
            habits.update(user_id, habit_id, data["name"], data["category"], data["description"])
            return redirect(url_for("habit_list"))
    return render_template(
        "habit_form.html", habit=habit, form=data, errors=errors, categories=HABIT_CATEGORIES
    )


@app.route("/habits/<int:habit_id>/delete", methods=["POST"])
@login_required
def delete_habit(habit_id: int):
    ensure_db()
    habits.delete(g.user["id"], habit_id)
    return redirect(url_for("habit_list"))


@app.route("/habits/<int:habit_id>/toggle/<day>", methods=["POST"])
@login_required
def toggle_completion(habit_id: int, day: str):
    ensure_db()
    user_id = g.user["id"]
    if habits.get(user_id, habit_id) is None:
        return redirect(url_for("habit_list"))
    try:
        target = date.fromisoformat(day)
    except ValueError:
        return redirect(url_for("habit_list"))
    if target not in streaks.week_dates(streaks.utc_now()):
        return redirect(url_for("habit_list"))

    completions.toggle(user_id, habit_id, target)
    next_url = request.form.get("next", "")
    if not next_url.startswith("/") or next_url.startswith("//"):
        next_url = url_for("habit_list")
    return redirect(next_url)


@app.route("/stats", methods=["GET"])
@login_required
def stats_page():
    ensure_db()
    user_id = g.user["id"]
    view = request.args.get("view", "daily").lower()
    if view not in ("daily", "weekly", "monthly"):
        view = "daily"
    return render_template("stats.html", rows=stats_service.overview(user_id), view=view)


@app.route("/api/habits/<int:habit_id>/stats", methods=["GET"])
@login_required
def habit_stats_api(habit_id: int):
    ensure_db()
    user_id = g.user["id"]
    habit = habits.get(user_id, habit_id)
    if habit is None:
        abort(404)
    result = stats_service.habit_stats(user_id, habit_id).as_dict()
    result.update(
        {
            "habit_id": habit["id"],
            "name": habit["name"],
            "window_days": stats_service.window_days,
        }
    )
    return jsonify(result)


@app.route("/goals", methods=["GET"])
@login_required
def goal_list():
    ensure_db()
    return render_template("goals.html", goals=goals.list(g.user["id"]))


@app.route("/goals/add", methods=["GET", "POST"])
@login_required
def add_goal():
    ensure_db()
    user_id = g.user["id"]
    errors: dict = {}
    data: dict = {"expiry_date": forms.default_expiry()}
    if request.method == "POST":
        data, errors = forms.validate_goal(request.form)
        if not errors:
            image_url = uploaded_image_url("goal-images", errors)
            if not errors:
                goals.add(
                    user_id,
                    data["name"],
                    data["importance"],
                    data["expiry_date"],
                    image_url or "",
                )
                return redirect(url_for("goal_list"))
    return render_template("goal_form.html", goal=None, form=data, errors=errors)


@app.route("/goals/<int:goal_id>/edit", methods=["GET", "POST"])
@login_required
def edit_goal(goal_id: int):
    ensure_db()
    user_id = g.user["id"]
    goal = goals.get(user_id, goal_id)
    if goal is None:
        return redirect(url_for("goal_list"))

    errors: dict = {}
    data = dict(goal)
    if request.method == "POST":
        data, errors = forms.validate_goal(request.form)
        if not errors:
            new_url = uploaded_image_url("goal-images", errors)
            if not errors:
                image_url = goal["image_url"]
                if new_url is not None or request.form.get("remove_image"):
                    storage.remove_image(image_url)
                    image_url = new_url or ""
                goals.update(
                    user_id,
                    goal_id,
                    data["name"],
                    data["importance"],
                    data["expiry_date"],
                    image_url,
                )
                return redirect(url_for("goal_list"))
    return render_template("goal_form.html", goal=goal, form=data, errors=errors)


@app.route("/goals/<int:goal_id>/delete", methods=["POST"])
@login_required
def delete_goal(goal_id: int):
    ensure_db()
    user_id = g.user["id"]
    goal = goals.get(user_id, goal_id)
    if goal is not None and goals.delete(user_id, goal_id):
        storage.remove_image(goal["image_url"])
    return redirect(url_for("goal_list"))


@app.route("/flexbook", methods=["GET"])
@login_required
def flexbook():
    ensure_db()
    return render_template("flexbook.html", posts=posts.list(g.user["id"]))


def save_post_form(user_id: int, post=None):
    """Validate and store the post form; returns (form data, errors)."""
    file = request.files.get("image")
    data, errors = forms.validate_post(request.form, storage.has_upload(file))
    if errors:
        return data, errors

    image_url = uploaded_image_url("flexbook", errors)
    if errors:
        return data, errors
    if image_url is None:
        image_url = data["image_url"]

    if post is None:
        posts.add(user_id, data["title"], image_url, data["caption"])
    else:
        if image_url != post["image_url"]:
            storage.remove_image(post["image_url"])
        posts.update(user_id, post["id"], data["title"], image_url, data["caption"])
    return data, errors


@app.route("/flexbook/add", methods=["GET", "POST"])
@login_required
def add_post():
    ensure_db()
    errors: dict = {}
    data: dict = {}
    if request.method == "POST":
        data, errors = save_post_form(g.user["id"])
        if not errors:
            return redirect(url_for("flexbook"))
    return render_template("post_form.html", post=None, form=data, errors=errors)


@app.route("/flexbook/<int:post_id>/edit", methods=["GET", "POST"])
@login_required
def edit_post(post_id: int):
    ensure_db()
    user_id = g.user["id"]
    post = posts.get(user_id, post_id)
    if post is None:
        return redirect(url_for("flexbook"))

    errors: dict = {}
    data = dict(post)
    if request.method == "POST":
        data, errors = save_post_form(user_id, post)
        if not errors:
            return redirect(url_for("flexbook"))
    return render_template("post_form.html", post=post, form=data, errors=errors)


@app.route("/flexbook/<int:post_id>/delete", methods=["POST"])
@login_required
def delete_post(post_id: int):
    ensure_db()
    user_id = g.user["id"]
    post = posts.get(user_id, post_id)
    if post is not None and posts.delete(user_id, post_id):
        storage.remove_image(post["image_url"])
    return redirect(url_for("flexbook"))


if __name__ == "__main__":
    init_db()
    app.run(debug=True)
