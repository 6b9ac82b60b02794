"""
Events service routes: list, read, create, update, delete events, and rate them.
Handles the event lifecycle and the per-user rating of published events.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
import psycopg2.errors
from dotenv import load_dotenv
from flask import Blueprint, Response, g, jsonify, request

from civic_events.auth_service.utils import (
    get_optional_identity,
    login_required,
    require_owner_or_admin,
)
from civic_events.common.errors import (
    BusinessRuleError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from civic_events.common.parsing import get_json_body, parse_dt, parse_flag, parse_id
from civic_events.database.db_connection import get_db
from civic_events.events_service.queries import (
    EVENT_SELECT,
    RATINGS_FOR_EVENT,
    UPDATABLE_FIELDS,
    UPSERT_RATING,
    build_event_filters,
    serialize_event,
    serialize_rating,
)

load_dotenv()

logger = logging.getLogger(__name__)

events_bp = Blueprint("events", __name__)

# When set, includeUnpublished/includeBlocked are honoured for ADMIN callers only
HIDDEN_EVENTS_REQUIRE_ADMIN = parse_flag(os.getenv("HIDDEN_EVENTS_REQUIRE_ADMIN"))

# --- CONSTANTS FOR VALIDATION ---
TITLE_MAX_LENGTH = 255
MIN_STARS = 1
MAX_STARS = 5
TEXT_FIELDS = ("description", "location", "imageUrl")


@events_bp.before_request
def before_request() -> None:
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    logging.info(f"[Events] Response {response.status}")
    return response


# --- VALIDATION HELPERS ---
def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title cannot be empty")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be {TITLE_MAX_LENGTH} characters or less.")
    return title


def validate_text(value: Any, field: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value


def validate_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false")
    return value


def require_dt(value: Any, field: str) -> datetime:
    parsed = parse_dt(value)
    if parsed is None:
        raise ValidationError(f"Invalid {field} format. Use ISO-8601.")
    return parsed


def check_time_order(start_at: datetime, end_at: Optional[datetime]) -> None:
    if end_at is not None and end_at < start_at:
        raise ValidationError("endAt must not be before startAt")


def parse_stars(value: Any) -> int:
    """
    Stars must be a whole number from 1 to 5. Integer-valued strings are
    accepted; booleans, fractions and anything non-numeric are not.
    """
    if isinstance(value, bool):
        value = None
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            value = None
    elif isinstance(value, float) and value.is_integer():
        value = int(value)

    if not isinstance(value, int) or not MIN_STARS <= value <= MAX_STARS:
        raise ValidationError(f"Stars must be {MIN_STARS}-{MAX_STARS}")
    return value


def fetch_event(cur, event_id: int) -> Optional[Dict[str, Any]]:
    cur.execute(EVENT_SELECT + " WHERE e.id = %s;", (event_id,))
    row = cur.fetchone()
    return serialize_event(row) if row else None


# --- LIST ---
@events_bp.route("", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return events ordered by start time.

    Query parameters:
    - search: case-insensitive match on title, description or location.
    - categoryId: only events of this category.
    - dateFrom / dateTo: inclusive bounds on the start time.
    - includeUnpublished / includeBlocked: opt into hidden events.

    Without the include flags only published, non-blocked events are listed.

    Returns:
        200: List of event objects with averageRating and ratingsCount.
        400: Malformed filter.
        500: Database error.
    """
    include_unpublished = parse_flag(request.args.get("includeUnpublished"))
    include_blocked = parse_flag(request.args.get("includeBlocked"))

    if HIDDEN_EVENTS_REQUIRE_ADMIN and (include_unpublished or include_blocked):
        identity = get_optional_identity()
        if identity is None or not identity.is_admin:
            include_unpublished = include_blocked = False

    where_sql, params = build_event_filters(request.args, include_unpublished, include_blocked)
    sql = EVENT_SELECT + where_sql + " ORDER BY e.start_at ASC, e.id ASC;"

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                events = [serialize_event(row) for row in cur.fetchall()]
    except psycopg2.Error:
        logger.exception("Database error listing events")
        raise InternalError("Failed to fetch events")

    return jsonify(events), 200


# --- DETAIL ---
@events_bp.route("/<int:event_id>", methods=["GET"])
def get_event(event_id: int) -> Tuple[Response, int]:
    """
    Get a single event with its category, creator and ratings (newest first).

    Returns:
        200: Event object including a ratings list.
        404: Event not found.
    """
    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                event = fetch_event(cur, event_id)
                if event is None:
                    raise NotFoundError("Event not found")

                cur.execute(RATINGS_FOR_EVENT, (event_id,))
                event["ratings"] = [serialize_rating(row) for row in cur.fetchall()]
    except psycopg2.Error:
        logger.exception("Database error getting event %s", event_id)
        raise InternalError("Failed to fetch event")

    return jsonify(event), 200


# --- CREATE ---
@events_bp.route("", methods=["POST"])
@login_required
def create_event() -> Tuple[Response, int]:
    """
    Create an event owned by the caller.

    Required: title, startAt. Optional: description, location, imageUrl,
    endAt, categoryId, published (default true). New events are never blocked.

    Returns:
        201: The created event.
        400: Missing or invalid field, unknown category.
        401: Missing or invalid token.
        500: Server error.
    """
    data: Dict[str, Any] = get_json_body()

    if not data.get("title") or not data.get("startAt"):
        raise ValidationError("Title and startAt are required")

    title = validate_title(data["title"])
    start_at = require_dt(data["startAt"], "startAt")
    end_at = require_dt(data["endAt"], "endAt") if data.get("endAt") else None
    check_time_order(start_at, end_at)

    description, location, image_url = (validate_text(data.get(f), f) for f in TEXT_FIELDS)
    category_id = parse_id(data["categoryId"], "categoryId") if data.get("categoryId") is not None else None
    published = validate_bool(data["published"], "published") if "published" in data else True

    sql = """
        INSERT INTO events (
            title, description, location, image_url,
            start_at, end_at, category_id,
            published, blocked, created_by_id
        ) VALUES (
            %s, %s, %s, %s,
            %s, %s, %s,
            %s, FALSE, %s
        )
        RETURNING id;
    """

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    title, description, location, image_url,
                    start_at, end_at, category_id,
                    published, g.identity.id,
                ))
                event_id = cur.fetchone()["id"]
                event = fetch_event(cur, event_id)
    except psycopg2.errors.ForeignKeyViolation:
        raise ValidationError("Category does not exist")
    except psycopg2.Error:
        logger.exception("Database error creating event")
        raise InternalError("Failed to create event")

    logger.info("User %s created event %s", g.identity.id, event_id)
    return jsonify(event), 201


def collect_updates(data: Dict[str, Any], current: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
    """
    Validate a partial update and build its SET clause.

    Only keys present in `data` are changed. `categoryId: null` detaches the
    category and `endAt: null` clears the end time.
    """
    fields: List[str] = []
    values: List[Any] = []

    for key, column in UPDATABLE_FIELDS.items():
        if key not in data:
            continue
        value = data[key]

        if key == "title":
            value = validate_title(value)
        elif key == "startAt":
            value = require_dt(value, "startAt")
        elif key == "endAt":
            value = require_dt(value, "endAt") if value is not None else None
        elif key == "categoryId":
            value = parse_id(value, "categoryId") if value is not None else None
        elif key in ("published", "blocked"):
            value = validate_bool(value, key)
        else:
            value = validate_text(value, key)

        fields.append(f"{column} = %s")
        values.append(value)

    final_start = parse_dt(data["startAt"]) if "startAt" in data else current["start_at"]
    final_end = parse_dt(data["endAt"]) if "endAt" in data else current["end_at"]
    check_time_order(final_start, final_end)

    return fields, values


# --- UPDATE ---
@events_bp.route("/<int:event_id>", methods=["PUT"])
@login_required
def update_event(event_id: int) -> Tuple[Response, int]:
    """
    Partially update an event.

    Permission:
    - The creator of the event
    - OR an ADMIN

    Returns:
        200: The updated event.
        400: Validation error.
        401: Missing or invalid token.
        403: Not the creator and not an admin.
        404: Event not found.
    """
    data: Dict[str, Any] = get_json_body()

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                # --- FETCH CURRENT EVENT STATE FIRST ---
                cur.execute(
                    "SELECT id, created_by_id, start_at, end_at FROM events WHERE id = %s FOR UPDATE;",
                    (event_id,),
                )
                current = cur.fetchone()
                if not current:
                    raise NotFoundError("Event not found")

                # --- PERMISSION CHECK ---
                require_owner_or_admin(current["created_by_id"])

                fields, values = collect_updates(data, current)
                if fields:
                    fields.append("updated_at = CURRENT_TIMESTAMP")
                    cur.execute(
                        f"UPDATE events SET {', '.join(fields)} WHERE id = %s;",
                        values + [event_id],
                    )

                event = fetch_event(cur, event_id)
    except psycopg2.errors.ForeignKeyViolation:
        raise ValidationError("Category does not exist")
    except psycopg2.Error:
        logger.exception("Database error updating event %s", event_id)
        raise InternalError("Failed to update event")

    logger.info("User %s updated event %s", g.identity.id, event_id)
    return jsonify(event), 200


# --- DELETE ---
@events_bp.route("/<int:event_id>", methods=["DELETE"])
@login_required
def delete_event(event_id: int) -> Tuple[Response, int]:
    """
    Delete an event and its ratings if the caller is the creator or an admin.
    """
    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id, created_by_id FROM events WHERE id = %s FOR UPDATE;", (event_id,))
                ev = cur.fetchone()
                if not ev:
                    raise NotFoundError("Event not found")

                require_owner_or_admin(ev["created_by_id"])

                # The schema cascades as well; deleting here keeps it in one transaction
                cur.execute("DELETE FROM ratings WHERE event_id = %s;", (event_id,))
                cur.execute("DELETE FROM events WHERE id = %s;", (event_id,))
    except psycopg2.Error:
        logger.exception("Database error deleting event %s", event_id)
        raise InternalError("Failed to delete event")

    logger.info("User %s deleted event %s", g.identity.id, event_id)
    return jsonify({"message": "Deleted"}), 200


# --- RATINGS ---
@events_bp.route("/<int:event_id>/rate", methods=["POST"])
@login_required
def rate_event(event_id: int) -> Tuple[Response, int]:
    """
    Create or update the caller's rating of an event.

    One rating per (event, user): a repeated submission overwrites stars and
    comment. Only published, non-blocked events can be rated.

    Returns:
        201: The rating with its author.
        400: Stars out of range, or event not available for rating.
        401: Missing or invalid token.
        404: Event not found.
    """
    data: Dict[str, Any] = get_json_body()
    stars = parse_stars(data.get("stars"))
    comment = validate_text(data.get("comment"), "comment")

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                # Share lock keeps the event from being hidden between check and write
                cur.execute(
                    "SELECT id, published, blocked FROM events WHERE id = %s FOR SHARE;",
                    (event_id,),
                )
                event = cur.fetchone()
                if not event:
                    raise NotFoundError("Event not found")
                if not event["published"] or event["blocked"]:
                    raise BusinessRuleError("Event not available for rating")

                cur.execute(UPSERT_RATING, (event_id, g.identity.id, stars, comment))
                rating = serialize_rating(cur.fetchone())
    except psycopg2.Error:
        logger.exception("Database error rating event %s", event_id)
        raise InternalError("Failed to rate event")

    logger.info("User %s rated event %s with %s stars", g.identity.id, event_id, stars)
    return jsonify(rating), 201
