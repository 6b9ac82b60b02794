"""
SQL fragments, listing filters and JSON shaping for events and ratings.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

from civic_events.common.errors import ValidationError
from civic_events.common.parsing import isoformat, parse_dt, parse_id

# Event row joined with its category, its creator's public identity and the
# rating aggregates. Aggregates are computed at read time, never stored.
EVENT_SELECT = """
    SELECT
        e.id, e.title, e.description, e.location, e.image_url,
        e.start_at, e.end_at, e.published, e.blocked,
        e.category_id, e.created_by_id, e.created_at, e.updated_at,
        c.name AS category_name,
        u.name AS creator_name, u.email AS creator_email,
        (SELECT AVG(r.stars) FROM ratings r WHERE r.event_id = e.id) AS average_rating,
        (SELECT COUNT(*) FROM ratings r WHERE r.event_id = e.id) AS ratings_count
    FROM events e
    LEFT JOIN categories c ON c.id = e.category_id
    JOIN users u ON u.id = e.created_by_id
"""

RATINGS_FOR_EVENT = """
    SELECT
        r.id, r.stars, r.comment, r.event_id, r.user_id, r.created_at, r.updated_at,
        u.name AS user_name, u.email AS user_email
    FROM ratings r
    JOIN users u ON u.id = r.user_id
    WHERE r.event_id = %s
    ORDER BY r.created_at DESC, r.id DESC;
"""

# Single-statement upsert keyed on the (event_id, user_id) unique constraint,
# so two concurrent submissions by one user can never create two rows.
UPSERT_RATING = """
    WITH upserted AS (
        INSERT INTO ratings (event_id, user_id, stars, comment)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT ON CONSTRAINT ratings_event_user_key
        DO UPDATE SET
            stars = EXCLUDED.stars,
            comment = EXCLUDED.comment,
            updated_at = CURRENT_TIMESTAMP
        RETURNING *
    )
    SELECT
        r.id, r.stars, r.comment, r.event_id, r.user_id, r.created_at, r.updated_at,
        u.name AS user_name, u.email AS user_email
    FROM upserted r
    JOIN users u ON u.id = r.user_id;
"""

# JSON field -> events column, for the fields a caller may change
UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "location": "location",
    "imageUrl": "image_url",
    "startAt": "start_at",
    "endAt": "end_at",
    "categoryId": "category_id",
    "published": "published",
    "blocked": "blocked",
}


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_event_filters(
    args: Mapping[str, str],
    include_unpublished: bool = False,
    include_blocked: bool = False,
) -> Tuple[str, List[Any]]:
    """
    Translate listing query parameters into a WHERE clause.

    Args:
        args: search, categoryId, dateFrom and dateTo query parameters.
        include_unpublished: Keep events with published = false.
        include_blocked: Keep events with blocked = true.

    Returns:
        tuple: (where_sql, params). where_sql is empty when nothing filters.

    Raises:
        ValidationError: On a malformed categoryId or date.
    """
    clauses: List[str] = []
    params: List[Any] = []

    search = (args.get("search") or "").strip()
    if search:
        pattern = f"%{escape_like(search)}%"
        clauses.append("(e.title ILIKE %s OR e.description ILIKE %s OR e.location ILIKE %s)")
        params.extend([pattern, pattern, pattern])

    if args.get("categoryId"):
        clauses.append("e.category_id = %s")
        params.append(parse_id(args["categoryId"], "categoryId"))

    for key, op in (("dateFrom", ">="), ("dateTo", "<=")):
        if args.get(key):
            bound = parse_dt(args[key])
            if bound is None:
                raise ValidationError(f"Invalid {key}. Use ISO-8601.")
            clauses.append(f"e.start_at {op} %s")
            params.append(bound)

    if not include_unpublished:
        clauses.append("e.published = TRUE")
    if not include_blocked:
        clauses.append("e.blocked = FALSE")

    where_sql = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where_sql, params


def average(value: Any) -> Optional[float]:
    # AVG() comes back as Decimal, or NULL with no ratings
    return float(value) if value is not None else None


def serialize_event(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Shape an EVENT_SELECT row as the API's event object."""
    category = None
    if row["category_id"] is not None:
        category = {"id": row["category_id"], "name": row["category_name"]}

    return {
        "id": row["id"],
        "title": row["title"],
        "description": row["description"],
        "location": row["location"],
        "imageUrl": row["image_url"],
        "startAt": isoformat(row["start_at"]),
        "endAt": isoformat(row["end_at"]),
        "published": row["published"],
        "blocked": row["blocked"],
        "categoryId": row["category_id"],
        "createdById": row["created_by_id"],
        "createdAt": isoformat(row["created_at"]),
        "updatedAt": isoformat(row["updated_at"]),
        "category": category,
        "createdBy": {
            "id": row["created_by_id"],
            "name": row["creator_name"],
            "email": row["creator_email"],
        },
        "averageRating": average(row["average_rating"]),
        "ratingsCount": int(row["ratings_count"] or 0),
    }


def serialize_rating(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "stars": row["stars"],
        "comment": row["comment"],
        "eventId": row["event_id"],
        "userId": row["user_id"],
        "createdAt": isoformat(row["created_at"]),
        "updatedAt": isoformat(row["updated_at"]),
        "user": {
            "id": row["user_id"],
            "name": row["user_name"],
            "email": row["user_email"],
        },
    }
