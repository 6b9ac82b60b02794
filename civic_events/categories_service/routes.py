"""
Categories service route handlers.
Manages the categories events are filed under.
"""

import logging
from typing import Any, Dict, Tuple

import psycopg2
from flask import Blueprint, Response, jsonify, request

from civic_events.auth_service.utils import ROLE_ADMIN, roles_required
from civic_events.common.errors import InternalError, ValidationError
from civic_events.common.parsing import get_json_body, isoformat
from civic_events.database.db_connection import get_db

logger = logging.getLogger(__name__)

categories_bp = Blueprint("categories", __name__)

NAME_MAX_LENGTH = 255


def serialize_category(row: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": row["id"], "name": row["name"], "createdAt": isoformat(row["created_at"])}


@categories_bp.before_request
def before_request() -> None:
    logging.info(f"[Categories] Incoming {request.method} {request.path}")


@categories_bp.route("", methods=["GET"])
def list_categories() -> Tuple[Response, int]:
    """
    Get all categories ordered by name. Public access allowed.
    """
    sql = "SELECT id, name, created_at FROM categories ORDER BY name ASC, id ASC;"
    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                categories = [serialize_category(row) for row in cur.fetchall()]
    except psycopg2.Error:
        logger.exception("Error listing categories")
        raise InternalError("Failed to fetch categories")

    return jsonify(categories), 200


@categories_bp.route("", methods=["POST"])
@roles_required(ROLE_ADMIN)
def create_category() -> Tuple[Response, int]:
    """
    Admin-only: Create a new category.

    Names are not required to be unique.
    """
    data = get_json_body()
    name = data.get("name")

    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name is required")
    name = name.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f"Name must be {NAME_MAX_LENGTH} characters or less.")

    sql = """
        INSERT INTO categories (name)
        VALUES (%s)
        RETURNING id, name, created_at;
    """

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (name,))
                category = serialize_category(cur.fetchone())
    except psycopg2.Error:
        logger.exception("Error creating category")
        raise InternalError("Failed to create category")

    logger.info("Created category %s", category["id"])
    return jsonify(category), 201
