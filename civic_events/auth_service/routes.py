"""
Authentication service route handlers.

Provides routes for:
- User registration (optionally as ADMIN with the shared admin code)
- User login

All JWT logic is delegated to `auth_service.utils`.
"""

import hmac
import logging
import os
import secrets
from typing import Any, Dict, Tuple

import psycopg2
import psycopg2.errors
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from dotenv import load_dotenv
from flask import Blueprint, Response, jsonify, request

from civic_events.auth_service.utils import ROLE_ADMIN, ROLE_USER, create_token
from civic_events.common.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InternalError,
    ValidationError,
)
from civic_events.common.parsing import get_json_body
from civic_events.database.db_connection import get_db

load_dotenv()

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)
ph = PasswordHasher()

INVALID_CREDENTIALS = "Invalid credentials"

# Verified against when the email is unknown so both login paths hash once
DUMMY_HASH = ph.hash(secrets.token_hex(16))


def get_admin_code() -> str:
    """Shared secret required to register as ADMIN. Empty disables it."""
    return os.getenv("ADMIN_CODE", "")


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    """Fields of a user row that are safe to return to clients."""
    return {
        "id": row["id"],
        "email": row["email"],
        "name": row["name"],
        "role": row["role"],
    }


def read_credentials(data: Dict[str, Any]) -> Tuple[str, str]:
    """
    Normalized email and password from a request body.

    Raises:
        ValidationError: either field is missing, empty or not a string.
    """
    email = data.get("email")
    password = data.get("password")
    if not isinstance(email, str) or not email.strip() or not isinstance(password, str) or not password:
        raise ValidationError("Email and password are required")
    return email.strip().lower(), password


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request method and path to the authentication service.
    Headers are left out so bearer tokens never reach the logs.
    """
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user in the system.

    Expects a JSON body with:
    - email (str): Unique email address.
    - password (str)
    - name (str, optional)
    - role (str, optional): "ADMIN" to request an admin account.
    - adminCode (str, optional): Must match ADMIN_CODE when role is "ADMIN".

    Returns:
        201: JSON with the public user and a new JWT token.
        400: Missing email or password, or a field of the wrong type.
        403: ADMIN requested with a wrong or absent admin code.
        409: Email already registered.
        500: Server-side error (database).
    """
    data: Dict[str, Any] = get_json_body()
    email, password = read_credentials(data)
    name = data.get("name") or None

    if name is not None and not isinstance(name, str):
        raise ValidationError("Name must be a string")

    role = ROLE_USER
    if data.get("role") == ROLE_ADMIN:
        expected_code = get_admin_code()
        admin_code = str(data.get("adminCode") or "")
        if not expected_code or not hmac.compare_digest(admin_code.encode(), expected_code.encode()):
            raise AuthorizationError("Invalid admin code for ADMIN registration")
        role = ROLE_ADMIN

    sql = """
        INSERT INTO users (email, password_hash, name, role)
        VALUES (%s, %s, %s, %s)
        RETURNING id, email, name, role;
    """

    # Hash password using Argon2 before a connection is taken
    pw_hash = ph.hash(password)

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM users WHERE email = %s;", (email,))
                if cur.fetchone():
                    raise ConflictError("Email already registered")

                cur.execute(sql, (email, pw_hash, name, role))
                user = public_user(cur.fetchone())
    except psycopg2.errors.UniqueViolation:
        # Lost a race with a concurrent registration of the same email
        raise ConflictError("Email already registered")
    except psycopg2.Error:
        logger.exception("Database error during registration")
        raise InternalError("Failed to register")

    logger.info("Registered user %s with role %s", user["id"], user["role"])

    # Generate initial token for immediate login
    token = create_token(user["id"], user["email"], user["role"])

    return jsonify({"user": user, "token": token}), 201


# --- LOGIN ---
@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a user and return a JWT.

    Unknown emails and wrong passwords get the same 401 response so the
    endpoint cannot be used to discover registered addresses.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        200: JSON with the public user and a JWT token.
        400: Missing credentials.
        401: Invalid credentials.
        500: Database error.
    """
    email, password = read_credentials(get_json_body())

    sql = "SELECT id, email, name, role, password_hash FROM users WHERE email = %s;"

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (email,))
                user = cur.fetchone()
    except psycopg2.Error:
        logger.exception("Database error during login")
        raise InternalError("Failed to login")

    # Verify password against hash, or the dummy one for unknown emails
    try:
        ph.verify(user["password_hash"] if user else DUMMY_HASH, password)
    except (VerificationError, InvalidHashError):
        raise AuthenticationError(INVALID_CREDENTIALS)

    if not user:
        raise AuthenticationError(INVALID_CREDENTIALS)

    token = create_token(user["id"], user["email"], user["role"])

    return jsonify({"user": public_user(user), "token": token}), 200
