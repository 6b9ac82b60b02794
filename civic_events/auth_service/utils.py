"""
Shared authentication helpers.
Provides token creation, verification, and role/ownership enforcement.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Callable, NamedTuple, Optional

import jwt
from flask import g, request
from dotenv import load_dotenv

from civic_events.common.errors import AuthenticationError, AuthorizationError

# Load .env only once here
load_dotenv()

logger = logging.getLogger(__name__)

# Load secrets & configs
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is missing. Set it in .env")

JWT_ALGORITHM = "HS256"
TOKEN_EXPIRATION_MINUTES = int(os.getenv("TOKEN_EXPIRATION_MINUTES", 720))  # Default 12 hours

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
VALID_ROLES = (ROLE_USER, ROLE_ADMIN)


class Identity(NamedTuple):
    """Caller identity decoded from a bearer token."""

    id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# --- JWT CREATION ---
def create_token(user_id: int, email: str, role: str) -> str:
    """
    Generates a new JWT for a given user.

    Args:
        user_id (int): The unique ID of the user.
        email (str): The user's email address.
        role (str): The role of the user (USER or ADMIN).

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)

    payload = {
        "id": user_id,
        "email": email,
        "role": role,
        "exp": now + timedelta(minutes=TOKEN_EXPIRATION_MINUTES),
        "iat": now,
    }

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


# --- JWT VALIDATION ---
def decode_token(token: str) -> Identity:
    """
    Verify a JWT and return the identity it carries.

    Raises:
        AuthenticationError: "Invalid token" on a bad signature, an expired
            or malformed token, or missing identity claims.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise AuthenticationError("Invalid token")
    except jwt.PyJWTError as e:
        logger.info("Rejected token: %s", e)
        raise AuthenticationError("Invalid token")

    user_id = payload.get("id")
    email = payload.get("email")
    role = payload.get("role")

    if not isinstance(user_id, int) or isinstance(user_id, bool) or not email or role not in VALID_ROLES:
        raise AuthenticationError("Invalid token")

    return Identity(user_id, email, role)


def get_bearer_token() -> Optional[str]:
    """Return the token of an `Authorization: Bearer <token>` header, if any."""
    auth = request.headers.get("Authorization", "")

    if not auth.startswith("Bearer "):
        return None

    token = auth.split(" ", 1)[1].strip()
    return token or None


def verify_token_from_request() -> Identity:
    """
    Verify the JWT in the Authorization header and attach the identity
    to `flask.g.identity`.

    Raises:
        AuthenticationError: "Missing token" or "Invalid token".
    """
    token = get_bearer_token()
    if token is None:
        raise AuthenticationError("Missing token")

    identity = decode_token(token)
    g.identity = identity
    return identity


def get_optional_identity() -> Optional[Identity]:
    """
    Identity of the caller when a valid token is presented, else None.
    Used by public endpoints whose behavior varies with the caller.
    """
    token = get_bearer_token()
    if token is None:
        return None
    try:
        return decode_token(token)
    except AuthenticationError:
        return None


# --- AUTHORIZATION ---
def is_authorized(
    identity: Optional[Identity],
    owner_id: Optional[int] = None,
    required_role: Optional[str] = None,
) -> bool:
    """
    Single authorization predicate for every gated operation.

    - No owner and no role: any authenticated caller.
    - Role only: the caller must hold that role.
    - Owner and role: the caller must own the resource or hold the role.
    """
    if identity is None:
        return False
    if owner_id is None and required_role is None:
        return True
    if required_role is not None and identity.role == required_role:
        return True
    return owner_id is not None and identity.id == owner_id


def require_owner_or_admin(owner_id: int) -> Identity:
    """
    Check that the authenticated caller owns the resource or is an ADMIN.

    Raises:
        AuthorizationError: "Not allowed" otherwise.
    """
    identity = g.get("identity")
    if not is_authorized(identity, owner_id=owner_id, required_role=ROLE_ADMIN):
        raise AuthorizationError("Not allowed")
    return identity


def login_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """Route decorator: reject the request unless it carries a valid token."""

    @wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        verify_token_from_request()
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Route decorator: valid token and one of the given roles."""

    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            identity = verify_token_from_request()
            if not any(is_authorized(identity, required_role=role) for role in roles):
                raise AuthorizationError("Admin only" if roles == (ROLE_ADMIN,) else "Not allowed")
            return view(*args, **kwargs)

        return wrapper

    return decorator
