"""
Shared API error taxonomy.

Route handlers raise these exceptions; `register_error_handlers` turns
them into JSON responses of the form:

    { "error": "<code>", "message": "<human readable text>" }
"""

import logging
from typing import Optional, Tuple

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that are reported to the caller."""

    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(ApiError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class AuthenticationError(ApiError):
    status_code = 401
    code = "authentication_error"
    default_message = "Invalid token"


class AuthorizationError(ApiError):
    status_code = 403
    code = "authorization_error"
    default_message = "Not allowed"


class NotFoundError(ApiError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ConflictError(ApiError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class BusinessRuleError(ApiError):
    """A well-formed request that the current state of the data forbids."""

    status_code = 400
    code = "business_rule_violation"
    default_message = "Request not allowed in the current state"


class InternalError(ApiError):
    """Store or unexpected failure. The message is always generic."""


def error_response(err: ApiError) -> Tuple[Response, int]:
    return jsonify({"error": err.code, "message": err.message}), err.status_code


def register_error_handlers(app: Flask) -> None:
    """
    Attach JSON error handlers to a Flask app.

    - ApiError subclasses are rendered with their own status and message.
    - Werkzeug HTTP errors (404 route, 405 method, bad JSON body) keep their
      status but use the same JSON shape.
    - Anything else is logged and reported as a generic 500.
    """

    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError) -> Tuple[Response, int]:
        if err.status_code >= 500:
            logger.error("API error %s: %s", err.code, err.message)
        return error_response(err)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException) -> Tuple[Response, int]:
        code = "validation_error" if err.code == 400 else f"http_{err.code}"
        return jsonify({"error": code, "message": err.description or err.name}), err.code

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception) -> Tuple[Response, int]:
        logger.exception("Unhandled error: %s", err)
        return error_response(InternalError())
