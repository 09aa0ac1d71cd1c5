# Overview: Exception -> JSON envelope mapping and app-wide error handlers.

from __future__ import annotations

import traceback

from flask import current_app, request
from werkzeug.exceptions import HTTPException

from .extensions import db
from .responses import error
from .services.auth_service import AuthenticationError
from .services.hold_service import HoldExpiredError
from .services.permission_service import PermissionDeniedError
from .services.token_service import TokenError
from .validation import ConflictError, NotFoundError, ValidationError

# Exceptions a route may catch and answer with error_from().
DOMAIN_ERRORS = (
    ValidationError,
    ConflictError,
    NotFoundError,
    PermissionError,
    PermissionDeniedError,
    HoldExpiredError,
    AuthenticationError,
    TokenError,
)


def status_for(exc: Exception) -> int:
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, (PermissionError, PermissionDeniedError)):
        return 403
    return 400


def error_from(exc: Exception):
    """Roll back the unit of work and answer with the exception's envelope."""
    db.session.rollback()
    details = getattr(exc, "details", None) or None
    return error(str(exc), status_for(exc), details=details)


def register_error_handlers(app) -> None:
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        if exc.code == 404:
            return error("Route not found", 404, path=request.path)
        return error(exc.description or exc.name, exc.code or 500)

    for exc_type in DOMAIN_ERRORS:
        app.register_error_handler(exc_type, error_from)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        stack = None
        if current_app.config.get("ENV") != "production":
            stack = traceback.format_exc()
        return error("Internal server error", 500, stack=stack)
