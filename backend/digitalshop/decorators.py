# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import current_app, g, request

from .extensions import db
from .models import User
from .permissions import role_at_least, roles_at_or_above
from .responses import error
from .services import permission_service, token_service
from .services.permission_service import PermissionDeniedError
from .services.token_service import TokenError


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid bearer token for an active user.

    Sets g.current_user (the User row) and g.token_claims.

    Returns 401 if:
    - No Authorization header, or not a Bearer header
    - Token expired or otherwise invalid
    - User missing or deactivated
    Returns 500 if no JWT secret is configured.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error("No authorization token provided", 401)

        token = auth_header.split(" ", 1)[1].strip()
        if not token:
            return error("No authorization token provided", 401)

        try:
            claims = token_service.decode_token(token)
        except TokenError as e:
            return error(e.message, e.status)

        try:
            user_id = int(claims.get("sub"))
        except (TypeError, ValueError):
            return error("Invalid token", 401)

        user = db.session.query(User).filter_by(id=user_id).first()
        if not user or not user.is_active:
            return error("User not found or inactive", 401)

        g.current_user = user
        g.token_claims = claims
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Allow only the listed roles. Must be stacked under @require_auth.
    """
    allowed = {r.upper() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error("Authentication required", 401)

            user = g.current_user
            if user.role not in allowed:
                current_app.logger.warning(
                    "Access denied for user %s (%s) to %s", user.id, user.role, request.path
                )
                return error("Insufficient permissions", 403)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_admin = require_role("ADMIN")
require_manager = require_role(*roles_at_or_above("MANAGER"))


def require_permission(permission_key: str):
    """
    Require a role -> permission grant from role_permissions.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error("Authentication required", 401)

            user = g.current_user
            try:
                permission_service.require_permission(user, permission_key)
            except PermissionDeniedError:
                current_app.logger.warning(
                    "Access denied for user %s (%s) to %s: missing %s",
                    user.id, user.role, request.path, permission_key,
                )
                return error("Insufficient permissions", 403, required_permission=permission_key)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def is_manager(user) -> bool:
    return user is not None and role_at_least(user.role, "MANAGER")
