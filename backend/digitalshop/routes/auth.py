# Overview: Flask API routes for login, registration and the caller's own account.

from flask import Blueprint, current_app, g, request

from ..decorators import require_admin, require_auth
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import error, success
from ..services import auth_service, permission_service, token_service
from ..services.auth_service import AuthenticationError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    """
    Exchange email + password for a bearer token.

    Request body:
        {"email": "...", "password": "..."}

    Returns:
        200: {token, user}
        400: missing fields
        401: bad credentials or inactive account
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return error("Email and password are required", 400)

    try:
        user = auth_service.authenticate(email, password)
        token = token_service.issue_token(user)
    except AuthenticationError as e:
        return error(str(e), 401)
    except DOMAIN_ERRORS as e:
        return error_from(e)

    return success({"token": token, "user": user.to_dict()}, "Login successful")


@auth_bp.post("/register")
@require_auth
@require_admin
def register():
    """Admin-only account creation. Role defaults to STAFF."""
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_user(
            email=data.get("email"),
            password=data.get("password"),
            full_name=data.get("full_name"),
            role=data.get("role") or "STAFF",
        )
        token = token_service.issue_token(user)
    except DOMAIN_ERRORS as e:
        return error_from(e)

    current_app.logger.info("User %s registered by admin %s", user.id, g.current_user.id)
    return success({"token": token, "user": user.to_dict()}, "User registered successfully", 201)


@auth_bp.get("/me")
@require_auth
def me():
    return success(g.current_user.to_dict())


@auth_bp.get("/permissions")
@require_auth
def my_permissions():
    user = g.current_user
    return success({
        "role": user.role,
        "permissions": permission_service.get_role_permissions(user.role),
    })


@auth_bp.post("/change-password")
@require_auth
def change_password():
    data = request.get_json(silent=True) or {}
    try:
        auth_service.change_password(
            g.current_user,
            data.get("current_password"),
            data.get("new_password"),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(None, "Password changed successfully")


@auth_bp.post("/logout")
@require_auth
def logout():
    # Tokens are stateless; the client discards its copy.
    return success(None, "Logged out successfully")
