# Overview: User administration (listing, profile updates, deactivation).

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..extensions import db
from ..models import User
from ..permissions import ROLES
from ..validation import ConflictError, NotFoundError, ValidationError
from .auth_service import hash_password, normalize_email, validate_role

logger = logging.getLogger(__name__)

# Fields a user may change on their own profile.
SELF_FIELDS = {"full_name", "email"}
# Additional fields only an ADMIN may change.
ADMIN_FIELDS = {"role", "is_active"}


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users_query(*, role: str | None = None, is_active: bool | None = None, search: str | None = None):
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role.upper())
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(or_(func.lower(User.full_name).like(term), func.lower(User.email).like(term)))
    return query.order_by(User.full_name.asc())


def users_by_role(role: str) -> list[User]:
    role = validate_role(role)
    return (
        db.session.query(User)
        .filter(User.role == role, User.is_active.is_(True))
        .order_by(User.full_name.asc())
        .all()
    )


def user_stats() -> dict:
    rows = db.session.query(User.role, func.count(User.id)).group_by(User.role).all()
    by_role = {role: 0 for role in ROLES}
    by_role.update({role: count for role, count in rows})
    total = sum(by_role.values())
    active = db.session.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0
    return {
        "total": total,
        "active": active,
        "inactive": total - active,
        "by_role": by_role,
    }


def update_user(user_id: int, payload: dict, *, actor: User) -> User:
    """
    Apply a profile patch.

    Non-admins can only edit themselves and only SELF_FIELDS.
    """
    user = get_user(user_id)
    is_admin = actor.role == "ADMIN"
    if not is_admin and actor.id != user.id:
        raise PermissionError("You can only update your own profile")

    allowed = SELF_FIELDS | (ADMIN_FIELDS if is_admin else set())
    for key in payload:
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")

    if "email" in payload:
        email = normalize_email(payload["email"])
        if not email or "@" not in email:
            raise ValidationError("Invalid email address")
        clash = (
            db.session.query(User)
            .filter(User.email == email, User.id != user.id)
            .first()
        )
        if clash:
            raise ConflictError("Email already registered")
        user.email = email

    if "full_name" in payload:
        full_name = (payload["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("full_name cannot be blank")
        user.full_name = full_name

    if "role" in payload:
        user.role = validate_role(payload["role"])

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        if user.id == actor.id and payload["is_active"] is False:
            raise ValidationError("You cannot deactivate your own account")
        user.is_active = payload["is_active"]

    db.session.commit()
    logger.info("User %s updated by %s: %s", user.id, actor.id, sorted(payload.keys()))
    return user


def reset_password(user_id: int, new_password: str, *, actor: User) -> User:
    user = get_user(user_id)
    if not new_password or len(new_password) < 8:
        raise ValidationError("Password must be at least 8 characters")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    logger.info("Password for user %s reset by admin %s", user.id, actor.id)
    return user


def deactivate_user(user_id: int, *, actor: User) -> User:
    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = False
    db.session.commit()
    logger.info("User %s deactivated by %s", user.id, actor.id)
    return user
