# Overview: JSON envelope helpers shared by every route: {success, data|error, message?}.

from __future__ import annotations

from flask import jsonify


def success(data=None, message: str | None = None, status: int = 200):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def error(message: str, status: int, **extra):
    body = {"success": False, "error": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return jsonify(body), status


def paginate(query, *, page: int | None, per_page: int | None, serializer) -> dict:
    """
    Apply optional page/per_page to an ordered SQLAlchemy query.

    When page is omitted every row is returned without pagination metadata.
    """
    if page is None:
        items = [serializer(obj) for obj in query.all()]
        return {"items": items, "count": len(items)}

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    if per_page < 1:
        per_page = 20
    page = max(page, 1)  # Ensure page >= 1

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serializer(obj) for obj in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
