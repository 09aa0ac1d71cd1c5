# Overview: Flask API routes for batch and movement inspection.

from flask import Blueprint, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import inventory_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/batches")
@require_auth
def list_batches():
    """Batches in FEFO order. Filters: product_id, status."""
    try:
        batches = inventory_service.list_batches(
            product_id=request.args.get("product_id", type=int),
            status=request.args.get("status"),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success([b.to_dict() for b in batches])


@inventory_bp.get("/batches/expiring")
@require_auth
def expiring_batches():
    days = request.args.get("days", 30, type=int)
    try:
        batches = inventory_service.expiring_batches(days=days)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success([b.to_dict() for b in batches])


@inventory_bp.get("/movements")
@require_auth
def list_movements():
    try:
        result = inventory_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("movement_type"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@inventory_bp.get("/valuation")
@require_auth
@require_manager
def valuation():
    return success(inventory_service.inventory_valuation())
