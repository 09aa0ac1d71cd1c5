# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/digitalshop/routes/products.py
"""
Product catalogue routes.

SECURITY: All routes require authentication.
- Read operations are open to every authenticated role
- Write operations require MANAGER or ADMIN

quantity_on_hand is not writable here; stock only moves through goods
receipts, sales and stock adjustments.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..models import Product
from ..responses import success
from ..services import products_service
from ..validation import ModelValidationPolicy, bool_param, validate_payload

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name"},
    non_negative_fields={
        "cost_price", "selling_price", "average_cost", "last_cost",
        "reorder_level", "conversion_factor", "tax_rate",
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _clean_payload() -> dict:
    payload = request.get_json(silent=True) or {}
    if isinstance(payload, dict) and "sku" in payload and not (payload["sku"] or "").strip():
        # Blank SKU on create means "allocate one"
        payload = {k: v for k, v in payload.items() if k != "sku"}
    return payload


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    - search: name / sku / barcode substring
    - category: exact category
    - include_inactive: true to include soft-deleted products
    """
    result = products_service.list_products(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        category=request.args.get("category"),
        include_inactive=bool_param(request.args.get("include_inactive")),
    )
    return success(result)


@products_bp.get("/search")
@require_auth
def search_products():
    term = request.args.get("q", "")
    limit = request.args.get("limit", 20, type=int)
    return success(products_service.search_products(term, limit=max(1, min(limit, 100))))


@products_bp.get("/categories")
@require_auth
def list_categories():
    return success(products_service.list_categories())


@products_bp.get("/low-stock")
@require_auth
def low_stock():
    return success([p.to_dict() for p in products_service.low_stock_products()])


@products_bp.get("/sku/<sku>")
@require_auth
def get_by_sku(sku: str):
    try:
        product = products_service.get_product_by_sku(sku)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(product.to_dict())


@products_bp.get("/barcode/<barcode>")
@require_auth
def get_by_barcode(barcode: str):
    try:
        product = products_service.get_product_by_barcode(barcode)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(product.to_dict())


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(product.to_dict())


@products_bp.post("")
@require_auth
@require_manager
def create_product_route():
    """
    Create a new product. A missing or blank sku is auto-assigned (PRD-#####).

    Returns 409 when sku, barcode or name clashes with an active product.
    """
    try:
        patch = validate_payload(model=Product, payload=_clean_payload(), policy=PRODUCT_POLICY, partial=False)
        created = products_service.create_product(patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)

    return success(created.to_dict(), "Product created successfully", 201)


@products_bp.put("/<int:product_id>")
@require_auth
@require_manager
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)

    return success(updated.to_dict(), "Product updated successfully")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_manager
def delete_product_route(product_id: int):
    """Soft delete (is_active = false)."""
    try:
        products_service.delete_product(product_id=product_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)

    return success(None, "Product deleted successfully")
