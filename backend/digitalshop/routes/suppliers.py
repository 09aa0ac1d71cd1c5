# Overview: Flask API routes for suppliers.

from flask import Blueprint, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..models import Supplier
from ..responses import success
from ..services import supplier_service
from ..validation import ModelValidationPolicy, bool_param, validate_payload

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=set(supplier_service.SUPPLIER_MUTABLE_FIELDS),
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers():
    result = supplier_service.list_suppliers(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        include_inactive=bool_param(request.args.get("include_inactive")),
    )
    return success(result)


@suppliers_bp.get("/search")
@require_auth
def search_suppliers():
    suppliers = supplier_service.search_suppliers(request.args.get("q", ""))
    return success([s.to_dict() for s in suppliers])


@suppliers_bp.get("/with-payables")
@require_auth
@require_manager
def suppliers_with_payables():
    return success([s.to_dict() for s in supplier_service.suppliers_with_payables()])


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(supplier.to_dict())


@suppliers_bp.get("/<int:supplier_id>/transactions")
@require_auth
def supplier_transactions(supplier_id: int):
    try:
        receipts = supplier_service.supplier_transactions(supplier_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success([r.to_dict() for r in receipts])


@suppliers_bp.post("")
@require_auth
@require_manager
def create_supplier():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = supplier_service.create_supplier(patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(supplier.to_dict(), "Supplier created successfully", 201)


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_manager
def update_supplier(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        supplier = supplier_service.update_supplier(supplier_id=supplier_id, patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(supplier.to_dict(), "Supplier updated successfully")


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_manager
def delete_supplier(supplier_id: int):
    try:
        supplier_service.delete_supplier(supplier_id=supplier_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(None, "Supplier deleted successfully")
