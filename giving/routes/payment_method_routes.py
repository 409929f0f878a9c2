from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from giving.services.factory import services
from giving.services.payment_method_service import BILLING_FIELDS
from giving.utils.authz import current_user_id
from giving.utils.serialize import serialize_row

payment_methods_bp = Blueprint("payment_methods", __name__)

# provider references stay server-side
HIDDEN = ("provider_payment_id", "provider_customer_id")


# POST /api/payment-methods  { payment_token, payment_type, billing_* }
@payment_methods_bp.post("/")
@jwt_required()
def create():
    body = request.get_json(force=True, silent=True) or {}
    token = (body.get("payment_token") or "").strip()
    if not token:
        return jsonify({"error": "payment_token required"}), 400
    billing = {f: body.get(f) for f in BILLING_FIELDS}
    method = services().payment_methods.create(
        current_user_id(), token, body.get("payment_type") or "credit_card", billing=billing
    )
    return jsonify(serialize_row(method, hide=HIDDEN)), 201


@payment_methods_bp.get("/")
@jwt_required()
def list_mine():
    rows = services().payment_methods.list(current_user_id())
    return jsonify([serialize_row(r, hide=HIDDEN) for r in rows]), 200


@payment_methods_bp.patch("/<int:method_id>/default")
@jwt_required()
def make_default(method_id):
    method = services().payment_methods.set_default(method_id, current_user_id())
    return jsonify(serialize_row(method, hide=HIDDEN)), 200


@payment_methods_bp.delete("/<int:method_id>")
@jwt_required()
def remove(method_id):
    services().payment_methods.deactivate(method_id, current_user_id())
    return jsonify({"ok": True}), 200


@payment_methods_bp.get("/<int:method_id>/validate")
@jwt_required()
def validate(method_id):
    valid = services().payment_methods.validate(method_id, current_user_id())
    return jsonify({"id": method_id, "valid": valid}), 200
