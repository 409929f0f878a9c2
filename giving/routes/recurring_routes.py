from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from giving.services.factory import services
from giving.utils.authz import current_user_id, ensure_can_act_for, requested_user_id
from giving.utils.serialize import serialize_row

recurring_bp = Blueprint("recurring", __name__)


def _owned(recurring_id: int):
    recurring = services().recurring.get(recurring_id)
    ensure_can_act_for(recurring["user_id"])
    return recurring


# POST /api/donations/recurring
#   { amount, currency?, frequency, payment_method?, payment_token,
#     total_payments_count?, end_date?, billing? }
@recurring_bp.post("/")
@jwt_required()
def create():
    body = request.get_json(force=True, silent=True) or {}
    token = (body.get("payment_token") or "").strip()
    if body.get("amount") is None or not token:
        return jsonify({"error": "amount and payment_token are required"}), 400

    recurring = {
        "user_id": current_user_id(),
        "amount": body.get("amount"),
        "currency": body.get("currency") or "USD",
        "frequency": body.get("frequency") or "monthly",
        "payment_method": body.get("payment_method") or "credit_card",
        "total_payments_count": body.get("total_payments_count"),
        "end_date": body.get("end_date"),
        "billing": body.get("billing") or None,
    }
    created = services().recurring.setup(recurring, token)
    return jsonify(serialize_row(created)), 201


@recurring_bp.get("/")
@jwt_required()
def list_mine():
    rows = services().recurring.list_for_user(current_user_id())
    return jsonify([serialize_row(r) for r in rows]), 200


# GET /api/donations/recurring/tax-year/2024?user_id=  -> series that collected that year
@recurring_bp.get("/tax-year/<int:year>")
@jwt_required()
def tax_year(year):
    rows = services().recurring.by_tax_year(year, requested_user_id())
    return jsonify([serialize_row(r) for r in rows]), 200


@recurring_bp.get("/<int:recurring_id>")
@jwt_required()
def get_one(recurring_id):
    return jsonify(serialize_row(_owned(recurring_id))), 200


# PATCH /api/donations/recurring/<id>/status  { status }
@recurring_bp.patch("/<int:recurring_id>/status")
@jwt_required()
def update_status(recurring_id):
    body = request.get_json(force=True, silent=True) or {}
    if not body.get("status"):
        return jsonify({"error": "status required"}), 400
    _owned(recurring_id)
    updated = services().recurring.update_status(recurring_id, body["status"])
    return jsonify(serialize_row(updated)), 200


@recurring_bp.post("/<int:recurring_id>/cancel")
@jwt_required()
def cancel(recurring_id):
    _owned(recurring_id)
    return jsonify(serialize_row(services().recurring.cancel(recurring_id))), 200


@recurring_bp.post("/<int:recurring_id>/retry")
@jwt_required()
def retry(recurring_id):
    _owned(recurring_id)
    return jsonify(serialize_row(services().recurring.retry_failed(recurring_id))), 200


@recurring_bp.get("/<int:recurring_id>/history")
@jwt_required()
def history(recurring_id):
    _owned(recurring_id)
    rows = services().recurring.history(recurring_id)
    return jsonify([serialize_row(r) for r in rows]), 200
