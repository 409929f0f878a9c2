from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from giving.services.factory import services
from giving.utils.authz import current_user_id, ensure_can_act_for, require_admin
from giving.utils.serialize import serialize_row

receipts_bp = Blueprint("receipts", __name__)


def _tax_year_from_body():
    body = request.get_json(force=True, silent=True) or {}
    return body.get("tax_year")


# POST /api/donations/<id>/receipts  { tax_year? }
@receipts_bp.post("/donations/<int:donation_id>/receipts")
@jwt_required()
def issue_for_donation(donation_id):
    donation = services().donations.get(donation_id)
    ensure_can_act_for(donation.get("user_id"))
    receipt = services().receipts.issue_for_donation(donation_id, _tax_year_from_body())
    return jsonify(serialize_row(receipt)), 201


@receipts_bp.get("/donations/<int:donation_id>/receipts")
@jwt_required()
def donation_receipts(donation_id):
    ensure_can_act_for(services().donations.get(donation_id).get("user_id"))
    rows = services().receipts.for_donation(donation_id)
    return jsonify([serialize_row(r) for r in rows]), 200


# POST /api/donations/recurring/<id>/receipts  { tax_year? }  (defaults to this year)
@receipts_bp.post("/donations/recurring/<int:recurring_id>/receipts")
@jwt_required()
def issue_for_recurring(recurring_id):
    ensure_can_act_for(services().recurring.get(recurring_id)["user_id"])
    receipt = services().receipts.issue_for_recurring(recurring_id, _tax_year_from_body())
    return jsonify(serialize_row(receipt)), 201


@receipts_bp.get("/donations/recurring/<int:recurring_id>/receipts")
@jwt_required()
def recurring_receipts(recurring_id):
    ensure_can_act_for(services().recurring.get(recurring_id)["user_id"])
    rows = services().receipts.for_recurring(recurring_id)
    return jsonify([serialize_row(r) for r in rows]), 200


@receipts_bp.get("/receipts/<string:number>")
@jwt_required()
def by_number(number):
    receipt = services().receipts.get_by_number(number)
    ensure_can_act_for(receipt.get("user_id"))
    return jsonify(serialize_row(receipt)), 200


# GET /api/receipts/year/2024 -> the caller's receipts
@receipts_bp.get("/receipts/year/<int:year>")
@jwt_required()
def my_receipts(year):
    rows = services().receipts.by_tax_year(year, current_user_id())
    return jsonify([serialize_row(r) for r in rows]), 200


@receipts_bp.get("/admin/receipts/year/<int:year>")
@require_admin
def all_receipts(year):
    rows = services().receipts.by_tax_year(year)
    return jsonify([serialize_row(r) for r in rows]), 200


# POST /api/admin/receipts/generate-annual/2024
@receipts_bp.post("/admin/receipts/generate-annual/<int:year>")
@require_admin
def generate_annual(year):
    rows = services().receipts.generate_annual(year)
    return jsonify({"tax_year": year, "count": len(rows), "receipts": [serialize_row(r) for r in rows]}), 200
