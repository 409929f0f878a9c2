from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from giving.services.factory import services
from giving.utils.authz import current_user_id, ensure_can_act_for, require_admin, requested_user_id
from giving.utils.serialize import json_safe, serialize_row

donations_bp = Blueprint("donations", __name__)


# POST /api/donations  { amount, currency?, payment_method?, payment_token, donor_*?, message?, is_anonymous? }
@donations_bp.post("/")
@jwt_required(optional=True)
def create():
    body = request.get_json(force=True, silent=True) or {}
    token = (body.get("payment_token") or "").strip()
    if body.get("amount") is None or not token:
        return jsonify({"error": "amount and payment_token are required"}), 400

    donation = {
        "amount": body.get("amount"),
        "currency": body.get("currency") or "USD",
        "payment_method": body.get("payment_method") or "credit_card",
        "donor_name": (body.get("donor_name") or "").strip() or None,
        "donor_email": (body.get("donor_email") or "").strip() or None,
        "donor_phone": (body.get("donor_phone") or "").strip() or None,
        "message": body.get("message") or None,
        "is_anonymous": bool(body.get("is_anonymous")),
        "country_code": body.get("country_code") or None,
        "user_id": current_user_id(),
        "ip_address": request.headers.get("X-Forwarded-For", request.remote_addr),
    }
    saved = services().donations.process_donation(donation, token)
    return jsonify(serialize_row(saved)), 201


# GET /api/donations/history?user_id=  (user_id only honoured for admins)
@donations_bp.get("/history")
@jwt_required()
def history():
    rows = services().donations.history(requested_user_id())
    return jsonify([serialize_row(r) for r in rows]), 200


# GET /api/donations/statistics?start_date=&end_date=  (admin)
@donations_bp.get("/statistics")
@require_admin
def statistics():
    stats = services().donations.statistics(
        request.args.get("start_date"), request.args.get("end_date")
    )
    return jsonify(json_safe(stats)), 200


# GET /api/donations/tax-year/2024?user_id=  -> completed donations made that year
@donations_bp.get("/tax-year/<int:year>")
@jwt_required()
def tax_year(year):
    rows = services().donations.by_tax_year(year, requested_user_id())
    return jsonify([serialize_row(r) for r in rows]), 200


@donations_bp.get("/<int:donation_id>")
@jwt_required()
def get_one(donation_id):
    donation = services().donations.get(donation_id)
    ensure_can_act_for(donation.get("user_id"))
    return jsonify(serialize_row(donation)), 200


# PATCH /api/donations/<id>/status  { status }
@donations_bp.patch("/<int:donation_id>/status")
@require_admin
def update_status(donation_id):
    body = request.get_json(force=True, silent=True) or {}
    if not body.get("status"):
        return jsonify({"error": "status required"}), 400
    updated = services().donations.update_status(donation_id, body["status"])
    return jsonify(serialize_row(updated)), 200
