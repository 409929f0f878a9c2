from flask import Blueprint, request, jsonify

from giving.services.factory import services
from giving.utils.authz import require_admin
from giving.utils.serialize import serialize_row

currencies_bp = Blueprint("currencies", __name__)


@currencies_bp.get("/")
def list_active():
    rows = services().currency.list_active()
    return jsonify([serialize_row(r) for r in rows]), 200


@currencies_bp.get("/<code>")
def get_one(code):
    return jsonify(serialize_row(services().currency.get_currency(code))), 200


# GET /api/currencies/convert/EUR/USD/100
@currencies_bp.get("/convert/<from_code>/<to_code>/<amount>")
def convert(from_code, to_code, amount):
    converted = services().currency.convert(amount, from_code, to_code)
    return (
        jsonify(
            {
                "from": from_code.upper(),
                "to": to_code.upper(),
                "amount": amount,
                "converted_amount": str(converted),
            }
        ),
        200,
    )


# POST /api/currencies  { code, name, symbol, exchange_rate, is_active? }
@currencies_bp.post("/")
@require_admin
def create():
    body = request.get_json(force=True, silent=True) or {}
    if not body.get("code") or body.get("exchange_rate") is None:
        return jsonify({"error": "code and exchange_rate are required"}), 400
    currency = services().currency.create_currency(
        code=body["code"],
        name=body.get("name") or "",
        symbol=body.get("symbol") or "",
        exchange_rate=body["exchange_rate"],
        is_active=bool(body.get("is_active", True)),
    )
    return jsonify(serialize_row(currency)), 201


# PATCH /api/currencies/<code>/rate  { exchange_rate }
@currencies_bp.patch("/<code>/rate")
@require_admin
def update_rate(code):
    body = request.get_json(force=True, silent=True) or {}
    if body.get("exchange_rate") is None:
        return jsonify({"error": "exchange_rate required"}), 400
    currency = services().currency.update_exchange_rate(code, body["exchange_rate"])
    return jsonify(serialize_row(currency)), 200


# PATCH /api/currencies/<code>/active  { is_active }
@currencies_bp.patch("/<code>/active")
@require_admin
def set_active(code):
    body = request.get_json(force=True, silent=True) or {}
    if "is_active" not in body:
        return jsonify({"error": "is_active required"}), 400
    currency = services().currency.set_active(code, bool(body["is_active"]))
    return jsonify(serialize_row(currency)), 200
