from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required, get_jwt

from giving.utils.authz import current_user_id, is_admin

core = Blueprint("core", __name__)


@core.get("/")
def root():
    return jsonify({"service": "giving-api", "ok": True})


@core.get("/api")
def api_index():
    """Public routes grouped by blueprint, read from the live URL map."""
    groups = {}
    for rule in current_app.url_map.iter_rules():
        if not rule.rule.startswith("/api") or rule.endpoint == "static":
            continue
        name = rule.endpoint.split(".", 1)[0]
        methods = sorted(m for m in rule.methods if m not in ("HEAD", "OPTIONS"))
        groups.setdefault(name, []).append(f"{rule.rule} ({', '.join(methods)})")
    return jsonify({"endpoints": {k: sorted(v) for k, v in sorted(groups.items())}})


@core.get("/api/me")
@jwt_required()
def me():
    return jsonify(
        {
            "user_id": current_user_id(),
            "role": get_jwt().get("role"),
            "is_admin": is_admin(),
        }
    )
