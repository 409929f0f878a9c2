from flask import Blueprint, Response, jsonify, request
from prometheus_client import REGISTRY, generate_latest, CONTENT_TYPE_LATEST

from giving.services.factory import services
from giving.utils.authz import require_admin
from giving.utils.serialize import serialize_row

admin_bp = Blueprint("admin", __name__)


def _limit() -> int:
    try:
        return max(1, min(int(request.args.get("limit", 100)), 500))
    except ValueError:
        return 100


@admin_bp.get("/admin/metrics")
@require_admin
def metrics():
    """Prometheus metrics endpoint. Admin token required."""
    return Response(
        generate_latest(REGISTRY),
        mimetype=CONTENT_TYPE_LATEST,
    )


# GET /admin/recurring/due?limit=100 -> series a sweep would charge now
@admin_bp.get("/admin/recurring/due")
@require_admin
def due_recurring():
    rows = services().recurring.list_due(limit=_limit())
    return jsonify([serialize_row(r) for r in rows]), 200


# POST /admin/recurring/run-due -> run the sweep inline, same as the cron script
@admin_bp.post("/admin/recurring/run-due")
@require_admin
def run_due():
    from giving.tasks import process_due_recurring_donations

    stats = process_due_recurring_donations(limit=_limit(), services=services())
    return jsonify(stats), 200
