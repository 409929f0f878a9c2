import logging

import stripe
from flask import Blueprint, request, jsonify

from giving.services.factory import services
from giving.services.webhook_service import process_stripe_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.post("/webhooks/stripe")
def stripe_webhook():
    try:
        status, resp = process_stripe_event(
            payload=request.data,
            sig_header=request.headers.get("Stripe-Signature"),
            donations=services().donations,
        )
        return jsonify(resp), status
    except (ValueError, stripe.SignatureVerificationError) as e:
        # bad signature or payload; never leak details to Stripe
        logger.warning("webhook rejected: %s", e)
        return jsonify({"error": "bad payload"}), 400
