import os
import json
import logging
from typing import Tuple, Dict, Any

from giving.models.stripe_event import forget_event, mark_event_processed
from giving.services.donation_status import DonationStatus, can_transition

logger = logging.getLogger(__name__)

STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
DEV_SKIP = os.getenv("DEV_STRIPE_NO_VERIFY") == "1"


def _extract_event(
    payload: bytes, sig_header: str | None
) -> tuple[str | None, dict | None, dict]:
    """
    Return (event_type, data.object, raw_event_dict).

    - If STRIPE_WEBHOOK_SECRET is set and DEV_STRIPE_NO_VERIFY != 1, verify the signature.
    - Otherwise (dev mode), parse the JSON payload as-is.
    """
    if STRIPE_WEBHOOK_SECRET and not DEV_SKIP:
        import stripe

        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header or "",
            secret=STRIPE_WEBHOOK_SECRET,
        )
        event_dict = event.to_dict() if hasattr(event, "to_dict") else dict(event)
        ev_type = event_dict.get("type")
        obj = (event_dict.get("data") or {}).get("object") or {}
        return ev_type, obj, event_dict

    try:
        raw = json.loads(payload.decode("utf-8") or "{}")
    except (UnicodeDecodeError, ValueError):
        raw = {}
    if not isinstance(raw, dict):
        raw = {}

    if "type" in raw and "data" in raw:
        ev_type = raw.get("type")
        obj = (raw.get("data") or {}).get("object") or {}
        return ev_type, obj, raw

    wrapped = {"type": raw.get("type") or "", "data": {"object": raw}}
    return wrapped["type"], raw, wrapped


def process_stripe_event(
    payload: bytes, sig_header: str | None, donations
) -> Tuple[int, Dict[str, Any]]:
    """
    Handle selected Stripe events idempotently.

    `donations` is the DonationService; refunds go through its status
    transitions like any other change.
    """
    ev_type, obj, raw_event = _extract_event(payload, sig_header)

    charge_id = (obj or {}).get("id")
    event_id = (raw_event or {}).get("id") or f"dev:{ev_type}:{charge_id or 'nocharge'}"

    if not mark_event_processed(event_id, ev_type or "unknown", raw_event or {}):
        return 200, {"ok": True, "duplicate": True}

    try:
        return _apply(ev_type, charge_id, donations)
    except Exception:
        # unmark so the redelivered event is applied
        forget_event(event_id)
        raise


def _apply(ev_type, charge_id, donations) -> Tuple[int, Dict[str, Any]]:
    if ev_type == "charge.refunded":
        donation = donations.find_by_transaction(charge_id)
        if not donation:
            logger.info("refund for unknown charge %s ignored", charge_id)
            return 200, {"ignored": ev_type, "reason": "unknown charge"}
        if not can_transition(donation["status"], DonationStatus.REFUNDED):
            return 200, {"ignored": ev_type, "reason": f"donation is {donation['status']}"}
        donations.update_status(donation["id"], DonationStatus.REFUNDED)
        return 200, {"ok": True, "donation_id": donation["id"]}

    return 200, {"ignored": ev_type or "unknown"}
