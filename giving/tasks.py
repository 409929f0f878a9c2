"""
Background tasks for RQ (Redis Queue).

Run worker: rq worker -u $REDIS_URL
Due-payment sweep (cron): python scripts/run_due_payments.py

Every cycle is claimed in Redis under (series id, due date) before it is
charged, so concurrent sweeps and queued jobs charge a period at most once.
"""

from __future__ import annotations
import logging
import os
from datetime import datetime
from typing import Dict, Optional

from giving.services.donation_status import DonationStatus
from giving.services.exceptions import ExternalServiceError
from giving.services.factory import GivingServices, build_services
from giving.utils.cache import REDIS_URL, claim_once

logger = logging.getLogger(__name__)

CLAIM_TTL_SECONDS = int(os.getenv("CYCLE_CLAIM_TTL_SECONDS", str(24 * 3600)))

_services: Optional[GivingServices] = None


def _get_services() -> GivingServices:
    global _services
    if _services is None:
        _services = build_services(enqueue_cycle=enqueue_recurring_cycle)
    return _services


def _claim_key(recurring: Dict) -> str:
    due = recurring["next_payment_date"]
    return f"recurring:{recurring['id']}:due:{due.isoformat()}"


def run_recurring_cycle(
    recurring_id: int, services: Optional[GivingServices] = None
) -> Optional[Dict]:
    """Charge the current cycle of one series if it is due and unclaimed."""
    svc = services or _get_services()
    recurring = svc.recurring.get(recurring_id)
    if recurring["next_payment_date"] > svc.recurring.clock():
        return None
    if not claim_once(_claim_key(recurring), CLAIM_TTL_SECONDS):
        logger.info("recurring %s cycle already claimed", recurring_id)
        return None
    try:
        return svc.recurring.run_cycle(recurring)
    except ExternalServiceError as e:
        # the attempt is recorded and the series paused; nothing left to do here
        logger.warning("recurring %s cycle errored: %s", recurring_id, e.message)
        return None


def process_due_recurring_donations(
    now: Optional[datetime] = None,
    limit: int = 100,
    services: Optional[GivingServices] = None,
) -> Dict[str, int]:
    svc = services or _get_services()
    stats = {"completed": 0, "failed": 0, "skipped": 0, "errors": 0}
    for recurring in svc.recurring.list_due(now, limit):
        if not claim_once(_claim_key(recurring), CLAIM_TTL_SECONDS):
            stats["skipped"] += 1
            continue
        try:
            donation = svc.recurring.run_cycle(recurring)
        except ExternalServiceError as e:
            logger.warning("recurring %s cycle errored: %s", recurring["id"], e.message)
            stats["errors"] += 1
            continue
        if donation is None:
            stats["skipped"] += 1
        elif donation["status"] == DonationStatus.COMPLETED.value:
            stats["completed"] += 1
        else:
            stats["failed"] += 1
    logger.info("due-payment sweep: %s", stats)
    return stats


def enqueue_recurring_cycle(recurring_id: int, services: Optional[GivingServices] = None) -> bool:
    """
    Enqueue run_recurring_cycle for background processing.
    Returns True if enqueued, False if run synchronously (no queue).
    """
    use_queue = os.getenv("USE_TASK_QUEUE", "0") == "1"
    if not use_queue:
        run_recurring_cycle(recurring_id, services)
        return False

    try:
        from redis import Redis
        from rq import Queue

        conn = Redis.from_url(REDIS_URL, decode_responses=False)
        q = Queue("default", connection=conn)
        q.enqueue(run_recurring_cycle, recurring_id, job_timeout="2m")
        return True
    except Exception as e:
        # Fallback to sync if queue unavailable
        logger.warning("RQ enqueue failed (%s), running sync", e)
        run_recurring_cycle(recurring_id, services)
        return False
