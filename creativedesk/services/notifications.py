# creativedesk/services/notifications.py
import logging
from typing import Any, Mapping

import redis
from rq import Queue
from rq import Retry

from creativedesk.core.config import settings

log = logging.getLogger(__name__)

_queue: Queue | None = None


def _get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue(settings.notifications_queue, connection=redis.from_url(settings.redis_url))
    return _queue


def enqueue(event_type: str, payload: Mapping[str, Any]) -> str | None:
    """
    Кладемо подію в чергу: у воркері викликається handle_event.
    Повертає job.id або None у разі помилки — доставка нотифікацій
    не має права валити вже закомічену зміну статусу.
    """
    if not settings.notifications_enabled:
        log.debug("notifications_disabled", extra={"event_type": event_type})
        return None

    try:
        job = _get_queue().enqueue(
            "creativedesk.workers.rq_worker.handle_event",
            event_type,
            dict(payload),
            job_timeout=60,
            retry=Retry(max=3, interval=[5, 15, 30]),
        )
        return getattr(job, "id", None)
    except Exception as e:
        log.exception("Failed to enqueue event '%s': %s", event_type, e)
        return None


def notify_status_changed(ticket: dict, actor: dict, old: str, new: str) -> None:
    enqueue("status_changed", {"ticket": ticket, "actor": actor, "from": old, "to": new})


def notify_revision_submitted(ticket: dict, actor: dict, version: int, asset_count: int) -> None:
    enqueue("revision_submitted", {
        "ticket": ticket,
        "actor": actor,
        "version": version,
        "asset_count": asset_count,
    })


def notify_changes_requested(ticket: dict, actor: dict, version: int, message: str) -> None:
    enqueue("changes_requested", {"ticket": ticket, "actor": actor, "version": version, "message": message})


def notify_ticket_completed(ticket: dict, actor: dict) -> None:
    enqueue("ticket_completed", {"ticket": ticket, "actor": actor})


def notify_bulk_status_changed(actor: dict, status: str, ticket_ids: list[int]) -> None:
    enqueue("bulk_status_changed", {"actor": actor, "to": status, "ticket_ids": ticket_ids})
