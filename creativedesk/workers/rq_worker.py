# creativedesk/workers/rq_worker.py
import os
import logging
import json
import hmac, hashlib
from typing import Any, Callable, Mapping

import redis
import requests
from rq import Queue, Worker

from creativedesk.core.config import settings
from creativedesk.core.logging import setup_logging

logger = logging.getLogger("worker.notifications")


def _sign(body: bytes) -> str | None:
    if not settings.webhook_secret:
        return None
    return hmac.new(settings.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _post(event_type: str, payload: Mapping[str, Any]) -> None:
    """
    Webhook з HMAC-підписом. Помилка мережі / не-2xx — виняток, RQ повторить
    job згідно з Retry з services.notifications.
    """
    url = settings.webhook_url
    if not url:
        logger.debug("webhook_url_missing", extra={"event_type": event_type})
        return
    body = json.dumps(
        {"event": event_type, "data": dict(payload)},
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")
    headers = {"Content-Type": "application/json", "X-CreativeDesk-Event": event_type}
    sig = _sign(body)
    if sig:
        headers["X-CreativeDesk-Signature"] = f"sha256={sig}"
    r = requests.post(url, data=body, headers=headers, timeout=10)
    r.raise_for_status()
    logger.info("webhook_sent", extra={"event_type": event_type, "status": r.status_code})


def send_mail_mock(to: str, subject: str, body: str) -> None:
    logger.info("SEND_MAIL", extra={"to": to, "subject": subject, "body_len": len(body)})


def _ticket_label(payload: Mapping[str, Any]) -> str:
    t = payload.get("ticket") or {}
    return f"#{t.get('id')} {t.get('title') or ''}".strip()


def on_ticket_created(payload: Mapping[str, Any]) -> None:
    logger.info("ticket_created", extra={"ticket_id": (payload.get("ticket") or {}).get("id")})
    _post("ticket.created", payload)


def on_status_changed(payload: Mapping[str, Any]) -> None:
    ticket_id = (payload.get("ticket") or {}).get("id")
    logger.info("status_changed", extra={"ticket_id": ticket_id, "from": payload.get("from"), "to": payload.get("to")})
    _post("ticket.status_changed", payload)


def on_revision_submitted(payload: Mapping[str, Any]) -> None:
    _post("ticket.revision_submitted", payload)
    send_mail_mock(
        "customer",
        f"Ticket {_ticket_label(payload)}: version {payload.get('version')} is ready for review",
        f"{payload.get('asset_count', 0)} file(s) attached.",
    )


def on_changes_requested(payload: Mapping[str, Any]) -> None:
    _post("ticket.changes_requested", payload)
    send_mail_mock(
        "creative",
        f"Ticket {_ticket_label(payload)}: changes requested on version {payload.get('version')}",
        payload.get("message") or "",
    )


def on_ticket_completed(payload: Mapping[str, Any]) -> None:
    _post("ticket.completed", payload)
    send_mail_mock("creative", f"Ticket {_ticket_label(payload)} was approved", "The customer marked the ticket as done.")


def on_bulk_status_changed(payload: Mapping[str, Any]) -> None:
    logger.info("bulk_status_changed", extra={"to": payload.get("to"), "count": len(payload.get("ticket_ids") or [])})
    _post("ticket.bulk_status_changed", payload)


EVENT_HANDLERS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    "ticket_created": on_ticket_created,
    "status_changed": on_status_changed,
    "revision_submitted": on_revision_submitted,
    "changes_requested": on_changes_requested,
    "ticket_completed": on_ticket_completed,
    "bulk_status_changed": on_bulk_status_changed,
}


def handle_event(event_type: str, payload: Mapping[str, Any] | None = None) -> None:
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("unknown_event", extra={"event_type": event_type})
        return
    handler(payload or {})


def main() -> None:
    setup_logging(settings.log_level)
    logger.info("worker_starting", extra={"queue": settings.notifications_queue, "redis": settings.redis_url})
    conn = redis.from_url(settings.redis_url)
    queue = Queue(settings.notifications_queue, connection=conn)
    worker = Worker([queue], connection=conn, name=os.getenv("WORKER_NAME", "notifications-worker"))
    worker.work(logging_level=logging.INFO)


if __name__ == "__main__":
    main()
