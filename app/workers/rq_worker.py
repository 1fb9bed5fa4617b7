# app/workers/rq_worker.py
import os
import logging
import json
import hmac, hashlib
from typing import Any, Callable, Mapping

import redis
import requests
from rq import Queue, Worker

from app.core.config import settings
from app.core.logging import setup_logging

logger = logging.getLogger("worker.notifications")


def _encode(payload: Mapping[str, Any]) -> bytes:
    # підпис рахується саме по цих байтах, тож тіло серіалізуємо один раз
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")


def _sign(body: bytes) -> str | None:
    if not settings.webhook_secret:
        return None
    return hmac.new(settings.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _post(event_type: str, payload: Mapping[str, Any]) -> None:
    url = settings.webhook_url
    if not url:
        logger.debug("webhook_url_missing", extra={"event_type": event_type})
        return
    headers = {"Content-Type": "application/json", "X-Maintenance-Event": event_type}
    body = _encode(payload)
    sig = _sign(body)
    if sig:
        headers["X-Maintenance-Signature"] = f"sha256={sig}"
    r = requests.post(url, data=body, headers=headers, timeout=10)
    # 5xx -> виняток, rq повторить задачу за Retry з notifications.enqueue
    r.raise_for_status()
    logger.info("webhook_sent", extra={"event_type": event_type, "status": r.status_code})


def on_request_created(payload: Mapping[str, Any]) -> None:
    logger.info(
        "request_created",
        extra={"request_pk": payload.get("request_id"), "identifier": payload.get("custom_identifier")},
    )


def on_status_changed(payload: Mapping[str, Any]) -> None:
    logger.info(
        "status_changed",
        extra={"request_pk": payload.get("request_id"), "from": payload.get("from"), "to": payload.get("to")},
    )


def on_assignment(payload: Mapping[str, Any]) -> None:
    logger.info(
        "assignment_changed",
        extra={
            "request_pk": payload.get("request_id"),
            "assignment_type": payload.get("assignment_type"),
            "technician_id": payload.get("to_technician_id") or payload.get("from_technician_id"),
        },
    )


def on_confirmation(payload: Mapping[str, Any]) -> None:
    logger.info(
        "confirmation_resolved",
        extra={"request_pk": payload.get("request_id"), "actor_role": payload.get("actor_role")},
    )


def on_request_updated(payload: Mapping[str, Any]) -> None:
    logger.info(
        "request_updated",
        extra={"request_pk": payload.get("request_id"), "fields": payload.get("fields")},
    )


def on_comment_added(payload: Mapping[str, Any]) -> None:
    logger.info(
        "comment_added",
        extra={"request_pk": payload.get("request_id"), "comment_id": payload.get("comment_id")},
    )


EVENT_HANDLERS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    "request_created": on_request_created,
    "status_changed": on_status_changed,
    "request_assigned": on_assignment,
    "request_unassigned": on_assignment,
    "completion_confirmed": on_confirmation,
    "completion_rejected": on_confirmation,
    "closed_without_confirmation": on_confirmation,
    "request_updated": on_request_updated,
    "comment_added": on_comment_added,
}


def handle_event(event_type: str, payload: Mapping[str, Any] | None = None) -> None:
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("unknown_event", extra={"event_type": event_type})
        return
    payload = payload or {}
    handler(payload)
    _post(event_type, payload)


def main() -> None:
    setup_logging(settings.log_level)
    queue_name = settings.notifications_queue
    logger.info("worker_starting", extra={"queue": queue_name, "redis": settings.redis_url})
    conn = redis.from_url(settings.redis_url)
    queue = Queue(queue_name, connection=conn)
    worker = Worker([queue], connection=conn, name=os.getenv("WORKER_NAME", "notifications-worker"))
    worker.work(logging_level=logging.INFO)


if __name__ == "__main__":
    main()
