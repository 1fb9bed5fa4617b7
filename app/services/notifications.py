import logging
from typing import Any, Mapping

import redis
from rq import Queue, Retry

from app.core.config import settings

log = logging.getLogger(__name__)

_queue: Queue | None = None


def _get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue(settings.notifications_queue, connection=redis.from_url(settings.redis_url))
    return _queue


def enqueue(event_type: str, payload: Mapping[str, Any]) -> str | None:
    """
    Кладемо доменну подію в чергу: у воркері її обробить handle_event.
    Повертає job.id або None у разі помилки: перехід уже закомічено,
    доставка подій best-effort і не має валити HTTP-запит.
    """
    if not settings.events_enabled:
        return None

    q = _get_queue()
    try:
        job = q.enqueue(
            "app.workers.rq_worker.handle_event",
            event_type,
            dict(payload),
            job_timeout=60,
            retry=Retry(max=3, interval=[5, 15, 30]),
        )
        return getattr(job, "id", None)
    except Exception as e:
        log.exception("Failed to enqueue event '%s': %s", event_type, e)
        return None
