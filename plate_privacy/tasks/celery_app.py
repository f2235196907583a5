from __future__ import annotations

import os
from typing import Mapping, Optional

from celery import Celery

PHOTO_QUEUE = "vehicle_photos"


def _broker_urls(env: Mapping[str, str]) -> tuple:
    redis_url = (env.get("REDIS_URL") or "").strip()
    broker = (env.get("CELERY_BROKER_URL") or "").strip() or redis_url or "memory://"
    # In-memory defaults only work inside one process (tests, local dev).
    backend = (env.get("CELERY_RESULT_BACKEND") or "").strip() or redis_url or "cache+memory://"
    return broker, backend


def make_celery(environ: Optional[Mapping[str, str]] = None) -> Celery:
    """
    Celery app for photo anonymization workers.

    REDIS_URL doubles as broker and result backend unless CELERY_BROKER_URL /
    CELERY_RESULT_BACKEND override it. Each worker process keeps its own
    model session, so a worker pool is the unit of inference concurrency.
    """
    env = environ if environ is not None else os.environ
    broker, backend = _broker_urls(env)

    app = Celery("plate_privacy", broker=broker, backend=backend, include=["plate_privacy.tasks.image_tasks"])
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        broker_connection_retry_on_startup=True,
        task_routes={"plate_privacy.process_vehicle_photo": {"queue": PHOTO_QUEUE}},
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        # Upper bound for one photo, model load included.
        task_time_limit=int(env.get("PHOTO_TASK_TIME_LIMIT_S") or 120),
    )
    return app


celery_app = make_celery()
