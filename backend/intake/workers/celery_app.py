"""
Celery app for queued document processing (PROCESSING_MODE=queued).
Inline mode never imports this module.

One durable direct queue, documents.process. Task kwargs carry the
object store path only; the worker downloads the blob itself.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from intake.core.config import settings

logger = logging.getLogger(__name__)

PROCESS_QUEUE = "documents.process"

DOCUMENTS_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(PROCESS_QUEUE, exchange=DOCUMENTS_EXCHANGE, routing_key=PROCESS_QUEUE, durable=True),
)

TASK_ROUTES = {
    "intake.workers.tasks.process_document": {"queue": PROCESS_QUEUE},
}

# Limits sized for one OCR + summary run per task.
PROCESSING_LIMITS = {
    "task_soft_time_limit": 300,
    "task_time_limit": 360,
    "worker_prefetch_multiplier": 1,
    "worker_max_tasks_per_child": 200,
}


def create_celery_app() -> Celery:
    app = Celery("document_intake")

    app.conf.update(
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,
        result_expires=3600,
        task_serializer="json",
        result_serializer="json",
        event_serializer="json",
        accept_content=["json"],
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue=PROCESS_QUEUE,
        task_default_exchange=DOCUMENTS_EXCHANGE.name,
        task_default_routing_key=PROCESS_QUEUE,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        timezone="UTC",
        enable_utc=True,
        **PROCESSING_LIMITS,
    )
    app.autodiscover_tasks(["intake.workers"])
    return app


celery_app = create_celery_app()


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s owner=%s",
        task_id, task.name, kwargs.get("document_id", "?"), kwargs.get("owner_id", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, kwargs.get("document_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, kwargs.get("document_id", "?"), exception,
        exc_info=True,
    )
