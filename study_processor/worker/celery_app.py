import os

from celery import Celery

# Importing config loads .env for the worker too (it often runs without `source .env`)
from study_processor.core import config  # noqa: F401
from study_processor.core.celery_settings import is_test_env


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v and v.strip() else default


BROKER_URL = (
    _env("CELERY_BROKER_URL")
    or _env("REDIS_URL")
    or "redis://localhost:6379/0"
)

RESULT_BACKEND = _env("CELERY_RESULT_BACKEND") or BROKER_URL

# IMPORTANT: the variable name MUST be `celery_app`
celery_app = Celery(
    "ai_study_processor",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
)

# Ensure tasks are discovered
celery_app.autodiscover_tasks(["study_processor.worker"])

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_track_started=True,
    result_extended=True,
    enable_utc=True,
    timezone="UTC",
)

if is_test_env():
    # run tasks inline, keep failures on the result instead of raising into the API
    celery_app.conf.update(
        task_always_eager=True,
        task_eager_propagates=False,
        task_store_eager_result=False,
    )

__all__ = ["celery_app"]
