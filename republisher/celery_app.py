"""Celery application setup, including the periodic republish schedule."""

from __future__ import annotations

import logging
import os

from celery import Celery
from celery.schedules import ParseException, crontab
from celery.signals import after_setup_logger
from dotenv import load_dotenv

from .config import RepublisherConfig, ScheduleConfig
from .logging_config import build_file_handler, resolve_level

LOGGER = logging.getLogger(__name__)

REPUBLISH_ALL_TASK = "republisher.republish_all"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_cron_schedule(expression: str) -> crontab:
    """Convert a 5-field or 6-field (leading seconds) cron expression to a crontab."""

    fields = expression.split()
    if len(fields) == 6:
        fields = fields[1:]
    if len(fields) != 5:
        raise ValueError(f"Cron expression must have 5 or 6 fields, got {expression!r}")

    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


def build_beat_schedule(schedule: ScheduleConfig) -> dict[str, dict]:
    try:
        cron = parse_cron_schedule(schedule.cron)
    except (ValueError, ParseException) as exc:
        LOGGER.warning("Invalid cron schedule %r; periodic republish disabled: %s", schedule.cron, exc)
        return {}

    return {
        "republish-all": {
            "task": REPUBLISH_ALL_TASK,
            "schedule": cron,
            "kwargs": {"force_run": False},
        }
    }


def create_celery_app(config: RepublisherConfig | None = None) -> Celery:
    """Instantiate the Celery app with environment driven configuration."""

    load_dotenv()
    config = config or RepublisherConfig.from_env()

    broker_url = os.getenv("REPUBLISHER_CELERY_BROKER_URL") or "memory://"
    backend_url = os.getenv("REPUBLISHER_CELERY_RESULT_BACKEND") or "cache+memory://"

    app = Celery("republisher", broker=broker_url, backend=backend_url, include=["republisher.tasks"])
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_always_eager=_env_bool("REPUBLISHER_CELERY_TASK_ALWAYS_EAGER", True),
        worker_prefetch_multiplier=1,
        # Run state lives in process memory; all tasks must share one process.
        worker_pool="threads",
        broker_connection_retry_on_startup=True,
        timezone=config.schedule.timezone or "UTC",
        enable_utc=True,
        beat_schedule=build_beat_schedule(config.schedule),
    )
    return app


celery_app = create_celery_app()


@after_setup_logger.connect
def _configure_worker_logging(logger: logging.Logger, *_args, **_kwargs) -> None:
    logging_config = RepublisherConfig.from_env().logging
    logger.setLevel(resolve_level(logging_config.level))
    if logging_config.file_path:
        logger.addHandler(build_file_handler(logging_config.file_path))


__all__ = ["REPUBLISH_ALL_TASK", "build_beat_schedule", "celery_app", "create_celery_app", "parse_cron_schedule"]
