"""Celery tasks wrapping the republish service."""

from __future__ import annotations

import asyncio
import logging
import threading
from functools import lru_cache
from typing import Any, Sequence

from .celery_app import REPUBLISH_ALL_TASK, celery_app
from .config import RepublisherConfig
from .errors import ReentrancyError
from .service import RepublishService, normalize_ad_ids

LOGGER = logging.getLogger(__name__)

_SERVICE_LOCK = threading.Lock()


@lru_cache(maxsize=1)
def _build_service() -> RepublishService:
    return RepublishService(RepublisherConfig.from_env())


def get_service() -> RepublishService:
    """Process-wide service; its tracker is the run state shared by every worker thread."""
    with _SERVICE_LOCK:
        return _build_service()


@celery_app.task(name=REPUBLISH_ALL_TASK)
def republish_all_task(force_run: bool = False) -> dict[str, Any]:
    service = get_service()
    try:
        result = asyncio.run(service.run_republish_all(force_run=force_run))
    except ReentrancyError as exc:
        LOGGER.warning("Skipping republish run; run %s is still active", exc.process_id)
        return {"status": "skipped", "reason": "already_running"}
    return {"status": "ok", **result.to_dict()}


@celery_app.task(name="republisher.republish_specific")
def republish_specific_task(ad_ids: Sequence[str], force_run: bool = False) -> dict[str, Any]:
    try:
        identifiers = normalize_ad_ids(ad_ids)
    except ValueError as exc:
        LOGGER.warning("Rejected specific republish request: %s", exc)
        return {"status": "rejected", "reason": str(exc)}

    service = get_service()
    try:
        result = asyncio.run(service.run_republish_specific(identifiers, force_run=force_run))
    except ReentrancyError as exc:
        LOGGER.warning("Skipping specific republish; run %s is still active", exc.process_id)
        return {"status": "skipped", "reason": "already_running"}
    return {"status": "ok", **result.to_dict()}


@celery_app.task(name="republisher.status")
def republish_status_task() -> dict[str, Any]:
    return get_service().get_status().to_dict()


__all__ = ["get_service", "republish_all_task", "republish_specific_task", "republish_status_task"]
