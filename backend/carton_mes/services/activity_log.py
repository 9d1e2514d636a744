"""Fire-and-forget activity notifications."""

from __future__ import annotations

import logging
from typing import Any

from ..config import settings


logger = logging.getLogger(__name__)

ACTION_STEP_COMPLETED = "step_completed"
ACTION_JOB_ARCHIVED = "job_archived"
ACTION_MAJOR_HOLD = "major_hold"
ACTION_MAJOR_RESUME = "major_resume"


def dispatch_activity(
    *,
    user_id: str | None,
    action: str,
    details: str,
    nrc_job_no: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> bool:
    """Queue an activity log write. Returns False when it could not be queued.

    The engine never fails an operation because the activity trail is down.
    """
    if not settings.ACTIVITY_LOG_ENABLED:
        return False

    from ..celery_app import record_activity

    try:
        record_activity.apply_async(
            kwargs={
                "user_id": user_id,
                "action": action,
                "details": details,
                "resource_type": resource_type,
                "resource_id": resource_id,
                "nrc_job_no": nrc_job_no,
                "payload": payload or {},
            },
            retry=False,
        )
    except Exception:
        logger.exception("Failed to queue activity %s for job %s", action, nrc_job_no)
        return False
    return True
