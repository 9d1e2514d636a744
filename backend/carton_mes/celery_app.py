"""
Celery worker for fire-and-forget activity log writes and the periodic
auto-completion sweep.
"""
from celery import Celery
import logging
from .config import settings
from .database import SessionLocal
from .models import ActivityLog, User

logger = logging.getLogger(__name__)

celery_app = Celery(
    "carton_mes",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_ignore_result=True,
)


def write_activity(
    db,
    *,
    user_id: str | None,
    action: str,
    details: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    nrc_job_no: str | None = None,
    payload: dict | None = None,
) -> ActivityLog:
    """Add one ActivityLog row to ``db`` (caller commits)."""
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        details=details,
        resource_type=resource_type,
        resource_id=resource_id,
        nrc_job_no=nrc_job_no,
        payload=payload or {},
    )
    db.add(entry)
    return entry


@celery_app.task(name="record_activity")
def record_activity(
    user_id: str | None,
    action: str,
    details: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    nrc_job_no: str | None = None,
    payload: dict | None = None,
):
    """Persist one activity log entry. Never retried."""
    db = SessionLocal()

    try:
        write_activity(
            db,
            user_id=user_id,
            action=action,
            details=details,
            resource_type=resource_type,
            resource_id=resource_id,
            nrc_job_no=nrc_job_no,
            payload=payload,
        )
        db.commit()
        logger.info("Recorded activity %s for job %s", action, nrc_job_no)

    except Exception:
        db.rollback()
        logger.exception("Error recording activity %s for job %s", action, nrc_job_no)
        raise

    finally:
        db.close()


@celery_app.task(name="complete_ready_steps")
def complete_ready_steps():
    """Complete started steps whose blocking predecessors have since stopped."""
    from .use_cases.machine_work import sweep_ready_steps_use_case

    db = SessionLocal()
    system_user = User(id=settings.AUTO_COMPLETION_USER_ID, role="system")

    try:
        result = sweep_ready_steps_use_case(db=db, current_user=system_user)
        return {
            "checked": result.checked,
            "completed": result.completed,
            "archived": result.archived,
            "skipped": [error.code for error in result.failures],
        }

    except Exception:
        db.rollback()
        logger.exception("Auto-completion sweep failed")
        raise

    finally:
        db.close()


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    'complete-ready-steps': {
        'task': 'complete_ready_steps',
        'schedule': settings.AUTO_COMPLETION_INTERVAL_SECONDS,
    },
}
