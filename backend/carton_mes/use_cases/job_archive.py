"""Archive a plan once its terminal step is accepted."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from ..models import CompletedJob, Job, JobPlanning, JobStep, JobStepMachine
from ..services.step_catalog import STEP_NAMES, detail_model_for_step

logger = logging.getLogger(__name__)

JOB_INACTIVE = "INACTIVE"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def serialize_row(row: Any) -> dict[str, Any]:
    """Column values of a mapped instance as a JSON-safe dict."""
    mapper = inspect(row).mapper
    return {attr.key: _jsonable(getattr(row, attr.key)) for attr in mapper.column_attrs}


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def duration_days(*, started: Iterable[datetime | None], finished: datetime) -> int:
    moments = [_as_aware(m) for m in started if m is not None]
    if not moments:
        return 0
    return max((_as_aware(finished) - min(moments)).days, 0)


def is_terminal_step(steps: Iterable[JobStep], step_no: int) -> bool:
    """The plan's last step, which may be earlier than Dispatch when steps are skipped."""
    step_numbers = [s.step_no for s in steps]
    return bool(step_numbers) and step_no == max(step_numbers)


def archive_job_plan(
    db: Session,
    *,
    planning: JobPlanning,
    job: Job | None,
    completed_by: str | None,
    now: datetime,
    remarks: str | None = None,
) -> CompletedJob:
    """Snapshot the plan into CompletedJob and remove its live rows (caller commits)."""
    steps = (
        db.query(JobStep)
        .filter(JobStep.job_planning_id == planning.job_plan_id)
        .order_by(JobStep.step_no.asc())
        .all()
    )
    step_ids = [s.id for s in steps]

    all_step_details: dict[str, Any] = {}
    for step in steps:
        model = detail_model_for_step(step.step_no)
        detail = db.query(model).filter(model.job_step_id == step.id).first()
        if detail is not None:
            all_step_details[STEP_NAMES[step.step_no]] = serialize_row(detail)

    completed = CompletedJob(
        nrc_job_no=planning.nrc_job_no,
        job_plan_id=planning.job_plan_id,
        job_demand=planning.job_demand,
        job_details=serialize_row(job) if job is not None else {"nrc_job_no": planning.nrc_job_no},
        all_steps=[serialize_row(s) for s in steps],
        all_step_details=all_step_details,
        completed_by=completed_by,
        total_duration=duration_days(
            started=[planning.created_at, *(s.start_date for s in steps)],
            finished=now,
        ),
        remarks=remarks,
        final_status="completed",
        completed_at=now,
    )
    db.add(completed)

    if step_ids:
        db.query(JobStepMachine).filter(JobStepMachine.job_step_id.in_(step_ids)).delete(
            synchronize_session=False
        )
        db.query(JobStep).filter(JobStep.id.in_(step_ids)).delete(synchronize_session=False)
    db.query(JobPlanning).filter(JobPlanning.job_plan_id == planning.job_plan_id).delete(
        synchronize_session=False
    )

    remaining = db.query(JobPlanning).filter(JobPlanning.nrc_job_no == planning.nrc_job_no).count()
    if remaining == 0 and job is not None:
        job.status = JOB_INACTIVE

    logger.info(
        "Archived job %s plan %s (%s steps, %s detail rows, %s plans remaining)",
        planning.nrc_job_no,
        planning.job_plan_id,
        len(steps),
        len(all_step_details),
        remaining,
    )
    return completed
