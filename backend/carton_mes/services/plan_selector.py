"""Pick the plan a job-level request refers to."""

from __future__ import annotations

from sqlalchemy.orm import Session

from ..models import JobPlanning


HIGH_DEMAND = "high"


def is_high_demand(value: str | None) -> bool:
    return (value or "").strip().lower() == HIGH_DEMAND


def select_job_planning(
    db: Session,
    *,
    nrc_job_no: str,
    job_plan_id: int | None = None,
) -> JobPlanning | None:
    """Return the named plan, else the newest high-demand plan, else the newest plan."""
    query = db.query(JobPlanning).filter(JobPlanning.nrc_job_no == nrc_job_no)
    if job_plan_id is not None:
        return query.filter(JobPlanning.job_plan_id == job_plan_id).first()

    newest_first = (JobPlanning.created_at.desc(), JobPlanning.job_plan_id.desc())
    urgent = query.filter(JobPlanning.job_demand == HIGH_DEMAND).order_by(*newest_first).first()
    if urgent is not None:
        return urgent
    return query.order_by(*newest_first).first()
