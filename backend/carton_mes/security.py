"""Machine access checks."""

from __future__ import annotations

from sqlalchemy.orm import Session

from .models import Job, JobPlanning, User, UserMachine
from .services.plan_selector import is_high_demand


def is_job_high_demand(db: Session, *, nrc_job_no: str, job: Job | None = None) -> bool:
    """High-demand flag of the job; falls back to its plans when the job row is missing."""
    if job is None:
        job = db.query(Job).filter(Job.nrc_job_no == nrc_job_no).first()
    if job is not None:
        return is_high_demand(job.job_demand)
    planning = (
        db.query(JobPlanning)
        .filter(JobPlanning.nrc_job_no == nrc_job_no, JobPlanning.job_demand == "high")
        .first()
    )
    return planning is not None


def has_machine_grant(db: Session, user: User, machine_id: str) -> bool:
    grant = db.query(UserMachine).filter(
        UserMachine.user_id == user.id,
        UserMachine.machine_id == machine_id,
        UserMachine.is_active.is_(True),
    ).first()
    return grant is not None


def can_work_machine(db: Session, *, user: User, machine_id: str, high_demand: bool) -> bool:
    """High-demand jobs may be worked on any machine; otherwise a grant is required."""
    if high_demand:
        return True
    return has_machine_grant(db, user, machine_id)


def first_granted_machine_id(db: Session, user: User) -> str | None:
    grant = (
        db.query(UserMachine)
        .filter(UserMachine.user_id == user.id, UserMachine.is_active.is_(True))
        .order_by(UserMachine.id.asc())
        .first()
    )
    return grant.machine_id if grant is not None else None
