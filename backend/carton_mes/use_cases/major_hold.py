"""Job- or plan-wide major hold and its exact reversal."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import has_privileged_role
from ..domain_errors import InvalidTransition, NotFound, PersistenceFailure, Unauthorized, ValidationFailed
from ..models import JobPlanning, JobStep, JobStepMachine, User
from ..services.activity_log import ACTION_MAJOR_HOLD, ACTION_MAJOR_RESUME, dispatch_activity
from ..services.machine_records import ensure_machine_records
from ..services.machine_state import (
    AVAILABLE,
    FREEZABLE_STATUSES,
    HOLD,
    IN_PROGRESS,
    MAJOR_HOLD,
    normalize_machine_status,
)
from ..services.step_catalog import detail_model_for_step
from ..services.step_sequencing import STEP_START

logger = logging.getLogger(__name__)

FREEZABLE_DETAIL_STATUSES: tuple[str, ...] = (IN_PROGRESS, HOLD)


@dataclass(frozen=True)
class MajorHoldHooks:
    notify_activity: Callable[..., Any] = dispatch_activity


@dataclass
class MajorHoldResult:
    nrc_job_no: str
    job_plan_ids: list[int]
    machines_affected: int = 0
    details_affected: int = 0
    failures: list[PersistenceFailure] = field(default_factory=list)


def _ensure_privileged(current_user: User, *, action: str) -> None:
    if not has_privileged_role(current_user):
        raise Unauthorized(
            code="MAJOR_HOLD_FORBIDDEN",
            message=f"Only privileged roles can {action}",
            details={"user_id": current_user.id, "roles": current_user.role},
        )


def _scope_plannings(db: Session, *, nrc_job_no: str, job_plan_id: int | None) -> list[JobPlanning]:
    query = db.query(JobPlanning).filter(JobPlanning.nrc_job_no == nrc_job_no)
    if job_plan_id is not None:
        query = query.filter(JobPlanning.job_plan_id == job_plan_id)
    plannings = query.order_by(JobPlanning.job_plan_id.asc()).all()
    if not plannings:
        raise NotFound(
            code="JOB_PLANNING_NOT_FOUND",
            message=f"No job planning found for job {nrc_job_no}",
            details={"nrc_job_no": nrc_job_no, "job_plan_id": job_plan_id},
        )
    return plannings


def _scope_steps(db: Session, plannings: list[JobPlanning]) -> list[JobStep]:
    plan_ids = [p.job_plan_id for p in plannings]
    return (
        db.query(JobStep)
        .filter(JobStep.job_planning_id.in_(plan_ids))
        .order_by(JobStep.job_planning_id.asc(), JobStep.step_no.asc())
        .all()
    )


def _steps_by_detail_model(steps: list[JobStep]) -> dict[type, list[int]]:
    grouped: dict[type, list[int]] = {}
    for step in steps:
        grouped.setdefault(detail_model_for_step(step.step_no), []).append(step.id)
    return grouped


def _update_details(
    db: Session,
    steps: list[JobStep],
    *,
    nrc_job_no: str,
    statuses: tuple[str, ...],
    apply: Callable[[Any], None],
    failure_code: str,
    result: MajorHoldResult,
) -> None:
    """Apply ``apply`` to matching detail rows, one savepoint per detail table."""
    for model, step_ids in _steps_by_detail_model(steps).items():
        try:
            with db.begin_nested():
                rows = db.query(model).filter(
                    model.job_step_id.in_(step_ids),
                    model.status.in_(list(statuses)),
                ).all()
                for row in rows:
                    apply(row)
                db.flush()
        except SQLAlchemyError as exc:
            logger.exception("Updating %s rows for job %s failed", model.__tablename__, nrc_job_no)
            result.failures.append(
                PersistenceFailure(
                    code=failure_code,
                    message=f"Could not update {model.__tablename__} for job {nrc_job_no}",
                    details={"table": model.__tablename__, "error": exc.__class__.__name__},
                )
            )
            continue
        result.details_affected += len(rows)


def _notify(hooks: MajorHoldHooks, **kwargs: Any) -> None:
    try:
        hooks.notify_activity(**kwargs)
    except Exception:
        logger.exception("Activity notification failed for job %s", kwargs.get("nrc_job_no"))


def major_hold_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    remarks: str,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: MajorHoldHooks | None = None,
) -> MajorHoldResult:
    """Freeze every active machine and detail row of the job (or one plan).

    Each entity remembers its own previous status so that a major resume
    restores it exactly.
    """
    hooks = hooks or MajorHoldHooks()
    _ensure_privileged(current_user, action="place a major hold")
    remark = (remarks or "").strip()
    if not remark:
        raise ValidationFailed(
            code="HOLD_REMARK_REQUIRED",
            message="A remark is required to place a major hold",
            details={"nrc_job_no": nrc_job_no},
        )

    plannings = _scope_plannings(db, nrc_job_no=nrc_job_no, job_plan_id=job_plan_id)
    steps = _scope_steps(db, plannings)
    step_status = {s.id: s.status for s in steps}
    for step in steps:
        if step.status == STEP_START:
            ensure_machine_records(db, step, nrc_job_no=nrc_job_no)

    result = MajorHoldResult(nrc_job_no=nrc_job_no, job_plan_ids=[p.job_plan_id for p in plannings])
    step_ids = list(step_status)
    records = []
    if step_ids:
        records = (
            db.query(JobStepMachine)
            .filter(JobStepMachine.job_step_id.in_(step_ids))
            .with_for_update()
            .order_by(JobStepMachine.id.asc())
            .all()
        )
    for record in records:
        current = normalize_machine_status(record.status)
        started_step_idle = current == AVAILABLE and step_status.get(record.job_step_id) == STEP_START
        if current in FREEZABLE_STATUSES or started_step_idle:
            record.previous_status = current
            record.status = MAJOR_HOLD
            result.machines_affected += 1

    def _freeze(row: Any) -> None:
        row.previous_status = row.status
        row.previous_hold_remark = row.hold_remark
        row.status = MAJOR_HOLD
        row.hold_remark = remark

    _update_details(
        db,
        steps,
        nrc_job_no=nrc_job_no,
        statuses=FREEZABLE_DETAIL_STATUSES,
        apply=_freeze,
        failure_code="STEP_DETAIL_HOLD_FAILED",
        result=result,
    )

    if result.machines_affected == 0 and result.details_affected == 0:
        db.rollback()
        raise InvalidTransition(
            code="NOTHING_TO_HOLD",
            message=f"Job {nrc_job_no} has no active work to put on major hold",
            details={"nrc_job_no": nrc_job_no, "job_plan_ids": result.job_plan_ids},
        )

    db.commit()
    logger.info(
        "Major hold on job %s by %s: %s machines, %s detail rows, %s failures",
        nrc_job_no,
        current_user.id,
        result.machines_affected,
        result.details_affected,
        len(result.failures),
    )
    _notify(
        hooks,
        user_id=current_user.id,
        action=ACTION_MAJOR_HOLD,
        details=f"Major hold on job {nrc_job_no}: {remark}",
        nrc_job_no=nrc_job_no,
        resource_type="job",
        resource_id=nrc_job_no,
        payload={"job_plan_ids": result.job_plan_ids, "machines": result.machines_affected},
    )
    return result


def major_resume_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: MajorHoldHooks | None = None,
) -> MajorHoldResult:
    """Restore every frozen entity to the status it had before the major hold."""
    hooks = hooks or MajorHoldHooks()
    _ensure_privileged(current_user, action="lift a major hold")

    plannings = _scope_plannings(db, nrc_job_no=nrc_job_no, job_plan_id=job_plan_id)
    steps = _scope_steps(db, plannings)
    step_ids = [s.id for s in steps]
    result = MajorHoldResult(nrc_job_no=nrc_job_no, job_plan_ids=[p.job_plan_id for p in plannings])

    records = []
    if step_ids:
        records = (
            db.query(JobStepMachine)
            .filter(JobStepMachine.job_step_id.in_(step_ids), JobStepMachine.status == MAJOR_HOLD)
            .with_for_update()
            .order_by(JobStepMachine.id.asc())
            .all()
        )
    for record in records:
        record.status = normalize_machine_status(record.previous_status or IN_PROGRESS)
        record.previous_status = None
        result.machines_affected += 1

    def _release(row: Any) -> None:
        row.status = row.previous_status or IN_PROGRESS
        row.previous_status = None
        row.hold_remark = row.previous_hold_remark
        row.previous_hold_remark = None

    _update_details(
        db,
        steps,
        nrc_job_no=nrc_job_no,
        statuses=(MAJOR_HOLD,),
        apply=_release,
        failure_code="STEP_DETAIL_RESUME_FAILED",
        result=result,
    )

    if result.machines_affected == 0 and result.details_affected == 0:
        db.rollback()
        raise InvalidTransition(
            code="NOTHING_HELD",
            message=f"Job {nrc_job_no} is not on major hold",
            details={"nrc_job_no": nrc_job_no, "job_plan_ids": result.job_plan_ids},
        )

    db.commit()
    logger.info(
        "Major resume on job %s by %s: %s machines, %s detail rows, %s failures",
        nrc_job_no,
        current_user.id,
        result.machines_affected,
        result.details_affected,
        len(result.failures),
    )
    _notify(
        hooks,
        user_id=current_user.id,
        action=ACTION_MAJOR_RESUME,
        details=f"Major hold lifted on job {nrc_job_no}",
        nrc_job_no=nrc_job_no,
        resource_type="job",
        resource_id=nrc_job_no,
        payload={"job_plan_ids": result.job_plan_ids, "machines": result.machines_affected},
    )
    return result
