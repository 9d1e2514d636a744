"""Expected input quantity of a step, derived from the step that feeds it."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from ..models import JobStep
from .step_catalog import detail_model_for_step, quantity_source_step


logger = logging.getLogger(__name__)


def _source_detail_for_plan(db: Session, *, source_step_no: int, job_planning_id: int | None):
    if job_planning_id is None:
        return None
    source_step = (
        db.query(JobStep)
        .filter(JobStep.job_planning_id == job_planning_id, JobStep.step_no == source_step_no)
        .first()
    )
    if source_step is None:
        return None
    model = detail_model_for_step(source_step_no)
    return db.query(model).filter(model.job_step_id == source_step.id).first()


def _latest_source_detail_for_job(db: Session, *, source_step_no: int, nrc_job_no: str):
    model = detail_model_for_step(source_step_no)
    return (
        db.query(model)
        .filter(model.job_nrc_job_no == nrc_job_no)
        .order_by(model.created_at.desc(), model.id.desc())
        .first()
    )


def resolve_expected_quantity(
    db: Session,
    *,
    nrc_job_no: str,
    step_no: int,
    job_planning_id: int | None = None,
) -> int:
    """Return the quantity the source step produced, or 0 when unknown.

    The source detail row of the same plan is preferred; otherwise the most
    recent detail row of the source step type for the job is used.
    """
    source_step_no = quantity_source_step(step_no)
    if source_step_no is None:
        return 0

    detail = _source_detail_for_plan(db, source_step_no=source_step_no, job_planning_id=job_planning_id)
    if detail is None:
        detail = _latest_source_detail_for_job(db, source_step_no=source_step_no, nrc_job_no=nrc_job_no)
    if detail is None:
        logger.debug("No source quantity for job=%s step=%s (source step %s)", nrc_job_no, step_no, source_step_no)
        return 0
    return int(detail.quantity or 0)
