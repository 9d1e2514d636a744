"""Merge per-machine submissions into the step's canonical detail row."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Protocol

from sqlalchemy.orm import Session

from ..models import Job
from .form_data import FormDataError, coerce_quantity, has_submission, parse_form_data
from .machine_state import is_untouched
from .shift_calendar import ShiftCalendar
from .step_catalog import (
    STEP_CORRUGATION,
    STEP_PAPER_STORE,
    STEP_PRINTING,
    STEP_PUNCHING,
    detail_model_for_step,
)


logger = logging.getLogger(__name__)

ACCEPTED = "accept"

# (detail field, job attribute) copied when no machine filled the field.
AUTO_POPULATED_FIELDS: dict[int, tuple[tuple[str, str], ...]] = {
    STEP_PAPER_STORE: (("sheet_size", "board_size"),),
    STEP_PRINTING: (("no_of_colours", "no_of_color"),),
    STEP_CORRUGATION: (
        ("size", "board_size"),
        ("flute", "flute_type"),
        ("gsm1", "top_face_gsm"),
        ("gsm2", "bottom_liner_gsm"),
    ),
    STEP_PUNCHING: (("die", "die_punch_code"),),
}
_INT_AUTO_FIELDS = frozenset({"no_of_colours"})


class SubmittedWork(Protocol):
    id: int
    status: str | None
    form_data: Any
    machine_code: str | None
    machine_id: str
    submitted_by_id: str | None


def _distinct(values: Iterable[str | None]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _auto_populate(step_no: int, fields: dict[str, Any], job: Job | None) -> None:
    if job is None:
        return
    for field_name, job_attr in AUTO_POPULATED_FIELDS.get(step_no, ()):
        if fields.get(field_name) not in (None, ""):
            continue
        value = getattr(job, job_attr, None)
        if value in (None, ""):
            continue
        if field_name in _INT_AUTO_FIELDS:
            try:
                value = coerce_quantity(value, field_name=field_name)
            except FormDataError:
                logger.warning("Job %s has non-numeric %s=%r; not copied", job.nrc_job_no, job_attr, value)
                continue
        fields[field_name] = value


def build_step_detail(
    *,
    step_no: int,
    records: Iterable[SubmittedWork],
    job: Job | None,
    caller_id: str | None,
    now: datetime,
    shift_calendar: ShiftCalendar,
) -> dict[str, Any]:
    """Column values for the detail row; records are merged in the order given."""
    records = list(records)
    total_ok = 0
    total_wastage = 0
    fields: dict[str, Any] = {}
    extras: dict[str, Any] = {}
    remarks: str | None = None

    for record in records:
        if not has_submission(record.form_data):
            continue
        form = parse_form_data(step_no, record.form_data)
        total_ok += form.ok_quantity or 0
        total_wastage += form.wastage or 0
        fields.update(form.typed_values())
        extras.update(form.extras)
        if form.remarks:
            remarks = form.remarks

    _auto_populate(step_no, fields, job)

    machines = _distinct(
        record.machine_code or str(record.machine_id) for record in records if not is_untouched(record.status)
    )
    submitters = _distinct(record.submitted_by_id for record in records)
    if not submitters and caller_id:
        submitters = [caller_id]

    values: dict[str, Any] = dict(fields)
    values.update(
        quantity=total_ok,
        wastage=total_wastage,
        machine=", ".join(machines) or None,
        completed_by=", ".join(submitters) or None,
        date=now,
        shift=shift_calendar.shift_for(now),
        status=ACCEPTED,
        remarks=remarks,
        extra_data=extras or None,
    )
    return values


def upsert_step_detail(
    db: Session,
    *,
    step_no: int,
    job_step_id: int,
    nrc_job_no: str,
    values: dict[str, Any],
):
    """Write the single detail row for ``job_step_id``; returns (row, created)."""
    model = detail_model_for_step(step_no)
    row = db.query(model).filter(model.job_step_id == job_step_id).with_for_update().first()
    if row is not None:
        for key, value in values.items():
            setattr(row, key, value)
        return row, False

    row = model(job_step_id=job_step_id, job_nrc_job_no=nrc_job_no, **values)
    db.add(row)
    return row, True
