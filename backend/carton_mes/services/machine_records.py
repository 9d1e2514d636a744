"""Machine work records of a step, mirrored from its planned machine list."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from ..models import JobStep, JobStepMachine, Machine
from .machine_state import AVAILABLE


logger = logging.getLogger(__name__)


def planned_machines(step: JobStep) -> list[dict[str, Any]]:
    """Planned machine descriptors with a usable id, in plan order."""
    planned = []
    for entry in step.machine_details or []:
        if not isinstance(entry, dict):
            continue
        machine_id = entry.get("machineId") or entry.get("id")
        if machine_id:
            planned.append({**entry, "machineId": str(machine_id)})
    return planned


def _planned_descriptor(step: JobStep, machine_id: str) -> dict[str, Any] | None:
    for entry in planned_machines(step):
        if entry["machineId"] == str(machine_id):
            return entry
    return None


def _new_record(step: JobStep, *, nrc_job_no: str, machine_id: str, machine_code: str | None) -> JobStepMachine:
    return JobStepMachine(
        job_step_id=step.id,
        nrc_job_no=nrc_job_no,
        step_no=step.step_no,
        machine_id=machine_id,
        machine_code=machine_code,
        status=AVAILABLE,
    )


def step_records(db: Session, step: JobStep, *, for_update: bool = False) -> list[JobStepMachine]:
    query = db.query(JobStepMachine).filter(JobStepMachine.job_step_id == step.id)
    if for_update:
        query = query.with_for_update()
    return query.order_by(JobStepMachine.id.asc()).all()


def ensure_machine_records(db: Session, step: JobStep, *, nrc_job_no: str) -> list[JobStepMachine]:
    """Create an ``available`` record for every planned machine that has none.

    Returns all records of the step ordered by id. The caller commits.
    """
    records = step_records(db, step)
    known = {str(record.machine_id) for record in records}
    created = 0
    for entry in planned_machines(step):
        if entry["machineId"] in known:
            continue
        db.add(
            _new_record(
                step,
                nrc_job_no=nrc_job_no,
                machine_id=entry["machineId"],
                machine_code=entry.get("machineCode"),
            )
        )
        known.add(entry["machineId"])
        created += 1
    if created:
        db.flush()
        logger.info("Mirrored %s planned machine(s) for job %s step %s", created, nrc_job_no, step.step_no)
        records = step_records(db, step)
    return records


def load_record_for_update(
    db: Session,
    step: JobStep,
    *,
    nrc_job_no: str,
    machine_id: str,
    allow_unplanned: bool,
) -> JobStepMachine | None:
    """Lock the record of ``machine_id`` on ``step``, creating it when allowed.

    Planned machines are always materialised. An unplanned machine is only
    materialised when ``allow_unplanned`` is set and the machine exists.
    Returns None when the machine cannot work this step.
    """
    record = (
        db.query(JobStepMachine)
        .filter(JobStepMachine.job_step_id == step.id, JobStepMachine.machine_id == str(machine_id))
        .with_for_update()
        .first()
    )
    if record is not None:
        return record

    descriptor = _planned_descriptor(step, machine_id)
    if descriptor is not None:
        machine_code = descriptor.get("machineCode")
    elif allow_unplanned:
        machine = db.query(Machine).filter(Machine.id == str(machine_id)).first()
        if machine is None:
            return None
        machine_code = machine.machine_code
    else:
        return None

    record = _new_record(step, nrc_job_no=nrc_job_no, machine_id=str(machine_id), machine_code=machine_code)
    db.add(record)
    db.flush()
    return record
