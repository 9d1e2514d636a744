"""Per-machine work use-cases and step completion."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import has_privileged_role
from ..domain_errors import (
    DomainError,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    Unauthorized,
    ValidationFailed,
)
from ..models import Job, JobPlanning, JobStep, JobStepMachine, User
from ..schemas import MachineWorkResponse
from ..security import can_work_machine, first_granted_machine_id, is_job_high_demand
from ..services.activity_log import ACTION_JOB_ARCHIVED, ACTION_STEP_COMPLETED, dispatch_activity
from ..services.completion_criteria import CompletionDecision, evaluate_completion
from ..services.form_data import FormDataError, validate_submission
from ..services.machine_records import ensure_machine_records, load_record_for_update, step_records
from ..services.machine_state import (
    AVAILABLE,
    HOLD,
    IN_PROGRESS,
    MAJOR_HOLD,
    STOP,
    MachineTransitionError,
    ensure_submittable,
    now_utc,
    transition_timestamps,
    validate_machine_transition,
)
from ..services.plan_selector import select_job_planning
from ..services.quantity_resolver import resolve_expected_quantity
from ..services.shift_calendar import ShiftCalendar, default_shift_calendar
from ..services.step_aggregator import build_step_detail, upsert_step_detail
from ..services.step_catalog import ensure_known_step, step_label
from ..services.step_sequencing import (
    STEP_PLANNED,
    STEP_START,
    STEP_STOP,
    describe_blockers,
    find_completion_blockers,
    find_start_blockers,
    validate_step_start,
)
from .job_archive import archive_job_plan, is_terminal_step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepEngineHooks:
    """Collaborators injected into the step engine."""

    now_utc: Callable[[], datetime] = now_utc
    shift_calendar: ShiftCalendar = field(default_factory=default_shift_calendar)
    resolve_expected_quantity: Callable[..., int] = resolve_expected_quantity
    notify_activity: Callable[..., Any] = dispatch_activity
    archive_plan: Callable[..., Any] = archive_job_plan


@dataclass(frozen=True)
class StepContext:
    job: Job | None
    planning: JobPlanning
    step: JobStep

    @property
    def nrc_job_no(self) -> str:
        return self.planning.nrc_job_no


@dataclass
class CompletionOutcome:
    decision: CompletionDecision
    completed: bool = False
    already_completed: bool = False
    archived: bool = False
    detail_id: int | None = None


@dataclass
class MachineActionResult:
    # Snapshot taken before completion; archiving deletes the live record.
    record: MachineWorkResponse
    completion: CompletionOutcome | None = None


@dataclass
class StepMachinesView:
    context: StepContext
    records: list[JobStepMachine]


def _default_hooks(hooks: StepEngineHooks | None) -> StepEngineHooks:
    return hooks if hooks is not None else StepEngineHooks()


def _load_step_context(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    job_plan_id: int | None = None,
) -> StepContext:
    try:
        ensure_known_step(step_no)
    except ValueError as error:
        raise ValidationFailed(code="UNKNOWN_STEP", message=str(error), details={"step_no": step_no}) from error

    job = db.query(Job).filter(Job.nrc_job_no == nrc_job_no).first()
    planning = select_job_planning(db, nrc_job_no=nrc_job_no, job_plan_id=job_plan_id)
    if planning is None:
        raise NotFound(
            code="JOB_PLANNING_NOT_FOUND",
            message=f"No job planning found for job {nrc_job_no}",
            details={"nrc_job_no": nrc_job_no, "job_plan_id": job_plan_id},
        )

    step = db.query(JobStep).filter(
        JobStep.job_planning_id == planning.job_plan_id,
        JobStep.step_no == step_no,
    ).first()
    if step is None:
        raise NotFound(
            code="JOB_STEP_NOT_FOUND",
            message=f"Step {step_no} ({step_label(step_no)}) is not part of plan {planning.job_plan_id}",
            details={"nrc_job_no": nrc_job_no, "job_plan_id": planning.job_plan_id, "step_no": step_no},
        )
    return StepContext(job=job, planning=planning, step=step)


def _plan_steps(db: Session, planning: JobPlanning) -> list[JobStep]:
    return (
        db.query(JobStep)
        .filter(JobStep.job_planning_id == planning.job_plan_id)
        .order_by(JobStep.step_no.asc())
        .all()
    )


def _invalid_transition(error: MachineTransitionError, record: JobStepMachine) -> InvalidTransition:
    return InvalidTransition(
        code=error.code,
        message=str(error),
        details={
            "machine_id": record.machine_id,
            "machine_code": record.machine_code,
            "current_status": error.current,
            "requested_status": error.target,
        },
    )


def _ensure_step_open(ctx: StepContext) -> None:
    try:
        validate_step_start(current_status=ctx.step.status)
    except ValueError as error:
        raise InvalidTransition(
            code="STEP_ALREADY_COMPLETED",
            message=f"Step {ctx.step.step_no} ({ctx.step.step_name}) is already completed",
            details={"step_no": ctx.step.step_no, "status": ctx.step.status},
        ) from error


def _major_hold_conflict(db: Session, ctx: StepContext) -> InvalidTransition | None:
    plan_step_ids = [s.id for s in _plan_steps(db, ctx.planning)]
    frozen = db.query(JobStepMachine).filter(
        JobStepMachine.job_step_id.in_(plan_step_ids),
        JobStepMachine.status == MAJOR_HOLD,
    ).first()
    if frozen is None:
        return None
    return InvalidTransition(
        code="JOB_ON_MAJOR_HOLD",
        message=f"Job {ctx.nrc_job_no} is on major hold",
        details={"nrc_job_no": ctx.nrc_job_no, "job_plan_id": ctx.planning.job_plan_id},
    )


def _ensure_plan_not_on_major_hold(db: Session, ctx: StepContext) -> None:
    conflict = _major_hold_conflict(db, ctx)
    if conflict is not None:
        raise conflict


def _ensure_start_allowed(db: Session, ctx: StepContext) -> None:
    blockers = find_start_blockers(_plan_steps(db, ctx.planning), step_no=ctx.step.step_no)
    if blockers:
        raise InvalidTransition(
            code="STEP_PREDECESSOR_NOT_STARTED",
            message=f"Cannot start step {ctx.step.step_no} ({ctx.step.step_name}): {describe_blockers(blockers)}",
            details={"step_no": ctx.step.step_no, "blocking_steps": [b.as_dict() for b in blockers]},
        )


def _start_step_if_planned(db: Session, ctx: StepContext, *, current_user: User, now: datetime) -> None:
    if (ctx.step.status or STEP_PLANNED) != STEP_PLANNED:
        return
    _ensure_start_allowed(db, ctx)
    ctx.step.status = STEP_START
    ctx.step.start_date = now
    ctx.step.user = current_user.id


def _authorized_record(
    *,
    db: Session,
    ctx: StepContext,
    machine_id: str,
    current_user: User,
) -> JobStepMachine:
    high_demand = is_job_high_demand(db, nrc_job_no=ctx.nrc_job_no, job=ctx.job)
    if not can_work_machine(db, user=current_user, machine_id=machine_id, high_demand=high_demand):
        raise Unauthorized(
            code="MACHINE_ACCESS_DENIED",
            message=f"User {current_user.id} has no access to machine {machine_id}",
            details={"machine_id": machine_id, "user_id": current_user.id},
        )

    record = load_record_for_update(
        db,
        ctx.step,
        nrc_job_no=ctx.nrc_job_no,
        machine_id=machine_id,
        allow_unplanned=high_demand,
    )
    if record is None:
        raise NotFound(
            code="MACHINE_NOT_ASSIGNED",
            message=f"Machine {machine_id} is not planned for step {ctx.step.step_no} ({ctx.step.step_name})",
            details={"machine_id": machine_id, "step_no": ctx.step.step_no},
        )
    return record


def _notify(hooks: StepEngineHooks, **kwargs: Any) -> None:
    try:
        hooks.notify_activity(**kwargs)
    except Exception:
        logger.exception("Activity notification failed for job %s", kwargs.get("nrc_job_no"))


def _completion_blocked(ctx: StepContext, blockers, decision: CompletionDecision) -> InvalidTransition:
    return InvalidTransition(
        code="STEP_COMPLETION_BLOCKED",
        message=(
            f"Step {ctx.step.step_no} ({ctx.step.step_name}) meets its completion criteria "
            f"but earlier steps are not completed: {describe_blockers(blockers)}"
        ),
        details={
            "step_no": ctx.step.step_no,
            "blocking_steps": [b.as_dict() for b in blockers],
            "completion": decision.as_dict(),
        },
    )


def complete_step_if_ready(
    *,
    db: Session,
    ctx: StepContext,
    current_user: User,
    hooks: StepEngineHooks,
) -> CompletionOutcome:
    """Evaluate the step and, when complete, claim it, write its detail row and archive.

    Runs in its own transaction after the machine write has been committed.
    Only the caller whose compare-and-swap flips the step from ``start`` to
    ``stop`` performs the side effects. Identifiers are read up front because
    archiving deletes the plan rows and the commit expires loaded instances.
    """
    step_id = ctx.step.id
    step_no = ctx.step.step_no
    step_name = ctx.step.step_name
    nrc_job_no = ctx.nrc_job_no
    job_plan_id = ctx.planning.job_plan_id
    try:
        step = db.query(JobStep).filter(JobStep.id == step_id).with_for_update().first()
        if step is None:
            db.rollback()
            raise NotFound(
                code="JOB_STEP_NOT_FOUND",
                message=f"Step {step_no} no longer exists",
                details={"job_step_id": step_id},
            )
        frozen = _major_hold_conflict(db, ctx)
        if frozen is not None:
            db.rollback()
            raise frozen
        records = ensure_machine_records(db, step, nrc_job_no=nrc_job_no)
        expected = hooks.resolve_expected_quantity(
            db,
            nrc_job_no=nrc_job_no,
            step_no=step_no,
            job_planning_id=job_plan_id,
        )
        decision = evaluate_completion(records, expected_quantity=expected)

        if (step.status or STEP_PLANNED) == STEP_STOP:
            db.rollback()
            return CompletionOutcome(decision=decision, already_completed=True)
        if not decision.should_complete:
            db.rollback()
            logger.debug("Step %s of job %s not complete: %s", step_no, nrc_job_no, decision.reason)
            return CompletionOutcome(decision=decision)

        steps = _plan_steps(db, ctx.planning)
        blockers = find_completion_blockers(steps, step_no=step_no)
        if blockers:
            db.rollback()
            raise _completion_blocked(ctx, blockers, decision)

        now = hooks.now_utc()
        values = build_step_detail(
            step_no=step_no,
            records=records,
            job=ctx.job,
            caller_id=current_user.id,
            now=now,
            shift_calendar=hooks.shift_calendar,
        )
        completed_by = values.get("completed_by") or current_user.id

        claimed = db.query(JobStep).filter(
            JobStep.id == step_id,
            JobStep.status == STEP_START,
        ).update(
            {"status": STEP_STOP, "end_date": now, "completed_by": completed_by},
            synchronize_session=False,
        )
        if not claimed:
            db.rollback()
            return CompletionOutcome(decision=decision, already_completed=True)
        step.status = STEP_STOP
        step.end_date = now
        step.completed_by = completed_by

        detail, _ = upsert_step_detail(
            db,
            step_no=step_no,
            job_step_id=step_id,
            nrc_job_no=nrc_job_no,
            values=values,
        )
        db.flush()
        detail_id = detail.id

        archived = False
        if is_terminal_step(steps, step_no):
            hooks.archive_plan(
                db,
                planning=ctx.planning,
                job=ctx.job,
                completed_by=completed_by,
                now=now,
            )
            archived = True

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Completion of step %s for job %s failed", step_no, nrc_job_no)
        raise PersistenceFailure(
            code="STEP_COMPLETION_FAILED",
            message=f"Could not record completion of step {step_no}",
            details={"nrc_job_no": nrc_job_no, "step_no": step_no},
        ) from exc

    logger.info(
        "Step %s (%s) of job %s completed by %s: %s",
        step_no,
        step_name,
        nrc_job_no,
        completed_by,
        decision.reason,
    )
    _notify(
        hooks,
        user_id=current_user.id,
        action=ACTION_STEP_COMPLETED,
        details=f"Step {step_no} ({step_label(step_no)}) completed: {decision.reason}",
        nrc_job_no=nrc_job_no,
        resource_type="job_step",
        resource_id=str(step_id),
        payload=decision.as_dict(),
    )
    if archived:
        _notify(
            hooks,
            user_id=current_user.id,
            action=ACTION_JOB_ARCHIVED,
            details=f"Plan {job_plan_id} of job {nrc_job_no} archived",
            nrc_job_no=nrc_job_no,
            resource_type="job_planning",
            resource_id=str(job_plan_id),
        )
    return CompletionOutcome(decision=decision, completed=True, archived=archived, detail_id=detail_id)


def list_step_machines_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    current_user: User,
    job_plan_id: int | None = None,
) -> StepMachinesView:
    """Machine work records of a step, mirroring planned machines on first read."""
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    known = len(step_records(db, ctx.step))
    records = ensure_machine_records(db, ctx.step, nrc_job_no=ctx.nrc_job_no)
    if len(records) != known:
        db.commit()
    return StepMachinesView(context=ctx, records=records)


def start_machine_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: StepEngineHooks | None = None,
) -> JobStepMachine:
    """Start work on a machine; the first start of a step starts the step."""
    hooks = _default_hooks(hooks)
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    _ensure_step_open(ctx)
    _ensure_plan_not_on_major_hold(db, ctx)
    record = _authorized_record(db=db, ctx=ctx, machine_id=machine_id, current_user=current_user)

    try:
        next_status = validate_machine_transition(
            current_status=record.status,
            next_status=IN_PROGRESS,
            allowed_from=frozenset({AVAILABLE}),
        )
    except MachineTransitionError as error:
        raise _invalid_transition(error, record) from error

    now = hooks.now_utc()
    _start_step_if_planned(db, ctx, current_user=current_user, now=now)

    record.status = next_status
    record.started_at, record.completed_at = transition_timestamps(
        next_status=next_status,
        started_at=record.started_at,
        completed_at=record.completed_at,
        at=now,
    )
    record.user_id = current_user.id
    db.commit()
    db.refresh(record)
    logger.info("Machine %s started on job %s step %s by %s", record.machine_code, nrc_job_no, step_no, current_user.id)
    return record


def urgent_start_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: StepEngineHooks | None = None,
) -> JobStepMachine:
    """Start the caller's first active machine on a high-demand job's step."""
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    if not is_job_high_demand(db, nrc_job_no=nrc_job_no, job=ctx.job):
        raise InvalidTransition(
            code="JOB_NOT_HIGH_DEMAND",
            message=f"Urgent start is only available for high-demand jobs; {nrc_job_no} is not",
            details={"nrc_job_no": nrc_job_no},
        )
    machine_id = first_granted_machine_id(db, current_user)
    if machine_id is None:
        raise NotFound(
            code="USER_MACHINE_NOT_FOUND",
            message=f"User {current_user.id} has no active machine",
            details={"user_id": current_user.id},
        )
    return start_machine_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        job_plan_id=ctx.planning.job_plan_id,
        hooks=hooks,
    )


def _move_machine(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    current_user: User,
    next_status: str,
    job_plan_id: int | None,
    allowed_from: frozenset[str],
    remarks: str | None = None,
) -> JobStepMachine:
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    _ensure_plan_not_on_major_hold(db, ctx)
    record = _authorized_record(db=db, ctx=ctx, machine_id=machine_id, current_user=current_user)
    try:
        nxt = validate_machine_transition(
            current_status=record.status,
            next_status=next_status,
            allowed_from=allowed_from,
        )
    except MachineTransitionError as error:
        raise _invalid_transition(error, record) from error

    record.status = nxt
    if remarks is not None:
        record.remarks = remarks
    db.commit()
    db.refresh(record)
    logger.info("Machine %s on job %s step %s moved to %s", record.machine_code, nrc_job_no, step_no, nxt)
    return record


def hold_machine_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    current_user: User,
    remarks: str | None = None,
    job_plan_id: int | None = None,
) -> JobStepMachine:
    return _move_machine(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        next_status=HOLD,
        job_plan_id=job_plan_id,
        allowed_from=frozenset({IN_PROGRESS}),
        remarks=remarks,
    )


def resume_machine_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    current_user: User,
    job_plan_id: int | None = None,
) -> JobStepMachine:
    return _move_machine(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        next_status=IN_PROGRESS,
        job_plan_id=job_plan_id,
        allowed_from=frozenset({HOLD}),
    )


def submit_work_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    form_data: dict[str, Any] | None,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: StepEngineHooks | None = None,
) -> MachineActionResult:
    """Save a machine's form data, then try to complete the step.

    The submission is committed before completion is attempted, so a
    completion refused by the sequencing guard leaves it saved.
    """
    hooks = _default_hooks(hooks)
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    _ensure_step_open(ctx)
    _ensure_plan_not_on_major_hold(db, ctx)
    record = _authorized_record(db=db, ctx=ctx, machine_id=machine_id, current_user=current_user)

    try:
        ensure_submittable(record.status)
    except MachineTransitionError as error:
        raise _invalid_transition(error, record) from error
    try:
        form = validate_submission(step_no, form_data)
    except FormDataError as error:
        raise ValidationFailed(
            code="INVALID_FORM_DATA",
            message=str(error),
            details={"machine_id": machine_id, "step_no": step_no},
        ) from error

    record.form_data = dict(form_data or {})
    record.submitted_at = hooks.now_utc()
    record.submitted_by_id = current_user.id
    db.commit()
    logger.info(
        "Machine %s submitted ok=%s wastage=%s on job %s step %s",
        record.machine_code,
        form.ok_quantity,
        form.wastage or 0,
        nrc_job_no,
        step_no,
    )

    snapshot = MachineWorkResponse.model_validate(record)
    outcome = complete_step_if_ready(db=db, ctx=ctx, current_user=current_user, hooks=hooks)
    return MachineActionResult(record=snapshot, completion=outcome)


def stop_machine_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: StepEngineHooks | None = None,
) -> MachineActionResult:
    """Stop a machine (form data is never written here), then try to complete the step."""
    hooks = _default_hooks(hooks)
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    _ensure_plan_not_on_major_hold(db, ctx)
    record = _authorized_record(db=db, ctx=ctx, machine_id=machine_id, current_user=current_user)

    try:
        next_status = validate_machine_transition(current_status=record.status, next_status=STOP)
    except MachineTransitionError as error:
        raise _invalid_transition(error, record) from error

    now = hooks.now_utc()
    _start_step_if_planned(db, ctx, current_user=current_user, now=now)

    record.status = next_status
    record.started_at, record.completed_at = transition_timestamps(
        next_status=next_status,
        started_at=record.started_at,
        completed_at=record.completed_at,
        at=now,
    )
    db.commit()
    logger.info("Machine %s stopped on job %s step %s by %s", record.machine_code, nrc_job_no, step_no, current_user.id)

    snapshot = MachineWorkResponse.model_validate(record)
    outcome = complete_step_if_ready(db=db, ctx=ctx, current_user=current_user, hooks=hooks)
    return MachineActionResult(record=snapshot, completion=outcome)


def evaluate_step_use_case(
    *,
    db: Session,
    nrc_job_no: str,
    step_no: int,
    current_user: User,
    job_plan_id: int | None = None,
    hooks: StepEngineHooks | None = None,
) -> CompletionOutcome:
    """Re-run completion for a step, e.g. after a blocked completion was unblocked."""
    hooks = _default_hooks(hooks)
    ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=job_plan_id)
    known = len(step_records(db, ctx.step))
    if len(ensure_machine_records(db, ctx.step, nrc_job_no=ctx.nrc_job_no)) != known:
        db.commit()
    return complete_step_if_ready(db=db, ctx=ctx, current_user=current_user, hooks=hooks)


@dataclass
class SweepResult:
    checked: int = 0
    completed: int = 0
    archived: int = 0
    failures: list[DomainError] = field(default_factory=list)


def sweep_ready_steps_use_case(
    *,
    db: Session,
    current_user: User,
    hooks: StepEngineHooks | None = None,
) -> SweepResult:
    """Re-run completion for every started step whose predecessors are all stopped.

    Picks up completions that were refused by the sequencing guard and never
    re-evaluated. A failure on one step is recorded and the sweep moves on.
    """
    hooks = _default_hooks(hooks)
    started = (
        db.query(JobStep)
        .filter(JobStep.status == STEP_START)
        .order_by(JobStep.job_planning_id.asc(), JobStep.step_no.asc())
        .all()
    )
    candidates = [(s.job_planning_id, s.step_no) for s in started]
    plan_ids = sorted({plan_id for plan_id, _ in candidates})
    job_numbers = {}
    if plan_ids:
        job_numbers = {
            p.job_plan_id: p.nrc_job_no
            for p in db.query(JobPlanning).filter(JobPlanning.job_plan_id.in_(plan_ids)).all()
        }

    result = SweepResult()
    for plan_id, step_no in candidates:
        nrc_job_no = job_numbers.get(plan_id)
        if nrc_job_no is None:
            continue
        result.checked += 1
        try:
            ctx = _load_step_context(db=db, nrc_job_no=nrc_job_no, step_no=step_no, job_plan_id=plan_id)
            if ctx.step.status != STEP_START:
                continue
            if find_completion_blockers(_plan_steps(db, ctx.planning), step_no=step_no):
                continue
            outcome = complete_step_if_ready(db=db, ctx=ctx, current_user=current_user, hooks=hooks)
        except DomainError as error:
            logger.warning(
                "Auto-completion of job %s plan %s step %s skipped: %s",
                nrc_job_no,
                plan_id,
                step_no,
                error.code,
            )
            result.failures.append(error)
            continue
        if outcome.completed:
            result.completed += 1
        if outcome.archived:
            result.archived += 1

    logger.info(
        "Auto-completion sweep: %s checked, %s completed, %s archived, %s skipped",
        result.checked,
        result.completed,
        result.archived,
        len(result.failures),
    )
    return result


def list_held_machines_use_case(
    *,
    db: Session,
    current_user: User,
    nrc_job_no: str | None = None,
) -> list[JobStepMachine]:
    """Machines on temporary or major hold (privileged roles only)."""
    if not has_privileged_role(current_user):
        raise Unauthorized(
            code="PRIVILEGED_ROLE_REQUIRED",
            message="Only privileged roles can list held machines",
            details={"user_id": current_user.id},
        )
    query = db.query(JobStepMachine).filter(JobStepMachine.status.in_([HOLD, MAJOR_HOLD]))
    if nrc_job_no is not None:
        query = query.filter(JobStepMachine.nrc_job_no == nrc_job_no)
    return query.order_by(
        JobStepMachine.nrc_job_no.asc(),
        JobStepMachine.step_no.asc(),
        JobStepMachine.id.asc(),
    ).all()
