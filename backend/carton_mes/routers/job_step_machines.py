"""Job step machine endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import (
    CompletionResponse,
    HoldMachineRequest,
    MachineActionResponse,
    MachineWorkResponse,
    MajorHoldRequest,
    MajorHoldResponse,
    MajorResumeRequest,
    PersistenceFailureItem,
    StepMachinesResponse,
    SubmitWorkRequest,
)
from ..use_cases.machine_work import (
    CompletionOutcome,
    MachineActionResult,
    StepEngineHooks,
    evaluate_step_use_case,
    hold_machine_use_case,
    list_held_machines_use_case,
    list_step_machines_use_case,
    resume_machine_use_case,
    start_machine_use_case,
    stop_machine_use_case,
    submit_work_use_case,
    urgent_start_use_case,
)
from ..use_cases.major_hold import MajorHoldResult, major_hold_use_case, major_resume_use_case

router = APIRouter(prefix="/job-step-machines", tags=["job-step-machines"])


def get_step_engine_hooks() -> StepEngineHooks:
    return StepEngineHooks()


def _completion_response(outcome: Optional[CompletionOutcome]) -> Optional[CompletionResponse]:
    if outcome is None:
        return None
    return CompletionResponse(
        **outcome.decision.as_dict(),
        completed=outcome.completed,
        already_completed=outcome.already_completed,
        archived=outcome.archived,
        detail_id=outcome.detail_id,
    )


def _action_response(result: MachineActionResult) -> MachineActionResponse:
    return MachineActionResponse(
        machine=result.record,
        completion=_completion_response(result.completion),
    )


def _major_hold_response(result: MajorHoldResult) -> MajorHoldResponse:
    return MajorHoldResponse(
        nrc_job_no=result.nrc_job_no,
        job_plan_ids=result.job_plan_ids,
        machines_affected=result.machines_affected,
        details_affected=result.details_affected,
        failures=[
            PersistenceFailureItem(code=f.code, message=f.message, details=f.details)
            for f in result.failures
        ],
    )


@router.get("/held-machines", response_model=list[MachineWorkResponse])
def list_held_machines(
    nrc_job_no: Optional[str] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Machines on temporary or major hold."""
    return list_held_machines_use_case(db=db, current_user=current_user, nrc_job_no=nrc_job_no)


@router.get("/{nrc_job_no}/steps/{step_no}/machines", response_model=StepMachinesResponse)
def list_step_machines(
    nrc_job_no: str,
    step_no: int,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Machine work records of a step."""
    view = list_step_machines_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        current_user=current_user,
        job_plan_id=job_plan_id,
    )
    step = view.context.step
    return StepMachinesResponse(
        nrc_job_no=view.context.nrc_job_no,
        job_plan_id=view.context.planning.job_plan_id,
        step_no=step.step_no,
        step_name=step.step_name,
        step_status=step.status,
        machines=[MachineWorkResponse.model_validate(r) for r in view.records],
    )


@router.post("/{nrc_job_no}/steps/{step_no}/machines/{machine_id}/start", response_model=MachineWorkResponse)
def start_machine(
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hooks: StepEngineHooks = Depends(get_step_engine_hooks),
):
    """Start work on a machine."""
    return start_machine_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        job_plan_id=job_plan_id,
        hooks=hooks,
    )


@router.post("/{nrc_job_no}/steps/{step_no}/urgent/start", response_model=MachineWorkResponse)
def urgent_start(
    nrc_job_no: str,
    step_no: int,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hooks: StepEngineHooks = Depends(get_step_engine_hooks),
):
    """Start the caller's own machine on a high-demand job."""
    return urgent_start_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        current_user=current_user,
        job_plan_id=job_plan_id,
        hooks=hooks,
    )


@router.post("/{nrc_job_no}/steps/{step_no}/machines/{machine_id}/submit", response_model=MachineActionResponse)
def submit_work(
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    data: SubmitWorkRequest,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hooks: StepEngineHooks = Depends(get_step_engine_hooks),
):
    """Submit a machine's form data."""
    result = submit_work_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        form_data=data.form_data,
        current_user=current_user,
        job_plan_id=job_plan_id,
        hooks=hooks,
    )
    return _action_response(result)


@router.post("/{nrc_job_no}/steps/{step_no}/machines/{machine_id}/hold", response_model=MachineWorkResponse)
def hold_machine(
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    data: HoldMachineRequest,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Put a machine on temporary hold."""
    return hold_machine_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        remarks=data.remarks,
        job_plan_id=job_plan_id,
    )


@router.post("/{nrc_job_no}/steps/{step_no}/machines/{machine_id}/resume", response_model=MachineWorkResponse)
def resume_machine(
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Resume a held machine."""
    return resume_machine_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        job_plan_id=job_plan_id,
    )


@router.post("/{nrc_job_no}/steps/{step_no}/machines/{machine_id}/stop", response_model=MachineActionResponse)
def stop_machine(
    nrc_job_no: str,
    step_no: int,
    machine_id: str,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hooks: StepEngineHooks = Depends(get_step_engine_hooks),
):
    """Stop a machine."""
    result = stop_machine_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        machine_id=machine_id,
        current_user=current_user,
        job_plan_id=job_plan_id,
        hooks=hooks,
    )
    return _action_response(result)


@router.post("/{nrc_job_no}/steps/{step_no}/evaluate", response_model=CompletionResponse)
def evaluate_step(
    nrc_job_no: str,
    step_no: int,
    job_plan_id: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hooks: StepEngineHooks = Depends(get_step_engine_hooks),
):
    """Re-run completion for a step."""
    outcome = evaluate_step_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        step_no=step_no,
        current_user=current_user,
        job_plan_id=job_plan_id,
        hooks=hooks,
    )
    return _completion_response(outcome)


@router.post("/{nrc_job_no}/major-hold", response_model=MajorHoldResponse)
def major_hold(
    nrc_job_no: str,
    data: MajorHoldRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Freeze all active work of a job (or one of its plans)."""
    result = major_hold_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        remarks=data.remarks,
        current_user=current_user,
        job_plan_id=data.job_plan_id,
    )
    return _major_hold_response(result)


@router.post("/{nrc_job_no}/major-resume", response_model=MajorHoldResponse)
def major_resume(
    nrc_job_no: str,
    data: MajorResumeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Lift a major hold."""
    result = major_resume_use_case(
        db=db,
        nrc_job_no=nrc_job_no,
        current_user=current_user,
        job_plan_id=data.job_plan_id,
    )
    return _major_hold_response(result)
