"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Optional
from datetime import datetime

from .services.machine_state import normalize_machine_status


# Machine work
class MachineWorkResponse(BaseModel):
    id: int
    job_step_id: int
    nrc_job_no: str
    step_no: int
    machine_id: str
    machine_code: Optional[str] = None
    status: str
    user_id: Optional[str] = None
    submitted_by_id: Optional[str] = None
    form_data: Optional[dict[str, Any]] = None
    remarks: Optional[str] = None
    previous_status: Optional[str] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Optional[str]) -> str:
        """Legacy spellings (busy, completed) are reported in current form."""
        return normalize_machine_status(value)


class StepMachinesResponse(BaseModel):
    nrc_job_no: str
    job_plan_id: int
    step_no: int
    step_name: str
    step_status: str
    machines: list[MachineWorkResponse]


class SubmitWorkRequest(BaseModel):
    form_data: dict[str, Any] = Field(default_factory=dict)


class HoldMachineRequest(BaseModel):
    remarks: Optional[str] = Field(default=None, max_length=2000)


class CompletionResponse(BaseModel):
    should_complete: bool
    reason: str
    rule: Optional[str] = None
    total_ok: int
    total_wastage: int
    processed_quantity: int
    expected_quantity: int
    submitted_count: int
    stopped_count: int
    machine_count: int
    untouched_machines: list[str] = []
    completed: bool = False
    already_completed: bool = False
    archived: bool = False
    detail_id: Optional[int] = None


class MachineActionResponse(BaseModel):
    machine: MachineWorkResponse
    completion: Optional[CompletionResponse] = None


# Major hold
class MajorHoldRequest(BaseModel):
    remarks: str = Field(..., min_length=1, max_length=2000)
    job_plan_id: Optional[int] = None


class MajorResumeRequest(BaseModel):
    job_plan_id: Optional[int] = None


class PersistenceFailureItem(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class MajorHoldResponse(BaseModel):
    nrc_job_no: str
    job_plan_ids: list[int]
    machines_affected: int
    details_affected: int
    failures: list[PersistenceFailureItem] = []


# System
class ShiftWindowResponse(BaseModel):
    name: str
    start: str
    end: str


class CurrentShiftResponse(BaseModel):
    at: datetime
    shift: Optional[str] = None
    schedule: list[ShiftWindowResponse]
