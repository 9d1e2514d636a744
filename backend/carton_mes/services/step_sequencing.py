"""Step ordering preconditions within a plan."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol


STEP_PLANNED = "planned"
STEP_START = "start"
STEP_STOP = "stop"

_STARTED_STATUSES = frozenset({STEP_START, STEP_STOP})


class PlannedStep(Protocol):
    step_no: int
    step_name: str
    status: str | None


@dataclass(frozen=True)
class StepBlocker:
    step_no: int
    step_name: str
    status: str

    def as_dict(self) -> dict[str, object]:
        return {"step_no": self.step_no, "step_name": self.step_name, "status": self.status}


def _normalize(status: str | None) -> str:
    return (status or STEP_PLANNED).strip().lower()


def _blockers(steps: Iterable[PlannedStep], step_no: int, allowed: frozenset[str]) -> list[StepBlocker]:
    return [
        StepBlocker(step_no=s.step_no, step_name=s.step_name, status=_normalize(s.status))
        for s in sorted(steps, key=lambda s: s.step_no)
        if s.step_no < step_no and _normalize(s.status) not in allowed
    ]


def find_start_blockers(steps: Iterable[PlannedStep], *, step_no: int) -> list[StepBlocker]:
    """Earlier steps that have not been started yet."""
    return _blockers(steps, step_no, _STARTED_STATUSES)


def find_completion_blockers(steps: Iterable[PlannedStep], *, step_no: int) -> list[StepBlocker]:
    """Earlier steps that are not stopped yet."""
    return _blockers(steps, step_no, frozenset({STEP_STOP}))


def describe_blockers(blockers: Iterable[StepBlocker]) -> str:
    return ", ".join(f"step {b.step_no} {b.step_name} is {b.status}" for b in blockers)


def validate_step_start(*, current_status: str | None) -> str:
    current = _normalize(current_status)
    if current == STEP_STOP:
        raise ValueError("Step is already completed")
    return STEP_START
