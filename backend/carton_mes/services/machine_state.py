"""Machine work record state machine."""

from __future__ import annotations

from datetime import datetime, timezone


AVAILABLE = "available"
IN_PROGRESS = "in_progress"
HOLD = "hold"
MAJOR_HOLD = "major_hold"
STOP = "stop"

_LEGACY_STATUSES: dict[str, str] = {
    "busy": IN_PROGRESS,
    "completed": STOP,
}
_ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    AVAILABLE: {IN_PROGRESS, STOP, MAJOR_HOLD},
    IN_PROGRESS: {HOLD, STOP, MAJOR_HOLD},
    HOLD: {IN_PROGRESS, STOP, MAJOR_HOLD},
    # Leaving a major hold only happens through major resume.
    MAJOR_HOLD: set(),
    STOP: set(),
}
SUBMITTABLE_STATUSES: frozenset[str] = frozenset({IN_PROGRESS, STOP})
FREEZABLE_STATUSES: frozenset[str] = frozenset({IN_PROGRESS, HOLD})


class MachineTransitionError(ValueError):
    """Rejected machine status change; ``code`` is the stable error code."""

    def __init__(self, code: str, message: str, *, current: str, target: str) -> None:
        super().__init__(message)
        self.code = code
        self.current = current
        self.target = target


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_machine_status(status: str | None) -> str:
    if not status:
        return AVAILABLE
    value = status.strip().lower()
    return _LEGACY_STATUSES.get(value, value)


def validate_machine_transition(
    *,
    current_status: str | None,
    next_status: str,
    allowed_from: frozenset[str] | None = None,
) -> str:
    current = normalize_machine_status(current_status)
    nxt = normalize_machine_status(next_status)

    if current == STOP:
        raise MachineTransitionError(
            "MACHINE_ALREADY_STOPPED",
            "Machine work is already stopped",
            current=current,
            target=nxt,
        )
    if current == MAJOR_HOLD and nxt != MAJOR_HOLD:
        raise MachineTransitionError(
            "JOB_ON_MAJOR_HOLD",
            "Job is on major hold; only a major resume can release this machine",
            current=current,
            target=nxt,
        )
    if nxt not in _ALLOWED_TRANSITIONS.get(current, set()) or (
        allowed_from is not None and current not in allowed_from
    ):
        raise MachineTransitionError(
            "INVALID_MACHINE_TRANSITION",
            f"Invalid machine status transition: {current} -> {nxt}",
            current=current,
            target=nxt,
        )
    return nxt


def ensure_submittable(status: str | None) -> str:
    current = normalize_machine_status(status)
    if current == MAJOR_HOLD:
        raise MachineTransitionError(
            "JOB_ON_MAJOR_HOLD",
            "Job is on major hold; work cannot be submitted",
            current=current,
            target=current,
        )
    if current not in SUBMITTABLE_STATUSES:
        raise MachineTransitionError(
            "MACHINE_NOT_SUBMITTABLE",
            f"Work can only be submitted while the machine is in progress or stopped (current: {current})",
            current=current,
            target=current,
        )
    return current


def transition_timestamps(
    *,
    next_status: str,
    started_at: datetime | None,
    completed_at: datetime | None,
    at: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Return (started_at, completed_at) after moving to ``next_status``."""
    ts = at or now_utc()
    if next_status == IN_PROGRESS and started_at is None:
        started_at = ts
    if next_status == STOP:
        completed_at = ts
    return started_at, completed_at


def is_untouched(status: str | None) -> bool:
    return normalize_machine_status(status) == AVAILABLE


def is_stopped(status: str | None) -> bool:
    return normalize_machine_status(status) == STOP
