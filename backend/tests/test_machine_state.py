from datetime import datetime, timezone

import pytest

from carton_mes.services.machine_state import (
    MachineTransitionError,
    ensure_submittable,
    is_stopped,
    is_untouched,
    normalize_machine_status,
    transition_timestamps,
    validate_machine_transition,
)


def test_legacy_statuses_are_normalized() -> None:
    assert normalize_machine_status("busy") == "in_progress"
    assert normalize_machine_status("Completed") == "stop"
    assert normalize_machine_status(None) == "available"
    assert normalize_machine_status(" hold ") == "hold"


def test_available_to_in_progress_is_allowed() -> None:
    assert validate_machine_transition(current_status="available", next_status="in_progress") == "in_progress"


def test_hold_and_resume_round_trip() -> None:
    assert validate_machine_transition(current_status="in_progress", next_status="hold") == "hold"
    assert validate_machine_transition(current_status="hold", next_status="in_progress") == "in_progress"


def test_stop_is_terminal() -> None:
    with pytest.raises(MachineTransitionError, match="already stopped") as exc:
        validate_machine_transition(current_status="stop", next_status="stop")
    assert exc.value.code == "MACHINE_ALREADY_STOPPED"


def test_legacy_completed_counts_as_stopped() -> None:
    with pytest.raises(MachineTransitionError) as exc:
        validate_machine_transition(current_status="completed", next_status="in_progress")
    assert exc.value.code == "MACHINE_ALREADY_STOPPED"


def test_major_hold_only_released_by_major_resume() -> None:
    with pytest.raises(MachineTransitionError) as exc:
        validate_machine_transition(current_status="major_hold", next_status="stop")
    assert exc.value.code == "JOB_ON_MAJOR_HOLD"


def test_hold_requires_in_progress() -> None:
    with pytest.raises(MachineTransitionError, match="available -> hold") as exc:
        validate_machine_transition(current_status="available", next_status="hold")
    assert exc.value.code == "INVALID_MACHINE_TRANSITION"


def test_allowed_from_narrows_transitions() -> None:
    with pytest.raises(MachineTransitionError, match="hold -> in_progress"):
        validate_machine_transition(
            current_status="hold",
            next_status="in_progress",
            allowed_from=frozenset({"available"}),
        )


def test_submit_allowed_while_running_or_stopped() -> None:
    assert ensure_submittable("in_progress") == "in_progress"
    assert ensure_submittable("stop") == "stop"
    assert ensure_submittable("busy") == "in_progress"


def test_submit_rejected_while_idle_or_held() -> None:
    with pytest.raises(MachineTransitionError) as exc:
        ensure_submittable("available")
    assert exc.value.code == "MACHINE_NOT_SUBMITTABLE"

    with pytest.raises(MachineTransitionError) as exc:
        ensure_submittable("major_hold")
    assert exc.value.code == "JOB_ON_MAJOR_HOLD"


def test_transition_timestamps_keep_first_start() -> None:
    first = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
    later = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    started_at, completed_at = transition_timestamps(
        next_status="in_progress", started_at=first, completed_at=None, at=later
    )
    assert started_at == first
    assert completed_at is None

    started_at, completed_at = transition_timestamps(
        next_status="stop", started_at=first, completed_at=None, at=later
    )
    assert completed_at == later


def test_untouched_and_stopped_helpers() -> None:
    assert is_untouched("available")
    assert not is_untouched("hold")
    assert is_stopped("completed")
    assert not is_stopped("in_progress")
