from __future__ import annotations

from unittest.mock import patch

import pytest

import carton_mes.celery_app as worker
from carton_mes.domain_errors import InvalidTransition
from carton_mes.use_cases.machine_work import SweepResult

from fakes import FakeSession


def test_beat_schedule_runs_the_sweep_periodically() -> None:
    entry = worker.celery_app.conf.beat_schedule["complete-ready-steps"]

    assert entry["task"] == "complete_ready_steps"
    assert entry["schedule"] == worker.settings.AUTO_COMPLETION_INTERVAL_SECONDS


def test_sweep_task_runs_as_system_user_and_reports_counts() -> None:
    db = FakeSession()
    outcome = SweepResult(
        checked=3,
        completed=1,
        archived=1,
        failures=[InvalidTransition(code="JOB_ON_MAJOR_HOLD", message="held")],
    )

    with patch.object(worker, "SessionLocal", return_value=db), patch(
        "carton_mes.use_cases.machine_work.sweep_ready_steps_use_case", return_value=outcome
    ) as sweep:
        summary = worker.complete_ready_steps()

    assert summary == {"checked": 3, "completed": 1, "archived": 1, "skipped": ["JOB_ON_MAJOR_HOLD"]}
    kwargs = sweep.call_args.kwargs
    assert kwargs["db"] is db
    assert kwargs["current_user"].id == worker.settings.AUTO_COMPLETION_USER_ID
    assert db.rollback_calls == 0


def test_sweep_task_rolls_back_and_reraises_on_failure() -> None:
    db = FakeSession()

    with patch.object(worker, "SessionLocal", return_value=db), patch(
        "carton_mes.use_cases.machine_work.sweep_ready_steps_use_case", side_effect=RuntimeError("db gone")
    ):
        with pytest.raises(RuntimeError):
            worker.complete_ready_steps()

    assert db.rollback_calls == 1
