"""Step completion against a real SQLAlchemy session.

The in-memory fake never expires instances on commit; these tests run the
same use-cases on SQLite with the production session options so that reads
after an archiving commit are exercised for real.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from carton_mes.database import Base
from carton_mes.models import (
    CompletedJob,
    DispatchProcess,
    Job,
    JobPlanning,
    JobStep,
    JobStepMachine,
    Machine,
    QualityDept,
    User,
    UserMachine,
)
from carton_mes.services.shift_calendar import ShiftCalendar
from carton_mes.use_cases.machine_work import (
    StepEngineHooks,
    start_machine_use_case,
    stop_machine_use_case,
    submit_work_use_case,
)

NOW = datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)
JOB_NO = "NRC-3003"
PLAN_ID = 40


@compiles(JSONB, "sqlite")
def _jsonb_as_sqlite_json(type_, compiler, **kw):
    return "JSON"


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def _seed_last_two_steps(db) -> None:
    """Quality inspection done with 500 boxes; dispatch started on DSP-1."""
    db.add_all(
        [
            User(id="op-1", name="Dispatch Operator", role="dispatch"),
            Machine(id="M-D", machine_code="DSP-1", machine_type="Dispatch bay"),
            Job(nrc_job_no=JOB_NO, status="ACTIVE", job_demand="medium", board_size="40x60"),
        ]
    )
    db.flush()
    db.add(UserMachine(user_id="op-1", machine_id="M-D", is_active=True))
    db.add(JobPlanning(job_plan_id=PLAN_ID, nrc_job_no=JOB_NO, job_demand="medium"))
    db.flush()
    db.add_all(
        [
            JobStep(
                id=407,
                job_planning_id=PLAN_ID,
                step_no=7,
                step_name="QualityDept",
                status="stop",
                start_date=NOW,
                end_date=NOW,
                machine_details=[],
            ),
            JobStep(
                id=408,
                job_planning_id=PLAN_ID,
                step_no=8,
                step_name="DispatchProcess",
                status="start",
                start_date=NOW,
                machine_details=[{"machineId": "M-D", "machineCode": "DSP-1", "machineType": "Dispatch bay"}],
            ),
        ]
    )
    db.flush()
    db.add(QualityDept(job_step_id=407, job_nrc_job_no=JOB_NO, status="accept", quantity=500, wastage=0))
    db.commit()


class _Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return True


def _hooks(recorder) -> StepEngineHooks:
    return StepEngineHooks(
        now_utc=lambda: NOW,
        shift_calendar=ShiftCalendar.from_schedule(None),
        notify_activity=recorder,
    )


def test_terminal_submission_archives_and_reports_after_commit(db) -> None:
    _seed_last_two_steps(db)
    recorder = _Recorder()
    operator = db.get(User, "op-1")

    start_machine_use_case(
        db=db, nrc_job_no=JOB_NO, step_no=8, machine_id="M-D", current_user=operator, hooks=_hooks(recorder)
    )
    result = submit_work_use_case(
        db=db,
        nrc_job_no=JOB_NO,
        step_no=8,
        machine_id="M-D",
        form_data={"okQuantity": 500, "dispatchNo": "DN-91"},
        current_user=operator,
        hooks=_hooks(recorder),
    )

    assert result.completion.completed is True
    assert result.completion.archived is True
    assert result.completion.detail_id is not None
    assert result.record.machine_id == "M-D"
    assert result.record.status == "in_progress"
    assert result.record.form_data == {"okQuantity": 500, "dispatchNo": "DN-91"}

    archive = db.query(CompletedJob).one()
    assert archive.job_plan_id == PLAN_ID
    assert archive.all_step_details["DispatchProcess"]["dispatch_no"] == "DN-91"
    assert db.query(JobStep).count() == 0
    assert db.query(JobPlanning).count() == 0
    assert db.query(JobStepMachine).count() == 0
    assert db.query(DispatchProcess).count() == 1
    assert db.get(Job, JOB_NO).status == "INACTIVE"
    assert [call["action"] for call in recorder.calls] == ["step_completed", "job_archived"]
    assert recorder.calls[0]["nrc_job_no"] == JOB_NO
    assert recorder.calls[1]["resource_id"] == str(PLAN_ID)


def test_terminal_stop_archives_and_returns_stopped_machine(db) -> None:
    _seed_last_two_steps(db)
    recorder = _Recorder()
    operator = db.get(User, "op-1")

    start_machine_use_case(
        db=db, nrc_job_no=JOB_NO, step_no=8, machine_id="M-D", current_user=operator, hooks=_hooks(recorder)
    )
    result = stop_machine_use_case(
        db=db, nrc_job_no=JOB_NO, step_no=8, machine_id="M-D", current_user=operator, hooks=_hooks(recorder)
    )

    assert result.completion.completed is True
    assert result.completion.decision.rule == "all_machines_stopped"
    assert result.completion.archived is True
    assert result.record.status == "stop"
    assert db.query(CompletedJob).count() == 1
    assert db.query(JobStep).count() == 0
