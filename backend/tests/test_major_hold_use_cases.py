from __future__ import annotations

from types import SimpleNamespace

import pytest

from carton_mes.domain_errors import DomainError
from carton_mes.models import (
    Corrugation,
    Job,
    JobPlanning,
    JobStep,
    JobStepMachine,
    PaperStore,
    PrintingDetails,
)
from carton_mes.use_cases.major_hold import MajorHoldHooks, major_hold_use_case, major_resume_use_case

from fakes import FakeSession

JOB_NO = "NRC-2002"


def _planner():
    return SimpleNamespace(id="pl-1", role="planner")


def _hooks(calls):
    return MajorHoldHooks(notify_activity=lambda **kwargs: calls.append(kwargs))


def _machine(step_id, step_no, machine_id, status, **extra):
    return JobStepMachine(
        job_step_id=step_id,
        nrc_job_no=JOB_NO,
        step_no=step_no,
        machine_id=machine_id,
        machine_code=machine_id.upper(),
        status=status,
        **extra,
    )


def _world():
    """Plan 20 with step 1 done, step 2 running and step 3 planned; plan 21 running step 1."""
    db = FakeSession(
        Job(nrc_job_no=JOB_NO, status="ACTIVE", job_demand="medium"),
        JobPlanning(job_plan_id=20, nrc_job_no=JOB_NO, job_demand="medium"),
        JobPlanning(job_plan_id=21, nrc_job_no=JOB_NO, job_demand="medium"),
        JobStep(id=201, job_planning_id=20, step_no=1, step_name="PaperStore", status="stop", machine_details=[]),
        JobStep(
            id=202,
            job_planning_id=20,
            step_no=2,
            step_name="PrintingDetails",
            status="start",
            machine_details=[
                {"machineId": "pr-1", "machineCode": "PR-1"},
                {"machineId": "pr-2", "machineCode": "PR-2"},
                {"machineId": "pr-3", "machineCode": "PR-3"},
            ],
        ),
        JobStep(
            id=203,
            job_planning_id=20,
            step_no=3,
            step_name="Corrugation",
            status="planned",
            machine_details=[{"machineId": "co-1", "machineCode": "CO-1"}],
        ),
        JobStep(id=211, job_planning_id=21, step_no=1, step_name="PaperStore", status="start", machine_details=[]),
    )
    db.add(_machine(201, 1, "ps-1", "stop"))
    db.add(_machine(202, 2, "pr-1", "in_progress"))
    db.add(_machine(202, 2, "pr-2", "hold", remarks="ink refill"))
    db.add(_machine(211, 1, "ps-9", "in_progress"))
    db.add(PaperStore(job_step_id=201, job_nrc_job_no=JOB_NO, status="accept", quantity=9000))
    db.add(PrintingDetails(job_step_id=202, job_nrc_job_no=JOB_NO, status="in_progress"))
    db.add(PaperStore(job_step_id=211, job_nrc_job_no=JOB_NO, status="hold"))
    return db


def _statuses(db):
    return {r.machine_id: r.status for r in db.rows(JobStepMachine)}


def test_major_hold_freezes_active_work_and_resume_restores_it() -> None:
    db = _world()
    calls = []

    held = major_hold_use_case(db=db, nrc_job_no=JOB_NO, remarks="customer on credit hold", current_user=_planner(), hooks=_hooks(calls))

    assert held.job_plan_ids == [20, 21]
    assert held.machines_affected == 4
    assert held.details_affected == 2
    assert held.failures == []
    assert _statuses(db) == {
        "ps-1": "stop",
        "pr-1": "major_hold",
        "pr-2": "major_hold",
        "pr-3": "major_hold",
        "ps-9": "major_hold",
    }
    pr2 = next(r for r in db.rows(JobStepMachine) if r.machine_id == "pr-2")
    assert pr2.previous_status == "hold"
    assert pr2.remarks == "ink refill"
    printing = db.rows(PrintingDetails)[0]
    assert (printing.status, printing.previous_status, printing.hold_remark) == (
        "major_hold",
        "in_progress",
        "customer on credit hold",
    )
    assert db.rows(Corrugation) == []
    assert db.commit_calls == 1
    assert calls[0]["action"] == "major_hold"

    resumed = major_resume_use_case(db=db, nrc_job_no=JOB_NO, current_user=_planner(), hooks=_hooks(calls))

    assert resumed.machines_affected == 4
    assert resumed.details_affected == 2
    assert _statuses(db) == {
        "ps-1": "stop",
        "pr-1": "in_progress",
        "pr-2": "hold",
        "pr-3": "available",
        "ps-9": "in_progress",
    }
    assert all(r.previous_status is None for r in db.rows(JobStepMachine))
    statuses = sorted((row.job_step_id, row.status) for row in db.rows(PaperStore) + db.rows(PrintingDetails))
    assert statuses == [(201, "accept"), (202, "in_progress"), (211, "hold")]
    assert [call["action"] for call in calls] == ["major_hold", "major_resume"]


def test_major_hold_can_target_one_plan() -> None:
    db = _world()

    held = major_hold_use_case(
        db=db, nrc_job_no=JOB_NO, remarks="die damaged", current_user=_planner(), job_plan_id=21, hooks=_hooks([])
    )

    assert held.job_plan_ids == [21]
    assert held.machines_affected == 1
    assert _statuses(db)["pr-1"] == "in_progress"
    assert _statuses(db)["ps-9"] == "major_hold"


def test_major_hold_requires_privileged_role() -> None:
    db = _world()

    with pytest.raises(DomainError) as exc:
        major_hold_use_case(
            db=db,
            nrc_job_no=JOB_NO,
            remarks="stop",
            current_user=SimpleNamespace(id="op-1", role="printer"),
            hooks=_hooks([]),
        )

    assert exc.value.code == "MAJOR_HOLD_FORBIDDEN"
    assert exc.value.http_status == 403


def test_major_hold_requires_remark() -> None:
    db = _world()

    with pytest.raises(DomainError) as exc:
        major_hold_use_case(db=db, nrc_job_no=JOB_NO, remarks="   ", current_user=_planner(), hooks=_hooks([]))

    assert exc.value.code == "HOLD_REMARK_REQUIRED"
    assert exc.value.http_status == 422


def test_major_hold_unknown_job_is_not_found() -> None:
    with pytest.raises(DomainError) as exc:
        major_hold_use_case(
            db=FakeSession(), nrc_job_no="NRC-404", remarks="x", current_user=_planner(), hooks=_hooks([])
        )

    assert exc.value.code == "JOB_PLANNING_NOT_FOUND"


def test_nothing_to_hold_when_job_is_idle() -> None:
    db = FakeSession(
        JobPlanning(job_plan_id=30, nrc_job_no=JOB_NO, job_demand="medium"),
        JobStep(id=301, job_planning_id=30, step_no=1, step_name="PaperStore", status="planned", machine_details=[]),
    )

    with pytest.raises(DomainError) as exc:
        major_hold_use_case(db=db, nrc_job_no=JOB_NO, remarks="x", current_user=_planner(), hooks=_hooks([]))

    assert exc.value.code == "NOTHING_TO_HOLD"
    assert db.rollback_calls == 1
    assert db.commit_calls == 0


def test_resume_without_hold_is_rejected() -> None:
    db = _world()

    with pytest.raises(DomainError) as exc:
        major_resume_use_case(db=db, nrc_job_no=JOB_NO, current_user=_planner(), hooks=_hooks([]))

    assert exc.value.code == "NOTHING_HELD"


def test_detail_table_failure_is_reported_while_machines_are_held() -> None:
    db = _world()
    db.failing_models.add(PrintingDetails)

    held = major_hold_use_case(db=db, nrc_job_no=JOB_NO, remarks="power cut", current_user=_planner(), hooks=_hooks([]))

    assert held.machines_affected == 4
    assert held.details_affected == 1
    [failure] = held.failures
    assert failure.code == "STEP_DETAIL_HOLD_FAILED"
    assert failure.details["table"] == "printing_details"
    assert db.rows(PaperStore)[1].status == "major_hold"
    assert db.commit_calls == 1


def test_activity_failure_does_not_undo_major_hold() -> None:
    db = _world()

    def _broken(**_kwargs):
        raise RuntimeError("broker unreachable")

    held = major_hold_use_case(
        db=db,
        nrc_job_no=JOB_NO,
        remarks="power cut",
        current_user=_planner(),
        hooks=MajorHoldHooks(notify_activity=_broken),
    )

    assert held.machines_affected == 4


def test_resume_restores_detail_hold_remark_from_before_major_hold() -> None:
    db = _world()
    held_paper = db.rows(PaperStore)[1]
    held_paper.hold_remark = "waiting for reel"

    major_hold_use_case(db=db, nrc_job_no=JOB_NO, remarks="audit", current_user=_planner(), hooks=_hooks([]))

    assert (held_paper.status, held_paper.hold_remark) == ("major_hold", "audit")
    assert held_paper.previous_hold_remark == "waiting for reel"

    major_resume_use_case(db=db, nrc_job_no=JOB_NO, current_user=_planner(), hooks=_hooks([]))

    assert (held_paper.status, held_paper.hold_remark) == ("hold", "waiting for reel")
    assert held_paper.previous_hold_remark is None
    printing = db.rows(PrintingDetails)[0]
    assert (printing.status, printing.hold_remark) == ("in_progress", None)
