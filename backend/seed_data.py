"""Seed database with a demo job that runs through every step."""
from carton_mes.database import Base, SessionLocal, engine
from carton_mes.models import (
    Job, JobPlanning, JobStep, Machine, PaperStore, PrintingDetails, User, UserMachine,
)
from carton_mes.services.step_catalog import STEP_NAMES
from datetime import datetime, timezone


MACHINES = [
    # (id, code, type, step_no)
    ("m-ps-1", "PS-1", "Paper store", 1),
    ("m-pr-1", "PR-1", "Flexo printer", 2),
    ("m-corr-a", "CORR-A", "Corrugator", 3),
    ("m-corr-b", "CORR-B", "Corrugator", 3),
    ("m-fl-1", "FL-1", "Flute laminator", 4),
    ("m-pun-1", "PUN-1", "Die punch", 5),
    ("m-fp-1", "FP-1", "Flap paster", 6),
    ("m-qc-1", "QC-1", "Inspection table", 7),
    ("m-dsp-1", "DSP-1", "Dispatch bay", 8),
]


def seed():
    """Seed database with demo data."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        users_data = [
            {'id': 'u-admin', 'name': 'Administrator', 'role': 'admin'},
            {'id': 'u-planner', 'name': 'Production Planner', 'role': 'planner'},
            {'id': 'u-corr-1', 'name': 'Corrugator Operator A', 'role': 'corrugator'},
            {'id': 'u-corr-2', 'name': 'Corrugator Operator B', 'role': 'corrugator'},
            {'id': 'u-line', 'name': 'Line Operator', 'role': 'printer,puncher,paster,qc,dispatch'},
        ]
        for user_data in users_data:
            db.add(User(**user_data))

        for machine_id, code, machine_type, _ in MACHINES:
            db.add(Machine(id=machine_id, machine_code=code, machine_type=machine_type, unit="Unit 1"))
        db.flush()

        grants = [
            ('u-corr-1', 'm-corr-a'),
            ('u-corr-2', 'm-corr-b'),
            ('u-line', 'm-ps-1'),
            ('u-line', 'm-pr-1'),
            ('u-line', 'm-fl-1'),
            ('u-line', 'm-pun-1'),
            ('u-line', 'm-fp-1'),
            ('u-line', 'm-qc-1'),
            ('u-line', 'm-dsp-1'),
        ]
        for user_id, machine_id in grants:
            db.add(UserMachine(user_id=user_id, machine_id=machine_id, is_active=True))

        job = Job(
            nrc_job_no="NRC-DEMO-001",
            customer_name="Demo Foods Pvt Ltd",
            style_item_sku="RSC-5PLY-40x60",
            status="ACTIVE",
            job_demand="medium",
            board_size="40x60",
            flute_type="B",
            top_face_gsm="150",
            bottom_liner_gsm="120",
            die_punch_code="DIE-7",
            no_of_color="4",
        )
        db.add(job)
        db.flush()

        planning = JobPlanning(nrc_job_no=job.nrc_job_no, job_demand=job.job_demand)
        db.add(planning)
        db.flush()

        now = datetime.now(timezone.utc)
        steps = {}
        for step_no, step_name in STEP_NAMES.items():
            machine_details = [
                {"machineId": machine_id, "machineCode": code, "machineType": machine_type, "unit": "Unit 1"}
                for machine_id, code, machine_type, machine_step in MACHINES
                if machine_step == step_no
            ]
            step = JobStep(
                job_planning_id=planning.job_plan_id,
                step_no=step_no,
                step_name=step_name,
                status="planned",
                machine_details=machine_details,
            )
            db.add(step)
            steps[step_no] = step
        db.flush()

        # Paper store already issued 8500 sheets; corrugation expects that many.
        steps[1].status = "stop"
        steps[1].start_date = now
        steps[1].end_date = now
        steps[1].completed_by = "u-line"
        db.add(PaperStore(
            job_step_id=steps[1].id,
            job_nrc_job_no=job.nrc_job_no,
            status="accept",
            quantity=8500,
            wastage=0,
            sheet_size=job.board_size,
            machine="PS-1",
            completed_by="u-line",
            date=now,
        ))
        steps[2].status = "stop"
        steps[2].start_date = now
        steps[2].end_date = now
        steps[2].completed_by = "u-line"
        db.add(PrintingDetails(
            job_step_id=steps[2].id,
            job_nrc_job_no=job.nrc_job_no,
            status="accept",
            quantity=8500,
            wastage=0,
            no_of_colours=4,
            machine="PR-1",
            completed_by="u-line",
            date=now,
        ))

        db.commit()
        print("✅ Database seeded successfully!")
        print(f"\nDemo job: {job.nrc_job_no} (plan {planning.job_plan_id})")
        print("  Step 3 Corrugation is ready on CORR-A (u-corr-1) and CORR-B (u-corr-2)")
        print("  Privileged users: u-admin, u-planner")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
