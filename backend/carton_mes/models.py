"""SQLAlchemy models for jobs, plans, steps, machine work and step detail rows."""
from sqlalchemy import (
    Boolean, Column, String, Integer, DateTime, Text,
    ForeignKey, CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declared_attr, relationship
from sqlalchemy.sql import func
import uuid
from .database import Base


MACHINE_WORK_STATUSES = ("available", "in_progress", "hold", "major_hold", "stop")
JOB_STEP_STATUSES = ("planned", "start", "stop")
STEP_DETAIL_STATUSES = ("planned", "in_progress", "hold", "major_hold", "accept", "reject")


class User(Base):
    """User model (owned by the identity service, read here)."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    # Single role or comma-separated list, e.g. "printer,corrugator".
    role = Column(String(255), nullable=False, default="operator")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    machine_grants = relationship("UserMachine", back_populates="user")


class Machine(Base):
    """Physical machine."""
    __tablename__ = "machines"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    machine_code = Column(String(100), unique=True, nullable=False, index=True)
    machine_type = Column(String(100), nullable=False)
    unit = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserMachine(Base):
    """Machine access grant for a user."""
    __tablename__ = "user_machines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    machine_id = Column(String(64), ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "machine_id", name="uq_user_machine"),
    )

    user = relationship("User", back_populates="machine_grants")


class Job(Base):
    """Production order."""
    __tablename__ = "jobs"

    nrc_job_no = Column(String(100), primary_key=True)
    customer_name = Column(String(255), nullable=True)
    style_item_sku = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE", index=True)
    job_demand = Column(String(20), nullable=False, default="medium")
    board_size = Column(String(100), nullable=True)
    flute_type = Column(String(50), nullable=True)
    top_face_gsm = Column(String(50), nullable=True)
    bottom_liner_gsm = Column(String(50), nullable=True)
    die_punch_code = Column(String(100), nullable=True)
    no_of_color = Column(String(20), nullable=True)
    box_dimensions = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(["ACTIVE", "INACTIVE", "HOLD"]), name="chk_job_status"),
        CheckConstraint(job_demand.in_(["low", "medium", "high"]), name="chk_job_demand"),
    )

    plannings = relationship("JobPlanning", back_populates="job")


class JobPlanning(Base):
    """Step plan for a job (one per purchase order)."""
    __tablename__ = "job_plannings"

    job_plan_id = Column(Integer, primary_key=True, autoincrement=True)
    nrc_job_no = Column(String(100), ForeignKey("jobs.nrc_job_no"), nullable=False, index=True)
    job_demand = Column(String(20), nullable=False, default="medium")
    purchase_order_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="plannings")
    steps = relationship("JobStep", back_populates="job_planning", cascade="all, delete-orphan")


class JobStep(Base):
    """One step of a plan."""
    __tablename__ = "job_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_planning_id = Column(
        Integer,
        ForeignKey("job_plannings.job_plan_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_no = Column(Integer, nullable=False)
    step_name = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="planned", index=True)
    user = Column(String(64), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    completed_by = Column(Text, nullable=True)
    # Planned machines: [{"machineId", "machineCode", "machineType", "unit"}]
    machine_details = Column(JSONB, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(list(JOB_STEP_STATUSES)), name="chk_job_step_status"),
        CheckConstraint("step_no BETWEEN 1 AND 8", name="chk_job_step_no"),
        UniqueConstraint("job_planning_id", "step_no", name="uq_job_step_plan_step_no"),
    )

    job_planning = relationship("JobPlanning", back_populates="steps")
    machine_work = relationship("JobStepMachine", back_populates="job_step", cascade="all, delete-orphan")


class JobStepMachine(Base):
    """One machine's work on one step."""
    __tablename__ = "job_step_machines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_step_id = Column(Integer, ForeignKey("job_steps.id", ondelete="CASCADE"), nullable=False, index=True)
    nrc_job_no = Column(String(100), nullable=False, index=True)
    step_no = Column(Integer, nullable=False)
    machine_id = Column(String(64), ForeignKey("machines.id"), nullable=False, index=True)
    machine_code = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="available", index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=True, index=True)
    submitted_by_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    form_data = Column(JSONB, nullable=True)
    remarks = Column(Text, nullable=True)
    # Only set while the record is frozen by a major hold.
    previous_status = Column(String(20), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(list(MACHINE_WORK_STATUSES)), name="chk_job_step_machine_status"),
        UniqueConstraint("job_step_id", "machine_id", name="uq_job_step_machine"),
        Index("idx_job_step_machines_job_status", "nrc_job_no", "status"),
    )

    job_step = relationship("JobStep", back_populates="machine_work")


class StepDetailMixin:
    """Columns shared by every step-type detail table."""

    id = Column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def job_step_id(cls):
        return Column(Integer, ForeignKey("job_steps.id", ondelete="SET NULL"), unique=True, nullable=True)

    @declared_attr
    def job_nrc_job_no(cls):
        return Column(String(100), ForeignKey("jobs.nrc_job_no"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="in_progress")
    quantity = Column(Integer, nullable=True)
    wastage = Column(Integer, nullable=True)
    machine = Column(Text, nullable=True)
    completed_by = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), nullable=True)
    shift = Column(String(20), nullable=True)
    remarks = Column(Text, nullable=True)
    hold_remark = Column(Text, nullable=True)
    previous_hold_remark = Column(Text, nullable=True)
    previous_status = Column(String(20), nullable=True)
    extra_data = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(
                f"status IN ({', '.join(repr(s) for s in STEP_DETAIL_STATUSES)})",
                name=f"chk_{cls.__tablename__}_status",
            ),
        )


class PaperStore(StepDetailMixin, Base):
    __tablename__ = "paper_store"

    sheet_size = Column(String(100), nullable=True)
    gsm = Column(String(50), nullable=True)
    available_qty = Column(Integer, nullable=True)
    required_qty = Column(Integer, nullable=True)


class PrintingDetails(StepDetailMixin, Base):
    __tablename__ = "printing_details"

    no_of_colours = Column(Integer, nullable=True)
    inks_used = Column(String(255), nullable=True)
    coating_type = Column(String(100), nullable=True)
    process_colors = Column(String(255), nullable=True)
    special_colors = Column(String(255), nullable=True)


class Corrugation(StepDetailMixin, Base):
    __tablename__ = "corrugation"

    flute = Column(String(50), nullable=True)
    gsm1 = Column(String(50), nullable=True)
    gsm2 = Column(String(50), nullable=True)
    size = Column(String(100), nullable=True)
    sheets_count = Column(Integer, nullable=True)


class FluteLaminateBoardConversion(StepDetailMixin, Base):
    __tablename__ = "flute_laminate_board_conversion"

    film_type = Column(String(100), nullable=True)
    adhesive = Column(String(100), nullable=True)


class Punching(StepDetailMixin, Base):
    __tablename__ = "punching"

    die = Column(String(100), nullable=True)


class SideFlapPasting(StepDetailMixin, Base):
    __tablename__ = "side_flap_pasting"

    adhesive = Column(String(100), nullable=True)


class QualityDept(StepDetailMixin, Base):
    __tablename__ = "quality_dept"

    rejected_qty = Column(Integer, nullable=True)


class DispatchProcess(StepDetailMixin, Base):
    __tablename__ = "dispatch_process"

    dispatch_no = Column(String(100), nullable=True)
    balance_qty = Column(Integer, nullable=True)


class CompletedJob(Base):
    """Terminal snapshot of a plan whose last step was accepted."""
    __tablename__ = "completed_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nrc_job_no = Column(String(100), nullable=False, index=True)
    job_plan_id = Column(Integer, nullable=False, unique=True)
    job_demand = Column(String(20), nullable=True)
    job_details = Column(JSONB, nullable=False, default=dict)
    all_steps = Column(JSONB, nullable=False, default=list)
    all_step_details = Column(JSONB, nullable=False, default=dict)
    completed_by = Column(Text, nullable=True)
    total_duration = Column(Integer, nullable=True)  # days
    remarks = Column(Text, nullable=True)
    final_status = Column(String(20), nullable=False, default="completed")
    completed_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class ActivityLog(Base):
    """User-facing activity trail."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    details = Column(Text, nullable=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(64), nullable=True)
    nrc_job_no = Column(String(100), nullable=True, index=True)
    payload = Column(JSONB, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
