"""initial schema: jobs, plans, steps, machine work, step details, archive

Revision ID: 001
Revises:
Create Date: 2026-03-01

"""
from alembic import op

from carton_mes import models  # noqa: F401
from carton_mes.database import Base

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # The models are the schema of record for this baseline.
    Base.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    Base.metadata.drop_all(bind=op.get_bind())
