"""008: payment purpose and daily odds access

Revision ID: 008
Revises: 007
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "008"
down_revision: Union[str, None] = "007"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("ALTER TABLE users ADD COLUMN daily_access_granted_until TIMESTAMPTZ;")
    op.execute("""
        ALTER TABLE payments
            ADD COLUMN purpose VARCHAR(20) NOT NULL DEFAULT 'deposit';
    """)
    op.execute("UPDATE payments SET purpose = 'withdrawal' WHERE direction = 'out';")
    op.execute("""
        ALTER TABLE payments
            ADD CONSTRAINT ck_payments_purpose CHECK (
                purpose IN ('deposit', 'withdrawal', 'daily_access')
            ),
            ADD CONSTRAINT ck_payments_purpose_direction CHECK (
                (purpose = 'withdrawal') = (direction = 'out')
            );
    """)


def downgrade() -> None:
    op.execute("""
        ALTER TABLE payments
            DROP CONSTRAINT IF EXISTS ck_payments_purpose_direction,
            DROP CONSTRAINT IF EXISTS ck_payments_purpose,
            DROP COLUMN IF EXISTS purpose;
    """)
    op.execute("ALTER TABLE users DROP COLUMN IF EXISTS daily_access_granted_until;")
