"""007: create payments table

Revision ID: 007
Revises: 006
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE payments (
            id              VARCHAR(64)     PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            gateway         VARCHAR(10)     NOT NULL,
            gateway_ref     VARCHAR(128)    NOT NULL,
            amount          BIGINT          NOT NULL,
            direction       VARCHAR(3)      NOT NULL,
            status          VARCHAR(10)     NOT NULL DEFAULT 'pending',
            phone_number    VARCHAR(20),
            failure_reason  VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            resolved_at     TIMESTAMPTZ,
            CONSTRAINT uq_payments_gateway_ref UNIQUE (gateway_ref),
            CONSTRAINT ck_payments_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_payments_gateway CHECK (gateway IN ('mpesa', 'paypal')),
            CONSTRAINT ck_payments_direction CHECK (direction IN ('in', 'out')),
            CONSTRAINT ck_payments_status CHECK (status IN ('pending', 'confirmed', 'failed'))
        );
    """)
    op.execute("CREATE INDEX idx_payments_user ON payments (user_id, created_at DESC);")
    op.execute("""
        CREATE INDEX idx_payments_pending
        ON payments (created_at)
        WHERE status = 'pending';
    """)
    op.execute("""
        CREATE TRIGGER trg_payments_updated_at
            BEFORE UPDATE ON payments
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS payments CASCADE;")
