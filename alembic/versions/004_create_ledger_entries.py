"""004: create ledger_entries table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # clock_timestamp(), not NOW(): entries written in one transaction keep their order
    op.execute("""
        CREATE TABLE ledger_entries (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL,
            kind            VARCHAR(30)     NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_after   BIGINT          NOT NULL,
            related_bet_id  VARCHAR(64),
            bet_group_id    VARCHAR(64),
            external_ref    VARCHAR(128),
            description     VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT clock_timestamp(),
            CONSTRAINT fk_ledger_wallet FOREIGN KEY (user_id) REFERENCES wallets (user_id),
            CONSTRAINT ck_ledger_kind CHECK (
                kind IN (
                    'deposit', 'withdrawal',
                    'bet_placed', 'bet_won', 'bet_refunded',
                    'withdrawal_reversed'
                )
            ),
            CONSTRAINT ck_ledger_amount_nonzero CHECK (amount <> 0),
            CONSTRAINT ck_ledger_amount_sign CHECK (
                (kind IN ('withdrawal', 'bet_placed') AND amount < 0)
                OR (kind IN ('deposit', 'bet_won', 'bet_refunded', 'withdrawal_reversed')
                    AND amount > 0)
            ),
            CONSTRAINT ck_ledger_balance_gte_0 CHECK (balance_after >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_ledger_user_id ON ledger_entries (user_id, id DESC);")
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_external_ref
        ON ledger_entries (user_id, kind, external_ref)
        WHERE external_ref IS NOT NULL;
    """)
    op.execute("""
        CREATE INDEX idx_ledger_bet_group
        ON ledger_entries (bet_group_id)
        WHERE bet_group_id IS NOT NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_ledger_append_only
            BEFORE UPDATE OR DELETE ON ledger_entries
            FOR EACH ROW EXECUTE FUNCTION fn_reject_ledger_mutation();
    """)
    op.execute("COMMENT ON TABLE ledger_entries IS 'Append-only money history, amounts in cents';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
