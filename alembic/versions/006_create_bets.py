"""006: create bet_groups and bets tables

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE bet_groups (
            id                  VARCHAR(64)     PRIMARY KEY,
            user_id             VARCHAR(64)     NOT NULL,
            stake               BIGINT          NOT NULL,
            combined_odds_bps   BIGINT          NOT NULL,
            potential_winnings  BIGINT          NOT NULL,
            leg_count           INTEGER         NOT NULL,
            status              VARCHAR(10)     NOT NULL DEFAULT 'active',
            placed_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            settled_at          TIMESTAMPTZ,
            CONSTRAINT ck_bet_groups_stake_gt_0 CHECK (stake > 0),
            CONSTRAINT ck_bet_groups_odds CHECK (combined_odds_bps >= 10000),
            CONSTRAINT ck_bet_groups_legs CHECK (leg_count >= 1),
            CONSTRAINT ck_bet_groups_status CHECK (status IN ('active', 'won', 'lost'))
        );
    """)
    op.execute("CREATE INDEX idx_bet_groups_user ON bet_groups (user_id, placed_at DESC);")
    op.execute("""
        CREATE TABLE bets (
            id                  VARCHAR(64)     PRIMARY KEY,
            group_id            VARCHAR(64)     NOT NULL REFERENCES bet_groups (id),
            user_id             VARCHAR(64)     NOT NULL,
            game_id             VARCHAR(64)     NOT NULL,
            market_id           VARCHAR(64),
            market_option_id    VARCHAR(64),
            label               VARCHAR(200)    NOT NULL,
            stake               BIGINT          NOT NULL,
            odds_bps            INTEGER         NOT NULL,
            potential_winnings  BIGINT          NOT NULL,
            status              VARCHAR(10)     NOT NULL DEFAULT 'active',
            placed_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            settled_at          TIMESTAMPTZ,
            CONSTRAINT ck_bets_stake_gt_0 CHECK (stake > 0),
            CONSTRAINT ck_bets_odds CHECK (odds_bps >= 10000),
            CONSTRAINT ck_bets_status CHECK (status IN ('active', 'won', 'lost')),
            CONSTRAINT uq_bets_group_game UNIQUE (group_id, game_id)
        );
    """)
    op.execute("CREATE INDEX idx_bets_user_placed ON bets (user_id, placed_at DESC);")
    op.execute("CREATE INDEX idx_bets_group ON bets (group_id);")
    op.execute("CREATE INDEX idx_bets_active_game ON bets (game_id) WHERE status = 'active';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bets CASCADE;")
    op.execute("DROP TABLE IF EXISTS bet_groups CASCADE;")
