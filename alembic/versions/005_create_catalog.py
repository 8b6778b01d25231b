"""005: create catalog tables (games, markets, market_options)

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE games (
            id          VARCHAR(64)     PRIMARY KEY,
            home_team   VARCHAR(128)    NOT NULL,
            away_team   VARCHAR(128)    NOT NULL,
            league      VARCHAR(128),
            kick_off_at TIMESTAMPTZ     NOT NULL,
            status      VARCHAR(20)     NOT NULL DEFAULT 'scheduled',
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_games_status CHECK (
                status IN ('scheduled', 'live', 'finished', 'cancelled')
            )
        );
    """)
    op.execute("CREATE INDEX idx_games_status_kickoff ON games (status, kick_off_at);")
    op.execute("""
        CREATE TABLE markets (
            id          VARCHAR(64)     PRIMARY KEY,
            game_id     VARCHAR(64)     NOT NULL REFERENCES games (id),
            name        VARCHAR(128)    NOT NULL,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_markets_game_name UNIQUE (game_id, name)
        );
    """)
    op.execute("""
        CREATE TABLE market_options (
            id          VARCHAR(64)     PRIMARY KEY,
            market_id   VARCHAR(64)     NOT NULL REFERENCES markets (id),
            label       VARCHAR(200)    NOT NULL,
            odds_bps    INTEGER         NOT NULL,
            is_active   BOOLEAN         NOT NULL DEFAULT TRUE,
            updated_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_market_options_odds CHECK (odds_bps >= 10000)
        );
    """)
    op.execute("CREATE INDEX idx_market_options_market ON market_options (market_id);")
    for table in ("games", "market_options"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
                BEFORE UPDATE ON {table}
                FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
        """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_options CASCADE;")
    op.execute("DROP TABLE IF EXISTS markets CASCADE;")
    op.execute("DROP TABLE IF EXISTS games CASCADE;")
