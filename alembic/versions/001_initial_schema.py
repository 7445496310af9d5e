"""001 – Initial schema: users, sessions, attendance, leave, calendar, settings, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-12-01 09:00:00.000000+05:30
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS: list[tuple[str, str]] = [
    ("timezone", "Asia/Kolkata"),
    ("weekly_off_mode", "3"),
    ("desktop_enabled", "1"),
    ("desktop_disabled_at", ""),
    ("test_date_override", ""),
    ("company_name", "Attendance System"),
    ("company_logo", ""),
    ("brand_color", "#0ea5a4"),
]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            username            VARCHAR(64) PRIMARY KEY,
            display_name        VARCHAR(100),
            password_hash       VARCHAR(255) NOT NULL,
            role                VARCHAR(20)  NOT NULL DEFAULT 'employee'
                                CHECK (role IN ('owner', 'manager', 'employee')),
            leave_balance       NUMERIC(6,1) NOT NULL DEFAULT 0,
            last_accrual_month  VARCHAR(7),
            join_date           DATE NOT NULL,
            is_active           BOOLEAN DEFAULT TRUE,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id           VARCHAR(36) PRIMARY KEY,
            username     VARCHAR(64) NOT NULL REFERENCES users(username) ON DELETE CASCADE,
            token_hash   VARCHAR(128) NOT NULL,
            ip_address   VARCHAR(45),
            user_agent   TEXT,
            expires_at   TIMESTAMPTZ NOT NULL,
            is_revoked   BOOLEAN DEFAULT FALSE,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_user_sessions_username   ON user_sessions(username)")
    op.execute("CREATE INDEX ix_user_sessions_token_hash ON user_sessions(token_hash)")

    # ── 3. attendance_records ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_records (
            id                   SERIAL PRIMARY KEY,
            username             VARCHAR(64) NOT NULL REFERENCES users(username) ON DELETE CASCADE,
            date                 DATE NOT NULL,
            check_in_at          TIMESTAMPTZ,
            check_in_latitude    DOUBLE PRECISION,
            check_in_longitude   DOUBLE PRECISION,
            check_in_photo       VARCHAR(500),
            check_out_at         TIMESTAMPTZ,
            check_out_latitude   DOUBLE PRECISION,
            check_out_longitude  DOUBLE PRECISION,
            check_out_photo      VARCHAR(500),
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_user_date UNIQUE (username, date),
            CONSTRAINT ck_attendance_out_after_in
                CHECK (check_out_at IS NULL OR check_out_at > check_in_at)
        )
    """)
    op.execute("CREATE INDEX ix_attendance_records_username ON attendance_records(username)")

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id            SERIAL PRIMARY KEY,
            username      VARCHAR(64) NOT NULL REFERENCES users(username) ON DELETE CASCADE,
            start_date    DATE NOT NULL,
            end_date      DATE NOT NULL,
            reason        VARCHAR(250) NOT NULL,
            status        VARCHAR(20) NOT NULL DEFAULT 'pending'
                          CHECK (status IN ('pending', 'approved', 'rejected', 'withdrawn')),
            leave_type    VARCHAR(10) NOT NULL DEFAULT 'full'
                          CHECK (leave_type IN ('full', 'half')),
            is_backdated  BOOLEAN DEFAULT FALSE,
            approved_by   VARCHAR(64),
            resolved_at   TIMESTAMPTZ,
            withdrawn     BOOLEAN DEFAULT FALSE,
            withdrawn_at  TIMESTAMPTZ,
            created_at    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_requests_range CHECK (start_date <= end_date),
            CONSTRAINT ck_leave_requests_half_single
                CHECK (leave_type = 'full' OR start_date = end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_user_dates "
        "ON leave_requests(username, start_date, end_date)"
    )
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 5. ad_hoc_offs ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE ad_hoc_offs (
            id          SERIAL PRIMARY KEY,
            date        DATE NOT NULL UNIQUE,
            reason      VARCHAR(250),
            created_by  VARCHAR(64),
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 6. holidays ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE holidays (
            id          SERIAL PRIMARY KEY,
            name        VARCHAR(100) NOT NULL,
            date        DATE,
            month_day   VARCHAR(5),
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_holidays_has_key CHECK (date IS NOT NULL OR month_day IS NOT NULL)
        )
    """)
    op.execute("CREATE INDEX ix_holidays_date      ON holidays(date)")
    op.execute("CREATE INDEX ix_holidays_month_day ON holidays(month_day)")

    # ── 7. app_settings ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE app_settings (
            name        VARCHAR(100) PRIMARY KEY,
            value       TEXT NOT NULL DEFAULT '',
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_by  VARCHAR(64)
        )
    """)

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           SERIAL PRIMARY KEY,
            actor        VARCHAR(64),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    VARCHAR(64) NOT NULL,
            old_values   JSON,
            new_values   JSON,
            ip_address   VARCHAR(45),
            user_agent   TEXT,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor      ON audit_trail(actor)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")

    # ── Seed runtime settings ─────────────────────────────────────────────
    settings_table = sa.table(
        "app_settings",
        sa.column("name", sa.String),
        sa.column("value", sa.Text),
    )
    op.bulk_insert(
        settings_table,
        [{"name": name, "value": value} for name, value in DEFAULT_SETTINGS],
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "app_settings",
        "holidays",
        "ad_hoc_offs",
        "leave_requests",
        "attendance_records",
        "user_sessions",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")
