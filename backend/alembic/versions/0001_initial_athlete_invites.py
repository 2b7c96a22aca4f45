"""coach, athlete, athlete_auth, athlete_invite

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "coach",
        sa.Column("coach_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index("ix_coach_email", "coach", ["email"], unique=True)

    op.create_table(
        "athlete",
        sa.Column("athlete_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("coach_id", sa.String(length=64), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name", sa.String(length=120), nullable=False),
        sa.Column("notes_public", sa.Text(), nullable=True),
        sa.Column("notes_private", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["coach_id"], ["coach.coach_id"], ondelete="CASCADE"),
    )
    op.create_index("ix_athlete_coach_id", "athlete", ["coach_id"], unique=False)

    op.create_table(
        "athlete_auth",
        sa.Column("athlete_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("login_identifier", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["athlete_id"], ["athlete.athlete_id"], ondelete="CASCADE"),
    )
    # Email collisions between athletes are detected by this index
    op.create_index(
        "ux_athlete_auth_login_identifier",
        "athlete_auth",
        ["login_identifier"],
        unique=True,
    )

    op.create_table(
        "athlete_invite",
        sa.Column("invite_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["athlete_id"], ["athlete.athlete_id"], ondelete="CASCADE"),
    )
    op.create_index("ux_athlete_invite_token_hash", "athlete_invite", ["token_hash"], unique=True)
    op.create_index("ix_athlete_invite_athlete_id", "athlete_invite", ["athlete_id"], unique=False)
    op.create_index(
        "ix_athlete_invite_athlete_used",
        "athlete_invite",
        ["athlete_id", "used_at"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_athlete_invite_athlete_used", table_name="athlete_invite")
    op.drop_index("ix_athlete_invite_athlete_id", table_name="athlete_invite")
    op.drop_index("ux_athlete_invite_token_hash", table_name="athlete_invite")
    op.drop_table("athlete_invite")

    op.drop_index("ux_athlete_auth_login_identifier", table_name="athlete_auth")
    op.drop_table("athlete_auth")

    op.drop_index("ix_athlete_coach_id", table_name="athlete")
    op.drop_table("athlete")

    op.drop_index("ix_coach_email", table_name="coach")
    op.drop_table("coach")
