"""initial_workflow_schema

Create the catalog (profiles, stages, stage_activities), identity (users),
clients, client progress (client_stages, client_activities) and
notes / pending_tasks tables.

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-17 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2a9d4b10"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk():
    return sa.Column("id", sa.String(length=36), nullable=False)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            _uuid_pk(),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            _uuid_pk(),
            sa.Column("username", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="operator"),
            sa.Column("profile_id", sa.String(length=36), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
            sa.CheckConstraint("role IN ('admin','operator')", name="ck_user_role"),
        )
        op.create_index("ix_users_profile_id", "users", ["profile_id"])

    if "stages" not in existing_tables:
        op.create_table(
            "stages",
            _uuid_pk(),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_index"),
            sa.CheckConstraint("order_index >= 1", name="ck_stage_order_positive"),
        )

    if "stage_activities" not in existing_tables:
        op.create_table(
            "stage_activities",
            _uuid_pk(),
            sa.Column("stage_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["stage_id"], ["stages.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("stage_id", "order_index", name="uq_stage_activity_order"),
        )
        op.create_index("ix_stage_activities_stage_id", "stage_activities", ["stage_id"])

    if "activity_allowed_profiles" not in existing_tables:
        op.create_table(
            "activity_allowed_profiles",
            sa.Column("activity_id", sa.String(length=36), nullable=False),
            sa.Column("profile_id", sa.String(length=36), nullable=False),
            sa.ForeignKeyConstraint(["activity_id"], ["stage_activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["profile_id"], ["profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("activity_id", "profile_id"),
        )

    if "clients" not in existing_tables:
        op.create_table(
            "clients",
            _uuid_pk(),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("birth_date", sa.Date(), nullable=True),
            sa.Column("gender", sa.String(length=20), nullable=True),
            sa.Column("guardian_name", sa.String(length=200), nullable=True),
            sa.Column("guardian_phone", sa.String(length=30), nullable=True),
            sa.Column("guardian_email", sa.String(length=200), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clients_name", "clients", ["name"])

    if "client_stages" not in existing_tables:
        op.create_table(
            "client_stages",
            _uuid_pk(),
            sa.Column("client_id", sa.String(length=36), nullable=False),
            sa.Column("stage_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("started_by", sa.String(length=36), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.String(length=36), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["stage_id"], ["stages.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["started_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["completed_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("client_id", "stage_id", name="uq_client_stage"),
            sa.CheckConstraint(
                "status IN ('not_started','in_progress','completed')",
                name="ck_client_stage_status",
            ),
        )
        op.create_index("ix_client_stages_client_id", "client_stages", ["client_id"])
        op.create_index("ix_client_stages_stage_id", "client_stages", ["stage_id"])

    if "client_activities" not in existing_tables:
        op.create_table(
            "client_activities",
            _uuid_pk(),
            sa.Column("client_id", sa.String(length=36), nullable=False),
            sa.Column("activity_id", sa.String(length=36), nullable=False),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.String(length=36), nullable=True),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["activity_id"], ["stage_activities.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["completed_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("client_id", "activity_id", name="uq_client_activity"),
        )
        op.create_index("ix_client_activities_client_id", "client_activities", ["client_id"])
        op.create_index("ix_client_activities_activity_id", "client_activities", ["activity_id"])

    if "notes" not in existing_tables:
        op.create_table(
            "notes",
            _uuid_pk(),
            sa.Column("client_id", sa.String(length=36), nullable=False),
            sa.Column("stage_id", sa.String(length=36), nullable=True),
            sa.Column("activity_id", sa.String(length=36), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("is_auto_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["stage_id"], ["stages.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["activity_id"], ["stage_activities.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_note_client_created", "notes", ["client_id", "created_at"])
        op.create_index("ix_notes_stage_id", "notes", ["stage_id"])

    if "pending_tasks" not in existing_tables:
        op.create_table(
            "pending_tasks",
            _uuid_pk(),
            sa.Column("client_id", sa.String(length=36), nullable=False),
            sa.Column("stage_id", sa.String(length=36), nullable=False),
            sa.Column("note_id", sa.String(length=36), nullable=True, comment="Origin note"),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column(
                "assigned_profile_id", sa.String(length=36), nullable=True,
                comment="NULL = any user may resolve",
            ),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("resolved_by", sa.String(length=36), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolution_note_id", sa.String(length=36), nullable=True),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["stage_id"], ["stages.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["assigned_profile_id"], ["profiles.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["resolved_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["resolution_note_id"], ["notes.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("status IN ('pending','resolved')", name="ck_pending_task_status"),
        )
        op.create_index(
            "idx_pending_task_client_stage_status",
            "pending_tasks", ["client_id", "stage_id", "status"],
        )


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "pending_tasks",
        "notes",
        "client_activities",
        "client_stages",
        "clients",
        "activity_allowed_profiles",
        "stage_activities",
        "stages",
        "users",
        "profiles",
    ):
        if table in existing_tables:
            op.drop_table(table)
