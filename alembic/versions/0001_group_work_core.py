"""group work core: projects, participants, groups, join requests, sprints, work items

Revision ID: 0001_group_work_core
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_group_work_core'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(length=256), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("participation_mode", sa.String(length=16), nullable=False),
        sa.Column("allow_student_form_team", sa.Boolean(), nullable=False),
        sa.Column("join_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("form_group_deadline", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "groups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("number", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("project_id", "number", name="uq_groups_project_number"),
        sa.CheckConstraint("number >= 1", name="ck_groups_number_positive"),
    )

    op.create_table(
        "project_participants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "project_id",
            sa.Uuid(),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("display_name", sa.String(length=256), nullable=False),
        sa.Column(
            "group_id",
            sa.Uuid(),
            sa.ForeignKey("groups.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("role_in_group", sa.String(length=16), nullable=True),
        sa.Column("group_joined_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("project_id", "user_id", name="uq_participant_project_user"),
    )
    op.create_index(
        "ix_participants_project_group",
        "project_participants",
        ["project_id", "group_id"],
    )

    op.create_table(
        "join_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "participant_id",
            sa.Uuid(),
            sa.ForeignKey("project_participants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Uuid(),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint(
            "participant_id",
            "group_id",
            name="uq_join_request_participant_group",
        ),
    )
    op.create_index("ix_join_requests_group", "join_requests", ["group_id"])

    op.create_table(
        "sprints",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "group_id",
            sa.Uuid(),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("group_id", "number", name="uq_sprints_group_number"),
        sa.CheckConstraint("number >= 1", name="ck_sprints_number_positive"),
    )
    op.create_index("ix_sprints_group_status", "sprints", ["group_id", "status"])

    op.create_table(
        "work_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "group_id",
            sa.Uuid(),
            sa.ForeignKey("groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "sprint_id",
            sa.Uuid(),
            sa.ForeignKey("sprints.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("summary", sa.String(length=512), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column(
            "assignee_id",
            sa.Uuid(),
            sa.ForeignKey("project_participants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_work_items_group_sprint", "work_items", ["group_id", "sprint_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("group_id", sa.Uuid(), nullable=True),
        sa.Column("actor_user_id", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_audit_project_group", "audit_logs", ["project_id", "group_id"])
    op.create_index("ix_audit_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_project_group", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_work_items_group_sprint", table_name="work_items")
    op.drop_table("work_items")

    op.drop_index("ix_sprints_group_status", table_name="sprints")
    op.drop_table("sprints")

    op.drop_index("ix_join_requests_group", table_name="join_requests")
    op.drop_table("join_requests")

    op.drop_index("ix_participants_project_group", table_name="project_participants")
    op.drop_table("project_participants")

    op.drop_table("groups")
    op.drop_table("projects")
