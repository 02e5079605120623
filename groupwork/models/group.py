# groupwork/models/group.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, ForeignKey, UniqueConstraint, CheckConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupwork.db.base import Base


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    number: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    project = relationship("Project", back_populates="groups")

    # not owned: deleting a group unlinks its members, it never deletes them
    members = relationship(
        "ProjectParticipant",
        back_populates="group",
        order_by="ProjectParticipant.group_joined_at",
    )

    join_requests = relationship(
        "JoinRequest",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    sprints = relationship(
        "Sprint",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Sprint.number",
    )

    work_items = relationship(
        "WorkItem",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_groups_project_number"),
        CheckConstraint("number >= 1", name="ck_groups_number_positive"),
    )
