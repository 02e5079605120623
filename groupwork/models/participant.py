# groupwork/models/participant.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Index, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupwork.db.base import Base


class ProjectParticipant(Base):
    """
    One person's enrollment in one project.

    The group link lives here (group_id + role_in_group); a Group only indexes
    its members through this foreign key.
    """
    __tablename__ = "project_participants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    display_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")

    group_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
    )
    role_in_group: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # LEADER | MEMBER
    group_joined_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    project = relationship("Project", back_populates="participants")
    group = relationship("Group", back_populates="members")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_participant_project_user"),
        Index("ix_participants_project_group", "project_id", "group_id"),
    )
