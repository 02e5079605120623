# groupwork/models/work_item.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupwork.db.base import Base
from groupwork.models.enums import WorkItemStatus


class WorkItem(Base):
    """
    Backlog entry owned by a group.

    Created and edited elsewhere; this service only re-parents sprint_id
    (null = backlog) when sprints complete or are deleted.
    """
    __tablename__ = "work_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )
    sprint_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sprints.id", ondelete="SET NULL"),
        nullable=True,
    )

    summary: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=WorkItemStatus.TODO.value
    )
    assignee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project_participants.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    group = relationship("Group", back_populates="work_items")
    sprint = relationship("Sprint", back_populates="work_items")

    __table_args__ = (
        Index("ix_work_items_group_sprint", "group_id", "sprint_id"),
    )
