# groupwork/models/join_request.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupwork.db.base import Base


class JoinRequest(Base):
    """
    A pending ask to enter a group.

    Only PENDING requests are stored: accepting or withdrawing deletes the row.
    """
    __tablename__ = "join_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("project_participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    participant = relationship("ProjectParticipant")
    group = relationship("Group", back_populates="join_requests")

    __table_args__ = (
        UniqueConstraint("participant_id", "group_id", name="uq_join_request_participant_group"),
        Index("ix_join_requests_group", "group_id"),
    )
