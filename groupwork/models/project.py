# groupwork/models/project.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Boolean, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupwork.db.base import Base
from groupwork.models.enums import ProjectType, ParticipationMode


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(256), nullable=False)

    type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProjectType.TEAM.value
    )
    participation_mode: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ParticipationMode.mandatory.value
    )
    allow_student_form_team: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )

    # null deadline = gate never closes
    join_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    form_group_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    groups = relationship(
        "Group",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Group.number",
    )

    participants = relationship(
        "ProjectParticipant",
        back_populates="project",
        cascade="all, delete-orphan",
    )
