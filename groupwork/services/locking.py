# groupwork/services/locking.py
"""
Row-lock readers shared by the group and sprint services.

Lock order is always project -> group -> participant (or group -> sprint), so
two transactions touching the same rows queue instead of deadlocking.
On SQLite FOR UPDATE is not emitted and the statements are plain reads.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from groupwork.core.errors import NotFound
from groupwork.models.group import Group
from groupwork.models.participant import ProjectParticipant
from groupwork.models.project import Project
from groupwork.models.sprint import Sprint


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def for_update(stmt: Select, *, read: bool = False) -> Select:
    """
    Lock the selected rows and overwrite any copy already in the session:
    checks after the lock must see the locked values, not an earlier load.
    """
    return stmt.with_for_update(read=read).execution_options(populate_existing=True)


def lock_project(db: Session, project_id: uuid.UUID, *, exclusive: bool = False) -> Project:
    """
    exclusive=True  -> FOR UPDATE (re-partitioning the whole project)
    exclusive=False -> FOR SHARE  (any single-group membership change)
    """
    project = db.execute(
        for_update(select(Project).where(Project.id == project_id), read=not exclusive)
    ).scalar_one_or_none()
    if not project:
        raise NotFound("Project not found.")
    return project


def lock_group(db: Session, group_id: uuid.UUID) -> Group:
    group = db.execute(
        for_update(select(Group).where(Group.id == group_id))
    ).scalar_one_or_none()
    if not group:
        raise NotFound("Group not found.")
    return group


def lock_participant(db: Session, participant_id: uuid.UUID) -> ProjectParticipant:
    participant = db.execute(
        for_update(select(ProjectParticipant).where(ProjectParticipant.id == participant_id))
    ).scalar_one_or_none()
    if not participant:
        raise NotFound("Participant not found.")
    return participant


def lock_sprint(db: Session, sprint_id: uuid.UUID) -> Sprint:
    sprint = db.execute(
        for_update(select(Sprint).where(Sprint.id == sprint_id))
    ).scalar_one_or_none()
    if not sprint:
        raise NotFound("Sprint not found.")
    return sprint


def group_project_id(db: Session, group_id: uuid.UUID) -> uuid.UUID:
    """Unlocked lookup used to find which project row to lock first."""
    project_id = db.execute(
        select(Group.project_id).where(Group.id == group_id)
    ).scalar_one_or_none()
    if project_id is None:
        raise NotFound("Group not found.")
    return project_id
