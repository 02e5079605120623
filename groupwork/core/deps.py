# /groupwork/core/deps.py
"""
Resolve the caller's enrollment for the project a request targets.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from groupwork.core.errors import Forbidden, InvalidParameter
from groupwork.models.group import Group
from groupwork.models.participant import ProjectParticipant
from groupwork.policies.rbac import Principal, require_student
from groupwork.services.membership_service import MembershipService


def parse_iso(s: Optional[str]) -> Optional[datetime]:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidParameter(f"Invalid ISO datetime: {s}")


def acting_participant(
    db: Session,
    principal: Principal,
    project_id: uuid.UUID,
) -> ProjectParticipant:
    """The student's enrollment in ``project_id``; lecturers have none."""
    require_student(principal)
    participant = MembershipService().get_participant(
        db, project_id=project_id, user_id=principal.user_id
    )
    if not participant:
        raise Forbidden("You are not enrolled in this project.")
    return participant


def require_project_access(db: Session, principal: Principal, project_id: uuid.UUID) -> None:
    if principal.is_lecturer:
        return
    acting_participant(db, principal, project_id)


def require_group_member_or_lecturer(db: Session, principal: Principal, group: Group) -> None:
    if principal.is_lecturer:
        return
    participant = acting_participant(db, principal, group.project_id)
    if participant.group_id != group.id:
        raise Forbidden("You are not a member of this group.")
