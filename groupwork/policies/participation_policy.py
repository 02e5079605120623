#/groupwork/policies/participation_policy.py
"""
Participation gates.

Pure functions of the project configuration and an explicit ``now``; none of
them read a clock. Services capture ``now`` after taking their row locks and
pass it in, so the check and the mutation share one transaction.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from groupwork.core.errors import PolicyViolation
from groupwork.models.enums import ParticipationMode, ProjectType
from groupwork.models.project import Project


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # some drivers hand timezone-aware columns back naive; they are stored as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _before(now: datetime, deadline: Optional[datetime]) -> bool:
    deadline = as_utc(deadline)
    if deadline is None:
        return True
    return as_utc(now) < deadline


def can_join_group(project: Project, now: datetime) -> bool:
    return _before(now, project.join_deadline)


def can_form_or_modify_groups(project: Project, now: datetime) -> bool:
    return _before(now, project.form_group_deadline)


def can_leave(project: Project) -> bool:
    # mandatory participants may never leave on their own
    return project.participation_mode == ParticipationMode.optional.value


# ─────────────────────────────────────────────────────────────
# Raising guards
# ─────────────────────────────────────────────────────────────

def require_team_project(project: Project) -> None:
    if project.type != ProjectType.TEAM.value:
        raise PolicyViolation("Groups are only available for TEAM projects.")


def require_can_join_group(project: Project, now: datetime) -> None:
    if not can_join_group(project, now):
        raise PolicyViolation("The deadline for joining a group has passed.")


def require_can_form_or_modify_groups(project: Project, now: datetime) -> None:
    if not can_form_or_modify_groups(project, now):
        raise PolicyViolation("The group formation deadline has passed.")


def require_can_leave(project: Project) -> None:
    if not can_leave(project):
        raise PolicyViolation("Participation in this project is mandatory; leaving is not allowed.")


def require_student_group_formation(project: Project) -> None:
    if not project.allow_student_form_team:
        raise PolicyViolation("Students may not form or join groups on their own in this project.")
