#groupwork/models/enums.py
from __future__ import annotations
from enum import Enum


class ProjectType(str, Enum):
    TEAM = "TEAM"
    SOLO = "SOLO"


class ParticipationMode(str, Enum):
    mandatory = "mandatory"
    optional = "optional"


class GroupRole(str, Enum):
    LEADER = "LEADER"
    MEMBER = "MEMBER"


class ApplyType(str, Enum):
    # which population an auto-division run distributes
    without_group = "without-group"
    all = "all"


class SprintStatus(str, Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class WorkItemStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class PrincipalRole(str, Enum):
    LECTURER = "LECTURER"
    STUDENT = "STUDENT"
