# import every model so Base.metadata is complete
from groupwork.models.project import Project
from groupwork.models.participant import ProjectParticipant
from groupwork.models.group import Group
from groupwork.models.join_request import JoinRequest
from groupwork.models.sprint import Sprint
from groupwork.models.work_item import WorkItem
from groupwork.models.audit_log import AuditLog

__all__ = [
    "Project",
    "ProjectParticipant",
    "Group",
    "JoinRequest",
    "Sprint",
    "WorkItem",
    "AuditLog",
]
