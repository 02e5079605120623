# groupwork/api/v1/serializers.py
"""ORM row -> response schema helpers shared by the v1 routers."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from groupwork.models.group import Group
from groupwork.models.join_request import JoinRequest
from groupwork.models.participant import ProjectParticipant
from groupwork.models.sprint import Sprint
from groupwork.models.work_item import WorkItem
from groupwork.schemas.groups import GroupMemberResponse, GroupResponse, JoinRequestResponse
from groupwork.schemas.sprints import SprintResponse, WorkItemResponse
from groupwork.services.membership_service import GroupSummary


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def member_to_schema(p: ProjectParticipant) -> GroupMemberResponse:
    return GroupMemberResponse(
        studentProjectId=str(p.id),
        userId=p.user_id,
        name=p.display_name or None,
        roleInGroup=p.role_in_group,
        joinedAtIso=_iso(p.group_joined_at),
    )


def group_to_schema(g: Group, summary: Optional[GroupSummary] = None) -> GroupResponse:
    return GroupResponse(
        id=str(g.id),
        projectId=str(g.project_id),
        number=g.number,
        leader=member_to_schema(summary.leader) if summary and summary.leader else None,
        numberOfMember=summary.number_of_members if summary else 0,
        joinRequestCreated=summary.join_request_created if summary else False,
        createdAtIso=_iso(g.created_at),
    )


def join_request_to_schema(r: JoinRequest) -> JoinRequestResponse:
    participant = r.participant
    return JoinRequestResponse(
        id=str(r.id),
        groupId=str(r.group_id),
        studentProjectId=str(r.participant_id),
        userId=participant.user_id if participant else None,
        name=(participant.display_name or None) if participant else None,
        createdAtIso=_iso(r.created_at),
    )


def work_item_to_schema(w: WorkItem) -> WorkItemResponse:
    return WorkItemResponse(
        id=str(w.id),
        summary=w.summary,
        status=w.status,
        sprintId=str(w.sprint_id) if w.sprint_id else None,
        assigneeId=str(w.assignee_id) if w.assignee_id else None,
    )


def sprint_to_schema(s: Sprint, items: Optional[List[WorkItem]] = None) -> SprintResponse:
    return SprintResponse(
        id=str(s.id),
        groupId=str(s.group_id),
        number=s.number,
        name=s.name,
        status=s.status,
        startDateIso=_iso(s.start_date),
        endDateIso=_iso(s.end_date),
        completedAtIso=_iso(s.completed_at),
        workItems=[work_item_to_schema(w) for w in (items or [])],
    )
