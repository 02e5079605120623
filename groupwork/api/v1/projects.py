# groupwork/api/v1/projects.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from groupwork.api.v1.serializers import group_to_schema, member_to_schema
from groupwork.core.auth_deps import get_current_principal
from groupwork.core.deps import acting_participant, require_project_access
from groupwork.core.errors import NotFound
from groupwork.db.session import get_db
from groupwork.models.project import Project
from groupwork.policies.rbac import Principal, require_lecturer
from groupwork.schemas.groups import (
    AutoDivideGroupsRequest,
    AutoDivideGroupsResponse,
    GroupListResponse,
    GroupMemberResponse,
    GroupResponse,
    JoinRequestResponse,
)
from groupwork.services.group_formation_service import GroupFormationService
from groupwork.services.membership_service import GroupSummary, MembershipService

router = APIRouter(prefix="/project")


def _get_project(db: Session, project_id: uuid.UUID) -> Project:
    project = db.get(Project, project_id)
    if not project:
        raise NotFound("Project not found.")
    return project


# ─────────────────────────────────────────────────────────────
# AUTO DIVISION (lecturer)
# ─────────────────────────────────────────────────────────────

@router.post("/{project_id}/auto-division-groups", response_model=AutoDivideGroupsResponse)
def auto_divide_groups(
    project_id: uuid.UUID,
    req: AutoDivideGroupsRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_lecturer(principal)

    result = GroupFormationService().partition(
        db,
        project_id=project_id,
        group_size=req.groupSize,
        apply_type=req.applyType,
        actor_user_id=principal.user_id,
    )
    return AutoDivideGroupsResponse(
        numOfGroups=result.num_groups_created,
        dissolvedGroups=result.dissolved_groups,
    )


# ─────────────────────────────────────────────────────────────
# READS
# ─────────────────────────────────────────────────────────────

@router.get("/{project_id}/groups", response_model=GroupListResponse)
def list_project_groups(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _get_project(db, project_id)
    require_project_access(db, principal, project_id)

    viewer_id = None
    if not principal.is_lecturer:
        viewer_id = acting_participant(db, principal, project_id).id

    summaries = MembershipService().list_groups(
        db, project_id=project_id, viewer_participant_id=viewer_id
    )
    return GroupListResponse(
        projectId=str(project_id),
        groups=[group_to_schema(s.group, s) for s in summaries],
    )


@router.get("/{project_id}/not-joined-students", response_model=List[GroupMemberResponse])
def list_not_joined_students(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _get_project(db, project_id)
    require_project_access(db, principal, project_id)
    rows = MembershipService().list_unassigned(db, project_id=project_id)
    return [member_to_schema(p) for p in rows]


# ─────────────────────────────────────────────────────────────
# STUDENT-INITIATED FORMATION
# ─────────────────────────────────────────────────────────────

@router.post("/{project_id}/own-group", response_model=GroupResponse)
def create_own_group(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _get_project(db, project_id)
    participant = acting_participant(db, principal, project_id)

    group = MembershipService().create_own_group(
        db, project_id=project_id, participant_id=participant.id
    )
    db.refresh(participant)
    return group_to_schema(group, GroupSummary(group=group, leader=participant, number_of_members=1))


@router.post("/{project_id}/join-group-request/{group_id}", response_model=JoinRequestResponse)
def request_to_join_group(
    project_id: uuid.UUID,
    group_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _get_project(db, project_id)
    participant = acting_participant(db, principal, project_id)

    req = MembershipService().request_to_join(
        db, group_id=group_id, participant_id=participant.id
    )
    return JoinRequestResponse(
        id=str(req.id),
        groupId=str(req.group_id),
        studentProjectId=str(participant.id),
        userId=participant.user_id,
        name=participant.display_name or None,
        createdAtIso=req.created_at.isoformat() if req.created_at else None,
    )
