# groupwork/api/v1/groups.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from groupwork.api.v1.serializers import join_request_to_schema, member_to_schema
from groupwork.core.auth_deps import get_current_principal
from groupwork.core.deps import acting_participant, require_group_member_or_lecturer
from groupwork.db.session import get_db
from groupwork.policies.rbac import Principal, require_lecturer
from groupwork.schemas.groups import (
    GroupMemberRequest,
    GroupMemberResponse,
    JoinRequestResponse,
    LeaveGroupResponse,
    TransferLeadershipRequest,
)
from groupwork.services.membership_service import MembershipService

router = APIRouter(prefix="/group")


# ─────────────────────────────────────────────────────────────
# ROSTER
# ─────────────────────────────────────────────────────────────

@router.get("/{group_id}/members", response_model=List[GroupMemberResponse])
def list_group_members(
    group_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = MembershipService()
    group = svc.get_group(db, group_id)
    # any enrolled student may look at any roster of their project
    if not principal.is_lecturer:
        acting_participant(db, principal, group.project_id)
    return [member_to_schema(p) for p in svc.list_members(db, group_id)]


@router.post("/{group_id}/member", response_model=GroupMemberResponse)
def assign_student_to_group(
    group_id: uuid.UUID,
    req: GroupMemberRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_lecturer(principal)
    participant = MembershipService().assign_participant(
        db,
        group_id=group_id,
        participant_id=req.studentProjectId,
        actor_user_id=principal.user_id,
    )
    return member_to_schema(participant)


@router.delete("/{group_id}/member")
def remove_student_from_group(
    group_id: uuid.UUID,
    req: GroupMemberRequest = Body(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Lecturer: unassign anyone (leader succession applies).
    Student: only the group leader may remove a member.
    """
    svc = MembershipService()
    if principal.is_lecturer:
        successor = svc.unassign_participant(
            db,
            group_id=group_id,
            participant_id=req.studentProjectId,
            actor_user_id=principal.user_id,
        )
        return {
            "status": "removed",
            "newLeaderId": str(successor.id) if successor else None,
        }

    group = svc.get_group(db, group_id)
    acting = acting_participant(db, principal, group.project_id)
    svc.remove_member(
        db,
        group_id=group_id,
        target_participant_id=req.studentProjectId,
        acting_participant_id=acting.id,
    )
    return {"status": "removed", "newLeaderId": None}


@router.patch("/{group_id}/leadership", response_model=GroupMemberResponse)
def transfer_leadership(
    group_id: uuid.UUID,
    req: TransferLeadershipRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = MembershipService()
    group = svc.get_group(db, group_id)
    acting = acting_participant(db, principal, group.project_id)
    new_leader = svc.transfer_leadership(
        db,
        group_id=group_id,
        new_leader_id=req.newLeaderId,
        acting_participant_id=acting.id,
    )
    return member_to_schema(new_leader)


@router.delete("/{group_id}/leaving", response_model=LeaveGroupResponse)
def leave_group(
    group_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = MembershipService()
    group = svc.get_group(db, group_id)
    acting = acting_participant(db, principal, group.project_id)
    deleted = svc.leave(db, group_id=group_id, participant_id=acting.id)
    return LeaveGroupResponse(groupDeleted=deleted)


# ─────────────────────────────────────────────────────────────
# JOIN REQUESTS
# ─────────────────────────────────────────────────────────────

@router.get("/{group_id}/join-request", response_model=List[JoinRequestResponse])
def list_join_requests(
    group_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = MembershipService()
    group = svc.get_group(db, group_id)
    require_group_member_or_lecturer(db, principal, group)
    return [join_request_to_schema(r) for r in svc.list_join_requests(db, group_id)]


@router.patch("/{group_id}/join-request/{request_id}/accept", response_model=GroupMemberResponse)
def accept_join_request(
    group_id: uuid.UUID,
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = MembershipService()
    group = svc.get_group(db, group_id)
    acting = acting_participant(db, principal, group.project_id)
    member = svc.accept_join_request(
        db,
        group_id=group_id,
        request_id=request_id,
        acting_participant_id=acting.id,
    )
    return member_to_schema(member)


@router.delete("/{group_id}/join-request/{request_id}")
def withdraw_join_request(
    group_id: uuid.UUID,
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = MembershipService()
    group = svc.get_group(db, group_id)
    acting = acting_participant(db, principal, group.project_id)
    svc.withdraw_join_request(
        db,
        group_id=group_id,
        request_id=request_id,
        acting_participant_id=acting.id,
    )
    return {"status": "withdrawn"}
