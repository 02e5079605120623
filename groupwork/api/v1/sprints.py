# groupwork/api/v1/sprints.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from groupwork.api.v1.serializers import sprint_to_schema, work_item_to_schema
from groupwork.core.auth_deps import get_current_principal
from groupwork.core.deps import parse_iso, require_group_member_or_lecturer
from groupwork.db.session import get_db
from groupwork.models.enums import SprintStatus
from groupwork.policies.rbac import Principal
from groupwork.schemas.sprints import (
    CompleteSprintRequest,
    CompleteSprintResponse,
    DeleteSprintResponse,
    SprintCreateRequest,
    SprintResponse,
    SprintUpdateRequest,
    WorkItemResponse,
)
from groupwork.services.membership_service import MembershipService
from groupwork.services.sprint_service import SprintDisposition, SprintService

router = APIRouter()


def _require_sprint_access(db: Session, principal: Principal, group_id: uuid.UUID) -> None:
    group = MembershipService().get_group(db, group_id)
    require_group_member_or_lecturer(db, principal, group)


# ─────────────────────────────────────────────────────────────
# GROUP SCOPED
# ─────────────────────────────────────────────────────────────

@router.post("/group/{group_id}/sprints", response_model=SprintResponse)
def create_sprint(
    group_id: uuid.UUID,
    req: Optional[SprintCreateRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _require_sprint_access(db, principal, group_id)
    req = req or SprintCreateRequest()
    sprint = SprintService().create_sprint(
        db,
        group_id=group_id,
        name=req.name,
        start_date=parse_iso(req.startDateIso),
        end_date=parse_iso(req.endDateIso),
        actor_user_id=principal.user_id,
    )
    return sprint_to_schema(sprint)


@router.get("/group/{group_id}/sprints", response_model=List[SprintResponse])
def list_sprints(
    group_id: uuid.UUID,
    status: Optional[SprintStatus] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _require_sprint_access(db, principal, group_id)
    svc = SprintService()
    return [
        sprint_to_schema(s, svc.list_sprint_items(db, s.id))
        for s in svc.list_sprints(db, group_id=group_id, status=status)
    ]


@router.get("/group/{group_id}/backlogs", response_model=List[WorkItemResponse])
def list_backlog(
    group_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    _require_sprint_access(db, principal, group_id)
    return [work_item_to_schema(w) for w in SprintService().list_backlog(db, group_id=group_id)]


# ─────────────────────────────────────────────────────────────
# SPRINT LIFECYCLE
# ─────────────────────────────────────────────────────────────

@router.patch("/sprint/{sprint_id}", response_model=SprintResponse)
def update_sprint(
    sprint_id: uuid.UUID,
    req: SprintUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = SprintService()
    _require_sprint_access(db, principal, svc.get_sprint(db, sprint_id).group_id)
    sprint = svc.update_sprint(
        db,
        sprint_id=sprint_id,
        name=req.name,
        start_date=parse_iso(req.startDateIso),
        end_date=parse_iso(req.endDateIso),
        actor_user_id=principal.user_id,
    )
    return sprint_to_schema(sprint, svc.list_sprint_items(db, sprint.id))


@router.patch("/sprint/{sprint_id}/start", response_model=SprintResponse)
def start_sprint(
    sprint_id: uuid.UUID,
    req: Optional[SprintUpdateRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = SprintService()
    _require_sprint_access(db, principal, svc.get_sprint(db, sprint_id).group_id)
    req = req or SprintUpdateRequest()
    sprint = svc.start_sprint(
        db,
        sprint_id=sprint_id,
        name=req.name,
        start_date=parse_iso(req.startDateIso),
        end_date=parse_iso(req.endDateIso),
        actor_user_id=principal.user_id,
    )
    return sprint_to_schema(sprint, svc.list_sprint_items(db, sprint.id))


@router.patch("/sprint/{sprint_id}/completed", response_model=CompleteSprintResponse)
def complete_sprint(
    sprint_id: uuid.UUID,
    req: Optional[CompleteSprintRequest] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = SprintService()
    _require_sprint_access(db, principal, svc.get_sprint(db, sprint_id).group_id)

    req = req or CompleteSprintRequest()
    result = svc.complete_sprint(
        db,
        sprint_id=sprint_id,
        disposition=SprintDisposition(
            move_to_backlog=bool(req.moveToBacklog),
            move_to_sprint_id=req.moveToSprintId,
        ),
        actor_user_id=principal.user_id,
    )
    return CompleteSprintResponse(
        sprint=sprint_to_schema(result.sprint, svc.list_sprint_items(db, sprint_id)),
        total=result.total,
        done=result.done,
        moved=result.moved,
        destination=result.destination,
    )


@router.delete("/sprint/{sprint_id}", response_model=DeleteSprintResponse)
def delete_sprint(
    sprint_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = SprintService()
    _require_sprint_access(db, principal, svc.get_sprint(db, sprint_id).group_id)
    moved = svc.delete_sprint(db, sprint_id=sprint_id, actor_user_id=principal.user_id)
    return DeleteSprintResponse(movedToBacklog=moved)
