# groupwork/services/sprint_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from groupwork.core.errors import Conflict, InvalidParameter, NotFound
from groupwork.models.enums import SprintStatus, WorkItemStatus
from groupwork.models.group import Group
from groupwork.models.sprint import Sprint
from groupwork.models.work_item import WorkItem
from groupwork.services.audit_service import AuditAction, AuditService
from groupwork.policies.participation_policy import as_utc
from groupwork.services.locking import for_update, lock_group, lock_sprint, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SprintDisposition:
    """Where unfinished work goes when a sprint is completed."""

    move_to_backlog: bool = False
    move_to_sprint_id: Optional[uuid.UUID] = None


@dataclass
class SprintCompletion:
    sprint: Sprint
    total: int
    done: int
    moved: int
    # "backlog", a sprint id, or None when nothing had to move
    destination: Optional[str]


class SprintService:
    # ---------------------------
    # READS
    # ---------------------------

    def get_sprint(self, db: Session, sprint_id: uuid.UUID) -> Sprint:
        sprint = db.get(Sprint, sprint_id)
        if not sprint:
            raise NotFound("Sprint not found.")
        return sprint

    def list_sprints(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        status: Optional[SprintStatus] = None,
    ) -> List[Sprint]:
        stmt = select(Sprint).where(Sprint.group_id == group_id)
        if status is not None:
            stmt = stmt.where(Sprint.status == status.value)
        return db.execute(stmt.order_by(Sprint.number.asc())).scalars().all()

    def get_active_sprint(self, db: Session, group_id: uuid.UUID) -> Optional[Sprint]:
        return db.execute(
            select(Sprint).where(
                Sprint.group_id == group_id,
                Sprint.status == SprintStatus.ACTIVE.value,
            )
        ).scalars().first()

    def list_backlog(self, db: Session, *, group_id: uuid.UUID) -> List[WorkItem]:
        return db.execute(
            select(WorkItem)
            .where(WorkItem.group_id == group_id, WorkItem.sprint_id.is_(None))
            .order_by(WorkItem.created_at.asc())
        ).scalars().all()

    def list_sprint_items(self, db: Session, sprint_id: uuid.UUID) -> List[WorkItem]:
        return db.execute(
            select(WorkItem)
            .where(WorkItem.sprint_id == sprint_id)
            .order_by(WorkItem.created_at.asc())
        ).scalars().all()

    # ---------------------------
    # INTERNAL
    # ---------------------------

    def _lock_sprint_scope(self, db: Session, sprint_id: uuid.UUID) -> tuple[Group, Sprint]:
        """
        Lock the owning group first, then the sprint: every sprint mutation of
        one group is serialized behind the group row.
        """
        group_id = db.execute(
            select(Sprint.group_id).where(Sprint.id == sprint_id)
        ).scalar_one_or_none()
        if group_id is None:
            raise NotFound("Sprint not found.")
        group = lock_group(db, group_id)
        sprint = lock_sprint(db, sprint_id)
        return group, sprint

    def _apply_details(
        self,
        sprint: Sprint,
        *,
        name: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> None:
        # None keeps the current value
        start = start_date or sprint.start_date
        end = end_date or sprint.end_date
        if start and end and as_utc(end) <= as_utc(start):
            raise InvalidParameter("Sprint end date must be after its start date.")
        if name is not None:
            sprint.name = name
        if start_date is not None:
            sprint.start_date = start_date
        if end_date is not None:
            sprint.end_date = end_date

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def create_sprint(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        name: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        actor_user_id: Optional[str] = None,
    ) -> Sprint:
        group = lock_group(db, group_id)

        if start_date and end_date and as_utc(end_date) <= as_utc(start_date):
            raise InvalidParameter("Sprint end date must be after its start date.")

        current = db.execute(
            select(func.max(Sprint.number)).where(Sprint.group_id == group.id)
        ).scalar_one_or_none()
        number = (current or 0) + 1

        sprint = Sprint(
            group_id=group.id,
            number=number,
            name=name or f"Sprint {number}",
            status=SprintStatus.PLANNED.value,
            start_date=start_date,
            end_date=end_date,
        )
        db.add(sprint)
        db.flush()

        AuditService().write(
            db,
            project_id=group.project_id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.SPRINT_CREATED,
            details={"sprint_id": str(sprint.id), "number": number},
        )
        db.commit()
        db.refresh(sprint)
        return sprint

    def start_sprint(
        self,
        db: Session,
        *,
        sprint_id: uuid.UUID,
        name: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        actor_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Sprint:
        """
        PLANNED -> ACTIVE. A group has at most one ACTIVE sprint.
        Name and dates may be set in the same step; start_date defaults to now.
        """
        group, sprint = self._lock_sprint_scope(db, sprint_id)
        now = now or now_utc()

        if sprint.status != SprintStatus.PLANNED.value:
            raise Conflict(f"Only a planned sprint can be started (sprint is {sprint.status}).")

        active = self.get_active_sprint(db, group.id)
        if active:
            raise Conflict(f"{active.name} is still active; complete it first.")

        self._apply_details(sprint, name=name, start_date=start_date, end_date=end_date)
        sprint.status = SprintStatus.ACTIVE.value
        sprint.start_date = sprint.start_date or now
        sprint.updated_at = now

        AuditService().write(
            db,
            project_id=group.project_id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.SPRINT_STARTED,
            details={"sprint_id": str(sprint.id)},
        )
        db.commit()
        db.refresh(sprint)
        return sprint

    def update_sprint(
        self,
        db: Session,
        *,
        sprint_id: uuid.UUID,
        name: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        actor_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Sprint:
        """Rename or re-date a sprint that is not COMPLETED."""
        group, sprint = self._lock_sprint_scope(db, sprint_id)
        now = now or now_utc()

        if sprint.status == SprintStatus.COMPLETED.value:
            raise Conflict("A completed sprint cannot be edited.")

        self._apply_details(sprint, name=name, start_date=start_date, end_date=end_date)
        sprint.updated_at = now

        AuditService().write(
            db,
            project_id=group.project_id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.SPRINT_UPDATED,
            details={
                "sprint_id": str(sprint.id),
                "name": sprint.name,
                "start_date": sprint.start_date.isoformat() if sprint.start_date else None,
                "end_date": sprint.end_date.isoformat() if sprint.end_date else None,
            },
        )
        db.commit()
        db.refresh(sprint)
        return sprint

    def complete_sprint(
        self,
        db: Session,
        *,
        sprint_id: uuid.UUID,
        disposition: SprintDisposition,
        actor_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SprintCompletion:
        """
        ACTIVE -> COMPLETED, moving unfinished work in the same commit.

        Rules:
        - all items DONE -> disposition may be empty
        - otherwise exactly one of move_to_backlog / move_to_sprint_id
        - target sprint: same group, not COMPLETED, not this sprint
        - failure leaves the sprint ACTIVE and every item where it was
        """
        group, sprint = self._lock_sprint_scope(db, sprint_id)
        now = now or now_utc()

        if sprint.status != SprintStatus.ACTIVE.value:
            raise Conflict(f"Only an active sprint can be completed (sprint is {sprint.status}).")
        if disposition.move_to_backlog and disposition.move_to_sprint_id is not None:
            raise InvalidParameter("Choose either the backlog or another sprint, not both.")

        items = db.execute(
            for_update(select(WorkItem).where(WorkItem.sprint_id == sprint.id))
        ).scalars().all()
        total = len(items)
        # computed once; this exact set is what moves
        unfinished_ids = [i.id for i in items if i.status != WorkItemStatus.DONE.value]
        done = total - len(unfinished_ids)

        target_id: Optional[uuid.UUID] = None
        destination: Optional[str] = None
        if unfinished_ids:
            if disposition.move_to_sprint_id is not None:
                target = self._validate_target(db, group, sprint, disposition.move_to_sprint_id)
                target_id = target.id
                destination = str(target.id)
            elif disposition.move_to_backlog:
                destination = "backlog"
            else:
                raise InvalidParameter(
                    f"{len(unfinished_ids)} work item(s) are not DONE; "
                    "move them to the backlog or to another sprint."
                )

            moved = db.execute(
                update(WorkItem)
                .where(WorkItem.id.in_(unfinished_ids))
                .values(sprint_id=target_id)
                .execution_options(synchronize_session="evaluate")
            ).rowcount
        else:
            moved = 0

        if done + moved != total:
            db.rollback()
            raise Conflict("Sprint contents changed during completion; nothing was moved.")

        sprint.status = SprintStatus.COMPLETED.value
        sprint.completed_at = now
        sprint.updated_at = now

        AuditService().write(
            db,
            project_id=group.project_id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.SPRINT_COMPLETED,
            details={
                "sprint_id": str(sprint.id),
                "total": total,
                "done": done,
                "moved": moved,
                "destination": destination,
            },
        )
        db.commit()
        db.refresh(sprint)

        logger.info(
            "sprint completed",
            extra={
                "sprint_id": str(sprint.id),
                "group_id": str(group.id),
                "total": total,
                "done": done,
                "moved": moved,
                "destination": destination,
            },
        )
        return SprintCompletion(
            sprint=sprint,
            total=total,
            done=done,
            moved=moved,
            destination=destination,
        )

    def _validate_target(
        self,
        db: Session,
        group: Group,
        sprint: Sprint,
        target_id: uuid.UUID,
    ) -> Sprint:
        if target_id == sprint.id:
            raise InvalidParameter("Unfinished work cannot be moved into the sprint being completed.")
        target = db.execute(
            for_update(select(Sprint).where(Sprint.id == target_id))
        ).scalar_one_or_none()
        if not target or target.group_id != group.id:
            raise InvalidParameter("Target sprint does not belong to this group.")
        if target.status == SprintStatus.COMPLETED.value:
            raise InvalidParameter("Target sprint is already completed.")
        return target

    def delete_sprint(
        self,
        db: Session,
        *,
        sprint_id: uuid.UUID,
        actor_user_id: Optional[str] = None,
    ) -> int:
        """
        Delete a sprint that has not been completed; its items go back to the
        backlog. Returns how many items were moved.
        """
        group, sprint = self._lock_sprint_scope(db, sprint_id)
        if sprint.status == SprintStatus.COMPLETED.value:
            raise Conflict("A completed sprint cannot be deleted.")

        moved = db.execute(
            update(WorkItem)
            .where(WorkItem.sprint_id == sprint.id)
            .values(sprint_id=None)
            .execution_options(synchronize_session="evaluate")
        ).rowcount

        AuditService().write(
            db,
            project_id=group.project_id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.SPRINT_DELETED,
            details={"sprint_id": str(sprint.id), "moved_to_backlog": moved},
        )
        db.flush()
        db.delete(sprint)
        db.commit()
        return moved
