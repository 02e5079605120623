# groupwork/services/group_formation_service.py
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, TypeVar

from sqlalchemy import delete, select, update, func
from sqlalchemy.orm import Session

from groupwork.core.errors import InvalidParameter
from groupwork.models.enums import ApplyType, GroupRole
from groupwork.models.group import Group
from groupwork.models.join_request import JoinRequest
from groupwork.models.participant import ProjectParticipant
from groupwork.policies.participation_policy import (
    require_can_form_or_modify_groups,
    require_team_project,
)
from groupwork.services.audit_service import AuditAction, AuditService
from groupwork.services.locking import lock_project, now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


def plan_partition(participants: Sequence[T], max_group_size: int) -> List[List[T]]:
    """
    Split ``participants`` into ceil(N/K) groups whose sizes differ by at most one.

    The first ``N mod groups`` groups get one extra member. Input order is kept:
    each group is filled to its target size before the next one starts, so the
    first element of every returned list is the member who becomes LEADER.
    A K larger than N simply yields one group; ``partition`` is stricter.
    """
    if max_group_size < 1:
        raise InvalidParameter("Group size must be at least 1.")
    n = len(participants)
    if n == 0:
        return []

    num_groups = math.ceil(n / max_group_size)
    base, remainder = divmod(n, num_groups)

    groups: List[List[T]] = []
    cursor = 0
    for i in range(num_groups):
        size = base + 1 if i < remainder else base
        groups.append(list(participants[cursor:cursor + size]))
        cursor += size
    return groups


@dataclass
class PartitionResult:
    num_groups_created: int
    groups: List[Group] = field(default_factory=list)
    # number of pre-existing groups deleted by an apply_type=all run
    dissolved_groups: int = 0


class GroupFormationService:
    # ---------------------------
    # READS
    # ---------------------------

    def _population(
        self,
        db: Session,
        project_id: uuid.UUID,
        apply_type: ApplyType,
    ) -> List[ProjectParticipant]:
        stmt = select(ProjectParticipant).where(ProjectParticipant.project_id == project_id)
        if apply_type == ApplyType.without_group:
            stmt = stmt.where(ProjectParticipant.group_id.is_(None))
        stmt = stmt.order_by(ProjectParticipant.created_at.asc(), ProjectParticipant.user_id.asc())
        # read under the exclusive project lock; refresh rows the session may hold
        stmt = stmt.execution_options(populate_existing=True)
        return list(db.execute(stmt).scalars().all())

    def _next_group_number(self, db: Session, project_id: uuid.UUID) -> int:
        current = db.execute(
            select(func.max(Group.number)).where(Group.project_id == project_id)
        ).scalar_one_or_none()
        return (current or 0) + 1

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def _dissolve_all(
        self,
        db: Session,
        project_id: uuid.UUID,
        actor_user_id: Optional[str],
    ) -> int:
        existing = db.execute(
            select(Group).where(Group.project_id == project_id)
        ).scalars().all()
        if existing:
            AuditService().write(
                db,
                project_id=project_id,
                group_id=None,
                actor_user_id=actor_user_id,
                action=AuditAction.GROUPS_DISSOLVED,
                details={"numbers": sorted(g.number for g in existing)},
            )

        db.execute(
            update(ProjectParticipant)
            .where(ProjectParticipant.project_id == project_id)
            .values(group_id=None, role_in_group=None, group_joined_at=None)
        )
        for group in existing:
            # cascades to join requests, sprints and work items
            db.delete(group)

        # old numbers must be gone before new groups reuse them
        db.flush()
        return len(existing)

    def partition(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        group_size: int,
        apply_type: ApplyType,
        actor_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PartitionResult:
        """
        Auto-divide a project's students into balanced groups.

        Rules:
        - without-group: only students with no group are placed, into new groups
          numbered after the existing ones
        - all: every existing group (with its join requests, sprints and work
          items) is deleted first, then the whole population is placed
        - the project row is held FOR UPDATE until commit, so membership
          operations queue behind a re-partition and then see the new groups
        """
        project = lock_project(db, project_id, exclusive=True)
        now = now or now_utc()

        require_team_project(project)
        require_can_form_or_modify_groups(project, now)

        population = self._population(db, project_id, apply_type)
        if group_size < 1:
            raise InvalidParameter("Group size must be at least 1.")
        if population and group_size > len(population):
            raise InvalidParameter(
                f"Group size cannot exceed the number of students ({len(population)})."
            )
        plan = plan_partition(population, group_size)

        if not plan:
            logger.info(
                "partition no-op",
                extra={"project_id": str(project_id), "apply_type": apply_type.value},
            )
            return PartitionResult(num_groups_created=0)

        dissolved = 0
        if apply_type == ApplyType.all:
            dissolved = self._dissolve_all(db, project_id, actor_user_id)
            start = 1
        else:
            start = self._next_group_number(db, project_id)

        placed_ids = [p.id for members in plan for p in members]
        # anyone placed now has no use for a pending request
        db.execute(
            delete(JoinRequest).where(JoinRequest.participant_id.in_(placed_ids))
        )

        created: List[Group] = []
        for offset, members in enumerate(plan):
            group = Group(project_id=project_id, number=start + offset)
            db.add(group)
            db.flush()

            for idx, participant in enumerate(members):
                participant.group_id = group.id
                participant.role_in_group = (GroupRole.LEADER if idx == 0 else GroupRole.MEMBER).value
                participant.group_joined_at = now
            created.append(group)

        AuditService().write(
            db,
            project_id=project_id,
            group_id=None,
            actor_user_id=actor_user_id,
            action=AuditAction.GROUPS_PARTITIONED,
            details={
                "apply_type": apply_type.value,
                "group_size": group_size,
                "num_groups": len(created),
                "sizes": [len(m) for m in plan],
                "dissolved_groups": dissolved,
            },
        )

        db.commit()
        for group in created:
            db.refresh(group)

        logger.info(
            "groups partitioned",
            extra={
                "project_id": str(project_id),
                "apply_type": apply_type.value,
                "group_size": group_size,
                "num_groups": len(created),
                "dissolved_groups": dissolved,
            },
        )
        return PartitionResult(
            num_groups_created=len(created),
            groups=created,
            dissolved_groups=dissolved,
        )
