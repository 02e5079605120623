# groupwork/services/membership_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import delete, select, func
from sqlalchemy.orm import Session

from groupwork.core.errors import Conflict, Forbidden, InvalidParameter, NotFound
from groupwork.models.enums import GroupRole
from groupwork.models.group import Group
from groupwork.models.join_request import JoinRequest
from groupwork.models.participant import ProjectParticipant
from groupwork.models.project import Project
from groupwork.policies.participation_policy import (
    require_can_form_or_modify_groups,
    require_can_join_group,
    require_can_leave,
    require_student_group_formation,
    require_team_project,
)
from groupwork.services.audit_service import AuditAction, AuditService
from groupwork.services.locking import (
    for_update,
    group_project_id,
    lock_group,
    lock_participant,
    lock_project,
    now_utc,
)

logger = logging.getLogger(__name__)

LEADER = GroupRole.LEADER.value
MEMBER = GroupRole.MEMBER.value


@dataclass
class GroupSummary:
    group: Group
    leader: Optional[ProjectParticipant]
    number_of_members: int
    join_request_created: bool = False


# ─────────────────────────────────────────────────────────────
# Invariant guard
# ─────────────────────────────────────────────────────────────

def group_invariant_violations(db: Session, project_id: uuid.UUID) -> List[str]:
    """
    Every problem with the group/role links of one project, as readable strings.

    - a group with members has exactly one LEADER
    - no group is left without members
    - group link and role are set together or not at all
    """
    problems: List[str] = []

    participants = db.execute(
        select(ProjectParticipant).where(ProjectParticipant.project_id == project_id)
    ).scalars().all()
    groups = db.execute(select(Group).where(Group.project_id == project_id)).scalars().all()

    by_group = {g.id: [] for g in groups}
    for p in participants:
        if (p.group_id is None) != (p.role_in_group is None):
            problems.append(f"participant {p.user_id}: group link and role disagree")
        if p.group_id is not None:
            if p.group_id not in by_group:
                problems.append(f"participant {p.user_id}: points at a missing group")
                continue
            by_group[p.group_id].append(p)

    for g in groups:
        members = by_group[g.id]
        if not members:
            problems.append(f"group {g.number}: empty")
            continue
        leaders = [m for m in members if m.role_in_group == LEADER]
        if len(leaders) != 1:
            problems.append(f"group {g.number}: {len(leaders)} leaders")
    return problems


def assert_group_invariants(db: Session, project_id: uuid.UUID) -> None:
    problems = group_invariant_violations(db, project_id)
    if problems:
        raise AssertionError("; ".join(problems))


class MembershipService:
    """
    Group rosters over the life of a project.

    Every mutation locks project (shared) -> group -> participant rows, takes
    ``now`` only after the locks are held, validates, then commits once.
    Validation failures raise before anything is written.
    """

    # ---------------------------
    # READS
    # ---------------------------

    def get_participant(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        user_id: str,
    ) -> Optional[ProjectParticipant]:
        return db.execute(
            select(ProjectParticipant).where(
                ProjectParticipant.project_id == project_id,
                ProjectParticipant.user_id == user_id,
            )
        ).scalar_one_or_none()

    def get_group(self, db: Session, group_id: uuid.UUID) -> Group:
        group = db.get(Group, group_id)
        if not group:
            raise NotFound("Group not found.")
        return group

    def list_members(self, db: Session, group_id: uuid.UUID) -> List[ProjectParticipant]:
        self.get_group(db, group_id)
        return db.execute(
            select(ProjectParticipant)
            .where(ProjectParticipant.group_id == group_id)
            .order_by(ProjectParticipant.group_joined_at.asc(), ProjectParticipant.user_id.asc())
        ).scalars().all()

    def list_groups(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        viewer_participant_id: Optional[uuid.UUID] = None,
    ) -> List[GroupSummary]:
        groups = db.execute(
            select(Group).where(Group.project_id == project_id).order_by(Group.number.asc())
        ).scalars().all()

        counts = dict(
            db.execute(
                select(ProjectParticipant.group_id, func.count(ProjectParticipant.id))
                .where(ProjectParticipant.project_id == project_id, ProjectParticipant.group_id.is_not(None))
                .group_by(ProjectParticipant.group_id)
            ).all()
        )
        leaders = {
            p.group_id: p
            for p in db.execute(
                select(ProjectParticipant).where(
                    ProjectParticipant.project_id == project_id,
                    ProjectParticipant.role_in_group == LEADER,
                )
            ).scalars().all()
        }
        requested = set()
        if viewer_participant_id is not None:
            requested = set(
                db.execute(
                    select(JoinRequest.group_id).where(JoinRequest.participant_id == viewer_participant_id)
                ).scalars().all()
            )

        return [
            GroupSummary(
                group=g,
                leader=leaders.get(g.id),
                number_of_members=counts.get(g.id, 0),
                join_request_created=g.id in requested,
            )
            for g in groups
        ]

    def list_unassigned(self, db: Session, *, project_id: uuid.UUID) -> List[ProjectParticipant]:
        return db.execute(
            select(ProjectParticipant)
            .where(
                ProjectParticipant.project_id == project_id,
                ProjectParticipant.group_id.is_(None),
            )
            .order_by(ProjectParticipant.created_at.asc(), ProjectParticipant.user_id.asc())
        ).scalars().all()

    def list_join_requests(self, db: Session, group_id: uuid.UUID) -> List[JoinRequest]:
        self.get_group(db, group_id)
        return db.execute(
            select(JoinRequest)
            .where(JoinRequest.group_id == group_id)
            .order_by(JoinRequest.created_at.asc())
        ).scalars().all()

    # ---------------------------
    # INTERNAL HELPERS
    # ---------------------------

    def _lock_scope(self, db: Session, group_id: uuid.UUID) -> Tuple[Project, Group]:
        project_id = group_project_id(db, group_id)
        project = lock_project(db, project_id)
        # re-read under lock: a concurrent re-partition may have removed it
        group = lock_group(db, group_id)
        return project, group

    def _locked_members(self, db: Session, group_id: uuid.UUID) -> List[ProjectParticipant]:
        return db.execute(
            for_update(
                select(ProjectParticipant)
                .where(ProjectParticipant.group_id == group_id)
                .order_by(ProjectParticipant.group_joined_at.asc(), ProjectParticipant.user_id.asc())
            )
        ).scalars().all()

    def _find(self, members: List[ProjectParticipant], participant_id: uuid.UUID) -> Optional[ProjectParticipant]:
        for m in members:
            if m.id == participant_id:
                return m
        return None

    def _require_leader(self, members: List[ProjectParticipant], acting_participant_id: uuid.UUID) -> ProjectParticipant:
        acting = self._find(members, acting_participant_id)
        if not acting or acting.role_in_group != LEADER:
            raise Forbidden("Only the group leader may perform this action.")
        return acting

    def _next_group_number(self, db: Session, project_id: uuid.UUID) -> int:
        current = db.execute(
            select(func.max(Group.number)).where(Group.project_id == project_id)
        ).scalar_one_or_none()
        return (current or 0) + 1

    def _place(self, participant: ProjectParticipant, group: Group, role: str, now: datetime) -> None:
        participant.group_id = group.id
        participant.role_in_group = role
        participant.group_joined_at = now

    def _unlink(self, participant: ProjectParticipant) -> None:
        participant.group_id = None
        participant.role_in_group = None
        participant.group_joined_at = None

    def _discard_requests_of(self, db: Session, participant_id: uuid.UUID) -> None:
        db.execute(delete(JoinRequest).where(JoinRequest.participant_id == participant_id))

    def _delete_group(self, db: Session, group: Group, actor_user_id: Optional[str]) -> None:
        # links were cleared by the caller; flush them before the cascade runs
        db.flush()
        AuditService().write(
            db,
            project_id=group.project_id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.GROUP_DELETED,
            details={"number": group.number},
        )
        db.delete(group)

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def create_own_group(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        participant_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Group:
        """
        A student founds a new group and becomes its leader.
        Holds the project row exclusively so group numbers stay unique.
        """
        project = lock_project(db, project_id, exclusive=True)
        participant = lock_participant(db, participant_id)
        if participant.project_id != project.id:
            raise NotFound("Participant is not enrolled in this project.")

        now = now or now_utc()
        require_team_project(project)
        require_student_group_formation(project)
        require_can_form_or_modify_groups(project, now)

        if participant.group_id is not None:
            raise Conflict("You already belong to a group in this project.")

        group = Group(project_id=project.id, number=self._next_group_number(db, project.id))
        db.add(group)
        db.flush()

        self._place(participant, group, LEADER, now)
        self._discard_requests_of(db, participant.id)

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=participant.user_id,
            action=AuditAction.GROUP_CREATED,
            details={"number": group.number, "leader_participant_id": str(participant.id)},
        )
        db.commit()
        db.refresh(group)

        logger.info(
            "group created",
            extra={"project_id": str(project.id), "group_id": str(group.id), "number": group.number},
        )
        return group

    def request_to_join(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        participant_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> JoinRequest:
        project, group = self._lock_scope(db, group_id)
        participant = lock_participant(db, participant_id)
        if participant.project_id != group.project_id:
            raise InvalidParameter("Group belongs to a different project.")

        now = now or now_utc()
        require_team_project(project)
        require_student_group_formation(project)
        require_can_join_group(project, now)

        if participant.group_id is not None:
            raise Conflict("You already belong to a group in this project.")

        existing = db.execute(
            select(JoinRequest.id).where(
                JoinRequest.participant_id == participant.id,
                JoinRequest.group_id == group.id,
            )
        ).first()
        if existing:
            raise Conflict("A join request for this group is already pending.")

        req = JoinRequest(participant_id=participant.id, group_id=group.id)
        db.add(req)

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=participant.user_id,
            action=AuditAction.JOIN_REQUESTED,
            details={"participant_id": str(participant.id)},
        )
        db.commit()
        db.refresh(req)

        logger.info(
            "join requested",
            extra={"group_id": str(group.id), "participant_id": str(participant.id)},
        )
        return req

    def accept_join_request(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        request_id: uuid.UUID,
        acting_participant_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> ProjectParticipant:
        """
        Leader accepts a pending request.

        The requester becomes MEMBER; this request and every other pending
        request of the same requester are deleted in the same commit.
        """
        project, group = self._lock_scope(db, group_id)

        req = db.execute(
            for_update(select(JoinRequest).where(JoinRequest.id == request_id))
        ).scalar_one_or_none()
        if not req or req.group_id != group.id:
            raise NotFound("Join request not found.")

        now = now or now_utc()
        require_can_form_or_modify_groups(project, now)

        members = self._locked_members(db, group.id)
        acting = self._require_leader(members, acting_participant_id)

        requester = lock_participant(db, req.participant_id)
        if requester.group_id is not None:
            raise Conflict("The requesting student has already joined a group.")

        self._place(requester, group, MEMBER, now)
        self._discard_requests_of(db, requester.id)

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=acting.user_id,
            action=AuditAction.JOIN_ACCEPTED,
            details={"request_id": str(request_id), "participant_id": str(requester.id)},
        )
        db.commit()
        db.refresh(requester)

        logger.info(
            "join request accepted",
            extra={"group_id": str(group.id), "participant_id": str(requester.id)},
        )
        return requester

    def withdraw_join_request(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        request_id: uuid.UUID,
        acting_participant_id: uuid.UUID,
    ) -> None:
        project, group = self._lock_scope(db, group_id)

        req = db.execute(
            for_update(select(JoinRequest).where(JoinRequest.id == request_id))
        ).scalar_one_or_none()
        if not req or req.group_id != group.id:
            raise NotFound("Join request not found.")
        if req.participant_id != acting_participant_id:
            raise Forbidden("Only the requesting student may withdraw a join request.")

        requester = db.get(ProjectParticipant, req.participant_id)
        db.delete(req)

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=requester.user_id if requester else None,
            action=AuditAction.JOIN_WITHDRAWN,
            details={"request_id": str(request_id)},
        )
        db.commit()

    def transfer_leadership(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        new_leader_id: uuid.UUID,
        acting_participant_id: uuid.UUID,
    ) -> ProjectParticipant:
        """
        Swap LEADER and MEMBER between the current leader and a member.
        Both rows change in one commit, so no reader sees zero or two leaders.
        """
        project, group = self._lock_scope(db, group_id)
        members = self._locked_members(db, group.id)
        acting = self._require_leader(members, acting_participant_id)

        if new_leader_id == acting.id:
            raise InvalidParameter("You are already the leader of this group.")
        target = self._find(members, new_leader_id)
        if not target:
            raise InvalidParameter("The new leader must be a member of this group.")

        acting.role_in_group = MEMBER
        target.role_in_group = LEADER

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=acting.user_id,
            action=AuditAction.LEADERSHIP_TRANSFERRED,
            details={"from": str(acting.id), "to": str(target.id)},
        )
        db.commit()
        db.refresh(target)

        logger.info(
            "leadership transferred",
            extra={"group_id": str(group.id), "from": str(acting.id), "to": str(target.id)},
        )
        return target

    def remove_member(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        target_participant_id: uuid.UUID,
        acting_participant_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> None:
        project, group = self._lock_scope(db, group_id)
        members = self._locked_members(db, group.id)

        now = now or now_utc()
        require_can_form_or_modify_groups(project, now)

        acting = self._require_leader(members, acting_participant_id)
        if target_participant_id == acting.id:
            raise Forbidden("The leader cannot remove themselves; transfer leadership or leave instead.")
        target = self._find(members, target_participant_id)
        if not target:
            raise NotFound("Student is not a member of this group.")
        if target.role_in_group == LEADER:
            raise Forbidden("The group leader cannot be removed.")

        self._unlink(target)

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=acting.user_id,
            action=AuditAction.MEMBER_REMOVED,
            details={"participant_id": str(target.id)},
        )
        db.commit()

        logger.info(
            "member removed",
            extra={"group_id": str(group.id), "participant_id": str(target.id)},
        )

    def leave(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        participant_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Voluntary departure. Returns True when the group was deleted because
        the departing student was its last member.
        """
        project, group = self._lock_scope(db, group_id)
        members = self._locked_members(db, group.id)

        now = now or now_utc()
        require_can_leave(project)
        require_can_form_or_modify_groups(project, now)

        participant = self._find(members, participant_id)
        if not participant:
            raise NotFound("You are not a member of this group.")
        if participant.role_in_group == LEADER and len(members) > 1:
            raise Conflict("Transfer leadership to another member before leaving the group.")

        self._unlink(participant)
        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=participant.user_id,
            action=AuditAction.MEMBER_LEFT,
            details={"participant_id": str(participant.id)},
        )

        group_deleted = len(members) == 1
        if group_deleted:
            self._delete_group(db, group, participant.user_id)

        db.commit()

        logger.info(
            "member left",
            extra={
                "group_id": str(group_id),
                "participant_id": str(participant_id),
                "group_deleted": group_deleted,
            },
        )
        return group_deleted

    # ---------------------------
    # LECTURER OVERRIDES
    # ---------------------------

    def assign_participant(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        participant_id: uuid.UUID,
        actor_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ProjectParticipant:
        project, group = self._lock_scope(db, group_id)
        participant = lock_participant(db, participant_id)
        if participant.project_id != group.project_id:
            raise InvalidParameter("Student is not enrolled in this group's project.")

        now = now or now_utc()
        require_team_project(project)
        require_can_form_or_modify_groups(project, now)

        if participant.group_id is not None:
            raise Conflict("Student already belongs to a group in this project.")

        members = self._locked_members(db, group.id)
        self._place(participant, group, LEADER if not members else MEMBER, now)
        self._discard_requests_of(db, participant.id)

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.MEMBER_ASSIGNED,
            details={"participant_id": str(participant.id)},
        )
        db.commit()
        db.refresh(participant)
        return participant

    def unassign_participant(
        self,
        db: Session,
        *,
        group_id: uuid.UUID,
        participant_id: uuid.UUID,
        actor_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ProjectParticipant]:
        """
        Lecturer removes any student, leader included.

        A removed leader is succeeded by the earliest-joined remaining member;
        the new leader is returned in that case. An emptied group is deleted.
        """
        project, group = self._lock_scope(db, group_id)
        members = self._locked_members(db, group.id)

        now = now or now_utc()
        require_can_form_or_modify_groups(project, now)

        target = self._find(members, participant_id)
        if not target:
            raise NotFound("Student is not a member of this group.")

        was_leader = target.role_in_group == LEADER
        remaining = [m for m in members if m.id != target.id]
        self._unlink(target)

        successor = None
        if was_leader and remaining:
            successor = remaining[0]
            successor.role_in_group = LEADER

        AuditService().write(
            db,
            project_id=project.id,
            group_id=group.id,
            actor_user_id=actor_user_id,
            action=AuditAction.MEMBER_REMOVED,
            details={
                "participant_id": str(target.id),
                "new_leader_id": str(successor.id) if successor else None,
            },
        )

        if not remaining:
            self._delete_group(db, group, actor_user_id)

        db.commit()
        return successor
