from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupwork.models.audit_log import AuditLog


class AuditAction:
    # Group formation
    GROUPS_PARTITIONED = "GROUPS_PARTITIONED"
    GROUPS_DISSOLVED = "GROUPS_DISSOLVED"
    GROUP_CREATED = "GROUP_CREATED"
    GROUP_DELETED = "GROUP_DELETED"

    # Membership
    JOIN_REQUESTED = "JOIN_REQUESTED"
    JOIN_ACCEPTED = "JOIN_ACCEPTED"
    JOIN_WITHDRAWN = "JOIN_WITHDRAWN"
    LEADERSHIP_TRANSFERRED = "LEADERSHIP_TRANSFERRED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    MEMBER_LEFT = "MEMBER_LEFT"
    MEMBER_ASSIGNED = "MEMBER_ASSIGNED"

    # Sprint lifecycle
    SPRINT_CREATED = "SPRINT_CREATED"
    SPRINT_STARTED = "SPRINT_STARTED"
    SPRINT_UPDATED = "SPRINT_UPDATED"
    SPRINT_COMPLETED = "SPRINT_COMPLETED"
    SPRINT_DELETED = "SPRINT_DELETED"


class AuditService:
    def write(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        group_id: Optional[uuid.UUID],
        actor_user_id: Optional[str],
        action: str,
        details: Dict[str, Any],
    ) -> AuditLog:
        """
        Stage an audit row in the caller's transaction.
        Does NOT commit: the row lands together with the mutation or not at all.
        """
        row = AuditLog(
            project_id=project_id,
            group_id=group_id,
            actor_user_id=actor_user_id,
            action=action,
            details_json=details,
        )
        db.add(row)
        return row

    def history(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        group_id: Optional[uuid.UUID] = None,
        limit: int = 200,
    ) -> List[AuditLog]:
        stmt = select(AuditLog).where(AuditLog.project_id == project_id)
        if group_id is not None:
            stmt = stmt.where(AuditLog.group_id == group_id)
        stmt = stmt.order_by(AuditLog.created_at.asc()).limit(limit)
        return db.execute(stmt).scalars().all()
