#groupwork/schemas/groups.py
from __future__ import annotations

import uuid
from typing import List, Optional
from pydantic import BaseModel, Field

from groupwork.models.enums import ApplyType


# -----------------------
# Requests
# -----------------------


class AutoDivideGroupsRequest(BaseModel):
    """
    Lecturer-triggered auto division.
    Range checks (1..number of students) are done by the service so the
    caller gets the domain error, not a schema error.
    """
    groupSize: int
    applyType: ApplyType = ApplyType.without_group


class TransferLeadershipRequest(BaseModel):
    newLeaderId: uuid.UUID


class GroupMemberRequest(BaseModel):
    studentProjectId: uuid.UUID


# -----------------------
# Responses
# -----------------------


class AutoDivideGroupsResponse(BaseModel):
    numOfGroups: int
    dissolvedGroups: int = 0


class GroupMemberResponse(BaseModel):
    studentProjectId: str
    userId: str
    name: Optional[str] = None
    roleInGroup: Optional[str] = None
    joinedAtIso: Optional[str] = None


class GroupResponse(BaseModel):
    id: str
    projectId: str
    number: int
    leader: Optional[GroupMemberResponse] = None
    numberOfMember: int = 0
    joinRequestCreated: bool = False
    createdAtIso: Optional[str] = None


class GroupListResponse(BaseModel):
    projectId: str
    groups: List[GroupResponse] = Field(default_factory=list)


class JoinRequestResponse(BaseModel):
    id: str
    groupId: str
    studentProjectId: str
    userId: Optional[str] = None
    name: Optional[str] = None
    createdAtIso: Optional[str] = None


class LeaveGroupResponse(BaseModel):
    status: str = "left"
    groupDeleted: bool = False
