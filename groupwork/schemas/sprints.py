from __future__ import annotations

import uuid
from typing import List, Optional
from pydantic import BaseModel, Field


class SprintCreateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    startDateIso: Optional[str] = None
    endDateIso: Optional[str] = None


class SprintUpdateRequest(BaseModel):
    """
    Partial edit; omitted fields keep their value.
    Also the optional body of the start transition.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    startDateIso: Optional[str] = None
    endDateIso: Optional[str] = None


class CompleteSprintRequest(BaseModel):
    """
    Empty body is valid only when every work item is DONE.
    """
    moveToBacklog: Optional[bool] = None
    moveToSprintId: Optional[uuid.UUID] = None


class WorkItemResponse(BaseModel):
    id: str
    summary: str
    status: str
    sprintId: Optional[str] = None
    assigneeId: Optional[str] = None


class SprintResponse(BaseModel):
    id: str
    groupId: str
    number: int
    name: str
    status: str
    startDateIso: Optional[str] = None
    endDateIso: Optional[str] = None
    completedAtIso: Optional[str] = None
    workItems: List[WorkItemResponse] = Field(default_factory=list)


class CompleteSprintResponse(BaseModel):
    sprint: SprintResponse
    total: int
    done: int
    moved: int
    destination: Optional[str] = None


class DeleteSprintResponse(BaseModel):
    status: str = "deleted"
    movedToBacklog: int = 0
