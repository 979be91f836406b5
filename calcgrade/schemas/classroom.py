# calcgrade/schemas/classroom.py
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class ClassroomCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class JoinClassroomRequest(BaseModel):
    invite_code: str = Field(min_length=1)


class ClassroomPublic(BaseModel):
    id: int
    name: str
    description: str | None = None
    invite_code: str
    teacher_id: int
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ClassroomSummary(ClassroomPublic):
    member_count: int = 0
    assignment_count: int = 0
    teacher_name: str | None = None


class ClassroomMemberPublic(BaseModel):
    student_id: int
    username: str
    email: str
    joined_at: datetime | None = None


class ClassroomMembers(BaseModel):
    classroom_id: int
    members: List[ClassroomMemberPublic]
