# calcgrade/schemas/assignment.py
from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    classroom_id: int
    file_upload_id: int | None = None
    start_date: datetime
    due_date: datetime

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date >= self.due_date:
            raise ValueError("start_date must be before due_date")
        return self


class AssignmentPublic(BaseModel):
    id: int
    title: str
    description: str | None = None
    classroom_id: int
    teacher_id: int
    file_upload_id: int | None = None
    start_date: datetime
    due_date: datetime
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class TeacherAssignment(AssignmentPublic):
    classroom_name: str | None = None
    submission_count: int = 0


class StudentAssignment(AssignmentPublic):
    classroom_name: str | None = None
    is_submitted: bool = False
    is_overdue: bool = False
    submission_id: int | None = None


class ClassroomAssignment(AssignmentPublic):
    """Per-classroom listing; the submission fields are only filled for students."""
    classroom_name: str | None = None
    is_submitted: bool | None = None
    is_overdue: bool | None = None
    submission_id: int | None = None
