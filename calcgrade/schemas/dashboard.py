# calcgrade/schemas/dashboard.py
from datetime import datetime
from typing import List

from pydantic import BaseModel


class RecentSubmission(BaseModel):
    id: int
    original_name: str | None = None
    status: str
    score: float | None = None
    max_score: float | None = None
    feedback: str | None = None
    submitted_at: datetime


class ErrorTypeCount(BaseModel):
    error_type: str
    count: int


class StudentStats(BaseModel):
    total_submissions: int
    completed_submissions: int
    average_score: int
    highest_score: float
    weekly_submissions: int
    trend: str  # improving / stable
    recent_submissions: List[RecentSubmission]
    top_error_types: List[ErrorTypeCount]


class TeacherStats(BaseModel):
    total_classrooms: int
    total_assignments: int
    total_students: int


class AttentionStudent(BaseModel):
    student_id: int
    username: str
    assignment_title: str | None = None
    lowest_score: float
    submitted_at: datetime


class ClassroomStat(BaseModel):
    classroom_id: int
    name: str
    student_count: int
    assignment_count: int
    average_score: float | None = None


class RecentCompleted(BaseModel):
    submission_id: int
    student_name: str
    assignment_title: str | None = None
    score: float | None = None
    completed_at: datetime | None = None


class ClassOverview(BaseModel):
    total_classrooms: int
    total_students: int
    total_assignments: int
    total_submissions: int


class ClassAnalytics(BaseModel):
    overview: ClassOverview
    students_needing_attention: List[AttentionStudent]
    classroom_stats: List[ClassroomStat]
    recent_submissions: List[RecentCompleted]
