# calcgrade/services/dashboard_service.py
from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from calcgrade.models.assignment import Assignment
from calcgrade.models.classroom import Classroom, ClassroomMember
from calcgrade.models.knowledge import ErrorAnalysis
from calcgrade.models.submission import Submission, SubmissionStatus
from calcgrade.models.user import User
from calcgrade.services.repository import SubmissionRepository

RECENT_COMPLETED_LIMIT = 20
FEEDBACK_PREVIEW_CHARS = 100
TOP_ERROR_TYPES = 5
ATTENTION_SCORE = 60
ATTENTION_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 5


def _preview(text: str | None) -> str | None:
    if not text:
        return None
    if len(text) <= FEEDBACK_PREVIEW_CHARS:
        return text
    return text[:FEEDBACK_PREVIEW_CHARS] + "..."


def student_stats(db: Session, *, user: User) -> dict:
    repo = SubmissionRepository(db)
    week_ago = datetime.now(timezone.utc) - timedelta(days=7)

    total = db.query(Submission).filter(Submission.user_id == user.id).count()

    completed = (
        db.query(Submission)
        .filter(
            Submission.user_id == user.id,
            Submission.status == SubmissionStatus.COMPLETED.value,
        )
        .order_by(Submission.completed_at.desc(), Submission.id.desc())
        .all()
    )
    completed_grades = []
    for sub in completed:
        grading = repo.latest_grading_result(sub.id)
        if grading is not None:
            completed_grades.append(grading)
        if len(completed_grades) >= RECENT_COMPLETED_LIMIT:
            break
    scores = [g.score for g in completed_grades if g.score is not None]

    recent = (
        db.query(Submission)
        .filter(Submission.user_id == user.id, Submission.submitted_at >= week_ago)
        .order_by(Submission.submitted_at.desc(), Submission.id.desc())
        .all()
    )
    recent_items = []
    for sub in recent:
        grading = repo.latest_grading_result(sub.id)
        recent_items.append(
            {
                "id": sub.id,
                "original_name": sub.file_upload.original_name if sub.file_upload else None,
                "status": sub.status,
                "score": grading.score if grading else None,
                "max_score": grading.max_score if grading else None,
                "feedback": _preview(grading.feedback) if grading else None,
                "submitted_at": sub.submitted_at,
            }
        )

    error_rows = (
        db.query(ErrorAnalysis.error_type, func.count(ErrorAnalysis.id).label("n"))
        .join(Submission, Submission.id == ErrorAnalysis.submission_id)
        .filter(Submission.user_id == user.id, ErrorAnalysis.error_type.isnot(None))
        .group_by(ErrorAnalysis.error_type)
        .order_by(func.count(ErrorAnalysis.id).desc(), ErrorAnalysis.error_type.asc())
        .limit(TOP_ERROR_TYPES)
        .all()
    )

    return {
        "total_submissions": total,
        "completed_submissions": len(completed_grades),
        "average_score": round(sum(scores) / len(scores)) if scores else 0,
        "highest_score": max(scores) if scores else 0,
        "weekly_submissions": len(recent),
        "trend": "improving" if len(recent) > 1 else "stable",
        "recent_submissions": recent_items,
        "top_error_types": [{"error_type": t, "count": n} for t, n in error_rows],
    }


def teacher_stats(db: Session, *, teacher: User) -> dict:
    return {
        "total_classrooms": db.query(Classroom)
        .filter(Classroom.teacher_id == teacher.id, Classroom.is_active.is_(True))
        .count(),
        "total_assignments": db.query(Assignment)
        .filter(Assignment.teacher_id == teacher.id, Assignment.is_active.is_(True))
        .count(),
        "total_students": db.query(func.count(func.distinct(ClassroomMember.student_id)))
        .join(Classroom, Classroom.id == ClassroomMember.classroom_id)
        .filter(
            Classroom.teacher_id == teacher.id,
            Classroom.is_active.is_(True),
            ClassroomMember.is_active.is_(True),
        )
        .scalar()
        or 0,
    }


def _scored_assignment_submissions(db: Session, teacher: User) -> List[dict]:
    repo = SubmissionRepository(db)
    subs = (
        db.query(Submission)
        .join(Assignment, Assignment.id == Submission.assignment_id)
        .filter(
            Assignment.teacher_id == teacher.id,
            Submission.status == SubmissionStatus.COMPLETED.value,
        )
        .all()
    )
    rows = []
    for sub in subs:
        grading = repo.latest_grading_result(sub.id)
        rows.append(
            {
                "submission": sub,
                "score": grading.score if grading and grading.score is not None else None,
            }
        )
    return rows


def class_analytics(db: Session, *, teacher: User) -> dict:
    classrooms = (
        db.query(Classroom)
        .filter(Classroom.teacher_id == teacher.id, Classroom.is_active.is_(True))
        .order_by(Classroom.id.asc())
        .all()
    )
    assignment_count = (
        db.query(Assignment)
        .filter(Assignment.teacher_id == teacher.id, Assignment.is_active.is_(True))
        .count()
    )
    rows = _scored_assignment_submissions(db, teacher)

    # 每个学生只保留最低分的一次提交
    lowest: dict[int, dict] = {}
    for row in rows:
        score = row["score"] if row["score"] is not None else 0
        if score >= ATTENTION_SCORE:
            continue
        sub = row["submission"]
        current = lowest.get(sub.user_id)
        if current is None or score < current["lowest_score"]:
            lowest[sub.user_id] = {
                "student_id": sub.user_id,
                "username": sub.user.username,
                "assignment_title": sub.assignment.title if sub.assignment else None,
                "lowest_score": score,
                "submitted_at": sub.submitted_at,
            }
    attention = sorted(lowest.values(), key=lambda s: (s["lowest_score"], s["student_id"]))[:ATTENTION_LIMIT]

    classroom_stats = []
    total_students = 0
    for classroom in classrooms:
        members = [m for m in classroom.members if m.is_active]
        total_students += len(members)
        scores = [
            r["score"]
            for r in rows
            if r["score"] is not None and r["submission"].assignment.classroom_id == classroom.id
        ]
        classroom_stats.append(
            {
                "classroom_id": classroom.id,
                "name": classroom.name,
                "student_count": len(members),
                "assignment_count": len([a for a in classroom.assignments if a.is_active]),
                "average_score": round(sum(scores) / len(scores), 1) if scores else None,
            }
        )

    recent = sorted(
        rows,
        key=lambda r: (r["submission"].submitted_at, r["submission"].id),
        reverse=True,
    )[:RECENT_ACTIVITY_LIMIT]

    return {
        "overview": {
            "total_classrooms": len(classrooms),
            "total_students": total_students,
            "total_assignments": assignment_count,
            "total_submissions": len(rows),
        },
        "students_needing_attention": attention,
        "classroom_stats": classroom_stats,
        "recent_submissions": [
            {
                "submission_id": r["submission"].id,
                "student_name": r["submission"].user.username,
                "assignment_title": r["submission"].assignment.title if r["submission"].assignment else None,
                "score": r["score"],
                "completed_at": r["submission"].completed_at,
            }
            for r in recent
        ],
    }
