"""
File upload, submission and practice routes.
Handlers only create rows and dispatch; the recording dispatcher stands in for rq.
"""

from datetime import datetime, timedelta, timezone

from calcgrade.core.config import settings
from calcgrade.models.assignment import Assignment
from calcgrade.models.classroom import Classroom, ClassroomMember
from calcgrade.models.results import GradingResult, OCRResult
from calcgrade.models.submission import Submission

from tests.conftest import auth_headers, make_submission


def add_grading(db, submission, score, max_score=100, feedback="评语"):
    db.add(OCRResult(submission_id=submission.id, recognized_text="x^2"))
    db.add(GradingResult(submission_id=submission.id, score=score, max_score=max_score, feedback=feedback))
    db.commit()


def make_assignment(db, teacher, student=None):
    classroom = Classroom(name="微积分一班", invite_code="CALC0001", teacher_id=teacher.id)
    db.add(classroom)
    db.commit()
    if student is not None:
        db.add(ClassroomMember(classroom_id=classroom.id, student_id=student.id))
    now = datetime.now(timezone.utc)
    assignment = Assignment(
        title="第三章作业",
        classroom_id=classroom.id,
        teacher_id=teacher.id,
        start_date=now - timedelta(days=1),
        due_date=now + timedelta(days=6),
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment


class TestFiles:
    def test_upload_png(self, client, storage, test_student, student_headers):
        response = client.post(
            "/api/v1/files",
            files={"file": ("page1.png", b"\x89PNG data", "image/png")},
            headers=student_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["original_name"] == "page1.png"
        assert body["mime_type"] == "image/png"
        assert body["file_size"] == len(b"\x89PNG data")
        assert body["storage_path"].startswith(f"{test_student.id}/")
        assert body["storage_path"].endswith(".png")
        assert storage.objects[body["storage_path"]] == b"\x89PNG data"

    def test_unsupported_type_rejected(self, client, storage, student_headers):
        response = client.post(
            "/api/v1/files",
            files={"file": ("notes.docx", b"PK..", "application/msword")},
            headers=student_headers,
        )

        assert response.status_code == 400
        assert storage.objects == {}

    def test_oversized_file_rejected(self, client, student_headers, monkeypatch):
        monkeypatch.setattr(settings, "MAX_FILE_SIZE", 8)

        response = client.post(
            "/api/v1/files",
            files={"file": ("big.pdf", b"%PDF-1.7 too large", "application/pdf")},
            headers=student_headers,
        )

        assert response.status_code == 400
        assert "too large" in response.json()["detail"]

    def test_upload_requires_auth(self, client):
        response = client.post("/api/v1/files", files={"file": ("a.png", b"x", "image/png")})
        assert response.status_code == 401

    def test_get_other_users_file_is_404(self, client, test_file, other_student):
        response = client.get(f"/api/v1/files/{test_file.id}", headers=auth_headers(other_student))
        assert response.status_code == 404

    def test_delete_referenced_file_conflicts(self, client, test_submission, test_file, student_headers):
        response = client.delete(f"/api/v1/files/{test_file.id}", headers=student_headers)
        assert response.status_code == 409

    def test_delete_unreferenced_file(self, client, storage, test_file, student_headers):
        response = client.delete(f"/api/v1/files/{test_file.id}", headers=student_headers)

        assert response.status_code == 204
        assert storage.removed == [test_file.storage_path]


class TestCreateSubmission:
    def test_practice_submission_dispatches_once(self, client, dispatcher, db_session, test_file, student_headers):
        """这个测试证明：创建提交后立即返回 UPLOADED，并且只派发一次处理任务"""
        response = client.post(
            "/api/v1/submissions",
            json={"file_upload_id": test_file.id, "work_mode": "practice"},
            headers=student_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "UPLOADED"
        assert body["work_mode"] == "practice"
        assert [sid for sid, _ in dispatcher.dispatched] == [body["id"]]
        assert dispatcher.dispatched[0][1].mode.value == "practice"

    def test_file_must_belong_to_student(self, client, dispatcher, test_file, other_student):
        response = client.post(
            "/api/v1/submissions",
            json={"file_upload_id": test_file.id},
            headers=auth_headers(other_student),
        )

        assert response.status_code == 404
        assert dispatcher.dispatched == []

    def test_teacher_cannot_submit(self, client, test_file, teacher_headers):
        response = client.post(
            "/api/v1/submissions", json={"file_upload_id": test_file.id}, headers=teacher_headers
        )
        assert response.status_code == 403

    def test_homework_requires_membership(self, client, db_session, test_teacher, test_file, student_headers):
        assignment = make_assignment(db_session, test_teacher)

        response = client.post(
            "/api/v1/submissions",
            json={"file_upload_id": test_file.id, "work_mode": "homework", "assignment_id": assignment.id},
            headers=student_headers,
        )

        assert response.status_code == 403

    def test_homework_for_member(self, client, dispatcher, db_session, test_teacher, test_student, test_file, student_headers):
        assignment = make_assignment(db_session, test_teacher, test_student)

        response = client.post(
            "/api/v1/submissions",
            json={"file_upload_id": test_file.id, "work_mode": "homework", "assignment_id": assignment.id},
            headers=student_headers,
        )

        assert response.status_code == 201
        assert response.json()["assignment_id"] == assignment.id
        assert dispatcher.dispatched[0][1].mode.value == "homework"

    def test_homework_without_assignment(self, client, test_file, student_headers):
        response = client.post(
            "/api/v1/submissions",
            json={"file_upload_id": test_file.id, "work_mode": "homework"},
            headers=student_headers,
        )
        assert response.status_code == 400


class TestReadSubmissions:
    def test_list_filters_by_status(self, client, db_session, test_student, test_file, student_headers):
        done = make_submission(db_session, test_student, test_file)
        done.status = "COMPLETED"
        db_session.commit()
        make_submission(db_session, test_student, test_file)

        response = client.get("/api/v1/submissions?status=COMPLETED", headers=student_headers)

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [done.id]

    def test_detail_includes_latest_results(self, client, db_session, test_submission, student_headers):
        add_grading(db_session, test_submission, 72)

        response = client.get(f"/api/v1/submissions/{test_submission.id}", headers=student_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["original_name"] == "homework-page-1.png"
        assert body["ocr_result"]["recognized_text"] == "x^2"
        assert body["grading_result"]["score"] == 72
        assert body["error_analyses"] == []

    def test_status_for_fresh_submission(self, client, test_submission, student_headers):
        response = client.get(f"/api/v1/submissions/{test_submission.id}/status", headers=student_headers)

        body = response.json()
        assert body["status"] == "UPLOADED"
        assert body["progress"]["percent"] == 10
        assert body["score"] is None

    def test_status_after_grading(self, client, db_session, test_submission, student_headers):
        add_grading(db_session, test_submission, 64, feedback="第二步符号错误")

        body = client.get(f"/api/v1/submissions/{test_submission.id}/status", headers=student_headers).json()

        assert body["progress"]["percent"] == 100
        assert body["progress"]["stage"] == "completed"
        assert body["ocr_text"] == "x^2"
        assert body["score"] == 64
        assert body["max_score"] == 100
        assert body["feedback"] == "第二步符号错误"

    def test_other_student_gets_404(self, client, test_submission, other_student):
        response = client.get(f"/api/v1/submissions/{test_submission.id}", headers=auth_headers(other_student))
        assert response.status_code == 404

    def test_assignment_teacher_can_read(self, client, db_session, test_teacher, test_student, test_file):
        assignment = make_assignment(db_session, test_teacher, test_student)
        sub = make_submission(db_session, test_student, test_file, work_mode="homework", assignment_id=assignment.id)

        response = client.get(f"/api/v1/submissions/{sub.id}", headers=auth_headers(test_teacher))

        assert response.status_code == 200

    def test_unrelated_teacher_is_forbidden(self, client, test_submission, teacher_headers):
        response = client.get(f"/api/v1/submissions/{test_submission.id}", headers=teacher_headers)
        assert response.status_code == 403

    def test_ocr_results_newest_first(self, client, db_session, test_submission, student_headers):
        db_session.add(OCRResult(submission_id=test_submission.id, recognized_text="first",
                                 created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)))
        db_session.add(OCRResult(submission_id=test_submission.id, recognized_text="second",
                                 created_at=datetime(2026, 1, 2, tzinfo=timezone.utc)))
        db_session.commit()

        response = client.get(f"/api/v1/submissions/{test_submission.id}/ocr-results", headers=student_headers)

        assert [r["recognized_text"] for r in response.json()] == ["second", "first"]


class TestReprocessAndDelete:
    def test_reprocess_dispatches_with_skip_ai(self, client, dispatcher, db_session, test_submission, student_headers):
        test_submission.status = "FAILED"
        db_session.commit()

        response = client.post(
            f"/api/v1/submissions/{test_submission.id}/process",
            json={"skip_ai": True},
            headers=student_headers,
        )

        assert response.status_code == 202
        assert response.json()["job_id"] == "job-1"
        submission_id, options = dispatcher.dispatched[0]
        assert submission_id == test_submission.id
        assert options.skip_ai is True

    def test_reprocess_while_processing_conflicts(self, client, dispatcher, db_session, test_submission, student_headers):
        test_submission.status = "PROCESSING"
        db_session.commit()

        response = client.post(f"/api/v1/submissions/{test_submission.id}/process", headers=student_headers)

        assert response.status_code == 409
        assert dispatcher.dispatched == []

    def test_delete_cascades_results_but_keeps_file(self, client, db_session, test_submission, test_file, student_headers):
        add_grading(db_session, test_submission, 50)
        submission_id = test_submission.id

        response = client.delete(f"/api/v1/submissions/{submission_id}", headers=student_headers)

        assert response.status_code == 204
        db_session.expire_all()
        assert db_session.get(Submission, submission_id) is None
        assert db_session.query(GradingResult).count() == 0
        assert db_session.query(OCRResult).count() == 0
        assert client.get(f"/api/v1/files/{test_file.id}", headers=student_headers).status_code == 200


class TestPractice:
    def test_create_practice(self, client, dispatcher, test_file, student_headers):
        response = client.post("/api/v1/practice", json={"file_upload_id": test_file.id}, headers=student_headers)

        assert response.status_code == 201
        assert response.json()["work_mode"] == "practice"
        assert len(dispatcher.dispatched) == 1

    def test_history_difficulty(self, client, db_session, test_student, test_file, student_headers):
        easy = make_submission(db_session, test_student, test_file)
        medium = make_submission(db_session, test_student, test_file)
        hard = make_submission(db_session, test_student, test_file)
        add_grading(db_session, easy, 85)
        add_grading(db_session, medium, 60)
        add_grading(db_session, hard, 59)
        pending = make_submission(db_session, test_student, test_file)

        response = client.get("/api/v1/practice/history", headers=student_headers)

        by_id = {item["id"]: item for item in response.json()}
        assert by_id[easy.id]["difficulty"] == "EASY"
        assert by_id[medium.id]["difficulty"] == "MEDIUM"
        assert by_id[hard.id]["difficulty"] == "HARD"
        assert by_id[pending.id]["difficulty"] == "MEDIUM"

    def test_history_is_capped_at_20(self, client, db_session, test_student, test_file, student_headers):
        for _ in range(23):
            make_submission(db_session, test_student, test_file)

        response = client.get("/api/v1/practice/history", headers=student_headers)

        assert len(response.json()) == 20

    def test_homework_not_visible_through_practice(self, client, db_session, test_student, test_file, student_headers):
        homework = make_submission(db_session, test_student, test_file, work_mode="homework")

        assert client.get(f"/api/v1/practice/{homework.id}/status", headers=student_headers).status_code == 404
        assert client.delete(f"/api/v1/practice/{homework.id}", headers=student_headers).status_code == 404

    def test_delete_practice(self, client, test_submission, student_headers):
        response = client.delete(f"/api/v1/practice/{test_submission.id}", headers=student_headers)
        assert response.status_code == 204
