"""
Shared fixtures: in-memory SQLite, users/uploads/submissions, and fake
OCR / LLM / storage providers that count their calls.
"""

import os

# Must be set before calcgrade.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from calcgrade.core.security import create_access_token
from calcgrade.db.base import Base
from calcgrade.db.session import get_db
from calcgrade.main import app
from calcgrade.models.file_upload import FileUpload
from calcgrade.models.submission import Submission
from calcgrade.models.user import User
from calcgrade.services.exceptions import StorageError
from calcgrade.services.llm_client import get_llm_client
from calcgrade.services.ocr_client import OCRResponse
from calcgrade.services.storage_client import get_storage_client
from calcgrade.workers.queue import TaskDispatcher, get_task_dispatcher

# Test database (in-memory SQLite)
TEST_DATABASE_URL = "sqlite://"

SAMPLE_OCR_TEXT = "∫ x dx = x^2 + C"


def grading_reply(score=55, feedback="积分计算有误，原函数的系数不对。", **extra):
    body = {
        "score": score,
        "maxScore": 100,
        "feedback": feedback,
        "errors": [{"type": "calculation", "description": "系数错误", "severity": "medium"}],
        "suggestions": ["复习幂函数积分公式"],
        "strengths": ["步骤完整"],
    }
    body.update(extra)
    return json.dumps(body, ensure_ascii=False)


def analysis_reply(*entries):
    entries = entries or (
        {
            "errorType": "calculation",
            "knowledgePointName": "基本积分公式",
            "errorDescription": "x 的原函数应为 x^2/2",
            "severity": "medium",
            "aiSuggestion": "熟记幂函数积分公式",
        },
    )
    return json.dumps({"errorAnalysis": list(entries)}, ensure_ascii=False)


class FakeStorage:
    bucket = "test-bucket"

    def __init__(self):
        self.objects = {}
        self.removed = []

    def upload(self, path, data, content_type):
        self.objects[path] = data
        return path

    def download(self, path):
        if path not in self.objects:
            raise StorageError(f"download of {path} failed: not found")
        return self.objects[path]

    def remove(self, path):
        self.removed.append(path)
        self.objects.pop(path, None)


class FakeOCR:
    """Returns `text`, or raises when `error` is set."""

    configured = True

    def __init__(self, text=SAMPLE_OCR_TEXT, error=None):
        self.text = text
        self.error = error
        self.calls = 0

    def recognize(self, file_bytes, mime_type=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return OCRResponse(text=self.text, latex=self.text, confidence=0.93, raw={"text": self.text})


class FakeLLM:
    """
    Routes each chat() call by prompt content: error analysis, knowledge
    explanation, or grading. A reply that is an Exception is raised.
    """

    def __init__(self, grading=None, analysis=None, explanation="这是一个知识点讲解。", configured=True):
        self.grading = grading if grading is not None else grading_reply()
        self.analysis = analysis if analysis is not None else analysis_reply()
        self.explanation = explanation
        self.configured = configured
        self.grading_calls = 0
        self.analysis_calls = 0
        self.explanation_calls = 0

    @staticmethod
    def _answer(reply):
        if isinstance(reply, Exception):
            raise reply
        return reply

    def chat(self, messages, *, temperature=0.3, max_tokens=None):
        prompt = messages[-1]["content"]
        if "errorAnalysis" in prompt:
            self.analysis_calls += 1
            return self._answer(self.analysis)
        if "知识点名称" in prompt:
            self.explanation_calls += 1
            return self._answer(self.explanation)
        self.grading_calls += 1
        return self._answer(self.grading)


class RecordingDispatcher(TaskDispatcher):
    def __init__(self):
        self.dispatched = []

    def dispatch_processing(self, submission_id, options=None):
        self.dispatched.append((submission_id, options))
        return f"job-{len(self.dispatched)}"


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def _make_user(db, email, username, role):
    user = User(
        email=email,
        # Pre-hashed password to avoid running bcrypt in tests
        password_hash="$2b$12$hashed_password_001",
        username=username,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_teacher(db_session):
    """Create a test teacher user."""
    return _make_user(db_session, "teacher@test.com", "Test Teacher", "teacher")


@pytest.fixture
def test_student(db_session):
    """Create a test student user."""
    return _make_user(db_session, "student@test.com", "Test Student", "student")


@pytest.fixture
def other_student(db_session):
    return _make_user(db_session, "other@test.com", "Other Student", "student")


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def test_file(db_session, test_student, storage):
    """A PNG upload owned by the student, with bytes present in fake storage."""
    path = f"{test_student.id}/homework-page-1.png"
    storage.objects[path] = b"\x89PNG fake image bytes"
    file_upload = FileUpload(
        user_id=test_student.id,
        original_name="homework-page-1.png",
        storage_path=path,
        mime_type="image/png",
        file_size=len(storage.objects[path]),
    )
    db_session.add(file_upload)
    db_session.commit()
    db_session.refresh(file_upload)
    return file_upload


def make_submission(db, user, file_upload, *, submission_id=None, work_mode="practice", assignment_id=None):
    submission = Submission(
        id=submission_id,
        user_id=user.id,
        file_upload_id=file_upload.id,
        assignment_id=assignment_id,
        work_mode=work_mode,
        status="UPLOADED",
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


@pytest.fixture
def test_submission(db_session, test_student, test_file):
    """A freshly uploaded practice submission."""
    return make_submission(db_session, test_student, test_file)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def client(db_session, dispatcher, storage, llm):
    """TestClient wired to the test session and fake providers."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_task_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_storage_client] = lambda: storage
    app.dependency_overrides[get_llm_client] = lambda: llm
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user):
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers(test_student):
    return auth_headers(test_student)


@pytest.fixture
def teacher_headers(test_teacher):
    return auth_headers(test_teacher)
