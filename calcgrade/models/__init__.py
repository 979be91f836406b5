# Package marker
from calcgrade.models.user import User, UserRole  # noqa
from calcgrade.models.file_upload import FileUpload  # noqa
from calcgrade.models.classroom import Classroom, ClassroomMember  # noqa
from calcgrade.models.assignment import Assignment  # noqa
from calcgrade.models.submission import Submission, SubmissionStatus, WorkMode  # noqa
from calcgrade.models.results import OCRResult, GradingResult  # noqa
from calcgrade.models.knowledge import KnowledgePoint, ErrorAnalysis  # noqa
from calcgrade.models.mistake import MistakeCategory, MistakeItem  # noqa
