# calcgrade/db/base.py
# 导入所有模型，保证 Base.metadata 完整（create_all / 测试建表用）
from calcgrade.db.base_class import Base  # noqa

from calcgrade.models.user import User  # noqa
from calcgrade.models.file_upload import FileUpload  # noqa
from calcgrade.models.classroom import Classroom, ClassroomMember  # noqa
from calcgrade.models.assignment import Assignment  # noqa
from calcgrade.models.submission import Submission  # noqa
from calcgrade.models.results import OCRResult, GradingResult  # noqa
from calcgrade.models.knowledge import KnowledgePoint, ErrorAnalysis  # noqa
from calcgrade.models.mistake import MistakeCategory, MistakeItem  # noqa
