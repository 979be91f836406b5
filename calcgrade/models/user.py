# calcgrade/models/user.py
import enum

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from calcgrade.db.base_class import Base


class UserRole(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    username = Column(String(100), nullable=False)  # 可重复，不唯一
    role = Column(String(20), nullable=False)  # 'teacher' / 'student'
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
