# calcgrade/schemas/user.py
from datetime import datetime

from pydantic import BaseModel, EmailStr


class UserBase(BaseModel):
    email: EmailStr
    username: str
    role: str  # "teacher" / "student"


class UserUpdate(BaseModel):
    username: str | None = None
    avatar_url: str | None = None
    password: str | None = None


class UserPublic(UserBase):
    id: int
    avatar_url: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
