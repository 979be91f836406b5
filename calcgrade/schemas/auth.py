# calcgrade/schemas/auth.py
from pydantic import BaseModel, EmailStr, Field

from calcgrade.models.user import UserRole


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    email: EmailStr | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    username: str = Field(min_length=1, max_length=100)  # 必填，可以重复
    role: UserRole = UserRole.STUDENT
