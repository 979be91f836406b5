# calcgrade/api/v1/endpoints/auth.py
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from calcgrade.core.security import authenticate_user, create_access_token
from calcgrade.db.session import get_db
from calcgrade.models.user import User
from calcgrade.schemas.auth import LoginRequest, RegisterRequest, Token
from calcgrade.schemas.user import UserPublic
from calcgrade.services import user_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _login(db: Session, email: str, password: str) -> Token:
    user: User | None = authenticate_user(db, email.lower(), password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # sub 存邮箱，get_current_user 按邮箱查用户
    return Token(access_token=create_access_token({"sub": user.email}))


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
def register(obj_in: RegisterRequest, db: Session = Depends(get_db)):
    return user_service.register(db, obj_in=obj_in)


# 插件和网页前端用 JSON body 登录
@router.post("/login", response_model=Token)
def login(obj_in: LoginRequest, db: Session = Depends(get_db)):
    return _login(db, obj_in.email, obj_in.password)


@router.post("/token", response_model=Token)
def login_form(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """
    OAuth2 表单登录（swagger 的 Authorize 按钮）

    注意：username 字段填写邮箱地址
    """
    return _login(db, form_data.username, form_data.password)
