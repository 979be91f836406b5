# calcgrade/services/user_service.py
import logging

from sqlalchemy.orm import Session

from calcgrade.core.security import get_password_hash
from calcgrade.models.user import User
from calcgrade.schemas.auth import RegisterRequest
from calcgrade.schemas.user import UserUpdate
from calcgrade.services.exceptions import ServiceError

logger = logging.getLogger(__name__)


def get_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.lower()).first()


def register(db: Session, *, obj_in: RegisterRequest) -> User:
    """邮箱唯一；用户名可以重复"""
    email = obj_in.email.lower()
    if get_by_email(db, email) is not None:
        raise ServiceError("Email already registered")

    user = User(
        email=email,
        password_hash=get_password_hash(obj_in.password),
        username=obj_in.username.strip(),
        role=obj_in.role.value,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered {user.role} {user.id}")
    return user


def update_profile(db: Session, *, user: User, obj_in: UserUpdate) -> User:
    update_data = obj_in.model_dump(exclude_unset=True)

    password = update_data.pop("password", None)
    if password:
        if len(password) < 6:
            raise ServiceError("Password must be at least 6 characters")
        user.password_hash = get_password_hash(password)

    username = update_data.get("username")
    if username is not None and not username.strip():
        raise ServiceError("Username must not be empty")

    for field, value in update_data.items():
        setattr(user, field, value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
