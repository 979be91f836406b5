# calcgrade/db/init_db.py
from calcgrade.db.base import Base
from calcgrade.db.session import engine


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
