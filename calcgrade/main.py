# calcgrade/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from calcgrade.core.config import settings
from calcgrade.core.logging_config import setup_logging
from calcgrade.db.init_db import init_db
from calcgrade.api.v1.endpoints import (
    assignments,
    auth,
    classrooms,
    dashboard,
    files,
    health,
    knowledge,
    mistakes,
    practice,
    submissions,
    users,
)
from calcgrade.services.exceptions import ServiceError
from calcgrade import models  # noqa

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"{settings.PROJECT_NAME} started")


for router in (
    auth.router,
    users.router,
    files.router,
    submissions.router,
    practice.router,
    classrooms.router,
    assignments.router,
    knowledge.router,
    mistakes.router,
    dashboard.router,
    health.router,
):
    app.include_router(router, prefix=settings.API_V1_PREFIX)
