# calcgrade/api/v1/endpoints/health.py
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from calcgrade.core.config import settings
from calcgrade.db.session import get_db

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
def liveness_probe():
    return {"status": "ok"}


@router.get("/db")
def db_health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@router.get("/config")
def config_health():
    """Which external providers are configured; never echoes the secrets."""
    return {
        "mathpix": bool(settings.MATHPIX_APP_ID and settings.MATHPIX_APP_KEY),
        "deepseek": bool(settings.DEEPSEEK_API_KEY),
        "storage": bool(settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY),
        "strict_provider_failures": settings.STRICT_PROVIDER_FAILURES,
    }
