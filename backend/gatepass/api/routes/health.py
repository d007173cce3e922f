from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gatepass.core.config import settings
from gatepass.db.session import engine
from gatepass.services.inbox import dispatcher

router = APIRouter()

@router.get("/")
def health():
    db_ok = True
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "service": settings.app_name,
        "database": db_ok,
        "notifications": dispatcher.running,
    }
