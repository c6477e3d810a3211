from fastapi import APIRouter
from sqlalchemy import text

from orderstore.adapters.mock_courier import MockCourierAdapter
from orderstore.db import engine

router = APIRouter()


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False
    courier_ok = MockCourierAdapter().health_check()

    return {
        "status": "ok" if db_ok and courier_ok else "degraded",
        "db": db_ok,
        "courier_adapter": courier_ok,
    }
