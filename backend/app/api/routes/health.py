from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.config import Settings, get_settings
from app.core.timeutils import utc_now
from app.db.base import Base

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": utc_now().isoformat()}


@router.get("/health/ready")
def health_ready(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    required_tables = sorted(Base.metadata.tables)
    db_ok = True
    missing_tables: list[str] = []
    db_error: str | None = None

    try:
        connection = db.connection()
        connection.execute(text("SELECT 1"))
        existing = set(inspect(connection).get_table_names())
        missing_tables = [name for name in required_tables if name not in existing]
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    schema_ok = db_ok and not missing_tables
    ready = db_ok and schema_ok

    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": utc_now().isoformat(),
        "database": {
            "ok": db_ok,
            "schema_ok": schema_ok,
            "missing_tables": missing_tables,
            "error": db_error,
        },
        "smtp": {
            "configured": settings.smtp_configured,
            "host": settings.smtp_host,
            "port": settings.smtp_port,
            "from_email": settings.smtp_from_email,
        },
        "scheduling": {
            "slot_minutes": settings.schedule_slot_minutes,
            "max_search_slots": settings.schedule_max_search_slots,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
