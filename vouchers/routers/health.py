from datetime import datetime, timezone

from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter(tags=["health"])


@router.get("/health", operation_id="health_v1")
def health(request: Request):
    cfg = request.app.state.settings
    db_ok = True
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        db_ok = False
    return {
        "status": "ok" if db_ok else "degraded",
        "app": cfg.app_name,
        "version": cfg.app_version,
        "db": db_ok,
        "time": datetime.now(timezone.utc).isoformat(),
    }
