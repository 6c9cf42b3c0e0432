# routers/health.py

from fastapi import APIRouter

from core.config import settings
from core.supabase_client import ping_supabase

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


# -----------------------------------------------------
# GET /health/db
# Checks the storage backend (Supabase tables or memory)
# No auth required
# -----------------------------------------------------
@router.get("/db", summary="Storage / DB health check")
async def health_db():
    """
    Verifies storage connectivity.
    - memory backend: always ok
    - supabase backend: queries the accounts and authorized_members tables
    """
    if settings.STORAGE_BACKEND == "memory":
        return {"service": "memory", "status": "ok", "details": {}}

    try:
        status = ping_supabase()
        return {
            "service": "Supabase",
            "status": status.get("status", "unknown"),
            "details": status,
        }

    except Exception as e:
        return {
            "service": "Supabase",
            "status": "error",
            "error": str(e),
        }


# -----------------------------------------------------
# GET /health/app
# -----------------------------------------------------
@router.get("/app", summary="App health check")
async def health_app():
    return {
        "service": settings.PROJECT_NAME,
        "status": "ok",
        "env": settings.ENV,
    }
