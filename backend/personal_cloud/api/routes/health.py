import os
import tempfile
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from personal_cloud.api.deps import get_blob_store
from personal_cloud.core.config import get_settings
from personal_cloud.db.session import get_db_session
from personal_cloud.storage.blob_store import BlobStore

router = APIRouter(tags=["health"])

SERVICE_NAME = "personal-cloud-backend"


def _release() -> str | None:
    return os.getenv("GIT_SHA") or None


@router.get("/health")
@router.get("/healthz")
def health() -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "release": _release(),
        "time": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/readyz")
def readyz(
    response: Response,
    db: Session = Depends(get_db_session),
    blobs: BlobStore = Depends(get_blob_store),
) -> dict:
    """
    Readiness check: verifies DB connectivity and that the storage root is writable.
    Returns 503 when not ready.
    """
    settings = get_settings()
    checks: dict[str, object] = {}
    ok = True

    try:
        db.execute(text("select 1"))
        checks["db"] = "ok"
    except Exception as e:
        ok = False
        checks["db"] = "error"
        checks["db_error"] = str(e)[:250]

    try:
        with tempfile.NamedTemporaryFile(dir=blobs.root, prefix=".readyz-"):
            pass
        checks["storage"] = "ok"
        checks["storage_free_bytes"] = blobs.free_bytes()
    except OSError as e:
        ok = False
        checks["storage"] = "error"
        checks["storage_error"] = str(e)[:250]

    if not ok:
        response.status_code = 503
    return {
        "status": "ok" if ok else "not_ready",
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "release": _release(),
        "checks": checks,
        "time": datetime.now(timezone.utc).isoformat(),
    }
