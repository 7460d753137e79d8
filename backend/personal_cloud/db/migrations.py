import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from personal_cloud.core.config import get_settings
from personal_cloud.db.session import engine

logger = logging.getLogger("pc.migrations")

BACKEND_DIR = Path(__file__).resolve().parents[2]

_worker: Optional[threading.Thread] = None


def _alembic_config() -> Config:
    """Alembic config for backend/alembic, bound to the configured DATABASE_URL."""
    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", get_settings().database_url)
    return cfg


def stamp_head_if_missing() -> bool:
    """Mark an unversioned database as current. Returns False if it already had a version."""
    if inspect(engine).has_table("alembic_version"):
        return False
    logger.warning("Catalog database has no alembic_version; stamping head without touching tables.")
    command.stamp(_alembic_config(), "head")
    return True


def upgrade_head() -> None:
    logger.info("Upgrading catalog schema to Alembic head.")
    command.upgrade(_alembic_config(), "head")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _run_detached(step: str, fn: Callable[[], object]) -> None:
    global _worker
    if _worker is not None and _worker.is_alive():
        logger.warning("Schema step %s skipped: a previous step is still running.", step)
        return

    def _target() -> None:
        try:
            fn()
        except Exception:
            logger.exception("Schema step %s failed.", step)
        else:
            logger.warning("Schema step %s finished.", step)

    _worker = threading.Thread(target=_target, name=f"pc-{step}", daemon=True)
    _worker.start()


def run_migrations_on_startup() -> None:
    """
    Production-only schema step, chosen by env flags:

    - ALEMBIC_UPGRADE_ON_STARTUP=true  upgrade to head (wins over stamping)
    - ALEMBIC_STAMP_IF_MISSING=true    stamp an unversioned database
    - ALEMBIC_ASYNC_ON_STARTUP=false   run inline instead of on a daemon thread
    """
    if get_settings().environment != "production":
        return

    if _env_flag("ALEMBIC_UPGRADE_ON_STARTUP"):
        step, fn = "alembic-upgrade", upgrade_head
    elif _env_flag("ALEMBIC_STAMP_IF_MISSING"):
        step, fn = "alembic-stamp", stamp_head_if_missing
    else:
        return

    if _env_flag("ALEMBIC_ASYNC_ON_STARTUP", default=True):
        logger.warning("Running schema step %s in the background.", step)
        _run_detached(step, fn)
        return

    try:
        fn()
    except Exception:
        logger.exception("Schema step %s failed during startup.", step)
        raise
