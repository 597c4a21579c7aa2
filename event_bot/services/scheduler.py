import logging
import shutil
from datetime import datetime
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from event_bot.config import settings

logger = logging.getLogger(__name__)


def daily_backup(db_path: Path | None = None) -> Path | None:
    """Copy the SQLite file into ``backups/`` next to it. No-op for server databases."""
    if settings.DATABASE_URL and db_path is None:
        return None
    db_path = db_path or settings.DB_PATH
    if not db_path.exists():
        logger.warning("backup_skipped missing=%s", db_path)
        return None
    backup_dir = db_path.parent / "backups"
    backup_dir.mkdir(exist_ok=True)
    backup_path = backup_dir / f"{db_path.name}_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}"
    shutil.copy(db_path, backup_path)
    logger.info("backup_created path=%s", backup_path)
    return backup_path


def schedule_jobs() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(daily_backup, "cron", hour=3, minute=0)
    scheduler.start()
    return scheduler
