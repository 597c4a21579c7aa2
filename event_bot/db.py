import asyncio
import logging
import pathlib

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from event_bot.config import settings

logger = logging.getLogger(__name__)


def _sync_url(url: str) -> str:
    """Alembic работает синхронно: меняем async-драйвер на обычный."""
    parsed = make_url(url)
    driver = parsed.drivername.split("+", 1)[0]
    return parsed.set(drivername=driver).render_as_string(hide_password=False)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


ROOT_PATH = pathlib.Path(__file__).resolve().parent.parent

# Create an async engine
engine = create_async_engine(settings.database_url)

# Create a session factory
SessionLocal = make_session_factory(engine)


async def create_tables(bind: AsyncEngine) -> None:
    # Ensure all models are imported so SQLModel metadata includes them
    import event_bot.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def make_alembic_config(database_url: str):
    from alembic.config import Config as AlembicConfig

    cfg = AlembicConfig(str(ROOT_PATH / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT_PATH / "alembic"))
    cfg.set_main_option("sqlalchemy.url", _sync_url(database_url))
    return cfg


async def init_db() -> None:
    """Run Alembic migrations when alembic.ini is present, then make sure all tables exist."""
    if (ROOT_PATH / "alembic.ini").exists():
        from alembic import command

        cfg = make_alembic_config(settings.database_url)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, command.upgrade, cfg, "head")
        except Exception:
            logger.exception("alembic_migration_error, falling back to create_all")

    await create_tables(engine)
