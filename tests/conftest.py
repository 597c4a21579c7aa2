import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from event_bot.db import create_tables, make_session_factory
from event_bot.services.locks import number_locks


@pytest.fixture(autouse=True)
def fresh_locks():
    number_locks.reset()
    yield
    number_locks.reset()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
