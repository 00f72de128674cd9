import asyncio
from collections.abc import Generator

import pytest
from sqlalchemy.ext import asyncio as sa_asyncio

from app.core import metrics


# Settlement tests build throwaway engines inline (in-memory or a temp file for
# the race tests); collect them here so aiosqlite worker threads never outlive a test.
_open_engines: list[sa_asyncio.AsyncEngine] = []
_create_async_engine = sa_asyncio.create_async_engine


def _recording_create_async_engine(*args, **kwargs):  # type: ignore[no-untyped-def]
    engine = _create_async_engine(*args, **kwargs)
    _open_engines.append(engine)
    return engine


sa_asyncio.create_async_engine = _recording_create_async_engine  # type: ignore[assignment]


async def _dispose(engines: list[sa_asyncio.AsyncEngine]) -> None:
    for engine in engines:
        try:
            await engine.dispose()
        except Exception:
            # Pools opened under TestClient's loop may already be gone.
            continue


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _close_engines() -> Generator[None, None, None]:
    mark = len(_open_engines)
    yield
    created = _open_engines[mark:]
    del _open_engines[mark:]
    if created:
        asyncio.run(_dispose(created))


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    # Counters are process-global and would leak between tests.
    metrics.reset()
    yield
    metrics.reset()
