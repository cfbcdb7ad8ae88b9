import pytest

from zrtpcache_core.storage import SQLiteCache, InMemoryCache


@pytest.fixture(params=["sqlite", "memory"])
def cache(request, tmp_path):
    """Every shared-semantics test runs against both backends."""
    if request.param == "sqlite":
        store = SQLiteCache(str(tmp_path / "zrtp_cache.db"))
    else:
        store = InMemoryCache()
    yield store
    store.close()


@pytest.fixture
def sqlite_cache(tmp_path):
    store = SQLiteCache(str(tmp_path / "zrtp_cache.db"))
    yield store
    store.close()


@pytest.fixture
def clock(monkeypatch):
    """Pin the providers' notion of "now"; set clock.now to move time."""
    class Clock:
        now = 1_700_000_000

    c = Clock()
    for mod in (
        "zrtpcache_core.storage.providers.sqlite_provider",
        "zrtpcache_core.storage.providers.memory_provider",
        "zrtpcache_core.storage.models",
    ):
        monkeypatch.setattr(f"{mod}.now_ts", lambda: c.now)
    return c
