"""Tests for the process-wide definition cache."""

import asyncio

import pytest

from funcbase.exceptions import FunctionAlreadyExistsError
from funcbase.services.pipeline import DefinitionCache
from tests.doubles import make_pipeline

OLD = make_pipeline([{"idx": 0, "table": "old", "action": "insert", "values": {"a": 1}}])
NEW = make_pipeline([{"idx": 0, "table": "new", "action": "insert", "values": {"a": 1}}])


async def _noop() -> None:
    return None


class TestDefinitionCache:
    """Tests for DefinitionCache."""

    @pytest.mark.asyncio
    async def test_concurrent_misses_load_once(self):
        cache = DefinitionCache(maxsize=4, ttl_seconds=60)
        loads = 0

        async def loader():
            nonlocal loads
            loads += 1
            await asyncio.sleep(0)
            return OLD

        results = await asyncio.gather(*(cache.get_or_load("fn", loader) for _ in range(5)))

        assert loads == 1
        assert all(result is OLD for result in results)
        assert "fn" in cache

    @pytest.mark.asyncio
    async def test_loader_error_leaves_no_entry(self):
        cache = DefinitionCache(maxsize=4, ttl_seconds=60)

        async def loader():
            raise FunctionAlreadyExistsError("fn")

        with pytest.raises(FunctionAlreadyExistsError):
            await cache.get_or_load("fn", loader)
        assert cache.get("fn") is None

    @pytest.mark.asyncio
    async def test_readers_see_old_entry_until_swap_completes(self):
        cache = DefinitionCache(maxsize=4, ttl_seconds=60)
        await cache.get_or_load("fn", lambda: asyncio.sleep(0, result=OLD))
        seen_during_persist = []

        async def persist():
            seen_during_persist.append(cache.get("fn"))

        await cache.swap("fn", NEW, persist)

        assert seen_during_persist == [OLD]
        assert cache.get("fn") is NEW

    @pytest.mark.asyncio
    async def test_failed_persist_keeps_old_entry(self):
        cache = DefinitionCache(maxsize=4, ttl_seconds=60)
        await cache.swap("fn", OLD, _noop)

        async def persist():
            raise FunctionAlreadyExistsError("fn")

        with pytest.raises(FunctionAlreadyExistsError):
            await cache.swap("fn", NEW, persist)
        assert cache.get("fn") is OLD

    @pytest.mark.asyncio
    async def test_swap_to_none_evicts(self):
        cache = DefinitionCache(maxsize=4, ttl_seconds=60)
        await cache.swap("fn", OLD, _noop)

        await cache.swap("fn", None, _noop)

        assert "fn" not in cache
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = DefinitionCache(maxsize=4, ttl_seconds=60)
        await cache.swap("a", OLD, _noop)
        await cache.swap("b", NEW, _noop)

        cache.clear()

        assert len(cache) == 0
        await cache.swap("a", OLD, _noop)
        assert cache.get("a") is OLD
