"""Process-wide cache of validated pipelines, keyed by function name."""

import asyncio
from collections.abc import Awaitable, Callable

from cachetools import TTLCache

from funcbase.settings import settings
from funcbase.utils.logger import logger

from .resolver import ValidatedPipeline

type PipelineLoader = Callable[[], Awaitable[ValidatedPipeline]]


class DefinitionCache:
    """Read-mostly cache of ``ValidatedPipeline`` values.

    Readers never lock: entries are immutable and a write replaces the whole
    entry, so a reader sees either the old or the new pipeline. Writers and
    cache-miss loaders are serialized by one lock, which keeps a slow loader
    from putting back a definition that a concurrent update already replaced.
    """

    def __init__(self, maxsize: int | None = None, ttl_seconds: int | None = None):
        self._entries: TTLCache[str, ValidatedPipeline] = TTLCache(
            maxsize=maxsize or settings.definition_cache_size,
            ttl=ttl_seconds or settings.definition_cache_ttl_seconds,
        )
        self._write_lock = asyncio.Lock()

    def get(self, name: str) -> ValidatedPipeline | None:
        return self._entries.get(name)

    async def get_or_load(self, name: str, loader: PipelineLoader) -> ValidatedPipeline:
        """Return the cached pipeline, loading and storing it on a miss.

        Args:
            name: Function name.
            loader: Coroutine factory producing the validated pipeline.
        """
        pipeline = self._entries.get(name)
        if pipeline is not None:
            return pipeline

        async with self._write_lock:
            pipeline = self._entries.get(name)
            if pipeline is None:
                pipeline = await loader()
                self._entries[name] = pipeline
                logger.debug(f"Cached function '{name}'")
            return pipeline

    async def swap(
        self,
        name: str,
        pipeline: ValidatedPipeline | None,
        persist: Callable[[], Awaitable[object]],
    ) -> None:
        """Persist a write and replace the cached entry under the write lock.

        Args:
            name: Function name.
            pipeline: New pipeline, or None to evict the entry.
            persist: Coroutine factory performing the database write. If it
                raises, the cached entry is left as it was.
        """
        async with self._write_lock:
            await persist()
            if pipeline is None:
                self._entries.pop(name, None)
                logger.debug(f"Evicted function '{name}' from cache")
            else:
                self._entries[name] = pipeline
                logger.debug(f"Swapped cached function '{name}'")

    def clear(self) -> None:
        """Drop every entry. Also rebinds the lock, which belongs to one event loop."""
        self._entries.clear()
        self._write_lock = asyncio.Lock()

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide instance
definition_cache = DefinitionCache()
