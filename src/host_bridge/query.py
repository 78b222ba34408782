"""
Query cache: context-scoped cache with single-flight fetch and optimistic
mutation.

Per key: Idle -> Fetching -> Fresh -> (ttl) Stale -> Fetching -> Fresh | Error.
Keys lead with the current context id, so a context change leaves the old
entries unreachable without explicit eviction.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from host_bridge.errors import AuthError, FetchError
from host_bridge.models.cache import CacheEntry, CacheState
from host_bridge.providers import DataService
from host_bridge.transport.bus import Subscription

if TYPE_CHECKING:
    from host_bridge.context import ContextStore
    from host_bridge.runtime import RuntimeContext

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2  # first try plus exactly one automatic retry

EntryListener = Callable[[CacheEntry], None]


class QueryCache:
    def __init__(
        self,
        ctx: "RuntimeContext",
        contexts: "ContextStore",
        service: DataService,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session = ctx.session
        self._contexts = contexts
        self._service = service
        self._scopes = ctx.config.scopes or None
        self._ttl = ctx.config.cache_ttl_s
        self._gc_time = ctx.config.cache_gc_time_s
        self._retry_delay = ctx.config.fetch_retry_delay_s
        self._clock = clock
        self._entries: dict[tuple, CacheEntry] = {}
        self._subscribers: dict[tuple, list[Subscription]] = {}
        self._background: set[asyncio.Task] = set()
        self._active = True
        self._context_sub = contexts.subscribe(lambda _entity: self.collect_garbage())

    def scoped_key(self, *segments: Any) -> tuple:
        entity = self._contexts.value
        return (entity.id if entity is not None else None, *segments)

    def entry(self, *segments: Any) -> Optional[CacheEntry]:
        return self._entries.get(self.scoped_key(*segments))

    def _entry_for(self, key: tuple, ttl: Optional[float] = None) -> CacheEntry:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key, ttl if ttl is not None else self._ttl, now)
            self._entries[key] = entry
        elif ttl is not None:
            entry.ttl = ttl
        entry.last_used = now
        self._sweep(now, keep=key)
        return entry

    async def read(self, *segments: Any, ttl: Optional[float] = None) -> Any:
        """Cached data for the key, fetching it when idle, stale or errored."""
        entry = self._entry_for(self.scoped_key(*segments), ttl)
        if entry.state is CacheState.FRESH and entry.expired(self._clock()):
            entry.state = CacheState.STALE
        if entry.state is CacheState.FRESH:
            return entry.data
        return await self._fetch(entry)

    async def refetch(self, *segments: Any) -> Any:
        """Fetch regardless of freshness, still attaching to an in-flight fetch."""
        return await self._fetch(self._entry_for(self.scoped_key(*segments)))

    async def _fetch(self, entry: CacheEntry) -> Any:
        if not self._active:
            raise FetchError("Query cache disposed", entry.key, attempts=0)
        if not entry.fetching:
            entry.inflight = asyncio.ensure_future(self._run_fetch(entry))
            entry.inflight.add_done_callback(_retrieve)
        return await asyncio.shield(entry.inflight)

    async def _run_fetch(self, entry: CacheEntry) -> Any:
        self._set_state(entry, CacheState.FETCHING)
        while True:
            generation = entry.generation
            data = await self._fetch_with_retry(entry)
            if entry.generation == generation:
                break
            logger.debug("Fetch %r superseded by a write or invalidation, refetching", entry.key)
        entry.data = data
        entry.fetched_at = self._clock()
        entry.error = None
        self._set_state(entry, CacheState.FRESH)
        return data

    async def _fetch_with_retry(self, entry: CacheEntry) -> Any:
        last: Optional[Exception] = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                token = await self._session.get_token(self._scopes)
                return await self._service.fetch(entry.key, token=token)
            except AuthError as e:
                entry.error = e
                self._set_state(entry, CacheState.ERROR)
                raise
            except Exception as e:
                last = e
                if attempt < MAX_ATTEMPTS:
                    logger.warning("Fetch %r failed, retrying once: %s", entry.key, e)
                    await asyncio.sleep(self._retry_delay)

        error = FetchError(f"Fetch {entry.key!r} failed: {last}", entry.key, attempts=MAX_ATTEMPTS)
        error.__cause__ = last
        logger.error("%s", error)
        entry.error = error
        self._set_state(entry, CacheState.ERROR)
        raise error

    async def mutate(
        self,
        segments: Iterable[Any],
        value: Any,
        *,
        invalidate: Iterable[Iterable[Any]] = (),
    ) -> Any:
        """Optimistically apply ``value``, then write it remotely.

        On success every entry under an ``invalidate`` prefix goes stale. On
        failure the previous entry is restored as a whole and the error raised.
        """
        entry = self._entry_for(self.scoped_key(*segments))
        snapshot = (entry.data, entry.state, entry.fetched_at, entry.error)
        entry.data = value
        entry.generation += 1
        self._notify(entry)
        try:
            token = await self._session.get_token(self._scopes)
            ack = await self._service.mutate(entry.key, value, token=token)
        except Exception as e:
            entry.generation += 1
            entry.data, entry.state, entry.fetched_at, entry.error = snapshot
            self._notify(entry)
            if isinstance(e, AuthError):
                raise
            raise FetchError(f"Mutation {entry.key!r} failed: {e}", entry.key) from e
        entry.generation += 1
        for prefix in invalidate:
            self.invalidate(*prefix)
        return ack

    def invalidate(self, *prefix: Any) -> int:
        """Mark every entry under the context-scoped prefix stale.

        A fetch already in flight for a matching entry is superseded and
        refetches once it lands instead of publishing its result.
        """
        scoped = self.scoped_key(*prefix)
        count = 0
        for key, entry in list(self._entries.items()):
            if key[: len(scoped)] != scoped:
                continue
            count += 1
            entry.generation += 1
            if entry.fetching:
                continue
            if entry.state in (CacheState.FRESH, CacheState.ERROR):
                self._set_state(entry, CacheState.STALE)
            if self._subscribers.get(key):
                self._refetch_in_background(entry)
        return count

    def _refetch_in_background(self, entry: CacheEntry) -> None:
        if not self._active:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._fetch(entry))
        except RuntimeError:
            return
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Background refetch failed: %s", task.exception())

    def subscribe(self, segments: Iterable[Any], listener: EntryListener) -> Subscription:
        key = self.scoped_key(*segments)
        self._entry_for(key)
        sub = Subscription(lambda entry: entry.key == key, listener, on_cancel=lambda s: self._unsubscribe(key, s))
        self._subscribers.setdefault(key, []).append(sub)
        return sub

    def _unsubscribe(self, key: tuple, sub: Subscription) -> None:
        subs = self._subscribers.get(key, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(key, None)
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_used = self._clock()
        self.collect_garbage()

    def collect_garbage(self) -> int:
        """Evict entries nobody subscribes to once they sat unused for gc_time.

        Also runs on every cache access and on every context change.
        """
        return self._sweep(self._clock())

    def _sweep(self, now: float, keep: Optional[tuple] = None) -> int:
        evicted = 0
        for key, entry in list(self._entries.items()):
            if key == keep or self._subscribers.get(key) or entry.fetching:
                continue
            if now - entry.last_used >= self._gc_time:
                del self._entries[key]
                evicted += 1
        return evicted

    def _set_state(self, entry: CacheEntry, state: CacheState) -> None:
        entry.state = state
        self._notify(entry)

    def _notify(self, entry: CacheEntry) -> None:
        for sub in list(self._subscribers.get(entry.key, [])):
            if sub.cancelled:
                continue
            try:
                sub.callback(entry)
            except Exception:
                logger.exception("Cache listener for %r failed", entry.key)

    def __len__(self) -> int:
        return len(self._entries)

    def dispose(self) -> None:
        self._active = False
        self._context_sub.cancel()
        for task in list(self._background):
            task.cancel()
        for entry in self._entries.values():
            if entry.fetching:
                entry.inflight.cancel()
        for subs in list(self._subscribers.values()):
            for sub in list(subs):
                sub.cancel()


def _retrieve(fut: asyncio.Future) -> None:
    # Callers may all have gone away; keep asyncio from warning about it.
    if not fut.cancelled():
        fut.exception()
