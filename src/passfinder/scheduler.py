"""
Incremental multi-day, multi-object pass search.

The batch scheduler splits a long search (many objects, many days) into
small units of work. Each call to ``advance`` scans one batch of days and
returns, so callers can render partial results, stay responsive and cancel
between batches. Completed result sets are cached for a short time.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, MutableMapping, Optional, Tuple
import itertools
import json
import logging
import time

from .config import PredictionConfig
from .observer import ObserverLocation
from .orbit import TrackedObject, dedupe_objects
from .visibility import Pass, best_passes, predict_passes

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class PassCache:
    """
    Short-lived cache of completed search results.

    Entries are JSON strings in a plain key/value store so the store can
    be swapped for anything dict-like. A missing, expired or unreadable
    entry is a miss.
    """

    def __init__(
        self,
        ttl_seconds: float = 15 * 60,
        store: Optional[MutableMapping[str, str]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.store: MutableMapping[str, str] = store if store is not None else {}
        self.clock = clock

    @staticmethod
    def make_key(source: str, latitude: float, longitude: float) -> str:
        return f"best_passes_cache_{source}_{latitude}_{longitude}"

    def get(self, key: str) -> Optional[List[Pass]]:
        """Cached passes for ``key``, or None on a miss."""
        raw = self.store.get(key)
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            age = self.clock() - float(entry["timestamp"])
            if age >= self.ttl_seconds:
                logger.debug(f"Cache entry {key} expired ({age:.0f}s old)")
                del self.store[key]
                return None
            return [Pass.from_dict(item) for item in entry["passes"]]
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"Discarding unreadable cache entry {key}: {e}")
            del self.store[key]
            return None

    def set(self, key: str, passes: Iterable[Pass]) -> None:
        entry = {
            "timestamp": self.clock(),
            "passes": [p.to_dict() for p in passes],
        }
        self.store[key] = json.dumps(entry)
        logger.debug(f"Cached {len(entry['passes'])} passes under {key}")

    def clear(self) -> None:
        self.store.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


@dataclass
class SearchSession:
    """State of one incremental search, owned by the caller."""

    objects: List[TrackedObject]
    location: ObserverLocation
    source: str
    batch_days: int
    max_days: int
    start_date: datetime
    cache_key: str
    session_id: int = field(default_factory=lambda: next(_session_ids))
    cursor: int = 0  # days scanned so far
    cancelled: bool = False
    completed: bool = False
    first_result_found: bool = False
    from_cache: bool = False
    previous_loaded: bool = False
    passes: List[Pass] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return not (self.cancelled or self.completed)

    @property
    def progress(self) -> float:
        """Fraction of the horizon already scanned."""
        return min(1.0, self.cursor / self.max_days)


BatchCallback = Callable[[List[Pass], SearchSession], None]
CompleteCallback = Callable[[SearchSession], None]


def _merge(existing: List[Pass], new: Iterable[Pass]) -> List[Pass]:
    """Merge pass lists, dropping duplicates, sorted by start time."""
    merged: Dict[Tuple[str, datetime], Pass] = {}
    for p in itertools.chain(existing, new):
        merged.setdefault((p.identity or p.satellite_name, p.start), p)
    return sorted(merged.values(), key=Pass.sort_key)


class BatchScheduler:
    """
    Drives incremental pass searches.

    Only one session is current at a time. Starting a new session cancels
    the previous one, and a session that is no longer current can never
    write results or cache entries.
    """

    def __init__(
        self,
        config: Optional[PredictionConfig] = None,
        cache: Optional[PassCache] = None,
        on_batch: Optional[BatchCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> None:
        self.config = config or PredictionConfig()
        self.cache = cache if cache is not None else PassCache(self.config.cache_ttl_seconds)
        self.on_batch = on_batch
        self.on_complete = on_complete
        self.current: Optional[SearchSession] = None

    def start_session(
        self,
        objects: Iterable[TrackedObject],
        location: Optional[ObserverLocation],
        source: str = "favorites",
        start_date: Optional[datetime] = None,
    ) -> Optional[SearchSession]:
        """
        Begin a new search, cancelling any session in progress.

        Args:
            objects: Objects to search; duplicates by identity are dropped
            location: Observer location
            source: Catalog label ("all", "favorites", ...) used for batch
                sizing and the cache key
            start_date: Search start, naive UTC (defaults to now)

        Returns:
            The new session, already completed when served from the cache,
            or None when there is no observer location or nothing to search
        """
        self.invalidate()

        if location is None:
            logger.warning("No observer location set, nothing to search")
            return None

        unique = dedupe_objects(objects)
        if not unique:
            logger.warning("No objects to search")
            return None

        cache_key = PassCache.make_key(source, location.latitude, location.longitude)
        session = SearchSession(
            objects=unique,
            location=location,
            source=source,
            batch_days=self.config.batch_days_for(source),
            max_days=self.config.max_days,
            start_date=start_date or datetime.utcnow(),
            cache_key=cache_key,
        )
        self.current = session

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Loaded {len(cached)} passes for '{source}' from cache")
            session.passes = sorted(cached, key=Pass.sort_key)
            session.cursor = session.max_days
            session.first_result_found = bool(cached)
            session.from_cache = True
            session.completed = True
            if self.on_complete:
                self.on_complete(session)
            return session

        logger.info(
            f"Starting pass search #{session.session_id}: {len(unique)} objects, "
            f"{session.batch_days}-day batches up to {session.max_days} days"
        )
        return session

    def is_current(self, session: SearchSession) -> bool:
        return self.current is session

    def advance(self, session: SearchSession) -> List[Pass]:
        """
        Scan the next batch of days.

        Returns:
            Passes found in this batch (empty when the session is cancelled,
            finished or superseded)
        """
        if not session.is_active or not self.is_current(session):
            return []

        days = min(session.batch_days, session.max_days - session.cursor)
        batch: List[Pass] = []
        for i in range(days):
            day_start = session.start_date + timedelta(days=session.cursor + i)
            for obj in session.objects:
                if session.cancelled:
                    logger.debug(f"Search #{session.session_id} cancelled mid-batch")
                    return []
                batch.extend(
                    predict_passes(
                        obj,
                        session.location,
                        days=1,
                        direction="future",
                        start_date=day_start,
                        config=self.config,
                    )
                )

        if session.cancelled or not self.is_current(session):
            return []

        batch.sort(key=Pass.sort_key)
        session.cursor += days
        if batch:
            session.first_result_found = True
            session.passes = _merge(session.passes, batch)

        logger.debug(
            f"Search #{session.session_id}: {len(batch)} passes in days "
            f"{session.cursor - days}-{session.cursor}"
        )

        if self.on_batch:
            self.on_batch(batch, session)

        if session.cursor >= session.max_days:
            self._complete(session)

        return batch

    def run(self, session: SearchSession) -> Iterator[List[Pass]]:
        """Advance until done, yielding each batch so the caller can interleave other work."""
        while session.is_active and self.is_current(session):
            yield self.advance(session)

    def cancel(self, session: SearchSession) -> None:
        if session.is_active:
            logger.info(f"Search #{session.session_id} cancelled after {session.cursor} days")
        session.cancelled = True

    def invalidate(self) -> None:
        """Cancel the current session; used when the observer or object set changes."""
        if self.current is not None:
            self.cancel(self.current)
        self.current = None

    def load_previous_passes(
        self, session: SearchSession, days: Optional[int] = None
    ) -> List[Pass]:
        """
        Add high passes from the recent past to the session.

        Args:
            session: Session to extend
            days: Days to look back (defaults to 1 for the full catalog and
                the configured past days otherwise)

        Returns:
            The historical passes that were merged in
        """
        if session.previous_loaded or not self.is_current(session):
            return []

        if days is None:
            days = 1 if session.source == "all" else self.config.past_days

        previous: List[Pass] = []
        for obj in session.objects:
            previous.extend(
                predict_passes(
                    obj,
                    session.location,
                    days=days,
                    direction="past",
                    start_date=session.start_date,
                    config=self.config,
                )
            )

        previous = best_passes(previous, self.config.best_pass_min_elevation_deg)
        session.passes = _merge(session.passes, previous)
        session.previous_loaded = True
        logger.info(f"Loaded {len(previous)} previous passes over {days} days")
        return sorted(previous, key=Pass.sort_key)

    def _complete(self, session: SearchSession) -> None:
        session.completed = True
        if session.cancelled or not self.is_current(session):
            return

        self.cache.set(session.cache_key, session.passes)
        logger.info(f"Search #{session.session_id} complete: {len(session.passes)} passes")
        if self.on_complete:
            self.on_complete(session)
