"""
Feedback cache backed by the database.

Entries expire lazily: a lookup past ``expires_at`` is a miss even though the
row still exists, and only ``cleanup_expired`` deletes rows. Hit and miss
totals are kept per UTC day in ``cache_stats`` so every worker process sees
the same numbers.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError

from hugos.cache.models import CacheStats, FeedbackCacheEntry
from hugos.utils.clock import utcnow

logger = logging.getLogger(__name__)

HIT = 'hit'
MISS = 'miss'


@dataclass(frozen=True)
class CacheLookupResult:
    status: str
    entry: Optional[FeedbackCacheEntry] = None

    @classmethod
    def hit(cls, entry: FeedbackCacheEntry) -> 'CacheLookupResult':
        return cls(status=HIT, entry=entry)

    @classmethod
    def miss(cls) -> 'CacheLookupResult':
        return cls(status=MISS)

    @property
    def is_hit(self) -> bool:
        return self.status == HIT

    @property
    def value(self) -> Optional[Any]:
        return self.entry.value if self.entry is not None else None


class FeedbackCacheStore:
    """Maps a transcript hash to a previously generated feedback artifact"""

    def __init__(self, session, clock: Callable = utcnow):
        self._session = session
        self._clock = clock

    def get(self, key: str) -> CacheLookupResult:
        """Look up a live entry; a hit increments its counters exactly once"""
        now = self._clock()
        if self.record_hit(key, now=now):
            entry = self._session.get(FeedbackCacheEntry, key, populate_existing=True)
            self._bump('hits', now)
            logger.debug("Feedback cache hit for %s", key)
            return CacheLookupResult.hit(entry)

        self._bump('misses', now)
        logger.debug("Feedback cache miss for %s", key)
        return CacheLookupResult.miss()

    def put(self, key: str, value: Dict[str, Any], ttl: int) -> FeedbackCacheEntry:
        """Create or overwrite an entry; concurrent writers race and the last one wins"""
        now = self._clock()
        fresh = FeedbackCacheEntry(
            key=key,
            value=value,
            expires_at=now + timedelta(seconds=ttl),
            hits=0,
            last_accessed=now,
            ttl_seconds=ttl,
            created_at=now,
        )
        try:
            entry = self._session.merge(fresh)
            self._session.commit()
        except IntegrityError:
            # Another request inserted the same key between our read and write
            self._session.rollback()
            entry = self._session.merge(fresh)
            self._session.commit()
        logger.debug("Cached feedback under %s for %ss", key, ttl)
        return entry

    def record_hit(self, key: str, now=None) -> bool:
        """Increment hits on a live entry; returns False when absent or expired"""
        now = now or self._clock()
        updated = self._session.query(FeedbackCacheEntry).filter(
            FeedbackCacheEntry.key == key,
            FeedbackCacheEntry.expires_at >= now,
        ).update({
            FeedbackCacheEntry.hits: FeedbackCacheEntry.hits + 1,
            FeedbackCacheEntry.last_accessed: now,
        }, synchronize_session=False)
        self._session.commit()
        return updated > 0

    def cleanup_expired(self) -> int:
        """Delete entries whose expiry has passed"""
        now = self._clock()
        removed = self._session.query(FeedbackCacheEntry).filter(
            FeedbackCacheEntry.expires_at < now
        ).delete(synchronize_session=False)
        self._session.commit()
        if removed:
            logger.info("Cleared %d expired feedback cache entries", removed)
        return removed

    def get_stats(self) -> Dict[str, Any]:
        today = self._clock().date().isoformat()
        stats = self._session.get(CacheStats, today)
        return {
            'hits': stats.hits if stats else 0,
            'misses': stats.misses if stats else 0,
            'date': today,
            'totalEntries': self._session.query(FeedbackCacheEntry).count(),
        }

    def _bump(self, field: str, now) -> None:
        today = now.date().isoformat()
        column = getattr(CacheStats, field)
        values = {column: column + 1, CacheStats.last_updated: now}

        if self._session.query(CacheStats).filter_by(date=today).update(values, synchronize_session=False):
            self._session.commit()
            return

        counts = {'hits': 0, 'misses': 0}
        counts[field] = 1
        self._session.add(CacheStats(date=today, last_updated=now, **counts))
        try:
            self._session.commit()
        except IntegrityError:
            # First request of the day raced with another worker
            self._session.rollback()
            self._session.query(CacheStats).filter_by(date=today).update(values, synchronize_session=False)
            self._session.commit()
