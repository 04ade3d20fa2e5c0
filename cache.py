"""In-memory read-through cache shared by the entity services.

Three namespaces are kept apart so that writes can invalidate precisely:

* data        -- entity lists, single entities and counts
* validation  -- boolean existence / membership checks
* calculation -- computed aggregates such as totals

Keys are structured (:class:`CacheKey`) rather than dotted strings. Clearing a
:class:`CacheFamily` drops every key of that family whatever its scope, which
gives the prefix-invalidation behaviour without prefix collisions.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Optional

from config import get_settings

logger = logging.getLogger(__name__)


class CacheNamespace(str, Enum):
    data = "data"
    validation = "validation"
    calculation = "calculation"


@dataclass(frozen=True)
class CacheFamily:
    owner: str
    name: str

    def key(self, *scope: Hashable) -> "CacheKey":
        return CacheKey(self, tuple(scope))

    def __str__(self) -> str:
        return f"{self.owner}.{self.name}"


@dataclass(frozen=True)
class CacheKey:
    family: CacheFamily
    scope: tuple = ()

    def __str__(self) -> str:
        parts = [str(self.family)]
        parts.extend("nil" if part is None else str(part) for part in self.scope)
        return ".".join(parts)


@dataclass
class CacheStats:
    data_count: int
    validation_count: int
    calculation_count: int


@dataclass
class _Slot:
    value: Any
    stored_at: float


@dataclass
class _Bucket:
    ttl: Optional[float]
    slots: dict[CacheKey, _Slot] = field(default_factory=dict)


class Cache:
    def __init__(
        self,
        data_ttl: Optional[float] = None,
        validation_ttl: Optional[float] = None,
        calculation_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._epoch = 0
        self._generations: dict[tuple[CacheNamespace, CacheFamily], int] = {}
        self._buckets = {
            CacheNamespace.data: _Bucket(data_ttl),
            CacheNamespace.validation: _Bucket(validation_ttl),
            CacheNamespace.calculation: _Bucket(calculation_ttl),
        }

    @classmethod
    def from_settings(cls) -> "Cache":
        settings = get_settings()
        return cls(
            data_ttl=settings.data_cache_ttl,
            validation_ttl=settings.validation_cache_ttl,
            calculation_ttl=settings.calculation_cache_ttl,
        )

    def _expired(self, bucket: _Bucket, slot: _Slot, now: float) -> bool:
        return bucket.ttl is not None and now - slot.stored_at >= bucket.ttl

    def get(self, namespace: CacheNamespace, key: CacheKey) -> Optional[Any]:
        with self._lock:
            bucket = self._buckets[namespace]
            slot = bucket.slots.get(key)
            if slot is None:
                return None
            if self._expired(bucket, slot, self._clock()):
                del bucket.slots[key]
                return None
            return slot.value

    def put(
        self,
        namespace: CacheNamespace,
        key: CacheKey,
        value: Any,
        generation: Optional[tuple[int, int]] = None,
    ) -> bool:
        """Store ``value`` unless ``key.family`` was cleared since ``generation``."""
        if value is None:
            raise ValueError("None cannot be cached; it marks a miss")
        with self._lock:
            if generation is not None and generation != self.generation(
                namespace, key.family
            ):
                return False
            self._buckets[namespace].slots[key] = _Slot(value, self._clock())
            return True

    def generation(
        self, namespace: CacheNamespace, family: CacheFamily
    ) -> tuple[int, int]:
        with self._lock:
            return self._epoch, self._generations.get((namespace, family), 0)

    def clear(self, namespace: CacheNamespace, family: CacheFamily) -> int:
        with self._lock:
            generation_key = (namespace, family)
            self._generations[generation_key] = (
                self._generations.get(generation_key, 0) + 1
            )
            slots = self._buckets[namespace].slots
            stale = [key for key in slots if key.family == family]
            for key in stale:
                del slots[key]
        if stale:
            logger.debug(
                f"cache_clear: namespace={namespace.value} family={family} "
                f"keys={len(stale)}"
            )
        return len(stale)

    def get_cached_data(self, key: CacheKey) -> Optional[Any]:
        return self.get(CacheNamespace.data, key)

    def cache_data(self, value: Any, key: CacheKey) -> None:
        self.put(CacheNamespace.data, key, value)

    def clear_data_cache(self, family: CacheFamily) -> int:
        return self.clear(CacheNamespace.data, family)

    def get_cached_validation(self, key: CacheKey) -> Optional[bool]:
        return self.get(CacheNamespace.validation, key)

    def cache_validation(self, value: bool, key: CacheKey) -> None:
        self.put(CacheNamespace.validation, key, bool(value))

    def clear_validation_cache(self, family: CacheFamily) -> int:
        return self.clear(CacheNamespace.validation, family)

    def get_cached_calculation(self, key: CacheKey) -> Optional[Any]:
        return self.get(CacheNamespace.calculation, key)

    def cache_calculation(self, value: Any, key: CacheKey) -> None:
        self.put(CacheNamespace.calculation, key, value)

    def clear_calculation_cache(self, family: CacheFamily) -> int:
        return self.clear(CacheNamespace.calculation, family)

    def clear_all_caches(self) -> None:
        with self._lock:
            self._epoch += 1
            for bucket in self._buckets.values():
                bucket.slots.clear()

    def clean_expired_cache(self) -> int:
        removed = 0
        with self._lock:
            now = self._clock()
            for bucket in self._buckets.values():
                expired = [
                    key
                    for key, slot in bucket.slots.items()
                    if self._expired(bucket, slot, now)
                ]
                for key in expired:
                    del bucket.slots[key]
                removed += len(expired)
        return removed

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                data_count=len(self._buckets[CacheNamespace.data].slots),
                validation_count=len(self._buckets[CacheNamespace.validation].slots),
                calculation_count=len(self._buckets[CacheNamespace.calculation].slots),
            )
