"""Bounded LRU memoization for the pure statistics functions.

Every wrapped function is pure, so a cached value can never go stale: the
only invalidation is capacity pressure or an explicit ``clear()``.  Caches are
plain objects owned by whoever builds them (normally a ``StatsEngine``); there
is no module-level cache state.
"""

from __future__ import annotations

import enum
import functools
import json
import logging
from collections import OrderedDict
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from splitstats.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class LRUCache(Generic[T]):
    """Fixed-capacity mapping that evicts the least-recently-used entry.

    Parameters
    ----------
    maxsize : int
        Maximum number of entries held at any time.
    """

    def __init__(self, maxsize: int = 100) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self._data: OrderedDict[str, T] = OrderedDict()

    def get(self, key: str, default: Any = None) -> T | Any:
        """Return the cached value and mark it most recently used."""
        if key not in self._data:
            return default
        self._data.move_to_end(key)
        return self._data[key]

    def set(self, key: str, value: T) -> None:
        """Store ``value``; at capacity the least-recently-used entry is evicted."""
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self.maxsize:
            evicted, _ = self._data.popitem(last=False)
            logger.debug("LRU evicted %s", evicted)
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        """Keys ordered from least to most recently used."""
        return list(self._data.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"LRUCache(size={len(self._data)}, maxsize={self.maxsize})"


# ======================================================================
# Key construction
# ======================================================================


def _normalize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def make_key(args: tuple[Any, ...], kwargs: Mapping[str, Any] | None = None) -> str:
    """Stable string key for an argument list.

    Pydantic models, enums and mappings are normalized first so that equal
    inputs always serialize identically regardless of dict ordering.
    """
    payload: list[Any] = [_normalize(a) for a in args]
    if kwargs:
        payload.append({k: _normalize(v) for k, v in sorted(kwargs.items())})
    return json.dumps(payload, sort_keys=True, default=repr)


# ======================================================================
# Memoization
# ======================================================================


def memoize(
    fn: Callable[..., T],
    maxsize: int = 100,
    cache: LRUCache[T] | None = None,
) -> Callable[..., T]:
    """Return a memoized version of a pure function.

    Identical arguments return the stored result without re-invoking ``fn``
    until the entry is evicted.  The wrapper exposes ``.cache`` and
    ``.cache_clear()``.
    """
    store: LRUCache[T] = cache if cache is not None else LRUCache(maxsize)

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        key = make_key(args, kwargs)
        hit = store.get(key, _MISSING)
        if hit is not _MISSING:
            return hit
        result = fn(*args, **kwargs)
        store.set(key, result)
        return result

    wrapper.cache = store  # type: ignore[attr-defined]
    wrapper.cache_clear = store.clear  # type: ignore[attr-defined]
    return wrapper


class StatsCache:
    """Per-family memo caches owned by a single engine instance."""

    def __init__(self, config: Settings | None = None) -> None:
        cfg = config or default_settings
        self.normal_cdf: LRUCache[float] = LRUCache(cfg.NORMAL_CDF_CACHE_SIZE)
        self.critical_z: LRUCache[float] = LRUCache(cfg.CRITICAL_Z_CACHE_SIZE)
        self.p_value: LRUCache[float] = LRUCache(cfg.P_VALUE_CACHE_SIZE)
        self.comparisons: LRUCache[Any] = LRUCache(cfg.COMPARISON_CACHE_SIZE)
        self.curve_points: LRUCache[Any] = LRUCache(cfg.CURVE_POINTS_CACHE_SIZE)

    def all(self) -> dict[str, LRUCache[Any]]:
        return {
            "normal_cdf": self.normal_cdf,
            "critical_z": self.critical_z,
            "p_value": self.p_value,
            "comparisons": self.comparisons,
            "curve_points": self.curve_points,
        }

    def clear(self) -> None:
        for cache in self.all().values():
            cache.clear()
