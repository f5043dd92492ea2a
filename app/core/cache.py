from __future__ import annotations

import threading
from time import time
from typing import Any, Dict, Optional, Tuple


class TTLCache:
    """Small in-memory TTL cache.

    - Capacity-bounded; evicts entries closest to expiry first when over capacity.
    - Thread-safe using a simple lock.
    - Purges lazily on writes; there is no background thread.
    """

    def __init__(self, max_items: int = 256, default_ttl_seconds: float = 30.0) -> None:
        self._data: Dict[Any, Tuple[float, Any]] = {}
        self._max = max_items
        self._ttl = default_ttl_seconds
        self._lock = threading.Lock()

    def _purge(self) -> None:
        now = time()
        with self._lock:
            expired = [k for k, (exp, _) in self._data.items() if exp < now]
            for k in expired:
                self._data.pop(k, None)
            if len(self._data) > self._max:
                over = len(self._data) - self._max
                for k, _ in sorted(self._data.items(), key=lambda kv: kv[1][0])[:over]:
                    self._data.pop(k, None)

    def get(self, key: Any) -> Optional[Any]:
        with self._lock:
            item = self._data.get(key)
            if not item:
                return None
            exp, val = item
            if exp < time():
                self._data.pop(key, None)
                return None
            return val

    def set(self, key: Any, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._data[key] = (time() + float(ttl), value)
        self._purge()

    def clear(self, key: Any) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear_all(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class AnalysisCache:
    """Read-through cache of analysis snapshots keyed by analysis id.

    Every mutating workflow operation calls :meth:`invalidate` once its
    transaction commits, so a cached snapshot is never newer than the store
    and never older than the last successful write from this process.
    """

    def __init__(self, ttl_seconds: float = 30.0, max_items: int = 512) -> None:
        self._cache = TTLCache(max_items=max_items, default_ttl_seconds=ttl_seconds)

    @staticmethod
    def _key(analysis_id: str) -> Tuple[str, str]:
        return ("analysis", analysis_id)

    def get(self, analysis_id: str) -> Optional[Any]:
        return self._cache.get(self._key(analysis_id))

    def put(self, analysis: Any) -> None:
        self._cache.set(self._key(analysis.id), analysis)

    def invalidate(self, analysis_id: str) -> None:
        self._cache.clear(self._key(analysis_id))

    def clear(self) -> None:
        self._cache.clear_all()
