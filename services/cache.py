# services/cache.py
"""
In-process caching primitives for the trip engine.

SingleFlight  - concurrent calls with the same key share one execution.
TTLValue      - one lazily fetched value with a freshness window (fuel price).
KeyedCache    - session map key -> value, optionally LRU-capped (fuel efficiency).
"""
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class SingleFlight:
    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, Future] = {}

    def do(self, key: Hashable, fn: Callable[[], Any]) -> Any:
        """
        Runs fn() once per key at a time. Callers that arrive while it runs wait for
        the same result (or the same exception). The leader runs fn inline, so
        waiters never depend on a worker queue.
        """
        with self._lock:
            fut = self._calls.get(key)
            leader = fut is None
            if leader:
                fut = Future()
                self._calls[key] = fut
        if not leader:
            return fut.result()

        try:
            result = fn()
        except BaseException as e:
            self._forget(key)
            fut.set_exception(e)
            raise
        self._forget(key)
        fut.set_result(result)
        return result

    def _forget(self, key: Hashable) -> None:
        with self._lock:
            self._calls.pop(key, None)


class TTLValue:
    """(value, fetched_at) holder. Only successful fetches are stored."""

    def __init__(self, fetch: Callable[[], Any], ttl_seconds: float,
                 clock: Callable[[], float] = time.monotonic, name: str = "value"):
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.name = name
        self._lock = threading.Lock()
        self._flight = SingleFlight()
        self._value: Any = None
        self._fetched_at: Optional[float] = None

    def _fresh(self) -> bool:
        return self._fetched_at is not None and self._clock() - self._fetched_at < self.ttl_seconds

    def get(self) -> Any:
        with self._lock:
            if self._fresh():
                logger.debug("%s: cache hit", self.name)
                return self._value
        return self._flight.do("refresh", self._refresh)

    def _refresh(self) -> Any:
        with self._lock:
            # מישהו אחר כבר רענן בזמן שחיכינו
            if self._fresh():
                return self._value
        logger.debug("%s: refreshing", self.name)
        value = self._fetch()
        with self._lock:
            self._value = value
            self._fetched_at = self._clock()
        return value


class KeyedCache:
    """
    key -> value map for the lifetime of a session. max_size <= 0 means unbounded;
    otherwise the least recently used entry is evicted.
    Misses for the same key are collapsed through SingleFlight.
    """

    def __init__(self, max_size: int = 0, name: str = "cache"):
        self.max_size = max_size
        self.name = name
        self._lock = threading.Lock()
        self._store: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._flight = SingleFlight()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            if key not in self._store:
                return None
            self._store.move_to_end(key)
            return self._store[key]

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store[key] = value
            self._store.move_to_end(key)
            if self.max_size > 0:
                while len(self._store) > self.max_size:
                    self._store.popitem(last=False)

    def get_or_fetch(self, key: Hashable, fetch: Callable[[], Any]) -> Any:
        hit = self.get(key)
        if hit is not None:
            logger.debug("%s: hit %s", self.name, key)
            return hit

        def _load():
            cached = self.get(key)
            if cached is not None:
                return cached
            value = fetch()
            self.set(key, value)
            return value

        return self._flight.do(key, _load)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
