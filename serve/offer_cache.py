"""Short-lived serving state: pending offers, rate limits, recent-offer flags."""
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class ExpiringDict:
    """
    Dict whose entries disappear after a per-entry TTL.

    Expired keys are dropped when read, and writes sweep the whole dict at
    most once per purge_interval seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, purge_interval: float = 60.0):
        self.clock = clock
        self.purge_interval = purge_interval
        self._data: Dict[str, Tuple[float, Any]] = {}
        self._next_purge = clock() + purge_interval

    def _maybe_purge(self):
        if self.clock() >= self._next_purge:
            self.purge()

    def set(self, key: str, value: Any, ttl_seconds: float):
        self._maybe_purge()
        self._data[key] = (self.clock() + ttl_seconds, value)

    def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def increment(self, key: str, ttl_seconds: float) -> int:
        """Add one to a counter; the TTL starts at the first increment."""
        if self.get(key) is None:
            self.set(key, 1, ttl_seconds)
            return 1
        expires_at, count = self._data[key]
        self._data[key] = (expires_at, count + 1)
        return count + 1

    def pop(self, key: str) -> Optional[Any]:
        value = self.get(key)
        self._data.pop(key, None)
        return value

    def purge(self):
        now = self.clock()
        for key in [k for k, (expires_at, _) in self._data.items() if now >= expires_at]:
            del self._data[key]
        self._next_purge = now + self.purge_interval

    def __len__(self):
        self.purge()
        return len(self._data)


class OfferCache:
    """
    In-process cache for the cancel-intent flow.

    - pending offers: offer_id -> record, until feedback arrives or TTL expires
    - rate limit: cancel intents per customer per window
    - recent offer: suppresses a second offer to the same customer
    """

    def __init__(
        self,
        offer_ttl_seconds: float = 3600,
        rate_limit: int = 10,
        rate_window_seconds: float = 3600,
        recent_offer_seconds: float = 86400,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.offer_ttl_seconds = offer_ttl_seconds
        self.rate_limit = rate_limit
        self.rate_window_seconds = rate_window_seconds
        self.recent_offer_seconds = recent_offer_seconds

        self._offers = ExpiringDict(clock)
        self._rate_counts = ExpiringDict(clock)
        self._recent = ExpiringDict(clock)
        self._lock = threading.Lock()

    def hit_rate_limit(self, customer_id: str) -> bool:
        """Count one request; True if the customer is over the limit."""
        with self._lock:
            count = self._rate_counts.increment(customer_id, self.rate_window_seconds)
            return count > self.rate_limit

    def recently_offered(self, customer_id: str) -> bool:
        with self._lock:
            return self._recent.get(customer_id) is not None

    def mark_offered(self, customer_id: str):
        with self._lock:
            self._recent.set(customer_id, True, self.recent_offer_seconds)

    def put_offer(self, offer_id: str, record: Dict[str, Any]):
        with self._lock:
            self._offers.set(offer_id, record, self.offer_ttl_seconds)

    def get_offer(self, offer_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._offers.get(offer_id)

    def take_offer(self, offer_id: str) -> Optional[Dict[str, Any]]:
        """Remove and return a pending offer, so feedback is applied once."""
        with self._lock:
            return self._offers.pop(offer_id)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._offers)

    def purge(self):
        """Drop every expired entry now."""
        with self._lock:
            for data in (self._offers, self._rate_counts, self._recent):
                data.purge()
