"""Unit tests for pending offers, rate limits and recent-offer flags."""
import pytest

from serve.offer_cache import ExpiringDict, OfferCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.mark.unit
def test_expiring_dict_ttl():
    clock = FakeClock()
    data = ExpiringDict(clock)
    data.set("k", "v", ttl_seconds=10)

    assert data.get("k") == "v"
    clock.advance(10)
    assert data.get("k") is None


@pytest.mark.unit
def test_pending_offer_taken_once():
    """Feedback should consume a pending offer exactly once."""
    cache = OfferCache()
    cache.put_offer("offer_1", {"arm_id": "pause_30"})

    assert cache.get_offer("offer_1") == {"arm_id": "pause_30"}
    assert cache.take_offer("offer_1") == {"arm_id": "pause_30"}
    assert cache.take_offer("offer_1") is None


@pytest.mark.unit
def test_pending_offer_expires():
    clock = FakeClock()
    cache = OfferCache(offer_ttl_seconds=60, clock=clock)
    cache.put_offer("offer_1", {"arm_id": "pause_30"})

    clock.advance(61)

    assert cache.get_offer("offer_1") is None
    assert cache.pending_count() == 0


@pytest.mark.unit
def test_rate_limit_window():
    """Requests over the limit are rejected until the window resets."""
    clock = FakeClock()
    cache = OfferCache(rate_limit=3, rate_window_seconds=100, clock=clock)

    assert [cache.hit_rate_limit("cus_1") for _ in range(4)] == [False, False, False, True]
    assert not cache.hit_rate_limit("cus_2")

    clock.advance(100)
    assert not cache.hit_rate_limit("cus_1")


@pytest.mark.unit
def test_recent_offer_flag():
    clock = FakeClock()
    cache = OfferCache(recent_offer_seconds=86400, clock=clock)

    assert not cache.recently_offered("cus_1")
    cache.mark_offered("cus_1")
    assert cache.recently_offered("cus_1")

    clock.advance(86400)
    assert not cache.recently_offered("cus_1")


@pytest.mark.unit
def test_expired_entries_swept_by_later_writes():
    """Keys that are never read again still leave once their TTL passes."""
    clock = FakeClock()
    cache = OfferCache(offer_ttl_seconds=3600, rate_window_seconds=3600, recent_offer_seconds=86400, clock=clock)

    for i in range(500):
        cache.hit_rate_limit(f"cus_{i}")
        cache.mark_offered(f"cus_{i}")
        cache.put_offer(f"offer_{i}", {"arm_id": "pause_30"})

    clock.advance(10 * 86400)
    cache.hit_rate_limit("cus_new")
    cache.mark_offered("cus_new")
    cache.put_offer("offer_new", {"arm_id": "pause_30"})

    assert list(cache._rate_counts._data) == ["cus_new"]
    assert list(cache._recent._data) == ["cus_new"]
    assert list(cache._offers._data) == ["offer_new"]


@pytest.mark.unit
def test_purge_empties_maps_after_ttl():
    clock = FakeClock()
    cache = OfferCache(clock=clock)
    cache.hit_rate_limit("cus_1")
    cache.mark_offered("cus_1")
    cache.put_offer("offer_1", {"arm_id": "pause_30"})

    clock.advance(86400)
    cache.purge()

    assert cache._rate_counts._data == {}
    assert cache._recent._data == {}
    assert cache._offers._data == {}


@pytest.mark.unit
def test_sweep_waits_for_purge_interval():
    clock = FakeClock()
    data = ExpiringDict(clock, purge_interval=60)
    data.set("old", 1, ttl_seconds=1)

    clock.advance(30)
    data.set("new", 2, ttl_seconds=100)
    assert "old" in data._data

    clock.advance(30)
    data.set("newer", 3, ttl_seconds=100)
    assert "old" not in data._data
    assert set(data._data) == {"new", "newer"}
