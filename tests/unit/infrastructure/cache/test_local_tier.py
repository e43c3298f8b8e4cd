import pytest

from transcache.domain.models.common import ABSENT, Found, TierConfig
from transcache.infrastructure.cache.local_tier import LocalTier


@pytest.fixture
def local_tier(fake_clock):
    return LocalTier(TierConfig(max_entries=3, ttl_ms=1000), timer=fake_clock)


def test_get_missing_key_is_absent(local_tier):
    assert local_tier.get("missing") is ABSENT


def test_set_then_get(local_tier):
    local_tier.set("k", {"a": 1})
    assert local_tier.get("k") == Found({"a": 1})


def test_none_is_a_cached_value(local_tier):
    local_tier.set("k", None)
    assert local_tier.get("k") == Found(None)


def test_entry_expires_after_default_ttl(local_tier, fake_clock):
    local_tier.set("k", "v")
    fake_clock.advance(0.999)
    assert local_tier.get("k") == Found("v")
    fake_clock.advance(0.002)
    assert local_tier.get("k") is ABSENT


def test_explicit_ttl_overrides_default(local_tier, fake_clock):
    local_tier.set("short", "v", ttl_ms=100)
    local_tier.set("long", "v", ttl_ms=5000)
    fake_clock.advance(2)
    assert local_tier.get("short") is ABSENT
    assert local_tier.get("long") == Found("v")


def test_least_recently_used_entry_is_evicted(local_tier):
    local_tier.set("a", 1)
    local_tier.set("b", 2)
    local_tier.set("c", 3)
    local_tier.get("a")  # a becomes most recently used
    local_tier.set("d", 4)

    assert local_tier.get("b") is ABSENT
    assert local_tier.get("a") == Found(1)
    assert local_tier.get("c") == Found(3)
    assert local_tier.get("d") == Found(4)
    assert len(local_tier) == 3


def test_delete_and_clear(local_tier):
    local_tier.set("a", 1)
    local_tier.set("b", 2)
    local_tier.delete("a")
    local_tier.delete("never-set")
    assert local_tier.get("a") is ABSENT

    local_tier.clear()
    assert local_tier.get("b") is ABSENT
    assert len(local_tier) == 0
