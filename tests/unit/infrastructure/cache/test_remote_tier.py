import json
from unittest.mock import MagicMock

import pytest

from transcache.domain.events.cache_events import EventDispatcher, RemoteOperationFailed
from transcache.domain.models.common import ABSENT, Found, RemoteTierConfig
from transcache.infrastructure.cache.remote_tier import REMOTE_KEY_PREFIX, RemoteTier


@pytest.fixture
def remote_config():
    return RemoteTierConfig(max_entries=100, ttl_ms=10000, command_timeout_ms=50)


@pytest.fixture
def remote_tier(remote_config, fake_redis):
    return RemoteTier(remote_config, fake_redis)


@pytest.mark.asyncio
async def test_set_writes_namespaced_envelope_with_expiry(remote_tier, fake_redis, fake_clock):
    await remote_tier.set("k", {"a": 1})

    raw, expires = fake_redis.store[REMOTE_KEY_PREFIX + "k"]
    assert json.loads(raw) == {"value": {"a": 1}}
    assert expires == fake_clock() + 10


@pytest.mark.asyncio
async def test_get_round_trips_values(remote_tier):
    await remote_tier.set("k", [1, "two"])
    assert await remote_tier.get("k") == Found([1, "two"])


@pytest.mark.asyncio
@pytest.mark.parametrize("falsy", [None, 0, "", False, []])
async def test_falsy_values_are_distinguished_from_misses(remote_tier, falsy):
    await remote_tier.set("k", falsy)
    assert await remote_tier.get("k") == Found(falsy)


@pytest.mark.asyncio
async def test_missing_key_is_absent(remote_tier):
    assert await remote_tier.get("missing") is ABSENT


@pytest.mark.asyncio
async def test_bytes_payloads_are_decoded(remote_tier, fake_redis):
    fake_redis.store[REMOTE_KEY_PREFIX + "k"] = (b'{"value": "v"}', None)
    assert await remote_tier.get("k") == Found("v")


@pytest.mark.asyncio
async def test_unreadable_payload_is_treated_as_miss(remote_tier, fake_redis):
    fake_redis.store[REMOTE_KEY_PREFIX + "k"] = ("not json", None)
    assert await remote_tier.get("k") is ABSENT


@pytest.mark.asyncio
async def test_transport_hooks_are_applied(fake_redis):
    config = RemoteTierConfig(
        max_entries=1,
        ttl_ms=1000,
        command_timeout_ms=50,
        to_transport=lambda value: {"items": sorted(value)},
        from_transport=lambda payload: set(payload["items"]),
    )
    tier = RemoteTier(config, fake_redis)

    await tier.set("k", {3, 1, 2})
    raw, _ = fake_redis.store[REMOTE_KEY_PREFIX + "k"]
    assert json.loads(raw) == {"value": {"items": [1, 2, 3]}}
    assert await tier.get("k") == Found({1, 2, 3})


@pytest.mark.asyncio
async def test_async_transport_hooks_are_awaited(fake_redis):
    async def from_transport(payload):
        return payload.upper()

    config = RemoteTierConfig(max_entries=1, ttl_ms=1000, command_timeout_ms=50, from_transport=from_transport)
    tier = RemoteTier(config, fake_redis)
    await tier.set("k", "abc")
    assert await tier.get("k") == Found("ABC")


@pytest.mark.asyncio
async def test_unserializable_value_skips_remote_write(remote_tier, fake_redis):
    await remote_tier.set("k", object())
    assert fake_redis.calls["set"] == 0


@pytest.mark.asyncio
async def test_explicit_ttl_is_passed_through(remote_tier, fake_redis):
    await remote_tier.set("k", "v", ttl_ms=500)
    assert await remote_tier.remaining_ttl_ms("k") == 500


@pytest.mark.asyncio
async def test_remaining_ttl_maps_negative_answers_to_none(remote_tier, fake_redis):
    assert await remote_tier.remaining_ttl_ms("missing") is None

    fake_redis.store[REMOTE_KEY_PREFIX + "persistent"] = ('{"value": 1}', None)
    assert await remote_tier.remaining_ttl_ms("persistent") is None


@pytest.mark.asyncio
async def test_delete_removes_entry(remote_tier):
    await remote_tier.set("k", "v")
    await remote_tier.delete("k")
    assert await remote_tier.get("k") is ABSENT


@pytest.mark.asyncio
async def test_failing_remote_is_absorbed_and_reported(remote_config, failing_redis):
    listener = MagicMock()
    tier = RemoteTier(remote_config, failing_redis, EventDispatcher(listener))

    assert await tier.get("k") is ABSENT
    await tier.set("k", "v")
    await tier.delete("k")
    assert await tier.remaining_ttl_ms("k") is None

    operations = [call.args[0].operation for call in listener.call_args_list]
    assert operations == ["get", "set", "delete", "pttl"]
    assert all(isinstance(call.args[0], RemoteOperationFailed) for call in listener.call_args_list)


@pytest.mark.asyncio
async def test_hanging_remote_times_out(remote_config, hanging_redis):
    tier = RemoteTier(remote_config, hanging_redis)

    assert await tier.get("k") is ABSENT
    assert await tier.remaining_ttl_ms("k") is None
    assert hanging_redis.calls["get"] == 1
    assert hanging_redis.calls["pttl"] == 1
