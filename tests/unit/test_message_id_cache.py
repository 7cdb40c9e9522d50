import pytest

from mailsync.features.deduplication.services.message_id_cache import MessageIdCache


@pytest.mark.asyncio
async def test_remember_lookup_invalidate(fake_redis):
    cache = MessageIdCache(fake_redis, ttl_seconds=120)

    await cache.remember("acct-1", "<abc@mail>", "email-1")

    assert await cache.lookup("acct-1", "<abc@mail>") == "email-1"
    assert await cache.lookup("acct-2", "<abc@mail>") is None
    assert list(fake_redis.ttls.values()) == [120]

    await cache.invalidate("acct-1", "<abc@mail>")

    assert await cache.lookup("acct-1", "<abc@mail>") is None


@pytest.mark.asyncio
async def test_keys_hash_the_message_id(fake_redis):
    cache = MessageIdCache(fake_redis)

    await cache.remember("acct-1", "<very long id with spaces@mail>", "email-1")

    (key,) = fake_redis.store
    assert key.startswith("dedup:msgid:acct-1:")
    assert "spaces" not in key


@pytest.mark.asyncio
async def test_disabled_cache_is_inert(fake_redis):
    cache = MessageIdCache(fake_redis, enabled=False)

    await cache.remember("acct-1", "m", "email-1")

    assert fake_redis.store == {}
    assert await cache.lookup("acct-1", "m") is None
