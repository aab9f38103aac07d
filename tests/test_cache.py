"""
Unit tests for the response cache.

Tests TTL expiry, size-bound eviction, key normalization and the
get-or-set / single-flight behavior.
"""

import asyncio

import pytest

from ai_optimizer.core.cache import DEFAULT_TTL_MS, ResponseCache, with_cache


class TestCacheBasics:
    """Test get/set and expiry."""

    def test_get_after_set_returns_value(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("prompt", {"text": "ok"}, {"op": "summary"}, ttl_ms=1000)
        assert cache.get("prompt", {"op": "summary"}) == {"text": "ok"}

    def test_expired_entry_is_removed(self, clock):
        """An entry is served up to its TTL and never after it."""
        cache = ResponseCache(clock=clock)
        cache.set("prompt", "value", ttl_ms=1000)

        clock.advance(1000)
        assert cache.get("prompt") == "value"

        clock.advance(1)
        assert cache.get("prompt") is None
        assert len(cache) == 0
        assert cache.get_stats().size == 0

    def test_default_ttl_applies(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("prompt", "value")

        clock.advance(DEFAULT_TTL_MS)
        assert cache.get("prompt") == "value"
        clock.advance(1)
        assert cache.get("prompt") is None

    def test_missing_key_returns_none(self, clock):
        cache = ResponseCache(clock=clock)
        assert cache.get("never stored") is None

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError, match="max_size"):
            ResponseCache(max_size=0)
        with pytest.raises(ValueError, match="default_ttl_ms"):
            ResponseCache(default_ttl_ms=0)

    def test_clear_drops_everything(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("a", 1)
        cache.get("a")
        cache.clear()

        stats = cache.get_stats()
        assert stats.size == 0
        assert stats.hits == 0
        assert stats.misses == 0


    def test_peek_leaves_stats_untouched(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("p", "v", ttl_ms=10)

        assert cache.peek("p") == "v"
        assert cache.peek("other") is None
        clock.advance(11)
        assert cache.peek("p") is None

        stats = cache.get_stats()
        assert (stats.hits, stats.misses) == (0, 0)

    def test_invalidate(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("p", "v", {"n": 1})

        assert cache.invalidate("p", {"n": 1}) is True
        assert cache.invalidate("p", {"n": 1}) is False
        assert len(cache) == 0


class TestCacheKeys:
    """Test key normalization."""

    def test_param_order_does_not_matter(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("p", "value", {"a": 1, "b": 2})
        assert cache.get("p", {"b": 2, "a": 1}) == "value"

    def test_different_params_are_different_entries(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("p", "one", {"count": 1})
        assert cache.get("p", {"count": 2}) is None
        assert cache.get("p") is None

    def test_nested_params_are_normalized(self):
        key_a = ResponseCache.generate_key("p", {"outer": {"x": 1, "y": [1, 2]}})
        key_b = ResponseCache.generate_key("p", {"outer": {"y": [1, 2], "x": 1}})
        assert key_a == key_b
        assert len(key_a) == 64


class TestCacheEviction:
    """Test size-bound eviction."""

    def test_size_bound_keeps_most_recent(self, clock):
        cache = ResponseCache(max_size=3, clock=clock)
        for i in range(5):
            cache.set(f"prompt-{i}", i)
            clock.advance(1)

        assert len(cache) == 3
        assert cache.get("prompt-0") is None
        assert cache.get("prompt-1") is None
        assert [cache.get(f"prompt-{i}") for i in (2, 3, 4)] == [2, 3, 4]

    def test_cleanup_removes_expired_first(self, clock):
        cache = ResponseCache(max_size=2, clock=clock)
        cache.set("short", 1, ttl_ms=10)
        cache.set("long", 2, ttl_ms=10_000)
        clock.advance(11)
        cache.set("new", 3)

        assert cache.get("short") is None
        assert cache.get("long") == 2
        assert cache.get("new") == 3

    def test_overwrite_refreshes_timestamp(self, clock):
        cache = ResponseCache(max_size=2, clock=clock)
        cache.set("a", 1)
        clock.advance(1)
        cache.set("b", 2)
        clock.advance(1)
        cache.set("a", 10)
        clock.advance(1)
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 10
        assert cache.get("c") == 3


class TestCacheCopies:
    """Cached payloads are not aliased with caller objects."""

    def test_mutating_stored_object_does_not_change_cache(self, clock):
        cache = ResponseCache(clock=clock)
        payload = {"items": [1, 2]}
        cache.set("p", payload)
        payload["items"].append(3)

        assert cache.get("p") == {"items": [1, 2]}

    def test_mutating_returned_object_does_not_change_cache(self, clock):
        cache = ResponseCache(clock=clock)
        cache.set("p", {"items": [1, 2]})
        cache.get("p")["items"].append(3)

        assert cache.get("p") == {"items": [1, 2]}


class TestCacheStats:

    def test_hit_rate(self, clock):
        cache = ResponseCache(clock=clock)
        assert cache.get_stats().hit_rate is None

        cache.get("p")
        cache.set("p", "v")
        cache.get("p")

        stats = cache.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5


class TestGetOrSet:
    """Test get_or_set and single-flight behavior."""

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self, clock):
        """Two immediate calls invoke the fetcher exactly once."""
        cache = ResponseCache(clock=clock)
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            return {"text": "ok"}

        first = await cache.get_or_set("summarize: hello world", fetcher, {"op": "summary"}, 5000)
        second = await cache.get_or_set("summarize: hello world", fetcher, {"op": "summary"}, 5000)

        assert calls == 1
        assert first == {"text": "ok"}
        assert second == {"text": "ok"}

    @pytest.mark.asyncio
    async def test_refetches_after_ttl(self, clock):
        cache = ResponseCache(clock=clock)
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            return calls

        assert await cache.get_or_set("p", fetcher, ttl_ms=100) == 1
        clock.advance(101)
        assert await cache.get_or_set("p", fetcher, ttl_ms=100) == 2

    @pytest.mark.asyncio
    async def test_fetcher_error_propagates_and_is_not_cached(self, clock):
        cache = ResponseCache(clock=clock)

        async def failing():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError, match="provider down"):
            await cache.get_or_set("p", failing)

        assert len(cache) == 0
        assert cache.get_stats().in_flight == 0

        async def working():
            return "ok"

        assert await cache.get_or_set("p", working) == "ok"

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_call(self, clock):
        cache = ResponseCache(clock=clock)
        calls = 0

        async def slow_fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"text": "ok"}

        results = await asyncio.gather(
            cache.get_or_set("p", slow_fetcher),
            cache.get_or_set("p", slow_fetcher),
            cache.get_or_set("p", slow_fetcher),
        )

        assert calls == 1
        assert results == [{"text": "ok"}] * 3
        assert cache.get_stats().in_flight == 0

    @pytest.mark.asyncio
    async def test_concurrent_failure_reaches_every_caller(self, clock):
        cache = ResponseCache(clock=clock)

        async def failing():
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            cache.get_or_set("p", failing),
            cache.get_or_set("p", failing),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.get_stats().in_flight == 0

    @pytest.mark.asyncio
    async def test_cancelled_leader_does_not_cancel_followers(self, clock):
        """The first caller being cancelled leaves the shared fetch running."""
        cache = ResponseCache(clock=clock)
        calls = 0

        async def slow_fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "ok"

        leader = asyncio.ensure_future(cache.get_or_set("p", slow_fetcher))
        await asyncio.sleep(0)
        follower = asyncio.ensure_future(cache.get_or_set("p", slow_fetcher))
        await asyncio.sleep(0)

        leader.cancel()

        assert await follower == "ok"
        with pytest.raises(asyncio.CancelledError):
            await leader
        assert calls == 1
        assert cache.get("p") == "ok"
        assert cache.get_stats().in_flight == 0

    @pytest.mark.asyncio
    async def test_cancelled_only_caller_still_warms_cache(self, clock):
        cache = ResponseCache(clock=clock)

        async def slow_fetcher():
            await asyncio.sleep(0.01)
            return "ok"

        caller = asyncio.ensure_future(cache.get_or_set("p", slow_fetcher))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await asyncio.sleep(0.05)
        assert cache.get("p") == "ok"

    @pytest.mark.asyncio
    async def test_none_result_is_cached(self, clock):
        cache = ResponseCache(clock=clock)
        calls = 0

        async def fetcher():
            nonlocal calls
            calls += 1
            return None

        assert await cache.get_or_set("p", fetcher) is None
        assert await cache.get_or_set("p", fetcher) is None

        assert calls == 1
        assert cache.get_stats().hits == 1

    @pytest.mark.asyncio
    async def test_single_flight_disabled_calls_each_time(self, clock):
        cache = ResponseCache(single_flight=False, clock=clock)
        calls = 0

        async def slow_fetcher():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "ok"

        await asyncio.gather(
            cache.get_or_set("p", slow_fetcher),
            cache.get_or_set("p", slow_fetcher),
        )

        assert calls == 2


class TestWithCache:
    """Test the caching wrapper."""

    @pytest.mark.asyncio
    async def test_wrapper_caches_by_prompt_and_params(self, clock):
        cache = ResponseCache(clock=clock)
        calls = []

        async def generate(prompt, params=None):
            calls.append((prompt, params))
            return f"result for {prompt}"

        cached_generate = with_cache(generate, cache)

        assert await cached_generate("hello", {"n": 1}) == "result for hello"
        assert await cached_generate("hello", {"n": 1}) == "result for hello"
        await cached_generate("hello", {"n": 2})

        assert calls == [("hello", {"n": 1}), ("hello", {"n": 2})]
        assert cached_generate.__name__ == "generate"

    @pytest.mark.asyncio
    async def test_wrapper_accepts_non_string_first_argument(self, clock):
        cache = ResponseCache(clock=clock)
        calls = 0

        async def generate(payload):
            nonlocal calls
            calls += 1
            return payload["text"].upper()

        cached_generate = with_cache(generate, cache, ttl_ms=1000)
        await cached_generate({"text": "abc", "count": 2})
        result = await cached_generate({"count": 2, "text": "abc"})

        assert result == "ABC"
        assert calls == 1
