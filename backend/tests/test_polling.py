"""Tests for the supervised polling primitives."""
import asyncio
import time

from app.services.polling import RetryPoller, ThrottledFetcher


def sequence(*values):
    """Fetch function returning ``values`` in turn, then the last one forever."""
    remaining = list(values)

    async def fetch():
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return fetch


class TestRetryPoller:
    def test_stops_on_first_result(self):
        poller = RetryPoller(sequence(None, None, "ready"), initial_delay=0.01, max_delay=0.08)

        result = asyncio.run(poller.run())

        assert result == "ready"
        assert poller.attempts == 3
        assert poller.delays == [0.01, 0.02]

    def test_backoff_is_capped_and_attempts_bounded(self):
        poller = RetryPoller(sequence(None), initial_delay=0.01, max_delay=0.02, max_attempts=4)

        result = asyncio.run(poller.run())

        assert result is None
        assert poller.attempts == 4
        assert poller.delays == [0.01, 0.02, 0.02]

    def test_cancel_stops_polling(self):
        async def scenario():
            poller = RetryPoller(sequence(None), initial_delay=0.05, max_attempts=100)
            task = poller.start()
            await asyncio.sleep(0.02)
            poller.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return poller, task

        poller, task = asyncio.run(scenario())

        assert poller.cancelled
        assert task.cancelled()
        assert poller.attempts == 1


class TestThrottledFetcher:
    def test_concurrent_requests_share_one_fetch(self):
        async def slow_fetch():
            await asyncio.sleep(0.02)
            return "round"

        async def scenario():
            fetcher = ThrottledFetcher(slow_fetch, min_interval=0, debounce_window=0)
            results = await asyncio.gather(*(fetcher.request() for _ in range(5)))
            return fetcher, results

        fetcher, results = asyncio.run(scenario())

        assert results == ["round"] * 5
        assert fetcher.fetch_count == 1

    def test_requests_inside_debounce_window_are_collapsed(self):
        async def scenario():
            fetcher = ThrottledFetcher(sequence(1, 2), min_interval=0, debounce_window=1.0)
            first = await fetcher.request()
            second = await fetcher.request()
            return fetcher, first, second

        fetcher, first, second = asyncio.run(scenario())

        assert first == second == 1
        assert fetcher.fetch_count == 1

    def test_fetches_are_spaced_by_min_interval(self):
        started = []

        async def fetch():
            started.append(time.monotonic())
            return len(started)

        async def scenario():
            fetcher = ThrottledFetcher(fetch, min_interval=0.1, debounce_window=0)
            await fetcher.request()
            await asyncio.sleep(0.01)
            return await fetcher.request()

        result = asyncio.run(scenario())

        assert result == 2
        assert started[1] - started[0] >= 0.09
