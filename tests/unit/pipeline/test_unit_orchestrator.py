# tests/unit/pipeline/test_unit_orchestrator.py — v3
"""Tests for pipeline/orchestrator.py."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from neuroadapt.cache.memory_store import MemoryCacheStore
from neuroadapt.cache.models import Fingerprint
from neuroadapt.cache.result_cache import ResultCache
from neuroadapt.core.models import AdaptedContent
from neuroadapt.llm.adapters.scripted_adapter import ScriptedAdapter
from neuroadapt.llm.base_client import BaseLLMClient
from neuroadapt.llm.models import LLMResponse
from neuroadapt.llm.retry import BackoffPolicy
from neuroadapt.pipeline.errors import (
    ExhaustedError,
    FatalProviderError,
    RetryableProviderError,
    ValidationError,
)
from neuroadapt.pipeline.orchestrator import RequestOrchestrator
from neuroadapt.pipeline.state import CallState
from neuroadapt.tracking.call_logger import CallLogger

RATE_LIMITED = RetryableProviderError("a", "rate_limited", "429 too many requests")
UNAUTHORIZED = FatalProviderError("a", "auth", "401 invalid api key")


def _fp(char: str = "a") -> Fingerprint:
    return Fingerprint(digest=char * 64)


def _make(sleep, **kwargs) -> RequestOrchestrator:
    kwargs.setdefault(
        "backoff", BackoffPolicy(base_delay_s=0.01, multiplier=2.0, cap_s=0.08, jitter=0.0)
    )
    kwargs.setdefault("cache", ResultCache())
    return RequestOrchestrator(sleep=sleep, **kwargs)


class SlowStore(MemoryCacheStore):
    """Memory store whose reads take a while."""

    def __init__(self, delay_s: float) -> None:
        super().__init__()
        self._delay_s = delay_s

    async def get(self, key):
        await asyncio.sleep(self._delay_s)
        return await super().get(key)


class UnreachableStore(MemoryCacheStore):
    async def get(self, key):
        raise ConnectionError("redis unreachable")


class OverlapCounter(BaseLLMClient):
    """Provider that tracks how many calls overlap."""

    def __init__(self, response: str, delay_s: float = 0.02) -> None:
        self._response = response
        self._delay_s = delay_s
        self.active = 0
        self.peak = 0

    @property
    def provider_name(self) -> str:
        return "overlap"

    async def complete(self, messages, system=None, max_tokens=2048, temperature=0.3):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self._delay_s)
        finally:
            self.active -= 1
        return LLMResponse(content=self._response, model="overlap", provider="overlap")


class TestSubmitSuccess:
    @pytest.mark.asyncio
    async def test_first_attempt_success_is_cached(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict])

        content = await orch.submit(_fp(), sample_payload, sample_params, [provider])

        assert isinstance(content, AdaptedContent)
        assert provider.call_count == 1
        assert orch.in_flight == 0
        assert await orch._cache.get(_fp()) == content

    @pytest.mark.asyncio
    async def test_second_submit_served_from_cache(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict])

        first, src1 = await orch.submit_with_source(_fp(), sample_payload, sample_params, [provider])
        second, src2 = await orch.submit_with_source(_fp(), sample_payload, sample_params, [provider])

        assert (src1, src2) == ("dispatched", "cache")
        assert first == second
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_payload_callable_not_rendered_on_cache_hit(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict])
        renderer = MagicMock(return_value=sample_payload)

        await orch.submit(_fp(), renderer, sample_params, [provider])
        await orch.submit(_fp(), renderer, sample_params, [provider])

        renderer.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_render_failure_reaches_caller_without_dispatch(
        self, sleep_recorder, sample_params
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a")

        def bad_render():
            raise ValidationError("Cannot render prompt", fields=["assignment.title"])

        with pytest.raises(ValidationError, match="assignment.title"):
            await orch.submit(_fp(), bad_render, sample_params, [provider])
        assert provider.call_count == 0
        assert orch.in_flight == 0

    @pytest.mark.asyncio
    async def test_no_providers_rejected(self, sleep_recorder, sample_payload, sample_params):
        orch = _make(sleep_recorder)
        with pytest.raises(ValueError):
            await orch.submit(_fp(), sample_payload, sample_params, [])


class TestDeduplication:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_dispatch(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=0.02)

        results = await asyncio.gather(*(
            orch.submit_with_source(_fp(), sample_payload, sample_params, [provider])
            for _ in range(10)
        ))

        assert provider.call_count == 1
        assert all(r[0] is results[0][0] for r in results)
        sources = [r[1] for r in results]
        assert sources.count("dispatched") == 1
        assert sources.count("joined") == 9

    @pytest.mark.asyncio
    async def test_distinct_fingerprints_dispatch_independently(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=0.01)

        await asyncio.gather(
            orch.submit(_fp("a"), sample_payload, sample_params, [provider]),
            orch.submit(_fp("b"), sample_payload, sample_params, [provider]),
        )

        assert provider.call_count == 2

    @pytest.mark.asyncio
    async def test_failure_fans_out_to_every_waiter(
        self, sleep_recorder, sample_payload, sample_params
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[UNAUTHORIZED], delay_s=0.01)

        results = await asyncio.gather(
            *(orch.submit(_fp(), sample_payload, sample_params, [provider]) for _ in range(3)),
            return_exceptions=True,
        )

        assert provider.call_count == 1
        assert all(isinstance(r, ExhaustedError) for r in results)


class TestRetryAndFallback:
    @pytest.mark.asyncio
    async def test_retries_with_increasing_backoff(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(
            name="a", responses=[RATE_LIMITED, RATE_LIMITED, valid_content_dict]
        )

        await orch.submit(_fp(), sample_payload, sample_params, [provider])

        assert provider.call_count == 3
        assert sleep_recorder.delays == [0.01, 0.02]

    @pytest.mark.asyncio
    async def test_falls_over_with_fresh_attempt_counter(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        logger = CallLogger()
        orch = _make(sleep_recorder, call_logger=logger)
        primary = ScriptedAdapter(name="a", responses=[RATE_LIMITED])
        secondary = ScriptedAdapter(name="b", responses=[valid_content_dict])

        await orch.submit(_fp(), sample_payload, sample_params, [primary, secondary])

        assert primary.call_count == 3
        assert secondary.call_count == 1
        trail = [(r.provider, r.attempt_number) for r in logger.records]
        assert trail == [("a", 1), ("a", 2), ("a", 3), ("b", 1)]
        # No delay between the last failure of "a" and the first call to "b".
        assert sleep_recorder.delays == [0.01, 0.02]

    @pytest.mark.asyncio
    async def test_fatal_failure_falls_over_immediately(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        primary = ScriptedAdapter(name="a", responses=[UNAUTHORIZED])
        secondary = ScriptedAdapter(name="b", responses=[valid_content_dict])

        await orch.submit(_fp(), sample_payload, sample_params, [primary, secondary])

        assert primary.call_count == 1
        assert secondary.call_count == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_exhausted_single_provider(
        self, sleep_recorder, sample_payload, sample_params
    ):
        orch = _make(sleep_recorder, max_attempts_per_provider=2)
        provider = ScriptedAdapter(name="a", responses=[RATE_LIMITED])

        with pytest.raises(ExhaustedError) as exc_info:
            await orch.submit(_fp(), sample_payload, sample_params, [provider])

        err = exc_info.value
        assert err.reason == "providers_exhausted"
        assert [a.classification for a in err.attempts] == ["rate_limited", "rate_limited"]
        assert err.retryable is True
        assert await orch._cache.get(_fp()) is None
        assert orch.in_flight == 0

    @pytest.mark.asyncio
    async def test_all_fatal_is_not_retryable(
        self, sleep_recorder, sample_payload, sample_params
    ):
        orch = _make(sleep_recorder)
        providers = [
            ScriptedAdapter(name="a", responses=[UNAUTHORIZED]),
            ScriptedAdapter(name="b", responses=[UNAUTHORIZED]),
        ]

        with pytest.raises(ExhaustedError) as exc_info:
            await orch.submit(_fp(), sample_payload, sample_params, providers)

        assert exc_info.value.retryable is False
        assert exc_info.value.summary() == {"fatal": 2}

    @pytest.mark.asyncio
    async def test_failure_does_not_poison_cache(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder, max_attempts_per_provider=1)
        failing = ScriptedAdapter(name="a", responses=[RATE_LIMITED])
        healthy = ScriptedAdapter(name="a", responses=[valid_content_dict])

        with pytest.raises(ExhaustedError):
            await orch.submit(_fp(), sample_payload, sample_params, [failing])
        content, source = await orch.submit_with_source(
            _fp(), sample_payload, sample_params, [healthy]
        )

        assert source == "dispatched"
        assert healthy.call_count == 1
        assert content.sections


class TestRepair:
    @pytest.mark.asyncio
    async def test_invalid_output_repaired_on_same_provider(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        logger = CallLogger()
        orch = _make(sleep_recorder, call_logger=logger)
        provider = ScriptedAdapter(name="a", responses=["not json at all", valid_content_dict])

        await orch.submit(_fp(), sample_payload, sample_params, [provider])

        assert provider.call_count == 2
        assert sleep_recorder.delays == []
        assert [r.status for r in logger.records] == ["invalid_output", "success"]
        assert [r.repair for r in logger.records] == [False, True]

    @pytest.mark.asyncio
    async def test_repair_does_not_consume_transport_budget(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder, max_attempts_per_provider=1, repair_attempt_budget=1)
        primary = ScriptedAdapter(name="a", responses=['{"sections": []}'])
        secondary = ScriptedAdapter(name="b", responses=[valid_content_dict])

        await orch.submit(_fp(), sample_payload, sample_params, [primary, secondary])

        assert primary.call_count == 2
        assert secondary.call_count == 1

    @pytest.mark.asyncio
    async def test_zero_repair_budget_falls_over(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder, repair_attempt_budget=0)
        primary = ScriptedAdapter(name="a", responses=["{}"])
        secondary = ScriptedAdapter(name="b", responses=[valid_content_dict])

        await orch.submit(_fp(), sample_payload, sample_params, [primary, secondary])

        assert primary.call_count == 1
        assert secondary.call_count == 1

    @pytest.mark.asyncio
    async def test_invalid_output_recorded_in_trail(
        self, sleep_recorder, sample_payload, sample_params
    ):
        orch = _make(sleep_recorder, repair_attempt_budget=1)
        provider = ScriptedAdapter(name="a", responses=["<html>oops</html>"])

        with pytest.raises(ExhaustedError) as exc_info:
            await orch.submit(_fp(), sample_payload, sample_params, [provider])

        attempts = exc_info.value.attempts
        assert [a.classification for a in attempts] == ["invalid_output", "invalid_output"]
        assert attempts[1].repair is True


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_per_attempt_timeout_is_retryable(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder, per_attempt_timeout_s=0.02, max_attempts_per_provider=1)
        slow = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=1.0)
        fast = ScriptedAdapter(name="b", responses=[valid_content_dict])

        await orch.submit(_fp(), sample_payload, sample_params, [slow, fast])

        assert fast.call_count == 1

    @pytest.mark.asyncio
    async def test_per_attempt_timeout_classified(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder, per_attempt_timeout_s=0.02, max_attempts_per_provider=1)
        slow = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=1.0)

        with pytest.raises(ExhaustedError) as exc_info:
            await orch.submit(_fp(), sample_payload, sample_params, [slow])

        assert [a.classification for a in exc_info.value.attempts] == ["timeout"]

    @pytest.mark.asyncio
    async def test_overall_deadline_stops_before_backoff(
        self, sleep_recorder, sample_payload, sample_params
    ):
        orch = _make(
            sleep_recorder,
            overall_timeout_s=0.5,
            backoff=BackoffPolicy(base_delay_s=1.0, multiplier=2.0, cap_s=1.0, jitter=0.0),
        )
        provider = ScriptedAdapter(name="a", responses=[RATE_LIMITED])

        with pytest.raises(ExhaustedError) as exc_info:
            await orch.submit(_fp(), sample_payload, sample_params, [provider])

        assert exc_info.value.reason == "overall_timeout"
        assert provider.call_count == 1
        assert sleep_recorder.delays == []


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelling_one_waiter_keeps_others(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=0.05)

        first = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        second = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.01)
        assert orch.pending_for(_fp()).waiters == 2

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        content = await second
        assert content.sections
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_abandoned_call_finishes_attempt_and_caches(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=0.03)

        caller = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.01)
        pending = orch.pending_for(_fp())
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        await pending.task

        assert pending.state is CallState.SUCCEEDED
        assert await orch._cache.get(_fp()) is not None

    @pytest.mark.asyncio
    async def test_abandoned_call_starts_no_new_attempt(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(
            name="a", responses=[RATE_LIMITED, valid_content_dict], delay_s=0.03
        )

        caller = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.01)
        pending = orch.pending_for(_fp())
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        await pending.task

        assert provider.call_count == 1
        assert pending.state is CallState.FAILED
        error = pending.future.exception()
        assert isinstance(error, ExhaustedError)
        assert error.reason == "abandoned"
        assert await orch._cache.get(_fp()) is None


    @pytest.mark.asyncio
    async def test_late_caller_not_handed_abandoned_call(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        # Each lookup suspends, as a networked store does.
        orch = _make(sleep_recorder, cache=ResultCache(store=SlowStore(delay_s=0.05)))
        provider = ScriptedAdapter(
            name="a", responses=[RATE_LIMITED, valid_content_dict], delay_s=0.03
        )

        first = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.06)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        await asyncio.sleep(0.01)

        content = await orch.submit(_fp(), sample_payload, sample_params, [provider])

        assert content.sections
        assert provider.call_count == 2
        assert orch.in_flight == 0

    @pytest.mark.asyncio
    async def test_abandonment_cuts_backoff_short(
        self, sample_payload, sample_params
    ):
        orch = RequestOrchestrator(
            cache=ResultCache(),
            backoff=BackoffPolicy(base_delay_s=5.0, multiplier=2.0, cap_s=5.0, jitter=0.0),
        )
        provider = ScriptedAdapter(name="a", responses=[RATE_LIMITED], delay_s=0.01)

        caller = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.05)
        pending = orch.pending_for(_fp())
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        await asyncio.wait_for(pending.task, timeout=1.0)

        assert pending.future.exception().reason == "abandoned"
        assert provider.call_count == 1


class TestCacheFailures:
    @pytest.mark.asyncio
    async def test_unreachable_cache_reads_as_miss(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder, cache=ResultCache(store=UnreachableStore()))
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict])

        content = await orch.submit(_fp(), sample_payload, sample_params, [provider])

        assert content.sections
        assert provider.call_count == 1



class TestConcurrencyCap:
    @pytest.mark.asyncio
    async def test_cap_bounds_parallel_provider_calls(
        self, sleep_recorder, sample_payload, sample_params, valid_content_json
    ):
        orch = _make(sleep_recorder, max_concurrent_in_flight=2)
        counter = OverlapCounter(valid_content_json)

        await asyncio.gather(*(
            orch.submit(_fp(c), sample_payload, sample_params, [counter]) for c in "abcde"
        ))

        assert counter.peak == 2

    def test_invalid_limits_rejected(self):
        with pytest.raises(ValueError):
            RequestOrchestrator(max_concurrent_in_flight=0)
        with pytest.raises(ValueError):
            RequestOrchestrator(max_attempts_per_provider=0)
        with pytest.raises(ValueError):
            RequestOrchestrator(repair_attempt_budget=-1)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_aclose_drains_in_flight_call(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=0.02)

        caller = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.005)
        await orch.aclose()

        assert (await caller).sections
        with pytest.raises(RuntimeError, match="closed"):
            await orch.submit(_fp("b"), sample_payload, sample_params, [provider])

    @pytest.mark.asyncio
    async def test_aclose_timeout_rejects_waiters(
        self, sleep_recorder, sample_payload, sample_params, valid_content_dict
    ):
        orch = _make(sleep_recorder)
        provider = ScriptedAdapter(name="a", responses=[valid_content_dict], delay_s=5.0)

        caller = asyncio.create_task(orch.submit(_fp(), sample_payload, sample_params, [provider]))
        await asyncio.sleep(0.01)
        await orch.aclose(drain_timeout_s=0.01)

        with pytest.raises(ExhaustedError) as exc_info:
            await caller
        assert exc_info.value.reason == "shutdown"
        assert orch.in_flight == 0


class TestFromSettings:
    def test_settings_are_applied(self):
        from neuroadapt.config.settings import load_settings

        settings = load_settings(
            _env_file=None, max_attempts_per_provider=2, repair_attempt_budget=0,
            per_attempt_timeout_ms=1000, overall_timeout_ms=5000,
        )
        orch = RequestOrchestrator.from_settings(settings)

        assert orch._max_attempts == 2
        assert orch._repair_budget == 0
        assert orch._per_attempt_timeout_s == 1.0
        assert orch._overall_timeout_s == 5.0
        assert orch._backoff == settings.backoff_policy()
