# src/pipeline/orchestrator.py — v3
"""Request orchestrator — retry, backoff, provider fallback and deduplication.

Per fingerprint the orchestration walks IDLE → DISPATCHED → RETRYING →
SUCCEEDED | FAILED:

  - Retryable failure: back off (exponential, jittered, capped) and retry the
    same provider until its attempt budget is spent, then fall over to the
    next provider with a fresh attempt counter.
  - Fatal failure: no retry, fall over immediately without delay.
  - Success: validate. Invalid output earns a repair attempt on the same
    provider (separate budget) before falling over.
  - Every provider exhausted, or the overall deadline passed: FAILED with an
    ExhaustedError carrying the full attempt trail.

At most one orchestration per fingerprint is in flight. The cache lookup and
the join-or-create of the PendingCall happen under one lock; that lock is
never held across a provider call or a backoff sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from neuroadapt.llm.models import (
    FatalFailure,
    ProviderAttempt,
    RetryableFailure,
    Success,
)
from neuroadapt.llm.retry import BackoffPolicy
from neuroadapt.logging.context import set_attempt_context, set_request_context
from neuroadapt.pipeline.errors import ExhaustedError, ValidationError
from neuroadapt.pipeline.state import CallState, PendingCall
from neuroadapt.validation.validator import ResponseValidator

if TYPE_CHECKING:
    from neuroadapt.cache.models import Fingerprint
    from neuroadapt.cache.result_cache import ResultCache
    from neuroadapt.config.settings import Settings
    from neuroadapt.core.models import AdaptedContent, GenerationParameters
    from neuroadapt.llm.base_client import BaseLLMClient
    from neuroadapt.prompts.models import PromptPayload
    from neuroadapt.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class _Stop(Exception):
    """Internal: stop orchestrating before the providers are exhausted."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class RequestOrchestrator:
    """Owns the PendingCall table and drives provider attempts.

    Args:
        cache: Result cache consulted before dispatch and filled on success.
        validator: Response validator. Defaults to a repairing validator.
        max_attempts_per_provider: Transport attempts per provider.
        repair_attempt_budget: Extra attempts per provider after invalid output.
        backoff: Delay policy between retryable failures.
        per_attempt_timeout_s: Deadline of one provider call.
        overall_timeout_s: Deadline of the whole orchestration.
        max_concurrent_in_flight: Provider calls in flight across fingerprints.
        cache_ttl_s: TTL of cached results (None = cache default).
        call_logger: Optional attempt tracker.
        sleep: Backoff sleep (injectable for tests).
    """

    def __init__(
        self,
        cache: ResultCache | None = None,
        validator: ResponseValidator | None = None,
        max_attempts_per_provider: int = 3,
        repair_attempt_budget: int = 1,
        backoff: BackoffPolicy | None = None,
        per_attempt_timeout_s: float = 30.0,
        overall_timeout_s: float = 120.0,
        max_concurrent_in_flight: int = 4,
        cache_ttl_s: float | None = None,
        call_logger: CallLogger | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if max_attempts_per_provider < 1:
            raise ValueError("max_attempts_per_provider must be >= 1")
        if repair_attempt_budget < 0:
            raise ValueError("repair_attempt_budget must be >= 0")
        if max_concurrent_in_flight < 1:
            raise ValueError("max_concurrent_in_flight must be >= 1")

        self._cache = cache
        self._validator = validator or ResponseValidator()
        self._max_attempts = max_attempts_per_provider
        self._repair_budget = repair_attempt_budget
        self._backoff = backoff or BackoffPolicy()
        self._per_attempt_timeout_s = per_attempt_timeout_s
        self._overall_timeout_s = overall_timeout_s
        self._cache_ttl_s = cache_ttl_s
        self._call_logger = call_logger
        self._sleep = sleep

        self._pending: dict[str, PendingCall] = {}
        self._lock = asyncio.Lock()
        self._slots = asyncio.Semaphore(max_concurrent_in_flight)
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: ResultCache | None = None,
        call_logger: CallLogger | None = None,
        **kwargs,
    ) -> RequestOrchestrator:
        """Build an orchestrator from application settings."""
        return cls(
            cache=cache,
            max_attempts_per_provider=settings.max_attempts_per_provider,
            repair_attempt_budget=settings.repair_attempt_budget,
            backoff=settings.backoff_policy(),
            per_attempt_timeout_s=settings.per_attempt_timeout_s,
            overall_timeout_s=settings.overall_timeout_s,
            max_concurrent_in_flight=settings.max_concurrent_in_flight,
            cache_ttl_s=settings.cache_ttl_s,
            call_logger=call_logger,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(
        self,
        fingerprint: Fingerprint,
        payload: PromptPayload | Callable[[], PromptPayload],
        params: GenerationParameters,
        providers: Sequence[BaseLLMClient],
        request_id: str | None = None,
    ) -> AdaptedContent:
        """Return the adaptation for a fingerprint, dispatching at most once.

        Args:
            fingerprint: Cache key of the request.
            payload: Rendered prompt, or a callable rendering it. The callable
                only runs when a new provider call is actually dispatched.
            params: Generation parameters.
            providers: Clients in preference order.
            request_id: Optional id for log correlation.

        Raises:
            ExhaustedError: Every provider and attempt (or the deadline) was spent.
            ValidationError: The payload callable rejected its inputs.
            asyncio.CancelledError: This caller was cancelled. Other callers
                waiting on the same fingerprint are unaffected.
        """
        content, _ = await self.submit_with_source(
            fingerprint, payload, params, providers, request_id
        )
        return content

    async def submit_with_source(
        self,
        fingerprint: Fingerprint,
        payload: PromptPayload | Callable[[], PromptPayload],
        params: GenerationParameters,
        providers: Sequence[BaseLLMClient],
        request_id: str | None = None,
    ) -> tuple[AdaptedContent, str]:
        """Like submit(), also reporting "cache", "dispatched" or "joined"."""
        if self._closed:
            raise RuntimeError("Orchestrator is closed")
        if not providers:
            raise ValueError("At least one provider is required")

        async with self._lock:
            cached = await self._cached(fingerprint)
            if cached is not None:
                logger.debug("Cache hit for %s", fingerprint.short)
                return cached, "cache"

            pending = self._pending.get(fingerprint.key)
            if pending is None or not pending.joinable:
                rendered = payload() if callable(payload) else payload
                pending = PendingCall(fingerprint)
                self._pending[fingerprint.key] = pending
                pending.task = asyncio.create_task(
                    self._run(pending, rendered, params, list(providers), request_id),
                    name=f"adapt-{fingerprint.short}",
                )
                source = "dispatched"
                logger.debug("Dispatching new call for %s", fingerprint.short)
            else:
                source = "joined"
                logger.debug(
                    "Joining in-flight call for %s (%d waiting)",
                    fingerprint.short, pending.waiters,
                )
            pending.join()

        try:
            return await asyncio.shield(pending.future), source
        except asyncio.CancelledError:
            pending.leave()
            if pending.abandoned and not pending.done:
                logger.info(
                    "All callers withdrew from %s; finishing current attempt only",
                    fingerprint.short,
                )
            raise

    async def _cached(self, fingerprint: Fingerprint) -> AdaptedContent | None:
        """Cache lookup; an unreachable cache reads as a miss."""
        if self._cache is None:
            return None
        try:
            return await self._cache.get(fingerprint)
        except Exception:
            logger.exception("Cache lookup failed for %s; treating as miss", fingerprint.short)
            return None

    def pending_for(self, fingerprint: Fingerprint) -> PendingCall | None:
        """The in-flight call for a fingerprint, if any."""
        return self._pending.get(fingerprint.key)

    @property
    def in_flight(self) -> int:
        """Number of fingerprints currently being orchestrated."""
        return len(self._pending)

    async def aclose(self, drain_timeout_s: float | None = None) -> None:
        """Stop accepting requests and drain in-flight calls.

        Calls still running after drain_timeout_s are cancelled; their waiters
        receive an ExhaustedError.
        """
        self._closed = True
        tasks = [p.task for p in list(self._pending.values()) if p.task is not None]
        if not tasks:
            return
        logger.info("Draining %d in-flight call(s)", len(tasks))
        _, not_done = await asyncio.wait(tasks, timeout=drain_timeout_s)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def _run(
        self,
        pending: PendingCall,
        payload: PromptPayload,
        params: GenerationParameters,
        providers: list[BaseLLMClient],
        request_id: str | None,
    ) -> None:
        set_request_context(pending.fingerprint.short, request_id)
        try:
            content, provider_id = await self._drive(pending, payload, params, providers)
        except ExhaustedError as e:
            self._fail(pending)
            logger.warning("%s", e)
            await self._finish(pending, error=e)
        except asyncio.CancelledError:
            self._fail(pending)
            raise
        except Exception as e:
            self._fail(pending)
            logger.exception("Orchestration of %s crashed", pending.fingerprint.short)
            await self._finish(pending, error=e)
        else:
            pending.transition(CallState.SUCCEEDED)
            await self._finish(pending, content=content, provider_id=provider_id)
        finally:
            # Cancelled (shutdown) before an outcome was delivered.
            if not pending.done:
                self._retire(pending)
                pending.reject(
                    ExhaustedError(pending.fingerprint.key, pending.attempts, reason="shutdown")
                )

    async def _finish(
        self,
        pending: PendingCall,
        content: AdaptedContent | None = None,
        provider_id: str = "",
        error: BaseException | None = None,
    ) -> None:
        """Cache (success only), retire the PendingCall, then fan out the outcome."""
        async with self._lock:
            if content is not None and self._cache is not None:
                try:
                    await self._cache.put(
                        pending.fingerprint, content, ttl_s=self._cache_ttl_s,
                        provider=provider_id,
                    )
                except Exception:
                    logger.exception("Failed to cache result for %s", pending.fingerprint.short)
            self._retire(pending)
        if content is not None:
            pending.resolve(content)
        else:
            pending.reject(error or RuntimeError("orchestration ended without outcome"))

    def _retire(self, pending: PendingCall) -> None:
        if self._pending.get(pending.fingerprint.key) is pending:
            del self._pending[pending.fingerprint.key]

    @staticmethod
    def _fail(pending: PendingCall) -> None:
        if pending.state not in (CallState.SUCCEEDED, CallState.FAILED):
            pending.transition(CallState.FAILED)

    async def _drive(
        self,
        pending: PendingCall,
        payload: PromptPayload,
        params: GenerationParameters,
        providers: list[BaseLLMClient],
    ) -> tuple[AdaptedContent, str]:
        deadline = time.monotonic() + self._overall_timeout_s
        try:
            for index, provider in enumerate(providers):
                if index > 0:
                    logger.info(
                        "Falling back to %s (provider %d/%d)",
                        provider.provider_id, index + 1, len(providers),
                    )
                result = await self._drive_provider(pending, payload, params, provider, deadline)
                if result is not None:
                    return result, provider.provider_id
        except _Stop as stop:
            raise ExhaustedError(
                pending.fingerprint.key, pending.attempts, reason=stop.reason
            ) from None
        raise ExhaustedError(pending.fingerprint.key, pending.attempts)

    async def _drive_provider(
        self,
        pending: PendingCall,
        payload: PromptPayload,
        params: GenerationParameters,
        provider: BaseLLMClient,
        deadline: float,
    ) -> AdaptedContent | None:
        """Run one provider's attempt budget. None means fall over."""
        attempt_number = 0
        transport_attempts = 0
        repairs_used = 0
        retryable_streak = 0
        repair_next = False

        while True:
            self._check_can_start(pending, deadline)

            attempt_number += 1
            if not repair_next:
                transport_attempts += 1
            pending.transition(
                CallState.DISPATCHED if pending.state is CallState.IDLE else CallState.RETRYING
            )
            set_attempt_context(provider.provider_id, attempt_number)

            attempt = await self._attempt(
                provider, payload, params, attempt_number, deadline, repair=repair_next
            )
            repair_next = False
            outcome = attempt.outcome

            if isinstance(outcome, Success):
                try:
                    content = self._validator.validate(outcome.raw_output)
                except ValidationError as e:
                    self._record(pending, attempt.model_copy(update={
                        "outcome": RetryableFailure(failure_class="invalid_output", reason=str(e)),
                    }), valid=False, raw=attempt)
                    logger.warning(
                        "%s attempt %d returned invalid output: %s",
                        provider.provider_id, attempt_number, e,
                    )
                    if repairs_used < self._repair_budget:
                        repairs_used += 1
                        repair_next = True
                        continue
                    return None
                self._record(pending, attempt)
                logger.info(
                    "%s succeeded on attempt %d (%d ms)",
                    provider.provider_id, attempt_number, attempt.latency_ms,
                )
                return content

            self._record(pending, attempt)

            if isinstance(outcome, FatalFailure):
                logger.warning(
                    "%s fatal failure (%s): %s",
                    provider.provider_id, outcome.failure_class, outcome.reason,
                )
                return None

            retryable_streak += 1
            if transport_attempts >= self._max_attempts:
                logger.warning(
                    "%s exhausted %d attempt(s), last: %s",
                    provider.provider_id, transport_attempts, outcome.failure_class,
                )
                return None

            delay = self._backoff.delay_for(retryable_streak - 1)
            if time.monotonic() + delay >= deadline:
                raise _Stop("overall_timeout")
            logger.info(
                "%s %s (attempt %d/%d), retrying in %.2fs",
                provider.provider_id, outcome.failure_class,
                transport_attempts, self._max_attempts, delay,
            )
            await self._pause(pending, delay)

    async def _pause(self, pending: PendingCall, delay: float) -> None:
        """Backoff sleep, cut short when the last caller withdraws."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        watcher = asyncio.ensure_future(pending.wait_abandoned())
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            watcher.cancel()

    def _check_can_start(self, pending: PendingCall, deadline: float) -> None:
        """Suspension-point checks before starting a new attempt."""
        if pending.abandoned:
            # Retired in the same step, so no later caller can join a dying call.
            self._retire(pending)
            raise _Stop("abandoned")
        if time.monotonic() >= deadline:
            raise _Stop("overall_timeout")

    async def _attempt(
        self,
        provider: BaseLLMClient,
        payload: PromptPayload,
        params: GenerationParameters,
        attempt_number: int,
        deadline: float,
        repair: bool = False,
    ) -> ProviderAttempt:
        """One provider call bounded by the per-attempt and overall deadlines."""
        remaining = deadline - time.monotonic()
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=max(remaining, 0))
        except asyncio.TimeoutError:
            raise _Stop("overall_timeout") from None

        try:
            remaining = deadline - time.monotonic()
            timeout = min(self._per_attempt_timeout_s, remaining)
            if timeout <= 0:
                raise _Stop("overall_timeout")
            start = time.monotonic()
            try:
                attempt = await asyncio.wait_for(
                    provider.send(payload, params, attempt_number), timeout=timeout
                )
            except asyncio.TimeoutError:
                # Recorded like any retryable failure; the deadline check before
                # the next attempt ends the call if the overall budget is gone.
                attempt = ProviderAttempt(
                    provider=provider.provider_id,
                    attempt_number=attempt_number,
                    outcome=RetryableFailure(
                        failure_class="timeout",
                        reason=f"no response within {timeout:.1f}s",
                    ),
                    latency_ms=int((time.monotonic() - start) * 1000),
                )
        finally:
            self._slots.release()

        if repair:
            attempt = attempt.model_copy(update={"repair": True})
        return attempt

    def _record(
        self,
        pending: PendingCall,
        attempt: ProviderAttempt,
        valid: bool = True,
        raw: ProviderAttempt | None = None,
    ) -> None:
        pending.attempts.append(attempt)
        if self._call_logger is not None:
            self._call_logger.record(pending.fingerprint.key, raw or attempt, valid=valid)
