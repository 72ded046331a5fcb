# src/api/facade.py — v2
"""Public API facade — single entry point for assignment adaptation.

Usage:
    async with AdaptationPipeline() as pipeline:
        content = await pipeline.adapt(request)

Data flow: fingerprint → cache lookup → (miss) prompt rendering →
orchestrator → provider adapters → validator → cache store → caller.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Callable, Mapping

from neuroadapt.api.models import AdaptationResult, FailureSummary
from neuroadapt.cache.cache_factory import create_cache_store
from neuroadapt.cache.fingerprint import compute_fingerprint
from neuroadapt.cache.result_cache import ResultCache
from neuroadapt.config.settings import Settings
from neuroadapt.pipeline.errors import ExhaustedError
from neuroadapt.pipeline.llm_factory import LLMFactory
from neuroadapt.pipeline.orchestrator import RequestOrchestrator
from neuroadapt.prompts.engine import render
from neuroadapt.tracking.call_logger import CallLogger

if TYPE_CHECKING:
    from neuroadapt.cache.models import CacheEntry, Fingerprint
    from neuroadapt.core.models import AdaptationRequest, AdaptedContent
    from neuroadapt.llm.base_client import BaseLLMClient
    from neuroadapt.prompts.models import PromptPayload

logger = logging.getLogger(__name__)


class AdaptationPipeline:
    """Fingerprint, cache, render, orchestrate and validate adaptations.

    Args:
        settings: Global settings. Loaded from .env if None.
        cache: Result cache. Built from settings if None; pass
            ResultCache(...) to share one between pipelines.
        clients: Pre-built provider clients keyed by "provider:model" or
            provider name (tests, custom providers).
        call_logger: Attempt tracker. A fresh one is created if None.
        orchestrator: Pre-built orchestrator (overrides settings-derived one).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: ResultCache | None = None,
        clients: Mapping[str, BaseLLMClient] | None = None,
        call_logger: CallLogger | None = None,
        orchestrator: RequestOrchestrator | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._call_logger = call_logger or CallLogger()

        if cache is None and self._settings.cache_enabled:
            cache = ResultCache(
                store=create_cache_store(self._settings),
                default_ttl_s=self._settings.cache_ttl_s,
            )
        self._cache = cache
        self._factory = LLMFactory(self._settings, clients=clients)
        self._orchestrator = orchestrator or RequestOrchestrator.from_settings(
            self._settings, cache=self._cache, call_logger=self._call_logger,
        )

    async def __aenter__(self) -> AdaptationPipeline:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def cache(self) -> ResultCache | None:
        return self._cache

    @property
    def call_logger(self) -> CallLogger:
        return self._call_logger

    @property
    def orchestrator(self) -> RequestOrchestrator:
        return self._orchestrator

    def fingerprint(self, request: AdaptationRequest) -> Fingerprint:
        return compute_fingerprint(request)

    def render_prompt(self, request: AdaptationRequest) -> PromptPayload:
        """Render the prompt a request would send (no provider call)."""
        return render(request.profile, request.assignment, request.context)

    async def adapt(self, request: AdaptationRequest) -> AdaptedContent:
        """Adapt an assignment for a learner.

        Returns:
            Validated AdaptedContent.

        Raises:
            ExhaustedError: All providers, attempts or time were spent.
            ValidationError: The assignment/context cannot be templated.
            asyncio.CancelledError: This caller was cancelled.
        """
        content, _ = await self._adapt(request)
        return content

    async def adapt_safely(self, request: AdaptationRequest) -> AdaptationResult:
        """Adapt, turning ExhaustedError into a renderer-facing FailureSummary."""
        fingerprint = compute_fingerprint(request)
        try:
            content, source = await self._adapt(request, fingerprint)
        except ExhaustedError as e:
            return AdaptationResult(
                fingerprint=fingerprint.key, failure=FailureSummary.from_error(e),
            )
        return AdaptationResult(
            fingerprint=fingerprint.key, content=content, from_cache=source == "cache",
        )

    async def invalidate(self, target: AdaptationRequest | Fingerprint) -> None:
        """Drop the cached result of one request or fingerprint."""
        if self._cache is None:
            return
        fingerprint = target if hasattr(target, "digest") else compute_fingerprint(target)
        await self._cache.invalidate(fingerprint)

    async def invalidate_where(self, predicate: Callable[[CacheEntry], bool]) -> int:
        """Drop every cached result matching predicate."""
        if self._cache is None:
            return 0
        return await self._cache.invalidate_where(predicate)

    async def aclose(self, drain_timeout_s: float | None = None) -> None:
        """Drain in-flight calls, persist the attempt log, close the cache."""
        await self._orchestrator.aclose(drain_timeout_s)
        if self._settings.call_log_file is not None:
            self._call_logger.save(self._settings.call_log_file)
        if self._cache is not None:
            await self._cache.close()

    async def _adapt(
        self,
        request: AdaptationRequest,
        fingerprint: Fingerprint | None = None,
    ) -> tuple[AdaptedContent, str]:
        fingerprint = fingerprint or compute_fingerprint(request)
        providers = self._factory.clients_for(request.parameters)
        content, source = await self._orchestrator.submit_with_source(
            fingerprint,
            partial(render, request.profile, request.assignment, request.context),
            request.parameters,
            providers,
            request_id=request.request_id,
        )
        logger.info(
            "Adaptation %s served (%s, %d sections)",
            fingerprint.short, source, len(content.sections),
        )
        return content, source
