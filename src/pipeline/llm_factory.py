# src/pipeline/llm_factory.py — v2
"""LLM factory — turns a provider preference order into client instances.

Resolves the order via llm.config (request → settings → fallback) and
instantiates the matching adapters. Clients are cached by provider:model so
requests sharing a provider reuse one instance.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping

from neuroadapt.llm.client_factory import UnsupportedProviderError, create_from_assignment
from neuroadapt.llm.config import LLMAssignment, resolve_preference_order

if TYPE_CHECKING:
    from neuroadapt.config.settings import Settings
    from neuroadapt.core.models import GenerationParameters
    from neuroadapt.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


class LLMFactory:
    """Create and cache LLM clients per provider assignment.

    Args:
        settings: Application settings (API keys, default order).
        clients: Pre-built clients keyed by "provider:model" or bare provider
            name. Checked before any adapter is instantiated.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        clients: Mapping[str, BaseLLMClient] | None = None,
    ) -> None:
        self._settings = settings
        self._clients: dict[str, BaseLLMClient] = dict(clients or {})

    def get_client(self, assignment: LLMAssignment) -> BaseLLMClient:
        """Get or create the client for one assignment."""
        for key in (assignment.key, assignment.provider):
            if key in self._clients:
                return self._clients[key]

        client = create_from_assignment(assignment, self._settings)
        self._clients[assignment.key] = client
        logger.info(
            "Created LLM client %s (source: %s)", assignment.key, assignment.source
        )
        return client

    def clients_for(self, params: GenerationParameters | None) -> list[BaseLLMClient]:
        """Ordered clients for a request's provider preference order.

        Unknown providers are skipped with a warning.

        Raises:
            UnsupportedProviderError: If no provider in the order can be built.
        """
        assignments = resolve_preference_order(params, self._settings)
        clients: list[BaseLLMClient] = []
        for assignment in assignments:
            try:
                clients.append(self.get_client(assignment))
            except UnsupportedProviderError as e:
                logger.warning("Skipping provider %s: %s", assignment.key, e)
        if not clients:
            raise UnsupportedProviderError(
                "No usable provider in preference order: "
                + ", ".join(a.key for a in assignments)
            )
        return clients

    def __call__(self, params: GenerationParameters | None) -> list[BaseLLMClient]:
        return self.clients_for(params)
