# src/pipeline/state.py — v3
"""In-flight request state: CallState machine and PendingCall.

A PendingCall is the single shared outcome slot for one fingerprint. Every
caller that asks for the same fingerprint while it is in flight awaits the
same future and observes the same result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from neuroadapt.cache.models import Fingerprint
    from neuroadapt.core.models import AdaptedContent
    from neuroadapt.llm.models import ProviderAttempt

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    """Lifecycle of one fingerprint's orchestration."""

    IDLE = "idle"
    DISPATCHED = "dispatched"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.IDLE: frozenset({CallState.DISPATCHED, CallState.FAILED}),
    CallState.DISPATCHED: frozenset(
        {CallState.RETRYING, CallState.SUCCEEDED, CallState.FAILED}
    ),
    CallState.RETRYING: frozenset(
        {CallState.RETRYING, CallState.SUCCEEDED, CallState.FAILED}
    ),
    CallState.SUCCEEDED: frozenset(),
    CallState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Raised on a state change the machine does not allow."""


def _consume_exception(future: asyncio.Future) -> None:
    # Abandoned calls may fail with nobody awaiting; mark the error retrieved.
    if not future.cancelled():
        future.exception()


class PendingCall:
    """Shared in-flight computation for one fingerprint."""

    def __init__(self, fingerprint: Fingerprint) -> None:
        self.fingerprint = fingerprint
        self.state = CallState.IDLE
        self.attempts: list[ProviderAttempt] = []
        self.task: asyncio.Task | None = None
        self.created_at = time.monotonic()
        self._waiters = 0
        self._all_left = asyncio.Event()
        self._all_left.set()
        self._future: asyncio.Future[AdaptedContent] = (
            asyncio.get_running_loop().create_future()
        )
        self._future.add_done_callback(_consume_exception)

    @property
    def future(self) -> asyncio.Future[AdaptedContent]:
        return self._future

    @property
    def waiters(self) -> int:
        return self._waiters

    @property
    def abandoned(self) -> bool:
        """True once every caller has withdrawn."""
        return self._waiters == 0

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def joinable(self) -> bool:
        """Whether a new caller may still share this call's outcome.

        A failed call only delivers its error to the callers that were
        already waiting; later callers start over.
        """
        return not self.done and self.state is not CallState.FAILED

    def join(self) -> None:
        self._waiters += 1
        self._all_left.clear()

    def leave(self) -> None:
        self._waiters = max(0, self._waiters - 1)
        if self._waiters == 0:
            self._all_left.set()

    async def wait_abandoned(self) -> None:
        """Return once every caller has withdrawn."""
        await self._all_left.wait()

    def transition(self, new_state: CallState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} → {new_state.value}")
        logger.debug(
            "Call %s: %s → %s", self.fingerprint.short, self.state.value, new_state.value
        )
        self.state = new_state

    def resolve(self, content: AdaptedContent) -> None:
        if not self._future.done():
            self._future.set_result(content)

    def reject(self, error: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(error)
