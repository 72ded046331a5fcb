# src/tracking/call_logger.py — v2
"""Provider attempt logging — records every dispatch for usage tracking.

Writes AttemptRecord entries for post-run analysis.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from neuroadapt.llm.models import FatalFailure, ProviderAttempt, Success
from neuroadapt.tracking.models import AttemptRecord, ProviderUsage

logger = logging.getLogger(__name__)


class CallLogger:
    """Accumulates provider attempt records."""

    def __init__(self) -> None:
        self._records: list[AttemptRecord] = []

    def record(
        self,
        fingerprint: str,
        attempt: ProviderAttempt,
        valid: bool = True,
    ) -> AttemptRecord:
        """Record a provider attempt.

        Args:
            fingerprint: Cache key of the request the attempt served.
            attempt: Classified attempt.
            valid: For successful attempts, whether the output validated.

        Returns:
            The recorded AttemptRecord.
        """
        outcome = attempt.outcome
        failure_class: str | None = None
        if isinstance(outcome, Success):
            status = "success" if valid else "invalid_output"
            if not valid:
                failure_class = "invalid_output"
        elif isinstance(outcome, FatalFailure):
            status = "fatal"
            failure_class = outcome.failure_class
        else:
            status = "retryable"
            failure_class = outcome.failure_class

        record = AttemptRecord(
            call_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            fingerprint=fingerprint,
            provider=attempt.provider,
            model=outcome.model if isinstance(outcome, Success) else "",
            attempt_number=attempt.attempt_number,
            status=status,
            failure_class=failure_class,
            repair=attempt.repair,
            input_tokens=outcome.input_tokens if isinstance(outcome, Success) else 0,
            output_tokens=outcome.output_tokens if isinstance(outcome, Success) else 0,
            latency_ms=attempt.latency_ms,
        )
        self._records.append(record)
        return record

    @property
    def records(self) -> list[AttemptRecord]:
        """All recorded attempts."""
        return list(self._records)

    @property
    def total_calls(self) -> int:
        """Total number of provider attempts."""
        return len(self._records)

    def calls_for(self, fingerprint: str) -> list[AttemptRecord]:
        """Attempts issued on behalf of one fingerprint."""
        return [r for r in self._records if r.fingerprint == fingerprint]

    def usage_by_provider(self) -> dict[str, ProviderUsage]:
        """Aggregate attempts per provider."""
        usage: dict[str, ProviderUsage] = {}
        latencies: dict[str, list[int]] = {}
        for r in self._records:
            u = usage.setdefault(r.provider, ProviderUsage(provider=r.provider))
            u.total_attempts += 1
            u.total_input_tokens += r.input_tokens
            u.total_output_tokens += r.output_tokens
            if r.status == "success":
                u.successes += 1
            elif r.status == "fatal":
                u.fatal_failures += 1
            elif r.status == "invalid_output":
                u.invalid_outputs += 1
            else:
                u.retryable_failures += 1
            latencies.setdefault(r.provider, []).append(r.latency_ms)
        for provider, values in latencies.items():
            usage[provider].avg_latency_ms = sum(values) / len(values)
        return usage

    def save(self, path: Path) -> None:
        """Save all records to a JSON Lines file."""
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            for record in self._records:
                f.write(json.dumps(record.model_dump(), default=str) + "\n")
        logger.debug("Saved %d attempt records to %s", len(self._records), path)
