# src/main.py — v2
"""CLI entry point — adapt, fingerprint, render commands.

Usage:
    neuroadapt adapt <request.json> [options]
    neuroadapt fingerprint <request.json>
    neuroadapt render <request.json>

The request file holds one AdaptationRequest as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from neuroadapt.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="neuroadapt",
        description=f"neuroadapt v{__version__} - Adaptive assignment generation",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- adapt ---
    p_adapt = subparsers.add_parser(
        "adapt", help="Adapt one assignment for a learner profile",
    )
    p_adapt.add_argument("request", type=Path, help="Path to request JSON")
    p_adapt.add_argument(
        "-p", "--provider", action="append", default=None,
        help="Provider (provider or provider:model); repeat to set fallback order",
    )
    p_adapt.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Write the adapted content to this file (default: stdout)",
    )
    p_adapt.add_argument(
        "--no-cache", action="store_true",
        help="Bypass the result cache",
    )
    p_adapt.set_defaults(func=_cmd_adapt)

    # --- fingerprint ---
    p_fp = subparsers.add_parser(
        "fingerprint", help="Print the cache key of a request",
    )
    p_fp.add_argument("request", type=Path, help="Path to request JSON")
    p_fp.set_defaults(func=_cmd_fingerprint)

    # --- render ---
    p_render = subparsers.add_parser(
        "render", help="Print the prompt a request would send",
    )
    p_render.add_argument("request", type=Path, help="Path to request JSON")
    p_render.set_defaults(func=_cmd_render)

    return parser


async def _cmd_adapt(args: argparse.Namespace) -> int:
    """Run one adaptation and print the result as JSON."""
    from neuroadapt.api.facade import AdaptationPipeline
    from neuroadapt.config.settings import load_settings

    request = _load_request(args.request)
    if request is None:
        return 1
    if args.provider:
        params = request.parameters.model_copy(
            update={"provider_preference_order": tuple(args.provider)}
        )
        request = request.model_copy(update={"parameters": params})

    overrides = {"cache_enabled": False} if args.no_cache else {}
    settings = load_settings(**overrides)

    async with AdaptationPipeline(settings=settings) as pipeline:
        result = await pipeline.adapt_safely(request)

    if not result.ok:
        logger.error("%s", result.failure.message)
        print(result.model_dump_json(indent=2))
        return 2

    output = result.content.model_dump_json(indent=2)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output + "\n", encoding="utf-8")
        logger.info("Wrote %d sections to %s", len(result.content.sections), args.output)
    else:
        print(output)
    return 0


async def _cmd_fingerprint(args: argparse.Namespace) -> int:
    """Print the fingerprint key of a request."""
    from neuroadapt.cache.fingerprint import compute_fingerprint

    request = _load_request(args.request)
    if request is None:
        return 1
    print(compute_fingerprint(request).key)
    return 0


async def _cmd_render(args: argparse.Namespace) -> int:
    """Print the rendered prompt payload of a request."""
    from neuroadapt.pipeline.errors import ValidationError
    from neuroadapt.prompts.engine import render

    request = _load_request(args.request)
    if request is None:
        return 1
    try:
        payload = render(request.profile, request.assignment, request.context)
    except ValidationError as e:
        logger.error("Cannot render prompt: %s", e)
        return 1
    print(payload.model_dump_json(indent=2))
    return 0


def _load_request(path: Path):
    """Parse an AdaptationRequest from a JSON file, or None on error."""
    from neuroadapt.core.models import AdaptationRequest

    if not path.exists():
        logger.error("File not found: %s", path)
        return None
    try:
        return AdaptationRequest.model_validate(
            json.loads(path.read_text(encoding="utf-8"))
        )
    except (json.JSONDecodeError, PydanticValidationError) as e:
        logger.error("Invalid request file %s: %s", path, e)
        return None


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from neuroadapt.logging.logger import setup_logging

    setup_logging(level="DEBUG" if verbose else "INFO", log_format="text")
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
