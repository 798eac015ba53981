from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, cast

from genai_connector.error_classifier import TransportFailure, classify_outcome
from genai_connector.errors import NoEligibleModelError
from genai_connector.provider import GenAIServiceProvider
from genai_connector.settings import Settings
from genai_connector.utils.document_utils import dump_document, load_document_dict


def _build_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.binding_name:
        overrides["binding_name"] = args.binding_name
    if args.allow_insecure_http:
        overrides["allow_insecure_http"] = True
    if args.timeout_seconds is not None:
        overrides["discovery_timeout_seconds"] = args.timeout_seconds
    return Settings(**overrides)


def _load_service_catalog(args: argparse.Namespace) -> dict[str, Any] | None:
    if not args.service_catalog_file:
        return None
    path = Path(args.service_catalog_file)
    return load_document_dict(
        path, error_message=f"Expected a service catalog object in '{path}'."
    )


def _build_provider(args: argparse.Namespace) -> GenAIServiceProvider:
    return GenAIServiceProvider.from_settings(
        _build_settings(args),
        service_catalog=_load_service_catalog(args),
    )


def cmd_resolve(args: argparse.Namespace) -> int:
    provider = _build_provider(args)
    payload = provider.credentials.redacted()
    payload["openai_base_url"] = provider.openai_base_url
    asyncio.run(provider.aclose())
    print(dump_document(payload))
    return 0


async def _collect_models(
    provider: GenAIServiceProvider, *, include_all: bool
) -> list[dict[str, Any]]:
    async with provider:
        models = await provider.list_models(include_all=include_all)
        try:
            default: str | None = await provider.resolve_model()
        except NoEligibleModelError:
            default = None
    return [
        {
            "name": model.name,
            "capabilities": sorted(model.capabilities),
            **({"aliases": list(model.aliases)} if model.aliases else {}),
            **({"default": True} if model.name == default else {}),
        }
        for model in models
    ]


def cmd_models(args: argparse.Namespace) -> int:
    provider = _build_provider(args)
    rows = asyncio.run(_collect_models(provider, include_all=args.all))
    print(dump_document({"models": rows}))
    return 0


def _parse_outcome(raw: str) -> int | TransportFailure:
    normalized = raw.strip().lower()
    for failure in TransportFailure:
        if normalized == failure.value:
            return failure
    try:
        return int(normalized)
    except ValueError as exc:
        choices = ", ".join(failure.value for failure in TransportFailure)
        raise ValueError(
            f"Expected an HTTP status or one of: {choices}; got '{raw}'"
        ) from exc


def cmd_classify(args: argparse.Namespace) -> int:
    error = classify_outcome(
        _parse_outcome(args.outcome),
        args.body or "",
        retry_after=args.retry_after,
    )
    policy = error.retry_policy
    payload: dict[str, Any] = {
        "error": type(error).__name__,
        "retryable": error.retryable,
        "max_attempts": policy.max_attempts,
    }
    retry_after_seconds = getattr(error, "retry_after_seconds", None)
    if retry_after_seconds is not None:
        payload["retry_after_seconds"] = retry_after_seconds
    if policy.retryable:
        payload["backoff_seconds"] = [
            policy.backoff_delay(attempt)
            for attempt in range(1, policy.max_attempts + 1)
        ]
    print(dump_document(payload))
    return 0


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--service-catalog-file",
        help="YAML or JSON service catalog (defaults to VCAP_SERVICES).",
    )
    parser.add_argument("--binding-name", help="Select a binding by exact name.")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Accept plain http endpoints (local testing only).",
    )
    parser.add_argument("--timeout-seconds", type=float, default=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genai-connector",
        description="Credential and model diagnostics for Tanzu AI Services bindings.",
    )
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_cmd = subparsers.add_parser(
        "resolve", help="Resolve and print redacted credentials."
    )
    _add_source_arguments(resolve_cmd)
    resolve_cmd.set_defaults(handler=cmd_resolve)

    models_cmd = subparsers.add_parser(
        "models", help="Discover models available to the binding."
    )
    _add_source_arguments(models_cmd)
    models_cmd.add_argument(
        "--all",
        action="store_true",
        help="Include models without chat or tools capabilities.",
    )
    models_cmd.set_defaults(handler=cmd_models)

    classify_cmd = subparsers.add_parser(
        "classify", help="Classify an HTTP status or transport failure."
    )
    classify_cmd.add_argument("outcome")
    classify_cmd.add_argument("--body", default="")
    classify_cmd.add_argument("--retry-after")
    classify_cmd.set_defaults(handler=cmd_classify)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )
    handler = cast(Callable[[argparse.Namespace], int], args.handler)

    try:
        return handler(args)
    except Exception as exc:  # pragma: no cover - covered via CLI tests
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    raise SystemExit(main())
