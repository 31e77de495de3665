"""CLI entry point for sending callouts.

Usage:
    python -m callouts send https://api.example.com/v1/health
    python -m callouts send callout:orders_api/v1/orders --method POST --data '{"id": 1}' --config callouts.yaml
    python -m callouts check-config callouts.yaml

Exit codes:
    0 - the callout succeeded (or the config is valid)
    1 - the callout failed after retries
    2 - configuration error (insecure target, unknown credential, bad config)
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from callouts.lib.config_loader import CalloutSettings, load_settings
from callouts.lib.errors import CalloutError
from callouts.lib.logging import setup_logging
from callouts.lib.mock_transport import MockTransport
from callouts.lib.models import CalloutRequest
from callouts.lib.observability import CalloutRecorder
from callouts.lib.resilience import ResilienceWrapper
from callouts.lib.store import JsonlRecordStore
from callouts.lib.transport import HttpTransport, Transport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="callouts",
        description="Send resilient outbound HTTPS callouts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Send a GET with the default retry policy
    python -m callouts send https://api.example.com/v1/health

    # Go through a named credential defined in a config file
    python -m callouts send callout:orders_api/v1/orders --config callouts.yaml

    # Exercise retry behaviour without network access
    python -m callouts send https://mock.local/ratelimit --mock --attempts 3

    # Validate a config file
    python -m callouts check-config callouts.yaml
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    parser.add_argument("--log-file", help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Send one callout")
    send.add_argument("endpoint", help="https:// URL or callout:<name>/<path>")
    send.add_argument("--method", "-X", default="GET", help="HTTP method (default: GET)")
    send.add_argument("--data", "-d", help="Request body")
    send.add_argument(
        "--header",
        "-H",
        action="append",
        default=[],
        help="Extra header as 'Name: value' (repeatable)",
    )
    send.add_argument("--config", "-c", help="YAML config file")
    send.add_argument("--attempts", type=int, help="Override retry.max_attempts")
    send.add_argument("--timeout", type=float, help="Override timeout in seconds")
    send.add_argument("--log-path", help="Append attempt log entries to this JSONL file")
    send.add_argument("--mock", action="store_true", help="Use the built-in mock transport")

    check = subparsers.add_parser("check-config", help="Validate a config file")
    check.add_argument("config", help="YAML config file")

    return parser


def _parse_headers(values: List[str]) -> dict:
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise CalloutError(f"Invalid header '{value}'", suggestion="Use 'Name: value'")
        headers[name.strip()] = content.strip()
    return headers


def _cmd_send(args: argparse.Namespace) -> int:
    settings = load_settings(args.config) if args.config else CalloutSettings()
    if args.attempts is not None:
        settings.max_attempts = args.attempts
    if args.timeout is not None:
        settings.timeout = args.timeout
    log_path = args.log_path or settings.log_path

    request = CalloutRequest(
        endpoint=args.endpoint,
        method=args.method,
        headers=_parse_headers(args.header),
        body=args.data,
        timeout=settings.timeout,
    )

    recorder = None
    if log_path:
        recorder = CalloutRecorder(
            JsonlRecordStore(log_path), max_body_length=settings.max_body_length
        )

    transport: Transport
    if args.mock:
        transport = MockTransport()
        outcome = ResilienceWrapper(transport, recorder=recorder).execute(
            request, settings.retry_policy()
        )
    else:
        with HttpTransport(
            named_credentials=settings.build_registry(),
            rate_limiter=settings.build_rate_limiter(),
        ) as transport:
            outcome = ResilienceWrapper(transport, recorder=recorder).execute(
                request, settings.retry_policy()
            )

    status = outcome.status_code if outcome.status_code is not None else "-"
    print(f"status: {status}  error: {outcome.error.value}  attempts: {outcome.attempt}  "
          f"elapsed: {outcome.elapsed:.3f}s")
    if outcome.body:
        print(outcome.body)
    if not outcome.success and outcome.error_message:
        print(f"error: {outcome.error_message}", file=sys.stderr)
    return EXIT_OK if outcome.success else EXIT_FAILED


def _cmd_check_config(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    registry = settings.build_registry()
    policy = settings.retry_policy()
    print(f"Config OK: {args.config}")
    print(f"  retry: {policy.max_attempts} attempts, base delay {policy.base_delay}s")
    print(f"  dispatch: batch size {settings.batch_size}, {settings.max_workers} workers")
    for name in registry.names():
        print(f"  named credential: {name}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose, json_format=args.json_logs, log_file=args.log_file)

    try:
        if args.command == "send":
            return _cmd_send(args)
        return _cmd_check_config(args)
    except CalloutError as exc:
        logger.error("%s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
