from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from apiprobe.config import RunConfiguration, configuration_from_mapping, load_run_configuration
from apiprobe.engine import ApiTestEngine
from apiprobe.errors import ApiProbeError
from apiprobe.loader import load_endpoint_list, load_test_cases
from apiprobe.models import TestCase
from apiprobe.request_builder import build_request, to_curl
from apiprobe.result_exporter import ResultExporter
from apiprobe.result_summary import build_summary
from apiprobe.run_state import RunStatus
from apiprobe.scheduler import OutcomeEvent, RunFinished

EXIT_OK = 0
EXIT_STOPPED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="apiprobe")
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every request")
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Execute test cases against a live server")
    run.add_argument("cases", help="JSON/YAML test case file, or an endpoint list (.txt)")
    _add_run_options(run)
    run.add_argument("--output", help="Directory for a JSON run report")

    methods = subparsers.add_parser("methods", help="Discover methods of endpoints via OPTIONS")
    methods.add_argument("cases", help="Endpoint list or test case file")
    _add_run_options(methods)

    curl = subparsers.add_parser("curl", help="Print cURL commands for test cases")
    curl.add_argument("cases", help="Endpoint list or test case file")
    _add_run_options(curl)
    return parser


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--base-url", help="Target base URL")
    parser.add_argument("--config", help="YAML run configuration")
    parser.add_argument("--workers", type=int)
    parser.add_argument("--delay", type=int, help="Delay between requests per worker (ms)")
    parser.add_argument("--timeout", type=int, help="Request timeout (ms)")
    parser.add_argument("--header", action="append", default=[], help="Custom header 'Key: Value' (repeatable)")
    parser.add_argument("--random", action="store_true", default=None, help="Fill unset variables with random values")
    parser.add_argument("--allow-delete", action="store_true", default=None, help="Include DELETE in all-methods runs")


def _configuration(args: argparse.Namespace) -> RunConfiguration:
    overrides = {
        "base_url": args.base_url,
        "workers": args.workers,
        "delay_between_requests": args.delay,
        "timeout": args.timeout,
        "custom_headers": args.header or None,
        "use_random_values": args.random,
        "allow_delete_in_all_methods": args.allow_delete,
    }
    if args.config:
        return load_run_configuration(args.config, **overrides)
    return configuration_from_mapping({}, **overrides)


def _load_cases(source: str) -> list[TestCase]:
    if Path(source).suffix.lower() in {".txt", ".lst", ""}:
        return load_endpoint_list(source)
    return load_test_cases(source)


def _run(args: argparse.Namespace) -> int:
    config = _configuration(args)
    cases = _load_cases(args.cases)
    engine = ApiTestEngine()
    outcomes = []
    planned = None
    status = RunStatus.STOPPED
    try:
        for event in engine.run_all(cases, config):
            if isinstance(event, OutcomeEvent):
                outcomes.append(event)
                print(_format_outcome(event), flush=True)
            elif isinstance(event, RunFinished):
                status = event.status
                planned = event.total
    except KeyboardInterrupt:
        engine.stop_all()
        status = RunStatus.STOPPED

    summary = build_summary(event.outcome for event in outcomes)
    print(
        f"{status.value}: {summary['total']} tested, "
        f"{summary['success']} responded, {summary['failure']} failed"
    )
    if args.output:
        exporter = ResultExporter(args.output)
        path = exporter.export(Path(args.cases).stem, config, status, outcomes, planned)
        print(f"report written to {path}")
    return EXIT_OK if status is RunStatus.COMPLETED else EXIT_STOPPED


def _format_outcome(event: OutcomeEvent) -> str:
    outcome = event.outcome
    if outcome.success:
        return f"{outcome.status:>3} {event.key.label()} ({outcome.response_time_ms} ms)"
    return f"ERR {event.key.label()} [{outcome.error_kind.value}] {outcome.error}"


def _methods(args: argparse.Namespace) -> int:
    config = _configuration(args)
    cases = _load_cases(args.cases)
    engine = ApiTestEngine()
    status = RunStatus.STOPPED
    try:
        for item in engine.determine_methods(cases, config):
            if isinstance(item, str):
                print(item, flush=True)
            else:
                status = item.status
    except KeyboardInterrupt:
        engine.stop_determine()
    return EXIT_OK if status is RunStatus.COMPLETED else EXIT_STOPPED


def _curl(args: argparse.Namespace) -> int:
    config = _configuration(args)
    for test_case in _load_cases(args.cases):
        print(to_curl(build_request(test_case, config)))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.version:
        from . import __version__

        print(__version__)
        return EXIT_OK
    if not args.command:
        parser.print_help()
        return EXIT_OK

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    handlers = {"run": _run, "methods": _methods, "curl": _curl}
    try:
        return handlers[args.command](args)
    except ApiProbeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
