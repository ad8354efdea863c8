"""CLI entry point for http-replace.

Handles argument parsing and dispatches to run, probe, or list-rules mode.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from http_replace.config_loader import (
    ConfigError,
    TransportConfig,
    build_transport,
    get_rule,
    load_rule_json,
    load_runtime_config,
)
from http_replace.diagnostics import FanOutSink, LoggingSink, MemorySink
from http_replace.executor import RuleExecutor
from http_replace.models import PostEncoding, ReplaceRule

DEFAULT_TIMEOUT = 30.0


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse NAME:VALUE format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if ":" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected NAME:VALUE (e.g., 'Authorization:Bearer x')"
        )
    name, header_value = value.split(":", 1)
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Invalid header '{value}'. Name cannot be empty.")
    return (name, header_value.strip())


def parse_param(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid param '{value}'. Expected KEY=VALUE (e.g., 'lang=en')"
        )
    key, param_value = value.split("=", 1)
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid param '{value}'. Key cannot be empty.")
    return (key, param_value)


@dataclass
class RuleSource:
    """Where the rule comes from: a config file, a JSON file, or inline flags."""

    config: Path | None = None
    rule_name: str | None = None
    rule_file: Path | None = None
    url: str | None = None
    method: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    json_path: str | None = None
    post_encoding: PostEncoding = PostEncoding.JSON


@dataclass
class RunArgs:
    """Parsed arguments for run mode."""

    source: RuleSource
    text: str | None
    text_file: Path | None
    timeout: float | None
    verbose: bool


@dataclass
class ProbeArgs(RunArgs):
    """Parsed arguments for probe mode."""

    show_trace: bool = False


@dataclass
class ListRulesArgs:
    """Parsed arguments for list-rules mode."""

    config: Path


def _add_rule_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by run and probe."""
    rule_group = parser.add_argument_group("rule")
    rule_group.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to runtime configuration file (YAML)",
    )
    rule_group.add_argument(
        "--rule",
        type=str,
        default=None,
        dest="rule_name",
        help="Name of a rule in --config",
    )
    rule_group.add_argument(
        "--rule-file",
        type=Path,
        default=None,
        help="Path to a single rule stored as JSON",
    )
    rule_group.add_argument("--url", type=str, default=None, help="Target URL")
    rule_group.add_argument(
        "--method",
        type=str,
        default=None,
        help="GET or POST (default: POST)",
    )
    rule_group.add_argument(
        "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Request header (can be repeated)",
    )
    rule_group.add_argument(
        "--param",
        type=parse_param,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra request parameter (can be repeated)",
    )
    rule_group.add_argument(
        "--json-path",
        type=str,
        default=None,
        help="JSONPath applied to the response body",
    )
    rule_group.add_argument(
        "--post-encoding",
        type=str,
        choices=[encoding.value for encoding in PostEncoding],
        default=None,
        help="POST body encoding: json (default) or form",
    )

    text_group = parser.add_mutually_exclusive_group(required=True)
    text_group.add_argument("--text", type=str, default=None, help="Text to replace")
    text_group.add_argument(
        "--text-file",
        type=Path,
        default=None,
        help="Read the text to replace from a file",
    )

    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help=f"Request timeout in seconds (default: config value or {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every pipeline stage to stderr",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with run, probe, and list-rules subcommands."""
    parser = argparse.ArgumentParser(
        prog="http-replace",
        description="Replace text by sending it to an HTTP endpoint described by a rule.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    run_parser = subparsers.add_parser(
        "run",
        help="Execute a rule and print the replaced text",
    )
    _add_rule_arguments(run_parser)

    probe_parser = subparsers.add_parser(
        "probe",
        help="Execute a rule and print the request, response, and result",
    )
    _add_rule_arguments(probe_parser)
    probe_parser.add_argument(
        "--show-trace",
        action="store_true",
        help="Print the diagnostic entries after the report",
    )

    list_rules_parser = subparsers.add_parser(
        "list-rules",
        help="List the rules defined in a config file",
    )
    list_rules_parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to runtime configuration file (YAML)",
    )

    return parser


def _parse_rule_source(
    namespace: argparse.Namespace, parser: argparse.ArgumentParser
) -> RuleSource:
    inline = namespace.url is not None
    named = namespace.rule_name is not None
    from_file = namespace.rule_file is not None

    if sum([inline, named, from_file]) != 1:
        parser.error("Specify exactly one of --rule (with --config), --rule-file, or --url")
    if named and namespace.config is None:
        parser.error("--rule requires --config")
    if not inline:
        inline_only = [
            flag
            for flag, value in (
                ("--method", namespace.method),
                ("--header", namespace.header),
                ("--param", namespace.param),
                ("--json-path", namespace.json_path),
                ("--post-encoding", namespace.post_encoding),
            )
            if value
        ]
        if inline_only:
            parser.error(f"{', '.join(inline_only)} can only be used with --url")

    return RuleSource(
        config=namespace.config,
        rule_name=namespace.rule_name,
        rule_file=namespace.rule_file,
        url=namespace.url,
        method=namespace.method,
        headers=dict(namespace.header),
        params=dict(namespace.param),
        json_path=namespace.json_path,
        post_encoding=PostEncoding(namespace.post_encoding or PostEncoding.JSON.value),
    )


def parse_run_args(
    namespace: argparse.Namespace, parser: argparse.ArgumentParser
) -> RunArgs:
    """Convert namespace to RunArgs."""
    return RunArgs(
        source=_parse_rule_source(namespace, parser),
        text=namespace.text,
        text_file=namespace.text_file,
        timeout=namespace.timeout,
        verbose=namespace.verbose,
    )


def parse_probe_args(
    namespace: argparse.Namespace, parser: argparse.ArgumentParser
) -> ProbeArgs:
    """Convert namespace to ProbeArgs."""
    return ProbeArgs(
        source=_parse_rule_source(namespace, parser),
        text=namespace.text,
        text_file=namespace.text_file,
        timeout=namespace.timeout,
        verbose=namespace.verbose,
        show_trace=namespace.show_trace,
    )


def parse_list_rules_args(namespace: argparse.Namespace) -> ListRulesArgs:
    """Convert namespace to ListRulesArgs."""
    return ListRulesArgs(config=namespace.config)


def parse_args(args: list[str] | None = None) -> RunArgs | ProbeArgs | ListRulesArgs:
    """Parse command line arguments."""
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "run":
        return parse_run_args(namespace, parser)
    elif namespace.command == "probe":
        return parse_probe_args(namespace, parser)
    else:
        return parse_list_rules_args(namespace)


def dispatch(parsed: RunArgs | ProbeArgs | ListRulesArgs) -> int:
    """Run the mode matching the parsed arguments."""
    if isinstance(parsed, ListRulesArgs):
        return run_list_rules(parsed)
    elif isinstance(parsed, ProbeArgs):
        return run_probe(parsed)
    else:
        return run_run(parsed)


def main() -> int:
    """Main entry point."""
    try:
        return dispatch(parse_args())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def configure_logging(verbose: bool) -> None:
    """Send http_replace log records to stderr."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def resolve_rule(source: RuleSource) -> tuple[ReplaceRule, TransportConfig]:
    """Build the rule and transport settings described by source.

    Raises:
        ConfigError: If a config or rule file cannot be loaded.
    """
    transport_config = TransportConfig()
    if source.config is not None:
        runtime_config = load_runtime_config(source.config)
        transport_config = runtime_config.transport
        if source.rule_name is not None:
            return get_rule(runtime_config, source.rule_name), transport_config

    if source.rule_file is not None:
        return load_rule_json(source.rule_file), transport_config

    rule = ReplaceRule(
        url=source.url or "",
        method=source.method,
        headers=json.dumps(source.headers) if source.headers else None,
        params=json.dumps(source.params) if source.params else None,
        json_path=source.json_path,
        post_encoding=source.post_encoding,
    )
    return rule, transport_config


def _read_text(args: RunArgs) -> str:
    if args.text_file is not None:
        try:
            return args.text_file.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read text file: {e}") from e
    return args.text or ""


def _prepare(args: RunArgs) -> tuple[ReplaceRule, TransportConfig, str]:
    rule, transport_config = resolve_rule(args.source)
    if args.timeout is not None:
        transport_config = transport_config.model_copy(update={"timeout": args.timeout})
    return rule, transport_config, _read_text(args)


def run_run(args: RunArgs) -> int:
    """Run mode: print the replaced text, or exit 1 if there is none."""
    configure_logging(args.verbose)

    try:
        rule, transport_config, text = _prepare(args)
    except ConfigError as e:
        print(f"Error loading rule: {e}", file=sys.stderr)
        return 1

    with build_transport(transport_config) as transport:
        result = RuleExecutor(transport, sink=LoggingSink()).execute(rule, text)

    if result is None:
        print("No result (rerun with --verbose for details)", file=sys.stderr)
        return 1
    print(result)
    return 0


def run_probe(args: ProbeArgs) -> int:
    """Probe mode: print the request, response, and result of one invocation."""
    configure_logging(args.verbose)

    try:
        rule, transport_config, text = _prepare(args)
    except ConfigError as e:
        print(f"Error loading rule: {e}", file=sys.stderr)
        return 1

    memory = MemorySink()
    with build_transport(transport_config) as transport:
        executor = RuleExecutor(transport, sink=FanOutSink(LoggingSink(), memory))
        report = executor.probe(rule, text)

    print(report.render())
    if args.show_trace:
        print()
        for entry in memory.for_trace(report.trace_id):
            print(entry)
    return 0 if report.ok else 1


def run_list_rules(args: ListRulesArgs) -> int:
    """List-rules mode: print each rule with its method and URL."""
    try:
        config = load_runtime_config(args.config)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    for name in sorted(config.rules):
        rule = config.rules[name]
        print(f"{name}")
        print(f"  {rule.method.value} {rule.url or '<no url>'}")
        if rule.extraction_path:
            print(f"  jsonPath: {rule.extraction_path}")
        print()

    print(f"Total: {len(config.rules)} rules")
    return 0


if __name__ == "__main__":
    sys.exit(main())
