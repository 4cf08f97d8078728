"""CLI entry point: llm-intercept."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from ..config import load_config, validate_config
from ..correlation import build_correlation_table
from ..formats import detect_format
from ..logging_setup import configure_logging


def _read_json(path: str):
    return json.loads(Path(path).read_text())


def cmd_inspect(args):
    """Detect the format of a request body file and list its tool outputs."""
    try:
        body = _read_json(args.file)
    except (OSError, ValueError) as e:
        print(f"Error reading {args.file}: {e}", file=sys.stderr)
        sys.exit(1)

    fmt = detect_format(body)
    if fmt is None:
        print("No supported request format detected.", file=sys.stderr)
        sys.exit(1)

    turns = fmt.get_turns(body) or []

    correlation = None
    if args.transcript:
        try:
            transcript = _read_json(args.transcript)
        except (OSError, ValueError) as e:
            print(f"Error reading {args.transcript}: {e}", file=sys.stderr)
            sys.exit(1)
        if isinstance(transcript, dict):
            transcript = transcript.get("data", [])
        correlation = build_correlation_table(transcript)

    outputs = fmt.extract_tool_outputs(turns, correlation)
    report = {
        "format": fmt.name,
        "metadata": fmt.log_metadata(turns, args.url),
        "has_tool_outputs": fmt.has_tool_outputs(turns),
        "tool_outputs": [asdict(o) for o in outputs],
    }
    if correlation is not None:
        report["correlation"] = correlation
    print(json.dumps(report, indent=2))


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Config is valid.")
        print(f"  Enabled: {config.enabled}")
        print(f"  Debug log: {config.resolved_log_dir() if config.debug else 'off'}")
        print(f"  Correlation providers: {', '.join(config.correlation_providers) or '-'}")
        print(f"  Session API: {config.session_api or '-'}")


def cmd_proxy(args):
    """Start the intercepting HTTP proxy."""
    try:
        import uvicorn
        from ..proxy import create_app
    except ImportError:
        print("Run: pip install fastapi uvicorn", file=sys.stderr)
        sys.exit(1)

    config = load_config(config_path=args.config)
    configure_logging(config)

    upstream = args.upstream or config.proxy.upstream
    if not upstream:
        print(
            "Error: --upstream is required (or set proxy.upstream in config)",
            file=sys.stderr,
        )
        sys.exit(1)
    host = args.host or config.proxy.host
    port = args.port or config.proxy.port

    app = create_app(upstream=upstream, config=config)
    print(f"llm-intercept proxy on {host}:{port} -> {upstream}")
    uvicorn.run(
        app, host=host, port=port, log_level="info",
        timeout_graceful_shutdown=2,
    )


def main():
    parser = argparse.ArgumentParser(
        prog="llm-intercept",
        description="Inspect and rewrite outbound LLM chat requests",
    )
    parser.add_argument("--config", "-c", help="Path to config file")

    subparsers = parser.add_subparsers(dest="command")

    # inspect
    inspect_parser = subparsers.add_parser(
        "inspect", help="Detect a request body's format and list its tool outputs",
    )
    inspect_parser.add_argument("file", help="JSON request body file")
    inspect_parser.add_argument("--url", default="", help="Request URL to report in metadata")
    inspect_parser.add_argument(
        "--transcript", "-t",
        help="Session transcript JSON used to correlate Gemini tool call ids",
    )

    # proxy
    proxy_parser = subparsers.add_parser("proxy", help="Start the intercepting HTTP proxy")
    proxy_parser.add_argument(
        "--upstream", "-u", default=None,
        help="Upstream provider URL (e.g., https://api.openai.com). "
             "Defaults to proxy.upstream from config.",
    )
    proxy_parser.add_argument("--port", "-p", type=int, default=None)
    proxy_parser.add_argument("--host", default=None)

    # config validate
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "inspect":
        cmd_inspect(args)
    elif args.command == "proxy":
        cmd_proxy(args)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            config_parser.print_help()
            sys.exit(1)


if __name__ == "__main__":
    main()
