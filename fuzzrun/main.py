# fuzzrun/main.py
"""
Command-line entry point for the request runner.
Prepares one request from a template and the given inputs, sends it and
prints the response metrics the fuzzing filters work with.

Example Usage:
  # Substitute a keyword into the URL
  > fuzzrun -u https://example.com/FUZZ -i FUZZ=admin

  # Send a raw request captured by a proxy, with the body fuzzed
  > fuzzrun --request login.txt --target https://example.com -i FUZZ="' or 1=1--"

  # Unnormalized request target, routed through Burp
  > fuzzrun -u https://example.com/ --opaque /a/../b -x http://127.0.0.1:8080
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from fuzzrun import __version__
from fuzzrun.core.colors import format_log_prefix
from fuzzrun.core.options import RunnerConfig, load_config_data
from fuzzrun.core.parser import RequestParser
from fuzzrun.run import run


def parse_inputs(values: List[str]) -> Dict[str, bytes]:
    """Turns KEYWORD=VALUE arguments into an input map."""
    inputs = {}
    for item in values:
        keyword, sep, value = item.partition("=")
        if not sep or not keyword:
            raise ValueError(f"Input must be KEYWORD=VALUE, got {item!r}")
        inputs[keyword] = value.encode("utf-8")
    return inputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fuzzrun",
        description="Send one templated HTTP request the way the fuzzer does.",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # --- Request template ---
    parser.add_argument("-u", "--url", help="Target URL template.")
    parser.add_argument("-X", "--method", help="HTTP method template (default: GET).")
    parser.add_argument(
        "-H", "--header",
        action="append",
        default=[],
        help="Header 'Name: value'. May be given more than once."
    )
    parser.add_argument("-d", "--data", help="Request body template.")
    parser.add_argument("--opaque", help="Request-line target sent verbatim, e.g. /a/../b.")
    parser.add_argument("--request", type=Path, help="File containing a raw HTTP request to use as template.")
    parser.add_argument(
        "--target",
        help="Scheme and host for --request (default: Host header of the request)."
    )
    parser.add_argument(
        "--request-proto",
        default="https",
        help="Scheme used with the Host header of --request (default: 'https')."
    )
    parser.add_argument("--config", type=Path, help="YAML or JSON runner configuration file.")

    # --- Inputs ---
    parser.add_argument(
        "-i", "--input",
        action="append",
        default=[],
        help="Keyword substitution KEYWORD=VALUE. May be given more than once."
    )

    # --- Transport ---
    parser.add_argument("-t", "--timeout", type=int, help="Timeout in seconds (default: 10).")
    parser.add_argument("-x", "--proxy", help="Proxy URL for requests, e.g. http://127.0.0.1:8080.")
    parser.add_argument("--replay-proxy", help="Proxy URL used in replay mode.")
    parser.add_argument("--replay", action="store_true", help="Send through the replay proxy.")
    parser.add_argument("--sni", help="TLS server name to send instead of the URL host.")
    parser.add_argument("-r", "--follow-redirects", action="store_true", default=None, help="Follow redirects.")
    parser.add_argument("--ignore-body", action="store_true", default=None, help="Do not download response bodies.")
    parser.add_argument("-o", "--output-dir", help="Capture raw traffic and save it in this directory.")
    parser.add_argument("--async", dest="is_async", action="store_true", help="Use the asynchronous client.")

    # --- Output ---
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output.")
    parser.add_argument("--debug", action="store_true", help="Enable debug output for [DEBUG] messages.")
    return parser


def build_config(args: argparse.Namespace) -> RunnerConfig:
    """
    Merges the config file, the raw request file and the flags, in that order
    of increasing precedence.
    """
    data = load_config_data(args.config) if args.config else {}

    if args.request:
        if not args.request.is_file():
            raise FileNotFoundError(f"Request file not found: {args.request}")
        raw_request = args.request.read_text(encoding="utf-8")
        parsed = RequestParser(raw_request, args.target, scheme=args.request_proto).parse()
        headers = dict(data.get("headers", {}))
        headers.update(parsed.pop("headers"))
        data.update(parsed, headers=headers)

    flags = {
        "url": args.url,
        "method": args.method,
        "data": args.data,
        "opaque": args.opaque,
        "timeout": args.timeout,
        "proxy_url": args.proxy,
        "replay_proxy_url": args.replay_proxy,
        "sni": args.sni,
        "follow_redirects": args.follow_redirects,
        "ignore_body": args.ignore_body,
        "output_directory": args.output_dir,
    }
    data.update({k: v for k, v in flags.items() if v is not None})

    if args.header:
        headers = RunnerConfig(headers=args.header).headers
        data["headers"] = {**data.get("headers", {}), **headers}

    return RunnerConfig(**data)


def main(argv: Optional[List[str]] = None) -> int:
    """Parses the command line and runs one request."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        runner_config = build_config(args)
        inputs = parse_inputs(args.input)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        # pydantic's ValidationError is a ValueError
        print(format_log_prefix("ERROR", str(e)))
        return 2

    if not runner_config.url:
        print(format_log_prefix("ERROR", "No URL given. Use -u, --request or --config."))
        return 2

    if args.debug:
        print("--- fuzzrun ---")
        print(f"URL:          {runner_config.url}")
        print(f"Method:       {runner_config.method}")
        print(f"Proxy:        {(runner_config.replay_proxy_url if args.replay else runner_config.proxy_url) or '(environment)'}")
        print(f"Async Mode:   {'Enabled' if args.is_async else 'Disabled'}")
        print(f"Inputs:       {', '.join(inputs) or '(none)'}")
        print("---------------\n")

    return asyncio.run(run(runner_config, inputs, replay=args.replay, is_async=args.is_async,
                           verbose=args.verbose, debug=args.debug))


if __name__ == "__main__":
    sys.exit(main())
