"""
Command line launch verifier.

Verifies a captured ``application/x-www-form-urlencoded`` launch body and
prints the verification result as JSON. Handy when diagnosing why a tool
consumer's launches are rejected.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional, TextIO

from ltilaunch.config import ConfigurationError, build_settings, load_settings
from ltilaunch.oauth.message import FormParameterSource
from ltilaunch.verification.basic import LaunchVerifier

EXIT_ACCEPTED = 0
EXIT_REJECTED = 1
EXIT_CONFIGURATION = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ltilaunch-verify",
        description="Verify the OAuth signature of a Basic LTI launch body.",
    )
    parser.add_argument("body", nargs="?", default="-",
                        help="File holding the form-encoded launch body ('-' for stdin)")
    parser.add_argument("--url", required=True, help="Launch URL the consumer signed")
    credentials = parser.add_mutually_exclusive_group(required=True)
    credentials.add_argument("--secret", help="Shared secret of the consumer")
    credentials.add_argument("--config", help="JSON, YAML or TOML file with configured consumers")
    parser.add_argument("--method", default="POST", help="HTTP method of the launch")
    parser.add_argument("--authorization", help="Authorization header sent with the launch")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def _read_body(location: str, stdin: TextIO) -> str:
    if location == "-":
        return stdin.read()
    with open(location, "r", encoding="utf-8") as f:
        return f.read()


def main(argv: Optional[List[str]] = None,
         stdin: TextIO = sys.stdin,
         stdout: TextIO = sys.stdout) -> int:
    """Entry point for ``ltilaunch-verify``."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        settings = load_settings(args.config) if args.config else build_settings()
    except ConfigurationError as e:
        logging.error(f"Configuration loading failed: {e}")
        return EXIT_CONFIGURATION

    try:
        body = _read_body(args.body, stdin)
    except (OSError, UnicodeDecodeError) as e:
        logging.error(f"Cannot read launch body: {e}")
        return EXIT_CONFIGURATION

    headers = {"Authorization": args.authorization} if args.authorization else None
    source = FormParameterSource.from_body(body.strip(), http_method=args.method, headers=headers)

    verifier = LaunchVerifier(settings)
    if args.config:
        result = verifier.validate_for_consumer(source, args.url)
    else:
        result = verifier.validate(source, args.url, args.secret)

    json.dump(result.to_dict(), stdout, indent=2)
    stdout.write("\n")
    return EXIT_ACCEPTED if result.success else EXIT_REJECTED


if __name__ == "__main__":
    sys.exit(main())
