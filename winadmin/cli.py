"""Command line entry point: run one operation and print its JSON result.

    python -m winadmin list_disks
    python -m winadmin get_events log_name=System level=2 max_events=20
    python -m winadmin --list
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from argparse import ArgumentParser
from types import UnionType
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel


def _is_text(annotation: Any) -> bool:
    if annotation is str:
        return True
    if get_origin(annotation) in (Union, UnionType):
        members = [a for a in get_args(annotation) if a is not type(None)]
        return bool(members) and all(a is str for a in members)
    return False


def parse_params(
    pairs: list[str], args_schema: type[BaseModel] | None = None
) -> dict[str, Any]:
    """``key=value`` pairs; values are JSON when they parse, strings otherwise.

    Fields the args model declares as text always keep the raw string, so
    ``username=123`` stays ``"123"``.
    """
    fields = args_schema.model_fields if args_schema is not None else {}
    params: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        field = fields.get(key)
        if field is not None and _is_text(field.annotation):
            params[key] = raw
            continue
        try:
            params[key] = json.loads(raw)
        except json.JSONDecodeError:
            params[key] = raw
    return params


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="winadmin", description="Run a Windows administration operation")
    parser.add_argument("operation", nargs="?", help="Operation name (see --list)")
    parser.add_argument("params", nargs="*", help="Parameters as key=value")
    parser.add_argument("--list", action="store_true", help="List available operations")
    parser.add_argument(
        "--log-format",
        choices=["pretty", "json"],
        help="Log format (pretty or json). Overrides LOG_FORMAT env var.",
    )
    parser.add_argument(
        "--log-colors",
        type=lambda x: x.lower() in ("true", "1", "yes", "on"),
        help="Enable colored logs (true/false). Overrides LOG_COLORS env var.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set logging env vars from CLI flags before logger import
    if args.log_format:
        os.environ["LOG_FORMAT"] = args.log_format
    if args.log_colors is not None:
        os.environ["LOG_COLORS"] = "true" if args.log_colors else "false"

    from winadmin.core.executor import ProcessExecutor
    from winadmin.operations import OperationError, OperationRegistry
    from winadmin.operations.base import to_jsonable
    from winadmin.utils.logger import get_logger

    cli_logger = get_logger("winadmin.cli")
    registry = OperationRegistry(ProcessExecutor())

    if args.list:
        for spec in registry.list_operations():
            print(f"{spec.name:40} {spec.description}")
        return 0
    if not args.operation:
        parser.error("an operation name is required (or --list)")

    try:
        spec = registry.get(args.operation)
        params = parse_params(args.params, spec.args_schema if spec else None)
    except ValueError as e:
        parser.error(str(e))

    cli_logger.debug("Running operation", operation=args.operation)
    result = asyncio.run(registry.run(args.operation, **params))
    print(json.dumps(to_jsonable(result), ensure_ascii=False, indent=2))
    return 1 if isinstance(result, OperationError) else 0


if __name__ == "__main__":
    sys.exit(main())
