"""Response Normalizer: raw process output to a list of JSON records.

Handles the shapes external tools actually produce: a single object where a
list was expected, diagnostic lines around the JSON payload, empty output
for "no results", and non-zero exits that only mean nothing matched.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from winadmin.config.constants import BENIGN_EMPTY_PATTERNS, MALFORMED_SNIPPET_CHARS

from .errors import MalformedOutput, tool_failure
from .invocation import ExecutionResult

RawRecord = Any

_decoder = json.JSONDecoder()


class ExtractMode(StrEnum):
    BRACKETS = "brackets"
    LAST_LINE = "last_line"


def is_benign_empty(text: str, patterns: Iterable[str] = BENIGN_EMPTY_PATTERNS) -> bool:
    lowered = text.lower()
    return any(p.lower() in lowered for p in patterns if p)


def _snippet(text: str) -> str:
    text = text.strip()
    if len(text) > MALFORMED_SNIPPET_CHARS:
        return text[:MALFORMED_SNIPPET_CHARS] + "..."
    return text


def _as_sequence(value: Any) -> list[RawRecord]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def extract_json(text: str, mode: ExtractMode = ExtractMode.BRACKETS) -> Any:
    """Decode the JSON payload embedded in ``text``.

    Returns None for empty output. Raises MalformedOutput when no payload can
    be decoded.
    """
    stripped = text.strip().lstrip("﻿")
    if not stripped:
        return None

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    if mode is ExtractMode.LAST_LINE:
        lines = [line.strip() for line in stripped.splitlines() if line.strip()]
        if lines:
            try:
                return json.loads(lines[-1])
            except json.JSONDecodeError:
                pass
    else:
        # First opening bracket that starts a complete JSON value wins;
        # anything after the matching close is noise.
        pos = 0
        while True:
            starts = [i for i in (stripped.find("[", pos), stripped.find("{", pos)) if i != -1]
            if not starts:
                break
            start = min(starts)
            try:
                value, _ = _decoder.raw_decode(stripped, start)
                return value
            except json.JSONDecodeError:
                pos = start + 1

    raise MalformedOutput(
        "Could not decode JSON from tool output", snippet=_snippet(stripped)
    )


def normalize(
    result: ExecutionResult,
    *,
    benign_patterns: Iterable[str] = BENIGN_EMPTY_PATTERNS,
    mode: ExtractMode = ExtractMode.BRACKETS,
    action: str = "Command",
) -> list[RawRecord]:
    """Turn an ExecutionResult into a list of raw records."""
    if not result.exit_success:
        patterns = tuple(benign_patterns)
        if is_benign_empty(result.stderr_text, patterns) or is_benign_empty(
            result.stdout_text, patterns
        ):
            return []
        raise tool_failure(action, result.stderr_text, result.exit_code)
    return _as_sequence(extract_json(result.stdout_text, mode))
