"""Command Builder: turns a template id plus caller parameters into an Invocation.

Every value interpolated into script text goes through a parameter rule that
validates it and escapes it for the destination shell. Templates are plain
strings with ``{{name}}`` placeholders; each placeholder must have a rule.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from winadmin.config.constants import SUPPORTED_FILESYSTEMS

from .errors import InvalidArgument, UnsupportedTemplate
from .invocation import Interpreter, Invocation

__all__ = [
    "CommandTemplate",
    "TemplateRegistry",
    "templates",
    "build",
    "ps_quote",
    "ps_single_quote_content",
    "ps_double_quote_content",
    "strip_wildcards",
    "ad_filter_content",
    "quoted",
    "content",
    "like_content",
    "ad_filter",
    "integer",
    "drive_letter",
    "drive_name",
    "filesystem",
    "identity",
    "unc_path",
    "timestamp",
    "exact_name",
    "optional",
    "normalize_drive_letter",
    "powershell",
    "cmd",
    "native",
]

# PowerShell treats the typographic variants as quote characters too
_SINGLE_QUOTES = "'‘’‚‛"
_DOUBLE_QUOTES = '"“”„'
_WILDCARDS = "*?[]"

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
_DRIVE_LETTER = re.compile(r"^([A-Za-z]):?$")
_DRIVE_NAME = re.compile(r"^([A-Za-z]):$")
_UNC_PATH = re.compile(r"^\\\\[^\\/:*?\"<>|\r\n]+\\[^\r\n\"]+$")
_IDENTITY = re.compile(r"^[\w .\-@$=,\\#+&'()/{}]{1,256}$")

ParamRule = Callable[[str, Any], str]


# Escaping helpers


def ps_single_quote_content(value: str) -> str:
    """Escape text for use inside a PowerShell single-quoted literal."""
    return "".join(ch * 2 if ch in _SINGLE_QUOTES else ch for ch in value)


def ps_quote(value: str) -> str:
    """Return a PowerShell single-quoted literal. No expansion happens inside."""
    return f"'{ps_single_quote_content(value)}'"


def ps_double_quote_content(value: str) -> str:
    """Escape text for use inside a PowerShell double-quoted (expandable) string."""
    out = []
    for ch in value:
        if ch in _DOUBLE_QUOTES:
            out.append(ch * 2)
        elif ch in "`$":
            out.append("`" + ch)
        else:
            out.append(ch)
    return "".join(out)


def strip_wildcards(value: str) -> str:
    return "".join(ch for ch in value if ch not in _WILDCARDS)


def ad_filter_content(value: str) -> str:
    """Escape a search term for an AD ``-Filter`` string held in a PS literal.

    The term is quoted twice: once for the AD filter parser, once for the
    surrounding PowerShell single-quoted literal.
    """
    return ps_single_quote_content(strip_wildcards(value).replace("'", "''"))


def normalize_drive_letter(param: str, value: Any) -> str:
    match = _DRIVE_LETTER.match(str(value or "").strip())
    if not match:
        raise InvalidArgument(param, f"expected a single drive letter, got {value!r}")
    return match.group(1).upper()


# Parameter rules


def _text(param: str, value: Any, *, allow_empty: bool = False) -> str:
    if value is None:
        raise InvalidArgument(param, "is required")
    text = str(value)
    if "\x00" in text:
        raise InvalidArgument(param, "contains a NUL character")
    if not allow_empty and not text.strip():
        raise InvalidArgument(param, "must not be empty")
    return text


def quoted(allow_empty: bool = False) -> ParamRule:
    """Complete PowerShell single-quoted literal."""

    def rule(param: str, value: Any) -> str:
        return ps_quote(_text(param, value, allow_empty=allow_empty))

    return rule


def exact_name() -> ParamRule:
    """Quoted literal for a ``-Name`` parameter of a cmdlet that globs; wildcards are rejected."""

    def rule(param: str, value: Any) -> str:
        text = _text(param, value).strip()
        if any(ch in _WILDCARDS for ch in text):
            raise InvalidArgument(param, f"wildcards are not allowed, got {value!r}")
        return ps_quote(text)

    return rule


def content(allow_empty: bool = False) -> ParamRule:
    """Escaped text to place inside a single-quoted literal in the template."""

    def rule(param: str, value: Any) -> str:
        return ps_single_quote_content(_text(param, value, allow_empty=allow_empty))

    return rule


def like_content() -> ParamRule:
    """Text for a ``-like '*...*'`` pattern; caller wildcards are removed."""

    def rule(param: str, value: Any) -> str:
        return ps_single_quote_content(strip_wildcards(_text(param, value)))

    return rule


def ad_filter() -> ParamRule:
    def rule(param: str, value: Any) -> str:
        return ad_filter_content(_text(param, value, allow_empty=True))

    return rule


def integer(min_value: int | None = None, max_value: int | None = None) -> ParamRule:
    def rule(param: str, value: Any) -> str:
        if isinstance(value, bool):
            raise InvalidArgument(param, "expected an integer")
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            raise InvalidArgument(param, f"expected an integer, got {value!r}")
        if min_value is not None and number < min_value:
            raise InvalidArgument(param, f"must be >= {min_value}")
        if max_value is not None and number > max_value:
            raise InvalidArgument(param, f"must be <= {max_value}")
        return str(number)

    return rule


def drive_letter() -> ParamRule:
    return normalize_drive_letter


def drive_name() -> ParamRule:
    """Mapped drive name in ``X:`` form."""

    def rule(param: str, value: Any) -> str:
        match = _DRIVE_NAME.match(str(value or "").strip())
        if not match:
            raise InvalidArgument(param, f"expected a drive like 'Z:', got {value!r}")
        return f"{match.group(1).upper()}:"

    return rule


def filesystem() -> ParamRule:
    def rule(param: str, value: Any) -> str:
        key = str(value or "").strip().upper()
        if key not in SUPPORTED_FILESYSTEMS:
            allowed = ", ".join(SUPPORTED_FILESYSTEMS.values())
            raise InvalidArgument(param, f"unsupported filesystem {value!r} ({allowed})")
        return SUPPORTED_FILESYSTEMS[key]

    return rule


def identity() -> ParamRule:
    """Directory identity (sAMAccountName, DN, UPN, SID or GUID) as a literal."""

    def rule(param: str, value: Any) -> str:
        text = _text(param, value).strip()
        if not _IDENTITY.match(text):
            raise InvalidArgument(param, f"not a valid directory identity: {value!r}")
        return ps_quote(text)

    return rule


def unc_path() -> ParamRule:
    """UNC path for native argument lists; not quoted."""

    def rule(param: str, value: Any) -> str:
        text = _text(param, value).strip()
        if not _UNC_PATH.match(text):
            raise InvalidArgument(param, f"expected a UNC path like \\\\server\\share, got {value!r}")
        return text

    return rule


def timestamp() -> ParamRule:
    """ISO-8601 timestamp rendered as a PowerShell ``[datetime]`` cast."""

    def rule(param: str, value: Any) -> str:
        if isinstance(value, datetime):
            parsed = value
        else:
            try:
                parsed = datetime.fromisoformat(str(value).strip())
            except ValueError:
                raise InvalidArgument(param, f"expected an ISO timestamp, got {value!r}")
        return f"[datetime]{ps_quote(parsed.strftime('%Y-%m-%dT%H:%M:%S'))}"

    return rule


def optional(rule: ParamRule, prefix: str = "") -> ParamRule:
    """Render ``prefix + rule(value)`` or nothing when the value is absent."""

    def wrapped(param: str, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return ""
        return prefix + rule(param, value)

    return wrapped


# Templates


@dataclass(frozen=True)
class CommandTemplate:
    template_id: str
    interpreter: Interpreter
    script: str | None = None
    arguments: tuple[str, ...] = ()
    params: Mapping[str, ParamRule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        used = set(_PLACEHOLDER.findall(self.script or ""))
        for arg in self.arguments:
            used.update(_PLACEHOLDER.findall(arg))
        missing = used - set(self.params)
        if missing:
            raise ValueError(
                f"Template {self.template_id} has placeholders without rules: {sorted(missing)}"
            )

    def render(self, params: Mapping[str, Any]) -> Invocation:
        # Validate every parameter before any text is produced
        rendered = {
            name: rule(name, params.get(name)) for name, rule in self.params.items()
        }

        def fill(text: str) -> str:
            return _PLACEHOLDER.sub(lambda m: rendered[m.group(1)], text)

        return Invocation(
            interpreter=self.interpreter,
            arguments=tuple(fill(arg) for arg in self.arguments),
            inline_script=fill(self.script) if self.script is not None else None,
            template_id=self.template_id,
        )


def powershell(template_id: str, script: str, **params: ParamRule) -> CommandTemplate:
    return CommandTemplate(template_id, Interpreter.POWERSHELL, script=script, params=params)


def cmd(template_id: str, script: str) -> CommandTemplate:
    return CommandTemplate(template_id, Interpreter.CMD, script=script)


def native(template_id: str, *arguments: str, **params: ParamRule) -> CommandTemplate:
    return CommandTemplate(
        template_id, Interpreter.NATIVE, arguments=tuple(arguments), params=params
    )


class TemplateRegistry:
    """Process-wide, read-only after import: operation modules register here."""

    def __init__(self) -> None:
        self._templates: dict[str, CommandTemplate] = {}

    def register(self, *items: CommandTemplate | Iterable[CommandTemplate]) -> None:
        for item in items:
            group = [item] if isinstance(item, CommandTemplate) else list(item)
            for template in group:
                if template.template_id in self._templates:
                    raise ValueError(f"Duplicate template id: {template.template_id}")
                self._templates[template.template_id] = template

    def get(self, template_id: str) -> CommandTemplate:
        template = self._templates.get(template_id)
        if template is None:
            raise UnsupportedTemplate(template_id)
        return template

    def has_template(self, template_id: str) -> bool:
        return template_id in self._templates

    def build(
        self, template_id: str, params: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> Invocation:
        merged = dict(params or {})
        merged.update(kwargs)
        return self.get(template_id).render(merged)


templates = TemplateRegistry()


def build(
    template_id: str, params: Mapping[str, Any] | None = None, **kwargs: Any
) -> Invocation:
    return templates.build(template_id, params, **kwargs)
