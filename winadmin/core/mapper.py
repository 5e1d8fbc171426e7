"""Field Mapper: raw records to typed pydantic models.

A schema lists, per output field, the source names to look under, a decode
rule and a default. Lookups are case-insensitive because PowerShell property
names are. Bad values fall back to the default; a record is dropped only when
a required field cannot be produced.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from winadmin.config.constants import NOT_AVAILABLE
from winadmin.utils.logger import get_logger

from .normalizer import RawRecord

T = TypeVar("T", bound=BaseModel)

mapper_logger = get_logger("winadmin.mapper")

Decoder = Callable[[Any], Any]

_MISSING = object()
_MS_DATE = re.compile(r"^/Date\((-?\d+)(?:[+-]\d{4})?\)/$")
_SIZE = re.compile(r"^\s*([\d.,]+)\s*([KMGT]?B|bytes?)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"B": 0, "BYTE": 0, "BYTES": 0, "KB": 1, "MB": 2, "GB": 3, "TB": 4}


# Accessors


def get_field(record: RawRecord, *names: str) -> Any:
    """First non-null value under any of ``names``; None if absent or not a map."""
    if not isinstance(record, Mapping):
        return None
    lowered = {str(k).lower(): v for k, v in record.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value is not None:
            return value
    return None


def as_str(value: Any) -> str | None:
    if value is None or isinstance(value, (Mapping, list)):
        return None
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def as_int(value: Any) -> int | None:
    if value is None or isinstance(value, (Mapping, list)):
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            return int(float(str(value).strip().replace(",", ".")))
        except ValueError:
            return None


def as_float(value: Any) -> float | None:
    if value is None or isinstance(value, (bool, Mapping, list)):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        low = value.strip().lower()
        if low in ("true", "yes", "1", "on"):
            return True
        if low in ("false", "no", "0", "off", ""):
            return False
    return None


# Decoders. Each returns None when it cannot make sense of the value.


def text(value: Any) -> str | None:
    result = as_str(value)
    return result if result is None else result.strip()


integer = as_int
number = as_float
flag = as_bool


class UnknownCode(str):
    """Tagged result for a code missing from a lookup table."""

    code: Any

    def __new__(cls, code: Any) -> UnknownCode:
        obj = super().__new__(cls, f"Unknown({code})")
        obj.code = code
        return obj


class CodeTable:
    """Maps numeric (or numeric-string) codes to stable names.

    Values that already are one of the names pass through, since newer tools
    serialize enums as strings.
    """

    def __init__(self, codes: Mapping[int, str], aliases: Mapping[str, str] | None = None):
        self.codes = dict(codes)
        self._names = {name.lower(): name for name in self.codes.values()}
        for alias, name in (aliases or {}).items():
            self._names[alias.lower()] = name

    def __call__(self, value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str) and value.strip().lower() in self._names:
            return self._names[value.strip().lower()]
        code = as_int(value)
        if code is None:
            return UnknownCode(value)
        if code in self.codes:
            return self.codes[code]
        return UnknownCode(code)


class BitFlags:
    """Decodes a bitmask to its named flags joined with ', '."""

    def __init__(self, flags: Mapping[int, str], empty: str, separator: str = ", "):
        self.flags = dict(sorted(flags.items()))
        self.empty = empty
        self.separator = separator

    def __call__(self, value: Any) -> str | None:
        if isinstance(value, str) and as_int(value) is None:
            return value.strip() or self.empty
        mask = as_int(value)
        if mask is None:
            return None
        if mask == 0:
            return self.empty
        names = [name for bit, name in self.flags.items() if mask & bit]
        rest = mask & ~sum(self.flags)
        if rest:
            names.append(UnknownCode(rest))
        return self.separator.join(names)


def ps_date(value: Any) -> str:
    """Display string for a PowerShell date in any of its serialized shapes."""
    if isinstance(value, Mapping):
        inner = get_field(value, "DateTime", "value")
        if inner is None or isinstance(inner, Mapping):
            return NOT_AVAILABLE
        return ps_date(inner)
    if isinstance(value, str):
        candidate = value.strip().replace("\\/", "/")
        if not candidate:
            return NOT_AVAILABLE
        match = _MS_DATE.match(candidate)
        if match:
            try:
                stamp = datetime.fromtimestamp(int(match.group(1)) / 1000, tz=UTC)
            except (OverflowError, OSError, ValueError):
                return NOT_AVAILABLE
            return stamp.strftime("%Y-%m-%d %H:%M:%S")
        return candidate
    return NOT_AVAILABLE


def unwrap(key: str, decode: Decoder = text) -> Decoder:
    """Decode ``{key: value}`` wrappers (e.g. SIDs) as well as bare values."""

    def decoder(value: Any) -> Any:
        if isinstance(value, Mapping):
            value = get_field(value, key)
        return decode(value)

    return decoder


def size_bytes(value: Any) -> int | None:
    """Bytes from a number or a size string such as '15.5 MB' or '1,2 GB'."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if not isinstance(value, str):
        return None
    match = _SIZE.match(value)
    if not match:
        return None
    amount = match.group(1)
    if "," in amount and "." not in amount:
        amount = amount.replace(",", ".")
    else:
        amount = amount.replace(",", "")
    try:
        quantity = float(amount)
    except ValueError:
        return None
    unit = (match.group(2) or "B").upper()
    return int(quantity * 1024 ** _SIZE_UNITS.get(unit, 0))


def string_list(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    return [s for s in (text(item) for item in items) if s]


# Schemas


@dataclass(frozen=True)
class FieldSpec:
    name: str
    sources: tuple[str, ...]
    decode: Decoder = text
    default: Any = None
    required: bool = False

    def resolve(self, record: RawRecord) -> Any:
        raw = get_field(record, *self.sources)
        if raw is None:
            return _MISSING
        try:
            value = self.decode(raw)
        except (TypeError, ValueError, ArithmeticError):
            return _MISSING
        return _MISSING if value is None else value

    def fallback(self) -> Any:
        return self.default() if callable(self.default) else self.default


def F(
    name: str,
    *sources: str,
    decode: Decoder = text,
    default: Any = None,
    required: bool = False,
) -> FieldSpec:
    """Shorthand for FieldSpec; sources default to the field name."""
    return FieldSpec(name, sources or (name,), decode, default, required)


@dataclass(frozen=True)
class FieldSchema(Generic[T]):
    model: type[T]
    fields: Sequence[FieldSpec] = field(default_factory=tuple)

    def map_one(self, record: RawRecord) -> T | None:
        values: dict[str, Any] = {}
        for spec in self.fields:
            value = spec.resolve(record)
            if value is _MISSING:
                if spec.required:
                    mapper_logger.warning(
                        "Dropping record without required field",
                        model=self.model.__name__,
                        field=spec.name,
                    )
                    return None
                value = spec.fallback()
            values[spec.name] = value
        try:
            return self.model(**values)
        except ValidationError as e:
            mapper_logger.warning(
                "Dropping record that failed validation",
                model=self.model.__name__,
                error=str(e),
            )
            return None


def map_records(records: Iterable[RawRecord], schema: FieldSchema[T]) -> list[T]:
    mapped = (schema.map_one(record) for record in records)
    return [item for item in mapped if item is not None]
