"""Operation registry and the helpers every operation family shares.

An operation is an async handler ``(executor, args) -> value`` registered under
a name together with a pydantic args model. ``OperationRegistry.run`` is the
boundary: it validates arguments, awaits the handler and turns any failure
into an ``OperationError`` value instead of raising.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ValidationError

from winadmin.config.constants import BENIGN_EMPTY_PATTERNS
from winadmin.core.builder import build
from winadmin.core.errors import AdminError, ErrorKind
from winadmin.core.executor import CommandExecutor
from winadmin.core.mapper import FieldSchema, map_records
from winadmin.core.normalizer import ExtractMode, RawRecord, normalize
from winadmin.utils.logger import operation_log, ops_logger

T = TypeVar("T", bound=BaseModel)

__all__ = [
    "NoArgs",
    "OperationError",
    "OperationSpec",
    "OperationRegistry",
    "OPERATIONS",
    "operation",
    "query",
    "query_records",
    "run_action",
    "run_text",
]


class NoArgs(BaseModel):
    pass


class OperationError(BaseModel):
    """Standard error result for all operations.

    Use isinstance(result, OperationError) to check for errors.
    """

    type: Literal["operation_error"] = "operation_error"
    name: str
    code: str
    error: str
    error_type: str | None = None
    details: dict[str, Any] | None = None

    @property
    def message(self) -> str:
        return self.error


Handler = Callable[[CommandExecutor, Any], Awaitable[Any]]


@dataclass(frozen=True)
class OperationSpec:
    name: str
    handler: Handler
    args_schema: type[BaseModel]
    description: str = ""


# Populated at import time by the @operation decorator
OPERATIONS: dict[str, OperationSpec] = {}


def operation(name: str, args_schema: type[BaseModel] = NoArgs):
    """Register an async handler under ``name``."""

    def decorator(func: Handler) -> Handler:
        if name in OPERATIONS:
            raise ValueError(f"Duplicate operation: {name}")
        doc = (func.__doc__ or "").strip().splitlines()
        OPERATIONS[name] = OperationSpec(
            name=name,
            handler=func,
            args_schema=args_schema,
            description=doc[0] if doc else name,
        )
        return func

    return decorator


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    return value


class OperationRegistry:
    """Holds operations by name and exposes a uniform ``run`` API."""

    def __init__(
        self,
        executor: CommandExecutor,
        operations: Mapping[str, OperationSpec] | None = None,
    ) -> None:
        self.executor = executor
        self._operations = dict(OPERATIONS if operations is None else operations)

    def get(self, name: str) -> OperationSpec | None:
        return self._operations.get(name)

    def has_operation(self, name: str) -> bool:
        return name in self._operations

    def list_operations(self) -> list[OperationSpec]:
        return sorted(self._operations.values(), key=lambda spec: spec.name)

    async def run(self, name: str, /, **kwargs: Any) -> Any:
        # Positional-only: operations take parameters called ``name`` too
        spec = self.get(name)
        if spec is None:
            return OperationError(
                name=name,
                code=ErrorKind.UNSUPPORTED_TEMPLATE.value,
                error=f"Unknown operation: {name}",
                error_type="UnsupportedTemplate",
            )
        operation_log(ops_logger, name, kwargs)

        try:
            args = spec.args_schema(**kwargs)
        except ValidationError as ve:
            return OperationError(
                name=name,
                code=ErrorKind.INVALID_ARGUMENT.value,
                error=str(ve),
                error_type=type(ve).__name__,
            )

        try:
            result = await spec.handler(self.executor, args)
        except AdminError as e:
            ops_logger.warning(
                "Operation failed",
                operation=name,
                kind=e.kind.value,
                error=str(e),
            )
            return OperationError(
                name=name,
                code=e.kind.value,
                error=str(e),
                error_type=type(e).__name__,
                details={k: v for k, v in e.details.items() if v is not None} or None,
            )
        except Exception as e:
            ops_logger.error(
                "Operation crashed",
                operation=name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return OperationError(
                name=name,
                code="internal_error",
                error=str(e),
                error_type=type(e).__name__,
            )

        # Diagnostics: result size
        try:
            serialized = json.dumps(to_jsonable(result), ensure_ascii=False)
            ops_logger.info(
                "Operation result",
                operation=name,
                size_bytes=len(serialized.encode("utf-8")),
            )
        except (TypeError, ValueError):
            pass

        return result


# Helpers shared by operation modules


async def query_records(
    executor: CommandExecutor,
    template_id: str,
    params: Mapping[str, Any] | None = None,
    *,
    action: str | None = None,
    benign_patterns: Iterable[str] = BENIGN_EMPTY_PATTERNS,
    mode: ExtractMode = ExtractMode.BRACKETS,
) -> list[RawRecord]:
    """Build, run and normalize one template into raw records."""
    invocation = build(template_id, params)
    result = await executor.execute(invocation)
    return normalize(
        result,
        benign_patterns=benign_patterns,
        mode=mode,
        action=action or template_id,
    )


async def query(
    executor: CommandExecutor,
    template_id: str,
    schema: FieldSchema[T],
    params: Mapping[str, Any] | None = None,
    **kwargs: Any,
) -> list[T]:
    records = await query_records(executor, template_id, params, **kwargs)
    return map_records(records, schema)


async def run_text(
    executor: CommandExecutor,
    template_id: str,
    params: Mapping[str, Any] | None = None,
    *,
    action: str | None = None,
) -> str:
    """Run a template and return its stdout; non-zero exit raises."""
    invocation = build(template_id, params)
    result = await executor.execute(invocation)
    result.raise_for_status(action or template_id)
    return result.stdout_text.strip()


async def run_action(
    executor: CommandExecutor,
    template_id: str,
    params: Mapping[str, Any] | None = None,
    *,
    action: str | None = None,
) -> None:
    """Run a state-changing template; stderr lands verbatim in the error."""
    await run_text(executor, template_id, params, action=action)
