"""Fallback Orchestrator: exclusive and additive strategy chains.

Exclusive chains try alternative sources of the same data in priority order
and stop at the first result that passes its predicate. Additive chains run
every source concurrently and merge the results, dropping later duplicates
by natural key. Individual strategy failures are logged and absorbed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, cast

from winadmin.config.constants import BENIGN_EMPTY_PATTERNS
from winadmin.utils.logger import fallback_logger

from .builder import build
from .errors import AdminError, SpawnFailed, Unavailable
from .executor import CommandExecutor
from .mapper import FieldSchema, map_records
from .normalizer import ExtractMode, RawRecord, normalize

Acquire = Callable[[CommandExecutor], Awaitable[list[Any]]]
Predicate = Callable[[list[Any]], bool]


def non_empty(items: list[Any]) -> bool:
    return len(items) > 0


class Discipline(StrEnum):
    EXCLUSIVE = "exclusive"
    ADDITIVE = "additive"


@dataclass(frozen=True)
class Strategy:
    strategy_id: str
    acquire: Acquire
    predicate: Predicate = non_empty


def command_strategy(
    strategy_id: str,
    template_id: str,
    schema: FieldSchema | None = None,
    *,
    params: Mapping[str, Any] | None = None,
    parse: Callable[[list[RawRecord]], list[Any]] | None = None,
    parse_text: Callable[[str], list[Any]] | None = None,
    mode: ExtractMode = ExtractMode.BRACKETS,
    benign_patterns: Iterable[str] = BENIGN_EMPTY_PATTERNS,
    predicate: Predicate = non_empty,
) -> Strategy:
    """Strategy that builds, runs, normalizes and maps one command template.

    ``parse_text`` is for tools without JSON output: it receives stdout as is.
    """
    invocation = build(template_id, params)

    async def acquire(executor: CommandExecutor) -> list[Any]:
        result = await executor.execute(invocation)
        if parse_text is not None:
            return parse_text(result.raise_for_status(strategy_id).stdout_text)
        records = normalize(
            result, benign_patterns=benign_patterns, mode=mode, action=strategy_id
        )
        if parse is not None:
            return parse(records)
        if schema is not None:
            return map_records(records, schema)
        return records

    return Strategy(strategy_id, acquire, predicate)


class FallbackChain:
    def __init__(
        self,
        name: str,
        strategies: Sequence[Strategy],
        discipline: Discipline,
        key: Callable[[Any], Hashable] | None = None,
    ) -> None:
        if discipline is Discipline.ADDITIVE and key is None:
            raise ValueError("Additive chains need a natural key")
        self.name = name
        self.strategies = tuple(strategies)
        self.discipline = discipline
        self.key = key

    @classmethod
    def exclusive(cls, name: str, *strategies: Strategy) -> FallbackChain:
        return cls(name, strategies, Discipline.EXCLUSIVE)

    @classmethod
    def additive(
        cls, name: str, *strategies: Strategy, key: Callable[[Any], Hashable]
    ) -> FallbackChain:
        return cls(name, strategies, Discipline.ADDITIVE, key=key)

    async def resolve(self, executor: CommandExecutor) -> list[Any]:
        if self.discipline is Discipline.EXCLUSIVE:
            return await self._resolve_exclusive(executor)
        return await self._resolve_additive(executor)

    def as_strategy(self, strategy_id: str | None = None) -> Strategy:
        """Nest this chain as a single strategy of another chain."""
        return Strategy(strategy_id or self.name, self.resolve)

    async def _resolve_exclusive(self, executor: CommandExecutor) -> list[Any]:
        errors: list[AdminError] = []
        for strategy in self.strategies:
            try:
                items = await strategy.acquire(executor)
            except AdminError as e:
                fallback_logger.info(
                    "Strategy failed",
                    chain=self.name,
                    strategy=strategy.strategy_id,
                    error=str(e),
                    kind=e.kind.value,
                )
                errors.append(e)
                continue
            if strategy.predicate(items):
                fallback_logger.debug(
                    "Strategy satisfied chain",
                    chain=self.name,
                    strategy=strategy.strategy_id,
                    count=len(items),
                )
                return items
            fallback_logger.debug(
                "Strategy produced no usable data",
                chain=self.name,
                strategy=strategy.strategy_id,
            )

        if self.strategies and len(errors) == len(self.strategies):
            raise Unavailable(
                f"All {len(errors)} strategies for {self.name} failed; last error: {errors[-1]}",
                chain=self.name,
            )
        return []

    async def _run_one(self, strategy: Strategy, executor: CommandExecutor):
        try:
            return await strategy.acquire(executor)
        except AdminError as e:
            fallback_logger.info(
                "Strategy failed",
                chain=self.name,
                strategy=strategy.strategy_id,
                error=str(e),
                kind=e.kind.value,
            )
            return e

    async def _resolve_additive(self, executor: CommandExecutor) -> list[Any]:
        outcomes = await asyncio.gather(
            *(self._run_one(s, executor) for s in self.strategies)
        )

        failures = [o for o in outcomes if isinstance(o, AdminError)]
        if (
            self.strategies
            and len(failures) == len(self.strategies)
            and all(isinstance(f, SpawnFailed) for f in failures)
        ):
            raise SpawnFailed(
                f"No strategy for {self.name} could be started: {failures[-1]}"
            )

        key = cast(Callable[[Any], Hashable], self.key)
        seen: set[Hashable] = set()
        merged: list[Any] = []
        for strategy, outcome in zip(self.strategies, outcomes):
            if isinstance(outcome, AdminError):
                continue
            added = 0
            for item in outcome:
                item_key = key(item)
                if item_key in seen:
                    continue
                seen.add(item_key)
                merged.append(item)
                added += 1
            fallback_logger.debug(
                "Strategy merged",
                chain=self.name,
                strategy=strategy.strategy_id,
                returned=len(outcome),
                added=added,
            )
        return merged
