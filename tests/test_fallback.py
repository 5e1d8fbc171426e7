"""Exclusive and additive strategy chains."""

import pytest

from stubs import StubExecutor, failed, ok
from winadmin.core.errors import ExternalToolFailed, MalformedOutput, SpawnFailed, Unavailable
from winadmin.core.fallback import Discipline, FallbackChain, Strategy, command_strategy
from winadmin.operations.hardware import gpu_chain
from winadmin.operations.system import cpu_chain


def recording(strategy_id, calls, result=None, error=None):
    async def acquire(executor):
        calls.append(strategy_id)
        if error is not None:
            raise error
        return list(result or [])

    return Strategy(strategy_id, acquire)


@pytest.mark.asyncio
@pytest.mark.parametrize("winner", [1, 2, 3])
async def test_exclusive_runs_strategies_up_to_first_success(winner):
    calls = []
    strategies = [
        recording(f"s{i}", calls, result=[f"from-s{i}"] if i >= winner else [])
        for i in range(1, 5)
    ]
    result = await FallbackChain.exclusive("chain", *strategies).resolve(StubExecutor())
    assert result == [f"from-s{winner}"]
    assert calls == [f"s{i}" for i in range(1, winner + 1)]


@pytest.mark.asyncio
async def test_exclusive_skips_failing_strategies():
    calls = []
    chain = FallbackChain.exclusive(
        "chain",
        recording("broken", calls, error=ExternalToolFailed("boom")),
        recording("works", calls, result=[1]),
    )
    assert await chain.resolve(StubExecutor()) == [1]
    assert calls == ["broken", "works"]


@pytest.mark.asyncio
async def test_exclusive_all_empty_is_empty_result():
    calls = []
    chain = FallbackChain.exclusive("chain", recording("a", calls), recording("b", calls))
    assert await chain.resolve(StubExecutor()) == []


@pytest.mark.asyncio
async def test_exclusive_all_failed_raises_unavailable():
    chain = FallbackChain.exclusive(
        "gpu",
        recording("a", [], error=ExternalToolFailed("first")),
        recording("b", [], error=ExternalToolFailed("second")),
    )
    with pytest.raises(Unavailable) as exc:
        await chain.resolve(StubExecutor())
    assert "second" in str(exc.value)


@pytest.mark.asyncio
async def test_predicate_rejects_unusable_result():
    calls = []
    zero = Strategy("zero", recording("zero", calls, result=[0.0]).acquire, lambda r: r[0] > 0)
    chain = FallbackChain.exclusive("cpu", zero, recording("next", calls, result=[12.5]))
    assert await chain.resolve(StubExecutor()) == [12.5]


@pytest.mark.asyncio
async def test_additive_dedups_by_key_in_declared_order():
    first = recording("first", [], result=[{"path": "\\\\srv\\a", "src": 1}, {"path": "\\\\srv\\b", "src": 1}])
    second = recording("second", [], result=[{"path": "\\\\srv\\b", "src": 2}, {"path": "\\\\srv\\c", "src": 2}])
    chain = FallbackChain.additive("shares", first, second, key=lambda item: item["path"])
    merged = await chain.resolve(StubExecutor())
    assert [item["path"] for item in merged] == ["\\\\srv\\a", "\\\\srv\\b", "\\\\srv\\c"]
    assert merged[1]["src"] == 1


@pytest.mark.asyncio
async def test_additive_ignores_failed_strategies():
    chain = FallbackChain.additive(
        "merge",
        recording("bad", [], error=ExternalToolFailed("nope")),
        recording("good", [], result=["x"]),
        key=str,
    )
    assert await chain.resolve(StubExecutor()) == ["x"]


@pytest.mark.asyncio
async def test_additive_raises_when_nothing_could_spawn(spawn_failure):
    chain = FallbackChain.additive(
        "merge",
        recording("a", [], error=spawn_failure),
        recording("b", [], error=spawn_failure),
        key=str,
    )
    with pytest.raises(SpawnFailed):
        await chain.resolve(StubExecutor())


def test_additive_chain_needs_a_key():
    with pytest.raises(ValueError):
        FallbackChain("x", [], Discipline.ADDITIVE)


@pytest.mark.asyncio
async def test_nested_chain_as_strategy():
    calls = []
    inner = FallbackChain.exclusive("inner", recording("i1", calls), recording("i2", calls, result=["i"]))
    outer = FallbackChain.additive(
        "outer", inner.as_strategy(), recording("o", calls, result=["o"]), key=str
    )
    assert await outer.resolve(StubExecutor()) == ["i", "o"]


@pytest.mark.asyncio
async def test_command_strategy_maps_through_normalizer():
    stub = StubExecutor({"system.cpu_counter": ok(raw="Some warning\n17.25")})
    strategy = command_strategy(
        "counter", "system.cpu_counter", parse=lambda records: [float(r) for r in records]
    )
    # Noise before a bare number is not recoverable in bracket mode
    with pytest.raises(MalformedOutput):
        await strategy.acquire(stub)
    stub.script("system.cpu_counter", ok(raw="17.25"))
    assert await strategy.acquire(stub) == [17.25]


@pytest.mark.asyncio
async def test_cpu_chain_skips_zero_load_and_failed_counter():
    stub = StubExecutor(
        {
            "system.cpu_counter": failed("Get-Counter : The specified object was not found"),
            "system.cpu_load_percentage": ok(raw="0"),
            "system.cpu_perf_data": ok(raw="23.5"),
        }
    )
    assert await cpu_chain().resolve(stub) == [23.5]
    assert stub.calls == [
        "system.cpu_counter",
        "system.cpu_load_percentage",
        "system.cpu_perf_data",
    ]


@pytest.mark.asyncio
async def test_gpu_chain_prefers_dxdiag():
    stub = StubExecutor(
        {
            "hardware.gpu_dxdiag": ok(
                [{"Name": "NVIDIA GeForce RTX 4070", "DedicatedMemory": "12282 MB", "DriverVersion": "31.0.15.5186"}]
            ),
        }
    )
    gpus = await gpu_chain().resolve(stub)
    assert [g.name for g in gpus] == ["NVIDIA GeForce RTX 4070"]
    assert gpus[0].ram_mb == 12282
    assert stub.calls == ["hardware.gpu_dxdiag"]
