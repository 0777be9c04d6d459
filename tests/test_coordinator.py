"""
Unit Tests for Multi-Engine Analysis

Tests for:
    - compute_consensus: agreement statistics and tie-breaking
    - AnalysisCoordinator: concurrent units, failure isolation, candidate caps
"""

import asyncio

import pytest

from engine_bridge.coordinator import AnalysisCoordinator, EngineAnalysis, compute_consensus
from engine_bridge.exceptions import PoolExhaustedError, UnknownEngineError
from engine_bridge.models import AnalysisResult, MoveRecord
from tests.fixtures.scripted import ScriptedFactory, scripted_registry

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def analysis(label, move, score=0.2):
    best = MoveRecord(move=move, score=score) if move else None
    return EngineAnalysis(label=label, engine_id=label.lower(), result=AnalysisResult(START_FEN, best))


def failure(label, error="engine crashed"):
    return EngineAnalysis(label=label, engine_id=label.lower(), error=error)


class TestConsensus:
    """Tests for compute_consensus()."""

    def test_majority(self):
        report = compute_consensus([analysis("A", "e2e4"), analysis("B", "e2e4"), analysis("C", "d2d4")])

        assert report.consensus == "e2e4"
        assert report.consensus_strength == pytest.approx(2 / 3)
        assert report.divergence == pytest.approx(1 / 3)
        assert report.moves == {"e2e4": 2, "d2d4": 1}
        assert report.total_engines == 3
        assert report.unique_moves == 2

    def test_full_agreement(self):
        report = compute_consensus([analysis("A", "g1f3"), analysis("B", "g1f3")])

        assert report.consensus_strength == 1.0
        assert report.divergence == 0.0

    def test_tie_goes_to_first_label(self):
        report = compute_consensus([analysis("A", "d2d4"), analysis("B", "e2e4")])

        assert report.consensus == "d2d4"
        assert report.consensus_strength == pytest.approx(0.5)
        assert report.divergence == pytest.approx(0.5)

    def test_failures_excluded(self):
        report = compute_consensus([analysis("A", "e2e4"), failure("B"), analysis("C", "d2d4")])

        assert list(report.engines) == ["A", "C"]
        assert report.failures == {"B": "engine crashed"}
        assert report.consensus_strength == pytest.approx(0.5)

    def test_no_successful_units(self):
        report = compute_consensus([failure("A"), analysis("B", None)])

        assert report.consensus is None
        assert report.consensus_strength is None
        assert report.divergence is None
        assert report.moves == {}
        assert report.failures == {"A": "engine crashed", "B": "no result"}

    def test_empty(self):
        assert compute_consensus([]).consensus is None


@pytest.fixture
def registry():
    return scripted_registry("sf", "maia", "leela")


def make_coordinator(registry, factory, engines=None, **kwargs):
    engines = engines or {"Stockfish": "sf", "Maia": "maia", "Leela": "leela"}
    return AnalysisCoordinator(registry, engines, manager_factory=factory.manager, **kwargs)


class TestAnalysisCoordinator:
    """Tests for AnalysisCoordinator."""

    def test_consensus_across_engines(self, registry):
        factory = ScriptedFactory({"leela": {"moves": ["d2d4", "e2e4"]}})

        async def run():
            coordinator = make_coordinator(registry, factory)
            try:
                return await coordinator.analyze_position(START_FEN)
            finally:
                await coordinator.cleanup()

        report = asyncio.run(run())

        assert report.consensus == "e2e4"
        assert report.consensus_strength == pytest.approx(2 / 3)
        assert report.divergence == pytest.approx(1 / 3)
        assert list(report.engines) == ["Stockfish", "Maia", "Leela"]
        assert report.engines["Leela"].best_move == "d2d4"
        assert len(report.engines["Stockfish"].candidates) == 3

    def test_failed_unit_is_isolated(self, registry):
        factory = ScriptedFactory({"maia": {"fail_search": True}})

        async def run():
            coordinator = make_coordinator(registry, factory)
            try:
                return await coordinator.analyze_position(START_FEN)
            finally:
                await coordinator.cleanup()

        report = asyncio.run(run())

        assert list(report.engines) == ["Stockfish", "Leela"]
        assert "Maia" in report.failures
        assert report.consensus == "e2e4"
        assert report.consensus_strength == 1.0

    def test_engine_failing_to_start_is_skipped(self, registry):
        factory = ScriptedFactory({"sf": {"fail_launch": True}})

        async def run():
            coordinator = make_coordinator(registry, factory)
            try:
                await coordinator.initialize()
                return list(coordinator.managers)
            finally:
                await coordinator.cleanup()

        assert asyncio.run(run()) == ["Maia", "Leela"]

    def test_no_engine_starts(self, registry):
        factory = ScriptedFactory({name: {"fail_launch": True} for name in ("sf", "maia", "leela")})

        async def run():
            coordinator = make_coordinator(registry, factory)
            with pytest.raises(PoolExhaustedError):
                await coordinator.initialize()
            return coordinator.is_initialized

        assert asyncio.run(run()) is False

    def test_unknown_engine_rejected_up_front(self, registry):
        with pytest.raises(UnknownEngineError):
            make_coordinator(registry, ScriptedFactory(), engines={"Ghost": "ghost"})

    def test_budgets(self, registry):
        factory = ScriptedFactory()

        async def run():
            coordinator = make_coordinator(registry, factory, engines={"Stockfish": "sf"})
            try:
                await coordinator.analyze_position(START_FEN, depth=20, time_ms=5000)
            finally:
                await coordinator.cleanup()

        asyncio.run(run())

        commands = factory.adapters[0].commands
        goes = [c for c in commands if c.startswith("go ")]
        assert goes == ["go movetime 5000", "go movetime 1000"], "Candidate search time is capped"
        assert "setoption name MultiPV value 3" in commands

    def test_depth_only_candidates_capped(self, registry):
        factory = ScriptedFactory()

        async def run():
            coordinator = make_coordinator(registry, factory, engines={"Stockfish": "sf"}, time_ms=None)
            try:
                await coordinator.analyze_position(START_FEN, depth=20)
            finally:
                await coordinator.cleanup()

        asyncio.run(run())

        goes = [c for c in factory.adapters[0].commands if c.startswith("go ")]
        assert goes == ["go depth 20", "go depth 10"]

    def test_units_run_concurrently(self, registry):
        factory = ScriptedFactory({engine_id: {"delay": 0.2} for engine_id in ("sf", "maia", "leela")})

        async def run():
            coordinator = make_coordinator(registry, factory)
            try:
                await coordinator.initialize()
                loop = asyncio.get_running_loop()
                started = loop.time()
                report = await coordinator.analyze_position(START_FEN)
                return report, loop.time() - started
            finally:
                await coordinator.cleanup()

        report, elapsed = asyncio.run(run())

        assert report.total_engines == 3
        assert all(unit.elapsed_ms >= 350 for unit in report.engines.values())
        # Each unit is two 0.2s searches; back to back the three would need 1.2s
        assert elapsed < 0.9, f"Units should overlap, took {elapsed:.2f}s"

    def test_comparison(self, registry):
        factory = ScriptedFactory()

        async def run():
            coordinator = make_coordinator(registry, factory)
            try:
                assert coordinator.get_comparison() == []
                await coordinator.analyze_position(START_FEN)
                return coordinator.get_comparison()
            finally:
                await coordinator.cleanup()

        comparison = asyncio.run(run())

        assert [row["engine"] for row in comparison] == ["Stockfish", "Maia", "Leela"]
        first = comparison[0]
        assert first["move"] == "e2e4"
        assert first["eval"] == pytest.approx(0.30)
        assert [c["move"] for c in first["candidates"]] == ["e2e4", "d2d4"]

    def test_cleanup_resets(self, registry):
        factory = ScriptedFactory()

        async def run():
            coordinator = make_coordinator(registry, factory)
            await coordinator.analyze_position(START_FEN)
            coordinator.stop_all()
            await coordinator.cleanup()
            return coordinator

        coordinator = asyncio.run(run())

        assert coordinator.managers == {}
        assert coordinator.last_report is None
        assert not coordinator.is_initialized
        assert not any(adapter.is_ready for adapter in factory.adapters)
