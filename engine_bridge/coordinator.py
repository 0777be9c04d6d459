"""
Multi-engine analysis coordinator.

Runs several engines on the same position at once, one unit of work per
engine (best move + a short candidate search), and measures how much they
agree. Meant for side-by-side comparison rather than autonomous play.

Consensus:
    consensus      most frequent best move, ties to the first label seen
    strength       winning count / successful engines
    divergence     (distinct moves - 1) / successful engines

Failed units count as absent; with no successful unit every statistic is
None.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from engine_bridge.config import EngineRegistry, default_registry
from engine_bridge.constants import CANDIDATE_COUNT, CANDIDATE_DEPTH_CAP, CANDIDATE_TIME_CAP_MS, DEFAULT_DEPTH
from engine_bridge.exceptions import EngineError, PoolExhaustedError
from engine_bridge.manager import EngineManager
from engine_bridge.models import AnalysisResult, MoveRecord, SearchLimits

logger = logging.getLogger(__name__)

DEFAULT_COORDINATOR_TIME_MS = 3000

ManagerFactory = Callable[[EngineRegistry, str], EngineManager]


@dataclass(frozen=True)
class EngineAnalysis:
    """Outcome of one engine's unit of work."""

    label: str
    engine_id: str
    result: Optional[AnalysisResult] = None
    candidates: Tuple[MoveRecord, ...] = ()
    elapsed_ms: int = 0
    color: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.result.best_move is not None

    @property
    def best_move(self) -> Optional[str]:
        return self.result.best_move if self.result else None

    @property
    def evaluation(self) -> Optional[float]:
        return self.result.evaluation if self.result else None


@dataclass(frozen=True)
class ConsensusReport:
    """
    Consolidated output of one coordinated analysis.

    Attributes:
        engines: Successful analyses by label, in label order
        failures: Label -> error message for units that failed
        moves: Best move -> number of engines proposing it
        consensus: Most frequent best move, None without results
        consensus_strength: Share of successful engines backing it
        divergence: 0 when all agree, towards 1 as they disagree
    """

    engines: Dict[str, EngineAnalysis] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    moves: Dict[str, int] = field(default_factory=dict)
    consensus: Optional[str] = None
    consensus_strength: Optional[float] = None
    divergence: Optional[float] = None

    @property
    def total_engines(self) -> int:
        return len(self.engines)

    @property
    def unique_moves(self) -> int:
        return len(self.moves)


def compute_consensus(analyses: List[EngineAnalysis]) -> ConsensusReport:
    """
    Tally best moves across analyses and measure agreement.

    Args:
        analyses: Units in label order, failed ones included

    Returns:
        ConsensusReport; statistics are None when nothing succeeded
    """
    engines: Dict[str, EngineAnalysis] = {}
    failures: Dict[str, str] = {}
    tally: Counter = Counter()

    for analysis in analyses:
        if analysis.succeeded:
            engines[analysis.label] = analysis
            tally[analysis.best_move] += 1
        else:
            failures[analysis.label] = analysis.error or "no result"

    successful = len(engines)
    if successful == 0:
        return ConsensusReport(engines=engines, failures=failures)

    # Counter keeps insertion order, so max() returns the first label's move on ties
    consensus, count = max(tally.items(), key=lambda item: item[1])
    return ConsensusReport(
        engines=engines,
        failures=failures,
        moves=dict(tally),
        consensus=consensus,
        consensus_strength=count / successful,
        divergence=(len(tally) - 1) / successful,
    )


def _default_manager_factory(registry: EngineRegistry, engine_id: str) -> EngineManager:
    return EngineManager(registry, engine_id)


class AnalysisCoordinator:
    """
    Runs labelled engines concurrently against one position.

    Attributes:
        registry: Engine configuration lookup
        engine_map: Display label -> engine identifier
        managers: Label -> running EngineManager (only engines that started)
        last_report: Report of the most recent analysis
    """

    def __init__(
        self,
        registry: Optional[EngineRegistry] = None,
        engines: Optional[Mapping[str, str]] = None,
        depth: int = DEFAULT_DEPTH,
        time_ms: Optional[int] = DEFAULT_COORDINATOR_TIME_MS,
        candidate_count: int = CANDIDATE_COUNT,
        manager_factory: ManagerFactory = _default_manager_factory,
    ):
        self.registry = registry or default_registry()
        self.engine_map: Dict[str, str] = dict(engines if engines is not None else self.registry.dual_analysis)
        for engine_id in self.engine_map.values():
            self.registry.get(engine_id)

        self.depth = depth
        self.time_ms = time_ms
        self.candidate_count = candidate_count
        self.managers: Dict[str, EngineManager] = {}
        self.last_report: Optional[ConsensusReport] = None
        self.is_initialized = False
        self._manager_factory = manager_factory

    async def initialize(self) -> None:
        """
        Start every labelled engine concurrently.

        Labels whose engine fails to start are skipped with an error log.

        Raises:
            PoolExhaustedError: If no engine could be started
        """
        logger.info(f"Initializing {len(self.engine_map)} engine(s) for multi-engine analysis...")

        labels = list(self.engine_map)
        managers = [self._manager_factory(self.registry, self.engine_map[label]) for label in labels]
        outcomes = await asyncio.gather(
            *(manager.initialize() for manager in managers),
            return_exceptions=True,
        )

        for label, manager, outcome in zip(labels, managers, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"Failed to initialize {label} ({self.engine_map[label]}): {outcome}")
                continue
            self.managers[label] = manager
            logger.info(f"{label} engine ready")

        if not self.managers:
            raise PoolExhaustedError("No engines could be initialized for multi-engine analysis")

        self.is_initialized = True
        logger.info(f"Multi-engine analysis ready with {len(self.managers)} engine(s)")

    async def analyze_position(
        self,
        position: str,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
    ) -> ConsensusReport:
        """
        Analyse a position with every running engine at once.

        Each unit runs analyze_position, then a candidate search capped at
        CANDIDATE_DEPTH_CAP plies and CANDIDATE_TIME_CAP_MS. A failing unit
        is recorded and does not affect the others.

        Returns:
            ConsensusReport over the units that succeeded
        """
        if not self.is_initialized:
            await self.initialize()

        depth = depth or self.depth
        time_ms = time_ms or self.time_ms
        logger.info(f"Multi-engine analysis of {position}")

        analyses = await asyncio.gather(*(
            self._analyze_with_engine(label, manager, position, depth, time_ms)
            for label, manager in self.managers.items()
        ))

        report = compute_consensus(list(analyses))
        self.last_report = report
        if report.consensus is not None:
            logger.info(
                f"Consensus {report.consensus} ({report.consensus_strength:.0%}), "
                f"divergence {report.divergence:.3f}"
            )
        else:
            logger.warning("No engine produced a result for this position")
        return report

    async def _analyze_with_engine(
        self,
        label: str,
        manager: EngineManager,
        position: str,
        depth: int,
        time_ms: Optional[int],
    ) -> EngineAnalysis:
        engine_id = self.engine_map[label]
        color = self.registry.get(engine_id).color
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            result = await manager.analyze_position(position, depth=depth, time_ms=time_ms)
            limits = SearchLimits(depth=depth, time_ms=time_ms)
            limits = limits.capped(CANDIDATE_DEPTH_CAP, CANDIDATE_TIME_CAP_MS)
            candidates = await manager.get_candidate_moves(
                position,
                self.candidate_count,
                depth=limits.depth,
                time_ms=limits.time_ms,
            )
        except EngineError as e:
            logger.error(f"Error analyzing with {label}: {e}")
            return EngineAnalysis(label=label, engine_id=engine_id, color=color, error=str(e))

        elapsed_ms = int((loop.time() - started) * 1000)
        logger.info(f"{label}: {result.best_move} ({result.evaluation:.2f}) - {elapsed_ms}ms")
        return EngineAnalysis(
            label=label,
            engine_id=engine_id,
            result=result,
            candidates=tuple(candidates),
            elapsed_ms=elapsed_ms,
            color=color,
        )

    def get_comparison(self) -> List[Dict[str, Any]]:
        """Per-engine summary of the last report with its top two candidates."""
        if self.last_report is None:
            return []
        return [
            {
                "engine": label,
                "move": analysis.best_move,
                "eval": analysis.evaluation,
                "color": analysis.color,
                "candidates": [
                    {"move": candidate.move, "eval": candidate.score}
                    for candidate in analysis.candidates[:2]
                ],
            }
            for label, analysis in self.last_report.engines.items()
        ]

    def stop_all(self) -> None:
        for label, manager in self.managers.items():
            try:
                manager.stop_analysis()
            except EngineError as e:
                logger.error(f"Error stopping {label}: {e}")

    async def cleanup(self) -> None:
        logger.info("Cleaning up multi-engine analysis...")
        for label, manager in list(self.managers.items()):
            try:
                await manager.quit()
                logger.info(f"{label} cleaned up")
            except EngineError as e:
                logger.error(f"Error cleaning up {label}: {e}", exc_info=True)

        self.managers.clear()
        self.last_report = None
        self.is_initialized = False
