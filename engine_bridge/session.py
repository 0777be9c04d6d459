"""
Analysis session loop.

Polls a board source, analyses every new position once, publishes the
result to display sinks and, in auto-play mode, hands the best move to a
move sink. A failed analysis is logged and the loop carries on with the
next position change.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from engine_bridge.constants import CANDIDATE_COUNT, CANDIDATE_DEPTH_CAP, CANDIDATE_TIME_CAP_MS
from engine_bridge.interfaces import Analyzer, BoardSource, DisplaySink, MoveSink
from engine_bridge.models import AnalysisResult, MoveRecord, SearchLimits

logger = logging.getLogger(__name__)


@dataclass
class SessionSettings:
    depth: Optional[int] = None
    time_ms: Optional[int] = None
    candidate_count: int = CANDIDATE_COUNT
    show_candidates: bool = True
    auto_play: bool = False
    move_delay_ms: Optional[int] = None
    poll_interval: float = 1.0


@dataclass
class GameState:
    position: Optional[str] = None
    evaluation: Optional[float] = None
    last_move: Optional[str] = None
    move_count: int = 0


class AnalysisSession:
    """
    Drives an analyzer from a board source.

    Attributes:
        analyzer: EngineManager, EnginePoolManager or anything alike
        board: Position source
        displays: Sinks receiving every result
        mover: Move sink used when auto_play is on
        state: Last analysed position, evaluation and played moves
    """

    def __init__(
        self,
        analyzer: Analyzer,
        board: BoardSource,
        displays: Sequence[DisplaySink] = (),
        mover: Optional[MoveSink] = None,
        settings: Optional[SessionSettings] = None,
    ):
        self.analyzer = analyzer
        self.board = board
        self.displays = list(displays)
        self.mover = mover
        self.settings = settings or SessionSettings()
        self.state = GameState()

    def _candidate_limits(self) -> SearchLimits:
        limits = SearchLimits(depth=self.settings.depth, time_ms=self.settings.time_ms)
        return limits.capped(CANDIDATE_DEPTH_CAP, CANDIDATE_TIME_CAP_MS)

    async def step(self) -> Optional[AnalysisResult]:
        """
        Analyse the board if its position changed since the last step.

        Returns:
            The new result, or None when there was nothing to do
        """
        position = await self.board.current_position()
        if position is None or position == self.state.position:
            return None
        return await self.process_position(position)

    async def process_position(self, position: str) -> AnalysisResult:
        """Analyse one position, publish it and optionally play the best move."""
        logger.info(f"Current position: {position}")
        # Recorded before analysing so a failing position is not retried
        self.state.position = position

        result = await self.analyzer.analyze_position(
            position,
            depth=self.settings.depth,
            time_ms=self.settings.time_ms,
        )
        self.state.evaluation = result.evaluation

        candidates: List[MoveRecord] = []
        if self.settings.show_candidates:
            limits = self._candidate_limits()
            candidates = await self.analyzer.get_candidate_moves(
                position,
                self.settings.candidate_count,
                depth=limits.depth,
                time_ms=limits.time_ms,
            )

        for display in self.displays:
            await display.show_analysis(result, candidates)

        if self.settings.auto_play and self.mover is not None and result.best_move:
            if await self.mover.execute_move(result.best_move, self.settings.move_delay_ms):
                self.state.last_move = result.best_move
                self.state.move_count += 1
                logger.info(f"Move {self.state.move_count}: {result.best_move}")
            else:
                logger.error(f"Failed to execute move {result.best_move}")

        return result

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until stop is set."""
        logger.info("Analysis session started")
        while not stop.is_set():
            try:
                await self.step()
            except Exception as e:
                logger.error(f"Error during analysis loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop.wait(), self.settings.poll_interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Analysis session stopped")
