"""
Collaborator boundaries.

The orchestration core only sees these shapes; how a position is read from
a page, how a move is clicked, or how arrows are drawn lives elsewhere.
Any object with matching methods qualifies, no inheritance needed.
"""

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from engine_bridge.constants import DEFAULT_MULTIPV
from engine_bridge.models import AnalysisResult, MoveRecord


@runtime_checkable
class BoardSource(Protocol):
    """Supplies the current position."""

    async def current_position(self) -> Optional[str]:
        """FEN of the position to analyse, None when nothing is to be done."""
        ...


@runtime_checkable
class MoveSink(Protocol):
    """Plays a move. The core never retries a failed execution."""

    async def execute_move(self, move: str, delay_ms: Optional[int] = None) -> bool:
        ...


@runtime_checkable
class DisplaySink(Protocol):
    """Renders analysis. Purely a consumer."""

    async def show_analysis(self, result: AnalysisResult, candidates: Sequence[MoveRecord]) -> None:
        ...


@runtime_checkable
class Analyzer(Protocol):
    """EngineManager and EnginePoolManager both fit."""

    async def analyze_position(
        self,
        position: str,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
    ) -> AnalysisResult:
        ...

    async def get_candidate_moves(
        self,
        position: str,
        count: int = DEFAULT_MULTIPV,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
    ) -> List[MoveRecord]:
        ...
