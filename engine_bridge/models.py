"""
Value types exchanged between adapters, managers and callers.

All records are frozen dataclasses: an AnalysisResult is created fresh for
every request and never mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple

# Positions are FEN strings supplied by the caller; compared byte-for-byte
Position = str

TIME = "movetime"
NODES = "nodes"
DEPTH = "depth"


@dataclass(frozen=True)
class SearchLimits:
    """
    Search budget for one request.

    Exactly one unit is sent to the engine. When several are supplied the
    precedence is fixed for every engine family: time, then nodes, then
    depth.
    """

    depth: Optional[int] = None
    time_ms: Optional[int] = None
    nodes: Optional[int] = None

    def __post_init__(self):
        for name in ("depth", "time_ms", "nodes"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

    @property
    def is_empty(self) -> bool:
        return self.depth is None and self.time_ms is None and self.nodes is None

    def budget(self) -> Tuple[str, int]:
        """
        Resolve the single budget unit to send with 'go'.

        Returns:
            Tuple of (UCI keyword, value), e.g. ("movetime", 2000)

        Raises:
            ValueError: If no limit is set
        """
        if self.time_ms is not None:
            return TIME, self.time_ms
        if self.nodes is not None:
            return NODES, self.nodes
        if self.depth is not None:
            return DEPTH, self.depth
        raise ValueError("SearchLimits has no depth, time or node limit")

    def capped(self, depth: Optional[int] = None, time_ms: Optional[int] = None) -> "SearchLimits":
        """
        Return a copy with depth and time clamped to the given caps.

        An unset depth takes the depth cap, so a capped request always has
        a bound. An unset time stays unset.
        """
        new_depth = self.depth
        if depth is not None:
            new_depth = depth if new_depth is None else min(new_depth, depth)
        new_time = self.time_ms
        if time_ms is not None and new_time is not None:
            new_time = min(new_time, time_ms)
        return SearchLimits(depth=new_depth, time_ms=new_time, nodes=self.nodes)


@dataclass(frozen=True)
class SearchRequest:
    """A position plus the budget to search it with."""

    position: Position
    limits: SearchLimits


@dataclass(frozen=True)
class WDL:
    """Win/draw/loss probabilities from the side to move's point of view."""

    win: float
    draw: float
    loss: float

    @classmethod
    def from_permille(cls, win: int, draw: int, loss: int) -> "WDL":
        return cls(win / 1000, draw / 1000, loss / 1000)


@dataclass(frozen=True)
class MoveRecord:
    """
    One analysed line.

    Attributes:
        move: UCI move string (e.g. "e2e4", "e7e8q")
        score: Evaluation in pawns, positive favours the side to move.
            Mate lines carry a sentinel beyond MATE_SCORE so plain numeric
            comparison orders them correctly.
        mate: Signed mate distance in moves, None for ordinary scores
        pv: Principal variation starting with move
        depth: Search depth reached
        nodes: Nodes searched
        nps: Nodes per second
        wdl: Win/draw/loss triple when the engine reports one
        rank: Variation index (1 = best)
        engine_id: Engine that produced the line, set by the manager
        engine_name: Display name of that engine
    """

    move: str
    score: float = 0.0
    mate: Optional[int] = None
    pv: Tuple[str, ...] = ()
    depth: int = 0
    nodes: int = 0
    nps: int = 0
    wdl: Optional[WDL] = None
    rank: int = 1
    seldepth: Optional[int] = None
    time_ms: Optional[int] = None
    engine_id: Optional[str] = None
    engine_name: Optional[str] = None

    @property
    def is_mate(self) -> bool:
        return self.mate is not None


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of a single search.

    Attributes:
        position: FEN the search ran on
        best: Top line; None only when the engine had no legal move
        variations: Every line seen during the search, ordered by rank
        engine_id: Identifier of the engine that produced the result
        engine_name: Display name of that engine
        elapsed_ms: Wall-clock time spent, including position setup
        ponder: Ponder move from the bestmove line, if any
    """

    position: Position
    best: Optional[MoveRecord]
    variations: Tuple[MoveRecord, ...] = ()
    engine_id: Optional[str] = None
    engine_name: Optional[str] = None
    elapsed_ms: int = 0
    ponder: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def best_move(self) -> Optional[str]:
        return self.best.move if self.best else None

    @property
    def evaluation(self) -> float:
        return self.best.score if self.best else 0.0

    @property
    def depth(self) -> int:
        return self.best.depth if self.best else 0

    @property
    def pv(self) -> Tuple[str, ...]:
        if self.best is None:
            return ()
        return self.best.pv or (self.best.move,)


@dataclass(frozen=True)
class EngineStatus:
    """Snapshot returned by get_status()."""

    engine_id: Optional[str]
    ready: bool
    current_position: Optional[Position]
    last_evaluation: Optional[MoveRecord]
    history_size: int
