"""
Negamax Search with Alpha-Beta Pruning

Iterative deepening over a plain negamax. Each completed depth is reported
through a callback so the UCI layer can stream 'info' lines, and the best
lines of the last completed depth are returned when a limit hits.

Key Concepts:
    - Negamax: scores are always from the side to move, so one routine
      serves both colours
    - Iterative deepening: depth 1, 2, 3... reusing the previous ordering
      at the root; an aborted iteration is thrown away
    - MultiPV: every root move is searched with a full window, so the
      top k lines all carry exact scores
    - Limits: depth, wall time, node count and an external stop flag

References:
    - Negamax: https://www.chessprogramming.org/Negamax
    - Alpha-Beta: https://www.chessprogramming.org/Alpha-Beta
    - Move Ordering: https://www.chessprogramming.org/Move_Ordering
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import chess

from engine_bridge.embedded.evaluation import PIECE_VALUES, ClassicalEvaluator

MATE_VALUE = 100000
MAX_PLY = 64
INFINITY = MATE_VALUE + 1

# Wall clock is checked every this many nodes
TIME_CHECK_INTERVAL = 128


class SearchAborted(Exception):
    """Raised inside the tree when a limit or stop request hits."""


@dataclass
class SearchLine:
    move: chess.Move
    score: int
    pv: List[chess.Move] = field(default_factory=list)


@dataclass
class Iteration:
    """One completed depth of iterative deepening."""

    depth: int
    seldepth: int
    lines: List[SearchLine]
    nodes: int
    elapsed_ms: int


def score_to_uci(score: int) -> Tuple[str, int]:
    """
    Convert an internal score to a UCI ('cp' | 'mate', value) pair.

    Mate scores encode the ply distance as MATE_VALUE - ply; UCI wants full
    moves, negative when the side to move is getting mated.
    """
    if abs(score) >= MATE_VALUE - MAX_PLY:
        plies = MATE_VALUE - abs(score)
        moves = (plies + 1) // 2
        return "mate", moves if score > 0 else -moves
    return "cp", score


def _ordering_value(piece_type: Optional[int]) -> int:
    if piece_type == chess.KING:
        return 20000
    return PIECE_VALUES.get(piece_type, 100)


def order_moves(board: chess.Board, moves: List[chess.Move]) -> List[chess.Move]:
    """
    Sort moves so the likely-best are searched first.

    Priority: captures by MVV-LVA, promotions, checks, castling.
    """

    def key(move: chess.Move) -> int:
        score = 0
        if board.is_capture(move):
            victim = board.piece_at(move.to_square)
            attacker = board.piece_at(move.from_square)
            victim_value = _ordering_value(victim.piece_type if victim else chess.PAWN)
            attacker_value = _ordering_value(attacker.piece_type if attacker else chess.PAWN)
            score += 10000 + victim_value - attacker_value // 10
        if move.promotion:
            score += 8000
        if board.gives_check(move):
            score += 5000
        if board.is_castling(move):
            score += 3000
        return score

    return sorted(moves, key=key, reverse=True)


class Searcher:
    """
    Search driver for one 'go'.

    stop() may be called from another thread; the running search unwinds
    at its next node and returns the last completed iteration. The flag is
    never cleared, so a stop that arrives before the worker thread starts
    searching is not lost. Use a fresh Searcher for the next search.
    """

    def __init__(self, evaluator: Optional[ClassicalEvaluator] = None):
        self.evaluator = evaluator or ClassicalEvaluator()
        self.nodes = 0
        self.seldepth = 0
        self._stop = threading.Event()
        self._deadline: Optional[float] = None
        self._node_limit: Optional[int] = None

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def search(
        self,
        board: chess.Board,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        nodes: Optional[int] = None,
        multipv: int = 1,
        on_iteration: Optional[Callable[[Iteration], None]] = None,
    ) -> List[SearchLine]:
        """
        Search the position until a limit is reached.

        Args:
            board: Position to search (pushed and popped, left unchanged)
            depth: Maximum depth; MAX_PLY when only time/nodes/stop bound it
            movetime_ms: Wall-clock budget
            nodes: Node budget
            multipv: Number of root lines to rank
            on_iteration: Called after every completed depth

        Returns:
            Best lines of the deepest completed iteration, best first.
            Empty only when the side to move has no legal move.
        """
        self.nodes = 0
        self.seldepth = 0
        start = time.monotonic()
        self._deadline = start + movetime_ms / 1000 if movetime_ms else None
        self._node_limit = nodes

        root_moves = order_moves(board, list(board.legal_moves))
        if not root_moves:
            return []

        max_depth = min(depth or MAX_PLY, MAX_PLY)
        multipv = max(1, min(multipv, len(root_moves)))
        best: List[SearchLine] = []

        for current in range(1, max_depth + 1):
            try:
                ranked = self._search_root(board, current, root_moves)
            except SearchAborted:
                break

            best = ranked[:multipv]
            # Previous iteration's ranking is the next one's move order
            root_moves = [line.move for line in ranked]

            if on_iteration:
                elapsed_ms = int((time.monotonic() - start) * 1000)
                on_iteration(Iteration(current, max(self.seldepth, current), best, self.nodes, elapsed_ms))

            if abs(best[0].score) >= MATE_VALUE - MAX_PLY:
                break

        if not best:
            # Aborted before depth 1 finished: fall back to ordering + static eval
            move = root_moves[0]
            board.push(move)
            score = -self.evaluator.evaluate_relative(board)
            board.pop()
            best = [SearchLine(move, score, [move])]

        return best

    def _check_limits(self) -> None:
        if self._stop.is_set():
            raise SearchAborted()
        if self._node_limit is not None and self.nodes >= self._node_limit:
            raise SearchAborted()
        if self._deadline is not None and self.nodes % TIME_CHECK_INTERVAL == 0:
            if time.monotonic() >= self._deadline:
                raise SearchAborted()

    def _search_root(self, board: chess.Board, depth: int, root_moves: List[chess.Move]) -> List[SearchLine]:
        lines: List[SearchLine] = []
        for move in root_moves:
            board.push(move)
            try:
                score, pv = self._negamax(board, depth - 1, -INFINITY, INFINITY, 1)
            finally:
                board.pop()
            lines.append(SearchLine(move, -score, [move] + pv))
        lines.sort(key=lambda line: line.score, reverse=True)
        return lines

    def _negamax(
        self,
        board: chess.Board,
        depth: int,
        alpha: int,
        beta: int,
        ply: int,
    ) -> Tuple[int, List[chess.Move]]:
        self.nodes += 1
        self._check_limits()
        if ply > self.seldepth:
            self.seldepth = ply

        if board.is_insufficient_material() or board.is_repetition(2) or board.halfmove_clock >= 100:
            return 0, []

        if depth <= 0:
            if board.is_checkmate():
                return -MATE_VALUE + ply, []
            return self.evaluator.evaluate_relative(board), []

        moves = list(board.legal_moves)
        if not moves:
            if board.is_check():
                return -MATE_VALUE + ply, []
            return 0, []

        best_score = -INFINITY
        best_pv: List[chess.Move] = []
        for move in order_moves(board, moves):
            board.push(move)
            try:
                score, pv = self._negamax(board, depth - 1, -beta, -alpha, ply + 1)
            finally:
                board.pop()
            score = -score

            if score > best_score:
                best_score = score
                best_pv = [move] + pv
            if score > alpha:
                alpha = score
            if alpha >= beta:
                break

        return best_score, best_pv
