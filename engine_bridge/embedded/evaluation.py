"""
Piece-Square Table Evaluation

Material plus positional bonuses, the classic "simplified evaluation
function". Tables are written from White's side with rank 8 on the first
row and are converted once, at import, into per-colour arrays indexed by
python-chess square number so evaluation is a handful of numpy sums.

Reference:
    Simplified Evaluation Function
    https://www.chessprogramming.org/Simplified_Evaluation_Function
"""

from typing import Dict, Tuple

import chess
import numpy as np

PIECE_VALUES = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}

# Non-pawn material below this (queen + rook) switches the king table
ENDGAME_MATERIAL = 1400

# fmt: off
PAWN_TABLE = np.array([
    [  0,   0,   0,   0,   0,   0,   0,   0],
    [ 50,  50,  50,  50,  50,  50,  50,  50],
    [ 10,  10,  20,  30,  30,  20,  10,  10],
    [  5,   5,  10,  25,  25,  10,   5,   5],
    [  0,   0,   0,  20,  20,   0,   0,   0],
    [  5,  -5, -10,   0,   0, -10,  -5,   5],
    [  5,  10,  10, -20, -20,  10,  10,   5],
    [  0,   0,   0,   0,   0,   0,   0,   0],
], dtype=np.int32)

KNIGHT_TABLE = np.array([
    [-50, -40, -30, -30, -30, -30, -40, -50],
    [-40, -20,   0,   0,   0,   0, -20, -40],
    [-30,   0,  10,  15,  15,  10,   0, -30],
    [-30,   5,  15,  20,  20,  15,   5, -30],
    [-30,   0,  15,  20,  20,  15,   0, -30],
    [-30,   5,  10,  15,  15,  10,   5, -30],
    [-40, -20,   0,   5,   5,   0, -20, -40],
    [-50, -40, -30, -30, -30, -30, -40, -50],
], dtype=np.int32)

BISHOP_TABLE = np.array([
    [-20, -10, -10, -10, -10, -10, -10, -20],
    [-10,   0,   0,   0,   0,   0,   0, -10],
    [-10,   0,   5,  10,  10,   5,   0, -10],
    [-10,   5,   5,  10,  10,   5,   5, -10],
    [-10,   0,  10,  10,  10,  10,   0, -10],
    [-10,  10,  10,  10,  10,  10,  10, -10],
    [-10,   5,   0,   0,   0,   0,   5, -10],
    [-20, -10, -10, -10, -10, -10, -10, -20],
], dtype=np.int32)

ROOK_TABLE = np.array([
    [  0,   0,   0,   0,   0,   0,   0,   0],
    [  5,  10,  10,  10,  10,  10,  10,   5],
    [ -5,   0,   0,   0,   0,   0,   0,  -5],
    [ -5,   0,   0,   0,   0,   0,   0,  -5],
    [ -5,   0,   0,   0,   0,   0,   0,  -5],
    [ -5,   0,   0,   0,   0,   0,   0,  -5],
    [ -5,   0,   0,   0,   0,   0,   0,  -5],
    [  0,   0,   0,   5,   5,   0,   0,   0],
], dtype=np.int32)

QUEEN_TABLE = np.array([
    [-20, -10, -10,  -5,  -5, -10, -10, -20],
    [-10,   0,   0,   0,   0,   0,   0, -10],
    [-10,   0,   5,   5,   5,   5,   0, -10],
    [ -5,   0,   5,   5,   5,   5,   0,  -5],
    [  0,   0,   5,   5,   5,   5,   0,  -5],
    [-10,   5,   5,   5,   5,   5,   0, -10],
    [-10,   0,   5,   0,   0,   0,   0, -10],
    [-20, -10, -10,  -5,  -5, -10, -10, -20],
], dtype=np.int32)

KING_MIDDLEGAME_TABLE = np.array([
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-20, -30, -30, -40, -40, -30, -30, -20],
    [-10, -20, -20, -20, -20, -20, -20, -10],
    [ 20,  20,   0,   0,   0,   0,  20,  20],
    [ 20,  30,  10,   0,   0,  10,  30,  20],
], dtype=np.int32)

KING_ENDGAME_TABLE = np.array([
    [-50, -40, -30, -20, -20, -30, -40, -50],
    [-30, -20, -10,   0,   0, -10, -20, -30],
    [-30, -10,  20,  30,  30,  20, -10, -30],
    [-30, -10,  30,  40,  40,  30, -10, -30],
    [-30, -10,  30,  40,  40,  30, -10, -30],
    [-30, -10,  20,  30,  30,  20, -10, -30],
    [-30, -30,   0,   0,   0,   0, -30, -30],
    [-50, -30, -30, -30, -30, -30, -30, -50],
], dtype=np.int32)
# fmt: on


def square_tables(table: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert a rank-8-first table into (white, black) arrays indexed by square.

    Square a1 is 0 and h8 is 63, so White reads the table upside down and
    Black, whose view is mirrored, reads it as written.
    """
    white = np.flipud(table).reshape(64)
    black = table.reshape(64)
    return white, black


class ClassicalEvaluator:
    """
    Material + piece-square table evaluation.

    Scores are integer centipawns. evaluate() is from White's point of view,
    evaluate_relative() from the side to move's, which is what negamax wants.
    """

    def __init__(self):
        self.tables: Dict[int, Tuple[np.ndarray, np.ndarray]] = {
            chess.PAWN: square_tables(PAWN_TABLE),
            chess.KNIGHT: square_tables(KNIGHT_TABLE),
            chess.BISHOP: square_tables(BISHOP_TABLE),
            chess.ROOK: square_tables(ROOK_TABLE),
            chess.QUEEN: square_tables(QUEEN_TABLE),
        }
        self.king_middlegame = square_tables(KING_MIDDLEGAME_TABLE)
        self.king_endgame = square_tables(KING_ENDGAME_TABLE)

    @staticmethod
    def is_endgame(board: chess.Board) -> bool:
        material = 0
        for piece_type in (chess.KNIGHT, chess.BISHOP, chess.ROOK, chess.QUEEN):
            count = len(board.pieces(piece_type, chess.WHITE)) + len(board.pieces(piece_type, chess.BLACK))
            material += count * PIECE_VALUES[piece_type]
        return material < ENDGAME_MATERIAL

    def _side_score(self, board: chess.Board, color: chess.Color, king_tables) -> int:
        index = 0 if color == chess.WHITE else 1
        score = 0
        for piece_type, tables in self.tables.items():
            squares = list(board.pieces(piece_type, color))
            if squares:
                score += len(squares) * PIECE_VALUES[piece_type]
                score += int(tables[index][squares].sum())
        king = board.king(color)
        if king is not None:
            score += int(king_tables[index][king])
        return score

    def evaluate(self, board: chess.Board) -> int:
        """
        Evaluate a position from White's perspective.

        Args:
            board: Position to score

        Returns:
            int: Centipawns, positive when White is better
        """
        king_tables = self.king_endgame if self.is_endgame(board) else self.king_middlegame
        white = self._side_score(board, chess.WHITE, king_tables)
        black = self._side_score(board, chess.BLACK, king_tables)
        return white - black

    def evaluate_relative(self, board: chess.Board) -> int:
        score = self.evaluate(board)
        return score if board.turn == chess.WHITE else -score
