"""
Embedded Engine

A pure-Python UCI engine that runs inside the host process, for setups
with no engine binary installed.

Key Components:
    - ClassicalEvaluator: Material + piece-square tables (numpy)
    - Searcher: Iterative-deepening negamax with MultiPV
    - UCIEngine: UCI command handler, search on a worker thread

Protocol Flow (through EmbeddedAdapter or stdio):
    Host → "uci"
    Engine → "id name Engine Bridge Embedded 0.1"
    Engine → "uciok"
    Host → "position fen <FEN>"
    Host → "go depth 3"
    Engine → "info depth 3 multipv 1 score cp 25 ... pv e2e4 e7e5 g1f3"
    Engine → "bestmove e2e4 ponder e7e5"
"""

from engine_bridge.embedded.evaluation import ClassicalEvaluator
from engine_bridge.embedded.interface import UCIEngine
from engine_bridge.embedded.search import Searcher, order_moves, score_to_uci

__all__ = ['ClassicalEvaluator', 'Searcher', 'UCIEngine', 'order_moves', 'score_to_uci']
