"""
Unit Tests for the Embedded Engine

Tests for:
    - Evaluation: symmetry, material, endgame detection
    - Search: mates, MultiPV ordering, limits
    - UCI handler: responses, position errors, bestmove
    - EmbeddedAdapter: the full adapter contract without a binary
"""

import asyncio
import threading
import time

import chess
import pytest

from engine_bridge.adapters import EmbeddedAdapter
from engine_bridge.config import EngineConfig
from engine_bridge.embedded import ClassicalEvaluator, Searcher, UCIEngine, order_moves, score_to_uci
from engine_bridge.embedded.search import MATE_VALUE
from engine_bridge.exceptions import ConcurrentSearchError
from engine_bridge.models import SearchLimits, SearchRequest
from engine_bridge.uci.protocol import parse_line, BestMove, InfoLine

MATE_IN_ONE = "6k1/5ppp/8/8/8/8/8/R6K w - - 0 1"
FOOLS_MATE = "rnbqkbnr/pppp1ppp/8/4p3/6P1/5P2/PPPPP2P/RNBQKBNR b KQkq - 0 2"
STALEMATE = "7k/5Q2/6K1/8/8/8/8/8 b - - 0 1"


class TestEvaluation:
    """Tests for ClassicalEvaluator."""

    @pytest.fixture
    def evaluator(self):
        return ClassicalEvaluator()

    def test_starting_position_is_balanced(self, evaluator):
        assert evaluator.evaluate(chess.Board()) == 0

    def test_mirror_symmetry(self, evaluator):
        board = chess.Board("r1bqkbnr/pppp1ppp/2n5/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R w KQkq - 2 3")

        assert evaluator.evaluate(board) == -evaluator.evaluate(board.mirror())

    def test_material_advantage(self, evaluator):
        board = chess.Board("rnb1kbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1")

        assert evaluator.evaluate(board) > 800, "White is a queen up"

    def test_relative_follows_side_to_move(self, evaluator):
        board = chess.Board("rnb1kbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR b KQkq - 0 1")

        assert evaluator.evaluate_relative(board) == -evaluator.evaluate(board)

    def test_endgame_detection(self, evaluator):
        assert not evaluator.is_endgame(chess.Board())
        assert evaluator.is_endgame(chess.Board("8/5k2/8/8/8/8/3K4/4R3 w - - 0 1"))

    def test_returns_int(self, evaluator):
        assert isinstance(evaluator.evaluate(chess.Board()), int)


class TestSearcher:
    """Tests for the iterative-deepening searcher."""

    @pytest.fixture
    def searcher(self):
        return Searcher()

    def test_mate_in_one(self, searcher):
        board = chess.Board(MATE_IN_ONE)

        lines = searcher.search(board, depth=2)

        board.push(lines[0].move)
        assert board.is_checkmate(), f"Move {lines[0].move} should be checkmate"
        assert score_to_uci(lines[0].score) == ("mate", 1)

    def test_black_mates(self, searcher):
        board = chess.Board(FOOLS_MATE)

        lines = searcher.search(board, depth=2)

        assert lines[0].move == chess.Move.from_uci("d8h4"), f"Should find Qh4#, got {lines[0].move}"

    def test_board_left_unchanged(self, searcher):
        board = chess.Board()
        fen = board.fen()

        searcher.search(board, depth=2)

        assert board.fen() == fen

    def test_multipv_ordering(self, searcher):
        board = chess.Board()

        lines = searcher.search(board, depth=2, multipv=3)

        assert len(lines) == 3
        assert len({line.move for line in lines}) == 3, "Lines must be distinct moves"
        scores = [line.score for line in lines]
        assert scores == sorted(scores, reverse=True)
        for line in lines:
            assert line.pv[0] == line.move

    def test_multipv_capped_by_legal_moves(self, searcher):
        board = chess.Board("7k/8/8/8/8/8/8/K7 w - - 0 1")

        lines = searcher.search(board, depth=1, multipv=10)

        assert len(lines) == board.legal_moves.count()

    def test_no_legal_moves(self, searcher):
        assert searcher.search(chess.Board(STALEMATE), depth=3) == []

    def test_iterations_reported(self, searcher):
        depths = []

        searcher.search(chess.Board(), depth=3, on_iteration=lambda it: depths.append(it.depth))

        assert depths == [1, 2, 3]

    def test_node_limit(self, searcher):
        lines = searcher.search(chess.Board(), nodes=50)

        assert lines, "A node-limited search still returns a move"
        assert lines[0].move in chess.Board().legal_moves
        assert searcher.nodes <= 51

    def test_time_limit(self, searcher):
        lines = searcher.search(chess.Board(), movetime_ms=100)

        assert lines[0].move in chess.Board().legal_moves

    def test_stops_on_mate(self, searcher):
        depths = []

        searcher.search(chess.Board(MATE_IN_ONE), depth=6, on_iteration=lambda it: depths.append(it.depth))

        assert depths == [1], "Search should stop once a mate is found"


class TestHelpers:
    """Tests for move ordering and score conversion."""

    def test_captures_first(self):
        board = chess.Board("4k3/8/8/3q4/4P3/8/8/4K3 w - - 0 1")

        ordered = order_moves(board, list(board.legal_moves))

        assert ordered[0] == chess.Move.from_uci("e4d5")

    def test_score_to_uci(self):
        assert score_to_uci(35) == ("cp", 35)
        assert score_to_uci(-120) == ("cp", -120)
        assert score_to_uci(MATE_VALUE - 1) == ("mate", 1)
        assert score_to_uci(MATE_VALUE - 3) == ("mate", 2)
        assert score_to_uci(-(MATE_VALUE - 2)) == ("mate", -1)


class TestUCIEngine:
    """Tests for the embedded UCI command handler."""

    @pytest.fixture
    def output(self):
        return []

    @pytest.fixture
    def engine(self, output):
        return UCIEngine(emit=output.append)

    def test_handle_uci(self, engine, output):
        engine.handle_command("uci")

        assert output[0].startswith("id name"), "Should start with the engine name"
        assert any(line.startswith("option name MultiPV") for line in output)
        assert output[-1] == "uciok", "Should end with uciok"

    def test_handle_isready(self, engine, output):
        engine.handle_command("isready")

        assert output == ["readyok"]

    def test_setoption_multipv(self, engine):
        engine.handle_command("setoption name MultiPV value 3")
        assert engine.multipv == 3

        engine.handle_command("setoption name MultiPV value 500")
        assert engine.multipv == 64

        engine.handle_command("setoption name MultiPV value lots")
        assert engine.multipv == 64, "Invalid values are ignored"

    def test_position_with_moves(self, engine):
        engine.handle_command("position startpos moves e2e4 e7e5")

        assert engine.board.fen() == "rnbqkbnr/pppp1ppp/8/4p3/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 2"

    def test_position_fen(self, engine):
        engine.handle_command(f"position fen {MATE_IN_ONE}")

        assert engine.board.fen() == MATE_IN_ONE

    def test_invalid_fen(self, engine, output):
        engine.handle_command("position startpos moves e2e4")
        before = engine.board.fen()

        engine.handle_command("position fen not a fen")

        assert engine.board.fen() == before, "Board should be unchanged"
        assert output and output[-1].startswith("info string")

    def test_illegal_move_stops_application(self, engine, output):
        engine.handle_command("position startpos moves e2e4 e2e4")

        assert engine.board.move_stack == [chess.Move.from_uci("e2e4")]
        assert "info string illegal move e2e4" in output

    def test_go_emits_bestmove(self, engine, output):
        engine.handle_command(f"position fen {MATE_IN_ONE}")
        engine.handle_command("go depth 2")

        assert engine.wait(10), "Search should finish"
        best = parse_line(output[-1])
        assert isinstance(best, BestMove)
        assert best.move == "a1a8"
        infos = [parse_line(line) for line in output[:-1]]
        assert all(isinstance(info, InfoLine) for info in infos)
        assert infos[-1].score_kind == "mate"

    def test_go_without_moves(self, engine, output):
        engine.handle_command(f"position fen {STALEMATE}")
        engine.handle_command("go depth 2")

        assert engine.wait(10)
        assert output[-1] == "bestmove (none)"

    def test_stop_infinite(self, engine, output):
        engine.handle_command("position startpos")
        engine.handle_command("go infinite")
        engine.handle_command("stop")

        assert engine.wait(10), "stop should end an infinite search"
        assert output[-1].startswith("bestmove ")

    def test_go_does_not_wait_for_previous_search(self, engine, output):
        engine.search_thread = threading.Thread(target=time.sleep, args=(1.0,), daemon=True)
        engine.search_thread.start()

        started = time.monotonic()
        engine.handle_command("position startpos")
        engine.handle_command("go depth 1")
        engine.handle_command("ucinewgame")
        elapsed = time.monotonic() - started

        assert elapsed < 0.5, "go and ucinewgame must return while an older search winds down"
        assert engine.wait(10)
        assert output[-1].startswith("bestmove ")

    def test_consecutive_searches_keep_order(self, engine, output):
        engine.handle_command("position startpos")
        engine.handle_command("go infinite")
        engine.handle_command("go depth 1")

        assert engine.wait(10)
        bestmoves = [i for i, line in enumerate(output) if line.startswith("bestmove ")]
        assert len(bestmoves) == 2, "The interrupted search still reports its bestmove"
        assert bestmoves[-1] == len(output) - 1
        assert engine.searcher.stopped is False, "Each go gets a fresh searcher"

    def test_quit(self, engine):
        assert engine.handle_command("quit") is False
        assert engine.has_quit

    def test_unknown_command_ignored(self, engine, output):
        assert engine.handle_command("xyzzy") is True
        assert output == []


class TestEmbeddedAdapter:
    """Tests for EmbeddedAdapter through the shared adapter contract."""

    @pytest.fixture
    def config(self):
        return EngineConfig("embedded", "Embedded", family="embedded", depth=2)

    def test_search(self, config):
        async def run():
            adapter = EmbeddedAdapter(config)
            await adapter.initialize()
            try:
                assert adapter.engine_name.startswith("Engine Bridge Embedded")
                return await adapter.search(SearchRequest(MATE_IN_ONE, SearchLimits(depth=2)))
            finally:
                await adapter.quit()

        result = asyncio.run(run())

        assert result.best_move == "a1a8"
        assert result.best.mate == 1
        assert result.evaluation > 10000

    def test_multi_variation(self, config):
        async def run():
            adapter = EmbeddedAdapter(config)
            await adapter.initialize()
            try:
                return await adapter.search_multi_variation(3, SearchRequest(chess.STARTING_FEN, SearchLimits(depth=2)))
            finally:
                await adapter.quit()

        lines = asyncio.run(run())

        assert len(lines) == 3
        assert len({line.move for line in lines}) == 3
        assert [line.rank for line in lines] == [1, 2, 3]
        assert lines[0].score >= lines[1].score >= lines[2].score

    def test_concurrent_search_rejected(self, config):
        async def run():
            adapter = EmbeddedAdapter(config)
            await adapter.initialize()
            try:
                first = asyncio.ensure_future(
                    adapter.search(SearchRequest(chess.STARTING_FEN, SearchLimits(time_ms=300)))
                )
                await asyncio.sleep(0)
                with pytest.raises(ConcurrentSearchError):
                    await adapter.search(SearchRequest(chess.STARTING_FEN, SearchLimits(depth=1)))
                return await first
            finally:
                await adapter.quit()

        result = asyncio.run(run())

        assert result.best_move is not None

    def test_quit_is_idempotent(self, config):
        async def run():
            adapter = EmbeddedAdapter(config)
            await adapter.initialize()
            await adapter.quit()
            await adapter.quit()
            return adapter

        adapter = asyncio.run(run())

        assert not adapter.is_ready
        assert not adapter.is_alive
