"""
Unit Tests for the UCI Line Codec

Tests for:
    - 'info' parsing: arities, order independence, pv last, junk tolerance
    - Score normalization and mate ordering
    - Terminal and handshake lines
    - Outbound command formatting and budget precedence
"""

import pytest

from engine_bridge.constants import MATE_SCORE
from engine_bridge.models import SearchLimits
from engine_bridge.uci.protocol import (
    BestMove,
    IdLine,
    InfoLine,
    OptionLine,
    ReadyOk,
    UciOk,
    format_go,
    format_position,
    format_setoption,
    is_uci_move,
    normalize_score,
    parse_line,
)


class TestInfoParsing:
    """Tests for 'info' lines."""

    def test_full_line(self):
        line = parse_line(
            "info depth 12 seldepth 18 multipv 2 score cp 31 nodes 12345 nps 600000 "
            "hashfull 12 tbhits 0 time 20 pv e2e4 e7e5 g1f3"
        )

        assert isinstance(line, InfoLine)
        assert line.depth == 12
        assert line.seldepth == 18
        assert line.multipv == 2
        assert line.score_kind == "cp"
        assert line.score_value == 31
        assert line.nodes == 12345
        assert line.nps == 600000
        assert line.time_ms == 20
        assert line.pv == ("e2e4", "e7e5", "g1f3")

    def test_key_order_does_not_matter(self):
        a = parse_line("info depth 3 score cp 10 nodes 50 pv d2d4")
        b = parse_line("info nodes 50 score cp 10 depth 3 pv d2d4")

        assert a == b, "Same keys in a different order should parse identically"

    def test_pv_swallows_rest_of_line(self):
        line = parse_line("info pv e2e4 depth 9")

        assert line.pv == ("e2e4", "depth", "9"), "pv must consume every remaining token"
        assert line.depth is None

    def test_score_bound_and_wdl(self):
        line = parse_line("info depth 20 score cp -45 upperbound wdl 100 400 500 pv e7e5")

        assert line.score_value == -45
        assert line.bound == "upperbound"
        assert line.wdl.win == pytest.approx(0.1)
        assert line.wdl.draw == pytest.approx(0.4)
        assert line.wdl.loss == pytest.approx(0.5)

    def test_unknown_and_malformed_keys_skipped(self):
        line = parse_line("info frobnicate 7 depth x depth 4 score cp score mate 2 pv h7h8q")

        assert line.depth == 4
        assert line.score_kind == "mate"
        assert line.score_value == 2
        assert line.pv == ("h7h8q",)

    def test_string_info_has_no_record(self):
        line = parse_line("info string NNUE evaluation using nn-123.nnue enabled")

        assert line.string.startswith("NNUE")
        assert line.to_record() is None

    def test_currmove_line_has_no_record(self):
        line = parse_line("info depth 10 currmove e2e4 currmovenumber 1")

        assert line.currmove == "e2e4"
        assert line.currmovenumber == 1
        assert line.to_record() is None

    def test_to_record(self):
        record = parse_line("info depth 8 multipv 3 score mate -2 nodes 900 pv g8f6 e4e5").to_record()

        assert record.move == "g8f6"
        assert record.rank == 3
        assert record.mate == -2
        assert record.is_mate
        assert record.score < -MATE_SCORE
        assert record.pv == ("g8f6", "e4e5")

    def test_missing_multipv_means_first_line(self):
        assert parse_line("info depth 1 score cp 5 pv e2e4").variation == 1


class TestScoreNormalization:
    """Tests for normalize_score()."""

    def test_centipawns_to_pawns(self):
        assert normalize_score("cp", 31) == pytest.approx(0.31)
        assert normalize_score("cp", -150) == pytest.approx(-1.5)

    def test_mate_ordering(self):
        mate_in_1 = normalize_score("mate", 1)
        mate_in_5 = normalize_score("mate", 5)
        mated_in_5 = normalize_score("mate", -5)
        mated_in_1 = normalize_score("mate", -1)
        big_eval = normalize_score("cp", 999)

        assert mate_in_1 > mate_in_5 > big_eval, "Shorter mates must rank above longer ones and any eval"
        assert -big_eval > mated_in_5 > mated_in_1, "Getting mated sooner must rank lowest"
        assert abs(mate_in_5) >= MATE_SCORE

    def test_huge_mate_distance_stays_above_evals(self):
        assert normalize_score("mate", 50000) > normalize_score("cp", 100000)

    def test_mate_zero_is_lost(self):
        assert normalize_score("mate", 0) < normalize_score("mate", -1)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            normalize_score("lowerbound", 3)


class TestOtherLines:
    """Tests for terminal and handshake lines."""

    def test_bestmove_with_ponder(self):
        assert parse_line("bestmove e2e4 ponder e7e5") == BestMove("e2e4", "e7e5")

    def test_bestmove_without_ponder(self):
        assert parse_line("bestmove a7a8q") == BestMove("a7a8q", None)

    @pytest.mark.parametrize("token", ["(none)", "0000"])
    def test_null_bestmove(self, token):
        assert parse_line(f"bestmove {token}").move is None

    def test_handshake_lines(self):
        assert parse_line("uciok") == UciOk()
        assert parse_line("readyok\n") == ReadyOk()
        assert parse_line("id name Stockfish 16.1") == IdLine("name", "Stockfish 16.1")

    def test_option_name_with_spaces(self):
        line = parse_line("option name Skill Level type spin default 20 min 0 max 20")

        assert line == OptionLine("Skill Level")

    def test_unrecognised_lines(self):
        assert parse_line("") is None
        assert parse_line("Stockfish 16 by the Stockfish developers") is None

    def test_uci_move_grammar(self):
        assert is_uci_move("e2e4")
        assert is_uci_move("e7e8q")
        assert not is_uci_move("e7e8k")
        assert not is_uci_move("Nf3")
        assert not is_uci_move(None)


class TestCommandFormatting:
    """Tests for outbound commands."""

    def test_setoption(self):
        assert format_setoption("MultiPV", 3) == "setoption name MultiPV value 3"
        assert format_setoption("UCI_ShowWDL", True) == "setoption name UCI_ShowWDL value true"
        assert format_setoption("Clear Hash") == "setoption name Clear Hash"

    def test_position(self):
        fen = "8/8/8/8/8/8/8/K6k w - - 0 1"
        assert format_position(fen) == f"position fen {fen}"
        assert format_position("startpos", ["e2e4"]) == "position startpos moves e2e4"

    def test_go_single_unit(self):
        assert format_go(SearchLimits(depth=12)) == "go depth 12"
        assert format_go(SearchLimits(nodes=10000)) == "go nodes 10000"
        assert format_go(SearchLimits(time_ms=500)) == "go movetime 500"

    def test_go_precedence_time_nodes_depth(self):
        assert format_go(SearchLimits(depth=12, time_ms=500, nodes=10000)) == "go movetime 500"
        assert format_go(SearchLimits(depth=12, nodes=10000)) == "go nodes 10000"

    def test_empty_limits_rejected(self):
        with pytest.raises(ValueError):
            format_go(SearchLimits())

    def test_non_positive_limits_rejected(self):
        with pytest.raises(ValueError):
            SearchLimits(depth=0)

    def test_capped(self):
        capped = SearchLimits(depth=15, time_ms=3000).capped(depth=10, time_ms=1000)

        assert capped == SearchLimits(depth=10, time_ms=1000)

    def test_capped_fills_missing_depth(self):
        assert SearchLimits().capped(depth=10, time_ms=1000) == SearchLimits(depth=10)
        assert SearchLimits(depth=4, nodes=50).capped(depth=10) == SearchLimits(depth=4, nodes=50)
        assert SearchLimits(time_ms=400).capped(depth=10, time_ms=1000) == SearchLimits(depth=10, time_ms=400)
