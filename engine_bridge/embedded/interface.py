"""
Embedded UCI Engine

A small UCI engine that runs inside the host process. EmbeddedAdapter feeds
it command lines and receives its output through the emit callback, so the
orchestration layer talks to it exactly as it talks to a Stockfish binary.
Run standalone with 'python -m engine_bridge.embedded' it reads stdin and
writes stdout like any other engine.

UCI Commands Supported:
    - uci: Identify engine, list options
    - isready: Synchronization check
    - setoption: MultiPV, Hash
    - ucinewgame: Reset board
    - position: startpos | fen <FEN>, optional moves
    - go: depth / movetime / nodes / infinite
    - stop: Stop searching, bestmove follows
    - quit: Stop searching and shut down

Threading:
    - Caller thread: handle_command() parses and answers synchronously
    - Search thread: one per 'go', streams 'info' lines then 'bestmove'
    - A new 'go' stops the previous search without blocking the caller;
      its worker waits for the previous one so bestmove lines stay in order

References:
    - UCI Protocol: https://www.chessprogramming.org/UCI
"""

import logging
import sys
import threading
import time
from typing import Callable, List, Optional

import chess

from engine_bridge.embedded.evaluation import ClassicalEvaluator
from engine_bridge.embedded.search import Iteration, Searcher, SearchLine, score_to_uci

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DEPTH = 3
MAX_MULTIPV = 64
JOIN_TIMEOUT = 5.0


def _print_line(line: str) -> None:
    print(line, flush=True)


class UCIEngine:
    """
    UCI command handler around the embedded searcher.

    Attributes:
        board: Current position
        evaluator: Position evaluator shared by every search
        searcher: Search driver of the latest 'go', fresh per search
        multipv: Number of lines reported per depth
        has_quit: Set once 'quit' was handled
        search_thread: Worker running the current 'go', if any
    """

    name = "Engine Bridge Embedded"
    version = "0.1"
    author = "engine_bridge contributors"

    def __init__(
        self,
        emit: Optional[Callable[[str], None]] = None,
        evaluator: Optional[ClassicalEvaluator] = None,
        default_depth: int = DEFAULT_SEARCH_DEPTH,
    ):
        self.emit = emit or _print_line
        self.board = chess.Board()
        self.evaluator = evaluator or ClassicalEvaluator()
        self.searcher = Searcher(self.evaluator)
        self.default_depth = default_depth
        self.multipv = 1
        self.hash_mb = 16
        self.has_quit = False
        self.search_thread: Optional[threading.Thread] = None

    @property
    def searching(self) -> bool:
        return self.search_thread is not None and self.search_thread.is_alive()

    def _send(self, line: str) -> None:
        logger.debug(f"<<< {line}")
        self.emit(line)

    def handle_command(self, command: str) -> bool:
        """
        Handle one command line.

        Returns:
            bool: False once 'quit' was received, True otherwise
        """
        tokens = command.split()
        if not tokens:
            return True

        logger.debug(f">>> {command.strip()}")
        cmd = tokens[0].lower()

        if cmd == "uci":
            self.handle_uci()
        elif cmd == "isready":
            self.handle_isready()
        elif cmd == "setoption":
            self.handle_setoption(tokens)
        elif cmd == "ucinewgame":
            self.handle_ucinewgame()
        elif cmd == "position":
            self.handle_position(tokens)
        elif cmd == "go":
            self.handle_go(tokens)
        elif cmd == "stop":
            self.handle_stop()
        elif cmd == "quit":
            self.handle_quit()
            return False
        else:
            # UCI says unknown commands are ignored
            logger.debug(f"Unknown command ignored: {command.strip()}")
        return True

    def handle_uci(self):
        self._send(f"id name {self.name} {self.version}")
        self._send(f"id author {self.author}")
        self._send(f"option name MultiPV type spin default 1 min 1 max {MAX_MULTIPV}")
        self._send("option name Hash type spin default 16 min 1 max 1024")
        self._send("uciok")

    def handle_isready(self):
        self._send("readyok")

    def handle_setoption(self, tokens: List[str]):
        """
        Handle 'setoption name <id> [value <x>]'.

        Option names may contain spaces, so everything between 'name' and
        'value' is the name.
        """
        try:
            name_index = tokens.index("name") + 1
        except ValueError:
            logger.warning(f"Malformed setoption: {' '.join(tokens)}")
            return

        if "value" in tokens[name_index:]:
            value_index = tokens.index("value", name_index)
            name = " ".join(tokens[name_index:value_index])
            value = " ".join(tokens[value_index + 1:])
        else:
            name = " ".join(tokens[name_index:])
            value = ""

        key = name.lower()
        try:
            if key == "multipv":
                self.multipv = max(1, min(int(value), MAX_MULTIPV))
            elif key == "hash":
                self.hash_mb = int(value)
            else:
                logger.debug(f"Ignoring unsupported option {name!r}")
                return
        except ValueError:
            logger.warning(f"Invalid value for option {name!r}: {value!r}")
            return
        logger.info(f"Option {name} set to {value}")

    def handle_ucinewgame(self):
        self.searcher.stop()
        self.board = chess.Board()

    def handle_position(self, tokens: List[str]):
        """
        Handle 'position'.

        Formats:
            position startpos [moves e2e4 e7e5 ...]
            position fen <FEN> [moves ...]

        An invalid FEN or move leaves the board at the last valid state and
        is reported with 'info string'.
        """
        if len(tokens) < 2:
            logger.warning("Position command with insufficient arguments")
            return

        if "moves" in tokens:
            moves_index = tokens.index("moves")
        else:
            moves_index = len(tokens)

        if tokens[1] == "startpos":
            board = chess.Board()
        elif tokens[1] == "fen":
            fen = " ".join(tokens[2:moves_index])
            try:
                board = chess.Board(fen)
            except ValueError as e:
                logger.error(f"Invalid FEN {fen!r}: {e}")
                self._send(f"info string invalid fen {fen}")
                return
        else:
            logger.warning(f"Unknown position type: {tokens[1]}")
            return

        for move_str in tokens[moves_index + 1:]:
            try:
                move = chess.Move.from_uci(move_str)
            except ValueError:
                move = None
            if move is None or move not in board.legal_moves:
                logger.error(f"Illegal move in position command: {move_str}")
                self._send(f"info string illegal move {move_str}")
                break
            board.push(move)

        self.board = board
        logger.debug(f"Position set: {board.fen()}")

    def handle_go(self, tokens: List[str]):
        """
        Handle 'go' and start a search thread.

        Formats:
            go depth 5
            go movetime 2000
            go nodes 10000
            go infinite
        """
        depth = None
        movetime = None
        nodes = None
        infinite = False

        i = 1
        while i < len(tokens):
            key = tokens[i]
            if key in ("depth", "movetime", "nodes") and i + 1 < len(tokens):
                try:
                    value = int(tokens[i + 1])
                except ValueError:
                    logger.warning(f"Invalid go {key} value: {tokens[i + 1]}")
                    value = None
                if key == "depth":
                    depth = value
                elif key == "movetime":
                    movetime = value
                else:
                    nodes = value
                i += 2
            elif key == "infinite":
                infinite = True
                i += 1
            else:
                i += 1

        if depth is None and movetime is None and nodes is None and not infinite:
            depth = self.default_depth

        previous = self.search_thread
        self.searcher.stop()
        self.searcher = Searcher(self.evaluator)

        board = self.board.copy()
        self.search_thread = threading.Thread(
            target=self._search_worker,
            args=(previous, self.searcher, board, depth, movetime, nodes, self.multipv),
            name="embedded-search",
            daemon=True,
        )
        self.search_thread.start()

    def _info_line(self, depth: int, seldepth: int, rank: int, line: SearchLine, nodes: int, elapsed_ms: int) -> str:
        kind, value = score_to_uci(line.score)
        nps = nodes * 1000 // elapsed_ms if elapsed_ms > 0 else nodes
        pv = " ".join(move.uci() for move in line.pv)
        return (
            f"info depth {depth} seldepth {seldepth} multipv {rank} score {kind} {value} "
            f"nodes {nodes} nps {nps} time {elapsed_ms} pv {pv}"
        )

    def _search_worker(
        self,
        previous: Optional[threading.Thread],
        searcher: Searcher,
        board: chess.Board,
        depth,
        movetime,
        nodes,
        multipv,
    ):
        if previous is not None:
            # The stopped search still owes its bestmove
            previous.join()

        start = time.monotonic()
        reported = []

        def report(iteration: Iteration):
            reported.append(iteration.depth)
            for rank, line in enumerate(iteration.lines, start=1):
                self._send(self._info_line(
                    iteration.depth, iteration.seldepth, rank, line, iteration.nodes, iteration.elapsed_ms
                ))

        logger.info(f"Search started: depth={depth} movetime={movetime} nodes={nodes} multipv={multipv}")

        try:
            lines = searcher.search(
                board,
                depth=depth,
                movetime_ms=movetime,
                nodes=nodes,
                multipv=multipv,
                on_iteration=report,
            )
        except Exception as e:
            logger.error(f"Search error: {e}", exc_info=True)
            legal = list(board.legal_moves)
            lines = [SearchLine(legal[0], 0, [legal[0]])] if legal else []

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not lines:
            logger.info("No legal moves, reporting null bestmove")
            self._send("bestmove (none)")
            return

        if not reported:
            self._send(self._info_line(1, 1, 1, lines[0], searcher.nodes, elapsed_ms))

        best = lines[0]
        logger.info(
            f"Search complete: best_move={best.move.uci()}, score={best.score}, "
            f"nodes={searcher.nodes}, time={elapsed_ms}ms"
        )
        if len(best.pv) > 1:
            self._send(f"bestmove {best.move.uci()} ponder {best.pv[1].uci()}")
        else:
            self._send(f"bestmove {best.move.uci()}")

    def handle_stop(self):
        """Request the running search to stop; its bestmove follows."""
        self.searcher.stop()

    def handle_quit(self):
        logger.info("Handling: quit - shutting down engine")
        self.searcher.stop()
        self.has_quit = True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the search thread to finish.

        Returns:
            bool: True if no search is running anymore
        """
        thread = self.search_thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True

    def run(self):
        """Read commands from stdin until 'quit' or EOF."""
        logger.info(f"=== {self.name} {self.version} started ===")
        for raw in sys.stdin:
            if not self.handle_command(raw):
                break
        else:
            logger.info("EOF received, shutting down")
            self.handle_quit()
        self.wait(JOIN_TIMEOUT)
        logger.info(f"=== {self.name} stopped ===")
