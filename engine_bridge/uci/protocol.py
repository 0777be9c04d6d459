"""
UCI Line Codec

Pure functions translating between structured requests/records and the
newline-terminated text protocol spoken on an engine's stdin/stdout. No I/O
happens here; adapters own the streams.

Inbound lines handled:
    uciok
    readyok
    id name Stockfish 16
    option name MultiPV type spin default 1 min 1 max 500
    info depth 12 multipv 1 score cp 31 nodes 12345 nps 600000 pv e2e4 e7e5
    bestmove e2e4 ponder e7e5

Outbound commands built:
    setoption name MultiPV value 3
    position fen <FEN>
    go movetime 2000 | go nodes 10000 | go depth 15

Parsing rules for 'info':
    Keys appear in no fixed order but each has a fixed arity. 'pv' and
    'string' swallow the rest of the line, so they terminate parsing.
    Unknown keys and malformed values are skipped, never fatal.

Reference:
    UCI Protocol: https://www.chessprogramming.org/UCI
"""

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from engine_bridge.constants import MATE_SCORE, MAX_MATE_DISTANCE
from engine_bridge.models import WDL, MoveRecord, SearchLimits

UCI_MOVE_PATTERN = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")

# Keys followed by exactly one integer token
_INT_KEYS = {
    "depth": "depth",
    "seldepth": "seldepth",
    "multipv": "multipv",
    "nodes": "nodes",
    "nps": "nps",
    "time": "time_ms",
    "hashfull": "hashfull",
    "tbhits": "tbhits",
    "currmovenumber": "currmovenumber",
    "cpuload": "cpuload",
}

_SCORE_BOUNDS = ("lowerbound", "upperbound")
_NULL_MOVES = ("(none)", "0000", "none")


@dataclass(frozen=True)
class UciOk:
    pass


@dataclass(frozen=True)
class ReadyOk:
    pass


@dataclass(frozen=True)
class IdLine:
    key: str
    value: str


@dataclass(frozen=True)
class OptionLine:
    name: str


@dataclass(frozen=True)
class BestMove:
    """Terminal line of a search. move is None for 'bestmove (none)'."""

    move: Optional[str]
    ponder: Optional[str] = None


@dataclass(frozen=True)
class InfoLine:
    """Fields collected from one 'info' line; absent keys stay None."""

    depth: Optional[int] = None
    seldepth: Optional[int] = None
    multipv: Optional[int] = None
    score_kind: Optional[str] = None
    score_value: Optional[int] = None
    bound: Optional[str] = None
    nodes: Optional[int] = None
    nps: Optional[int] = None
    time_ms: Optional[int] = None
    hashfull: Optional[int] = None
    tbhits: Optional[int] = None
    currmove: Optional[str] = None
    currmovenumber: Optional[int] = None
    cpuload: Optional[int] = None
    wdl: Optional[WDL] = None
    pv: Tuple[str, ...] = ()
    string: Optional[str] = None

    @property
    def variation(self) -> int:
        return self.multipv or 1

    @property
    def has_score(self) -> bool:
        return self.score_kind is not None

    def to_record(self) -> Optional[MoveRecord]:
        """
        Build a MoveRecord from a line carrying a principal variation.

        Returns:
            MoveRecord, or None when the line has no pv (currmove updates,
            'info string' chatter, bare node counts)
        """
        if not self.pv:
            return None

        score = 0.0
        mate = None
        if self.has_score:
            score = normalize_score(self.score_kind, self.score_value)
            if self.score_kind == "mate":
                mate = self.score_value

        return MoveRecord(
            move=self.pv[0],
            score=score,
            mate=mate,
            pv=self.pv,
            depth=self.depth or 0,
            nodes=self.nodes or 0,
            nps=self.nps or 0,
            wdl=self.wdl,
            rank=self.variation,
            seldepth=self.seldepth,
            time_ms=self.time_ms,
        )


Line = Union[UciOk, ReadyOk, IdLine, OptionLine, BestMove, InfoLine]


def is_uci_move(move: Optional[str]) -> bool:
    """Check a move string against the UCI long algebraic grammar."""
    return bool(move) and UCI_MOVE_PATTERN.match(move) is not None


def normalize_score(kind: str, value: int) -> float:
    """
    Convert a UCI score to pawns from the side to move's point of view.

    Centipawns are divided by 100. Mate scores map to a sentinel above
    MATE_SCORE whose magnitude shrinks as the mate gets further away, so:

        mate 1 > mate 5 > cp 999 > cp -999 > mate -5 > mate -1

    'mate 0' means the side to move is already mated.

    Args:
        kind: "cp" or "mate"
        value: Raw integer from the engine

    Returns:
        float: Normalized score

    Raises:
        ValueError: If kind is not a UCI score type
    """
    if kind == "cp":
        return value / 100
    if kind == "mate":
        if value == 0:
            return -float(MATE_SCORE + MAX_MATE_DISTANCE)
        distance = min(abs(value), MAX_MATE_DISTANCE - 1)
        magnitude = MATE_SCORE + MAX_MATE_DISTANCE - distance
        return float(magnitude if value > 0 else -magnitude)
    raise ValueError(f"Unknown score type: {kind}")


def _int_at(tokens: Sequence[str], index: int) -> Optional[int]:
    if index >= len(tokens):
        return None
    try:
        return int(tokens[index])
    except ValueError:
        return None


def parse_info(tokens: Sequence[str]) -> InfoLine:
    """
    Parse the tokens of an 'info' line (including the leading 'info').

    Args:
        tokens: Whitespace-split line, e.g. ['info', 'depth', '5', ...]

    Returns:
        InfoLine with every recognised field filled in
    """
    fields: dict = {}
    i = 1
    n = len(tokens)

    while i < n:
        key = tokens[i]

        if key == "pv":
            fields["pv"] = tuple(tokens[i + 1:])
            break

        if key == "string":
            fields["string"] = " ".join(tokens[i + 1:])
            break

        if key in _INT_KEYS:
            value = _int_at(tokens, i + 1)
            if value is None:
                i += 1
                continue
            fields[_INT_KEYS[key]] = value
            i += 2

        elif key == "score":
            kind = tokens[i + 1] if i + 1 < n else None
            value = _int_at(tokens, i + 2)
            if kind not in ("cp", "mate") or value is None:
                i += 1
                continue
            fields["score_kind"] = kind
            fields["score_value"] = value
            i += 3
            if i < n and tokens[i] in _SCORE_BOUNDS:
                fields["bound"] = tokens[i]
                i += 1

        elif key == "wdl":
            values = [_int_at(tokens, i + offset) for offset in (1, 2, 3)]
            if any(v is None for v in values):
                i += 1
                continue
            fields["wdl"] = WDL.from_permille(*values)
            i += 4

        elif key == "currmove":
            if i + 1 < n:
                fields["currmove"] = tokens[i + 1]
            i += 2

        else:
            # Unknown key: skip it alone, its value is re-examined as a key
            i += 1

    return InfoLine(**fields)


def _parse_option_name(tokens: Sequence[str]) -> Optional[str]:
    try:
        start = tokens.index("name") + 1
    except ValueError:
        return None
    try:
        end = tokens.index("type", start)
    except ValueError:
        end = len(tokens)
    name = " ".join(tokens[start:end])
    return name or None


def parse_line(line: str) -> Optional[Line]:
    """
    Classify one line of engine output.

    Args:
        line: Raw line (trailing newline allowed)

    Returns:
        A typed line object, or None for anything unrecognised
    """
    tokens = line.split()
    if not tokens:
        return None

    head = tokens[0]

    if head == "info":
        return parse_info(tokens)

    if head == "bestmove":
        move = tokens[1] if len(tokens) > 1 else None
        if move in _NULL_MOVES:
            move = None
        ponder = None
        if len(tokens) > 3 and tokens[2] == "ponder" and tokens[3] not in _NULL_MOVES:
            ponder = tokens[3]
        return BestMove(move=move, ponder=ponder)

    if head == "uciok":
        return UciOk()

    if head == "readyok":
        return ReadyOk()

    if head == "id" and len(tokens) >= 2:
        return IdLine(key=tokens[1], value=" ".join(tokens[2:]))

    if head == "option":
        name = _parse_option_name(tokens)
        if name is not None:
            return OptionLine(name=name)

    return None


# ============================================================================
# Outbound commands
# ============================================================================


def format_option_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_setoption(name: str, value: Any = None) -> str:
    """Build 'setoption name <K> value <V>' (button options take no value)."""
    if value is None:
        return f"setoption name {name}"
    return f"setoption name {name} value {format_option_value(value)}"


def format_position(fen: str, moves: Optional[List[str]] = None) -> str:
    """Build a 'position' command for a FEN (or 'startpos')."""
    if fen == "startpos":
        command = "position startpos"
    else:
        command = f"position fen {fen}"
    if moves:
        command += " moves " + " ".join(moves)
    return command


def format_go(limits: SearchLimits) -> str:
    """Build a 'go' command carrying exactly one budget unit."""
    keyword, value = limits.budget()
    return f"go {keyword} {value}"
