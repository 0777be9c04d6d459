"""
UCI line codec: typed inbound lines and outbound command builders.

Reference:
    UCI Protocol: https://www.chessprogramming.org/UCI
"""

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
    parse_info,
    parse_line,
)

__all__ = [
    'BestMove',
    'IdLine',
    'InfoLine',
    'OptionLine',
    'ReadyOk',
    'UciOk',
    'format_go',
    'format_position',
    'format_setoption',
    'is_uci_move',
    'normalize_score',
    'parse_info',
    'parse_line',
]
