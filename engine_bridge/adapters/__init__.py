"""
Engine Adapters

One adapter per engine family, all speaking UCI through the shared
EngineAdapter state machine.

Families:
    - native: UciProcessAdapter, any UCI binary (Stockfish)
    - lc0: Lc0Adapter, network-backed process (Leela, Maia)
    - embedded: EmbeddedAdapter, the in-process Python engine
"""

from typing import Dict, Type

from engine_bridge.config import EngineConfig, EngineFamily
from engine_bridge.adapters.base import EngineAdapter, PendingSearch
from engine_bridge.adapters.embedded import EmbeddedAdapter
from engine_bridge.adapters.process import Lc0Adapter, UciProcessAdapter

ADAPTERS: Dict[EngineFamily, Type[EngineAdapter]] = {
    EngineFamily.NATIVE: UciProcessAdapter,
    EngineFamily.LC0: Lc0Adapter,
    EngineFamily.EMBEDDED: EmbeddedAdapter,
}


def create_adapter(config: EngineConfig) -> EngineAdapter:
    """Build the adapter for a config's family. The engine is not started."""
    return ADAPTERS[config.family](config)


__all__ = [
    'ADAPTERS',
    'EmbeddedAdapter',
    'EngineAdapter',
    'Lc0Adapter',
    'PendingSearch',
    'UciProcessAdapter',
    'create_adapter',
]
