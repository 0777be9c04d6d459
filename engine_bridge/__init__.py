"""
Engine Bridge

Orchestration layer for UCI chess engines: launches engine processes (or
an in-process engine), speaks the UCI text protocol to them, and exposes a
small async API for analysing positions with one engine, a rotating pool
of engines, or several engines side by side.

## Architecture

1. **uci**: Line codec
   - Typed parsing of uciok / readyok / id / option / info / bestmove
   - Score normalization (centipawns to pawns, mate sentinels)

2. **adapters**: One adapter per engine family
   - native: any UCI binary over stdio (Stockfish)
   - lc0: network-backed process (Leela, Maia)
   - embedded: the pure-Python engine in engine_bridge.embedded

3. **manager**: Single-engine facade with rolling history

4. **pool**: Engine rotation (random, sequential, weighted, single)

5. **coordinator**: Concurrent multi-engine analysis and consensus

6. **session**: Board source → analysis → display / move sinks loop

## Quick Start

```python
import asyncio
from engine_bridge import EngineManager

async def main():
    manager = EngineManager(engine_id="embedded")
    await manager.initialize()
    result = await manager.analyze_position(
        "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1", depth=3
    )
    print(result.best_move, result.evaluation)
    await manager.quit()

asyncio.run(main())
```

## Version

0.1.0
"""

__version__ = "0.1.0"

from engine_bridge.config import (
    EngineConfig,
    EngineFamily,
    EngineRegistry,
    PoolSettings,
    SelectionStrategy,
    default_registry,
)
from engine_bridge.coordinator import AnalysisCoordinator, ConsensusReport, compute_consensus
from engine_bridge.exceptions import (
    ConcurrentSearchError,
    EngineBridgeError,
    EngineCrashedError,
    EngineError,
    EngineLaunchError,
    EngineNotReadyError,
    PoolExhaustedError,
    ProtocolTimeoutError,
    SearchTimeoutError,
    UnknownEngineError,
)
from engine_bridge.manager import EngineManager
from engine_bridge.models import AnalysisResult, MoveRecord, SearchLimits, SearchRequest
from engine_bridge.pool import EnginePoolManager, EngineSelector
from engine_bridge.session import AnalysisSession, SessionSettings

__all__ = [
    'AnalysisCoordinator',
    'AnalysisResult',
    'AnalysisSession',
    'ConcurrentSearchError',
    'ConsensusReport',
    'EngineBridgeError',
    'EngineConfig',
    'EngineCrashedError',
    'EngineError',
    'EngineFamily',
    'EngineLaunchError',
    'EngineManager',
    'EngineNotReadyError',
    'EnginePoolManager',
    'EngineRegistry',
    'EngineSelector',
    'MoveRecord',
    'PoolExhaustedError',
    'PoolSettings',
    'ProtocolTimeoutError',
    'SearchLimits',
    'SearchRequest',
    'SearchTimeoutError',
    'SelectionStrategy',
    'SessionSettings',
    'UnknownEngineError',
    'compute_consensus',
    'default_registry',
]
