"""
Single-engine manager.

Holds exactly one live adapter, turns caller options into search limits,
stamps results with provenance and keeps a rolling history of analyses.

Example:
    manager = EngineManager(default_registry(), engine_id="embedded")
    await manager.initialize()
    result = await manager.analyze_position(fen, depth=3)
    print(result.best_move, result.evaluation)
    await manager.quit()
"""

import asyncio
import logging
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, List, Optional

from engine_bridge.adapters import EngineAdapter, Lc0Adapter, create_adapter
from engine_bridge.config import EngineConfig, EngineRegistry, default_registry
from engine_bridge.constants import DEFAULT_MULTIPV, HISTORY_CAPACITY
from engine_bridge.exceptions import ConcurrentSearchError, EngineNotReadyError
from engine_bridge.models import AnalysisResult, EngineStatus, MoveRecord, SearchLimits, SearchRequest

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[EngineConfig], EngineAdapter]


class EngineManager:
    """
    Single-engine facade.

    Attributes:
        registry: Engine configuration lookup
        engine_id: Identifier of the engine this manager runs
        adapter: Live adapter, None before initialize() and after quit()
        history: Most recent results, oldest evicted first
    """

    def __init__(
        self,
        registry: Optional[EngineRegistry] = None,
        engine_id: str = "embedded",
        adapter_factory: AdapterFactory = create_adapter,
        history_size: int = HISTORY_CAPACITY,
    ):
        self.registry = registry or default_registry()
        self.engine_id = engine_id
        self.adapter: Optional[EngineAdapter] = None
        self.history: Deque[AnalysisResult] = deque(maxlen=history_size)
        self._adapter_factory = adapter_factory

    @property
    def config(self) -> EngineConfig:
        return self.registry.get(self.engine_id)

    @property
    def is_ready(self) -> bool:
        return self.adapter is not None and self.adapter.is_ready

    @property
    def is_searching(self) -> bool:
        return self.adapter is not None and self.adapter.is_searching

    async def initialize(self, engine_id: Optional[str] = None) -> None:
        """
        Start the configured engine, replacing any running one.

        Args:
            engine_id: Engine to start (default: the current engine_id)

        Raises:
            UnknownEngineError: If the identifier is not configured
            EngineLaunchError: If the engine cannot be started
            ProtocolTimeoutError: If the handshake does not complete
        """
        if engine_id is not None:
            self.engine_id = engine_id
        config = self.registry.get(self.engine_id)

        if self.adapter is not None:
            await self.adapter.quit()
            self.adapter = None

        adapter = self._adapter_factory(config)
        await adapter.initialize()
        self.adapter = adapter
        logger.info(f"Engine manager running {config.name} ({self.engine_id})")

    async def switch_engine(self, engine_id: str) -> None:
        """
        Replace the running engine with another configured one.

        Only allowed between analyses.

        Raises:
            ConcurrentSearchError: If a search is in flight
        """
        if self.is_searching:
            raise ConcurrentSearchError(f"Cannot switch from {self.engine_id} while it is searching")
        self.registry.get(engine_id)
        logger.info(f"Switching engine {self.engine_id} -> {engine_id}")
        await self.initialize(engine_id)

    def _ready_adapter(self) -> EngineAdapter:
        if self.adapter is None or not self.adapter.is_ready:
            raise EngineNotReadyError(f"Engine {self.engine_id} is not initialized")
        return self.adapter

    def build_limits(
        self,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
    ) -> SearchLimits:
        """Caller options, or the engine's default budget when none is given."""
        limits = SearchLimits(depth=depth, time_ms=time_ms, nodes=nodes)
        if limits.is_empty:
            return self.config.default_limits()
        return limits

    async def analyze_position(
        self,
        position: str,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
    ) -> AnalysisResult:
        """
        Analyse a position and record the result in the history.

        Args:
            position: FEN string
            depth: Fixed depth
            time_ms: Time limit in milliseconds
            nodes: Node limit

        Budget precedence when several are given: time, nodes, depth.

        Returns:
            AnalysisResult stamped with engine id, display name and elapsed time

        Raises:
            EngineNotReadyError: If not initialized
            SearchTimeoutError: If the engine does not answer in time
        """
        adapter = self._ready_adapter()
        request = SearchRequest(position, self.build_limits(depth, time_ms, nodes))

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await adapter.search(request)
        elapsed_ms = int((loop.time() - started) * 1000)

        result = replace(
            result,
            engine_id=self.engine_id,
            engine_name=self.config.name,
            elapsed_ms=elapsed_ms,
        )
        self.history.append(result)

        logger.debug(
            f"[{self.engine_id}] {result.best_move} eval={result.evaluation:+.2f} "
            f"depth={result.depth} in {elapsed_ms}ms"
        )
        return result

    async def get_candidate_moves(
        self,
        position: str,
        count: int = DEFAULT_MULTIPV,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
        force_multipv: bool = False,
    ) -> List[MoveRecord]:
        """
        Top lines for a position, ranked 1..k.

        Args:
            position: FEN string
            count: Number of lines wanted
            force_multipv: Ask human-like networks for several lines anyway

        Returns:
            At most count records without duplicate moves, rank ascending,
            each stamped with engine id and display name
        """
        adapter = self._ready_adapter()
        request = SearchRequest(position, self.build_limits(depth, time_ms, nodes))

        if isinstance(adapter, Lc0Adapter):
            lines = await adapter.search_multi_variation(count, request, force_multipv=force_multipv)
        else:
            lines = await adapter.search_multi_variation(count, request)

        return [
            replace(line, rank=rank, engine_id=self.engine_id, engine_name=self.config.name)
            for rank, line in enumerate(lines, start=1)
        ]

    async def new_game(self) -> None:
        """
        Tell the engine the next positions belong to a new game.

        Raises:
            EngineNotReadyError: If not initialized
        """
        await self._ready_adapter().new_game()
        logger.debug(f"[{self.engine_id}] new game")

    def stop_analysis(self) -> None:
        """Ask the engine to stop the current search. Does not wait."""
        if self.adapter is not None:
            self.adapter.stop()

    def get_history(self, limit: int = 10) -> List[AnalysisResult]:
        """Most recent results, oldest first."""
        if limit <= 0:
            return []
        return list(self.history)[-limit:]

    def clear_history(self) -> None:
        self.history.clear()

    def get_status(self) -> EngineStatus:
        adapter = self.adapter
        return EngineStatus(
            engine_id=self.engine_id,
            ready=self.is_ready,
            current_position=adapter.current_position if adapter else None,
            last_evaluation=adapter.evaluation if adapter else None,
            history_size=len(self.history),
        )

    async def quit(self) -> None:
        """Shut the engine down. Safe to call repeatedly."""
        if self.adapter is None:
            return
        adapter = self.adapter
        self.adapter = None
        await adapter.quit()

    def __repr__(self) -> str:
        return f"EngineManager({self.engine_id!r}, ready={self.is_ready})"
