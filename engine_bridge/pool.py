"""
Engine Pool Manager

Keeps a cache of initialized engine managers for one named pool and picks
which engine serves each analysis, rotating every N moves.

State Machine:
    UNINITIALIZED → INITIALIZING → READY
    READY → SWITCHING → READY        (before the triggering analysis)

Selection Strategies:
    - random: uniform over the pool list (duplicates weigh more)
    - sequential: round-robin in pool order, wrapping
    - weighted: cumulative-weight sampling over a parallel weights list,
      random when the weights are missing or the wrong length
    - single: always the first engine, never switches

An engine that fails to initialize is dropped from the pool for the rest
of the session and never retried implicitly. An engine that started but
later crashed is relaunched the next time it is selected.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from engine_bridge.config import EngineRegistry, PoolSettings, SelectionStrategy, default_registry
from engine_bridge.constants import DEFAULT_MULTIPV
from engine_bridge.exceptions import EngineError, EngineNotReadyError, PoolExhaustedError
from engine_bridge.manager import EngineManager
from engine_bridge.models import AnalysisResult, MoveRecord

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[EngineRegistry, str], EngineManager]


class PoolState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SWITCHING = "switching"


class EngineSelector:
    """
    Picks identifiers from a pool list according to a strategy.

    Attributes:
        engine_ids: Remaining pool members, in configured order
        weights: Parallel weights (weighted strategy only)
        index: Next position for sequential selection
    """

    def __init__(
        self,
        engine_ids: Sequence[str],
        strategy: SelectionStrategy = SelectionStrategy.RANDOM,
        weights: Optional[Sequence[float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.engine_ids: List[str] = list(engine_ids)
        self.strategy = SelectionStrategy(strategy)
        self.weights: Optional[List[float]] = list(weights) if weights is not None else None
        self.rng = rng or random.Random()
        self.index = 0

    def __len__(self) -> int:
        return len(self.engine_ids)

    def select(self) -> str:
        """
        Next identifier to use.

        Raises:
            PoolExhaustedError: If no identifiers are left
        """
        if not self.engine_ids:
            raise PoolExhaustedError("No engines left to select from")

        if self.strategy == SelectionStrategy.SINGLE:
            return self.engine_ids[0]
        if self.strategy == SelectionStrategy.SEQUENTIAL:
            return self._select_sequential()
        if self.strategy == SelectionStrategy.WEIGHTED:
            return self._select_weighted()
        return self._select_random()

    def _select_random(self) -> str:
        return self.rng.choice(self.engine_ids)

    def _select_sequential(self) -> str:
        if self.index >= len(self.engine_ids):
            self.index = 0
        engine_id = self.engine_ids[self.index]
        self.index = (self.index + 1) % len(self.engine_ids)
        return engine_id

    def _select_weighted(self) -> str:
        weights = self.weights
        if not weights or len(weights) != len(self.engine_ids):
            return self._select_random()

        total = sum(weights)
        if total <= 0:
            return self._select_random()

        point = self.rng.random() * total
        cumulative = 0.0
        for engine_id, weight in zip(self.engine_ids, weights):
            cumulative += weight
            if point < cumulative:
                return engine_id
        return self.engine_ids[-1]

    def discard(self, engine_id: str) -> None:
        """Remove every occurrence of an identifier, keeping rotation order."""
        keep = [i for i, candidate in enumerate(self.engine_ids) if candidate != engine_id]
        removed_before = sum(
            1 for i, candidate in enumerate(self.engine_ids) if candidate == engine_id and i < self.index
        )

        if self.weights is not None and len(self.weights) == len(self.engine_ids):
            self.weights = [self.weights[i] for i in keep]
        self.engine_ids = [self.engine_ids[i] for i in keep]

        self.index -= removed_before
        if not self.engine_ids or self.index >= len(self.engine_ids):
            self.index = 0


def _default_manager_factory(registry: EngineRegistry, engine_id: str) -> EngineManager:
    return EngineManager(registry, engine_id)


class EnginePoolManager:
    """
    Serves analyses from a rotating pool of engines.

    Attributes:
        registry: Engine configuration lookup
        settings: Pool name, strategy, switch interval, weights
        engines: Identifier -> initialized EngineManager
        current_engine_id: Engine serving the next analysis
        move_count: Analyses served since initialize()
        state: Current PoolState
    """

    def __init__(
        self,
        registry: Optional[EngineRegistry] = None,
        settings: Optional[PoolSettings] = None,
        rng: Optional[random.Random] = None,
        manager_factory: ManagerFactory = _default_manager_factory,
    ):
        self.registry = registry or default_registry()
        self.settings = settings or PoolSettings()
        self.engines: Dict[str, EngineManager] = {}
        self.current_engine_id: Optional[str] = None
        self.move_count = 0
        self.state = PoolState.UNINITIALIZED
        self.selector: Optional[EngineSelector] = None

        self._rng = rng
        self._manager_factory = manager_factory
        self._failed: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def current(self) -> Optional[EngineManager]:
        if self.current_engine_id is None:
            return None
        return self.engines.get(self.current_engine_id)

    @property
    def pool_engines(self) -> List[str]:
        return list(self.selector.engine_ids) if self.selector else []

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Resolve the pool and bring up its first engine.

        Members that fail to start are demoted and the next one is tried.

        Raises:
            UnknownEngineError: If the pool is not configured
            PoolExhaustedError: If no member could be initialized
        """
        name = self.settings.pool
        configured = self.registry.pool(name)
        mask = [self.registry.get(engine_id).enabled for engine_id in configured]
        engine_ids = [engine_id for engine_id, enabled in zip(configured, mask) if enabled]

        for engine_id, enabled in zip(configured, mask):
            if not enabled:
                logger.warning(f"Engine {engine_id} is disabled, skipping")

        weights = self.settings.weights
        if weights is not None and len(weights) == len(configured):
            weights = [w for w, enabled in zip(weights, mask) if enabled]

        logger.info(f"Initializing engine pool: {name} ({self.settings.selection.value} selection)")
        logger.info(f"Pool contains {len(engine_ids)} engine(s): {engine_ids}")

        if not engine_ids:
            raise PoolExhaustedError(f"No enabled engines in pool: {name}")

        self.selector = EngineSelector(engine_ids, self.settings.selection, weights, self._rng)
        self.move_count = 0
        self.state = PoolState.INITIALIZING
        try:
            await self._select_with_fallback()
        except BaseException:
            self.state = PoolState.UNINITIALIZED
            raise
        self.state = PoolState.READY

    async def select_and_initialize(self) -> str:
        """
        One selection step: pick an engine and make sure it is running.

        Returns:
            The selected identifier, now current

        Raises:
            EngineError: If the picked engine failed to start (it has been
                dropped from the pool; call again to fall back)
        """
        if self.selector is None:
            raise EngineNotReadyError("Engine pool is not initialized")

        engine_id = self.selector.select()
        await self._ensure_engine(engine_id)
        self.current_engine_id = engine_id
        logger.info(f"Selected engine: {engine_id} ({self.registry.display_name(engine_id)})")
        return engine_id

    async def _select_with_fallback(self) -> str:
        last_error: Optional[Exception] = None
        while self.selector.engine_ids:
            try:
                return await self.select_and_initialize()
            except EngineError as e:
                last_error = e
                logger.warning(f"Engine selection failed, {len(self.selector)} candidate(s) left: {e}")
        raise PoolExhaustedError(
            f"Every engine in pool {self.settings.pool!r} failed to initialize"
        ) from last_error

    async def _ensure_engine(self, engine_id: str) -> EngineManager:
        """
        Return the cached manager or initialize it, once per identifier.

        A cached manager whose engine is no longer running (crashed or quit)
        is shut down and replaced by a fresh launch.
        """
        manager = self.engines.get(engine_id)
        if manager is not None and manager.is_ready:
            return manager

        lock = self._locks.setdefault(engine_id, asyncio.Lock())
        async with lock:
            manager = self.engines.get(engine_id)
            if manager is not None:
                if manager.is_ready:
                    return manager
                logger.warning(f"Engine {engine_id} is no longer running, restarting it")
                del self.engines[engine_id]
                await manager.quit()
            if engine_id in self._failed:
                raise EngineNotReadyError(f"Engine {engine_id} failed to initialize earlier in this session")

            config = self.registry.get(engine_id)
            if not config.enabled:
                raise EngineNotReadyError(f"Engine {engine_id} is disabled")

            logger.info(f"Initializing engine: {engine_id} ({config.name})")
            manager = self._manager_factory(self.registry, engine_id)
            try:
                await manager.initialize()
            except Exception as e:
                logger.error(f"Failed to initialize engine {engine_id}: {e}")
                self._failed.add(engine_id)
                if self.selector is not None:
                    self.selector.discard(engine_id)
                raise

            self.engines[engine_id] = manager
            logger.info(f"Engine {engine_id} initialized successfully")
            return manager

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def should_switch(self) -> bool:
        if self.settings.selection == SelectionStrategy.SINGLE:
            return False
        if self.settings.switch_every <= 0:
            return False
        return self.move_count > 0 and self.move_count % self.settings.switch_every == 0

    def _require_current(self) -> EngineManager:
        manager = self.current
        if manager is None:
            raise EngineNotReadyError("No engine selected; call initialize() first")
        return manager

    async def analyze_position(
        self,
        position: str,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
    ) -> AnalysisResult:
        """
        Analyse with the current engine, switching first when due.

        The result carries the serving engine's identifier and name.
        """
        self._require_current()

        if self.should_switch():
            self.state = PoolState.SWITCHING
            try:
                await self._select_with_fallback()
            finally:
                self.state = PoolState.READY

        self.move_count += 1
        return await self._require_current().analyze_position(position, depth=depth, time_ms=time_ms, nodes=nodes)

    async def get_candidate_moves(
        self,
        position: str,
        count: int = DEFAULT_MULTIPV,
        depth: Optional[int] = None,
        time_ms: Optional[int] = None,
        nodes: Optional[int] = None,
    ) -> List[MoveRecord]:
        """Candidate lines from the current engine. Does not count as a move."""
        manager = self._require_current()
        return await manager.get_candidate_moves(position, count, depth=depth, time_ms=time_ms, nodes=nodes)

    async def switch_to_engine(self, engine_id: str) -> None:
        """
        Make a specific engine current, initializing it if needed.

        Raises:
            UnknownEngineError: If the identifier is not configured
        """
        self.registry.get(engine_id)
        await self._ensure_engine(engine_id)
        self.current_engine_id = engine_id
        logger.info(f"Switched to engine: {engine_id}")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_current_engine_info(self) -> Optional[Dict[str, Any]]:
        if self.current_engine_id is None:
            return None
        config = self.registry.get(self.current_engine_id)
        return {
            "id": config.engine_id,
            "name": config.name,
            "family": config.family.value,
            "move_count": self.move_count,
        }

    def get_pool_info(self) -> Dict[str, Any]:
        return {
            "pool": self.settings.pool,
            "selection": self.settings.selection.value,
            "switch_every": self.settings.switch_every,
            "state": self.state.value,
            "engines": [
                {
                    "id": engine_id,
                    "name": self.registry.display_name(engine_id),
                    "initialized": engine_id in self.engines,
                }
                for engine_id in self.pool_engines
            ],
            "failed": sorted(self._failed),
            "current_engine": self.get_current_engine_info(),
        }

    def get_statistics(self) -> Dict[str, Any]:
        usage = {
            engine_id: len(manager.history)
            for engine_id, manager in self.engines.items()
            if manager.history
        }
        return {
            "total_moves": self.move_count,
            "engines_used": sorted(usage),
            "engine_usage": usage,
        }

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def stop_all(self) -> None:
        for engine_id, manager in self.engines.items():
            try:
                manager.stop_analysis()
            except EngineError as e:
                logger.error(f"Error stopping engine {engine_id}: {e}")

    async def cleanup(self) -> None:
        """Quit every cached engine and forget the selection state."""
        logger.info("Cleaning up engine pool...")
        for engine_id, manager in list(self.engines.items()):
            try:
                await manager.quit()
                logger.info(f"Engine {engine_id} cleaned up")
            except EngineError as e:
                logger.error(f"Error cleaning up engine {engine_id}: {e}", exc_info=True)

        self.engines.clear()
        self.current_engine_id = None
        self.state = PoolState.UNINITIALIZED

    def __repr__(self) -> str:
        return f"EnginePoolManager(pool={self.settings.pool!r}, current={self.current_engine_id!r}, state={self.state.value})"
