"""
In-process adapter for the embedded engine.

Commands are handed straight to UCIEngine.handle_command on the event loop
thread. The engine answers either synchronously (uciok, readyok) or from
its search thread (info, bestmove); both paths re-enter the loop through
call_soon_threadsafe so _dispatch always runs on the loop.
"""

import asyncio
import logging
from typing import Optional

from engine_bridge.config import EngineConfig, EngineFamily
from engine_bridge.constants import PROCESS_EXIT_TIMEOUT
from engine_bridge.embedded.evaluation import ClassicalEvaluator
from engine_bridge.embedded.interface import UCIEngine
from engine_bridge.adapters.base import EngineAdapter

logger = logging.getLogger(__name__)


class EmbeddedAdapter(EngineAdapter):
    """Drives an in-process UCIEngine through the same line protocol."""

    family = EngineFamily.EMBEDDED

    def __init__(self, config: EngineConfig, evaluator: Optional[ClassicalEvaluator] = None):
        super().__init__(config)
        self._evaluator = evaluator
        self._engine: Optional[UCIEngine] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_alive(self) -> bool:
        return self._engine is not None and not self._engine.has_quit

    async def _open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._engine = UCIEngine(emit=self._receive, evaluator=self._evaluator, default_depth=self.config.depth)

    def _receive(self, line: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"[{self.engine_id}] output after shutdown dropped: {line}")
            return
        try:
            loop.call_soon_threadsafe(self._dispatch, line)
        except RuntimeError:
            # Loop closed between the check and the call
            logger.debug(f"[{self.engine_id}] output after shutdown dropped: {line}")

    def _write(self, line: str) -> None:
        self._engine.handle_command(line)

    async def _close(self) -> None:
        engine = self._engine
        if engine is None:
            return
        if not engine.has_quit:
            engine.handle_command("quit")
        finished = await asyncio.to_thread(engine.wait, PROCESS_EXIT_TIMEOUT)
        if not finished:
            logger.warning(f"Embedded engine {self.engine_id} search thread still running after quit")
        self._engine = None
