"""
Native process adapters.

UciProcessAdapter drives any UCI binary (Stockfish and friends) over its
stdin/stdout pipes. Lc0Adapter adds the launch arguments and slower
timeouts of Leela Chess Zero, including Maia weights for human-like play.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from engine_bridge.config import EngineConfig, EngineFamily
from engine_bridge.constants import (
    NETWORK_HANDSHAKE_TIMEOUT,
    NETWORK_MIN_SEARCH_WINDOW_MS,
    PROCESS_EXIT_TIMEOUT,
)
from engine_bridge.exceptions import EngineCrashedError, EngineLaunchError
from engine_bridge.models import TIME, MoveRecord, SearchLimits, SearchRequest
from engine_bridge.adapters.base import EngineAdapter

logger = logging.getLogger(__name__)

# PV lines of deep searches can be long; asyncio's default is 64 KiB
STREAM_LIMIT = 1 << 20


class UciProcessAdapter(EngineAdapter):
    """Engine running as a child process speaking UCI on stdio."""

    family = EngineFamily.NATIVE

    def __init__(self, config: EngineConfig):
        super().__init__(config)
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None
        self._stderr_reader: Optional[asyncio.Task] = None

    def _find_executable(self) -> str:
        """
        Resolve the configured path on PATH or the filesystem.

        Raises:
            EngineLaunchError: If the binary cannot be found
        """
        path = self.config.path
        found = shutil.which(path)
        if found:
            return found
        if Path(path).exists():
            return path
        raise EngineLaunchError(
            f"Engine binary not found for {self.engine_id}: {path}\n"
            "Install it or point the engine's 'path' at the executable"
        )

    def command_line(self) -> List[str]:
        return [self._find_executable(), *self.config.args]

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def is_alive(self) -> bool:
        process = self._process
        return (
            process is not None
            and process.returncode is None
            and process.stdin is not None
            and not process.stdin.is_closing()
        )

    async def _open(self) -> None:
        argv = self.command_line()
        logger.debug(f"Spawning {' '.join(argv)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise EngineLaunchError(f"Failed to start {self.engine_id} ({argv[0]}): {e}") from e

        self._reader = asyncio.create_task(self._read_stdout())
        self._stderr_reader = asyncio.create_task(self._read_stderr())

    def _write(self, line: str) -> None:
        try:
            self._process.stdin.write(f"{line}\n".encode("utf-8"))
        except (BrokenPipeError, ConnectionResetError) as e:
            self._handle_eof(str(e))
            raise EngineCrashedError(f"Engine {self.engine_id} closed its input: {e}") from e

    async def _flush(self) -> None:
        try:
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            self._handle_eof(str(e))
            raise EngineCrashedError(f"Engine {self.engine_id} closed its input: {e}") from e

    async def _read_stdout(self) -> None:
        stream = self._process.stdout
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                logger.warning(f"[{self.engine_id}] dropped an overlong output line")
                continue
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                self._dispatch(line)

        returncode = await self._process.wait() if self._process else None
        self._handle_eof(f"exit code {returncode}")

    async def _read_stderr(self) -> None:
        stream = self._process.stderr
        while True:
            raw = await stream.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                logger.warning(f"[{self.engine_id}] stderr: {line}")

    async def _close(self) -> None:
        process = self._process
        if process is None:
            return

        if process.returncode is None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()
            try:
                await asyncio.wait_for(process.wait(), PROCESS_EXIT_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning(f"Engine {self.engine_id} ignored quit, killing pid {process.pid}")
                process.kill()
                await process.wait()

        tasks = [task for task in (self._reader, self._stderr_reader) if task is not None]
        await asyncio.gather(*tasks, return_exceptions=True)

        self._process = None
        self._reader = None
        self._stderr_reader = None


class Lc0Adapter(UciProcessAdapter):
    """
    Leela Chess Zero process.

    Network weights are loaded before 'uciok', so the handshake gets a
    longer wait. Maia weights (path containing 'maia') imitate human play:
    their default budget is a node count and candidate searches return a
    single line unless forced.
    """

    family = EngineFamily.LC0
    handshake_timeout = NETWORK_HANDSHAKE_TIMEOUT

    def __init__(self, config: EngineConfig):
        super().__init__(config)
        self.weights_path = config.weights_path

    @property
    def is_human_like(self) -> bool:
        return bool(self.weights_path) and "maia" in self.weights_path.lower()

    def command_line(self) -> List[str]:
        argv = [self._find_executable()]

        if self.weights_path and not Path(self.weights_path).exists():
            logger.warning(
                f"Weights file not found: {self.weights_path}; using lc0's default network. "
                "Maia weights: https://github.com/CSSLab/maia-chess/releases"
            )
            self.weights_path = None

        if self.weights_path:
            argv += ["--weights", self.weights_path]
        if self.config.backend:
            argv += ["--backend", self.config.backend]
        argv += list(self.config.args)
        return argv

    def search_window(self, limits: SearchLimits) -> float:
        keyword, value = limits.budget()
        base_ms = value if keyword == TIME else self.config.time_ms
        base_ms = max(base_ms, NETWORK_MIN_SEARCH_WINDOW_MS)
        return base_ms / 1000 + self.search_timeout_margin

    async def search_multi_variation(
        self,
        count: int,
        request: SearchRequest,
        force_multipv: bool = False,
    ) -> List[MoveRecord]:
        if self.is_human_like and not force_multipv:
            result = await self.search(request)
            return [result.best] if result.best else []
        return await super().search_multi_variation(count, request)

    def info(self) -> Dict[str, Any]:
        info = super().info()
        info.update(
            weights=self.weights_path or "default",
            backend=self.config.backend or "auto",
            human_like=self.is_human_like,
        )
        return info
