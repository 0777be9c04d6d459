"""
Engine Adapter Base

Transport-independent UCI state machine shared by every engine family.
Subclasses only know how to open a channel, write one line, and close it;
everything protocol-related lives here.

Protocol Flow:
    Adapter → "uci"                         wait for "uciok"
    Adapter → "setoption name ... value ..." (per configured option)
    Adapter → "isready"                     wait for "readyok"
    Adapter → "position fen <FEN>"
    Adapter → "go movetime 2000"
    Engine  → "info depth 12 multipv 1 score cp 31 ... pv e2e4 e7e5"
    Engine  → "bestmove e2e4 ponder e7e5"

Concurrency:
    - One asyncio event loop drives the adapter; lines are dispatched in
      arrival order by the transport's reader.
    - At most one search is pending per adapter. A second search fails
      immediately with ConcurrentSearchError.
    - A timed-out or cancelled search is "orphaned": the adapter sends
      'stop' and discards every line up to and including the next
      'bestmove', which belongs to the aborted search.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Set, Type

from engine_bridge.config import EngineConfig, EngineFamily
from engine_bridge.constants import HANDSHAKE_TIMEOUT, SEARCH_TIMEOUT_MARGIN
from engine_bridge.exceptions import (
    ConcurrentSearchError,
    EngineCrashedError,
    EngineError,
    EngineNotReadyError,
    ProtocolTimeoutError,
    SearchTimeoutError,
)
from engine_bridge.models import TIME, AnalysisResult, MoveRecord, SearchLimits, SearchRequest
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
    parse_line,
)

logger = logging.getLogger(__name__)


class PendingSearch:
    """
    Accumulator for one in-flight search.

    Created fresh by every search() call so stale state from an earlier,
    aborted search can never leak into the next result.

    Attributes:
        future: Resolved with the terminal BestMove line
        variations: Variation index -> latest record reported for it
    """

    def __init__(self, future: "asyncio.Future[BestMove]"):
        self.future = future
        self.variations: Dict[int, MoveRecord] = {}

    def update(self, info: InfoLine) -> Optional[MoveRecord]:
        record = info.to_record()
        if record is not None:
            self.variations[record.rank] = record
        return record

    def ranked(self) -> List[MoveRecord]:
        return [self.variations[rank] for rank in sorted(self.variations)]


class EngineAdapter(ABC):
    """
    Wraps exactly one engine and hides the UCI protocol from callers.

    Attributes:
        config: Immutable engine configuration
        is_ready: True between a successful initialize() and quit()
        current_position: Last FEN sent with set_position()
        evaluation: Latest rank-1 record seen in any search
        engine_name: Name reported by the engine in 'id name'
        supported_options: Option names advertised during the handshake

    Subclasses implement _open, _write, _close and is_alive.
    """

    family: ClassVar[EngineFamily]
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    search_timeout_margin: float = SEARCH_TIMEOUT_MARGIN

    def __init__(self, config: EngineConfig):
        self.config = config
        self.is_ready = False
        self.current_position: Optional[str] = None
        self.evaluation: Optional[MoveRecord] = None
        self.engine_name: Optional[str] = None
        self.supported_options: Set[str] = set()

        self._multipv = config.multipv
        self._started = False
        self._waiters: Dict[type, List[asyncio.Future]] = {}
        self._search: Optional[PendingSearch] = None
        self._orphaned = 0

    # ------------------------------------------------------------------
    # Transport hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _open(self) -> None:
        """Start the engine and begin feeding its output to _dispatch."""

    @abstractmethod
    def _write(self, line: str) -> None:
        """Deliver one command line to the engine."""

    async def _flush(self) -> None:
        """Wait until buffered commands reached the engine."""

    @abstractmethod
    async def _close(self) -> None:
        """Release the engine's resources. Must tolerate a dead engine."""

    @property
    @abstractmethod
    def is_alive(self) -> bool:
        """True while commands can still be delivered."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def engine_id(self) -> str:
        return self.config.engine_id

    @property
    def is_searching(self) -> bool:
        return self._search is not None

    async def initialize(self) -> None:
        """
        Start the engine and run the UCI handshake.

        Raises:
            EngineLaunchError: If the engine cannot be started
            ProtocolTimeoutError: If uciok or readyok never arrives
            EngineError: If called twice without quit() in between
        """
        if self._started:
            raise EngineError(f"Engine {self.engine_id} already initialized; call quit() first")

        self._started = True
        logger.info(f"Initializing {self.family.value} engine {self.engine_id}...")

        try:
            await self._open()
            await self._request("uci", UciOk, self.handshake_timeout)
            for command in self._handshake_commands():
                self.send(command)
            await self._request("isready", ReadyOk, self.handshake_timeout)
        except BaseException:
            await self._teardown()
            raise

        self.is_ready = True
        logger.info(f"Engine {self.engine_id} ready ({self.engine_name or 'unnamed'})")

    def _handshake_commands(self) -> Iterator[str]:
        for name, value in self.config.options.items():
            if name.lower() == "multipv":
                continue
            if self.supported_options and name not in self.supported_options:
                logger.warning(f"Engine {self.engine_id} does not advertise option {name!r}")
            yield format_setoption(name, value)
        if self._multipv != 1:
            yield format_setoption("MultiPV", self._multipv)

    async def new_game(self) -> None:
        """Send 'ucinewgame' and wait for the engine to settle."""
        self._require_ready()
        self.send("ucinewgame")
        await self._request("isready", ReadyOk, self.handshake_timeout)

    async def quit(self) -> None:
        """Send 'quit' and release the engine. Safe to call repeatedly."""
        if not self._started:
            return
        logger.info(f"Shutting down engine {self.engine_id}")
        if self.is_alive:
            self.send("quit")
        await self._teardown()

    async def _teardown(self) -> None:
        self.is_ready = False
        self._fail_pending(EngineNotReadyError(f"Engine {self.engine_id} was shut down"))
        try:
            await self._close()
        finally:
            self._started = False
            self._orphaned = 0

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def send(self, command: str) -> None:
        """
        Write one command to the engine, in issue order.

        Raises:
            EngineNotReadyError: If the engine is not running
        """
        if not self._started or not self.is_alive:
            raise EngineNotReadyError(f"Engine {self.engine_id} is not running")
        logger.debug(f"[{self.engine_id}] >>> {command}")
        self._write(command)

    def set_position(self, position: str) -> None:
        """Send the position. No acknowledgment is expected."""
        self._require_ready()
        self.current_position = position
        self.send(format_position(position))

    def stop(self) -> None:
        """Ask the engine to stop searching. Does not wait for a reply."""
        if self._started and self.is_alive:
            self.send("stop")

    def set_multipv(self, count: int) -> None:
        self._require_ready()
        self.send(format_setoption("MultiPV", count))
        self._multipv = count

    def search_window(self, limits: SearchLimits) -> float:
        """
        Hard timeout in seconds for a search with these limits.

        Always strictly greater than the requested budget: time searches
        get their own movetime plus the margin, depth and node searches
        get the engine's default time limit plus the margin.
        """
        keyword, value = limits.budget()
        base_ms = value if keyword == TIME else self.config.time_ms
        return base_ms / 1000 + self.search_timeout_margin

    async def search(self, request: SearchRequest) -> AnalysisResult:
        """
        Run one search and wait for its 'bestmove'.

        Sends the position, then 'go' with the request's budget, and
        accumulates every 'info' line by variation index until the
        terminal line arrives.

        Args:
            request: Position plus search limits

        Returns:
            AnalysisResult with the best line and all variations seen

        Raises:
            EngineNotReadyError: If the adapter is not initialized
            ConcurrentSearchError: If another search is still pending
            SearchTimeoutError: If no 'bestmove' arrives within the window
            EngineCrashedError: If the engine dies mid-search
        """
        self._require_ready()
        if self._search is not None:
            raise ConcurrentSearchError(f"Engine {self.engine_id} is already searching")

        loop = asyncio.get_running_loop()
        pending = PendingSearch(loop.create_future())
        self._search = pending
        started = loop.time()

        try:
            self.set_position(request.position)
            self.send(format_go(request.limits))
            await self._flush()

            window = self.search_window(request.limits)
            try:
                best = await asyncio.wait_for(pending.future, window)
            except asyncio.TimeoutError:
                self._abandon_search()
                raise SearchTimeoutError(
                    f"Engine {self.engine_id} did not finish searching within {window:.1f}s"
                ) from None
            except asyncio.CancelledError:
                self._abandon_search()
                raise
        finally:
            if self._search is pending:
                self._search = None

        elapsed_ms = int((loop.time() - started) * 1000)
        return self._build_result(request, pending, best, elapsed_ms)

    def _abandon_search(self) -> None:
        self._orphaned += 1
        self.stop()

    def _build_result(
        self,
        request: SearchRequest,
        pending: PendingSearch,
        best: BestMove,
        elapsed_ms: int,
    ) -> AnalysisResult:
        variations = tuple(pending.ranked())
        top = pending.variations.get(1)

        if best.move is None:
            top = None
        elif top is None:
            top = MoveRecord(move=best.move, pv=(best.move,))
        elif top.move != best.move:
            # bestmove overrides the last reported line
            pv = (best.move,) + ((best.ponder,) if best.ponder else ())
            top = MoveRecord(
                move=best.move,
                score=top.score,
                mate=top.mate,
                pv=pv,
                depth=top.depth,
                nodes=top.nodes,
                nps=top.nps,
                wdl=top.wdl,
            )

        return AnalysisResult(
            position=request.position,
            best=top,
            variations=variations,
            engine_id=self.engine_id,
            engine_name=self.config.name,
            elapsed_ms=elapsed_ms,
            ponder=best.ponder,
        )

    async def search_multi_variation(self, count: int, request: SearchRequest) -> List[MoveRecord]:
        """
        Search with MultiPV raised to count and return every line seen.

        The previous MultiPV value is restored afterwards even if the search
        fails. Fewer than count lines is not an error.

        Args:
            count: Number of lines wanted
            request: Position plus search limits

        Returns:
            The bestmove line first, then the others by variation index,
            re-ranked 1..k without empty or duplicate moves, at most count long
        """
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")
        self._require_ready()
        if self._search is not None:
            raise ConcurrentSearchError(f"Engine {self.engine_id} is already searching")

        original = self._multipv
        if count != original:
            self.set_multipv(count)
        try:
            result = await self.search(request)
        finally:
            if count != original and self.is_ready and self.is_alive:
                self.set_multipv(original)

        return self._select_lines(result, count)

    @staticmethod
    def _select_lines(result: AnalysisResult, count: int) -> List[MoveRecord]:
        # bestmove leads even when it disagrees with the first reported line
        records = ([result.best] if result.best is not None else []) + list(result.variations)
        lines: List[MoveRecord] = []
        seen: Set[str] = set()
        for record in records:
            if not record.move or record.move in seen:
                continue
            seen.add(record.move)
            lines.append(replace(record, rank=len(lines) + 1))
            if len(lines) == count:
                break
        return lines

    # ------------------------------------------------------------------
    # Inbound lines
    # ------------------------------------------------------------------

    def _dispatch(self, line: str) -> None:
        """Route one line of engine output. Called by the transport."""
        logger.debug(f"[{self.engine_id}] <<< {line}")
        parsed = parse_line(line)

        if isinstance(parsed, InfoLine):
            if self._orphaned or self._search is None:
                return
            record = self._search.update(parsed)
            if record is not None and record.rank == 1:
                self.evaluation = record

        elif isinstance(parsed, BestMove):
            if self._orphaned:
                self._orphaned -= 1
                logger.debug(f"[{self.engine_id}] discarding bestmove of aborted search")
                return
            if self._search is not None and not self._search.future.done():
                self._search.future.set_result(parsed)
            else:
                logger.debug(f"[{self.engine_id}] unexpected bestmove ignored")

        elif isinstance(parsed, (UciOk, ReadyOk)):
            for waiter in self._waiters.pop(type(parsed), []):
                if not waiter.done():
                    waiter.set_result(parsed)

        elif isinstance(parsed, IdLine):
            if parsed.key == "name":
                self.engine_name = parsed.value

        elif isinstance(parsed, OptionLine):
            self.supported_options.add(parsed.name)

    def _handle_eof(self, reason: str = "engine output closed") -> None:
        """Called by the transport when the engine's output ends."""
        if self.is_ready:
            logger.error(f"Engine {self.engine_id} terminated unexpectedly: {reason}")
        self.is_ready = False
        self._fail_pending(EngineCrashedError(f"Engine {self.engine_id} terminated: {reason}"))

    def _fail_pending(self, error: Exception) -> None:
        for waiters in self._waiters.values():
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_exception(error)
        self._waiters.clear()
        if self._search is not None and not self._search.future.done():
            self._search.future.set_exception(error)

    async def _request(self, command: str, reply: Type, timeout: float) -> None:
        """Send command and wait for the reply line type."""
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(reply, []).append(waiter)
        try:
            self.send(command)
            await self._flush()
            await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            raise ProtocolTimeoutError(
                f"Timeout waiting for {reply.__name__.lower()} from {self.engine_id} after {timeout:.1f}s"
            ) from None
        finally:
            waiters = self._waiters.get(reply)
            if waiters and waiter in waiters:
                waiters.remove(waiter)

    def _require_ready(self) -> None:
        if not self.is_ready:
            raise EngineNotReadyError(f"Engine {self.engine_id} is not ready")

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def info(self) -> Dict[str, Any]:
        return {
            "id": self.engine_id,
            "name": self.config.name,
            "family": self.family.value,
            "reported_name": self.engine_name,
            "ready": self.is_ready,
            "multipv": self._multipv,
        }

    def __repr__(self) -> str:
        state = "ready" if self.is_ready else "stopped"
        return f"{self.__class__.__name__}({self.engine_id!r}, {state})"
