"""
Engine registry and pool configuration.

Engines are described by immutable EngineConfig records keyed by an
identifier; pools are named, ordered identifier lists where duplicates act
as selection weight. The registry is built once and injected into the
manager, pool and coordinator, so tests can substitute their own tables.

Example:
    registry = EngineRegistry.from_dict({
        "engines": {
            "sf": {"name": "Stockfish", "family": "native", "path": "stockfish",
                   "multipv": 3, "options": {"Threads": 2, "Hash": 64}},
        },
        "pools": {"default": ["sf"]},
    })
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from engine_bridge.constants import DEFAULT_DEPTH, DEFAULT_TIME_LIMIT_MS
from engine_bridge.exceptions import UnknownEngineError
from engine_bridge.models import SearchLimits

logger = logging.getLogger(__name__)


class EngineFamily(str, Enum):
    """Closed set of engine kinds; each maps to one adapter class."""

    NATIVE = "native"
    LC0 = "lc0"
    EMBEDDED = "embedded"


class SelectionStrategy(str, Enum):
    """How the pool manager picks the next engine."""

    RANDOM = "random"
    SEQUENTIAL = "sequential"
    WEIGHTED = "weighted"
    SINGLE = "single"


@dataclass(frozen=True)
class EngineConfig:
    """Launch parameters and UCI options for one engine instance."""

    engine_id: str
    """Unique identifier, key of the registry"""

    name: str
    """Display name"""

    family: EngineFamily = EngineFamily.NATIVE
    """Adapter family: native process, lc0 network backend, or embedded"""

    enabled: bool = True
    """Disabled engines are filtered out of pools"""

    path: Optional[str] = None
    """Executable path (None for the embedded engine)"""

    args: Tuple[str, ...] = ()
    """Extra command-line arguments for the process"""

    options: Mapping[str, Any] = field(default_factory=dict)
    """UCI option name -> value, sent with setoption during the handshake"""

    multipv: int = 1
    """Number of lines the engine reports by default"""

    depth: int = DEFAULT_DEPTH
    """Default search depth when the caller gives no limit"""

    time_ms: int = DEFAULT_TIME_LIMIT_MS
    """Base of the search timeout window for depth and node searches"""

    nodes: Optional[int] = None
    """Default node budget; when set it replaces depth as the default unit"""

    weights_path: Optional[str] = None
    """Network weights file (lc0 family)"""

    backend: Optional[str] = None
    """Network backend, e.g. 'cuda-auto' or 'cpu' (lc0 family)"""

    color: Optional[str] = None
    """Highlight colour used by display sinks"""

    def __post_init__(self):
        object.__setattr__(self, "family", EngineFamily(self.family))
        object.__setattr__(self, "args", tuple(str(a) for a in self.args))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

        if self.family == EngineFamily.EMBEDDED:
            if self.path is not None:
                raise ValueError(f"{self.engine_id}: embedded engines take no executable path")
        elif not self.path:
            raise ValueError(f"{self.engine_id}: {self.family.value} engines need an executable path")

        if self.multipv <= 0:
            raise ValueError(f"{self.engine_id}: multipv must be positive, got {self.multipv}")

        if self.depth <= 0:
            raise ValueError(f"{self.engine_id}: depth must be positive, got {self.depth}")

        if self.time_ms <= 0:
            raise ValueError(f"{self.engine_id}: time_ms must be positive, got {self.time_ms}")

        if self.nodes is not None and self.nodes <= 0:
            raise ValueError(f"{self.engine_id}: nodes must be positive, got {self.nodes}")

    @property
    def is_human_like(self) -> bool:
        """Maia weights imitate human play and are searched single-line."""
        return bool(self.weights_path) and "maia" in self.weights_path.lower()

    def default_limits(self) -> SearchLimits:
        """Budget used when a request supplies no depth, time or node limit."""
        if self.nodes is not None:
            return SearchLimits(nodes=self.nodes)
        return SearchLimits(depth=self.depth)

    @classmethod
    def from_dict(cls, engine_id: str, data: Mapping[str, Any]) -> "EngineConfig":
        """
        Build a config from a plain mapping (e.g. parsed JSON).

        Unknown keys are rejected so typos surface at load time.
        """
        known = set(cls.__dataclass_fields__) - {"engine_id"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"{engine_id}: unknown config keys {sorted(unknown)}")

        values = dict(data)
        values.setdefault("name", engine_id)
        if "args" in values:
            values["args"] = tuple(values["args"])
        return cls(engine_id=engine_id, **values)


@dataclass
class PoolSettings:
    """Which pool to draw from and how to rotate through it."""

    pool: str = "embedded"
    """Pool name in the registry"""

    selection: SelectionStrategy = SelectionStrategy.RANDOM
    """random, sequential, weighted or single"""

    switch_every: int = 1
    """Switch engine every N analysed moves (0 = never switch)"""

    weights: Optional[Sequence[float]] = None
    """Parallel to the pool list, only used by weighted selection"""

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.selection = SelectionStrategy(self.selection)

        if self.switch_every < 0:
            raise ValueError(f"switch_every must be >= 0, got {self.switch_every}")

        if self.weights is not None:
            self.weights = [float(w) for w in self.weights]
            if any(w < 0 for w in self.weights):
                raise ValueError(f"weights must be non-negative, got {self.weights}")


class EngineRegistry:
    """
    Read-only lookup of engine configs, pools and dual-analysis labels.

    Attributes:
        engines: identifier -> EngineConfig
        pools: pool name -> tuple of identifiers (duplicates allowed)
        dual_analysis: display label -> identifier
    """

    def __init__(
        self,
        engines: Union[Mapping[str, EngineConfig], Sequence[EngineConfig]],
        pools: Optional[Mapping[str, Sequence[str]]] = None,
        dual_analysis: Optional[Mapping[str, str]] = None,
    ):
        if not isinstance(engines, Mapping):
            engines = {config.engine_id: config for config in engines}

        for engine_id, config in engines.items():
            if config.engine_id != engine_id:
                raise ValueError(f"Registry key {engine_id!r} does not match config id {config.engine_id!r}")

        self._engines = MappingProxyType(dict(engines))
        self._pools = MappingProxyType({name: tuple(ids) for name, ids in (pools or {}).items()})
        self._dual = MappingProxyType(dict(dual_analysis or {}))

        for name, ids in self._pools.items():
            for engine_id in ids:
                if engine_id not in self._engines:
                    raise UnknownEngineError(f"Pool {name!r} references unknown engine {engine_id!r}")

        for label, engine_id in self._dual.items():
            if engine_id not in self._engines:
                raise UnknownEngineError(f"Dual analysis label {label!r} references unknown engine {engine_id!r}")

    @property
    def engines(self) -> Mapping[str, EngineConfig]:
        return self._engines

    @property
    def pools(self) -> Mapping[str, Tuple[str, ...]]:
        return self._pools

    @property
    def dual_analysis(self) -> Mapping[str, str]:
        return self._dual

    def __contains__(self, engine_id: object) -> bool:
        return engine_id in self._engines

    def get(self, engine_id: str) -> EngineConfig:
        """
        Look up one engine.

        Raises:
            UnknownEngineError: If the identifier is not configured
        """
        try:
            return self._engines[engine_id]
        except KeyError:
            raise UnknownEngineError(f"Engine configuration not found: {engine_id}") from None

    def pool(self, name: str, enabled_only: bool = False) -> Tuple[str, ...]:
        """
        Identifiers of a named pool in their configured order.

        Args:
            name: Pool name
            enabled_only: Drop identifiers whose config is disabled

        Raises:
            UnknownEngineError: If the pool is not configured
        """
        try:
            ids = self._pools[name]
        except KeyError:
            raise UnknownEngineError(f"Engine pool not found: {name}") from None
        if enabled_only:
            ids = tuple(i for i in ids if self._engines[i].enabled)
        return ids

    def enabled_engines(self) -> List[EngineConfig]:
        return [config for config in self._engines.values() if config.enabled]

    def display_name(self, engine_id: str) -> Optional[str]:
        config = self._engines.get(engine_id)
        return config.name if config else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineRegistry":
        engines = {
            engine_id: EngineConfig.from_dict(engine_id, spec)
            for engine_id, spec in data.get("engines", {}).items()
        }
        return cls(engines, data.get("pools"), data.get("dual_analysis"))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "EngineRegistry":
        """Load a registry from a JSON file with engines/pools/dual_analysis keys."""
        path = Path(path)
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        registry = cls.from_dict(data)
        logger.info(f"Loaded {len(registry.engines)} engine(s) and {len(registry.pools)} pool(s) from {path}")
        return registry

    def __repr__(self) -> str:
        return f"EngineRegistry(engines={list(self._engines)}, pools={list(self._pools)})"


# ============================================================================
# Default tables
# ============================================================================

DEFAULT_ENGINES: Dict[str, Dict[str, Any]] = {
    # Pure-Python engine running inside this process
    "embedded": {
        "name": "Embedded Classical",
        "family": "embedded",
        "multipv": 3,
        "depth": 3,
        "color": "#2e8b57",
    },
    # Stockfish binary on PATH
    "stockfish-native": {
        "name": "Stockfish Native",
        "family": "native",
        "path": "stockfish",
        "options": {"Threads": 4, "Hash": 128, "Skill Level": 20},
        "multipv": 3,
        "depth": 18,
        "color": "#1e90ff",
    },
    # Lc0 with its default network
    "lc0-default": {
        "name": "Leela Chess Zero",
        "family": "lc0",
        "path": "lc0",
        "backend": "cuda-auto",
        "options": {"Threads": 2, "MinibatchSize": 256},
        "multipv": 3,
        "depth": 20,
        "time_ms": 5000,
        "color": "#9932cc",
    },
    # Maia weights, human-like play at fixed strength levels
    "maia-1100": {
        "name": "Maia 1100",
        "family": "lc0",
        "path": "lc0",
        "weights_path": "./weights/maia-1100.pb.gz",
        "backend": "cuda-auto",
        "options": {"Threads": 2, "MinibatchSize": 128, "Temperature": 1.0},
        "nodes": 10000,
        "time_ms": 5000,
        "color": "#ff8c00",
    },
    "maia-1500": {
        "name": "Maia 1500",
        "family": "lc0",
        "path": "lc0",
        "weights_path": "./weights/maia-1500.pb.gz",
        "backend": "cuda-auto",
        "options": {"Threads": 2, "MinibatchSize": 128, "Temperature": 1.0},
        "nodes": 10000,
        "time_ms": 5000,
        "color": "#ff7f50",
    },
    "maia-1900": {
        "name": "Maia 1900",
        "family": "lc0",
        "path": "lc0",
        "weights_path": "./weights/maia-1900.pb.gz",
        "backend": "cuda-auto",
        "options": {"Threads": 2, "MinibatchSize": 128, "Temperature": 1.0},
        "nodes": 10000,
        "time_ms": 5000,
        "color": "#dc143c",
    },
    "lc0-custom": {
        "name": "Lc0 Custom",
        "family": "lc0",
        "path": "lc0",
        "enabled": False,
        "weights_path": "./weights/your-custom-weights.pb.gz",
        "backend": "cuda-auto",
        "options": {"Threads": 4, "MinibatchSize": 512},
        "multipv": 3,
    },
}

DEFAULT_POOLS: Dict[str, List[str]] = {
    "embedded": ["embedded"],
    "stockfish": ["stockfish-native"],
    "maia": ["maia-1100", "maia-1500", "maia-1900"],
    # Duplicates weight the weaker model
    "maia-varied": ["maia-1100", "maia-1100", "maia-1500", "maia-1900"],
    "all": ["embedded", "stockfish-native", "lc0-default", "maia-1100", "maia-1500", "maia-1900"],
    "strong": ["stockfish-native", "lc0-default"],
    "human-like": ["maia-1100", "maia-1500", "maia-1500", "maia-1900", "embedded"],
    "test": ["embedded", "maia-1100"],
}

DUAL_ANALYSIS_ENGINES: Dict[str, str] = {
    "stockfish": "stockfish-native",
    "maia": "maia-1500",
}


def default_registry() -> EngineRegistry:
    """Registry built from the default tables above."""
    return EngineRegistry.from_dict({
        "engines": DEFAULT_ENGINES,
        "pools": DEFAULT_POOLS,
        "dual_analysis": DUAL_ANALYSIS_ENGINES,
    })
