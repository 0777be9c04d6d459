"""
Exception hierarchy for engine orchestration.

Every error raised by the adapters, the manager, the pool and the
coordinator derives from EngineBridgeError so callers can catch the whole
family at one boundary. Timeouts additionally subclass the builtin
TimeoutError.
"""


class EngineBridgeError(Exception):
    """Base exception for all engine_bridge errors."""


class EngineError(EngineBridgeError):
    """Base exception for errors raised while driving an engine."""


class EngineLaunchError(EngineError):
    """Engine process could not be spawned (missing binary, bad permissions)."""


class ProtocolTimeoutError(EngineError, TimeoutError):
    """A handshake acknowledgment (uciok / readyok) was never observed."""


class SearchTimeoutError(EngineError, TimeoutError):
    """A search exceeded its budget plus the safety margin."""


class ConcurrentSearchError(EngineError):
    """A search was requested while another one is still pending."""


class EngineNotReadyError(EngineError):
    """Operation issued before initialization completed or after quit."""


class EngineCrashedError(EngineError):
    """The engine process exited or its pipes broke mid-session."""


class UnknownEngineError(EngineBridgeError, KeyError):
    """Engine identifier or pool name is not present in the configuration."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class PoolExhaustedError(EngineBridgeError):
    """Every configured identifier in a pool failed to initialize."""
