"""
Shared constants for engine orchestration.

Times are milliseconds unless the name says otherwise; protocol waits are
seconds because they feed asyncio timeouts directly.
"""

# ============================================================================
# Search defaults
# ============================================================================

DEFAULT_DEPTH = 15
DEFAULT_TIME_LIMIT_MS = 2000
DEFAULT_MULTIPV = 3

# Candidate searches in dual analysis are capped to bound total latency
CANDIDATE_COUNT = 3
CANDIDATE_DEPTH_CAP = 10
CANDIDATE_TIME_CAP_MS = 1000

# ============================================================================
# Protocol waits (seconds)
# ============================================================================

HANDSHAKE_TIMEOUT = 5.0
NETWORK_HANDSHAKE_TIMEOUT = 10.0  # lc0 loads its network before uciok
SEARCH_TIMEOUT_MARGIN = 5.0
PROCESS_EXIT_TIMEOUT = 2.0

# Network backends get at least this much wall time per search
NETWORK_MIN_SEARCH_WINDOW_MS = 10000

# ============================================================================
# Score normalization
# ============================================================================

# Mate scores live above MATE_SCORE pawns so they order past any real eval
MATE_SCORE = 10000
MAX_MATE_DISTANCE = 1000

# ============================================================================
# Bookkeeping
# ============================================================================

HISTORY_CAPACITY = 100
