"""
System-Wide Constants for SessionMesh

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024

SECOND_MS: Final[int] = 1000
MINUTE_MS: Final[int] = 60 * SECOND_MS

NS_PER_MS: Final[int] = 1_000_000
NS_PER_S: Final[int] = 1_000_000_000

# =============================================================================
# SESSION DEFAULTS
# =============================================================================
DEFAULT_APPLICATION_NAME: Final[str] = "/"
DEFAULT_TIMEOUT_MINUTES: Final[int] = 20
MAX_TIMEOUT_MINUTES: Final[int] = 525_600  # one year
DEFAULT_KEY_PREFIX: Final[str] = "session:"

# =============================================================================
# RECORD CODEC
# =============================================================================
RECORD_FORMAT_VERSION: Final[int] = 1
COMPRESSION_THRESHOLD_BYTES: Final[int] = 1 * KB
FRAME_RAW: Final[int] = 0x00
FRAME_LZ4: Final[int] = 0x01

# =============================================================================
# REDIS
# =============================================================================
REDIS_DEFAULT_PORT: Final[int] = 6379
REDIS_SOCKET_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
REDIS_CONNECT_TIMEOUT_MS: Final[int] = 2 * SECOND_MS
REDIS_MAX_CONNECTIONS: Final[int] = 50
