# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.network.policy",
#   "purpose": "HTTP policy constants and defaults.",
#   "sections": []
# }
# === /NAVMAP ===

"""HTTP policy constants and defaults.

Timeout budgets and connection pool sizing for the per-transport HTTPX
clients. Proving keys run to hundreds of megabytes, so the read timeout is
generous; the pool is small because a single variant never needs more than
three concurrent fetches.
"""

from .._version import __version__ as _package_version

# ============================================================================
# Timeout Budgets (seconds)
# ============================================================================

#: Connection establishment timeout
DEFAULT_CONNECT_TIMEOUT_S = 10.0

#: Read timeout between data packets; large artifacts stream slowly from gateways
DEFAULT_READ_TIMEOUT_S = 120.0

#: Write timeout (RPC request bodies only)
DEFAULT_WRITE_TIMEOUT_S = 15.0

#: Pool timeout (acquiring a connection from the pool)
DEFAULT_POOL_TIMEOUT_S = 10.0


# ============================================================================
# Connection Pooling
# ============================================================================

#: Maximum concurrent connections per client
MAX_CONNECTIONS = 16

#: Maximum idle connections kept for reuse
MAX_KEEPALIVE_CONNECTIONS = 8

#: How long to keep idle connections alive (seconds)
KEEPALIVE_EXPIRY = 30.0


# ============================================================================
# Headers
# ============================================================================

#: User-Agent sent with every request
DEFAULT_USER_AGENT = f"circuit-artifacts/{_package_version}"

#: Media type requested from trustless gateways
CAR_MEDIA_TYPE = "application/vnd.ipld.car"
