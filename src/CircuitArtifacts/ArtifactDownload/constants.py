# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.constants",
#   "purpose": "Static reference data: network roots, variant catalog, storage layout.",
#   "sections": []
# }
# === /NAVMAP ===

"""Static reference data for the circuit artifact catalog.

Defines the two content-addressed roots, the enumerable variant lists, the
versioned on-disk layout, and the gateway defaults used when no settings
override them.
"""

from typing import Tuple

# ============================================================================
# Network Roots
# ============================================================================

#: Root CID of the standard (``NNxMM``) circuit catalog
STANDARD_ARTIFACTS_ROOT = "QmeBrG7pii1qTqsn7rusvDiqXopHPjCT9gR4PsmW7wXqZq"

#: Root CID of the privacy-proof (``POI_AxA``) circuit catalog
POI_ARTIFACTS_ROOT = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


# ============================================================================
# Variant Catalog
# ============================================================================

#: Literal prefix that places a variant in the privacy-proof family
POI_VARIANT_PREFIX = "POI"

#: Supported square sizes for privacy-proof circuits
POI_CIRCUIT_SIZES: Tuple[int, ...] = (3, 13)


def _standard_variants() -> Tuple[str, ...]:
    variants = [
        f"{inputs:02d}x{outputs:02d}" for inputs in range(1, 11) for outputs in range(1, 6)
    ]
    # Consolidation circuits outside the main grid
    variants.extend(["01x10", "01x13"])
    return tuple(variants)


#: Every valid standard variant (nullifier count x commitment count)
VALID_STANDARD_VARIANTS: Tuple[str, ...] = _standard_variants()

#: Every valid privacy-proof variant
VALID_POI_VARIANTS: Tuple[str, ...] = tuple(
    f"{POI_VARIANT_PREFIX}_{size}x{size}" for size in POI_CIRCUIT_SIZES
)


# ============================================================================
# On-disk Layout
# ============================================================================

#: Versioned root directory under the store root
ARTIFACTS_ROOT_DIR = "artifacts-v2.1"

#: Fixed sub-root that privacy-proof variants nest under
POI_ARTIFACTS_SUBDIR = "ppoi-nov-2-23"


# ============================================================================
# Gateways
# ============================================================================

#: Gateways tried in round-robin order by the plain HTTP strategy
DEFAULT_GATEWAYS: Tuple[str, ...] = (
    "https://ipfs-lb.com",
    "https://trustless-gateway.link",
)

#: RPC endpoint of a locally running IPFS node
DEFAULT_NODE_API_URL = "http://127.0.0.1:5001"

#: Response codes worth retrying (rate limit, unavailable, gateway timeout)
RETRYABLE_STATUS_CODES = frozenset({429, 503, 504})

#: Digest algorithm used by the reference table
DIGEST_ALGORITHM = "sha256"
