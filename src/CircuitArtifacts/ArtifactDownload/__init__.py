"""Circuit artifact retrieval from IPFS.

Fetches the verification key, proving key, and circuit program of a circuit
variant from a content-addressed network, decompresses and verifies them, and
persists them in a local store so repeated requests never touch the network.

Public API:
    - download_artifacts_for_variant / download_artifacts_for_poi / fetch_one
    - Downloader: long-lived orchestrator (single-flight, concurrent fan-out)
    - VariantCatalog: variant validation and path derivation
    - Transport implementations: GatewayTransport, TrustlessGatewayTransport, NodeTransport
    - Stores: FilesystemArtifactStore, MemoryArtifactStore, CallableArtifactStore
"""

from ._version import __version__
from .api import (
    download_artifacts_for_circuit,
    download_artifacts_for_poi,
    download_artifacts_for_variant,
    fetch_one,
    load_artifacts_for_variant,
)
from .cache import ArtifactCache
from .cancellation import CancellationToken, CancellationTokenGroup
from .catalog import (
    ArtifactKind,
    ArtifactLocation,
    ArtifactName,
    ProgramFormat,
    VariantCatalog,
    VariantFamily,
    VariantInfo,
    get_default_catalog,
    is_poi_variant,
    poi_variant,
    standard_variant,
)
from .compression import decompress_artifact
from .downloader import (
    ArtifactBundle,
    Downloader,
    NativeProgram,
    Program,
    VariantArtifacts,
    WasmProgram,
)
from .errors import (
    ArtifactDownloadError,
    ConfigError,
    DecompressionError,
    FetchCancelled,
    IntegrityMismatch,
    InvalidVariant,
    PathTraversal,
    RetryableFetchError,
    StoreReadError,
    StoreWriteError,
    TerminalFetchError,
    TransportClosedError,
    TransportInitError,
)
from .integrity import IntegrityValidator, load_digest_table
from .network import (
    GatewayTransport,
    NodeTransport,
    RetryPolicy,
    Transport,
    TrustlessGatewayTransport,
    create_transport,
    run_with_retry,
)
from .settings import DownloaderSettings, get_settings, reset_settings
from .storage import (
    ArtifactStore,
    CallableArtifactStore,
    FilesystemArtifactStore,
    MemoryArtifactStore,
)

__all__ = [
    "__version__",
    "download_artifacts_for_variant",
    "download_artifacts_for_circuit",
    "download_artifacts_for_poi",
    "load_artifacts_for_variant",
    "fetch_one",
    "ArtifactCache",
    "CancellationToken",
    "CancellationTokenGroup",
    "ArtifactKind",
    "ArtifactLocation",
    "ArtifactName",
    "ProgramFormat",
    "VariantCatalog",
    "VariantFamily",
    "VariantInfo",
    "get_default_catalog",
    "is_poi_variant",
    "poi_variant",
    "standard_variant",
    "decompress_artifact",
    "ArtifactBundle",
    "Downloader",
    "NativeProgram",
    "Program",
    "VariantArtifacts",
    "WasmProgram",
    "ArtifactDownloadError",
    "ConfigError",
    "DecompressionError",
    "FetchCancelled",
    "IntegrityMismatch",
    "InvalidVariant",
    "PathTraversal",
    "RetryableFetchError",
    "StoreReadError",
    "StoreWriteError",
    "TerminalFetchError",
    "TransportClosedError",
    "TransportInitError",
    "IntegrityValidator",
    "load_digest_table",
    "GatewayTransport",
    "NodeTransport",
    "RetryPolicy",
    "Transport",
    "TrustlessGatewayTransport",
    "create_transport",
    "run_with_retry",
    "DownloaderSettings",
    "get_settings",
    "reset_settings",
    "ArtifactStore",
    "CallableArtifactStore",
    "FilesystemArtifactStore",
    "MemoryArtifactStore",
]
