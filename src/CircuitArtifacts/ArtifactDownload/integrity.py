# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.integrity",
#   "purpose": "Digest reference table parsing and artifact integrity validation",
#   "sections": [
#     {"id": "expecteddigest", "name": "ExpectedDigest", "anchor": "class-expecteddigest", "kind": "class"},
#     {"id": "load-digest-table", "name": "load_digest_table", "anchor": "function-load-digest-table", "kind": "function"},
#     {"id": "integrityvalidator", "name": "IntegrityValidator", "anchor": "class-integrityvalidator", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Digest reference table parsing and artifact integrity validation.

Plain HTTP gateways give no guarantee that the bytes they return belong to the
requested content identifier. When such a transport is active the downloader
hashes every decompressed artifact (except the verification key, whose path is
content-addressed and never compressed) and compares the digest against a
reference table shaped like::

    {"01x01": {"zkey": "<sha256 hex>", "wasm": "<sha256 hex>", "dat": "<sha256 hex>"}}

Entries may also be mappings ``{"algorithm": "sha512", "value": "<hex>"}``.
A mismatch is always fatal: fetching the same bytes again cannot change the
outcome, so :class:`~CircuitArtifacts.ArtifactDownload.errors.IntegrityMismatch`
is never retried.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .catalog import ArtifactName
from .constants import DIGEST_ALGORITHM
from .errors import ConfigError, IntegrityMismatch

logger = logging.getLogger(__name__)

__all__ = [
    "ExpectedDigest",
    "DigestTable",
    "parse_digest_table",
    "load_digest_table",
    "load_packaged_digest_table",
    "compute_digest",
    "IntegrityValidator",
]

_SUPPORTED_ALGORITHMS = {"sha256", "sha512"}
_HEX_DIGEST = re.compile(r"[0-9a-f]{64,128}")


@dataclass(frozen=True)
class ExpectedDigest:
    """Expected digest for one artifact of one variant."""

    algorithm: str
    value: str


DigestTable = Dict[str, Dict[ArtifactName, ExpectedDigest]]


def _normalize_digest(raw: object, *, context: str) -> ExpectedDigest:
    if isinstance(raw, str):
        algorithm, value = DIGEST_ALGORITHM, raw
    elif isinstance(raw, Mapping):
        algorithm = raw.get("algorithm", DIGEST_ALGORITHM)
        value = raw.get("value")
        if not isinstance(algorithm, str):
            raise ConfigError(f"{context}: digest algorithm must be a string")
    else:
        raise ConfigError(f"{context}: digest must be a string or mapping")

    algorithm = algorithm.strip().lower()
    if algorithm not in _SUPPORTED_ALGORITHMS:
        raise ConfigError(f"{context}: unsupported digest algorithm '{algorithm}'")
    if not isinstance(value, str):
        raise ConfigError(f"{context}: digest value must be a string")
    value = value.strip().lower()
    if not _HEX_DIGEST.fullmatch(value):
        raise ConfigError(f"{context}: digest value must be a hexadecimal digest")
    return ExpectedDigest(algorithm=algorithm, value=value)


def parse_digest_table(payload: Mapping[str, object]) -> DigestTable:
    """Validate a raw ``{variant: {artifact: digest}}`` mapping."""

    if not isinstance(payload, Mapping):
        raise ConfigError("digest table must be a JSON object keyed by variant")

    table: DigestTable = {}
    for variant, entries in payload.items():
        if not isinstance(entries, Mapping):
            raise ConfigError(f"digest table entry for {variant!r} must be an object")
        parsed: Dict[ArtifactName, ExpectedDigest] = {}
        for name_raw, digest_raw in entries.items():
            try:
                name = ArtifactName(name_raw)
            except ValueError as exc:
                raise ConfigError(
                    f"digest table entry {variant}/{name_raw}: unknown artifact"
                ) from exc
            if name is ArtifactName.VKEY:
                # vkeys are never hash-checked
                continue
            parsed[name] = _normalize_digest(digest_raw, context=f"{variant}/{name.value}")
        table[variant] = parsed
    return table


def load_digest_table(path: Union[str, Path]) -> DigestTable:
    """Read and validate a digest table from a JSON file."""

    source = Path(path)
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read digest table {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"digest table {source} is not valid JSON: {exc}") from exc
    return parse_digest_table(payload)


def load_packaged_digest_table() -> DigestTable:
    """Load the digest table shipped with the package."""

    ref = resources.files("CircuitArtifacts.ArtifactDownload").joinpath("data/artifact_hashes.json")
    return parse_digest_table(json.loads(ref.read_text(encoding="utf-8")))


def compute_digest(data: bytes, algorithm: str = DIGEST_ALGORITHM) -> str:
    """Return the lowercase hex digest of ``data``."""

    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


class IntegrityValidator:
    """Compare decompressed artifact digests against a reference table.

    Args:
        table: Parsed digest table (see :func:`parse_digest_table`).
        require_digests: When true, a missing table entry fails validation
            instead of being logged and skipped.
    """

    def __init__(self, table: Optional[DigestTable] = None, *, require_digests: bool = False) -> None:
        self._table: DigestTable = dict(table or {})
        self.require_digests = require_digests

    def expected(self, variant: str, name: ArtifactName) -> Optional[ExpectedDigest]:
        return self._table.get(variant, {}).get(ArtifactName(name))

    def validate(self, data: bytes, name: ArtifactName, variant: str) -> bytes:
        """Return ``data`` unchanged if its digest matches the reference table.

        Raises:
            IntegrityMismatch: On digest divergence, or on a missing entry when
                ``require_digests`` is set.
        """

        name = ArtifactName(name)
        if name is ArtifactName.VKEY:
            return data

        expected = self.expected(variant, name)
        if expected is None:
            if self.require_digests:
                raise IntegrityMismatch(
                    f"no reference digest for {variant}/{name.value}",
                    expected=None,
                    actual=compute_digest(data),
                )
            logger.warning(
                "integrity check skipped: no reference digest",
                extra={"stage": "integrity", "variant": variant, "artifact": name.value},
            )
            return data

        actual = compute_digest(data, expected.algorithm)
        if actual != expected.value:
            raise IntegrityMismatch(
                f"{expected.algorithm} mismatch for {variant}/{name.value}: "
                f"expected {expected.value}, got {actual}",
                expected=expected.value,
                actual=actual,
            )

        logger.debug(
            "integrity verified",
            extra={"stage": "integrity", "variant": variant, "artifact": name.value},
        )
        return data
