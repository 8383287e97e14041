# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.catalog",
#   "purpose": "Validate circuit variants and derive network paths and storage keys",
#   "sections": [
#     {"id": "types", "name": "Artifact & Variant Types", "anchor": "TYP", "kind": "api"},
#     {"id": "templates", "name": "Path Templates", "anchor": "TPL", "kind": "infra"},
#     {"id": "catalog", "name": "VariantCatalog", "anchor": "CAT", "kind": "api"},
#     {"id": "helpers", "name": "Variant Helpers", "anchor": "HLP", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Variant catalog: validation, classification, and path derivation.

Each circuit variant belongs to exactly one family. Standard variants look like
``NNxMM`` (zero-padded input/output counts); privacy-proof variants look like
``POI_3x3`` or ``POI_13x13`` and live under a separate network root. Family
membership is decided by a literal prefix test.

:meth:`VariantCatalog.locate` is the single source of truth for both the
network path of an artifact and the key it is stored under locally, so the two
can never diverge. Path construction is a lookup in
:data:`NETWORK_PATH_TEMPLATES`; nothing is computed by branching on kinds.

Example:
    >>> catalog = VariantCatalog()
    >>> loc = catalog.locate("01x01", ArtifactName.ZKEY)
    >>> loc.network_path
    'circuits/01x01/zkey.br'
    >>> loc.storage_key
    'artifacts-v2.1/01x01/zkey'
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple, Union

from .constants import (
    ARTIFACTS_ROOT_DIR,
    POI_ARTIFACTS_ROOT,
    POI_ARTIFACTS_SUBDIR,
    POI_CIRCUIT_SIZES,
    POI_VARIANT_PREFIX,
    STANDARD_ARTIFACTS_ROOT,
    VALID_POI_VARIANTS,
    VALID_STANDARD_VARIANTS,
)
from .errors import ConfigError, InvalidVariant, PathTraversal

__all__ = [
    "ArtifactKind",
    "ArtifactName",
    "ProgramFormat",
    "VariantFamily",
    "VariantInfo",
    "ArtifactLocation",
    "VariantCatalog",
    "NETWORK_PATH_TEMPLATES",
    "STORAGE_FILE_NAMES",
    "resolve_artifact_name",
    "standard_variant",
    "poi_variant",
    "is_poi_variant",
    "get_default_catalog",
]

_STANDARD_PATTERN = re.compile(r"^\d{2}x\d{2}$")


# ============================================================================
# Artifact & Variant Types
# ============================================================================


class ArtifactKind(str, Enum):
    """Logical artifact kinds fetched for every variant."""

    VERIFICATION_KEY = "vkey"
    PROVING_KEY = "zkey"
    PROGRAM = "program"


class ArtifactName(str, Enum):
    """Physical artifact names as they appear in network paths and on disk."""

    VKEY = "vkey"
    ZKEY = "zkey"
    WASM = "wasm"
    DAT = "dat"

    @property
    def compressed(self) -> bool:
        """Whether the network copy is Brotli-compressed (all but the vkey)."""
        return self is not ArtifactName.VKEY


class ProgramFormat(str, Enum):
    """Mutually exclusive representations of the circuit program."""

    WASM = "wasm"
    NATIVE = "native"

    @property
    def artifact_name(self) -> ArtifactName:
        return ArtifactName.WASM if self is ProgramFormat.WASM else ArtifactName.DAT


class VariantFamily(str, Enum):
    """Disjoint variant families, each with its own root and templates."""

    STANDARD = "standard"
    POI = "poi"


@dataclass(frozen=True)
class VariantInfo:
    """Classification result for a validated variant."""

    variant: str
    family: VariantFamily
    root_id: str
    storage_dir: str


@dataclass(frozen=True)
class ArtifactLocation:
    """Network locator and storage key for one artifact of one variant."""

    variant: str
    family: VariantFamily
    name: ArtifactName
    root_id: str
    network_path: str
    storage_dir: str
    storage_key: str


# ============================================================================
# Path Templates
# ============================================================================

#: Network path template per (family, artifact); ``{variant}`` is substituted
NETWORK_PATH_TEMPLATES: Dict[Tuple[VariantFamily, ArtifactName], str] = {
    (VariantFamily.STANDARD, ArtifactName.VKEY): "circuits/{variant}/vkey.json",
    (VariantFamily.STANDARD, ArtifactName.ZKEY): "circuits/{variant}/zkey.br",
    (VariantFamily.STANDARD, ArtifactName.WASM): "prover/snarkjs/{variant}.wasm.br",
    (VariantFamily.STANDARD, ArtifactName.DAT): "prover/native/{variant}.dat.br",
    (VariantFamily.POI, ArtifactName.VKEY): "{variant}/vkey.json",
    (VariantFamily.POI, ArtifactName.ZKEY): "{variant}/zkey.br",
    (VariantFamily.POI, ArtifactName.WASM): "{variant}/wasm.br",
    (VariantFamily.POI, ArtifactName.DAT): "{variant}/dat.br",
}

#: Local file name per artifact inside the variant directory
STORAGE_FILE_NAMES: Dict[ArtifactName, str] = {
    ArtifactName.VKEY: "vkey.json",
    ArtifactName.ZKEY: "zkey",
    ArtifactName.WASM: "wasm",
    ArtifactName.DAT: "dat",
}

#: Parent directory per family, relative to the store root
_STORAGE_PARENTS: Dict[VariantFamily, str] = {
    VariantFamily.STANDARD: ARTIFACTS_ROOT_DIR,
    VariantFamily.POI: posixpath.join(ARTIFACTS_ROOT_DIR, POI_ARTIFACTS_SUBDIR),
}


def resolve_artifact_name(
    kind: Union[ArtifactKind, ArtifactName, str],
    program_format: ProgramFormat,
) -> ArtifactName:
    """Map a logical kind (or physical name) to the name fetched for ``program_format``.

    Raises:
        ConfigError: If ``kind`` names the program representation that the
            given ``program_format`` excludes, or is not a known kind.
    """

    if isinstance(kind, str) and not isinstance(kind, (ArtifactKind, ArtifactName)):
        value = kind.lower()
        if value in {k.value for k in ArtifactKind}:
            kind = ArtifactKind(value)
        elif value in {n.value for n in ArtifactName}:
            kind = ArtifactName(value)
        else:
            raise ConfigError(f"unknown artifact kind: {kind!r}")

    if isinstance(kind, ArtifactKind):
        if kind is ArtifactKind.VERIFICATION_KEY:
            return ArtifactName.VKEY
        if kind is ArtifactKind.PROVING_KEY:
            return ArtifactName.ZKEY
        return program_format.artifact_name

    if kind in (ArtifactName.WASM, ArtifactName.DAT) and kind is not program_format.artifact_name:
        raise ConfigError(
            f"artifact {kind.value!r} is not available when the program format is "
            f"{program_format.value!r}"
        )
    return kind


# ============================================================================
# VariantCatalog
# ============================================================================


def _safe_basename(value: str) -> str:
    return posixpath.basename(value.replace("\\", "/"))


class VariantCatalog:
    """Classify variant strings and derive artifact locations.

    The default instance covers the published catalog; the constructor
    accepts overrides so mirrors (or tests) can point at different roots or
    restrict the enumerated variants.
    """

    def __init__(
        self,
        *,
        standard_root: str = STANDARD_ARTIFACTS_ROOT,
        poi_root: str = POI_ARTIFACTS_ROOT,
        standard_variants: Iterable[str] = VALID_STANDARD_VARIANTS,
        poi_variants: Iterable[str] = VALID_POI_VARIANTS,
    ) -> None:
        self.standard_root = standard_root
        self.poi_root = poi_root
        self._standard_variants = tuple(standard_variants)
        self._poi_variants = tuple(poi_variants)
        self._standard_lookup = frozenset(self._standard_variants)
        self._poi_lookup = frozenset(self._poi_variants)

    @property
    def standard_variants(self) -> Tuple[str, ...]:
        return self._standard_variants

    @property
    def poi_variants(self) -> Tuple[str, ...]:
        return self._poi_variants

    def __iter__(self) -> Iterator[str]:
        yield from self._standard_variants
        yield from self._poi_variants

    def __contains__(self, variant: object) -> bool:
        return isinstance(variant, str) and (
            variant in self._standard_lookup or variant in self._poi_lookup
        )

    def root_for(self, family: VariantFamily) -> str:
        return self.poi_root if family is VariantFamily.POI else self.standard_root

    def classify(self, variant: str) -> VariantInfo:
        """Validate ``variant`` and return its family, root, and storage directory.

        Raises:
            PathTraversal: If the variant is not its own basename once treated
                as a path segment.
            InvalidVariant: If the variant matches neither family.
        """

        if not isinstance(variant, str):
            raise InvalidVariant(f"variant must be a string, got {type(variant).__name__}")

        if (
            not variant
            or "\x00" in variant
            or variant in {".", ".."}
            or _safe_basename(variant) != variant
        ):
            raise PathTraversal(
                f"variant {variant!r} is not a plain path segment", variant=variant
            )

        if is_poi_variant(variant):
            if variant not in self._poi_lookup:
                raise InvalidVariant(
                    f"Invalid POI artifact variant: {variant}. "
                    f"Valid variants are: {', '.join(self._poi_variants)}",
                    variant=variant,
                )
            family = VariantFamily.POI
        else:
            if not _STANDARD_PATTERN.match(variant) or variant not in self._standard_lookup:
                raise InvalidVariant(
                    f"Invalid artifact variant: {variant}. Expected NNxMM from the catalog "
                    f"or one of {', '.join(self._poi_variants)}",
                    variant=variant,
                )
            family = VariantFamily.STANDARD

        storage_dir = posixpath.join(_STORAGE_PARENTS[family], variant)
        return VariantInfo(
            variant=variant,
            family=family,
            root_id=self.root_for(family),
            storage_dir=storage_dir,
        )

    def locate(
        self,
        variant: str,
        name: ArtifactName,
        *,
        root_id: Optional[str] = None,
    ) -> ArtifactLocation:
        """Return the network locator and storage key for ``name`` of ``variant``."""

        info = self.classify(variant)
        name = ArtifactName(name)
        network_path = NETWORK_PATH_TEMPLATES[(info.family, name)].format(variant=variant)
        storage_key = posixpath.join(info.storage_dir, STORAGE_FILE_NAMES[name])
        return ArtifactLocation(
            variant=variant,
            family=info.family,
            name=name,
            root_id=root_id or info.root_id,
            network_path=network_path,
            storage_dir=info.storage_dir,
            storage_key=storage_key,
        )

    def locate_all(
        self, variant: str, program_format: ProgramFormat
    ) -> Sequence[ArtifactLocation]:
        """Locations of the three artifacts fetched for ``variant``."""

        return [
            self.locate(variant, ArtifactName.VKEY),
            self.locate(variant, ArtifactName.ZKEY),
            self.locate(variant, program_format.artifact_name),
        ]


# ============================================================================
# Variant Helpers
# ============================================================================


def is_poi_variant(variant: str) -> bool:
    """Whether ``variant`` belongs to the privacy-proof family (prefix test only)."""

    return variant.startswith(POI_VARIANT_PREFIX)


def standard_variant(inputs: int, outputs: int) -> str:
    """Format an ``NNxMM`` variant string for the given circuit dimensions."""

    variant = f"{inputs:02d}x{outputs:02d}"
    if variant not in VALID_STANDARD_VARIANTS:
        raise InvalidVariant(f"no standard circuit for {inputs}x{outputs}", variant=variant)
    return variant


def poi_variant(max_inputs: int, max_outputs: int) -> str:
    """Format a privacy-proof variant; only square 3x3 and 13x13 circuits exist."""

    if max_inputs != max_outputs or max_inputs not in POI_CIRCUIT_SIZES:
        raise InvalidVariant(
            "Invalid POI artifact variant: only 3x3 and 13x13 are supported, "
            f"got {max_inputs}x{max_outputs}"
        )
    return f"{POI_VARIANT_PREFIX}_{max_inputs}x{max_outputs}"


_DEFAULT_CATALOG: Optional[VariantCatalog] = None


def get_default_catalog() -> VariantCatalog:
    """Return the shared catalog built from the packaged reference data."""

    global _DEFAULT_CATALOG
    if _DEFAULT_CATALOG is None:
        _DEFAULT_CATALOG = VariantCatalog()
    return _DEFAULT_CATALOG
