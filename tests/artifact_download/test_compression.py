from __future__ import annotations

import brotli
import pytest

from CircuitArtifacts.ArtifactDownload.catalog import ArtifactName
from CircuitArtifacts.ArtifactDownload.compression import compress_artifact, decompress_artifact
from CircuitArtifacts.ArtifactDownload.errors import DecompressionError


@pytest.mark.parametrize("name", [ArtifactName.ZKEY, ArtifactName.WASM, ArtifactName.DAT])
def test_compressed_artifacts_are_brotli_decoded(name: ArtifactName) -> None:
    payload = b"circuit-bytes" * 100

    assert decompress_artifact(brotli.compress(payload), name) == payload


def test_vkey_passes_through_unchanged() -> None:
    payload = b'{"protocol": "groth16"}'

    assert decompress_artifact(payload, ArtifactName.VKEY) == payload
    assert compress_artifact(payload, ArtifactName.VKEY) == payload


def test_invalid_stream_raises_decompression_error() -> None:
    with pytest.raises(DecompressionError) as excinfo:
        decompress_artifact(b"definitely not brotli", ArtifactName.ZKEY)

    assert "zkey" in str(excinfo.value)
    assert excinfo.value.__cause__ is not None


def test_accepts_artifact_name_strings() -> None:
    payload = b"\x00asm"

    assert decompress_artifact(compress_artifact(payload, "wasm"), "wasm") == payload
