"""Trustless gateway transport: CAR verification and UnixFS reassembly.

The archives below are assembled by hand: raw leaves and dag-pb nodes are
hashed into CIDv1 identifiers so the transport's verification runs against
real content addressing.
"""

from __future__ import annotations

import hashlib
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
import pytest
from multiformats import CID

from CircuitArtifacts.ArtifactDownload.errors import (
    IntegrityMismatch,
    RetryableFetchError,
    TerminalFetchError,
)
from CircuitArtifacts.ArtifactDownload.network.car import read_varint
from CircuitArtifacts.ArtifactDownload.network.policy import CAR_MEDIA_TYPE
from CircuitArtifacts.ArtifactDownload.network.trustless import TrustlessGatewayTransport

RAW = 0x55
DAG_PB = 0x70


def varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def field_bytes(number: int, payload: bytes) -> bytes:
    return varint((number << 3) | 2) + varint(len(payload)) + payload


def field_varint(number: int, value: int) -> bytes:
    return varint(number << 3) + varint(value)


def cid_bytes(codec: int, block: bytes) -> bytes:
    return b"\x01" + varint(codec) + b"\x12\x20" + hashlib.sha256(block).digest()


def unixfs(node_type: int, data: bytes = b"", filesize: Optional[int] = None) -> bytes:
    out = field_varint(1, node_type)
    if data:
        out += field_bytes(2, data)
    if filesize is not None:
        out += field_varint(3, filesize)
    return out


def pb_node(data: bytes, links: Sequence[Tuple[bytes, str, int]] = ()) -> bytes:
    out = b""
    for link_cid, name, size in links:
        out += field_bytes(2, field_bytes(1, link_cid) + field_bytes(2, name.encode()) + field_varint(3, size))
    return out + field_bytes(1, data)


class CarBuilder:
    def __init__(self) -> None:
        self.blocks: List[Tuple[bytes, bytes]] = []

    def add(self, codec: int, block: bytes) -> bytes:
        cid = cid_bytes(codec, block)
        self.blocks.append((cid, block))
        return cid

    def raw(self, data: bytes) -> bytes:
        return self.add(RAW, data)

    def file(self, chunks: Sequence[bytes]) -> bytes:
        leaves = [(self.raw(chunk), "", len(chunk)) for chunk in chunks]
        total = sum(len(chunk) for chunk in chunks)
        return self.add(DAG_PB, pb_node(unixfs(2, filesize=total), leaves))

    def directory(self, entries: Dict[str, bytes], node_type: int = 1) -> bytes:
        links = [(cid, name, 0) for name, cid in sorted(entries.items())]
        return self.add(DAG_PB, pb_node(unixfs(node_type), links))

    def encode(self, *, drop: Optional[bytes] = None, tamper: Optional[bytes] = None) -> bytes:
        header = b"\xa2eroots\x80gversion\x01"
        out = varint(len(header)) + header
        for cid, block in self.blocks:
            if cid == drop:
                continue
            if cid == tamper:
                block = block[:-1] + bytes([block[-1] ^ 0xFF])
            out += varint(len(cid) + len(block)) + cid + block
        return out


def root_id(cid: bytes) -> str:
    return str(CID.decode(cid))


CHUNKS = [b"zkey-chunk-one:" * 20, b"zkey-chunk-two:" * 20, b"tail"]


@pytest.fixture
def archive() -> Tuple[CarBuilder, bytes, Dict[str, bytes]]:
    builder = CarBuilder()
    zkey = builder.file(CHUNKS)
    vkey = builder.raw(b'{"protocol":"groth16"}')
    variant_dir = builder.directory({"zkey.br": zkey, "vkey.json": vkey})
    circuits = builder.directory({"01x01": variant_dir})
    root = builder.directory({"circuits": circuits})
    return builder, root, {"zkey": zkey, "vkey": vkey}


def _serving(car: bytes, seen: Optional[List[httpx.Request]] = None):
    def _handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, content=car, headers={"Content-Type": CAR_MEDIA_TYPE})

    return _handler


def test_varint_helper_matches_reader() -> None:
    for value in (0, 1, 127, 128, 300, 2**32):
        assert read_varint(varint(value), 0) == (value, len(varint(value)))


def test_fetch_returns_reassembled_file(archive, mock_clients) -> None:
    builder, root, _ = archive
    seen: List[httpx.Request] = []
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(builder.encode(), seen))
    )

    data = transport.fetch(root_id(root), "circuits/01x01/zkey.br")

    assert data == b"".join(CHUNKS)
    request = seen[0]
    assert request.url.path == f"/ipfs/{root_id(root)}/circuits/01x01/zkey.br"
    assert request.url.params["format"] == "car"
    assert request.url.params["dag-scope"] == "entity"
    assert request.headers["Accept"] == CAR_MEDIA_TYPE
    assert transport.verifies_content


def test_raw_leaf_file(archive, mock_clients) -> None:
    builder, root, _ = archive
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(builder.encode()))
    )

    assert transport.fetch(root_id(root), "circuits/01x01/vkey.json") == b'{"protocol":"groth16"}'


def test_tampered_block_is_integrity_mismatch(archive, mock_clients) -> None:
    builder, root, cids = archive
    car = builder.encode(tamper=cids["vkey"])
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(car))
    )

    with pytest.raises(IntegrityMismatch):
        transport.fetch(root_id(root), "circuits/01x01/zkey.br")


def test_missing_block_is_retryable(archive, mock_clients) -> None:
    builder, root, cids = archive
    car = builder.encode(drop=cids["zkey"])
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(car))
    )

    with pytest.raises(RetryableFetchError):
        transport.fetch(root_id(root), "circuits/01x01/zkey.br")


def test_truncated_archive_is_retryable(archive, mock_clients) -> None:
    builder, root, _ = archive
    car = builder.encode()[:-10]
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(car))
    )

    with pytest.raises(RetryableFetchError):
        transport.fetch(root_id(root), "circuits/01x01/zkey.br")


def test_missing_path_entry_is_terminal(archive, mock_clients) -> None:
    builder, root, _ = archive
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(builder.encode()))
    )

    with pytest.raises(TerminalFetchError):
        transport.fetch(root_id(root), "circuits/02x03/zkey.br")


def test_sharded_directory_is_terminal(mock_clients) -> None:
    builder = CarBuilder()
    leaf = builder.raw(b"x")
    root = builder.directory({"x": leaf}, node_type=5)
    transport = TrustlessGatewayTransport(
        ["https://trustless.example"], client_factory=mock_clients(_serving(builder.encode()))
    )

    with pytest.raises(TerminalFetchError):
        transport.fetch(root_id(root), "x")
