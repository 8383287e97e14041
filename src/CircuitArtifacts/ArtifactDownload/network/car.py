# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.network.car",
#   "purpose": "Verified CARv1 reading and UnixFS file reassembly",
#   "sections": [
#     {"id": "wire", "name": "Varint & Protobuf Wire Helpers", "anchor": "WIR", "kind": "helpers"},
#     {"id": "car", "name": "CAR Block Iteration", "anchor": "CAR", "kind": "api"},
#     {"id": "dagpb", "name": "DAG-PB & UnixFS Decoding", "anchor": "DPB", "kind": "api"},
#     {"id": "extract", "name": "File Extraction", "anchor": "EXT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Verified CARv1 reading and UnixFS file reassembly.

A trustless gateway answers ``/ipfs/<root>/<path>?format=car`` with a CARv1
archive holding every block needed to walk from ``root`` down ``path`` and to
read the file found there. Nothing in the archive is trusted: each block is
hashed and compared with the multihash inside the CID it is filed under
before it is used. The path is then resolved link by link through dag-pb
directory nodes and the file is rebuilt from its UnixFS leaves, so the
returned bytes are bound to ``root`` by hashes alone.

Only what the artifact catalog needs is supported: CIDv0/CIDv1, dag-pb and
raw codecs, sha2-256/sha2-512 and identity multihashes, basic directories and
chunked files. HAMT-sharded directories are rejected.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from multiformats import CID

from ..errors import IntegrityMismatch, RetryableFetchError, TerminalFetchError

__all__ = [
    "PBLink",
    "PBNode",
    "UnixFSData",
    "read_varint",
    "iter_car_blocks",
    "verify_block",
    "load_verified_blocks",
    "decode_pb_node",
    "decode_unixfs",
    "resolve_path",
    "read_file",
    "extract_file",
]

# UnixFS node types
UNIXFS_RAW = 0
UNIXFS_DIRECTORY = 1
UNIXFS_FILE = 2
UNIXFS_HAMT_SHARD = 5

_CODEC_DAG_PB = "dag-pb"
_CODEC_RAW = "raw"

_HASHLIB_NAMES = {"sha2-256": "sha256", "sha2-512": "sha512"}

BlockKey = Tuple[str, bytes]


class MalformedCar(RetryableFetchError):
    """The archive was truncated or does not follow the CARv1 framing."""


# ============================================================================
# Varint & Protobuf Wire Helpers
# ============================================================================


def read_varint(buf: bytes, offset: int) -> Tuple[int, int]:
    """Decode an unsigned LEB128 varint at ``offset``; return ``(value, next_offset)``."""

    value = 0
    shift = 0
    pos = offset
    while True:
        if pos >= len(buf):
            raise MalformedCar("truncated varint")
        byte = buf[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, pos
        shift += 7
        if shift > 63:
            raise MalformedCar("varint too long")


def _iter_fields(buf: bytes) -> Iterator[Tuple[int, int, object]]:
    pos = 0
    end = len(buf)
    while pos < end:
        key, pos = read_varint(buf, pos)
        number, wire_type = key >> 3, key & 0x07
        if wire_type == 0:
            value, pos = read_varint(buf, pos)
            yield number, wire_type, value
        elif wire_type == 2:
            length, pos = read_varint(buf, pos)
            if pos + length > end:
                raise MalformedCar("truncated protobuf field")
            yield number, wire_type, bytes(buf[pos : pos + length])
            pos += length
        elif wire_type == 1:
            pos += 8
        elif wire_type == 5:
            pos += 4
        else:
            raise MalformedCar(f"unsupported protobuf wire type {wire_type}")


# ============================================================================
# CAR Block Iteration
# ============================================================================


def _block_key(cid: CID) -> BlockKey:
    return cid.hashfun.name, bytes(cid.raw_digest)


def _read_cid(buf: bytes, offset: int, end: int) -> Tuple[CID, int]:
    if buf[offset : offset + 2] == b"\x12\x20":
        cid_end = offset + 34
    else:
        pos = offset
        _version, pos = read_varint(buf, pos)
        _codec, pos = read_varint(buf, pos)
        _mh_code, pos = read_varint(buf, pos)
        digest_len, pos = read_varint(buf, pos)
        cid_end = pos + digest_len
    if cid_end > end:
        raise MalformedCar("CID overruns its section")
    try:
        cid = CID.decode(bytes(buf[offset:cid_end]))
    except (ValueError, KeyError) as exc:
        raise MalformedCar(f"undecodable CID: {exc}") from exc
    return cid, cid_end


def iter_car_blocks(data: bytes) -> Iterator[Tuple[CID, bytes]]:
    """Yield ``(cid, block)`` pairs from a CARv1 archive without verifying them."""

    header_len, pos = read_varint(data, 0)
    pos += header_len
    if pos > len(data):
        raise MalformedCar("truncated CAR header")
    while pos < len(data):
        section_len, pos = read_varint(data, pos)
        end = pos + section_len
        if end > len(data):
            raise MalformedCar("truncated CAR section")
        cid, block_start = _read_cid(data, pos, end)
        yield cid, bytes(data[block_start:end])
        pos = end


def verify_block(cid: CID, block: bytes) -> None:
    """Check that ``block`` hashes to the digest in ``cid``.

    Raises:
        IntegrityMismatch: On digest divergence.
        TerminalFetchError: If the multihash function is unsupported.
    """

    hash_name = cid.hashfun.name
    expected = bytes(cid.raw_digest)
    if hash_name == "identity":
        actual = block
    elif hash_name in _HASHLIB_NAMES:
        actual = hashlib.new(_HASHLIB_NAMES[hash_name], block).digest()
    else:
        raise TerminalFetchError(f"unsupported multihash {hash_name} in {cid}")
    if actual != expected:
        raise IntegrityMismatch(
            f"block {cid} does not match its content identifier",
            expected=expected.hex(),
            actual=actual.hex(),
        )


def load_verified_blocks(data: bytes) -> Dict[BlockKey, Tuple[CID, bytes]]:
    """Parse ``data`` and return every block after verifying it against its CID."""

    blocks: Dict[BlockKey, Tuple[CID, bytes]] = {}
    for cid, block in iter_car_blocks(data):
        verify_block(cid, block)
        blocks[_block_key(cid)] = (cid, block)
    return blocks


# ============================================================================
# DAG-PB & UnixFS Decoding
# ============================================================================


@dataclass(frozen=True)
class PBLink:
    cid: CID
    name: str
    tsize: Optional[int] = None


@dataclass(frozen=True)
class PBNode:
    data: Optional[bytes]
    links: List[PBLink] = field(default_factory=list)


@dataclass(frozen=True)
class UnixFSData:
    type: int
    data: bytes = b""
    filesize: Optional[int] = None


def decode_pb_node(block: bytes) -> PBNode:
    data: Optional[bytes] = None
    links: List[PBLink] = []
    for number, wire_type, value in _iter_fields(block):
        if number == 1 and wire_type == 2:
            data = value  # type: ignore[assignment]
        elif number == 2 and wire_type == 2:
            links.append(_decode_pb_link(value))  # type: ignore[arg-type]
    return PBNode(data=data, links=links)


def _decode_pb_link(buf: bytes) -> PBLink:
    cid: Optional[CID] = None
    name = ""
    tsize: Optional[int] = None
    for number, wire_type, value in _iter_fields(buf):
        if number == 1 and wire_type == 2:
            try:
                cid = CID.decode(value)
            except (ValueError, KeyError) as exc:
                raise MalformedCar(f"undecodable link CID: {exc}") from exc
        elif number == 2 and wire_type == 2:
            name = value.decode("utf-8")  # type: ignore[union-attr]
        elif number == 3 and wire_type == 0:
            tsize = value  # type: ignore[assignment]
    if cid is None:
        raise MalformedCar("dag-pb link without a hash")
    return PBLink(cid=cid, name=name, tsize=tsize)


def decode_unixfs(data: Optional[bytes]) -> UnixFSData:
    if not data:
        raise MalformedCar("dag-pb node carries no UnixFS data")
    node_type: Optional[int] = None
    payload = b""
    filesize: Optional[int] = None
    for number, wire_type, value in _iter_fields(data):
        if number == 1 and wire_type == 0:
            node_type = value  # type: ignore[assignment]
        elif number == 2 and wire_type == 2:
            payload = value  # type: ignore[assignment]
        elif number == 3 and wire_type == 0:
            filesize = value  # type: ignore[assignment]
    if node_type is None:
        raise MalformedCar("UnixFS data without a type")
    return UnixFSData(type=node_type, data=payload, filesize=filesize)


# ============================================================================
# File Extraction
# ============================================================================


def _lookup(blocks: Dict[BlockKey, Tuple[CID, bytes]], cid: CID) -> bytes:
    try:
        return blocks[_block_key(cid)][1]
    except KeyError:
        raise MalformedCar(f"CAR is missing block {cid}") from None


def resolve_path(blocks: Dict[BlockKey, Tuple[CID, bytes]], root: CID, path: str) -> CID:
    """Follow ``path`` from ``root`` through dag-pb directories."""

    current = root
    for segment in [part for part in path.split("/") if part]:
        if current.codec.name != _CODEC_DAG_PB:
            raise TerminalFetchError(f"cannot descend into non-directory {current} at {segment!r}")
        node = decode_pb_node(_lookup(blocks, current))
        unixfs = decode_unixfs(node.data)
        if unixfs.type == UNIXFS_HAMT_SHARD:
            raise TerminalFetchError("HAMT-sharded directories are not supported")
        if unixfs.type != UNIXFS_DIRECTORY:
            raise TerminalFetchError(f"{current} is not a directory (path segment {segment!r})")
        for link in node.links:
            if link.name == segment:
                current = link.cid
                break
        else:
            raise TerminalFetchError(f"no entry named {segment!r} under {current}")
    return current


def read_file(blocks: Dict[BlockKey, Tuple[CID, bytes]], cid: CID) -> bytes:
    """Reassemble the file rooted at ``cid``."""

    out = bytearray()
    stack = [cid]
    while stack:
        current = stack.pop()
        block = _lookup(blocks, current)
        codec = current.codec.name
        if codec == _CODEC_RAW:
            out += block
            continue
        if codec != _CODEC_DAG_PB:
            raise TerminalFetchError(f"unsupported codec {codec} in file DAG")
        node = decode_pb_node(block)
        unixfs = decode_unixfs(node.data)
        if unixfs.type not in (UNIXFS_FILE, UNIXFS_RAW):
            raise TerminalFetchError(f"{current} is not a file (UnixFS type {unixfs.type})")
        out += unixfs.data
        # children are read in link order
        stack.extend(link.cid for link in reversed(node.links))
    return bytes(out)


def extract_file(car: bytes, root_id: str, path: str) -> bytes:
    """Verify ``car`` and return the file at ``/ipfs/<root_id>/<path>``."""

    try:
        root = CID.decode(root_id)
    except (ValueError, KeyError) as exc:
        raise TerminalFetchError(f"invalid root CID {root_id!r}: {exc}") from exc
    blocks = load_verified_blocks(car)
    target = resolve_path(blocks, root, path)
    return read_file(blocks, target)
