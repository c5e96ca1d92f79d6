"""Reader and writer for JaCoCo execution data (``.exec``) blobs.

A blob is a sequence of typed blocks, each introduced by one type byte:

    0x01  header          magic 0xC0C0 (u16), format version (u16)
    0x10  session info    id (UTF), start (i64), dump (i64)
    0x11  execution data  class id (i64), class name (UTF), probes

Strings use Java's modified UTF-8 with a u16 length prefix. Probe arrays are
a variable-length count followed by the flags packed eight per byte, least
significant bit first.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable, Iterator, Union

import numpy as np

from ..exceptions import MalformedCoverageData

BLOCK_HEADER = 0x01
BLOCK_SESSION_INFO = 0x10
BLOCK_EXECUTION_DATA = 0x11

MAGIC_NUMBER = 0xC0C0
FORMAT_VERSION = 0x1007


@dataclass(frozen=True)
class Header:
    version: int


@dataclass(frozen=True)
class SessionInfo:
    session_id: str
    start: int
    dump: int


@dataclass(frozen=True, eq=False)
class ExecutionData:
    class_id: int
    name: str
    probes: np.ndarray

    @property
    def has_hits(self) -> bool:
        return bool(self.probes.any())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExecutionData):
            return NotImplemented
        return (
            self.class_id == other.class_id
            and self.name == other.name
            and np.array_equal(self.probes, other.probes)
        )


Block = Union[Header, SessionInfo, ExecutionData]


class _Input:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    @property
    def exhausted(self) -> bool:
        return self.pos >= len(self.data)

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise MalformedCoverageData("unexpected end of data", offset=self.pos)
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def i64(self) -> int:
        return struct.unpack(">q", self.take(8))[0]

    def var_int(self) -> int:
        value = 0
        shift = 0
        while True:
            b = self.byte()
            value |= (b & 0x7F) << shift
            if not b & 0x80:
                return value
            shift += 7
            if shift > 28:
                raise MalformedCoverageData("variable-length integer too long", offset=self.pos)

    def utf(self) -> str:
        start = self.pos
        raw = self.take(self.u16())
        try:
            return _decode_modified_utf8(raw)
        except UnicodeError as e:
            raise MalformedCoverageData(f"invalid string: {e.reason}", offset=start)

    def probes(self) -> np.ndarray:
        count = self.var_int()
        packed = np.frombuffer(self.take((count + 7) // 8), dtype=np.uint8)
        return np.unpackbits(packed, bitorder="little")[:count].astype(bool)


def read_blocks(data: bytes) -> Iterator[Block]:
    """Yield the blocks of ``data`` in order.

    Raises:
        MalformedCoverageData: If the first block is not a valid header, a
            block is truncated, or an unknown block type is found
    """
    source = _Input(data)
    if source.exhausted:
        raise MalformedCoverageData("missing header", offset=0)

    first = True
    while not source.exhausted:
        offset = source.pos
        block_type = source.byte()
        if first and block_type != BLOCK_HEADER:
            raise MalformedCoverageData("data does not start with a header block", offset=offset)
        first = False

        if block_type == BLOCK_HEADER:
            if source.u16() != MAGIC_NUMBER:
                raise MalformedCoverageData("invalid magic number", offset=offset)
            version = source.u16()
            if version != FORMAT_VERSION:
                raise MalformedCoverageData(f"incompatible format version 0x{version:x}", offset=offset)
            yield Header(version)
        elif block_type == BLOCK_SESSION_INFO:
            yield SessionInfo(source.utf(), source.i64(), source.i64())
        elif block_type == BLOCK_EXECUTION_DATA:
            class_id = source.i64()
            name = source.utf()
            yield ExecutionData(class_id, name, source.probes())
        else:
            raise MalformedCoverageData(f"unknown block type 0x{block_type:02x}", offset=offset)


class ExecWriter:
    """Accumulates blocks and renders them as one blob."""

    def __init__(self, with_header: bool = True) -> None:
        self._out = bytearray()
        if with_header:
            self.header()

    def header(self) -> "ExecWriter":
        self._out += struct.pack(">BHH", BLOCK_HEADER, MAGIC_NUMBER, FORMAT_VERSION)
        return self

    def session(self, session_id: str, start: int, dump: int) -> "ExecWriter":
        self._out.append(BLOCK_SESSION_INFO)
        self._utf(session_id)
        self._out += struct.pack(">qq", start, dump)
        return self

    def execution(self, class_id: int, name: str, probes: Iterable[bool]) -> "ExecWriter":
        if not isinstance(probes, np.ndarray):
            probes = list(probes)
        flags = np.asarray(probes, dtype=bool)
        self._out.append(BLOCK_EXECUTION_DATA)
        self._out += struct.pack(">q", class_id)
        self._utf(name)
        self._var_int(len(flags))
        self._out += np.packbits(flags, bitorder="little").tobytes()
        return self

    def to_bytes(self) -> bytes:
        return bytes(self._out)

    def _utf(self, text: str) -> None:
        raw = _encode_modified_utf8(text)
        if len(raw) > 0xFFFF:
            raise ValueError("string too long for modified UTF-8 encoding")
        self._out += struct.pack(">H", len(raw)) + raw

    def _var_int(self, value: int) -> None:
        while value & ~0x7F:
            self._out.append(0x80 | (value & 0x7F))
            value >>= 7
        self._out.append(value)


def _decode_modified_utf8(raw: bytes) -> str:
    text = raw.replace(b"\xc0\x80", b"\x00").decode("utf-8", "surrogatepass")
    # Supplementary characters arrive as surrogate pairs; join them.
    return text.encode("utf-16-be", "surrogatepass").decode("utf-16-be")


def _encode_modified_utf8(text: str) -> bytes:
    units = text.encode("utf-16-be")
    split = "".join(chr(int.from_bytes(units[i : i + 2], "big")) for i in range(0, len(units), 2))
    return split.encode("utf-8", "surrogatepass").replace(b"\x00", b"\xc0\x80")
