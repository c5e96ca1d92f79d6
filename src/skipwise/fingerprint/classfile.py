"""Debug-agnostic canonical form of JVM class files.

The class file is decoded structurally and re-encoded without the attributes
that only carry debug metadata, so recompiling after a comment or blank-line
edit yields the same canonical bytes while any change to executable code,
signatures or constants does not.
"""

from __future__ import annotations

import struct
from pathlib import Path

from ..exceptions import UnreadableArtifactError
from ..model.units import CompiledUnitId

MAGIC = 0xCAFEBABE

DEBUG_ATTRIBUTES = frozenset(
    {
        "SourceFile",
        "SourceDebugExtension",
        "LineNumberTable",
        "LocalVariableTable",
        "LocalVariableTypeTable",
        "MethodParameters",
    }
)

# Constant pool tag -> payload size in bytes (Utf8 is length-prefixed).
_CP_SIZES = {
    3: 4,  # Integer
    4: 4,  # Float
    5: 8,  # Long
    6: 8,  # Double
    7: 2,  # Class
    8: 2,  # String
    9: 4,  # Fieldref
    10: 4,  # Methodref
    11: 4,  # InterfaceMethodref
    12: 4,  # NameAndType
    15: 3,  # MethodHandle
    16: 2,  # MethodType
    17: 4,  # Dynamic
    18: 4,  # InvokeDynamic
    19: 2,  # Module
    20: 2,  # Package
}
_TAG_UTF8 = 1
_TAG_CLASS = 7


class ClassFileFormatError(ValueError):
    pass


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, n: int) -> bytes:
        end = self.pos + n
        if end > len(self.data):
            raise ClassFileFormatError(f"truncated class file at offset {self.pos}")
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def u2(self) -> int:
        return struct.unpack(">H", self.take(2))[0]

    def u4(self) -> int:
        return struct.unpack(">I", self.take(4))[0]


class ParsedClassFile:
    """Constant pool plus a cursor positioned after it."""

    def __init__(self, data: bytes) -> None:
        self.reader = _Reader(data)
        if self.reader.u4() != MAGIC:
            raise ClassFileFormatError("bad magic number")
        self.minor, self.major = self.reader.u2(), self.reader.u2()
        self.pool_start = self.reader.pos
        self.utf8: dict[int, str] = {}
        self.classes: dict[int, int] = {}
        self._read_constant_pool()
        self.pool_end = self.reader.pos

    def _read_constant_pool(self) -> None:
        count = self.reader.u2()
        index = 1
        while index < count:
            tag = self.reader.take(1)[0]
            if tag == _TAG_UTF8:
                length = self.reader.u2()
                raw = self.reader.take(length)
                # Modified UTF-8; attribute names are plain ASCII so lossy decoding is safe.
                self.utf8[index] = raw.decode("utf-8", errors="replace")
            elif tag in _CP_SIZES:
                payload = self.reader.take(_CP_SIZES[tag])
                if tag == _TAG_CLASS:
                    self.classes[index] = struct.unpack(">H", payload)[0]
            else:
                raise ClassFileFormatError(f"unknown constant pool tag {tag} at index {index}")
            # Long and Double occupy two slots.
            index += 2 if tag in (5, 6) else 1

    def class_name(self, class_index: int) -> str:
        try:
            return self.utf8[self.classes[class_index]]
        except KeyError:
            raise ClassFileFormatError(f"invalid class reference {class_index}")

    def attribute_name(self, name_index: int) -> str:
        try:
            return self.utf8[name_index]
        except KeyError:
            raise ClassFileFormatError(f"invalid attribute name reference {name_index}")


def canonicalize_class_file(data: bytes) -> bytes:
    """Return ``data`` re-encoded without debug-only attributes.

    Raises:
        ClassFileFormatError: If ``data`` is not a well-formed class file
    """
    parsed = ParsedClassFile(data)
    reader = parsed.reader
    out = bytearray()
    out += struct.pack(">IHH", MAGIC, parsed.minor, parsed.major)
    out += data[parsed.pool_start : parsed.pool_end]

    # access_flags, this_class, super_class
    out += reader.take(6)
    interfaces = reader.u2()
    out += struct.pack(">H", interfaces)
    out += reader.take(2 * interfaces)

    # fields, then methods
    for _table in range(2):
        count = reader.u2()
        out += struct.pack(">H", count)
        for _ in range(count):
            # access_flags, name_index, descriptor_index
            out += reader.take(6)
            out += _copy_attributes(parsed, reader)

    out += _copy_attributes(parsed, reader)
    if reader.pos != len(data):
        raise ClassFileFormatError("trailing bytes after class file")
    return bytes(out)


def _copy_attributes(parsed: ParsedClassFile, reader: _Reader) -> bytes:
    kept = []
    count = reader.u2()
    for _ in range(count):
        name_index = reader.u2()
        length = reader.u4()
        body = reader.take(length)
        name = parsed.attribute_name(name_index)
        if name in DEBUG_ATTRIBUTES:
            continue
        if name == "Code":
            body = _strip_code_attribute(parsed, body)
        kept.append(struct.pack(">HI", name_index, len(body)) + body)
    return struct.pack(">H", len(kept)) + b"".join(kept)


def _strip_code_attribute(parsed: ParsedClassFile, body: bytes) -> bytes:
    reader = _Reader(body)
    # max_stack, max_locals
    head = reader.take(4)
    code_length = reader.u4()
    code = reader.take(code_length)
    exception_table_length = reader.u2()
    exception_table = reader.take(8 * exception_table_length)
    attributes = _copy_attributes(parsed, reader)
    if reader.pos != len(body):
        raise ClassFileFormatError("trailing bytes in Code attribute")
    return (
        head
        + struct.pack(">I", code_length)
        + code
        + struct.pack(">H", exception_table_length)
        + exception_table
        + attributes
    )


def unit_id_from_class_file(path: Path) -> CompiledUnitId:
    """Read the fully-qualified class name stored in a class file.

    Raises:
        UnreadableArtifactError: If the file cannot be read or parsed
    """
    try:
        parsed = ParsedClassFile(Path(path).read_bytes())
        reader = parsed.reader
        reader.take(2)  # access_flags
        return CompiledUnitId(parsed.class_name(reader.u2()))
    except OSError as e:
        raise UnreadableArtifactError(Path(path), str(e))
    except ClassFileFormatError as e:
        raise UnreadableArtifactError(Path(path), str(e))
