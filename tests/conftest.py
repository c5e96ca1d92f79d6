"""Shared fixtures: in-process builders for class files, coverage blobs and projects."""

import json
import struct
import zlib
from pathlib import Path

import pytest

from skipwise.config import SkipwiseConfig
from skipwise.coverage.exec_format import ExecWriter
from skipwise.discovery import ManifestDiscovery
from skipwise.lifecycle import create_build

RETURN = b"\xb1"
# iconst_0, pop, return
PUSH_POP_RETURN = b"\x03\x57\xb1"


def _utf8(text: str) -> bytes:
    raw = text.encode("utf-8")
    return b"\x01" + struct.pack(">H", len(raw)) + raw


def _attribute(name_index: int, body: bytes) -> bytes:
    return struct.pack(">HI", name_index, len(body)) + body


def build_class_file(
    name: str = "com/example/Foo",
    code: bytes = RETURN,
    line: int = 10,
    debug: bool = True,
    constant: int = 42,
) -> bytes:
    """A minimal class with one method ``run()V``.

    ``line`` only affects the LineNumberTable; ``debug=False`` drops every
    debug attribute while leaving the constant pool untouched, like
    compiling with ``-g:none``.
    """
    pool = [
        _utf8(name.replace(".", "/")),  # 1
        b"\x07" + struct.pack(">H", 1),  # 2 Class
        _utf8("java/lang/Object"),  # 3
        b"\x07" + struct.pack(">H", 3),  # 4 Class
        _utf8("Code"),  # 5
        _utf8("LineNumberTable"),  # 6
        _utf8("SourceFile"),  # 7
        _utf8("Foo.java"),  # 8
        _utf8("run"),  # 9
        _utf8("()V"),  # 10
        _utf8("LocalVariableTable"),  # 11
        b"\x05" + struct.pack(">q", constant),  # 12-13 Long
        _utf8("this"),  # 14
    ]
    out = struct.pack(">IHH", 0xCAFEBABE, 0, 52)
    out += struct.pack(">H", 15) + b"".join(pool)
    out += struct.pack(">HHH", 0x0021, 2, 4)
    out += struct.pack(">H", 0)  # interfaces
    out += struct.pack(">H", 0)  # fields

    code_attributes = []
    if debug:
        code_attributes.append(_attribute(6, struct.pack(">HHH", 1, 0, line)))
        code_attributes.append(
            _attribute(11, struct.pack(">HHHHHH", 1, 0, len(code), 14, 10, 0))
        )
    code_body = (
        struct.pack(">HHI", 1, 1, len(code))
        + code
        + struct.pack(">H", 0)
        + struct.pack(">H", len(code_attributes))
        + b"".join(code_attributes)
    )
    out += struct.pack(">H", 1)  # methods
    out += struct.pack(">HHH", 0x0001, 9, 10)
    out += struct.pack(">H", 1) + _attribute(5, code_body)

    if debug:
        out += struct.pack(">H", 1) + _attribute(7, struct.pack(">H", 8))
    else:
        out += struct.pack(">H", 0)
    return out


def build_exec(records, session=("session-1", 1000, 2000)) -> bytes:
    """Execution data with an optional session block and ``{name: probes}`` records."""
    writer = ExecWriter()
    if session is not None:
        writer.session(*session)
    for name, probes in records.items():
        # Real agents derive the id from the class bytes; the name is stable enough here.
        writer.execution(zlib.crc32(name.encode()), name, probes)
    return writer.to_bytes()


class Project:
    """A fake compiled project on disk plus a manifest describing it."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.manifest = root / "skipwise-units.json"
        self.units: dict[str, dict] = {}
        self._write_manifest()

    def add_unit(self, name: str, **class_file_args) -> Path:
        """Write source and class file for ``name`` and register it."""
        relative = name.replace(".", "/")
        source = self.root / "src" / f"{relative}.java"
        compiled = self.root / "classes" / f"{relative}.class"
        source.parent.mkdir(parents=True, exist_ok=True)
        compiled.parent.mkdir(parents=True, exist_ok=True)
        if not source.exists():
            source.write_text(f"class {name} {{}}\n")
        compiled.write_bytes(build_class_file(relative, **class_file_args))
        self.units[name] = {
            "unit": name,
            "source": str(source.relative_to(self.root)),
            "compiled": str(compiled.relative_to(self.root)),
        }
        self._write_manifest()
        return compiled

    def remove_unit(self, name: str) -> None:
        del self.units[name]
        self._write_manifest()

    def edit_source(self, name: str, text: str) -> None:
        (self.root / self.units[name]["source"]).write_text(text)

    def build(self, **config_args):
        config = SkipwiseConfig(**{"cache_enabled": False, **config_args})
        return create_build(self.root, ManifestDiscovery(self.manifest), config)

    @property
    def store(self) -> Path:
        return self.root / ".skipwise"

    def _write_manifest(self) -> None:
        self.manifest.write_text(json.dumps(list(self.units.values())))


@pytest.fixture
def class_file():
    """Builder for class file bytes."""
    return build_class_file


@pytest.fixture
def exec_blob():
    """Builder for execution data blobs."""
    return build_exec


@pytest.fixture
def project(tmp_path):
    """Empty fake project rooted in a temporary directory."""
    return Project(tmp_path / "project")
