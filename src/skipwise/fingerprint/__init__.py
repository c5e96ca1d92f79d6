"""Fingerprint engine: debug-agnostic content hashes for compiled units."""

from .classfile import canonicalize_class_file, unit_id_from_class_file
from .engine import CANONICALIZERS, FingerprintEngine, md5_hex
from .pyc import canonicalize_pyc
from .table import FingerprintTable

__all__ = [
    "FingerprintEngine",
    "FingerprintTable",
    "CANONICALIZERS",
    "canonicalize_class_file",
    "canonicalize_pyc",
    "unit_id_from_class_file",
    "md5_hex",
]
