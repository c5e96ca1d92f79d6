"""Coverage decoder for JaCoCo execution data."""

from .decoder import canonicalize, covered_unit_names, decode, execution_records, merge_blobs
from .exec_format import FORMAT_VERSION, ExecutionData, ExecWriter, SessionInfo, read_blocks

__all__ = [
    "decode",
    "canonicalize",
    "covered_unit_names",
    "execution_records",
    "merge_blobs",
    "read_blocks",
    "ExecWriter",
    "ExecutionData",
    "SessionInfo",
    "FORMAT_VERSION",
]
