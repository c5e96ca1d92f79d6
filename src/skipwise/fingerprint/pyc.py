"""Debug-agnostic canonical form of CPython ``.pyc`` files.

The code object is unmarshalled and re-encoded with line tables, first line
numbers and file names left out. Nested code objects (functions, classes,
comprehensions) are canonicalised recursively.
"""

from __future__ import annotations

import dis
import importlib.util
import marshal
import types
from typing import Any, Optional

# magic (4) + flags (4) + mtime/size or source hash (8)
PYC_HEADER_SIZE = 16

# Marshal format 2 predates back-references, so equal objects always
# serialise to equal bytes regardless of interning.
_MARSHAL_VERSION = 2


_LINE_PLACEHOLDER = ("line",)


class PycFormatError(ValueError):
    pass


def canonicalize_pyc(data: bytes) -> bytes:
    """Return the canonical encoding of the module code object in ``data``.

    Raises:
        PycFormatError: If the header or code object cannot be decoded
    """
    if len(data) < PYC_HEADER_SIZE:
        raise PycFormatError("truncated .pyc header")
    if data[:4] != importlib.util.MAGIC_NUMBER:
        raise PycFormatError("compiled by a different Python version")
    try:
        code = marshal.loads(data[PYC_HEADER_SIZE:])
    except (EOFError, ValueError, TypeError) as e:
        raise PycFormatError(f"invalid code object: {e}")
    if not isinstance(code, types.CodeType):
        raise PycFormatError("payload is not a code object")
    return marshal.dumps(_canonical_code(code), _MARSHAL_VERSION)


def _canonical_code(code: types.CodeType) -> tuple:
    consts = code.co_consts
    index = _firstlineno_const(code)
    if index is not None:
        consts = consts[:index] + (_LINE_PLACEHOLDER,) + consts[index + 1 :]
    return (
        "code",
        code.co_argcount,
        code.co_posonlyargcount,
        code.co_kwonlyargcount,
        code.co_nlocals,
        code.co_stacksize,
        code.co_flags,
        code.co_code,
        tuple(_canonical_const(const) for const in consts),
        code.co_names,
        code.co_varnames,
        code.co_freevars,
        code.co_cellvars,
        code.co_name,
        getattr(code, "co_qualname", code.co_name),
        getattr(code, "co_exceptiontable", b""),
    )


def _canonical_const(const: Any) -> Any:
    if isinstance(const, types.CodeType):
        return _canonical_code(const)
    if isinstance(const, tuple):
        return ("tuple", tuple(_canonical_const(item) for item in const))
    if isinstance(const, frozenset):
        # Set iteration order depends on hash randomisation.
        return ("frozenset", tuple(sorted(repr(item) for item in const)))
    return const


def _firstlineno_const(code: types.CodeType) -> Optional[int]:
    """Index of the constant a class body (3.13+) stores as ``__firstlineno__``.

    Equal constants share one slot, so the index only qualifies when nothing
    but that single store loads it. Otherwise the real value is kept.
    """
    if "__firstlineno__" not in code.co_names:
        return None
    instructions = list(dis.get_instructions(code))
    index = None
    for load, store in zip(instructions, instructions[1:]):
        if (
            load.opname == "LOAD_CONST"
            and store.opname == "STORE_NAME"
            and store.argval == "__firstlineno__"
        ):
            index = load.arg
            break
    if index is None or type(code.co_consts[index]) is not int:
        return None
    loads = sum(
        1
        for instruction in instructions
        if instruction.opcode in dis.hasconst and instruction.arg == index
    )
    return index if loads == 1 else None
