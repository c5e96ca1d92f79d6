"""Tri-state lookup results.

Absent data is a normal outcome in impact analysis, so lookups return one of
three values instead of raising:

    Unavailable   the data source itself does not exist (no snapshot at all)
    NotFound      the source exists but holds no entry for the key
    Found(value)  the entry
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T


class Unavailable:
    _instance: "Unavailable | None" = None

    def __new__(cls) -> "Unavailable":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"


class NotFound:
    _instance: "NotFound | None" = None

    def __new__(cls) -> "NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"


UNAVAILABLE = Unavailable()
NOT_FOUND = NotFound()

Lookup = Union[Found[T], Unavailable, NotFound]
