"""
Sentinel for partial updates.

`MISSING` marks a field the caller did not send, so that an explicit
None (clear the value) can be told apart from "leave unchanged".
"""

from typing import Any


class MissingType:
    """Singleton type of MISSING; falsy and equal only to itself."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo: Any):
        return self


MISSING = MissingType()
