"""Present-or-absent marker for partial update payloads."""

from __future__ import annotations

from enum import Enum


class Unset(Enum):
    """Marker type for a field the caller did not supply."""

    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = Unset.UNSET


def is_set(value: object) -> bool:
    """Return whether a partial-update field carries a caller-supplied value."""

    return value is not UNSET
