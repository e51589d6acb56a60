"""Visibility bitmask shared by every record kind."""

from collections.abc import Iterable
from enum import IntFlag

from .auth.models import RIGHT_DELETED_HISTORY, Actor


class VisibilityBits(IntFlag):
    NONE = 0
    # Revision text, file bytes, or log action depending on the record kind
    CONTENT = 1
    COMMENT = 2
    AUTHOR = 4
    # Super-bit: the other bits apply to elevated actors too
    RESTRICTED = 8


FIELD_BITS = VisibilityBits.CONTENT | VisibilityBits.COMMENT | VisibilityBits.AUTHOR
ALL_BITS = FIELD_BITS | VisibilityBits.RESTRICTED

_NAMES = {
    "content": VisibilityBits.CONTENT,
    "comment": VisibilityBits.COMMENT,
    "author": VisibilityBits.AUTHOR,
    "restricted": VisibilityBits.RESTRICTED,
}


def from_names(names: Iterable[str]) -> VisibilityBits:
    """Parse bit names ("content", "comment", ...) into a mask.

    Raises:
        ValueError: if a name is not a known bit.
    """
    mask = VisibilityBits.NONE
    for name in names:
        try:
            mask |= _NAMES[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown visibility bit: {name!r}") from None
    return mask


def to_names(mask: int) -> list[str]:
    return [name for name, bit in _NAMES.items() if mask & bit]


def combine(old: int, to_set: int, to_clear: int) -> VisibilityBits:
    """Return (old & ~to_clear) | to_set, restricted to known bits."""
    return VisibilityBits(((old & ~to_clear) | to_set) & ALL_BITS)


def would_lock_out(old: int, new: int, elevated: bool) -> bool:
    """True if the change leaves the actor unable to view or alter the record.

    Setting RESTRICTED is only reversible by elevated actors, so a
    non-elevated actor introducing it (for instance while clearing CONTENT)
    would lock every non-elevated administrator out of the record.
    """
    if elevated:
        return False
    return bool(new & VisibilityBits.RESTRICTED) and not (
        old & VisibilityBits.RESTRICTED
    )


def can_view(mask: int, bit: int, actor: Actor) -> bool:
    """Whether ``actor`` may see the field guarded by ``bit`` on a record."""
    if not mask & bit:
        return True
    if actor.is_elevated:
        return True
    if mask & VisibilityBits.RESTRICTED:
        return False
    return actor.is_allowed(RIGHT_DELETED_HISTORY)
