"""Run identities and decoding of composite occurrence ids."""

from __future__ import annotations

from dataclasses import dataclass

# Markers around the owning build's id, e.g. "build:(id:1234)"
BUILD_ID_PREFIX = "build:(id:"
BUILD_ID_SUFFIX = ")"

# Markers around the occurrence's own id, e.g. "id:56,"
ITEM_ID_PREFIX = "id:"
ITEM_ID_SUFFIX = ","

# Item id used for build-level (suite) outcomes
BUILD_ITEM_ID = 0


@dataclass(frozen=True, order=True)
class RunIdentity:
    """Position of one run in an entity's history.

    Ordered by container id first, then item id. Container ids are
    assigned in increasing order upstream, so this order follows
    the order in which runs happened.
    """

    container_id: int
    item_id: int

    @classmethod
    def for_build(cls, build_id: int) -> RunIdentity:
        """Identity of a build-level outcome."""
        return cls(build_id, BUILD_ITEM_ID)

    def __str__(self) -> str:
        return f"{self.container_id}:{self.item_id}"


def extract_prefixed(raw_id: str, prefix: str, suffix: str) -> int | None:
    """Extract the integer between the first prefix and the next suffix.

    Args:
        raw_id: Composite identifier to scan
        prefix: Marker immediately before the integer
        suffix: Marker immediately after the integer

    Returns:
        Parsed integer, or None if a marker is missing or the
        text between the markers is not an integer
    """
    if not isinstance(raw_id, str):
        return None

    start = raw_id.find(prefix)
    if start < 0:
        return None
    start += len(prefix)

    end = raw_id.find(suffix, start)
    if end < 0:
        return None

    payload = raw_id[start:end]
    # int() accepts "1_000" and unicode digits; only plain decimals here
    digits = payload[1:] if payload[:1] in ("-", "+") else payload
    if not digits.isascii() or not digits.isdigit():
        return None
    try:
        return int(payload)
    except ValueError:
        # Longer than the interpreter's int conversion limit
        return None


def decode(raw_id: str) -> RunIdentity | None:
    """Decode a test occurrence id such as "id:56,build:(id:1234)".

    Both ids are located independently. Returns None for any
    malformed input rather than raising, since live data contains
    ids this format does not cover.
    """
    build_id = extract_prefixed(raw_id, BUILD_ID_PREFIX, BUILD_ID_SUFFIX)
    if build_id is None:
        return None

    item_id = extract_prefixed(raw_id, ITEM_ID_PREFIX, ITEM_ID_SUFFIX)
    if item_id is None:
        return None

    return RunIdentity(build_id, item_id)


__all__ = [
    "RunIdentity",
    "BUILD_ITEM_ID",
    "extract_prefixed",
    "decode",
]
