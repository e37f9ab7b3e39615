"""Word-level diff with a bounded lookahead.

Not a longest-common-subsequence diff: on a mismatch each side looks
ahead a few tokens for the other side's current token, and whichever
side finds it sooner decides what was skipped.  Repeated words inside
the lookahead window can be mis-attributed.  The only contract callers
rely on is the round trip:

    "".join(s.text for s in segs if s.type != ADDED) == original
    "".join(s.text for s in segs if s.type != REMOVED) == proposed
"""

from __future__ import annotations

import re

from doccontrol.constants import DIFF_LOOKAHEAD, DiffType
from doccontrol.schemas import DiffSegment

_WHITESPACE_SPLIT = re.compile(r"(\s+)")


def tokenize(text: str) -> list[str]:
    """Split on whitespace runs, keeping the runs as tokens."""
    return [t for t in _WHITESPACE_SPLIT.split(text) if t]


def _find_ahead(
    token: str, tokens: list[str], start: int
) -> int | None:
    """Offset of ``token`` within ``tokens[start:start+LOOKAHEAD]``."""
    window = tokens[start : start + DIFF_LOOKAHEAD]
    try:
        return window.index(token)
    except ValueError:
        return None


def diff(original: str, proposed: str) -> list[DiffSegment]:
    """Compute a typed word diff of ``original`` against ``proposed``.

    Adjacent segments of the same type are merged.  Identical inputs
    yield exactly one ``same`` segment.
    """
    if original == proposed:
        return [DiffSegment(type=DiffType.SAME, text=original)]

    old = tokenize(original)
    new = tokenize(proposed)
    raw: list[tuple[DiffType, str]] = []
    i = j = 0

    while i < len(old) and j < len(new):
        if old[i] == new[j]:
            raw.append((DiffType.SAME, old[i]))
            i += 1
            j += 1
            continue

        # Offsets are >= 1 here since old[i] != new[j].
        old_in_new = _find_ahead(old[i], new, j)
        new_in_old = _find_ahead(new[j], old, i)

        if new_in_old is not None and (
            old_in_new is None or new_in_old <= old_in_new
        ):
            raw.append((DiffType.REMOVED, "".join(old[i : i + new_in_old])))
            i += new_in_old
        elif old_in_new is not None:
            raw.append((DiffType.ADDED, "".join(new[j : j + old_in_new])))
            j += old_in_new
        else:
            raw.append((DiffType.REMOVED, old[i]))
            raw.append((DiffType.ADDED, new[j]))
            i += 1
            j += 1

    if i < len(old):
        raw.append((DiffType.REMOVED, "".join(old[i:])))
    if j < len(new):
        raw.append((DiffType.ADDED, "".join(new[j:])))

    return _merge(raw)


def _merge(raw: list[tuple[DiffType, str]]) -> list[DiffSegment]:
    merged: list[tuple[DiffType, str]] = []
    for kind, text in raw:
        if merged and merged[-1][0] == kind:
            merged[-1] = (kind, merged[-1][1] + text)
        else:
            merged.append((kind, text))
    return [DiffSegment(type=k, text=t) for k, t in merged]


def reconstruct(
    segments: list[DiffSegment], side: DiffType
) -> str:
    """Rebuild one side: ``REMOVED`` gives original, ``ADDED`` gives proposed."""
    return "".join(
        s.text for s in segments if s.type in (DiffType.SAME, side)
    )


def changed_characters(segments: list[DiffSegment]) -> int:
    """Character positions touched: max of removed vs added volume."""
    removed = sum(
        len(s.text) for s in segments if s.type == DiffType.REMOVED
    )
    added = sum(
        len(s.text) for s in segments if s.type == DiffType.ADDED
    )
    return max(removed, added)


def unchanged_ratio(original: str, proposed: str) -> float:
    """Share of the longer side that survives unchanged (0.0 to 1.0)."""
    longest = max(len(original), len(proposed))
    if longest == 0:
        return 1.0
    same = sum(
        len(s.text)
        for s in diff(original, proposed)
        if s.type == DiffType.SAME
    )
    return same / longest
