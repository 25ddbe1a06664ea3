"""Alignment between the stored message log and an incoming client list.

Legacy clients send their whole (possibly truncated, possibly edited) message
list without explicit intents.  Before any write we work out whether that
list is a coherent continuation of the stored log and, if so, where the two
overlap.  All functions are pure; thresholds come from
:class:`AlignmentPolicy`, which defaults to the configured values.

Identity of two messages is decided by ``id`` when both sides carry one and
by the normalized ``(role, content)`` signature otherwise.  Array position
alone never establishes identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from typing import Sequence
from typing import Tuple

from chatsync.config import get_settings

FALLBACK_NO_OVERLAP = "no_overlap"
FALLBACK_EXTENDS_BEFORE_HISTORY = "incoming_extends_before_history"
FALLBACK_ROLE_MISMATCH = "role_mismatch"
FALLBACK_LOW_MATCH_RATIO = "low_match_ratio"
FALLBACK_INTERIOR_DIVERGENCE = "interior_divergence"
FALLBACK_EMPTY_INCOMING = "empty_incoming"


@dataclass(frozen=True)
class AlignmentPolicy:
    min_match_ratio: float = 0.3
    require_role_match: bool = True

    @classmethod
    def from_settings(cls, settings=None) -> "AlignmentPolicy":
        settings = settings or get_settings()
        return cls(
            min_match_ratio=settings.alignment_min_match_ratio,
            require_role_match=settings.alignment_require_role_match,
        )


@dataclass(frozen=True)
class Alignment:
    """Outcome of :func:`align`.

    On success ``existing[anchor_offset : anchor_offset + overlap_length]``
    corresponds position by position to ``incoming[:overlap_length]`` and
    ``matched`` flags which of those positions share identity.  On failure
    ``fallback`` is True and ``reason`` names the rejected check.
    """

    fallback: bool
    anchor_offset: int = 0
    overlap_length: int = 0
    matched: Tuple[bool, ...] = ()
    reason: Optional[str] = None

    @classmethod
    def rejected(cls, reason: str) -> "Alignment":
        return cls(fallback=True, reason=reason)


def _role(message) -> str:
    return getattr(message.role, "value", message.role)


def signature(message) -> Tuple[str, Tuple[str, str]]:
    """Return the comparison key ``(role, normalized content)``."""

    return (_role(message), message.body().signature())


def same_identity(existing, incoming) -> bool:
    if existing.id and incoming.id:
        return existing.id == incoming.id
    return signature(existing) == signature(incoming)


def matched_suffix_length(existing: Sequence, incoming: Sequence) -> int:
    """Length of the longest common suffix under :func:`same_identity`."""

    n, m = len(existing), len(incoming)
    k = 0
    while k < n and k < m and same_identity(existing[n - 1 - k], incoming[m - 1 - k]):
        k += 1
    return k


def find_head_anchor(existing: Sequence, incoming: Sequence) -> Optional[int]:
    """Locate the stored position that ``incoming[0]`` corresponds to.

    The first incoming message whose id exists in the stored list pins the
    anchor directly (the result may be negative when the incoming list starts
    before stored history).  Without a shared id, the anchor is the stored
    position whose run of matches against the head of ``incoming`` is the
    longest; ties go to the later position.  ``None`` means no overlap.
    """

    positions = {message.id: i for i, message in enumerate(existing) if message.id}
    for j, message in enumerate(incoming):
        if message.id and message.id in positions:
            return positions[message.id] - j

    n, m = len(existing), len(incoming)
    best_anchor, best_run = None, 0
    for a in range(n):
        run = 0
        while a + run < n and run < m and same_identity(existing[a + run], incoming[run]):
            run += 1
        if run and run >= best_run:
            best_anchor, best_run = a, run
    return best_anchor


def align(existing: Sequence, incoming: Sequence, policy: Optional[AlignmentPolicy] = None) -> Alignment:
    """Compute the overlap between *existing* and *incoming*.

    Any doubt about the correspondence yields a fallback alignment; callers
    then rewrite the conversation instead of guessing.
    """

    policy = policy or AlignmentPolicy.from_settings()
    n, m = len(existing), len(incoming)

    if not incoming:
        return Alignment.rejected(FALLBACK_EMPTY_INCOMING)
    if not existing:
        return Alignment(fallback=False, anchor_offset=0, overlap_length=0)

    if matched_suffix_length(existing, incoming):
        anchor = n - m
    else:
        anchor = find_head_anchor(existing, incoming)
        if anchor is None:
            return Alignment.rejected(FALLBACK_NO_OVERLAP)

    if anchor < 0:
        return Alignment.rejected(FALLBACK_EXTENDS_BEFORE_HISTORY)

    overlap = min(m, n - anchor)
    matched = []
    for i in range(overlap):
        old, new = existing[anchor + i], incoming[i]
        if policy.require_role_match and _role(old) != _role(new):
            return Alignment.rejected(FALLBACK_ROLE_MISMATCH)
        matched.append(same_identity(old, new))

    if overlap:
        if sum(matched) / overlap < policy.min_match_ratio:
            return Alignment.rejected(FALLBACK_LOW_MATCH_RATIO)
        first_miss = matched.index(False) if False in matched else overlap
        if any(matched[first_miss:]):
            return Alignment.rejected(FALLBACK_INTERIOR_DIVERGENCE)

    return Alignment(fallback=False, anchor_offset=anchor, overlap_length=overlap, matched=tuple(matched))


__all__ = [
    "AlignmentPolicy",
    "Alignment",
    "signature",
    "same_identity",
    "matched_suffix_length",
    "find_head_anchor",
    "align",
    "FALLBACK_NO_OVERLAP",
    "FALLBACK_EXTENDS_BEFORE_HISTORY",
    "FALLBACK_ROLE_MISMATCH",
    "FALLBACK_LOW_MATCH_RATIO",
    "FALLBACK_INTERIOR_DIVERGENCE",
    "FALLBACK_EMPTY_INCOMING",
]
