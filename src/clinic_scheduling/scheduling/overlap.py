"""
Overlap Validator.

The single interval comparison shared by slot calculation, the
reservation transaction and the work-session guard. Intervals are
half-open [start_time, end_time): back-to-back intervals never conflict.

Anything exposing ``start_time`` and ``end_time`` (``time`` or
``datetime`` values) can be compared; ``id`` and ``status`` are used
by ``find_conflicts`` when present.
"""

from typing import Iterable, List, Optional, TypeVar

T = TypeVar("T")

# Both spellings are in use: appointments are CANCELLED, work sessions CANCELED.
CANCELLED_STATUSES = frozenset({"CANCELLED", "CANCELED"})


def overlaps(a, b) -> bool:
    """Return True if the half-open intervals ``a`` and ``b`` share any point."""
    return a.start_time < b.end_time and b.start_time < a.end_time


def is_cancelled(interval) -> bool:
    status = getattr(interval, "status", None)
    if status is None:
        return False
    return getattr(status, "value", status) in CANCELLED_STATUSES


def find_conflicts(
    candidate,
    existing: Iterable[T],
    exclude_id: Optional[str] = None,
) -> List[T]:
    """
    Return the entries of ``existing`` that overlap ``candidate``.

    Entries whose id equals ``exclude_id`` (the record being edited) and
    cancelled entries are skipped. Input order is preserved.
    """
    conflicts = []
    for interval in existing:
        if exclude_id is not None and getattr(interval, "id", None) == exclude_id:
            continue
        if is_cancelled(interval):
            continue
        if overlaps(candidate, interval):
            conflicts.append(interval)
    return conflicts
