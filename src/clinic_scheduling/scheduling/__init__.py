"""
Pure scheduling algorithms: interval overlap and slot calculation.
"""

from .overlap import find_conflicts, overlaps
from .slots import compute_slots

__all__ = [
    "compute_slots",
    "find_conflicts",
    "overlaps",
]
