"""
Numeric, component-wise version comparison

Segments are compared most-significant first; a missing segment counts as 0
and a segment's value is its leading digits (``"0-beta"`` -> 0, ``"3rc1"`` -> 3).
"""

import re
from typing import List, Optional

_LEADING_DIGITS = re.compile(r"^\d+")


def _parse(version: str) -> List[int]:
    parts = []
    for segment in version.strip().split("."):
        match = _LEADING_DIGITS.match(segment)
        parts.append(int(match.group(0)) if match else 0)
    return parts


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is lower than, equal to or higher than ``b``"""
    left, right = _parse(a), _parse(b)
    for i in range(max(len(left), len(right))):
        x = left[i] if i < len(left) else 0
        y = right[i] if i < len(right) else 0
        if x != y:
            return 1 if x > y else -1
    return 0


def satisfies_version(
    version: str,
    min_version: Optional[str] = None,
    max_version: Optional[str] = None,
) -> bool:
    """True when ``min_version <= version <= max_version`` (bounds optional)"""
    if min_version and compare_versions(version, min_version) < 0:
        return False
    if max_version and compare_versions(version, max_version) > 0:
        return False
    return True
