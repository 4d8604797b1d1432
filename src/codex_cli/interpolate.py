#!/usr/bin/env python3
"""Interpolation of ${key_or_alias} references inside entry values.

References resolve at read time against the entries and alias map;
nested references are followed up to MAX_DEPTH levels.
"""

import re
from typing import Any, Callable, Dict, FrozenSet

from .crypto import is_encrypted
from .errors import InterpolationError
from .objectpath import NOT_FOUND, is_valid_path

REFERENCE = re.compile(r"\$\{([^}]+)\}")
MAX_DEPTH = 10


def interpolate(
    value: str,
    resolve_key: Callable[[str], str],
    lookup: Callable[[str], Any],
    max_depth: int = MAX_DEPTH,
    seen: FrozenSet[str] = frozenset()
) -> str:
    """Replace every ${ref} in value with the referenced entry.

    Args:
        value: String possibly containing ${ref} markers
        resolve_key: Maps an alias to its path (identity for plain keys)
        lookup: Returns the value at a path or NOT_FOUND
        max_depth: Remaining levels of nested references
        seen: Paths already being expanded, for cycle detection

    Raises:
        InterpolationError: On a cycle, a missing, non-string or encrypted
            target, or when the depth limit is exceeded

    """
    if "${" not in value:
        return value

    def replace(match):
        ref = match.group(1).strip()
        key = resolve_key(ref)

        if key in seen:
            chain = " -> ".join(list(seen) + [key])
            raise InterpolationError(f"Circular interpolation detected: {chain}")

        resolved = lookup(key) if is_valid_path(key) else NOT_FOUND
        if resolved is NOT_FOUND:
            raise InterpolationError(f'Interpolation failed: "{ref}" not found')
        if not isinstance(resolved, str):
            raise InterpolationError(f'Interpolation failed: "{ref}" is not a string value')
        if is_encrypted(resolved):
            raise InterpolationError(f'Interpolation failed: "{ref}" is encrypted')
        if max_depth <= 0:
            raise InterpolationError("Interpolation depth limit exceeded")

        return interpolate(resolved, resolve_key, lookup, max_depth - 1, seen | {key})

    return REFERENCE.sub(replace, value)


def interpolate_flat(
    flat: Dict[str, Any],
    resolve_key: Callable[[str], str],
    lookup: Callable[[str], Any]
) -> Dict[str, Any]:
    """Interpolate every plain string leaf; failures keep the raw value."""
    result = {}
    for key, value in flat.items():
        if isinstance(value, str) and not is_encrypted(value):
            try:
                result[key] = interpolate(value, resolve_key, lookup)
            except InterpolationError:
                result[key] = value
        else:
            result[key] = value
    return result
