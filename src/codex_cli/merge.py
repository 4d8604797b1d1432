#!/usr/bin/env python3
"""Merge - Deep merge and structural diff used by import.

The same diff drives both the import preview and the real import, so
what the user is shown is exactly what gets written.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from .crypto import mask_value
from .objectpath import flatten, is_tree

MERGE = "merge"
REPLACE = "replace"
MODES = (MERGE, REPLACE)

ADD = "add"
MODIFY = "modify"
REMOVE = "remove"

_MISSING = object()


@dataclass(frozen=True)
class Change:
    """One classified difference between the current and incoming data."""

    kind: str       # add | modify | remove
    key: str        # Dotted path
    old: Any = None
    new: Any = None


def deep_merge(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Merge incoming into base and return a new tree.

    Subtrees present on both sides are merged recursively. Anything else
    in incoming replaces what base held, including a leaf replacing a
    subtree and the reverse. Keys only in base are kept.
    """
    merged = dict(base)
    for key, value in incoming.items():
        current = merged.get(key, _MISSING)
        if is_tree(value) and current is not _MISSING and is_tree(current):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def diff(
    current_flat: Dict[str, Any],
    incoming_flat: Dict[str, Any],
    mode: str = MERGE
) -> List[Change]:
    """Classify the changes needed to go from current to incoming.

    Args:
        current_flat: Flattened current data
        incoming_flat: Flattened incoming data
        mode: MERGE (adds and modifies, never removes) or REPLACE
            (removes then adds, by key)

    Returns:
        Changes ordered by key; in replace mode all removes come first

    """
    if mode not in MODES:
        raise ValueError(f"Unknown diff mode: {mode}")

    if mode == MERGE:
        changes = []
        for key in sorted(incoming_flat):
            new = incoming_flat[key]
            if key not in current_flat:
                changes.append(Change(ADD, key, new=new))
            elif not _same(current_flat[key], new):
                changes.append(Change(MODIFY, key, old=current_flat[key], new=new))
        return changes

    removes = [
        Change(REMOVE, key, old=current_flat[key])
        for key in sorted(current_flat)
        if key not in incoming_flat or not _same(current_flat[key], incoming_flat[key])
    ]
    adds = [
        Change(ADD, key, new=incoming_flat[key])
        for key in sorted(incoming_flat)
        if key not in current_flat or not _same(current_flat[key], incoming_flat[key])
    ]
    return removes + adds


def diff_trees(current: Dict[str, Any], incoming: Dict[str, Any], mode: str = MERGE) -> List[Change]:
    """Flatten both trees and diff them."""
    return diff(flatten(current), flatten(incoming), mode)


def _same(a: Any, b: Any) -> bool:
    # 1 == True in Python; a type change is still a change
    return type(a) is type(b) and a == b


def format_changes(changes: List[Change]) -> List[str]:
    """Render changes as preview lines with encrypted values masked."""
    lines = []
    for change in changes:
        if change.kind == ADD:
            lines.append(f"+ {change.key}: {mask_value(change.new)}")
        elif change.kind == MODIFY:
            lines.append(f"~ {change.key}: {mask_value(change.old)} -> {mask_value(change.new)}")
        else:
            lines.append(f"- {change.key}: {mask_value(change.old)}")
    return lines


def summarize(changes: List[Change]) -> Dict[str, int]:
    counts = {ADD: 0, MODIFY: 0, REMOVE: 0}
    for change in changes:
        counts[change.kind] += 1
    return counts
