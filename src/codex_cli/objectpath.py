#!/usr/bin/env python3
"""Object Path - Dot-notation access into nested entry trees.

A tree is a dict whose values are either nested dicts or leaf values
(str, int, float, bool). Mutating helpers never touch their input: they
copy the dicts along the path and share every untouched sibling.
"""

from typing import Any, Dict, List

from .errors import InvalidPathError, InvalidShapeError

SEPARATOR = "."


class _NotFound:
    """Sentinel returned by get_value when a path does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "NOT_FOUND"

    def __bool__(self):
        return False


NOT_FOUND = _NotFound()


def is_tree(value: Any) -> bool:
    """Return True if value is a subtree rather than a leaf."""
    return isinstance(value, dict)


def split_path(path: str) -> List[str]:
    """Split a dot-notation path into its segments.

    Raises:
        InvalidPathError: If the path is empty or has an empty segment
            (leading, trailing or doubled dots).
    """
    if not isinstance(path, str) or not path:
        raise InvalidPathError("Path must be a non-empty string")
    segments = path.split(SEPARATOR)
    if any(segment == "" for segment in segments):
        raise InvalidPathError(f"Invalid path '{path}': empty segment")
    return segments


def is_valid_path(path: str) -> bool:
    try:
        split_path(path)
    except InvalidPathError:
        return False
    return True


def get_value(tree: Dict[str, Any], path: str) -> Any:
    """Get the leaf or subtree at path.

    Returns:
        The value, or NOT_FOUND if any segment is missing or an
        intermediate segment is a leaf.
    """
    current: Any = tree
    for segment in split_path(path):
        if not is_tree(current) or segment not in current:
            return NOT_FOUND
        current = current[segment]
    return current


def set_value(tree: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """Return a new tree with value stored at path.

    Missing intermediate segments are created. A leaf standing where an
    intermediate subtree is needed is replaced by a subtree. The final
    segment is overwritten whatever it held before.
    """
    segments = split_path(path)
    return _set(tree, segments, value)


def _set(node: Dict[str, Any], segments: List[str], value: Any) -> Dict[str, Any]:
    result = dict(node)
    head = segments[0]
    if len(segments) == 1:
        result[head] = value
        return result
    child = node.get(head)
    result[head] = _set(child if is_tree(child) else {}, segments[1:], value)
    return result


def remove_value(tree: Dict[str, Any], path: str) -> Dict[str, Any]:
    """Return a new tree without the leaf or subtree at path.

    When the path does not exist the input tree itself is returned, so
    callers can test ``result is tree`` and skip persisting. Parent
    subtrees left empty by the removal are kept.
    """
    segments = split_path(path)
    if get_value(tree, path) is NOT_FOUND:
        return tree
    return _remove(tree, segments)


def _remove(node: Dict[str, Any], segments: List[str]) -> Dict[str, Any]:
    result = dict(node)
    head = segments[0]
    if len(segments) == 1:
        del result[head]
    else:
        result[head] = _remove(node[head], segments[1:])
    return result


def flatten(tree: Dict[str, Any], parent_key: str = "") -> Dict[str, Any]:
    """Flatten a tree into {dotted.path: leaf} pairs.

    Example: {"user": {"name": "ada"}} -> {"user.name": "ada"}

    Empty subtrees contribute no entries. Leaf values keep their type.
    """
    flat: Dict[str, Any] = {}
    for key, value in tree.items():
        new_key = f"{parent_key}{SEPARATOR}{key}" if parent_key else key
        if is_tree(value):
            flat.update(flatten(value, new_key))
        else:
            flat[new_key] = value
    return flat


def unflatten(flat: Dict[str, Any]) -> Dict[str, Any]:
    """Rebuild a tree from {dotted.path: leaf} pairs."""
    tree: Dict[str, Any] = {}
    for path in sorted(flat):
        tree = set_value(tree, path, flat[path])
    return tree


def validate_tree(obj: Any, label: str = "data") -> Dict[str, Any]:
    """Check that obj is an object-shaped tree with no arrays anywhere.

    Returns:
        obj unchanged, for chaining.

    Raises:
        InvalidShapeError: If the root is not a dict or any value is a list.
    """
    if not is_tree(obj):
        raise InvalidShapeError(f"The {label} must be a JSON object")
    _check_no_arrays(obj, "", label)
    return obj


def _check_no_arrays(node: Dict[str, Any], prefix: str, label: str) -> None:
    for key, value in node.items():
        path = f"{prefix}{SEPARATOR}{key}" if prefix else key
        if isinstance(value, (list, tuple)):
            raise InvalidShapeError(f"The {label} contains an array at '{path}'")
        if is_tree(value):
            _check_no_arrays(value, path, label)
