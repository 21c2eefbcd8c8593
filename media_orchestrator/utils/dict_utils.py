"""
Helpers for nested dictionaries addressed by dot-separated paths
"""

import copy
from typing import Any, Dict, Iterator, List, Tuple

MISSING = object()


def split_path(path: str) -> List[str]:
    """Split a dot-separated path, rejecting empty segments"""
    parts = path.split(".")
    if not path or any(not part for part in parts):
        raise ValueError(f"Invalid configuration path: '{path}'")
    return parts


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Return a new dict with ``source`` merged over ``target``.

    Nested dicts merge recursively. Scalars and lists from ``source``
    replace the target value outright. Neither input is mutated.

    Args:
        target: Base dictionary
        source: Overriding dictionary

    Returns:
        Merged copy
    """
    result = copy.deepcopy(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def get_path(data: Dict[str, Any], path: str, default: Any = MISSING) -> Any:
    """Walk ``data`` along ``path`` and return the value found there"""
    current: Any = data
    for part in split_path(path):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_path(data: Dict[str, Any], path: str, value: Any) -> None:
    """Set ``value`` at ``path`` in place, creating intermediate dicts"""
    parts = split_path(path)
    current = data
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def iter_leaves(data: Dict[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    """Yield ``(path, value)`` for every non-dict value in ``data``"""
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            yield from iter_leaves(value, path)
        else:
            yield path, value


def paths_overlap(first: str, second: str) -> bool:
    """True when one path equals, contains or is contained by the other"""
    return (
        first == second
        or first.startswith(second + ".")
        or second.startswith(first + ".")
    )
