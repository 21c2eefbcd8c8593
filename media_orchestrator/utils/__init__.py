"""Shared helpers"""

from .dict_utils import (
    MISSING,
    deep_merge,
    get_path,
    iter_leaves,
    paths_overlap,
    set_path,
    split_path,
)

__all__ = [
    "MISSING",
    "deep_merge",
    "get_path",
    "iter_leaves",
    "paths_overlap",
    "set_path",
    "split_path",
]
