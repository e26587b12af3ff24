# mafianight/store/tree.py
from __future__ import annotations

import copy
from typing import Any, List


def split_path(path: str) -> List[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValueError("Empty store path")
    return parts


def read_at(tree: Any, parts: List[str]) -> Any:
    """Walk a JSON tree; None when any segment is missing."""
    node = tree
    for part in parts:
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return copy.deepcopy(node)


def write_at(tree: Any, parts: List[str], value: Any) -> Any:
    """
    Return the tree with value written at parts.
    value=None deletes; parents left empty by a delete are pruned.
    """
    if not parts:
        if _is_empty(value):
            return None
        return copy.deepcopy(value)

    root = tree if isinstance(tree, dict) else {}
    head, rest = parts[0], parts[1:]
    child = write_at(root.get(head), rest, value)
    if child is None:
        root.pop(head, None)
    else:
        root[head] = child
    return root or None


def overlaps(a: List[str], b: List[str]) -> bool:
    """True when one path is a prefix of the other."""
    n = min(len(a), len(b))
    return a[:n] == b[:n]


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, dict) and not value)
