"""
State tree helpers.

The tree is made of plain dicts (containers) holding arbitrary values (leaves).
Transitions replace leaves functionally and build containers in place, so a
transition only ever needs its own copy of the container scaffolding.
"""

from typing import Any, Dict, Iterable, MutableMapping, Sequence, Tuple

from .errors import MalformedHandlerError, StateShapeError


class _Missing:
    """Marker for a node that does not exist in the tree."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def split_selector(selector: str) -> Tuple[str, ...]:
    """
    Split a dotted selector into its path segments.

    Raises:
        MalformedHandlerError: If the selector is not a string or has an empty segment
    """
    if not isinstance(selector, str):
        raise MalformedHandlerError(f"selector must be a string; selector={selector!r}")
    segments = tuple(selector.split("."))
    if any(seg == "" for seg in segments):
        raise MalformedHandlerError(f"selector has an empty segment; selector={selector!r}")
    return segments


def clone_containers(tree: Any) -> Any:
    """
    Copy every dict in the tree, sharing the leaf values.

    Anything that is not a dict is returned as is.
    """
    if isinstance(tree, dict):
        return {k: clone_containers(v) for k, v in tree.items()}
    return tree


def materialize(root: MutableMapping[str, Any], path: Sequence[str]) -> MutableMapping[str, Any]:
    """
    Walk path from root, creating missing containers as empty dicts.

    Returns:
        The container at the end of the path

    Raises:
        StateShapeError: If an existing node on the path is not a mapping
    """
    curr = root
    for i, seg in enumerate(path):
        nxt = curr.get(seg, MISSING)
        if nxt is MISSING:
            nxt = {}
            curr[seg] = nxt
        elif not isinstance(nxt, MutableMapping):
            raise StateShapeError(path[: i + 1], nxt)
        curr = nxt
    return curr


def resolve_path(tree: Any, path: Iterable[str], default: Any = None) -> Any:
    """Read the node at path, or default when any segment is absent."""
    curr = tree
    for seg in path:
        try:
            curr = curr[seg]
        except (KeyError, TypeError, IndexError):
            return default
    return curr


def normalize_path(key: Any = "", rest: Sequence[str] = ()) -> Tuple[str, ...]:
    """
    Turn a dotted string or a sequence of segments into a path tuple.

    Empty segments are dropped, so "" and [] both address the root.
    """
    if isinstance(key, str):
        head = key.split(".")
    else:
        head = list(key)
    return tuple(str(seg) for seg in [*head, *rest] if seg != "")


def leaf_count(tree: Dict[str, Any]) -> int:
    """Number of non-container nodes in the tree."""
    total = 0
    for value in tree.values():
        total += leaf_count(value) if isinstance(value, dict) else 1
    return total
