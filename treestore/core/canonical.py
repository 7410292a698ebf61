"""
Canonical rendering of state snapshots.

Snapshots are plain nested mappings. Rendering them through these functions
gives identical text for identical trees regardless of key insertion order,
which is what the CLI prints and what tests compare.
"""

import json
from collections.abc import Mapping
from typing import Any, Optional


def canonicalize(obj: Any) -> Any:
    """
    Convert a nested mapping/list tree to canonical form.

    Rules:
    - mapping keys sorted (read-only views included)
    - tuples converted to lists
    - recursive normalization
    """
    if isinstance(obj, Mapping):
        return {k: canonicalize(obj[k]) for k in sorted(obj.keys())}
    if isinstance(obj, (list, tuple)):
        return [canonicalize(x) for x in obj]
    return obj


def canonical_json_str(obj: Any, indent: Optional[int] = None) -> str:
    """
    Deterministic JSON text for a snapshot.

    Values JSON cannot encode natively are rendered with str().
    """
    canon = canonicalize(obj)
    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        canon,
        sort_keys=True,
        separators=separators,
        ensure_ascii=False,
        indent=indent,
        default=str,
    )
