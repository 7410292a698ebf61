"""
Locate the ActionsRegistry a command works on.
"""

import importlib
import sys
from pathlib import Path

from treestore.core import ActionsRegistry


def load_registry(target: str) -> ActionsRegistry:
    """
    Import "package.module:attribute" and return the registry it names.

    The attribute is either an ActionsRegistry or a callable returning one.
    The current directory is importable, like for `python -m`.

    Raises:
        ValueError: If target is malformed or does not lead to a registry
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected MODULE:ATTRIBUTE, got {target!r}")

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    module = importlib.import_module(module_name)
    try:
        obj = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"{module_name!r} has no attribute {attr!r}") from None

    if not isinstance(obj, ActionsRegistry) and callable(obj):
        obj = obj()
    if not isinstance(obj, ActionsRegistry):
        raise ValueError(f"{target!r} is not an ActionsRegistry")
    return obj
