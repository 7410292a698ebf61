"""
treestore

Single-writer state container: one state tree, changed only through
registered action handlers, observed by subscribers.
"""

from .config import StoreConfig
from .core import (
    Action,
    ActionHandler,
    ActionsRegistry,
    Getter,
    SideEffect,
    combine_action_handlers,
)
from .store import Store

__version__ = "0.1.0"

__all__ = [
    "Action",
    "ActionHandler",
    "ActionsRegistry",
    "Getter",
    "SideEffect",
    "Store",
    "StoreConfig",
    "combine_action_handlers",
]
