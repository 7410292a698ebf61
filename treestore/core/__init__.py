"""
Core state-transition primitives.

This module provides:
- Action, ActionHandler, SideEffect: declarations
- ActionsRegistry: collects declarations, builds stores
- compile_reducer: turns declarations into one composed reducer
- DispatchEngine: applies actions one at a time, in submission order
- Getter: read-only view of a snapshot
"""

from .actions import Action, ActionHandler, Getter, SideEffect
from .canonical import canonical_json_str, canonicalize
from .compiler import (
    ComposedReducer,
    ContainerNode,
    HandlerDeclaration,
    LeafNode,
    combine_action_handlers,
    compile_reducer,
)
from .engine import DispatchEngine, EngineStatus
from .errors import (
    DispatchNameError,
    DuplicateNameError,
    HandlerExecutionError,
    InvalidActionTypeError,
    MalformedHandlerError,
    RegistrationError,
    SelectorConflictError,
    StateShapeError,
    StoreError,
    UnknownActionError,
)
from .registry import ActionsRegistry, RegistrySnapshot

__all__ = [
    "Action",
    "ActionHandler",
    "Getter",
    "SideEffect",
    "canonical_json_str",
    "canonicalize",
    "ComposedReducer",
    "ContainerNode",
    "HandlerDeclaration",
    "LeafNode",
    "combine_action_handlers",
    "compile_reducer",
    "DispatchEngine",
    "EngineStatus",
    "ActionsRegistry",
    "RegistrySnapshot",
    "StoreError",
    "RegistrationError",
    "DuplicateNameError",
    "MalformedHandlerError",
    "SelectorConflictError",
    "DispatchNameError",
    "UnknownActionError",
    "InvalidActionTypeError",
    "HandlerExecutionError",
    "StateShapeError",
]
