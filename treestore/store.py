"""
Store: the public face of a compiled state tree.

The store owns the dispatch engine and publishes each new snapshot through an
ObservableWrapper. Actions are dispatched either as Action objects or by the
name they were registered under.
"""

import asyncio
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence, Union

from .config import StoreConfig
from .core.actions import Action, SideEffect
from .core.compiler import ComposedReducer
from .core.engine import DispatchEngine
from .core.errors import InvalidActionTypeError, UnknownActionError
from .core.tree import normalize_path
from .logging_config import get_logger
from .query import ObservableWrapper, ShouldUpdate, StoreQuery


@dataclass(frozen=True)
class SingleTypeDispatcher:
    """Dispatch table entry for a name bound to one action type."""
    name: str
    action_type: str

    def resolve(self, type_or_payload: Any = None, payload: Any = None) -> Action:
        return Action(type=self.action_type, payload=type_or_payload)


@dataclass(frozen=True)
class MultiTypeDispatcher:
    """Dispatch table entry for a name bound to several action types."""
    name: str
    action_types: FrozenSet[str]

    def resolve(self, type_or_payload: Any = None, payload: Any = None) -> Action:
        if not isinstance(type_or_payload, str) or type_or_payload not in self.action_types:
            raise InvalidActionTypeError(self.name, type_or_payload, self.action_types)
        return Action(type=type_or_payload, payload=payload)


NamedDispatcher = Union[SingleTypeDispatcher, MultiTypeDispatcher]


def build_dispatch_table(action_types: Mapping[str, Sequence[str]]) -> Dict[str, NamedDispatcher]:
    """name -> dispatcher, each carrying its own validation rule."""
    table: Dict[str, NamedDispatcher] = {}
    for name, types in action_types.items():
        if isinstance(types, str):
            types = (types,)
        if len(types) > 1:
            table[name] = MultiTypeDispatcher(name=name, action_types=frozenset(types))
        else:
            table[name] = SingleTypeDispatcher(name=name, action_type=types[0])
    return table


class Store:
    """
    Single-writer state container.

    Usage:
        store = await registry.create_store()
        await store.dispatch("increment", 5)
        await store.dispatch("move", "MOVE_UP", 1)     # multi-type name
        await store.dispatch(Action("INC", 5))
        store.get("clock.minute").subscribe(print)
    """

    def __init__(
        self,
        action_handler: ComposedReducer,
        action_types: Optional[Mapping[str, Sequence[str]]] = None,
        side_effects: Optional[Mapping[str, Sequence[SideEffect]]] = None,
        *,
        config: Optional[StoreConfig] = None,
        name: Optional[str] = None,
    ) -> None:
        self.config = (config or StoreConfig.from_env()).with_overrides(name=name)
        self.log = get_logger(__name__, trace_id=self.config.name)
        self._root = ObservableWrapper()
        self._dispatchers = build_dispatch_table(action_types or {})
        self._actions = MappingProxyType({n: self._bind(n) for n in self._dispatchers})
        self._engine = DispatchEngine(
            action_handler,
            side_effects,
            config=self.config,
            dispatch=self.dispatch,
            on_publish=self._root.next,
        )

    async def init(self, initial_state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run the structural pass so every handler's default value is in place."""
        state = await self._engine.initialize(initial_state)
        self.log.info("store initialized with %d actions", len(self._dispatchers))
        return state

    @property
    def value(self) -> Optional[Dict[str, Any]]:
        """Current snapshot. Treat it as read-only."""
        return self._engine.state

    def get_state(self) -> Optional[Dict[str, Any]]:
        """Alias to value."""
        return self.value

    @property
    def actions(self) -> Mapping[str, Callable[..., "asyncio.Future"]]:
        """Dispatch functions by action name."""
        return self._actions

    @property
    def engine(self) -> DispatchEngine:
        return self._engine

    def get(self, key: Any = "", *rest: str) -> StoreQuery:
        """
        Navigate to the node to read or subscribe to.

        key is a dotted path or a list of segments; rest appends segments.
        """
        return StoreQuery(self._root, normalize_path(key, rest))

    def subscribe(self, observer: Any, should_update: Optional[ShouldUpdate] = None):
        """
        Subscribe to the whole state.

        Args:
            observer: Callable or object with on_next
            should_update: Called with old and new snapshots; the observer is
                only called when it returns True
        """
        return StoreQuery(self._root).subscribe(observer, should_update)

    def dispatch(self, action: Any, type_or_payload: Any = None, payload: Any = None) -> "asyncio.Future":
        """
        Submit an action.

        dispatch(Action("INC", 1))
        dispatch({"type": "INC", "payload": 1})
        dispatch("increment", 1)               # single-type name
        dispatch("move", "MOVE_UP", 1)         # multi-type name

        Returns:
            Future resolved with the snapshot this action produced

        Raises:
            UnknownActionError: If the name was never registered
            InvalidActionTypeError: If the type is not one of the name's types
        """
        if isinstance(action, str):
            dispatcher = self._dispatchers.get(action)
            if dispatcher is None:
                raise UnknownActionError(action)
            action = dispatcher.resolve(type_or_payload, payload)
        else:
            action = Action.from_value(action)
        return self._engine.submit(action)

    def do(self, action_name: str, payload: Any = None) -> "asyncio.Future":
        """Dispatch a single-type action by name. Alias to dispatch(name, payload)."""
        return self.dispatch(action_name, payload)

    async def join(self) -> None:
        """Wait for queued actions and running side effects to finish."""
        await self._engine.join()

    def _bind(self, name: str) -> Callable[..., "asyncio.Future"]:
        def named_dispatch(type_or_payload: Any = None, payload: Any = None) -> "asyncio.Future":
            return self.dispatch(name, type_or_payload, payload)

        named_dispatch.__name__ = name
        return named_dispatch
