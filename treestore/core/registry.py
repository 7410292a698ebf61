"""
Registry of action handlers and side effects.

Usage:
    registry = ActionsRegistry()
    registry.register("increment", "INC", ActionHandler("counter", increment))
    registry.side_effect(SideEffect("INC", log_counter))
    store = await registry.create_store()
    await store.do("increment", 5)
"""

import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Set, Tuple, Union

from ..config import StoreConfig
from ..logging_config import get_logger
from .actions import ActionHandler, SideEffect
from .compiler import ComposedReducer, HandlerDeclaration, compile_reducer
from .errors import DuplicateNameError, MalformedHandlerError

if TYPE_CHECKING:
    from ..store import Store

logger = get_logger(__name__)


def generate_action_type(name: str) -> str:
    """Random action type for a handler registered without one."""
    return f"{name}/{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class RegistrySnapshot:
    """
    Immutable view of a registry's contents.

    Fields:
        action_types: name -> action types dispatchable under that name
        side_effects: action type -> side effects, in registration order
        handlers: handler declarations, in registration order
    """
    action_types: Mapping[str, Tuple[str, ...]]
    side_effects: Mapping[str, Tuple[SideEffect, ...]]
    handlers: Tuple[HandlerDeclaration, ...]


class ActionsRegistry:
    """Accumulates handlers and side effects, then builds stores from them."""

    def __init__(self) -> None:
        self._action_names: Dict[str, List[str]] = {}
        self._action_types: Set[str] = set()
        self._handlers: List[HandlerDeclaration] = []
        self._side_effects: Dict[str, List[SideEffect]] = {}

    def register(
        self,
        name: str,
        action_type: Union[str, ActionHandler],
        action_handler: Optional[ActionHandler] = None,
    ) -> str:
        """
        Register an action handler.

        Accepts register(name, handler) or register(name, action_type, handler).
        Without action_type a unique one is generated.

        Args:
            name: Name the action is dispatched by
            action_type: Type tag the handler reacts to
            action_handler: Selector and handler function

        Returns:
            The action type the handler was registered under

        Raises:
            DuplicateNameError: If name was already registered
            MalformedHandlerError: If the declaration is unusable
        """
        if action_handler is None:
            action_handler = action_type  # type: ignore[assignment]
            action_type = self._unused_action_type(name)
        elif not isinstance(action_type, str) or not action_type:
            raise MalformedHandlerError(f"action type must be a non-empty string; got {action_type!r}")

        self._check_name(name)
        self._check_handler(action_handler)

        self._action_names[name] = [action_type]  # type: ignore[list-item]
        self._add(name, action_type, action_handler)  # type: ignore[arg-type]
        return action_type  # type: ignore[return-value]

    def register_types(self, name: str, handlers: Mapping[str, ActionHandler]) -> Tuple[str, ...]:
        """
        Register one name dispatching several action types.

        Dispatching the name then requires choosing one of the types:
            store.dispatch(name, action_type, payload)

        Raises:
            DuplicateNameError: If name was already registered
            MalformedHandlerError: If handlers is empty or a declaration is unusable
        """
        self._check_name(name)
        if not handlers:
            raise MalformedHandlerError(f"action {name!r} needs at least one type")
        for action_type, action_handler in handlers.items():
            if not isinstance(action_type, str) or not action_type:
                raise MalformedHandlerError(f"action type must be a non-empty string; got {action_type!r}")
            self._check_handler(action_handler)

        self._action_names[name] = list(handlers)
        for action_type, action_handler in handlers.items():
            self._add(name, action_type, action_handler)
        return tuple(handlers)

    def side_effect(self, side_effect: SideEffect) -> None:
        """
        Register a side effect. Earlier side effects for the same type are kept
        and run first.
        """
        if not isinstance(side_effect, SideEffect):
            raise MalformedHandlerError(f"not a SideEffect: {side_effect!r}")
        side_effect.validate()
        self._side_effects.setdefault(side_effect.action_type, []).append(side_effect)

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            action_types=MappingProxyType({k: tuple(v) for k, v in self._action_names.items()}),
            side_effects=MappingProxyType({k: tuple(v) for k, v in self._side_effects.items()}),
            handlers=tuple(self._handlers),
        )

    def create_reducer(self) -> ComposedReducer:
        """Compile the registered handlers into one reducer."""
        return compile_reducer(self._handlers)

    async def create_store(
        self,
        initial_state: Optional[Dict[str, Any]] = None,
        *,
        config: Optional[StoreConfig] = None,
        name: Optional[str] = None,
    ) -> "Store":
        """
        Build a store from the registered actions and fill in default state.

        Raises:
            SelectorConflictError: If two selectors claim overlapping nodes
        """
        from ..store import Store

        snap = self.snapshot()
        store = Store(
            self.create_reducer(),
            snap.action_types,
            snap.side_effects,
            config=config,
            name=name,
        )
        await store.init(initial_state)
        return store

    def _unused_action_type(self, name: str) -> str:
        action_type = generate_action_type(name)
        while action_type in self._action_types:
            action_type = generate_action_type(name)
        return action_type

    def _check_name(self, name: str) -> None:
        if not isinstance(name, str) or not name:
            raise MalformedHandlerError(f"action name must be a non-empty string; got {name!r}")
        if name in self._action_names:
            raise DuplicateNameError(name)

    @staticmethod
    def _check_handler(action_handler: Any) -> None:
        if not isinstance(action_handler, ActionHandler):
            raise MalformedHandlerError(
                f"selector or handler is not correct; selector={getattr(action_handler, 'selector', None)}"
            )
        action_handler.validate()

    def _add(self, name: str, action_type: str, action_handler: ActionHandler) -> None:
        self._action_types.add(action_type)
        self._handlers.append(HandlerDeclaration(name=name, type=action_type, handler=action_handler))
        logger.debug("registered action name=%s type=%s selector=%s", name, action_type, action_handler.selector)
