"""
Declarations handled by the store.

An ActionHandler is the unit of registration: the node of the state tree it
owns (selector) and the pure function that computes that node's next value.

Example: a simple clock. The handler responsible for the minutes derives them
from a datetime payload:

    ActionHandler(
        selector="clock.minute",
        handler=lambda state=0, payload=None, **_: payload.minute,
    )

Handlers are always called with keyword arguments:
    handler(dispatch=...)                          initial value
    handler(state=..., payload=..., dispatch=...)  transition
so parameter defaults provide the initial value of the node.
"""

import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, Union

from .errors import MalformedHandlerError
from .tree import split_selector

Dispatch = Callable[..., Awaitable[Any]]

# handler(state=..., payload=..., dispatch=...) -> new sub-state (or awaitable)
Handler = Callable[..., Any]

# side_effect(state=Getter, dispatch=..., type=...) -> None (or awaitable)
SideEffectHandler = Callable[..., Any]


@dataclass(frozen=True)
class Action:
    """
    A request to change state.

    Fields:
        type: Action type tag matched against registered handlers
        payload: Optional data passed to the handler
    """
    type: str
    payload: Any = None

    @staticmethod
    def from_value(value: Any) -> "Action":
        """Accept an Action or a {"type": ..., "payload": ...} mapping."""
        if isinstance(value, Action):
            return value
        if isinstance(value, Mapping) and isinstance(value.get("type"), str):
            return Action(type=value["type"], payload=value.get("payload"))
        raise TypeError(f"not an action: {value!r}")


@dataclass(frozen=True)
class ActionHandler:
    """
    Handler for the node of the state tree addressed by selector.

    Fields:
        selector: Dotted path of the node this handler owns (e.g. "clock.minute")
        handler: Function (state, payload, dispatch) -> new value of the node
    """
    selector: str
    handler: Handler

    def validate(self) -> None:
        """
        Raises:
            MalformedHandlerError: If selector or handler is unusable
        """
        split_selector(self.selector)
        if not callable(self.handler):
            raise MalformedHandlerError(
                f"selector or handler is not correct; selector={self.selector}"
            )


@dataclass(frozen=True)
class SideEffect:
    """
    Callback run after every transition of action_type.

    The callback receives a read-only view of the new state and the store's
    dispatch function. Its return value is ignored and it is never awaited by
    the store.
    """
    action_type: str
    handler: SideEffectHandler

    def validate(self) -> None:
        if not isinstance(self.action_type, str) or not self.action_type:
            raise MalformedHandlerError(f"side effect needs an action type; got {self.action_type!r}")
        if not callable(self.handler):
            raise MalformedHandlerError(f"side effect handler is not callable; type={self.action_type}")


class Getter(Mapping):
    """
    Read-only view of a state snapshot.

    Nested dicts come back wrapped in a Getter, leaves come back as they are.
    There is no way to write through a Getter.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping] = None) -> None:
        object.__setattr__(self, "_data", {} if data is None else data)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("state is read-only")

    def __getitem__(self, key: str) -> Any:
        return _wrap(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Getter({self._data!r})"

    def get(self, path: Union[str, None] = None, default: Any = None) -> Any:
        """
        Read a node by key or dotted path.

        getter.get("clock.minute") is getter["clock"]["minute"] when it exists.
        """
        if path is None or path == "":
            return self
        curr: Any = self._data
        for seg in str(path).split("."):
            if not isinstance(curr, Mapping) or seg not in curr:
                return default
            curr = curr[seg]
        return _wrap(curr)

    @property
    def value(self) -> "Getter":
        """The whole snapshot, still read-only."""
        return self


def _wrap(value: Any) -> Any:
    if isinstance(value, Mapping) and not isinstance(value, Getter):
        return Getter(value)
    return value


async def resolve(result: Any) -> Any:
    """Await result if the handler returned an awaitable."""
    if inspect.isawaitable(result):
        return await result
    return result
