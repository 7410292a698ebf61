"""
Exception types for the state store.

Registration errors are raised at configuration time and are never recovered.
Dispatch errors are raised to the caller whose transition failed.
"""

from typing import Iterable, Optional


class StoreError(Exception):
    """Base class for every error raised by treestore."""
    pass


class RegistrationError(StoreError):
    """Raised when a handler or side effect cannot be registered."""
    pass


class DuplicateNameError(RegistrationError):
    """Raised when an action name is registered twice."""

    def __init__(self, name: str) -> None:
        super().__init__(f'action with name: "{name}" already exists')
        self.name = name


class MalformedHandlerError(RegistrationError):
    """Raised when a declaration has no usable selector or a non-callable handler."""
    pass


class SelectorConflictError(RegistrationError):
    """Raised when one selector owns a node that another selector nests into."""

    def __init__(self, outer: str, inner: str) -> None:
        super().__init__(
            f"selector conflict: {outer!r} replaces the container that {inner!r} writes into"
        )
        self.outer = outer
        self.inner = inner


class DispatchNameError(StoreError):
    """Raised when a named dispatch cannot be resolved to an action type."""
    pass


class UnknownActionError(DispatchNameError):
    """Raised when dispatching a name that was never registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f'action="{name}" does not exist')
        self.name = name


class InvalidActionTypeError(DispatchNameError):
    """Raised when a multi-type action is dispatched with a type outside its set."""

    def __init__(self, name: str, action_type: object, valid: Iterable[str] = ()) -> None:
        super().__init__(
            f"invalid action type: actionName={name}; type={action_type}; "
            f"valid={sorted(valid)}"
        )
        self.name = name
        self.action_type = action_type


class HandlerExecutionError(StoreError):
    """
    Raised when a registered handler fails while computing a transition.

    The original exception is available as __cause__.
    """

    def __init__(self, selector: str, action_type: Optional[str], message: str = "") -> None:
        where = f"selector={selector}; type={action_type}"
        super().__init__(f"handler failed: {where}" + (f": {message}" if message else ""))
        self.selector = selector
        self.action_type = action_type


class StateShapeError(StoreError):
    """Raised when a selector path walks through a value that is not a mapping."""

    def __init__(self, path: Iterable[str], found: object) -> None:
        dotted = ".".join(path)
        super().__init__(
            f"cannot materialize {dotted!r}: found {type(found).__name__} instead of a mapping"
        )
        self.path = dotted
