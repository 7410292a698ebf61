"""
Reducer compiler: turns registered handlers into one composed reducer.

Every declaration owns one node of the state tree. Compilation happens once:
- each raw handler is wrapped into an action handler (state, action, dispatch)
- declarations are split into root leaves ("key") and leaves nested under a
  container path ("a.b" for "a.b.c")
- several declarations on the same selector are chained in registration order
- container paths are pre-split into segments

The composed reducer then updates every leaf of the tree for one action, with
all leaves computed concurrently.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..logging_config import get_logger
from .actions import Action, ActionHandler, Dispatch, resolve
from .errors import HandlerExecutionError, SelectorConflictError
from .tree import MISSING, materialize, split_selector

logger = get_logger(__name__)

# (state, action, dispatch) -> new state
ActionHandlerFn = Callable[[Any, Optional[Action], Optional[Dispatch]], Awaitable[Any]]


@dataclass(frozen=True)
class HandlerDeclaration:
    """
    A registered handler, as consumed by the compiler.

    Fields:
        name: Action name the handler was registered under
        type: Action type the handler reacts to
        handler: Selector and handler function
    """
    name: str
    type: str
    handler: ActionHandler


def make_action_handler(declaration: HandlerDeclaration) -> ActionHandlerFn:
    """
    Wrap a payload handler into an action handler.

    - node missing: initial value, handler(dispatch=...)
    - no action: structural pass, node returned unchanged
    - matching type: handler(state=..., payload=..., dispatch=...)
    - any other type: node returned unchanged
    """
    fn = declaration.handler.handler
    selector = declaration.handler.selector
    action_type = declaration.type

    async def action_handler(state: Any, action: Optional[Action], dispatch: Optional[Dispatch]) -> Any:
        try:
            if state is MISSING:
                return await resolve(fn(dispatch=dispatch))
            if action is None:
                return state
            if action.type == action_type:
                return await resolve(fn(state=state, payload=action.payload, dispatch=dispatch))
            return state
        except HandlerExecutionError:
            raise
        except Exception as exc:
            raise HandlerExecutionError(
                selector, action.type if action is not None else None, str(exc)
            ) from exc

    action_handler.__qualname__ = f"action_handler[{declaration.name}:{selector}]"
    return action_handler


def compose(first: ActionHandlerFn, second: ActionHandlerFn) -> ActionHandlerFn:
    """Chain two action handlers: the output of first is the state given to second."""

    async def composed(state: Any, action: Optional[Action], dispatch: Optional[Dispatch]) -> Any:
        return await second(await first(state, action, dispatch), action, dispatch)

    return composed


@dataclass(frozen=True)
class LeafNode:
    """
    A node of the state tree updated by a (possibly composed) action handler.

    Fields:
        key: Key of the node inside its container
        selector: Full dotted selector
        update: Action handler computing the node's next value
        owners: (name, type) of every declaration composed into update
    """
    key: str
    selector: str
    update: ActionHandlerFn
    owners: Tuple[Tuple[str, str], ...] = ()

    async def apply(self, container: Dict[str, Any], action: Optional[Action], dispatch: Optional[Dispatch]) -> None:
        container[self.key] = await self.update(container.get(self.key, MISSING), action, dispatch)


@dataclass(frozen=True)
class ContainerNode:
    """
    A container of the state tree, created on demand, holding leaves.

    Fields:
        path: Segments from the root to the container
        leaves: Leaves stored directly in the container
    """
    path: Tuple[str, ...]
    leaves: Tuple[LeafNode, ...]


class ComposedReducer:
    """
    The single reducer compiled from every registered handler.

    Usage:
        reducer = compile_reducer(declarations)
        state = await reducer(state, Action("INC", 1), dispatch)

    The state passed in is updated in place and returned. Give it a copy of
    the container scaffolding when the previous snapshot must survive.
    """

    def __init__(self, root: Sequence[LeafNode] = (), containers: Sequence[ContainerNode] = ()) -> None:
        self._root = tuple(root)
        self._containers = tuple(containers)

    @property
    def root(self) -> Tuple[LeafNode, ...]:
        return self._root

    @property
    def containers(self) -> Tuple[ContainerNode, ...]:
        return self._containers

    def leaves(self) -> List[LeafNode]:
        """Every leaf, root leaves first, in compilation order."""
        out = list(self._root)
        for node in self._containers:
            out.extend(node.leaves)
        return out

    async def __call__(
        self,
        state: Optional[Dict[str, Any]] = None,
        action: Optional[Action] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> Dict[str, Any]:
        if state is None:
            state = {}

        # Scaffolding first, so a shape error leaves no handler running.
        targets = [(materialize(state, node.path), node) for node in self._containers]

        jobs = [leaf.apply(state, action, dispatch) for leaf in self._root]
        for container, node in targets:
            jobs.extend(leaf.apply(container, action, dispatch) for leaf in node.leaves)

        results = await asyncio.gather(*jobs, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return state


def _check_conflicts(selectors: Mapping[Tuple[str, ...], str]) -> None:
    prefixes: Dict[Tuple[str, ...], str] = {}
    for segments, selector in selectors.items():
        for i in range(1, len(segments)):
            prefixes.setdefault(segments[:i], selector)
    for segments, selector in selectors.items():
        if segments in prefixes:
            raise SelectorConflictError(selector, prefixes[segments])


def compile_reducer(declarations: Iterable[HandlerDeclaration]) -> ComposedReducer:
    """
    Build the composed reducer for a set of handler declarations.

    Raises:
        MalformedHandlerError: If a selector is malformed
        SelectorConflictError: If a selector owns a node another selector nests into
    """
    # selector segments -> (composed handler, owners), in registration order
    chains: Dict[Tuple[str, ...], Tuple[ActionHandlerFn, Tuple[Tuple[str, str], ...]]] = {}
    selectors: Dict[Tuple[str, ...], str] = {}

    for decl in declarations:
        segments = split_selector(decl.handler.selector)
        update = make_action_handler(decl)
        owner = (decl.name, decl.type)
        if segments in chains:
            prev, owners = chains[segments]
            chains[segments] = (compose(prev, update), owners + (owner,))
        else:
            chains[segments] = (update, (owner,))
            selectors[segments] = decl.handler.selector

    _check_conflicts(selectors)

    root: List[LeafNode] = []
    nested: Dict[Tuple[str, ...], List[LeafNode]] = {}
    for segments, (update, owners) in chains.items():
        leaf = LeafNode(key=segments[-1], selector=selectors[segments], update=update, owners=owners)
        if len(segments) == 1:
            root.append(leaf)
        else:
            nested.setdefault(segments[:-1], []).append(leaf)

    containers = [ContainerNode(path=path, leaves=tuple(leaves)) for path, leaves in nested.items()]
    logger.debug(
        "compiled reducer: %d root leaves, %d containers, %d declarations",
        len(root), len(containers), sum(len(owners) for _, owners in chains.values()),
    )
    return ComposedReducer(root, containers)


def combine_action_handlers(action_handlers: Mapping[str, Callable[..., Any]]) -> ComposedReducer:
    """
    Combine hand-written action handlers, one per root key, into one reducer.

    Each handler is called as handler(state=..., action=..., dispatch=...) with
    state None when the key is absent. Only needed when handlers are written
    without an ActionsRegistry.
    """
    leaves = []
    for key, fn in action_handlers.items():
        split_selector(key)
        leaves.append(LeafNode(key=key, selector=key, update=_plain_action_handler(key, fn)))
    return ComposedReducer(root=leaves)


def _plain_action_handler(key: str, fn: Callable[..., Any]) -> ActionHandlerFn:
    async def action_handler(state: Any, action: Optional[Action], dispatch: Optional[Dispatch]) -> Any:
        try:
            return await resolve(fn(state=None if state is MISSING else state, action=action, dispatch=dispatch))
        except Exception as exc:
            raise HandlerExecutionError(key, action.type if action is not None else None, str(exc)) from exc

    return action_handler
