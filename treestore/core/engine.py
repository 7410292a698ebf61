"""
Dispatch engine: applies actions to the state one at a time.

The engine owns the current snapshot and a FIFO queue. Every submission goes
through the queue; a single consumer task serves it until it is empty. An
action submitted while another is being applied (from outside, from a handler
or from a side effect) waits for its turn, so no two actions ever compute
against the same snapshot.

Each action is applied to a copy of the container scaffolding of the current
snapshot. The copy is published only when every handler succeeded, unless
rollback_on_error is disabled.
"""

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Mapping, Optional, Sequence, Set

from ..config import StoreConfig
from ..logging_config import get_logger
from .actions import Action, Getter, SideEffect
from .compiler import ComposedReducer
from .tree import MISSING, clone_containers

Publisher = Callable[[Dict[str, Any]], None]


class EngineStatus(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"


@dataclass
class QueueEntry:
    """
    A submission waiting to be applied.

    action is None for the structural pass run by initialize(), which starts
    from initial instead of the current snapshot.
    """
    action: Optional[Action]
    future: asyncio.Future
    initial: Any = field(default=MISSING)


def _mark_retrieved(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


def _settle(future: asyncio.Future, result: Any = None, exc: Optional[BaseException] = None) -> None:
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(result)


class DispatchEngine:
    """
    Serializes state transitions.

    Usage:
        engine = DispatchEngine(reducer, side_effects)
        await engine.initialize({"counter": 1})
        state = await engine.submit(Action("INC", 5))
    """

    def __init__(
        self,
        reducer: ComposedReducer,
        side_effects: Optional[Mapping[str, Sequence[SideEffect]]] = None,
        *,
        config: Optional[StoreConfig] = None,
        dispatch: Optional[Callable[..., Any]] = None,
        on_publish: Optional[Publisher] = None,
    ) -> None:
        self._reducer = reducer
        self._side_effects = side_effects or {}
        self._config = config or StoreConfig()
        self._dispatch = dispatch or self.submit
        self._on_publish = on_publish

        self._state: Optional[Dict[str, Any]] = None
        self._version = 0
        self._queue: Deque[QueueEntry] = deque()
        self._status = EngineStatus.IDLE
        self._consumer: Optional[asyncio.Task] = None
        self._effect_tasks: Set[asyncio.Task] = set()

        self.log = get_logger(__name__, trace_id=self._config.name)

    @property
    def state(self) -> Optional[Dict[str, Any]]:
        """Last published snapshot."""
        return self._state

    @property
    def version(self) -> int:
        """Number of snapshots published so far."""
        return self._version

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def is_dispatching(self) -> bool:
        return self._status is EngineStatus.DISPATCHING

    @property
    def pending(self) -> int:
        """Submissions waiting behind the one being applied."""
        return len(self._queue)

    def submit(self, action: Action) -> asyncio.Future:
        """
        Queue an action.

        Returns:
            Future resolved with the snapshot produced by this action, or
            failed with the error raised while applying it

        Raises:
            RuntimeError: If called without a running event loop
        """
        future = asyncio.get_running_loop().create_future()
        # _serve logs every failure, awaited or not
        future.add_done_callback(_mark_retrieved)
        return self._enqueue(QueueEntry(action=action, future=future))

    async def initialize(self, initial_state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run the structural pass: every handler fills in its default value.

        initial_state is copied, never modified. Values already present in it
        are kept as they are.
        """
        entry = QueueEntry(
            action=None,
            future=asyncio.get_running_loop().create_future(),
            initial={} if initial_state is None else initial_state,
        )
        return await self._enqueue(entry)

    async def join(self) -> None:
        """Wait until the queue is empty and every scheduled side effect finished."""
        while True:
            # a finished side effect has already reported its error
            self._effect_tasks = {t for t in self._effect_tasks if not t.done()}
            waiting: Set[asyncio.Future] = set(self._effect_tasks)
            if self._consumer is not None:
                waiting.add(self._consumer)
            if not waiting:
                return
            await asyncio.wait(waiting)

    def _enqueue(self, entry: QueueEntry) -> asyncio.Future:
        self._queue.append(entry)
        if self._status is EngineStatus.IDLE:
            self._status = EngineStatus.DISPATCHING
            self._consumer = asyncio.get_running_loop().create_task(self._consume())
        else:
            self.log.debug(
                "queued type=%s behind in-flight transition (pending=%d)",
                entry.action.type if entry.action else None, len(self._queue),
            )
        return entry.future

    async def _consume(self) -> None:
        entry: Optional[QueueEntry] = None
        try:
            while self._queue:
                entry = self._queue.popleft()
                await self._serve(entry)
        except BaseException:
            if entry is not None:
                entry.future.cancel()
            while self._queue:
                self._queue.popleft().future.cancel()
            raise
        finally:
            self._status = EngineStatus.IDLE
            self._consumer = None

    async def _serve(self, entry: QueueEntry) -> None:
        action = entry.action
        base = self._state if entry.initial is MISSING else entry.initial
        working = clone_containers(base) if base is not None else {}

        try:
            new_state = await self._reducer(working, action, self._dispatch)
        except Exception as exc:
            self.log.warning(
                "transition failed type=%s: %s", action.type if action else None, exc
            )
            if not self._config.rollback_on_error and action is not None:
                self._publish(working, action)
            _settle(entry.future, exc=exc)
            return

        self._publish(new_state, action)
        if action is not None:
            self._run_side_effects(action)
        _settle(entry.future, result=new_state)

    def _publish(self, new_state: Dict[str, Any], action: Optional[Action]) -> None:
        self._state = new_state
        self._version += 1
        self.log.debug("published version=%d type=%s", self._version, action.type if action else None)
        if self._on_publish is None:
            return
        try:
            self._on_publish(new_state)
        except Exception:
            self.log.error("subscriber failed on version=%d", self._version, exc_info=True)

    def _run_side_effects(self, action: Action) -> None:
        effects = self._side_effects.get(action.type, ())
        if not effects:
            return
        view = Getter(self._state)
        for effect in effects:
            try:
                result = effect.handler(state=view, dispatch=self._dispatch, type=action.type)
            except Exception as exc:
                self._side_effect_failed(exc, action, effect)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._watch_side_effect(result, action, effect))
                self._effect_tasks.add(task)

    async def _watch_side_effect(self, awaitable: Any, action: Action, effect: SideEffect) -> None:
        try:
            await awaitable
        except Exception as exc:
            self._side_effect_failed(exc, action, effect)
        finally:
            self._effect_tasks.discard(asyncio.current_task())

    def _side_effect_failed(self, exc: BaseException, action: Action, effect: SideEffect) -> None:
        self.log.error(
            "side effect %s failed for type=%s",
            getattr(effect.handler, "__name__", repr(effect.handler)), action.type,
            exc_info=exc,
        )
        callback = self._config.on_side_effect_error
        if callback is None:
            return
        try:
            callback(exc, action)
        except Exception:
            self.log.error("on_side_effect_error callback failed", exc_info=True)
