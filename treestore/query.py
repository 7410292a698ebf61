"""
Observable snapshot holder and path queries.

ObservableWrapper keeps the current snapshot in a reactivex BehaviorSubject;
StoreQuery narrows it to one path of the tree for reading or subscribing.
"""

from typing import Any, Callable, Optional, Sequence, Tuple

from reactivex import operators as ops
from reactivex.abc import DisposableBase
from reactivex.subject import BehaviorSubject

from .core.tree import MISSING, normalize_path, resolve_path
from .logging_config import get_logger

logger = get_logger(__name__)

# should_update(old, new) -> bool
ShouldUpdate = Callable[[Any, Any], bool]


def _always(old: Any, new: Any) -> bool:
    return True


class ObservableWrapper:
    """Current snapshot behind get / set + notify."""

    def __init__(self, value: Any = None) -> None:
        self.observable = BehaviorSubject(value)

    @property
    def value(self) -> Any:
        return self.observable.value

    def next(self, value: Any) -> None:
        self.observable.on_next(value)


class StoreQuery:
    """
    A path into the store.

    Usage:
        query = store.get("clock.minute")
        query.value
        disposable = query.subscribe(print, lambda old, new: old != new)
        disposable.dispose()
    """

    def __init__(self, root: ObservableWrapper, path: Sequence[str] = ()) -> None:
        self._root = root
        self._path: Tuple[str, ...] = tuple(path)

    @property
    def path(self) -> Tuple[str, ...]:
        return self._path

    @property
    def value(self) -> Any:
        """Node at this path in the current snapshot, None when absent."""
        return resolve_path(self._root.value, self._path)

    def get(self, key: Any = "", *rest: str) -> "StoreQuery":
        """Narrow further: store.get("a").get("b.c") is store.get("a.b.c")."""
        return StoreQuery(self._root, self._path + normalize_path(key, rest))

    def subscribe(self, observer: Any, should_update: Optional[ShouldUpdate] = None) -> DisposableBase:
        """
        Subscribe to the node at this path.

        The observer is called with the current value right away, then with
        every new value for which should_update(old, new) is true.

        Args:
            observer: Callable or object with on_next (and optionally
                on_error / on_completed)
            should_update: Predicate on (old, new) values of the node

        Returns:
            Disposable; call dispose() to unsubscribe
        """
        check = should_update or _always
        path = self._path

        def step(prev: Tuple[Any, Any], snapshot: Any) -> Tuple[Any, Any]:
            return prev[1], resolve_path(snapshot, path)

        def wanted(pair: Tuple[Any, Any]) -> bool:
            old, new = pair
            return old is MISSING or bool(check(old, new))

        stream = self._root.observable.pipe(
            ops.scan(step, seed=(MISSING, MISSING)),
            ops.filter(wanted),
            ops.map(lambda pair: pair[1]),
        )

        if callable(getattr(observer, "on_next", None)):
            return stream.subscribe(
                on_next=self._guard(observer.on_next),
                on_error=getattr(observer, "on_error", None),
                on_completed=getattr(observer, "on_completed", None),
            )
        if callable(observer):
            return stream.subscribe(on_next=self._guard(observer))
        raise TypeError(f"observer must be callable or have on_next: {observer!r}")

    def _guard(self, on_next: Callable[[Any], Any]) -> Callable[[Any], None]:
        """Log an observer failure instead of raising it into the subject."""
        where = ".".join(self._path) or "<root>"

        def guarded(value: Any) -> None:
            try:
                on_next(value)
            except Exception:
                logger.error("subscriber failed on path=%s", where, exc_info=True)

        return guarded
