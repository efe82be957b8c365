import logging
from typing import Any, Generic, Iterator, TypeVar, Callable

T = TypeVar("T", bound=Callable[..., Any])


class ListenerSet(Generic[T]):
    """
    Insertion-ordered collection of event listeners.

    - the same listener may be registered several times and is then
      notified once per registration
    - adding None and removing an unknown listener are no-ops
    - remove() drops a single registration, the oldest one
    - iteration and notify() work on a snapshot, so listeners may add or
      remove listeners while a notification is in progress

    A listener raising an exception is logged and does not prevent the
    remaining listeners from being notified.
    """

    def __init__(self, name: str = "listeners") -> None:
        self._name = name
        self._listeners: list[T] = []
        self._logger = logging.getLogger("core.helpers.listeners")

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._listeners))

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, listener: object) -> bool:
        return listener in self._listeners

    def add(self, listener: T | None) -> None:
        if listener is None:
            return
        self._listeners.append(listener)

    def remove(self, listener: T | None) -> None:
        if listener is None:
            return
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def notify(self, *args: Any) -> None:
        for listener in self:
            if listener is None:
                continue
            try:
                listener(*args)
            except Exception as ex:
                self._logger.error(
                    f"Listener {listener!r} of {self._name} failed: {ex}",
                    exc_info=ex
                )
