"""
Memoized one-shot loader.

Wraps a loader function so it runs at most once per OnceLoader instance.
Every caller of load() gets the same outcome: the same return value, or
the same exception re-raised. The state lives on the instance, so two
sessions with two loaders never share it, and tests can inject their own.
"""

import threading
from typing import Callable, Generic, TypeVar


T = TypeVar("T")


class OnceLoader(Generic[T]):
    """
    Run a loader function once and memoize its outcome.

    Example:
        migration = OnceLoader(LegacyMigration(store).run)
        migration.load()  # runs the migration
        migration.load()  # returns the first report without running again
    """

    def __init__(self, loader: Callable[[], T]) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._done = False
        self._result: T | None = None
        self._error: BaseException | None = None

    @property
    def loaded(self) -> bool:
        return self._done

    def load(self) -> T:
        with self._lock:
            if not self._done:
                try:
                    self._result = self._loader()
                except Exception as e:
                    self._error = e
                self._done = True

        if self._error is not None:
            raise self._error
        return self._result

    def reset(self) -> None:
        """Forget the memoized outcome so the next load() runs again."""
        with self._lock:
            self._done = False
            self._result = None
            self._error = None
