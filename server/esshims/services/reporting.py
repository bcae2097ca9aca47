import logging
import threading
from typing import Any, Callable, Iterable, Optional, Protocol, Set

from esshims.config import MISSING_DEPENDENCIES_FLUSH_DELAY

logger = logging.getLogger(__name__)


def format_missing_dependencies(missing_deps: Iterable[str]) -> Optional[str]:
    """Build the install hint for `missing_deps`, or None when nothing is missing."""
    deps_list = sorted(set(missing_deps))
    if not deps_list:
        return None

    deps = " ".join(deps_list)
    return (
        "\nSome polyfills have been added but are not present in your dependencies.\n"
        "Please run one of the following commands:\n"
        f"\tnpm install --save {deps}\n"
        f"\tyarn add {deps}\n"
    )


def log_missing_dependencies(missing_deps: Iterable[str]) -> None:
    message = format_missing_dependencies(missing_deps)
    if message is None:
        return
    logger.warning(message)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class ThreadingScheduler:
    """Runs callbacks on a `threading.Timer` after a wall-clock delay."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        # Not a daemon: a CLI run that ends inside the quiescence window still
        # gets its report before the interpreter exits.
        timer.daemon = False
        timer.start()
        return timer


class BatchAggregator:
    """
    Collects missing-dependency keys from many compilation units and logs a
    single consolidated warning once no new keys have arrived for `delay`
    seconds (trailing-edge debounce).

    Every `merge` pushes the pending flush back. The flush logs the sorted,
    deduplicated union of everything merged since the previous flush and
    then starts a fresh window.
    """

    def __init__(
        self,
        delay: float = MISSING_DEPENDENCIES_FLUSH_DELAY,
        scheduler: Optional[Scheduler] = None,
        report: Callable[[Iterable[str]], None] = log_missing_dependencies,
    ):
        self.delay = delay
        self.scheduler = scheduler or ThreadingScheduler()
        self.report = report
        self._lock = threading.Lock()
        self._pending: Set[str] = set()
        self._timer: Optional[TimerHandle] = None
        # Bumped on every reschedule so a timer that was cancelled too late
        # to stop it cannot flush a newer window.
        self._generation = 0

    @property
    def pending(self) -> Set[str]:
        with self._lock:
            return set(self._pending)

    def merge(self, keys: Iterable[str]) -> None:
        with self._lock:
            self._pending.update(keys)
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self.scheduler.call_later(
                self.delay, lambda: self._flush(generation)
            )

    def _flush(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            deps = self._pending
            self._pending = set()
            self._timer = None

        self.report(deps)


_default_aggregator: Optional[BatchAggregator] = None

def get_default_aggregator() -> BatchAggregator:
    global _default_aggregator
    if _default_aggregator is None:
        _default_aggregator = BatchAggregator()
    return _default_aggregator
