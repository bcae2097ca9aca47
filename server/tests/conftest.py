from typing import Any, Callable, Iterable, List, Tuple

import pytest

from esshims.services.reporting import BatchAggregator


class ManualTimer:
    def __init__(self, when: float, callback: Callable[[], Any]):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by `advance()` instead of the wall clock."""

    def __init__(self):
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted((t for t in self.active if t.when <= target), key=lambda t: t.when)
            if not due:
                break
            timer = due[0]
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target


class ReportRecorder:
    def __init__(self, scheduler: ManualScheduler):
        self.scheduler = scheduler
        self.reports: List[Tuple[float, List[str]]] = []

    def __call__(self, deps: Iterable[str]) -> None:
        self.reports.append((self.scheduler.now, sorted(deps)))


class FakeUtils:
    """Records the tree mutations a provider asks for."""

    def __init__(self):
        self.global_imports: List[str] = []
        self.default_imports: List[Tuple[str, str]] = []
        self.replacements: List[Tuple[Any, str]] = []

    def inject_global_import(self, module_path: str) -> None:
        self.global_imports.append(module_path)

    def inject_default_import(self, module_path: str, name_hint: str) -> str:
        self.default_imports.append((module_path, name_hint))
        return f"_{name_hint.replace('.', '')}"

    def replace(self, node: Any, reference: str) -> None:
        self.replacements.append((node, reference))


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def recorder(scheduler: ManualScheduler) -> ReportRecorder:
    return ReportRecorder(scheduler)


@pytest.fixture
def aggregator(scheduler: ManualScheduler, recorder: ReportRecorder) -> BatchAggregator:
    return BatchAggregator(delay=1.0, scheduler=scheduler, report=recorder)


@pytest.fixture
def fake_utils() -> FakeUtils:
    return FakeUtils()
