import logging
import threading

import pytest

from esshims.services import reporting
from esshims.services.reporting import (
    BatchAggregator,
    ThreadingScheduler,
    format_missing_dependencies,
    log_missing_dependencies,
)


def test_format_missing_dependencies_sorted_and_deduplicated():
    message = format_missing_dependencies(["b@^1.0.0", "a@^2.0.0", "a@^2.0.0"])

    assert message == (
        "\nSome polyfills have been added but are not present in your dependencies.\n"
        "Please run one of the following commands:\n"
        "\tnpm install --save a@^2.0.0 b@^1.0.0\n"
        "\tyarn add a@^2.0.0 b@^1.0.0\n"
    )


def test_format_missing_dependencies_empty_is_none():
    assert format_missing_dependencies([]) is None
    assert format_missing_dependencies(set()) is None


def test_log_missing_dependencies_warns_once(caplog):
    with caplog.at_level(logging.WARNING, logger="esshims.services.reporting"):
        log_missing_dependencies({"array-includes@^3.1.1", "globalthis@^1.0.0"})

    records = [r for r in caplog.records if r.name == "esshims.services.reporting"]
    assert len(records) == 1
    assert records[0].levelno == logging.WARNING
    assert "npm install --save array-includes@^3.1.1 globalthis@^1.0.0" in records[0].getMessage()
    assert "yarn add array-includes@^3.1.1 globalthis@^1.0.0" in records[0].getMessage()


def test_log_missing_dependencies_silent_when_empty(caplog):
    with caplog.at_level(logging.DEBUG, logger="esshims.services.reporting"):
        log_missing_dependencies(set())

    assert caplog.records == []


def test_debounce_fires_once_after_last_merge(aggregator, scheduler, recorder):
    aggregator.merge({"a@^1.0.0"})
    scheduler.advance(0.5)
    aggregator.merge({"b@^1.0.0"})
    scheduler.advance(0.4)
    aggregator.merge({"c@^1.0.0"})

    # 1.8s: still inside the window that started with the last merge at 0.9s.
    scheduler.advance(0.9)
    assert recorder.reports == []

    scheduler.advance(0.2)
    assert len(recorder.reports) == 1
    fired_at, deps = recorder.reports[0]
    assert fired_at == pytest.approx(1.9)
    assert deps == ["a@^1.0.0", "b@^1.0.0", "c@^1.0.0"]

    scheduler.advance(10)
    assert len(recorder.reports) == 1


def test_merge_order_does_not_matter(aggregator, scheduler, recorder):
    aggregator.merge(["b@^1.0.0"])
    aggregator.merge(["a@^2.0.0"])
    aggregator.merge(["a@^2.0.0"])
    scheduler.advance(1.0)

    assert recorder.reports == [(1.0, ["a@^2.0.0", "b@^1.0.0"])]


def test_window_resets_after_flush(aggregator, scheduler, recorder):
    aggregator.merge({"a@^1.0.0"})
    scheduler.advance(1.0)
    assert aggregator.pending == set()

    aggregator.merge({"b@^1.0.0"})
    scheduler.advance(1.0)

    assert [deps for _, deps in recorder.reports] == [["a@^1.0.0"], ["b@^1.0.0"]]


def test_rescheduling_cancels_previous_timer(aggregator, scheduler):
    aggregator.merge({"a@^1.0.0"})
    aggregator.merge({"b@^1.0.0"})

    assert len(scheduler.timers) == 2
    assert scheduler.timers[0].cancelled
    assert len(scheduler.active) == 1


def test_stale_timer_callback_does_not_flush(aggregator, scheduler, recorder):
    aggregator.merge({"a@^1.0.0"})
    stale = scheduler.timers[0]
    aggregator.merge({"b@^1.0.0"})

    # A timer that was already running when it got cancelled.
    stale.callback()

    assert recorder.reports == []
    assert aggregator.pending == {"a@^1.0.0", "b@^1.0.0"}


def test_empty_window_flush_is_silent(scheduler, caplog):
    aggregator = BatchAggregator(delay=1.0, scheduler=scheduler)

    with caplog.at_level(logging.WARNING, logger="esshims.services.reporting"):
        aggregator.merge(set())
        scheduler.advance(2.0)

    assert caplog.records == []


def test_flush_logs_through_default_reporter(scheduler, caplog):
    aggregator = BatchAggregator(delay=1.0, scheduler=scheduler)

    with caplog.at_level(logging.WARNING, logger="esshims.services.reporting"):
        aggregator.merge({"object.assign@^4.1.0"})
        scheduler.advance(1.0)

    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 1
    assert "npm install --save object.assign@^4.1.0" in messages[0]


def test_default_aggregator_is_shared(monkeypatch):
    monkeypatch.setattr(reporting, "_default_aggregator", None)

    first = reporting.get_default_aggregator()
    second = reporting.get_default_aggregator()

    assert first is second
    assert first.delay == 1.0


def test_threading_scheduler_flushes_after_real_delay():
    flushed = threading.Event()
    reports = []

    def report(deps):
        reports.append(sorted(deps))
        flushed.set()

    aggregator = BatchAggregator(delay=0.05, report=report)
    assert isinstance(aggregator.scheduler, ThreadingScheduler)

    aggregator.merge(["b@^1.0.0", "a@^1.0.0", "b@^1.0.0"])

    assert flushed.wait(timeout=5)
    assert reports == [["a@^1.0.0", "b@^1.0.0"]]
    assert aggregator.pending == set()


def test_threading_scheduler_timer_can_be_cancelled():
    fired = threading.Event()

    timer = ThreadingScheduler().call_later(0.05, fired.set)
    timer.cancel()

    assert not fired.wait(timeout=0.2)
