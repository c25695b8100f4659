"""Tests for the watchdog-backed file watcher."""

import threading
import time
from pathlib import Path

from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from sasswatch.errors import WatcherError
from sasswatch.models import ChangeKind
from sasswatch.watcher import FileWatcher


class _FakeObserver:
    """Observer stand-in whose schedule() fails for selected directories."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.scheduled = []
        self.alive = False

    def start(self):
        self.alive = True

    def schedule(self, handler, path, recursive=False):
        if path in self.failing:
            raise OSError(28, "inotify watch limit reached")
        self.scheduled.append((path, recursive))

    def stop(self):
        self.alive = False

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.alive


def _collecting_watcher(paths, debounce=0.0, **kwargs):
    events, errors = [], []
    watcher = FileWatcher(paths, events.append, errors.append, debounce=debounce, **kwargs)
    return watcher, events, errors


def test_real_modification_is_reported(shared_partial_tree):
    target = shared_partial_tree["_vars.scss"]
    seen = threading.Event()
    events = []

    def on_changed(event):
        events.append(event)
        if event.file_path == str(target) and event.kind is ChangeKind.CHANGED:
            seen.set()

    watcher = FileWatcher([str(target)], on_changed, debounce=0.0)
    with watcher:
        time.sleep(0.3)
        for attempt in range(10):
            target.write_text(f"$primary: #{attempt}{attempt}{attempt};\n", encoding="utf-8")
            if seen.wait(0.5):
                break

    assert seen.is_set()
    assert all(event.file_path == str(target) for event in events)


def test_events_outside_watch_set_are_ignored(shared_partial_tree, temp_dir: Path):
    watcher, events, _ = _collecting_watcher([str(shared_partial_tree["main.scss"])])

    watcher.handler.dispatch(FileModifiedEvent(str(shared_partial_tree["other.scss"])))
    watcher.handler.dispatch(FileCreatedEvent(str(temp_dir / "new.scss")))
    watcher.handler.dispatch(DirModifiedEvent(str(temp_dir)))

    assert events == []


def test_modified_created_deleted_kinds(shared_partial_tree):
    main = str(shared_partial_tree["main.scss"])
    watcher, events, _ = _collecting_watcher([main])

    watcher.handler.dispatch(FileModifiedEvent(main))
    watcher.handler.dispatch(FileDeletedEvent(main))
    watcher.handler.dispatch(FileCreatedEvent(main))

    assert [e.kind for e in events] == [ChangeKind.CHANGED, ChangeKind.REMOVED, ChangeKind.CHANGED]
    assert {e.file_path for e in events} == {main}


def test_atomic_save_by_rename_counts_as_change(shared_partial_tree, temp_dir: Path):
    main = str(shared_partial_tree["main.scss"])
    watcher, events, _ = _collecting_watcher([main])

    watcher.handler.dispatch(FileMovedEvent(str(temp_dir / ".main.scss.swp"), main))

    assert [(e.file_path, e.kind) for e in events] == [(main, ChangeKind.CHANGED)]


def test_coalescing_window(shared_partial_tree):
    main = str(shared_partial_tree["main.scss"])
    coalesced, coalesced_events, _ = _collecting_watcher([main], debounce=60.0)
    every, every_events, _ = _collecting_watcher([main], debounce=0.0)

    for _ in range(3):
        coalesced.handler.dispatch(FileModifiedEvent(main))
        every.handler.dispatch(FileModifiedEvent(main))

    assert len(coalesced_events) == 1
    assert len(every_events) == 3
    coalesced.stop()


def test_last_write_in_window_is_reported_after_it_closes(shared_partial_tree):
    main = str(shared_partial_tree["main.scss"])
    watcher, events, _ = _collecting_watcher([main], debounce=0.05)

    watcher.handler.dispatch(FileModifiedEvent(main))
    time.sleep(0.01)
    watcher.handler.dispatch(FileModifiedEvent(main))
    watcher.handler.dispatch(FileModifiedEvent(main))
    time.sleep(0.3)

    assert [e.kind for e in events] == [ChangeKind.CHANGED, ChangeKind.CHANGED]
    assert all(e.file_path == main for e in events)
    watcher.stop()


def test_trailing_change_follows_second_write(shared_partial_tree):
    main = str(shared_partial_tree["main.scss"])
    arrivals = []
    watcher = FileWatcher([main], lambda event: arrivals.append(time.monotonic()), debounce=0.05)

    watcher.handler.dispatch(FileModifiedEvent(main))
    time.sleep(0.01)
    second_write = time.monotonic()
    watcher.handler.dispatch(FileModifiedEvent(main))
    time.sleep(0.3)

    assert len(arrivals) == 2
    assert arrivals[1] >= second_write
    watcher.stop()


def test_removal_cancels_pending_trailing_change(shared_partial_tree):
    main = str(shared_partial_tree["main.scss"])
    watcher, events, _ = _collecting_watcher([main], debounce=0.1)

    watcher.handler.dispatch(FileModifiedEvent(main))
    watcher.handler.dispatch(FileModifiedEvent(main))
    watcher.handler.dispatch(FileDeletedEvent(main))
    time.sleep(0.3)

    assert [e.kind for e in events] == [ChangeKind.CHANGED, ChangeKind.REMOVED]


def test_callback_failure_is_reported_and_watching_continues(shared_partial_tree):
    main = str(shared_partial_tree["main.scss"])
    delivered, errors = [], []

    def flaky(event):
        if not delivered:
            delivered.append(None)
            raise RuntimeError("listener exploded")
        delivered.append(event)

    watcher = FileWatcher([main], flaky, errors.append, debounce=0.0)
    watcher.handler.dispatch(FileModifiedEvent(main))
    watcher.handler.dispatch(FileModifiedEvent(main))

    assert len(errors) == 1
    assert isinstance(errors[0], WatcherError)
    assert delivered[-1].file_path == main


def test_schedule_failure_is_reported(write_files):
    files = write_files({"a/one.scss": "", "b/two.scss": ""})
    failing_dir = str(files["a/one.scss"].parent)
    observer = _FakeObserver(failing=[failing_dir])

    watcher, _, errors = _collecting_watcher(
        [str(files["a/one.scss"]), str(files["b/two.scss"])],
        observer_factory=lambda: observer,
    )
    watcher.start()

    assert len(errors) == 1
    assert errors[0].path == failing_dir
    assert observer.scheduled == [(str(files["b/two.scss"].parent), False)]
    assert watcher.running
    watcher.stop()
    assert not watcher.running


def test_watched_set_is_fixed(shared_partial_tree):
    paths = [str(p) for p in shared_partial_tree.values()]
    watcher, _, _ = _collecting_watcher(paths)
    assert watcher.watched == frozenset(paths)


class _DeadEmitter:
    def __init__(self, path):
        self.watch = type("Watch", (), {"path": path})()

    def is_alive(self):
        return False


def test_check_reports_dead_emitter_once(write_files):
    files = write_files({"a/one.scss": ""})
    directory = str(files["a/one.scss"].parent)
    observer = _FakeObserver()
    observer.emitters = {_DeadEmitter(directory)}

    watcher, _, errors = _collecting_watcher([str(files["a/one.scss"])], observer_factory=lambda: observer)
    watcher.start()

    assert watcher.check() is False
    assert watcher.check() is False
    assert len(errors) == 1
    assert isinstance(errors[0], WatcherError)
    assert errors[0].path == directory
    watcher.stop()


def test_check_reports_stopped_observer(shared_partial_tree):
    observer = _FakeObserver()
    watcher, _, errors = _collecting_watcher(
        [str(shared_partial_tree["main.scss"])], observer_factory=lambda: observer
    )
    watcher.start()
    assert watcher.check() is True

    observer.alive = False

    assert watcher.check() is False
    assert len(errors) == 1 and "observer" in str(errors[0])
