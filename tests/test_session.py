"""Tests for watch session wiring and one-shot compilation."""

import asyncio
from pathlib import Path

import pytest
from watchdog.events import FileDeletedEvent, FileModifiedEvent

from sasswatch.emitter import ERROR, LOG, WARN
from sasswatch.errors import GraphBuildError, RenderError, WatcherError
from sasswatch.session import WatchSession, compile_once


class _IdleObserver:
    def start(self):
        pass

    def schedule(self, handler, path, recursive=False):
        pass

    def stop(self):
        pass

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return True


async def _settle(session: WatchSession):
    # let call_soon_threadsafe callbacks run, then finish scheduled renders
    await asyncio.sleep(0.05)
    await session.dispatcher.wait()


def _session(root, renderer, emitter, **kwargs):
    return WatchSession(root, renderer, emitter, debounce=0.0, observer_factory=_IdleObserver, **kwargs)


def test_start_watches_every_graph_node(shared_partial_tree, renderer, emitter, temp_dir: Path):
    async def go():
        session = _session(temp_dir, renderer, emitter)
        await session.start()
        await session.close()
        return session

    session = asyncio.run(go())

    assert session.watcher.watched == frozenset(str(p) for p in shared_partial_tree.values())
    assert any("Watching 3 file(s)" in str(m) for m in emitter.messages(LOG))


def test_change_event_renders_affected_entry_points(shared_partial_tree, renderer, emitter, temp_dir: Path):
    async def go():
        session = _session(temp_dir, renderer, emitter)
        await session.start()
        session.watcher.handler.dispatch(FileModifiedEvent(str(shared_partial_tree["_vars.scss"])))
        await _settle(session)
        await session.close()

    asyncio.run(go())

    assert sorted(Path(s).name for s in renderer.sources) == ["main.scss", "other.scss"]


def test_watcher_error_then_change_still_renders(shared_partial_tree, renderer, emitter, temp_dir: Path):
    async def go():
        session = _session(temp_dir, renderer, emitter)
        await session.start()
        session.watcher.report_error(WatcherError("permission denied", str(temp_dir)))
        await _settle(session)
        session.watcher.handler.dispatch(FileModifiedEvent(str(shared_partial_tree["other.scss"])))
        await _settle(session)
        await session.close()

    asyncio.run(go())

    errors = emitter.messages(ERROR)
    assert len(errors) == 1 and isinstance(errors[0], WatcherError)
    assert renderer.sources == [str(shared_partial_tree["other.scss"])]


def test_removed_file_is_reported_without_render(shared_partial_tree, renderer, emitter, temp_dir: Path):
    async def go():
        session = _session(temp_dir, renderer, emitter)
        await session.start()
        session.watcher.handler.dispatch(FileDeletedEvent(str(shared_partial_tree["main.scss"])))
        await _settle(session)
        await session.close()
        return session

    session = asyncio.run(go())

    assert renderer.calls == []
    assert any("removed" in str(m) for m in emitter.messages(WARN))
    assert str(shared_partial_tree["main.scss"]) in session.graph


def test_render_failure_keeps_session_alive(shared_partial_tree, failing_renderer_factory, emitter, temp_dir: Path):
    main = str(shared_partial_tree["main.scss"])
    renderer = failing_renderer_factory(fail_for=[main])

    async def go():
        session = _session(temp_dir, renderer, emitter)
        await session.start()
        session.watcher.handler.dispatch(FileModifiedEvent(main))
        await _settle(session)
        session.watcher.handler.dispatch(FileModifiedEvent(str(shared_partial_tree["other.scss"])))
        await _settle(session)
        await session.close()

    asyncio.run(go())

    assert renderer.sources == [main, str(shared_partial_tree["other.scss"])]
    assert len(emitter.messages(ERROR)) == 1


class _HangingRenderer:
    def __init__(self):
        self.started = 0

    async def __call__(self, options, emitter):
        self.started += 1
        await asyncio.Event().wait()


def test_close_does_not_wait_forever_for_hung_renders(shared_partial_tree, emitter, temp_dir: Path):
    renderer = _HangingRenderer()

    async def go():
        session = _session(temp_dir, renderer, emitter, shutdown_timeout=0.1)
        await session.start()
        session.watcher.handler.dispatch(FileModifiedEvent(str(shared_partial_tree["_vars.scss"])))
        await asyncio.sleep(0.05)
        await asyncio.wait_for(session.close(), timeout=5)

    asyncio.run(go())

    assert renderer.started == 2
    assert any("2 render(s) still running" in str(m) for m in emitter.messages(WARN))


class _DeadObserver(_IdleObserver):
    def is_alive(self):
        return False


def test_dead_observer_is_reported_while_running(shared_partial_tree, renderer, emitter, temp_dir: Path):
    async def go():
        session = WatchSession(
            temp_dir,
            renderer,
            emitter,
            debounce=0.0,
            observer_factory=_DeadObserver,
            health_interval=0.02,
        )
        runner = asyncio.ensure_future(session.run())
        await asyncio.sleep(0.2)
        session.stop()
        await asyncio.wait_for(runner, timeout=5)

    asyncio.run(go())

    errors = emitter.messages(ERROR)
    assert len(errors) == 1
    assert isinstance(errors[0], WatcherError)


def test_missing_root_is_fatal(temp_dir: Path, renderer, emitter):
    session = _session(temp_dir / "missing", renderer, emitter)

    with pytest.raises(GraphBuildError):
        asyncio.run(session.start())
    assert isinstance(emitter.messages(ERROR)[0], GraphBuildError)


def test_run_until_stopped_with_real_observer(shared_partial_tree, renderer, emitter, temp_dir: Path):
    main = shared_partial_tree["main.scss"]

    async def go():
        session = WatchSession(temp_dir, renderer, emitter, debounce=0.0)
        runner = asyncio.ensure_future(session.run())
        await asyncio.sleep(0.3)
        for attempt in range(20):
            main.write_text(f'@import "vars";\nbody {{ margin: {attempt}px; }}\n', encoding="utf-8")
            await asyncio.sleep(0.25)
            if renderer.calls:
                break
        session.stop()
        await asyncio.wait_for(runner, timeout=10)

    asyncio.run(go())

    assert str(main) in renderer.sources


class TestCompileOnce:
    """One-shot mode."""

    def test_directory_renders_every_entry_point(self, shared_partial_tree, renderer, emitter, temp_dir: Path):
        status = asyncio.run(compile_once(temp_dir, renderer, emitter, output_dir=str(temp_dir / "css")))

        assert status == 0
        assert sorted(Path(s).name for s in renderer.sources) == ["main.scss", "other.scss"]
        assert sorted(Path(o.dest).name for o in renderer.calls) == ["main.css", "other.css"]

    def test_single_file_with_output_file(self, shared_partial_tree, renderer, emitter, temp_dir: Path):
        dest = temp_dir / "out" / "site.css"
        status = asyncio.run(
            compile_once(shared_partial_tree["main.scss"], renderer, emitter, output_file=str(dest))
        )

        assert status == 0
        assert [o.dest for o in renderer.calls] == [str(dest)]

    def test_failure_stops_compilation(self, shared_partial_tree, failing_renderer_factory, emitter, temp_dir: Path):
        main = str(shared_partial_tree["main.scss"])
        renderer = failing_renderer_factory(fail_for=[main])

        status = asyncio.run(compile_once(temp_dir, renderer, emitter))

        assert status == 1
        assert renderer.sources == [main]
        errors = emitter.messages(ERROR)
        assert all(isinstance(e, RenderError) for e in errors)
        assert errors[-1].src == main
        assert "0 of 2 file(s) compiled" in str(errors[-1])

    def test_failure_after_success_reports_progress(self, shared_partial_tree, failing_renderer_factory, emitter, temp_dir: Path):
        other = str(shared_partial_tree["other.scss"])
        renderer = failing_renderer_factory(fail_for=[other])

        status = asyncio.run(compile_once(temp_dir, renderer, emitter))

        assert status == 1
        assert len(renderer.calls) == 2
        assert "1 of 2 file(s) compiled" in str(emitter.messages(ERROR)[-1])

    def test_missing_root_raises(self, temp_dir: Path, renderer, emitter):
        with pytest.raises(GraphBuildError):
            asyncio.run(compile_once(temp_dir / "missing", renderer, emitter))
