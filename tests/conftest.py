"""Pytest configuration and fixtures for sasswatch tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List

import pytest

from sasswatch.emitter import Emitter
from sasswatch.models import RenderOptions


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path_factory, monkeypatch):
    """Keep every test away from the real ~/.sasswatch/config.toml."""
    home = tmp_path_factory.mktemp("sasswatch_home")
    monkeypatch.setattr("sasswatch.config.BASE_DIR", home)
    monkeypatch.setattr("sasswatch.config.CONFIG_FILE", home / "config.toml")
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def write_files(temp_dir: Path) -> Callable[[Dict[str, str]], Dict[str, Path]]:
    """Write ``{relative path: source}`` under ``temp_dir`` and return absolute paths."""

    def _write(files: Dict[str, str]) -> Dict[str, Path]:
        written = {}
        for name, source in files.items():
            path = temp_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
            written[name] = path.absolute()
        return written

    return _write


@pytest.fixture
def shared_partial_tree(write_files) -> Dict[str, Path]:
    """main.scss and other.scss both import _vars.scss."""
    return write_files(
        {
            "_vars.scss": "$primary: #336699;\n",
            "main.scss": '@import "vars";\nbody { color: $primary; }\n',
            "other.scss": "@import 'vars';\na { color: $primary; }\n",
        }
    )


@pytest.fixture
def emitter() -> Emitter:
    return Emitter()


class RecordingRenderer:
    """Render collaborator double that records every options object it gets."""

    def __init__(self, fail_for=()):
        self.calls: List[RenderOptions] = []
        self.fail_for = {str(p) for p in fail_for}

    async def __call__(self, options: RenderOptions, emitter: Emitter) -> None:
        self.calls.append(options)
        if options.src in self.fail_for:
            raise RuntimeError(f"boom: {options.src}")
        emitter.log(f"Wrote CSS to {options.dest}")

    @property
    def sources(self) -> List[str]:
        return [options.src for options in self.calls]


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def failing_renderer_factory():
    return RecordingRenderer
