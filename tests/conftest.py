"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import importlib.util
import sys
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path
from types import ModuleType

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local coverplane package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))


@pytest.fixture
def write_source(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write dedented source to ``tmp_path / name`` and return the path."""

    def write(name: str, source: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip("\n"))
        return path

    return write


@pytest.fixture
def load_module() -> Iterator[Callable[[Path, str], ModuleType]]:
    """Import a file as a fresh module, bypassing sys.meta_path caching."""
    loaded: list[str] = []

    def load(path: Path, name: str) -> ModuleType:
        spec = importlib.util.spec_from_file_location(name, path)
        assert spec is not None and spec.loader is not None
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        loaded.append(name)
        spec.loader.exec_module(module)
        return module

    yield load
    for name in loaded:
        sys.modules.pop(name, None)


@pytest.fixture
def restore_import_state() -> Iterator[None]:
    """Undo sys.meta_path, sys.path and sys.modules changes made by a test."""
    meta_path = list(sys.meta_path)
    path = list(sys.path)
    modules = set(sys.modules)
    trace = sys.gettrace()
    yield
    sys.meta_path[:] = meta_path
    sys.path[:] = path
    for name in set(sys.modules) - modules:
        del sys.modules[name]
    sys.settrace(trace)
