"""Module load interceptor.

A ``MetaPathFinder`` placed at the front of ``sys.meta_path``. For a module
that should be measured it instruments the source while the spec is being
found and returns a spec whose loader executes the instrumented code. Every
failure (excluded name, unresolvable path, analysis or rewrite error) makes
``find_spec`` return None, which hands the import to the regular finders and
loads the module untouched.

Guards:

- ``currently_loading``: names whose find or execution is in progress. A
  name that is already loading is left to the regular finders, which breaks
  import cycles without re-instrumenting.
- ``already_instrumented``: path -> InstrumentedModule, so a file is
  rewritten once however often it is imported.
- ``excluded``: names that must never be instrumented.
- ``max_depth``: bound on ``currently_loading``; deeper imports go to the
  regular finders.

Path resolution is a direct ``os.path.isfile`` search over the parent
package's ``__path__`` or ``sys.path``; it never goes through the import
system, so it can't recurse into this finder.
"""

from __future__ import annotations

import importlib.machinery
import importlib.util
import os
import sys
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from importlib.abc import MetaPathFinder
from importlib.machinery import ModuleSpec
from types import CodeType, ModuleType
from typing import TYPE_CHECKING

from coverplane.config.constants import DEFAULT_MAX_LOAD_DEPTH
from coverplane.core.errors import CoverPlaneError
from coverplane.core.excludes import ExclusionMatcher, is_hardcoded_module
from coverplane.core.logging import get_logger
from coverplane.core.paths import normalize_path
from coverplane.instrumentation.engine import InstrumentationEngine, InstrumentedModule
from coverplane.instrumentation.hooks import ModuleHooks, prepare_namespace

if TYPE_CHECKING:
    import structlog

ModuleRegistrar = Callable[[InstrumentedModule], ModuleHooks]


class InstrumentedSourceLoader(importlib.machinery.SourceFileLoader):
    """Executes pre-instrumented code; never reads or writes bytecode caches."""

    def __init__(
        self,
        fullname: str,
        path: str,
        module: InstrumentedModule,
        hooks: ModuleHooks,
        interceptor: ModuleLoadInterceptor,
    ) -> None:
        super().__init__(fullname, path)
        self._module = module
        self._hooks = hooks
        self._interceptor = interceptor

    def get_code(self, fullname: str) -> CodeType:
        return self._module.code

    def exec_module(self, module: ModuleType) -> None:
        prepare_namespace(module.__dict__, self._hooks)
        with self._interceptor.loading(self.name):
            super().exec_module(module)


class ModuleLoadInterceptor(MetaPathFinder):
    """Instruments matching modules as they are imported."""

    def __init__(
        self,
        engine: InstrumentationEngine,
        register: ModuleRegistrar,
        matcher: ExclusionMatcher,
        *,
        max_depth: int = DEFAULT_MAX_LOAD_DEPTH,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._register = register
        self._matcher = matcher
        self._max_depth = max_depth
        self._log = logger or get_logger("instrumentation.loader")
        self.currently_loading: set[str] = set()
        self.already_instrumented: dict[str, InstrumentedModule] = {}
        self.excluded: set[str] = set()
        self._hooked = False
        self._peak_depth = 0

    @property
    def hooked(self) -> bool:
        return self._hooked

    @property
    def max_depth(self) -> int:
        return self._max_depth

    @property
    def peak_depth(self) -> int:
        """Largest number of loads in progress at once since construction."""
        return self._peak_depth

    def hook(self) -> None:
        """Put the finder at the front of ``sys.meta_path``. Idempotent."""
        if self._hooked:
            return
        sys.meta_path.insert(0, self)
        self._hooked = True
        self._log.debug("loader_hooked")

    def unhook(self) -> None:
        """Remove the finder. A no-op when it was never hooked."""
        if not self._hooked:
            return
        try:
            sys.meta_path.remove(self)
        except ValueError:
            self._log.warning("loader_already_removed")
        finally:
            self._hooked = False
            self.currently_loading.clear()
            self._log.debug("loader_unhooked")

    @contextmanager
    def loading(self, fullname: str) -> Iterator[None]:
        """Mark ``fullname`` in progress for the duration of the block."""
        self.currently_loading.add(fullname)
        self._peak_depth = max(self._peak_depth, len(self.currently_loading))
        try:
            yield
        finally:
            self.currently_loading.discard(fullname)

    # ------------------------------------------------------------------
    # MetaPathFinder protocol
    # ------------------------------------------------------------------

    def find_spec(
        self,
        fullname: str,
        path: Sequence[str] | None = None,
        target: ModuleType | None = None,
    ) -> ModuleSpec | None:
        if not self._hooked or fullname in self.excluded:
            return None
        if is_hardcoded_module(fullname):
            self.excluded.add(fullname)
            return None
        if fullname in self.currently_loading:
            return None
        if len(self.currently_loading) >= self._max_depth:
            self._log.warning(
                "load_depth_exceeded", module=fullname, max_depth=self._max_depth
            )
            return None

        with self.loading(fullname):
            try:
                return self._instrumented_spec(fullname, path)
            except CoverPlaneError as e:
                self.excluded.add(fullname)
                self._log.warning(
                    "instrumentation_skipped",
                    module=fullname,
                    error=e.error_name,
                    reason=e.message,
                )
            except Exception as e:  # noqa: BLE001
                self.excluded.add(fullname)
                self._log.error(
                    "instrumentation_failed", module=fullname, error=str(e), exc_info=True
                )
        return None

    def invalidate_caches(self) -> None:
        self.already_instrumented.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _instrumented_spec(
        self, fullname: str, path: Sequence[str] | None
    ) -> ModuleSpec | None:
        resolved = resolve_module_path(fullname, path)
        if resolved is None:
            return None
        filename, is_package = resolved
        key = normalize_path(filename)
        if self._matcher.is_excluded(key):
            self.excluded.add(fullname)
            return None

        module = self.already_instrumented.get(key)
        if module is None:
            module = self._engine.instrument_file(key)
            self.already_instrumented[key] = module
            self._log.debug("module_instrumented", module=fullname, path=key)
        hooks = self._register(module)

        loader = InstrumentedSourceLoader(fullname, filename, module, hooks, self)
        return importlib.util.spec_from_file_location(
            fullname,
            filename,
            loader=loader,
            submodule_search_locations=[os.path.dirname(filename)] if is_package else None,
        )


def resolve_module_path(
    fullname: str, path: Sequence[str] | None = None
) -> tuple[str, bool] | None:
    """Find the ``.py`` file for ``fullname``: (filename, is_package) or None.

    Follows the file finder's order within each directory: a package
    directory wins over a module, and a compiled extension wins over
    source (None is returned so the regular finders load it).
    """
    name = fullname.rpartition(".")[2]
    entries = list(path) if path is not None else list(sys.path)
    for entry in entries:
        if not isinstance(entry, str):
            continue
        base = os.path.join(entry or os.getcwd(), name)
        init = os.path.join(base, "__init__.py")
        if os.path.isfile(init):
            return init, True
        if any(os.path.isfile(base + suffix) for suffix in importlib.machinery.EXTENSION_SUFFIXES):
            return None
        if os.path.isfile(base + ".py"):
            return base + ".py", False
    return None
