"""Source instrumentation: rewriting modules to report their own coverage."""

from coverplane.instrumentation.engine import InstrumentationEngine, InstrumentedModule
from coverplane.instrumentation.hooks import ModuleHooks, prepare_namespace
from coverplane.instrumentation.loader import (
    InstrumentedSourceLoader,
    ModuleLoadInterceptor,
    resolve_module_path,
)
from coverplane.instrumentation.rewriter import SourceRewriter

__all__ = [
    "InstrumentationEngine",
    "InstrumentedModule",
    "InstrumentedSourceLoader",
    "ModuleHooks",
    "ModuleLoadInterceptor",
    "SourceRewriter",
    "prepare_namespace",
    "resolve_module_path",
]
