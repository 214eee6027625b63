"""lexmod: lexically scoped export/import of function modules.

A unit exports a curated subset of its functions; other module or class bodies
import that subset and call it unqualified, without becoming subclasses of
anything, without seeing hidden helpers and without passing the imports on.
"""

from __future__ import annotations

from . import errors
from .exporter import declare_module, export, module
from .facade import ModuleFacade, declared_modules, get_module
from .forwarding import extract_stack, format_exception, synthesize
from .importer import import_, resolve, using
from .signature import describe

__all__ = [
    "ModuleFacade",
    "declare_module",
    "declared_modules",
    "describe",
    "errors",
    "export",
    "extract_stack",
    "format_exception",
    "get_module",
    "import_",
    "module",
    "resolve",
    "synthesize",
    "using",
]
