"""Export builder: partition a unit and publish its forwarders behind a facade."""

from __future__ import annotations

import logging
import warnings
from typing import Any, Callable, Iterable

from . import config
from .errors import ConfigurationError, EmptyExportWarning, UnknownSymbolError
from .facade import ExportMetadata, LexicalExtension, ModuleFacade, Unit, register
from .forwarding import synthesize

logger = logging.getLogger(__name__)


def _names(values: Iterable[Any], *, what: str) -> list[str]:
    if isinstance(values, str):
        raise ConfigurationError(f"{what} must be a list of names, not the string {values!r}")
    out: list[str] = []
    for v in values:
        if not isinstance(v, str):
            raise ConfigurationError(f"{what} must contain function names, got {v!r}")
        if v not in out:
            out.append(v)
    return out


def build_export(
    unit: Unit,
    selected: Iterable[str] = (),
    excluded: Iterable[str] = (),
    *,
    stacklevel: int = 2,
) -> ExportMetadata:
    """Compute the exported/hidden partition of `unit`."""
    selected = _names(selected, what="names")
    excluded = _names(excluded, what="except_")
    if selected and excluded:
        raise ConfigurationError("names and except_ are mutually exclusive")

    all_names = list(unit.names)
    if selected:
        missing = [n for n in selected if n not in unit.implementation_functions]
        if missing:
            raise UnknownSymbolError(
                f"The following functions do not exist in {unit.display_name or '<anonymous>'}: "
                f"{', '.join(missing)}"
            )
        exported = selected
    else:
        exported = [n for n in all_names if n not in excluded]
        if not exported:
            logger.debug("exported zero functions from %s", unit.display_name or "<anonymous>")
            if config.warn_on_empty_export():
                warnings.warn(
                    f"exported zero functions from {unit.display_name or '<anonymous>'}",
                    EmptyExportWarning,
                    stacklevel=stacklevel + 1,
                )

    hidden = [n for n in all_names if n not in exported]
    return ExportMetadata(backing_unit=unit, exported_names=tuple(exported), hidden_names=tuple(hidden))


def export(unit: Any, *names: str, except_: Iterable[str] = (), name: str | None = None) -> ModuleFacade:
    """Export functions of `unit` (a class, module, mapping or namespace).

    With no `names` every public function is exported, minus `except_`.
    Returns the facade: `facade.fn(...)` works anywhere, and `import_(facade)`
    makes `fn(...)` callable unqualified inside the importing scope.
    """
    u = Unit.of(unit, name=name)
    metadata = build_export(u, names, except_, stacklevel=2)

    forwarders: dict[str, Callable[..., Any]] = {
        n: synthesize(u.owner, n) for n in metadata.exported_names
    }
    extension = LexicalExtension.build(u.display_name, forwarders)
    if u.display_name is None:
        # No stable identity: nothing to import from, no qualified delegators.
        facade = ModuleFacade(None, None, extension)
    else:
        facade = ModuleFacade(u.display_name, metadata, extension)
    logger.debug(
        "exported %s from %s (hidden: %s)",
        list(metadata.exported_names),
        u.display_name or "<anonymous>",
        list(metadata.hidden_names),
    )
    return facade


def declare_module(name: str, body: Any) -> ModuleFacade:
    """Create a module named `name` from `body`, export all of it and register it."""
    if not name or not isinstance(name, str):
        raise ConfigurationError(f"module name must be a non-empty string, got {name!r}")
    facade = export(Unit.of(body, name=name))
    register(name, facade)
    return facade


def module(cls: type | None = None, *, name: str | None = None):
    """Class decorator form of `declare_module`.

        @module
        class Arithmetic:
            def add(a, b):
                return a + b

        Arithmetic.add(1, 2)
    """

    def decorator(c: type) -> ModuleFacade:
        return declare_module(name or c.__name__, c)

    if cls is not None:
        return decorator(cls)
    return decorator
