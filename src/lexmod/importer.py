"""Public import API for lexmod modules."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Iterable

from .errors import ConfigurationError, UnknownSymbolError, VisibilityError
from .exporter import _names
from .facade import LexicalExtension, ModuleFacade, extension_of, get_module, metadata_of
from .scope import Scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportRequest:
    facade: ModuleFacade
    selected_names: tuple[str, ...] = ()
    excluded_names: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.selected_names and self.excluded_names:
            raise ConfigurationError("names and except_ are mutually exclusive")

    @property
    def is_passthrough(self) -> bool:
        return not self.selected_names and not self.excluded_names


def _facade(target: ModuleFacade | str) -> ModuleFacade:
    if isinstance(target, str):
        return get_module(target)
    if not isinstance(target, ModuleFacade):
        raise ConfigurationError(f"cannot import from {target!r}: not an exported module")
    return target


def resolve(
    facade: ModuleFacade | str,
    selected: Iterable[str] = (),
    excluded: Iterable[str] = (),
    *,
    scope: Scope | None = None,
) -> LexicalExtension:
    """Validate an import of `facade` and return the extension to install.

    When `scope` is given, names it already answers to are rejected before
    anything is installed.
    """
    req = ImportRequest(
        _facade(facade),
        tuple(_names(selected, what="names")),
        tuple(_names(excluded, what="except_")),
    )
    metadata = metadata_of(req.facade)
    if metadata is None:
        raise ConfigurationError(f"{req.facade!r} is anonymous; export it with a name to import it")

    hidden_attempts = [n for n in req.selected_names if metadata.is_hidden(n)]
    if hidden_attempts:
        raise VisibilityError(
            f"The following hidden functions cannot be imported: {', '.join(hidden_attempts)}"
        )

    bad_names = [n for n in req.selected_names if not metadata.is_exported(n)]
    if bad_names:
        raise UnknownSymbolError(f"The following functions do not exist: {', '.join(bad_names)}")

    if req.selected_names:
        in_scope = list(req.selected_names)
    else:
        in_scope = [n for n in metadata.exported_names if n not in req.excluded_names]

    if scope is not None:
        scope.check_conflicts(in_scope, metadata.backing_unit.display_name)

    full = extension_of(req.facade)
    if req.is_passthrough:
        return full
    return full.narrowed(in_scope)


def import_(facade: ModuleFacade | str, *names: str, except_: Iterable[str] = ()) -> LexicalExtension:
    """Import functions exported by `facade` into the calling module or class body.

    - No `names` and no `except_`: every exported function.
    - `names`: only those (each must be exported).
    - `except_`: every exported function except those.

    `facade` may also be the name given to `declare_module`.
    """
    scope = Scope.of_frame(sys._getframe(1))
    extension = resolve(facade, names, except_, scope=scope)
    scope.install(extension)
    logger.debug("imported %s from %s into %s", list(extension.names), extension.source, scope.identity)
    return extension


def using(extension: LexicalExtension) -> LexicalExtension:
    """Install an extension obtained from `resolve` into the calling module or class body."""
    scope = Scope.of_frame(sys._getframe(1))
    scope.check_conflicts(extension.names, extension.source)
    scope.install(extension)
    return extension
