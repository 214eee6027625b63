"""Units, export metadata and the facades handed to Python user code."""

from __future__ import annotations

import inspect
import types
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from .errors import UnknownSymbolError
from .forwarding import is_forwarder


def _implementation_candidate(name: str, value: Any) -> Callable[..., Any] | None:
    if name.startswith("_"):
        return None
    if isinstance(value, staticmethod):
        return value.__func__
    if isinstance(value, (classmethod, type, ModuleFacade)):
        return None
    if not callable(value) or is_forwarder(value):
        return None
    return value


@dataclass(frozen=True)
class Unit:
    """Owner of the real implementations behind a facade.

    `owner` is what forwarders look functions up on; `implementation_functions`
    maps each public function name to its callable, in definition order.
    """

    owner: Any
    implementation_functions: Mapping[str, Callable[..., Any]]
    display_name: str | None = None

    @classmethod
    def of(cls, obj: Any, *, name: str | None = None) -> "Unit":
        if isinstance(obj, Unit):
            if name is None or name == obj.display_name:
                return obj
            return cls(obj.owner, obj.implementation_functions, name)

        if isinstance(obj, types.ModuleType):
            funcs = {
                k: fn
                for k, v in vars(obj).items()
                if (fn := _implementation_candidate(k, v)) is not None
                and getattr(fn, "__module__", None) == obj.__name__
            }
            return cls(obj, types.MappingProxyType(funcs), name or obj.__name__)

        if inspect.isclass(obj):
            funcs = {
                k: fn for k, v in vars(obj).items() if (fn := _implementation_candidate(k, v)) is not None
            }
            return cls(obj, types.MappingProxyType(funcs), name or obj.__name__)

        if isinstance(obj, Mapping):
            # A bare mapping cannot answer to its names by attribute access; give it a namespace that can.
            funcs = {
                k: fn for k, v in obj.items() if (fn := _implementation_candidate(k, v)) is not None
            }
            return cls(types.SimpleNamespace(**funcs), types.MappingProxyType(funcs), name)

        if isinstance(obj, types.SimpleNamespace):
            funcs = {
                k: fn for k, v in vars(obj).items() if (fn := _implementation_candidate(k, v)) is not None
            }
            return cls(obj, types.MappingProxyType(funcs), name)

        raise TypeError(f"cannot export from {obj!r}: expected a class, module, mapping or namespace")

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.implementation_functions)


@dataclass(frozen=True)
class ExportMetadata:
    backing_unit: Unit
    exported_names: tuple[str, ...]
    hidden_names: tuple[str, ...]

    def is_exported(self, name: str) -> bool:
        return name in self.exported_names

    def is_hidden(self, name: str) -> bool:
        return name in self.hidden_names


@dataclass(frozen=True)
class LexicalExtension:
    """Immutable bundle of forwarders installed into one importing scope."""

    source: str | None
    forwarders: Mapping[str, Callable[..., Any]] = field(repr=False)

    @classmethod
    def build(cls, source: str | None, forwarders: Mapping[str, Callable[..., Any]]) -> "LexicalExtension":
        return cls(source, types.MappingProxyType(dict(forwarders)))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.forwarders)

    def narrowed(self, names: list[str]) -> "LexicalExtension":
        return LexicalExtension.build(self.source, {n: self.forwarders[n] for n in names})

    def __contains__(self, name: object) -> bool:
        return name in self.forwarders


class ModuleFacade:
    """Publicly addressable proxy through which qualified calls and imports go.

    Exported functions are plain read-only attributes (`Geometry.hyp(3, 4)`).
    """

    __slots__ = ("__dict__", "__lexmod_name__", "__lexmod_export__", "__lexmod_extension__")

    def __init__(
        self,
        display_name: str | None,
        metadata: ExportMetadata | None,
        extension: LexicalExtension,
    ) -> None:
        object.__setattr__(self, "__lexmod_name__", display_name)
        object.__setattr__(self, "__lexmod_export__", metadata)
        object.__setattr__(self, "__lexmod_extension__", extension)
        if display_name is not None:
            # Qualified delegators only exist for facades with a stable identity.
            self.__dict__.update(extension.forwarders)

    def __getattr__(self, name: str) -> Any:
        metadata = object.__getattribute__(self, "__lexmod_export__")
        display = object.__getattribute__(self, "__lexmod_name__")
        if metadata is not None and metadata.is_hidden(name):
            raise AttributeError(f"module {display} does not export {name!r}")
        raise AttributeError(f"module {display or '<anonymous>'} has no function {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"module facade {self.__lexmod_name__} is read-only")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"module facade {self.__lexmod_name__} is read-only")

    def __dir__(self) -> list[str]:
        return sorted(self.__dict__)

    def __repr__(self) -> str:
        name = self.__lexmod_name__ or "<anonymous>"
        return f"<lexmod module {name} exports={list(self.__lexmod_extension__.names)}>"


def metadata_of(facade: ModuleFacade) -> ExportMetadata | None:
    return facade.__lexmod_export__


def extension_of(facade: ModuleFacade) -> LexicalExtension:
    return facade.__lexmod_extension__


_DECLARED_MODULES: dict[str, ModuleFacade] = {}


def register(name: str, facade: ModuleFacade) -> None:
    _DECLARED_MODULES[name] = facade


def get_module(name: str) -> ModuleFacade:
    try:
        return _DECLARED_MODULES[name]
    except KeyError:
        raise UnknownSymbolError(f"no module declared as {name!r}") from None


def declared_modules() -> dict[str, ModuleFacade]:
    return dict(_DECLARED_MODULES)
