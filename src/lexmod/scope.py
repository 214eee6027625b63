"""Lexical installation of imported forwarders.

Two kinds of scope can import:

- a module body (or an `exec` whose locals are its globals): forwarders are
  bound in that namespace, so every function and class written inside the
  module sees them and no other module does;
- a class body: forwarders are visible to the rest of the class body while it
  runs, then removed from the finished class. When the class is created,
  every function written inside the class body (including the functions
  behind `functools.wraps`-style decorators) is rebound
  onto a `ScopedGlobals` mapping that resolves the imported names first and
  everything else through the enclosing globals. Subclasses, instances and
  sibling classes therefore see nothing.

Function bodies, and `exec` calls with separate locals, cannot import.
"""

from __future__ import annotations

import functools
import inspect
import logging
import types
from collections.abc import MutableMapping
from types import FrameType
from typing import Any, Callable

from .errors import ConfigurationError, ConflictError
from .facade import LexicalExtension, ModuleFacade, metadata_of

logger = logging.getLogger(__name__)

PENDING_IMPORTS_KEY = "__lexmod_imports__"


class ScopedGlobals(dict):
    """Globals of functions defined in an importing class body.

    Holds the imported forwarders; any other name is looked up in `parent`
    (the module globals, or the `ScopedGlobals` of an enclosing class).
    """

    __slots__ = ("parent",)

    def __init__(self, own: dict[str, Any], parent: dict[str, Any]):
        super().__init__(own)
        self.parent = parent
        # Read with plain dict lookups by the interpreter, so they must be present.
        for key in ("__builtins__", "__name__"):
            try:
                self[key] = parent[key]
            except KeyError:
                pass

    def __missing__(self, key: str) -> Any:
        return self.parent[key]

    def reparented(self, root: dict[str, Any]) -> "ScopedGlobals":
        parent = self.parent
        if isinstance(parent, ScopedGlobals):
            new_parent: dict[str, Any] = parent.reparented(root)
        else:
            new_parent = root
        own = {k: v for k, v in self.items() if k not in ("__builtins__", "__name__")}
        return ScopedGlobals(own, new_parent)

    def __repr__(self) -> str:
        names = [k for k in self if not k.startswith("__")]
        return f"ScopedGlobals({names!r})"


class Scope:
    identity: str

    def answers_to(self, name: str) -> bool:
        raise NotImplementedError

    def install(self, extension: LexicalExtension) -> None:
        raise NotImplementedError

    def check_conflicts(self, names, source: str | None = None) -> None:
        origin = f" from {source}" if source else ""
        for name in names:
            if self.answers_to(name):
                raise ConflictError(
                    f'Cannot import function "{name}"{origin}. {self.identity} already has a function by that name.'
                )

    @staticmethod
    def of_frame(frame: FrameType) -> "Scope":
        if frame.f_code.co_flags & inspect.CO_OPTIMIZED:
            raise ConfigurationError(
                f"cannot import into function {frame.f_code.co_name!r}; "
                "import at module or class-body level"
            )
        namespace = frame.f_locals
        if namespace is frame.f_globals:
            return NamespaceScope(namespace, identity=f"module {namespace.get('__name__', '?')}")
        if "__module__" in namespace and "__qualname__" in namespace:
            return ClassBodyScope(namespace)
        # Functions defined here would look names up in the globals, never in these locals.
        raise ConfigurationError(
            f"cannot import into a namespace whose locals are not its globals ({frame.f_code.co_name!r}); "
            "pass a single mapping to exec or import at module or class-body level"
        )


class NamespaceScope(Scope):
    def __init__(self, namespace: MutableMapping[str, Any], *, identity: str):
        self.namespace = namespace
        self.identity = identity

    def answers_to(self, name: str) -> bool:
        return name in self.namespace

    def install(self, extension: LexicalExtension) -> None:
        self.namespace.update(extension.forwarders)
        logger.debug("installed %s from %s into %s", list(extension.names), extension.source, self.identity)


class _PendingImports:
    """Collects class-body imports until the class object exists."""

    def __init__(self) -> None:
        self.forwarders: dict[str, Callable[..., Any]] = {}

    def __set_name__(self, owner: type, name: str) -> None:
        delattr(owner, name)
        # The forwarders were visible to the class body; the finished class must not carry them.
        for imported, fwd in self.forwarders.items():
            if vars(owner).get(imported) is fwd:
                delattr(owner, imported)
        if self.forwarders:
            bind_class(owner, self.forwarders)


class ClassBodyScope(Scope):
    def __init__(self, namespace: MutableMapping[str, Any]):
        self.namespace = namespace
        self.identity = f"class {namespace['__qualname__']}"

    def _pending(self) -> _PendingImports:
        pending = self.namespace.get(PENDING_IMPORTS_KEY)
        if pending is None:
            pending = _PendingImports()
            self.namespace[PENDING_IMPORTS_KEY] = pending
        return pending

    def answers_to(self, name: str) -> bool:
        pending = self.namespace.get(PENDING_IMPORTS_KEY)
        return name in self.namespace or (pending is not None and name in pending.forwarders)

    def install(self, extension: LexicalExtension) -> None:
        self._pending().forwarders.update(extension.forwarders)
        # Statements later in the class body (attributes, decorators) call them directly.
        self.namespace.update(extension.forwarders)
        logger.debug("queued %s from %s for %s", list(extension.names), extension.source, self.identity)


def _inside(qualname: str, prefix: str) -> bool:
    return qualname.startswith(prefix + ".")


def _lexical(fn: types.FunctionType, prefix: str) -> bool:
    # `functools.wraps` copies the qualname onto wrappers written elsewhere; those keep their globals.
    return _inside(fn.__qualname__, prefix) and "__wrapped__" not in fn.__dict__


class _Rebinder:
    def __init__(self, forwarders: dict[str, Callable[..., Any]]):
        self.forwarders = forwarders
        self._by_globals: dict[int, ScopedGlobals] = {}
        # id -> (original, rebound); the original is kept alive so its id is not reused.
        self._rebound: dict[int, tuple[types.FunctionType, types.FunctionType]] = {}
        self._seen: dict[int, types.FunctionType] = {}

    def scoped(self, g: dict[str, Any]) -> ScopedGlobals:
        key = id(g)
        found = self._by_globals.get(key)
        if found is not None:
            return found
        if isinstance(g, ScopedGlobals):
            # An inner class imported on its own; keep its names in front of ours.
            root = g
            while isinstance(root.parent, ScopedGlobals):
                root = root.parent
            scoped = g.reparented(self.scoped(root.parent))
        else:
            scoped = ScopedGlobals(self.forwarders, g)
        self._by_globals[key] = scoped
        return scoped

    def function(self, fn: types.FunctionType) -> types.FunctionType:
        found = self._rebound.get(id(fn))
        if found is not None:
            return found[1]
        new = types.FunctionType(
            fn.__code__, self.scoped(fn.__globals__), fn.__name__, fn.__defaults__, fn.__closure__
        )
        new.__kwdefaults__ = fn.__kwdefaults__
        new.__qualname__ = fn.__qualname__
        new.__module__ = fn.__module__
        new.__doc__ = fn.__doc__
        new.__dict__.update(fn.__dict__)
        annotations = getattr(fn, "__annotations__", None)
        if annotations:
            new.__annotations__ = annotations
        if getattr(fn, "__type_params__", None):
            new.__type_params__ = fn.__type_params__
        self._rebound[id(fn)] = (fn, new)
        self._rebound[id(new)] = (new, new)
        return new

    def wrapper(self, fn: types.FunctionType, prefix: str) -> None:
        """Rebind functions of the class that a decorator closed over."""
        if id(fn) in self._seen:
            return
        self._seen[id(fn)] = fn
        for cell in fn.__closure__ or ():
            try:
                inner = cell.cell_contents
            except ValueError:
                continue
            if not isinstance(inner, types.FunctionType):
                continue
            if _lexical(inner, prefix):
                cell.cell_contents = self.function(inner)
            elif "__wrapped__" in inner.__dict__:
                self.wrapper(inner, prefix)
        wrapped = fn.__dict__.get("__wrapped__")
        if isinstance(wrapped, types.FunctionType) and _lexical(wrapped, prefix):
            fn.__wrapped__ = self.function(wrapped)

    def member(self, value: Any, prefix: str) -> Any:
        if isinstance(value, types.FunctionType):
            self.wrapper(value, prefix)
            return self.function(value) if _lexical(value, prefix) else value
        if isinstance(value, staticmethod):
            inner = self.member(value.__func__, prefix)
            return value if inner is value.__func__ else staticmethod(inner)
        if isinstance(value, classmethod):
            inner = self.member(value.__func__, prefix)
            return value if inner is value.__func__ else classmethod(inner)
        if type(value) is property:
            parts = [self.member(f, prefix) if f is not None else None for f in (value.fget, value.fset, value.fdel)]
            if all(a is b for a, b in zip(parts, (value.fget, value.fset, value.fdel))):
                return value
            return property(*parts, value.__doc__)
        if isinstance(value, functools.cached_property):
            value.func = self.member(value.func, prefix)
            return value
        if inspect.isclass(value) and _inside(value.__qualname__, prefix):
            self.klass(value)
            return value
        if isinstance(value, ModuleFacade):
            metadata = metadata_of(value)
            owner = metadata.backing_unit.owner if metadata is not None else None
            if inspect.isclass(owner) and _inside(owner.__qualname__, prefix):
                # Forwarders look the implementation up on the unit, so rebinding it in place suffices.
                self.klass(owner)
            return value
        wrapped = getattr(value, "__wrapped__", None)
        if isinstance(wrapped, types.FunctionType) and _lexical(wrapped, prefix):
            raise ConfigurationError(
                f"cannot make imports visible to {wrapped.__qualname__}: it is wrapped by "
                f"{type(value).__name__!r}, which is not a function; call the imported names "
                "qualified there, or apply the decorator outside the importing class"
            )
        return value

    def klass(self, cls: type) -> None:
        for name, value in list(vars(cls).items()):
            new = self.member(value, cls.__qualname__)
            if new is not value:
                setattr(cls, name, new)


def bind_class(cls: type, forwarders: dict[str, Callable[..., Any]]) -> None:
    """Make `forwarders` visible to every function written inside `cls`."""
    _Rebinder(dict(forwarders)).klass(cls)
    logger.debug("bound %s into class %s", list(forwarders), cls.__qualname__)
