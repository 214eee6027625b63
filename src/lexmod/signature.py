"""Recover the parameter shape of a callable so it can be forwarded verbatim."""

from __future__ import annotations

import ast
import collections.abc
import enum
import inspect
import linecache
import logging
import threading
import typing
from dataclasses import dataclass
from typing import Any, Callable

from . import config
from .errors import IntrospectionError

logger = logging.getLogger(__name__)


class ParamKind(enum.Enum):
    POSITIONAL_REQUIRED = "positional-required"
    POSITIONAL_OPTIONAL = "positional-optional"
    REST_POSITIONAL = "rest-positional"
    KEYWORD_REQUIRED = "keyword-required"
    KEYWORD_OPTIONAL = "keyword-optional"
    REST_KEYWORD = "rest-keyword"
    TRAILING_CALLBACK = "trailing-callback"
    FORWARD_ALL = "forward-all"


@dataclass(frozen=True)
class Param:
    kind: ParamKind
    name: str
    has_default: bool = False
    positional_only: bool = False
    # Only meaningful for TRAILING_CALLBACK: the slot it occupies.
    keyword_only: bool = False
    # Only meaningful for FORWARD_ALL: the `**kwargs` name.
    partner: str | None = None


@dataclass(frozen=True)
class ParameterDescriptor:
    params: tuple[Param, ...]

    @property
    def names(self) -> list[str]:
        out: list[str] = []
        for p in self.params:
            out.append(p.name)
            if p.partner is not None:
                out.append(p.partner)
        return out

    def __iter__(self):
        return iter(self.params)

    def __len__(self) -> int:
        return len(self.params)


# path -> parsed module; source is assumed immutable for the process lifetime.
_SOURCE_CACHE: dict[str, ast.Module] = {}
_SOURCE_LOCK = threading.Lock()


def clear_source_cache() -> None:
    with _SOURCE_LOCK:
        _SOURCE_CACHE.clear()


def describe(fn: Callable[..., Any]) -> ParameterDescriptor:
    """Return the parameter descriptor of `fn`.

    The source definition is preferred (it is what the author wrote); callables
    without retrievable source fall back to `inspect.signature`.
    """
    node = _find_def(fn)
    if node is not None:
        return _describe_ast(node.args)
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError) as e:
        raise IntrospectionError(f"cannot determine the signature of {fn!r}: {e}") from e
    return _describe_signature(sig)


def _parse_file(path: str) -> ast.Module | None:
    use_cache = config.source_cache_enabled()
    if use_cache:
        with _SOURCE_LOCK:
            tree = _SOURCE_CACHE.get(path)
            if tree is not None:
                return tree
            tree = _read_and_parse(path)
            if tree is not None:
                _SOURCE_CACHE[path] = tree
            return tree
    return _read_and_parse(path)


def _read_and_parse(path: str) -> ast.Module | None:
    lines = linecache.getlines(path)
    if not lines:
        return None
    try:
        tree = ast.parse("".join(lines), filename=path)
    except SyntaxError as e:
        raise IntrospectionError(f"cannot parse {path}: {e}") from e
    logger.debug("parsed %s for signature inspection", path)
    return tree


def _find_def(fn: Callable[..., Any]) -> ast.FunctionDef | ast.AsyncFunctionDef | None:
    target = inspect.unwrap(fn)
    code = getattr(target, "__code__", None)
    if code is None:
        return None
    try:
        path = inspect.getsourcefile(target)
    except TypeError:
        return None
    if path is None:
        return None
    tree = _parse_file(path)
    if tree is None:
        return None

    line = code.co_firstlineno
    for node in ast.walk(tree):
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        if node.name != code.co_name:
            continue
        first = min([node.lineno, *(d.lineno for d in node.decorator_list)])
        if first == line or node.lineno == line:
            return node
    return None


def _is_callable_annotation(ann: Any) -> bool:
    if ann is None or ann is inspect.Parameter.empty:
        return False
    if isinstance(ann, ast.Constant) and isinstance(ann.value, str):
        ann = ann.value
    if isinstance(ann, str):
        head = ann.strip().strip("'\"").split("[", 1)[0].strip()
        return head == "Callable" or head.endswith(".Callable")
    if isinstance(ann, ast.Subscript):
        ann = ann.value
    if isinstance(ann, ast.Name):
        return ann.id == "Callable"
    if isinstance(ann, ast.Attribute):
        return ann.attr == "Callable"
    if isinstance(ann, ast.AST):
        return False
    return ann in (collections.abc.Callable, typing.Callable) or typing.get_origin(ann) in (
        collections.abc.Callable,
        typing.Callable,
    )


def _mark_trailing_callback(params: list[Param], last_annotation: Any) -> list[Param]:
    if not params or not _is_callable_annotation(last_annotation):
        return params
    last = params[-1]
    if last.kind in (ParamKind.REST_POSITIONAL, ParamKind.REST_KEYWORD):
        return params
    keyword_only = last.kind in (ParamKind.KEYWORD_REQUIRED, ParamKind.KEYWORD_OPTIONAL)
    params[-1] = Param(
        ParamKind.TRAILING_CALLBACK,
        last.name,
        has_default=last.has_default,
        positional_only=last.positional_only,
        keyword_only=keyword_only,
    )
    return params


def _describe_ast(a: ast.arguments) -> ParameterDescriptor:
    positional = [*a.posonlyargs, *a.args]
    if not positional and not a.kwonlyargs and a.vararg is not None and a.kwarg is not None:
        return ParameterDescriptor(
            (Param(ParamKind.FORWARD_ALL, a.vararg.arg, partner=a.kwarg.arg),)
        )

    params: list[Param] = []
    first_default = len(positional) - len(a.defaults)
    n_posonly = len(a.posonlyargs)
    for i, arg in enumerate(positional):
        kind = ParamKind.POSITIONAL_OPTIONAL if i >= first_default else ParamKind.POSITIONAL_REQUIRED
        params.append(Param(kind, arg.arg, has_default=i >= first_default, positional_only=i < n_posonly))
    if a.vararg is not None:
        params.append(Param(ParamKind.REST_POSITIONAL, a.vararg.arg))
    for arg, default in zip(a.kwonlyargs, a.kw_defaults):
        if default is None:
            params.append(Param(ParamKind.KEYWORD_REQUIRED, arg.arg))
        else:
            params.append(Param(ParamKind.KEYWORD_OPTIONAL, arg.arg, has_default=True))

    last_annotation = None
    if a.kwarg is not None:
        params.append(Param(ParamKind.REST_KEYWORD, a.kwarg.arg))
    elif a.kwonlyargs:
        last_annotation = a.kwonlyargs[-1].annotation
    elif a.vararg is None and positional:
        last_annotation = positional[-1].annotation
    return ParameterDescriptor(tuple(_mark_trailing_callback(params, last_annotation)))


def _describe_signature(sig: inspect.Signature) -> ParameterDescriptor:
    P = inspect.Parameter
    ps = list(sig.parameters.values())
    kinds = [p.kind for p in ps]
    if kinds == [P.VAR_POSITIONAL, P.VAR_KEYWORD]:
        return ParameterDescriptor((Param(ParamKind.FORWARD_ALL, ps[0].name, partner=ps[1].name),))

    params: list[Param] = []
    for p in ps:
        has_default = p.default is not P.empty
        if p.kind in (P.POSITIONAL_ONLY, P.POSITIONAL_OR_KEYWORD):
            kind = ParamKind.POSITIONAL_OPTIONAL if has_default else ParamKind.POSITIONAL_REQUIRED
            params.append(Param(kind, p.name, has_default=has_default, positional_only=p.kind is P.POSITIONAL_ONLY))
        elif p.kind is P.VAR_POSITIONAL:
            params.append(Param(ParamKind.REST_POSITIONAL, p.name))
        elif p.kind is P.KEYWORD_ONLY:
            kind = ParamKind.KEYWORD_OPTIONAL if has_default else ParamKind.KEYWORD_REQUIRED
            params.append(Param(kind, p.name, has_default=has_default))
        elif p.kind is P.VAR_KEYWORD:
            params.append(Param(ParamKind.REST_KEYWORD, p.name))
        else:
            raise IntrospectionError(f"unsupported parameter kind {p.kind!r} for {p.name!r}")

    last_annotation = None
    if ps and ps[-1].kind not in (P.VAR_POSITIONAL, P.VAR_KEYWORD):
        last_annotation = ps[-1].annotation
    return ParameterDescriptor(tuple(_mark_trailing_callback(params, last_annotation)))
