"""Synthesize forwarding functions with the exact parameter list of their target."""

from __future__ import annotations

import functools
import inspect
import keyword
import logging
import sys
import traceback
from types import FrameType
from typing import Any, Callable

from .errors import IntrospectionError
from .signature import ParameterDescriptor, ParamKind, describe

logger = logging.getLogger(__name__)

FORWARDER_FILENAME = "<lexmod-forwarder>"


def is_forwarder(fn: Any) -> bool:
    return getattr(fn, "__lexmod_forwarder__", False) is True


def _owner_ref(names: list[str]) -> str:
    ref = "__lexmod_owner__"
    while ref in names:
        ref += "_"
    return ref


def render_forwarder(descriptor: ParameterDescriptor, name: str, *, owner_ref: str = "__lexmod_owner__") -> str:
    """Return the source of a forwarder named `name` calling `owner_ref.name`.

    Defaulted parameters are rendered with `None` placeholders; the real default
    objects are attached afterwards by `synthesize`.
    """
    if not name.isidentifier() or keyword.iskeyword(name):
        raise IntrospectionError(f"cannot forward {name!r}: not a valid identifier")

    params: list[str] = []
    args: list[str] = []
    last_posonly = -1
    saw_star = False
    for p in descriptor:
        kind = p.kind
        default = "=None" if p.has_default else ""
        if kind in (ParamKind.POSITIONAL_REQUIRED, ParamKind.POSITIONAL_OPTIONAL):
            params.append(f"{p.name}{default}")
            args.append(p.name)
        elif kind is ParamKind.REST_POSITIONAL:
            params.append(f"*{p.name}")
            args.append(f"*{p.name}")
            saw_star = True
        elif kind in (ParamKind.KEYWORD_REQUIRED, ParamKind.KEYWORD_OPTIONAL):
            if not saw_star:
                params.append("*")
                saw_star = True
            params.append(f"{p.name}{default}")
            args.append(f"{p.name}={p.name}")
        elif kind is ParamKind.REST_KEYWORD:
            params.append(f"**{p.name}")
            args.append(f"**{p.name}")
        elif kind is ParamKind.TRAILING_CALLBACK:
            if p.keyword_only:
                if not saw_star:
                    params.append("*")
                    saw_star = True
                params.append(f"{p.name}{default}")
                args.append(f"{p.name}={p.name}")
            else:
                params.append(f"{p.name}{default}")
                args.append(p.name)
        elif kind is ParamKind.FORWARD_ALL:
            params.append(f"*{p.name}, **{p.partner}")
            args.append(f"*{p.name}, **{p.partner}")
        else:
            raise IntrospectionError(f"cannot forward {name!r}: unsupported parameter kind {kind!r}")
        if p.positional_only:
            last_posonly = len(params) - 1
    if last_posonly >= 0:
        params.insert(last_posonly + 1, "/")

    lines = [
        f"def {name}({', '.join(params)}):",
        "    __tracebackhide__ = True",
        f"    return {owner_ref}.{name}({', '.join(args)})",
    ]
    return "\n".join(lines) + "\n"


def _default_values(target: Callable[..., Any], descriptor: ParameterDescriptor, name: str):
    wanted = [p for p in descriptor if p.has_default]
    if not wanted:
        return None, None
    try:
        sig = inspect.signature(target)
    except (TypeError, ValueError) as e:
        raise IntrospectionError(f"cannot recover defaults of {name!r}: {e}") from e

    positional: list[Any] = []
    keywords: dict[str, Any] = {}
    for p in wanted:
        sp = sig.parameters.get(p.name)
        if sp is None or sp.default is inspect.Parameter.empty:
            raise IntrospectionError(f"cannot recover the default of {name}({p.name}=...)")
        if sp.kind is inspect.Parameter.KEYWORD_ONLY:
            keywords[p.name] = sp.default
        else:
            positional.append(sp.default)
    return tuple(positional) or None, keywords or None


def synthesize(owner: Any, method_name: str) -> Callable[..., Any]:
    """Build a forwarder for `owner.<method_name>`.

    The target is looked up on `owner` at call time, so rebinding the
    implementation is picked up by every forwarder already handed out.
    """
    try:
        target = getattr(owner, method_name)
    except AttributeError:
        raise IntrospectionError(f"{owner!r} has no function {method_name!r}") from None

    descriptor = describe(target)
    ref = _owner_ref(descriptor.names)
    src = render_forwarder(descriptor, method_name, owner_ref=ref)

    namespace: dict[str, Any] = {ref: owner, "__name__": getattr(target, "__module__", None) or __name__}
    exec(compile(src, FORWARDER_FILENAME, "exec"), namespace)
    fwd = namespace[method_name]

    fwd.__defaults__, fwd.__kwdefaults__ = _default_values(target, descriptor, method_name)
    functools.update_wrapper(fwd, target)
    fwd.__lexmod_forwarder__ = True
    logger.debug("synthesized forwarder %s(%s)", method_name, ", ".join(descriptor.names))
    return fwd


def extract_stack(f: FrameType | None = None, limit: int | None = None) -> traceback.StackSummary:
    """Like `traceback.extract_stack`, minus the frames of synthesized forwarders.

    Forwarder frames stay on the real stack: tracebacks, `inspect.stack()` and
    `traceback.format_exc()` still show them under the `<lexmod-forwarder>`
    filename. Use `format_exception` for tracebacks without them.
    """
    if f is None:
        f = sys._getframe(1)
    frames = (
        (frame, lineno)
        for frame, lineno in traceback.walk_stack(f)
        if frame.f_code.co_filename != FORWARDER_FILENAME
    )
    stack = traceback.StackSummary.extract(frames, limit=limit)
    stack.reverse()
    return stack


def _drop_forwarder_frames(te: traceback.TracebackException, seen: set[int]) -> None:
    if id(te) in seen:
        return
    seen.add(id(te))
    te.stack = traceback.StackSummary.from_list(
        [fs for fs in te.stack if fs.filename != FORWARDER_FILENAME]
    )
    for chained in (te.__cause__, te.__context__, *(getattr(te, "exceptions", None) or ())):
        if chained is not None:
            _drop_forwarder_frames(chained, seen)


def format_exception(exc: BaseException) -> list[str]:
    """Like `traceback.format_exception(exc)`, minus the frames of synthesized forwarders.

    Chained causes and contexts are filtered too.
    """
    te = traceback.TracebackException.from_exception(exc)
    _drop_forwarder_frames(te, set())
    return list(te.format())
