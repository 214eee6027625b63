from __future__ import annotations

import os


def _flag(var: str, default: bool) -> bool:
    raw = os.environ.get(var)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def warn_on_empty_export() -> bool:
    """Whether exporting zero functions emits `EmptyExportWarning`.

    Override with `LEXMOD_WARN_EMPTY_EXPORT=0`.
    """
    return _flag("LEXMOD_WARN_EMPTY_EXPORT", True)


def source_cache_enabled() -> bool:
    """Whether parsed source files are memoized by the signature inspector.

    Override with `LEXMOD_SOURCE_CACHE=0` (useful when sources are edited in-process).
    """
    return _flag("LEXMOD_SOURCE_CACHE", True)
