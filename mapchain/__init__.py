"""Flatten chains of source maps into a single mapping table."""

from __future__ import annotations

from typing import Any

__version__ = "0.3.0"

__all__ = [
    "__version__",
    "FileSpec",
    "MergeOptions",
    "merge",
    "merge_file",
    "resolve",
    "trace_chain",
]


def merge(*args: Any, **kwargs: Any):
    from .orchestrator import merge as _merge

    return _merge(*args, **kwargs)


def merge_file(*args: Any, **kwargs: Any):
    from .orchestrator import merge_file as _merge_file

    return _merge_file(*args, **kwargs)


def resolve(*args: Any, **kwargs: Any):
    from .orchestrator import resolve as _resolve

    return _resolve(*args, **kwargs)


def trace_chain(*args: Any, **kwargs: Any):
    from .orchestrator import trace_chain as _trace_chain

    return _trace_chain(*args, **kwargs)


def __getattr__(name: str):
    if name in {"FileSpec", "MergeOptions"}:
        from . import models

        return getattr(models, name)
    raise AttributeError(name)
