"""
billing_engines.tracer -- invocation tracer emitting BILLING_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine function and logs its name,
    version, a fingerprint of selected keyword inputs and its duration.

Architecture position:
    Engines -- infrastructure for the pure calculation layer.  Emits one
    log record per call and has no other side effect.

Invariants enforced:
    - The fingerprint is deterministic: mappings are canonicalized with
      sorted keys and the hash is a 16-character SHA-256 prefix.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from typing import Any

from billing_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in sorted(value.items())) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Hash the named keyword inputs; absent ones count as "null"."""
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits BILLING_ENGINE_TRACE around an engine call."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields
                else ""
            )
            started = time.monotonic()
            result = func(*args, **kwargs)
            _logger.info(
                "BILLING_ENGINE_TRACE",
                extra={
                    "trace_type": "BILLING_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
