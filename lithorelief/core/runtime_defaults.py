"""
Runtime defaults for CLI processing.

Values can be overridden via environment variables so the sampling limits are
not hardcoded in multiple entrypoints.
"""

from __future__ import annotations

from dataclasses import dataclass
import os


ENV_SAMPLING_RESOLUTION = "LITHORELIEF_SAMPLING_RESOLUTION"
ENV_MAX_RESOLUTION = "LITHORELIEF_MAX_RESOLUTION"
ENV_STL_HEADER = "LITHORELIEF_STL_HEADER"

DEFAULT_STL_HEADER = "LithoRelief binary STL"


@dataclass(frozen=True)
class RuntimeDefaults:
    sampling_resolution: int
    max_resolution: int
    stl_header: str


def _read_int_env(
    env_name: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_header_env(env_name: str, default: str) -> str:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    value = str(raw).strip()
    if not value:
        return default
    # Binary STL headers are 80 bytes; longer text is truncated at write time.
    try:
        value.encode("ascii")
    except UnicodeEncodeError:
        return default
    return value


def load_runtime_defaults() -> RuntimeDefaults:
    default_max = 4096

    max_resolution = _read_int_env(ENV_MAX_RESOLUTION, default_max, min_value=16, max_value=16384)
    sampling_resolution = _read_int_env(
        ENV_SAMPLING_RESOLUTION,
        1024,
        min_value=16,
        max_value=max_resolution,
    )

    return RuntimeDefaults(
        sampling_resolution=sampling_resolution,
        max_resolution=max_resolution,
        stl_header=_read_header_env(ENV_STL_HEADER, DEFAULT_STL_HEADER),
    )


DEFAULTS = load_runtime_defaults()
