from __future__ import annotations

import os

PRIMARY_PREFIX = "UPOSE_"


def get_env(name: str, default: str | None = None) -> str | None:
    """
    Resolve configuration environment variables.

    Every tunable is read as ``UPOSE_<NAME>`` so deployments can override the
    tracker constants without touching code.
    """
    value = os.getenv(f"{PRIMARY_PREFIX}{name}")
    if value is not None:
        return value
    return default


def truthy(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return bool(default)
    return value.strip().lower() not in {"0", "false", "no", "off", ""}
