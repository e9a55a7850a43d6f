"""upose package."""

from importlib import metadata
from typing import Any

try:
    __version__ = metadata.version("upose")
except metadata.PackageNotFoundError:  # pragma: no cover - fallback for local edits
    __version__ = "0.0.0"

__all__ = ["app", "__version__", "pose", "PoseContext", "PoseSettings", "load_settings"]


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    if name == "app":
        from .cli import app

        return app
    if name == "pose":
        from . import pose

        return pose
    if name == "PoseContext":
        from .pose.context import PoseContext

        return PoseContext
    if name in {"PoseSettings", "load_settings"}:
        from . import config as _config

        return getattr(_config, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
