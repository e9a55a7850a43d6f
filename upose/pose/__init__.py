"""Tracking core: perceptual maps, candidates, role assignment and joint proposal."""

from __future__ import annotations

from typing import Any

from .candidates import extract_candidates
from .heatmap import HeatmapProposer, HeatmapTracker, locate_peak
from .maps import build_maps, combine_fields, edge_field
from .optimizer import CostEvaluator, LocalSearchOptimizer, LocalSearchProposer, OutlineCostEvaluator
from .tracker import RoleAssignmentTracker
from .types import (
    Candidate,
    DegenerateRegion,
    InputExhausted,
    Point,
    PoseResult,
    Role,
    RoleEstimate,
    TrackerState,
)

__all__ = [
    "Candidate",
    "CostEvaluator",
    "DegenerateRegion",
    "HeatmapProposer",
    "HeatmapTracker",
    "InputExhausted",
    "LocalSearchOptimizer",
    "LocalSearchProposer",
    "OutlineCostEvaluator",
    "Point",
    "PoseContext",
    "PoseResult",
    "Role",
    "RoleAssignmentTracker",
    "RoleEstimate",
    "TrackerState",
    "build_maps",
    "combine_fields",
    "edge_field",
    "extract_candidates",
    "locate_peak",
    "make_proposer",
]


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    # The driver pulls in frame sources and renderers, which import this package.
    if name in {"PoseContext", "make_proposer"}:
        from . import context as _context

        return getattr(_context, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
