"""Greedy temporal assignment of region candidates to anatomical roles.

Each frame every (candidate, role) pair is scored by its distance to the role's
previous estimate plus an anatomical bias (faces sit high, hands sit near their
image edge, bigger regions are preferred). Every role then independently keeps
the cheapest candidate of a single in-order scan. This is deliberately not an
optimal bipartite matching: one region may win several roles, and exact ties
go to the earliest candidate in extractor order.
"""

from __future__ import annotations

import dataclasses
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from upose.config import UPOSE_LOGGER, TrackerSettings
from upose.pose.types import ROLE_ORDER, Candidate, Point, Role, RoleEstimate, TrackerState

logger = UPOSE_LOGGER


def role_bias(role: Role, candidate: Candidate, frame_width: int, *, extent_weight: float = 1.0) -> float:
    location = candidate.location
    if role is Role.FACE:
        positional = location.y
    elif role is Role.LEFT_HAND:
        positional = location.x
    else:
        positional = float(frame_width) - location.x
    return positional - extent_weight * candidate.extent


def build_cost_matrix(
    candidates: Sequence[Candidate],
    state: TrackerState,
    *,
    extent_weight: float = 1.0,
) -> np.ndarray:
    """``(len(candidates), 3)`` matrix of costs, columns in ``ROLE_ORDER``."""
    costs = np.zeros((len(candidates), len(ROLE_ORDER)), dtype=float)
    for i, candidate in enumerate(candidates):
        for j, role in enumerate(ROLE_ORDER):
            distance = candidate.location.distance_to(state.location(role))
            costs[i, j] = distance + role_bias(role, candidate, state.width, extent_weight=extent_weight)
    return costs


def no_match_sentinel(width: int, height: int, divisor: float = 64.0) -> float:
    return float(width * width + height * height) / float(divisor)


def greedy_assignment(costs: np.ndarray, sentinel: float) -> List[Optional[int]]:
    """Per role, index of the cheapest candidate beating ``sentinel`` (or None)."""
    n_roles = costs.shape[1] if costs.ndim == 2 else len(ROLE_ORDER)
    best_cost = [float(sentinel)] * n_roles
    best_index: List[Optional[int]] = [None] * n_roles
    for i in range(costs.shape[0]):
        for j in range(n_roles):
            if costs[i, j] < best_cost[j]:
                best_cost[j] = float(costs[i, j])
                best_index[j] = i
    return best_index


def farthest_boundary_point(region: np.ndarray, anchor: Point) -> Point:
    """Boundary vertex of ``region`` farthest from ``anchor``."""
    points = np.asarray(region, dtype=float).reshape(-1, 2)
    if points.shape[0] == 0:
        raise ValueError("Region has no boundary points.")
    distances = np.hypot(points[:, 0] - anchor.x, points[:, 1] - anchor.y)
    x, y = points[int(np.argmax(distances))]
    return Point(float(x), float(y))


class RoleAssignmentTracker:
    """Assigns candidates to the Face / LeftHand / RightHand roles of a state."""

    def __init__(self, settings: TrackerSettings | None = None) -> None:
        self.settings = settings or TrackerSettings()
        self.last_updated: Tuple[Role, ...] = ()

    def assign(self, candidates: Sequence[Candidate], state: TrackerState) -> TrackerState:
        """Update ``state`` in place from this frame's candidates and return it."""
        settings = self.settings
        self.last_updated = ()
        if len(candidates) < settings.min_candidates:
            logger.debug(
                "Insufficient candidates (%s < %s); keeping previous estimates",
                len(candidates),
                settings.min_candidates,
            )
            return state

        considered = list(candidates[: settings.max_candidates])
        costs = build_cost_matrix(considered, state, extent_weight=settings.extent_weight)
        sentinel = no_match_sentinel(state.width, state.height, settings.sentinel_divisor)
        winners = greedy_assignment(costs, sentinel)

        updated = self._apply(considered, winners, state)
        if updated:
            logger.debug("Updated roles: %s", ", ".join(role.value for role in updated))
        return state

    def _apply(
        self,
        candidates: Sequence[Candidate],
        winners: Sequence[Optional[int]],
        state: TrackerState,
    ) -> Tuple[Role, ...]:
        chosen: Dict[Role, Candidate] = {
            role: candidates[index] for role, index in zip(ROLE_ORDER, winners) if index is not None
        }

        face = chosen.get(Role.FACE)
        if face is not None:
            estimate = state.estimates[Role.FACE]
            estimate.location = face.location
            estimate.extent = face.extent
            estimate.top_left = face.top_left
            state.refresh_skeleton()

        shoulders = {
            Role.LEFT_HAND: state.skeleton.left_shoulder,
            Role.RIGHT_HAND: state.skeleton.right_shoulder,
        }
        for role in (Role.LEFT_HAND, Role.RIGHT_HAND):
            candidate = chosen.get(role)
            if candidate is None:
                continue
            location = candidate.location
            if self.settings.refine_hands and candidate.region is not None and len(candidate.region):
                location = farthest_boundary_point(candidate.region, shoulders[role])
            estimate = state.estimates[role]
            estimate.location = location
            estimate.extent = candidate.extent
            estimate.top_left = candidate.top_left

        self.last_updated = tuple(chosen)
        return self.last_updated


def snapshot_estimates(state: TrackerState) -> Dict[Role, RoleEstimate]:
    """Copies of the role estimates, safe to hand past the frame boundary."""
    return {role: dataclasses.replace(estimate) for role, estimate in state.estimates.items()}
