"""Derivative-free local search over the free skeleton joints.

The outline cost is a piecewise-constant function of rendered pixel overlap,
so it has no usable gradient. :class:`LocalSearchOptimizer` instead perturbs
one coordinate at a time (round-robin over the dimensions) by a uniform step
and keeps the move only when the cost strictly drops. The iteration budget is
the only stopping rule.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

import cv2
import numpy as np

from upose.config import UPOSE_LOGGER, OptimizerSettings
from upose.pose.types import EvidenceFields, Point, Role, SkeletonParameters, TrackerState

logger = UPOSE_LOGGER


@runtime_checkable
class CostEvaluator(Protocol):
    def evaluate(self, params: SkeletonParameters) -> float:
        ...


class FunctionCostEvaluator:
    """Adapter turning a plain callable into a :class:`CostEvaluator`."""

    def __init__(self, func: Callable[[SkeletonParameters], float]) -> None:
        self.func = func

    def evaluate(self, params: SkeletonParameters) -> float:
        return float(self.func(params))


CostLike = Union[CostEvaluator, Callable[[SkeletonParameters], float]]


def as_evaluator(cost: CostLike) -> CostEvaluator:
    if isinstance(cost, CostEvaluator):
        return cost
    if callable(cost):
        return FunctionCostEvaluator(cost)
    raise TypeError(f"Expected a CostEvaluator or callable, got {type(cost).__name__}.")


@dataclass
class OptimizationResult:
    params: SkeletonParameters
    cost: float
    history: List[float] = field(default_factory=list)
    accepted: int = 0


class LocalSearchOptimizer:
    """Coordinate-wise random local search with a fixed iteration budget."""

    def __init__(
        self,
        iterations: int = 200,
        step_radius: float = 15.0,
        *,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ) -> None:
        if iterations < 0:
            raise ValueError("iterations must be non-negative.")
        if step_radius <= 0:
            raise ValueError("step_radius must be positive.")
        self.iterations = int(iterations)
        self.step_radius = float(step_radius)
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def optimize(
        self,
        cost: CostLike,
        seed: Sequence[float],
        dimension: int | None = None,
    ) -> OptimizationResult:
        evaluator = as_evaluator(cost)
        best = [float(value) for value in seed]
        dims = len(best) if dimension is None else int(dimension)
        if dims <= 0:
            raise ValueError("Cannot optimise an empty parameter vector.")
        if dims != len(best):
            raise ValueError(f"Seed has {len(best)} parameters but dimension={dims}.")

        best_cost = self._safe_cost(evaluator, tuple(best))
        history = [best_cost]
        accepted = 0
        for t in range(self.iterations):
            d = t % dims
            previous = best[d]
            best[d] = previous + float(self.rng.uniform(-self.step_radius, self.step_radius))
            candidate_cost = self._safe_cost(evaluator, tuple(best))
            if candidate_cost < best_cost:
                best_cost = candidate_cost
                accepted += 1
            else:
                best[d] = previous
            history.append(best_cost)

        return OptimizationResult(params=tuple(best), cost=best_cost, history=history, accepted=accepted)

    @staticmethod
    def _safe_cost(evaluator: CostEvaluator, params: SkeletonParameters) -> float:
        value = float(evaluator.evaluate(params))
        # NaN would compare false against everything; treat it as unusable.
        return value if not math.isnan(value) else math.inf


def render_outline(shape: Tuple[int, int], chains: Sequence[Sequence[Point]], stroke_width: int = 5) -> np.ndarray:
    """Draw each chain of points as connected line segments on a blank uint8 mask."""
    canvas = np.zeros(shape, dtype=np.uint8)
    for chain in chains:
        for start, end in zip(chain, chain[1:]):
            cv2.line(canvas, start.as_int(), end.as_int(), 255, thickness=max(1, int(stroke_width)))
    return canvas


def chain_length(chain: Sequence[Point]) -> float:
    return float(sum(a.distance_to(b) for a, b in zip(chain, chain[1:])))


def arm_chains(state: TrackerState, params: SkeletonParameters) -> List[List[Point]]:
    """Shoulder -> elbow -> hand polylines for both arms."""
    left_elbow = Point(float(params[0]), float(params[1]))
    right_elbow = Point(float(params[2]), float(params[3]))
    return [
        [state.skeleton.left_shoulder, left_elbow, state.location(Role.LEFT_HAND)],
        [state.skeleton.right_shoulder, right_elbow, state.location(Role.RIGHT_HAND)],
    ]


class OutlineCostEvaluator:
    """``sum(segment lengths) - weight * overlap(outline, evidence)``.

    The overlap is the evidence mass under the rendered outline, i.e. the
    pixel count when the evidence is binary.
    """

    dimension = 4

    def __init__(self, evidence: np.ndarray, state: TrackerState, settings: OptimizerSettings | None = None) -> None:
        if evidence.ndim != 2:
            raise ValueError(f"Evidence must be a single-channel field, got shape {evidence.shape}.")
        self.evidence = evidence.astype(np.float32, copy=False)
        self.state = state
        self.settings = settings or OptimizerSettings()

    def evaluate(self, params: SkeletonParameters) -> float:
        if len(params) != self.dimension:
            raise ValueError(f"Expected {self.dimension} parameters, got {len(params)}.")
        if not all(math.isfinite(float(value)) for value in params):
            return math.inf
        chains = arm_chains(self.state, params)
        outline = render_outline(self.evidence.shape, chains, self.settings.stroke_width)
        overlap = float(self.evidence[outline > 0].sum())
        length = sum(chain_length(chain) for chain in chains)
        return length - self.settings.overlap_weight * overlap


class JointProposer(ABC):
    """Proposes the free joints (elbows) for the current frame.

    Implementations keep their last answer as the next frame's seed.
    """

    def __init__(self) -> None:
        self.seed: Optional[SkeletonParameters] = None

    def reset(self, seed: SkeletonParameters | None = None) -> None:
        self.seed = tuple(seed) if seed is not None else None

    @abstractmethod
    def propose(self, state: TrackerState, evidence: EvidenceFields) -> SkeletonParameters:
        ...


class LocalSearchProposer(JointProposer):
    """Warm-started local search against the outline cost on edge evidence."""

    def __init__(self, settings: OptimizerSettings | None = None, *, rng: np.random.Generator | None = None) -> None:
        super().__init__()
        self.settings = settings or OptimizerSettings()
        self.optimizer = LocalSearchOptimizer(self.settings.iterations, self.settings.step_radius, rng=rng)
        self.last_result: OptimizationResult | None = None

    def propose(self, state: TrackerState, evidence: EvidenceFields) -> SkeletonParameters:
        seed = self.seed if self.seed is not None else state.default_joints()
        evaluator = OutlineCostEvaluator(evidence.edges, state, self.settings)
        result = self.optimizer.optimize(evaluator, seed, dimension=OutlineCostEvaluator.dimension)
        logger.debug("Local search cost %.2f after %s accepted moves", result.cost, result.accepted)
        self.last_result = result
        self.seed = result.params
        return result.params
