from __future__ import annotations

import math

import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from upose.config import OptimizerSettings
from upose.pose.optimizer import (
    FunctionCostEvaluator,
    LocalSearchOptimizer,
    LocalSearchProposer,
    OutlineCostEvaluator,
    as_evaluator,
    render_outline,
)
from upose.pose.types import EvidenceFields, Point, Role, SkeletonPoints, TrackerState


def _bowl(params) -> float:
    x, y = params
    return (x - 150.0) ** 2 + (y - 100.0) ** 2


def _arm_state() -> TrackerState:
    """Shoulders at (20,20)/(80,20), hands straight below at (20,80)/(80,80)."""
    state = TrackerState.initial(100, 100)
    state.estimates[Role.LEFT_HAND].location = Point(20.0, 80.0)
    state.estimates[Role.RIGHT_HAND].location = Point(80.0, 80.0)
    state.skeleton = SkeletonPoints(
        neck=Point(50.0, 20.0),
        left_shoulder=Point(20.0, 20.0),
        right_shoulder=Point(80.0, 20.0),
    )
    return state


def _arm_evidence() -> np.ndarray:
    evidence = np.zeros((100, 100), dtype=np.uint8)
    cv2.line(evidence, (20, 20), (20, 80), 255, 1)
    cv2.line(evidence, (80, 20), (80, 80), 255, 1)
    return (evidence > 0).astype(np.float32)


def test_local_search_converges_on_convex_cost() -> None:
    optimizer = LocalSearchOptimizer(iterations=4000, step_radius=20.0, seed=0)
    result = optimizer.optimize(_bowl, (0.0, 0.0))

    assert result.cost < 0.5
    assert result.params[0] == pytest.approx(150.0, abs=0.7)
    assert result.params[1] == pytest.approx(100.0, abs=0.7)


def test_best_cost_never_increases() -> None:
    optimizer = LocalSearchOptimizer(iterations=300, step_radius=10.0, seed=7)
    result = optimizer.optimize(_bowl, (10.0, -20.0))

    assert len(result.history) == 301
    assert all(later <= earlier for earlier, later in zip(result.history, result.history[1:]))
    assert result.history[-1] == result.cost
    assert result.cost == pytest.approx(_bowl(result.params))


def test_fixed_random_stream_gives_identical_runs() -> None:
    first = LocalSearchOptimizer(150, 5.0, rng=np.random.default_rng(42)).optimize(_bowl, (0.0, 0.0))
    second = LocalSearchOptimizer(150, 5.0, rng=np.random.default_rng(42)).optimize(_bowl, (0.0, 0.0))
    assert first.params == second.params
    assert first.history == second.history


def test_dimensions_are_visited_round_robin() -> None:
    visited: list[tuple[float, ...]] = []

    def record(params) -> float:
        visited.append(tuple(params))
        return 1.0  # flat: every move is rejected

    seed = (1.0, 2.0, 3.0)
    result = LocalSearchOptimizer(iterations=6, step_radius=1.0, seed=3).optimize(record, seed)

    assert result.params == seed
    assert result.accepted == 0
    changed = [next(i for i in range(3) if point[i] != seed[i]) for point in visited[1:]]
    assert changed == [0, 1, 2, 0, 1, 2]


def test_nan_costs_never_win() -> None:
    result = LocalSearchOptimizer(iterations=20, step_radius=1.0, seed=1).optimize(lambda _p: math.nan, (5.0,))
    assert result.params == (5.0,)
    assert result.cost == math.inf


def test_dimension_mismatch_is_rejected() -> None:
    optimizer = LocalSearchOptimizer(iterations=1, step_radius=1.0, seed=0)
    with pytest.raises(ValueError):
        optimizer.optimize(_bowl, (0.0, 0.0), dimension=3)
    with pytest.raises(ValueError):
        optimizer.optimize(_bowl, ())
    with pytest.raises(ValueError):
        LocalSearchOptimizer(iterations=1, step_radius=0.0)


def test_as_evaluator_accepts_objects_and_callables() -> None:
    evaluator = OutlineCostEvaluator(np.zeros((10, 10), dtype=np.float32), _arm_state())
    assert as_evaluator(evaluator) is evaluator
    wrapped = as_evaluator(_bowl)
    assert isinstance(wrapped, FunctionCostEvaluator)
    assert wrapped.evaluate((150.0, 100.0)) == 0.0
    with pytest.raises(TypeError):
        as_evaluator(42)  # type: ignore[arg-type]


def test_render_outline_draws_connected_segments() -> None:
    outline = render_outline((50, 50), [[Point(5, 5), Point(5, 40), Point(40, 40)]], stroke_width=1)
    assert outline[20, 5] == 255
    assert outline[40, 20] == 255
    assert outline[20, 20] == 0


def test_outline_cost_is_length_without_evidence() -> None:
    state = _arm_state()
    evaluator = OutlineCostEvaluator(np.zeros((100, 100), dtype=np.float32), state)
    assert evaluator.evaluate((20.0, 50.0, 80.0, 50.0)) == pytest.approx(120.0)
    with pytest.raises(ValueError):
        evaluator.evaluate((1.0, 2.0))


def test_outline_cost_rewards_overlap_with_edges() -> None:
    state = _arm_state()
    evaluator = OutlineCostEvaluator(_arm_evidence(), state, OptimizerSettings(stroke_width=5, overlap_weight=1.0))

    on_edges = evaluator.evaluate((20.0, 50.0, 80.0, 50.0))
    off_edges = evaluator.evaluate((50.0, 50.0, 50.0, 50.0))
    assert on_edges == pytest.approx(120.0 - 122.0)
    assert on_edges < off_edges


def test_local_search_proposer_warm_starts_from_previous_answer() -> None:
    state = _arm_state()
    evidence = EvidenceFields(edges=_arm_evidence(), foreground=np.ones((100, 100), dtype=np.float32))
    proposer = LocalSearchProposer(
        OptimizerSettings(iterations=400, step_radius=8.0),
        rng=np.random.default_rng(0),
    )
    start = (40.0, 50.0, 60.0, 50.0)
    proposer.reset(start)
    start_cost = OutlineCostEvaluator(evidence.edges, state).evaluate(start)

    joints = proposer.propose(state, evidence)

    assert len(joints) == 4
    assert proposer.seed == joints
    assert proposer.last_result is not None
    assert proposer.last_result.cost <= start_cost
    assert proposer.last_result.history[0] == pytest.approx(start_cost)


def test_local_search_proposer_defaults_to_midpoint_seed() -> None:
    state = _arm_state()
    proposer = LocalSearchProposer(OptimizerSettings(iterations=0))
    evidence = EvidenceFields(edges=np.zeros((100, 100), dtype=np.float32), foreground=np.zeros((100, 100)))
    assert proposer.propose(state, evidence) == (20.0, 50.0, 80.0, 50.0)
