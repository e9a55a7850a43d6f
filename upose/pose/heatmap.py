"""Heatmap mode: locate joints as the argmax of a Gaussian-weighted likelihood.

Instead of iteratively refining a discrete cost, each tracked point gets a
dense likelihood map: a spatial prior around its last known position times an
anatomical prior around a reference point (plus an expected offset), times the
evidence fields. The new position is the global maximum of that map.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import cv2
import numpy as np

from upose.config import UPOSE_LOGGER, HeatmapSettings
from upose.pose.optimizer import JointProposer
from upose.pose.types import EvidenceFields, Point, Role, SkeletonParameters, TrackerState, midpoint

logger = UPOSE_LOGGER


def gaussian_prior(
    shape: Tuple[int, int],
    center: Point,
    sigma: float,
    expected_offset: Tuple[float, float] = (0.0, 0.0),
) -> np.ndarray:
    """``exp(-||(p - center) - expected_offset||^2 / (2 sigma^2))`` over the pixel grid."""
    if sigma <= 0:
        raise ValueError("sigma must be positive.")
    height, width = shape
    xs = np.arange(width, dtype=np.float32) - np.float32(center.x + expected_offset[0])
    ys = np.arange(height, dtype=np.float32) - np.float32(center.y + expected_offset[1])
    denom = np.float32(2.0 * sigma * sigma)
    # Separable: exp(-(dx^2 + dy^2)/2s^2) = exp(-dy^2/2s^2) * exp(-dx^2/2s^2)
    return np.outer(np.exp(-(ys * ys) / denom), np.exp(-(xs * xs) / denom)).astype(np.float32)


def likelihood_field(
    shape: Tuple[int, int],
    last: Point,
    reference: Point,
    *,
    sigma_spatial: float,
    sigma_anatomical: float,
    expected_offset: Tuple[float, float] = (0.0, 0.0),
    evidence: Sequence[np.ndarray] = (),
) -> np.ndarray:
    field = gaussian_prior(shape, last, sigma_spatial)
    field *= gaussian_prior(shape, reference, sigma_anatomical, expected_offset)
    for item in evidence:
        if item.shape != tuple(shape):
            raise ValueError(f"Evidence shape {item.shape} does not match {tuple(shape)}.")
        field *= item.astype(np.float32, copy=False)
    return field


def locate_peak(field: np.ndarray) -> Tuple[Point, float]:
    """Global maximum of ``field`` and its value."""
    if field.ndim != 2 or field.size == 0:
        raise ValueError("locate_peak() expects a non-empty 2D field.")
    _min_val, max_val, _min_loc, max_loc = cv2.minMaxLoc(field.astype(np.float32, copy=False))
    return Point(float(max_loc[0]), float(max_loc[1])), float(max_val)


class HeatmapTracker:
    """Tracks one point by repeated argmax over its likelihood field."""

    def __init__(self, initial: Point, settings: HeatmapSettings | None = None) -> None:
        self.position = initial
        self.settings = settings or HeatmapSettings()

    def update(
        self,
        evidence: Sequence[np.ndarray],
        reference: Point,
        expected_offset: Tuple[float, float] = (0.0, 0.0),
    ) -> Point:
        """Move to the likelihood peak; stay put when the field is empty."""
        if not evidence:
            raise ValueError("HeatmapTracker.update() needs at least one evidence field.")
        shape = evidence[0].shape
        field = likelihood_field(
            shape,
            self.position,
            reference,
            sigma_spatial=self.settings.sigma_spatial,
            sigma_anatomical=self.settings.sigma_anatomical,
            expected_offset=expected_offset,
            evidence=evidence,
        )
        peak, value = locate_peak(field)
        if value <= 0.0:
            logger.debug("Heatmap has no support; keeping %s", self.position)
            return self.position
        self.position = peak
        return peak


class HeatmapProposer(JointProposer):
    """Elbows from heatmap argmax over edge and foreground evidence.

    The anatomical prior for each elbow is centred on the midpoint between the
    same-side shoulder and hand.
    """

    def __init__(self, settings: HeatmapSettings | None = None) -> None:
        super().__init__()
        self.settings = settings or HeatmapSettings()

    def propose(self, state: TrackerState, evidence: EvidenceFields) -> SkeletonParameters:
        seed = self.seed if self.seed is not None else state.default_joints()
        fields = [evidence.edges]
        if evidence.foreground is not None:
            fields.append(evidence.foreground)

        arms = (
            (Point(seed[0], seed[1]), state.skeleton.left_shoulder, state.location(Role.LEFT_HAND)),
            (Point(seed[2], seed[3]), state.skeleton.right_shoulder, state.location(Role.RIGHT_HAND)),
        )
        joints: list[float] = []
        for last, shoulder, hand in arms:
            tracker = HeatmapTracker(last, self.settings)
            elbow = tracker.update(fields, midpoint(shoulder, hand))
            joints.extend((elbow.x, elbow.y))

        self.seed = tuple(joints)
        return self.seed
