"""Turn a combined evidence field into ordered region candidates."""

from __future__ import annotations

from typing import List

import cv2
import numpy as np

from upose.config import UPOSE_LOGGER, ExtractorSettings
from upose.pose.types import Candidate, DegenerateRegion, Point

logger = UPOSE_LOGGER


def region_centroid(contour: np.ndarray) -> Point:
    """Moment centroid of a contour; raises DegenerateRegion for zero area."""
    moments = cv2.moments(contour)
    area = float(moments["m00"])
    if area == 0.0:
        raise DegenerateRegion("Region has zero area.")
    return Point(moments["m10"] / area, moments["m01"] / area)


def binarize(field: np.ndarray, settings: ExtractorSettings | None = None) -> np.ndarray:
    """Box-blur then threshold to suppress speckle noise; returns a uint8 0/255 mask."""
    settings = settings or ExtractorSettings()
    if field.ndim != 2:
        raise ValueError(f"Expected a single-channel field, got shape {field.shape}.")
    data = np.clip(field.astype(np.float32, copy=False), 0.0, 1.0)
    size = max(1, int(settings.blur_size))
    smoothed = cv2.blur(data, (size, size))
    return np.where(smoothed > settings.threshold, 255, 0).astype(np.uint8)


def _candidate_from_contour(contour: np.ndarray) -> Candidate:
    x, y, w, h = cv2.boundingRect(contour)
    return Candidate(
        location=Point(x + w / 2.0, y + h / 2.0),
        extent=float(w),
        top_left=Point(float(x), float(y)),
        size=(int(w), int(h)),
        region=contour.reshape(-1, 2),
    )


def extract_candidates(field: np.ndarray, settings: ExtractorSettings | None = None) -> List[Candidate]:
    """Regions of ``field`` ordered by descending bounding-box width.

    Regions with zero area or a bounding box narrower/shorter than
    ``min_extent`` are dropped. The sort is stable, so equal widths keep the
    contour order reported by OpenCV.
    """
    settings = settings or ExtractorSettings()
    mask = binarize(field, settings)
    contours, _hierarchy = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    candidates: List[Candidate] = []
    dropped = 0
    for contour in contours:
        try:
            region_centroid(contour)
        except DegenerateRegion:
            dropped += 1
            continue
        candidate = _candidate_from_contour(contour)
        if min(candidate.size) < settings.min_extent:
            dropped += 1
            continue
        candidates.append(candidate)

    candidates.sort(key=lambda item: item.extent, reverse=True)
    if dropped:
        logger.debug("Dropped %s degenerate/small regions", dropped)
    return candidates
