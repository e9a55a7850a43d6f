"""Perceptual maps: foreground, skin, motion and edge evidence fields.

All fields are ``float32`` arrays with values in ``[0, 1]`` and the frame's
height/width. Binary thresholding yields the degenerate 0/1 case, so consumers
treat every field as a probability map.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

import cv2
import numpy as np

from upose.config import MapSettings


class PerceptualMaps(NamedTuple):
    foreground: np.ndarray
    skin: np.ndarray
    motion: Optional[np.ndarray] = None


def _check_frame(frame: np.ndarray, name: str = "frame") -> np.ndarray:
    if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
        raise ValueError(f"{name} must be a non-empty numpy array.")
    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"{name} must be an HxWx3 BGR image, got shape {frame.shape}.")
    return frame


def _logistic(values: np.ndarray, center: float, scale: float) -> np.ndarray:
    z = np.clip((values - float(center)) / float(scale), -60.0, 60.0)
    return (1.0 / (1.0 + np.exp(-z))).astype(np.float32)


def difference_magnitude(frame: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Largest per-channel absolute difference, as float32."""
    _check_frame(frame)
    _check_frame(reference, "reference")
    if frame.shape != reference.shape:
        raise ValueError(f"frame {frame.shape} and reference {reference.shape} differ in shape.")
    diff = cv2.absdiff(frame, reference)
    return diff.max(axis=2).astype(np.float32)


def foreground_field(frame: np.ndarray, background: np.ndarray, settings: MapSettings | None = None) -> np.ndarray:
    settings = settings or MapSettings()
    magnitude = difference_magnitude(frame, background)
    if settings.foreground_mode == "probability":
        return _logistic(magnitude, settings.foreground_threshold, settings.foreground_scale)
    return (magnitude > settings.foreground_threshold).astype(np.float32)


def skin_response(frame: np.ndarray, settings: MapSettings | None = None) -> np.ndarray:
    """Linear colour projection ``s = a*R + b*G + c*B`` (frame is BGR)."""
    settings = settings or MapSettings()
    blue, green, red = cv2.split(_check_frame(frame).astype(np.float32))
    return settings.skin_red * red + settings.skin_green * green + settings.skin_blue * blue


def skin_field(frame: np.ndarray, settings: MapSettings | None = None) -> np.ndarray:
    settings = settings or MapSettings()
    response = skin_response(frame, settings)
    if settings.skin_mode == "probability":
        spread = float(settings.skin_spread)
        return np.exp(-((response - settings.skin_center) ** 2) / (2.0 * spread * spread)).astype(np.float32)
    band = (response >= settings.skin_lower) & (response <= settings.skin_upper)
    return band.astype(np.float32)


def motion_field(frame: np.ndarray, previous_frame: np.ndarray) -> np.ndarray:
    """Gray-level frame difference scaled to ``[0, 1]``."""
    _check_frame(frame)
    _check_frame(previous_frame, "previous_frame")
    diff = cv2.absdiff(frame, previous_frame)
    gray = cv2.cvtColor(diff, cv2.COLOR_BGR2GRAY)
    return gray.astype(np.float32) / 255.0


def build_maps(
    frame: np.ndarray,
    background: np.ndarray,
    previous_frame: np.ndarray | None = None,
    settings: MapSettings | None = None,
) -> PerceptualMaps:
    """Foreground and skin likelihoods for ``frame`` (plus motion when possible)."""
    settings = settings or MapSettings()
    foreground = foreground_field(frame, background, settings)
    skin = skin_field(frame, settings)
    motion = None
    if previous_frame is not None and previous_frame.shape == frame.shape:
        motion = motion_field(frame, previous_frame)
    return PerceptualMaps(foreground=foreground, skin=skin, motion=motion)


def combine_fields(*fields: np.ndarray) -> np.ndarray:
    """Pointwise product (fuzzy AND) of probability fields."""
    if not fields:
        raise ValueError("combine_fields() needs at least one field.")
    shape = fields[0].shape
    combined = np.ones(shape, dtype=np.float32)
    for item in fields:
        if item.shape != shape:
            raise ValueError(f"Field shapes differ: {item.shape} != {shape}.")
        combined *= np.clip(item.astype(np.float32, copy=False), 0.0, 1.0)
    return combined


def edge_field(frame: np.ndarray, mask: np.ndarray | None = None, settings: MapSettings | None = None) -> np.ndarray:
    """Canny edges of the blurred gray frame, weighted by ``mask``."""
    settings = settings or MapSettings()
    gray = cv2.cvtColor(_check_frame(frame), cv2.COLOR_BGR2GRAY)
    size = max(1, int(settings.edge_blur))
    blurred = cv2.blur(gray, (size, size))
    edges = cv2.Canny(blurred, settings.canny_low, settings.canny_high, apertureSize=3)
    field = (edges > 0).astype(np.float32)
    if mask is not None:
        field = combine_fields(field, mask)
    return field
