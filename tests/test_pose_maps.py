from __future__ import annotations

import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from upose.config import MapSettings
from upose.pose.maps import (
    build_maps,
    combine_fields,
    edge_field,
    foreground_field,
    skin_field,
    skin_response,
)


def _frame(height: int = 20, width: int = 20) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


def test_binary_foreground_marks_changed_pixels() -> None:
    background = _frame()
    frame = _frame()
    frame[5:10, 5:10] = (100, 100, 100)

    field = foreground_field(frame, background, MapSettings(foreground_threshold=30.0))
    assert field.dtype == np.float32
    assert field[7, 7] == 1.0
    assert field[0, 0] == 0.0
    assert float(field.sum()) == 25.0


def test_probability_foreground_is_logistic_around_threshold() -> None:
    background = _frame()
    frame = _frame()
    frame[0, 0] = (30, 0, 0)  # exactly at the threshold
    frame[0, 1] = (0, 200, 0)  # far above

    settings = MapSettings(foreground_mode="probability", foreground_threshold=30.0, foreground_scale=5.0)
    field = foreground_field(frame, background, settings)
    assert field[0, 0] == pytest.approx(0.5, abs=1e-6)
    assert field[0, 1] == pytest.approx(1.0, abs=1e-6)
    assert field[5, 5] < 0.01
    assert float(field.min()) >= 0.0 and float(field.max()) <= 1.0


def test_foreground_rejects_mismatched_shapes() -> None:
    with pytest.raises(ValueError):
        foreground_field(_frame(20, 20), _frame(10, 20))


def test_skin_response_uses_linear_channel_combination() -> None:
    frame = _frame(1, 1)
    frame[0, 0] = (10, 20, 100)  # B, G, R
    response = skin_response(frame, MapSettings())
    assert response[0, 0] == pytest.approx(0.6 * 100 - 0.3 * 20 - 0.3 * 10, abs=1e-4)


def test_binary_skin_band() -> None:
    frame = _frame(1, 2)
    frame[0, 0] = (0, 0, 100)  # s = 60
    frame[0, 1] = (100, 100, 100)  # s = 0
    field = skin_field(frame, MapSettings(skin_lower=2.0, skin_upper=255.0))
    assert field.tolist() == [[1.0, 0.0]]


def test_probability_skin_peaks_at_center() -> None:
    frame = _frame(1, 2)
    frame[0, 0] = (10, 10, 30)  # s = 18 - 3 - 3 = 12
    frame[0, 1] = (0, 0, 200)  # s = 120
    settings = MapSettings(skin_mode="probability", skin_center=12.0, skin_spread=8.0)
    field = skin_field(frame, settings)
    assert field[0, 0] == pytest.approx(1.0, abs=1e-4)
    assert field[0, 1] < 1e-6


def test_combine_fields_is_pointwise_product() -> None:
    a = np.array([[1.0, 0.5], [0.0, 1.0]], dtype=np.float32)
    b = np.array([[1.0, 0.5], [1.0, 0.0]], dtype=np.float32)
    combined = combine_fields(a, b)
    assert combined.tolist() == [[1.0, 0.25], [0.0, 0.0]]

    with pytest.raises(ValueError):
        combine_fields(a, np.ones((3, 3), dtype=np.float32))


def test_edge_field_outlines_square_and_respects_mask() -> None:
    frame = _frame(40, 40)
    frame[10:30, 10:30] = (255, 255, 255)

    edges = edge_field(frame)
    assert edges.max() == 1.0
    assert edges[20, 20] == 0.0  # interior has no edges

    masked = edge_field(frame, np.zeros((40, 40), dtype=np.float32))
    assert masked.max() == 0.0


def test_build_maps_motion_only_with_previous_frame() -> None:
    background = _frame()
    frame = _frame()
    frame[2:4, 2:4] = (0, 0, 255)

    maps = build_maps(frame, background)
    assert maps.motion is None
    assert maps.foreground.shape == (20, 20)
    assert maps.skin.shape == (20, 20)

    maps = build_maps(frame, background, previous_frame=background)
    assert maps.motion is not None
    assert maps.motion[3, 3] > 0.0
    assert maps.motion[10, 10] == 0.0


def test_build_maps_rejects_gray_frames() -> None:
    with pytest.raises(ValueError):
        build_maps(np.zeros((10, 10), dtype=np.uint8), _frame(10, 10))


def test_edge_field_scales_edges_by_soft_mask():
    frame = _frame(40, 40)
    frame[10:30, 10:30] = (255, 255, 255)
    mask = np.full((40, 40), 0.25, dtype=np.float32)
    mask[:, 20:] = 0.75

    edges = edge_field(frame)
    soft = edge_field(frame, mask)
    assert soft.dtype == np.float32
    assert set(np.unique(soft)) <= {0.0, 0.25, 0.75}
    np.testing.assert_allclose(soft, edges * mask)
    assert soft[:, :20].max() == 0.25
    assert soft[:, 20:].max() == 0.75
