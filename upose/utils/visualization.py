"""Rendering sinks for per-frame pose results."""

from __future__ import annotations

from collections import deque
from typing import Deque, Optional, Tuple

import cv2
import numpy as np

from upose.config import UPOSE_LOGGER
from upose.pose.types import PoseResult, Role

logger = UPOSE_LOGGER

# BGR
ROLE_COLORS = {
    Role.FACE: (0, 255, 0),
    Role.LEFT_HAND: (255, 0, 0),
    Role.RIGHT_HAND: (0, 0, 255),
}
NECK_COLOR = (255, 255, 255)
SHOULDER_COLOR = (0, 0, 255)
ARM_COLOR = (0, 255, 255)


def draw_pose(frame: np.ndarray, result: PoseResult, *, radius: int = 10) -> np.ndarray:
    """Annotated copy of ``frame``: role markers, neck/shoulders and both arms."""
    canvas = frame.copy()
    skeleton = result.skeleton
    chains = (
        (skeleton.left_shoulder, result.left_elbow, result.roles[Role.LEFT_HAND].location),
        (skeleton.right_shoulder, result.right_elbow, result.roles[Role.RIGHT_HAND].location),
    )
    for chain in chains:
        for start, end in zip(chain, chain[1:]):
            cv2.line(canvas, start.as_int(), end.as_int(), ARM_COLOR, 2)

    for role, estimate in result.roles.items():
        cv2.circle(canvas, estimate.location.as_int(), radius, ROLE_COLORS[role], -1)
    cv2.circle(canvas, skeleton.neck.as_int(), radius, NECK_COLOR, 2)
    cv2.circle(canvas, skeleton.left_shoulder.as_int(), radius, SHOULDER_COLOR, -1)
    cv2.circle(canvas, skeleton.right_shoulder.as_int(), radius, SHOULDER_COLOR, -1)
    for elbow in (result.left_elbow, result.right_elbow):
        cv2.circle(canvas, elbow.as_int(), radius // 2, NECK_COLOR, -1)
    return canvas


class Renderer:
    """Fire-and-forget sink for pose results."""

    def render(self, frame: np.ndarray, result: PoseResult) -> None:
        raise NotImplementedError

    def quit_requested(self) -> bool:
        return False

    def close(self) -> None:
        pass


class NullRenderer(Renderer):
    def render(self, frame: np.ndarray, result: PoseResult) -> None:
        return None


class RecordingRenderer(Renderer):
    """Keeps the most recent results (and optionally annotated frames)."""

    def __init__(self, maxlen: int = 100, *, keep_frames: bool = False) -> None:
        self.results: Deque[PoseResult] = deque(maxlen=maxlen)
        self.frames: Deque[np.ndarray] = deque(maxlen=maxlen)
        self.keep_frames = keep_frames

    def render(self, frame: np.ndarray, result: PoseResult) -> None:
        self.results.append(result)
        if self.keep_frames:
            self.frames.append(draw_pose(frame, result))


class OpenCVRenderer(Renderer):
    """Shows annotated frames in a HighGUI window."""

    def __init__(self, window: str = "upose", *, wait_ms: int = 1) -> None:
        self.window = window
        self.wait_ms = int(wait_ms)
        self.last_key: Optional[int] = None

    def render(self, frame: np.ndarray, result: PoseResult) -> None:
        cv2.imshow(self.window, draw_pose(frame, result))
        self.last_key = cv2.waitKey(self.wait_ms) & 0xFF

    def quit_requested(self, keys: Tuple[int, ...] = (ord("q"), 27)) -> bool:
        return self.last_key in keys

    def close(self) -> None:
        try:
            cv2.destroyWindow(self.window)
        except cv2.error as exc:
            logger.debug("Could not close window %s: %s", self.window, exc)
