"""Data model shared by the tracking pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple

import numpy as np

SkeletonParameters = Tuple[float, ...]


class UposeError(RuntimeError):
    """Base class for pipeline errors."""


class InputExhausted(UposeError):
    """The frame source has no more frames; the driver loop must stop."""


class DegenerateRegion(UposeError):
    """A candidate region has zero area and no usable centroid."""


class Point(NamedTuple):
    x: float
    y: float

    def offset(self, dx: float, dy: float) -> "Point":
        return Point(self.x + dx, self.y + dy)

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_int(self) -> Tuple[int, int]:
        return int(round(self.x)), int(round(self.y))


def midpoint(a: Point, b: Point) -> Point:
    return Point((a.x + b.x) / 2.0, (a.y + b.y) / 2.0)


class Role(str, Enum):
    FACE = "face"
    LEFT_HAND = "left_hand"
    RIGHT_HAND = "right_hand"


ROLE_ORDER: Tuple[Role, ...] = (Role.FACE, Role.LEFT_HAND, Role.RIGHT_HAND)


@dataclass(frozen=True)
class Candidate:
    """A detected region for the current frame."""

    location: Point
    extent: float
    top_left: Point
    size: Tuple[int, int] = (0, 0)
    region: Optional[np.ndarray] = field(default=None, compare=False, repr=False)


@dataclass
class RoleEstimate:
    """Persistent location estimate for one anatomical role."""

    role: Role
    location: Point
    extent: float = 0.0
    top_left: Optional[Point] = None

    def __post_init__(self) -> None:
        if self.top_left is None:
            self.top_left = self.location


@dataclass(frozen=True)
class SkeletonPoints:
    neck: Point
    left_shoulder: Point
    right_shoulder: Point


def derive_skeleton_points(face_top_left: Point, face_width: float) -> SkeletonPoints:
    """Neck and shoulders as a fixed function of the face box.

    The neck sits two face widths below the box's top-left corner; shoulders
    sit one face width either side of the face's centre line.
    """
    width = float(face_width)
    neck = face_top_left.offset(0.0, 2.0 * width)
    return SkeletonPoints(
        neck=neck,
        left_shoulder=neck.offset(-width / 2.0, 0.0),
        right_shoulder=neck.offset(3.0 * width / 2.0, 0.0),
    )


@dataclass
class TrackerState:
    """Everything the tracker carries from one frame to the next.

    Owned by the caller and passed into each per-frame call.
    """

    width: int
    height: int
    estimates: Dict[Role, RoleEstimate]
    skeleton: SkeletonPoints
    activated: bool = False
    frames_seen: int = 0

    @classmethod
    def initial(cls, width: int, height: int) -> "TrackerState":
        """Face at top centre, hands at the left/right edges, mid height."""
        estimates = {
            Role.FACE: RoleEstimate(Role.FACE, Point(width / 2.0, 0.0)),
            Role.LEFT_HAND: RoleEstimate(Role.LEFT_HAND, Point(0.0, height / 2.0)),
            Role.RIGHT_HAND: RoleEstimate(Role.RIGHT_HAND, Point(float(width), height / 2.0)),
        }
        face = estimates[Role.FACE]
        return cls(
            width=int(width),
            height=int(height),
            estimates=estimates,
            skeleton=derive_skeleton_points(face.top_left, face.extent),
        )

    def location(self, role: Role) -> Point:
        return self.estimates[role].location

    def refresh_skeleton(self) -> None:
        face = self.estimates[Role.FACE]
        self.skeleton = derive_skeleton_points(face.top_left, face.extent)

    def default_joints(self) -> SkeletonParameters:
        """Elbows at the shoulder-hand midpoints."""
        left = midpoint(self.skeleton.left_shoulder, self.location(Role.LEFT_HAND))
        right = midpoint(self.skeleton.right_shoulder, self.location(Role.RIGHT_HAND))
        return (left.x, left.y, right.x, right.y)


@dataclass(frozen=True)
class EvidenceFields:
    """Per-frame image evidence handed to the joint proposers."""

    edges: np.ndarray
    foreground: np.ndarray
    skin: Optional[np.ndarray] = None
    motion: Optional[np.ndarray] = None


@dataclass(frozen=True)
class PoseResult:
    """Per-frame output handed to rendering."""

    frame_index: int
    roles: Dict[Role, RoleEstimate]
    skeleton: SkeletonPoints
    joints: SkeletonParameters
    candidates_seen: int = 0
    updated_roles: Tuple[Role, ...] = ()

    @property
    def left_elbow(self) -> Point:
        return Point(self.joints[0], self.joints[1])

    @property
    def right_elbow(self) -> Point:
        return Point(self.joints[2], self.joints[3])
