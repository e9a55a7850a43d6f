"""Frame driver: runs maps -> candidates -> roles -> joints -> render per frame."""

from __future__ import annotations

import copy
from typing import Callable, Optional, Tuple

import numpy as np

from upose.config import UPOSE_LOGGER, PoseSettings, load_settings
from upose.pose.candidates import extract_candidates
from upose.pose.heatmap import HeatmapProposer
from upose.pose.maps import build_maps, combine_fields, edge_field
from upose.pose.optimizer import JointProposer, LocalSearchProposer
from upose.pose.tracker import RoleAssignmentTracker, snapshot_estimates
from upose.pose.types import (
    EvidenceFields,
    InputExhausted,
    PoseResult,
    Role,
    SkeletonParameters,
    TrackerState,
)
from upose.utils.video import FrameSource, frame_size
from upose.utils.visualization import NullRenderer, Renderer

logger = UPOSE_LOGGER


def make_proposer(settings: PoseSettings, rng: np.random.Generator | None = None) -> JointProposer:
    mode = settings.driver.mode
    if mode == "heatmap":
        return HeatmapProposer(settings.heatmap)
    if mode == "local-search":
        rng = rng if rng is not None else np.random.default_rng(settings.driver.random_seed)
        return LocalSearchProposer(settings.optimizer, rng=rng)
    raise ValueError(f"Unknown proposer mode {mode!r}; use 'local-search' or 'heatmap'.")


class PoseContext:
    """Single-threaded tracking context over one frame source.

    The first frame read becomes the background reference. Frames are
    processed strictly in arrival order; the tracker state and the proposer
    seed are the only things carried between frames.
    """

    def __init__(
        self,
        source: FrameSource,
        settings: PoseSettings | None = None,
        *,
        proposer: JointProposer | None = None,
        renderer: Renderer | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.source = source
        self.settings = settings or load_settings()
        self.renderer = renderer or NullRenderer()
        self.tracker = RoleAssignmentTracker(self.settings.tracker)

        self.background = source.next_frame()
        width, height = frame_size(self.background)
        self.state = TrackerState.initial(width, height)
        self.state.activated = not self.settings.driver.require_activation

        self.proposer = proposer or make_proposer(self.settings, rng)
        self.proposer.reset(self.state.default_joints())
        self.last_frame = self.background
        self.frame_index = 0
        logger.info("Tracking context ready (%sx%s, mode=%s)", width, height, type(self.proposer).__name__)

    def reset_background(self, frame: np.ndarray | None = None) -> None:
        """Use ``frame`` (or the next source frame) as the new background."""
        self.background = frame if frame is not None else self.source.next_frame()
        self.last_frame = self.background

    def step(self) -> Optional[PoseResult]:
        """Process one frame. Raises InputExhausted when the source is empty.

        Returns None while waiting for activation. InputExhausted from the
        source is the only fatal error; any other failure while processing a
        frame leaves the tracker state and proposer seed as they were after
        the previous frame.
        """
        frame = self.source.next_frame()
        self.frame_index += 1
        working = copy.deepcopy(self.state)
        seed = self.proposer.seed
        try:
            result = self._process(frame, working)
        except Exception as exc:  # noqa: BLE001 - cv2.error, bad shapes and proposer failures alike
            result = self._degrade(seed, exc)

        if result is not None:
            self._render(frame, result)
        self.last_frame = frame
        return result

    def run(
        self,
        max_frames: int | None = None,
        progress_callback: Callable[[int, Optional[PoseResult]], None] | None = None,
    ) -> int:
        """Step until the source is exhausted (or ``max_frames``); returns frames processed."""
        processed = 0
        while max_frames is None or processed < max_frames:
            try:
                result = self.step()
            except InputExhausted:
                logger.info("Input exhausted after %s frames", processed)
                break
            processed += 1
            if progress_callback is not None:
                try:
                    progress_callback(processed, result)
                except Exception as exc:  # noqa: BLE001 - progress reporting must never break tracking
                    logger.debug("Progress callback failed: %s", exc)
            if self.renderer.quit_requested():
                logger.info("Quit requested from display window")
                break
        return processed

    def close(self) -> None:
        self.renderer.close()
        self.source.close()

    def _is_activated(self, foreground: np.ndarray) -> bool:
        height, width = foreground.shape
        return float(foreground[height // 2, width // 2]) >= self.settings.driver.activation_threshold

    def _process(self, frame: np.ndarray, state: TrackerState) -> Optional[PoseResult]:
        """Run every stage on ``state``; it replaces ``self.state`` only on success."""
        settings = self.settings
        maps = build_maps(frame, self.background, self.last_frame, settings.maps)

        if not state.activated:
            if not self._is_activated(maps.foreground):
                return None
            state.activated = True
            logger.info("Foreground detected at frame centre; tracking started at frame %s", self.frame_index)

        candidates = extract_candidates(combine_fields(maps.foreground, maps.skin), settings.extractor)
        self.tracker.assign(candidates, state)

        evidence = EvidenceFields(
            edges=edge_field(frame, maps.foreground, settings.maps),
            foreground=maps.foreground,
            skin=maps.skin,
            motion=maps.motion,
        )
        self.proposer.propose(state, evidence)
        state.frames_seen += 1
        self.state = state
        return self._current_result(candidates_seen=len(candidates), updated=self.tracker.last_updated)

    def _degrade(self, seed: Optional[SkeletonParameters], exc: Exception) -> Optional[PoseResult]:
        logger.warning("Frame %s failed; carrying previous state forward: %s", self.frame_index, exc)
        self.proposer.seed = seed
        return self._current_result() if self.state.activated else None

    def _current_result(self, *, candidates_seen: int = 0, updated: Tuple[Role, ...] = ()) -> PoseResult:
        joints = self.proposer.seed if self.proposer.seed is not None else self.state.default_joints()
        return PoseResult(
            frame_index=self.frame_index,
            roles=snapshot_estimates(self.state),
            skeleton=self.state.skeleton,
            joints=tuple(joints),
            candidates_seen=candidates_seen,
            updated_roles=tuple(updated),
        )

    def _render(self, frame: np.ndarray, result: PoseResult) -> None:
        try:
            self.renderer.render(frame, result)
        except Exception as exc:  # noqa: BLE001 - rendering failures must never abort tracking
            logger.warning("Renderer failed on frame %s: %s", self.frame_index, exc)
