"""Frame sources: cameras, video files, image sequences and in-memory frames."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np

from upose.config import UPOSE_LOGGER
from upose.pose.types import InputExhausted

logger = UPOSE_LOGGER

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff")


class FrameSource:
    """Base class: ``next_frame()`` returns an HxWx3 BGR frame or raises InputExhausted."""

    frame_count: Optional[int] = None

    def next_frame(self) -> np.ndarray:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __iter__(self) -> Iterator[np.ndarray]:
        while True:
            try:
                yield self.next_frame()
            except InputExhausted:
                return

    def __enter__(self) -> "FrameSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class VideoFrameSource(FrameSource):
    """Camera index or video file read through ``cv2.VideoCapture``."""

    def __init__(self, source: Union[int, str, Path]) -> None:
        self.source = source
        target = source if isinstance(source, int) else str(source)
        if not isinstance(source, int) and not Path(target).exists():
            raise FileNotFoundError(f"Video not found: {target}")
        self._cap = cv2.VideoCapture(target)
        if not self._cap.isOpened():
            raise RuntimeError(
                f"Could not open video source {target}. The device may be busy or the file unsupported."
            )
        total = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        self.frame_count = total if total > 0 else None
        self._index = 0

    def next_frame(self) -> np.ndarray:
        if self._cap is None:
            raise InputExhausted(f"Video source {self.source} is closed.")
        ret, frame = self._cap.read()
        if not ret or frame is None or frame.size == 0:
            logger.info("Video source %s exhausted after %s frames", self.source, self._index)
            raise InputExhausted(f"No more frames from {self.source}.")
        self._index += 1
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        return frame

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class ImageSequenceSource(FrameSource):
    """Sorted image files from a directory, read with ``cv2.imread``."""

    def __init__(self, directory: Union[str, Path]) -> None:
        path = Path(directory)
        if not path.is_dir():
            raise ValueError(f"Expected a directory of images, got: {path}")
        self.paths: List[Path] = sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        if not self.paths:
            raise ValueError(f"No images ({', '.join(IMAGE_SUFFIXES)}) found in {path}")
        self.frame_count = len(self.paths)
        self._index = 0

    def next_frame(self) -> np.ndarray:
        while self._index < len(self.paths):
            path = self.paths[self._index]
            self._index += 1
            frame = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if frame is None:
                logger.warning("Skipping unreadable image %s", path)
                continue
            return frame
        raise InputExhausted("Image sequence exhausted.")


class ArrayFrameSource(FrameSource):
    """Frames from an in-memory iterable (synthetic sequences, tests)."""

    def __init__(self, frames: Iterable[np.ndarray]) -> None:
        self._frames = iter(frames)
        try:
            self.frame_count = len(frames)  # type: ignore[arg-type]
        except TypeError:
            self.frame_count = None

    def next_frame(self) -> np.ndarray:
        try:
            frame = next(self._frames)
        except StopIteration:
            raise InputExhausted("Frame iterable exhausted.") from None
        return np.asarray(frame)


def open_source(spec: Union[int, str, Path]) -> FrameSource:
    """Camera index (``"0"``), image directory or video file."""
    if isinstance(spec, int):
        return VideoFrameSource(spec)
    text = str(spec).strip()
    if text.isdigit():
        return VideoFrameSource(int(text))
    path = Path(text).expanduser()
    if path.is_dir():
        return ImageSequenceSource(path)
    return VideoFrameSource(path)


def frame_size(frame: np.ndarray) -> Tuple[int, int]:
    """(width, height) of a frame."""
    return int(frame.shape[1]), int(frame.shape[0])
