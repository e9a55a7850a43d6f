"""Frame sources and rendering helpers."""

from .video import ArrayFrameSource, FrameSource, ImageSequenceSource, VideoFrameSource, open_source
from .visualization import NullRenderer, OpenCVRenderer, RecordingRenderer, Renderer, draw_pose

__all__ = [
    "ArrayFrameSource",
    "FrameSource",
    "ImageSequenceSource",
    "VideoFrameSource",
    "open_source",
    "NullRenderer",
    "OpenCVRenderer",
    "RecordingRenderer",
    "Renderer",
    "draw_pose",
]
