"""Pose-model output decoding, ByteTrack-style tracking and hands-up target selection."""

__version__ = "0.1.0"

__all__ = [
    "histogram",
    "kalman_filter",
    "lapjv",
    "matching",
    "pose",
    "pose_tracking",
    "strack",
    "tracker",
]