"""Single-target track state for the ByteTrack multi-object tracker."""

from __future__ import annotations

import itertools
from enum import IntEnum
from typing import Iterable, List, Optional, Sequence

import numpy as np

from posetrack.histogram import compute_hist
from posetrack.kalman_filter import KalmanFilter

_HIST_ALPHA = 0.9


class TrackState(IntEnum):
    """Lifecycle state of a track."""

    NEW = 0
    TRACKED = 1
    LOST = 2
    REMOVED = 3


class STrack:
    """A tracked box with Kalman state, lifecycle bookkeeping and a colour feature."""

    _ids = itertools.count(1)

    def __init__(self, tlwh: Sequence[float], score: float) -> None:
        values = [float(v) for v in tlwh]
        if len(values) != 4:
            raise ValueError("tlwh must hold four values")
        self._tlwh = values
        self.is_activated = False
        self.track_id = 0
        self.state = TrackState.NEW
        self.mean: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None
        self.frame_id = 0
        self.tracklet_len = 0
        self.score = float(score)
        self.start_frame = 0
        self.color_hist: Optional[np.ndarray] = None
        self.kalman_filter: Optional[KalmanFilter] = None
        self.tlwh: List[float] = []
        self.tlbr: List[float] = []
        self._refresh_boxes()

    def __repr__(self) -> str:
        return (
            f"STrack(id={self.track_id}, state={self.state.name}, "
            f"tlwh={self.tlwh}, score={self.score:.3f})"
        )

    @staticmethod
    def tlbr_to_tlwh(tlbr: Sequence[float]) -> List[float]:
        """Convert ``(x1, y1, x2, y2)`` to ``(x, y, w, h)``."""
        x1, y1, x2, y2 = (float(v) for v in tlbr)
        return [x1, y1, x2 - x1, y2 - y1]

    @staticmethod
    def tlwh_to_xyah(tlwh: Sequence[float]) -> List[float]:
        """Convert ``(x, y, w, h)`` to centre, aspect ratio and height."""
        x, y, w, h = (float(v) for v in tlwh)
        return [x + w / 2, y + h / 2, w / h, h]

    def to_xyah(self) -> List[float]:
        """Current box as ``(cx, cy, aspect, height)``."""
        return self.tlwh_to_xyah(self.tlwh)

    @staticmethod
    def next_id() -> int:
        """Return a fresh process-wide track id."""
        return next(STrack._ids)

    def _refresh_boxes(self) -> None:
        if self.state == TrackState.NEW:
            tlwh = list(self._tlwh)
        else:
            cx, cy, aspect, height = (float(v) for v in self.mean[:4])
            width = aspect * height
            tlwh = [cx - width / 2, cy - height / 2, width, height]
        self.tlwh = tlwh
        self.tlbr = [tlwh[0], tlwh[1], tlwh[0] + tlwh[2], tlwh[1] + tlwh[3]]

    def activate(self, kalman_filter: KalmanFilter, frame_id: int) -> None:
        """Start a new track from this detection."""
        self.kalman_filter = kalman_filter
        self.track_id = self.next_id()
        self.mean, self.covariance = kalman_filter.initiate(self.tlwh_to_xyah(self._tlwh))
        self._refresh_boxes()

        self.tracklet_len = 0
        self.state = TrackState.TRACKED
        if frame_id == 1:
            self.is_activated = True
        self.frame_id = frame_id
        self.start_frame = frame_id
        self.color_hist = None

    def re_activate(self, new_track: "STrack", frame_id: int, new_id: bool = False) -> None:
        """Revive a lost track with a matched detection."""
        self.mean, self.covariance = self.kalman_filter.update(
            self.mean, self.covariance, self.tlwh_to_xyah(new_track.tlwh)
        )
        self._refresh_boxes()

        self.tracklet_len = 0
        self.state = TrackState.TRACKED
        self.is_activated = True
        self.frame_id = frame_id
        self.score = new_track.score
        if new_id:
            self.track_id = self.next_id()

    def update(self, new_track: "STrack", frame_id: int) -> None:
        """Correct the track with a matched detection."""
        self.frame_id = frame_id
        self.tracklet_len += 1

        self.mean, self.covariance = self.kalman_filter.update(
            self.mean, self.covariance, self.tlwh_to_xyah(new_track.tlwh)
        )
        self._refresh_boxes()

        self.state = TrackState.TRACKED
        self.is_activated = True
        self.score = new_track.score

        if new_track.color_hist is not None:
            if self.color_hist is None:
                self.color_hist = new_track.color_hist.copy()
            else:
                self.color_hist = (
                    _HIST_ALPHA * self.color_hist + (1 - _HIST_ALPHA) * new_track.color_hist
                ).astype(np.float32)

    def update_color_hist(self, img) -> None:
        """Recompute the colour feature from the part of ``img`` under the box."""
        if self.tlwh[2] < 1 or self.tlwh[3] < 1:
            return
        image = np.asarray(img)
        rows, cols = image.shape[:2]
        x = max(0, int(self.tlwh[0]))
        y = max(0, int(self.tlwh[1]))
        width = min(int(self.tlwh[2]), cols - x)
        height = min(int(self.tlwh[3]), rows - y)
        if width <= 0 or height <= 0:
            return
        self.color_hist = compute_hist(image[y:y + height, x:x + width].copy())

    def mark_lost(self) -> None:
        self.state = TrackState.LOST

    def mark_removed(self) -> None:
        self.state = TrackState.REMOVED

    def end_frame(self) -> int:
        """The last frame this track was updated in."""
        return self.frame_id

    @staticmethod
    def multi_predict(stracks: Iterable["STrack"], kalman_filter: KalmanFilter) -> None:
        """Advance every track's Kalman state by one frame."""
        for track in stracks:
            mean = np.array(track.mean, dtype=np.float64)
            if track.state != TrackState.TRACKED:
                mean[7] = 0.0
            track.mean, track.covariance = kalman_filter.predict(mean, track.covariance)