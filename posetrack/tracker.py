"""ByteTrack multi-object tracker with a colour-histogram appearance cue."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from posetrack.histogram import compare_hist
from posetrack.kalman_filter import KalmanFilter
from posetrack.matching import (
    iou_distance,
    joint_stracks,
    linear_assignment,
    remove_duplicate_stracks,
    sub_stracks,
)
from posetrack.strack import STrack, TrackState


@dataclass(frozen=True)
class DetectedObject:
    """A detector output: class id, confidence and an ``(x, y, width, height)`` box."""

    class_id: int
    score: float
    box: Tuple[float, float, float, float]


def compute_color_similarity(hist1, hist2) -> float:
    """Similarity in ``[0, 1]`` of two colour histograms; 0.5 if either is missing."""
    if hist1 is None or hist2 is None:
        return 0.5
    if np.asarray(hist1).size == 0 or np.asarray(hist2).size == 0:
        return 0.5
    return 1.0 - compare_hist(hist1, hist2)


class BYTETracker:
    """Associates per-frame detections into tracks in two passes, high then low score."""

    def __init__(self, frame_rate: int = 30, track_buffer: int = 30) -> None:
        self.track_thresh = 0.5
        self.high_thresh = 0.6
        self.match_thresh = 0.8
        self.frame_id = 0
        self.max_time_lost = int(frame_rate / 30.0 * track_buffer)
        self.tracked_stracks: List[STrack] = []
        self.lost_stracks: List[STrack] = []
        self.removed_stracks: List[STrack] = []
        self.kalman_filter = KalmanFilter()

    def fused_distance(
        self,
        atracks: Sequence[STrack],
        btracks: Sequence[STrack],
        frame,
        appearance_weight: float = 0.5,
    ) -> np.ndarray:
        """Blend IoU distance with colour-histogram distance, weighted by box size.

        ``appearance_weight`` is accepted for interface compatibility; the weight
        actually used depends on each track's area relative to the frame.
        """
        iou_dist = iou_distance(atracks, btracks)
        if iou_dist.size == 0:
            return iou_dist

        image = np.asarray(frame)
        rows, cols = image.shape[:2]
        frame_area = float(rows * cols)

        for track in atracks:
            if track.color_hist is None:
                track.update_color_hist(image)
        for det in btracks:
            if det.color_hist is None:
                det.update_color_hist(image)

        fused = np.empty_like(iou_dist)
        for i, track in enumerate(atracks):
            bbox_area = (track.tlwh[2] * track.tlwh[3]) / frame_area
            weight = min(0.5, 0.3 + 0.4 * (1 - bbox_area))
            for j, det in enumerate(btracks):
                appearance = 1.0 - compute_color_similarity(track.color_hist, det.color_hist)
                fused[i, j] = (1 - weight) * iou_dist[i, j] + weight * appearance
        return fused

    def update(self, objects: Sequence[DetectedObject], frame) -> List[STrack]:
        """Consume one frame of detections and return the active, confirmed tracks."""
        self.frame_id += 1
        image = np.asarray(frame)
        activated: List[STrack] = []
        refind: List[STrack] = []
        removed: List[STrack] = []
        lost: List[STrack] = []

        # Step 1: split detections by score.
        detections: List[STrack] = []
        detections_low: List[STrack] = []
        for obj in objects:
            x, y, w, h = (float(v) for v in obj.box)
            strack = STrack(STrack.tlbr_to_tlwh([x, y, x + w, y + h]), obj.score)
            if strack.score >= self.track_thresh:
                detections.append(strack)
            else:
                detections_low.append(strack)

        for det in detections + detections_low:
            det.update_color_hist(image)

        unconfirmed = [t for t in self.tracked_stracks if not t.is_activated]
        confirmed = [t for t in self.tracked_stracks if t.is_activated]

        # Step 2: first association with high-score detections.
        pool = joint_stracks(confirmed, self.lost_stracks)
        STrack.multi_predict(pool, self.kalman_filter)

        dists = self.fused_distance(pool, detections, image, 0.5)
        matches, u_track, u_detection = linear_assignment(
            dists, self.match_thresh, len(pool), len(detections)
        )
        for itrack, idet in matches:
            self._apply_match(pool[itrack], detections[idet], activated, refind)

        # Step 3: second association with low-score detections.
        remaining = [detections[i] for i in u_detection]
        r_tracked = [pool[i] for i in u_track if pool[i].state == TrackState.TRACKED]

        dists = self.fused_distance(r_tracked, detections_low, image, 0.5)
        matches, u_track, _ = linear_assignment(
            dists, 0.5, len(r_tracked), len(detections_low)
        )
        for itrack, idet in matches:
            self._apply_match(r_tracked[itrack], detections_low[idet], activated, refind)

        for itrack in u_track:
            track = r_tracked[itrack]
            if track.state != TrackState.LOST:
                track.mark_lost()
                lost.append(track)

        # Unconfirmed tracks usually have only their starting frame.
        dists = iou_distance(unconfirmed, remaining)
        matches, u_unconfirmed, u_detection = linear_assignment(
            dists, 0.7, len(unconfirmed), len(remaining)
        )
        for itrack, idet in matches:
            unconfirmed[itrack].update(remaining[idet], self.frame_id)
            activated.append(unconfirmed[itrack])
        for itrack in u_unconfirmed:
            track = unconfirmed[itrack]
            track.mark_removed()
            removed.append(track)

        # Step 4: start new tracks.
        for idet in u_detection:
            track = remaining[idet]
            if track.score < self.high_thresh:
                continue
            track.activate(self.kalman_filter, self.frame_id)
            activated.append(track)

        # Step 5: update state.
        for track in self.lost_stracks:
            if self.frame_id - track.end_frame() > self.max_time_lost:
                track.mark_removed()
                removed.append(track)

        self.tracked_stracks = [t for t in self.tracked_stracks if t.state == TrackState.TRACKED]
        self.tracked_stracks = joint_stracks(self.tracked_stracks, activated)
        self.tracked_stracks = joint_stracks(self.tracked_stracks, refind)

        self.lost_stracks = sub_stracks(self.lost_stracks, self.tracked_stracks)
        self.lost_stracks.extend(lost)
        self.lost_stracks = sub_stracks(self.lost_stracks, self.removed_stracks)
        self.removed_stracks.extend(removed)

        self.tracked_stracks, self.lost_stracks = remove_duplicate_stracks(
            self.tracked_stracks, self.lost_stracks
        )

        return [t for t in self.tracked_stracks if t.is_activated]

    def _apply_match(
        self, track: STrack, det: STrack, activated: List[STrack], refind: List[STrack]
    ) -> None:
        if track.state == TrackState.TRACKED:
            track.update(det, self.frame_id)
            activated.append(track)
        else:
            track.re_activate(det, self.frame_id, False)
            refind.append(track)