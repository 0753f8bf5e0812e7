"""Pose-aware person selection on top of tracked detections.

A person becomes the followed target by holding a hand up for a full
history window. They stop being followed by doing so again once a minimum
tracking time has passed. After that, a cooldown stops the same person from
being picked up again straight away.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence

import numpy as np
from PIL import Image, ImageDraw

from posetrack.pose import PoseDetection
from posetrack.strack import STrack

IOU_THRESHOLD = 0.6
HISTORY_LENGTH = 60
TRACKING_TIMEOUT = 5.0
COOLDOWN = 10.0
HANDS_UP_MARGIN = 50

LEFT_SHOULDER = 5
RIGHT_SHOULDER = 6
LEFT_WRIST = 9
RIGHT_WRIST = 10

MIN_DEPTH = 0.1
MAX_DEPTH = 10.0

# Pairs of 1-based keypoint indices joined by skeleton lines.
SKELETON = (
    16, 14, 14, 12, 17, 15, 15, 13, 12, 13, 6, 12, 7, 13, 6, 7, 6, 8,
    7, 9, 8, 10, 9, 11, 2, 3, 1, 2, 1, 3, 2, 4, 3, 5, 4, 6, 5, 7,
)

# BGR drawing colours.
_ORANGE = (0, 165, 255)
_YELLOW = (0, 255, 255)


@dataclass
class TrackedPerson:
    """Hands-up state of one track id."""

    track_id: int
    is_tracking: bool = False
    hands_up_history: Deque[bool] = field(
        default_factory=lambda: deque(maxlen=HISTORY_LENGTH)
    )
    hands_up_start_time: float = 0.0
    hands_up_stop_time: Optional[float] = None


@dataclass(frozen=True)
class TrackSummary:
    """A track as a labelled, scored, centre-and-size box."""

    track_id: int
    class_id: str
    score: float
    center_x: float
    center_y: float
    size_x: float
    size_y: float


def calculate_iou(det: PoseDetection, tlbr: Sequence[float]) -> float:
    """IoU of a detection's box with an ``(x1, y1, x2, y2)`` box."""
    dx, dy, dw, dh = det.bbox
    det_x1, det_y1, det_x2, det_y2 = dx, dy, dx + dw, dy + dh
    tx1, ty1, tx2, ty2 = (float(v) for v in tlbr[:4])

    w = max(0.0, min(det_x2, tx2) - max(det_x1, tx1))
    h = max(0.0, min(det_y2, ty2) - max(det_y1, ty1))
    inter = w * h
    union = (det_x2 - det_x1) * (det_y2 - det_y1) + (tx2 - tx1) * (ty2 - ty1) - inter
    return 0.0 if union == 0 else inter / union


def find_detection_by_bbox(
    tlbr: Sequence[float], detections: Sequence[PoseDetection]
) -> Optional[PoseDetection]:
    """The detection overlapping ``tlbr`` best, if its IoU reaches the threshold."""
    best: Optional[PoseDetection] = None
    max_iou = 0.0
    for det in detections:
        iou = calculate_iou(det, tlbr)
        if iou > max_iou:
            max_iou = iou
            best = det
    return best if max_iou >= IOU_THRESHOLD else None


def is_hands_up(det: PoseDetection) -> bool:
    """Whether either wrist is well above its shoulder."""
    if len(det.keypoints) <= RIGHT_WRIST:
        return False

    def pixel_y(index: int) -> int:
        return int(det.keypoints[index][1])

    left_up = pixel_y(LEFT_SHOULDER) - pixel_y(LEFT_WRIST) > HANDS_UP_MARGIN
    right_up = pixel_y(RIGHT_SHOULDER) - pixel_y(RIGHT_WRIST) > HANDS_UP_MARGIN
    return left_up or right_up


def compute_body_depth(det: PoseDetection, depth_image) -> float:
    """Mean depth in metres under the keypoints of a millimetre depth image.

    Keypoints off the image and depths outside 0.1..10 m are ignored; with no
    usable keypoint, or no depth image, the result is 0.
    """
    if depth_image is None:
        return 0.0
    depth = np.asarray(depth_image)
    if depth.size == 0:
        return 0.0
    rows, cols = depth.shape[:2]

    valid: List[float] = []
    for x, y in det.keypoints:
        if x < 0 or y < 0 or x >= cols or y >= rows:
            continue
        metres = float(depth[int(y), int(x)]) / 1000.0
        if metres <= MIN_DEPTH or metres > MAX_DEPTH:
            continue
        valid.append(metres)
    return sum(valid) / len(valid) if valid else 0.0


def tracks_to_summaries(tracks: Sequence[STrack]) -> List[TrackSummary]:
    """Describe every track as a ``person`` box with its id and score."""
    summaries = []
    for track in tracks:
        x1, y1, x2, y2 = (float(v) for v in track.tlbr[:4])
        summaries.append(
            TrackSummary(
                track_id=track.track_id,
                class_id="person",
                score=float(track.score),
                center_x=(x1 + x2) / 2.0,
                center_y=(y1 + y2) / 2.0,
                size_x=x2 - x1,
                size_y=y2 - y1,
            )
        )
    return summaries


def draw_line_point(image, det: PoseDetection) -> np.ndarray:
    """Draw a detection's skeleton and keypoints onto a copy of a BGR image."""
    array = np.ascontiguousarray(np.asarray(image, dtype=np.uint8))
    if array.ndim != 3 or array.shape[2] != 3:
        raise ValueError("expected an image of shape (rows, cols, 3)")
    canvas = Image.fromarray(array.copy())
    draw = ImageDraw.Draw(canvas)
    points = [(int(x), int(y)) for x, y in det.keypoints]

    for a, b in zip(SKELETON[0::2], SKELETON[1::2]):
        idx1, idx2 = a - 1, b - 1
        if idx1 >= len(points) or idx2 >= len(points):
            continue
        draw.line([points[idx1], points[idx2]], fill=_ORANGE, width=3)

    for px, py in points:
        draw.ellipse([px - 2, py - 2, px + 2, py + 2], fill=_YELLOW)

    return np.asarray(canvas, dtype=np.uint8).copy()


class HandsUpSelector:
    """Decides, frame by frame, which tracks are being actively followed."""

    def __init__(self) -> None:
        self.persons: Dict[int, TrackedPerson] = {}

    def update(
        self, tracks: Sequence[STrack], detections: Sequence[PoseDetection], now: float
    ) -> List[STrack]:
        """Feed one frame at time ``now`` (seconds) and return the followed tracks."""
        for track in tracks:
            person = self.persons.get(track.track_id)
            if person is None:
                person = TrackedPerson(track.track_id, hands_up_start_time=now)
                self.persons[track.track_id] = person

            det = find_detection_by_bbox(track.tlbr, detections)
            if det is None:
                continue

            person.hands_up_history.append(is_hands_up(det))
            held_long = sum(person.hands_up_history) >= HISTORY_LENGTH

            if not person.is_tracking:
                in_cooldown = (
                    person.hands_up_stop_time is not None
                    and now - person.hands_up_stop_time < COOLDOWN
                )
                if not in_cooldown and held_long:
                    person.is_tracking = True
                    person.hands_up_start_time = now
            elif now - person.hands_up_start_time >= TRACKING_TIMEOUT and held_long:
                person.is_tracking = False
                person.hands_up_stop_time = now

        return [
            track
            for track in tracks
            if track.track_id in self.persons and self.persons[track.track_id].is_tracking
        ]