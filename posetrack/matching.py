"""Track-list set operations, IoU costs and thresholded assignment."""

from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from posetrack.lapjv import lapjv
from posetrack.strack import STrack

DUPLICATE_IOU_DISTANCE = 0.15


def joint_stracks(tlista: Sequence[STrack], tlistb: Sequence[STrack]) -> List[STrack]:
    """All of ``tlista`` followed by the tracks of ``tlistb`` whose ids are new."""
    seen = {track.track_id for track in tlista}
    result = list(tlista)
    for track in tlistb:
        if track.track_id not in seen:
            seen.add(track.track_id)
            result.append(track)
    return result


def sub_stracks(tlista: Sequence[STrack], tlistb: Sequence[STrack]) -> List[STrack]:
    """Tracks of ``tlista`` whose ids are absent from ``tlistb``, ordered by id."""
    by_id = {}
    for track in tlista:
        by_id.setdefault(track.track_id, track)
    for track in tlistb:
        by_id.pop(track.track_id, None)
    return [by_id[tid] for tid in sorted(by_id)]


def ious(atlbrs, btlbrs) -> np.ndarray:
    """Pairwise IoU of two lists of ``(x1, y1, x2, y2)`` boxes, in inclusive pixels."""
    a = np.asarray(atlbrs, dtype=np.float64).reshape(-1, 4)
    b = np.asarray(btlbrs, dtype=np.float64).reshape(-1, 4)
    if a.shape[0] == 0 or b.shape[0] == 0:
        return np.zeros((a.shape[0], b.shape[0]))
    iw = np.minimum(a[:, None, 2], b[None, :, 2]) - np.maximum(a[:, None, 0], b[None, :, 0]) + 1
    ih = np.minimum(a[:, None, 3], b[None, :, 3]) - np.maximum(a[:, None, 1], b[None, :, 1]) + 1
    area_a = (a[:, 2] - a[:, 0] + 1) * (a[:, 3] - a[:, 1] + 1)
    area_b = (b[:, 2] - b[:, 0] + 1) * (b[:, 3] - b[:, 1] + 1)
    overlap = (iw > 0) & (ih > 0)
    inter = np.where(overlap, iw * ih, 0.0)
    union = area_a[:, None] + area_b[None, :] - inter
    safe_union = np.where(overlap, union, 1.0)
    return np.where(overlap, inter / safe_union, 0.0)


def iou_distance(atracks: Sequence[STrack], btracks: Sequence[STrack]) -> np.ndarray:
    """``1 - IoU`` between every pair of tracks; shape ``(len(atracks), len(btracks))``."""
    return 1.0 - ious([t.tlbr for t in atracks], [t.tlbr for t in btracks])


def remove_duplicate_stracks(
    stracksa: Sequence[STrack], stracksb: Sequence[STrack]
) -> Tuple[List[STrack], List[STrack]]:
    """Drop the younger track of every pair that overlaps almost completely."""
    pdist = iou_distance(stracksa, stracksb)
    dupa, dupb = set(), set()
    for p, q in np.argwhere(pdist < DUPLICATE_IOU_DISTANCE):
        timep = stracksa[p].frame_id - stracksa[p].start_frame
        timeq = stracksb[q].frame_id - stracksb[q].start_frame
        if timep > timeq:
            dupb.add(int(q))
        else:
            dupa.add(int(p))
    resa = [t for i, t in enumerate(stracksa) if i not in dupa]
    resb = [t for i, t in enumerate(stracksb) if i not in dupb]
    return resa, resb


def linear_assignment(
    cost_matrix, thresh: float, n_rows: Optional[int] = None, n_cols: Optional[int] = None
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """Match rows to columns, rejecting pairs costlier than ``thresh``.

    Returns ``(matches, unmatched_rows, unmatched_cols)``. For an empty matrix
    every row and column is unmatched; ``n_rows`` and ``n_cols`` give their
    counts and default to the matrix shape.
    """
    cost = np.asarray(cost_matrix, dtype=np.float64)
    if cost.size == 0:
        if n_rows is None:
            n_rows = cost.shape[0] if cost.ndim == 2 else 0
        if n_cols is None:
            n_cols = cost.shape[1] if cost.ndim == 2 else 0
        return [], list(range(n_rows)), list(range(n_cols))

    result = lapjv(cost, extend_cost=True, cost_limit=thresh)
    matches = [(i, col) for i, col in enumerate(result.rowsol) if col >= 0]
    unmatched_a = [i for i, col in enumerate(result.rowsol) if col < 0]
    unmatched_b = [j for j, row in enumerate(result.colsol) if row < 0]
    return matches, unmatched_a, unmatched_b


def get_color(idx: int) -> Tuple[int, int, int]:
    """A distinct drawing colour for a track index."""
    idx += 3
    return tuple(int(math.fmod(k * idx, 255)) for k in (37, 17, 29))