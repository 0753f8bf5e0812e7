"""Hue/saturation colour histograms used as an appearance feature."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

H_BINS = 16
S_BINS = 16
H_RANGE = 180
S_RANGE = 256
MIN_ROI_SIZE = 10

_EPS = float(np.finfo(np.float32).eps)


def bgr_to_hsv(image) -> np.ndarray:
    """Convert an 8-bit BGR image to 8-bit HSV (hue in 0..179, S and V in 0..255)."""
    bgr = np.asarray(image)
    if bgr.ndim != 3 or bgr.shape[2] != 3:
        raise ValueError("expected an image of shape (rows, cols, 3)")
    b, g, r = (bgr[..., k].astype(np.float64) for k in range(3))
    v = np.maximum(np.maximum(b, g), r)
    diff = v - np.minimum(np.minimum(b, g), r)

    safe_v = np.where(v > 0, v, 1.0)
    s = np.where(v > 0, diff * 255.0 / safe_v, 0.0)

    safe_diff = np.where(diff > 0, diff, 1.0)
    hue = np.where(
        v == r,
        60.0 * (g - b) / safe_diff,
        np.where(v == g, 120.0 + 60.0 * (b - r) / safe_diff, 240.0 + 60.0 * (r - g) / safe_diff),
    )
    hue = np.where(diff > 0, hue, 0.0)
    hue = np.where(hue < 0, hue + 360.0, hue)
    hue = np.rint(hue / 2.0)
    hue = np.where(hue >= H_RANGE, hue - H_RANGE, hue)

    hsv = np.stack([hue, np.rint(s), v], axis=-1)
    return np.clip(hsv, 0, 255).astype(np.uint8)


def compute_hist(roi) -> Optional[np.ndarray]:
    """Return a min-max normalised 16x16 hue/saturation histogram of a BGR region.

    Regions smaller than 10 pixels on either side give ``None``.
    """
    region = np.asarray(roi)
    if region.ndim < 2 or region.shape[0] < MIN_ROI_SIZE or region.shape[1] < MIN_ROI_SIZE:
        return None
    hsv = bgr_to_hsv(region)
    h_idx = hsv[..., 0].astype(np.int64) * H_BINS // H_RANGE
    s_idx = hsv[..., 1].astype(np.int64) * S_BINS // S_RANGE
    flat = (h_idx * S_BINS + s_idx).ravel()
    hist = np.bincount(flat, minlength=H_BINS * S_BINS).astype(np.float32)
    hist = hist.reshape(H_BINS, S_BINS)

    low = float(hist.min())
    high = float(hist.max())
    span = high - low
    scale = 1.0 / span if span > _EPS else 0.0
    return ((hist - low) * scale).astype(np.float32)


def compare_hist(hist1, hist2) -> float:
    """Bhattacharyya distance between two histograms: 0 for identical, 1 for disjoint."""
    a = np.asarray(hist1, dtype=np.float64)
    b = np.asarray(hist2, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError("histograms must have the same shape")
    overlap = float(np.sqrt(a * b).sum())
    product = float(a.sum()) * float(b.sum())
    scale = 1.0 / math.sqrt(product) if abs(product) > _EPS else 1.0
    return math.sqrt(max(1.0 - overlap * scale, 0.0))