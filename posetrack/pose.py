"""Pre- and post-processing for a YOLO11 pose model with split box/class/keypoint heads."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image, ImageDraw

CLASSES_NUM = 1
KPT_NUM = 17
KPT_ENCODE = 3
REG = 16

LETTERBOX = 1
RESIZE = 0

NMS_SCORE_THRESHOLD = 0.25
NMS_IOU_THRESHOLD = 0.45
NMS_TOP_K = 300
KEYPOINT_DRAW_THRESHOLD = 0.5
PAD_VALUE = 127

STRIDES = (8, 16, 32)

# Fixed-point BT.601 coefficients for RGB -> YUV, 20 fractional bits.
_SHIFT = 20
_CRY, _CGY, _CBY = 269484, 528482, 102760
_CRU, _CGU, _CBU = -155188, -305135, 460324
_CGV, _CBV = -385875, -74448

# BGR drawing colours.
_BLUE = (255, 0, 0)
_RED = (0, 0, 255)
_YELLOW = (0, 255, 255)


@dataclass
class PoseDetection:
    """One person: ``(x, y, width, height)`` box in source-image pixels, score and keypoints."""

    bbox: Tuple[float, float, float, float]
    score: float
    keypoints: List[Tuple[float, float]] = field(default_factory=list)
    keypoints_score: List[float] = field(default_factory=list)


@dataclass(frozen=True)
class PreprocessResult:
    """NV12 model input and the transform that maps model pixels back to the source image."""

    nv12: np.ndarray
    x_scale: float
    y_scale: float
    x_shift: int
    y_shift: int


def prob_to_logit(probability: float) -> float:
    """Convert a probability threshold into the raw (pre-sigmoid) score space."""
    if not 0.0 < probability < 1.0:
        raise ValueError("probability must lie strictly between 0 and 1")
    return -math.log(1.0 / probability - 1.0)


def bgr_to_nv12(image) -> np.ndarray:
    """Convert an 8-bit BGR image with even sides to NV12 of shape ``(rows * 3 // 2, cols)``.

    Chroma is sampled from the top-left pixel of every 2x2 block.
    """
    bgr = np.asarray(image)
    if bgr.ndim != 3 or bgr.shape[2] != 3:
        raise ValueError("expected an image of shape (rows, cols, 3)")
    rows, cols = bgr.shape[:2]
    if rows == 0 or cols == 0 or rows % 2 or cols % 2:
        raise ValueError("image sides must be positive and even")

    b, g, r = (bgr[..., k].astype(np.int64) for k in range(3))
    half = 1 << (_SHIFT - 1)
    y_plane = (_CRY * r + _CGY * g + _CBY * b + half + (16 << _SHIFT)) >> _SHIFT

    rs, gs, bs = r[0::2, 0::2], g[0::2, 0::2], b[0::2, 0::2]
    u_plane = (_CRU * rs + _CGU * gs + _CBU * bs + half + (128 << _SHIFT)) >> _SHIFT
    v_plane = (_CBU * rs + _CGV * gs + _CBV * bs + half + (128 << _SHIFT)) >> _SHIFT

    out = np.empty((rows * 3 // 2, cols), dtype=np.uint8)
    out[:rows] = np.clip(y_plane, 0, 255)
    uv = np.stack([u_plane, v_plane], axis=-1).reshape(rows // 2, cols)
    out[rows:] = np.clip(uv, 0, 255)
    return out


def _rect_overlap(a: Sequence[float], b: Sequence[float]) -> float:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    area_a = aw * ah
    area_b = bw * bh
    if area_a + area_b <= np.finfo(np.float64).eps:
        return 1.0
    iw = min(ax + aw, bx + bw) - max(ax, bx)
    ih = min(ay + ah, by + bh) - max(ay, by)
    inter = iw * ih if iw > 0 and ih > 0 else 0.0
    return inter / (area_a + area_b - inter)


def nms_boxes(
    boxes: Sequence[Sequence[float]],
    scores: Sequence[float],
    score_threshold: float,
    nms_threshold: float,
    top_k: int = 0,
) -> List[int]:
    """Greedy non-maximum suppression over ``(x, y, width, height)`` boxes.

    Candidates scoring above ``score_threshold`` are visited in descending
    score order (ties keep input order), at most ``top_k`` of them when it is
    positive; a box is kept if its IoU with every kept box is at most
    ``nms_threshold``. Returns the kept indices.
    """
    if len(boxes) != len(scores):
        raise ValueError("boxes and scores must have the same length")
    if score_threshold < 0 or nms_threshold < 0:
        raise ValueError("thresholds must not be negative")
    candidates = [i for i, s in enumerate(scores) if s > score_threshold]
    candidates.sort(key=lambda i: -scores[i])
    if 0 < top_k < len(candidates):
        candidates = candidates[:top_k]

    kept: List[int] = []
    for idx in candidates:
        if all(_rect_overlap(boxes[idx], boxes[k]) <= nms_threshold for k in kept):
            kept.append(idx)
    return kept


def match_output_order(
    output_shapes: Sequence[Sequence[int]], input_h: int, input_w: int
) -> List[int]:
    """Map the nine expected heads to model output indices.

    Outputs are NHWC shapes. The expected order is box, class for strides
    8, 16 and 32, then keypoints for strides 8, 16 and 32. A head with no
    matching output maps to index 0.
    """
    wanted = []
    for stride in STRIDES:
        gh, gw = input_h // stride, input_w // stride
        wanted.append((gh, gw, 4 * REG))
        wanted.append((gh, gw, CLASSES_NUM))
    for stride in STRIDES:
        wanted.append((input_h // stride, input_w // stride, KPT_NUM * KPT_ENCODE))

    order = []
    for target in wanted:
        found = next(
            (j for j, shape in enumerate(output_shapes) if tuple(shape[1:4]) == target),
            0,
        )
        order.append(found)
    return order


def render_results(image, detections: Sequence[PoseDetection], indices: Sequence[int]) -> np.ndarray:
    """Draw the selected detections onto a copy of a BGR image and return it."""
    canvas_array = np.ascontiguousarray(np.asarray(image, dtype=np.uint8))
    if canvas_array.ndim != 3 or canvas_array.shape[2] != 3:
        raise ValueError("expected an image of shape (rows, cols, 3)")
    canvas = Image.fromarray(canvas_array.copy(), mode="RGB")
    draw = ImageDraw.Draw(canvas)

    for idx in indices:
        det = detections[idx]
        x, y, w, h = det.bbox
        x1, y1 = round(x), round(y)
        x2, y2 = round(x + w), round(y + h)
        draw.rectangle([min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)], outline=_BLUE, width=2)
        draw.text((x1, y1 - 15), f"person: {int(det.score * 100)}%", fill=_RED)

        for j, ((kx, ky), kscore) in enumerate(zip(det.keypoints, det.keypoints_score)):
            if kscore < KEYPOINT_DRAW_THRESHOLD:
                continue
            px, py = int(kx), int(ky)
            draw.ellipse([px - 5, py - 5, px + 5, py + 5], fill=_RED)
            draw.ellipse([px - 2, py - 2, px + 2, py + 2], fill=_YELLOW)
            draw.text((px, py - 10), str(j), fill=_YELLOW, stroke_width=1, stroke_fill=_RED)

    return np.asarray(canvas, dtype=np.uint8).copy()


class YOLOv11PoseDecoder:
    """Turns images into model input and raw head outputs into pose detections."""

    def __init__(self, input_h: int, input_w: int, preprocess_type: int = LETTERBOX) -> None:
        if input_h <= 0 or input_w <= 0:
            raise ValueError("input size must be positive")
        self.input_h = int(input_h)
        self.input_w = int(input_w)
        self.preprocess_type = preprocess_type
        self.x_scale = 1.0
        self.y_scale = 1.0
        self.x_shift = 0
        self.y_shift = 0
        self.detections: List[PoseDetection] = []
        self.nms_indices: List[int] = []

    def preprocess(self, image) -> PreprocessResult:
        """Letterbox or stretch a BGR image to the model size and convert it to NV12."""
        src = np.asarray(image, dtype=np.uint8)
        if src.ndim != 3 or src.shape[2] != 3 or src.shape[0] == 0 or src.shape[1] == 0:
            raise ValueError("expected a non-empty image of shape (rows, cols, 3)")
        rows, cols = src.shape[:2]

        if self.preprocess_type == LETTERBOX:
            scale = float(np.float32(min(self.input_h / rows, self.input_w / cols)))
            x_scale = y_scale = scale
            new_w = int(cols * scale)
            new_h = int(rows * scale)
            x_shift = (self.input_w - new_w) // 2
            y_shift = (self.input_h - new_h) // 2
            resized = self._resize(src, new_w, new_h)
            padded = np.pad(
                resized,
                (
                    (y_shift, self.input_h - new_h - y_shift),
                    (x_shift, self.input_w - new_w - x_shift),
                    (0, 0),
                ),
                mode="constant",
                constant_values=PAD_VALUE,
            )
        else:
            padded = self._resize(src, self.input_w, self.input_h)
            x_scale = float(np.float32(self.input_w / cols))
            y_scale = float(np.float32(self.input_h / rows))
            x_shift = y_shift = 0

        self.x_scale, self.y_scale = x_scale, y_scale
        self.x_shift, self.y_shift = x_shift, y_shift
        return PreprocessResult(bgr_to_nv12(padded), x_scale, y_scale, x_shift, y_shift)

    @staticmethod
    def _resize(image: np.ndarray, width: int, height: int) -> np.ndarray:
        if (width, height) == (image.shape[1], image.shape[0]):
            return image.copy()
        if width <= 0 or height <= 0:
            raise ValueError("image is too small for the model input")
        resized = Image.fromarray(np.ascontiguousarray(image), mode="RGB").resize(
            (width, height), Image.Resampling.BILINEAR
        )
        return np.asarray(resized, dtype=np.uint8)

    def decode_scale(
        self, bbox_raw, bbox_scale, cls_raw, kpts_raw, stride: int, conf_thres_raw: float
    ) -> List[PoseDetection]:
        """Decode one stride's box, class and keypoint heads into detections.

        The grid size comes from the class head, laid out ``(..., h, w, classes)``.
        """
        cls = np.asarray(cls_raw, dtype=np.float64)
        if cls.ndim < 3:
            raise ValueError("class output must be laid out as (..., h, w, classes)")
        grid_h, grid_w = cls.shape[-3], cls.shape[-2]
        cells = grid_h * grid_w
        cls = cls.reshape(cells, CLASSES_NUM)
        bbox = np.asarray(bbox_raw, dtype=np.float64).reshape(cells, 4, REG)
        kpts = np.asarray(kpts_raw, dtype=np.float64).reshape(cells, KPT_NUM, KPT_ENCODE)
        scale = np.asarray(bbox_scale, dtype=np.float64).reshape(REG)

        best = cls.max(axis=1)
        keep = np.nonzero(best >= conf_thres_raw)[0]
        if keep.size == 0:
            return []

        dfl = np.exp(bbox[keep] * scale)
        ltrb = (dfl * np.arange(REG)).sum(axis=-1) / dfl.sum(axis=-1)

        detections = []
        for cell, (left, top, right, bottom), raw_score in zip(keep, ltrb, best[keep]):
            if right + left <= 0 or bottom + top <= 0:
                continue
            h, w = divmod(int(cell), grid_w)
            x1 = (w + 0.5 - left) * stride
            y1 = (h + 0.5 - top) * stride
            x2 = (w + 0.5 + right) * stride
            y2 = (h + 0.5 + bottom) * stride
            score = 1.0 / (1.0 + math.exp(-raw_score))

            points = kpts[cell]
            keypoints = [
                (
                    ((kx * 2.0 + w) * stride - self.x_shift) / self.x_scale,
                    ((ky * 2.0 + h) * stride - self.y_shift) / self.y_scale,
                )
                for kx, ky, _ in points
            ]
            detections.append(
                PoseDetection(
                    bbox=(
                        (x1 - self.x_shift) / self.x_scale,
                        (y1 - self.y_shift) / self.y_scale,
                        (x2 - x1) / self.x_scale,
                        (y2 - y1) / self.y_scale,
                    ),
                    score=score,
                    keypoints=keypoints,
                    keypoints_score=[float(p[2]) for p in points],
                )
            )
        return detections

    def postprocess(
        self,
        outputs: Sequence,
        bbox_scales: Union[Sequence, Mapping[int, Sequence[float]]],
        conf_thres_raw: float,
        kpt_conf_thres_raw: Optional[float] = None,
    ) -> List[int]:
        """Decode all nine model outputs, run NMS and return the kept detection indices.

        ``bbox_scales`` holds the dequantisation scales of each output, indexed
        like ``outputs``; only the box heads' entries are read. The decoded
        detections are left in :attr:`detections`.
        """
        arrays = [np.asarray(out) for out in outputs]
        order = match_output_order([a.shape for a in arrays], self.input_h, self.input_w)

        self.detections = []
        for k, stride in enumerate(STRIDES):
            bbox_idx, cls_idx, kpt_idx = order[2 * k], order[2 * k + 1], order[6 + k]
            self.detections.extend(
                self.decode_scale(
                    arrays[bbox_idx],
                    bbox_scales[bbox_idx],
                    arrays[cls_idx],
                    arrays[kpt_idx],
                    stride,
                    conf_thres_raw,
                )
            )

        self.nms_indices = nms_boxes(
            [d.bbox for d in self.detections],
            [d.score for d in self.detections],
            NMS_SCORE_THRESHOLD,
            NMS_IOU_THRESHOLD,
            NMS_TOP_K,
        )
        return self.nms_indices