# posetrack

Tools for finding people in camera frames from the raw outputs of a
single-class pose model, and for following those people over time.

## Modules

- `posetrack.kalman_filter.KalmanFilter` is a constant-velocity Kalman filter
  over boxes in `(x, y, aspect, height)` form. It provides `initiate`,
  `predict`, `project`, `update` and `gating_distance`.
- `posetrack.lapjv` solves linear assignment problems with the
  Jonker–Volgenant algorithm. `solve_dense` takes a square matrix.
  `lapjv` also takes rectangular matrices when `extend_cost=True`, and it
  accepts a `cost_limit`. It returns an `Assignment(cost, rowsol, colsol)`,
  where `-1` marks a row or column left unmatched.
- `posetrack.histogram` provides the appearance helpers:
  - `bgr_to_hsv` converts an image to HSV.
  - `compute_hist` builds a min–max normalised 16×16 hue/saturation
    histogram. It returns `None` when the region is smaller than 10 pixels
    on either side.
  - `compare_hist` gives the Bhattacharyya distance between two histograms.
- `posetrack.strack` holds the state of a single track: `STrack` and
  `TrackState`.
- `posetrack.matching` has the helpers the tracker uses:
  - `joint_stracks`, `sub_stracks` and `remove_duplicate_stracks` for
    combining track lists;
  - `ious` and `iou_distance` for box overlap;
  - `linear_assignment` for matching with a threshold;
  - `get_color` for drawing colours.
- `posetrack.tracker.BYTETracker` associates detections with tracks in two
  passes, high-score detections first and low-score ones second. The cost
  mixes IoU distance with colour-histogram distance, and the weight depends
  on box size. Detections are given as `DetectedObject`.
- `posetrack.pose` turns frames into model input and model output into
  detections:
  - `YOLOv11PoseDecoder` letterboxes or resizes a BGR frame and converts it
    to NV12. It decodes the box, class and keypoint heads at strides 8, 16
    and 32 into `PoseDetection`s with 17 keypoints, then runs NMS with an
    IoU of 0.45, a score threshold of 0.25 and a limit of 300 boxes.
  - The module also provides `prob_to_logit`, `bgr_to_nv12`, `nms_boxes`,
    `match_output_order` and `render_results`.
- `posetrack.pose_tracking` works with tracked people:
  - `HandsUpSelector` chooses which tracks to follow.
  - `calculate_iou` and `find_detection_by_bbox` pair tracks with
    detections.
  - `is_hands_up` tests the pose, `compute_body_depth` reads depth and
    `tracks_to_summaries` summarises tracks.
  - `draw_line_point` draws a skeleton.

## Installation

```
pip install .
```

## Tracking detections

```python
import numpy as np
from posetrack.tracker import BYTETracker, DetectedObject

tracker = BYTETracker(frame_rate=30, track_buffer=90)
frame = np.zeros((480, 640, 3), dtype=np.uint8)  # BGR image

objects = [DetectedObject(class_id=0, score=0.9, box=(100.0, 80.0, 60.0, 150.0))]
for track in tracker.update(objects, frame):
    print(track.track_id, track.tlbr, track.score)
```

In `DetectedObject`, `box` is `(x, y, width, height)` in pixels. A track
created after the first frame is returned once a second detection confirms
it.

## Decoding pose outputs

```python
from posetrack.pose import YOLOv11PoseDecoder, prob_to_logit, render_results

decoder = YOLOv11PoseDecoder(input_h=640, input_w=640, preprocess_type=1)
prep = decoder.preprocess(frame)   # PreprocessResult: prep.nv12, scales and shifts
# ... run the model on prep.nv12 to get `outputs` and `bbox_scales` ...
keep = decoder.postprocess(outputs, bbox_scales, prob_to_logit(0.25), prob_to_logit(0.5))
annotated = render_results(frame, decoder.detections, keep)
```

- `preprocess_type=1` letterboxes the frame with grey padding (127). Any
  other value stretches the frame to the model size.
- `outputs` are the nine NHWC head arrays in any order. `postprocess`
  matches them to heads by shape.
- `bbox_scales[i]` holds the 16 dequantisation scales for output `i`. Only
  the entries for the box heads are read.
- `postprocess` returns the indices that survive NMS. The decoded boxes,
  mapped back to source-image pixels, are kept in `decoder.detections`.
- Thresholds are in logit space. `prob_to_logit` converts a probability.
- `render_results` draws on a copy of the frame and returns the copy.

## Selecting a target

```python
import time
from posetrack.pose_tracking import HandsUpSelector

selector = HandsUpSelector()
followed = selector.update(tracks, decoder.detections, time.monotonic())
```

Each track is paired with the detection that overlaps it best, provided
the IoU is at least 0.6. The selector keeps a history of the person's last
60 matched frames, recording whether a hand was up in each.

- A person becomes followed once all 60 frames show a hand up.
- A followed person is released when a full hands-up history is seen again
  at least 5 seconds after following started.
- After release, that person cannot be followed again for 10 seconds.

`update` returns the tracks that are currently followed.

## What this package does not do

- It does not run a neural network. Model loading and inference are left
  to you: you supply the output arrays.
- It does not read from cameras or files.
- It does not publish results over any messaging system.
- It has no command-line program.

## Running the tests

```
pip install .[test]
pytest
```