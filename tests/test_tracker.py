import numpy as np
import pytest

from posetrack.histogram import compute_hist
from posetrack.strack import STrack, TrackState
from posetrack.tracker import BYTETracker, DetectedObject, compute_color_similarity

BOX_A = (100.0, 100.0, 50.0, 100.0)
BOX_B = (400.0, 100.0, 50.0, 100.0)


@pytest.fixture
def frame():
    return np.zeros((480, 640, 3), dtype=np.uint8)


def _obj(box, score=0.9):
    return DetectedObject(class_id=0, score=score, box=box)


def _striped_patch():
    patch = np.zeros((20, 20, 3), dtype=np.uint8)
    patch[:, :10] = (255, 0, 0)
    patch[:, 10:] = (0, 0, 255)
    return patch


def test_color_similarity_missing_histogram_is_half():
    hist = compute_hist(_striped_patch())
    assert compute_color_similarity(None, hist) == 0.5
    assert compute_color_similarity(hist, None) == 0.5
    assert compute_color_similarity(np.array([]), hist) == 0.5


def test_color_similarity_identical_is_one():
    hist = compute_hist(_striped_patch())
    assert compute_color_similarity(hist, hist) == pytest.approx(1.0, abs=1e-6)


def test_color_similarity_disjoint_is_zero():
    blue = np.zeros((20, 20, 3), dtype=np.uint8)
    blue[:] = (255, 0, 0)
    red = np.zeros((20, 20, 3), dtype=np.uint8)
    red[:] = (0, 0, 255)
    sim = compute_color_similarity(compute_hist(blue), compute_hist(red))
    assert sim == pytest.approx(0.0, abs=1e-6)


@pytest.mark.parametrize("frame_rate,buffer,expected", [(30, 90, 90), (30, 30, 30), (15, 30, 15)])
def test_max_time_lost(frame_rate, buffer, expected):
    assert BYTETracker(frame_rate, buffer).max_time_lost == expected


def test_first_frame_high_score_detection_is_output(frame):
    tracker = BYTETracker()
    out = tracker.update([_obj(BOX_A)], frame)
    assert len(out) == 1
    track = out[0]
    assert track.is_activated
    assert track.state == TrackState.TRACKED
    assert track.tlbr == pytest.approx([100.0, 100.0, 150.0, 200.0], abs=1e-6)


@pytest.mark.parametrize("score", [0.3, 0.55])
def test_low_score_detection_does_not_start_track(frame, score):
    tracker = BYTETracker()
    assert tracker.update([_obj(BOX_A, score)], frame) == []
    assert tracker.tracked_stracks == []


def test_track_id_is_kept_across_frames(frame):
    tracker = BYTETracker()
    first = tracker.update([_obj(BOX_A)], frame)
    ids = {first[0].track_id}
    for _ in range(5):
        out = tracker.update([_obj(BOX_A)], frame)
        assert len(out) == 1
        ids.add(out[0].track_id)
    assert len(ids) == 1


def test_new_track_after_first_frame_needs_confirmation(frame):
    tracker = BYTETracker()
    first = tracker.update([_obj(BOX_A)], frame)
    second = tracker.update([_obj(BOX_A), _obj(BOX_B)], frame)
    assert [t.track_id for t in second] == [first[0].track_id]
    assert len(tracker.tracked_stracks) == 2

    third = tracker.update([_obj(BOX_A), _obj(BOX_B)], frame)
    assert len(third) == 2
    ids = [t.track_id for t in third]
    assert first[0].track_id in ids
    assert len(set(ids)) == 2
    assert all(t.is_activated for t in third)


def test_unconfirmed_track_removed_when_unmatched(frame):
    tracker = BYTETracker()
    tracker.update([_obj(BOX_A)], frame)
    tracker.update([_obj(BOX_A), _obj(BOX_B)], frame)
    newcomer = next(t for t in tracker.tracked_stracks if not t.is_activated)
    tracker.update([_obj(BOX_A)], frame)
    assert newcomer.state == TrackState.REMOVED
    assert newcomer not in tracker.tracked_stracks


def test_lost_track_is_refound_with_same_id(frame):
    tracker = BYTETracker()
    first = tracker.update([_obj(BOX_A)], frame)
    track_id = first[0].track_id

    assert tracker.update([], frame) == []
    assert [t.track_id for t in tracker.lost_stracks] == [track_id]
    assert tracker.lost_stracks[0].state == TrackState.LOST

    out = tracker.update([_obj(BOX_A)], frame)
    assert [t.track_id for t in out] == [track_id]
    assert out[0].state == TrackState.TRACKED
    assert tracker.lost_stracks == []


def test_lost_track_is_removed_after_max_time_lost(frame):
    tracker = BYTETracker(frame_rate=30, track_buffer=2)
    first = tracker.update([_obj(BOX_A)], frame)
    track_id = first[0].track_id
    tracker.update([], frame)
    tracker.update([], frame)
    assert tracker.lost_stracks[0].state == TrackState.LOST

    tracker.update([], frame)
    assert tracker.lost_stracks[0].state == TrackState.REMOVED
    assert track_id in {t.track_id for t in tracker.removed_stracks}

    tracker.update([], frame)
    assert tracker.lost_stracks == []


def test_tracked_and_lost_ids_are_disjoint(frame):
    tracker = BYTETracker()
    sequence = [[BOX_A], [BOX_A, BOX_B], [BOX_B], [BOX_A, BOX_B], [], [BOX_A]]
    for boxes in sequence:
        tracker.update([_obj(b) for b in boxes], frame)
        tracked = {t.track_id for t in tracker.tracked_stracks}
        lost = {t.track_id for t in tracker.lost_stracks}
        assert tracked.isdisjoint(lost)


def test_frame_counter_advances(frame):
    tracker = BYTETracker()
    for _ in range(3):
        tracker.update([], frame)
    assert tracker.frame_id == 3


def test_fused_distance_empty_shape(frame):
    tracker = BYTETracker()
    det = STrack(list(BOX_A), 0.9)
    dist = tracker.fused_distance([], [det], frame)
    assert dist.shape == (0, 1)


def test_fused_distance_identical_box_is_zero(frame):
    tracker = BYTETracker()
    track = STrack(list(BOX_A), 0.9)
    det = STrack(list(BOX_A), 0.9)
    dist = tracker.fused_distance([track], [det], frame)
    assert dist.shape == (1, 1)
    assert dist[0, 0] == pytest.approx(0.0, abs=1e-6)


def test_fused_distance_fills_histograms_and_is_bounded(frame):
    tracker = BYTETracker()
    track = STrack(list(BOX_A), 0.9)
    dets = [STrack(list(BOX_A), 0.9), STrack(list(BOX_B), 0.9)]
    dist = tracker.fused_distance([track], dets, frame)
    assert track.color_hist.shape == (16, 16)
    assert all(d.color_hist.shape == (16, 16) for d in dets)
    assert np.all(dist >= -1e-6)
    assert np.all(dist <= 1.0 + 1e-6)
    assert dist[0, 0] < dist[0, 1]


def test_fused_distance_appearance_lowers_cost_of_similar_colours():
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    image[100:200, 400:450] = (0, 0, 255)
    tracker = BYTETracker()
    track = STrack(list(BOX_A), 0.9)
    same_colour = STrack([250.0, 100.0, 50.0, 100.0], 0.9)
    other_colour = STrack(list(BOX_B), 0.9)
    dist = tracker.fused_distance([track], [same_colour, other_colour], image)
    assert dist[0, 0] < dist[0, 1]