import numpy as np
import pytest

from posetrack.histogram import compute_hist
from posetrack.kalman_filter import KalmanFilter
from posetrack.strack import STrack, TrackState


@pytest.fixture
def kf():
    return KalmanFilter()


def test_new_track_defaults():
    t = STrack([10, 20, 30, 60], 0.9)
    assert t.state == TrackState.NEW
    assert t.is_activated is False
    assert t.track_id == 0
    assert t.tlwh == [10.0, 20.0, 30.0, 60.0]


def test_tlbr_round_trip():
    tlwh = [3.0, 4.0, 25.0, 40.0]
    t = STrack(tlwh, 0.5)
    assert STrack.tlbr_to_tlwh(t.tlbr) == pytest.approx(tlwh)


def test_tlwh_to_xyah_keeps_height_and_width():
    xyah = STrack.tlwh_to_xyah([10, 20, 30, 60])
    assert xyah[3] == pytest.approx(60)
    assert xyah[2] * xyah[3] == pytest.approx(30)
    assert STrack([10, 20, 30, 60], 0.1).to_xyah() == pytest.approx(xyah)


def test_constructor_rejects_bad_box():
    with pytest.raises(ValueError):
        STrack([1, 2, 3], 0.5)


def test_next_id_increments():
    a = STrack.next_id()
    b = STrack.next_id()
    assert b == a + 1


def test_activate_first_frame(kf):
    t = STrack([10, 20, 30, 60], 0.9)
    t.activate(kf, 1)
    assert t.state == TrackState.TRACKED
    assert t.is_activated is True
    assert t.track_id > 0
    assert t.start_frame == 1 and t.end_frame() == 1
    assert t.tlwh == pytest.approx([10, 20, 30, 60])
    assert np.allclose(t.mean[:4], STrack.tlwh_to_xyah([10, 20, 30, 60]))


def test_activate_later_frame_not_confirmed(kf):
    t = STrack([10, 20, 30, 60], 0.9)
    t.activate(kf, 5)
    assert t.is_activated is False
    assert t.state == TrackState.TRACKED


def test_activate_assigns_distinct_ids(kf):
    a = STrack([0, 0, 10, 10], 0.9)
    b = STrack([0, 0, 10, 10], 0.9)
    a.activate(kf, 1)
    b.activate(kf, 1)
    assert b.track_id > a.track_id


def test_update_moves_towards_detection(kf):
    t = STrack([10, 20, 30, 60], 0.9)
    t.activate(kf, 1)
    t.update(STrack([14, 24, 30, 60], 0.7), 2)
    assert t.score == pytest.approx(0.7)
    assert t.tracklet_len == 1
    assert t.end_frame() == 2
    assert 10 < t.tlwh[0] < 14
    assert t.tlbr[2] == pytest.approx(t.tlwh[0] + t.tlwh[2])


def test_re_activate_with_new_id(kf):
    t = STrack([10, 20, 30, 60], 0.9)
    t.activate(kf, 3)
    old_id = t.track_id
    t.mark_lost()
    t.re_activate(STrack([12, 20, 30, 60], 0.6), 7, new_id=True)
    assert t.state == TrackState.TRACKED
    assert t.is_activated is True
    assert t.track_id > old_id
    assert t.tracklet_len == 0
    assert t.end_frame() == 7


def test_mark_states():
    t = STrack([0, 0, 1, 1], 0.1)
    t.mark_lost()
    assert t.state == TrackState.LOST
    t.mark_removed()
    assert t.state == TrackState.REMOVED


def test_multi_predict_zeroes_height_velocity_for_lost(kf):
    t = STrack([10, 20, 30, 60], 0.9)
    t.activate(kf, 1)
    t.mean = t.mean.copy()
    t.mean[7] = 5.0
    t.mark_lost()
    height = t.mean[3]
    STrack.multi_predict([t], kf)
    assert t.mean[7] == pytest.approx(0.0)
    assert t.mean[3] == pytest.approx(height)


def test_multi_predict_matches_filter_for_tracked(kf):
    t = STrack([10, 20, 30, 60], 0.9)
    t.activate(kf, 1)
    t.mean = t.mean.copy()
    t.mean[4] = 2.0
    expected_mean, expected_cov = kf.predict(t.mean, t.covariance)
    STrack.multi_predict([t], kf)
    assert np.allclose(t.mean, expected_mean)
    assert np.allclose(t.covariance, expected_cov)


def _image():
    rng = np.random.default_rng(3)
    return rng.integers(0, 256, size=(100, 100, 3), dtype=np.uint8)


def test_update_color_hist_uses_box_region():
    img = _image()
    t = STrack([10, 10, 30, 30], 0.9)
    t.update_color_hist(img)
    assert np.allclose(t.color_hist, compute_hist(img[10:40, 10:40]))


def test_update_color_hist_off_image_stays_none():
    t = STrack([200, 200, 30, 30], 0.9)
    t.update_color_hist(_image())
    assert t.color_hist is None


def test_update_color_hist_small_box_gives_none():
    t = STrack([10, 10, 5, 5], 0.9)
    t.update_color_hist(_image())
    assert t.color_hist is None


def test_update_copies_hist_when_track_has_none(kf):
    img = _image()
    t = STrack([10, 10, 30, 30], 0.9)
    t.activate(kf, 1)
    det = STrack([12, 10, 30, 30], 0.8)
    det.update_color_hist(img)
    t.update(det, 2)
    assert np.array_equal(t.color_hist, det.color_hist)


def test_update_blends_hist_between_old_and_new(kf):
    t = STrack([10, 10, 30, 30], 0.9)
    t.activate(kf, 1)
    t.color_hist = np.zeros((16, 16), dtype=np.float32)
    det = STrack([10, 10, 30, 30], 0.8)
    det.color_hist = np.ones((16, 16), dtype=np.float32)
    t.update(det, 2)
    assert (t.color_hist > 0).all()
    assert (t.color_hist < 0.5).all()