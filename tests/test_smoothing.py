import pytest

from gaitstream.core.config import SmoothingConfig
from gaitstream.core.exceptions import ConfigError
from gaitstream.perception.smoothing import KeypointSmoother
from gaitstream.schemas import Keypoint, KeypointName, Pose

NOSE = KeypointName.NOSE
WRIST = KeypointName.LEFT_WRIST


def _pose(x, y, ts, score=0.8, person_id=1, name=NOSE):
    kp = Keypoint(name=name, x=float(x), y=float(y), score=score, timestamp=ts)
    return Pose(keypoints=(kp,), score=0.9, timestamp=ts, person_id=person_id)


def _smooth_one(smoother, x, y, ts, **kw):
    (out,) = smoother.smooth([_pose(x, y, ts, **kw)])
    return out


def _xy(pose, name=NOSE):
    kp = pose.keypoint(name)
    return None if kp is None else (kp.x, kp.y)


class TestSmoothingFactorExtremes:
    """Factor 0 and factor 1 behave exactly"""

    def test_factor_zero_is_raw_passthrough(self):
        """smoothing_factor = 0 returns the raw position exactly"""
        smoother = KeypointSmoother(SmoothingConfig(smoothing_factor=0.0))
        for i, x in enumerate([100.0, 103.5, 109.25, 111.0, 107.125]):
            out = _smooth_one(smoother, x, 200.0 + i, ts=i * 33.0)
            assert _xy(out) == (x, 200.0 + i)

    def test_factor_one_holds_previous(self):
        """smoothing_factor = 1 returns the previous filtered position exactly"""
        smoother = KeypointSmoother(SmoothingConfig(smoothing_factor=1.0))
        first = _xy(_smooth_one(smoother, 100.0, 200.0, ts=0.0))
        for i, x in enumerate([104.0, 110.0, 95.0, 120.0], start=1):
            out = _smooth_one(smoother, x, 210.0, ts=i * 33.0)
            assert _xy(out) == first

    def test_factor_one_without_velocity(self):
        """Holding also works with velocity smoothing off"""
        cfg = SmoothingConfig(smoothing_factor=1.0, enable_velocity_smoothing=False)
        smoother = KeypointSmoother(cfg)
        _smooth_one(smoother, 50.0, 60.0, ts=0.0)
        out = _smooth_one(smoother, 70.0, 80.0, ts=33.0)
        assert _xy(out) == (50.0, 60.0)


class TestStationaryAndMotion:
    """Stationary points stay put; constant velocity converges"""

    def test_stationary_keypoint_stays(self):
        """(100, 200), score 0.8, five frames, factor 0.6 stays at (100, 200)"""
        smoother = KeypointSmoother(SmoothingConfig(smoothing_factor=0.6))
        for i in range(5):
            out = _smooth_one(smoother, 100.0, 200.0, ts=i * 33.0, score=0.8)
            x, y = _xy(out)
            assert x == pytest.approx(100.0)
            assert y == pytest.approx(200.0)

    def test_blend_without_velocity(self):
        """Plain blend: previous * f + raw * (1 - f)"""
        cfg = SmoothingConfig(smoothing_factor=0.6, enable_velocity_smoothing=False)
        smoother = KeypointSmoother(cfg)
        _smooth_one(smoother, 100.0, 200.0, ts=0.0)
        out = _smooth_one(smoother, 110.0, 200.0, ts=33.0)
        assert _xy(out)[0] == pytest.approx(100.0 * 0.6 + 110.0 * 0.4)

    def test_velocity_smoothing_converges_on_constant_motion(self):
        """Constant velocity: prediction removes the fixed lag of a plain blend"""
        with_velocity = KeypointSmoother(SmoothingConfig(smoothing_factor=0.6))
        without_velocity = KeypointSmoother(
            SmoothingConfig(smoothing_factor=0.6, enable_velocity_smoothing=False)
        )
        raw_x = 0.0
        for i in range(60):
            raw_x = 2.0 * i
            a = _smooth_one(with_velocity, raw_x, 100.0, ts=i * 33.0)
            b = _smooth_one(without_velocity, raw_x, 100.0, ts=i * 33.0)

        assert abs(_xy(a)[0] - raw_x) < 0.05
        # Plain exponential blend trails by step * f / (1 - f) = 3 px.
        assert _xy(b)[0] == pytest.approx(raw_x - 3.0, abs=0.05)


class TestGates:
    """Confidence and distance gates"""

    def test_low_confidence_keypoint_dropped(self):
        """Keypoints below min_confidence never appear in the output"""
        smoother = KeypointSmoother(SmoothingConfig(min_confidence=0.3))
        kps = (
            Keypoint(NOSE, 100.0, 100.0, 0.9),
            Keypoint(WRIST, 150.0, 150.0, 0.1),
        )
        pose = Pose(keypoints=kps, score=0.9, timestamp=0.0, person_id=1)
        (out,) = smoother.smooth([pose])
        assert out.keypoint(WRIST) is None
        assert out.keypoint(NOSE) is not None
        assert smoother.history(1, WRIST) == []

    def test_first_observation_passes_through(self):
        """First frame of a keypoint returns the raw position"""
        smoother = KeypointSmoother()
        out = _smooth_one(smoother, 123.0, 321.0, ts=0.0)
        assert _xy(out) == (123.0, 321.0)
        assert len(smoother.history(1, NOSE)) == 1

    def test_outlier_rejected(self):
        """A 100 -> 200 jump beyond max_distance keeps the previous output"""
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        out = _smooth_one(smoother, 200.0, 100.0, ts=33.0)
        assert _xy(out) == (100.0, 100.0)
        assert smoother.outlier_count(1, NOSE) == 1

    def test_outlier_still_recorded_in_history(self):
        """Rejected frames append the reused position to the history"""
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        _smooth_one(smoother, 300.0, 100.0, ts=33.0)
        hist = smoother.history(1, NOSE)
        assert [(x, y) for _, x, y in hist] == [(100.0, 100.0), (100.0, 100.0)]

    def test_consecutive_outliers_reseed(self):
        """After max_consecutive_outliers rejections the next jump re-seeds"""
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0, max_consecutive_outliers=3))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        for i in range(1, 4):
            out = _smooth_one(smoother, 200.0, 100.0, ts=i * 33.0)
            assert _xy(out) == (100.0, 100.0)
        out = _smooth_one(smoother, 200.0, 100.0, ts=4 * 33.0)
        assert _xy(out) == (200.0, 100.0)
        assert smoother.outlier_count(1, NOSE) == 3

        # Re-seeded like a first observation: no velocity carried over.
        out = _smooth_one(smoother, 200.0, 100.0, ts=5 * 33.0)
        assert _xy(out)[0] == pytest.approx(200.0)

    def test_accepted_sample_breaks_outlier_run(self):
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0, max_consecutive_outliers=3))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        _smooth_one(smoother, 200.0, 100.0, ts=33.0)
        _smooth_one(smoother, 200.0, 100.0, ts=66.0)
        _smooth_one(smoother, 100.0, 100.0, ts=99.0)
        for i in range(4, 7):
            out = _smooth_one(smoother, 300.0, 100.0, ts=i * 33.0)
            assert _xy(out)[0] == pytest.approx(100.0, abs=1.0)
        assert smoother.outlier_count(1, NOSE) == 5

    def test_returning_person_reseeded(self):
        """A jump right after a tracker gap re-seeds instead of being rejected"""
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        (out,) = smoother.smooth([_pose(180.0, 100.0, 200.0)], gaps={1: 5})
        assert _xy(out) == (180.0, 100.0)
        assert smoother.outlier_count(1, NOSE) == 0
        assert [(x, y) for _, x, y in smoother.history(1, NOSE)] == [(100.0, 100.0), (180.0, 100.0)]

    def test_gap_of_another_person_ignored(self):
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        (out,) = smoother.smooth([_pose(180.0, 100.0, 200.0)], gaps={2: 5})
        assert _xy(out) == (100.0, 100.0)
        assert smoother.outlier_count(1, NOSE) == 1


class TestHistory:
    """Bounded history, reset and teardown"""

    def test_history_capped_at_history_size(self):
        """After more frames than history_size, length equals history_size"""
        smoother = KeypointSmoother(SmoothingConfig(history_size=8))
        for i in range(20):
            _smooth_one(smoother, 100.0 + i, 200.0, ts=i * 33.0)
        hist = smoother.history(1, NOSE)
        assert len(hist) == 8
        assert hist[0][0] == pytest.approx(12 * 33.0)

    def test_reset_clears_everything(self):
        """reset() leaves zero history and the next frame is a first observation"""
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0))
        for i in range(5):
            _smooth_one(smoother, 100.0, 200.0, ts=i * 33.0)
        smoother.reset()
        assert smoother.history_length() == 0

        out = _smooth_one(smoother, 400.0, 50.0, ts=200.0)
        assert _xy(out) == (400.0, 50.0)
        assert len(smoother.history(1, NOSE)) == 1

    def test_drop_person_only_affects_that_person(self):
        """Two people: tearing one down leaves the other's history intact"""
        smoother = KeypointSmoother()
        for i in range(4):
            smoother.smooth([
                _pose(100.0 + i, 100.0, i * 33.0, person_id=1),
                _pose(500.0 - i, 300.0, i * 33.0, person_id=2),
            ])
        before = smoother.history(2, NOSE)
        smoother.drop_person(1)
        assert smoother.history(1, NOSE) == []
        assert smoother.history(2, NOSE) == before
        assert smoother.person_ids() == [2]

    def test_people_do_not_share_state(self):
        """An outlier on one person does not move the other"""
        smoother = KeypointSmoother(SmoothingConfig(max_distance=50.0))
        smoother.smooth([_pose(100.0, 100.0, 0.0, person_id=1), _pose(100.0, 100.0, 0.0, person_id=2)])
        out = smoother.smooth([
            _pose(300.0, 100.0, 33.0, person_id=1),
            _pose(101.0, 100.0, 33.0, person_id=2),
        ])
        assert _xy(out[0]) == (100.0, 100.0)
        assert _xy(out[1])[0] == pytest.approx(100.0 * 0.6 + 101.0 * 0.4)

    def test_pose_without_person_id_rejected(self):
        """Smoothing before tracking is a programming error"""
        smoother = KeypointSmoother()
        with pytest.raises(ValueError):
            smoother.smooth([_pose(1.0, 2.0, 0.0, person_id=None)])


class TestConfigUpdate:
    """update_config validates eagerly"""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"smoothing_factor": 1.5},
            {"smoothing_factor": -0.1},
            {"min_confidence": 2.0},
            {"max_distance": 0.0},
            {"history_size": 0},
            {"max_consecutive_outliers": 0},
        ],
    )
    def test_invalid_config_rejected(self, kwargs):
        """Invalid values raise ConfigError and the previous config stays active"""
        smoother = KeypointSmoother()
        previous = smoother.config
        with pytest.raises(ConfigError):
            smoother.update_config(SmoothingConfig(**kwargs))
        assert smoother.config == previous

    def test_invalid_constructor_config(self):
        with pytest.raises(ConfigError):
            KeypointSmoother(SmoothingConfig(smoothing_factor=1.5))

    def test_update_applies_to_subsequent_frames(self):
        """A valid update affects later frames only"""
        smoother = KeypointSmoother(SmoothingConfig(smoothing_factor=1.0))
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        smoother.update_config(SmoothingConfig(smoothing_factor=0.0))
        out = _smooth_one(smoother, 110.0, 100.0, ts=33.0)
        assert _xy(out) == (110.0, 100.0)

    def test_smaller_history_trims_buffers(self):
        smoother = KeypointSmoother(SmoothingConfig(history_size=8))
        for i in range(8):
            _smooth_one(smoother, 100.0, 100.0, ts=i * 33.0)
        smoother.update_config(SmoothingConfig(history_size=3))
        assert len(smoother.history(1, NOSE)) == 3

    def test_caller_mutation_after_update_ignored(self):
        """The applied config is a copy; editing the caller's object changes nothing"""
        smoother = KeypointSmoother()
        cfg = SmoothingConfig(smoothing_factor=0.5)
        smoother.update_config(cfg)
        cfg.smoothing_factor = 5.0

        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        out = _smooth_one(smoother, 110.0, 100.0, ts=33.0)
        assert _xy(out)[0] == pytest.approx(105.0)
        assert smoother.config.smoothing_factor == 0.5

    def test_config_property_is_a_copy(self):
        cfg = SmoothingConfig(max_distance=50.0)
        smoother = KeypointSmoother(cfg)
        cfg.max_distance = -1.0
        smoother.config.max_distance = 1000.0
        _smooth_one(smoother, 100.0, 100.0, ts=0.0)
        out = _smooth_one(smoother, 200.0, 100.0, ts=33.0)
        assert _xy(out) == (100.0, 100.0)
