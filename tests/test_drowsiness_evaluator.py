"""DrowsinessEvaluator 单元测试"""

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from evaluators.drowsiness_evaluator import DrowsinessEvaluator, clamp_openness
from models.data_models import AlertLevel, DrowsinessState, EyeObservation

N, W, C = AlertLevel.NORMAL, AlertLevel.WARNING, AlertLevel.CRITICAL


@pytest.fixture
def evaluator():
    return DrowsinessEvaluator(eye_closed_threshold=0.25, warning_frame_count=3, critical_frame_count=5)


def _obs(openness, face=True, ts=0):
    return EyeObservation(face_detected=face, eye_openness=openness, timestamp_millis=ts)


def _run(evaluator, values):
    return [evaluator.evaluate(_obs(v, ts=i * 100)) for i, v in enumerate(values)]


class TestDefaults:
    def test_default_parameters(self):
        ev = DrowsinessEvaluator()
        assert ev.eye_closed_threshold == 0.25
        assert ev.warning_frame_count == 2
        assert ev.critical_frame_count == 5
        assert ev.open_frame_decay is None

    def test_initial_state(self):
        state = DrowsinessEvaluator().state
        assert state == DrowsinessState()
        assert state.eye_openness == 0.3
        assert state.alert_level is N
        assert state.is_drowsy is False


class TestEvaluate:
    def test_closed_eyes_sequence_reaches_critical(self, evaluator):
        states = _run(evaluator, [0.3, 0.3, 0.1, 0.1, 0.1, 0.1, 0.1])
        assert [s.consecutive_closed_frames for s in states] == [0, 0, 1, 2, 3, 4, 5]
        assert [s.alert_level for s in states] == [N, N, N, N, W, W, C]

    def test_timestamp_taken_from_observation(self, evaluator):
        state = evaluator.evaluate(_obs(0.1, ts=123456))
        assert state.timestamp_millis == 123456

    def test_open_frame_resets_counter(self, evaluator):
        states = _run(evaluator, [0.1, 0.1, 0.1, 0.1, 0.3])
        assert states[-2].alert_level is W
        assert states[-1].consecutive_closed_frames == 0
        assert states[-1].alert_level is N
        assert states[-1].eyes_closed is False

    def test_openness_equal_to_threshold_is_open(self, evaluator):
        state = evaluator.evaluate(_obs(0.25))
        assert state.eyes_closed is False
        assert state.consecutive_closed_frames == 0

    def test_no_face_resets_mid_sequence(self, evaluator):
        _run(evaluator, [0.1, 0.1, 0.1, 0.1])
        state = evaluator.evaluate(_obs(0.1, face=False, ts=999))
        assert state.face_detected is False
        assert state.consecutive_closed_frames == 0
        assert state.eye_openness == 0.0
        assert state.alert_level is N
        assert state.timestamp_millis == 999

        # 重新检测到人脸后从 1 开始计数
        assert evaluator.evaluate(_obs(0.1)).consecutive_closed_frames == 1

    def test_no_face_from_critical(self, evaluator):
        states = _run(evaluator, [0.1] * 8)
        assert states[-1].alert_level is C
        assert evaluator.evaluate(_obs(0.0, face=False)).alert_level is N

    def test_states_are_fresh_snapshots(self, evaluator):
        first = evaluator.evaluate(_obs(0.1))
        second = evaluator.evaluate(_obs(0.1))
        assert first is not second
        assert first.consecutive_closed_frames == 1
        assert second.consecutive_closed_frames == 2

    def test_state_is_immutable(self, evaluator):
        state = evaluator.evaluate(_obs(0.1))
        with pytest.raises(AttributeError):
            state.consecutive_closed_frames = 10

    def test_is_drowsy(self, evaluator):
        states = _run(evaluator, [0.1, 0.1, 0.1])
        assert states[1].is_drowsy is False
        assert states[2].is_drowsy is True

    def test_reset(self, evaluator):
        _run(evaluator, [0.1] * 6)
        evaluator.reset()
        assert evaluator.state == DrowsinessState()
        assert evaluator.evaluate(_obs(0.1)).consecutive_closed_frames == 1


class TestInvalidInput:
    def test_clamp_values(self):
        assert clamp_openness(1.5) == 1.0
        assert clamp_openness(-0.2) == 0.0
        assert clamp_openness(0.4) == 0.4
        assert clamp_openness(math.inf) == 1.0
        assert clamp_openness(-math.inf) == 0.0
        assert clamp_openness(math.nan) == 0.3

    def test_negative_openness_counts_as_closed(self, evaluator):
        state = evaluator.evaluate(_obs(-3.0))
        assert state.eye_openness == 0.0
        assert state.eyes_closed is True

    def test_nan_never_counts_as_closed(self, evaluator):
        _run(evaluator, [0.1, 0.1])
        state = evaluator.evaluate(_obs(math.nan))
        assert state.eye_openness == 0.3
        assert state.consecutive_closed_frames == 0

    @pytest.mark.parametrize("kwargs", [
        {"eye_closed_threshold": -0.1},
        {"eye_closed_threshold": 1.1},
        {"warning_frame_count": 0},
        {"critical_frame_count": 0},
        {"warning_frame_count": 6, "critical_frame_count": 5},
        {"open_frame_decay": 0},
    ])
    def test_invalid_parameters_rejected(self, kwargs):
        with pytest.raises(ValueError):
            DrowsinessEvaluator(**kwargs)


class TestOpenFrameDecay:
    """可选的衰减策略：睁眼帧只减少计数而不是清零"""

    def test_decay_keeps_partial_count(self):
        ev = DrowsinessEvaluator(warning_frame_count=3, critical_frame_count=5, open_frame_decay=2)
        states = _run(ev, [0.1, 0.1, 0.1, 0.1, 0.3, 0.1])
        assert [s.consecutive_closed_frames for s in states] == [1, 2, 3, 4, 2, 3]
        assert states[-1].alert_level is W

    def test_decay_floors_at_zero(self):
        ev = DrowsinessEvaluator(open_frame_decay=5)
        states = _run(ev, [0.1, 0.1, 0.3])
        assert states[-1].consecutive_closed_frames == 0

    def test_no_face_still_resets_with_decay(self):
        ev = DrowsinessEvaluator(open_frame_decay=1)
        _run(ev, [0.1] * 4)
        assert ev.evaluate(_obs(0.1, face=False)).consecutive_closed_frames == 0


_frames = st.lists(
    st.tuples(st.booleans(), st.floats(min_value=0.0, max_value=1.0)),
    max_size=60,
)


class TestProperties:
    @given(frames=_frames)
    def test_counter_follows_previous_frame(self, frames):
        ev = DrowsinessEvaluator()
        prev = 0
        for face, openness in frames:
            state = ev.evaluate(_obs(openness, face=face))
            if not face or openness >= ev.eye_closed_threshold:
                assert state.consecutive_closed_frames == 0
            else:
                assert state.consecutive_closed_frames == prev + 1
            prev = state.consecutive_closed_frames

    @given(
        frames=_frames,
        warning=st.integers(min_value=1, max_value=6),
        extra=st.integers(min_value=0, max_value=6),
    )
    def test_alert_level_is_step_function(self, frames, warning, extra):
        critical = warning + extra
        ev = DrowsinessEvaluator(warning_frame_count=warning, critical_frame_count=critical)
        for face, openness in frames:
            state = ev.evaluate(_obs(openness, face=face))
            n = state.consecutive_closed_frames
            if n >= critical:
                assert state.alert_level is C
            elif n >= warning:
                assert state.alert_level is W
            else:
                assert state.alert_level is N

    @given(frames=_frames)
    def test_no_face_always_normal(self, frames):
        ev = DrowsinessEvaluator()
        for face, openness in frames:
            ev.evaluate(_obs(openness, face=face))
        state = ev.evaluate(_obs(0.0, face=False))
        assert state.alert_level is N
        assert state.consecutive_closed_frames == 0

    @given(openness=st.floats(allow_nan=True, allow_infinity=True))
    def test_any_float_yields_valid_state(self, openness):
        state = DrowsinessEvaluator().evaluate(_obs(openness))
        assert 0.0 <= state.eye_openness <= 1.0
