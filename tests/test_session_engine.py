import asyncio
import random
from types import SimpleNamespace

import pytest

from engagement.services.sampler import (
    AttentionReading, AttentionSampler, ExternalDetectorSampler, RandomWalkSampler, SamplingUnavailable
)
from engagement.services.session_engine import SessionEngine, SessionStateError, engagement_level, next_session_id

ROSTER = [SimpleNamespace(id="a", name="Asha"), SimpleNamespace(id="b", name="Bilal")]


class ScriptedSampler(AttentionSampler):
    """Replays readings in order; None entries mean the detector had nothing."""

    def __init__(self, readings):
        self.readings = list(readings)
        self.calls = []

    def next_reading(self, previous_attention, roster):
        self.calls.append(previous_attention)
        reading = self.readings.pop(0)
        if reading is None:
            raise SamplingUnavailable("no frame")
        return reading


def started(sampler=None, roster=ROSTER, **kwargs):
    engine = SessionEngine(sampler=sampler or RandomWalkSampler(random.Random(7)), **kwargs)
    engine.start(roster, "Ms Rao", "T-17", schedule=False)
    return engine


def test_start_initial_state():
    engine = SessionEngine()
    snapshot = engine.start(ROSTER, "Ms Rao", "T-17", schedule=False)
    assert snapshot.elapsed_seconds == 0
    assert snapshot.overall_attention == 85
    assert snapshot.total_students == 2
    assert snapshot.engagement_level == "Excellent"
    assert engine.session_id
    assert engine.start_time is not None


def test_ranges_hold_over_many_rounds():
    for initial in (40, 85, 100):
        engine = started(initial_attention=initial)
        for _ in range(300):
            engine.tick()
            engine.sample()
            assert 40 <= engine.overall_attention <= 100
        for samples in engine.student_samples.values():
            assert len(samples) == 300
            assert all(30 <= s <= 100 for s in samples)


def test_history_times_follow_clock():
    engine = started()
    expected = []
    for round_no in range(5):
        for _ in range(3):
            engine.tick()
        engine.sample()
        expected.append(engine.elapsed_seconds)
    times = [p.time for p in engine.attention_history]
    assert times == expected == [3, 6, 9, 12, 15]


def test_stop_before_any_round_scores_zero():
    record = started().stop()
    assert [(s.student_id, s.attention_score) for s in record.student_engagement] == [("a", 0), ("b", 0)]
    assert record.duration == 0
    assert record.attention_data == ()


def test_scores_are_rounded_means():
    sampler = ScriptedSampler([
        AttentionReading(80, {"a": 60.0, "b": 70.5}),
        AttentionReading(82, {"a": 61.0, "b": 71.0}),
    ])
    engine = started(sampler)
    engine.sample()
    engine.sample()
    record = engine.stop()
    scores = {s.student_id: s.attention_score for s in record.student_engagement}
    # 60.5 rounds up, 70.75 rounds to 71
    assert scores == {"a": 61, "b": 71}
    assert [p.attention for p in record.attention_data] == [80, 82]


def test_duration_equals_ticks():
    engine = started()
    for _ in range(7):
        engine.tick()
    record = engine.stop()
    assert record.duration == 7
    assert record.end_time >= record.start_time
    assert record.total_students == 2


def test_stop_is_terminal():
    engine = started()
    engine.tick()
    record = engine.stop()
    with pytest.raises(SessionStateError):
        engine.stop()
    with pytest.raises(SessionStateError):
        engine.tick()
    with pytest.raises(SessionStateError):
        engine.sample()
    with pytest.raises(SessionStateError):
        engine.start(ROSTER, "Ms Rao", "T-17", schedule=False)
    assert engine.record is record
    assert record.duration == 1


def test_record_is_immutable():
    record = started().stop()
    with pytest.raises(Exception):
        record.duration = 99


def test_start_twice_rejected():
    engine = started()
    with pytest.raises(SessionStateError):
        engine.start(ROSTER, "Ms Rao", "T-17", schedule=False)


def test_hand_and_distraction_alerts_same_round():
    sampler = ScriptedSampler([AttentionReading(65, {}, hand_raised_by=SimpleNamespace(id="b", name="Bilal"))])
    engine = started(sampler)
    engine.tick()
    engine.sample()
    assert [(a.time, a.type, a.message) for a in engine.alert_log] == [
        (1, "hand", "Bilal raised their hand"),
        (1, "distraction", "35% of class appears distracted"),
    ]
    assert [a.student_name for a in engine.active_alerts] == ["Bilal", None]


def test_no_distraction_at_threshold():
    engine = started(ScriptedSampler([AttentionReading(70, {})]))
    engine.sample()
    assert engine.alert_log == []


def test_alerts_repeat_without_cooldown():
    engine = started(ScriptedSampler([AttentionReading(50, {}), AttentionReading(50, {})]))
    engine.sample()
    engine.sample()
    assert [a.type for a in engine.alert_log] == ["distraction", "distraction"]


def test_expired_alert_stays_in_log():
    engine = started()
    alert = engine.record_alert("hand", "Asha raised their hand", "Asha")
    engine.expire_alert(alert.id)
    assert engine.active_alerts == []
    assert len(engine.alert_log) == 1


def test_sampling_unavailable_keeps_last_values():
    sampler = ScriptedSampler([AttentionReading(60, {"a": 50.0}), None])
    engine = started(sampler)
    engine.sample()
    assert engine.sample() is None
    assert engine.overall_attention == 60
    assert len(engine.attention_history) == 1
    assert engine.student_samples["a"] == [50.0]
    assert sampler.calls == [85, 60]


def test_empty_roster_never_raises_hand():
    engine = started(RandomWalkSampler(random.Random(1), hand_raise_probability=1.0), roster=[])
    for _ in range(20):
        engine.sample()
    assert all(a.type == "distraction" for a in engine.alert_log)
    assert engine.stop().student_engagement == ()


def test_subscribers_receive_snapshots():
    engine = started()
    received = []
    unsubscribe = engine.subscribe(received.append)
    engine.tick()
    engine.sample()
    assert received[0].elapsed_seconds == 1
    assert received[-1].data_points == 1
    unsubscribe()
    count = len(received)
    engine.tick()
    assert len(received) == count


def test_session_ids_unique_and_increasing():
    ids = [int(next_session_id()) for _ in range(200)]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_engagement_level():
    assert engagement_level(80) == "Excellent"
    assert engagement_level(60) == "Good"
    assert engagement_level(59) == "Needs attention"


def test_timers_run_and_are_cancelled_on_stop():
    async def scenario():
        engine = SessionEngine(sampler=ScriptedSampler([AttentionReading(50, {"a": 40.0})] * 1000),
                               clock_interval=0.01, sampling_interval=0.03, alert_window=10)
        engine.start(ROSTER, "Ms Rao", "T-17")
        await asyncio.sleep(0.2)
        assert engine.pending_timers > 2
        record = engine.stop()
        assert engine.pending_timers == 0
        elapsed = engine.elapsed_seconds
        await asyncio.sleep(0.1)
        return engine, record, elapsed

    engine, record, elapsed = asyncio.run(scenario())
    assert record.duration == elapsed > 0
    assert engine.elapsed_seconds == elapsed
    assert len(record.attention_data) > 0
    assert len(record.alerts) == len(record.attention_data)


def test_alert_expires_after_window():
    async def scenario():
        engine = SessionEngine(clock_interval=10, sampling_interval=10, alert_window=0.05)
        engine.start(ROSTER, "Ms Rao", "T-17")
        engine.record_alert("hand", "Asha raised their hand", "Asha")
        visible = len(engine.active_alerts)
        await asyncio.sleep(0.2)
        remaining = len(engine.active_alerts)
        engine.teardown()
        return engine, visible, remaining

    engine, visible, remaining = asyncio.run(scenario())
    assert (visible, remaining) == (1, 0)
    assert len(engine.alert_log) == 1
    assert engine.pending_timers == 0


def test_teardown_cancels_without_record():
    async def scenario():
        engine = SessionEngine(clock_interval=0.01, sampling_interval=0.01)
        engine.start(ROSTER, "Ms Rao", "T-17")
        await asyncio.sleep(0.05)
        engine.teardown()
        return engine

    engine = asyncio.run(scenario())
    assert engine.record is None
    assert engine.pending_timers == 0
    assert not engine.is_active


def flaky_detector(fail_on=(2,)):
    calls = []

    def detector(roster):
        calls.append(len(roster))
        if len(calls) in fail_on:
            raise RuntimeError("frame grab failed")
        return {"overall": 70, "students": {"a": 60}}

    return detector, calls


def test_detector_error_skips_one_round():
    detector, calls = flaky_detector()
    engine = started(ExternalDetectorSampler(detector))
    assert engine.sample() is not None
    assert engine.sample() is None
    assert engine.sample() is not None
    assert len(calls) == 3
    assert len(engine.attention_history) == 2
    assert engine.student_samples["a"] == [60.0, 60.0]


def test_timers_survive_detector_error():
    async def scenario():
        detector, calls = flaky_detector()
        engine = SessionEngine(sampler=ExternalDetectorSampler(detector),
                               clock_interval=0.01, sampling_interval=0.02, alert_window=10)
        engine.start(ROSTER, "Ms Rao", "T-17")
        await asyncio.sleep(0.3)
        record = engine.stop()
        return record, calls

    record, calls = asyncio.run(scenario())
    assert len(calls) > 2
    assert len(record.attention_data) > 1


class ExplodingSampler(AttentionSampler):
    """Fails with an unexpected error on every round."""

    def __init__(self):
        self.calls = 0

    def next_reading(self, previous_attention, roster):
        self.calls += 1
        raise KeyError("unexpected")


def test_timers_survive_unexpected_sampler_error():
    async def scenario():
        sampler = ExplodingSampler()
        engine = SessionEngine(sampler=sampler, clock_interval=0.01, sampling_interval=0.02)
        engine.start(ROSTER, "Ms Rao", "T-17")
        await asyncio.sleep(0.2)
        pending = engine.pending_timers
        record = engine.stop()
        return sampler, pending, record

    sampler, pending, record = asyncio.run(scenario())
    assert sampler.calls > 2
    assert pending >= 2
    assert record.duration > 2
    assert record.attention_data == ()


def test_broken_subscriber_does_not_stop_clock():
    async def scenario():
        engine = SessionEngine(sampler=ScriptedSampler([AttentionReading(90, {})] * 1000),
                               clock_interval=0.01, sampling_interval=0.03)
        received = []

        def broken(snapshot):
            raise ValueError("observer bug")

        engine.subscribe(broken)
        engine.subscribe(received.append)
        engine.start(ROSTER, "Ms Rao", "T-17")
        await asyncio.sleep(0.2)
        record = engine.stop()
        return record, received

    record, received = asyncio.run(scenario())
    assert record.duration > 2
    assert len(received) > 2
    assert received[-1].elapsed_seconds > 2
