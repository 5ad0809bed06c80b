import random

import pytest

from engagement.schemas import RosterEntry
from engagement.services.sampler import ExternalDetectorSampler, RandomWalkSampler, SamplingUnavailable
from engagement.services.stats import clamp, round_half_up, rounded_mean

ROSTER = (RosterEntry(id="a", name="Asha"), RosterEntry(id="b", name="Bilal"))


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
    assert rounded_mean([]) == 0
    assert rounded_mean([80, 60]) == 70
    assert clamp(120, 40, 100) == 100


def test_random_walk_moves_at_most_ten():
    sampler = RandomWalkSampler(random.Random(3))
    previous = 85
    for _ in range(200):
        reading = sampler.next_reading(previous, ROSTER)
        assert abs(reading.overall_attention - previous) <= 10
        assert 40 <= reading.overall_attention <= 100
        assert set(reading.student_samples) == {"a", "b"}
        previous = reading.overall_attention


def test_random_walk_is_reproducible_with_seed():
    first = RandomWalkSampler(random.Random(11)).next_reading(85, ROSTER)
    second = RandomWalkSampler(random.Random(11)).next_reading(85, ROSTER)
    assert first == second


def test_hand_raise_probability_bounds():
    never = RandomWalkSampler(random.Random(5), hand_raise_probability=0.0)
    always = RandomWalkSampler(random.Random(5), hand_raise_probability=1.0)
    assert all(never.next_reading(85, ROSTER).hand_raised_by is None for _ in range(50))
    assert all(always.next_reading(85, ROSTER).hand_raised_by in ROSTER for _ in range(50))


def test_external_detector_clamps_and_filters():
    sampler = ExternalDetectorSampler(lambda roster: {
        "overall": 12.4,
        "students": {"a": 150, "ghost": 50},
        "hand_raised": "b",
    })
    reading = sampler.next_reading(85, ROSTER)
    assert reading.overall_attention == 40
    assert reading.student_samples == {"a": 100}
    assert reading.hand_raised_by.name == "Bilal"


def test_external_detector_without_reading():
    sampler = ExternalDetectorSampler(lambda roster: None)
    with pytest.raises(SamplingUnavailable):
        sampler.next_reading(85, ROSTER)


def test_external_detector_error_becomes_unavailable():
    def detector(roster):
        raise RuntimeError("camera unplugged")

    with pytest.raises(SamplingUnavailable) as excinfo:
        ExternalDetectorSampler(detector).next_reading(85, ROSTER)
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.parametrize("output", [
    {"overall": "abc"},
    {"overall": 70, "students": {"a": None}},
    {"overall": 70, "students": ["a"]},
    "not a mapping",
])
def test_external_detector_malformed_output(output):
    sampler = ExternalDetectorSampler(lambda roster: output)
    with pytest.raises(SamplingUnavailable):
        sampler.next_reading(85, ROSTER)
