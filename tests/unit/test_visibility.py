"""
Tests for visible pass detection and prediction.
"""

from datetime import datetime, timedelta

import pytest

from passfinder.config import PredictionConfig
from passfinder.observer import ObserverLocation
from passfinder.visibility import (
    Pass,
    PassDetector,
    SamplePoint,
    best_passes,
    calculate_sky_path,
    cardinal_direction,
    filter_passes,
    find_next_visible_pass,
    predict_passes,
    sample_object,
)

T0 = datetime(2025, 3, 20, 19, 10, 0)


def _samples(elevations, visible, start=T0, step=60):
    return [
        SamplePoint(start + timedelta(seconds=i * step), el, 10.0 * i, vis)
        for i, (el, vis) in enumerate(zip(elevations, visible))
    ]


def _pass(start, max_elevation=60.0, name="X", tle="X\n1 00001U\n2 00001 test"):
    return Pass(
        satellite_name=name,
        tle=tle,
        start=start,
        end=start + timedelta(minutes=4),
        max_elevation=max_elevation,
        start_azimuth=225.0,
        end_azimuth=45.0,
    )


def _feed_all(detector, samples):
    completed = []
    for sample in samples:
        result = detector.feed(sample)
        if result is not None:
            completed.append(result)
    return completed


def _assert_pass_invariants(p: Pass, threshold: float) -> None:
    assert p.geometric_start <= p.start <= p.end <= p.geometric_end
    assert p.max_elevation > threshold
    visible = [s for s in p.points if s.is_visible]
    assert len(visible) >= 2
    assert visible[0].time == p.start
    assert visible[-1].time == p.end
    assert max(s.elevation for s in visible) == p.max_elevation
    for s in p.points:
        if s.is_visible:
            assert p.start <= s.time <= p.end


class TestPassDetector:
    """Test cases for the pass state machine."""

    def test_trims_to_visible_window(self) -> None:
        detector = PassDetector("SAT", "tle", elevation_threshold_deg=10.0)
        samples = _samples(
            [5, 15, 20, 30, 20, 15, 5],
            [False, False, True, True, True, False, False],
        )
        passes = _feed_all(detector, samples)

        assert len(passes) == 1
        p = passes[0]
        assert p.start == samples[2].time
        assert p.end == samples[4].time
        assert p.geometric_start == samples[1].time
        assert p.geometric_end == samples[5].time
        assert p.max_elevation == 30
        assert p.max_elevation_time == samples[3].time
        assert p.start_azimuth == samples[2].azimuth
        assert p.end_azimuth == samples[4].azimuth
        assert detector.state == PassDetector.IDLE

    def test_peak_over_visible_samples_only(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        samples = _samples([5, 20, 80, 40, 30, 5], [False, False, False, True, True, False])
        (p,) = _feed_all(detector, samples)
        assert p.max_elevation == 40

    def test_single_visible_sample_is_noise(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        samples = _samples([5, 20, 30, 20, 5], [False, False, True, False, False])
        assert _feed_all(detector, samples) == []

    def test_high_but_never_visible(self) -> None:
        """Sunlit-and-dark never both hold: no pass at all."""
        detector = PassDetector(elevation_threshold_deg=10.0)
        samples = _samples([5, 40, 70, 85, 70, 40, 5], [False] * 7)
        assert _feed_all(detector, samples) == []

    def test_threshold_is_strict_on_entry(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        detector.feed(SamplePoint(T0, 10.0, 0.0, True))
        assert detector.state == PassDetector.IDLE

    def test_sample_at_threshold_keeps_pass_open(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        samples = _samples([5, 20, 10, 20, 5], [False, True, True, True, False])
        (p,) = _feed_all(detector, samples)
        assert p.start == samples[1].time
        assert p.end == samples[3].time

    def test_backward_scan(self) -> None:
        """Samples fed newest-first still give start <= end."""
        detector = PassDetector(elevation_threshold_deg=10.0, is_historical=True)
        samples = _samples(
            [5, 15, 25, 35, 25, 15, 5],
            [False, True, True, True, True, False, False],
        )
        (p,) = _feed_all(detector, list(reversed(samples)))
        assert p.is_historical
        assert p.start == samples[1].time
        assert p.end == samples[4].time
        assert p.start_azimuth == samples[1].azimuth
        assert [s.time for s in p.points] == sorted(s.time for s in p.points)

    def test_two_passes(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        elevations = [5, 20, 30, 5, 5, 25, 35, 5]
        visible = [False, True, True, False, False, True, True, False]
        passes = _feed_all(detector, _samples(elevations, visible))
        assert len(passes) == 2
        assert passes[0].end < passes[1].start

    def test_reset_drops_partial_pass(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        samples = _samples([5, 20, 30, 40, 20, 5], [False, True, True, True, True, False])
        _feed_all(detector, samples[:3])
        detector.reset()
        # Only samples fed after the reset make up the pass
        result = _feed_all(detector, samples[3:])
        assert len(result) == 1
        assert result[0].start == samples[3].time

    def test_flush_discards_unfinished_pass(self) -> None:
        detector = PassDetector(elevation_threshold_deg=10.0)
        _feed_all(detector, _samples([5, 20, 30, 40], [False, True, True, True]))
        assert detector.state == PassDetector.IN_PASS
        detector.flush()
        assert detector.state == PassDetector.IDLE
        assert detector.feed(SamplePoint(T0 + timedelta(hours=1), 5.0, 0.0, False)) is None


class TestPassSerialization:
    def test_to_dict(self) -> None:
        p = _pass(datetime(2025, 3, 20, 19, 11), max_elevation=87.25)
        data = p.to_dict()
        assert data["start"] == "2025-03-20T19:11:00"
        assert data["duration_s"] == 240.0
        assert data["max_elevation"] == 87.25
        assert data["start_direction"] == "SW"
        assert data["end_direction"] == "NE"

    def test_from_dict_restores_pass(self) -> None:
        p = _pass(datetime(2025, 3, 20, 19, 11, 30, 500))
        p.max_elevation_time = p.start + timedelta(minutes=2)
        p.geometric_start = p.start - timedelta(minutes=1)
        p.geometric_end = p.end + timedelta(minutes=1)
        assert Pass.from_dict(p.to_dict()) == p

    def test_str(self) -> None:
        text = str(_pass(datetime(2025, 3, 20, 19, 11), name="ISS"))
        assert text.startswith("ISS: 2025-03-20 19:11:00 - 19:15:00 UTC")
        assert "SW → NE" in text

    def test_sort_key_breaks_ties(self) -> None:
        start = datetime(2025, 3, 20, 19, 11)
        a = _pass(start, name="B", tle="B\n1\n2 00001 a")
        b = _pass(start, name="A", tle="A\n1\n2 00002 b")
        assert sorted([b, a], key=Pass.sort_key) == [a, b]


class TestSampleObject:
    def test_overhead_and_visible(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        sample = sample_object(synthetic_object, equator_observer, scenario_epoch, PredictionConfig())
        assert sample.elevation > 89.9
        assert sample.is_visible is True

    def test_below_mask_is_never_visible(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        sample = sample_object(
            synthetic_object, equator_observer, scenario_epoch + timedelta(minutes=30), PredictionConfig()
        )
        assert sample.elevation < 10
        assert sample.is_visible is False

    def test_failure_returns_none(self, failing_object, equator_observer, scenario_epoch) -> None:
        assert sample_object(failing_object, equator_observer, scenario_epoch, PredictionConfig()) is None


class TestPredictPasses:
    """Test cases for predict_passes on the synthetic equatorial scenario."""

    def test_scenario_visible_passes(self, synthetic_object, equator_observer, base_datetime) -> None:
        config = PredictionConfig()
        passes = predict_passes(synthetic_object, equator_observer, days=2, start_date=base_datetime, config=config)

        assert 1 <= len(passes) <= 6
        assert any(p.max_elevation > 50 for p in passes)
        for p in passes:
            _assert_pass_invariants(p, config.elevation_threshold_deg)
            assert p.obj is synthetic_object
            assert not p.is_historical
        assert [p.start for p in passes] == sorted(p.start for p in passes)

    def test_scenario_overhead_pass(self, synthetic_object, equator_observer, base_datetime, scenario_epoch) -> None:
        passes = predict_passes(synthetic_object, equator_observer, days=1, start_date=base_datetime)
        overhead = [p for p in passes if p.start <= scenario_epoch <= p.end]
        assert len(overhead) == 1
        assert overhead[0].max_elevation > 89
        assert overhead[0].max_elevation_time == scenario_epoch

    def test_scenario_geometric_passes(
        self, synthetic_object, equator_observer, base_datetime, monkeypatch
    ) -> None:
        """With lighting ignored every geometric pass is reported."""
        monkeypatch.setattr("passfinder.visibility.is_observer_in_darkness", lambda *a, **k: True)
        monkeypatch.setattr("passfinder.visibility.is_object_illuminated", lambda *a, **k: True)
        passes = predict_passes(synthetic_object, equator_observer, days=2, start_date=base_datetime)
        assert 4 <= len(passes) <= 6
        for p in passes:
            assert p.start == p.geometric_start
            assert p.end == p.geometric_end

    def test_polar_day_has_no_visible_passes(self, object_factory, monkeypatch) -> None:
        """Midsummer at 80°N: the sky never gets dark."""
        arctic = ObserverLocation(latitude=80.0, longitude=0.0)
        start = datetime(2025, 6, 21)
        polar = object_factory("POLAR", 99010, inclination_deg=97.0, epoch=start)

        assert predict_passes(polar, arctic, days=1, start_date=start) == []

        monkeypatch.setattr("passfinder.visibility.is_observer_in_darkness", lambda *a, **k: True)
        assert len(predict_passes(polar, arctic, days=1, start_date=start)) > 0

    def test_past_direction(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        passes = predict_passes(
            synthetic_object,
            equator_observer,
            days=1,
            direction="past",
            start_date=datetime(2025, 3, 21),
        )
        assert passes
        assert all(p.is_historical for p in passes)
        assert any(p.start <= scenario_epoch <= p.end for p in passes)
        for p in passes:
            assert p.start <= p.end
            assert p.end <= datetime(2025, 3, 21)

    def test_max_passes(self, synthetic_object, equator_observer, base_datetime, monkeypatch) -> None:
        monkeypatch.setattr("passfinder.visibility.is_observer_in_darkness", lambda *a, **k: True)
        monkeypatch.setattr("passfinder.visibility.is_object_illuminated", lambda *a, **k: True)
        config = PredictionConfig(max_passes=2)
        passes = predict_passes(synthetic_object, equator_observer, days=2, start_date=base_datetime, config=config)
        assert len(passes) == 2

    def test_invalid_direction(self, synthetic_object, equator_observer) -> None:
        with pytest.raises(ValueError, match="direction"):
            predict_passes(synthetic_object, equator_observer, days=1, direction="sideways")

    def test_propagation_failures_give_no_passes(self, failing_object, equator_observer, base_datetime) -> None:
        assert predict_passes(failing_object, equator_observer, days=1, start_date=base_datetime) == []

    def test_starts_at_local_midnight(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        """A start time late in the day still finds that evening's pass."""
        passes = predict_passes(
            synthetic_object, equator_observer, days=1, start_date=scenario_epoch + timedelta(hours=2)
        )
        assert any(p.start <= scenario_epoch <= p.end for p in passes)


class TestFindNextVisiblePass:
    def test_finds_evening_pass(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        now = datetime(2025, 3, 20, 12, 0)
        p = find_next_visible_pass(synthetic_object, equator_observer, now=now)
        assert p is not None
        assert p.end >= now
        assert p.start <= scenario_epoch <= p.end

    def test_none_when_nothing_visible(self, failing_object, equator_observer) -> None:
        assert find_next_visible_pass(failing_object, equator_observer, now=datetime(2025, 3, 20)) is None


class TestSkyPath:
    def test_path_above_horizon(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        path = calculate_sky_path(synthetic_object, equator_observer, scenario_epoch)
        assert path
        assert all(s.elevation > 0 for s in path)
        assert max(s.elevation for s in path) > 89
        assert path[0].time >= scenario_epoch - timedelta(minutes=30)
        assert path[-1].time < scenario_epoch + timedelta(minutes=90)
        for a, b in zip(path, path[1:]):
            assert (b.time - a.time).total_seconds() % 5 == 0


class TestFilterPasses:
    """Test cases for dusk/dawn filtering."""

    def test_all(self, equator_observer) -> None:
        passes = [_pass(datetime(2025, 3, 20, 12, 0))]
        assert filter_passes(passes, equator_observer, "all") == passes

    def test_dusk(self, equator_observer) -> None:
        evening = _pass(datetime(2025, 3, 20, 19, 11))
        late = _pass(datetime(2025, 3, 20, 23, 30))
        morning = _pass(datetime(2025, 3, 20, 5, 0))
        assert filter_passes([evening, late, morning], equator_observer, "dusk") == [evening]

    def test_dawn(self, equator_observer) -> None:
        evening = _pass(datetime(2025, 3, 20, 19, 11))
        morning = _pass(datetime(2025, 3, 20, 5, 0))
        assert filter_passes([evening, morning], equator_observer, "dawn") == [morning]

    def test_polar_location_excluded(self) -> None:
        arctic = ObserverLocation(latitude=80.0, longitude=0.0)
        assert filter_passes([_pass(datetime(2025, 6, 21, 22, 0))], arctic, "dusk") == []

    def test_no_location(self) -> None:
        passes = [_pass(datetime(2025, 3, 20, 12, 0))]
        assert filter_passes(passes, None, "dusk") == passes

    def test_unknown_mode(self, equator_observer) -> None:
        with pytest.raises(ValueError):
            filter_passes([], equator_observer, "noon")


class TestBestPasses:
    def test_min_elevation_is_strict(self) -> None:
        start = datetime(2025, 3, 20, 19, 0)
        high, edge, low = _pass(start, 75.0), _pass(start, 50.0), _pass(start, 20.0)
        assert best_passes([high, edge, low]) == [high]

    def test_after(self) -> None:
        early = _pass(datetime(2025, 3, 20, 19, 0), 80.0)
        late = _pass(datetime(2025, 3, 21, 19, 0), 80.0)
        assert best_passes([early, late], after=datetime(2025, 3, 21)) == [late]


@pytest.mark.parametrize(
    "azimuth,expected",
    [(0, "N"), (22, "N"), (23, "NE"), (90, "E"), (135, "SE"), (180, "S"), (225, "SW"), (270, "W"), (315, "NW"), (359, "N")],
)
def test_cardinal_direction(azimuth, expected) -> None:
    assert cardinal_direction(azimuth) == expected
