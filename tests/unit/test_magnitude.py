"""
Tests for apparent magnitude estimates and the SATCAT catalog.
"""

import json
import math
import time
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from passfinder.config import PredictionConfig
from passfinder.magnitude import (
    StandardMagnitudeCatalog,
    apparent_magnitude,
    estimate_magnitude,
    max_magnitude_for_pass,
    phase_function,
)

RECORDS = [
    {"NORAD_CAT_ID": 25544, "OBJECT_NAME": "ISS (ZARYA)", "MAG": -1.8},
    {"NORAD_CAT_ID": "99001", "OBJECT_NAME": "SYNTH-1", "RCS_SIZE": "LARGE"},
    {"NORAD_CAT_ID": 99002, "RCS_SIZE": "SMALL"},
    {"NORAD_CAT_ID": 99003, "RCS_SIZE": "MEDIUM"},
    {"NORAD_CAT_ID": 99004, "RCS_SIZE": 0},
    {"NORAD_CAT_ID": 99005, "RCS_SIZE": 4.0},
    {"NORAD_CAT_ID": 99006},
    {"OBJECT_NAME": "NO ID"},
]


class TestPhaseFunction:
    def test_full_phase(self) -> None:
        assert phase_function(0.0) == pytest.approx(1.0)

    def test_new_phase(self) -> None:
        assert phase_function(math.pi) == pytest.approx(0.0, abs=1e-12)

    def test_quarter(self) -> None:
        assert phase_function(math.pi / 2) == pytest.approx(1 / math.pi)


class TestApparentMagnitude:
    """Test cases for apparent_magnitude."""

    def test_bright_object_at_45_degrees(self) -> None:
        m = apparent_magnitude(-1.5, 500.0, math.pi / 2, 45.0)
        assert -2.0 <= m <= 6.0
        assert m == pytest.approx(-1.48, abs=0.01)

    def test_reference_conditions(self) -> None:
        """At 1000 km, full phase and zenith only extinction is added."""
        assert apparent_magnitude(3.0, 1000.0, 0.0, 90.0) == pytest.approx(3.2)

    def test_fainter_when_farther(self) -> None:
        near = apparent_magnitude(2.0, 500.0, 1.0, 60.0)
        far = apparent_magnitude(2.0, 2000.0, 1.0, 60.0)
        assert far > near

    def test_fainter_near_horizon(self) -> None:
        assert apparent_magnitude(2.0, 800.0, 1.0, 15.0) > apparent_magnitude(2.0, 800.0, 1.0, 80.0)

    def test_below_horizon(self) -> None:
        assert apparent_magnitude(2.0, 800.0, 1.0, 0.0) is None
        assert apparent_magnitude(2.0, 800.0, 1.0, -10.0) is None

    def test_zero_range(self) -> None:
        assert apparent_magnitude(2.0, 0.0, 1.0, 45.0) is None


class TestStandardMagnitudeCatalog:
    """Test cases for the M0 lookup rules."""

    @pytest.fixture
    def catalog(self) -> StandardMagnitudeCatalog:
        return StandardMagnitudeCatalog.from_records(RECORDS)

    def test_index_skips_records_without_id(self, catalog) -> None:
        assert len(catalog) == 7
        assert 99001 in catalog

    def test_catalog_magnitude(self, catalog) -> None:
        assert catalog.standard_magnitude(25544) == -1.8

    @pytest.mark.parametrize(
        "norad_id,expected",
        [(99001, -4.0), (99002, 1.0), (99003, -1.5), (99004, 6.0), (99006, -1.5)],
    )
    def test_radar_cross_section(self, catalog, norad_id, expected) -> None:
        assert catalog.standard_magnitude(norad_id) == pytest.approx(expected)

    def test_numeric_rcs(self, catalog) -> None:
        assert catalog.standard_magnitude(99005) == pytest.approx(-1.5 - 2.5 * math.log10(4.0))

    def test_default(self, catalog) -> None:
        assert catalog.standard_magnitude(12345) == 5.0
        assert catalog.standard_magnitude(None) == 5.0

    def test_from_config(self) -> None:
        config = PredictionConfig(default_standard_magnitude=4.0, satcat_cache_days=1.0)
        catalog = StandardMagnitudeCatalog.from_config(config)
        assert catalog.default_magnitude == 4.0
        assert catalog.cache_days == 1.0
        assert catalog.standard_magnitude(1) == 4.0


class TestCatalogLoading:
    """Test cases for SATCAT download and cache handling."""

    def test_fresh_cache_avoids_download(self, tmp_path) -> None:
        cache = tmp_path / "satcat.json"
        cache.write_text(json.dumps({"timestamp": time.time(), "data": RECORDS}))

        with patch("passfinder.magnitude.requests.get") as mock_get:
            catalog = StandardMagnitudeCatalog(cache_path=cache).load()

        mock_get.assert_not_called()
        assert catalog.standard_magnitude(25544) == -1.8

    def test_stale_cache_is_refreshed(self, tmp_path) -> None:
        cache = tmp_path / "satcat.json"
        cache.write_text(json.dumps({"timestamp": 0, "data": []}))
        response = MagicMock()
        response.json.return_value = RECORDS

        with patch("passfinder.magnitude.requests.get", return_value=response) as mock_get:
            catalog = StandardMagnitudeCatalog(cache_path=cache).load()

        mock_get.assert_called_once()
        assert catalog.standard_magnitude(25544) == -1.8
        written = json.loads(cache.read_text())
        assert written["data"] == RECORDS
        assert written["timestamp"] > 0

    def test_corrupt_cache_is_refreshed(self, tmp_path) -> None:
        cache = tmp_path / "satcat.json"
        cache.write_text("not json")
        response = MagicMock()
        response.json.return_value = RECORDS

        with patch("passfinder.magnitude.requests.get", return_value=response):
            catalog = StandardMagnitudeCatalog(cache_path=cache).load()

        assert len(catalog) == 7

    def test_download_failure_falls_back_to_default(self) -> None:
        with patch(
            "passfinder.magnitude.requests.get",
            side_effect=requests.ConnectionError("offline"),
        ):
            catalog = StandardMagnitudeCatalog().load()

        assert len(catalog) == 0
        assert catalog.standard_magnitude(25544) == 5.0

    def test_http_error(self) -> None:
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("503")
        with patch("passfinder.magnitude.requests.get", return_value=response):
            catalog = StandardMagnitudeCatalog().load()
        assert len(catalog) == 0

    def test_force_ignores_cache(self, tmp_path) -> None:
        cache = tmp_path / "satcat.json"
        cache.write_text(json.dumps({"timestamp": time.time(), "data": []}))
        response = MagicMock()
        response.json.return_value = RECORDS

        with patch("passfinder.magnitude.requests.get", return_value=response) as mock_get:
            StandardMagnitudeCatalog(cache_path=cache).load(force=True)

        mock_get.assert_called_once()


class TestEstimateMagnitude:
    """Test cases for estimate_magnitude and max_magnitude_for_pass."""

    def test_overhead_object(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        m = estimate_magnitude(synthetic_object, equator_observer, scenario_epoch)
        assert m is not None
        assert math.isfinite(m)
        assert 3.0 < m < 7.0

    def test_catalog_magnitude_is_used(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        catalog = StandardMagnitudeCatalog.from_records(RECORDS)
        default = estimate_magnitude(synthetic_object, equator_observer, scenario_epoch)
        large = estimate_magnitude(synthetic_object, equator_observer, scenario_epoch, catalog)
        assert default - large == pytest.approx(9.0)

    def test_below_horizon(self, synthetic_object, equator_observer, scenario_epoch, half_orbit) -> None:
        assert estimate_magnitude(synthetic_object, equator_observer, scenario_epoch + half_orbit) is None

    def test_propagation_failure(self, failing_object, equator_observer, scenario_epoch) -> None:
        assert estimate_magnitude(failing_object, equator_observer, scenario_epoch) is None

    def test_brightest_over_next_pass(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        brightest = max_magnitude_for_pass(
            synthetic_object, equator_observer, now=datetime(2025, 3, 20, 12, 0)
        )
        at_zenith = estimate_magnitude(synthetic_object, equator_observer, scenario_epoch)
        assert brightest is not None
        assert brightest <= at_zenith

    def test_pass_in_progress(self, synthetic_object, equator_observer, scenario_epoch) -> None:
        brightest = max_magnitude_for_pass(
            synthetic_object, equator_observer, now=scenario_epoch + timedelta(seconds=30)
        )
        assert brightest is not None

    def test_no_pass(self, failing_object, equator_observer) -> None:
        assert max_magnitude_for_pass(failing_object, equator_observer, now=datetime(2025, 3, 20)) is None
