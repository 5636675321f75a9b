"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides:
- Custom markers for test categorization
- A synthetic circular-orbit predictor with exactly known geometry
- Shared fixtures for objects, observers and configuration
"""

import math
import sys
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Tuple

import pytest
from _pytest.config import Config

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from passfinder.config import PredictionConfig  # noqa: E402
from passfinder.observer import ObserverLocation  # noqa: E402
from passfinder.orbit import TrackedObject  # noqa: E402
from passfinder.sunlight import calculate_gmst  # noqa: E402

MU_EARTH = 398600.4418  # km^3/s^2
EARTH_RADIUS_KM = 6371.0

# Overhead time of the synthetic object in Scenario A: the observer at
# (0°, 0°) is past evening twilight while the object is still sunlit.
SCENARIO_A_EPOCH = datetime(2025, 3, 20, 19, 15, 0)


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# =============================================================================
# SYNTHETIC PROPAGATORS
# =============================================================================


class CircularOrbitPredictor:
    """
    Circular orbit on a spherical Earth.

    Exposes the same ``get_position``/``period`` surface as orbit-predictor's
    TLEPredictor. At ``epoch`` the object crosses the ascending node directly
    above ``(0°, node_longitude)``.
    """

    def __init__(
        self,
        period_minutes: float = 97.0,
        inclination_deg: float = 53.0,
        epoch: datetime = SCENARIO_A_EPOCH,
        node_longitude: float = 0.0,
    ) -> None:
        self.period = period_minutes
        self.inclination = math.radians(inclination_deg)
        self.epoch = epoch
        period_s = period_minutes * 60.0
        self.radius_km = (MU_EARTH * (period_s / (2 * math.pi)) ** 2) ** (1.0 / 3.0)
        self.raan = math.radians(calculate_gmst(epoch) + node_longitude)

    def get_position(self, when: datetime) -> Any:
        elapsed = (when - self.epoch).total_seconds()
        u = 2 * math.pi * elapsed / (self.period * 60.0)
        r = self.radius_km
        cos_o, sin_o = math.cos(self.raan), math.sin(self.raan)
        cos_i, sin_i = math.cos(self.inclination), math.sin(self.inclination)

        x = r * (cos_o * math.cos(u) - sin_o * math.sin(u) * cos_i)
        y = r * (sin_o * math.cos(u) + cos_o * math.sin(u) * cos_i)
        z = r * math.sin(u) * sin_i

        theta = math.radians(calculate_gmst(when))
        ecef = (
            math.cos(theta) * x + math.sin(theta) * y,
            -math.sin(theta) * x + math.cos(theta) * y,
            z,
        )
        lat = math.degrees(math.asin(ecef[2] / r))
        lon = math.degrees(math.atan2(ecef[1], ecef[0]))
        return SimpleNamespace(
            position_ecef=ecef,
            velocity_ecef=(0.0, 0.0, 0.0),
            position_llh=(lat, lon, r - EARTH_RADIUS_KM),
        )


class FailingPredictor:
    """Predictor for a degenerate element set: every propagation fails."""

    period = 90.0

    def get_position(self, when: datetime) -> Any:
        raise RuntimeError("satellite decayed")


def make_tle(name: str, norad_id: int, mean_motion: float = 1440.0 / 97.0, inclination: float = 53.0) -> str:
    """Three-line element set text with the fields passfinder reads."""
    line1 = f"1 {norad_id:05d}U 25001A   25079.00000000  .00000000  00000-0  00000-0 0  9990"
    line2 = (
        f"2 {norad_id:05d} {inclination:8.4f}   0.0000 0001000   0.0000   0.0000 "
        f"{mean_motion:11.8f}    10"
    )
    return f"{name}\n{line1}\n{line2}"


def make_object(name: str = "SYNTH-1", norad_id: int = 99001, **orbit: Any) -> TrackedObject:
    """TrackedObject driven by a CircularOrbitPredictor."""
    predictor = CircularOrbitPredictor(**orbit)
    tle = make_tle(name, norad_id, mean_motion=1440.0 / predictor.period)
    return TrackedObject(name, tle, predictor=predictor)


# =============================================================================
# FIXTURES - Common test setup
# =============================================================================


@pytest.fixture
def sample_tle_lines() -> Tuple[str, str]:
    """Sample TLE data for ICEYE-X44."""
    return (
        "1 62707U 25009DC  25306.22031033  .00004207  00000+0  39848-3 0  9995",
        "2 62707  97.7269  23.9854 0002193 135.9671 224.1724 14.94137357 66022",
    )


@pytest.fixture
def sample_tle_file(sample_tle_lines: Tuple[str, str], tmp_path: Path) -> Path:
    """TLE file holding ICEYE-X44."""
    tle_file = tmp_path / "test.tle"
    tle_file.write_text(f"ICEYE-X44\n{sample_tle_lines[0]}\n{sample_tle_lines[1]}\n")
    return tle_file


@pytest.fixture
def real_satellite(sample_tle_file: Path) -> TrackedObject:
    """TrackedObject propagated with orbit-predictor."""
    return TrackedObject.from_tle_file(sample_tle_file, "ICEYE-X44")


@pytest.fixture
def synthetic_object() -> TrackedObject:
    """97-minute, 53° circular orbit overhead (0°, 0°) at the Scenario A epoch."""
    return make_object()


@pytest.fixture
def equator_observer() -> ObserverLocation:
    return ObserverLocation(latitude=0.0, longitude=0.0, name="Null Island")


@pytest.fixture
def buenos_aires() -> ObserverLocation:
    return ObserverLocation(
        latitude=-34.6037,
        longitude=-58.3816,
        timezone="America/Argentina/Buenos_Aires",
        name="Buenos Aires",
    )


@pytest.fixture
def base_datetime() -> datetime:
    """Start of the Scenario A search window."""
    return datetime(2025, 3, 20, 0, 0, 0)


@pytest.fixture
def fast_config() -> PredictionConfig:
    """Short horizon so scheduler tests stay quick."""
    return PredictionConfig(max_days=4, batch_days_favorites=1, batch_days_all=1)


@pytest.fixture
def scenario_epoch() -> datetime:
    return SCENARIO_A_EPOCH


@pytest.fixture
def half_orbit() -> timedelta:
    return timedelta(minutes=97.0 / 2)


@pytest.fixture
def object_factory() -> Any:
    """Build synthetic TrackedObjects: ``object_factory(name, norad_id, **orbit)``."""
    return make_object


@pytest.fixture
def tle_factory() -> Any:
    return make_tle


@pytest.fixture
def failing_object() -> TrackedObject:
    """Object whose propagation always fails."""
    return TrackedObject("DECAYED", make_tle("DECAYED", 99999), predictor=FailingPredictor())
