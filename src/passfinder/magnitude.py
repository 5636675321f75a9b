"""
Apparent visual magnitude estimates.

Brightness is modelled as a diffusely reflecting sphere: the catalog
standard magnitude is scaled by range and phase angle, then dimmed by
atmospheric extinction along the line of sight.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union
import json
import logging
import math
import time

import numpy as np
import requests

from .config import PredictionConfig
from .observer import ObserverLocation
from .orbit import TrackedObject
from .sunlight import calculate_sun_position, is_object_illuminated, to_naive_utc
from .visibility import predict_passes

logger = logging.getLogger(__name__)

SATCAT_URL = "https://celestrak.org/pub/satcat.json"
DEFAULT_STANDARD_MAGNITUDE = 5.0
RCS_SIZE_VALUES = {"SMALL": 0.1, "MEDIUM": 1.0, "LARGE": 10.0}
MIN_RCS_M2 = 0.001


class StandardMagnitudeCatalog:
    """
    Standard magnitudes keyed by NORAD catalog number.

    Backed by CelesTrak's SATCAT. Records are kept in a local JSON cache
    file and refreshed after ``cache_days``.
    """

    def __init__(
        self,
        records: Optional[Dict[int, Dict[str, Any]]] = None,
        url: str = SATCAT_URL,
        cache_path: Optional[Union[str, Path]] = None,
        cache_days: float = 7.0,
        default_magnitude: float = DEFAULT_STANDARD_MAGNITUDE,
    ) -> None:
        self.records: Dict[int, Dict[str, Any]] = dict(records or {})
        self.url = url
        self.cache_path = Path(cache_path) if cache_path else None
        self.cache_days = cache_days
        self.default_magnitude = default_magnitude

    @classmethod
    def from_config(cls, config: PredictionConfig) -> "StandardMagnitudeCatalog":
        return cls(
            url=config.satcat_url,
            cache_path=config.satcat_cache_path,
            cache_days=config.satcat_cache_days,
            default_magnitude=config.default_standard_magnitude,
        )

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]], **kwargs: Any) -> "StandardMagnitudeCatalog":
        catalog = cls(**kwargs)
        catalog._index(records)
        return catalog

    def load(self, force: bool = False) -> "StandardMagnitudeCatalog":
        """
        Fill the catalog from the cache file, downloading when it is stale.

        A failed download leaves the catalog empty, so every lookup falls
        back to the default magnitude.
        """
        if not force and self._load_cache():
            return self

        self._download()
        return self

    def _load_cache(self) -> bool:
        if self.cache_path is None or not self.cache_path.exists():
            return False

        try:
            with open(self.cache_path, "r") as f:
                cached = json.load(f)
            age_days = (time.time() - float(cached["timestamp"])) / 86400.0
            if age_days >= self.cache_days:
                logger.debug(f"SATCAT cache is {age_days:.1f} days old, refreshing")
                return False
            self._index(cached["data"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable SATCAT cache {self.cache_path}: {e}")
            return False

        logger.info(f"Loaded {len(self.records)} SATCAT records from cache")
        return True

    def _download(self) -> None:
        try:
            logger.info(f"Downloading SATCAT from {self.url}")
            response = requests.get(self.url, timeout=30)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"SATCAT download failed: {e}")
            self.records = {}
            return

        self._index(data)
        logger.info(f"Downloaded {len(self.records)} SATCAT records")

        if self.cache_path is not None:
            try:
                self.cache_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.cache_path, "w") as f:
                    json.dump({"timestamp": time.time(), "data": data}, f)
            except OSError as e:
                logger.warning(f"Could not write SATCAT cache {self.cache_path}: {e}")

    def _index(self, records: Iterable[Dict[str, Any]]) -> None:
        self.records = {}
        for record in records:
            try:
                self.records[int(record["NORAD_CAT_ID"])] = record
            except (KeyError, TypeError, ValueError):
                continue

    def standard_magnitude(self, norad_id: Optional[int]) -> float:
        """
        Standard magnitude M0 of an object.

        Uses the catalog MAG when present, otherwise estimates it from the
        radar cross section, otherwise returns the default.
        """
        record = self.records.get(norad_id) if norad_id is not None else None
        if record is None:
            return self.default_magnitude

        magnitude = record.get("MAG")
        if isinstance(magnitude, (int, float)) and not isinstance(magnitude, bool):
            return float(magnitude)

        rcs = record.get("RCS_SIZE")
        if isinstance(rcs, (int, float)) and not isinstance(rcs, bool):
            rcs_value = float(rcs)
        else:
            rcs_value = RCS_SIZE_VALUES.get(str(rcs).upper(), 1.0) if rcs else 1.0

        return -1.5 - 2.5 * math.log10(max(MIN_RCS_M2, rcs_value))

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, norad_id: int) -> bool:
        return norad_id in self.records


def phase_function(phase_angle_rad: float) -> float:
    """Diffuse-sphere phase law: 1 at full phase, 0 at new phase."""
    phi = phase_angle_rad
    return (math.sin(phi) + (math.pi - phi) * math.cos(phi)) / math.pi


def apparent_magnitude(
    standard_magnitude: float,
    range_km: float,
    phase_angle_rad: float,
    elevation_deg: float,
    extinction_coefficient: float = 0.2,
) -> Optional[float]:
    """
    Apparent magnitude of a sunlit object.

    Args:
        standard_magnitude: M0 at 1000 km and full phase
        range_km: Observer to object distance
        phase_angle_rad: Sun-object-observer angle
        elevation_deg: Object elevation, used for the airmass
        extinction_coefficient: Magnitudes per airmass

    Returns:
        Magnitude, or None when the object is unlit from the observer's
        side or below the horizon
    """
    pf = phase_function(phase_angle_rad)
    if pf <= 0 or range_km <= 0:
        return None

    magnitude = standard_magnitude + 5 * math.log10(range_km / 1000.0) - 2.5 * math.log10(pf)

    if elevation_deg <= 0:
        return None

    airmass = 1.0 / math.sin(math.radians(elevation_deg))
    return magnitude + extinction_coefficient * airmass


def estimate_magnitude(
    obj: TrackedObject,
    location: ObserverLocation,
    when: datetime,
    catalog: Optional[StandardMagnitudeCatalog] = None,
    config: Optional[PredictionConfig] = None,
) -> Optional[float]:
    """
    Apparent magnitude of ``obj`` seen from ``location`` at ``when``.

    Returns:
        Magnitude, or None when the object is in shadow, below the
        horizon or cannot be propagated
    """
    config = config or PredictionConfig()
    when = to_naive_utc(when)

    result = obj.propagate(when)
    if not result.ok:
        return None

    if not is_object_illuminated(result.position_eci, when):
        return None

    sat = np.asarray(result.position_eci)
    sun = np.asarray(calculate_sun_position(when))
    observer = np.asarray(location.eci_position(when))

    to_sun = sun - sat
    to_observer = observer - sat
    range_km = float(np.linalg.norm(to_observer))
    cos_phi = float(np.dot(to_sun, to_observer) / (np.linalg.norm(to_sun) * range_km))
    phase_angle = math.acos(max(-1.0, min(1.0, cos_phi)))

    elevation, _ = location.look_angles(result)
    m0 = catalog.standard_magnitude(obj.norad_id) if catalog else config.default_standard_magnitude

    return apparent_magnitude(m0, range_km, phase_angle, elevation, config.extinction_coefficient)


def max_magnitude_for_pass(
    obj: TrackedObject,
    location: ObserverLocation,
    now: Optional[datetime] = None,
    catalog: Optional[StandardMagnitudeCatalog] = None,
    config: Optional[PredictionConfig] = None,
) -> Optional[float]:
    """
    Brightest magnitude over the pass in progress, or else the next one.

    Looks one day ahead and samples the visible window every 20 seconds
    (configurable).

    Returns:
        The minimum (brightest) magnitude, or None without a suitable pass
    """
    config = config or PredictionConfig()
    now = to_naive_utc(now) if now else datetime.utcnow()

    passes = predict_passes(obj, location, days=1, direction="future", start_date=now, config=config)
    relevant = next((p for p in passes if p.start <= now <= p.end), None)
    if relevant is None:
        relevant = next((p for p in passes if p.start > now), None)
    if relevant is None:
        logger.debug(f"No visible pass of {obj.name} within a day")
        return None

    step = timedelta(seconds=config.magnitude_step_seconds)
    brightest: Optional[float] = None
    when = relevant.start
    while when <= relevant.end:
        magnitude = estimate_magnitude(obj, location, when, catalog, config)
        if magnitude is not None and (brightest is None or magnitude < brightest):
            brightest = magnitude
        when += step

    return brightest
