"""NDBC buoy client for real-time wave and water temperature observations.

Primary buoy:
- 51205 (CDIP 187): Pauwela, Maui - north shore, sees the swells that reach
  the northwest and Ka'anapali zones first
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd
import requests

from maui_snorkel.clients.cache import ResponseCache


NDBC_TXT_URL = "https://www.ndbc.noaa.gov/data/realtime2/{station}.txt"

CACHE_TTL_SECONDS = 600  # 10 minutes for real-time buoy data
STALE_FALLBACK_SECONDS = 6 * 3600

METERS_TO_FEET = 3.28084

COMPASS_POINTS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
]


class BuoyError(Exception):
    """Exception raised for Buoy client errors."""

    pass


@dataclass
class BuoyReading:
    """Latest usable observation from a buoy."""
    station_id: str
    time: Optional[str] = None
    wave_height_m: Optional[float] = None
    dominant_period_s: Optional[float] = None
    wave_direction_deg: Optional[float] = None
    water_temp_c: Optional[float] = None
    stale: bool = False

    @property
    def wave_height_ft(self) -> Optional[float]:
        if self.wave_height_m is None:
            return None
        return round(self.wave_height_m * METERS_TO_FEET, 1)

    @property
    def water_temp_f(self) -> Optional[float]:
        if self.water_temp_c is None:
            return None
        return round(self.water_temp_c * 9 / 5 + 32)

    @property
    def wave_direction_compass(self) -> Optional[str]:
        return direction_to_compass(self.wave_direction_deg)

    @property
    def source(self) -> str:
        return f"NOAA Buoy {self.station_id}"


def direction_to_compass(degrees: Optional[float]) -> Optional[str]:
    """Convert degrees to a 16-point compass direction."""
    if degrees is None:
        return None
    idx = round(degrees / 22.5) % 16
    return COMPASS_POINTS[idx]


class BuoyClient:
    """Client for fetching buoy data from NDBC."""

    def __init__(
        self,
        cache_path: Optional[Path] = None,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the Buoy client.

        Args:
            cache_path: Path to SQLite cache file. Defaults to <cache dir>/buoy_cache.db
            timeout: Per-request timeout in seconds.
            session: Optional requests session (injected by tests).
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.cache = ResponseCache("buoy_cache", CACHE_TTL_SECONDS, cache_path)

    def _parse_ndbc_standard(self, text: str) -> list[dict]:
        """Parse NDBC standard meteorological data text format.

        Columns: YY MM DD hh mm WDIR WSPD GST WVHT DPD APD MWD PRES ATMP WTMP ...
        Most recent observation first.
        """
        records = []
        for line in text.strip().split("\n"):
            if not line.strip() or line.startswith("#"):
                continue

            parts = line.split()
            if len(parts) < 15:
                continue

            try:
                year = int(parts[0])
                if year < 100:
                    year += 2000

                records.append({
                    "time": f"{year}-{parts[1]}-{parts[2]}T{parts[3]}:{parts[4]}:00Z",
                    "wind_direction": self._safe_float(parts[5]),
                    "wind_speed_mps": self._safe_float(parts[6]),
                    "wave_height_m": self._safe_float(parts[8]),
                    "dominant_period_s": self._safe_float(parts[9]),
                    "mean_wave_direction": self._safe_float(parts[11]),
                    "water_temp_c": self._safe_float(parts[14]),
                })
            except (ValueError, IndexError):
                continue

        return records

    def _safe_float(self, value: str) -> Optional[float]:
        """Safely convert to float, returning None for missing values."""
        if value in ("MM", "999", "99.0", "9999", "99.00", "999.0"):
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def _load_records(self, station_id: str, use_cache: bool) -> tuple[list[dict], bool]:
        """Fetch and parse observations, falling back to an expired cache entry.

        Returns:
            (records, stale) where stale means the station could not be reached
            and the records came from an older cached response.
        """
        url = NDBC_TXT_URL.format(station=station_id)
        cache_key = self.cache.make_key(url)

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached, False

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            records = self._parse_ndbc_standard(response.text)
        except requests.RequestException as e:
            if use_cache:
                cached = self.cache.get(cache_key, max_age_seconds=STALE_FALLBACK_SECONDS)
                if cached is not None:
                    return cached, True
            raise BuoyError(f"Failed to fetch standard data for {station_id}: {e}") from e

        if use_cache and records:
            self.cache.set(cache_key, records)

        return records, False

    def get_standard_data(self, station_id: str, use_cache: bool = True) -> pd.DataFrame:
        """Get standard meteorological data from a buoy.

        Args:
            station_id: NDBC station ID
            use_cache: Whether to use cached data

        Returns:
            DataFrame with wind, wave and water temperature data, newest first
        """
        records, _ = self._load_records(station_id, use_cache)
        return pd.DataFrame(records)

    def get_latest_reading(self, station_id: str, use_cache: bool = True) -> BuoyReading:
        """Get the latest wave height, direction and water temperature.

        Waves are sampled less often than the met sensors, so each field is
        taken from the newest row where it was reported. A reading served from
        an expired cache entry after a network failure is marked stale.

        Raises:
            BuoyError: If the station returned no usable observations.
        """
        records, stale = self._load_records(station_id, use_cache)
        df = pd.DataFrame(records)
        if df.empty:
            raise BuoyError(f"No observations for buoy {station_id}")

        def latest(column: str) -> Optional[float]:
            values = df[column].dropna()
            return float(values.iloc[0]) if not values.empty else None

        reading = BuoyReading(
            station_id=station_id,
            time=df.iloc[0]["time"],
            wave_height_m=latest("wave_height_m"),
            dominant_period_s=latest("dominant_period_s"),
            wave_direction_deg=latest("mean_wave_direction"),
            water_temp_c=latest("water_temp_c"),
            stale=stale,
        )

        if reading.wave_height_m is None and reading.water_temp_c is None:
            raise BuoyError(f"Buoy {station_id} reported no wave or temperature data")

        return reading
