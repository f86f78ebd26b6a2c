"""NOAA CO-OPS API client for tide predictions.

Station: 1615680 (Kahului Harbor, Maui). All times are local standard time
(lst_ldt), which for Hawaii is HST year round.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Literal, Optional
from zoneinfo import ZoneInfo

import pandas as pd
import requests

from maui_snorkel.clients.cache import ResponseCache


COOPS_BASE_URL = "https://api.tidesandcurrents.noaa.gov/api/prod/datagetter"
CACHE_TTL_SECONDS = 3600  # 1 hour
STALE_FALLBACK_SECONDS = 24 * 3600

HAWAII_TZ = ZoneInfo("Pacific/Honolulu")


class NOAATidesError(Exception):
    """Exception raised for NOAA Tides client errors."""

    pass


@dataclass
class TidePoint:
    """A single predicted water level."""
    time: str  # "YYYY-MM-DD HH:MM" local
    height_ft: float
    rising: Optional[bool] = None

    @property
    def display_time(self) -> str:
        """Time as "3:45 PM"."""
        try:
            parsed = datetime.strptime(self.time, "%Y-%m-%d %H:%M")
        except ValueError:
            return self.time
        return parsed.strftime("%I:%M %p").lstrip("0")

    def to_display(self) -> dict:
        data = {"height": f"{self.height_ft:.1f} ft", "time": self.display_time}
        if self.rising is not None:
            data["rising"] = self.rising
        return data


@dataclass
class TideReport:
    """Current tide level plus the next high and low."""
    station_id: str
    current: Optional[TidePoint] = None
    next_high: Optional[TidePoint] = None
    next_low: Optional[TidePoint] = None
    stale: bool = False

    @property
    def source(self) -> str:
        return f"NOAA Tides Station {self.station_id}"


class NOAATidesClient:
    """Client for fetching tide predictions from NOAA CO-OPS API."""

    def __init__(
        self,
        cache_path: Optional[Path] = None,
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the NOAA Tides client.

        Args:
            cache_path: Path to SQLite cache file. Defaults to <cache dir>/tides_cache.db
            timeout: Per-request timeout in seconds.
            session: Optional requests session (injected by tests).
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.cache = ResponseCache("tides_cache", CACHE_TTL_SECONDS, cache_path)

    def _fetch_data(self, params: dict) -> list:
        """Fetch data from CO-OPS API."""
        try:
            response = self.session.get(COOPS_BASE_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NOAATidesError(f"Failed to fetch tide data: {e}") from e

        if "error" in data:
            raise NOAATidesError(f"CO-OPS API error: {data['error'].get('message', 'Unknown error')}")

        return data.get("predictions", [])

    def get_tide_predictions(
        self,
        station_id: str,
        start_date: datetime,
        end_date: datetime,
        interval: Literal["h", "hilo"] = "hilo",
        use_cache: bool = True,
    ) -> pd.DataFrame:
        """Get tide predictions for a station.

        Args:
            station_id: NOAA station ID (e.g., "1615680" for Kahului)
            start_date: First day to include (local)
            end_date: Last day to include (local)
            interval: "h" for hourly, "hilo" for high/low only.
            use_cache: Whether to use cached data.

        Returns:
            DataFrame with columns: time, water_level_ft, type (H/L for hilo)
        """
        params = self._prediction_params(station_id, start_date, end_date, interval)
        records, _ = self._load_predictions(params, use_cache)
        return pd.DataFrame(records)

    def _prediction_params(
        self,
        station_id: str,
        start_date: datetime,
        end_date: datetime,
        interval: str,
    ) -> dict:
        return {
            "station": station_id,
            "begin_date": start_date.strftime("%Y%m%d"),
            "end_date": end_date.strftime("%Y%m%d"),
            "product": "predictions",
            "datum": "MLLW",
            "units": "english",
            "time_zone": "lst_ldt",
            "format": "json",
            "interval": interval,
        }

    def _load_predictions(self, params: dict, use_cache: bool = True) -> tuple[list[dict], bool]:
        """Fetch predictions, falling back to an expired cache entry.

        Returns:
            (records, stale) where stale means the API could not be reached
            and the records came from an older cached response.
        """
        cache_key = self.cache.make_key(params)

        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached, False

        try:
            predictions = self._fetch_data(params)
        except NOAATidesError:
            if use_cache:
                cached = self.cache.get(cache_key, max_age_seconds=STALE_FALLBACK_SECONDS)
                if cached is not None:
                    return cached, True
            raise

        records = []
        for pred in predictions:
            try:
                level = float(pred.get("v"))
            except (TypeError, ValueError):
                continue
            record = {"time": pred.get("t"), "water_level_ft": level}
            if params["interval"] == "hilo":
                record["type"] = pred.get("type")  # H or L
            records.append(record)

        if use_cache and records:
            self.cache.set(cache_key, records)

        return records, False

    def get_tide_report(self, station_id: str, now: Optional[datetime] = None) -> TideReport:
        """Determine the current tide level and direction, and the next high/low.

        Args:
            station_id: NOAA station ID
            now: Local (naive) Hawaii time. Defaults to the current time.

        Raises:
            NOAATidesError: If no predictions were returned.
        """
        if now is None:
            now = datetime.now(HAWAII_TZ).replace(tzinfo=None)
        tomorrow = now + timedelta(days=1)

        hourly_records, hourly_stale = self._load_predictions(
            self._prediction_params(station_id, now, tomorrow, "h")
        )
        hilo_records, hilo_stale = self._load_predictions(
            self._prediction_params(station_id, now, tomorrow, "hilo")
        )
        hourly = pd.DataFrame(hourly_records)
        hilo = pd.DataFrame(hilo_records)

        if hourly.empty and hilo.empty:
            raise NOAATidesError(f"No tide predictions found for station {station_id}")

        report = TideReport(station_id=station_id, stale=hourly_stale or hilo_stale)

        if not hourly.empty:
            hourly = hourly.reset_index(drop=True)
            hourly["time_parsed"] = pd.to_datetime(hourly["time"])
            pos = int((hourly["time_parsed"] - now).abs().idxmin())
            row = hourly.iloc[pos]
            rising = None
            if pos + 1 < len(hourly):
                rising = bool(hourly.iloc[pos + 1]["water_level_ft"] > row["water_level_ft"])
            report.current = TidePoint(
                time=row["time"],
                height_ft=float(row["water_level_ft"]),
                rising=rising,
            )

        if not hilo.empty:
            hilo = hilo.copy()
            hilo["time_parsed"] = pd.to_datetime(hilo["time"])
            report.next_high = self._next_extreme(hilo, "H", now)
            report.next_low = self._next_extreme(hilo, "L", now)

        return report

    def _next_extreme(self, hilo: pd.DataFrame, tide_type: str, now: datetime) -> Optional[TidePoint]:
        """Next high or low after now, else the first one in the window."""
        of_type = hilo[hilo["type"] == tide_type]
        if of_type.empty:
            return None
        upcoming = of_type[of_type["time_parsed"] > now]
        row = upcoming.iloc[0] if not upcoming.empty else of_type.iloc[0]
        return TidePoint(time=row["time"], height_ft=float(row["water_level_ft"]))
