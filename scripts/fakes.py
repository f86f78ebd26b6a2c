"""Fakes and fixtures shared by the test scripts. No network access."""

import copy
import time
from pathlib import Path
from typing import Optional

import requests

from maui_snorkel.clients.buoy_client import BuoyReading
from maui_snorkel.clients.maui_now_client import AdvisoryReport
from maui_snorkel.clients.noaa_tides_client import TidePoint, TideReport
from maui_snorkel.clients.snorkel_store_client import NarrativeReport, ZoneReport
from maui_snorkel.clients.webcam_client import WebcamError, WebcamFrame
from maui_snorkel.core.spots import SpotDatabase
from maui_snorkel.storage.blob_store import LocalBlobStore
from maui_snorkel.storage.overrides import OverrideStore
from maui_snorkel.storage.snapshots import SnapshotStore


JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64

SPOTS_CONFIG = {
    "timeouts": {"fusion_join_seconds": 5, "wind_join_seconds": 5},
    "zones": {
        "northwest": {
            "name": "Northwest",
            "score": 5.0,
            "summary": "Honolua to Napili",
            "locations": [
                {
                    "id": "honolua",
                    "name": "Honolua Bay",
                    "conditions": "Honolua baseline.",
                    "exposure": "Fully exposed to north swells",
                    "characteristics": "Marine Life Conservation District",
                },
                {"id": "napili", "name": "Napili Bay", "conditions": "Napili baseline."},
            ],
        },
        "kaanapali": {
            "name": "Ka'anapali",
            "score": 6.0,
            "summary": "Black Rock to Mala",
            "locations": [
                {"id": "blackrock", "name": "Black Rock", "conditions": "Black Rock baseline."},
                {"id": "kahekili", "name": "Kahekili", "conditions": "Kahekili baseline."},
                {
                    "id": "malawharf",
                    "name": "Mala Wharf",
                    "conditions": "Mala baseline.",
                    "derived_from": ["blackrock", "kahekili"],
                },
            ],
        },
        "southshore": {
            "name": "South Shore",
            "score": 7.0,
            "locations": [
                {"id": "uluabeach", "name": "Ulua Beach", "conditions": "Ulua baseline."},
                {"id": "waileapoint", "name": "Wailea Point", "conditions": "Wailea baseline."},
            ],
        },
    },
    "cameras": [
        {"id": "napili", "name": "Napili Bay", "zone": "northwest", "snapshot_url": "http://cam.test/napili"},
        {"id": "kahekili", "name": "Airport Beach", "zone": "kaanapali", "snapshot_url": "http://cam.test/kahekili"},
        {"id": "uluabeach", "name": "Ulua Beach", "zone": "southshore", "snapshot_url": "http://cam.test/ulua"},
        {"id": "waileapoint", "name": "Polo Beach", "zone": "southshore", "snapshot_url": "http://cam.test/polo"},
    ],
}


def spots_config() -> dict:
    return copy.deepcopy(SPOTS_CONFIG)


def make_spot_db(**timeouts) -> SpotDatabase:
    config = spots_config()
    config["timeouts"].update(timeouts)
    return SpotDatabase.from_dict(config)


def make_stores(tmpdir, spot_db: SpotDatabase) -> tuple[SnapshotStore, OverrideStore]:
    blob_store = LocalBlobStore(Path(tmpdir))
    return SnapshotStore(blob_store), OverrideStore(blob_store, spot_db)


# Source data

def default_narrative() -> NarrativeReport:
    return NarrativeReport(
        zones={
            "northwest": ZoneReport(score=5.0, narrative="Northwest is a bit bumpy."),
            "kaanapali": ZoneReport(score=6.0, narrative="Ka'anapali looks decent."),
            "southshore": ZoneReport(score=7.0, narrative="South shore is glassy."),
        },
        alerts=[{"type": "advisory", "message": "Small Craft Advisory - choppy conditions"}],
        full_narrative="Northwest is a bit bumpy.\n\nKa'anapali looks decent.\n\nSouth shore is glassy.",
        report_date="2024-06-01",
        source="test",
    )


def default_buoy() -> BuoyReading:
    return BuoyReading(
        station_id="51205",
        time="2024-06-01T18:00:00Z",
        wave_height_m=0.9,
        dominant_period_s=12.0,
        wave_direction_deg=315.0,
        water_temp_c=25.5,
    )


def default_tides() -> TideReport:
    return TideReport(
        station_id="1615680",
        current=TidePoint(time="2024-06-01 08:00", height_ft=1.2, rising=True),
        next_high=TidePoint(time="2024-06-01 11:24", height_ft=2.1),
        next_low=TidePoint(time="2024-06-01 17:48", height_ft=0.3),
    )


def default_advisory() -> AdvisoryReport:
    return AdvisoryReport(
        advisories=[
            {"type": "warning", "message": "High Surf Warning in effect"},
            {"type": "advisory", "message": "Small Craft Advisory - choppy conditions"},
        ],
        wind_conditions="light trades",
        swell_direction="north",
        source="test",
    )


class _FakeSource:
    """Returns a fixed value, raises a fixed error, or sleeps first."""

    def __init__(self, value=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    def _get(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


class FakeNarrativeClient(_FakeSource):
    def get_report(self):
        return self._get()


class FakeAdvisoryClient(_FakeSource):
    def get_report(self):
        return self._get()


class FakeBuoyClient(_FakeSource):
    def get_latest_reading(self, station_id):
        return self._get()


class FakeTidesClient(_FakeSource):
    def get_tide_report(self, station_id):
        return self._get()


class FakeTextClassifier:
    """Records requests; returns fixed suggestions or raises."""

    def __init__(self, suggestions: Optional[dict] = None, error: Optional[Exception] = None):
        self.suggestions = suggestions or {}
        self.error = error
        self.requests = []

    def classify(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return dict(self.suggestions)


class FakeWebcamClient:
    def __init__(self, failing: tuple = ()):
        self.failing = set(failing)
        self.fetched = []

    def fetch_frame(self, camera_id, snapshot_url):
        self.fetched.append(camera_id)
        if camera_id in self.failing:
            raise WebcamError(f"Failed to fetch frame for {camera_id}: connection refused")
        return WebcamFrame(camera_id=camera_id, data=JPEG_BYTES, media_type="image/jpeg")


class FakeChopClassifier:
    """Maps camera id to a severity, or to an exception to raise."""

    def __init__(self, labels: dict):
        self.labels = labels

    def classify(self, frame):
        label = self.labels[frame.camera_id]
        if isinstance(label, Exception):
            raise label
        return label


# HTTP

class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200, content: Optional[bytes] = None, json_data=None):
        self.text = text
        self.status_code = status_code
        self.content = content if content is not None else text.encode("utf-8")
        self._json = json_data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """requests.Session stand-in. ``responses`` is a list consumed in order, or a callable."""

    def __init__(self, responses):
        self.headers = {}
        self.responses = responses
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if callable(self.responses):
            response = self.responses(url, params)
        else:
            response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
