#!/usr/bin/env python3
"""Tests for the upstream clients and the source adapter boundary.

No network access: every client gets a fake session or fake SDK client.

Run from project root:
    python scripts/test_sources.py
"""

import base64
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import anthropic
import openai
import requests

from maui_snorkel.clients.buoy_client import BuoyClient, BuoyError, direction_to_compass
from maui_snorkel.clients.classifier_errors import ClassifierMalformed, ClassifierUnavailable
from maui_snorkel.clients.image_classifier import ChopClassifier, parse_label
from maui_snorkel.clients.maui_now_client import MauiNowClient
from maui_snorkel.clients.noaa_tides_client import NOAATidesClient, NOAATidesError
from maui_snorkel.clients.snorkel_store_client import SnorkelStoreClient, SnorkelStoreError
from maui_snorkel.clients.text_classifier import (
    ClassifierRequest,
    ConditionsClassifier,
    build_prompt,
    parse_response,
)
from maui_snorkel.clients.webcam_client import WebcamClient, WebcamError, WebcamFrame, sniff_media_type
from maui_snorkel.core.model import Severity, SourceStatus
from maui_snorkel.core.sources import buoy_adapter, narrative_adapter, tides_adapter

from fakes import (
    JPEG_BYTES,
    FakeBuoyClient,
    FakeNarrativeClient,
    FakeResponse,
    FakeSession,
    FakeTidesClient,
    default_buoy,
    make_spot_db,
)


SNORKEL_STORE_HTML = """
<html><body>
<nav><p>Shop our snorkel gear and rentals today!</p></nav>
<div class="entry-content">
  <p>June 1, 2024</p>
  <p>Northwest: 4.5 - Northwest shores have a small north swell, Honolua is murky.</p>
  <p>Ka'anapali: 7 - Ka'anapali is calm and clear at Black Rock this morning.</p>
  <p>South Shore: 8.5 - South shore is glassy with great visibility at Ulua.</p>
  <p>Small Craft Advisory in effect</p>
</div>
</body></html>
"""

MAUI_NOW_HTML = """
<html><body>
<p>A High Surf Warning is in effect for north facing shores.</p>
<p>Small Craft Advisory until Tuesday.</p>
<p>A north northwest swell will peak today. Light trade winds.</p>
</body></html>
"""

NDBC_TEXT = """#YY  MM DD hh mm WDIR WSPD GST  WVHT   DPD   APD MWD   PRES  ATMP  WTMP  DEWP  VIS PTDY  TIDE
#yr  mo dy hr mn degT m/s  m/s     m   sec   sec degT   hPa  degC  degC  degC  nmi  hPa    ft
2024 06 01 18 30  MM   MM   MM    MM    MM    MM  MM     MM    MM  25.6    MM   MM   MM    MM
2024 06 01 18 00  MM   MM   MM   0.9  12.0   7.5 315     MM    MM  25.5    MM   MM   MM    MM
"""

HOURLY_TIDES = {"predictions": [
    {"t": "2024-06-01 07:00", "v": "0.9"},
    {"t": "2024-06-01 08:00", "v": "1.2"},
    {"t": "2024-06-01 09:00", "v": "1.6"},
]}

HILO_TIDES = {"predictions": [
    {"t": "2024-06-01 04:12", "v": "0.1", "type": "L"},
    {"t": "2024-06-01 11:24", "v": "2.1", "type": "H"},
    {"t": "2024-06-01 17:48", "v": "0.3", "type": "L"},
]}


def tides_responder(url, params):
    if params["interval"] == "h":
        return FakeResponse(json_data=HOURLY_TIDES)
    return FakeResponse(json_data=HILO_TIDES)


# Scrapers

def test_snorkel_store_parse():
    """Zone scores, zone narratives, alerts and date from the report page."""
    print("\n" + "="*60)
    print("TEST: Snorkel Store Report")
    print("="*60)

    client = SnorkelStoreClient(session=FakeSession([FakeResponse(SNORKEL_STORE_HTML)]))
    report = client.get_report()

    for zone_id, zone in report.zones.items():
        print(f"  {zone_id}: {zone.score} - {zone.narrative}")

    assert report.zone_score("northwest") == 4.5
    assert report.zone_score("kaanapali") == 7.0
    assert report.zone_score("southshore") == 8.5
    assert "Black Rock" in report.zone_narrative("kaanapali")
    assert report.alerts == [{"type": "advisory", "message": "Small Craft Advisory in effect"}]
    assert report.report_date == "2024-06-01"
    assert "Shop our snorkel gear" not in report.full_narrative
    assert report.full_narrative.count("\n\n") == 2


def test_snorkel_store_empty_page_is_error():
    client = SnorkelStoreClient(session=FakeSession([FakeResponse("<html><body><p>Closed</p></body></html>")]))
    try:
        client.get_report()
        raise AssertionError("Expected SnorkelStoreError")
    except SnorkelStoreError as e:
        print(f"  ✓ {e}")

    client = SnorkelStoreClient(session=FakeSession([FakeResponse("oops", status_code=503)]))
    try:
        client.get_report()
        raise AssertionError("Expected SnorkelStoreError")
    except SnorkelStoreError:
        pass


def test_snorkel_store_ignores_out_of_range_score():
    html = "<main><p>Northwest: 45 knots of wind. Northwest: 3 overall.</p></main>"
    report = SnorkelStoreClient(session=FakeSession([])).parse_report(html)
    assert report.zone_score("northwest") == 3.0


def test_maui_now_parse():
    client = MauiNowClient(session=FakeSession([FakeResponse(MAUI_NOW_HTML)]))
    report = client.get_report()

    assert [a["message"] for a in report.advisories] == [
        "High Surf Warning in effect",
        "Small Craft Advisory - choppy conditions",
    ]
    assert report.swell_direction == "north"
    assert report.surf["north"] == "elevated"
    assert report.surf["overall"] == "moderate"
    assert report.wind_conditions == "light trades"

    cancelled = client.parse_page("<p>The High Surf Warning has been cancelled.</p>")
    assert cancelled.advisories == []
    assert cancelled.wind_conditions == "light"


# NOAA

def test_buoy_latest_reading_and_cache():
    """Each field comes from the newest row that reported it; repeats hit the cache."""
    with tempfile.TemporaryDirectory() as tmpdir:
        session = FakeSession([FakeResponse(NDBC_TEXT)])
        client = BuoyClient(cache_path=Path(tmpdir) / "buoy.db", session=session)

        reading = client.get_latest_reading("51205")
        print(f"  {reading.wave_height_ft} ft {reading.wave_direction_compass}, {reading.water_temp_f}°F")

        assert reading.time == "2024-06-01T18:30:00Z"
        assert reading.wave_height_m == 0.9
        assert reading.water_temp_c == 25.6
        assert reading.wave_height_ft == 3.0
        assert reading.wave_direction_compass == "NW"
        assert reading.water_temp_f == 78

        again = client.get_latest_reading("51205")
        assert again.wave_height_m == 0.9
        assert len(session.calls) == 1


def test_buoy_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        session = FakeSession([requests.ConnectionError("refused"), FakeResponse("#only headers\n")])
        client = BuoyClient(cache_path=Path(tmpdir) / "buoy.db", session=session)

        for _ in range(2):
            try:
                client.get_latest_reading("51205", use_cache=False)
                raise AssertionError("Expected BuoyError")
            except BuoyError as e:
                print(f"  ✓ {e}")

    assert direction_to_compass(None) is None
    assert direction_to_compass(350) == "N"
    assert direction_to_compass(180) == "S"


def test_buoy_stale_cache_fallback():
    """An expired cache entry is used, and marked stale, when the station is unreachable."""
    with tempfile.TemporaryDirectory() as tmpdir:
        session = FakeSession([FakeResponse(NDBC_TEXT), requests.ConnectionError("refused")])
        client = BuoyClient(cache_path=Path(tmpdir) / "buoy.db", session=session)

        assert not client.get_latest_reading("51205").stale

        client.cache.ttl_seconds = -1
        reading = client.get_latest_reading("51205")
        assert reading.stale
        assert reading.wave_height_m == 0.9
        assert len(session.calls) == 2

        # Without the cache there is nothing to fall back to
        session.responses.append(requests.ConnectionError("refused"))
        try:
            client.get_latest_reading("51205", use_cache=False)
            raise AssertionError("Expected BuoyError")
        except BuoyError:
            pass


def test_tide_report():
    with tempfile.TemporaryDirectory() as tmpdir:
        client = NOAATidesClient(cache_path=Path(tmpdir) / "tides.db", session=FakeSession(tides_responder))
        report = client.get_tide_report("1615680", now=datetime(2024, 6, 1, 8, 10))

        assert report.current.to_display() == {"height": "1.2 ft", "time": "8:00 AM", "rising": True}
        assert report.next_high.to_display() == {"height": "2.1 ft", "time": "11:24 AM"}
        assert report.next_low.time == "2024-06-01 17:48"


def test_tide_api_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        session = FakeSession(lambda url, params: FakeResponse(json_data={"error": {"message": "bad station"}}))
        client = NOAATidesClient(cache_path=Path(tmpdir) / "tides.db", session=session)
        try:
            client.get_tide_report("0000000", now=datetime(2024, 6, 1, 8, 10))
            raise AssertionError("Expected NOAATidesError")
        except NOAATidesError as e:
            assert "bad station" in str(e)


def test_tide_stale_cache_fallback():
    with tempfile.TemporaryDirectory() as tmpdir:
        down = []

        def responder(url, params):
            if down:
                return requests.ConnectionError("refused")
            return tides_responder(url, params)

        client = NOAATidesClient(cache_path=Path(tmpdir) / "tides.db", session=FakeSession(responder))
        now = datetime(2024, 6, 1, 8, 10)
        assert not client.get_tide_report("1615680", now=now).stale

        down.append(True)
        client.cache.ttl_seconds = -1
        report = client.get_tide_report("1615680", now=now)
        assert report.stale
        assert report.next_high.to_display() == {"height": "2.1 ft", "time": "11:24 AM"}


# Webcams

def test_sniff_media_type():
    assert sniff_media_type(JPEG_BYTES) == "image/jpeg"
    assert sniff_media_type(b"\x89PNG\r\n\x1a\n....") == "image/png"
    assert sniff_media_type(b"GIF89a....") == "image/gif"
    assert sniff_media_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
    assert sniff_media_type(b"<html>relay error</html>") is None


def test_webcam_fetch():
    session = FakeSession([
        FakeResponse(content=JPEG_BYTES),
        FakeResponse(content=b""),
        FakeResponse(content=b"<html>relay error</html>"),
        FakeResponse(status_code=503),
        requests.Timeout("read timed out"),
    ])
    client = WebcamClient(session=session)

    frame = client.fetch_frame("napili", "http://cam.test/napili")
    assert frame.media_type == "image/jpeg"
    assert frame.data == JPEG_BYTES

    for expected in ("Empty frame", "not an image", "Failed to fetch", "Failed to fetch"):
        try:
            client.fetch_frame("napili", "http://cam.test/napili")
            raise AssertionError("Expected WebcamError")
        except WebcamError as e:
            assert expected in str(e), f"{expected!r} not in {e}"


# Source adapters

def test_adapter_failure_statuses():
    """A failed narrative is stale; other sources are unavailable."""
    narrative = narrative_adapter(FakeNarrativeClient(error=SnorkelStoreError("503"))).fetch()
    assert not narrative.ok
    assert narrative.status is SourceStatus.STALE
    assert narrative.value is None

    buoy = buoy_adapter(FakeBuoyClient(error=requests.Timeout("slow")), "51205").fetch()
    assert buoy.status is SourceStatus.UNAVAILABLE
    assert "slow" in buoy.failure.reason

    broken = tides_adapter(FakeTidesClient(error=KeyError("predictions")), "1615680").fetch()
    assert broken.status is SourceStatus.UNAVAILABLE
    assert broken.failure.reason.startswith("unexpected error")

    ok = buoy_adapter(FakeBuoyClient(default_buoy()), "51205").fetch()
    assert ok.ok
    assert ok.status is SourceStatus.FRESH
    assert ok.value.station_id == "51205"

    cached = default_buoy()
    cached.stale = True
    stale = buoy_adapter(FakeBuoyClient(cached), "51205").fetch()
    assert stale.ok
    assert stale.status is SourceStatus.STALE
    assert stale.failure is None


# Text classifier

def make_request() -> ClassifierRequest:
    db = make_spot_db()
    return ClassifierRequest(
        zone_scores={"northwest": 5.0, "kaanapali": 6.0, "southshore": 7.0},
        narrative_text="Ka'anapali looks decent.",
        environmental_context={
            "waveHeightFt": "3.0 ft",
            "waterTemp": "78°F",
            "currentTide": {"height": "1.2 ft", "time": "8:00 AM", "rising": True},
        },
        locations=[s for z in db.get_zones() for s in z.independent_spots],
        zone_names={z.id: z.name for z in db.get_zones()},
    )


def fake_openai(content=None, error=None):
    def create(**kwargs):
        fake.calls.append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    fake = SimpleNamespace(calls=[])
    fake.chat = SimpleNamespace(completions=SimpleNamespace(create=create))
    return fake


def test_prompt_lists_independent_locations():
    prompt = build_prompt(make_request())
    assert "Ka'anapali [kaanapali]: 6.0/10" in prompt
    assert "id=blackrock" in prompt
    assert "id=malawharf" not in prompt
    assert "- Tide: Rising (1.2 ft)" in prompt
    assert "Exposure: Fully exposed to north swells" in prompt


def test_parse_response_validation():
    valid = {"blackrock", "kahekili", "honolua"}
    suggestions = parse_response(
        '{"locations": {'
        '"blackrock": {"score": 8.3, "text": " Great. "},'
        '"kahekili": {"score": "high", "text": "Murky."},'
        '"honolua": {"score": null, "text": ""},'
        '"atlantis": {"score": 9, "text": "Unknown."}}}',
        valid,
    )
    assert set(suggestions) == {"blackrock", "kahekili"}
    assert suggestions["blackrock"].score == 8.3
    assert suggestions["blackrock"].text == "Great."
    assert suggestions["kahekili"].score is None

    for content in ("not json", '{"spots": {}}', '["locations"]', None):
        try:
            parse_response(content, valid)
            raise AssertionError(f"Expected ClassifierMalformed for {content!r}")
        except ClassifierMalformed:
            pass


def test_conditions_classifier_call():
    fake = fake_openai('{"locations": {"napili": {"score": 6.5, "text": "Calm inside the bay."}}}')
    classifier = ConditionsClassifier(model="test-model", client=fake)

    suggestions = classifier.classify(make_request())
    assert suggestions["napili"].score == 6.5

    call = fake.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0]["role"] == "system"


def test_conditions_classifier_errors():
    classifier = ConditionsClassifier(client=fake_openai(error=openai.OpenAIError("connection reset")))
    try:
        classifier.classify(make_request())
        raise AssertionError("Expected ClassifierUnavailable")
    except ClassifierUnavailable as e:
        assert "connection reset" in str(e)

    unconfigured = ConditionsClassifier()
    unconfigured.api_key = None
    assert not unconfigured.is_configured
    try:
        unconfigured.classify(make_request())
        raise AssertionError("Expected ClassifierUnavailable")
    except ClassifierUnavailable:
        pass


# Image classifier

def fake_anthropic(text=None, error=None):
    def create(**kwargs):
        fake.calls.append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(content=[SimpleNamespace(text=text)])

    fake = SimpleNamespace(calls=[])
    fake.messages = SimpleNamespace(create=create)
    return fake


def test_parse_label_is_strict():
    assert parse_label("CALM") is Severity.CALM
    assert parse_label(" heavy\n") is Severity.HEAVY
    for text in ("The water looks CALM", "Moderate chop", "", None):
        try:
            parse_label(text)
            raise AssertionError(f"Expected ClassifierMalformed for {text!r}")
        except ClassifierMalformed:
            pass


def test_chop_classifier_call():
    frame = WebcamFrame(camera_id="napili", data=JPEG_BYTES, media_type="image/jpeg")

    fake = fake_anthropic("MODERATE")
    assert ChopClassifier(client=fake).classify(frame) is Severity.MODERATE
    image = fake.calls[0]["messages"][0]["content"][0]
    assert image["source"]["media_type"] == "image/jpeg"
    assert base64.b64decode(image["source"]["data"]) == JPEG_BYTES

    try:
        ChopClassifier(client=fake_anthropic("It is fairly calm")).classify(frame)
        raise AssertionError("Expected ClassifierMalformed")
    except ClassifierMalformed:
        pass

    try:
        ChopClassifier(client=fake_anthropic(error=anthropic.AnthropicError("overloaded"))).classify(frame)
        raise AssertionError("Expected ClassifierUnavailable")
    except ClassifierUnavailable:
        pass

    unconfigured = ChopClassifier()
    unconfigured.api_key = None
    try:
        unconfigured.classify(frame)
        raise AssertionError("Expected ClassifierUnavailable")
    except ClassifierUnavailable:
        pass


def run_all_tests():
    """Run all tests and report results."""
    print("\n" + "#"*60)
    print("# SOURCE CLIENT TEST SUITE")
    print("#"*60)

    tests = [
        ("Snorkel Store Parse", test_snorkel_store_parse),
        ("Snorkel Store Errors", test_snorkel_store_empty_page_is_error),
        ("Snorkel Store Score Range", test_snorkel_store_ignores_out_of_range_score),
        ("Maui Now Parse", test_maui_now_parse),
        ("Buoy Reading", test_buoy_latest_reading_and_cache),
        ("Buoy Errors", test_buoy_errors),
        ("Buoy Stale Cache", test_buoy_stale_cache_fallback),
        ("Tide Report", test_tide_report),
        ("Tide API Error", test_tide_api_error),
        ("Tide Stale Cache", test_tide_stale_cache_fallback),
        ("Media Sniffing", test_sniff_media_type),
        ("Webcam Fetch", test_webcam_fetch),
        ("Adapter Statuses", test_adapter_failure_statuses),
        ("Classifier Prompt", test_prompt_lists_independent_locations),
        ("Classifier Response", test_parse_response_validation),
        ("Classifier Call", test_conditions_classifier_call),
        ("Classifier Errors", test_conditions_classifier_errors),
        ("Strict Labels", test_parse_label_is_strict),
        ("Chop Classifier", test_chop_classifier_call),
    ]

    passed = 0
    failed = 0

    for name, test_func in tests:
        try:
            test_func()
            passed += 1
            print(f"  ✓ {name}")
        except AssertionError as e:
            failed += 1
            print(f"\n  ✗ FAILED: {name}")
            print(f"    Error: {e}")
        except Exception as e:
            failed += 1
            print(f"\n  ✗ ERROR: {name}")
            print(f"    Exception: {e}")

    print("\n" + "="*60)
    print(f"  Passed: {passed}/{len(tests)}")
    print("="*60)

    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
