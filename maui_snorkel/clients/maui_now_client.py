"""Maui Now weather page scraper for regional advisories.

The page is free text, so parsing is keyword based: active surf and small
craft advisories, the dominant swell direction, and a rough description of
the wind.
"""

from dataclasses import dataclass, field
from typing import Optional

import requests
from bs4 import BeautifulSoup


USER_AGENT = "MauiSnorkelReport/1.0 (conditions-pipeline)"

NORTH_SWELL_PHRASES = ["north swell", "northerly swell", "northwest swell", "north northwest swell"]
SOUTH_SWELL_PHRASES = ["south swell", "southerly swell"]
EAST_SWELL_PHRASES = ["east swell", "easterly swell"]
CALM_PHRASES = ["flat", "calm", "light swell"]
ROUGH_PHRASES = ["advisory levels", "elevated", "rough", "hazardous"]


class MauiNowError(Exception):
    """Exception raised for Maui Now scraper errors."""

    pass


@dataclass
class AdvisoryReport:
    """Regional advisories and surf/wind phrasing."""
    advisories: list[dict] = field(default_factory=list)
    surf: dict[str, str] = field(default_factory=lambda: {
        "north": "unknown",
        "south": "unknown",
        "west": "unknown",
        "east": "unknown",
        "overall": "moderate",
    })
    wind_conditions: str = "light"
    swell_direction: Optional[str] = None
    source: str = ""


def _contains_any(text: str, phrases: list[str]) -> bool:
    return any(phrase in text for phrase in phrases)


class MauiNowClient:
    """Scraper for the Maui Now weather page."""

    def __init__(
        self,
        url: str = "https://mauinow.com/weather/",
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def get_report(self) -> AdvisoryReport:
        """Fetch and parse the weather page.

        Raises:
            MauiNowError: If the page cannot be fetched.
        """
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise MauiNowError(f"Failed to fetch weather page: {e}") from e

        return self.parse_page(response.text)

    def parse_page(self, html: str) -> AdvisoryReport:
        soup = BeautifulSoup(html, "html.parser")
        body = soup.body or soup
        text = " ".join(body.get_text(" ").lower().split())

        report = AdvisoryReport(source=self.url)

        # A cancellation anywhere on the page suppresses all advisories
        cancelled = "cancelled" in text
        if not cancelled:
            if "high surf warning" in text:
                report.advisories.append({"type": "warning", "message": "High Surf Warning in effect"})
            if "high surf advisory" in text:
                report.advisories.append({"type": "advisory", "message": "High Surf Advisory in effect"})
            if "small craft advisory" in text:
                report.advisories.append({
                    "type": "advisory",
                    "message": "Small Craft Advisory - choppy conditions",
                })

        # Later matches win, the same way the page lists swells north to east
        if _contains_any(text, NORTH_SWELL_PHRASES):
            report.swell_direction = "north"
            report.surf["north"] = "elevated"
            report.surf["west"] = "elevated"
        if _contains_any(text, SOUTH_SWELL_PHRASES):
            report.swell_direction = "south"
            report.surf["south"] = "elevated"
        if _contains_any(text, EAST_SWELL_PHRASES):
            report.swell_direction = "east"
            report.surf["east"] = "elevated"

        if _contains_any(text, CALM_PHRASES):
            report.surf["overall"] = "calm"
        if _contains_any(text, ROUGH_PHRASES):
            report.surf["overall"] = "rough"

        if "light wind" in text or "winds around 10" in text:
            report.wind_conditions = "light"
        elif _contains_any(text, ["breezy", "winds 15", "winds 20"]):
            report.wind_conditions = "breezy"
        elif _contains_any(text, ["windy", "strong wind", "winds 25"]):
            report.wind_conditions = "windy"

        if "trade wind" in text or "trades" in text:
            if "light trade" in text or "weak trade" in text:
                report.wind_conditions = "light trades"
            elif "moderate trade" in text:
                report.wind_conditions = "moderate trades"
            elif "strong trade" in text or "breezy trade" in text:
                report.wind_conditions = "strong trades"

        return report
