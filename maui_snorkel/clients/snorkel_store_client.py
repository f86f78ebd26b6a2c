"""Snorkel Store daily conditions report scraper.

The shop publishes a short human-written report each morning with a 0-10
score per region and a few paragraphs of narrative. The zone scores are the
authoritative fallback for every location in the zone, and the narrative is
what the text classifier interprets into per-location suggestions.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import requests
from bs4 import BeautifulSoup


USER_AGENT = "MauiSnorkelReport/1.0 (conditions-pipeline)"

MAX_NARRATIVE_CHARS = 2000
MAX_ZONE_NARRATIVE_CHARS = 300
MAX_ALERTS = 3

CONTENT_SELECTORS = [".entry-content", ".post-content", "article", ".content", "main"]

# First number after a region name, e.g. "Northwest: 1.5" or "Ka'anapali - 6"
ZONE_SCORE_PATTERNS = {
    "northwest": re.compile(r"(?:northwest|north\s*west)[:\s\-–]+(\d+(?:\.\d+)?)", re.IGNORECASE),
    "kaanapali": re.compile(r"ka[ʻ'’`]?anapali[:\s\-–]+(\d+(?:\.\d+)?)", re.IGNORECASE),
    "southshore": re.compile(
        r"(?:south\s*shore|south|kihei|wailea|makena)[:\s\-–]+(\d+(?:\.\d+)?)", re.IGNORECASE
    ),
}

ZONE_KEYWORDS = {
    "northwest": ["northwest", "north west"],
    "kaanapali": ["kaanapali", "ka'anapali", "kaʻanapali", "ka’anapali"],
    "southshore": ["south shore", "kihei", "wailea", "makena"],
}

CONDITION_KEYWORDS = [
    "snorkel", "conditions", "waves", "surf", "visibility", "calm", "rough",
    "current", "wind", "swell", "entry", "exit", "dangerous", "safe",
    "recommended", "avoid", "best", "better", "worse", "protected",
]

SPOT_KEYWORDS = [
    "honolua", "kapalua", "napili", "black rock", "blackrock", "kahekili",
    "airport beach", "mala", "olowalu", "coral gardens", "kamaole", "kam 1", "kam 2",
    "kam 3", "ulua", "wailea point", "chang", "five graves", "five caves",
    "makena landing", "maluaka", "turtle town", "ahihi", "kinau",
]

ALERT_PHRASES = ["high surf", "small craft", "wind advisory", "in effect"]

DATE_PATTERN = re.compile(
    r"(?:january|february|march|april|may|june|july|august|september|october|november|december)"
    r"\s+\d{1,2},?\s+\d{4}",
    re.IGNORECASE,
)


class SnorkelStoreError(Exception):
    """Exception raised for Snorkel Store scraper errors."""

    pass


@dataclass
class ZoneReport:
    """Scraped score and narrative for one zone."""
    score: Optional[float] = None
    narrative: Optional[str] = None


@dataclass
class NarrativeReport:
    """Parsed daily conditions report."""
    zones: dict[str, ZoneReport] = field(default_factory=dict)
    alerts: list[dict] = field(default_factory=list)
    full_narrative: str = ""
    report_date: Optional[str] = None
    source: str = ""

    def zone_score(self, zone_id: str) -> Optional[float]:
        zone = self.zones.get(zone_id)
        return zone.score if zone else None

    def zone_narrative(self, zone_id: str) -> Optional[str]:
        zone = self.zones.get(zone_id)
        return zone.narrative if zone else None


def extract_narrative(text: str) -> str:
    """Collapse whitespace and trim to roughly one short paragraph."""
    narrative = re.sub(r"\s+", " ", text).strip()

    if len(narrative) > MAX_ZONE_NARRATIVE_CHARS:
        truncated = narrative[:MAX_ZONE_NARRATIVE_CHARS]
        last_period = truncated.rfind(".")
        if last_period > 150:
            narrative = truncated[:last_period + 1]
        else:
            narrative = truncated + "..."

    return narrative


class SnorkelStoreClient:
    """Scraper for the daily Maui snorkeling conditions report."""

    def __init__(
        self,
        url: str = "https://thesnorkelstore.com/maui-snorkeling-conditions-reports/",
        timeout: float = 15,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def get_report(self) -> NarrativeReport:
        """Fetch and parse today's report.

        Raises:
            SnorkelStoreError: If the page cannot be fetched or holds no conditions.
        """
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise SnorkelStoreError(f"Failed to fetch conditions report: {e}") from e

        report = self.parse_report(response.text)
        if not report.zones and not report.full_narrative:
            raise SnorkelStoreError("Conditions report contained no zone scores or narrative")
        return report

    def parse_report(self, html: str) -> NarrativeReport:
        """Parse the report page HTML."""
        soup = BeautifulSoup(html, "html.parser")

        content = None
        for selector in CONTENT_SELECTORS:
            content = soup.select_one(selector)
            if content is not None:
                break
        if content is None:
            content = soup.body or soup

        raw_content = content.get_text(" ")
        report = NarrativeReport(source=self.url)

        for zone_id, pattern in ZONE_SCORE_PATTERNS.items():
            for match in pattern.finditer(raw_content):
                score = float(match.group(1))
                if 0 <= score <= 10:
                    report.zones.setdefault(zone_id, ZoneReport()).score = score
                    break

        narrative_paragraphs = []

        for p in content.find_all("p"):
            text = p.get_text(" ", strip=True)
            text_lower = text.lower()

            if len(text) < 20 or len(text) > 1000:
                continue

            for zone_id, keywords in ZONE_KEYWORDS.items():
                if any(kw in text_lower for kw in keywords):
                    zone = report.zones.setdefault(zone_id, ZoneReport())
                    if zone.narrative is None:
                        zone.narrative = extract_narrative(text)

            mentions_zone = any(kw in text_lower for kws in ZONE_KEYWORDS.values() for kw in kws)
            if (
                mentions_zone
                or any(kw in text_lower for kw in CONDITION_KEYWORDS)
                or any(kw in text_lower for kw in SPOT_KEYWORDS)
            ):
                narrative_paragraphs.append(text)

            # Only short, official-sounding lines count as alerts
            if len(text) < 100 and ("warning" in text_lower or "advisory" in text_lower):
                if any(phrase in text_lower for phrase in ALERT_PHRASES):
                    report.alerts.append({
                        "type": "warning" if "warning" in text_lower else "advisory",
                        "message": text,
                    })

        report.alerts = report.alerts[:MAX_ALERTS]

        full_narrative = "\n\n".join(narrative_paragraphs)
        if len(full_narrative) > MAX_NARRATIVE_CHARS:
            full_narrative = full_narrative[:MAX_NARRATIVE_CHARS] + "..."
        report.full_narrative = full_narrative

        report.report_date = self._extract_report_date(raw_content)
        return report

    def _extract_report_date(self, raw_content: str) -> Optional[str]:
        match = DATE_PATTERN.search(raw_content)
        if not match:
            return None
        cleaned = re.sub(r"\s+", " ", match.group(0).replace(",", ""))
        try:
            return datetime.strptime(cleaned.title(), "%B %d %Y").date().isoformat()
        except ValueError:
            return None
