"""Text classifier that turns the daily narrative into per-location suggestions.

Uses the OpenAI chat completions API in JSON mode. The model sees the zone
scores, the scraped narrative, the buoy and tide context, and a short
description of every independently scored location, and returns

    {"locations": {"<id>": {"score": <0-10>, "text": "<one or two sentences>"}}}

Requires environment variable:
- OPENAI_API_KEY
"""

import json
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Optional

import openai

from maui_snorkel.clients.classifier_errors import ClassifierMalformed, ClassifierUnavailable
from maui_snorkel.core.spots import SpotDefinition

logger = logging.getLogger(__name__)

DEFAULT_TEXT_MODEL = "gpt-4o-mini"

SYSTEM_PROMPT = """You are a concise snorkeling conditions reporter for Maui.

For every location you are given, suggest a 0-10 snorkel score (10 is best) and
a 1-2 sentence condition report that is practical and safety-focused.

Rules:
- Stay close to the zone score unless the report clearly singles a spot out
- Be direct and actionable, in plain language tourists can understand
- Include water temperature and relevant tide information naturally
- Mention specific hazards when present; if conditions are dangerous, say so clearly
- Keep each report under 50 words

Respond with a JSON object of the form
{"locations": {"<location id>": {"score": <number>, "text": "<report>"}}}
using exactly the location ids provided."""


@dataclass
class ClassifierRequest:
    """Inputs to one text-classifier call."""
    zone_scores: dict[str, float]
    narrative_text: str
    environmental_context: dict = field(default_factory=dict)
    locations: list[SpotDefinition] = field(default_factory=list)
    zone_names: dict[str, str] = field(default_factory=dict)

    @property
    def location_ids(self) -> set[str]:
        return {spot.id for spot in self.locations}


@dataclass
class LocationSuggestion:
    """Classifier output for one location. Either field may be missing."""
    score: Optional[float] = None
    text: Optional[str] = None


def build_prompt(request: ClassifierRequest) -> str:
    """Render the user message for a classifier request."""
    lines = ["Zone scores (authoritative, 0-10):"]
    for zone_id, score in request.zone_scores.items():
        name = request.zone_names.get(zone_id, zone_id)
        lines.append(f"- {name} [{zone_id}]: {score}/10")

    lines.append("")
    lines.append("Today's conditions report:")
    lines.append(f'"""{request.narrative_text or "No report available."}"""')

    context = request.environmental_context
    lines.append("")
    lines.append("Current conditions:")
    lines.append(f"- Waves: {context.get('waveHeightFt') or 'unavailable'}")
    lines.append(f"- Swell direction: {context.get('waveDirection') or 'unavailable'}")
    lines.append(f"- Water temp: {context.get('waterTemp') or 'unavailable'}")
    tide = context.get("currentTide") or {}
    if tide:
        direction = "Rising" if tide.get("rising") else "Falling"
        lines.append(f"- Tide: {direction} ({tide.get('height', 'N/A')})")
    next_high = context.get("nextHighTide") or {}
    if next_high:
        lines.append(f"- Next high tide: {next_high.get('time', 'N/A')} ({next_high.get('height', 'N/A')})")
    if context.get("windConditions"):
        lines.append(f"- Wind: {context['windConditions']}")

    lines.append("")
    lines.append("Locations:")
    for spot in request.locations:
        lines.append(f"- id={spot.id} | {spot.name} | zone={spot.zone_id}")
        if spot.exposure:
            lines.append(f"  Exposure: {spot.exposure}")
        if spot.characteristics:
            lines.append(f"  Characteristics: {spot.characteristics}")

    return "\n".join(lines)


def parse_response(content: str, valid_ids: set[str]) -> dict[str, LocationSuggestion]:
    """Validate a classifier response against the known location ids.

    Unknown ids are ignored and individually unusable entries are dropped.

    Raises:
        ClassifierMalformed: If the content is not JSON with a "locations" object.
    """
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        raise ClassifierMalformed(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("locations"), dict):
        raise ClassifierMalformed("Response has no 'locations' object")

    suggestions = {}
    for location_id, entry in data["locations"].items():
        if location_id not in valid_ids:
            logger.debug(f"Ignoring classifier entry for unknown location {location_id!r}")
            continue
        if not isinstance(entry, dict):
            logger.warning(f"Dropping non-object classifier entry for {location_id}")
            continue

        score = entry.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
            score = None

        text = entry.get("text")
        if not isinstance(text, str) or not text.strip():
            text = None

        if score is None and text is None:
            logger.warning(f"Dropping empty classifier entry for {location_id}")
            continue

        suggestions[location_id] = LocationSuggestion(
            score=float(score) if score is not None else None,
            text=text.strip() if text else None,
        )

    return suggestions


class ConditionsClassifier:
    """Interprets the narrative report into per-location scores and text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 60,
        client=None,
    ):
        """Initialize the classifier.

        Args:
            api_key: OpenAI API key. Defaults to OPENAI_API_KEY env var.
            model: Chat model. Defaults to MAUI_SNORKEL_TEXT_MODEL or gpt-4o-mini.
            timeout: Request timeout in seconds.
            client: Pre-built OpenAI client (injected by tests).
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or os.environ.get("MAUI_SNORKEL_TEXT_MODEL", DEFAULT_TEXT_MODEL)
        self.timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self):
        if self._client is None:
            if not self.is_configured:
                raise ClassifierUnavailable(
                    "Text classifier not configured. Set OPENAI_API_KEY environment variable."
                )
            self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def classify(self, request: ClassifierRequest) -> dict[str, LocationSuggestion]:
        """Ask the model for per-location suggestions.

        Raises:
            ClassifierUnavailable: On missing configuration, network failure or timeout.
            ClassifierMalformed: If the response fails validation.
        """
        client = self._get_client()

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(request)},
                ],
                response_format={"type": "json_object"},
                temperature=0.4,
                max_tokens=3000,
            )
        except openai.OpenAIError as e:
            raise ClassifierUnavailable(f"Text classifier call failed: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ClassifierMalformed(f"Unexpected completion shape: {e}") from e

        suggestions = parse_response(content, request.location_ids)
        logger.info(f"Classifier suggested {len(suggestions)}/{len(request.locations)} locations")
        return suggestions
