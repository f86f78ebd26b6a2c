"""Image classifier that labels webcam frames with a chop severity.

Uses the Anthropic messages API with a base64 image block.

Requires environment variable:
- ANTHROPIC_API_KEY
"""

import base64
import logging
import os
from typing import Optional

import anthropic

from maui_snorkel.clients.classifier_errors import ClassifierMalformed, ClassifierUnavailable
from maui_snorkel.clients.webcam_client import WebcamFrame
from maui_snorkel.core.model import Severity

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "claude-3-haiku-20240307"

WHITECAP_PROMPT = """You are analyzing a beach webcam image for snorkeling conditions.

Look at the ocean water surface and determine if there are whitecaps or wind chop visible.

Respond with ONLY one of these exact words:
- CALM (smooth water, no whitecaps, good for snorkeling)
- LIGHT (slight texture/ripples, minor wind effect)
- MODERATE (visible whitecaps, choppy conditions)
- HEAVY (significant whitecaps, rough conditions)

Just the single word, nothing else."""


def parse_label(text: Optional[str]) -> Severity:
    """Parse the model's answer into a severity.

    Raises:
        ClassifierMalformed: For anything but one of the four labels.
    """
    try:
        return Severity.parse(text)
    except ValueError as e:
        raise ClassifierMalformed(f"Unexpected severity label: {text!r}") from e


class ChopClassifier:
    """Classifies a webcam frame as CALM, LIGHT, MODERATE or HEAVY."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 60,
        client=None,
    ):
        """Initialize the classifier.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            model: Vision model. Defaults to MAUI_SNORKEL_IMAGE_MODEL or claude-3-haiku.
            timeout: Request timeout in seconds.
            client: Pre-built Anthropic client (injected by tests).
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or os.environ.get("MAUI_SNORKEL_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)
        self.timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self):
        if self._client is None:
            if not self.is_configured:
                raise ClassifierUnavailable(
                    "Image classifier not configured. Set ANTHROPIC_API_KEY environment variable."
                )
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._client

    def classify(self, frame: WebcamFrame) -> Severity:
        """Label one frame.

        Raises:
            ClassifierUnavailable: On missing configuration, network failure or timeout.
            ClassifierMalformed: If the answer is not exactly one severity label.
        """
        client = self._get_client()

        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=150,
                messages=[{
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": frame.media_type,
                                "data": base64.b64encode(frame.data).decode("ascii"),
                            },
                        },
                        {"type": "text", "text": WHITECAP_PROMPT},
                    ],
                }],
            )
        except anthropic.AnthropicError as e:
            raise ClassifierUnavailable(f"Image classifier call failed for {frame.camera_id}: {e}") from e

        try:
            text = response.content[0].text
        except (AttributeError, IndexError) as e:
            raise ClassifierMalformed(f"Unexpected message shape for {frame.camera_id}: {e}") from e

        return parse_label(text)
