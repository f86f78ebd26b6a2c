"""Clients for the external data sources, webcams and classifiers."""

from maui_snorkel.clients.buoy_client import BuoyClient, BuoyError, BuoyReading
from maui_snorkel.clients.classifier_errors import (
    ClassifierError,
    ClassifierMalformed,
    ClassifierUnavailable,
)
from maui_snorkel.clients.image_classifier import ChopClassifier
from maui_snorkel.clients.maui_now_client import AdvisoryReport, MauiNowClient, MauiNowError
from maui_snorkel.clients.noaa_tides_client import NOAATidesClient, NOAATidesError, TideReport
from maui_snorkel.clients.snorkel_store_client import (
    NarrativeReport,
    SnorkelStoreClient,
    SnorkelStoreError,
)
from maui_snorkel.clients.text_classifier import (
    ClassifierRequest,
    ConditionsClassifier,
    LocationSuggestion,
)
from maui_snorkel.clients.webcam_client import WebcamClient, WebcamError, WebcamFrame

__all__ = [
    "AdvisoryReport",
    "BuoyClient",
    "BuoyError",
    "BuoyReading",
    "ChopClassifier",
    "ClassifierError",
    "ClassifierMalformed",
    "ClassifierRequest",
    "ClassifierUnavailable",
    "ConditionsClassifier",
    "LocationSuggestion",
    "MauiNowClient",
    "MauiNowError",
    "NarrativeReport",
    "NOAATidesClient",
    "NOAATidesError",
    "SnorkelStoreClient",
    "SnorkelStoreError",
    "TideReport",
    "WebcamClient",
    "WebcamError",
    "WebcamFrame",
]
