"""Source adapter boundary.

Every upstream fetch used by a fusion run goes through a SourceAdapter, which
turns the client's exception into a SourceFailure marker so that a single
unreachable source never aborts the run.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from maui_snorkel.clients.buoy_client import BuoyClient, BuoyError
from maui_snorkel.clients.maui_now_client import MauiNowClient, MauiNowError
from maui_snorkel.clients.noaa_tides_client import NOAATidesClient, NOAATidesError
from maui_snorkel.clients.snorkel_store_client import SnorkelStoreClient, SnorkelStoreError
from maui_snorkel.core.model import SourceStatus


logger = logging.getLogger(__name__)

BUOY_SOURCE = "noaaBuoy"
TIDES_SOURCE = "noaaTides"
NARRATIVE_SOURCE = "snorkelStore"
ADVISORY_SOURCE = "mauiNow"


@dataclass
class SourceFailure:
    """Marker returned in place of a result when a source could not be read."""
    source: str
    reason: str
    status: SourceStatus = SourceStatus.UNAVAILABLE


@dataclass
class SourceResult:
    """Outcome of one adapter fetch: a value or a failure, never both."""
    source: str
    value: Any = None
    failure: Optional[SourceFailure] = None
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def status(self) -> SourceStatus:
        if self.failure is not None:
            return self.failure.status
        # Clients mark values served from an expired cache entry
        return SourceStatus.STALE if getattr(self.value, "stale", False) else SourceStatus.FRESH

    @classmethod
    def failed(cls, source: str, reason: str, status: SourceStatus) -> "SourceResult":
        return cls(source=source, failure=SourceFailure(source, reason, status))


class SourceAdapter:
    """Wraps one client call so that it returns a SourceResult instead of raising."""

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Any],
        errors: tuple = (),
        failure_status: SourceStatus = SourceStatus.UNAVAILABLE,
    ):
        """Initialize the adapter.

        Args:
            name: Source name as reported in dataQuality.
            fetch: Zero-argument callable returning the parsed result.
            errors: The client's own exception types.
            failure_status: Status recorded when the fetch fails. A source whose
                previous values are still used on failure reports "stale".
        """
        self.name = name
        self._fetch = fetch
        self.errors = tuple(errors) + (requests.RequestException,)
        self.failure_status = failure_status

    def failure(self, reason: str) -> SourceResult:
        """Failure marker for this source (also used by the caller on timeout)."""
        return SourceResult.failed(self.name, reason, self.failure_status)

    def fetch(self) -> SourceResult:
        start = time.monotonic()
        try:
            value = self._fetch()
        except self.errors as e:
            logger.warning(f"{self.name} unavailable: {e}")
            result = self.failure(str(e))
        except Exception as e:
            # Parser bugs on unexpected markup must not take down the run
            logger.exception(f"{self.name} failed unexpectedly")
            result = self.failure(f"unexpected error: {e}")
        else:
            result = SourceResult(source=self.name, value=value)
            if result.status is SourceStatus.STALE:
                logger.warning(f"{self.name} unreachable, using cached data")

        result.elapsed_s = time.monotonic() - start
        return result


def buoy_adapter(client: BuoyClient, station_id: str) -> SourceAdapter:
    return SourceAdapter(
        BUOY_SOURCE,
        lambda: client.get_latest_reading(station_id),
        errors=(BuoyError,),
    )


def tides_adapter(client: NOAATidesClient, station_id: str) -> SourceAdapter:
    return SourceAdapter(
        TIDES_SOURCE,
        lambda: client.get_tide_report(station_id),
        errors=(NOAATidesError,),
    )


def narrative_adapter(client: SnorkelStoreClient) -> SourceAdapter:
    # Zone scores fall back to the previous/static values, so a miss is stale
    return SourceAdapter(
        NARRATIVE_SOURCE,
        client.get_report,
        errors=(SnorkelStoreError,),
        failure_status=SourceStatus.STALE,
    )


def advisory_adapter(client: MauiNowClient) -> SourceAdapter:
    return SourceAdapter(
        ADVISORY_SOURCE,
        client.get_report,
        errors=(MauiNowError,),
    )
