"""Conditions data model, static baseline and the fusion/wind engines.

The engines live in maui_snorkel.core.fusion and maui_snorkel.core.wind and
are imported from there, since they depend on the client modules.
"""

from maui_snorkel.core.baseline import build_baseline_snapshot
from maui_snorkel.core.model import (
    ConditionsSnapshot,
    LocationRecord,
    ManualOverride,
    ScoreSource,
    Severity,
    SnapshotValidationError,
    SourceStatus,
    WindCheck,
    ZoneScore,
    ZoneWindAdjustment,
)
from maui_snorkel.core.spots import (
    CameraDefinition,
    SpotConfigError,
    SpotDatabase,
    SpotDefinition,
    ZoneDefinition,
    get_spot_database,
)

__all__ = [
    # Model
    "ConditionsSnapshot",
    "LocationRecord",
    "ManualOverride",
    "ScoreSource",
    "Severity",
    "SnapshotValidationError",
    "SourceStatus",
    "WindCheck",
    "ZoneScore",
    "ZoneWindAdjustment",
    # Spots
    "CameraDefinition",
    "SpotConfigError",
    "SpotDatabase",
    "SpotDefinition",
    "ZoneDefinition",
    "get_spot_database",
    # Baseline
    "build_baseline_snapshot",
]
