"""
============================================================================
DEPWATCH - MONITORING PACKAGE
============================================================================
Runtime polling infrastructure:
    • MonitoringEngine    — tick loop that polls every registered service
    • HTTPChecker         — safe GET of a health endpoint
    • PollScheduler       — per-target due times and failure counts
    • FetchDeduplicator   — one in-flight request per endpoint URL
    • ResponseNormalizer  — default format and schema-mapped payloads
    • TransitionRecorder  — upserts dependency state, detects flips
    • AlertManager        — queue between transitions and alert handlers

File layout
-----------
monitoring/
├── __init__.py          ← this file
├── models.py            ← PollTarget, DependencyStatus, SchemaMapping …
├── scheduler.py         ← PollScheduler
├── dedup.py             ← FetchDeduplicator
├── limiter.py           ← HostRateLimiter
├── parsers.py           ← response normalization
├── history.py           ← error / poll history deduplication
├── recorder.py          ← TransitionRecorder
├── alerts.py            ← AlertManager
└── monitor.py           ← MonitoringEngine + HTTPChecker

Nothing in this package imports ``database``; repositories are passed in.

============================================================================
"""

from monitoring.models import (
    BooleanComparison,
    DependencyStatus,
    PollResult,
    PollTarget,
    SchemaFields,
    SchemaMapping,
    StatusChangeEvent,
)
from monitoring.scheduler import PollScheduler, PollState
from monitoring.dedup import FetchDeduplicator
from monitoring.limiter import HostRateLimiter
from monitoring.parsers import DefaultFormatParser, ResponseNormalizer, SchemaMappedParser
from monitoring.history import ErrorHistoryRecorder, PollHistoryRecorder
from monitoring.recorder import TransitionRecorder
from monitoring.alerts import AlertManager
from monitoring.monitor import HTTPChecker, MonitoringEngine

__all__ = [
    # Models
    "BooleanComparison",
    "DependencyStatus",
    "PollResult",
    "PollTarget",
    "SchemaFields",
    "SchemaMapping",
    "StatusChangeEvent",

    # Scheduling
    "PollScheduler",
    "PollState",
    "FetchDeduplicator",
    "HostRateLimiter",

    # Normalization
    "DefaultFormatParser",
    "ResponseNormalizer",
    "SchemaMappedParser",

    # Recording
    "ErrorHistoryRecorder",
    "PollHistoryRecorder",
    "TransitionRecorder",

    # Engine
    "AlertManager",
    "HTTPChecker",
    "MonitoringEngine",
]
