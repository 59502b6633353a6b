"""Suspicion scoring ("shield") for attack-signature based blocking.

This package provides the stateless detector, the suspicion stores
(in-memory, Redis, SQL), the expiry sweeper and the admission gate.
"""

from .detector import (
    AttackDetector,
    detect_malicious_request,
    is_attack_detected,
    merge_request_fields,
)
from .models import AdmissionDecision, DetectionResult, ShieldOptions, SuspicionRecord
from .redis_store import RedisSuspicionStore
from .service import Shield
from .sql_store import SqlSuspicionStore
from .stores import InMemorySuspicionStore, SuspicionStore, advance_record
from .sweeper import SuspicionSweeper

__all__ = [
    "AdmissionDecision",
    "AttackDetector",
    "DetectionResult",
    "InMemorySuspicionStore",
    "RedisSuspicionStore",
    "Shield",
    "ShieldOptions",
    "SqlSuspicionStore",
    "SuspicionRecord",
    "SuspicionStore",
    "SuspicionSweeper",
    "advance_record",
    "detect_malicious_request",
    "is_attack_detected",
    "merge_request_fields",
]
