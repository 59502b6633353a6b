"""Shield data models."""
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Pattern, Sequence

DEFAULT_MESSAGE = "Access denied due to suspicious activity."
DEFAULT_SUSPICION_THRESHOLD = 5
DEFAULT_BLOCK_DURATION_MS = 60_000
DEFAULT_SCORE_TTL_MS = 60_000


@dataclass
class SuspicionRecord:
    """Per-client suspicion state.

    Attributes:
        score: Suspicious hits in the current window, never negative.
        expiry: Epoch milliseconds after which the record is stale.
        is_blocked: Set only when ``score`` reached the threshold.
    """
    score: int
    expiry: int
    is_blocked: bool = False

    def is_expired(self, now: int) -> bool:
        return now >= self.expiry

    def to_dict(self) -> dict:
        return {"score": self.score, "expiry": self.expiry, "is_blocked": self.is_blocked}


@dataclass
class ShieldOptions:
    """Shield configuration; every field has a documented default."""
    message: str = DEFAULT_MESSAGE
    suspicion_threshold: int = DEFAULT_SUSPICION_THRESHOLD
    block_duration_ms: int = DEFAULT_BLOCK_DURATION_MS
    xss: bool = True
    sql_injection: bool = True
    lfi: bool = True
    rfi: bool = True
    shell_injection: bool = True
    detection_patterns: Sequence[Pattern[str] | str] = field(default_factory=list)

    def compiled_custom_patterns(self) -> list[Pattern[str]]:
        return [
            p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
            for p in self.detection_patterns
        ]


@dataclass
class DetectionResult:
    """Detector output for one request."""
    attack_types: list[str] = field(default_factory=list)

    @property
    def is_suspicious(self) -> bool:
        return bool(self.attack_types)


@dataclass
class AdmissionDecision:
    """Gate verdict for one request."""
    allowed: bool
    message: Optional[str] = None
    detected_attacks: list[str] = field(default_factory=list)
    score: Optional[int] = None

    @classmethod
    def allow(cls, score: Optional[int] = None) -> "AdmissionDecision":
        return cls(allowed=True, score=score)

    @classmethod
    def deny(
        cls,
        message: str,
        detected_attacks: Optional[list[str]] = None,
        score: Optional[int] = None,
    ) -> "AdmissionDecision":
        return cls(
            allowed=False,
            message=message,
            detected_attacks=list(detected_attacks or []),
            score=score,
        )

    def to_response(self) -> dict[str, Any]:
        """Denial body: the message, plus categories when the detector fired."""
        body: dict[str, Any] = {"error": self.message}
        if self.detected_attacks:
            body["detected_attacks"] = self.detected_attacks
        return body
