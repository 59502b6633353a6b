"""Stateless attack signature detection."""
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence

from shieldgate.app.services.shield import patterns
from shieldgate.app.services.shield.models import DetectionResult, ShieldOptions


def merge_request_fields(*sources: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Flatten request field sources into one view.

    Sources are applied in order, so later ones win on key collisions
    (query, then body, then path params). ``None`` and non-mapping sources,
    such as a JSON array body, contribute nothing.
    """
    merged: Dict[str, Any] = {}
    for source in sources:
        if isinstance(source, Mapping):
            merged.update(source)
    return merged


def is_attack_detected(fields: Mapping[str, Any], group: Sequence[Pattern[str]]) -> bool:
    """True if any string field value matches any pattern of ``group``.

    Non-string values are skipped rather than coerced.
    """
    return any(
        isinstance(value, str) and any(p.search(value) for p in group)
        for value in fields.values()
    )


class AttackDetector:
    """Classifies request fields against named pattern groups.

    Holds no mutable state; ``classify`` returns the same result for the same
    input and is safe to call concurrently.
    """

    def __init__(self, groups: Mapping[str, Sequence[Pattern[str]]]):
        self._groups = {name: list(group) for name, group in groups.items()}

    @classmethod
    def from_options(cls, options: ShieldOptions) -> "AttackDetector":
        enabled = {
            patterns.XSS: options.xss,
            patterns.SQL_INJECTION: options.sql_injection,
            patterns.LFI: options.lfi,
            patterns.RFI: options.rfi,
            patterns.SHELL_INJECTION: options.shell_injection,
        }
        groups: Dict[str, List[Pattern[str]]] = {
            name: group
            for name, group in patterns.DEFAULT_PATTERN_GROUPS.items()
            if enabled.get(name, True)
        }
        custom = options.compiled_custom_patterns()
        if custom:
            groups[patterns.CUSTOM] = custom
        return cls(groups)

    @property
    def group_names(self) -> List[str]:
        return list(self._groups)

    def classify(self, fields: Mapping[str, Any]) -> DetectionResult:
        """Return the names of every group that matched, in group order."""
        return DetectionResult(
            attack_types=[
                name for name, group in self._groups.items()
                if is_attack_detected(fields, group)
            ]
        )


def detect_malicious_request(
    query: Optional[Mapping[str, Any]],
    body: Optional[Mapping[str, Any]],
    path_params: Optional[Mapping[str, Any]],
    options: ShieldOptions,
) -> DetectionResult:
    """Convenience wrapper: merge request sources and classify them."""
    fields = merge_request_fields(query, body, path_params)
    return AttackDetector.from_options(options).classify(fields)
