"""Tests for attack signature detection."""

import re

import pytest

from shieldgate.app.services.shield import (
    AttackDetector,
    ShieldOptions,
    detect_malicious_request,
    is_attack_detected,
    merge_request_fields,
)
from shieldgate.app.services.shield import patterns


@pytest.fixture
def detector():
    return AttackDetector.from_options(ShieldOptions())


class TestMergeRequestFields:
    """Tests for building the field view of a request."""

    def test_later_sources_win(self):
        merged = merge_request_fields({"q": "query"}, {"q": "body"}, {"q": "path"})
        assert merged == {"q": "path"}

    def test_missing_and_non_mapping_sources_ignored(self):
        merged = merge_request_fields({"a": "1"}, None, ["not", "a", "mapping"])
        assert merged == {"a": "1"}


class TestIsAttackDetected:
    """Tests for single-group matching."""

    def test_matches_any_string_value(self):
        assert is_attack_detected({"a": "fine", "b": "<script>"}, patterns.XSS_PATTERNS)

    def test_non_string_values_skipped(self):
        assert not is_attack_detected({"n": 1, "l": ["<script>"]}, patterns.XSS_PATTERNS)

    def test_empty_fields(self):
        assert not is_attack_detected({}, patterns.XSS_PATTERNS)


class TestAttackDetector:
    """Tests for category classification."""

    @pytest.mark.parametrize(
        "payload, expected",
        [
            ("<script>alert(1)</script>", [patterns.XSS]),
            ("' OR 1=1 --", [patterns.SQL_INJECTION]),
            ("1 UNION SELECT password FROM users", [patterns.SQL_INJECTION]),
            ("../../etc/passwd", [patterns.LFI]),
            ("http://evil.example/shell.php", [patterns.RFI]),
            ("$(whoami)", [patterns.SHELL_INJECTION]),
        ],
    )
    def test_single_category(self, detector, payload, expected):
        assert detector.classify({"input": payload}).attack_types == expected

    @pytest.mark.parametrize("payload", ["hello world", "Tom's bakery", "price=10", "a-b"])
    def test_benign_values(self, detector, payload):
        result = detector.classify({"input": payload})
        assert result.is_suspicious is False
        assert result.attack_types == []

    def test_categories_reported_in_group_order(self, detector):
        result = detector.classify({"cmd": "; cat /etc/passwd", "x": "<script>"})
        assert result.attack_types == [patterns.XSS, patterns.LFI, patterns.SHELL_INJECTION]

    def test_matching_is_case_insensitive(self, detector):
        assert detector.classify({"q": "<SCRIPT>"}).attack_types == [patterns.XSS]

    def test_disabled_category_is_skipped(self):
        detector = AttackDetector.from_options(ShieldOptions(xss=False))
        assert patterns.XSS not in detector.group_names
        assert detector.classify({"q": "<script>"}).is_suspicious is False

    def test_custom_patterns(self):
        options = ShieldOptions(detection_patterns=[r"forbidden", re.compile(r"^secret$")])
        detector = AttackDetector.from_options(options)

        assert detector.classify({"q": "FORBIDDEN word"}).attack_types == [patterns.CUSTOM]
        assert detector.classify({"q": "secret"}).attack_types == [patterns.CUSTOM]
        assert detector.classify({"q": "not secret"}).is_suspicious is False

    def test_explicit_groups(self):
        detector = AttackDetector({"Numbers": [re.compile(r"\d{4}")]})
        assert detector.group_names == ["Numbers"]
        assert detector.classify({"pin": "1234"}).attack_types == ["Numbers"]


class TestDetectMaliciousRequest:
    """Tests for the convenience wrapper."""

    def test_body_overrides_query(self):
        result = detect_malicious_request(
            {"q": "<script>"}, {"q": "harmless"}, None, ShieldOptions()
        )
        assert result.is_suspicious is False

    def test_path_params_are_checked(self):
        result = detect_malicious_request(None, None, {"file": "../secret"}, ShieldOptions())
        assert result.attack_types == [patterns.LFI]
