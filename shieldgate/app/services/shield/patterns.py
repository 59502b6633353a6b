"""Attack signature pattern groups.

Each group maps a category name, as reported to clients, to compiled
patterns. Patterns are matched with ``search`` against individual field
values, case-insensitively.
"""
import re
from typing import Dict, List, Pattern


def _compile(patterns: List[str]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


XSS = "XSS"
SQL_INJECTION = "SQL Injection"
LFI = "LFI"
RFI = "RFI"
SHELL_INJECTION = "Shell Injection"
CUSTOM = "Custom"

XSS_PATTERNS = _compile([
    r"<\s*script\b",
    r"<\s*/\s*script\s*>",
    r"javascript\s*:",
    r"vbscript\s*:",
    r"\bon(?:error|load|click|mouseover|focus|blur|submit)\s*=",
    r"<\s*(?:iframe|object|embed|svg|img)\b[^>]*>",
    r"document\.(?:cookie|location|write)",
    r"\beval\s*\(",
])

SQL_INJECTION_PATTERNS = _compile([
    r"'\s*or\s+'?\d+'?\s*=\s*'?\d+",
    r"'\s*or\s+'[^']*'\s*=\s*'",
    r"\bunion\b(?:\s+all)?\s+select\b",
    r";\s*(?:drop|delete|truncate|alter|insert|update)\s+",
    r"\bselect\b.+\bfrom\b\s+\w+",
    r"--\s*$",
    r"/\*.*\*/",
    r"\b(?:sleep|benchmark|pg_sleep)\s*\(",
    r"\bwaitfor\s+delay\b",
])

LFI_PATTERNS = _compile([
    r"(?:\.\./|\.\.\\)",
    r"%2e%2e(?:%2f|%5c|/|\\)",
    r"/etc/(?:passwd|shadow|hosts)",
    r"(?:c:|%systemroot%)\\windows",
    r"\bphp://(?:filter|input)",
    r"\bfile://",
    r"%00",
])

RFI_PATTERNS = _compile([
    r"^(?:https?|ftp)://[^\s]+\.(?:php|txt|sh|pl|py)(?:\?|$)",
    r"=\s*(?:https?|ftp)://",
    r"\b(?:data|expect|zip|phar)://",
])

SHELL_INJECTION_PATTERNS = _compile([
    r"[;&|]\s*(?:cat|ls|id|whoami|uname|rm|wget|curl|nc|bash|sh)\b",
    r"`[^`]+`",
    r"\$\([^)]+\)",
    r"\|\|\s*\w+",
    r"&&\s*\w+",
])

DEFAULT_PATTERN_GROUPS: Dict[str, List[Pattern[str]]] = {
    XSS: XSS_PATTERNS,
    SQL_INJECTION: SQL_INJECTION_PATTERNS,
    LFI: LFI_PATTERNS,
    RFI: RFI_PATTERNS,
    SHELL_INJECTION: SHELL_INJECTION_PATTERNS,
}
