"""
Pattern-based threat screening for free-text input.

The analyzer is a shallow, explainable heuristic: a fixed table of regular
expressions is run against the text and every match becomes a threat with a
severity. Callers decide what risk score to act on.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern


class ThreatType(str, Enum):
    """Categories of input threats."""
    XSS = "XSS"
    SQL_INJECTION = "SQL_INJECTION"
    COMMAND_INJECTION = "COMMAND_INJECTION"
    OVERSIZED_INPUT = "OVERSIZED_INPUT"


class Severity(str, Enum):
    """Severity levels shared by threats and security events."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_WEIGHTS = {
    Severity.LOW: 1,
    Severity.MEDIUM: 3,
    Severity.HIGH: 5,
    Severity.CRITICAL: 10,
}

MAX_INPUT_LENGTH = 10000

_SQL_KEYWORDS = "or|and|union|select|insert|update|delete|drop|create|alter|exec|execute"
_SQL_STATEMENTS = "union|select|insert|update|delete|drop|create|alter|exec|execute"
_SQL_CLAUSES = "select|from|where|into|values|set|table|schema"


@dataclass(frozen=True)
class SecurityThreat:
    """A single threat found in an input."""
    type: ThreatType
    severity: Severity
    pattern: Optional[str] = None
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'pattern': self.pattern,
            'details': self.details
        }


@dataclass
class SecurityAnalysisResult:
    """Outcome of analysing one input."""
    safe: bool
    threats: List[SecurityThreat] = field(default_factory=list)
    risk_score: int = 0

    @property
    def threat_types(self) -> List[ThreatType]:
        """Distinct threat types, in detection order."""
        seen = []
        for threat in self.threats:
            if threat.type not in seen:
                seen.append(threat.type)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            'safe': self.safe,
            'threats': [threat.to_dict() for threat in self.threats],
            'risk_score': self.risk_score
        }


@dataclass(frozen=True)
class ThreatRule:
    """One row of the detection table."""
    pattern: Pattern
    threat_type: ThreatType
    severity: Severity


def _rule(pattern: str, threat_type: ThreatType, flags: int = re.IGNORECASE) -> ThreatRule:
    return ThreatRule(re.compile(pattern, flags), threat_type, Severity.HIGH)


THREAT_RULES: List[ThreatRule] = [
    # XSS
    _rule(r"<script[^>]*>.*?</script>", ThreatType.XSS),
    _rule(r"javascript:", ThreatType.XSS),
    _rule(r"on\w+\s*=", ThreatType.XSS),
    _rule(r"<iframe[^>]*>", ThreatType.XSS),
    _rule(r"<object[^>]*>", ThreatType.XSS),
    _rule(r"<embed[^>]*>", ThreatType.XSS),
    _rule(r"<link[^>]*>", ThreatType.XSS),
    _rule(r"<meta[^>]*>", ThreatType.XSS),

    # SQL injection: terminator followed by a keyword, or statement/clause pairs
    _rule(rf"('|\\'|;|%3B|--)\s*({_SQL_KEYWORDS})\b", ThreatType.SQL_INJECTION),
    _rule(rf"\b({_SQL_STATEMENTS})\b.*\b({_SQL_CLAUSES})\b", ThreatType.SQL_INJECTION),

    # Command injection
    _rule(r"[;&|`$(){}\[\]\\]", ThreatType.COMMAND_INJECTION, 0),
    _rule(r"\b(eval|exec|system|shell_exec|passthru|proc_open|popen)\b", ThreatType.COMMAND_INJECTION),
]


class InputSecurityAnalyzer:
    """Stateless classifier scoring text for injection and size threats."""

    def __init__(self, rules: Optional[List[ThreatRule]] = None, max_input_length: int = MAX_INPUT_LENGTH):
        self.rules = list(rules) if rules is not None else list(THREAT_RULES)
        self.max_input_length = max_input_length

    def analyze_input(self, text: Any) -> SecurityAnalysisResult:
        """Run every rule against the text and score the findings."""
        if text is None:
            return SecurityAnalysisResult(safe=True)
        if not isinstance(text, str):
            text = str(text)

        threats: List[SecurityThreat] = []

        for rule in self.rules:
            if rule.pattern.search(text):
                threats.append(SecurityThreat(
                    type=rule.threat_type,
                    severity=rule.severity,
                    pattern=rule.pattern.pattern
                ))

        if len(text) > self.max_input_length:
            threats.append(SecurityThreat(
                type=ThreatType.OVERSIZED_INPUT,
                severity=Severity.MEDIUM,
                details=f"Input size: {len(text)} characters"
            ))

        return SecurityAnalysisResult(
            safe=not threats,
            threats=threats,
            risk_score=calculate_risk_score(threats)
        )


def calculate_risk_score(threats: List[SecurityThreat]) -> int:
    """Sum of severity weights over all threats."""
    return sum(SEVERITY_WEIGHTS[threat.severity] for threat in threats)
