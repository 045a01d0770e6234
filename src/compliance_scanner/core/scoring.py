"""
Compliance scoring and finding aggregation
"""

from collections import Counter
from enum import Enum
from typing import Callable, Dict, Iterable

from .framework import Finding, Severity

SEVERITY_WEIGHTS: Dict[str, int] = {
    Severity.CRITICAL.value: 10,
    Severity.HIGH.value: 5,
    Severity.MEDIUM.value: 2,
    Severity.LOW.value: 1,
}

# Weight a single resource could contribute if every finding were critical
MAX_WEIGHT_PER_RESOURCE = 10


def _key(value) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def calculate_compliance_score(findings: Iterable[Finding], total_resources: int) -> float:
    """Score in [0, 100]; 100 means no weighted findings.

    An empty environment is treated as fully compliant.
    """
    if total_resources <= 0:
        return 100.0

    weighted = sum(SEVERITY_WEIGHTS.get(_key(f.severity), 0) for f in findings)
    max_possible = total_resources * MAX_WEIGHT_PER_RESOURCE
    score = max(0.0, 100 - (weighted / max_possible) * 100)
    return round(score, 2)


def _group_by(findings: Iterable[Finding], attribute: Callable[[Finding], object]) -> Dict[str, int]:
    return dict(Counter(_key(attribute(f)) for f in findings))


def group_findings_by_severity(findings: Iterable[Finding]) -> Dict[str, int]:
    return _group_by(findings, lambda f: f.severity)


def group_findings_by_framework(findings: Iterable[Finding]) -> Dict[str, int]:
    return _group_by(findings, lambda f: f.framework)


def group_findings_by_service(findings: Iterable[Finding]) -> Dict[str, int]:
    return _group_by(findings, lambda f: f.service)


def group_findings_by_region(findings: Iterable[Finding]) -> Dict[str, int]:
    return _group_by(findings, lambda f: f.region)


def group_findings_by_resource_type(findings: Iterable[Finding]) -> Dict[str, int]:
    return _group_by(findings, lambda f: f.resource_type)


def group_findings_by_status(findings: Iterable[Finding]) -> Dict[str, int]:
    return _group_by(findings, lambda f: f.status)
