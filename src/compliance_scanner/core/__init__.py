"""Core framework components for the compliance scanner"""

from .exceptions import ComplianceScannerError
from .framework import CloudResource, Finding, RuleResult, ScanJob, ScanRequest
from .provider import AWSProvider
from .registry import CollectorRegistry, RuleRegistry
from .output import OutputEngine

__all__ = [
    "ComplianceScannerError",
    "CloudResource",
    "Finding",
    "RuleResult",
    "ScanJob",
    "ScanRequest",
    "AWSProvider",
    "CollectorRegistry",
    "RuleRegistry",
    "OutputEngine",
]
