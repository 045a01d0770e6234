"""
Compliance Scanner - scan orchestration and findings engine for AWS

Discovers AWS resources across regions and services, evaluates them against
compliance rules and keeps deduplicated findings with a compliance score.
"""

__version__ = "1.0.0"
__author__ = "Security Team"
__email__ = "security@example.com"

from .core.framework import Finding, ScanJob, ScanRequest, ScanResponse
from .core.provider import AWSProvider
from .core.registry import CollectorRegistry, RuleRegistry
from .core.discovery import ResourceDiscovery
from .core.processor import ResultProcessor
from .core.orchestrator import ScanOrchestrator, ScanSupervisor
from .core.output import OutputEngine

__all__ = [
    "Finding",
    "ScanJob",
    "ScanRequest",
    "ScanResponse",
    "AWSProvider",
    "CollectorRegistry",
    "RuleRegistry",
    "ResourceDiscovery",
    "ResultProcessor",
    "ScanOrchestrator",
    "ScanSupervisor",
    "OutputEngine",
]
