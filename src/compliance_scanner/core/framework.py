"""
Core data structures shared by discovery, evaluation and findings processing
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Any, Optional

from .exceptions import InvalidStatusTransitionError


def utc_now() -> str:
    """ISO-8601 timestamp in UTC"""
    return datetime.now(timezone.utc).isoformat()


class ScanStatus(str, Enum):
    INITIALIZING = "initializing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ScanStatus.COMPLETED,
    ScanStatus.FAILED,
    ScanStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: Dict[ScanStatus, frozenset] = {
    ScanStatus.INITIALIZING: frozenset({
        ScanStatus.IN_PROGRESS, ScanStatus.FAILED, ScanStatus.CANCELLED,
    }),
    ScanStatus.IN_PROGRESS: frozenset({
        ScanStatus.IN_PROGRESS, ScanStatus.COMPLETED,
        ScanStatus.FAILED, ScanStatus.CANCELLED,
    }),
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.FAILED: frozenset(),
    ScanStatus.CANCELLED: frozenset(),
}


class ScanType(str, Enum):
    FULL_ENVIRONMENT = "full_environment"
    INCREMENTAL = "incremental"
    SERVICE_SPECIFIC = "service_specific"
    RULE_SPECIFIC = "rule_specific"
    RESOURCE_SPECIFIC = "resource_specific"
    SCHEDULED = "scheduled"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComplianceFramework(str, Enum):
    SOC2 = "SOC2"
    HIPAA = "HIPAA"
    GDPR = "GDPR"
    PCI = "PCI"
    ISO27001 = "ISO27001"
    NIST = "NIST"


class FindingStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"


@dataclass
class ScanProgress:
    """Checkpointed progress of a running scan"""
    current: int = 0
    total: int = 100
    percentage: int = 0
    stage: str = "Initializing"

    def __post_init__(self):
        self.percentage = max(0, min(100, self.percentage))


@dataclass
class Tenant:
    id: str
    name: str = ""
    status: str = "active"
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanRequest:
    """Parameters a caller supplies to start a scan"""
    tenant_id: str
    account_id: str
    regions: List[str]
    scan_type: ScanType = ScanType.FULL_ENVIRONMENT
    services: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)
    requested_by: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanResponse:
    scan_id: str
    status: ScanStatus
    message: str
    estimated_duration: int
    scan_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScanJob:
    """Unit-of-work record tracking one discovery and evaluation run"""
    id: str
    tenant_id: str
    account_id: str
    scan_type: ScanType = ScanType.FULL_ENVIRONMENT
    status: ScanStatus = ScanStatus.INITIALIZING
    regions: List[str] = field(default_factory=list)
    services: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    progress: ScanProgress = field(default_factory=ScanProgress)
    started_at: str = field(default_factory=utc_now)
    completed_at: Optional[str] = None
    results: Dict[str, Any] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)
    requested_by: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def can_transition_to(self, status: ScanStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def transition_to(self, status: ScanStatus) -> None:
        """Move to a new status, refusing to leave a terminal state"""
        if not self.can_transition_to(status):
            raise InvalidStatusTransitionError(self.id, self.status.value, status.value)
        self.status = status
        if status.is_terminal:
            self.completed_at = utc_now()

    def advance_progress(self, progress: ScanProgress) -> bool:
        """Apply a progress checkpoint; lower percentages are ignored"""
        if progress.percentage < self.progress.percentage:
            return False
        self.progress = progress
        return True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CloudResource:
    """A discovered cloud resource and its configuration snapshot"""
    id: str
    type: str
    arn: str
    name: str
    account_id: str
    region: str
    service: str
    resource_type: str = ""
    tags: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResourceConfig:
    """Deep configuration fetched on demand for a single resource"""
    resource_id: str
    resource_type: str
    configuration: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleResult:
    """Outcome of one rule against one resource, as reported by an evaluator"""
    rule_id: str
    resource_arn: str
    compliant: bool
    severity: str = "medium"
    framework: str = "SOC2"
    resource_type: str = ""
    service: str = ""
    region: str = ""
    account_id: str = ""
    title: str = ""
    description: str = ""
    evidence: List[Any] = field(default_factory=list)
    recommendation: str = ""
    rule_version: str = "1.0.0"
    execution_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Finding:
    """Persisted record of a non-compliant rule evaluation"""
    id: str
    tenant_id: str
    scan_id: str
    rule_id: str
    resource_arn: str
    resource_type: str
    service: str
    region: str
    account_id: str
    severity: Severity
    framework: ComplianceFramework
    hash: str
    status: FindingStatus = FindingStatus.ACTIVE
    title: str = ""
    description: str = ""
    recommendation: str = ""
    evidence: List[Any] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    first_seen: str = field(default_factory=utc_now)
    last_seen: str = field(default_factory=utc_now)
    count: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert finding to dictionary for JSON output"""
        return asdict(self)


@dataclass
class Page:
    """One page of a tenant-scoped listing"""
    items: List[Any]
    next_token: Optional[str] = None
    total_count: int = 0
