"""
Persistence interfaces used by the orchestrator, with in-memory implementations.

The in-memory repositories enforce the same rules a durable store must:
terminal jobs never change status, progress never moves backwards, and
findings are reconciled by (tenant_id, hash).
"""

import asyncio
import base64
import binascii
import copy
import itertools
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import (
    InvalidPageTokenError,
    ScanConflictError,
    ScanNotFoundError,
)
from ..core.framework import (
    Finding,
    FindingStatus,
    Page,
    ScanJob,
    ScanProgress,
    ScanStatus,
    Tenant,
)
from ..core.scoring import (
    group_findings_by_framework,
    group_findings_by_region,
    group_findings_by_resource_type,
    group_findings_by_service,
    group_findings_by_severity,
    group_findings_by_status,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def encode_page_token(offset: int) -> str:
    raw = json.dumps({"offset": offset}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_page_token(token: Optional[str]) -> int:
    if not token:
        return 0
    try:
        offset = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))["offset"]
    except (binascii.Error, ValueError, KeyError, TypeError) as e:
        raise InvalidPageTokenError(f"Invalid page token: {token!r}") from e
    if not isinstance(offset, int) or offset < 0:
        raise InvalidPageTokenError(f"Invalid page token: {token!r}")
    return offset


def paginate(items: List[Any], limit: Optional[int], next_token: Optional[str]) -> Page:
    """Slice an ordered list into a Page with an opaque continuation token"""
    limit = limit or DEFAULT_PAGE_SIZE
    offset = decode_page_token(next_token)
    page_items = items[offset:offset + limit]
    end = offset + len(page_items)
    return Page(
        items=page_items,
        next_token=encode_page_token(end) if end < len(items) else None,
        total_count=len(items),
    )


@dataclass
class FindingFilter:
    """Optional equality filters for listing findings"""
    severity: Optional[str] = None
    framework: Optional[str] = None
    status: Optional[str] = None
    service: Optional[str] = None
    region: Optional[str] = None
    resource_type: Optional[str] = None
    scan_id: Optional[str] = None

    def matches(self, finding: Finding) -> bool:
        for name in ("severity", "framework", "status", "service",
                     "region", "resource_type", "scan_id"):
            expected = getattr(self, name)
            if expected is None:
                continue
            actual = getattr(finding, name)
            actual = getattr(actual, "value", actual)
            expected = getattr(expected, "value", expected)
            if str(actual).lower() != str(expected).lower():
                return False
        return True


class TenantRepository(ABC):
    @abstractmethod
    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        ...


class ScanJobRepository(ABC):
    @abstractmethod
    async def create(self, job: ScanJob) -> ScanJob:
        ...

    @abstractmethod
    async def update_status(self, scan_id: str, tenant_id: str, status: ScanStatus,
                            progress: Optional[ScanProgress] = None) -> ScanJob:
        """Raises InvalidStatusTransitionError when leaving a terminal state"""

    @abstractmethod
    async def update_progress(self, scan_id: str, tenant_id: str,
                              progress: ScanProgress) -> bool:
        """Returns False when the write was ignored"""

    @abstractmethod
    async def update_results(self, scan_id: str, tenant_id: str,
                             results: Dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def get_by_id(self, scan_id: str, tenant_id: Optional[str] = None) -> Optional[ScanJob]:
        ...

    @abstractmethod
    async def get_scan_jobs_by_tenant(self, tenant_id: str, limit: Optional[int] = None,
                                      next_token: Optional[str] = None) -> Page:
        ...


class FindingsRepository(ABC):
    @abstractmethod
    async def batch_write(self, findings: List[Finding]) -> List[Finding]:
        """Insert new findings and reconcile ones already known by hash"""

    @abstractmethod
    async def get_findings_by_tenant(self, tenant_id: str,
                                     filters: Optional[FindingFilter] = None,
                                     limit: Optional[int] = None,
                                     next_token: Optional[str] = None) -> Page:
        ...

    @abstractmethod
    async def get_finding_statistics(self, tenant_id: str) -> Dict[str, Any]:
        ...


class InMemoryTenantRepository(TenantRepository):
    def __init__(self, tenants: Optional[List[Tenant]] = None):
        self._tenants: Dict[str, Tenant] = {}
        for tenant in tenants or []:
            self.add(tenant)

    def add(self, tenant: Tenant):
        self._tenants[tenant.id] = copy.deepcopy(tenant)

    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        tenant = self._tenants.get(tenant_id)
        return copy.deepcopy(tenant) if tenant else None


class InMemoryScanJobRepository(ScanJobRepository):
    """Scan jobs keyed by id; reads return copies"""

    def __init__(self, default_page_size: int = DEFAULT_PAGE_SIZE):
        self.default_page_size = default_page_size
        self._jobs: Dict[str, ScanJob] = {}
        self._order: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    def _get(self, scan_id: str, tenant_id: Optional[str]) -> ScanJob:
        job = self._jobs.get(scan_id)
        if job is None or (tenant_id is not None and job.tenant_id != tenant_id):
            raise ScanNotFoundError(scan_id)
        return job

    async def create(self, job: ScanJob) -> ScanJob:
        async with self._lock:
            if job.id in self._jobs:
                raise ScanConflictError(f"Scan {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)
            self._order[job.id] = next(self._sequence)
        logger.debug(f"Created scan job {job.id} for tenant {job.tenant_id}")
        return copy.deepcopy(job)

    async def update_status(self, scan_id: str, tenant_id: str, status: ScanStatus,
                            progress: Optional[ScanProgress] = None) -> ScanJob:
        async with self._lock:
            job = self._get(scan_id, tenant_id)
            job.transition_to(status)
            if progress is not None:
                job.advance_progress(progress)
            return copy.deepcopy(job)

    async def update_progress(self, scan_id: str, tenant_id: str,
                              progress: ScanProgress) -> bool:
        async with self._lock:
            job = self._get(scan_id, tenant_id)
            if job.is_terminal:
                logger.debug(f"Ignoring progress for terminal scan {scan_id}")
                return False
            return job.advance_progress(progress)

    async def update_results(self, scan_id: str, tenant_id: str,
                             results: Dict[str, Any]) -> bool:
        async with self._lock:
            job = self._get(scan_id, tenant_id)
            if job.is_terminal:
                logger.debug(f"Ignoring results for terminal scan {scan_id}")
                return False
            job.results = copy.deepcopy(results)
            return True

    async def get_by_id(self, scan_id: str, tenant_id: Optional[str] = None) -> Optional[ScanJob]:
        try:
            return copy.deepcopy(self._get(scan_id, tenant_id))
        except ScanNotFoundError:
            return None

    async def get_scan_jobs_by_tenant(self, tenant_id: str, limit: Optional[int] = None,
                                      next_token: Optional[str] = None) -> Page:
        jobs = sorted(
            (job for job in self._jobs.values() if job.tenant_id == tenant_id),
            key=lambda job: (job.started_at, self._order[job.id]),
            reverse=True,
        )
        page = paginate(jobs, limit or self.default_page_size, next_token)
        page.items = [copy.deepcopy(job) for job in page.items]
        return page


class InMemoryFindingsRepository(FindingsRepository):
    """Findings keyed by (tenant_id, hash)"""

    def __init__(self, default_page_size: int = DEFAULT_PAGE_SIZE):
        self.default_page_size = default_page_size
        self._findings: Dict[Tuple[str, str], Finding] = {}
        self._lock = asyncio.Lock()

    async def batch_write(self, findings: List[Finding]) -> List[Finding]:
        written = []
        async with self._lock:
            for finding in findings:
                key = (finding.tenant_id, finding.hash)
                existing = self._findings.get(key)
                if existing is None:
                    stored = copy.deepcopy(finding)
                else:
                    stored = self._reconcile(existing, finding)
                self._findings[key] = stored
                written.append(copy.deepcopy(stored))

        logger.info(f"Wrote {len(written)} findings")
        return written

    @staticmethod
    def _reconcile(existing: Finding, incoming: Finding) -> Finding:
        """The same issue seen again: keep identity, refresh the observation"""
        stored = copy.deepcopy(incoming)
        stored.id = existing.id
        stored.first_seen = existing.first_seen
        stored.count = existing.count + 1
        stored.status = FindingStatus.ACTIVE
        return stored

    def _tenant_findings(self, tenant_id: str) -> List[Finding]:
        return [f for (tenant, _), f in self._findings.items() if tenant == tenant_id]

    async def get_findings_by_tenant(self, tenant_id: str,
                                     filters: Optional[FindingFilter] = None,
                                     limit: Optional[int] = None,
                                     next_token: Optional[str] = None) -> Page:
        filters = filters or FindingFilter()
        findings = sorted(
            (f for f in self._tenant_findings(tenant_id) if filters.matches(f)),
            key=lambda f: (f.last_seen, f.id),
            reverse=True,
        )
        page = paginate(findings, limit or self.default_page_size, next_token)
        page.items = [copy.deepcopy(f) for f in page.items]
        return page

    async def get_finding_statistics(self, tenant_id: str) -> Dict[str, Any]:
        findings = self._tenant_findings(tenant_id)
        active = [f for f in findings if f.status == FindingStatus.ACTIVE]
        return {
            "total": len(findings),
            "active": len(active),
            "by_severity": group_findings_by_severity(active),
            "by_framework": group_findings_by_framework(active),
            "by_service": group_findings_by_service(active),
            "by_region": group_findings_by_region(active),
            "by_resource_type": group_findings_by_resource_type(active),
            "by_status": group_findings_by_status(findings),
        }
