"""Persistence interfaces for tenants, scan jobs and findings"""

from .repositories import (
    FindingFilter,
    FindingsRepository,
    InMemoryFindingsRepository,
    InMemoryScanJobRepository,
    InMemoryTenantRepository,
    ScanJobRepository,
    TenantRepository,
)

__all__ = [
    "FindingFilter",
    "FindingsRepository",
    "InMemoryFindingsRepository",
    "InMemoryScanJobRepository",
    "InMemoryTenantRepository",
    "ScanJobRepository",
    "TenantRepository",
]
