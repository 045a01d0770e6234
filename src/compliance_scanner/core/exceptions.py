"""
Exception hierarchy for the scan engine
"""


class ComplianceScannerError(Exception):
    """Base class for all scanner errors"""


class NotFoundError(ComplianceScannerError):
    """A requested entity does not exist"""


class TenantNotFoundError(NotFoundError):
    def __init__(self, tenant_id: str):
        super().__init__(f"Tenant {tenant_id} not found")
        self.tenant_id = tenant_id


class ScanNotFoundError(NotFoundError):
    def __init__(self, scan_id: str):
        super().__init__(f"Scan {scan_id} not found")
        self.scan_id = scan_id


class ScanConflictError(ComplianceScannerError):
    """The operation conflicts with the current state of a scan job"""


class InvalidStatusTransitionError(ScanConflictError):
    def __init__(self, scan_id: str, current: str, requested: str):
        super().__init__(
            f"Scan {scan_id} cannot move from {current} to {requested}"
        )
        self.scan_id = scan_id
        self.current = current
        self.requested = requested


class InvalidPageTokenError(ComplianceScannerError, ValueError):
    """A continuation token could not be decoded"""


class UnsupportedResourceError(ComplianceScannerError):
    """No collector knows how to handle the resource type or service"""


class ProviderError(ComplianceScannerError):
    """AWS session or client could not be set up"""
