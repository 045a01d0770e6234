"""
S3 compliance rules
"""

from typing import Any, List, Tuple

from . import ComplianceRule
from ..core.framework import CloudResource

PUBLIC_ACCESS_FLAGS = [
    "BlockPublicAcls",
    "IgnorePublicAcls",
    "BlockPublicPolicy",
    "RestrictPublicBuckets",
]


class S3BucketPublicAccessRule(ComplianceRule):
    """S3 buckets should block all public access"""

    def __init__(self):
        super().__init__()
        self.rule_id = "s3_bucket_public_access_block"
        self.title = "S3 buckets should block public access"
        self.description = "All four S3 public access block settings should be enabled"
        self.severity = "high"
        self.frameworks = ["SOC2", "PCI", "GDPR", "HIPAA"]
        self.service = "s3"
        self.resource_types = ["s3_bucket"]
        self.recommendation = "Enable every S3 Block Public Access setting on the bucket"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        config = resource.metadata.get("public_access_block") or {}
        disabled = [flag for flag in PUBLIC_ACCESS_FLAGS if not config.get(flag)]
        if not disabled:
            return True, []
        return False, [{"disabled_settings": disabled}]


class S3BucketEncryptionRule(ComplianceRule):
    """S3 buckets should have default encryption"""

    def __init__(self):
        super().__init__()
        self.rule_id = "s3_bucket_encryption_enabled"
        self.title = "S3 buckets should have default encryption enabled"
        self.description = "Objects written to the bucket should be encrypted at rest"
        self.severity = "medium"
        self.frameworks = ["SOC2", "HIPAA", "PCI", "ISO27001"]
        self.service = "s3"
        self.resource_types = ["s3_bucket"]
        self.recommendation = "Configure SSE-S3 or SSE-KMS default encryption"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        if resource.metadata.get("encryption_enabled"):
            return True, [{"algorithms": resource.metadata.get("encryption_algorithms", [])}]
        return False, [{"encryption_enabled": False}]
