"""
Data-protection and audit rules for RDS, CloudTrail and KMS
"""

from typing import Any, List, Tuple

from . import ComplianceRule
from ..core.framework import CloudResource


class RDSPublicAccessRule(ComplianceRule):
    def __init__(self):
        super().__init__()
        self.rule_id = "rds_instance_public_access"
        self.title = "RDS instances should not be publicly accessible"
        self.severity = "critical"
        self.frameworks = ["SOC2", "PCI", "HIPAA"]
        self.service = "rds"
        self.resource_types = ["rds_instance"]
        self.recommendation = "Disable public accessibility and reach the database through the VPC"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        if resource.metadata.get("publicly_accessible"):
            return False, [{"publicly_accessible": True}]
        return True, []


class RDSStorageEncryptionRule(ComplianceRule):
    def __init__(self):
        super().__init__()
        self.rule_id = "rds_storage_encrypted"
        self.title = "RDS instances should encrypt storage at rest"
        self.severity = "high"
        self.frameworks = ["HIPAA", "PCI", "GDPR"]
        self.service = "rds"
        self.resource_types = ["rds_instance"]
        self.recommendation = "Restore from an encrypted snapshot copy with a KMS key"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        if resource.metadata.get("storage_encrypted"):
            return True, [{"kms_key_id": resource.metadata.get("kms_key_id")}]
        return False, [{"storage_encrypted": False}]


class CloudTrailLogValidationRule(ComplianceRule):
    def __init__(self):
        super().__init__()
        self.rule_id = "cloudtrail_log_file_validation"
        self.title = "CloudTrail trails should have log file validation enabled"
        self.severity = "medium"
        self.frameworks = ["SOC2", "ISO27001", "NIST"]
        self.service = "cloudtrail"
        self.resource_types = ["cloudtrail_trail"]
        self.recommendation = "Enable log file integrity validation on the trail"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        if resource.metadata.get("log_file_validation_enabled"):
            return True, []
        return False, [{"log_file_validation_enabled": False}]


class KMSKeyRotationRule(ComplianceRule):
    def __init__(self):
        super().__init__()
        self.rule_id = "kms_key_rotation_enabled"
        self.title = "Customer managed KMS keys should rotate automatically"
        self.severity = "low"
        self.frameworks = ["SOC2", "PCI", "NIST"]
        self.service = "kms"
        self.resource_types = ["kms_key"]
        self.recommendation = "Enable automatic key rotation"

    def applies_to(self, resource: CloudResource) -> bool:
        # Rotation status is only captured for symmetric customer managed keys
        return super().applies_to(resource) and \
            resource.metadata.get("rotation_enabled") is not None

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        if resource.metadata.get("rotation_enabled"):
            return True, []
        return False, [{"rotation_enabled": False}]
