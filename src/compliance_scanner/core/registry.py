"""
Registries for resource collectors and built-in compliance rules
"""

from typing import Dict, List, Optional, Type, TYPE_CHECKING

from .exceptions import UnsupportedResourceError
from .provider import AWSProvider

if TYPE_CHECKING:
    from ..checks import ComplianceRule
    from ..collectors import ResourceCollector


class CollectorRegistry:
    """Registry of named collectors, one per AWS service"""

    def __init__(self, provider: AWSProvider, register_defaults: bool = True):
        self.provider = provider
        self.collectors: Dict[str, "ResourceCollector"] = {}
        if register_defaults:
            self._register_default_collectors()

    def _register_default_collectors(self):
        from ..collectors.s3 import S3Collector
        from ..collectors.iam import IAMCollector
        from ..collectors.ec2 import EC2Collector
        from ..collectors.cloudtrail import CloudTrailCollector
        from ..collectors.kms import KMSCollector
        from ..collectors.rds import RDSCollector
        from ..collectors.lambda_functions import LambdaCollector

        default_collectors = [
            S3Collector,
            IAMCollector,
            EC2Collector,
            CloudTrailCollector,
            KMSCollector,
            RDSCollector,
            LambdaCollector,
        ]

        for collector_class in default_collectors:
            self.register_collector(collector_class)

    def register_collector(self, collector_class: Type["ResourceCollector"]):
        """Register a collector class under its service name"""
        collector = collector_class(self.provider)
        self.collectors[collector.service_name] = collector

    def get_collector(self, service: str) -> Optional["ResourceCollector"]:
        return self.collectors.get(service)

    def get_collector_for_resource_type(self, resource_type: str) -> "ResourceCollector":
        for collector in self.collectors.values():
            if resource_type in collector.resource_types:
                return collector
        raise UnsupportedResourceError(f"Unsupported resource type: {resource_type}")

    def get_supported_services(self) -> List[str]:
        return list(self.collectors)

    def get_supported_resource_types(self) -> List[str]:
        return [
            resource_type
            for collector in self.collectors.values()
            for resource_type in collector.resource_types
        ]


class RuleRegistry:
    """Registry for the built-in compliance rules"""

    def __init__(self, register_defaults: bool = True):
        self.rules: Dict[str, "ComplianceRule"] = {}
        if register_defaults:
            self._register_default_rules()

    def _register_default_rules(self):
        from ..checks.s3 import S3BucketPublicAccessRule, S3BucketEncryptionRule
        from ..checks.ec2 import SecurityGroupOpenPortsRule, EC2InstancePublicIPRule
        from ..checks.iam import IAMUserWithoutMFARule, IAMPolicyTooPermissiveRule
        from ..checks.data import (
            RDSPublicAccessRule,
            RDSStorageEncryptionRule,
            CloudTrailLogValidationRule,
            KMSKeyRotationRule,
        )

        default_rules = [
            S3BucketPublicAccessRule(),
            S3BucketEncryptionRule(),
            SecurityGroupOpenPortsRule(),
            EC2InstancePublicIPRule(),
            IAMUserWithoutMFARule(),
            IAMPolicyTooPermissiveRule(),
            RDSPublicAccessRule(),
            RDSStorageEncryptionRule(),
            CloudTrailLogValidationRule(),
            KMSKeyRotationRule(),
        ]

        for rule in default_rules:
            self.register_rule(rule)

    def register_rule(self, rule: "ComplianceRule"):
        self.rules[rule.rule_id] = rule

    def get_rule(self, rule_id: str) -> Optional["ComplianceRule"]:
        return self.rules.get(rule_id)

    def get_rules_by_service(self, service: str) -> List["ComplianceRule"]:
        return [rule for rule in self.rules.values() if rule.service == service]

    def get_all_rules(self) -> List["ComplianceRule"]:
        return list(self.rules.values())

    def list_rules(self) -> Dict[str, str]:
        """Rule id to title"""
        return {rule_id: rule.title for rule_id, rule in self.rules.items()}
