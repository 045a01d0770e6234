"""
EC2 compliance rules
"""

from typing import Any, List, Tuple

from . import ComplianceRule
from ..core.framework import CloudResource


class SecurityGroupOpenPortsRule(ComplianceRule):
    """Security groups should not expose sensitive ports to the internet"""

    def __init__(self):
        super().__init__()
        self.rule_id = "ec2_sg_open_ports"
        self.title = "Security groups should not allow unrestricted access"
        self.description = "Inbound access from 0.0.0.0/0 to administrative or database ports"
        self.severity = "critical"
        self.frameworks = ["SOC2", "NIST", "PCI"]
        self.service = "ec2"
        self.resource_types = ["security_group"]
        self.recommendation = "Restrict source IP ranges to only necessary addresses"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        exposed = resource.metadata.get("open_to_world_ports") or []
        if exposed:
            return False, [{"exposed_ports": exposed}]
        return True, []


class EC2InstancePublicIPRule(ComplianceRule):
    """Check for EC2 instances with public IP addresses"""

    def __init__(self):
        super().__init__()
        self.rule_id = "ec2_instance_public_ip"
        self.title = "EC2 instances should not have public IP addresses unless required"
        self.description = "Direct internet exposure increases the attack surface"
        self.severity = "medium"
        self.frameworks = ["SOC2", "NIST"]
        self.service = "ec2"
        self.resource_types = ["ec2_instance"]
        self.recommendation = ("Move instance to private subnet or remove public IP. "
                               "Use NAT Gateway or ALB for internet access.")

    def applies_to(self, resource: CloudResource) -> bool:
        if not super().applies_to(resource):
            return False
        if resource.metadata.get("state") != "running":
            return False
        # Skip if explicitly tagged as requiring public IP
        return resource.tags.get("PublicIPRequired", "").lower() != "true"

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        public_ip = resource.metadata.get("public_ip")
        if public_ip:
            return False, [{"public_ip": public_ip}]
        return True, []
