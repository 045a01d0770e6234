"""
IAM compliance rules
"""

from typing import Any, List, Tuple

from . import ComplianceRule
from ..core.framework import CloudResource


class IAMUserWithoutMFARule(ComplianceRule):
    """Check for IAM users without MFA enabled"""

    def __init__(self):
        super().__init__()
        self.rule_id = "iam_user_no_mfa"
        self.title = "IAM users should have MFA enabled"
        self.description = "Users with console access should have an MFA device"
        self.severity = "high"
        self.frameworks = ["SOC2", "NIST", "HIPAA", "PCI"]
        self.service = "iam"
        self.resource_types = ["iam_user"]
        self.recommendation = "Enable MFA for IAM user in AWS Console"

    def applies_to(self, resource: CloudResource) -> bool:
        # MFA status is unknown when list_mfa_devices was denied
        return super().applies_to(resource) and \
            resource.metadata.get("mfa_enabled") is not None

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        # Only users that can sign in to the console need MFA
        if resource.metadata.get("has_console_access") and not resource.metadata.get("mfa_enabled"):
            return False, [{"has_console_access": True, "mfa_enabled": False}]
        return True, []


class IAMPolicyTooPermissiveRule(ComplianceRule):
    """Check for overly permissive IAM policies"""

    def __init__(self):
        super().__init__()
        self.rule_id = "iam_policy_too_permissive"
        self.title = "IAM policies should follow principle of least privilege"
        self.description = "Allow statements with wildcard actions or resources"
        self.severity = "high"
        self.frameworks = ["SOC2", "NIST", "ISO27001"]
        self.service = "iam"
        self.resource_types = ["iam_policy"]
        self.recommendation = ("Review policy and apply principle of least privilege. "
                               "Restrict actions and resources to minimum required.")

    def check(self, resource: CloudResource) -> Tuple[bool, List[Any]]:
        document = resource.metadata.get("policy_document") or {}
        statements = document.get("Statement", [])
        if isinstance(statements, dict):
            statements = [statements]

        reasons = []
        for statement in statements:
            if statement.get("Effect") != "Allow":
                continue
            actions = statement.get("Action", [])
            resources = statement.get("Resource", [])
            if isinstance(actions, str):
                actions = [actions]
            if isinstance(resources, str):
                resources = [resources]

            if "*" in actions:
                reasons.append("Contains wildcard (*) action")
            if "*" in actions and "*" in resources:
                reasons.append("Grants full administrative access")
            broad = [action for action in actions if action.endswith(":*")]
            if broad:
                reasons.append(f"Contains broad actions: {broad}")

        if reasons:
            return False, [{"reasons": reasons}]
        return True, []
