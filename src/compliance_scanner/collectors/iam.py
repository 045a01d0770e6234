"""
IAM collector
IAM is account-scoped, so discovery runs once per scan rather than per region
"""

from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from . import GLOBAL_REGION, ResourceCollector
from ..core.framework import CloudResource


class IAMCollector(ResourceCollector):
    """Discovers IAM users, roles and customer managed policies"""

    service_name = "iam"
    resource_types = ["iam_user", "iam_role", "iam_policy"]
    is_global = True

    def discover_regional(self, account_id: str, region: str = GLOBAL_REGION) -> List[CloudResource]:
        iam_client = self.client()
        users = self._discover_users(iam_client, account_id)
        roles = self._discover_roles(iam_client, account_id)
        policies = self._discover_policies(iam_client, account_id)

        self.logger.info(
            f"IAM discovery: {len(users)} users, {len(roles)} roles, "
            f"{len(policies)} policies"
        )
        return users + roles + policies

    def _discover_users(self, iam_client, account_id: str) -> List[CloudResource]:
        resources = []
        for user in self._paginate(iam_client, "list_users", "Users"):
            username = user["UserName"]
            # None marks a detail this principal may not read, not an empty list
            mfa_devices = self._safe_call(iam_client.list_mfa_devices, UserName=username)
            access_keys = self._safe_call(iam_client.list_access_keys, UserName=username)
            tags = self._safe_call(iam_client.list_user_tags, UserName=username) or {}

            resources.append(CloudResource(
                id=username,
                type="iam_user",
                arn=user["Arn"],
                name=username,
                account_id=account_id,
                region=GLOBAL_REGION,
                service="iam",
                resource_type="user",
                tags=self._extract_tags(tags.get("Tags")),
                metadata={
                    "path": user.get("Path"),
                    "create_date": self._isoformat(user.get("CreateDate")),
                    "password_last_used": self._isoformat(user.get("PasswordLastUsed")),
                    "mfa_enabled": (
                        None if mfa_devices is None
                        else len(mfa_devices.get("MFADevices", [])) > 0
                    ),
                    "has_console_access": self._has_login_profile(iam_client, username),
                    "active_access_keys": (
                        None if access_keys is None
                        else sum(1 for key in access_keys.get("AccessKeyMetadata", [])
                                 if key.get("Status") == "Active")
                    ),
                },
            ))
        return resources

    def _has_login_profile(self, iam_client, username: str) -> Optional[bool]:
        try:
            iam_client.get_login_profile(UserName=username)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "NoSuchEntity":
                return False
            self.logger.warning(f"Cannot read login profile for IAM user {username}: {e}")
            return None

    def _discover_roles(self, iam_client, account_id: str) -> List[CloudResource]:
        resources = []
        for role in self._paginate(iam_client, "list_roles", "Roles"):
            role_name = role["RoleName"]
            tags = self._safe_call(iam_client.list_role_tags, RoleName=role_name) or {}
            resources.append(CloudResource(
                id=role_name,
                type="iam_role",
                arn=role["Arn"],
                name=role_name,
                account_id=account_id,
                region=GLOBAL_REGION,
                service="iam",
                resource_type="role",
                tags=self._extract_tags(tags.get("Tags")),
                metadata={
                    "path": role.get("Path"),
                    "create_date": self._isoformat(role.get("CreateDate")),
                    "assume_role_policy_document": role.get("AssumeRolePolicyDocument"),
                },
            ))
        return resources

    def _discover_policies(self, iam_client, account_id: str) -> List[CloudResource]:
        resources = []
        # Customer managed policies only
        for policy in self._paginate(iam_client, "list_policies", "Policies", Scope="Local"):
            policy_arn = policy["Arn"]
            version = self._safe_call(iam_client.get_policy_version, PolicyArn=policy_arn,
                                      VersionId=policy["DefaultVersionId"])
            tags = self._safe_call(iam_client.list_policy_tags, PolicyArn=policy_arn) or {}
            resources.append(CloudResource(
                id=policy["PolicyName"],
                type="iam_policy",
                arn=policy_arn,
                name=policy["PolicyName"],
                account_id=account_id,
                region=GLOBAL_REGION,
                service="iam",
                resource_type="policy",
                tags=self._extract_tags(tags.get("Tags")),
                metadata={
                    "path": policy.get("Path"),
                    "create_date": self._isoformat(policy.get("CreateDate")),
                    "update_date": self._isoformat(policy.get("UpdateDate")),
                    "default_version_id": policy.get("DefaultVersionId"),
                    "attachment_count": policy.get("AttachmentCount"),
                    "policy_document": (version or {}).get("PolicyVersion", {}).get("Document"),
                },
            ))
        return resources

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        iam_client = self.client()
        if resource.type == "iam_user":
            return self._user_configuration(iam_client, resource.name)
        if resource.type == "iam_role":
            return self._role_configuration(iam_client, resource.name)
        return self._policy_configuration(iam_client, resource.arn)

    def _user_configuration(self, iam_client, username: str) -> Dict[str, Any]:
        def get(fn, key):
            response = self._safe_call(fn, UserName=username)
            return response.get(key) if response else None

        return {
            "user": get(iam_client.get_user, "User"),
            "attached_policies": get(iam_client.list_attached_user_policies, "AttachedPolicies"),
            "inline_policies": get(iam_client.list_user_policies, "PolicyNames"),
            "groups": get(iam_client.list_groups_for_user, "Groups"),
            "access_keys": get(iam_client.list_access_keys, "AccessKeyMetadata"),
            "mfa_devices": get(iam_client.list_mfa_devices, "MFADevices"),
            "login_profile": get(iam_client.get_login_profile, "LoginProfile"),
        }

    def _role_configuration(self, iam_client, role_name: str) -> Dict[str, Any]:
        def get(fn, key):
            response = self._safe_call(fn, RoleName=role_name)
            return response.get(key) if response else None

        return {
            "role": get(iam_client.get_role, "Role"),
            "attached_policies": get(iam_client.list_attached_role_policies, "AttachedPolicies"),
            "inline_policies": get(iam_client.list_role_policies, "PolicyNames"),
            "instance_profiles": get(iam_client.list_instance_profiles_for_role,
                                     "InstanceProfiles"),
        }

    def _policy_configuration(self, iam_client, policy_arn: str) -> Dict[str, Any]:
        policy = (self._safe_call(iam_client.get_policy, PolicyArn=policy_arn) or {}).get("Policy")
        version = None
        if policy:
            version = self._safe_call(iam_client.get_policy_version, PolicyArn=policy_arn,
                                      VersionId=policy["DefaultVersionId"])
        entities = self._safe_call(iam_client.list_entities_for_policy, PolicyArn=policy_arn)
        return {
            "policy": policy,
            "policy_version": (version or {}).get("PolicyVersion"),
            "entities": entities,
        }
