"""
KMS collector
"""

from typing import Any, Dict, List

from botocore.exceptions import ClientError

from . import ResourceCollector
from ..core.framework import CloudResource


class KMSCollector(ResourceCollector):
    """Discovers KMS keys"""

    service_name = "kms"
    resource_types = ["kms_key"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        kms_client = self.client(region)
        resources = []

        for key in self._paginate(kms_client, "list_keys", "Keys"):
            key_id = key["KeyId"]
            try:
                meta = kms_client.describe_key(KeyId=key_id)["KeyMetadata"]
            except ClientError as e:
                self.logger.error(f"Failed to process KMS key {key_id}: {e}")
                continue

            rotation = None
            if meta.get("KeyManager") == "CUSTOMER" and meta.get("KeySpec", "SYMMETRIC_DEFAULT") \
                    == "SYMMETRIC_DEFAULT":
                rotation = self._safe_call(kms_client.get_key_rotation_status, KeyId=key_id)
            tags = self._safe_call(kms_client.list_resource_tags, KeyId=key_id) or {}

            resources.append(CloudResource(
                id=meta["KeyId"],
                type="kms_key",
                arn=meta["Arn"],
                name=meta["KeyId"],
                account_id=account_id,
                region=region,
                service="kms",
                resource_type="key",
                tags=self._extract_tags(tags.get("Tags"), "TagKey", "TagValue"),
                metadata={
                    "key_usage": meta.get("KeyUsage"),
                    "key_state": meta.get("KeyState"),
                    "description": meta.get("Description"),
                    "creation_date": self._isoformat(meta.get("CreationDate")),
                    "enabled": meta.get("Enabled"),
                    "key_manager": meta.get("KeyManager"),
                    "key_spec": meta.get("KeySpec"),
                    "origin": meta.get("Origin"),
                    "multi_region": meta.get("MultiRegion", False),
                    "rotation_enabled": (rotation or {}).get("KeyRotationEnabled"),
                },
            ))

        self.logger.info(f"KMS discovery in {region}: {len(resources)} keys")
        return resources

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        kms_client = self.client(resource.region)
        key_id = resource.id

        def get(fn, key=None, **extra):
            response = self._safe_call(fn, KeyId=key_id, **extra)
            if response is None:
                return None
            return response.get(key) if key else response

        return {
            "key": get(kms_client.describe_key, "KeyMetadata"),
            "policy": get(kms_client.get_key_policy, "Policy", PolicyName="default"),
            "rotation_status": get(kms_client.get_key_rotation_status),
            "grants": get(kms_client.list_grants, "Grants"),
            "aliases": get(kms_client.list_aliases, "Aliases"),
        }
