"""
S3 collector
Buckets are listed globally and filtered to the region they live in
"""

from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from . import ResourceCollector
from ..core.framework import CloudResource


def _pick(response: Optional[Dict[str, Any]], key: str):
    return response.get(key) if response else None


class S3Collector(ResourceCollector):
    """Discovers S3 buckets and their security-relevant settings"""

    service_name = "s3"
    resource_types = ["s3_bucket"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        s3_client = self.client(region)
        resources = []

        for bucket in s3_client.list_buckets().get("Buckets", []):
            bucket_name = bucket["Name"]
            try:
                bucket_region = self._bucket_region(s3_client, bucket_name)
                if bucket_region != region:
                    continue

                resources.append(CloudResource(
                    id=f"s3://{bucket_name}",
                    type="s3_bucket",
                    arn=f"arn:aws:s3:::{bucket_name}",
                    name=bucket_name,
                    account_id=account_id,
                    region=bucket_region,
                    service="s3",
                    resource_type="bucket",
                    tags=self._bucket_tags(s3_client, bucket_name),
                    metadata=self._snapshot(s3_client, bucket_name, bucket, bucket_region),
                ))
            except ClientError as e:
                self.logger.error(f"Failed to process S3 bucket {bucket_name}: {e}")

        self.logger.info(f"S3 discovery in {region}: {len(resources)} buckets")
        return resources

    @staticmethod
    def _bucket_region(s3_client, bucket_name: str) -> str:
        location = s3_client.get_bucket_location(Bucket=bucket_name).get("LocationConstraint")
        # us-east-1 reports no constraint; "EU" is the legacy name for eu-west-1
        if not location:
            return "us-east-1"
        if location == "EU":
            return "eu-west-1"
        return location

    def _bucket_tags(self, s3_client, bucket_name: str) -> Dict[str, str]:
        tagging = self._safe_call(s3_client.get_bucket_tagging, Bucket=bucket_name)
        return self._extract_tags(_pick(tagging, "TagSet"))

    def _snapshot(self, s3_client, bucket_name: str, bucket: Dict[str, Any],
                  bucket_region: str) -> Dict[str, Any]:
        public_access = self._safe_call(s3_client.get_public_access_block, Bucket=bucket_name)
        encryption = self._safe_call(s3_client.get_bucket_encryption, Bucket=bucket_name)
        versioning = self._safe_call(s3_client.get_bucket_versioning, Bucket=bucket_name)

        encryption_rules = _pick(_pick(encryption, "ServerSideEncryptionConfiguration"), "Rules") or []
        return {
            "creation_date": self._isoformat(bucket.get("CreationDate")),
            "location": bucket_region,
            "public_access_block": _pick(public_access, "PublicAccessBlockConfiguration"),
            "encryption_enabled": bool(encryption_rules),
            "encryption_algorithms": [
                rule.get("ApplyServerSideEncryptionByDefault", {}).get("SSEAlgorithm")
                for rule in encryption_rules
            ],
            "versioning_status": _pick(versioning, "Status") or "Disabled",
        }

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        s3_client = self.client(resource.region)
        bucket = resource.name

        def get(fn, key=None):
            response = self._safe_call(fn, Bucket=bucket)
            return _pick(response, key) if key else response

        return {
            "encryption": get(s3_client.get_bucket_encryption, "ServerSideEncryptionConfiguration"),
            "versioning": get(s3_client.get_bucket_versioning),
            "public_access_block": get(s3_client.get_public_access_block,
                                       "PublicAccessBlockConfiguration"),
            "policy": get(s3_client.get_bucket_policy, "Policy"),
            "acl": get(s3_client.get_bucket_acl),
            "lifecycle": get(s3_client.get_bucket_lifecycle_configuration, "Rules"),
            "notifications": get(s3_client.get_bucket_notification_configuration),
            "website": get(s3_client.get_bucket_website),
            "cors": get(s3_client.get_bucket_cors, "CORSRules"),
            "logging": get(s3_client.get_bucket_logging, "LoggingEnabled"),
            "replication": get(s3_client.get_bucket_replication, "ReplicationConfiguration"),
            "request_payment": get(s3_client.get_bucket_request_payment, "Payer"),
            "tagging": get(s3_client.get_bucket_tagging, "TagSet"),
        }
