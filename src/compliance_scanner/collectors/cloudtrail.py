"""
CloudTrail collector
describe_trails also returns shadow copies of multi-region trails, so trails
are kept only in their home region.
"""

from typing import Any, Dict, List

from . import ResourceCollector
from ..core.framework import CloudResource


class CloudTrailCollector(ResourceCollector):
    """Discovers CloudTrail trails"""

    service_name = "cloudtrail"
    resource_types = ["cloudtrail_trail"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        trail_client = self.client(region)
        resources = []

        for trail in trail_client.describe_trails().get("trailList", []):
            if trail.get("HomeRegion") != region:
                continue

            trail_arn = trail["TrailARN"]
            resources.append(CloudResource(
                id=trail["Name"],
                type="cloudtrail_trail",
                arn=trail_arn,
                name=trail["Name"],
                account_id=account_id,
                region=region,
                service="cloudtrail",
                resource_type="trail",
                tags=self._trail_tags(trail_client, trail_arn),
                metadata={
                    "s3_bucket_name": trail.get("S3BucketName"),
                    "s3_key_prefix": trail.get("S3KeyPrefix"),
                    "include_global_service_events": trail.get("IncludeGlobalServiceEvents"),
                    "is_multi_region_trail": trail.get("IsMultiRegionTrail", False),
                    "log_file_validation_enabled": trail.get("LogFileValidationEnabled", False),
                    "cloudwatch_logs_log_group_arn": trail.get("CloudWatchLogsLogGroupArn"),
                    "kms_key_id": trail.get("KmsKeyId"),
                    "has_custom_event_selectors": trail.get("HasCustomEventSelectors"),
                    "has_insight_selectors": trail.get("HasInsightSelectors"),
                    "is_organization_trail": trail.get("IsOrganizationTrail"),
                },
            ))

        self.logger.info(f"CloudTrail discovery in {region}: {len(resources)} trails")
        return resources

    def _trail_tags(self, trail_client, trail_arn: str) -> Dict[str, str]:
        response = self._safe_call(trail_client.list_tags, ResourceIdList=[trail_arn]) or {}
        tags = {}
        for resource_tag in response.get("ResourceTagList", []):
            tags.update(self._extract_tags(resource_tag.get("TagsList")))
        return tags

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        trail_client = self.client(resource.region)
        name = resource.name
        return {
            "trail": (self._safe_call(trail_client.get_trail, Name=name) or {}).get("Trail"),
            "status": self._safe_call(trail_client.get_trail_status, Name=name),
            "event_selectors": self._safe_call(trail_client.get_event_selectors, TrailName=name),
            "insight_selectors": self._safe_call(trail_client.get_insight_selectors,
                                                 TrailName=name),
            "tags": self._trail_tags(trail_client, resource.arn),
        }
