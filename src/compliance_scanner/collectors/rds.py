"""
RDS collector
"""

from typing import Any, Dict, List

from . import ResourceCollector
from ..core.framework import CloudResource


class RDSCollector(ResourceCollector):
    """Discovers RDS database instances"""

    service_name = "rds"
    resource_types = ["rds_instance"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        rds_client = self.client(region)
        resources = []

        for db in self._paginate(rds_client, "describe_db_instances", "DBInstances"):
            identifier = db["DBInstanceIdentifier"]
            db_arn = db.get("DBInstanceArn",
                            f"arn:aws:rds:{region}:{account_id}:db:{identifier}")
            tags = self._safe_call(rds_client.list_tags_for_resource, ResourceName=db_arn) or {}

            resources.append(CloudResource(
                id=identifier,
                type="rds_instance",
                arn=db_arn,
                name=identifier,
                account_id=account_id,
                region=region,
                service="rds",
                resource_type="instance",
                tags=self._extract_tags(tags.get("TagList")),
                metadata={
                    "engine": db.get("Engine"),
                    "engine_version": db.get("EngineVersion"),
                    "db_instance_class": db.get("DBInstanceClass"),
                    "db_instance_status": db.get("DBInstanceStatus"),
                    "allocated_storage": db.get("AllocatedStorage"),
                    "storage_type": db.get("StorageType"),
                    "storage_encrypted": db.get("StorageEncrypted", False),
                    "kms_key_id": db.get("KmsKeyId"),
                    "vpc_id": db.get("DBSubnetGroup", {}).get("VpcId"),
                    "availability_zone": db.get("AvailabilityZone"),
                    "multi_az": db.get("MultiAZ", False),
                    "publicly_accessible": db.get("PubliclyAccessible", False),
                    "backup_retention_period": db.get("BackupRetentionPeriod"),
                    "auto_minor_version_upgrade": db.get("AutoMinorVersionUpgrade"),
                    "deletion_protection": db.get("DeletionProtection", False),
                    "iam_database_authentication_enabled": db.get(
                        "IAMDatabaseAuthenticationEnabled", False
                    ),
                    "performance_insights_enabled": db.get("PerformanceInsightsEnabled"),
                    "enabled_cloudwatch_logs_exports": db.get("EnabledCloudwatchLogsExports", []),
                    "ca_certificate_identifier": db.get("CACertificateIdentifier"),
                },
            ))

        self.logger.info(f"RDS discovery in {region}: {len(resources)} instances")
        return resources

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        rds_client = self.client(resource.region)
        described = self._safe_call(rds_client.describe_db_instances,
                                    DBInstanceIdentifier=resource.id)
        instances = (described or {}).get("DBInstances", [])
        if not instances:
            return {"db_instance": None}
        db = instances[0]

        parameter_groups = db.get("DBParameterGroups") or [{}]
        option_groups = db.get("OptionGroupMemberships") or [{}]
        subnet_group = db.get("DBSubnetGroup") or {}

        def lookup(fn, key, **kwargs):
            # A missing group name means there is nothing to look up
            if any(value is None for value in kwargs.values()):
                return None
            response = self._safe_call(fn, **kwargs)
            return response.get(key) if response else None

        subnet_groups = lookup(rds_client.describe_db_subnet_groups, "DBSubnetGroups",
                               DBSubnetGroupName=subnet_group.get("DBSubnetGroupName"))
        return {
            "db_instance": db,
            "parameter_groups": lookup(
                rds_client.describe_db_parameter_groups, "DBParameterGroups",
                DBParameterGroupName=parameter_groups[0].get("DBParameterGroupName"),
            ),
            "subnet_group": subnet_groups[0] if subnet_groups else None,
            "option_groups": lookup(
                rds_client.describe_option_groups, "OptionGroupsList",
                OptionGroupName=option_groups[0].get("OptionGroupName"),
            ),
            "snapshots": lookup(rds_client.describe_db_snapshots, "DBSnapshots",
                                DBInstanceIdentifier=resource.id),
            "log_files": lookup(rds_client.describe_db_log_files, "DescribeDBLogFiles",
                                DBInstanceIdentifier=resource.id),
        }
