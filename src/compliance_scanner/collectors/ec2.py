"""
EC2 collector
Instances and security groups
"""

from typing import Any, Dict, List

from . import ResourceCollector
from ..core.framework import CloudResource

SENSITIVE_PORTS = [22, 3389, 1433, 3306, 5432, 6379, 27017]


def open_to_world_ports(ip_permissions: List[Dict[str, Any]]) -> List[int]:
    """Sensitive ports reachable from 0.0.0.0/0 or ::/0"""
    exposed = set()
    for rule in ip_permissions or []:
        world = any(r.get("CidrIp") == "0.0.0.0/0" for r in rule.get("IpRanges", [])) or \
            any(r.get("CidrIpv6") == "::/0" for r in rule.get("Ipv6Ranges", []))
        if not world:
            continue
        if rule.get("IpProtocol") == "-1":
            exposed.update(SENSITIVE_PORTS)
            continue
        from_port = rule.get("FromPort", 0)
        to_port = rule.get("ToPort", 65535)
        exposed.update(p for p in SENSITIVE_PORTS if from_port <= p <= to_port)
    return sorted(exposed)


class EC2Collector(ResourceCollector):
    """Discovers EC2 instances and security groups"""

    service_name = "ec2"
    resource_types = ["ec2_instance", "security_group"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        ec2_client = self.client(region)
        instances = self._discover_instances(ec2_client, account_id, region)
        security_groups = self._discover_security_groups(ec2_client, account_id, region)

        self.logger.info(
            f"EC2 discovery in {region}: {len(instances)} instances, "
            f"{len(security_groups)} security groups"
        )
        return instances + security_groups

    def _discover_instances(self, ec2_client, account_id: str, region: str) -> List[CloudResource]:
        resources = []
        for reservation in self._paginate(ec2_client, "describe_instances", "Reservations"):
            for instance in reservation.get("Instances", []):
                state = instance.get("State", {}).get("Name")
                if state in ("terminated", "shutting-down"):
                    continue

                instance_id = instance["InstanceId"]
                resources.append(CloudResource(
                    id=instance_id,
                    type="ec2_instance",
                    arn=f"arn:aws:ec2:{region}:{account_id}:instance/{instance_id}",
                    name=self._extract_tags(instance.get("Tags")).get("Name", instance_id),
                    account_id=account_id,
                    region=region,
                    service="ec2",
                    resource_type="instance",
                    tags=self._extract_tags(instance.get("Tags")),
                    metadata={
                        "instance_type": instance.get("InstanceType"),
                        "state": state,
                        "launch_time": self._isoformat(instance.get("LaunchTime")),
                        "vpc_id": instance.get("VpcId"),
                        "subnet_id": instance.get("SubnetId"),
                        "public_ip": instance.get("PublicIpAddress"),
                        "security_groups": [
                            sg.get("GroupId") for sg in instance.get("SecurityGroups", [])
                        ],
                        "key_name": instance.get("KeyName"),
                        "image_id": instance.get("ImageId"),
                        "platform": instance.get("Platform"),
                        "monitoring": instance.get("Monitoring", {}).get("State"),
                        "imds_v2_required": (
                            instance.get("MetadataOptions", {}).get("HttpTokens") == "required"
                        ),
                    },
                ))
        return resources

    def _discover_security_groups(self, ec2_client, account_id: str,
                                  region: str) -> List[CloudResource]:
        resources = []
        for sg in self._paginate(ec2_client, "describe_security_groups", "SecurityGroups"):
            group_id = sg["GroupId"]
            resources.append(CloudResource(
                id=group_id,
                type="security_group",
                arn=f"arn:aws:ec2:{region}:{account_id}:security-group/{group_id}",
                name=sg.get("GroupName", group_id),
                account_id=account_id,
                region=region,
                service="ec2",
                resource_type="security-group",
                tags=self._extract_tags(sg.get("Tags")),
                metadata={
                    "description": sg.get("Description"),
                    "vpc_id": sg.get("VpcId"),
                    "owner_id": sg.get("OwnerId"),
                    "ingress_rule_count": len(sg.get("IpPermissions", [])),
                    "open_to_world_ports": open_to_world_ports(sg.get("IpPermissions", [])),
                },
            ))
        return resources

    def _fetch_configuration(self, resource: CloudResource) -> Dict[str, Any]:
        ec2_client = self.client(resource.region)
        if resource.type == "ec2_instance":
            return self._instance_configuration(ec2_client, resource.id)
        return self._security_group_configuration(ec2_client, resource.id)

    def _instance_configuration(self, ec2_client, instance_id: str) -> Dict[str, Any]:
        described = self._safe_call(ec2_client.describe_instances, InstanceIds=[instance_id])
        reservations = (described or {}).get("Reservations", [])
        instances = reservations[0].get("Instances", []) if reservations else []
        if not instances:
            return {"instance": None, "user_data": None, "status": None}

        user_data = self._safe_call(ec2_client.describe_instance_attribute,
                                    InstanceId=instance_id, Attribute="userData")
        status = self._safe_call(ec2_client.describe_instance_status, InstanceIds=[instance_id])
        statuses = (status or {}).get("InstanceStatuses", [])
        return {
            "instance": instances[0],
            "user_data": (user_data or {}).get("UserData", {}).get("Value"),
            "status": statuses[0] if statuses else None,
        }

    def _security_group_configuration(self, ec2_client, group_id: str) -> Dict[str, Any]:
        described = self._safe_call(ec2_client.describe_security_groups, GroupIds=[group_id])
        groups = (described or {}).get("SecurityGroups", [])
        if not groups:
            return {"security_group": None}
        sg = groups[0]
        return {
            "security_group": {
                "group_id": sg.get("GroupId"),
                "group_name": sg.get("GroupName"),
                "description": sg.get("Description"),
                "vpc_id": sg.get("VpcId"),
                "owner_id": sg.get("OwnerId"),
                "ip_permissions": sg.get("IpPermissions", []),
                "ip_permissions_egress": sg.get("IpPermissionsEgress", []),
                "tags": sg.get("Tags", []),
            }
        }
