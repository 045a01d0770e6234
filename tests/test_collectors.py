"""
Collector tests against moto's mocked AWS APIs
"""

import io
import json
import zipfile

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from compliance_scanner.collectors import GLOBAL_REGION
from compliance_scanner.collectors.cloudtrail import CloudTrailCollector
from compliance_scanner.collectors.ec2 import EC2Collector, open_to_world_ports
from compliance_scanner.collectors.iam import IAMCollector
from compliance_scanner.collectors.kms import KMSCollector
from compliance_scanner.collectors.lambda_functions import LambdaCollector
from compliance_scanner.collectors.rds import RDSCollector
from compliance_scanner.collectors.s3 import S3Collector
from compliance_scanner.core.exceptions import UnsupportedResourceError
from compliance_scanner.core.provider import AWSProvider

from conftest import ACCOUNT_ID, make_resource


@mock_aws
def test_s3_buckets_filtered_to_their_region():
    s3 = boto3.client("s3", region_name="us-east-1")
    s3.create_bucket(Bucket="home-bucket")
    s3.create_bucket(Bucket="irish-bucket",
                     CreateBucketConfiguration={"LocationConstraint": "eu-west-1"})
    s3.put_public_access_block(
        Bucket="home-bucket",
        PublicAccessBlockConfiguration={
            "BlockPublicAcls": True,
            "IgnorePublicAcls": True,
            "BlockPublicPolicy": True,
            "RestrictPublicBuckets": True,
        },
    )
    s3.put_bucket_tagging(Bucket="home-bucket",
                          Tagging={"TagSet": [{"Key": "team", "Value": "platform"}]})

    collector = S3Collector(AWSProvider(region="us-east-1"))
    us_buckets = collector.discover_regional(ACCOUNT_ID, "us-east-1")
    eu_buckets = collector.discover_regional(ACCOUNT_ID, "eu-west-1")

    assert [b.name for b in us_buckets] == ["home-bucket"]
    assert [b.name for b in eu_buckets] == ["irish-bucket"]

    bucket = us_buckets[0]
    assert bucket.arn == "arn:aws:s3:::home-bucket"
    assert bucket.tags == {"team": "platform"}
    assert bucket.metadata["public_access_block"]["BlockPublicAcls"] is True


@mock_aws
def test_s3_configuration_marks_missing_parts_as_none():
    s3 = boto3.client("s3", region_name="us-east-1")
    s3.create_bucket(Bucket="plain-bucket")

    collector = S3Collector(AWSProvider(region="us-east-1"))
    [bucket] = collector.discover_regional(ACCOUNT_ID, "us-east-1")
    config = collector.get_configuration(bucket)

    assert config.resource_type == "s3_bucket"
    assert config.configuration["policy"] is None
    assert config.configuration["website"] is None
    assert config.configuration["acl"] is not None


def test_configuration_rejects_foreign_resource_type():
    collector = S3Collector(AWSProvider(region="us-east-1"))
    with pytest.raises(UnsupportedResourceError):
        collector.get_configuration(make_resource("i-1", resource_type="ec2_instance"))


@mock_aws
def test_security_group_exposure():
    ec2 = boto3.client("ec2", region_name="eu-west-1")
    group_id = ec2.create_security_group(GroupName="ssh-open", Description="ssh")["GroupId"]
    ec2.authorize_security_group_ingress(
        GroupId=group_id,
        IpPermissions=[{
            "IpProtocol": "tcp",
            "FromPort": 22,
            "ToPort": 22,
            "IpRanges": [{"CidrIp": "0.0.0.0/0"}],
        }],
    )

    collector = EC2Collector(AWSProvider(region="us-east-1"))
    resources = collector.discover_regional(ACCOUNT_ID, "eu-west-1")

    [group] = [r for r in resources if r.name == "ssh-open"]
    assert group.type == "security_group"
    assert group.region == "eu-west-1"
    assert group.metadata["open_to_world_ports"] == [22]


def test_open_to_world_ports_all_traffic():
    permissions = [{"IpProtocol": "-1", "Ipv6Ranges": [{"CidrIpv6": "::/0"}]}]
    assert 3389 in open_to_world_ports(permissions)
    assert open_to_world_ports([{"IpProtocol": "tcp", "FromPort": 443, "ToPort": 443,
                                 "IpRanges": [{"CidrIp": "0.0.0.0/0"}]}]) == []


@mock_aws
def test_iam_is_discovered_as_global():
    iam = boto3.client("iam", region_name="us-east-1")
    iam.create_user(UserName="alice")
    iam.create_login_profile(UserName="alice", Password="Sup3r-secret!")
    iam.create_user(UserName="deploy-bot")
    iam.create_policy(
        PolicyName="admin-everything",
        PolicyDocument=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{"Effect": "Allow", "Action": "*", "Resource": "*"}],
        }),
    )

    collector = IAMCollector(AWSProvider(region="us-east-1"))
    resources = collector.discover_regional(ACCOUNT_ID, GLOBAL_REGION)

    users = {r.name: r for r in resources if r.type == "iam_user"}
    assert users["alice"].metadata["has_console_access"] is True
    assert users["alice"].metadata["mfa_enabled"] is False
    assert users["deploy-bot"].metadata["has_console_access"] is False
    assert all(r.region == GLOBAL_REGION for r in resources)

    [policy] = [r for r in resources if r.type == "iam_policy"]
    assert policy.metadata["policy_document"]["Statement"][0]["Action"] == "*"


@mock_aws
def test_kms_rotation_status_for_customer_keys():
    kms = boto3.client("kms", region_name="us-east-1")
    key_id = kms.create_key(Description="app key")["KeyMetadata"]["KeyId"]
    kms.enable_key_rotation(KeyId=key_id)

    collector = KMSCollector(AWSProvider(region="us-east-1"))
    [key] = collector.discover_regional(ACCOUNT_ID, "us-east-1")

    assert key.id == key_id
    assert key.metadata["key_manager"] == "CUSTOMER"
    assert key.metadata["rotation_enabled"] is True


@mock_aws
def test_iam_denied_user_detail_does_not_drop_discovery(monkeypatch):
    iam = boto3.client("iam", region_name="us-east-1")
    iam.create_user(UserName="restricted")
    iam.create_user(UserName="visible")
    iam.create_role(RoleName="app-role", AssumeRolePolicyDocument=json.dumps({
        "Version": "2012-10-17",
        "Statement": [{"Effect": "Allow", "Principal": {"Service": "ec2.amazonaws.com"},
                       "Action": "sts:AssumeRole"}],
    }))

    provider = AWSProvider(region="us-east-1")
    iam_client = provider.get_client("iam")
    list_mfa_devices = iam_client.list_mfa_devices

    def denied_for_restricted(**kwargs):
        if kwargs["UserName"] == "restricted":
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}},
                              "ListMFADevices")
        return list_mfa_devices(**kwargs)

    monkeypatch.setattr(iam_client, "list_mfa_devices", denied_for_restricted)

    resources = IAMCollector(provider).discover_regional(ACCOUNT_ID, GLOBAL_REGION)

    users = {r.name: r for r in resources if r.type == "iam_user"}
    assert users["restricted"].metadata["mfa_enabled"] is None
    assert users["visible"].metadata["mfa_enabled"] is False
    assert "app-role" in [r.name for r in resources if r.type == "iam_role"]


@mock_aws
def test_rds_instances_and_configuration():
    rds = boto3.client("rds", region_name="eu-west-1")
    rds.create_db_instance(
        DBInstanceIdentifier="orders-db",
        DBInstanceClass="db.t3.micro",
        Engine="postgres",
        MasterUsername="dbadmin",
        MasterUserPassword="password123",
        AllocatedStorage=20,
        PubliclyAccessible=True,
        StorageEncrypted=False,
        Tags=[{"Key": "team", "Value": "orders"}],
    )

    collector = RDSCollector(AWSProvider(region="us-east-1"))
    [db] = collector.discover_regional(ACCOUNT_ID, "eu-west-1")

    assert db.id == "orders-db"
    assert db.type == "rds_instance"
    assert db.region == "eu-west-1"
    assert db.arn.startswith("arn:aws:rds:eu-west-1:")
    assert db.tags == {"team": "orders"}
    assert db.metadata["publicly_accessible"] is True
    assert db.metadata["storage_encrypted"] is False
    assert collector.discover_regional(ACCOUNT_ID, "us-east-1") == []

    config = collector.get_configuration(db)
    assert config.resource_type == "rds_instance"
    assert config.configuration["db_instance"]["DBInstanceIdentifier"] == "orders-db"


class _RecordingRDSClient:
    """Answers describe_db_instances with an instance that has no groups"""

    def __init__(self):
        self.calls = []

    def describe_db_instances(self, **kwargs):
        self.calls.append("describe_db_instances")
        return {"DBInstances": [{"DBInstanceIdentifier": kwargs["DBInstanceIdentifier"]}]}

    def describe_db_snapshots(self, **kwargs):
        self.calls.append("describe_db_snapshots")
        return {"DBSnapshots": []}

    def describe_db_log_files(self, **kwargs):
        self.calls.append("describe_db_log_files")
        return {"DescribeDBLogFiles": []}

    def describe_db_parameter_groups(self, **kwargs):
        self.calls.append("describe_db_parameter_groups")

    def describe_db_subnet_groups(self, **kwargs):
        self.calls.append("describe_db_subnet_groups")

    def describe_option_groups(self, **kwargs):
        self.calls.append("describe_option_groups")


def test_rds_configuration_skips_missing_groups(monkeypatch):
    collector = RDSCollector(AWSProvider(region="us-east-1"))
    fake = _RecordingRDSClient()
    monkeypatch.setattr(collector, "client", lambda region=None: fake)
    db = make_resource("legacy-db", region="eu-west-1", service="rds",
                       resource_type="rds_instance")

    configuration = collector.get_configuration(db).configuration

    assert configuration["parameter_groups"] is None
    assert configuration["subnet_group"] is None
    assert configuration["option_groups"] is None
    assert configuration["snapshots"] == []
    assert fake.calls == ["describe_db_instances", "describe_db_snapshots",
                          "describe_db_log_files"]


@mock_aws
def test_rds_configuration_for_vanished_instance():
    collector = RDSCollector(AWSProvider(region="us-east-1"))
    db = make_resource("gone-db", service="rds", resource_type="rds_instance")
    assert collector.get_configuration(db).configuration == {"db_instance": None}


def _lambda_zip() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("handler.py", "def handle(event, context):\n    return event\n")
    return buffer.getvalue()


@mock_aws
def test_lambda_functions_and_configuration():
    role_arn = boto3.client("iam", region_name="us-east-1").create_role(
        RoleName="lambda-exec",
        AssumeRolePolicyDocument=json.dumps({
            "Version": "2012-10-17",
            "Statement": [{"Effect": "Allow", "Principal": {"Service": "lambda.amazonaws.com"},
                           "Action": "sts:AssumeRole"}],
        }),
    )["Role"]["Arn"]
    boto3.client("lambda", region_name="us-east-1").create_function(
        FunctionName="thumbnailer",
        Runtime="python3.11",
        Role=role_arn,
        Handler="handler.handle",
        Code={"ZipFile": _lambda_zip()},
        Environment={"Variables": {"STAGE": "prod", "BUCKET": "images"}},
        Tags={"team": "media"},
    )

    collector = LambdaCollector(AWSProvider(region="us-east-1"))
    [function] = collector.discover_regional(ACCOUNT_ID, "us-east-1")

    assert function.id == "thumbnailer"
    assert function.type == "lambda_function"
    assert function.tags == {"team": "media"}
    assert function.metadata["runtime"] == "python3.11"
    assert function.metadata["environment_variable_names"] == ["BUCKET", "STAGE"]

    config = collector.get_configuration(function).configuration
    assert config["function"]["Configuration"]["FunctionName"] == "thumbnailer"
    assert config["policy"] is None


@mock_aws
def test_cloudtrail_trails_only_in_home_region():
    boto3.client("s3", region_name="us-east-1").create_bucket(Bucket="audit-logs")
    cloudtrail = boto3.client("cloudtrail", region_name="us-east-1")
    cloudtrail.create_trail(
        Name="org-trail",
        S3BucketName="audit-logs",
        IsMultiRegionTrail=True,
        EnableLogFileValidation=True,
    )

    collector = CloudTrailCollector(AWSProvider(region="us-east-1"))
    # The multi-region trail is also listed in eu-west-1, as a shadow copy
    assert collector.discover_regional(ACCOUNT_ID, "eu-west-1") == []

    [trail] = collector.discover_regional(ACCOUNT_ID, "us-east-1")
    assert trail.id == "org-trail"
    assert trail.region == "us-east-1"
    assert trail.metadata["is_multi_region_trail"] is True
    assert trail.metadata["log_file_validation_enabled"] is True

    config = collector.get_configuration(trail).configuration
    assert config["trail"]["Name"] == "org-trail"
    assert config["status"] is not None
