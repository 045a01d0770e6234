"""
Tests for the built-in compliance rules and evaluator
"""

import pytest

from compliance_scanner.checks import BuiltinRuleEvaluator
from compliance_scanner.checks.data import KMSKeyRotationRule, RDSPublicAccessRule
from compliance_scanner.checks.ec2 import EC2InstancePublicIPRule, SecurityGroupOpenPortsRule
from compliance_scanner.checks.iam import IAMPolicyTooPermissiveRule, IAMUserWithoutMFARule
from compliance_scanner.checks.s3 import S3BucketEncryptionRule, S3BucketPublicAccessRule
from compliance_scanner.core.evaluator import RuleContext
from compliance_scanner.core.framework import ComplianceFramework
from compliance_scanner.core.registry import RuleRegistry

from conftest import make_resource

FULL_BLOCK = {
    "BlockPublicAcls": True,
    "IgnorePublicAcls": True,
    "BlockPublicPolicy": True,
    "RestrictPublicBuckets": True,
}


def _bucket(**metadata):
    return make_resource("bucket", service="s3", resource_type="s3_bucket", **metadata)


def test_registry_holds_all_rules():
    registry = RuleRegistry()
    assert len(registry.get_all_rules()) == 10
    assert {r.rule_id for r in registry.get_rules_by_service("iam")} == {
        "iam_user_no_mfa", "iam_policy_too_permissive",
    }
    assert registry.get_rule("kms_key_rotation_enabled").service == "kms"
    assert registry.get_rule("nope") is None


def test_rule_frameworks_are_known():
    known = {f.value for f in ComplianceFramework}
    for rule in RuleRegistry().get_all_rules():
        assert set(rule.frameworks) <= known, rule.rule_id


def test_s3_public_access_block():
    rule = S3BucketPublicAccessRule()
    assert rule.check(_bucket(public_access_block=FULL_BLOCK))[0]

    partial = dict(FULL_BLOCK, RestrictPublicBuckets=False)
    compliant, evidence = rule.check(_bucket(public_access_block=partial))
    assert not compliant
    assert evidence == [{"disabled_settings": ["RestrictPublicBuckets"]}]

    assert not rule.check(_bucket(public_access_block=None))[0]


def test_s3_encryption():
    rule = S3BucketEncryptionRule()
    assert rule.check(_bucket(encryption_enabled=True, encryption_algorithms=["AES256"]))[0]
    assert not rule.check(_bucket(encryption_enabled=False))[0]


def test_security_group_open_ports():
    rule = SecurityGroupOpenPortsRule()
    sg = make_resource("sg-1", service="ec2", resource_type="security_group",
                       open_to_world_ports=[22, 3389])
    compliant, evidence = rule.check(sg)
    assert not compliant
    assert evidence == [{"exposed_ports": [22, 3389]}]

    closed = make_resource("sg-2", service="ec2", resource_type="security_group",
                           open_to_world_ports=[])
    assert rule.check(closed)[0]


def test_public_ip_rule_respects_opt_out_tag():
    rule = EC2InstancePublicIPRule()
    instance = make_resource("i-1", service="ec2", resource_type="ec2_instance",
                             state="running", public_ip="203.0.113.10")
    assert rule.applies_to(instance)
    assert not rule.check(instance)[0]

    instance.tags = {"PublicIPRequired": "true"}
    assert not rule.applies_to(instance)

    stopped = make_resource("i-2", service="ec2", resource_type="ec2_instance",
                            state="stopped", public_ip=None)
    assert not rule.applies_to(stopped)


def test_mfa_only_required_for_console_users():
    rule = IAMUserWithoutMFARule()
    console_user = make_resource("bob", service="iam", resource_type="iam_user",
                                 has_console_access=True, mfa_enabled=False)
    api_user = make_resource("ci", service="iam", resource_type="iam_user",
                             has_console_access=False, mfa_enabled=False)
    assert not rule.check(console_user)[0]
    assert rule.check(api_user)[0]

    unreadable = make_resource("eve", service="iam", resource_type="iam_user",
                               has_console_access=True, mfa_enabled=None)
    assert rule.applies_to(console_user)
    assert not rule.applies_to(unreadable)


def test_permissive_policy():
    rule = IAMPolicyTooPermissiveRule()
    admin = make_resource("admin", service="iam", resource_type="iam_policy", policy_document={
        "Version": "2012-10-17",
        "Statement": {"Effect": "Allow", "Action": "*", "Resource": "*"},
    })
    compliant, evidence = rule.check(admin)
    assert not compliant
    assert "Grants full administrative access" in evidence[0]["reasons"]

    scoped = make_resource("reader", service="iam", resource_type="iam_policy", policy_document={
        "Statement": [
            {"Effect": "Allow", "Action": ["s3:GetObject"], "Resource": "arn:aws:s3:::b/*"},
            {"Effect": "Deny", "Action": "*", "Resource": "*"},
        ],
    })
    assert rule.check(scoped)[0]


def test_rds_public_access():
    rule = RDSPublicAccessRule()
    db = make_resource("db", service="rds", resource_type="rds_instance", publicly_accessible=True)
    assert not rule.check(db)[0]


def test_kms_rotation_skips_aws_managed_keys():
    rule = KMSKeyRotationRule()
    aws_managed = make_resource("k1", service="kms", resource_type="kms_key",
                                key_manager="AWS", rotation_enabled=None)
    customer = make_resource("k2", service="kms", resource_type="kms_key",
                             key_manager="CUSTOMER", rotation_enabled=False)
    assert not rule.applies_to(aws_managed)
    assert rule.applies_to(customer)
    assert not rule.check(customer)[0]


def test_evaluate_emits_one_result_per_selected_framework():
    rule = S3BucketEncryptionRule()
    results = rule.evaluate(_bucket(encryption_enabled=False), frameworks=["soc2", "pci", "nist"])
    assert [r.framework for r in results] == ["SOC2", "PCI"]
    assert all(not r.compliant for r in results)
    assert results[0].recommendation == rule.recommendation


@pytest.mark.asyncio
async def test_builtin_evaluator_filters_by_service():
    evaluator = BuiltinRuleEvaluator()
    resources = [
        _bucket(encryption_enabled=False, public_access_block=FULL_BLOCK),
        make_resource("db", service="rds", resource_type="rds_instance",
                      publicly_accessible=True, storage_encrypted=True),
    ]
    context = RuleContext(tenant_id="tenant-1", scan_id="scan-1",
                          frameworks=["SOC2"], services=["s3"])

    results = await evaluator.execute_rules(resources, context)

    assert {r.rule_id for r in results} == {
        "s3_bucket_public_access_block", "s3_bucket_encryption_enabled",
    }
    failing = [r for r in results if not r.compliant]
    assert [r.rule_id for r in failing] == ["s3_bucket_encryption_enabled"]
