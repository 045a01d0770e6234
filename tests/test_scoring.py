"""
Tests for compliance scoring and finding aggregation
"""

import random

from compliance_scanner.core.framework import (
    ComplianceFramework,
    Finding,
    FindingStatus,
    Severity,
)
from compliance_scanner.core.scoring import (
    calculate_compliance_score,
    group_findings_by_framework,
    group_findings_by_region,
    group_findings_by_resource_type,
    group_findings_by_service,
    group_findings_by_severity,
    group_findings_by_status,
)


def _finding(severity, framework=ComplianceFramework.SOC2, service="s3", region="us-east-1",
             resource_type="s3_bucket", status=FindingStatus.ACTIVE, index=0):
    return Finding(
        id=f"f-{index}",
        tenant_id="tenant-1",
        scan_id="scan-1",
        rule_id="rule",
        resource_arn=f"arn:aws:s3:::bucket-{index}",
        resource_type=resource_type,
        service=service,
        region=region,
        account_id="123456789012",
        severity=severity,
        framework=framework,
        hash=f"hash-{index}",
        status=status,
    )


def test_score_with_critical_and_high_findings():
    findings = [
        _finding(Severity.CRITICAL, index=0),
        _finding(Severity.CRITICAL, index=1),
        _finding(Severity.HIGH, index=2),
    ]
    assert calculate_compliance_score(findings, 10) == 75.0


def test_score_without_findings_is_perfect():
    assert calculate_compliance_score([], 25) == 100.0


def test_score_without_resources_is_perfect():
    assert calculate_compliance_score([_finding(Severity.CRITICAL)], 0) == 100.0


def test_score_never_negative():
    findings = [_finding(Severity.CRITICAL, index=i) for i in range(5)]
    assert calculate_compliance_score(findings, 1) == 0.0


def test_score_rounds_to_two_decimals():
    # weighted 2 / (3 * 10) -> 93.333...
    assert calculate_compliance_score([_finding(Severity.MEDIUM)], 3) == 93.33


def test_score_non_increasing_as_findings_are_added():
    findings = []
    previous = calculate_compliance_score(findings, 20)
    for index, severity in enumerate([Severity.LOW, Severity.MEDIUM, Severity.HIGH,
                                      Severity.CRITICAL, Severity.LOW]):
        findings.append(_finding(severity, index=index))
        score = calculate_compliance_score(findings, 20)
        assert score <= previous
        previous = score


def test_score_accepts_plain_string_severities():
    assert calculate_compliance_score([_finding("low")], 1) == 90.0


def test_severity_counts_sum_to_total_regardless_of_order():
    severities = [Severity.CRITICAL, Severity.HIGH, Severity.HIGH, Severity.MEDIUM,
                  Severity.LOW, Severity.LOW, Severity.LOW]
    findings = [_finding(s, index=i) for i, s in enumerate(severities)]
    expected = group_findings_by_severity(findings)

    shuffled = list(findings)
    random.Random(7).shuffle(shuffled)

    assert group_findings_by_severity(shuffled) == expected
    assert sum(expected.values()) == len(findings)
    assert expected == {"critical": 1, "high": 2, "medium": 1, "low": 3}


def test_grouping_by_other_dimensions():
    findings = [
        _finding(Severity.HIGH, framework=ComplianceFramework.PCI, service="ec2",
                 region="eu-west-1", resource_type="security_group", index=0),
        _finding(Severity.LOW, framework=ComplianceFramework.SOC2, service="s3",
                 region="us-east-1", resource_type="s3_bucket",
                 status=FindingStatus.SUPPRESSED, index=1),
        _finding(Severity.LOW, framework=ComplianceFramework.PCI, service="s3",
                 region="us-east-1", resource_type="s3_bucket", index=2),
    ]

    assert group_findings_by_framework(findings) == {"PCI": 2, "SOC2": 1}
    assert group_findings_by_service(findings) == {"ec2": 1, "s3": 2}
    assert group_findings_by_region(findings) == {"eu-west-1": 1, "us-east-1": 2}
    assert group_findings_by_resource_type(findings) == {"security_group": 1, "s3_bucket": 2}
    assert group_findings_by_status(findings) == {"active": 2, "suppressed": 1}


def test_grouping_empty_input():
    assert group_findings_by_severity([]) == {}
