"""
Turns rule evaluation results into deduplicated, hashed findings
"""

import hashlib
import json
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from .framework import (
    ComplianceFramework,
    Finding,
    FindingStatus,
    RuleResult,
    ScanJob,
    Severity,
    utc_now,
)
from .scoring import (
    calculate_compliance_score,
    group_findings_by_framework,
    group_findings_by_region,
    group_findings_by_resource_type,
    group_findings_by_service,
    group_findings_by_severity,
)

logger = logging.getLogger(__name__)

SEVERITY_ORDER = [s.value for s in Severity]

_SEVERITIES = {s.value: s for s in Severity}
_FRAMEWORKS = {f.value.upper(): f for f in ComplianceFramework}


def generate_finding_hash(rule_id: str, resource_arn: str, tenant_id: str,
                          framework: str) -> str:
    """Stable identity of a finding across scans.

    Callers pass the normalized framework value (``SOC2``, ``HIPAA``...), so
    ``hipaa`` and ``HIPAA`` hash alike. Hashes computed from the raw framework
    string by earlier scanner versions will therefore not match for rules that
    reported a non-canonical spelling.
    """
    payload = json.dumps(
        {
            "ruleId": rule_id,
            "resourceArn": resource_arn,
            "tenantId": tenant_id,
            "framework": framework,
        },
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def map_severity(value: Optional[str]) -> Optional[Severity]:
    """Case-insensitive lookup, None when the value is not a known severity"""
    if not value:
        return None
    return _SEVERITIES.get(str(value).strip().lower())


def map_framework(value: Optional[str]) -> Optional[ComplianceFramework]:
    if not value:
        return None
    return _FRAMEWORKS.get(str(value).strip().upper())


def _dedupe(values: Iterable[Any]) -> List[str]:
    seen = set()
    tags = []
    for value in values:
        if value is None or value == "":
            continue
        tag = str(value)
        if tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


class ResultProcessor:
    """Converts non-compliant rule results into Findings"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def process_results(self, rule_results: List[RuleResult], job: ScanJob) -> List[Finding]:
        findings = []
        for result in rule_results:
            if result.compliant:
                continue
            findings.append(self._create_finding(result, job))

        self.logger.info(
            f"Processed {len(rule_results)} rule results into {len(findings)} findings "
            f"for scan {job.id}"
        )
        return findings

    def _create_finding(self, result: RuleResult, job: ScanJob) -> Finding:
        # Rule metadata first; tags are carried on the finding itself
        metadata: Dict[str, Any] = {
            key: value for key, value in result.metadata.items() if key != "tags"
        }
        metadata.update({
            "rule_version": result.rule_version,
            "execution_time": result.execution_time,
            "scan_type": job.scan_type.value,
            "requested_by": job.requested_by,
        })

        severity = map_severity(result.severity)
        if severity is None:
            self.logger.warning(
                f"Unknown severity {result.severity!r} from rule {result.rule_id}, using medium"
            )
            severity = Severity.MEDIUM
            metadata["raw_severity"] = result.severity

        framework = map_framework(result.framework)
        if framework is None:
            self.logger.warning(
                f"Unknown framework {result.framework!r} from rule {result.rule_id}, using SOC2"
            )
            framework = ComplianceFramework.SOC2
            metadata["raw_framework"] = result.framework

        now = utc_now()
        return Finding(
            id=str(uuid.uuid4()),
            tenant_id=job.tenant_id,
            scan_id=job.id,
            rule_id=result.rule_id,
            resource_arn=result.resource_arn,
            resource_type=result.resource_type,
            service=result.service,
            region=result.region,
            account_id=result.account_id or job.account_id,
            severity=severity,
            framework=framework,
            hash=generate_finding_hash(
                result.rule_id, result.resource_arn, job.tenant_id, framework.value
            ),
            status=FindingStatus.ACTIVE,
            title=result.title,
            description=result.description,
            recommendation=result.recommendation,
            evidence=list(result.evidence),
            tags=self.extract_tags(result, job, severity, framework),
            first_seen=now,
            last_seen=now,
            count=1,
            metadata=metadata,
        )

    @staticmethod
    def extract_tags(result: RuleResult, job: ScanJob,
                     severity: Severity, framework: ComplianceFramework) -> List[str]:
        """Service, framework, severity, scan type and region, then job and rule tags"""
        tags: List[Any] = [
            result.service,
            framework.value,
            severity.value,
            job.scan_type.value,
            result.region,
        ]
        tags.extend(job.settings.get("tags") or [])
        tags.extend(result.metadata.get("tags") or [])
        return _dedupe(tags)

    @staticmethod
    def get_top_findings_by_severity(findings: List[Finding], limit: int = 10) -> List[Finding]:
        """Most severe first; newest first within a severity"""
        by_recency = sorted(findings, key=lambda f: f.first_seen, reverse=True)
        ranked = sorted(
            by_recency,
            key=lambda f: SEVERITY_ORDER.index(Severity(f.severity).value),
        )
        return ranked[:limit]

    def get_findings_summary(self, findings: List[Finding],
                             total_resources: Optional[int] = None) -> Dict[str, Any]:
        if total_resources is None:
            total_resources = len(findings)
        return {
            "total": len(findings),
            "by_severity": group_findings_by_severity(findings),
            "by_framework": group_findings_by_framework(findings),
            "by_service": group_findings_by_service(findings),
            "by_region": group_findings_by_region(findings),
            "by_resource_type": group_findings_by_resource_type(findings),
            "top_findings": self.get_top_findings_by_severity(findings),
            "compliance_score": calculate_compliance_score(findings, total_resources),
        }
