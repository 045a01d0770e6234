"""
Output formatting and report generation
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import __version__
from .framework import Finding, ScanJob
from .scoring import group_findings_by_severity, group_findings_by_status, \
    group_findings_by_service, group_findings_by_framework

logger = logging.getLogger(__name__)


class OutputEngine:
    """Handle output formatting and report generation"""

    @staticmethod
    def format_json(job: ScanJob, findings: List[Finding],
                    metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Format a finished scan as a JSON report"""
        if metadata is None:
            metadata = {}

        results = job.results or {}
        report = {
            "metadata": {
                "tool": "compliance-scanner",
                "version": __version__,
                "report_timestamp": datetime.now(timezone.utc).isoformat(),
                "scan_id": job.id,
                "tenant_id": job.tenant_id,
                "account_id": job.account_id,
                "scan_type": job.scan_type.value,
                "status": job.status.value,
                "regions": job.regions,
                "services": job.services,
                "frameworks": job.frameworks,
                "started_at": job.started_at,
                "completed_at": job.completed_at,
                **metadata
            },
            "summary": {
                "total_resources": results.get("total_resources", 0),
                "total_findings": len(findings),
                "compliance_score": results.get("compliance_score"),
                "by_status": group_findings_by_status(findings),
                "by_severity": group_findings_by_severity(findings),
                "by_service": group_findings_by_service(findings),
                "by_framework": group_findings_by_framework(findings),
                "discovery_errors": results.get("discovery_errors", []),
            },
            "findings": [finding.to_dict() for finding in findings]
        }

        if "error" in results:
            report["summary"]["error"] = results["error"]

        return report

    @staticmethod
    def save_report(report: Dict[str, Any], output_file: str):
        """Save JSON report to file"""
        try:
            output_path = Path(output_file)
            output_path.parent.mkdir(parents=True, exist_ok=True)

            with open(output_path, 'w') as f:
                json.dump(report, f, indent=2, sort_keys=True, default=str)

            logger.info(f"Report saved to: {output_path}")

        except OSError as e:
            logger.error(f"Error saving report: {str(e)}")
            raise
