"""
Compliance Scanner CLI Interface
Command-line interface for running compliance scans against an AWS account
"""

import asyncio
import json
import sys
import logging
from typing import Any, Dict

import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .checks import BuiltinRuleEvaluator
from .config import AWSCredentials, ScannerSettings
from .core.discovery import ResourceDiscovery
from .core.exceptions import ComplianceScannerError
from .core.framework import ScanRequest, ScanStatus, ScanType, Tenant
from .core.orchestrator import ScanOrchestrator
from .core.output import OutputEngine
from .core.provider import AWSProvider
from .core.registry import CollectorRegistry, RuleRegistry
from .storage import (
    InMemoryFindingsRepository,
    InMemoryScanJobRepository,
    InMemoryTenantRepository,
)

console = Console()

SERVICE_DESCRIPTIONS = {
    "s3": "Amazon Simple Storage Service - Buckets and their configuration",
    "iam": "Identity and Access Management - Users, roles and managed policies (global)",
    "ec2": "Amazon Elastic Compute Cloud - Instances and security groups",
    "cloudtrail": "AWS CloudTrail - Trails and logging status",
    "kms": "AWS Key Management Service - Keys, rotation and grants",
    "rds": "Amazon Relational Database Service - DB instances",
    "lambda": "AWS Lambda - Functions, policies and URL configuration",
}

SEVERITY_INFO = {
    "critical": ("🔴", "Immediate action required"),
    "high": ("🟠", "Address within 24 hours"),
    "medium": ("🟡", "Address within 1 week"),
    "low": ("🟢", "Address when convenient"),
}


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, verbose):
    """Cloud Compliance Scanner"""
    ctx.ensure_object(dict)

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Reduce noise from boto3
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


@cli.command()
@click.option('--tenant-id', default='default', show_default=True, help='Tenant the findings belong to')
@click.option('--account-id', help='AWS account ID (looked up through STS when omitted)')
@click.option('--profile', help='AWS profile to use')
@click.option('--access-key-id', help='AWS access key ID')
@click.option('--secret-access-key', help='AWS secret access key')
@click.option('--session-token', help='AWS session token')
@click.option('--role-arn', help='ARN of IAM role to assume')
@click.option('--external-id', help='External ID for role assumption')
@click.option('--regions', '-r', multiple=True,
              help='AWS regions to scan (default: AWS_DEFAULT_REGION or us-east-1)')
@click.option('--services', '-s', multiple=True, help='Services to scan (default: all)')
@click.option('--frameworks', '-f', multiple=True, help='Compliance frameworks (default: all)')
@click.option('--scan-type', type=click.Choice([t.value for t in ScanType]),
              default=ScanType.FULL_ENVIRONMENT.value, show_default=True)
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.option('--max-workers', type=int, default=10, help='Maximum discovery worker threads')
@click.option('--quiet', '-q', is_flag=True, help='Quiet mode - JSON output only')
@click.option('--pretty', is_flag=True, help='Pretty print JSON output')
def scan(
    tenant_id, account_id, profile, access_key_id, secret_access_key,
    session_token, role_arn, external_id, regions, services, frameworks,
    scan_type, output, max_workers, quiet, pretty
):
    """Execute a compliance scan"""

    settings = ScannerSettings.from_env()
    settings.max_discovery_workers = max_workers
    regions = list(regions) or [settings.default_region]

    if not quiet:
        console.print("[bold blue]🛡️ Cloud Compliance Scanner[/bold blue]")
        console.print(f"[dim]Scanning regions: {', '.join(regions)}[/dim]")

    credentials = AWSCredentials(
        profile=profile,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=session_token,
        role_arn=role_arn,
        external_id=external_id,
        region=regions[0]
    )

    try:
        provider = AWSProvider.from_credentials(credentials)
        request = ScanRequest(
            tenant_id=tenant_id,
            account_id=account_id or provider.account_id,
            regions=list(regions),
            scan_type=ScanType(scan_type),
            services=list(services),
            frameworks=list(frameworks),
            requested_by="cli",
        )
        report = asyncio.run(_execute_scan(provider, settings, request, quiet))
    except ComplianceScannerError as e:
        error_result = {"error": True, "message": str(e), "metadata": {"version": __version__}}
        print(json.dumps(error_result))
        if not quiet:
            console.print(f"[red]❌ Scan failed: {e}[/red]")
        sys.exit(1)

    if output:
        OutputEngine.save_report(report, output)
        if not quiet:
            console.print(f"[green]✅ Results written to {output}[/green]")
    else:
        print(json.dumps(report, indent=2 if pretty else None, default=str))

    # Exit with error code if the scan failed or critical/high findings exist
    if report['metadata']['status'] != ScanStatus.COMPLETED.value:
        sys.exit(1)
    by_severity = report['summary']['by_severity']
    if by_severity.get('critical', 0) or by_severity.get('high', 0):
        sys.exit(1)


async def _execute_scan(provider: AWSProvider, settings: ScannerSettings,
                        request: ScanRequest, quiet: bool) -> Dict[str, Any]:
    """Run one scan with in-memory storage and return the JSON report"""
    tenants = InMemoryTenantRepository([Tenant(id=request.tenant_id, name=request.tenant_id)])
    orchestrator = ScanOrchestrator(
        tenant_repository=tenants,
        scan_job_repository=InMemoryScanJobRepository(settings.default_page_size),
        findings_repository=InMemoryFindingsRepository(settings.default_page_size),
        discovery=ResourceDiscovery(CollectorRegistry(provider), settings.max_discovery_workers,
                                    settings.supported_regions),
        rule_evaluator=BuiltinRuleEvaluator(),
        settings=settings,
    )

    response = await orchestrator.start_scan(request)

    if not quiet:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Scanning AWS resources...", total=None)
            await orchestrator.wait_for_scan(response.scan_id, request.tenant_id)
            progress.update(task, description="Scan completed!")
    else:
        await orchestrator.wait_for_scan(response.scan_id, request.tenant_id)

    results = await orchestrator.get_scan_results(response.scan_id, request.tenant_id)
    report = OutputEngine.format_json(
        results["job"], results["findings"], {"estimated_duration": response.estimated_duration}
    )

    if not quiet:
        _display_summary(report)

    return report


def _display_summary(report: dict):
    """Display scan summary in rich format"""
    summary = report['summary']
    metadata = report['metadata']

    table = Table(title="📊 Scan Summary", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", width=20)
    table.add_column("Value", style="green", width=15)
    table.add_column("Details", style="dim", width=30)

    table.add_row("Status", metadata['status'], metadata['scan_id'])
    table.add_row("Resources", str(summary['total_resources']), "Discovered across all regions")
    table.add_row("Findings", str(summary['total_findings']), "Non-compliant rule results")
    score = summary.get('compliance_score')
    table.add_row("Compliance Score", f"{score}/100" if score is not None else "n/a",
                  "Severity-weighted")
    if summary.get('discovery_errors'):
        table.add_row("Discovery Errors", str(len(summary['discovery_errors'])),
                      "Services or regions skipped")
    if summary.get('error'):
        table.add_row("Error", "-", summary['error'])

    console.print(table)

    if summary['total_findings'] > 0:
        severity_table = Table(title="🎯 Findings by Severity", show_header=True, header_style="bold red")
        severity_table.add_column("Severity", style="cyan")
        severity_table.add_column("Count", style="magenta")
        severity_table.add_column("Priority", style="dim")

        for severity, (emoji, priority) in SEVERITY_INFO.items():
            count = summary['by_severity'].get(severity, 0)
            if count > 0:
                severity_table.add_row(f"{emoji} {severity.upper()}", str(count), priority)

        console.print(severity_table)


@cli.command()
def list_rules():
    """List all built-in compliance rules"""
    registry = RuleRegistry()

    console.print("[bold blue]Available Compliance Rules[/bold blue]\n")

    for service in SERVICE_DESCRIPTIONS:
        rules = registry.get_rules_by_service(service)
        if not rules:
            continue
        console.print(f"[bold green]{service.upper()}:[/bold green]")
        for rule in rules:
            console.print(f"  • {rule.rule_id} - {rule.title} [dim]({', '.join(rule.frameworks)})[/dim]")
        console.print()


@cli.command()
def list_services():
    """List all supported AWS services"""
    console.print("[bold blue]Available AWS Services[/bold blue]\n")

    for service, description in SERVICE_DESCRIPTIONS.items():
        console.print(f"[bold green]{service}[/bold green]: {description}")


def main():
    """Main CLI entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️ Scan interrupted by user[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()
