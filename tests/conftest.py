"""
Shared fixtures: fake AWS credentials, in-memory repositories and
collectors/evaluators that never touch AWS.
"""

import asyncio
from typing import List, Optional

import pytest

from compliance_scanner.collectors import GLOBAL_REGION, ResourceCollector
from compliance_scanner.core.discovery import ResourceDiscovery
from compliance_scanner.core.evaluator import RuleContext, RuleEvaluator
from compliance_scanner.core.framework import (
    CloudResource,
    RuleResult,
    ScanJob,
    Tenant,
)
from compliance_scanner.core.orchestrator import ScanOrchestrator
from compliance_scanner.core.provider import AWSProvider
from compliance_scanner.core.registry import CollectorRegistry
from compliance_scanner.config import ScannerSettings
from compliance_scanner.storage import (
    InMemoryFindingsRepository,
    InMemoryScanJobRepository,
    InMemoryTenantRepository,
)

TENANT_ID = "tenant-1"
ACCOUNT_ID = "123456789012"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Mocked AWS Credentials for moto and boto3 sessions"""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


def make_resource(resource_id: str, region: str = "us-east-1", service: str = "static",
                  resource_type: str = "static_thing", **metadata) -> CloudResource:
    return CloudResource(
        id=resource_id,
        type=resource_type,
        arn=f"arn:aws:{service}:{region}:{ACCOUNT_ID}:{resource_id}",
        name=resource_id,
        account_id=ACCOUNT_ID,
        region=region,
        service=service,
        metadata=metadata,
    )


class StaticCollector(ResourceCollector):
    """One resource per region"""

    service_name = "static"
    resource_types = ["static_thing"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        return [make_resource(f"thing-{region}", region=region)]

    def _fetch_configuration(self, resource: CloudResource):
        return {"size": 1}


class FailingCollector(ResourceCollector):
    service_name = "broken"
    resource_types = ["broken_thing"]

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        raise RuntimeError("AccessDenied")

    def _fetch_configuration(self, resource: CloudResource):
        raise RuntimeError("AccessDenied")


class DirectoryCollector(ResourceCollector):
    service_name = "directory"
    resource_types = ["directory_user"]
    is_global = True

    def discover_regional(self, account_id: str, region: str) -> List[CloudResource]:
        return [make_resource("alice", region=region, service="directory",
                              resource_type="directory_user")]

    def _fetch_configuration(self, resource: CloudResource):
        return {"groups": []}


class StaticEvaluator(RuleEvaluator):
    """Fails every resource with a fixed severity and framework"""

    def __init__(self, severity: str = "high", framework: str = "soc2",
                 error: Optional[Exception] = None):
        self.severity = severity
        self.framework = framework
        self.error = error
        self.contexts: List[RuleContext] = []

    async def execute_rules(self, resources, context):
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return [
            RuleResult(
                rule_id="static_rule",
                resource_arn=resource.arn,
                compliant=False,
                severity=self.severity,
                framework=self.framework,
                resource_type=resource.type,
                service=resource.service,
                region=resource.region,
                account_id=resource.account_id,
                title="Static rule",
            )
            for resource in resources
        ]


class BlockingEvaluator(StaticEvaluator):
    """Waits until released, so a test can act while evaluation is in flight"""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute_rules(self, resources, context):
        self.started.set()
        await self.release.wait()
        return await super().execute_rules(resources, context)


@pytest.fixture
def provider():
    return AWSProvider(region="us-east-1")


@pytest.fixture
def registry(provider):
    registry = CollectorRegistry(provider, register_defaults=False)
    for collector_class in (StaticCollector, FailingCollector, DirectoryCollector):
        registry.register_collector(collector_class)
    return registry


@pytest.fixture
def discovery(registry):
    return ResourceDiscovery(registry, max_workers=4)


@pytest.fixture
def tenant_repository():
    return InMemoryTenantRepository([Tenant(id=TENANT_ID, name="Acme")])


@pytest.fixture
def build_orchestrator(tenant_repository, discovery):
    """Factory so each test can choose its evaluator"""

    def build(evaluator: RuleEvaluator) -> ScanOrchestrator:
        return ScanOrchestrator(
            tenant_repository=tenant_repository,
            scan_job_repository=InMemoryScanJobRepository(),
            findings_repository=InMemoryFindingsRepository(),
            discovery=discovery,
            rule_evaluator=evaluator,
            settings=ScannerSettings(api_base_url="https://api.example.com"),
        )

    return build


@pytest.fixture
def scan_job():
    return ScanJob(
        id="scan-1",
        tenant_id=TENANT_ID,
        account_id=ACCOUNT_ID,
        regions=["us-east-1", "eu-west-1"],
        services=["static"],
        frameworks=["SOC2"],
        settings={"tags": ["nightly", "prod"]},
    )
