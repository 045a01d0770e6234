"""
Resource discovery fan-out across regions and services
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from ..collectors import GLOBAL_REGION, ResourceCollector
from ..config import SUPPORTED_REGIONS
from .framework import CloudResource, ResourceConfig, ScanJob
from .registry import CollectorRegistry

logger = logging.getLogger(__name__)


class ResourceDiscovery:
    """Runs every requested collector concurrently and collects the results.

    Regional collectors run once per region, global collectors once per scan.
    Blocking boto3 calls are dispatched to a thread pool; a failing collector
    is recorded and never cancels its siblings.
    """

    def __init__(self, registry: CollectorRegistry, max_workers: int = 10,
                 supported_regions: Optional[List[str]] = None):
        self.registry = registry
        self.max_workers = max_workers
        self.supported_regions = list(supported_regions or SUPPORTED_REGIONS)

    async def discover_resources(self, job: ScanJob,
                                 errors: Optional[List[Dict[str, Any]]] = None) -> List[CloudResource]:
        if errors is None:
            errors = []

        collectors = self._select_collectors(job.services)
        regional = [c for c in collectors if not c.is_global]
        global_collectors = [c for c in collectors if c.is_global]

        regions = list(dict.fromkeys(job.regions)) or [self.registry.provider.region]
        for region in regions:
            if region not in self.supported_regions:
                logger.warning(f"Region {region} is not in the supported region list")

        logger.info(
            f"Starting discovery for scan {job.id}: {len(regions)} regions, "
            f"{len(regional)} regional and {len(global_collectors)} global services"
        )

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            tasks = [
                self._discover_region(executor, regional, job.account_id, region, errors)
                for region in regions
            ]
            tasks.extend(
                self._run_collector(executor, collector, job.account_id, GLOBAL_REGION, errors)
                for collector in global_collectors
            )
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        resources: List[CloudResource] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error(f"Discovery task failed for scan {job.id}: {outcome}")
                errors.append({"service": None, "region": None, "error": str(outcome)})
                continue
            resources.extend(outcome)

        logger.info(
            f"Discovery for scan {job.id} found {len(resources)} resources "
            f"({len(errors)} collector errors)"
        )
        return resources

    def _select_collectors(self, services: List[str]) -> List[ResourceCollector]:
        requested = list(dict.fromkeys(services)) or self.registry.get_supported_services()
        collectors = []
        for service in requested:
            collector = self.registry.get_collector(service)
            if collector is None:
                logger.warning(f"Unsupported service: {service}")
                continue
            collectors.append(collector)
        return collectors

    async def _discover_region(self, executor: ThreadPoolExecutor,
                               collectors: List[ResourceCollector], account_id: str,
                               region: str, errors: List[Dict[str, Any]]) -> List[CloudResource]:
        outcomes = await asyncio.gather(
            *(self._run_collector(executor, c, account_id, region, errors) for c in collectors),
            return_exceptions=True,
        )
        resources: List[CloudResource] = []
        for collector, outcome in zip(collectors, outcomes):
            if isinstance(outcome, BaseException):
                self._record_error(errors, collector.service_name, region, outcome)
                continue
            resources.extend(outcome)
        return resources

    async def _run_collector(self, executor: ThreadPoolExecutor, collector: ResourceCollector,
                             account_id: str, region: str,
                             errors: List[Dict[str, Any]]) -> List[CloudResource]:
        loop = asyncio.get_running_loop()
        try:
            resources = await loop.run_in_executor(
                executor, collector.discover_regional, account_id, region
            )
        except Exception as e:
            self._record_error(errors, collector.service_name, region, e)
            return []

        logger.debug(f"Discovered {len(resources)} {collector.service_name} resources in {region}")
        return resources

    @staticmethod
    def _record_error(errors: List[Dict[str, Any]], service: str, region: str, error: BaseException):
        logger.error(f"Error discovering {service} resources in {region}: {error}")
        errors.append({"service": service, "region": region, "error": str(error)})

    async def get_resource_configuration(self, resource: CloudResource) -> ResourceConfig:
        """Deep configuration for one resource.

        Raises UnsupportedResourceError when no collector handles the type.
        """
        collector = self.registry.get_collector_for_resource_type(resource.type)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, collector.get_configuration, resource)

    def get_supported_services(self) -> List[str]:
        return self.registry.get_supported_services()

    def get_supported_resource_types(self) -> List[str]:
        return self.registry.get_supported_resource_types()

    def get_supported_regions(self) -> List[str]:
        return list(self.supported_regions)
