"""
Scan orchestration: job lifecycle, background execution and the
discovery -> evaluation -> processing -> scoring pipeline
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Coroutine, Dict, List, Optional

from ..config import (
    BASE_SCAN_DURATION_MS,
    PER_FRAMEWORK_DURATION_MS,
    PER_REGION_DURATION_MS,
    PER_SERVICE_DURATION_MS,
    ScannerSettings,
)
from ..storage import FindingFilter, FindingsRepository, ScanJobRepository, TenantRepository
from .discovery import ResourceDiscovery
from .evaluator import RuleContext, RuleEvaluator
from .exceptions import ScanConflictError, ScanNotFoundError, TenantNotFoundError
from .framework import (
    CloudResource,
    Finding,
    Page,
    ScanJob,
    ScanProgress,
    ScanRequest,
    ScanResponse,
    ScanStatus,
    ScanType,
    utc_now,
)
from .processor import ResultProcessor
from .scoring import (
    calculate_compliance_score,
    group_findings_by_framework,
    group_findings_by_region,
    group_findings_by_resource_type,
    group_findings_by_service,
    group_findings_by_severity,
)

logger = logging.getLogger(__name__)

STAGE_DISCOVERY = (10, "Discovering AWS resources")
STAGE_EVALUATION = (30, "Executing compliance rules")
STAGE_PROCESSING = (70, "Processing results")
STAGE_REPORT = (90, "Generating report")
STAGE_COMPLETED = (100, "Completed")


def estimate_scan_duration(regions: List[str], services: List[str],
                           frameworks: List[str]) -> int:
    """Rough duration in milliseconds, for the caller's expectations only"""
    return (
        BASE_SCAN_DURATION_MS
        + PER_REGION_DURATION_MS * len(regions)
        + PER_SERVICE_DURATION_MS * len(services)
        + PER_FRAMEWORK_DURATION_MS * len(frameworks)
    )


def _progress(stage) -> ScanProgress:
    percentage, name = stage
    return ScanProgress(current=percentage, total=100, percentage=percentage, stage=name)


ErrorCallback = Callable[[str, BaseException], None]


class ScanSupervisor:
    """Runs scan pipelines in the background.

    Concurrency is bounded by a semaphore. Running tasks are tracked by scan
    id so callers can wait for them, and unexpected pipeline errors are put
    on the ``errors`` queue as ``(scan_id, exception)`` and passed to the
    optional callback.
    """

    def __init__(self, max_concurrent: int = 4, on_error: Optional[ErrorCallback] = None):
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Dict[str, asyncio.Task] = {}
        self.errors: asyncio.Queue = asyncio.Queue()
        self.on_error = on_error

    def submit(self, scan_id: str, pipeline: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._run(scan_id, pipeline), name=f"scan-{scan_id}"
        )
        self._tasks[scan_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(scan_id, None))
        return task

    async def _run(self, scan_id: str, pipeline: Coroutine[Any, Any, Any]):
        try:
            async with self._semaphore:
                await pipeline
        except asyncio.CancelledError:
            logger.warning(f"Scan {scan_id} task was cancelled")
            # Never started while waiting on the semaphore
            pipeline.close()
            raise
        except Exception as e:
            logger.error(f"Scan {scan_id} pipeline raised: {e}")
            self.errors.put_nowait((scan_id, e))
            if self.on_error is not None:
                self.on_error(scan_id, e)

    @property
    def active_scans(self) -> List[str]:
        return list(self._tasks)

    async def wait(self, scan_id: str):
        task = self._tasks.get(scan_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self):
        """Wait for every submitted scan to settle"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self):
        """Cancel every task outright; pipelines record the cancellation on their job"""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class ScanOrchestrator:
    """Owns the scan job state machine and sequences the scan pipeline"""

    def __init__(self, tenant_repository: TenantRepository,
                 scan_job_repository: ScanJobRepository,
                 findings_repository: FindingsRepository,
                 discovery: ResourceDiscovery,
                 rule_evaluator: RuleEvaluator,
                 result_processor: Optional[ResultProcessor] = None,
                 supervisor: Optional[ScanSupervisor] = None,
                 settings: Optional[ScannerSettings] = None):
        self.settings = settings or ScannerSettings()
        self.tenants = tenant_repository
        self.scan_jobs = scan_job_repository
        self.findings = findings_repository
        self.discovery = discovery
        self.rule_evaluator = rule_evaluator
        self.result_processor = result_processor or ResultProcessor()
        self.supervisor = supervisor or ScanSupervisor(self.settings.max_concurrent_scans)

    async def start_scan(self, request: ScanRequest,
                         request_id: Optional[str] = None) -> ScanResponse:
        """Create a scan job and run it in the background"""
        tenant = await self.tenants.get_by_id(request.tenant_id)
        if tenant is None:
            raise TenantNotFoundError(request.tenant_id)

        scan_id = str(uuid.uuid4())
        metadata = dict(request.metadata)
        if request_id:
            metadata["request_id"] = request_id

        job = ScanJob(
            id=scan_id,
            tenant_id=request.tenant_id,
            account_id=request.account_id,
            scan_type=ScanType(request.scan_type),
            status=ScanStatus.INITIALIZING,
            regions=list(dict.fromkeys(request.regions)),
            services=list(dict.fromkeys(request.services)),
            frameworks=list(dict.fromkeys(request.frameworks)),
            settings=dict(request.settings),
            requested_by=request.requested_by,
            metadata=metadata,
        )
        await self.scan_jobs.create(job)
        logger.info(
            f"Created scan {scan_id} for tenant {job.tenant_id} account {job.account_id} "
            f"(request {request_id})"
        )

        self.supervisor.submit(scan_id, self._execute_scan(job))

        return ScanResponse(
            scan_id=scan_id,
            status=ScanStatus.INITIALIZING,
            message="Scan initiated successfully",
            estimated_duration=estimate_scan_duration(job.regions, job.services, job.frameworks),
            scan_url=f"{self.settings.api_base_url}/scans/{scan_id}",
        )

    async def _execute_scan(self, job: ScanJob):
        started = time.perf_counter()
        try:
            if not await self._start(job):
                return

            discovery_errors: List[Dict[str, Any]] = []
            resources = await self.discovery.discover_resources(job, discovery_errors)

            if not await self._checkpoint(job, STAGE_EVALUATION):
                return
            context = RuleContext(
                tenant_id=job.tenant_id,
                scan_id=job.id,
                frameworks=list(job.frameworks),
                services=list(job.services),
            )
            rule_results = await self.rule_evaluator.execute_rules(resources, context)

            if not await self._checkpoint(job, STAGE_PROCESSING):
                return
            findings = self.result_processor.process_results(rule_results, job)
            if not await self._is_live(job):
                logger.info(f"Scan {job.id} ended before its findings were written")
                return
            await self.findings.batch_write(findings)

            if not await self._checkpoint(job, STAGE_REPORT):
                return
            summary = self._build_summary(resources, findings, discovery_errors, started)
            await self.scan_jobs.update_results(job.id, job.tenant_id, summary)
            await self.scan_jobs.update_status(
                job.id, job.tenant_id, ScanStatus.COMPLETED, _progress(STAGE_COMPLETED)
            )
            logger.info(
                f"Scan {job.id} completed: {summary['total_resources']} resources, "
                f"{summary['total_findings']} findings, score {summary['compliance_score']}"
            )
        except ScanConflictError as e:
            # Cancelled while a stage was running
            logger.info(f"Scan {job.id} stopped: {e}")
        except asyncio.CancelledError:
            await self._mark_cancelled(job, "shutdown")
            raise
        except Exception as e:
            logger.error(f"Scan {job.id} failed: {e}")
            await self._mark_failed(job, e)
            raise

    async def _start(self, job: ScanJob) -> bool:
        current = await self.scan_jobs.get_by_id(job.id, job.tenant_id)
        if current is None or current.is_terminal:
            logger.info(f"Scan {job.id} was stopped before it started")
            return False
        await self.scan_jobs.update_status(
            job.id, job.tenant_id, ScanStatus.IN_PROGRESS, _progress(STAGE_DISCOVERY)
        )
        return True

    async def _is_live(self, job: ScanJob) -> bool:
        current = await self.scan_jobs.get_by_id(job.id, job.tenant_id)
        return current is not None and not current.is_terminal

    async def _checkpoint(self, job: ScanJob, stage) -> bool:
        """Record progress, or return False when the job is already terminal"""
        if await self._is_live(job) and \
                await self.scan_jobs.update_progress(job.id, job.tenant_id, _progress(stage)):
            return True
        # The write is refused once the job is terminal, even if the read above raced it
        if await self._is_live(job):
            return True
        logger.info(f"Scan {job.id} is no longer running, stopping at '{stage[1]}'")
        return False

    async def _mark_cancelled(self, job: ScanJob, cancelled_by: str):
        """Best effort, like _mark_failed"""
        try:
            await self.cancel_scan(job.id, job.tenant_id, cancelled_by=cancelled_by)
        except (ScanConflictError, ScanNotFoundError) as e:
            logger.info(f"Scan {job.id} was not running when its task was cancelled: {e}")
        except Exception as e:
            logger.error(f"Failed to record cancellation of scan {job.id}: {e}")

    async def _mark_failed(self, job: ScanJob, error: Exception):
        """Best effort: a storage error here is logged, not raised"""
        try:
            current = await self.scan_jobs.get_by_id(job.id, job.tenant_id)
            if current is None or current.is_terminal:
                return
            await self.scan_jobs.update_results(
                job.id, job.tenant_id, {"error": str(error), "failed_at": utc_now()}
            )
            progress = ScanProgress(
                current=current.progress.current,
                total=current.progress.total,
                percentage=current.progress.percentage,
                stage="Failed",
            )
            await self.scan_jobs.update_status(job.id, job.tenant_id, ScanStatus.FAILED, progress)
        except ScanConflictError as e:
            logger.info(f"Scan {job.id} reached a terminal state before failing: {e}")
        except Exception as e:
            logger.error(f"Failed to record failure of scan {job.id}: {e}")

    def _build_summary(self, resources: List[CloudResource], findings: List[Finding],
                       discovery_errors: List[Dict[str, Any]], started: float) -> Dict[str, Any]:
        return {
            "total_resources": len(resources),
            "total_findings": len(findings),
            "findings_by_severity": group_findings_by_severity(findings),
            "findings_by_framework": group_findings_by_framework(findings),
            "findings_by_service": group_findings_by_service(findings),
            "findings_by_region": group_findings_by_region(findings),
            "findings_by_resource_type": group_findings_by_resource_type(findings),
            "compliance_score": calculate_compliance_score(findings, len(resources)),
            "scan_duration": int((time.perf_counter() - started) * 1000),
            "completed_at": utc_now(),
            "discovery_errors": discovery_errors,
        }

    async def get_scan_status(self, scan_id: str, tenant_id: str) -> Optional[ScanJob]:
        return await self.scan_jobs.get_by_id(scan_id, tenant_id)

    async def get_scan_results(self, scan_id: str, tenant_id: str) -> Optional[Dict[str, Any]]:
        """Job, the findings last seen by this scan and tenant-wide statistics"""
        job = await self.scan_jobs.get_by_id(scan_id, tenant_id)
        if job is None:
            return None

        findings: List[Finding] = []
        token = None
        while True:
            page = await self.findings.get_findings_by_tenant(
                tenant_id, FindingFilter(scan_id=scan_id), next_token=token
            )
            findings.extend(page.items)
            token = page.next_token
            if not token:
                break

        statistics = await self.findings.get_finding_statistics(tenant_id)
        return {"job": job, "findings": findings, "statistics": statistics}

    async def list_scans(self, tenant_id: str, limit: Optional[int] = None,
                         next_token: Optional[str] = None) -> Page:
        return await self.scan_jobs.get_scan_jobs_by_tenant(
            tenant_id, limit or self.settings.default_page_size, next_token
        )

    async def cancel_scan(self, scan_id: str, tenant_id: str,
                          cancelled_by: str = "system") -> ScanJob:
        """Mark a running scan cancelled; in-flight stages stop at their next checkpoint"""
        job = await self.scan_jobs.get_by_id(scan_id, tenant_id)
        if job is None:
            raise ScanNotFoundError(scan_id)
        if job.is_terminal:
            raise ScanConflictError(f"Scan {scan_id} is already {job.status.value}")

        await self.scan_jobs.update_results(
            scan_id, tenant_id, {"cancelled_by": cancelled_by, "cancelled_at": utc_now()}
        )
        progress = ScanProgress(
            current=job.progress.current,
            total=job.progress.total,
            percentage=job.progress.percentage,
            stage="Cancelled",
        )
        cancelled = await self.scan_jobs.update_status(
            scan_id, tenant_id, ScanStatus.CANCELLED, progress
        )
        logger.info(f"Scan {scan_id} cancelled by {cancelled_by}")
        return cancelled

    async def wait_for_scan(self, scan_id: str, tenant_id: str) -> Optional[ScanJob]:
        """Block until the background pipeline for a scan has settled"""
        await self.supervisor.wait(scan_id)
        return await self.scan_jobs.get_by_id(scan_id, tenant_id)

    async def shutdown(self, cancelled_by: str = "shutdown"):
        """Cancel every active scan and wait for its pipeline to stop at a checkpoint"""
        for scan_id in self.supervisor.active_scans:
            job = await self.scan_jobs.get_by_id(scan_id)
            if job is not None:
                await self._mark_cancelled(job, cancelled_by)
        await self.supervisor.drain()
