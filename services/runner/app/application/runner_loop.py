"""Runner 执行循环：周期性拉取作业、按资源类型分发执行并回报状态与元数据。"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

import httpx

from app.application.bridge import JobDispatchBridge, JobListingError
from app.application.jobs.registry import JobFactoryRegistry
from app.application.provider_manager import ProviderManager
from app.domain.conversion import ConversionError
from app.domain.enums import JobState
from app.domain.models import Job, RunnerMetadata
from app.infra.logging.context import bind_log_context

logger = logging.getLogger(__name__)


class Runner:
    """作业执行循环；同一作业在相邻两次拉取中出现时会被分发两次。"""

    def __init__(
        self,
        *,
        bridge: JobDispatchBridge,
        factories: JobFactoryRegistry,
        provider_manager: ProviderManager,
        poll_interval_seconds: float = 2.0,
        metadata_interval_seconds: float = 10.0,
        max_concurrent_jobs: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bridge = bridge
        self._factories = factories
        self._provider_manager = provider_manager
        self._poll_interval_seconds = poll_interval_seconds
        self._metadata_interval_seconds = metadata_interval_seconds
        self._clock = clock
        self._started_at = clock()
        self._pool = ThreadPoolExecutor(max_workers=max_concurrent_jobs, thread_name_prefix="runner-job")
        self._lock = threading.Lock()
        self._running_jobs = 0

    @property
    def bridge(self) -> JobDispatchBridge:
        return self._bridge

    @property
    def factories(self) -> JobFactoryRegistry:
        return self._factories

    @property
    def provider_manager(self) -> ProviderManager:
        return self._provider_manager

    @property
    def running_jobs(self) -> int:
        with self._lock:
            return self._running_jobs

    def uptime_seconds(self) -> int:
        return int(self._clock() - self._started_at)

    def poll_once(self) -> list[Future[None]]:
        """拉取一次待处理作业并提交执行；拉取失败抛出 JobListingError。"""
        jobs, status_code = self._bridge.list_pending_jobs()
        if jobs:
            logger.info(
                "pending jobs fetched",
                extra={
                    "event": "runner.jobs.fetched",
                    "status_code": status_code,
                    "payload_preview": {"count": len(jobs)},
                },
            )
        return [self._submit(job) for job in jobs]

    def _submit(self, job: Job) -> Future[None]:
        with self._lock:
            self._running_jobs += 1
        return self._pool.submit(self._run_job, job)

    def _run_job(self, job: Job) -> None:
        try:
            self._execute(job)
        finally:
            with self._lock:
                self._running_jobs -= 1

    def _execute(self, job: Job) -> None:
        with bind_log_context(
            runner_id=self._bridge.runner_id,
            job_id=job.id,
            resource_type=job.resource_type.value,
            resource_id=job.resource_id,
        ):
            started = time.perf_counter()
            try:
                prepared = self._factories.create(job)
                self._bridge.update_job_state(job.id, JobState.running)
                prepared.run()
            except Exception as exc:
                logger.exception(
                    "job failed",
                    extra={
                        "event": "runner.job.failed",
                        "op": job.action.value,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                self._report_state(job, JobState.error, exc)
                return
            logger.info(
                "job succeeded",
                extra={
                    "event": "runner.job.succeeded",
                    "op": job.action.value,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            self._report_state(job, JobState.success)

    def _report_state(self, job: Job, state: JobState, job_error: BaseException | None = None) -> None:
        try:
            self._bridge.update_job_state(job.id, state, job_error)
        except httpx.HTTPError as exc:
            logger.error(
                "job state report failed",
                extra={
                    "event": "runner.job.state_report.failed",
                    "op": state.value,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def report_metadata(self) -> None:
        """上报运行时长、已注册 provider 与进行中作业数。"""
        metadata = RunnerMetadata(
            uptime=self.uptime_seconds(),
            providers=self._provider_manager.get_providers(),
            running_jobs=self.running_jobs,
        )
        self._bridge.set_runner_metadata(self._bridge.runner_id, metadata)

    def run(self, stop_event: threading.Event) -> None:
        """循环执行直到 stop_event 被设置；失败只记录日志，下个周期再试。"""
        last_metadata_at: float | None = None
        with bind_log_context(runner_id=self._bridge.runner_id):
            logger.info("runner loop started", extra={"event": "runner.loop.started"})
            while not stop_event.is_set():
                now = self._clock()
                if last_metadata_at is None or now - last_metadata_at >= self._metadata_interval_seconds:
                    try:
                        self.report_metadata()
                    except (httpx.HTTPError, ConversionError) as exc:
                        logger.warning(
                            "runner metadata report failed",
                            extra={
                                "event": "runner.metadata.failed",
                                "error_type": type(exc).__name__,
                                "error": str(exc),
                            },
                        )
                    last_metadata_at = now
                try:
                    self.poll_once()
                except JobListingError as exc:
                    logger.warning(
                        "pending jobs fetch failed",
                        extra={
                            "event": "runner.jobs.fetch_failed",
                            "status_code": exc.status_code,
                            "error_type": type(exc.__cause__).__name__,
                            "error": str(exc),
                        },
                    )
                stop_event.wait(self._poll_interval_seconds)
            logger.info("runner loop stopped", extra={"event": "runner.loop.stopped"})

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
