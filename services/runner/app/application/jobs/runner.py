"""Runner 作业工厂：provider 安装与更新类作业，仅需遥测能力。"""

from __future__ import annotations

from typing import Any, Protocol

from app.application.jobs.base import BaseJobFactory, JobExecutor
from app.application.provider_manager import ProviderManager
from app.domain.enums import ResourceType, RunnerEvent
from app.infra.telemetry import TelemetryService


class RunnerJobCapabilities(Protocol):
    def track_telemetry_event(self, event: RunnerEvent, client_id: str, props: dict[str, Any]) -> None: ...


class RemoteRunnerJobCapabilities:
    def __init__(self, telemetry: TelemetryService) -> None:
        self._telemetry = telemetry

    def track_telemetry_event(self, event: RunnerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._telemetry.track_runner_event(event, client_id, props)


class RunnerJobFactory(BaseJobFactory):
    resource_type = ResourceType.runner

    def __init__(
        self,
        *,
        capabilities: RunnerJobCapabilities,
        provider_manager: ProviderManager,
        executor: JobExecutor | None = None,
    ) -> None:
        super().__init__(executor)
        self.capabilities = capabilities
        self.provider_manager = provider_manager
