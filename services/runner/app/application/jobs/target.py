"""目标作业工厂：声明目标执行器所需的控制面能力并提供远程实现。"""

from __future__ import annotations

from typing import Any, Protocol

from app.application.jobs.base import BaseJobFactory, JobExecutor, fetch_target
from app.application.provider_manager import ProviderManager
from app.domain.enums import ResourceType, ServerEvent
from app.domain.models import Target
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.logging.job_logs import JobLoggerFactory
from app.infra.telemetry import TelemetryService


class TargetJobCapabilities(Protocol):
    """目标作业能力集合。"""

    def find_target(self, target_id: str) -> Target | None: ...

    def handle_successful_creation(self, target_id: str) -> None: ...

    def update_target_provider_metadata(self, target_id: str, metadata: str) -> None: ...

    def track_telemetry_event(self, event: ServerEvent, client_id: str, props: dict[str, Any]) -> None: ...


class RemoteTargetJobCapabilities:
    def __init__(self, client: ControlPlaneClient, telemetry: TelemetryService) -> None:
        self._client = client
        self._telemetry = telemetry

    def find_target(self, target_id: str) -> Target | None:
        return fetch_target(self._client, target_id)

    def handle_successful_creation(self, target_id: str) -> None:
        self._client.handle_successful_creation(target_id)

    def update_target_provider_metadata(self, target_id: str, metadata: str) -> None:
        self._client.update_target_provider_metadata(target_id, metadata)

    def track_telemetry_event(self, event: ServerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._telemetry.track_server_event(event, client_id, props)


class TargetJobFactory(BaseJobFactory):
    resource_type = ResourceType.target

    def __init__(
        self,
        *,
        capabilities: TargetJobCapabilities,
        logger_factory: JobLoggerFactory,
        provider_manager: ProviderManager,
        executor: JobExecutor | None = None,
    ) -> None:
        super().__init__(executor)
        self.capabilities = capabilities
        self.logger_factory = logger_factory
        self.provider_manager = provider_manager
