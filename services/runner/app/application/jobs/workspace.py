"""工作区作业工厂：声明工作区执行器所需的控制面能力并提供远程实现。"""

from __future__ import annotations

from typing import Any, Protocol

from app.application.jobs.base import BaseJobFactory, JobExecutor, fetch_target
from app.application.provider_manager import ProviderManager
from app.domain.conversion import convert
from app.domain.enums import ResourceType, ServerEvent
from app.domain.env_vars import merge_env_vars
from app.domain.models import GitProviderConfig, Target, Workspace
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.logging.job_logs import JobLoggerFactory
from app.infra.telemetry import TelemetryService


class WorkspaceJobCapabilities(Protocol):
    """工作区作业能力集合。"""

    def find_workspace(self, workspace_id: str) -> Workspace | None: ...

    def find_target(self, target_id: str) -> Target | None: ...

    def update_workspace_provider_metadata(self, workspace_id: str, metadata: str) -> None: ...

    def find_git_provider_config(self, config_id: str) -> GitProviderConfig | None: ...

    def get_workspace_environment_variables(self, workspace: Workspace) -> dict[str, str]: ...

    def track_telemetry_event(self, event: ServerEvent, client_id: str, props: dict[str, Any]) -> None: ...


class RemoteWorkspaceJobCapabilities:
    """基于控制面 API 的工作区作业能力实现。"""

    def __init__(self, client: ControlPlaneClient, telemetry: TelemetryService) -> None:
        self._client = client
        self._telemetry = telemetry

    def find_workspace(self, workspace_id: str) -> Workspace | None:
        return convert(self._client.get_workspace(workspace_id), Workspace).unwrap()

    def find_target(self, target_id: str) -> Target | None:
        return fetch_target(self._client, target_id)

    def update_workspace_provider_metadata(self, workspace_id: str, metadata: str) -> None:
        self._client.update_workspace_provider_metadata(workspace_id, metadata)

    def find_git_provider_config(self, config_id: str) -> GitProviderConfig | None:
        return convert(self._client.get_git_provider(config_id), GitProviderConfig).unwrap()

    def get_workspace_environment_variables(self, workspace: Workspace) -> dict[str, str]:
        """合并全局环境变量与工作区变量，工作区声明优先。"""
        global_vars = {item.key: item.value for item in self._client.list_environment_variables()}
        return merge_env_vars(global_vars, workspace.env_vars)

    def track_telemetry_event(self, event: ServerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._telemetry.track_server_event(event, client_id, props)


class WorkspaceJobFactory(BaseJobFactory):
    resource_type = ResourceType.workspace

    def __init__(
        self,
        *,
        capabilities: WorkspaceJobCapabilities,
        logger_factory: JobLoggerFactory,
        provider_manager: ProviderManager,
        builder_image: str,
        executor: JobExecutor | None = None,
    ) -> None:
        super().__init__(executor)
        self.capabilities = capabilities
        self.logger_factory = logger_factory
        self.provider_manager = provider_manager
        self.builder_image = builder_image
