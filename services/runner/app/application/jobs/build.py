"""构建作业工厂：声明构建执行器所需的控制面与容器引擎能力。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from app.application.jobs.base import BaseJobFactory, JobExecutor
from app.domain.conversion import convert, convert_each
from app.domain.enums import BuildRunnerEvent, ResourceType
from app.domain.models import Build, ContainerRegistry, GitProviderConfig
from app.infra.container.engine import ContainerEngineClient
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.logging.job_logs import JobLoggerFactory
from app.infra.telemetry import TelemetryService


class BuildJobCapabilities(Protocol):
    """构建作业能力集合。"""

    def find_build(self, build_id: str) -> Build | None: ...

    def list_successful_builds(self, repo_url: str) -> list[Build]: ...

    def list_configs_for_url(self, repo_url: str) -> list[GitProviderConfig]: ...

    def check_image_exists(self, image: str) -> bool: ...

    def delete_image(self, image: str, force: bool) -> None: ...

    def track_telemetry_event(self, event: BuildRunnerEvent, client_id: str, props: dict[str, Any]) -> None: ...


class RemoteBuildJobCapabilities:
    """基于控制面 API 与本地容器引擎的构建作业能力实现。"""

    def __init__(
        self,
        client: ControlPlaneClient,
        engine: ContainerEngineClient,
        telemetry: TelemetryService,
    ) -> None:
        self._client = client
        self._engine = engine
        self._telemetry = telemetry

    def find_build(self, build_id: str) -> Build | None:
        return convert(self._client.get_build(build_id), Build).unwrap()

    def list_successful_builds(self, repo_url: str) -> list[Build]:
        return convert_each(self._client.list_successful_builds(repo_url), Build)

    def list_configs_for_url(self, repo_url: str) -> list[GitProviderConfig]:
        return convert_each(self._client.list_git_providers_for_url(repo_url), GitProviderConfig)

    def check_image_exists(self, image: str) -> bool:
        return self._engine.image_exists(image)

    def delete_image(self, image: str, force: bool) -> None:
        self._engine.delete_image(image, force=force)

    def track_telemetry_event(self, event: BuildRunnerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._telemetry.track_build_runner_event(event, client_id, props)


@dataclass(slots=True)
class BuilderConfig:
    """构建器参数：推送仓库、拉取仓库集合、命名空间与默认镜像。"""
    image: str
    build_image_container_registry: ContainerRegistry
    container_registries: dict[str, ContainerRegistry] = field(default_factory=dict)
    build_image_namespace: str = ""
    default_workspace_image: str = ""
    default_workspace_user: str = ""


class BuildJobFactory(BaseJobFactory):
    resource_type = ResourceType.build

    def __init__(
        self,
        *,
        capabilities: BuildJobCapabilities,
        logger_factory: JobLoggerFactory,
        builder_config: BuilderConfig,
        base_path: Path,
        executor: JobExecutor | None = None,
    ) -> None:
        super().__init__(executor)
        self.capabilities = capabilities
        self.logger_factory = logger_factory
        self.builder_config = builder_config
        self.base_path = base_path
