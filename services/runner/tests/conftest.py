"""测试公共桩对象：控制面客户端、容器引擎与 Provider 管理器后端。"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx
import pytest

from app.application.provider_manager import ProviderManager, ProviderManagerConfig
from app.domain.models import ProviderInfo, TargetConfig
from app.infra.controlplane.client import ControlPlaneDecodeError
from app.infra.controlplane.schemas import (
    BuildDTO,
    EnvironmentVariableDTO,
    FrpsConfigDTO,
    GitProviderDTO,
    JobDTO,
    ServerConfigDTO,
    SetRunnerMetadataDTO,
    TargetDTO,
    UpdateJobStateDTO,
    WorkspaceDTO,
)


def http_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://controlplane.test/")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"status {status_code}", request=request, response=response)


def connect_error() -> httpx.ConnectError:
    return httpx.ConnectError("connection refused", request=httpx.Request("GET", "http://controlplane.test/"))


def decode_error(status_code: int = 200) -> ControlPlaneDecodeError:
    request = httpx.Request("GET", "http://controlplane.test/")
    return ControlPlaneDecodeError("invalid response body", request=request, status_code=status_code)


class ControlPlaneStub:
    """测试用控制面客户端桩，记录写操作并返回预置数据。"""

    def __init__(self) -> None:
        self.jobs: list[JobDTO] = []
        self.list_jobs_error: Exception | None = None
        self.env_vars: list[EnvironmentVariableDTO] = []
        self.env_error: Exception | None = None
        self.workspaces: dict[str, WorkspaceDTO] = {}
        self.targets: dict[str, TargetDTO] = {}
        self.builds: dict[str, BuildDTO] = {}
        self.successful_builds: list[BuildDTO] = []
        self.git_providers: list[GitProviderDTO] = []
        self.calls: list[tuple[str, Any]] = []
        self.state_updates: list[tuple[str, str, UpdateJobStateDTO]] = []
        self.metadata_updates: list[tuple[str, SetRunnerMetadataDTO]] = []
        self.job_log_writes: list[tuple[str, str, list[str]]] = []

    def list_runner_jobs(self, runner_id: str) -> tuple[list[JobDTO], int]:
        self.calls.append(("list_runner_jobs", runner_id))
        if self.list_jobs_error is not None:
            raise self.list_jobs_error
        return list(self.jobs), 200

    def update_job_state(self, runner_id: str, job_id: str, body: UpdateJobStateDTO) -> None:
        self.state_updates.append((runner_id, job_id, body))

    def set_runner_metadata(self, runner_id: str, body: SetRunnerMetadataDTO) -> None:
        self.metadata_updates.append((runner_id, body))

    def write_job_logs(self, kind: str, resource_id: str, lines: list[str]) -> None:
        self.job_log_writes.append((kind, resource_id, list(lines)))

    def list_environment_variables(self) -> list[EnvironmentVariableDTO]:
        self.calls.append(("list_environment_variables", None))
        if self.env_error is not None:
            raise self.env_error
        return list(self.env_vars)

    def get_workspace(self, workspace_id: str) -> WorkspaceDTO:
        return self.workspaces[workspace_id]

    def get_target(self, target_id: str) -> TargetDTO:
        return self.targets[target_id]

    def update_workspace_provider_metadata(self, workspace_id: str, metadata: str) -> None:
        self.calls.append(("update_workspace_provider_metadata", (workspace_id, metadata)))

    def update_target_provider_metadata(self, target_id: str, metadata: str) -> None:
        self.calls.append(("update_target_provider_metadata", (target_id, metadata)))

    def handle_successful_creation(self, target_id: str) -> None:
        self.calls.append(("handle_successful_creation", target_id))

    def get_build(self, build_id: str) -> BuildDTO:
        return self.builds[build_id]

    def list_successful_builds(self, repo_url: str) -> list[BuildDTO]:
        self.calls.append(("list_successful_builds", repo_url))
        return list(self.successful_builds)

    def list_git_providers_for_url(self, repo_url: str) -> list[GitProviderDTO]:
        self.calls.append(("list_git_providers_for_url", repo_url))
        return list(self.git_providers)

    def get_git_provider(self, git_provider_id: str) -> GitProviderDTO:
        for item in self.git_providers:
            if item.id == git_provider_id:
                return item
        raise http_status_error(404)


class ContainerEngineStub:
    """测试用容器引擎桩。"""

    def __init__(self, images: set[str] | None = None) -> None:
        self.images = set(images or ())
        self.deleted: list[tuple[str, bool]] = []

    def image_exists(self, image: str) -> bool:
        return image in self.images

    def delete_image(self, image: str, force: bool = False) -> None:
        self.deleted.append((image, force))
        self.images.discard(image)


class TelemetryStub:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, str, dict[str, Any]]] = []

    def track_server_event(self, event, client_id, props) -> None:
        self.events.append(("server", event.value, client_id, props))

    def track_build_runner_event(self, event, client_id, props) -> None:
        self.events.append(("build_runner", event.value, client_id, props))

    def track_runner_event(self, event, client_id, props) -> None:
        self.events.append(("runner", event.value, client_id, props))


class ProviderBackendStub:
    def create_provider_network_key(self, provider_name: str) -> str:
        return f"key-{provider_name}"

    def get_target_config_map(self) -> dict[str, TargetConfig]:
        return {}

    def create_target_config(self, name: str, options: str, provider_info: ProviderInfo) -> None:
        return None


@pytest.fixture
def controlplane() -> ControlPlaneStub:
    return ControlPlaneStub()


@pytest.fixture
def server_config() -> ServerConfigDTO:
    return ServerConfigDTO(
        id="srv1",
        api_port=3986,
        headscale_port=3987,
        builder_image="builder:latest",
        builder_registry_server="registry.example.com",
        build_image_namespace="team/",
        default_workspace_image="workspace:latest",
        default_workspace_user="dev",
        frps=FrpsConfigDTO(domain="tunnel.dev", port=7000, protocol="https"),
    )


@pytest.fixture
def provider_manager(tmp_path: Path) -> ProviderManager:
    config = ProviderManagerConfig(
        logs_dir=tmp_path / "logs",
        api_url="https://api-srv1.tunnel.dev",
        api_key="secret",
        runner_id="runner-1",
        runner_name="local",
        download_url="http://controlplane.test/binary/script",
        server_url="https://srv1.tunnel.dev",
        base_dir=tmp_path / "providers",
        server_port=3987,
        api_port=3986,
    )
    return ProviderManager(config, ProviderBackendStub())
