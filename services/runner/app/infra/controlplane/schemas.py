"""控制面 API 数据模型定义，约束作业、Runner 元数据与资源记录的线上结构。"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """线上模型基类：JSON 使用 camelCase，Python 侧使用字段名。"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> dict[str, Any]:
        """序列化为请求体；值为 None 的可选字段不发送。"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ApiResourceType(str, Enum):
    workspace = "workspace"
    target = "target"
    build = "build"
    runner = "runner"


class ApiJobState(str, Enum):
    pending = "pending"
    running = "running"
    error = "error"
    success = "success"


class ApiJobAction(str, Enum):
    create = "create"
    start = "start"
    stop = "stop"
    restart = "restart"
    delete = "delete"
    force_delete = "force-delete"
    run = "run"
    update_providers = "update-providers"
    install_provider = "install-provider"
    uninstall_provider = "uninstall-provider"


class JobDTO(WireModel):
    id: str
    resource_id: str
    runner_id: str | None = None
    resource_type: ApiResourceType
    state: ApiJobState
    action: ApiJobAction
    metadata: str | None = None
    error: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class UpdateJobStateDTO(WireModel):
    state: ApiJobState
    error_message: str | None = None


class ProviderInfoDTO(WireModel):
    name: str
    version: str
    runner_id: str = ""
    runner_name: str = ""
    agentless: bool = False
    label: str | None = None


class SetRunnerMetadataDTO(WireModel):
    uptime: int
    providers: list[ProviderInfoDTO] = Field(default_factory=list)
    running_jobs: int | None = None


class NetworkKeyDTO(WireModel):
    key: str


class FrpsConfigDTO(WireModel):
    domain: str
    port: int = 0
    protocol: str = "https"


class ServerConfigDTO(WireModel):
    """控制面下发的服务端配置。"""
    id: str
    api_port: int = 0
    headscale_port: int = 0
    builder_image: str = ""
    builder_registry_server: str = ""
    build_image_namespace: str | None = None
    default_workspace_image: str = ""
    default_workspace_user: str = ""
    frps: FrpsConfigDTO


class GitRepositoryDTO(WireModel):
    id: str
    url: str
    name: str = ""
    owner: str = ""
    branch: str | None = None
    sha: str = ""
    source: str = ""
    path: str | None = None


class GitProviderDTO(WireModel):
    id: str
    provider_id: str
    username: str
    token: str
    alias: str = ""
    base_api_url: str | None = None
    signing_key: str | None = None
    signing_method: str | None = None


class TargetConfigDTO(WireModel):
    id: str
    name: str
    provider_info: ProviderInfoDTO
    options: str = ""
    deleted: bool = False


class AddTargetConfigDTO(WireModel):
    name: str
    options: str
    provider_info: ProviderInfoDTO


class TargetDTO(WireModel):
    id: str
    name: str
    target_config_id: str = ""
    target_config: TargetConfigDTO | None = None
    api_key: str = ""
    is_default: bool = False
    env_vars: dict[str, str] = Field(default_factory=dict)
    provider_metadata: str | None = None


class WorkspaceDTO(WireModel):
    id: str
    name: str
    image: str
    user: str
    target_id: str
    repository: GitRepositoryDTO | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)
    git_provider_config_id: str | None = None
    build_config: dict[str, Any] | None = None
    api_key: str = ""
    provider_metadata: str | None = None


class BuildDTO(WireModel):
    id: str
    state: str
    image: str | None = None
    user: str | None = None
    repository: GitRepositoryDTO | None = None
    build_config: dict[str, Any] | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)
    prebuild_id: str | None = None


class EnvironmentVariableDTO(WireModel):
    key: str
    value: str


class UpdateProviderMetadataDTO(WireModel):
    metadata: str


class JobLogLinesDTO(WireModel):
    lines: list[str]
