"""领域数据结构定义：作业、Runner 元数据与各资源的值快照。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.domain.enums import JobAction, JobState, ResourceType


@dataclass(slots=True)
class Job:
    """一次从控制面拉取的作业快照，不在本地持久化。"""
    id: str
    resource_id: str
    runner_id: str | None
    resource_type: ResourceType
    state: JobState
    action: JobAction
    metadata: str | None = None
    error: str | None = None


@dataclass(slots=True)
class ProviderInfo:
    """Provider 标识与版本信息。"""
    name: str
    version: str
    runner_id: str = ""
    runner_name: str = ""
    agentless: bool = False
    label: str | None = None


@dataclass(slots=True)
class RunnerMetadata:
    """Runner 上报的存活与容量信息；running_jobs 为 None 时不上报。"""
    uptime: int
    providers: list[ProviderInfo] = field(default_factory=list)
    running_jobs: int | None = None


@dataclass(slots=True)
class ContainerRegistry:
    """容器镜像仓库地址及凭据。"""
    server: str
    username: str | None = None
    password: str | None = None


@dataclass(slots=True)
class GitRepository:
    id: str
    url: str
    name: str = ""
    owner: str = ""
    branch: str | None = None
    sha: str = ""
    source: str = ""
    path: str | None = None


@dataclass(slots=True)
class GitProviderConfig:
    """Git provider 访问配置。"""
    id: str
    provider_id: str
    username: str
    token: str
    alias: str = ""
    base_api_url: str | None = None
    signing_key: str | None = None
    signing_method: str | None = None


@dataclass(slots=True)
class TargetConfig:
    id: str
    name: str
    provider_info: ProviderInfo
    options: str = ""
    deleted: bool = False


@dataclass(slots=True)
class Target:
    """目标基础设施快照。"""
    id: str
    name: str
    target_config_id: str = ""
    target_config: TargetConfig | None = None
    api_key: str = ""
    is_default: bool = False
    env_vars: dict[str, str] = field(default_factory=dict)
    provider_metadata: str | None = None


@dataclass(slots=True)
class Workspace:
    """工作区快照；env_vars 为工作区自身声明的变量。"""
    id: str
    name: str
    image: str
    user: str
    target_id: str
    repository: GitRepository | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    git_provider_config_id: str | None = None
    build_config: dict[str, Any] | None = None
    api_key: str = ""
    provider_metadata: str | None = None


@dataclass(slots=True)
class Build:
    """镜像构建记录快照。"""
    id: str
    state: str
    image: str | None = None
    user: str | None = None
    repository: GitRepository | None = None
    build_config: dict[str, Any] | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    prebuild_id: str | None = None
