"""领域枚举定义：统一作业资源类型、状态、动作与遥测事件取值。"""

from __future__ import annotations

from enum import Enum


class ResourceType(str, Enum):
    """作业目标资源类型枚举。"""
    workspace = "workspace"
    target = "target"
    build = "build"
    runner = "runner"


class JobState(str, Enum):
    """作业生命周期状态枚举。"""
    pending = "pending"
    running = "running"
    error = "error"
    success = "success"


class JobAction(str, Enum):
    """作业动作枚举。"""
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


class ServerEvent(str, Enum):
    """工作区与目标生命周期遥测事件。"""
    workspace_created = "server_workspace_created"
    workspace_started = "server_workspace_started"
    workspace_stopped = "server_workspace_stopped"
    workspace_destroyed = "server_workspace_destroyed"
    target_created = "server_target_created"
    target_started = "server_target_started"
    target_stopped = "server_target_stopped"
    target_destroyed = "server_target_destroyed"


class BuildRunnerEvent(str, Enum):
    """构建执行遥测事件。"""
    build_run = "build_runner_build_run"
    build_succeeded = "build_runner_build_succeeded"
    build_failed = "build_runner_build_failed"
    build_deleted = "build_runner_build_deleted"


class RunnerEvent(str, Enum):
    """Runner 自身（provider 安装与更新）遥测事件。"""
    providers_updated = "runner_providers_updated"
    provider_installed = "runner_provider_installed"
    provider_uninstalled = "runner_provider_uninstalled"
