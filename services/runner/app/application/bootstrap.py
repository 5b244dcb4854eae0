"""Runner 启动装配：构造四类作业工厂、作业调度桥与执行循环。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.application.bridge import JobDispatchBridge
from app.application.jobs.base import JobExecutor
from app.application.jobs.build import BuilderConfig, BuildJobFactory, RemoteBuildJobCapabilities
from app.application.jobs.registry import JobFactoryRegistry
from app.application.jobs.runner import RemoteRunnerJobCapabilities, RunnerJobFactory
from app.application.jobs.target import RemoteTargetJobCapabilities, TargetJobFactory
from app.application.jobs.workspace import RemoteWorkspaceJobCapabilities, WorkspaceJobFactory
from app.application.provider_manager import ProviderManager
from app.application.registry_resolver import resolve_builder_registry
from app.application.runner_loop import Runner
from app.config import Settings
from app.domain.enums import ResourceType
from app.infra.container.engine import ContainerEngineClient
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.controlplane.schemas import ServerConfigDTO
from app.infra.logging.job_logs import JobLoggerFactory
from app.infra.telemetry import TelemetryService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RemoteRunnerParams:
    """Runner 装配所需的外部依赖。"""
    client: ControlPlaneClient
    server_config: ServerConfigDTO
    settings: Settings
    telemetry: TelemetryService
    provider_manager: ProviderManager
    container_engine: ContainerEngineClient
    executors: dict[ResourceType, JobExecutor] = field(default_factory=dict)


def build_workspace_job_factory(params: RemoteRunnerParams, logger_factory: JobLoggerFactory) -> WorkspaceJobFactory:
    return WorkspaceJobFactory(
        capabilities=RemoteWorkspaceJobCapabilities(params.client, params.telemetry),
        logger_factory=logger_factory,
        provider_manager=params.provider_manager,
        builder_image=params.server_config.builder_image,
        executor=params.executors.get(ResourceType.workspace),
    )


def build_target_job_factory(params: RemoteRunnerParams, logger_factory: JobLoggerFactory) -> TargetJobFactory:
    return TargetJobFactory(
        capabilities=RemoteTargetJobCapabilities(params.client, params.telemetry),
        logger_factory=logger_factory,
        provider_manager=params.provider_manager,
        executor=params.executors.get(ResourceType.target),
    )


def build_build_job_factory(params: RemoteRunnerParams) -> BuildJobFactory:
    """构造构建作业工厂；会同步拉取一次环境变量以解析构建仓库。"""
    settings = params.settings
    server_config = params.server_config
    # 构建作业只写构建日志目录。
    logger_factory = JobLoggerFactory(
        target_logs_dir=None,
        build_logs_dir=settings.build_logs_dir,
        sink=params.client,
    )
    resolution = resolve_builder_registry(params.client, server_config)
    return BuildJobFactory(
        capabilities=RemoteBuildJobCapabilities(params.client, params.container_engine, params.telemetry),
        logger_factory=logger_factory,
        builder_config=BuilderConfig(
            image=server_config.builder_image,
            build_image_container_registry=resolution.builder_registry,
            container_registries=resolution.container_registries,
            build_image_namespace=resolution.image_namespace,
            default_workspace_image=server_config.default_workspace_image,
            default_workspace_user=server_config.default_workspace_user,
        ),
        base_path=settings.builds_dir,
        executor=params.executors.get(ResourceType.build),
    )


def build_runner_job_factory(params: RemoteRunnerParams) -> RunnerJobFactory:
    return RunnerJobFactory(
        capabilities=RemoteRunnerJobCapabilities(params.telemetry),
        provider_manager=params.provider_manager,
        executor=params.executors.get(ResourceType.runner),
    )


def build_job_factories(params: RemoteRunnerParams) -> JobFactoryRegistry:
    settings = params.settings
    logger_factory = JobLoggerFactory(
        target_logs_dir=settings.target_logs_dir,
        build_logs_dir=settings.build_logs_dir,
        sink=params.client,
    )
    return JobFactoryRegistry(
        workspace=build_workspace_job_factory(params, logger_factory),
        target=build_target_job_factory(params, logger_factory),
        build=build_build_job_factory(params),
        runner=build_runner_job_factory(params),
    )


def get_remote_runner(params: RemoteRunnerParams) -> Runner:
    """装配远程 Runner：工厂共享同一个 provider 管理器句柄。"""
    settings = params.settings
    factories = build_job_factories(params)
    bridge = JobDispatchBridge(params.client, settings.id)
    logger.info(
        "remote runner assembled",
        extra={
            "event": "runner.bootstrap.succeeded",
            "payload_preview": {
                "runner_id": settings.id,
                "executors": sorted(item.value for item in params.executors),
            },
        },
    )
    return Runner(
        bridge=bridge,
        factories=factories,
        provider_manager=params.provider_manager,
        poll_interval_seconds=settings.poll_interval_seconds,
        metadata_interval_seconds=settings.metadata_interval_seconds,
        max_concurrent_jobs=settings.max_concurrent_jobs,
    )
