"""依赖容器模块，负责单例化创建客户端、Provider 管理器与 Runner。"""

from __future__ import annotations

import threading
from functools import lru_cache

from app.application.bootstrap import RemoteRunnerParams, get_remote_runner
from app.application.provider_manager import ProviderManager, init_remote_provider_manager
from app.application.runner_loop import Runner
from app.config import get_settings
from app.infra.container.engine import ContainerEngineClient
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.controlplane.schemas import ServerConfigDTO
from app.infra.telemetry import LoggingTelemetryService, TelemetryService

_provider_manager_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_controlplane_client() -> ControlPlaneClient:
    """获取控制面客户端单例。"""
    settings = get_settings()
    return ControlPlaneClient(
        base_url=settings.server_api_url,
        api_key=settings.server_api_key,
        timeout_seconds=settings.request_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_container_engine() -> ContainerEngineClient:
    """获取容器引擎客户端单例。"""
    settings = get_settings()
    return ContainerEngineClient(settings.docker_host, timeout_seconds=settings.request_timeout_seconds)


@lru_cache(maxsize=1)
def get_telemetry_service() -> TelemetryService:
    return LoggingTelemetryService(enabled=get_settings().telemetry_enabled)


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfigDTO:
    """启动时从控制面读取一次服务端配置。"""
    return get_controlplane_client().get_server_config()


@lru_cache(maxsize=1)
def _create_provider_manager() -> ProviderManager:
    return init_remote_provider_manager(get_controlplane_client(), get_server_config(), get_settings())


def get_provider_manager() -> ProviderManager:
    """获取 Provider 管理器句柄；首次调用独占完成初始化，之后返回同一实例。"""
    with _provider_manager_lock:
        return _create_provider_manager()


@lru_cache(maxsize=1)
def get_runner() -> Runner:
    """获取 Runner 单例。"""
    return get_remote_runner(
        RemoteRunnerParams(
            client=get_controlplane_client(),
            server_config=get_server_config(),
            settings=get_settings(),
            telemetry=get_telemetry_service(),
            provider_manager=get_provider_manager(),
            container_engine=get_container_engine(),
        )
    )


def shutdown_container_resources() -> None:
    """关闭共享客户端并清理依赖容器缓存。"""
    if get_runner.cache_info().currsize:
        get_runner().shutdown(wait=True)
    if get_controlplane_client.cache_info().currsize:
        get_controlplane_client().close()
    if get_container_engine.cache_info().currsize:
        get_container_engine().close()

    # 按依赖顺序清理缓存，确保后续调用可重新构建全新实例。
    for provider in (
        get_runner,
        _create_provider_manager,
        get_server_config,
        get_telemetry_service,
        get_container_engine,
        get_controlplane_client,
    ):
        provider.cache_clear()
