"""Provider 管理器句柄：启动时构造一次，并显式传递给各作业工厂。"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from app.config import Settings
from app.domain.conversion import convert
from app.domain.models import ProviderInfo, TargetConfig
from app.domain.tunnel import frpc_api_url, frpc_headscale_url
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.controlplane.schemas import AddTargetConfigDTO, ProviderInfoDTO, ServerConfigDTO

logger = logging.getLogger(__name__)


class InvalidProviderInfoError(ValueError):
    """Provider 信息为空或不完整，未发起远程调用。"""


@dataclass(slots=True)
class ProviderManagerConfig:
    """Provider 管理器运行参数。"""
    logs_dir: Path
    api_url: str
    api_key: str | None
    runner_id: str
    runner_name: str
    download_url: str
    server_url: str
    base_dir: Path
    server_port: int
    api_port: int


class ProviderManagerBackend(Protocol):
    """Provider 管理器依赖的控制面能力。"""

    def create_provider_network_key(self, provider_name: str) -> str: ...

    def get_target_config_map(self) -> dict[str, TargetConfig]: ...

    def create_target_config(self, name: str, options: str, provider_info: ProviderInfo) -> None: ...


class RemoteProviderManagerBackend:
    """基于控制面 API 的 Provider 管理器能力实现。"""

    def __init__(self, client: ControlPlaneClient) -> None:
        self._client = client

    def create_provider_network_key(self, provider_name: str) -> str:
        return self._client.generate_network_key()

    def get_target_config_map(self) -> dict[str, TargetConfig]:
        """按名称索引目标配置；空记录跳过，转换失败直接抛出。"""
        target_configs: dict[str, TargetConfig] = {}
        for item in self._client.list_target_configs():
            result = convert(item, TargetConfig)
            if result.failed:
                raise result.error
            if result.empty:
                continue
            target_configs[item.name] = result.value
        return target_configs

    def create_target_config(self, name: str, options: str, provider_info: ProviderInfo) -> None:
        result = convert(provider_info, ProviderInfoDTO)
        if result.failed:
            raise result.error
        if result.empty:
            raise InvalidProviderInfoError("invalid provider info")
        self._client.add_target_config(AddTargetConfigDTO(name=name, options=options, provider_info=result.value))


class ProviderManager:
    """Provider 管理器句柄，持有配置、控制面能力与已注册 provider 列表。"""

    def __init__(self, config: ProviderManagerConfig, backend: ProviderManagerBackend) -> None:
        self._config = config
        self._backend = backend
        self._lock = threading.Lock()
        self._providers: dict[str, ProviderInfo] = {}

    @property
    def config(self) -> ProviderManagerConfig:
        return self._config

    def register_provider(self, provider: ProviderInfo) -> None:
        with self._lock:
            self._providers[provider.name] = provider

    def unregister_provider(self, name: str) -> None:
        with self._lock:
            self._providers.pop(name, None)

    def get_providers(self) -> list[ProviderInfo]:
        """返回按注册顺序排列的 provider 快照。"""
        with self._lock:
            return list(self._providers.values())

    def create_provider_network_key(self, provider_name: str) -> str:
        return self._backend.create_provider_network_key(provider_name)

    def get_target_config_map(self) -> dict[str, TargetConfig]:
        return self._backend.get_target_config_map()

    def create_target_config(self, name: str, options: str, provider_info: ProviderInfo) -> None:
        self._backend.create_target_config(name, options, provider_info)


def init_remote_provider_manager(
    client: ControlPlaneClient,
    server_config: ServerConfigDTO,
    settings: Settings,
) -> ProviderManager:
    """根据服务端配置构造 Provider 管理器；仅应在启动阶段调用一次。"""
    frps = server_config.frps
    config = ProviderManagerConfig(
        logs_dir=settings.target_logs_dir,
        api_url=frpc_api_url(frps.protocol, server_config.id, frps.domain),
        api_key=settings.server_api_key,
        runner_id=settings.id,
        runner_name=settings.name,
        download_url=f"{settings.server_api_url.rstrip('/')}/binary/script",
        server_url=frpc_headscale_url(frps.protocol, server_config.id, frps.domain),
        base_dir=settings.providers_dir,
        server_port=server_config.headscale_port,
        api_port=server_config.api_port,
    )
    logger.info(
        "provider manager initialized",
        extra={
            "event": "provider_manager.initialized",
            "payload_preview": {"api_url": config.api_url, "base_dir": str(config.base_dir)},
        },
    )
    return ProviderManager(config, RemoteProviderManagerBackend(client))
