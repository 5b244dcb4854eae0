"""构建镜像仓库解析：按固定优先级选出推送仓库，并保留全部可拉取仓库。

优先级：
1. 拉取环境变量失败时，直接使用服务端配置中的构建仓库地址；
2. 环境变量中存在与构建仓库地址匹配的仓库配置时使用该配置；
3. 否则使用隧道域名推导出的 registry-<server_id>.<domain>。

失败与空结果走不同的兜底地址，两者保持现状，不做合并。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from app.domain.env_vars import extract_container_registries, find_container_registry
from app.domain.models import ContainerRegistry
from app.domain.tunnel import frpc_registry_domain
from app.infra.controlplane.client import ControlPlaneClient
from app.infra.controlplane.schemas import ServerConfigDTO

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BuilderRegistryResolution:
    """构建仓库解析结果。"""
    builder_registry: ContainerRegistry
    container_registries: dict[str, ContainerRegistry] = field(default_factory=dict)
    image_namespace: str = ""


def normalize_image_namespace(namespace: str | None) -> str:
    """命名空间统一为以 / 开头且不以 / 结尾；空值保持为空。"""
    if not namespace:
        return ""
    stripped = namespace.strip("/")
    if not stripped:
        return ""
    return f"/{stripped}"


def resolve_builder_registry(client: ControlPlaneClient, server_config: ServerConfigDTO) -> BuilderRegistryResolution:
    """拉取一次环境变量并解析构建仓库。"""
    builder_registry: ContainerRegistry | None = None
    env_vars: dict[str, str] = {}
    try:
        env_vars = {item.key: item.value for item in client.list_environment_variables()}
    except httpx.HTTPError as exc:
        logger.warning(
            "environment variables unavailable, using configured builder registry",
            extra={
                "event": "builder_registry.env_fetch.failed",
                "external_service": "controlplane",
                "op": "env.list",
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        builder_registry = ContainerRegistry(server=server_config.builder_registry_server)

    if env_vars:
        builder_registry = find_container_registry(env_vars, server_config.builder_registry_server)

    source = "env" if builder_registry is not None else "tunnel"
    if builder_registry is None:
        builder_registry = ContainerRegistry(server=frpc_registry_domain(server_config.id, server_config.frps.domain))
    elif not env_vars:
        source = "server_config"

    _, container_registries = extract_container_registries(env_vars)
    resolution = BuilderRegistryResolution(
        builder_registry=builder_registry,
        container_registries=container_registries,
        image_namespace=normalize_image_namespace(server_config.build_image_namespace),
    )
    logger.info(
        "builder registry resolved",
        extra={
            "event": "builder_registry.resolved",
            "payload_preview": {
                "server": builder_registry.server,
                "source": source,
                "registries": sorted(container_registries),
                "namespace": resolution.image_namespace,
            },
        },
    )
    return resolution
