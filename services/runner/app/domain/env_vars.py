"""环境变量工具：合并工作区变量，并按命名约定识别容器镜像仓库配置。"""

from __future__ import annotations

from collections.abc import Mapping

from app.domain.models import ContainerRegistry

_REGISTRY_MARKER = "_CONTAINER_REGISTRY_"
_SERVER_SUFFIX = "_CONTAINER_REGISTRY_SERVER"
_USERNAME_SUFFIX = "_CONTAINER_REGISTRY_USERNAME"
_PASSWORD_SUFFIX = "_CONTAINER_REGISTRY_PASSWORD"


def merge_env_vars(global_vars: Mapping[str, str], workspace_vars: Mapping[str, str] | None) -> dict[str, str]:
    """合并全局变量与工作区变量，同名键以工作区声明为准。"""
    merged = dict(global_vars)
    if workspace_vars:
        merged.update(workspace_vars)
    return merged


def _registry_for_server_key(env_vars: Mapping[str, str], server_key: str) -> ContainerRegistry:
    prefix = server_key[: -len(_SERVER_SUFFIX)]
    return ContainerRegistry(
        server=env_vars[server_key],
        username=env_vars.get(f"{prefix}{_USERNAME_SUFFIX}"),
        password=env_vars.get(f"{prefix}{_PASSWORD_SUFFIX}"),
    )


def find_container_registry(env_vars: Mapping[str, str], server: str) -> ContainerRegistry | None:
    """查找 server 值与目标地址一致的镜像仓库；不存在时返回 None。"""
    for key, value in env_vars.items():
        if key.endswith(_SERVER_SUFFIX) and value == server:
            return _registry_for_server_key(env_vars, key)
    return None


def extract_container_registries(
    env_vars: Mapping[str, str],
) -> tuple[dict[str, str], dict[str, ContainerRegistry]]:
    """拆分普通环境变量与镜像仓库配置。

    返回:
    - 去除仓库相关键后的普通变量；
    - 以 server 为键的全部镜像仓库。
    """
    plain: dict[str, str] = {}
    registries: dict[str, ContainerRegistry] = {}
    for key, value in env_vars.items():
        if key.endswith(_SERVER_SUFFIX):
            registry = _registry_for_server_key(env_vars, key)
            registries[registry.server] = registry
        elif _REGISTRY_MARKER not in key:
            plain[key] = value
    return plain, registries
