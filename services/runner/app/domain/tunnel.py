"""隧道域名规则：由服务端 ID 与共享域名推导 API、Headscale 与镜像仓库地址。"""

from __future__ import annotations


def frpc_api_url(protocol: str, server_id: str, domain: str) -> str:
    return f"{protocol}://api-{server_id}.{domain}"


def frpc_headscale_url(protocol: str, server_id: str, domain: str) -> str:
    return f"{protocol}://{server_id}.{domain}"


def frpc_registry_domain(server_id: str, domain: str) -> str:
    return f"registry-{server_id}.{domain}"
