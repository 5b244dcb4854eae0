"""容器引擎客户端：通过 Docker Engine HTTP API 检查与删除镜像。"""

from __future__ import annotations

import logging
from urllib.parse import quote, urlsplit

import httpx

logger = logging.getLogger(__name__)

_DEFAULT_SOCKET = "/var/run/docker.sock"


def _image_path(image: str) -> str:
    return quote(image, safe="/:")


def resolve_docker_host(docker_host: str) -> tuple[str, str | None]:
    """将 DOCKER_HOST 解析为 (base_url, unix socket 路径)。"""
    parsed = urlsplit(docker_host or f"unix://{_DEFAULT_SOCKET}")
    if parsed.scheme == "unix":
        # unix socket 下主机名无意义，仅用于拼接请求 URL。
        return "http://docker", parsed.path or _DEFAULT_SOCKET
    if parsed.scheme in {"tcp", "http"}:
        return f"http://{parsed.netloc}", None
    if parsed.scheme == "https":
        return f"https://{parsed.netloc}", None
    raise ValueError(f"unsupported docker host: {docker_host}")


class ContainerEngineClient:
    """容器引擎同步客户端封装。"""
    def __init__(
        self,
        docker_host: str,
        timeout_seconds: int = 30,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_url, socket_path = resolve_docker_host(docker_host)
        if transport is None:
            transport = httpx.HTTPTransport(uds=socket_path)
        self._closed = False
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def close(self) -> None:
        """关闭底层 HTTP 客户端连接池。"""
        if self._closed:
            return
        self._client.close()
        self._closed = True

    def image_exists(self, image: str) -> bool:
        """检查镜像是否存在；任何检查失败都视为不存在。"""
        try:
            response = self._client.get(f"/images/{_image_path(image)}/json")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug(
                "image inspect failed",
                extra={
                    "event": "container.image.inspect.miss",
                    "external_service": "docker",
                    "op": "image.inspect",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "payload_preview": {"image": image},
                },
            )
            return False
        return True

    def delete_image(self, image: str, force: bool = False) -> None:
        """删除镜像，force 为 True 时强制删除。"""
        params = {"force": "true"} if force else None
        try:
            response = self._client.delete(f"/images/{_image_path(image)}", params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "image delete failed",
                extra={
                    "event": "container.image.delete.failed",
                    "external_service": "docker",
                    "op": "image.delete",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "payload_preview": {"image": image, "force": force},
                },
            )
            raise
        logger.info(
            "image deleted",
            extra={
                "event": "container.image.deleted",
                "external_service": "docker",
                "op": "image.delete",
                "payload_preview": {"image": image, "force": force},
            },
        )
