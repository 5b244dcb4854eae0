"""控制面 HTTP 客户端：封装作业、Runner 元数据与资源查询接口。"""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any, TypeVar
from urllib.parse import quote_plus

import httpx
from pydantic import TypeAdapter

from app.infra.controlplane.schemas import (
    AddTargetConfigDTO,
    BuildDTO,
    EnvironmentVariableDTO,
    GitProviderDTO,
    JobDTO,
    JobLogLinesDTO,
    NetworkKeyDTO,
    ServerConfigDTO,
    SetRunnerMetadataDTO,
    TargetConfigDTO,
    TargetDTO,
    UpdateJobStateDTO,
    UpdateProviderMetadataDTO,
    WorkspaceDTO,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ControlPlaneDecodeError(httpx.DecodingError):
    """响应状态成功但响应体无法解析为预期结构；status_code 为该响应的状态码。"""

    def __init__(self, message: str, *, request: httpx.Request, status_code: int) -> None:
        super().__init__(message, request=request)
        self.status_code = status_code


@lru_cache(maxsize=None)
def _adapter(model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(model)


class ControlPlaneClient:
    """控制面同步 HTTP 客户端封装。"""
    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        timeout_seconds: int = 30,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._closed = False
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=self._headers(api_key),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
            transport=transport,
        )

    @staticmethod
    def _headers(api_key: str | None) -> dict[str, str]:
        # 未配置密钥时不发送 Authorization，便于对接本地开发服务。
        if api_key:
            return {"Authorization": f"Bearer {api_key}"}
        return {}

    def _client_or_raise(self) -> httpx.Client:
        """返回可用客户端；若已关闭则抛出异常。"""
        if self._closed:
            raise RuntimeError("ControlPlaneClient is already closed")
        return self._client

    def close(self) -> None:
        """关闭底层 HTTP 客户端连接池。"""
        if self._closed:
            return
        self._client.close()
        self._closed = True

    def _request(
        self,
        *,
        method: str,
        path: str,
        op: str,
        json_body: dict[str, Any] | None = None,
        payload_preview: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """发送 HTTP 请求并记录结构化日志；失败时原样抛出 httpx 异常。"""
        started = time.perf_counter()
        try:
            response = self._client_or_raise().request(method, path, json=json_body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            status_code = None
            if isinstance(exc, httpx.HTTPStatusError):
                status_code = exc.response.status_code
            logger.error(
                "control plane request failed",
                extra={
                    "event": "controlplane.request.failed",
                    "external_service": "controlplane",
                    "op": op,
                    "duration_ms": duration_ms,
                    "status_code": status_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "payload_preview": payload_preview,
                },
            )
            raise
        logger.debug(
            "control plane request completed",
            extra={
                "event": "controlplane.request.completed",
                "external_service": "controlplane",
                "op": op,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "status_code": response.status_code,
            },
        )
        return response

    @staticmethod
    def _decode(response: httpx.Response, model: type[T]) -> T:
        """解析响应体；非 JSON 或结构不符时抛出携带状态码的 ControlPlaneDecodeError。"""
        try:
            return _adapter(model).validate_python(response.json())
        except ValueError as exc:
            request = response.request
            logger.error(
                "control plane response invalid",
                extra={
                    "event": "controlplane.response.invalid",
                    "external_service": "controlplane",
                    "op": f"{request.method} {request.url.path}",
                    "status_code": response.status_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "payload_preview": response.text[:500],
                },
            )
            raise ControlPlaneDecodeError(
                f"invalid response body from {request.method} {request.url.path}: {exc}",
                request=request,
                status_code=response.status_code,
            ) from exc

    def list_runner_jobs(self, runner_id: str) -> tuple[list[JobDTO], int]:
        """拉取 Runner 待处理作业，同时返回 HTTP 状态码。"""
        response = self._request(method="GET", path=f"/runner/{runner_id}/jobs", op="runner.jobs.list")
        return self._decode(response, list[JobDTO]), response.status_code

    def update_job_state(self, runner_id: str, job_id: str, body: UpdateJobStateDTO) -> None:
        self._request(
            method="POST",
            path=f"/runner/{runner_id}/jobs/{job_id}/state",
            op="runner.jobs.update_state",
            json_body=body.to_payload(),
            payload_preview={"job_id": job_id, "state": body.state.value},
        )

    def set_runner_metadata(self, runner_id: str, body: SetRunnerMetadataDTO) -> None:
        self._request(
            method="POST",
            path=f"/runner/{runner_id}/metadata",
            op="runner.metadata.set",
            json_body=body.to_payload(),
            payload_preview={"uptime": body.uptime, "providers": len(body.providers)},
        )

    def generate_network_key(self) -> str:
        response = self._request(method="POST", path="/server/network-key", op="server.network_key.generate")
        return self._decode(response, NetworkKeyDTO).key

    def get_server_config(self) -> ServerConfigDTO:
        response = self._request(method="GET", path="/server/config", op="server.config.get")
        return self._decode(response, ServerConfigDTO)

    def get_workspace(self, workspace_id: str) -> WorkspaceDTO:
        response = self._request(method="GET", path=f"/workspace/{workspace_id}", op="workspace.get")
        return self._decode(response, WorkspaceDTO)

    def update_workspace_provider_metadata(self, workspace_id: str, metadata: str) -> None:
        self._request(
            method="POST",
            path=f"/workspace/{workspace_id}/provider-metadata",
            op="workspace.provider_metadata.update",
            json_body=UpdateProviderMetadataDTO(metadata=metadata).to_payload(),
            payload_preview={"workspace_id": workspace_id},
        )

    def get_target(self, target_id: str) -> TargetDTO:
        response = self._request(method="GET", path=f"/target/{target_id}", op="target.get")
        return self._decode(response, TargetDTO)

    def update_target_provider_metadata(self, target_id: str, metadata: str) -> None:
        self._request(
            method="POST",
            path=f"/target/{target_id}/provider-metadata",
            op="target.provider_metadata.update",
            json_body=UpdateProviderMetadataDTO(metadata=metadata).to_payload(),
            payload_preview={"target_id": target_id},
        )

    def handle_successful_creation(self, target_id: str) -> None:
        self._request(
            method="POST",
            path=f"/target/{target_id}/handle-successful-creation",
            op="target.handle_successful_creation",
            payload_preview={"target_id": target_id},
        )

    def list_target_configs(self) -> list[TargetConfigDTO]:
        response = self._request(method="GET", path="/target-config", op="target_config.list")
        return self._decode(response, list[TargetConfigDTO])

    def add_target_config(self, body: AddTargetConfigDTO) -> TargetConfigDTO:
        response = self._request(
            method="PUT",
            path="/target-config",
            op="target_config.add",
            json_body=body.to_payload(),
            payload_preview={"name": body.name, "provider": body.provider_info.name},
        )
        return self._decode(response, TargetConfigDTO)

    def get_build(self, build_id: str) -> BuildDTO:
        response = self._request(method="GET", path=f"/build/{build_id}", op="build.get")
        return self._decode(response, BuildDTO)

    def list_successful_builds(self, repo_url: str) -> list[BuildDTO]:
        """按仓库地址查询成功构建；地址按查询串规则转义后放入路径。"""
        response = self._request(
            method="GET",
            path=f"/build/successful/{quote_plus(repo_url)}",
            op="build.list_successful",
            payload_preview={"repo_url": repo_url},
        )
        return self._decode(response, list[BuildDTO])

    def get_git_provider(self, git_provider_id: str) -> GitProviderDTO:
        response = self._request(method="GET", path=f"/gitprovider/{git_provider_id}", op="gitprovider.get")
        return self._decode(response, GitProviderDTO)

    def list_git_providers_for_url(self, repo_url: str) -> list[GitProviderDTO]:
        response = self._request(
            method="GET",
            path=f"/gitprovider/for-url/{quote_plus(repo_url)}",
            op="gitprovider.list_for_url",
            payload_preview={"repo_url": repo_url},
        )
        return self._decode(response, list[GitProviderDTO])

    def list_environment_variables(self) -> list[EnvironmentVariableDTO]:
        response = self._request(method="GET", path="/env", op="env.list")
        return self._decode(response, list[EnvironmentVariableDTO])

    def write_job_logs(self, kind: str, resource_id: str, lines: list[str]) -> None:
        """批量上传作业日志行；kind 为 target、workspace 或 build。"""
        self._request(
            method="POST",
            path=f"/log/{kind}/{resource_id}/write",
            op="log.write",
            json_body=JobLogLinesDTO(lines=lines).to_payload(),
            payload_preview={"kind": kind, "resource_id": resource_id, "lines": len(lines)},
        )
