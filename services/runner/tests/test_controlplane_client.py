"""控制面客户端测试：通过 MockTransport 校验请求路径、鉴权头与请求体结构。"""

from __future__ import annotations

import json

import httpx
import pytest

from app.application.bridge import NO_RESPONSE_STATUS, JobDispatchBridge, JobListingError
from app.domain.enums import JobState
from app.domain.models import RunnerMetadata
from app.infra.controlplane.client import ControlPlaneClient, ControlPlaneDecodeError
from app.infra.controlplane.schemas import AddTargetConfigDTO, ProviderInfoDTO


class RecordingTransport(httpx.MockTransport):
    """记录所有请求并按 (method, raw_path) 返回预置响应。"""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.routes = routes or {}
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.raw_path.decode("ascii"))
        if key in self.routes:
            return self.routes[key]
        return httpx.Response(200, json={})


def _client(transport: httpx.BaseTransport, api_key: str | None = "runner-key") -> ControlPlaneClient:
    return ControlPlaneClient("http://controlplane.test/", api_key, transport=transport)


def test_list_runner_jobs_sends_bearer_and_parses_jobs() -> None:
    transport = RecordingTransport(
        {
            ("GET", "/runner/runner-1/jobs"): httpx.Response(
                200,
                json=[
                    {
                        "id": "job-1",
                        "resourceId": "ws-1",
                        "runnerId": "runner-1",
                        "resourceType": "workspace",
                        "state": "pending",
                        "action": "create",
                        "createdAt": "2024-01-01T00:00:00Z",
                    }
                ],
            )
        }
    )

    jobs, status_code = _client(transport).list_runner_jobs("runner-1")

    assert status_code == 200
    assert jobs[0].resource_id == "ws-1"
    assert transport.requests[0].headers["Authorization"] == "Bearer runner-key"


def test_missing_api_key_sends_no_authorization_header() -> None:
    transport = RecordingTransport({("GET", "/env"): httpx.Response(200, json=[])})

    assert _client(transport, api_key=None).list_environment_variables() == []
    assert "Authorization" not in transport.requests[0].headers


def test_repo_url_is_query_escaped_in_path() -> None:
    """仓库地址按查询串规则转义，斜杠与冒号都会被编码。"""
    transport = RecordingTransport(
        {
            ("GET", "/build/successful/https%3A%2F%2Fgithub.com%2Facme%2Fapp.git"): httpx.Response(
                200, json=[{"id": "b1", "state": "success"}]
            )
        }
    )

    builds = _client(transport).list_successful_builds("https://github.com/acme/app.git")

    assert [item.id for item in builds] == ["b1"]


def test_git_providers_for_url_path() -> None:
    transport = RecordingTransport(
        {("GET", "/gitprovider/for-url/https%3A%2F%2Fgitlab.com%2Fa+b"): httpx.Response(200, json=[])}
    )

    assert _client(transport).list_git_providers_for_url("https://gitlab.com/a b") == []
    assert transport.requests[0].url.raw_path == b"/gitprovider/for-url/https%3A%2F%2Fgitlab.com%2Fa+b"


def test_job_state_body_uses_camel_case_and_omits_missing_error() -> None:
    transport = RecordingTransport()
    bridge = JobDispatchBridge(_client(transport), "runner-1")

    bridge.update_job_state("job-9", JobState.running)
    bridge.update_job_state("job-9", JobState.error, RuntimeError("boom"))

    assert [request.url.path for request in transport.requests] == ["/runner/runner-1/jobs/job-9/state"] * 2
    assert json.loads(transport.requests[0].content) == {"state": "running"}
    assert json.loads(transport.requests[1].content) == {"state": "error", "errorMessage": "boom"}


def test_runner_metadata_body() -> None:
    transport = RecordingTransport()
    bridge = JobDispatchBridge(_client(transport), "runner-1")

    bridge.set_runner_metadata("runner-1", RunnerMetadata(uptime=12))

    request = transport.requests[0]
    assert (request.method, request.url.path) == ("POST", "/runner/runner-1/metadata")
    assert json.loads(request.content) == {"uptime": 12, "providers": []}


def test_bridge_reports_response_status_from_real_client() -> None:
    transport = RecordingTransport({("GET", "/runner/runner-1/jobs"): httpx.Response(503, text="unavailable")})

    with pytest.raises(JobListingError) as exc_info:
        JobDispatchBridge(_client(transport), "runner-1").list_pending_jobs()

    assert exc_info.value.status_code == 503
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)


def test_bridge_reports_minus_one_when_unreachable() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(JobListingError) as exc_info:
        JobDispatchBridge(_client(httpx.MockTransport(_refuse)), "runner-1").list_pending_jobs()

    assert exc_info.value.status_code == NO_RESPONSE_STATUS


def test_add_target_config_uses_put() -> None:
    transport = RecordingTransport(
        {
            ("PUT", "/target-config"): httpx.Response(
                200,
                json={
                    "id": "tc-1",
                    "name": "local-docker",
                    "options": "{}",
                    "providerInfo": {"name": "docker-provider", "version": "v1"},
                },
            )
        }
    )

    created = _client(transport).add_target_config(
        AddTargetConfigDTO(
            name="local-docker",
            options="{}",
            provider_info=ProviderInfoDTO(name="docker-provider", version="v1"),
        )
    )

    assert created.id == "tc-1"
    body = json.loads(transport.requests[0].content)
    assert body["providerInfo"]["name"] == "docker-provider"
    assert "label" not in body["providerInfo"]


def test_server_config_parses_nested_frps() -> None:
    transport = RecordingTransport(
        {
            ("GET", "/server/config"): httpx.Response(
                200,
                json={
                    "id": "srv1",
                    "builderRegistryServer": "registry.example.com",
                    "buildImageNamespace": "team",
                    "frps": {"domain": "tunnel.dev", "port": 7000, "protocol": "https"},
                },
            )
        }
    )

    config = _client(transport).get_server_config()

    assert config.frps.domain == "tunnel.dev"
    assert config.build_image_namespace == "team"


def test_closed_client_refuses_requests() -> None:
    client = _client(RecordingTransport())
    client.close()

    with pytest.raises(RuntimeError):
        client.get_server_config()


def test_bridge_reports_status_when_job_list_cannot_be_decoded() -> None:
    """成功响应中含未知动作时，拉取失败并携带该响应的状态码。"""
    transport = RecordingTransport(
        {
            ("GET", "/runner/runner-1/jobs"): httpx.Response(
                200,
                json=[
                    {
                        "id": "job-1",
                        "resourceId": "b-1",
                        "runnerId": "runner-1",
                        "resourceType": "build",
                        "state": "pending",
                        "action": "rebuild",
                    }
                ],
            )
        }
    )

    with pytest.raises(JobListingError) as exc_info:
        JobDispatchBridge(_client(transport), "runner-1").list_pending_jobs()

    assert exc_info.value.status_code == 200
    assert isinstance(exc_info.value.__cause__, ControlPlaneDecodeError)


def test_bridge_reports_status_when_body_is_not_json() -> None:
    transport = RecordingTransport({("GET", "/runner/runner-1/jobs"): httpx.Response(200, text="<html>proxy</html>")})

    with pytest.raises(JobListingError) as exc_info:
        JobDispatchBridge(_client(transport), "runner-1").list_pending_jobs()

    assert exc_info.value.status_code == 200


def test_decode_error_is_an_http_error() -> None:
    """解析失败与传输失败一样属于 httpx.HTTPError，调用方可统一处理。"""
    transport = RecordingTransport({("GET", "/server/config"): httpx.Response(200, json={"id": "srv1"})})

    with pytest.raises(httpx.HTTPError) as exc_info:
        _client(transport).get_server_config()

    assert isinstance(exc_info.value, ControlPlaneDecodeError)
    assert exc_info.value.status_code == 200


def test_write_job_logs_posts_lines() -> None:
    transport = RecordingTransport()

    _client(transport).write_job_logs("build", "b-1", ["step 1", "step 2"])

    request = transport.requests[0]
    assert (request.method, request.url.path) == ("POST", "/log/build/b-1/write")
    assert json.loads(request.content) == {"lines": ["step 1", "step 2"]}
