"""作业日志测试：本地文件与控制面上传并行，上传失败不影响作业日志落盘。"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx
import pytest

from app.infra.controlplane.client import ControlPlaneClient
from app.infra.logging.job_logs import JobLoggerFactory, RemoteJobLogHandler
from conftest import ControlPlaneStub


def _client(handler) -> ControlPlaneClient:
    return ControlPlaneClient("http://controlplane.test/", "runner-key", transport=httpx.MockTransport(handler))


def _factory(tmp_path: Path, sink=None) -> JobLoggerFactory:
    return JobLoggerFactory(target_logs_dir=tmp_path / "targets", build_logs_dir=tmp_path / "builds", sink=sink)


def test_build_logs_are_uploaded_on_close(tmp_path: Path) -> None:
    requests: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    factory = _factory(tmp_path, _client(_record))
    build_logger = factory.create_build_logger("b-1")
    build_logger.info("pulling base image")
    build_logger.info("pushing image")
    factory.close(build_logger)

    assert [(request.method, request.url.path) for request in requests] == [("POST", "/log/build/b-1/write")]
    assert requests[0].headers["Authorization"] == "Bearer runner-key"
    lines = json.loads(requests[0].content)["lines"]
    assert len(lines) == 2
    assert lines[0].endswith("INFO pulling base image")
    assert lines[1].endswith("INFO pushing image")


def test_upload_failure_keeps_local_file(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """控制面返回 500 时只记录告警，本地日志文件照常写入。"""
    factory = _factory(tmp_path, _client(lambda request: httpx.Response(500, text="boom")))
    target_logger = factory.create_target_logger("t-1")
    target_logger.info("provisioning target")

    with caplog.at_level(logging.WARNING, logger="app.infra.logging.job_logs"):
        factory.close(target_logger)

    assert "provisioning target" in (tmp_path / "targets" / "t-1.log").read_text(encoding="utf-8")
    failures = [record for record in caplog.records if getattr(record, "event", None) == "job_logs.upload.failed"]
    assert len(failures) == 1
    assert failures[0].payload_preview == {"kind": "target", "dropped_lines": 1}


def test_unreachable_control_plane_does_not_raise(tmp_path: Path) -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    factory = _factory(tmp_path, _client(_refuse))
    workspace_logger = factory.create_workspace_logger("ws-1")
    workspace_logger.info("cloning repository")
    factory.close(workspace_logger)

    assert "cloning repository" in (tmp_path / "targets" / "ws-1.log").read_text(encoding="utf-8")


def test_handler_uploads_full_batches_before_close() -> None:
    sink = ControlPlaneStub()
    handler = RemoteJobLogHandler(sink, kind="build", resource_id="b-1", batch_size=2)
    handler.setFormatter(logging.Formatter("%(message)s"))
    job_logger = logging.Logger("batch-test")
    job_logger.addHandler(handler)

    for step in ("one", "two", "three"):
        job_logger.info(step)

    assert sink.job_log_writes == [("build", "b-1", ["one", "two"])]
    handler.close()
    assert sink.job_log_writes[-1] == ("build", "b-1", ["three"])


def test_close_without_new_lines_sends_nothing() -> None:
    sink = ControlPlaneStub()
    handler = RemoteJobLogHandler(sink, kind="build", resource_id="b-1")

    handler.close()

    assert sink.job_log_writes == []


def test_factory_without_sink_only_writes_files(tmp_path: Path) -> None:
    factory = _factory(tmp_path)
    build_logger = factory.create_build_logger("b-2")

    assert [type(handler) for handler in build_logger.handlers] == [logging.FileHandler]
    factory.close(build_logger)


def test_job_loggers_are_released_after_close(tmp_path: Path) -> None:
    """作业日志不进入全局 logger 注册表，关闭后从工厂中移除。"""
    factory = _factory(tmp_path, ControlPlaneStub())
    build_logger = factory.create_build_logger("b-1")

    assert factory.create_build_logger("b-1") is build_logger
    assert factory.active_loggers() == ["app.joblogs.build.b-1"]
    assert "app.joblogs.build.b-1" not in logging.Logger.manager.loggerDict

    factory.close(build_logger)

    assert factory.active_loggers() == []
    assert build_logger.handlers == []
    reopened = factory.create_build_logger("b-1")
    assert reopened is not build_logger
    factory.close(reopened)
