"""作业日志工厂：为目标、工作区与构建作业创建独立的文件日志，并可同步上传到控制面。"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

_LINE_FORMAT = "%(asctime)s %(levelname)s %(message)s"


class JobLogSink(Protocol):
    """作业日志上传目标。"""

    def write_job_logs(self, kind: str, resource_id: str, lines: list[str]) -> None: ...


class RemoteJobLogHandler(logging.Handler):
    """缓冲作业日志行，满 batch_size 或关闭时批量上传。"""

    def __init__(self, sink: JobLogSink, *, kind: str, resource_id: str, batch_size: int = 50) -> None:
        super().__init__(level=logging.DEBUG)
        self._sink = sink
        self._kind = kind
        self._resource_id = resource_id
        self._batch_size = batch_size
        self._pending: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        self._pending.append(line)
        if len(self._pending) >= self._batch_size:
            self.flush()

    def flush(self) -> None:
        self.acquire()
        try:
            lines, self._pending = self._pending, []
            if not lines:
                return
            try:
                self._sink.write_job_logs(self._kind, self._resource_id, lines)
            except httpx.HTTPError as exc:
                # 上传失败不影响作业执行，本地文件仍保留完整日志。
                logger.warning(
                    "job log upload failed",
                    extra={
                        "event": "job_logs.upload.failed",
                        "external_service": "controlplane",
                        "op": "log.write",
                        "resource_id": self._resource_id,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                        "payload_preview": {"kind": self._kind, "dropped_lines": len(lines)},
                    },
                )
        finally:
            self.release()

    def close(self) -> None:
        try:
            self.flush()
        finally:
            super().close()


class JobLoggerFactory:
    """按资源创建文件日志；目标与工作区共用目标日志目录，配置 sink 时同时上传到控制面。"""

    def __init__(
        self,
        *,
        target_logs_dir: Path | None,
        build_logs_dir: Path | None,
        sink: JobLogSink | None = None,
    ) -> None:
        self._target_logs_dir = target_logs_dir
        self._build_logs_dir = build_logs_dir
        self._sink = sink
        self._lock = threading.Lock()
        self._loggers: dict[str, logging.Logger] = {}

    @property
    def target_logs_dir(self) -> Path | None:
        return self._target_logs_dir

    @property
    def build_logs_dir(self) -> Path | None:
        return self._build_logs_dir

    def create_target_logger(self, target_id: str) -> logging.Logger:
        return self._create("target", target_id, self._require(self._target_logs_dir, "target"))

    def create_workspace_logger(self, workspace_id: str) -> logging.Logger:
        return self._create("workspace", workspace_id, self._require(self._target_logs_dir, "target"))

    def create_build_logger(self, build_id: str) -> logging.Logger:
        return self._create("build", build_id, self._require(self._build_logs_dir, "build"))

    def active_loggers(self) -> list[str]:
        with self._lock:
            return sorted(self._loggers)

    def close(self, job_logger: logging.Logger) -> None:
        """上传剩余日志并关闭该作业日志的全部句柄。"""
        with self._lock:
            if self._loggers.get(job_logger.name) is job_logger:
                del self._loggers[job_logger.name]
        for handler in list(job_logger.handlers):
            job_logger.removeHandler(handler)
            handler.close()

    @staticmethod
    def _require(path: Path | None, kind: str) -> Path:
        if path is None:
            raise ValueError(f"{kind} logs dir is not configured")
        return path

    def _create(self, kind: str, resource_id: str, logs_dir: Path) -> logging.Logger:
        name = f"app.joblogs.{kind}.{resource_id}"
        with self._lock:
            existing = self._loggers.get(name)
            if existing is not None:
                return existing
            # 不经 logging.getLogger 注册，关闭后即可被回收。
            job_logger = logging.Logger(name, level=logging.DEBUG)
            job_logger.propagate = False
            formatter = logging.Formatter(_LINE_FORMAT)
            logs_dir.mkdir(parents=True, exist_ok=True)
            handlers: list[logging.Handler] = [
                logging.FileHandler(logs_dir / f"{resource_id}.log", encoding="utf-8")
            ]
            if self._sink is not None:
                handlers.append(RemoteJobLogHandler(self._sink, kind=kind, resource_id=resource_id))
            for handler in handlers:
                handler.setFormatter(formatter)
                job_logger.addHandler(handler)
            self._loggers[name] = job_logger
        return job_logger
