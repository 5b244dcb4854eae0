"""遥测服务：以结构化日志形式记录服务端、构建与 Runner 事件。"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from app.domain.enums import BuildRunnerEvent, RunnerEvent, ServerEvent

logger = logging.getLogger(__name__)


class TelemetryService(Protocol):
    """遥测服务接口。"""

    def track_server_event(self, event: ServerEvent, client_id: str, props: dict[str, Any]) -> None: ...

    def track_build_runner_event(self, event: BuildRunnerEvent, client_id: str, props: dict[str, Any]) -> None: ...

    def track_runner_event(self, event: RunnerEvent, client_id: str, props: dict[str, Any]) -> None: ...


class LoggingTelemetryService:
    """基于日志的遥测实现，关闭时静默丢弃事件。"""

    def __init__(self, *, enabled: bool = True, source: str = "runner") -> None:
        self._enabled = enabled
        self._source = source

    def _track(self, category: str, event_name: str, client_id: str, props: dict[str, Any]) -> None:
        if not self._enabled:
            return
        logger.info(
            "telemetry event",
            extra={
                "event": f"telemetry.{category}",
                "op": event_name,
                "payload_preview": {"source": self._source, "client_id": client_id, "props": props},
            },
        )

    def track_server_event(self, event: ServerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._track("server", event.value, client_id, props)

    def track_build_runner_event(self, event: BuildRunnerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._track("build_runner", event.value, client_id, props)

    def track_runner_event(self, event: RunnerEvent, client_id: str, props: dict[str, Any]) -> None:
        self._track("runner", event.value, client_id, props)
