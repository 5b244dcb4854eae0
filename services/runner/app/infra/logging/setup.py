"""日志初始化：Runner 服务日志统一为 JSON 行，经队列异步写入文件与 stderr。

作业自身的构建/部署输出由 job_logs 写入独立文件，不经过这里。
"""

from __future__ import annotations

import contextlib
import json
import logging
import logging.config
import re
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue
from typing import Any

from app.config import Settings
from app.infra.logging.context import CONTEXT_FIELDS, get_log_context

SERVICE_NAME = "remote-runner"

_listener: QueueListener | None = None

# 控制面密钥、镜像仓库凭据与 git token 都可能出现在错误文本或 payload 中。
_REDACTION_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=\-]+"), r"\1***"),
    (re.compile(r"(?i)(api[-_]?key[\"']?\s*[:=]\s*[\"']?)[^\s,;\"'}]+"), r"\1***"),
    (re.compile(r"(?i)(_CONTAINER_REGISTRY_PASSWORD[\"']?\s*[:=]\s*[\"']?)[^\s,;\"'}]+"), r"\1***"),
    (re.compile(r"(?i)((?:password|token|secret)[\"']?\s*[:=]\s*[\"']?)[^\s,;\"'}]+"), r"\1***"),
    (re.compile(r"(https?://[^/\s:@]+:)[^@\s/]+@"), r"\1***@"),
    (re.compile(r"\b(ghp|gho|ghs|glpat)[-_][A-Za-z0-9_\-]{8,}"), r"\1_***"),
)

_STRICT_KEYS = re.compile(r"(?i)\b(authorization|password|token|secret|api_?key|username)\b[^,\s}]*")

# 降噪的第三方库日志器。
_NOISY_LOGGERS = ("httpx", "httpcore")

# 通过 extra 传入、需要写入 JSON 行的字段。
_EXTRA_FIELDS = ("external_service", "op", "error_type")
_NUMERIC_FIELDS = ("duration_ms", "status_code")


def redact_text(value: str | None, mode: str) -> str | None:
    """按模式脱敏：off 不处理，basic 遮盖凭据值，strict 额外遮盖凭据键后的全部内容。"""
    if value is None:
        return None
    text = str(value)
    mode = mode.lower()
    if mode == "off":
        return text
    for pattern, replacement in _REDACTION_RULES:
        text = pattern.sub(replacement, text)
    if mode == "strict":
        text = _STRICT_KEYS.sub(lambda match: f"{match.group(1)}=***", text)
    return text


def render_payload_preview(payload: Any, *, max_chars: int, redaction_mode: str) -> str | None:
    """序列化 payload 预览并截断。"""
    if payload is None:
        return None
    if isinstance(payload, str):
        serialized = payload
    else:
        serialized = json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)
    redacted = redact_text(serialized, redaction_mode) or ""
    if len(redacted) > max_chars:
        return f"{redacted[:max_chars]}...(truncated)"
    return redacted


def _to_number(value: Any) -> int | float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    text = str(value)
    try:
        return int(text) if text.lstrip("-").isdigit() else float(text)
    except ValueError:
        return None


class ContextInjectionFilter(logging.Filter):
    """入队前把 contextvars 中的 runner/作业字段写入 record，监听线程里读不到调用方上下文。"""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_log_context()
        for key in CONTEXT_FIELDS:
            if getattr(record, key, None) is None:
                setattr(record, key, ctx.get(key))
        return True


class DebugRoutingFilter(logging.Filter):
    """低于配置级别的日志默认丢弃；指定模块或指定作业/资源的 DEBUG 日志放行。"""

    def __init__(self, *, min_level: int, debug_modules: set[str], debug_ids: set[str]) -> None:
        super().__init__()
        self._min_level = min_level
        self._debug_modules = debug_modules
        self._debug_ids = debug_ids

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= self._min_level:
            return True
        if record.levelno != logging.DEBUG:
            return False
        name = record.name
        if any(name == module or name.startswith(f"{module}.") for module in self._debug_modules):
            return True
        if not self._debug_ids:
            return False
        record_ids = {getattr(record, "job_id", None), getattr(record, "resource_id", None)}
        return bool(record_ids & self._debug_ids)


class StructuredJsonFormatter(logging.Formatter):
    """输出固定字段集合的 JSON 行，缺失字段写 null。"""

    def __init__(self, *, process_role: str, redaction_mode: str, payload_preview_chars: int) -> None:
        super().__init__()
        self._process_role = process_role
        self._redaction_mode = redaction_mode
        self._payload_preview_chars = payload_preview_chars

    def _redact(self, value: Any) -> str | None:
        return redact_text(None if value is None else str(value), self._redaction_mode)

    def format(self, record: logging.LogRecord) -> str:
        error = getattr(record, "error", None)
        if error is None and record.exc_info:
            error = self.formatException(record.exc_info)

        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "process_role": self._process_role,
            "module": record.name,
            "thread": record.threadName,
            "event": getattr(record, "event", None),
        }
        entry.update({key: getattr(record, key, None) for key in CONTEXT_FIELDS})
        entry.update({key: getattr(record, key, None) for key in _EXTRA_FIELDS})
        entry.update({key: _to_number(getattr(record, key, None)) for key in _NUMERIC_FIELDS})
        entry["message"] = self._redact(record.getMessage())
        entry["error"] = self._redact(error)
        entry["payload_preview"] = render_payload_preview(
            getattr(record, "payload_preview", None),
            max_chars=self._payload_preview_chars,
            redaction_mode=self._redaction_mode,
        )
        return json.dumps(entry, ensure_ascii=False, default=str)


def _parse_level(level_text: str) -> int:
    level = logging.getLevelName(str(level_text).upper())
    return level if isinstance(level, int) else logging.INFO


def _log_file_path(settings: Settings, process_role: str) -> Path:
    log_root = settings.log_dir
    if not log_root.is_absolute():
        log_root = (Path.cwd() / log_root).resolve()
    role_dir = log_root / process_role
    role_dir.mkdir(parents=True, exist_ok=True)
    return role_dir / f"{SERVICE_NAME}.jsonl"


def _output_handlers(settings: Settings, log_file: Path, formatter: logging.Formatter) -> list[logging.Handler]:
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    for handler in (file_handler, stderr_handler):
        handler.setFormatter(formatter)
    return [file_handler, stderr_handler]


def configure_logging(settings: Settings, *, process_role: str) -> Path:
    """初始化 Runner 进程日志并返回 JSON 日志文件路径；重复调用会先关闭旧的监听器。"""
    global _listener
    shutdown_logging()

    log_file = _log_file_path(settings, process_role)
    records: SimpleQueue[logging.LogRecord] = SimpleQueue()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "context": {"()": ContextInjectionFilter},
                "debug_routing": {
                    "()": DebugRoutingFilter,
                    "min_level": _parse_level(settings.log_level),
                    "debug_modules": set(settings.log_debug_modules_list()),
                    "debug_ids": set(settings.log_debug_job_ids_list()),
                },
            },
            "handlers": {
                "queue": {
                    "class": "logging.handlers.QueueHandler",
                    "queue": records,
                    # 上下文字段必须先注入，路由过滤才能按作业放行。
                    "filters": ["context", "debug_routing"],
                }
            },
            "root": {"level": "DEBUG", "handlers": ["queue"]},
            "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        }
    )
    if not any(isinstance(handler, QueueHandler) for handler in logging.getLogger().handlers):
        raise RuntimeError("queue logging handler is not configured")

    formatter = StructuredJsonFormatter(
        process_role=process_role,
        redaction_mode=settings.log_redaction_mode,
        payload_preview_chars=settings.log_payload_preview_chars,
    )
    _listener = QueueListener(
        records,
        *_output_handlers(settings, log_file, formatter),
        respect_handler_level=True,
    )
    _listener.start()
    return log_file


def shutdown_logging() -> None:
    """停止队列监听器，排空剩余日志后关闭输出句柄。"""
    global _listener
    listener, _listener = _listener, None
    if listener is None:
        return
    listener.stop()
    for handler in listener.handlers:
        # 进程退出阶段文件可能已被轮转或删除。
        with contextlib.suppress(OSError):
            handler.close()
