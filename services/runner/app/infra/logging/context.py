"""日志上下文：基于 contextvars 透传 runner、作业与作业所属资源标识。"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

CONTEXT_FIELDS = ("runner_id", "job_id", "resource_type", "resource_id")

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"log_{name}", default=None) for name in CONTEXT_FIELDS
}


def get_log_context() -> dict[str, str | None]:
    """返回当前线程下的日志上下文字段。"""
    return {name: var.get() for name, var in _CONTEXT_VARS.items()}


@contextmanager
def bind_log_context(**fields: str | None) -> Iterator[None]:
    """在上下文范围内绑定日志字段，退出时恢复；只接受 CONTEXT_FIELDS 中的字段名。"""
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context fields: {sorted(unknown)}")
    tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = [
        (_CONTEXT_VARS[name], _CONTEXT_VARS[name].set(value)) for name, value in fields.items()
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
