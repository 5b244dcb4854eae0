"""DTO 转换：在线上 pydantic 模型与领域 dataclass 之间按字段名映射。

转换结果显式区分三种情况：得到值、源记录为空（调用方应跳过）、转换失败。
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

T = TypeVar("T")


class ConversionError(ValueError):
    """源记录无法映射为目标类型。"""


class ConversionStatus(str, Enum):
    value = "value"
    empty = "empty"
    failed = "failed"


@dataclass(slots=True)
class Conversion(Generic[T]):
    """转换结果：value / empty / failed 三选一。"""
    status: ConversionStatus
    value: T | None = None
    error: ConversionError | None = None

    @classmethod
    def of(cls, value: T) -> Conversion[T]:
        return cls(status=ConversionStatus.value, value=value)

    @classmethod
    def empty_result(cls) -> Conversion[T]:
        return cls(status=ConversionStatus.empty)

    @classmethod
    def failure(cls, error: ConversionError) -> Conversion[T]:
        return cls(status=ConversionStatus.failed, error=error)

    @property
    def ok(self) -> bool:
        return self.status is ConversionStatus.value

    @property
    def empty(self) -> bool:
        return self.status is ConversionStatus.empty

    @property
    def failed(self) -> bool:
        return self.status is ConversionStatus.failed

    def unwrap(self) -> T | None:
        """返回转换值；空结果返回 None，失败时抛出 ConversionError。"""
        if self.error is not None:
            raise self.error
        return self.value


@lru_cache(maxsize=None)
def _adapter(target: type[Any]) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def _to_mapping(source: Any) -> dict[str, Any]:
    if isinstance(source, BaseModel):
        return source.model_dump(mode="json")
    if dataclasses.is_dataclass(source) and not isinstance(source, type):
        return dataclasses.asdict(source)
    if isinstance(source, Mapping):
        return dict(source)
    raise ConversionError(f"unsupported conversion source: {type(source).__name__}")


def _is_populated(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) > 0
    return True


def convert(source: Any, target: type[T]) -> Conversion[T]:
    """将 source 转换为 target 类型。

    参数:
    - source: pydantic 模型、dataclass 实例或字典；None 视为空记录。
    - target: 目标 pydantic 模型或 dataclass 类型。
    返回:
    - 字段全部未赋值时返回 empty，校验失败返回 failed，否则返回 value。
    """
    if source is None:
        return Conversion.empty_result()
    try:
        data = _to_mapping(source)
    except ConversionError as exc:
        return Conversion.failure(exc)
    if not any(_is_populated(item) for item in data.values()):
        return Conversion.empty_result()
    try:
        value = _adapter(target).validate_python(data)
    except ValidationError as exc:
        error = ConversionError(f"cannot convert {type(source).__name__} to {target.__name__}: {exc}")
        error.__cause__ = exc
        return Conversion.failure(error)
    return Conversion.of(value)


def convert_each(sources: Iterable[Any], target: type[T]) -> list[T]:
    """逐个转换序列：空记录跳过，任一失败立即抛出 ConversionError。"""
    converted: list[T] = []
    for source in sources:
        result = convert(source, target)
        if result.failed:
            raise result.error
        if result.empty:
            continue
        converted.append(result.value)
    return converted
