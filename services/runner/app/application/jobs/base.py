"""作业工厂抽象基类：约束资源类型匹配，并将作业交给外部执行器。"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass
from typing import Protocol

from app.domain.conversion import convert
from app.domain.enums import ResourceType
from app.domain.models import Job, Target
from app.infra.controlplane.client import ControlPlaneClient


class UnsupportedJobError(RuntimeError):
    """作业没有可用的工厂或执行器。"""


class JobExecutor(Protocol):
    """单一资源类型的作业执行器，由调用方提供。"""

    def execute(self, prepared: PreparedJob) -> None: ...


@dataclass(slots=True)
class PreparedJob:
    """作业与其所属工厂的组合，执行器通过 factory 访问能力集合。"""
    job: Job
    factory: BaseJobFactory
    executor: JobExecutor | None

    def run(self) -> None:
        if self.executor is None:
            raise UnsupportedJobError(f"no executor registered for {self.job.resource_type.value} jobs")
        self.executor.execute(self)


class BaseJobFactory(ABC):
    """作业工厂基类，子类声明 resource_type 并持有各自的能力集合。"""
    resource_type: ResourceType

    def __init__(self, executor: JobExecutor | None = None) -> None:
        self._executor = executor

    @property
    def executor(self) -> JobExecutor | None:
        return self._executor

    def create(self, job: Job) -> PreparedJob:
        """为作业绑定工厂与执行器；资源类型不匹配时抛出 UnsupportedJobError。"""
        if job.resource_type != self.resource_type:
            raise UnsupportedJobError(
                f"{type(self).__name__} cannot handle {job.resource_type.value} job {job.id}"
            )
        return PreparedJob(job=job, factory=self, executor=self._executor)


def fetch_target(client: ControlPlaneClient, target_id: str) -> Target | None:
    """读取目标并转换为领域模型；空记录返回 None。"""
    return convert(client.get_target(target_id), Target).unwrap()
