"""作业工厂注册中心：按资源类型将作业路由到对应工厂。"""

from __future__ import annotations

from app.application.jobs.base import BaseJobFactory, PreparedJob, UnsupportedJobError
from app.application.jobs.build import BuildJobFactory
from app.application.jobs.runner import RunnerJobFactory
from app.application.jobs.target import TargetJobFactory
from app.application.jobs.workspace import WorkspaceJobFactory
from app.domain.enums import ResourceType
from app.domain.models import Job


class JobFactoryRegistry:
    """四类资源作业工厂的集合。"""

    def __init__(
        self,
        *,
        workspace: WorkspaceJobFactory,
        target: TargetJobFactory,
        build: BuildJobFactory,
        runner: RunnerJobFactory,
    ) -> None:
        self.workspace = workspace
        self.target = target
        self.build = build
        self.runner = runner
        self._factories: dict[ResourceType, BaseJobFactory] = {
            ResourceType.workspace: workspace,
            ResourceType.target: target,
            ResourceType.build: build,
            ResourceType.runner: runner,
        }

    def for_resource(self, resource_type: ResourceType) -> BaseJobFactory:
        try:
            return self._factories[resource_type]
        except KeyError as exc:
            raise UnsupportedJobError(f"unknown resource type: {resource_type}") from exc

    def create(self, job: Job) -> PreparedJob:
        """按作业资源类型选择工厂并生成待执行作业。"""
        return self.for_resource(job.resource_type).create(job)
