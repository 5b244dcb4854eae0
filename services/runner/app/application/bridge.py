"""作业调度桥：将作业队列拉取、状态回报与 Runner 元数据上报对接到控制面 API。

桥本身不持有任何作业状态，也不做重试；重试策略由调用方的执行循环决定。
"""

from __future__ import annotations

import logging

import httpx

from app.domain.conversion import convert_each
from app.domain.enums import JobAction, JobState, ResourceType
from app.domain.models import Job, RunnerMetadata
from app.infra.controlplane.client import ControlPlaneClient, ControlPlaneDecodeError
from app.infra.controlplane.schemas import (
    ApiJobAction,
    ApiJobState,
    ApiResourceType,
    JobDTO,
    ProviderInfoDTO,
    SetRunnerMetadataDTO,
    UpdateJobStateDTO,
)

logger = logging.getLogger(__name__)

NO_RESPONSE_STATUS = -1

# 线上枚举与本地枚举取值一致，构造映射表时缺项会直接报错。
_RESOURCE_TYPES = {item: ResourceType(item.value) for item in ApiResourceType}
_JOB_STATES = {item: JobState(item.value) for item in ApiJobState}
_JOB_ACTIONS = {item: JobAction(item.value) for item in ApiJobAction}
_API_JOB_STATES = {value: key for key, value in _JOB_STATES.items()}


class JobListingError(RuntimeError):
    """作业拉取失败；status_code 为失败响应的状态码，未收到响应时为 -1。"""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def to_local_job(dto: JobDTO) -> Job:
    """逐字段复制线上作业记录，枚举按取值映射。"""
    return Job(
        id=dto.id,
        resource_id=dto.resource_id,
        runner_id=dto.runner_id,
        resource_type=_RESOURCE_TYPES[dto.resource_type],
        state=_JOB_STATES[dto.state],
        action=_JOB_ACTIONS[dto.action],
        metadata=dto.metadata,
        error=dto.error,
    )


class JobDispatchBridge:
    """执行循环与控制面之间的适配层。"""

    def __init__(self, client: ControlPlaneClient, runner_id: str) -> None:
        self._client = client
        self._runner_id = runner_id

    @property
    def runner_id(self) -> str:
        return self._runner_id

    def list_pending_jobs(self) -> tuple[list[Job], int]:
        """拉取本 Runner 的待处理作业，返回作业列表与 HTTP 状态码。"""
        try:
            dtos, status_code = self._client.list_runner_jobs(self._runner_id)
        except httpx.HTTPStatusError as exc:
            raise JobListingError(str(exc), exc.response.status_code) from exc
        except ControlPlaneDecodeError as exc:
            raise JobListingError(str(exc), exc.status_code) from exc
        except httpx.HTTPError as exc:
            raise JobListingError(str(exc), NO_RESPONSE_STATUS) from exc
        return [to_local_job(dto) for dto in dtos], status_code

    def update_job_state(self, job_id: str, state: JobState, job_error: BaseException | None = None) -> None:
        """回报作业状态；仅在给出错误时附带 errorMessage，错误文本为空时使用异常类型名。"""
        error_message = None
        if job_error is not None:
            error_message = str(job_error) or type(job_error).__name__
        self._client.update_job_state(
            self._runner_id,
            job_id,
            UpdateJobStateDTO(state=_API_JOB_STATES[state], error_message=error_message),
        )

    def set_runner_metadata(self, runner_id: str, metadata: RunnerMetadata) -> None:
        """上报 Runner 元数据；provider 全部转换成功后才发起请求。"""
        providers = convert_each(metadata.providers, ProviderInfoDTO)
        skipped = len(metadata.providers) - len(providers)
        if skipped:
            logger.debug(
                "empty provider records skipped",
                extra={"event": "runner.metadata.providers.skipped", "payload_preview": {"skipped": skipped}},
            )
        self._client.set_runner_metadata(
            runner_id,
            SetRunnerMetadataDTO(
                uptime=int(metadata.uptime),
                providers=providers,
                running_jobs=metadata.running_jobs,
            ),
        )
