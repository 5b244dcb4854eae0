"""全局配置加载模块：从环境变量构建 Runner 运行参数并提供缓存访问。"""

from __future__ import annotations

import errno
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv_to_list(value: str) -> list[str]:
    """将逗号分隔字符串转换为去空白列表。"""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Runner 运行配置对象，从环境变量读取并提供类型化访问。"""
    model_config = SettingsConfigDict(
        env_prefix="RUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    id: str = ""
    name: str = ""
    server_api_url: str = "http://127.0.0.1:3986"
    server_api_key: str | None = None
    request_timeout_seconds: int = 30

    config_dir: Path = Field(default=Path("./data/runner"))
    providers_dir: Path = Field(default=Path("./data/runner/providers"))
    docker_host: str = Field(
        default="unix:///var/run/docker.sock",
        validation_alias=AliasChoices("RUNNER_DOCKER_HOST", "DOCKER_HOST"),
    )

    poll_interval_seconds: float = 2.0
    metadata_interval_seconds: float = 10.0
    max_concurrent_jobs: int = 10
    telemetry_enabled: bool = True

    log_dir: Path = Field(default=Path("./logs"))
    log_level: str = "INFO"
    log_debug_modules: str = ""
    log_debug_job_ids: str = ""
    log_redaction_mode: str = "basic"
    log_payload_preview_chars: int = 2000
    log_max_bytes: int = 20 * 1024 * 1024
    log_backup_count: int = 5

    def log_debug_modules_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_modules)

    def log_debug_job_ids_list(self) -> list[str]:
        return _csv_to_list(self.log_debug_job_ids)

    @property
    def builds_dir(self) -> Path:
        """构建产物根目录，固定位于配置目录下的 builds 子目录。"""
        return self.config_dir / "builds"

    @property
    def target_logs_dir(self) -> Path:
        return self.config_dir / "logs" / "targets"

    @property
    def build_logs_dir(self) -> Path:
        return self.config_dir / "logs" / "builds"


def _resolve_dir(path: Path, fallback_name: str) -> Path:
    """将相对目录解析为绝对路径并确保可写，只读环境下回退到工作目录。"""
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        if exc.errno not in {errno.EACCES, errno.EPERM, errno.EROFS}:
            raise
        path = (Path.cwd() / "data" / fallback_name).resolve()
        path.mkdir(parents=True, exist_ok=True)
    return path


def save_runner_identity(
    env_file: Path,
    *,
    runner_id: str,
    name: str,
    server_api_url: str,
    server_api_key: str,
) -> None:
    """将 Runner 身份写入 .env 文件，保留文件中的其他配置行。"""
    updates = {
        "RUNNER_ID": runner_id,
        "RUNNER_NAME": name,
        "RUNNER_SERVER_API_URL": server_api_url,
        "RUNNER_SERVER_API_KEY": server_api_key,
    }
    lines: list[str] = []
    if env_file.exists():
        for line in env_file.read_text(encoding="utf-8").splitlines():
            key = line.split("=", 1)[0].strip()
            if key in updates:
                continue
            lines.append(line)
    lines.extend(f"{key}={value}" for key, value in updates.items())
    env_file.parent.mkdir(parents=True, exist_ok=True)
    env_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """构建并缓存 Settings，同时确保配置目录与 provider 目录可写。"""
    settings = Settings()
    settings.config_dir = _resolve_dir(settings.config_dir, "runner")
    settings.providers_dir = _resolve_dir(settings.providers_dir, "providers")
    return settings
