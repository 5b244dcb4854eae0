"""Runner 命令行入口：configure 写入 Runner 身份，start 启动执行循环。"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from types import FrameType

from app.application.container import get_provider_manager, get_runner, shutdown_container_resources
from app.config import get_settings, save_runner_identity
from app.infra.logging.setup import configure_logging, shutdown_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="runner", description="Remote job runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    configure = subparsers.add_parser("configure", help="Configure runner identity")
    configure.add_argument("--id", required=True, help="Runner ID")
    configure.add_argument("--name", required=True, help="Runner name")
    configure.add_argument("--api-url", required=True, help="Server API URL")
    configure.add_argument("--api-key", required=True, help="Runner API key")
    configure.add_argument("--env-file", type=Path, default=Path(".env"), help="Settings file to update")

    subparsers.add_parser("start", help="Start the runner loop")
    return parser


def _configure(args: argparse.Namespace) -> int:
    save_runner_identity(
        args.env_file,
        runner_id=args.id,
        name=args.name,
        server_api_url=args.api_url,
        server_api_key=args.api_key,
    )
    print("Runner configuration updated. You need to restart the runner for the changes to take effect.")
    return 0


def _start() -> int:
    settings = get_settings()
    if not settings.id:
        print("runner is not configured, run `configure` first", file=sys.stderr)
        return 2
    configure_logging(settings, process_role="runner")
    stop_event = threading.Event()

    def _handle_signal(signum: int, _frame: FrameType | None) -> None:
        logger.info("runner stop requested", extra={"event": "runner.signal", "op": signal.Signals(signum).name})
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        # 先显式初始化 Provider 管理器，Runner 装配时复用同一句柄。
        get_provider_manager()
        get_runner().run(stop_event)
    except Exception as exc:
        logger.exception(
            "runner crashed",
            extra={"event": "runner.crashed", "error_type": type(exc).__name__, "error": str(exc)},
        )
        raise
    finally:
        shutdown_container_resources()
        shutdown_logging()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "configure":
        return _configure(args)
    return _start()


if __name__ == "__main__":
    sys.exit(main())
