"""exercise-runner 应用入口。

包含日志配置、命令行解析和主入口点。

退出码:
    0: 子进程成功、终止手势、终止信号、取消选择
    1: 找不到练习/候选目录/入口文件、子进程启动失败、内部错误
    N: 子进程的非零退出码原样传递
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from . import __version__
from .config import Config, get_config
from .errors import ResolutionError, SelectionAborted
from .runtime import ProcessSupervisor
from .selector import ExerciseSelector
from .types import EntryPoint, TerminationReason

__all__ = ["main", "run_exercise", "build_parser", "configure_logging"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class _RawTerminalFormatter(logging.Formatter):
    """在 raw 模式下终端不会把 \\n 转为 \\r\\n，这里显式补上。"""

    def format(self, record: logging.LogRecord) -> str:
        return super().format(record).replace("\n", "\r\n")


def configure_logging(config: Config) -> None:
    """配置日志输出。

    - 默认: stderr, INFO
    - EXR_LOG_DEBUG: 临时文件, DEBUG
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(_RawTerminalFormatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # root logger（第三方库）保持 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
        force=True,
    )
    # 只对 exercise_runner 命名空间启用详细日志
    logging.getLogger("exercise_runner").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    """构建命令行解析器。"""
    parser = argparse.ArgumentParser(
        prog="exercise-runner",
        description="Find an exercise by number and run it with live keyboard input",
    )
    parser.add_argument("exercise_id", help="Exercise number, matched against directory names")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_entry(exercise_id: str, config: Config) -> EntryPoint:
    """解析练习入口。"""
    selector = ExerciseSelector(config.exercises_dir, entry_file=config.entry_file)
    return selector.resolve(exercise_id)


async def run_exercise(entry: EntryPoint, config: Config) -> TerminationReason:
    """运行练习子进程。"""
    print(f"Running exercise {entry.exercise_id} from {entry.entry_file}")
    supervisor = ProcessSupervisor(config)
    return await supervisor.run(entry)


def main(argv: list[str] | None = None) -> None:
    """主入口点。"""
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(config)
    logger.debug(f"Starting exercise-runner: {config}")

    try:
        entry = resolve_entry(args.exercise_id, config)
    except SelectionAborted as e:
        print(e)
        sys.exit(0)
    except ResolutionError as e:
        logger.error(str(e))
        sys.exit(1)

    reason = asyncio.run(run_exercise(entry, config))

    # listener 已在 run() 返回前释放，终端状态已恢复
    logger.debug(f"Exiting with code {reason.exit_code} ({reason})")
    sys.exit(reason.exit_code)


if __name__ == "__main__":
    main()
