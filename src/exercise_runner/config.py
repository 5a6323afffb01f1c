"""EXR 环境变量配置管理。

环境变量:
    EXR_EXERCISES_DIR: 练习根目录
        - 默认为当前目录下的 exercises/
        - 目录结构: <root>/<section>/<exercise>/<candidate>/main.py

    EXR_ENV_FILE: 传给子进程的 env 文件
        - 默认为当前目录下的 .env
        - 以 --env-file=<path> 参数传给 runner

    EXR_ENTRY_FILE: 候选目录中的入口文件名
        - 默认 main.py

    EXR_RUNNER: 启动子进程的命令前缀
        - 按 shell 规则分割
        - 默认 "<python> -m exercise_runner.launcher"

    EXR_KILL_GRACE: 终止手势后等待子进程退出的时间（秒）
        - 默认 0（发送 SIGTERM 后立即退出，不等待）
        - 大于 0 时，超时后对子进程组发送 SIGKILL
        - 限制在 0-10 秒范围

    EXR_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import shlex
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_ENTRY_FILE = "main.py"
DEFAULT_KILL_GRACE = 0.0
MAX_KILL_GRACE = 10.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_path(value: str | None, default: Path) -> Path:
    """解析路径环境变量，返回绝对路径。"""
    if not value or not value.strip():
        return default.resolve()
    return Path(value.strip()).expanduser().resolve()


def _parse_runner(value: str | None) -> list[str]:
    """解析 runner 命令。

    Args:
        value: EXR_RUNNER 环境变量值

    Returns:
        argv 前缀列表，空值返回默认 launcher
    """
    if value and value.strip():
        return shlex.split(value)
    return [sys.executable, "-m", "exercise_runner.launcher"]


def _parse_kill_grace(value: str | None) -> float:
    """解析终止等待时间环境变量。"""
    if not value:
        return DEFAULT_KILL_GRACE
    try:
        grace = float(value)
        return max(0.0, min(grace, MAX_KILL_GRACE))
    except ValueError:
        return DEFAULT_KILL_GRACE


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "exercise-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"exr_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """EXR 配置。

    Attributes:
        exercises_dir: 练习根目录
        env_file: 传给子进程的 env 文件
        entry_file: 候选目录中的入口文件名
        runner: 子进程命令前缀
        kill_grace: 终止后等待子进程的时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    exercises_dir: Path = field(default_factory=lambda: Path("exercises").resolve())
    env_file: Path = field(default_factory=lambda: Path(".env").resolve())
    entry_file: str = DEFAULT_ENTRY_FILE
    runner: list[str] = field(default_factory=lambda: _parse_runner(None))
    kill_grace: float = DEFAULT_KILL_GRACE
    log_debug: bool = False
    log_file: str | None = None

    def build_argv(self, entry: Path) -> list[str]:
        """构建子进程 argv。"""
        return [*self.runner, f"--env-file={self.env_file}", str(entry)]

    def __repr__(self) -> str:
        return (
            f"Config(exercises_dir={self.exercises_dir}, "
            f"env_file={self.env_file}, "
            f"entry_file={self.entry_file}, "
            f"runner={' '.join(self.runner)}, "
            f"kill_grace={self.kill_grace}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("EXR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None
    entry_file = (os.environ.get("EXR_ENTRY_FILE") or "").strip() or DEFAULT_ENTRY_FILE

    return Config(
        exercises_dir=_parse_path(os.environ.get("EXR_EXERCISES_DIR"), Path("exercises")),
        env_file=_parse_path(os.environ.get("EXR_ENV_FILE"), Path(".env")),
        entry_file=entry_file,
        runner=_parse_runner(os.environ.get("EXR_RUNNER")),
        kill_grace=_parse_kill_grace(os.environ.get("EXR_KILL_GRACE")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
