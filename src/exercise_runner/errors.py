"""exercise-runner 异常类。"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "ExerciseRunnerError",
    "ResolutionError",
    "ExercisesDirNotFound",
    "ExerciseNotFound",
    "NoCandidates",
    "EntryFileNotFound",
    "SelectionAborted",
    "ChildFailure",
]


class ExerciseRunnerError(Exception):
    """基础异常。"""
    pass


class ResolutionError(ExerciseRunnerError):
    """无法解析出可运行的入口（退出码 1，不会启动子进程）。"""
    pass


class ExercisesDirNotFound(ResolutionError):
    """练习根目录不存在。

    Attributes:
        path: 期望的练习根目录
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Exercises directory not found at {path}")


class ExerciseNotFound(ResolutionError):
    """任何 section 中都没有匹配的练习。"""

    def __init__(self, exercise_id: str) -> None:
        self.exercise_id = exercise_id
        super().__init__(f"Could not find exercise {exercise_id} in any section.")


class NoCandidates(ResolutionError):
    """练习目录下没有候选子目录。"""

    def __init__(self, exercise_id: str) -> None:
        self.exercise_id = exercise_id
        super().__init__(f"No directories found in exercise {exercise_id}.")


class EntryFileNotFound(ResolutionError):
    """选中的目录里没有入口文件。

    Attributes:
        exercise_id: 练习编号
        directory: 选中的候选目录
        entry_file: 入口文件名
    """

    def __init__(self, exercise_id: str, directory: Path, entry_file: str) -> None:
        self.exercise_id = exercise_id
        self.directory = directory
        self.entry_file = entry_file
        super().__init__(
            f"Could not find {entry_file} file in {directory.name} "
            f"for exercise {exercise_id}."
        )


class SelectionAborted(ExerciseRunnerError):
    """用户取消了交互选择（退出码 0）。"""

    def __init__(self) -> None:
        super().__init__("No directory selected. Exiting.")


class ChildFailure(ExerciseRunnerError):
    """子进程以非零退出码结束。

    Attributes:
        code: 子进程退出码
    """

    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(f"Child process exited with code {code}")
