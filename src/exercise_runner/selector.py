"""练习选择模块。

将用户输入的练习编号解析为可运行的入口：
- 在 <root>/<section>/ 中查找名称包含编号的练习目录
- 只有一个候选目录时自动选择
- 多个候选目录时交互式选择（可取消）
- 检查入口文件是否存在
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Optional

from .errors import (
    EntryFileNotFound,
    ExerciseNotFound,
    ExercisesDirNotFound,
    NoCandidates,
    SelectionAborted,
)
from .types import EntryPoint

__all__ = ["ExerciseSelector", "Chooser", "prompt_choice"]

logger = logging.getLogger(__name__)

# (message, choices) -> 选中的 choice，None 表示取消
Chooser = Callable[[str, Sequence[str]], Optional[str]]


def _subdirectories(path: Path) -> list[Path]:
    """按名称排序返回直接子目录。"""
    return sorted((p for p in path.iterdir() if p.is_dir()), key=lambda p: p.name)


def prompt_choice(
    message: str,
    choices: Sequence[str],
    *,
    input_func: Callable[[str], str] = input,
    echo: Callable[[str], None] = print,
) -> str | None:
    """在终端中提示用户选择。

    可输入序号、完整名称或唯一的名称前缀（忽略大小写）。
    空输入、EOF 或 Ctrl+C 表示取消。

    Args:
        message: 提示信息
        choices: 候选项
        input_func: 读取输入的函数（测试时替换）
        echo: 输出函数

    Returns:
        选中的候选项，取消时返回 None
    """
    echo(message)
    for index, choice in enumerate(choices, start=1):
        echo(f"  {index}) {choice}")

    while True:
        try:
            answer = input_func("> ").strip()
        except (EOFError, KeyboardInterrupt):
            return None

        if not answer:
            return None

        if answer in choices:
            return answer

        if answer.isdigit() and 1 <= int(answer) <= len(choices):
            return choices[int(answer) - 1]

        lowered = answer.lower()
        matches = [c for c in choices if c.lower().startswith(lowered)]
        if len(matches) == 1:
            return matches[0]
        if matches:
            echo(f"Ambiguous choice '{answer}': {', '.join(matches)}")
        else:
            echo(f"No choice matches '{answer}'")


class ExerciseSelector:
    """练习选择器。

    Example:
        ```python
        selector = ExerciseSelector(Path("exercises"))
        entry = selector.resolve("05")
        ```

    Attributes:
        exercises_dir: 练习根目录
        entry_file: 入口文件名
    """

    def __init__(
        self,
        exercises_dir: Path,
        entry_file: str = "main.py",
        chooser: Chooser | None = None,
        echo: Callable[[str], None] = print,
    ) -> None:
        self.exercises_dir = exercises_dir
        self.entry_file = entry_file
        self._chooser = chooser or prompt_choice
        self._echo = echo

    def find_exercise(self, exercise_id: str) -> Path:
        """查找练习目录。

        按名称顺序遍历 section，返回第一个名称包含 exercise_id 的练习目录。

        Raises:
            ExercisesDirNotFound: 练习根目录不存在
            ExerciseNotFound: 没有匹配的练习
        """
        if not self.exercises_dir.is_dir():
            raise ExercisesDirNotFound(self.exercises_dir)

        for section in _subdirectories(self.exercises_dir):
            for exercise in _subdirectories(section):
                if exercise_id in exercise.name:
                    logger.debug(f"Matched exercise {exercise_id}: {exercise}")
                    return exercise

        raise ExerciseNotFound(exercise_id)

    def choose_directory(self, exercise_id: str, exercise_dir: Path) -> Path:
        """在练习目录的候选子目录中选择一个。

        Raises:
            NoCandidates: 没有候选子目录
            SelectionAborted: 用户取消选择
        """
        candidates = _subdirectories(exercise_dir)
        if not candidates:
            raise NoCandidates(exercise_id)

        if len(candidates) == 1:
            self._echo(f"Auto-selecting directory: {candidates[0].name}")
            return candidates[0]

        names = [c.name for c in candidates]
        selected = self._chooser(
            f"Choose which directory to run for exercise {exercise_id}:",
            names,
        )
        if not selected:
            raise SelectionAborted()

        return exercise_dir / selected

    def resolve(self, exercise_id: str) -> EntryPoint:
        """将练习编号解析为入口。

        Args:
            exercise_id: 练习编号（按子串匹配目录名）

        Returns:
            已验证存在的 EntryPoint

        Raises:
            ResolutionError: 找不到练习、候选目录或入口文件
            SelectionAborted: 用户取消选择
        """
        exercise_dir = self.find_exercise(exercise_id)
        directory = self.choose_directory(exercise_id, exercise_dir).resolve()

        entry = directory / self.entry_file
        if not entry.is_file():
            raise EntryFileNotFound(exercise_id, directory, self.entry_file)

        return EntryPoint(exercise_id=exercise_id, directory=directory, entry_file=entry)
