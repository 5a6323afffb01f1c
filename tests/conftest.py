"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_EXERCISE = FIXTURES_DIR / "fake_exercise.py"


def _make_exercise(root: Path, section: str, exercise: str, *candidates: str, entry: str = "main.py") -> Path:
    """在 root 下创建 <section>/<exercise>/<candidate>/<entry>。"""
    exercise_dir = root / section / exercise
    exercise_dir.mkdir(parents=True, exist_ok=True)
    for candidate in candidates:
        candidate_dir = exercise_dir / candidate
        candidate_dir.mkdir()
        (candidate_dir / entry).write_text("print('hello')\n", encoding="utf-8")
    return exercise_dir


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def exercises_dir(tmp_path: Path) -> Path:
    """空的练习根目录。"""
    root = tmp_path / "exercises"
    root.mkdir()
    return root


@pytest.fixture
def make_exercise():
    """创建练习目录结构的工厂。"""
    return _make_exercise


@pytest.fixture
def fake_exercise() -> Path:
    """模拟练习子进程的脚本。"""
    return FAKE_EXERCISE
