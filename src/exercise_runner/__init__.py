"""exercise-runner - 按编号查找并运行练习。

环境变量:
    EXR_EXERCISES_DIR: 练习根目录 (默认 ./exercises)
    EXR_ENV_FILE: 传给子进程的 env 文件 (默认 ./.env)
    EXR_ENTRY_FILE: 入口文件名 (默认 main.py)
    EXR_KILL_GRACE: 终止后等待子进程的时间 (默认 0)

用法:
    exercise-runner 05
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
