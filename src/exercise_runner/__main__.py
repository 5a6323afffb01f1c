"""exercise-runner 入口点。

支持: python -m exercise_runner 05
"""

from .app import main

if __name__ == "__main__":
    main()
