"""Runtime module for child process supervision.

This module runs one exercise as a child process with keyboard input
forwarding, signal handling and reliable terminal restoration.
"""

from __future__ import annotations

from .process_runner import ChildProcessHandle, ProcessSpec, spawn_child
from .supervisor import ProcessSupervisor

__all__ = [
    "ChildProcessHandle",
    "ProcessSpec",
    "ProcessSupervisor",
    "spawn_child",
]
