"""ProcessSupervisor tests.

Runs real child processes (tests/fixtures/fake_exercise.py) with stdin
replaced by an os.pipe(), so input can be scripted without a terminal.

Test coverage:
- Exit code propagation (0, non-zero, signal)
- Spawn failure never installs the listener
- Kill gesture terminates the child and ends the run with code 0
- OS signal / uncaught error paths
- Listener is disposed before run() returns on every path
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import time
from pathlib import Path
from unittest import mock

import pytest

from exercise_runner.config import Config
from exercise_runner.keypress import KeypressListener
from exercise_runner.runtime import ProcessSupervisor
from exercise_runner.types import (
    EntryPoint,
    FatalUncaught,
    Interrupted,
    KillRequested,
    NormalExit,
    OrchestrationFailed,
    SignalExit,
    SpawnError,
)

pytestmark = [
    pytest.mark.timeout(20),
    pytest.mark.skipif(sys.platform == "win32", reason="POSIX stdin handling"),
]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def entry(tmp_path: Path) -> EntryPoint:
    directory = tmp_path / "05-streaming" / "solution"
    directory.mkdir(parents=True)
    entry_file = directory / "main.py"
    entry_file.write_text("print('hi')\n")
    return EntryPoint(exercise_id="05", directory=directory, entry_file=entry_file)


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    for fd in (read_fd, write_fd):
        try:
            os.close(fd)
        except OSError:
            pass


class TrackingListener(KeypressListener):
    """KeypressListener that remembers every instance."""

    instances: list[TrackingListener] = []

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        TrackingListener.instances.append(self)


@pytest.fixture(autouse=True)
def reset_tracking():
    TrackingListener.instances = []
    yield


def make_supervisor(
    fake_exercise: Path,
    tmp_path: Path,
    read_fd: int,
    *flags: str,
    messages: list[str] | None = None,
    kill_grace: float = 2.0,
    **kwargs,
) -> ProcessSupervisor:
    config = Config(
        exercises_dir=tmp_path,
        env_file=tmp_path / ".env",
        runner=[sys.executable, str(fake_exercise), *flags],
        kill_grace=kill_grace,
    )
    kwargs.setdefault("listener_factory", TrackingListener)
    return ProcessSupervisor(
        config,
        echo=(messages.append if messages is not None else (lambda _: None)),
        stdin_fd=read_fd,
        **kwargs,
    )


def assert_disposed() -> None:
    assert TrackingListener.instances, "listener was never created"
    assert all(not listener.installed for listener in TrackingListener.instances)


# =============================================================================
# Child exit
# =============================================================================


class TestChildExit:
    """Child exit / close handling."""

    @pytest.mark.asyncio
    async def test_exit_zero(self, fake_exercise, tmp_path, entry, pipe):
        messages: list[str] = []
        supervisor = make_supervisor(fake_exercise, tmp_path, pipe[0], messages=messages)

        reason = await supervisor.run(entry)

        assert reason == NormalExit(0)
        assert reason.exit_code == 0
        assert messages == ["Child process exited with code 0"]
        assert_disposed()

    @pytest.mark.asyncio
    async def test_exit_code_propagated(self, fake_exercise, tmp_path, entry, pipe):
        messages: list[str] = []
        supervisor = make_supervisor(
            fake_exercise, tmp_path, pipe[0], "--exit-code", "2", messages=messages
        )

        reason = await supervisor.run(entry)

        assert reason == NormalExit(2)
        assert reason.exit_code == 2
        assert messages == ["Child process exited with code 2"]
        assert_disposed()

    @pytest.mark.asyncio
    async def test_signal_exit_maps_to_zero(self, fake_exercise, tmp_path, entry, pipe):
        messages: list[str] = []
        supervisor = make_supervisor(
            fake_exercise, tmp_path, pipe[0], "--signal", "SIGTERM", messages=messages
        )

        reason = await supervisor.run(entry)

        assert reason == SignalExit(signal.SIGTERM)
        assert reason.exit_code == 0
        assert messages == ["Child process was killed with signal SIGTERM"]
        assert_disposed()

    @pytest.mark.asyncio
    async def test_child_runs_in_entry_directory(self, fake_exercise, tmp_path, entry, pipe, capfd):
        supervisor = make_supervisor(fake_exercise, tmp_path, pipe[0], "--print-cwd")

        await supervisor.run(entry)

        assert f"cwd={entry.directory}" in capfd.readouterr().out

    def test_build_spec(self, fake_exercise, tmp_path, entry):
        supervisor = make_supervisor(fake_exercise, tmp_path, 0)

        spec = supervisor.build_spec(entry)

        assert spec.cwd == entry.directory
        assert spec.argv[-2:] == [f"--env-file={tmp_path / '.env'}", str(entry.entry_file)]


# =============================================================================
# Input forwarding
# =============================================================================


class TestForwarding:
    """stdin -> child forwarding."""

    @pytest.mark.asyncio
    async def test_input_forwarded_then_eof(self, fake_exercise, tmp_path, entry, pipe, capfd):
        read_fd, write_fd = pipe
        os.write(write_fd, b"hello\n")
        os.write(write_fd, b"world\n")
        os.close(write_fd)
        supervisor = make_supervisor(fake_exercise, tmp_path, read_fd, "--echo")

        reason = await supervisor.run(entry)

        assert reason == NormalExit(0)
        assert "echo:hello\nworld\n" in capfd.readouterr().out

    @pytest.mark.asyncio
    async def test_devnull_stdin_reaches_eof(self, fake_exercise, tmp_path, entry, capfd):
        fd = os.open(os.devnull, os.O_RDONLY)
        try:
            supervisor = make_supervisor(fake_exercise, tmp_path, fd, "--echo")
            reason = await asyncio.wait_for(supervisor.run(entry), timeout=10)
        finally:
            os.close(fd)

        assert reason == NormalExit(0)
        assert "echo:" in capfd.readouterr().out
        assert_disposed()

    @pytest.mark.asyncio
    async def test_regular_file_stdin_forwarded(self, fake_exercise, tmp_path, entry, capfd):
        input_file = tmp_path / "input.txt"
        input_file.write_bytes(b"from\nfile\n")
        fd = os.open(input_file, os.O_RDONLY)
        try:
            supervisor = make_supervisor(fake_exercise, tmp_path, fd, "--echo")
            reason = await asyncio.wait_for(supervisor.run(entry), timeout=10)
        finally:
            os.close(fd)

        assert reason == NormalExit(0)
        assert "echo:from\nfile\n" in capfd.readouterr().out
        assert_disposed()

    @pytest.mark.asyncio
    async def test_key_observer(self, fake_exercise, tmp_path, entry, pipe):
        read_fd, write_fd = pipe
        os.write(write_fd, b"ab")
        os.close(write_fd)
        keys = []
        supervisor = make_supervisor(fake_exercise, tmp_path, read_fd, "--echo", on_key=keys.append)

        await supervisor.run(entry)

        assert [k.name for k in keys] == ["a", "b"]


# =============================================================================
# Stop paths
# =============================================================================


class TestStopPaths:
    """Kill gesture, signals, uncaught errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("gesture", [b"\x03", b"\x1bc", b"\x1bq", b"\x11"])
    async def test_kill_gesture(self, fake_exercise, tmp_path, entry, pipe, gesture):
        read_fd, write_fd = pipe
        os.write(write_fd, gesture)
        supervisor = make_supervisor(fake_exercise, tmp_path, read_fd, "--sleep", "30")

        started = time.monotonic()
        reason = await supervisor.run(entry)

        assert reason == KillRequested()
        assert reason.exit_code == 0
        assert time.monotonic() - started < 10
        assert_disposed()

    @pytest.mark.asyncio
    async def test_interrupt_signal(self, fake_exercise, tmp_path, entry, pipe):
        supervisor = make_supervisor(fake_exercise, tmp_path, pipe[0], "--sleep", "30")

        async def interrupt_soon():
            while not TrackingListener.instances or not TrackingListener.instances[0].installed:
                await asyncio.sleep(0.01)
            TrackingListener.instances[0]._handle_signal(signal.SIGINT)

        reason, _ = await asyncio.gather(supervisor.run(entry), interrupt_soon())

        assert reason == Interrupted(signal.SIGINT)
        assert reason.exit_code == 0
        assert_disposed()

    @pytest.mark.asyncio
    async def test_uncaught_error(self, fake_exercise, tmp_path, entry, pipe):
        supervisor = make_supervisor(fake_exercise, tmp_path, pipe[0], "--sleep", "30")
        error = RuntimeError("stray task failed")

        async def fail_soon():
            while not TrackingListener.instances or not TrackingListener.instances[0].installed:
                await asyncio.sleep(0.01)
            asyncio.get_running_loop().call_exception_handler(
                {"message": "Task exception was never retrieved", "exception": error}
            )

        reason, _ = await asyncio.gather(supervisor.run(entry), fail_soon())

        assert reason == FatalUncaught(error)
        assert reason.exit_code == 0
        assert_disposed()


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Spawn and orchestration failures."""

    @pytest.mark.asyncio
    async def test_spawn_error(self, tmp_path, entry, pipe):
        factory = mock.MagicMock()
        config = Config(env_file=tmp_path / ".env", runner=[str(tmp_path / "missing-runner")])
        supervisor = ProcessSupervisor(config, listener_factory=factory, stdin_fd=pipe[0])

        reason = await supervisor.run(entry)

        assert isinstance(reason, SpawnError)
        assert isinstance(reason.error, OSError)
        assert reason.exit_code == 1
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_orchestration_error(self, fake_exercise, tmp_path, entry, pipe):
        listener = mock.MagicMock()
        listener.install.side_effect = RuntimeError("terminal unavailable")
        supervisor = make_supervisor(
            fake_exercise, tmp_path, pipe[0], listener_factory=mock.MagicMock(return_value=listener)
        )

        reason = await supervisor.run(entry)

        assert isinstance(reason, OrchestrationFailed)
        assert reason.exit_code == 1
        listener.dispose.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_reason_is_orchestration_error(self, fake_exercise, tmp_path, entry, pipe):
        supervisor = make_supervisor(fake_exercise, tmp_path, pipe[0], "--sleep", "30")

        started = time.monotonic()
        with mock.patch.object(ProcessSupervisor, "_wait_child", mock.AsyncMock(return_value=None)):
            reason = await supervisor.run(entry)

        assert isinstance(reason, OrchestrationFailed)
        assert isinstance(reason.error, RuntimeError)
        assert reason.exit_code == 1
        assert time.monotonic() - started < 10
        assert_disposed()
