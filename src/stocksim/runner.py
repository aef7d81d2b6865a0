# Copyright (c) Syntropy Systems
"""Child process handling for solver runs.

A solver run gets its own session, so a timeout can take down the whole
process group, and on Linux it is tied to the orchestrating process so a
killed worker never leaves a solver behind.
"""
from __future__ import annotations

import contextlib
import ctypes
import os
import signal
import subprocess
import sys
import time
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

PR_SET_PDEATHSIG = 1
KILL_POLL_INTERVAL = 0.1


def tie_to_parent() -> None:
    """Ask the kernel to SIGKILL the solver when its parent exits (Linux only)."""
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        libc.prctl(PR_SET_PDEATHSIG, signal.SIGKILL)
    except (AttributeError, OSError):
        # Not fatal; the solver just loses orphan protection
        return


class SolverProcess:
    """One solver invocation inside a model folder.

    Console output goes to ``output_path``; the folder is passed as ``cwd``.
    """

    command: list[str]
    workdir: Path
    output_path: Path
    _process: subprocess.Popen[bytes] | None
    _log: IO[str] | None

    def __init__(self, command: list[str], workdir: Path, output_path: Path) -> None:
        self.command = command
        self.workdir = workdir
        self.output_path = output_path
        self._process = None
        self._log = None

    def start(self) -> None:
        """Launch the solver; OSError propagates when it cannot be executed."""
        self._log = self.output_path.open("w")
        try:
            self._process = subprocess.Popen(  # noqa: S603
                self.command,
                stdout=self._log,
                stderr=subprocess.STDOUT,
                cwd=str(self.workdir),
                start_new_session=True,
                preexec_fn=tie_to_parent if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except OSError:
            self._close_log()
            raise

    def wait(self, timeout: float | None = None) -> int:
        """Block until the solver exits and return its exit code.

        Raises:
            subprocess.TimeoutExpired: If ``timeout`` elapses first. The
                solver is still running; call :meth:`kill`.

        """
        if self._process is None:
            msg = "Solver process was never started"
            raise RuntimeError(msg)
        code = self._process.wait(timeout=timeout)
        self._close_log()
        return code

    def kill(self, grace_period: float) -> int:
        """Terminate the solver's process group.

        SIGTERM first; SIGKILL once ``grace_period`` seconds pass without an
        exit. Returns the exit code, negative for a signal.
        """
        process = self._process
        if process is None:
            msg = "Solver process was never started"
            raise RuntimeError(msg)

        try:
            if process.poll() is None:
                _signal_group(process.pid, signal.SIGTERM)
                deadline = time.monotonic() + grace_period
                while process.poll() is None and time.monotonic() < deadline:
                    time.sleep(KILL_POLL_INTERVAL)
            if process.poll() is None:
                _signal_group(process.pid, signal.SIGKILL)
                with contextlib.suppress(subprocess.TimeoutExpired):
                    _ = process.wait(timeout=5.0)
        finally:
            self._close_log()

        return process.returncode if process.returncode is not None else -signal.SIGKILL

    def _close_log(self) -> None:
        if self._log is not None:
            with contextlib.suppress(OSError):
                self._log.close()
            self._log = None


def _signal_group(pid: int, sig: signal.Signals) -> None:
    # Session leader pid doubles as the group id
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pid, sig)
