# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Subprocess-backed executor for virtman.

QEMU and qemu-img run attached to the real terminal (no output capture):
the VM window and any prompts belong to the child until it exits.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TTYResult:
    """Result from TTY/passthrough execution (no output capture)."""

    exit_code: int
    started_at: str
    duration_ms: int
    error: str = ""


class SubprocessExecutor:
    """Subprocess implementation of the Executor protocol."""

    def __init__(self, timeout: float | None = None):
        """Initialize executor.

        Args:
            timeout: Seconds before the child is terminated
                (default: None, wait for as long as it runs)
        """
        self.timeout = timeout

    def _build_env(self) -> dict:
        return os.environ.copy()

    def run_tty(
        self, argv: Sequence[str], cwd: str | None = None
    ) -> TTYResult:
        """Run a program with full terminal control.

        The program inherits stdin/stdout/stderr from the parent process.

        Args:
            argv: Program and arguments (no shell involved)
            cwd: Working directory (default: current directory)

        Returns:
            TTYResult; a program that cannot be started yields exit_code 1
            and a message in ``error`` instead of raising.
        """
        env = self._build_env()
        started_at = datetime.now().isoformat()
        start_ts = time.time()

        try:
            proc = subprocess.Popen(
                list(argv),
                stdin=None,  # inherit from parent
                stdout=None,  # inherit from parent
                stderr=None,  # inherit from parent
                env=env,
                cwd=cwd,
            )
        except OSError as e:
            duration_ms = int((time.time() - start_ts) * 1000)
            return TTYResult(
                exit_code=1,
                started_at=started_at,
                duration_ms=duration_ms,
                error=f"Failed to spawn {argv[0] if argv else '<empty>'}: {e}",
            )

        try:
            exit_code = proc.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            proc.terminate()
            try:
                proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            duration_ms = int((time.time() - start_ts) * 1000)
            return TTYResult(
                exit_code=1,
                started_at=started_at,
                duration_ms=duration_ms,
                error=f"Command timed out after {self.timeout} seconds",
            )

        duration_ms = int((time.time() - start_ts) * 1000)
        return TTYResult(
            exit_code=exit_code,
            started_at=started_at,
            duration_ms=duration_ms,
        )
