"""Runs one shell command at a time on behalf of the orchestrator."""

import logging
import re
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from termprobe.cancellation import CancellationToken

logger = logging.getLogger(__name__)

SECRET_PATTERNS = [
    (re.compile(r"(?i)\b(password|passwd|token|api[_-]?key|secret)\b[\s=:]+\S+"), r"\1=[REDACTED]"),
    (re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer [REDACTED]"),
]


@dataclass
class ExecutionOutcome:
    output: str
    success: bool
    truncated: bool = False


class Executor(ABC):
    """Contract for command execution."""

    @abstractmethod
    def run(self, command: str, cancel_token: CancellationToken | None = None) -> ExecutionOutcome:
        """Execute ``command`` and return its combined output.

        Raises ``OrchestrationCancelled`` if the token fires mid-run.
        """


def sanitize_output(output: str) -> str:
    """Redact credential-looking values from command output."""
    for pattern, replacement in SECRET_PATTERNS:
        output = pattern.sub(replacement, output)
    return output


class ShellExecutor(Executor):
    """Executes commands through ``/bin/sh`` with a timeout and output cap.

    Args:
        timeout: Maximum execution time in seconds
        max_output_size: Characters of combined output kept before truncation
        poll_interval: How often the cancellation token is checked while waiting
    """

    def __init__(self, timeout: int = 30, max_output_size: int = 100000, poll_interval: float = 0.1):
        self.timeout = timeout
        self.max_output_size = max_output_size
        self.poll_interval = poll_interval

    def run(self, command: str, cancel_token: CancellationToken | None = None) -> ExecutionOutcome:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        logger.debug("Executing: %s", command)
        process = subprocess.Popen(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                stdout, stderr = process.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.cancelled:
                    self._kill(process)
                    cancel_token.raise_if_cancelled()
                if time.monotonic() >= deadline:
                    self._kill(process)
                    return ExecutionOutcome(
                        output=f"Command timed out after {self.timeout} seconds",
                        success=False,
                    )

        combined = "\n".join(part.strip() for part in (stdout, stderr) if part and part.strip())
        truncated = len(combined) > self.max_output_size
        if truncated:
            combined = combined[: self.max_output_size] + "\n\n... [output truncated]"

        return ExecutionOutcome(
            output=sanitize_output(combined),
            success=process.returncode == 0,
            truncated=truncated,
        )

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        process.kill()
        try:
            process.communicate(timeout=1)
        except subprocess.TimeoutExpired:
            logger.warning("Process %s did not exit after kill", process.pid)
