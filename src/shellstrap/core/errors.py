"""Shellstrap core: error types."""

from __future__ import annotations

from typing import Optional, Sequence


class ShellstrapError(Exception):
    """Base class for errors raised by shellstrap."""


class PartialBlockError(ShellstrapError):
    """Markers of a managed block are unbalanced; the file was left untouched."""

    def __init__(self, path: str, block_name: str, start_count: int, end_count: int):
        self.path = path
        self.block_name = block_name
        self.start_count = start_count
        self.end_count = end_count
        super().__init__(
            f"Found a partial {block_name} block in {path} "
            f"(start markers: {start_count}, end markers: {end_count}); remove it and rerun."
        )


class ConfigError(ShellstrapError):
    def __init__(self, variable: str, value: str, expected: str):
        self.variable = variable
        self.value = value
        super().__init__(f"Invalid value for {variable}: {value!r} (expected {expected}).")


class MissingCommandError(ShellstrapError):
    def __init__(self, command: str, hint: str = ""):
        self.command = command
        msg = f"Missing required command: {command}"
        if hint:
            msg += f". {hint}"
        super().__init__(msg)


class UnsupportedPlatformError(ShellstrapError):
    def __init__(self, machine: str):
        self.machine = machine
        super().__init__(f"Unsupported architecture: {machine}")


class CommandFailedError(ShellstrapError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: Optional[str] = None):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed with exit code {returncode}: {' '.join(self.argv)}")


class CommandTimeoutError(ShellstrapError):
    def __init__(self, argv: Sequence[str], timeout: float):
        self.argv = list(argv)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {' '.join(self.argv)}")
