"""Shellstrap core: external command execution with dry-run support."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from typing import Dict, List, Mapping, Optional, Sequence

from .errors import CommandFailedError, CommandTimeoutError, MissingCommandError

logger = logging.getLogger(__name__)


class CommandRunner:
    """
    Runs installer commands.

    run() logs "+ <command>" and skips execution in dry-run; query() always
    executes because it only reads state (e.g. `npm prefix -g`).
    """

    def __init__(self, dry_run: bool = False, env: Optional[Mapping[str, str]] = None):
        self.dry_run = dry_run
        self.env: Dict[str, str] = dict(os.environ if env is None else env)
        self.history: List[List[str]] = []

    def format(self, argv: Sequence[str], env: Optional[Mapping[str, str]] = None) -> str:
        prefix = " ".join(f"{k}={shlex.quote(v)}" for k, v in (env or {}).items())
        cmd = shlex.join(list(argv))
        return f"{prefix} {cmd}" if prefix else cmd

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.env.get("PATH"))

    def has(self, name: str) -> bool:
        return self.which(name) is not None

    def require(self, name: str, hint: str = "") -> str:
        found = self.which(name)
        if found is None:
            raise MissingCommandError(name, hint)
        return found

    def prepend_path(self, directory: str) -> None:
        parts = [p for p in self.env.get("PATH", "").split(os.pathsep) if p]
        if directory not in parts:
            self.env["PATH"] = os.pathsep.join([directory, *parts])

    def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> Optional[subprocess.CompletedProcess]:
        argv = [str(a) for a in argv]
        logger.info("+ %s", self.format(argv, env))
        self.history.append(argv)
        if self.dry_run:
            return None

        full_env = dict(self.env)
        full_env.update(env or {})
        try:
            proc = subprocess.run(argv, env=full_env, timeout=timeout, check=False)
        except subprocess.TimeoutExpired:
            raise CommandTimeoutError(argv, timeout or 0) from None
        except FileNotFoundError:
            raise MissingCommandError(argv[0]) from None
        if proc.returncode != 0:
            raise CommandFailedError(argv, proc.returncode)
        return proc

    def query(self, argv: Sequence[str], timeout: Optional[float] = 60) -> Optional[str]:
        argv = [str(a) for a in argv]
        try:
            proc = subprocess.run(
                argv, env=self.env, timeout=timeout, check=False,
                stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("query failed: %s (%s)", self.format(argv), e)
            return None
        if proc.returncode != 0:
            return None
        out = proc.stdout.strip()
        return out or None
