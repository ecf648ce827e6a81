"""Shellstrap core: installer steps around the marked-block patcher."""

from __future__ import annotations

import logging
import os
import platform
import shlex
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .blocks import plan_shell_patches
from .config import BootstrapConfig
from .errors import CommandFailedError, PartialBlockError, UnsupportedPlatformError
from .models import PatchRequest, PatchResult, SetupReport
from .patcher import MarkedBlockPatcher
from .runner import CommandRunner

logger = logging.getLogger(__name__)

MICROMAMBA_URL = "https://micro.mamba.pm/api/micromamba/{platform}/latest"
OH_MY_ZSH_URL = "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"

_PLATFORMS = {
    "x86_64": "linux-64",
    "amd64": "linux-64",
    "aarch64": "linux-aarch64",
    "arm64": "linux-aarch64",
}


def micromamba_platform(machine: Optional[str] = None) -> str:
    machine = machine if machine is not None else platform.machine()
    try:
        return _PLATFORMS[machine.lower()]
    except KeyError:
        raise UnsupportedPlatformError(machine) from None


def apply_requests(
    patcher: MarkedBlockPatcher,
    requests: Sequence[PatchRequest],
    dry_run: bool,
    report: SetupReport,
) -> List[PatchResult]:
    """
    Patch each request independently. A partial block in one file is recorded
    as a failed result; the remaining files are still patched.
    """
    results: List[PatchResult] = []
    for req in requests:
        try:
            res = patcher.apply(req, dry_run=dry_run)
        except PartialBlockError as e:
            logger.error("%s", e)
            res = PatchResult(
                document_path=str(req.document_path),
                block_name=req.spec.name,
                success=False,
                overall_message=str(e),
                action=PatchResult.ACTION_FAILED,
                dry_run=dry_run,
                error=str(e),
            )
            res.summary.update({"start_count": e.start_count, "end_count": e.end_count})
            res.add_log("ERROR", str(e), file=str(req.document_path))
        report.record_patch(res)
        results.append(res)
    return results


class MicromambaSetup:
    """
    Ensures micromamba exists, optionally installs Python into its base
    prefix, then patches bashrc and zshrc so new shells find it.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        runner: Optional[CommandRunner] = None,
        patcher: Optional[MarkedBlockPatcher] = None,
        machine: Optional[str] = None,
    ):
        self.config = config
        self.runner = runner or CommandRunner(dry_run=config.dry_run)
        self.patcher = patcher or MarkedBlockPatcher(backup_namespace=config.backup_namespace)
        self.machine = machine
        self.micromamba: Optional[Path] = None

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def locate_micromamba(self) -> Optional[Path]:
        found = self.runner.which("micromamba")
        if found:
            return Path(found)
        if os.access(self.config.micromamba_bin, os.X_OK) and self.config.micromamba_bin.is_file():
            return self.config.micromamba_bin
        return None

    def _mkdir(self, path: Path) -> None:
        logger.info("+ mkdir -p %s", shlex.quote(str(path)))
        if not self.dry_run:
            path.mkdir(parents=True, exist_ok=True)

    def download_command(self, plat: str) -> str:
        cfg = self.config
        curl = shlex.join([
            "curl", "-fLsS",
            "--retry", str(cfg.curl_retries),
            "--connect-timeout", str(cfg.curl_connect_timeout_secs),
            "--max-time", str(cfg.curl_max_time_secs),
            MICROMAMBA_URL.format(platform=plat),
        ])
        tar = shlex.join(["tar", "-xvj", "-C", str(cfg.bin_dir), "--strip-components=1", "bin/micromamba"])
        return f"set -o pipefail; {curl} | {tar}"

    def ensure_micromamba(self) -> Path:
        found = self.locate_micromamba()
        if found is not None and found != self.config.micromamba_bin:
            logger.info("Found micromamba on PATH: %s", found)
            micromamba = found
        elif found is not None:
            logger.info("Using existing micromamba: %s", found)
            micromamba = found
        else:
            self.runner.require("curl")
            self.runner.require("tar")
            plat = micromamba_platform(self.machine)
            logger.info("Installing micromamba into %s", self.config.bin_dir)
            self._mkdir(self.config.bin_dir)
            self.runner.run(["bash", "-c", self.download_command(plat)])
            micromamba = self.config.micromamba_bin

        self.runner.env["MAMBA_ROOT_PREFIX"] = str(self.config.mamba_root_prefix)
        logger.info("micromamba: %s", micromamba)
        logger.info("MAMBA_ROOT_PREFIX: %s", self.config.mamba_root_prefix)
        self.micromamba = micromamba
        return micromamba

    def ensure_base_python(self, micromamba: Path) -> bool:
        cfg = self.config
        if not cfg.install_base_python:
            logger.info("Skipping base Python install (INSTALL_BASE_PYTHON=0)")
            return False

        base_python = cfg.mamba_root_prefix / "bin" / "python"
        if os.access(base_python, os.X_OK):
            logger.info("Base Python already present: %s", base_python)
            return False

        logger.info("Installing Python %s into base at: %s", cfg.base_python_version, cfg.mamba_root_prefix)
        self._mkdir(cfg.mamba_root_prefix)
        self.runner.run(
            [
                str(micromamba), "install", "-y",
                "-p", str(cfg.mamba_root_prefix),
                "-c", cfg.base_python_channel,
                f"python={cfg.base_python_version}",
            ],
            timeout=cfg.micromamba_timeout,
        )
        return True

    def patch_shell_rcs(self, micromamba: Path, report: SetupReport) -> List[PatchResult]:
        requests = plan_shell_patches(self.config, micromamba_exe=micromamba)
        return apply_requests(self.patcher, requests, self.dry_run, report)

    def run(self) -> SetupReport:
        report = SetupReport()
        micromamba = self.ensure_micromamba()
        report.steps["micromamba"] = "ok"

        installed = self.ensure_base_python(micromamba)
        report.steps["base_python"] = "installed" if installed else "skipped"

        self.patch_shell_rcs(micromamba, report)
        report.steps["shell_rc"] = "ok" if report.success else "failed"

        cfg = self.config
        logger.info("Done. Restart your shell or run:")
        logger.info('  source "%s"   # for bash', cfg.bashrc_path)
        logger.info('  source "%s"    # for zsh', cfg.zshrc_path)
        logger.info("Verify with: micromamba --version")
        if self.dry_run:
            logger.info("DRY_RUN=1: no changes were made.")

        report.overall_message = "Micromamba setup completed." if report.success else "Micromamba setup finished with errors."
        return report


class ColabSetup:
    """
    Provisions a Colab-like host: apt packages, oh-my-zsh, npm CLI tools and
    their PATH persistence, then the micromamba setup.
    """

    # npm package -> executable used for the post-install version check
    TOOL_BINARIES: Dict[str, str] = {
        "@openai/codex": "codex",
        "@anthropic-ai/claude-code": "claude",
    }

    def __init__(
        self,
        config: BootstrapConfig,
        runner: Optional[CommandRunner] = None,
        patcher: Optional[MarkedBlockPatcher] = None,
        with_micromamba: bool = True,
    ):
        self.config = config
        self.runner = runner or CommandRunner(dry_run=config.dry_run)
        self.patcher = patcher or MarkedBlockPatcher(backup_namespace=config.backup_namespace)
        self.with_micromamba = with_micromamba
        self.original_path = self.runner.env.get("PATH", "")

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def apt_args(self) -> List[str]:
        cfg = self.config
        return [
            "-o", f"Acquire::Retries={cfg.apt_retries}",
            "-o", f"Acquire::http::Timeout={cfg.apt_http_timeout_secs}",
            "-o", f"Acquire::https::Timeout={cfg.apt_http_timeout_secs}",
        ]

    def install_system_packages(self) -> None:
        cfg = self.config
        env = {"DEBIAN_FRONTEND": "noninteractive"}
        self.runner.run(["apt-get", *self.apt_args(), "update"], timeout=cfg.apt_timeout, env=env)
        self.runner.run(["apt-get", *self.apt_args(), "install", "-y", *cfg.apt_packages], timeout=cfg.apt_timeout, env=env)

    def install_oh_my_zsh(self) -> bool:
        cfg = self.config
        if cfg.zsh_dir.is_dir():
            logger.info("oh-my-zsh already present at: %s", cfg.zsh_dir)
            return False
        curl = shlex.join([
            "curl", "-fsSL",
            "--retry", str(cfg.curl_retries),
            "--connect-timeout", str(cfg.curl_connect_timeout_secs),
            "--max-time", str(cfg.curl_max_time_secs),
            OH_MY_ZSH_URL,
        ])
        self.runner.run(
            ["sh", "-c", f'sh -c "$({curl})"'],
            env={"RUNZSH": "no", "CHSH": "no", "KEEP_ZSHRC": "yes", "ZSH": str(cfg.zsh_dir)},
        )
        return True

    def install_npm_tools(self) -> None:
        self.runner.require("npm", hint="Install Node.js/npm, then re-run.")
        self.runner.run(
            ["npm", "install", "-g", "--no-fund", "--no-audit", *self.config.npm_packages],
            timeout=self.config.npm_timeout,
        )

    def npm_global_bin(self) -> Optional[str]:
        prefix = self.runner.query(["npm", "prefix", "-g"])
        if not prefix:
            return None
        return f"{prefix.rstrip('/')}/bin"

    def check_tools(self, npm_bin: Optional[str]) -> None:
        if npm_bin:
            logger.info("npm global bin: %s", npm_bin)
            self.runner.prepend_path(npm_bin)

        for pkg in self.config.npm_packages:
            tool = self.TOOL_BINARIES.get(pkg)
            if tool is None:
                continue
            if self.runner.has(tool):
                try:
                    self.runner.run([tool, "--version"])
                except CommandFailedError as e:
                    logger.warning("%s --version failed: %s", tool, e)
            else:
                logger.warning('%s not on PATH (try: export PATH="%s:$PATH")', tool, npm_bin or "<npm bin>")

    def persist_npm_path(self, npm_bin: Optional[str], report: SetupReport) -> List[PatchResult]:
        if not npm_bin:
            return []
        requests = plan_shell_patches(self.config, npm_global_bin=npm_bin)
        results = apply_requests(self.patcher, requests, self.dry_run, report)

        original = [p for p in self.original_path.split(os.pathsep) if p]
        if npm_bin not in original:
            logger.info("To refresh PATH in your current shell, run:")
            logger.info('  export PATH="%s:$PATH"', npm_bin)
            logger.info("or restart your shell (new shells will pick it up from your rc files).")
        return results

    def run(self) -> SetupReport:
        report = SetupReport()
        self.install_system_packages()
        report.steps["apt"] = "ok"

        report.steps["oh_my_zsh"] = "installed" if self.install_oh_my_zsh() else "present"

        self.install_npm_tools()
        report.steps["npm_tools"] = "ok"

        npm_bin = self.npm_global_bin()
        self.check_tools(npm_bin)
        self.persist_npm_path(npm_bin, report)
        report.steps["npm_path"] = "ok" if npm_bin else "unknown"

        if self.with_micromamba:
            mm = MicromambaSetup(self.config, runner=self.runner, patcher=self.patcher)
            report.merge(mm.run())

        logger.info("Done.")
        report.overall_message = "Colab setup completed." if report.success else "Colab setup finished with errors."
        return report
