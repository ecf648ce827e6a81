"""Shellstrap core: bootstrap configuration read once from the environment."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

from .errors import ConfigError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600}

DEFAULT_APT_PACKAGES = ("zsh", "curl", "git", "ca-certificates", "tar", "bzip2")
DEFAULT_NPM_PACKAGES = ("@openai/codex", "@anthropic-ai/claude-code")


def parse_bool(variable: str, value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(variable, value, "one of 1/0/true/false/yes/no/on/off")


def parse_int(variable: str, value: str) -> int:
    try:
        n = int(value.strip())
    except ValueError:
        raise ConfigError(variable, value, "an integer") from None
    if n < 0:
        raise ConfigError(variable, value, "a non-negative integer")
    return n


def parse_duration(variable: str, value: str) -> float:
    """Parse "900", "900s", "15m" or "1h" into seconds."""
    m = _DURATION_RE.match(value)
    if not m:
        raise ConfigError(variable, value, "a duration like 900, 900s, 15m or 1h")
    return float(m.group(1)) * _DURATION_UNITS[m.group(2)]


@dataclass
class BootstrapConfig:
    base_dir: Path
    mamba_root_prefix: Path
    micromamba_bin: Path
    bashrc_path: Path
    zshrc_path: Path
    zsh_dir: Path
    auto_activate_base: bool = True
    install_base_python: bool = True
    base_python_version: str = "3.12"
    base_python_channel: str = "conda-forge"
    dry_run: bool = False
    curl_connect_timeout_secs: int = 10
    curl_max_time_secs: int = 120
    curl_retries: int = 5
    micromamba_timeout: float = 3600.0
    apt_timeout: float = 900.0
    apt_retries: int = 3
    apt_http_timeout_secs: int = 30
    npm_timeout: float = 1800.0
    apt_packages: Tuple[str, ...] = DEFAULT_APT_PACKAGES
    npm_packages: Tuple[str, ...] = DEFAULT_NPM_PACKAGES
    tag: str = "shellstrap"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, base_dir: Optional[Path] = None) -> "BootstrapConfig":
        env = dict(os.environ if environ is None else environ)
        home = Path(env.get("HOME") or Path.home())

        def path(name: str, default: Path) -> Path:
            raw = env.get(name)
            if not raw:
                return default
            # ~ expands against HOME from the given environment, not the process
            if raw == "~":
                return home
            if raw.startswith("~/"):
                return home / raw[2:]
            return Path(raw)

        base = Path(base_dir) if base_dir is not None else path("SHELLSTRAP_HOME", home / ".shellstrap")

        def get(name: str, default: str) -> str:
            return env.get(name, default)

        tag = get("SHELLSTRAP_TAG", "shellstrap").strip()
        if not tag:
            raise ConfigError("SHELLSTRAP_TAG", tag, "a non-empty name")

        return cls(
            base_dir=base,
            mamba_root_prefix=path("MAMBA_ROOT_PREFIX", base / "micromamba"),
            micromamba_bin=path("MICROMAMBA_BIN", base / "bin" / "micromamba"),
            bashrc_path=path("BASHRC_PATH", home / ".bashrc"),
            zshrc_path=path("ZSHRC_PATH", home / ".zshrc"),
            zsh_dir=path("ZSH", home / ".oh-my-zsh"),
            auto_activate_base=parse_bool("AUTO_ACTIVATE_BASE", get("AUTO_ACTIVATE_BASE", "1")),
            install_base_python=parse_bool("INSTALL_BASE_PYTHON", get("INSTALL_BASE_PYTHON", "1")),
            base_python_version=get("BASE_PYTHON_VERSION", "3.12"),
            base_python_channel=get("BASE_PYTHON_CHANNEL", "conda-forge"),
            dry_run=parse_bool("DRY_RUN", get("DRY_RUN", "0")),
            curl_connect_timeout_secs=parse_int("CURL_CONNECT_TIMEOUT_SECS", get("CURL_CONNECT_TIMEOUT_SECS", "10")),
            curl_max_time_secs=parse_int("CURL_MAX_TIME_SECS", get("CURL_MAX_TIME_SECS", "120")),
            curl_retries=parse_int("CURL_RETRIES", get("CURL_RETRIES", "5")),
            micromamba_timeout=parse_duration("MICROMAMBA_TIMEOUT", get("MICROMAMBA_TIMEOUT", "3600s")),
            apt_timeout=parse_duration("APT_TIMEOUT", get("APT_TIMEOUT", "900s")),
            apt_retries=parse_int("APT_RETRIES", get("APT_RETRIES", "3")),
            apt_http_timeout_secs=parse_int("APT_HTTP_TIMEOUT_SECS", get("APT_HTTP_TIMEOUT_SECS", "30")),
            npm_timeout=parse_duration("NPM_TIMEOUT", get("NPM_TIMEOUT", "1800s")),
            apt_packages=tuple(get("APT_PACKAGES", " ".join(DEFAULT_APT_PACKAGES)).split()),
            npm_packages=tuple(get("NPM_PACKAGES", " ".join(DEFAULT_NPM_PACKAGES)).split()),
            tag=tag,
        )

    @property
    def backup_namespace(self) -> str:
        return self.tag.lower().replace(" ", "-")

    @property
    def bin_dir(self) -> Path:
        return self.micromamba_bin.parent

    def rows(self) -> List[Tuple[str, str]]:
        """(name, value) pairs for display; mirrors the environment variable names."""
        names = {
            "base_dir": "SHELLSTRAP_HOME",
            "mamba_root_prefix": "MAMBA_ROOT_PREFIX",
            "micromamba_bin": "MICROMAMBA_BIN",
            "bashrc_path": "BASHRC_PATH",
            "zshrc_path": "ZSHRC_PATH",
            "zsh_dir": "ZSH",
            "auto_activate_base": "AUTO_ACTIVATE_BASE",
            "install_base_python": "INSTALL_BASE_PYTHON",
            "base_python_version": "BASE_PYTHON_VERSION",
            "base_python_channel": "BASE_PYTHON_CHANNEL",
            "dry_run": "DRY_RUN",
            "curl_connect_timeout_secs": "CURL_CONNECT_TIMEOUT_SECS",
            "curl_max_time_secs": "CURL_MAX_TIME_SECS",
            "curl_retries": "CURL_RETRIES",
            "micromamba_timeout": "MICROMAMBA_TIMEOUT",
            "apt_timeout": "APT_TIMEOUT",
            "apt_retries": "APT_RETRIES",
            "apt_http_timeout_secs": "APT_HTTP_TIMEOUT_SECS",
            "npm_timeout": "NPM_TIMEOUT",
            "apt_packages": "APT_PACKAGES",
            "npm_packages": "NPM_PACKAGES",
            "tag": "SHELLSTRAP_TAG",
        }
        out: List[Tuple[str, str]] = []
        for f in fields(self):
            if f.name not in names:
                continue
            v = getattr(self, f.name)
            if isinstance(v, bool):
                s = "1" if v else "0"
            elif isinstance(v, float):
                s = f"{v:g}s"
            elif isinstance(v, tuple):
                s = " ".join(v)
            else:
                s = str(v)
            out.append((names[f.name], s))
        return out
