"""Shellstrap core: desired block content for shell startup files."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from .config import BootstrapConfig
from .models import BlockSpec, PatchRequest

SUPPORTED_SHELLS = ("bash", "zsh")

CONCERN_MICROMAMBA = "micromamba"
CONCERN_NPM_PATH = "npm path"


def micromamba_spec(config: BootstrapConfig) -> BlockSpec:
    return BlockSpec.for_namespace(config.tag, CONCERN_MICROMAMBA)


def npm_path_spec(config: BootstrapConfig) -> BlockSpec:
    return BlockSpec.for_namespace(config.tag, CONCERN_NPM_PATH)


def resolve_tool_dir(exe: Path) -> str:
    d = Path(exe).parent
    if d.is_dir():
        d = d.resolve()
    return str(d)


def path_guard(directory: str) -> List[str]:
    # Prepend once; re-sourcing the rc file does not grow PATH.
    return [
        'case ":$PATH:" in',
        f'  *":{directory}:"*) ;;',
        f'  *) export PATH="{directory}:$PATH" ;;',
        "esac",
    ]


def micromamba_block(config: BootstrapConfig, shell: str, micromamba_exe: Path) -> List[str]:
    if shell not in SUPPORTED_SHELLS:
        raise ValueError(f"Unsupported shell dialect: {shell!r} (expected one of {', '.join(SUPPORTED_SHELLS)})")

    auto = "1" if config.auto_activate_base else "0"
    lines = [
        f'export MAMBA_ROOT_PREFIX="${{MAMBA_ROOT_PREFIX:-{config.mamba_root_prefix}}}"',
        f'export MAMBA_EXE="${{MAMBA_EXE:-{micromamba_exe}}}"',
        f'export AUTO_ACTIVATE_BASE="${{AUTO_ACTIVATE_BASE:-{auto}}}"',
    ]
    lines += path_guard(resolve_tool_dir(micromamba_exe))
    lines += [
        f'if __mamba_setup="$("$MAMBA_EXE" shell hook --shell {shell} --root-prefix "$MAMBA_ROOT_PREFIX" 2> /dev/null)"; then',
        '  eval "$__mamba_setup"',
        "else",
        '  alias micromamba="$MAMBA_EXE"',
        "fi",
        "unset __mamba_setup",
        'if [ "$AUTO_ACTIVATE_BASE" = "1" ]; then',
        "  micromamba activate >/dev/null 2>&1 || true",
        "fi",
    ]
    return lines


def npm_path_block(npm_global_bin: str) -> List[str]:
    if not npm_global_bin:
        raise ValueError("npm_global_bin must be non-empty.")
    return path_guard(npm_global_bin)


def shell_rc_targets(config: BootstrapConfig) -> List[Tuple[Path, str]]:
    return [(config.bashrc_path, "bash"), (config.zshrc_path, "zsh")]


def plan_shell_patches(
    config: BootstrapConfig,
    micromamba_exe: Optional[Path] = None,
    npm_global_bin: Optional[str] = None,
) -> List[PatchRequest]:
    """Every block shellstrap manages, per rc file, for the given tool locations."""
    requests: List[PatchRequest] = []
    if npm_global_bin:
        spec = npm_path_spec(config)
        # zshrc before bashrc
        for rc_path in (config.zshrc_path, config.bashrc_path):
            requests.append(PatchRequest(
                document_path=rc_path,
                spec=spec,
                desired_lines=npm_path_block(npm_global_bin),
                label=f"{rc_path.name}: {CONCERN_NPM_PATH}",
            ))
    if micromamba_exe is not None:
        spec = micromamba_spec(config)
        for rc_path, shell in shell_rc_targets(config):
            requests.append(PatchRequest(
                document_path=rc_path,
                spec=spec,
                desired_lines=micromamba_block(config, shell, micromamba_exe),
                label=f"{rc_path.name}: {CONCERN_MICROMAMBA} ({shell})",
            ))
    return requests
