from pathlib import Path

import pytest

from shellstrap.core.config import BootstrapConfig
from shellstrap.core.models import BlockSpec
from shellstrap.core.patcher import MarkedBlockPatcher


START = "# >>> X >>>"
END = "# <<< X <<<"


@pytest.fixture
def spec() -> BlockSpec:
    return BlockSpec(name="X", start_marker=START, end_marker=END)


@pytest.fixture
def patcher() -> MarkedBlockPatcher:
    return MarkedBlockPatcher(backup_namespace="test")


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def config(home: Path) -> BootstrapConfig:
    return BootstrapConfig.from_env({"HOME": str(home), "PATH": "/usr/bin:/bin"})


def block_text(*body: str) -> str:
    return "\n".join([START, *body, END]) + "\n"
