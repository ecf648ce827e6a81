import dataclasses
import os
from pathlib import Path

import pytest

from shellstrap.core.errors import MissingCommandError, UnsupportedPlatformError
from shellstrap.core.installer import ColabSetup, MicromambaSetup, apply_requests, micromamba_platform
from shellstrap.core.models import PatchResult, SetupReport
from shellstrap.core.patcher import MarkedBlockPatcher
from shellstrap.core.blocks import plan_shell_patches
from shellstrap.core.runner import CommandRunner


class FakeRunner(CommandRunner):
    """Records commands instead of executing them."""

    def __init__(self, available=None, queries=None, dry_run=False):
        super().__init__(dry_run=dry_run, env={"PATH": "/usr/bin:/bin"})
        self.available = dict(available or {})
        self.queries = dict(queries or {})
        self.calls = []

    def which(self, name):
        return self.available.get(name)

    def run(self, argv, timeout=None, env=None):
        argv = [str(a) for a in argv]
        self.history.append(argv)
        self.calls.append((argv, timeout, dict(env or {})))
        return None

    def query(self, argv, timeout=60):
        return self.queries.get(tuple(argv))


@pytest.mark.parametrize("machine,expected", [
    ("x86_64", "linux-64"),
    ("AMD64", "linux-64"),
    ("aarch64", "linux-aarch64"),
    ("arm64", "linux-aarch64"),
])
def test_micromamba_platform(machine, expected):
    assert micromamba_platform(machine) == expected


def test_micromamba_platform_unsupported():
    with pytest.raises(UnsupportedPlatformError):
        micromamba_platform("riscv64")


def test_micromamba_on_path_is_reused(config):
    runner = FakeRunner(available={"micromamba": "/opt/mm/micromamba"})
    setup = MicromambaSetup(config, runner=runner)

    assert setup.ensure_micromamba() == Path("/opt/mm/micromamba")
    assert runner.calls == []
    assert runner.env["MAMBA_ROOT_PREFIX"] == str(config.mamba_root_prefix)


def test_existing_micromamba_bin_is_reused(config):
    config.micromamba_bin.parent.mkdir(parents=True)
    config.micromamba_bin.write_text("#!/bin/sh\n", encoding="utf-8")
    os.chmod(config.micromamba_bin, 0o755)
    runner = FakeRunner()

    assert MicromambaSetup(config, runner=runner).ensure_micromamba() == config.micromamba_bin
    assert runner.calls == []


def test_micromamba_download(config):
    runner = FakeRunner(available={"curl": "/usr/bin/curl", "tar": "/usr/bin/tar"})
    setup = MicromambaSetup(config, runner=runner, machine="x86_64")

    assert setup.ensure_micromamba() == config.micromamba_bin
    assert config.bin_dir.is_dir()
    (argv, _, _), = runner.calls
    assert argv[:2] == ["bash", "-c"]
    assert argv[2].startswith("set -o pipefail; curl -fLsS --retry 5")
    assert "https://micro.mamba.pm/api/micromamba/linux-64/latest" in argv[2]
    assert f"tar -xvj -C {config.bin_dir} --strip-components=1 bin/micromamba" in argv[2]


def test_micromamba_download_dry_run_creates_nothing(config):
    config = dataclasses.replace(config, dry_run=True)
    runner = FakeRunner(available={"curl": "/usr/bin/curl", "tar": "/usr/bin/tar"}, dry_run=True)

    MicromambaSetup(config, runner=runner, machine="aarch64").ensure_micromamba()

    assert not config.base_dir.exists()
    assert "linux-aarch64" in runner.calls[0][0][2]


def test_micromamba_download_needs_curl(config):
    runner = FakeRunner(available={"tar": "/usr/bin/tar"})
    with pytest.raises(MissingCommandError):
        MicromambaSetup(config, runner=runner, machine="x86_64").ensure_micromamba()


def test_base_python_install(config):
    runner = FakeRunner()
    setup = MicromambaSetup(config, runner=runner)

    assert setup.ensure_base_python(Path("/opt/mm/micromamba")) is True
    (argv, timeout, _), = runner.calls
    assert argv == [
        "/opt/mm/micromamba", "install", "-y",
        "-p", str(config.mamba_root_prefix),
        "-c", "conda-forge",
        "python=3.12",
    ]
    assert timeout == 3600.0


def test_base_python_skipped(config):
    runner = FakeRunner()
    config.install_base_python = False
    assert MicromambaSetup(config, runner=runner).ensure_base_python(Path("/x")) is False

    config.install_base_python = True
    python = config.mamba_root_prefix / "bin" / "python"
    python.parent.mkdir(parents=True)
    python.write_text("", encoding="utf-8")
    os.chmod(python, 0o755)
    assert MicromambaSetup(config, runner=runner).ensure_base_python(Path("/x")) is False
    assert runner.calls == []


def test_micromamba_setup_patches_both_rc_files(config):
    config.install_base_python = False
    config.bashrc_path.write_text("# keep\n", encoding="utf-8")
    runner = FakeRunner(available={"micromamba": "/opt/mm/micromamba"})

    report = MicromambaSetup(config, runner=runner).run()

    assert report.success
    assert [p.action for p in report.patches] == ["inserted", "inserted"]
    bashrc = config.bashrc_path.read_text(encoding="utf-8")
    zshrc = config.zshrc_path.read_text(encoding="utf-8")
    assert bashrc.startswith("# keep\n# >>> shellstrap micromamba >>>\n")
    assert "--shell bash" in bashrc
    assert "--shell zsh" in zshrc
    assert Path(str(config.bashrc_path) + ".bak.shellstrap").read_text(encoding="utf-8") == "# keep\n"

    again = MicromambaSetup(config, runner=runner).run()
    assert [p.action for p in again.patches] == ["unchanged", "unchanged"]


def test_partial_block_in_one_file_does_not_stop_the_other(config):
    config.install_base_python = False
    broken = "# >>> shellstrap micromamba >>>\nexport X=1\n"
    config.bashrc_path.write_text(broken, encoding="utf-8")
    runner = FakeRunner(available={"micromamba": "/opt/mm/micromamba"})

    report = MicromambaSetup(config, runner=runner).run()

    assert not report.success
    assert report.steps["shell_rc"] == "failed"
    failed, = report.failed_patches()
    assert failed.document_path == str(config.bashrc_path)
    assert failed.action == PatchResult.ACTION_FAILED
    assert "partial" in failed.error
    assert config.bashrc_path.read_text(encoding="utf-8") == broken
    assert "--shell zsh" in config.zshrc_path.read_text(encoding="utf-8")


def test_apply_requests_dry_run(config):
    report = SetupReport()
    patcher = MarkedBlockPatcher(backup_namespace="t")
    reqs = plan_shell_patches(config, npm_global_bin="/usr/local/bin")

    results = apply_requests(patcher, reqs, True, report)

    assert [r.changed for r in results] == [True, True]
    assert report.success
    assert not config.zshrc_path.exists()
    assert not config.bashrc_path.exists()


def test_colab_setup_end_to_end(config):
    runner = FakeRunner(
        available={"npm": "/usr/bin/npm", "codex": "/usr/local/bin/codex"},
        queries={("npm", "prefix", "-g"): "/usr/local/"},
    )
    setup = ColabSetup(config, runner=runner, with_micromamba=False)

    report = setup.run()

    assert report.success
    assert report.steps == {"apt": "ok", "oh_my_zsh": "installed", "npm_tools": "ok", "npm_path": "ok"}
    argvs = [c[0] for c in runner.calls]
    assert argvs[0][0] == "apt-get" and argvs[0][-1] == "update"
    assert "Acquire::Retries=3" in argvs[0]
    assert runner.calls[0][2] == {"DEBIAN_FRONTEND": "noninteractive"}
    assert argvs[1][-6:] == ["zsh", "curl", "git", "ca-certificates", "tar", "bzip2"]
    assert argvs[2][:2] == ["sh", "-c"]
    assert runner.calls[2][2]["RUNZSH"] == "no"
    assert runner.calls[2][2]["ZSH"] == str(config.zsh_dir)
    assert argvs[3] == ["npm", "install", "-g", "--no-fund", "--no-audit",
                        "@openai/codex", "@anthropic-ai/claude-code"]
    assert argvs[4] == ["codex", "--version"]
    assert runner.env["PATH"].startswith("/usr/local/bin")

    for rc in (config.zshrc_path, config.bashrc_path):
        text = rc.read_text(encoding="utf-8")
        assert text.startswith("# >>> shellstrap npm path >>>\n")
        assert '  *) export PATH="/usr/local/bin:$PATH" ;;' in text


def test_colab_setup_skips_present_oh_my_zsh(config):
    config.zsh_dir.mkdir()
    runner = FakeRunner(available={"npm": "/usr/bin/npm"})
    report = ColabSetup(config, runner=runner, with_micromamba=False).run()
    assert report.steps["oh_my_zsh"] == "present"
    assert report.steps["npm_path"] == "unknown"
    assert not any(c[0][0] == "sh" for c in runner.calls)


def test_colab_setup_requires_npm(config):
    runner = FakeRunner()
    with pytest.raises(MissingCommandError) as excinfo:
        ColabSetup(config, runner=runner, with_micromamba=False).run()
    assert "Node.js" in str(excinfo.value)


def test_colab_setup_runs_micromamba_setup(config):
    config.install_base_python = False
    runner = FakeRunner(
        available={"npm": "/usr/bin/npm", "micromamba": "/opt/mm/micromamba"},
        queries={("npm", "prefix", "-g"): "/usr/local"},
    )
    report = ColabSetup(config, runner=runner).run()

    assert report.success
    assert len(report.patches) == 4
    assert report.steps["micromamba"] == "ok"
    zshrc = config.zshrc_path.read_text(encoding="utf-8")
    assert zshrc.index("npm path >>>") < zshrc.index("micromamba >>>")
