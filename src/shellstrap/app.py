"""Shellstrap application entrypoint (CLI + GUI + selftest)."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from .core.config import BootstrapConfig
from .core.errors import ShellstrapError
from .core.installer import ColabSetup, MicromambaSetup
from .core.models import BlockSpec, SetupReport
from .core.patcher import MarkedBlockPatcher
from .core.selftests import ShellstrapSelfTests

logger = logging.getLogger("shellstrap")

EPILOG = """\
Common overrides (environment variables):
  MAMBA_ROOT_PREFIX=~/.shellstrap/micromamba
  MICROMAMBA_BIN=~/.shellstrap/bin/micromamba
  BASHRC_PATH=~/.bashrc
  ZSHRC_PATH=~/.zshrc
  AUTO_ACTIVATE_BASE=1
  INSTALL_BASE_PYTHON=1
  BASE_PYTHON_VERSION=3.12
  BASE_PYTHON_CHANNEL=conda-forge
  MICROMAMBA_TIMEOUT=3600s
  DRY_RUN=1
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellstrap",
        description="Provision micromamba and CLI tools and wire them into bash/zsh startup files.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--dry-run", action="store_true", help="report every action without changing anything (same as DRY_RUN=1)")
    parser.add_argument("--print-config", action="store_true", help="show the effective configuration and exit")
    parser.add_argument("--selftest", action="store_true", help="run in-process self tests and exit")
    parser.add_argument("--gui", action="store_true", help="open the patch preview window")
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.add_parser("micromamba", help="install micromamba and patch bashrc/zshrc (default)")

    colab = sub.add_parser("colab", help="apt packages, oh-my-zsh, npm CLI tools, then micromamba")
    colab.add_argument("--skip-micromamba", action="store_true")

    pt = sub.add_parser("patch", help="install or refresh one marked block in a file")
    pt.add_argument("--file", required=True, type=Path)
    pt.add_argument("--namespace", help='derive markers "# >>> NS >>>" / "# <<< NS <<<"')
    pt.add_argument("--start", help="literal start marker line")
    pt.add_argument("--end", help="literal end marker line")
    pt.add_argument("--name", help="block name used in messages")
    pt.add_argument("--line", action="append", default=[], help="body line (repeatable)")
    pt.add_argument("--body-file", type=Path, help="read body lines from a file")
    pt.add_argument("--backup-namespace", help="backup suffix, <file>.bak.<namespace>")
    pt.add_argument("--show-diff", action="store_true")
    return parser


def setup_logging(verbose: bool = False) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False, markup=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


def print_config(config: BootstrapConfig, console: Console) -> None:
    table = Table(title="shellstrap configuration")
    table.add_column("Variable", style="cyan", no_wrap=True)
    table.add_column("Value")
    for name, value in config.rows():
        table.add_row(name, value)
    console.print(table)


def _run_selftests_cli(console: Console) -> int:
    ok, report = ShellstrapSelfTests.run()
    console.print(report, markup=False, highlight=False)
    return 0 if ok else 2


def _block_spec(args: argparse.Namespace) -> BlockSpec:
    if args.namespace:
        if args.start or args.end:
            raise ValueError("Use either --namespace or --start/--end, not both.")
        spec = BlockSpec.for_namespace(args.namespace, "")
        if args.name:
            spec = BlockSpec(args.name, spec.start_marker, spec.end_marker)
        return spec
    if not (args.start and args.end):
        raise ValueError("Either --namespace or both --start and --end are required.")
    return BlockSpec(args.name or args.start, args.start, args.end)


def _run_patch(args: argparse.Namespace, config: BootstrapConfig, console: Console) -> int:
    spec = _block_spec(args)
    body: List[str] = list(args.line)
    if args.body_file is not None:
        body.extend(args.body_file.read_text(encoding="utf-8").splitlines())

    patcher = MarkedBlockPatcher(backup_namespace=args.backup_namespace or config.backup_namespace)
    res = patcher.patch_block(args.file, spec, body, dry_run=config.dry_run)
    if res.diff and (config.dry_run or args.show_diff):
        console.print(Syntax(res.diff, "diff", theme="ansi_dark"))
    return 0 if res.success else 1


def _summarize(report: SetupReport) -> int:
    for res in report.failed_patches():
        logger.error("Not patched: %s (%s)", res.document_path, res.error)
    if not report.success:
        logger.error(report.overall_message)
        return 1
    return 0


def _run_gui(config: BootstrapConfig, argv: List[str]) -> int:
    # PyQt6 is imported only for the GUI so headless hosts can use the CLI.
    from PyQt6.QtGui import QFont
    from PyQt6.QtWidgets import QApplication

    from .ui.main_window import MainWindow

    app = QApplication(argv)
    app.setFont(QFont("Monospace", 10))
    w = MainWindow(config)
    w.show()
    return app.exec()


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    console = Console()

    if args.selftest:
        return _run_selftests_cli(console)

    try:
        config = BootstrapConfig.from_env()
        if args.dry_run:
            config.dry_run = True

        if args.print_config:
            print_config(config, console)
            return 0
        if args.gui:
            return _run_gui(config, ["shellstrap", *argv])

        command = args.command or "micromamba"
        if command == "patch":
            return _run_patch(args, config, console)
        if command == "colab":
            return _summarize(ColabSetup(config, with_micromamba=not args.skip_micromamba).run())
        return _summarize(MicromambaSetup(config).run())
    except (ShellstrapError, OSError, ValueError) as e:
        logger.error("ERROR: %s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
