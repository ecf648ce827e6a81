"""Shellstrap core: in-process self tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Tuple

from .errors import PartialBlockError
from .models import BlockSpec
from .patcher import MarkedBlockPatcher


class ShellstrapSelfTests:
    """
    In-process self tests of the patcher using a temporary directory.
    """

    @staticmethod
    def run() -> Tuple[bool, str]:
        spec = BlockSpec.for_namespace("selftest", "block")
        body = ["export FOO=1"]

        report_lines = []
        ok = True

        def fail(msg: str) -> None:
            nonlocal ok
            ok = False
            report_lines.append("FAIL: " + msg)

        def pass_(msg: str) -> None:
            report_lines.append("OK: " + msg)

        with tempfile.TemporaryDirectory() as td:
            root = Path(td).resolve()
            patcher = MarkedBlockPatcher(backup_namespace="selftest")

            # 1) Insert into an existing file, with backup
            rc = root / "rc"
            rc.write_text("# keep me\n", encoding="utf-8")
            res = patcher.patch_block(rc, spec, body)
            expected = "# keep me\n# >>> selftest block >>>\nexport FOO=1\n# <<< selftest block <<<\n"
            if rc.read_text(encoding="utf-8") != expected:
                fail("Insert produced unexpected content.")
            else:
                pass_("Insert appends block.")
            backup = patcher.backup_path_for(rc)
            if not res.backup_created or backup.read_text(encoding="utf-8") != "# keep me\n":
                fail("Backup of pre-existing file missing or wrong.")
            else:
                pass_("Backup of pre-existing file.")

            # 2) Idempotence
            before = rc.read_bytes()
            res2 = patcher.patch_block(rc, spec, body)
            if res2.changed or rc.read_bytes() != before:
                fail("Second identical patch modified the file.")
            else:
                pass_("Idempotent re-patch.")

            # 3) Replace keeps the single backup
            patcher.patch_block(rc, spec, ["export FOO=2"])
            if backup.read_text(encoding="utf-8") != "# keep me\n":
                fail("Backup was overwritten.")
            elif "export FOO=2" not in rc.read_text(encoding="utf-8"):
                fail("Stale block was not replaced.")
            else:
                pass_("Replace with backup-once.")

            # 4) Partial block refusal
            broken = root / "broken"
            broken_text = "a\n# >>> selftest block >>>\nb\n"
            broken.write_text(broken_text, encoding="utf-8")
            try:
                patcher.patch_block(broken, spec, body)
            except PartialBlockError:
                if broken.read_text(encoding="utf-8") != broken_text:
                    fail("Partial block file was modified.")
                else:
                    pass_("Partial block refused.")
            else:
                fail("Partial block was not refused.")

            # 5) Duplicate collapse
            dup = root / "dup"
            dup.write_text(
                "x\n# >>> selftest block >>>\nold1\n# <<< selftest block <<<\n"
                "y\n# >>> selftest block >>>\nold2\n# <<< selftest block <<<\n",
                encoding="utf-8",
            )
            res5 = patcher.patch_block(dup, spec, body)
            text5 = dup.read_text(encoding="utf-8")
            if res5.duplicates_found != 2 or text5.count(spec.start_marker) != 1 or "old" in text5:
                fail("Duplicate blocks were not collapsed.")
            else:
                pass_("Duplicate blocks collapsed.")

            # 6) Dry-run never writes
            stale = root / "stale"
            stale.write_text("# >>> selftest block >>>\nold\n# <<< selftest block <<<\n", encoding="utf-8")
            before6 = stale.read_bytes()
            res6 = patcher.patch_block(stale, spec, body, dry_run=True)
            if not res6.changed or stale.read_bytes() != before6 or patcher.backup_path_for(stale).exists():
                fail("Dry-run mutated the file or missed the change.")
            else:
                pass_("Dry-run reports without writing.")

            # 7) Missing file, missing parent: dry-run creates nothing
            nested = root / "deep" / "dir" / "rc"
            patcher.patch_block(nested, spec, body, dry_run=True)
            if nested.parent.exists():
                fail("Dry-run created directories.")
            else:
                patcher.patch_block(nested, spec, body)
                if not nested.is_file() or patcher.backup_path_for(nested).exists():
                    fail("Creating a new file failed or produced a backup.")
                else:
                    pass_("New file created with parents, no backup.")

        return ok, "\n".join(report_lines)
