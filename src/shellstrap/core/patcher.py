"""Shellstrap core: idempotent marked-block patching of text files."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union

from .diffgen import DiffGenerator
from .errors import PartialBlockError
from .models import BlockSpec, PatchRequest, PatchResult
from .scanner import DocumentScanner

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

_LEVELS = {"INFO": logging.INFO, "WARN": logging.WARNING, "ERROR": logging.ERROR}


class MarkedBlockPatcher:
    """
    Ensures a text file holds exactly one up-to-date copy of a named block.

    Implements:
      - No-op detection when the block is already as desired
      - Replace of a stale block, collapse of duplicate blocks
      - Refusal (PartialBlockError) on unbalanced markers, file untouched
      - Single-generation backup <path>.bak.<namespace> before first write
      - Dry-run: decide and report, never touch the filesystem
      - Atomic write: temp file then replace

    Backups are taken at most once per document for the lifetime of the
    patcher instance, and an existing backup file is never overwritten.
    """

    def __init__(self, backup_namespace: str = "shellstrap", preserve_line_endings: bool = True):
        if not backup_namespace:
            raise ValueError("backup_namespace must be non-empty.")
        self.backup_namespace = backup_namespace
        self.preserve_line_endings = preserve_line_endings
        self.scanner = DocumentScanner()
        self.generator = DiffGenerator()
        self._backed_up: Set[str] = set()

    # ---------------- Public API ----------------

    def patch(
        self,
        document_path: PathLike,
        block_name: str,
        start_marker: str,
        end_marker: str,
        desired_lines: Sequence[str],
        dry_run: bool = False,
    ) -> PatchResult:
        spec = BlockSpec(name=block_name, start_marker=start_marker, end_marker=end_marker)
        return self.patch_block(document_path, spec, desired_lines, dry_run=dry_run)

    def apply(self, request: PatchRequest, dry_run: bool = False) -> PatchResult:
        return self.patch_block(request.document_path, request.spec, request.desired_lines, dry_run=dry_run)

    def preview(self, request: PatchRequest) -> PatchResult:
        return self.apply(request, dry_run=True)

    def backup_path_for(self, document_path: PathLike) -> Path:
        p = Path(document_path)
        return p.with_name(f"{p.name}.bak.{self.backup_namespace}")

    def patch_block(
        self,
        document_path: PathLike,
        spec: BlockSpec,
        desired_lines: Sequence[str],
        dry_run: bool = False,
    ) -> PatchResult:
        path = Path(document_path).expanduser()
        display = str(path)
        desired_block = self._desired_block(spec, desired_lines)

        res = PatchResult(
            document_path=display,
            block_name=spec.name,
            success=False,
            overall_message="Patch failed.",
            dry_run=dry_run,
        )

        existed = path.is_file()
        res.existed = existed
        original_text = self._read_text(path) if existed else ""
        res.original_text = original_text
        res.patched_text = original_text
        lines = self.scanner.split_lines(original_text)

        scan = self.scanner.scan(lines, spec)
        res.summary.update({"start_count": scan.start_count, "end_count": scan.end_count})

        if not scan.is_empty and not scan.consistent:
            raise PartialBlockError(display, spec.name, scan.start_count, scan.end_count)

        copies = len(scan.regions)
        current = [self.scanner.content(line) for line in scan.first_block(lines)]
        if copies == 1 and current == desired_block:
            res.success = True
            res.action = PatchResult.ACTION_UNCHANGED
            res.overall_message = f"Shell rc already configured: {display}"
            self._note(res, "INFO", "Block already up to date.", file=display, block=spec.name)
            return res

        if copies == 0:
            res.action = PatchResult.ACTION_INSERTED
        elif copies == 1:
            res.action = PatchResult.ACTION_REPLACED
        else:
            res.action = PatchResult.ACTION_COLLAPSED
            res.duplicates_found = copies
            self._note(res, "WARN", f"Found {copies} existing {spec.name} blocks; rewriting to a single block.",
                       file=display, copies=copies)

        kept = self.scanner.strip_blocks(lines, spec) if copies else list(lines)
        # User lines keep their own terminators; only the block takes the detected EOL.
        cr = "\r" if (existed and self.preserve_line_endings and self._detect_eol(original_text) == "\r\n") else ""
        if cr and kept and not original_text.endswith("\n") and not kept[-1].endswith("\r"):
            kept[-1] += cr
        new_text = self.scanner.join_lines(kept + [line + cr for line in desired_block])

        res.changed = True
        res.patched_text = new_text
        res.diff = self.generator.generate_unified_for_file(
            original_text, new_text, display if existed else "/dev/null", display
        )
        res.summary.update(self.generator.line_stats(original_text, new_text))

        backup = self.backup_path_for(path)
        needs_backup = existed and not backup.exists() and self._resolved_key(path) not in self._backed_up

        if dry_run:
            if not existed:
                self._note(res, "INFO", f"+ create {display}", file=display)
            if needs_backup:
                res.backup_path = str(backup)
                self._note(res, "INFO", f"Would back up {display} to {backup}", file=display, backup=str(backup))
            res.success = True
            res.overall_message = f"Would patch shell rc: {display}"
            self._note(res, "INFO", res.overall_message, file=display, action=res.action)
            return res

        if needs_backup:
            shutil.copy2(str(path), str(backup))
            self._backed_up.add(self._resolved_key(path))
            res.backup_path = str(backup)
            res.backup_created = True
            self._note(res, "INFO", f"Backed up {display} to {backup}", file=display, backup=str(backup))
        elif existed and backup.exists():
            res.backup_path = str(backup)

        self._atomic_write_text(path, new_text)

        res.success = True
        res.overall_message = f"Patched shell rc: {display}"
        self._note(res, "INFO", res.overall_message, file=display, action=res.action)
        return res

    # ---------------- Helpers ----------------

    def _desired_block(self, spec: BlockSpec, desired_lines: Sequence[str]) -> List[str]:
        body = [str(line).rstrip("\r\n") for line in desired_lines]
        if len(body) >= 2 and body[0] == spec.start_marker and body[-1] == spec.end_marker:
            body = body[1:-1]
        for line in body:
            if "\n" in line or "\r" in line:
                raise ValueError("desired_lines entries must be single lines.")
            if line in (spec.start_marker, spec.end_marker):
                raise ValueError(f"Block body for {spec.name} must not contain its own markers.")
        return spec.wrap(body)

    def _note(self, res: PatchResult, level: str, message: str, **fields) -> None:
        res.add_log(level, message, **fields)
        logger.log(_LEVELS.get(level, logging.INFO), message)

    def _resolved_key(self, path: Path) -> str:
        return str(path.resolve())

    def _read_text(self, path: Path) -> str:
        # surrogateescape keeps undecodable bytes intact across read/write
        with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
            return f.read()

    def _detect_eol(self, text: str) -> str:
        # Detect dominant EOL; default \n.
        crlf = text.count("\r\n")
        lf = text.count("\n")
        if crlf > 0 and crlf >= (lf - crlf):
            return "\r\n"
        return "\n"

    def _atomic_write_text(self, path: Path, text: str) -> None:
        # Write through symlinks so a linked rc file keeps its link.
        target = path.resolve() if path.is_symlink() else path
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".shellstrap_tmp", dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
                f.write(text)
            if target.exists():
                shutil.copymode(str(target), tmp_name)
            else:
                umask = os.umask(0)
                os.umask(umask)
                os.chmod(tmp_name, 0o666 & ~umask)
            os.replace(tmp_name, str(target))
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise


_default_patcher: Optional[MarkedBlockPatcher] = None


def patch(
    document_path: PathLike,
    block_name: str,
    start_marker: str,
    end_marker: str,
    desired_lines: Sequence[str],
    dry_run: bool = False,
) -> PatchResult:
    """Patch with a process-wide patcher using the default backup namespace."""
    global _default_patcher
    if _default_patcher is None:
        _default_patcher = MarkedBlockPatcher()
    return _default_patcher.patch(document_path, block_name, start_marker, end_marker, desired_lines, dry_run=dry_run)
