"""Shellstrap core: generate unified diffs for patched documents."""

from __future__ import annotations

import difflib
from typing import Dict, List

from .scanner import DocumentScanner


class DiffGenerator:
    """
    Generate unified diffs between a document's current text and the text a
    patch produces (or would produce, in dry-run).
    """

    def __init__(self):
        self.scanner = DocumentScanner()

    def _lines(self, text: str) -> List[str]:
        # Same line boundaries the patcher uses; a CRLF terminator shows as \n.
        return [self.scanner.content(line) + "\n" for line in self.scanner.split_lines(text)]

    def generate_unified_for_file(
        self,
        old_text: str,
        new_text: str,
        old_path: str,
        new_path: str
    ) -> str:
        diff = difflib.unified_diff(
            self._lines(old_text),
            self._lines(new_text),
            fromfile=old_path,
            tofile=new_path,
        )
        return "".join(diff)

    def line_stats(self, old_text: str, new_text: str) -> Dict[str, int]:
        added = 0
        removed = 0
        matcher = difflib.SequenceMatcher(a=self._lines(old_text), b=self._lines(new_text), autojunk=False)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag in ("replace", "delete"):
                removed += i2 - i1
            if tag in ("replace", "insert"):
                added += j2 - j1
        return {"lines_added": added, "lines_removed": removed}
