"""Shellstrap core: document line splitting & marker analysis."""

from __future__ import annotations

from typing import List, Optional, Tuple

from .models import BlockSpec, BlockScan


class DocumentScanner:
    """
    Responsibilities:
      - Split on \n only; a CRLF line keeps its trailing \r so untouched
        lines are written back byte-for-byte.
      - Count start/end markers on exact full-line equality (ignoring that \r).
      - Pair markers into regions and flag inconsistent layouts.
      - Strip all delimited regions for rewriting.
    """

    def split_lines(self, text: str) -> List[str]:
        if not text:
            return []
        lines = text.split("\n")
        # A trailing newline terminates the last line; it does not start a new one.
        if lines and lines[-1] == "":
            lines.pop()
        return lines

    def join_lines(self, lines: List[str]) -> str:
        if not lines:
            return ""
        return "\n".join(lines) + "\n"

    def content(self, line: str) -> str:
        return line[:-1] if line.endswith("\r") else line

    def scan(self, lines: List[str], spec: BlockSpec) -> BlockScan:
        scan = BlockScan(start_count=0, end_count=0)
        open_at: Optional[int] = None

        for i, raw in enumerate(lines):
            line = self.content(raw)
            if line == spec.start_marker:
                scan.start_count += 1
                if open_at is not None:
                    # start inside an unclosed block
                    scan.consistent = False
                open_at = i
            elif line == spec.end_marker:
                scan.end_count += 1
                if open_at is None:
                    scan.consistent = False
                else:
                    scan.regions.append((open_at, i))
                    open_at = None

        if open_at is not None or scan.start_count != scan.end_count:
            scan.consistent = False
        return scan

    def strip_blocks(self, lines: List[str], spec: BlockSpec) -> List[str]:
        out: List[str] = []
        skip = False
        for raw in lines:
            line = self.content(raw)
            if not skip and line == spec.start_marker:
                skip = True
                continue
            if skip:
                if line == spec.end_marker:
                    skip = False
                continue
            out.append(raw)
        return out

    def marker_lines(self, lines: List[str], spec: BlockSpec) -> List[Tuple[int, str]]:
        """1-based line numbers of every start/end marker, in file order."""
        found: List[Tuple[int, str]] = []
        for i, raw in enumerate(lines, start=1):
            line = self.content(raw)
            if line == spec.start_marker:
                found.append((i, "start"))
            elif line == spec.end_marker:
                found.append((i, "end"))
        return found


_scanner = DocumentScanner()


def scan_document(lines: List[str], spec: BlockSpec) -> BlockScan:
    return _scanner.scan(lines, spec)


def strip_blocks(lines: List[str], spec: BlockSpec) -> List[str]:
    return _scanner.strip_blocks(lines, spec)
