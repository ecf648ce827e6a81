"""Shellstrap core: shared data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Dict, Any, Optional


@dataclass(frozen=True)
class BlockSpec:
    """Names a managed block by its literal marker pair."""

    name: str
    start_marker: str
    end_marker: str

    def __post_init__(self) -> None:
        for label, marker in (("start_marker", self.start_marker), ("end_marker", self.end_marker)):
            if not marker or not marker.strip():
                raise ValueError(f"{label} must be a non-empty line.")
            if "\n" in marker or "\r" in marker:
                raise ValueError(f"{label} must be a single line.")
        if self.start_marker == self.end_marker:
            raise ValueError("start_marker and end_marker must differ.")

    @classmethod
    def for_namespace(cls, tag: str, concern: str) -> "BlockSpec":
        label = f"{tag} {concern}".strip()
        return cls(
            name=label,
            start_marker=f"# >>> {label} >>>",
            end_marker=f"# <<< {label} <<<",
        )

    def wrap(self, body: List[str]) -> List[str]:
        return [self.start_marker, *body, self.end_marker]


@dataclass
class BlockScan:
    start_count: int
    end_count: int
    regions: List[Tuple[int, int]] = field(default_factory=list)  # inclusive (start, end) line indices
    consistent: bool = True

    @property
    def has_block(self) -> bool:
        return bool(self.regions)

    @property
    def is_empty(self) -> bool:
        return self.start_count == 0 and self.end_count == 0

    def first_block(self, lines: List[str]) -> List[str]:
        if not self.regions:
            return []
        s, e = self.regions[0]
        return lines[s:e + 1]


@dataclass
class PatchRequest:
    document_path: Path
    spec: BlockSpec
    desired_lines: List[str]
    label: str = ""


@dataclass
class PatchResult:
    document_path: str
    block_name: str
    success: bool
    overall_message: str
    action: str = ""  # unchanged/inserted/replaced/collapsed/failed
    dry_run: bool = False
    changed: bool = False
    existed: bool = False
    duplicates_found: int = 0
    backup_path: Optional[str] = None
    backup_created: bool = False
    diff: str = ""
    original_text: str = field(default="", repr=False)
    patched_text: str = field(default="", repr=False)
    error: Optional[str] = None
    summary: Dict[str, Any] = field(default_factory=dict)
    logs: List[Dict[str, Any]] = field(default_factory=list)

    ACTION_UNCHANGED = "unchanged"
    ACTION_INSERTED = "inserted"
    ACTION_REPLACED = "replaced"
    ACTION_COLLAPSED = "collapsed"
    ACTION_FAILED = "failed"

    def add_log(self, level: str, message: str, **fields: Any) -> None:
        entry = {"ts": time.time(), "level": level, "message": message}
        entry.update(fields)
        self.logs.append(entry)


@dataclass
class SetupReport:
    success: bool = True
    overall_message: str = ""
    steps: Dict[str, str] = field(default_factory=dict)  # step -> status
    patches: List[PatchResult] = field(default_factory=list)
    logs: List[Dict[str, Any]] = field(default_factory=list)

    def add_log(self, level: str, message: str, **fields: Any) -> None:
        entry = {"ts": time.time(), "level": level, "message": message}
        entry.update(fields)
        self.logs.append(entry)

    def record_patch(self, res: PatchResult) -> None:
        self.patches.append(res)
        self.logs.extend(res.logs)
        if not res.success:
            self.success = False

    def merge(self, other: "SetupReport") -> None:
        self.steps.update(other.steps)
        self.patches.extend(other.patches)
        self.logs.extend(other.logs)
        self.success = self.success and other.success

    def failed_patches(self) -> List[PatchResult]:
        return [p for p in self.patches if not p.success]
