"""Shellstrap UI: Qt models for tables and aligned diff rendering."""

from __future__ import annotations

import difflib
import json
import time
from typing import List, Dict, Any, Optional

from PyQt6.QtCore import Qt, QAbstractTableModel, QModelIndex
from PyQt6.QtGui import QBrush, QColor

from ..core.models import BlockSpec, PatchResult
from ..core.scanner import DocumentScanner

_scanner = DocumentScanner()


def _split(text: str) -> List[str]:
    # Display lines without their CR; boundaries match what the patcher writes.
    return [_scanner.content(line) for line in _scanner.split_lines(text)]


class DiffAlignmentModel(QAbstractTableModel):
    """
    Aligned rows, 4 columns:
      0 old line number (or blank)
      1 old text (or blank)
      2 new line number (or blank)
      3 new text (or blank)
    """

    COL_OLD_NO = 0
    COL_OLD_TXT = 1
    COL_NEW_NO = 2
    COL_NEW_TXT = 3

    KIND_CONTEXT = "context"
    KIND_ADD = "add"
    KIND_DEL = "del"
    KIND_MOD = "mod"
    KIND_MARKER = "marker"

    def __init__(self):
        super().__init__()
        self._rows: List[Dict[str, Any]] = []
        self._header = ["Old", "Current", "New", "Patched"]
        self._markers: tuple = ()

        # Soft colors (explicit RGB)
        self._bg_context = QBrush(QColor(255, 255, 255))
        self._bg_line_no = QBrush(QColor(242, 242, 242))
        self._bg_add = QBrush(QColor(228, 246, 228))
        self._bg_del = QBrush(QColor(246, 228, 228))
        self._bg_mod = QBrush(QColor(252, 246, 220))
        self._bg_marker = QBrush(QColor(226, 234, 248))

        self._fg_default = QBrush(QColor(20, 20, 20))

    def rowCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else 4

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return self._header[section] if 0 <= section < len(self._header) else ""
        return str(section + 1)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        c = index.column()
        row = self._rows[index.row()]

        if role == Qt.ItemDataRole.DisplayRole:
            if c == 0:
                return row.get("old_no", "")
            if c == 1:
                return row.get("old_text", "")
            if c == 2:
                return row.get("new_no", "")
            if c == 3:
                return row.get("new_text", "")
            return ""
        if role == Qt.ItemDataRole.TextAlignmentRole:
            if c in (0, 2):
                return int(Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter)
            return int(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter)

        if role == Qt.ItemDataRole.BackgroundRole:
            kind = row.get("kind", self.KIND_CONTEXT)
            if c in (0, 2):
                return self._bg_line_no
            if kind == self.KIND_ADD:
                # only new columns green
                return self._bg_add if c == 3 else self._bg_context
            if kind == self.KIND_DEL:
                # only old columns red
                return self._bg_del if c == 1 else self._bg_context
            if kind == self.KIND_MOD:
                return self._bg_mod
            if kind == self.KIND_MARKER:
                return self._bg_marker
            return self._bg_context

        if role == Qt.ItemDataRole.ForegroundRole:
            return self._fg_default

        if role == Qt.ItemDataRole.UserRole:
            return row

        return None

    def set_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.beginResetModel()
        self._rows = rows
        self.endResetModel()

    def rows(self) -> List[Dict[str, Any]]:
        return list(self._rows)

    def _row(self, kind: str, old_no: Optional[int], old_text: str, new_no: Optional[int], new_text: str) -> Dict[str, Any]:
        if kind == self.KIND_CONTEXT and (old_text in self._markers or new_text in self._markers):
            kind = self.KIND_MARKER
        return {
            "old_no": "" if old_no is None else str(old_no),
            "old_text": old_text,
            "new_no": "" if new_no is None else str(new_no),
            "new_text": new_text,
            "kind": kind,
        }

    def build_from_texts(self, old_text: str, new_text: str, markers: tuple = ()) -> None:
        self._markers = tuple(markers)
        old_lines = _split(old_text)
        new_lines = _split(new_text)
        rows: List[Dict[str, Any]] = []

        matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                for k in range(i2 - i1):
                    rows.append(self._row(self.KIND_CONTEXT, i1 + k + 1, old_lines[i1 + k], j1 + k + 1, new_lines[j1 + k]))
            elif tag == "delete":
                for i in range(i1, i2):
                    rows.append(self._row(self.KIND_DEL, i + 1, old_lines[i], None, ""))
            elif tag == "insert":
                for j in range(j1, j2):
                    rows.append(self._row(self.KIND_ADD, None, "", j + 1, new_lines[j]))
            else:
                # replace: pair lines side by side, overflow as pure add/del
                m = max(i2 - i1, j2 - j1)
                for k in range(m):
                    i = i1 + k
                    j = j1 + k
                    if i < i2 and j < j2:
                        rows.append(self._row(self.KIND_MOD, i + 1, old_lines[i], j + 1, new_lines[j]))
                    elif i < i2:
                        rows.append(self._row(self.KIND_DEL, i + 1, old_lines[i], None, ""))
                    else:
                        rows.append(self._row(self.KIND_ADD, None, "", j + 1, new_lines[j]))

        self.set_rows(rows)



class LogTableModel(QAbstractTableModel):
    def __init__(self):
        super().__init__()
        self._rows: List[Dict[str, Any]] = []
        self._header = ["Time", "Level", "Message"]

    def rowCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else 3

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return self._header[section]
        return str(section + 1)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        row = self._rows[index.row()]
        c = index.column()

        if role == Qt.ItemDataRole.DisplayRole:
            if c == 0:
                ts = row.get("ts", 0.0)
                return time.strftime("%H:%M:%S", time.localtime(ts))
            if c == 1:
                return row.get("level", "")
            if c == 2:
                return row.get("message", "")
        if role == Qt.ItemDataRole.ToolTipRole:
            # JSON details
            det = {k: v for k, v in row.items() if k not in ("ts", "level", "message")}
            if det:
                return json.dumps(det, indent=2, default=str)
        return None

    def append(self, entry: Dict[str, Any]) -> None:
        self.beginInsertRows(QModelIndex(), len(self._rows), len(self._rows))
        self._rows.append(entry)
        self.endInsertRows()

    def clear(self) -> None:
        self.beginResetModel()
        self._rows = []
        self.endResetModel()



class PlanTableModel(QAbstractTableModel):
    """One row per planned patch: file, block, action, backup."""

    def __init__(self, results: Optional[List[PatchResult]] = None):
        super().__init__()
        self._results: List[PatchResult] = list(results or [])
        self._header = ["File", "Block", "Action", "Backup", "Message"]

    def rowCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._results)

    def columnCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else 5

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return self._header[section]
        return str(section + 1)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        r = self._results[index.row()]
        c = index.column()
        if role == Qt.ItemDataRole.DisplayRole:
            if c == 0:
                return r.document_path
            if c == 1:
                return r.block_name
            if c == 2:
                return r.action
            if c == 3:
                return r.backup_path or ""
            if c == 4:
                return r.overall_message
        if role == Qt.ItemDataRole.UserRole:
            return r
        return None

    def set_results(self, results: List[PatchResult]) -> None:
        self.beginResetModel()
        self._results = list(results)
        self.endResetModel()

    def pending(self) -> List[PatchResult]:
        return [r for r in self._results if r.success and r.changed]

    def failed(self) -> List[PatchResult]:
        return [r for r in self._results if not r.success]


class KeyValueTableModel(QAbstractTableModel):
    def __init__(self, rows: List[Dict[str, str]]):
        super().__init__()
        self._rows = rows
        self._header = ["Field", "Value"]

    def rowCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else 2

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return self._header[section]
        return str(section + 1)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        row = self._rows[index.row()]
        if role == Qt.ItemDataRole.DisplayRole:
            return row["k"] if index.column() == 0 else row["v"]
        return None


class MarkerTableModel(QAbstractTableModel):
    """Every start/end marker of one block in a file, with whether it closes into a pair."""

    def __init__(self):
        super().__init__()
        self._rows: List[Dict[str, str]] = []
        self._header = ["Line", "Marker", "Status", "Text"]
        self._bg_unpaired = QBrush(QColor(246, 228, 228))

    def rowCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent=QModelIndex()) -> int:
        return 0 if parent.isValid() else 4

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if role != Qt.ItemDataRole.DisplayRole:
            return None
        if orientation == Qt.Orientation.Horizontal:
            return self._header[section]
        return str(section + 1)

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):
        if not index.isValid():
            return None
        row = self._rows[index.row()]
        if role == Qt.ItemDataRole.DisplayRole:
            return row[("line", "kind", "status", "text")[index.column()]]
        if role == Qt.ItemDataRole.BackgroundRole and row["status"] == "unpaired":
            return self._bg_unpaired
        return None

    def build_from_text(self, text: str, spec: BlockSpec) -> None:
        lines = _scanner.split_lines(text)
        paired = set()
        for s, e in _scanner.scan(lines, spec).regions:
            paired.update((s + 1, e + 1))
        rows = []
        for lineno, kind in _scanner.marker_lines(lines, spec):
            rows.append({
                "line": str(lineno),
                "kind": kind,
                "status": "paired" if lineno in paired else "unpaired",
                "text": _scanner.content(lines[lineno - 1]),
            })
        self.beginResetModel()
        self._rows = rows
        self.endResetModel()

    def rows(self) -> List[Dict[str, str]]:
        return list(self._rows)
