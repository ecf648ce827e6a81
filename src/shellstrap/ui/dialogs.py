"""Shellstrap UI: dialogs."""

from __future__ import annotations

import html
from typing import List, Optional

from PyQt6.QtCore import Qt, QUrl
from PyQt6.QtGui import QDesktopServices, QGuiApplication
from PyQt6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QTableView,
    QAbstractItemView, QHeaderView
)

from ..core.models import BlockSpec, PatchResult
from .models import MarkerTableModel, PlanTableModel

class PlanReportDialog(QDialog):
    def __init__(self, parent, results: List[PatchResult]):
        super().__init__(parent)
        self.setWindowTitle("Patch Plan")
        self.resize(980, 420)

        layout = QVBoxLayout(self)
        note = QLabel("Dry-run of every managed block. Nothing has been written yet.")
        layout.addWidget(note)

        self.table = QTableView()
        self.model = PlanTableModel(results)
        self.table.setModel(self.model)
        self.table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Interactive)
        self.table.setAlternatingRowColors(True)
        self.table.setWordWrap(False)
        layout.addWidget(self.table)

        btns = QHBoxLayout()
        btns.addStretch(1)
        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.accept)
        btns.addWidget(close_btn)
        layout.addLayout(btns)


class PartialBlockDialog(QDialog):
    """
    Shown when a file holds unbalanced markers for a block. Lists every
    marker line so the user can find and remove the leftover by hand.
    """

    def __init__(self, parent, result: PatchResult, spec: Optional[BlockSpec] = None):
        super().__init__(parent)
        self.setWindowTitle("Partial managed block")
        self.resize(820, 400)
        self.path = result.document_path

        layout = QVBoxLayout(self)

        counts = (
            f"start markers: {result.summary.get('start_count', '?')}, "
            f"end markers: {result.summary.get('end_count', '?')}"
        )
        head = QLabel(
            f"<b>{html.escape(result.block_name)}</b> in <code>{html.escape(result.document_path)}</code> "
            f"has unbalanced markers ({counts}).<br>"
            "The file was left unchanged. Remove the leftover marker lines, then preview again."
        )
        head.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        head.setWordWrap(True)
        layout.addWidget(head)

        self.model = MarkerTableModel()
        if spec is not None:
            try:
                with open(self.path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
                    self.model.build_from_text(f.read(), spec)
            except OSError as e:
                layout.addWidget(QLabel(f"Could not read file: {e}"))

        table = QTableView()
        table.setModel(self.model)
        table.horizontalHeader().setStretchLastSection(True)
        table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        table.setWordWrap(False)
        layout.addWidget(table)

        btns = QHBoxLayout()
        open_btn = QPushButton("Open File")
        open_btn.clicked.connect(self._open_file)
        copy_btn = QPushButton("Copy Path")
        copy_btn.clicked.connect(self._copy_path)
        btns.addWidget(open_btn)
        btns.addWidget(copy_btn)
        btns.addStretch(1)
        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.accept)
        btns.addWidget(close_btn)
        layout.addLayout(btns)

    def _open_file(self) -> None:
        QDesktopServices.openUrl(QUrl.fromLocalFile(self.path))

    def _copy_path(self) -> None:
        QGuiApplication.clipboard().setText(self.path)
