"""Shellstrap UI: main window."""

from __future__ import annotations

import dataclasses
import time
from pathlib import Path
from typing import List, Optional, Dict, Any

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction, QStandardItemModel, QStandardItem, QFont
from PyQt6.QtWidgets import (
    QMainWindow, QToolBar, QStatusBar, QSplitter,
    QListView, QTableView, QDockWidget,
    QWidget, QVBoxLayout, QMessageBox, QCheckBox, QFormLayout, QLineEdit,
    QHeaderView, QAbstractItemView, QStyle
)

from ..core.blocks import plan_shell_patches
from ..core.config import BootstrapConfig
from ..core.installer import MicromambaSetup, apply_requests
from ..core.models import PatchRequest, PatchResult, SetupReport
from ..core.patcher import MarkedBlockPatcher
from ..core.runner import CommandRunner
from ..core.selftests import ShellstrapSelfTests

from .models import DiffAlignmentModel, LogTableModel, KeyValueTableModel
from .delegates import ShellSyntaxDelegate
from .dialogs import PlanReportDialog, PartialBlockDialog

class MainWindow(QMainWindow):
    def __init__(self, config: BootstrapConfig):
        super().__init__()
        self.setWindowTitle("Shellstrap")
        self.resize(1200, 720)

        self.config = config
        # One patcher per window: backups are taken at most once per session.
        self.patcher = MarkedBlockPatcher(backup_namespace=config.backup_namespace)
        self.runner = CommandRunner(dry_run=True)

        # Session state
        self.requests: List[PatchRequest] = []
        self.preview_results: List[PatchResult] = []

        self.setFont(QFont("Monospace", 10))

        self._build_toolbar()
        self._build_central()
        self._build_docks()
        self._build_status()

        self._refresh_actions()
        self._log_info("Ready.", component="ui")

    # ---------------- UI Construction ----------------

    def _build_toolbar(self):
        tb = QToolBar("Main")
        tb.setMovable(False)
        self.addToolBar(tb)

        self.act_preview = QAction("Preview", self)
        self.act_preview.triggered.connect(self._run_preview)

        self.act_apply = QAction("Apply", self)
        self.act_apply.triggered.connect(self._run_apply)

        self.act_report = QAction("Plan Report", self)
        self.act_report.triggered.connect(self._show_report)

        self.act_settings = QAction("Settings", self)
        self.act_settings.triggered.connect(self._toggle_settings)

        self.act_help = QAction("Help", self)
        self.act_help.triggered.connect(self._show_help)

        for a in [self.act_preview, self.act_apply, self.act_report, self.act_settings, self.act_help]:
            tb.addAction(a)

    def _build_central(self):
        splitter = QSplitter()
        splitter.setOrientation(Qt.Orientation.Horizontal)

        self.plan_list = QListView()
        self.plan_list.setMinimumWidth(300)
        self.plan_list.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.plan_model = QStandardItemModel()
        self.plan_list.setModel(self.plan_model)
        self.plan_list.selectionModel().selectionChanged.connect(self._on_plan_selected)

        self.diff_table = QTableView()
        self.diff_model = DiffAlignmentModel()
        self.diff_table.setModel(self.diff_model)
        self.diff_table.setWordWrap(False)
        self.diff_table.setHorizontalScrollMode(QAbstractItemView.ScrollMode.ScrollPerPixel)
        self.diff_table.setVerticalScrollMode(QAbstractItemView.ScrollMode.ScrollPerPixel)
        self.diff_table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.diff_table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.diff_table.setShowGrid(False)

        hdr = self.diff_table.horizontalHeader()
        hdr.setStretchLastSection(False)
        hdr.setSectionResizeMode(QHeaderView.ResizeMode.Interactive)
        self.diff_table.setColumnWidth(0, 60)
        self.diff_table.setColumnWidth(2, 60)
        hdr.setSectionResizeMode(1, QHeaderView.ResizeMode.Stretch)
        hdr.setSectionResizeMode(3, QHeaderView.ResizeMode.Stretch)

        self.syntax_delegate = ShellSyntaxDelegate(self.diff_table)
        self.diff_table.setItemDelegateForColumn(1, self.syntax_delegate)
        self.diff_table.setItemDelegateForColumn(3, self.syntax_delegate)

        splitter.addWidget(self.plan_list)
        splitter.addWidget(self.diff_table)
        splitter.setSizes([300, 900])

        self.setCentralWidget(splitter)

    def _build_docks(self):
        # Bottom dock: Log (hidden until something is worth showing)
        self.log_dock = QDockWidget("Log", self)
        self.log_dock.setAllowedAreas(Qt.DockWidgetArea.BottomDockWidgetArea)
        self.log_dock.setVisible(False)

        log_widget = QWidget()
        log_layout = QVBoxLayout(log_widget)
        log_layout.setContentsMargins(4, 4, 4, 4)

        self.log_table = QTableView()
        self.log_model = LogTableModel()
        self.log_table.setModel(self.log_model)
        self.log_table.horizontalHeader().setStretchLastSection(True)
        self.log_table.setWordWrap(False)
        self.log_table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        log_layout.addWidget(self.log_table)
        self.log_dock.setWidget(log_widget)
        self.addDockWidget(Qt.DockWidgetArea.BottomDockWidgetArea, self.log_dock)

        # Right dock: Settings (tool locations + effective configuration)
        self.settings_dock = QDockWidget("Settings", self)
        self.settings_dock.setAllowedAreas(Qt.DockWidgetArea.RightDockWidgetArea)
        self.settings_dock.setVisible(False)

        settings_widget = QWidget()
        settings_layout = QVBoxLayout(settings_widget)
        form = QFormLayout()

        located = MicromambaSetup(self.config, runner=self.runner).locate_micromamba()
        self.edit_micromamba = QLineEdit(str(located or self.config.micromamba_bin))
        self.edit_npm_bin = QLineEdit("")
        self.edit_npm_bin.setPlaceholderText("empty: skip npm PATH block")
        self.chk_micromamba = QCheckBox("Manage micromamba block")
        self.chk_micromamba.setChecked(True)
        self.chk_auto_activate = QCheckBox("Auto-activate base environment")
        self.chk_auto_activate.setChecked(self.config.auto_activate_base)

        form.addRow("micromamba executable", self.edit_micromamba)
        form.addRow("npm global bin", self.edit_npm_bin)
        form.addRow(self.chk_micromamba)
        form.addRow(self.chk_auto_activate)
        settings_layout.addLayout(form)

        cfg_table = QTableView()
        cfg_table.setModel(KeyValueTableModel([{"k": k, "v": v} for k, v in self.config.rows()]))
        cfg_table.horizontalHeader().setStretchLastSection(True)
        cfg_table.setSelectionMode(QAbstractItemView.SelectionMode.NoSelection)
        settings_layout.addWidget(cfg_table)

        self.settings_dock.setWidget(settings_widget)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, self.settings_dock)

        self.menu = self.menuBar().addMenu("Help")
        act_selftests = QAction("Run Self Tests", self)
        act_selftests.triggered.connect(self._run_selftests_ui)
        self.menu.addAction(act_selftests)

    def _build_status(self):
        sb = QStatusBar()
        self.setStatusBar(sb)
        self._set_status("No preview yet.", state="Idle", warn="")

    # ---------------- Utilities ----------------

    def _effective_config(self) -> BootstrapConfig:
        return dataclasses.replace(self.config, auto_activate_base=self.chk_auto_activate.isChecked())

    def _build_requests(self) -> List[PatchRequest]:
        micromamba = None
        if self.chk_micromamba.isChecked() and self.edit_micromamba.text().strip():
            micromamba = Path(self.edit_micromamba.text().strip()).expanduser()
        npm_bin = self.edit_npm_bin.text().strip() or None
        return plan_shell_patches(self._effective_config(), micromamba_exe=micromamba, npm_global_bin=npm_bin)

    def _set_status(self, summary: str, state: str, warn: str) -> None:
        self.statusBar().showMessage(f"{summary}    |    State: {state}    |    {warn}".strip())

    def _log(self, level: str, message: str, **fields: Any) -> None:
        entry = {"ts": time.time(), "level": level, "message": message}
        entry.update(fields)
        self.log_model.append(entry)
        if level in ("ERROR", "WARN"):
            self.log_dock.setVisible(True)

    def _log_info(self, message: str, **fields: Any) -> None:
        self._log("INFO", message, **fields)

    def _log_entries(self, entries: List[Dict[str, Any]]) -> None:
        for entry in entries:
            self._log(entry.get("level", "INFO"), entry.get("message", ""),
                      **{k: v for k, v in entry.items() if k not in ("ts", "level", "message")})

    def _refresh_actions(self):
        has_preview = bool(self.preview_results)
        pending = [r for r in self.preview_results if r.success and r.changed]
        self.act_apply.setEnabled(bool(pending))
        self.act_report.setEnabled(has_preview)

    def _rebuild_plan_list(self):
        self.plan_model.clear()
        icon_ok = self.style().standardIcon(QStyle.StandardPixmap.SP_DialogApplyButton)
        icon_change = self.style().standardIcon(QStyle.StandardPixmap.SP_MessageBoxInformation)
        icon_stop = self.style().standardIcon(QStyle.StandardPixmap.SP_MessageBoxCritical)

        for req, res in zip(self.requests, self.preview_results):
            it = QStandardItem(f"({res.action}) {req.label or res.document_path}")
            it.setEditable(False)
            if not res.success:
                it.setIcon(icon_stop)
            elif res.changed:
                it.setIcon(icon_change)
            else:
                it.setIcon(icon_ok)
            it.setData(res, Qt.ItemDataRole.UserRole)
            it.setData(req, Qt.ItemDataRole.UserRole + 1)
            self.plan_model.appendRow(it)

        if self.plan_model.rowCount() > 0:
            self.plan_list.setCurrentIndex(self.plan_model.index(0, 0))

    # ---------------- Actions ----------------

    def _run_preview(self):
        try:
            self.requests = self._build_requests()
        except ValueError as e:
            QMessageBox.critical(self, "Preview Failed", str(e))
            return

        report = SetupReport()
        try:
            self.preview_results = apply_requests(self.patcher, self.requests, True, report)
        except OSError as e:
            self.preview_results = []
            self._log("ERROR", "Could not read a shell rc file.", error=str(e))
            QMessageBox.critical(self, "Preview Failed", f"Could not read file:\n{e}")
            self._refresh_actions()
            return

        self._log_entries(report.logs)
        self._rebuild_plan_list()

        pending = [r for r in self.preview_results if r.success and r.changed]
        failed = report.failed_patches()
        warn = f"Partial blocks: {len(failed)}" if failed else ""
        self._set_status(f"Preview: {len(pending)} change(s) pending.", state="Preview", warn=warn)
        if failed:
            self._show_partial_block(failed[0])
        self._refresh_actions()

    def _run_apply(self):
        if not self.preview_results:
            QMessageBox.warning(self, "Apply Blocked", "Apply is only enabled after a Preview (dry-run).")
            return

        pending = [(req, res) for req, res in zip(self.requests, self.preview_results) if res.success and res.changed]
        if not pending:
            QMessageBox.information(self, "Apply", "Everything is already configured.")
            return

        lines = [f"{res.action:>9}  {res.document_path}  [{res.block_name}]" for _req, res in pending]
        backups = sorted({res.backup_path for _req, res in pending if res.backup_path})
        confirm_text = (
            "You are about to patch these shell startup files:\n\n"
            + "\n".join(lines)
            + "\n\nBackups (created once, never overwritten):\n"
            + ("\n".join(backups) if backups else "(none needed)")
            + "\n\nProceed?"
        )
        if QMessageBox.question(self, "Confirm Apply", confirm_text, QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No) != QMessageBox.StandardButton.Yes:
            return

        report = SetupReport()
        try:
            apply_requests(self.patcher, [req for req, _res in pending], False, report)
        except OSError as e:
            self._log("ERROR", "Write failed.", error=str(e))
            QMessageBox.critical(self, "Apply Failed", f"Could not write file:\n{e}")
            return
        self._log_entries(report.logs)

        if report.success:
            made = [p.backup_path for p in report.patches if p.backup_created]
            self._set_status("Apply completed.", state="Apply", warn=f"Backups: {len(made)}")
            QMessageBox.information(self, "Apply Completed", "Apply completed.\n\nBackups created:\n" + ("\n".join(made) if made else "(none)"))
            # Re-preview so the list reflects disk state
            self._run_preview()
        else:
            self._set_status("Apply failed.", state="Apply", warn="See Log.")
            self._show_partial_block(report.failed_patches()[0])

    def _show_report(self):
        if self.preview_results:
            PlanReportDialog(self, self.preview_results).exec()

    def _toggle_settings(self):
        self.settings_dock.setVisible(not self.settings_dock.isVisible())

    def _show_help(self):
        QMessageBox.information(
            self,
            "Shellstrap Help",
            "Workflow:\n"
            "1) Settings: check the micromamba executable and npm bin\n"
            "2) Preview (dry-run every managed block; nothing is written)\n"
            "3) Select an entry to see the current vs patched file\n"
            "4) Apply (one-time backup + atomic write)\n\n"
            "Partial blocks (a start marker without its end, or vice versa) are never repaired\n"
            "automatically; remove them by hand and preview again."
        )

    def _run_selftests_ui(self):
        ok, report = ShellstrapSelfTests.run()
        if ok:
            QMessageBox.information(self, "Self Tests", "All self tests passed.\n\n" + report)
        else:
            QMessageBox.critical(self, "Self Tests", "One or more self tests failed.\n\n" + report)

    # ---------------- Selection Handling ----------------

    def _on_plan_selected(self):
        idx = self.plan_list.currentIndex()
        if not idx.isValid():
            return
        it = self.plan_model.itemFromIndex(idx)
        if it is None:
            return
        res: Optional[PatchResult] = it.data(Qt.ItemDataRole.UserRole)
        req: Optional[PatchRequest] = it.data(Qt.ItemDataRole.UserRole + 1)
        if res is None or req is None:
            self.diff_model.set_rows([])
            return

        markers = (req.spec.start_marker, req.spec.end_marker)
        self.diff_model.build_from_texts(res.original_text, res.patched_text, markers=markers)
        self._set_status(f"Viewing: {res.document_path} ({res.action})", state="View", warn="")

    # ---------------- Diagnostics ----------------

    def _show_partial_block(self, res: PatchResult) -> None:
        spec = next(
            (r.spec for r in self.requests if str(r.document_path) == res.document_path and r.spec.name == res.block_name),
            None,
        )
        PartialBlockDialog(self, res, spec).exec()

    def closeEvent(self, event):
        event.accept()
