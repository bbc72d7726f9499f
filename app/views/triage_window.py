"""Single-photo triage window.

Shows the photo under the cursor with a small preview of the next one, and
maps buttons and arrow keys onto the view-model's triage actions.
"""

from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction, QGuiApplication, QKeySequence, QPixmap
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSizePolicy,
    QVBoxLayout,
    QWidget,
)
from loguru import logger

from app.viewmodels.photo_vm import PhotoVM
from app.viewmodels.triage_vm import TriageVM
from app.views.constants import (
    KEPT_COLOR,
    KEY_KEEP,
    KEY_MARK_FOR_DELETION,
    KEY_NEXT,
    KEY_PREVIOUS,
    KEY_UNDO,
    MARKED_COLOR,
    NEXT_PREVIEW_SIDE,
    STATUS_TIMEOUT_MS,
    WINDOW_MIN_HEIGHT,
    WINDOW_MIN_WIDTH,
    WINDOW_TITLE,
)
from app.views.dialogs.delete_confirm_dialog import DeleteConfirmDialog
from app.views.image_convert import pil_to_qimage
from core.models import ImageTier, PhotoItem
from core.services.interfaces import DeletionResult
from infrastructure.delete_log import DeleteAuditLog
from infrastructure.logging import open_file_in_default_app, open_latest_log


class TriageWindow(QMainWindow):
    """Main application window."""

    def __init__(self, vm: TriageVM, delete_log: DeleteAuditLog | None = None) -> None:
        super().__init__()
        self._vm = vm
        self._delete_log = delete_log
        self._current: PhotoItem | None = None
        self._next: PhotoItem | None = None
        # Tier currently painted for the current photo
        self._shown_tier: str | None = None
        self._full_pixmap: QPixmap | None = None
        self._was_inactive = False

        self._setup_ui()
        self._setup_menu()
        self._connect_signals()
        self.setWindowTitle(WINDOW_TITLE)
        self.setMinimumSize(WINDOW_MIN_WIDTH, WINDOW_MIN_HEIGHT)

    # UI setup
    def _setup_ui(self) -> None:
        central = QWidget()
        root = QVBoxLayout(central)

        self.image_label = QLabel("Loading…")
        self.image_label.setAlignment(Qt.AlignCenter)
        self.image_label.setSizePolicy(QSizePolicy.Ignored, QSizePolicy.Ignored)
        root.addWidget(self.image_label, 1)

        self.caption_label = QLabel()
        self.caption_label.setAlignment(Qt.AlignCenter)
        root.addWidget(self.caption_label)

        row = QHBoxLayout()
        self.btn_delete = QPushButton("◀ Delete")
        self.btn_previous = QPushButton("Previous")
        self.btn_undo = QPushButton("Undo")
        self.btn_next = QPushButton("Next")
        self.btn_keep = QPushButton("Keep ▶")
        self._nav_buttons = (
            self.btn_delete,
            self.btn_previous,
            self.btn_undo,
            self.btn_next,
            self.btn_keep,
        )
        for btn in self._nav_buttons:
            btn.setFocusPolicy(Qt.NoFocus)
            row.addWidget(btn)
        self.next_label = QLabel()
        self.next_label.setFixedSize(NEXT_PREVIEW_SIDE, NEXT_PREVIEW_SIDE)
        self.next_label.setAlignment(Qt.AlignCenter)
        row.addWidget(self.next_label)
        root.addLayout(row)

        self.btn_commit = QPushButton("Delete marked…")
        self.btn_commit.setFocusPolicy(Qt.NoFocus)
        self.btn_commit.setStyleSheet(f"color: {MARKED_COLOR};")
        root.addWidget(self.btn_commit)

        self.setCentralWidget(central)

    def _setup_menu(self) -> None:
        menu = self.menuBar().addMenu("&File")
        refresh = QAction("Refresh library", self)
        refresh.setShortcut(QKeySequence.Refresh)
        refresh.triggered.connect(self._vm.refresh)
        menu.addAction(refresh)

        clear_marks = QAction("Clear deletion marks", self)
        clear_marks.triggered.connect(self._confirm_clear_marks)
        menu.addAction(clear_marks)

        clear_history = QAction("Clear triage history", self)
        clear_history.triggered.connect(self._confirm_clear_history)
        menu.addAction(clear_history)

        menu.addSeparator()
        open_log = QAction("Open latest log", self)
        open_log.triggered.connect(open_latest_log)
        menu.addAction(open_log)
        if self._delete_log is not None:
            open_delete_log = QAction("Open latest delete log", self)
            open_delete_log.triggered.connect(self._open_latest_delete_log)
            menu.addAction(open_delete_log)

        quit_action = QAction("Quit", self)
        quit_action.setShortcut(QKeySequence.Quit)
        quit_action.triggered.connect(self.close)
        menu.addAction(quit_action)

    def _connect_signals(self) -> None:
        self.btn_delete.clicked.connect(self._vm.mark_for_deletion)
        self.btn_keep.clicked.connect(self._vm.keep)
        self.btn_undo.clicked.connect(self._vm.undo)
        self.btn_next.clicked.connect(self._vm.next)
        self.btn_previous.clicked.connect(self._vm.previous)
        self.btn_commit.clicked.connect(self._on_commit_clicked)

        self._vm.photoChanged.connect(self._on_photo_changed)
        self._vm.imageReady.connect(self._on_image_ready)
        self._vm.imageFailed.connect(self._on_image_failed)
        self._vm.statsChanged.connect(self._on_stats_changed)
        self._vm.warning.connect(self._on_warning)
        self._vm.permissionDenied.connect(self._on_permission_denied)
        self._vm.commitFinished.connect(self._on_commit_finished)
        self._vm.busyChanged.connect(self._on_busy_changed)

        app = QGuiApplication.instance()
        if app is not None:
            app.applicationStateChanged.connect(self._on_app_state_changed)

    # Keyboard
    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        actions = {
            KEY_MARK_FOR_DELETION: self._vm.mark_for_deletion,
            KEY_KEEP: self._vm.keep,
            KEY_PREVIOUS: self._vm.previous,
            KEY_NEXT: self._vm.next,
            KEY_UNDO: self._vm.undo,
        }
        action = actions.get(event.key())
        if action is None:
            super().keyPressEvent(event)
            return
        action()

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self._paint_current()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self._vm.shutdown()
        super().closeEvent(event)

    # Signal handlers
    def _on_photo_changed(self, current: PhotoItem | None, upcoming: PhotoItem | None) -> None:
        if current is None or self._current is None or current.id != self._current.id:
            self._shown_tier = None
            self._full_pixmap = None
            self.image_label.setPixmap(QPixmap())
            self.image_label.setText("No photos" if current is None else "Loading…")
        if upcoming is None or self._next is None or upcoming.id != self._next.id:
            self.next_label.clear()
        self._current = current
        self._next = upcoming
        if current is None:
            self.caption_label.clear()
            return
        vm = PhotoVM(current)
        color = ""
        if current.is_kept:
            color = KEPT_COLOR
        elif current.is_marked_for_deletion:
            color = MARKED_COLOR
        self.caption_label.setStyleSheet(f"color: {color};" if color else "")
        self.caption_label.setText(vm.caption)
        if upcoming is not None:
            self._vm.request_preview(upcoming.id)

    def _on_image_ready(self, asset_id: str, tier: str, image: object) -> None:
        is_thumb = tier == ImageTier.THUMBNAIL.value
        if self._next is not None and asset_id == self._next.id and is_thumb:
            self._paint_next(image)
        if self._current is None or asset_id != self._current.id:
            # Result for a photo the cursor already left
            return
        if is_thumb and self._shown_tier == ImageTier.FULL.value:
            return
        qimg = pil_to_qimage(image)
        if qimg is None:
            return
        self._full_pixmap = QPixmap.fromImage(qimg)
        self._shown_tier = tier
        self._paint_current()

    def _on_image_failed(self, asset_id: str, tier: str, reason: str) -> None:
        if self._current is not None and asset_id == self._current.id and self._shown_tier is None:
            self.image_label.setText(f"Could not load photo ({tier})")
        logger.debug("Image failed in UI for {}: {}", asset_id, reason)

    def _on_stats_changed(self, position: int, total: int, kept: int, marked: int) -> None:
        self.statusBar().showMessage(f"{position} / {total}    kept {kept}    marked {marked}")
        self.btn_commit.setEnabled(marked > 0)
        self.btn_commit.setText(f"Delete marked ({marked})…")

    def _on_warning(self, message: str) -> None:
        self.statusBar().showMessage(message, STATUS_TIMEOUT_MS)
        QMessageBox.warning(self, WINDOW_TITLE, message)

    def _on_permission_denied(self, message: str) -> None:
        self.image_label.setText("No access to the photo library")
        QMessageBox.critical(self, WINDOW_TITLE, message)

    def _on_busy_changed(self, busy: bool) -> None:
        for btn in self._nav_buttons:
            btn.setEnabled(not busy)

    def _on_commit_finished(self, result: DeletionResult) -> None:
        if result.success:
            if result.deleted_ids:
                self.statusBar().showMessage(
                    f"Deleted {len(result.deleted_ids)} photo(s)", STATUS_TIMEOUT_MS
                )
            return
        answer = QMessageBox.critical(
            self,
            WINDOW_TITLE,
            f"{result.error}\n\nNothing was deleted. Try again?",
            QMessageBox.Retry | QMessageBox.Cancel,
        )
        if answer == QMessageBox.Retry and result.error is not None:
            self._vm.commit(result.error.asset_ids)

    def _on_app_state_changed(self, state) -> None:
        if state == Qt.ApplicationActive:
            if self._was_inactive:
                self._vm.refresh()
            self._was_inactive = False
        else:
            self._was_inactive = True

    # Actions
    def _on_commit_clicked(self) -> None:
        items = self._vm.marked_items()
        if not items:
            return
        dlg = DeleteConfirmDialog(items, self)
        if not dlg.exec():
            return
        ids = dlg.selected_ids()
        if dlg.action == "delete":
            self._vm.commit(ids)
        elif dlg.action == "keep":
            self._vm.keep_selected(ids)

    def _confirm_clear_marks(self) -> None:
        if QMessageBox.question(self, WINDOW_TITLE, "Clear all deletion marks?") == QMessageBox.Yes:
            self._vm.clear_marks()

    def _confirm_clear_history(self) -> None:
        answer = QMessageBox.question(
            self, WINDOW_TITLE, "Forget every kept and marked photo and the saved position?"
        )
        if answer == QMessageBox.Yes:
            self._vm.clear_history()

    def _open_latest_delete_log(self) -> None:
        latest = self._delete_log.latest() if self._delete_log is not None else None
        if latest is None:
            self.statusBar().showMessage("No delete log yet", STATUS_TIMEOUT_MS)
            return
        open_file_in_default_app(latest)

    def _paint_next(self, image: object) -> None:
        qimg = pil_to_qimage(image)
        if qimg is None:
            return
        self.next_label.setPixmap(
            QPixmap.fromImage(qimg).scaled(
                NEXT_PREVIEW_SIDE, NEXT_PREVIEW_SIDE, Qt.KeepAspectRatio, Qt.SmoothTransformation
            )
        )

    def _paint_current(self) -> None:
        if self._full_pixmap is None:
            return
        self.image_label.setPixmap(
            self._full_pixmap.scaled(
                self.image_label.size(), Qt.KeepAspectRatio, Qt.SmoothTransformation
            )
        )
