from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QCheckBox,
    QDialog,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QVBoxLayout,
)

from app.viewmodels.photo_vm import PhotoVM
from core.models import PhotoItem

ID_ROLE = Qt.UserRole


class DeleteConfirmDialog(QDialog):
    """Lists marked photos; the user deletes or keeps the checked ones.

    After `exec()`, `action` is "delete", "keep", or None (cancelled) and
    `selected_ids()` returns the checked ids.
    """

    def __init__(self, items: list[PhotoItem], parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Confirm Delete")
        self.action: str | None = None

        root = QVBoxLayout(self)
        self._info = QLabel()
        root.addWidget(self._info)

        self._list = QListWidget()
        for it in items:
            entry = QListWidgetItem(PhotoVM(it).caption)
            entry.setData(ID_ROLE, it.id)
            entry.setFlags(entry.flags() | Qt.ItemIsUserCheckable)
            # All marked photos start selected
            entry.setCheckState(Qt.Checked)
            self._list.addItem(entry)
        root.addWidget(self._list)

        toggle = QPushButton("Select none")
        toggle.clicked.connect(lambda: self._toggle_all(toggle))
        root.addWidget(toggle)

        warn = QLabel("Deleted photos are moved to the recycle bin.")
        warn.setStyleSheet("color: #b00020; font-weight: bold;")
        root.addWidget(warn)

        self._confirm_box = QCheckBox("I understand the checked photos will be deleted")
        root.addWidget(self._confirm_box)

        btns = QHBoxLayout()
        self.btn_ok = QPushButton("Delete")
        self.btn_keep = QPushButton("Keep checked")
        self.btn_cancel = QPushButton("Cancel")
        btns.addWidget(self.btn_ok)
        btns.addWidget(self.btn_keep)
        btns.addStretch(1)
        btns.addWidget(self.btn_cancel)
        root.addLayout(btns)

        self.btn_ok.clicked.connect(self._on_delete)
        self.btn_keep.clicked.connect(self._on_keep)
        self.btn_cancel.clicked.connect(self.reject)
        self._list.itemChanged.connect(lambda _item: self._update_info())
        self._update_info()

    def selected_ids(self) -> list[str]:
        ids: list[str] = []
        for row in range(self._list.count()):
            entry = self._list.item(row)
            if entry.checkState() == Qt.Checked:
                ids.append(str(entry.data(ID_ROLE)))
        return ids

    def _update_info(self) -> None:
        count = len(self.selected_ids())
        self._info.setText(f"Photos: {count} / {self._list.count()} selected")
        self.btn_ok.setEnabled(count > 0)
        self.btn_keep.setEnabled(count > 0)

    def _toggle_all(self, button: QPushButton) -> None:
        select = not self.selected_ids()
        state = Qt.Checked if select else Qt.Unchecked
        for row in range(self._list.count()):
            self._list.item(row).setCheckState(state)
        button.setText("Select none" if select else "Select all")

    def _on_delete(self) -> None:
        if not self._confirm_box.isChecked():
            return
        self.action = "delete"
        self.accept()

    def _on_keep(self) -> None:
        self.action = "keep"
        self.accept()
