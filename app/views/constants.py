"""
UI/view constants centralized for reuse across view modules.

Only magic numbers, key bindings, and window texts live here.
"""

from __future__ import annotations

from PySide6.QtCore import Qt

# Key bindings
KEY_MARK_FOR_DELETION = Qt.Key_Left
KEY_KEEP = Qt.Key_Right
KEY_PREVIOUS = Qt.Key_Up
KEY_NEXT = Qt.Key_Down
KEY_UNDO = Qt.Key_Backspace

# Layout
WINDOW_MIN_WIDTH: int = 720
WINDOW_MIN_HEIGHT: int = 640
NEXT_PREVIEW_SIDE: int = 120
STATUS_TIMEOUT_MS: int = 4000

WINDOW_TITLE = "Photo Triage"
MARKED_COLOR = "#b00020"
KEPT_COLOR = "#2e7d32"
