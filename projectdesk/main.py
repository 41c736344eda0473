from __future__ import annotations

import sys

from PySide6.QtGui import QColor, QFont, QPalette
from PySide6.QtWidgets import QApplication, QMessageBox, QStyleFactory

from projectdesk.config import SETTINGS
from projectdesk.infra.db import init_db
from projectdesk.infra.logging import setup_logging
from projectdesk.ui.main_window import MainWindow
from projectdesk.ui.theme import PALETTES, ThemeStore, stylesheet_path


def apply_palette(app: QApplication, theme: str) -> None:
    colors = PALETTES[theme]
    palette = QPalette()
    palette.setColor(QPalette.Window, QColor(colors["window"]))
    palette.setColor(QPalette.WindowText, QColor(colors["window_text"]))
    palette.setColor(QPalette.Base, QColor(colors["base"]))
    palette.setColor(QPalette.AlternateBase, QColor(colors["alternate_base"]))
    palette.setColor(QPalette.Text, QColor(colors["text"]))
    palette.setColor(QPalette.Button, QColor(colors["button"]))
    palette.setColor(QPalette.ButtonText, QColor(colors["button_text"]))
    palette.setColor(QPalette.ToolTipBase, QColor(colors["alternate_base"]))
    palette.setColor(QPalette.ToolTipText, QColor(colors["text"]))
    palette.setColor(QPalette.Highlight, QColor(colors["highlight"]))
    palette.setColor(QPalette.HighlightedText, QColor(colors["highlighted_text"]))
    app.setPalette(palette)


def load_styles(app: QApplication) -> None:
    qss_path = stylesheet_path()
    if not qss_path:
        return
    app.setStyleSheet(qss_path.read_text(encoding="utf-8"))


def main() -> None:
    setup_logging()
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        app = QApplication(sys.argv)
        QMessageBox.critical(None, "DB error", str(exc))
        return

    app = QApplication(sys.argv)
    app.setStyle(QStyleFactory.create("Fusion"))
    app.setFont(QFont("Segoe UI", 10))
    load_styles(app)

    theme = ThemeStore(SETTINGS.theme)
    apply_palette(app, theme.theme)
    theme.subscribe(lambda name: apply_palette(app, name))

    window = MainWindow(theme)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
