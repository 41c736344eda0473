from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

DARK = "dark"
LIGHT = "light"
STYLESHEET_NAME = "styles.qss"

PALETTES: dict[str, dict[str, str]] = {
    DARK: {
        "window": "#0F172A",
        "window_text": "#E6EDF3",
        "base": "#111827",
        "alternate_base": "#1B2230",
        "text": "#E6EDF3",
        "button": "#202A3B",
        "button_text": "#E6EDF3",
        "highlight": "#2563EB",
        "highlighted_text": "#FFFFFF",
        "locked": "#16A34A",
    },
    LIGHT: {
        "window": "#F8FAFC",
        "window_text": "#0F172A",
        "base": "#FFFFFF",
        "alternate_base": "#F1F5F9",
        "text": "#0F172A",
        "button": "#E2E8F0",
        "button_text": "#0F172A",
        "highlight": "#2563EB",
        "highlighted_text": "#FFFFFF",
        "locked": "#15803D",
    },
}

ThemeListener = Callable[[str], None]


class ThemeStore:
    """Current theme of one window tree plus the widgets listening to it."""

    def __init__(self, theme: str = DARK) -> None:
        self._theme = theme if theme in PALETTES else DARK
        self._listeners: list[ThemeListener] = []

    @property
    def theme(self) -> str:
        return self._theme

    @property
    def colors(self) -> dict[str, str]:
        return PALETTES[self._theme]

    def subscribe(self, listener: ThemeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_theme(self, theme: str) -> None:
        if theme not in PALETTES:
            raise ValueError(f"Unknown theme: {theme!r}")
        if theme == self._theme:
            return
        self._theme = theme
        for listener in list(self._listeners):
            listener(theme)

    def toggle(self) -> str:
        self.set_theme(LIGHT if self._theme == DARK else DARK)
        return self._theme

    def clear(self) -> None:
        self._listeners.clear()


def stylesheet_path() -> Path | None:
    candidates = [Path(__file__).resolve().parent / STYLESHEET_NAME]
    if getattr(sys, "frozen", False):
        candidates.append(Path(sys.executable).resolve().parent / "ui" / STYLESHEET_NAME)
    for path in candidates:
        if path.exists():
            return path
    return None
