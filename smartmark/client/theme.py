from __future__ import annotations


THEME_STORAGE_KEY = "bookmark-theme"
THEME_LIGHT = "light"
THEME_DARK = "dark"
THEMES = {THEME_LIGHT, THEME_DARK}


class ThemeSettings:
    """Theme preference with an explicit init and update contract.

    ``system_theme`` reports the platform preference and ``apply`` pushes a
    theme to whatever renders it. Both are supplied by the host.
    """

    def __init__(self, storage, system_theme=lambda: THEME_DARK, apply=None):
        self.storage = storage
        self.system_theme = system_theme
        self.apply = apply
        self.theme = self.stored_theme() or self._system_or_default()
        self._apply(self.theme)

    def stored_theme(self) -> str | None:
        value = self.storage.get_item(THEME_STORAGE_KEY)
        return value if value in THEMES else None

    def _system_or_default(self) -> str:
        value = self.system_theme()
        return value if value in THEMES else THEME_DARK

    def _apply(self, theme: str) -> None:
        if self.apply is not None:
            self.apply(theme)

    def set_theme(self, theme: str) -> str:
        if theme not in THEMES:
            raise ValueError(f"unknown theme: {theme}")
        self.theme = theme
        self.storage.set_item(THEME_STORAGE_KEY, theme)
        self._apply(theme)
        return theme

    def toggle(self) -> str:
        return self.set_theme(THEME_LIGHT if self.theme == THEME_DARK else THEME_DARK)

    def system_theme_changed(self) -> str:
        if self.stored_theme() is None:
            self.theme = self._system_or_default()
            self._apply(self.theme)
        return self.theme
