"""Single-line text input with a placeholder that clears on first keystroke."""

from __future__ import annotations

from rich.text import Text

from mal_cli.events import KeyEvent
from mal_cli.themes import THEME_COLORS

# Textual reports ctrl+h as backspace on most terminals
_DELETE_WORD_KEYS = frozenset({"ctrl+h", "ctrl+w", "ctrl+backspace"})


class TextInput:
    def __init__(self, placeholder: str = "", max_length: int | None = None) -> None:
        self.placeholder = placeholder
        self.max_length = max_length
        self.value = placeholder
        self.cursor = 0
        self.empty = True

    def _reset_to_placeholder(self) -> None:
        self.empty = True
        self.value = self.placeholder
        self.cursor = 0

    def set_value(self, value: str) -> None:
        if not value:
            self._reset_to_placeholder()
            return
        self.value = value
        self.cursor = len(value)
        self.empty = False

    def text(self) -> str:
        """The typed value, empty while the placeholder is showing."""
        return "" if self.empty else self.value

    def _delete_word(self) -> None:
        if self.empty or self.cursor == 0:
            return
        start = self.cursor
        while start > 0 and self.value[start - 1].isspace():
            start -= 1
        while start > 0 and not self.value[start - 1].isspace():
            start -= 1
        self.value = self.value[:start] + self.value[self.cursor :]
        self.cursor = start
        if not self.value:
            self._reset_to_placeholder()

    def handle_key(self, key: KeyEvent) -> str | None:
        """Edit the value. Returns it on Enter when something has been typed."""
        if key.key in _DELETE_WORD_KEYS:
            self._delete_word()
            return None
        if key.ctrl:
            return None

        char = key.printable
        if char is not None and key.key not in ("enter", "tab"):
            if self.max_length is not None and not self.empty and len(self.value) >= self.max_length:
                return None
            if self.empty:
                self.empty = False
                self.value = ""
                self.cursor = 0
            self.value = self.value[: self.cursor] + char + self.value[self.cursor :]
            self.cursor += len(char)
            return None

        if key.key == "backspace":
            if self.empty or self.cursor == 0:
                return None
            self.value = self.value[: self.cursor - 1] + self.value[self.cursor :]
            self.cursor -= 1
            if not self.value:
                self._reset_to_placeholder()
        elif key.key == "left":
            if not self.empty and self.cursor > 0:
                self.cursor -= 1
        elif key.key == "right":
            if not self.empty and self.cursor < len(self.value):
                self.cursor += 1
        elif key.key == "enter" and not self.empty:
            return self.value
        return None

    def render(self, focused: bool = False) -> Text:
        color = THEME_COLORS["primary"] if self.empty else THEME_COLORS["text"]
        text = Text(self.value, style=color, no_wrap=True, overflow="crop")
        if focused:
            pos = 0 if self.empty else self.cursor
            if pos >= len(text):
                text.append(" ")
            text.stylize("reverse", pos, pos + 1)
        return text


__all__ = ["TextInput"]
