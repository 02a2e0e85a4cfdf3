# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Interactive line editor.

One call to ``LineEditor.read_line()`` is one editing session: the prompt is
printed, raw keystrokes are translated into buffer edits with minimal
redraws, Up/Down recall past commands, and Enter returns the trimmed line.

Invariant kept after every key: ``0 <= cursor <= len(buffer)``.

Columns are computed from display widths, never from string offsets, so a
colored prompt or a wide character does not shift the cursor.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .terminal import KeyEvent, KeyKind
from .utils import display_width

if TYPE_CHECKING:
    from .interfaces import Terminal  # pragma: no cover


@dataclass(frozen=True)
class Prompt:
    """Rendered prompt text and the number of columns it occupies."""

    text: str
    width: int

    @classmethod
    def from_text(cls, text: str) -> Prompt:
        return cls(text=text, width=display_width(text))


@dataclass
class EditSession:
    """State of one read_line() call."""

    prompt: Prompt
    history: Sequence[str]
    buffer: list[str] = field(default_factory=list)
    cursor: int = 0
    # len(history) means "not recalling anything"
    history_cursor: int = -1
    done: bool = False

    def __post_init__(self) -> None:
        if self.history_cursor < 0:
            self.history_cursor = len(self.history)

    @property
    def text(self) -> str:
        return "".join(self.buffer)

    def result(self) -> str:
        return self.text.strip()


class LineEditor:
    """Single-line editor driving a Terminal."""

    def __init__(self, terminal: Terminal, prompt: Prompt) -> None:
        self.terminal = terminal
        self.prompt = prompt
        self._handlers: dict[KeyKind, Callable[[EditSession, KeyEvent], None]] = {
            KeyKind.CHAR: self._insert,
            KeyKind.BACKSPACE: self._backspace,
            KeyKind.LEFT: self._left,
            KeyKind.RIGHT: self._right,
            KeyKind.UP: self._history_up,
            KeyKind.DOWN: self._history_down,
            KeyKind.ENTER: self._enter,
        }

    # ---------- public API ----------

    def read_line(self, history: Sequence[str]) -> str:
        """Run one editing session and return the trimmed line.

        Raw mode is held for the whole session and restored on every exit
        path, including InputStreamClosed and TerminalQueryError.
        """
        session = EditSession(prompt=self.prompt, history=history)
        with self.terminal.enter_raw_mode():
            self.terminal.write(self.prompt.text)
            while not session.done:
                self.handle_key(session, self.terminal.read_key())
        return session.result()

    def handle_key(self, session: EditSession, key: KeyEvent) -> None:
        """Apply one key event to the session and redraw what changed."""
        handler = self._handlers.get(key.kind)
        if handler is not None:
            handler(session, key)

    # ---------- editing ----------

    def _insert(self, session: EditSession, key: KeyEvent) -> None:
        if not key.char:
            return
        session.buffer.insert(session.cursor, key.char)
        session.cursor += 1
        self.terminal.write(key.char)

        # Restore what's after the inserted character
        if session.cursor != len(session.buffer):
            suffix = "".join(session.buffer[session.cursor:])
            self.terminal.write(suffix)
            self.terminal.move_left(display_width(suffix))

    def _backspace(self, session: EditSession, key: KeyEvent) -> None:
        if session.cursor == 0:
            return
        session.cursor -= 1
        removed = session.buffer.pop(session.cursor)

        self.terminal.move_left(display_width(removed))
        self.terminal.clear_to_end_of_screen()

        if session.cursor < len(session.buffer):
            suffix = "".join(session.buffer[session.cursor:])
            self.terminal.write(suffix)
            self.terminal.move_left(display_width(suffix))

    def _left(self, session: EditSession, key: KeyEvent) -> None:
        if session.cursor == 0:
            return
        session.cursor -= 1
        self.terminal.move_left(display_width(session.buffer[session.cursor]))

    def _right(self, session: EditSession, key: KeyEvent) -> None:
        if session.cursor == len(session.buffer):
            return
        self.terminal.move_right(display_width(session.buffer[session.cursor]))
        session.cursor += 1

    def _enter(self, session: EditSession, key: KeyEvent) -> None:
        self.terminal.write("\r\n")
        session.done = True

    # ---------- history ----------

    def _history_up(self, session: EditSession, key: KeyEvent) -> None:
        if not session.history:
            return
        session.history_cursor = max(0, session.history_cursor - 1)
        self._replace_line(session, session.history[session.history_cursor])

    def _history_down(self, session: EditSession, key: KeyEvent) -> None:
        if not session.history:
            return
        last = len(session.history) - 1
        if session.history_cursor < last:
            session.history_cursor += 1
            text = session.history[session.history_cursor]
        else:
            # Past the newest entry: back to an empty line, never wraps.
            session.history_cursor = len(session.history)
            text = ""
        self._replace_line(session, text)

    def _replace_line(self, session: EditSession, text: str) -> None:
        """Replace the whole buffer and redraw it right after the prompt."""
        session.buffer = list(text)
        session.cursor = len(session.buffer)

        _col, row = self.terminal.cursor_position()
        self.terminal.move_to(session.prompt.width + 1, row)
        self.terminal.clear_to_end_of_screen()
        self.terminal.write(text)
