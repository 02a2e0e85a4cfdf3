# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
VT100 terminal driver.

Owns the real terminal for the line editor:
- raw mode as a scoped context (prompt_toolkit's ``raw_mode``)
- key decoding via prompt_toolkit's ``Vt100Parser``
- absolute/relative cursor motion, clear-to-end, cursor-position queries

All output is flushed immediately so a following position query observes
the effect of earlier motions.
"""

from __future__ import annotations

import codecs
import os
import re
import select
import sys
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import IO, Any

from prompt_toolkit.input.vt100 import raw_mode
from prompt_toolkit.input.vt100_parser import Vt100Parser
from prompt_toolkit.key_binding.key_processor import KeyPress
from prompt_toolkit.keys import Keys

from .errors import InputStreamClosed, TerminalQueryError

# ----------------------------
# Escape sequences
# ----------------------------

CSI = "\x1b["
CLEAR_AFTER_CURSOR = CSI + "J"
CPR_REQUEST = CSI + "6n"

_CPR_RESPONSE_RE = re.compile(r"\x1b\[(\d+);(\d+)R")

# Pause after which a dangling escape prefix is delivered as-is.
ESC_FLUSH_TIMEOUT = 0.05

READ_SIZE = 1024


def goto(col: int, row: int) -> str:
    """Absolute cursor position, 1-based."""
    return f"{CSI}{row};{col}H"


def left(n: int) -> str:
    return f"{CSI}{n}D" if n > 0 else ""


def right(n: int) -> str:
    return f"{CSI}{n}C" if n > 0 else ""


def parse_cpr(data: str) -> tuple[int, int]:
    """Parse a cursor-position report ``ESC[row;colR`` into (col, row)."""
    m = _CPR_RESPONSE_RE.search(data)
    if m is None:
        raise TerminalQueryError(f"Malformed cursor position report: {data!r}")
    row, col = int(m.group(1)), int(m.group(2))
    return (col, row)


# ----------------------------
# Key events
# ----------------------------


class KeyKind(Enum):
    CHAR = auto()
    ENTER = auto()
    BACKSPACE = auto()
    UP = auto()
    DOWN = auto()
    LEFT = auto()
    RIGHT = auto()
    OTHER = auto()


@dataclass(frozen=True)
class KeyEvent:
    kind: KeyKind
    char: str = ""

    @classmethod
    def of_char(cls, ch: str) -> KeyEvent:
        return cls(KeyKind.CHAR, ch)


ENTER = KeyEvent(KeyKind.ENTER)
BACKSPACE = KeyEvent(KeyKind.BACKSPACE)
UP = KeyEvent(KeyKind.UP)
DOWN = KeyEvent(KeyKind.DOWN)
LEFT = KeyEvent(KeyKind.LEFT)
RIGHT = KeyEvent(KeyKind.RIGHT)
OTHER = KeyEvent(KeyKind.OTHER)

_KEY_MAP: dict[Keys, KeyEvent] = {
    Keys.ControlM: ENTER,
    Keys.ControlJ: ENTER,
    Keys.ControlH: BACKSPACE,
    Keys.Up: UP,
    Keys.Down: DOWN,
    Keys.Left: LEFT,
    Keys.Right: RIGHT,
}


def key_from_press(press: KeyPress) -> KeyEvent:
    """Translate a prompt_toolkit KeyPress into a KeyEvent."""
    key = press.key
    if isinstance(key, Keys):
        return _KEY_MAP.get(key, OTHER)
    if len(key) == 1 and key.isprintable():
        return KeyEvent.of_char(key)
    return OTHER


# ----------------------------
# Driver
# ----------------------------


class VT100Terminal:
    """ANSI/VT100 implementation of the Terminal protocol."""

    def __init__(
        self,
        stdin: IO[Any] | None = None,
        stdout: IO[str] | None = None,
        cpr_timeout: float = 0.5,
    ) -> None:
        """Initialize the driver.

        Args:
            stdin: Input stream; only its file descriptor is used
                (default: sys.stdin)
            stdout: Text output stream (default: sys.stdout)
            cpr_timeout: Seconds to wait for a cursor-position report
        """
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.cpr_timeout = cpr_timeout

        self._fd = self.stdin.fileno()
        self._pending: deque[KeyPress] = deque()
        self._parser = Vt100Parser(self._pending.append)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    # ---------- mode ----------

    def enter_raw_mode(self) -> raw_mode:
        """Scoped raw mode; the previous mode is restored on exit.

        Errors from a non-tty stdin are ignored by prompt_toolkit.
        """
        return raw_mode(self._fd)

    # ---------- output ----------

    def write(self, text: str) -> None:
        if not text:
            return
        self.stdout.write(text)
        self.stdout.flush()

    def move_to(self, col: int, row: int) -> None:
        self.write(goto(col, row))

    def move_left(self, n: int) -> None:
        self.write(left(n))

    def move_right(self, n: int) -> None:
        self.write(right(n))

    def clear_to_end_of_screen(self) -> None:
        self.write(CLEAR_AFTER_CURSOR)

    # ---------- input ----------

    def _wait_readable(self, timeout: float) -> bool:
        readable, _, _ = select.select([self._fd], [], [], max(0.0, timeout))
        return bool(readable)

    def _read_chunk(self) -> None:
        data = os.read(self._fd, READ_SIZE)
        if not data:
            raise InputStreamClosed("Input stream closed")
        self._parser.feed(self._decoder.decode(data))

    def read_key(self) -> KeyEvent:
        """Block until one key event is available and return it."""
        while not self._pending:
            self._read_chunk()
            if not self._pending and not self._wait_readable(ESC_FLUSH_TIMEOUT):
                # A lone ESC (or other dangling prefix) with nothing behind it.
                self._parser.flush()
        return key_from_press(self._pending.popleft())

    def cursor_position(self) -> tuple[int, int]:
        """Query the terminal for the 1-based (col, row) of the cursor.

        Keys typed while the answer is in flight are kept for read_key().

        Raises:
            TerminalQueryError: no report arrived within cpr_timeout
            InputStreamClosed: the input stream ended while waiting
        """
        self.write(CPR_REQUEST)
        deadline = time.monotonic() + self.cpr_timeout

        while True:
            for i, press in enumerate(self._pending):
                if press.key == Keys.CPRResponse:
                    del self._pending[i]
                    return parse_cpr(press.data)

            remaining = deadline - time.monotonic()
            if remaining <= 0 or not self._wait_readable(remaining):
                raise TerminalQueryError(
                    "Terminal did not answer the cursor position request"
                )
            self._read_chunk()
