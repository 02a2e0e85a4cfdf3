# tests/test_editor.py
"""
Line editor state machine tests.

The editor is driven against FakeTerminal: an in-memory terminal that keeps
a model of the screen (one list of cells per row), records every operation,
and feeds scripted key events. No real tty is involved.
"""

from __future__ import annotations

import random
from contextlib import contextmanager
from dataclasses import dataclass, field

import pytest

from virtman_cli.editor import EditSession, LineEditor, Prompt
from virtman_cli.errors import InputStreamClosed, TerminalQueryError
from virtman_cli.terminal import (
    BACKSPACE,
    DOWN,
    ENTER,
    LEFT,
    OTHER,
    RIGHT,
    UP,
    KeyEvent,
)
from virtman_cli.utils import strip_ansi

START_ROW = 3


@dataclass
class FakeTerminal:
    keys: list[KeyEvent] = field(default_factory=list)
    row: int = START_ROW
    col: int = 1
    lines: dict[int, list[str]] = field(default_factory=dict)
    ops: list[tuple] = field(default_factory=list)
    raw_depth: int = 0
    raw_exits: int = 0
    fail_cpr: bool = False

    @contextmanager
    def enter_raw_mode(self):
        self.raw_depth += 1
        try:
            yield
        finally:
            self.raw_depth -= 1
            self.raw_exits += 1

    def _line(self) -> list[str]:
        return self.lines.setdefault(self.row, [])

    def write(self, text: str) -> None:
        self.ops.append(("write", text))
        for ch in strip_ansi(text):
            if ch == "\r":
                self.col = 1
            elif ch == "\n":
                self.row += 1
            else:
                line = self._line()
                while len(line) < self.col - 1:
                    line.append(" ")
                if len(line) >= self.col:
                    line[self.col - 1] = ch
                else:
                    line.append(ch)
                self.col += 1

    def move_left(self, n: int) -> None:
        self.ops.append(("left", n))
        self.col = max(1, self.col - n)

    def move_right(self, n: int) -> None:
        self.ops.append(("right", n))
        self.col += n

    def move_to(self, col: int, row: int) -> None:
        self.ops.append(("move_to", col, row))
        self.col, self.row = col, row

    def clear_to_end_of_screen(self) -> None:
        self.ops.append(("clear",))
        del self._line()[self.col - 1:]
        for r in [r for r in self.lines if r > self.row]:
            del self.lines[r]

    def cursor_position(self) -> tuple[int, int]:
        self.ops.append(("cpr",))
        if self.fail_cpr:
            raise TerminalQueryError("no answer")
        return (self.col, self.row)

    def read_key(self) -> KeyEvent:
        if not self.keys:
            raise InputStreamClosed("no more keys")
        return self.keys.pop(0)

    def screen(self, row: int = START_ROW) -> str:
        return "".join(self.lines.get(row, []))


def chars(text: str) -> list[KeyEvent]:
    return [KeyEvent.of_char(c) for c in text]


PROMPT = Prompt.from_text("> ")


@pytest.fixture
def term() -> FakeTerminal:
    return FakeTerminal()


@pytest.fixture
def editor(term: FakeTerminal) -> LineEditor:
    return LineEditor(term, PROMPT)


def feed(editor: LineEditor, session: EditSession, keys: list[KeyEvent]) -> None:
    for key in keys:
        editor.handle_key(session, key)


def new_session(history=()) -> EditSession:
    return EditSession(prompt=PROMPT, history=list(history))


# ----------------------------------------------------------------
# Prompt
# ----------------------------------------------------------------


def test_prompt_width_ignores_color_codes() -> None:
    prompt = Prompt.from_text("[virt-manager]\033[32m#\033[0m ")
    assert prompt.width == len("[virt-manager]# ")
    assert prompt.text != "[virt-manager]# "


# ----------------------------------------------------------------
# Plain typing
# ----------------------------------------------------------------


def test_read_line_returns_typed_text(term: FakeTerminal, editor: LineEditor) -> None:
    term.keys = chars("list") + [ENTER]

    assert editor.read_line([]) == "list"
    assert term.screen() == "> list"


def test_read_line_trims_surrounding_whitespace(
    term: FakeTerminal, editor: LineEditor
) -> None:
    term.keys = chars("  start  win ") + [ENTER]

    assert editor.read_line([]) == "start  win"


def test_enter_moves_to_next_line(term: FakeTerminal, editor: LineEditor) -> None:
    term.keys = chars("help") + [ENTER]
    editor.read_line([])

    assert term.ops[-1] == ("write", "\r\n")
    assert term.row == START_ROW + 1
    assert term.col == 1


def test_random_typing_without_navigation_round_trips() -> None:
    rng = random.Random(1234)
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789 -_"
    for _ in range(50):
        text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 30)))
        term = FakeTerminal(keys=chars(text) + [ENTER])
        assert LineEditor(term, PROMPT).read_line([]) == text.strip()


def test_other_keys_are_ignored(term: FakeTerminal, editor: LineEditor) -> None:
    term.keys = chars("ls") + [OTHER, OTHER] + chars("t") + [ENTER]

    assert editor.read_line([]) == "lst"


# ----------------------------------------------------------------
# Insert in the middle (minimal redraw)
# ----------------------------------------------------------------


def test_insert_in_middle_redraws_only_suffix(
    term: FakeTerminal, editor: LineEditor
) -> None:
    session = new_session()
    feed(editor, session, chars("lst") + [LEFT, LEFT])
    term.ops.clear()

    editor.handle_key(session, KeyEvent.of_char("i"))

    assert session.text == "list"
    assert session.cursor == 2
    assert term.ops == [("write", "i"), ("write", "st"), ("left", 2)]
    assert term.screen() == "list"
    assert term.col == 3


def test_insert_at_end_writes_only_the_character(
    term: FakeTerminal, editor: LineEditor
) -> None:
    session = new_session()
    feed(editor, session, chars("lis"))
    term.ops.clear()

    editor.handle_key(session, KeyEvent.of_char("t"))

    assert term.ops == [("write", "t")]


def test_insert_in_middle_keeps_screen_in_sync(
    term: FakeTerminal, editor: LineEditor
) -> None:
    term.keys = chars("lst") + [LEFT, LEFT] + chars("i") + [ENTER]

    assert editor.read_line([]) == "list"
    assert term.screen() == "> list"


# ----------------------------------------------------------------
# Backspace
# ----------------------------------------------------------------


def test_backspace_in_middle_of_word(term: FakeTerminal, editor: LineEditor) -> None:
    term.write(PROMPT.text)
    session = new_session()
    feed(editor, session, chars("list") + [LEFT, LEFT])
    assert session.cursor == 2

    editor.handle_key(session, BACKSPACE)

    assert session.text == "lst"
    assert session.cursor == 1
    assert term.screen() == "> lst"
    assert term.col == PROMPT.width + session.cursor + 1


def test_backspace_at_end_erases_last_character(
    term: FakeTerminal, editor: LineEditor
) -> None:
    term.write(PROMPT.text)
    session = new_session()
    feed(editor, session, chars("list"))
    term.ops.clear()

    editor.handle_key(session, BACKSPACE)

    assert session.text == "lis"
    assert term.ops == [("left", 1), ("clear",)]
    assert term.screen() == "> lis"


def test_backspace_at_start_is_noop(term: FakeTerminal, editor: LineEditor) -> None:
    session = new_session()
    feed(editor, session, chars("ab") + [LEFT, LEFT])
    term.ops.clear()

    editor.handle_key(session, BACKSPACE)

    assert session.text == "ab"
    assert session.cursor == 0
    assert term.ops == []


# ----------------------------------------------------------------
# Left / Right
# ----------------------------------------------------------------


def test_left_at_start_is_noop(term: FakeTerminal, editor: LineEditor) -> None:
    session = new_session()
    editor.handle_key(session, LEFT)

    assert (session.text, session.cursor) == ("", 0)
    assert term.ops == []


def test_right_at_end_is_noop(term: FakeTerminal, editor: LineEditor) -> None:
    session = new_session()
    feed(editor, session, chars("abc"))
    term.ops.clear()

    editor.handle_key(session, RIGHT)

    assert (session.text, session.cursor) == ("abc", 3)
    assert term.ops == []


def test_left_then_right_moves_one_column_each(
    term: FakeTerminal, editor: LineEditor
) -> None:
    session = new_session()
    feed(editor, session, chars("abc"))
    term.ops.clear()

    feed(editor, session, [LEFT, RIGHT])

    assert session.cursor == 3
    assert term.ops == [("left", 1), ("right", 1)]


def test_wide_characters_move_by_their_width(
    term: FakeTerminal, editor: LineEditor
) -> None:
    session = new_session()
    feed(editor, session, chars("日本"))
    term.ops.clear()

    editor.handle_key(session, LEFT)

    assert session.cursor == 1
    assert term.ops == [("left", 2)]


def test_cursor_stays_in_bounds_for_random_key_storms() -> None:
    rng = random.Random(42)
    pool = [LEFT, RIGHT, BACKSPACE, KeyEvent.of_char("x"), KeyEvent.of_char("y")]
    for _ in range(20):
        term = FakeTerminal()
        editor = LineEditor(term, PROMPT)
        term.write(PROMPT.text)
        session = new_session()
        for _ in range(200):
            editor.handle_key(session, rng.choice(pool))
            assert 0 <= session.cursor <= len(session.buffer)
        # Screen mirrors the buffer and the terminal cursor its offset
        assert term.screen() == PROMPT.text + session.text
        assert term.col == PROMPT.width + session.cursor + 1


def test_repeated_left_at_boundary_never_goes_negative(
    term: FakeTerminal, editor: LineEditor
) -> None:
    session = new_session()
    feed(editor, session, chars("ab") + [LEFT] * 10 + [BACKSPACE] * 3)

    assert session.cursor == 0
    assert session.text == "ab"


# ----------------------------------------------------------------
# History navigation
# ----------------------------------------------------------------


HISTORY = ["help", "list", "version"]


def test_history_up_down_scenario(term: FakeTerminal, editor: LineEditor) -> None:
    term.write(PROMPT.text)
    session = new_session(HISTORY)

    feed(editor, session, [UP, UP])
    assert session.text == "list"
    assert term.screen() == "> list"

    editor.handle_key(session, DOWN)
    assert session.text == "version"
    assert term.screen() == "> version"

    editor.handle_key(session, DOWN)
    assert session.text == ""
    assert term.screen() == "> "


def test_history_up_replays_most_recent_first_and_clamps() -> None:
    history = [f"cmd{i}" for i in range(5)]
    term = FakeTerminal()
    editor = LineEditor(term, PROMPT)
    session = new_session(history)

    seen = []
    for _ in history:
        editor.handle_key(session, UP)
        seen.append(session.text)
    assert seen == list(reversed(history))

    editor.handle_key(session, UP)
    assert session.text == "cmd0"
    assert session.history_cursor == 0


def test_history_down_from_oldest_ends_empty_and_stays_empty() -> None:
    term = FakeTerminal()
    editor = LineEditor(term, PROMPT)
    session = new_session(HISTORY)
    feed(editor, session, [UP] * len(HISTORY))
    assert session.text == "help"

    texts = []
    for _ in range(6):
        editor.handle_key(session, DOWN)
        texts.append(session.text)

    assert texts == ["list", "version", "", "", "", ""]
    assert session.history_cursor == len(HISTORY)


def test_history_recall_puts_cursor_at_end(term: FakeTerminal, editor: LineEditor) -> None:
    term.write(PROMPT.text)
    session = new_session(HISTORY)

    editor.handle_key(session, UP)

    assert session.cursor == len("version")
    assert term.col == PROMPT.width + len("version") + 1


def test_history_redraw_starts_after_prompt(term: FakeTerminal, editor: LineEditor) -> None:
    term.write(PROMPT.text)
    session = new_session(HISTORY)
    feed(editor, session, chars("ab"))
    term.ops.clear()

    editor.handle_key(session, UP)

    assert term.ops == [
        ("cpr",),
        ("move_to", PROMPT.width + 1, START_ROW),
        ("clear",),
        ("write", "version"),
    ]


def test_history_recall_clears_stale_characters(
    term: FakeTerminal, editor: LineEditor
) -> None:
    term.keys = chars("a very long custom line") + [UP, ENTER]

    assert editor.read_line(["ls"]) == "ls"
    assert term.screen() == "> ls"


def test_history_recall_discards_custom_text(term: FakeTerminal, editor: LineEditor) -> None:
    session = new_session(HISTORY)
    feed(editor, session, chars("draft") + [UP, DOWN])

    assert session.text == ""


def test_up_with_empty_history_is_noop(term: FakeTerminal, editor: LineEditor) -> None:
    session = new_session()
    editor.handle_key(session, UP)
    editor.handle_key(session, DOWN)

    assert session.text == ""
    assert term.ops == []


def test_history_then_edit_then_enter(term: FakeTerminal, editor: LineEditor) -> None:
    term.keys = [UP, BACKSPACE, BACKSPACE, BACKSPACE] + chars("art win") + [ENTER]

    assert editor.read_line(["start vm1"]) == "start art win"


def test_colored_prompt_redraw_column_uses_visible_width() -> None:
    prompt = Prompt.from_text("[virt-manager]\033[32m#\033[0m ")
    term = FakeTerminal()
    editor = LineEditor(term, prompt)
    term.keys = [UP, ENTER]

    assert editor.read_line(["list"]) == "list"
    assert ("move_to", 17, START_ROW) in term.ops
    assert term.screen() == "[virt-manager]# list"


# ----------------------------------------------------------------
# Raw mode lifetime / fatal errors
# ----------------------------------------------------------------


def test_raw_mode_held_during_session_and_released_after(
    term: FakeTerminal, editor: LineEditor
) -> None:
    depths = []

    original = term.read_key

    def spy() -> KeyEvent:
        depths.append(term.raw_depth)
        return original()

    term.read_key = spy  # type: ignore[method-assign]
    term.keys = chars("x") + [ENTER]

    editor.read_line([])

    assert depths and all(d == 1 for d in depths)
    assert term.raw_depth == 0
    assert term.raw_exits == 1


def test_closed_input_stream_restores_raw_mode(
    term: FakeTerminal, editor: LineEditor
) -> None:
    term.keys = chars("unfinished")

    with pytest.raises(InputStreamClosed):
        editor.read_line([])

    assert term.raw_depth == 0
    assert term.raw_exits == 1


def test_terminal_query_error_propagates_and_restores_raw_mode(
    term: FakeTerminal, editor: LineEditor
) -> None:
    term.fail_cpr = True
    term.keys = [UP, ENTER]

    with pytest.raises(TerminalQueryError):
        editor.read_line(HISTORY)

    assert term.raw_depth == 0


def test_prompt_is_printed_once_per_session(term: FakeTerminal, editor: LineEditor) -> None:
    term.keys = chars("ab") + [ENTER]
    editor.read_line([])

    assert [op for op in term.ops if op == ("write", PROMPT.text)] == [
        ("write", PROMPT.text)
    ]
