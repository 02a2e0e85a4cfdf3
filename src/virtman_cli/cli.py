# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
virtman CLI entry point and REPL loop.

Design:
- CLI owns process startup: config, program directory, history load.
- Kernel is the command dispatcher (config + executor injected).
- LineEditor reads each line on the raw terminal with history recall;
  plain input() is used when stdin is not a terminal.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Sequence

from . import __version__, config
from .editor import LineEditor
from .errors import HistoryPersistenceError, InputStreamClosed, TerminalQueryError
from .executor import SubprocessExecutor
from .interfaces import HistoryStore
from .kernel import USAGE, Kernel, write_crash_log
from .store import FileHistoryStore
from .terminal import VT100Terminal


def run_repl(
    kernel: Kernel,
    history: HistoryStore,
    ui: LineEditor | None = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
    prompt: str = config.DEFAULT_PROMPT,
) -> None:
    """Run the virtman REPL loop until quit or end of input.

    Raises:
        TerminalQueryError: the terminal stopped answering position
            queries; the caller decides how to fail.
    """
    while kernel.running:
        try:
            if ui is not None:
                line = ui.read_line(history)
            else:
                line = input_fn(prompt)
        except (KeyboardInterrupt, EOFError, InputStreamClosed):
            output_fn("\nBye!")
            break

        line = (line or "").strip()
        if not line:
            continue

        try:
            accepted = kernel.dispatch(line)
        except Exception as e:
            # Unhandled exception - write crash log
            write_crash_log(
                e,
                config.crash_log_path(kernel.program_dir, kernel.config),
                raw_command=line,
            )
            output_fn(
                config.tag(
                    "ERROR",
                    f"Unhandled exception: {type(e).__name__}: {e}",
                )
            )
            # Continue session
            continue

        if accepted is None:
            continue

        try:
            history.append(accepted.line)
        except HistoryPersistenceError as e:
            # Entry stays in memory; only durability is lost
            output_fn(config.tag("WARN", str(e)))
        except ValueError as e:
            # Embedded line break (e.g. pasted CRLF); the command already ran
            output_fn(config.tag("WARN", f"Not recorded in history: {e}"))


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for virtman."""
    args = list(sys.argv[1:] if argv is None else argv)

    if args and args[0] in ("-h", "--help"):
        print(USAGE)
        return 0
    if args and args[0] in ("-v", "--version"):
        print(f"Version: {__version__}")
        return 0
    if args and args[0] not in ("-i", "--interactive"):
        print(USAGE, file=sys.stderr)
        return 2

    cfg = config.load_system_config()
    program_dir, created = config.init_program_directory(cfg)
    if created:
        print("Created program directory")

    history = FileHistoryStore(config.history_path(program_dir, cfg))
    try:
        history.load()
    except HistoryPersistenceError as e:
        print(config.tag("WARN", str(e)), file=sys.stderr)

    # Explicit wiring: config + executor injected into kernel
    kernel = Kernel(
        executor=SubprocessExecutor(),
        config=cfg,
        program_dir=program_dir,
    )
    prompt = config.build_prompt(cfg)

    # Plain input() when there is no terminal to drive, or on request
    if os.environ.get("VIRTMAN_LEGACY_INPUT") == "1" or not sys.stdin.isatty():
        run_repl(kernel, history, prompt=prompt.text)
        return 0

    terminal = VT100Terminal(cpr_timeout=config.cpr_timeout(cfg))
    ui = LineEditor(terminal, prompt)

    try:
        run_repl(kernel, history, ui=ui)
    except TerminalQueryError as e:
        print(config.tag("ERROR", str(e)), file=sys.stderr)
        return 1
    return 0


def entrypoint() -> None:
    sys.exit(main())
