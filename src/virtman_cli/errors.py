# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Exception types raised by the terminal driver, the line editor and the
history store.
"""

from __future__ import annotations


class VirtmanError(Exception):
    """Base class for virtman errors."""


class TerminalQueryError(VirtmanError):
    """The terminal did not answer a cursor-position request."""


class InputStreamClosed(VirtmanError):
    """The key stream ended (e.g. the terminal was detached)."""


class HistoryPersistenceError(VirtmanError):
    """Reading or appending the history file failed.

    The underlying OSError is chained as ``__cause__``.
    """
