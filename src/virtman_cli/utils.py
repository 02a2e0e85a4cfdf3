# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Utility functions for virtman.
"""

from __future__ import annotations

import re

from prompt_toolkit.utils import get_cwidth

# ANSI CSI escape sequences (e.g. "\033[32m"). Only used to measure and
# strip, not to validate.
_ANSI_PATTERN = re.compile(r"\033\[[0-9;?]*[A-Za-z]")

GIB = 1024 ** 3


def strip_ansi(text: str) -> str:
    """Return *text* without ANSI CSI escape sequences."""
    if "\033[" not in text:
        return text
    return _ANSI_PATTERN.sub("", text)


def display_width(text: str) -> int:
    """Number of terminal columns *text* occupies once printed.

    Escape sequences take no room; wide characters take two columns.
    """
    return sum(get_cwidth(ch) for ch in strip_ansi(text))


def format_gib(size_bytes: int) -> str:
    """Format a byte count as gibibytes with two decimals, e.g. ``1.50GB``."""
    return f"{size_bytes / GIB:.2f}GB"


def parse_u8(text: str) -> int:
    """Parse an unsigned 8-bit integer (0-255).

    Raises:
        ValueError: with a user-facing message when *text* is not a number
            or does not fit in the range.
    """
    stripped = text.strip()
    if not stripped:
        raise ValueError("cannot parse integer from empty string")
    if not (stripped.isascii() and stripped.isdigit()):
        raise ValueError("invalid digit found in string")
    value = int(stripped)
    if value > 255:
        raise ValueError("number too large to fit in target type")
    return value


def is_valid_vm_name(name: str) -> bool:
    """A VM name must be a single, non-hidden path component."""
    if not name or name.startswith("."):
        return False
    return "/" not in name and "\\" not in name and "\0" not in name
