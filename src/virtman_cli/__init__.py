# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
virtman core package.

Interactive shell for managing local QEMU virtual machines. The line editor
(``editor``) and its terminal driver (``terminal``) are the heart of the
package; the kernel dispatches finished lines to VM commands.
"""

__version__ = "0.1.0"

from .kernel import Kernel as Kernel  # noqa: E402,F401 (re-export)
