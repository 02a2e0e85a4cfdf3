# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Configuration and filesystem layout for virtman.

Handles:
- Packaged YAML defaults loading (virtman_cli.defaults/system.yaml)
- Program directory resolution (VIRTMAN_HOME, ~/.virt-manager)
- History and crash log paths
- Prompt construction + ANSI coloring constants
"""

from __future__ import annotations

import os
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml

from .editor import Prompt

# -----------------------
# UI constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "green": "\033[32m",
    "red": "\033[31m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "dim": "\033[2m",
    "reset": "\033[0m",
}

TAG_COLORS: dict[str, str] = {
    "WARN": "yellow",
    "ERROR": "red",
}

DEFAULT_PROGRAM_DIR = ".virt-manager"
DEFAULT_HISTORY_FILE = ".history"
DEFAULT_CRASH_LOG = ".crash.log"
DEFAULT_PROMPT = "[virt-manager]# "
DEFAULT_CPR_TIMEOUT = 0.5


def tag(label: str, text: str) -> str:
    """Return ``[LABEL] text`` with the label colored per TAG_COLORS."""
    color = ANSI_COLORS.get(TAG_COLORS.get(label, ""), "")
    reset = ANSI_COLORS["reset"] if color else ""
    return f"{color}[{label}]{reset} {text}"


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Simple config wrapper that implements the ConfigModel protocol."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict

    @property
    def system(self) -> dict[str, Any]:
        return self._config.get("system", {})

    @property
    def qemu(self) -> dict[str, Any]:
        return self._config.get("qemu", {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("terminal.cpr_timeout", 0.5)
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("virtman_cli.defaults")
    )  # type: ignore[arg-type]


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from virtman_cli/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Defaults YAML {filename} must load to a mapping/dict."
        )
    return data


def load_system_config() -> YAMLConfig:
    """
    Load system.yaml from packaged defaults and return a YAMLConfig wrapper.
    """
    return YAMLConfig(load_defaults_yaml("system.yaml"))


# -----------------------
# Program directory helpers
# -----------------------


def get_program_dir(cfg: YAMLConfig | None = None) -> Path:
    """Get the program directory holding VMs and history.

    Resolution order:
    1. VIRTMAN_HOME environment variable (if set)
    2. ~/<system.program_dir> (default: ~/.virt-manager)

    The directory is not created here; see init_program_directory().
    """
    virtman_home = os.getenv("VIRTMAN_HOME")
    if virtman_home:
        return Path(virtman_home)

    name = DEFAULT_PROGRAM_DIR
    if cfg is not None:
        name = str(cfg.get_path("system.program_dir", DEFAULT_PROGRAM_DIR))
    return Path.home() / name


def init_program_directory(cfg: YAMLConfig | None = None) -> tuple[Path, bool]:
    """Ensure the program directory exists.

    Returns:
        (program_dir, created) where created is True if the directory
        did not exist before this call.
    """
    program_dir = get_program_dir(cfg)
    if program_dir.is_dir():
        return (program_dir, False)

    program_dir.mkdir(parents=True, exist_ok=True)
    return (program_dir, True)


def history_path(program_dir: Path, cfg: YAMLConfig | None = None) -> Path:
    """<program_dir>/.history"""
    name = DEFAULT_HISTORY_FILE
    if cfg is not None:
        name = str(cfg.get_path("system.history_file", DEFAULT_HISTORY_FILE))
    return program_dir / name


def crash_log_path(program_dir: Path, cfg: YAMLConfig | None = None) -> Path:
    """<program_dir>/.crash.log"""
    name = DEFAULT_CRASH_LOG
    if cfg is not None:
        name = str(cfg.get_path("system.crash_log", DEFAULT_CRASH_LOG))
    return program_dir / name


def cpr_timeout(cfg: YAMLConfig | None = None) -> float:
    if cfg is None:
        return DEFAULT_CPR_TIMEOUT
    try:
        return float(cfg.get_path("terminal.cpr_timeout", DEFAULT_CPR_TIMEOUT))
    except (TypeError, ValueError):
        return DEFAULT_CPR_TIMEOUT


# -----------------------
# Prompt
# -----------------------


def build_prompt(cfg: YAMLConfig | None = None) -> Prompt:
    """Build the interactive prompt.

    The configured marker character (``#`` by default) is wrapped in the
    marker color, e.g. ``[virt-manager]\\033[32m#\\033[0m ``. The visible
    width is measured on the uncolored text.
    """
    text = DEFAULT_PROMPT
    marker = "#"
    color_name = "green"
    if cfg is not None:
        text = str(cfg.get_path("prompt.text", DEFAULT_PROMPT))
        marker = str(cfg.get_path("prompt.marker", "#"))
        color_name = str(cfg.get_path("prompt.marker_color", "green"))

    color = ANSI_COLORS.get(color_name, "")
    idx = text.find(marker) if marker else -1
    if idx < 0 or not color:
        return Prompt.from_text(text)

    end = idx + len(marker)
    rendered = (
        text[:idx] + color + text[idx:end] + ANSI_COLORS["reset"] + text[end:]
    )
    return Prompt.from_text(rendered)
