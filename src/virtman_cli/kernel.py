# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
virtman kernel.

Command dispatcher for the interactive shell:
- help / version / quit
- VM bookkeeping: list, create, delete, dusage
- VM execution: start (qemu-system), create (qemu-img)

Important boundary:
- Kernel never touches the line editor or the history file. It receives a
  finished line and answers whether it was a recognised command; the REPL
  loop decides what to persist.
- Kernel consumes the injected ConfigModel and Executor.
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from . import __version__
from . import vms
from .executor import TTYResult
from .interfaces import ConfigModel, Executor
from .utils import format_gib, is_valid_vm_name, parse_u8

T = TypeVar("T")

PROGRAM_NAME = "virt-manager-cli"

USAGE = f"""{PROGRAM_NAME} {__version__}
Virtual machines manager command line utility

USAGE:
  virtman [FLAGS] [OPTIONS] ARGUMENTS

FLAGS:
  -h, --help       Prints help information
  -v, --version    Prints version information

OPTIONS:
  -i, --interactive    Starts the interactive mode

COMMANDS (interactive mode):
  help                 Show this message
  version              Show the version
  list                 List virtual machines
  create               Create a virtual machine
  start [name]         Boot a virtual machine
  delete [name]        Delete a virtual machine from disk
  dusage               Show disk usage of all virtual machines
  quit                 Leave the shell"""


def _print_err(text: str) -> None:
    print(text, file=sys.stderr)


def write_crash_log(
    error: Exception,
    log_path: Path,
    raw_command: str = "",
) -> None:
    """Append an entry to the crash log.

    Logs unhandled exceptions raised while dispatching a command.
    Appends (never overwrites).
    """
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().isoformat()
        lines = [f"{timestamp}"]

        if raw_command:
            lines.append(f"raw={raw_command}")

        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(
            "".join(
                traceback.format_exception(
                    type(error), error, error.__traceback__
                )
            )
        )
        lines.append("----")

        with log_path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except OSError:
        # If we can't write the crash log there is nowhere left to report it
        # (we're already in an error state)
        pass


@dataclass(frozen=True)
class AcceptedCommand:
    """A recognised command; its line goes to history."""

    name: str
    line: str


@dataclass
class Kernel:
    """virtman command dispatcher."""

    executor: Executor
    config: ConfigModel
    program_dir: Path

    running: bool = True

    # ---- I/O hooks (wired by CLI; replaced in tests) ----
    input_fn: Callable[[str], str] = input
    output_fn: Callable[[str], None] = print
    error_fn: Callable[[str], None] = _print_err

    _handlers: dict[str, Callable[[list[str]], None]] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._handlers = {
            "help": self._handle_help,
            "version": self._handle_version,
            "dusage": self._handle_dusage,
            "list": self._handle_list,
            "start": self._handle_start,
            "create": self._handle_create,
            "delete": self._handle_delete,
        }

    @property
    def commands(self) -> list[str]:
        return sorted([*self._handlers, "quit"])

    # -----------------------
    # Dispatch
    # -----------------------

    def dispatch(self, line: str) -> AcceptedCommand | None:
        """Run one finished line.

        Returns:
            AcceptedCommand when the first word is a known command (the
            line should be recorded in history), None otherwise. ``quit``
            stops the kernel and is not recorded.
        """
        parts = line.split()
        if not parts:
            return None

        cmd = parts[0]
        if cmd == "quit":
            self.running = False
            return None

        handler = self._handlers.get(cmd)
        if handler is None:
            self.output_fn(f"Command '{line}' is not supported!")
            return None

        handler(parts[1:])
        return AcceptedCommand(name=cmd, line=line)

    # -----------------------
    # Config helpers
    # -----------------------

    def _qemu(self, key: str, default: Any) -> Any:
        return self.config.get_path(f"qemu.{key}", default)

    def _image_name(self) -> str:
        return str(self._qemu("image_name", "image.img"))

    # -----------------------
    # Prompt helpers
    # -----------------------

    def _ask_until_valid(self, prompt: str, parse: Callable[[str], T]) -> T:
        """Ask until parse() accepts the answer; errors are shown in between."""
        while True:
            raw = self.input_fn(prompt).strip()
            try:
                return parse(raw)
            except ValueError as e:
                self.error_fn(f"Error: {e}")

    def _vm_name_arg(self, args: list[str]) -> str:
        if args:
            return args[0]
        return self.input_fn("Enter the virtual machine name: ").strip().lower()

    def _report(self, result: TTYResult) -> None:
        if result.error:
            self.error_fn(result.error)
        self.output_fn(f"exit status: {result.exit_code}")

    # -----------------------
    # Commands
    # -----------------------

    def _handle_help(self, args: list[str]) -> None:
        self.output_fn(USAGE)

    def _handle_version(self, args: list[str]) -> None:
        self.output_fn(f"Version: {__version__}")

    def _handle_dusage(self, args: list[str]) -> None:
        size_bytes = vms.dir_size(self.program_dir)
        self.output_fn(f"Disk usage: {format_gib(size_bytes)}")

    def _handle_list(self, args: list[str]) -> None:
        for vm in vms.list_vms(self.program_dir):
            self.output_fn(str(vm))

    def _handle_create(self, args: list[str]) -> None:
        def parse_name(raw: str) -> str:
            name = raw.lower()
            if not is_valid_vm_name(name):
                raise ValueError(f"invalid virtual machine name '{raw}'")
            return name

        name = self._ask_until_valid("Name: ", parse_name)
        smp = self._ask_until_valid("Virtual CPUs: ", parse_u8)
        ram = self._ask_until_valid("Ram size in GB: ", parse_u8)
        kvm_answer = self.input_fn("Enable kvm [Y/n]: ").strip()
        kvm = kvm_answer in ("", "Y", "y")
        image_size = self.input_fn("Image size in GB: ").strip()

        vm_dir = vms.vm_path(self.program_dir, name)
        try:
            vm_dir.mkdir()
        except OSError as e:
            self.error_fn(f"Error creating directory: {e}")
            return

        self.output_fn(f"Created directory for {name}")

        vm = vms.VmDetails(name=name, smp=smp, ram=ram, kvm=kvm)
        try:
            vms.write_vm_config(vm_dir, vm)
        except OSError as e:
            self.error_fn(f"Failed to write to {name}/{vms.CONFIG_FILE}: {e}")

        argv = [
            str(self._qemu("img_binary", "qemu-img")),
            "create",
            "-f",
            str(self._qemu("image_format", "qcow2")),
            str(vm_dir / self._image_name()),
            image_size + "G",
        ]
        self._report(self.executor.run_tty(argv))

    def _handle_start(self, args: list[str]) -> None:
        name = self._vm_name_arg(args)
        vm = vms.find_vm(self.program_dir, name) if is_valid_vm_name(name) else None
        if vm is None:
            self.output_fn(f"{name} not found!")
            return

        vm_dir = vms.vm_path(self.program_dir, name)
        image = vm_dir / self._image_name()
        iso = vm_dir / f"{name}.iso"
        image_size_before = vms.file_size(image)

        vm_args: list[str] = []
        if vm.kvm:
            vm_args.append("-enable-kvm")

        if not vm.os_installed:
            if not iso.exists():
                self.error_fn(f"Missing {iso} file!")
                return
            vm_args.extend(["-cdrom", str(iso)])

        vm_args.extend(["-m", f"{vm.ram}G"])
        vm_args.extend(["-smp", str(vm.smp)])
        vm_args.extend(["-drive", f"file={image}"])
        vm_args.extend(str(a) for a in self._qemu("extra_args", []) or [])

        binary = str(self._qemu("system_binary", "qemu-system-x86_64"))
        result = self.executor.run_tty([binary, *vm_args])

        # A changed image after the first boot means the installer wrote to it
        image_size_after = vms.file_size(image)
        if not vm.os_installed and image_size_after != image_size_before:
            self.output_fn(f"Marking {vm.name} as vm with os installed")
            try:
                vms.mark_os_installed(vm_dir)
            except (OSError, ValueError) as e:
                self.error_fn(f"Failed to update {name}/{vms.CONFIG_FILE}: {e}")

        self._report(result)

    def _handle_delete(self, args: list[str]) -> None:
        name = self._vm_name_arg(args)
        if is_valid_vm_name(name) and vms.delete_vm(self.program_dir, name):
            self.output_fn(f"Deleted '{name}' virtual machine from disk")
        else:
            self.error_fn(f"Virtual machine '{name}' does not exist!")
