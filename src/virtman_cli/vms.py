# virtman — Interactive Virtual Machine Manager Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Virtual machine bookkeeping on disk.

Layout under the program directory::

    <program_dir>/<name>/config.json   VM settings (one JSON object + newline)
    <program_dir>/<name>/image.img     qcow2 disk image
    <program_dir>/<name>/<name>.iso    installer, needed until the OS is installed
"""

from __future__ import annotations

import json
import shutil
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

CONFIG_FILE = "config.json"


@dataclass
class VmDetails:
    name: str
    smp: int
    ram: int
    kvm: bool
    os_installed: bool = False

    def __str__(self) -> str:
        return (
            f"Name: {self.name} | Smp: {self.smp} vcpus | Ram: {self.ram}GB"
            f" | Kvm: {str(self.kvm).lower()}"
            f" | Os installed: {str(self.os_installed).lower()}"
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VmDetails:
        """Build from a decoded config.json.

        Raises:
            ValueError: a required key is missing or has the wrong type
        """
        try:
            return cls(
                name=str(data["name"]),
                smp=int(data["smp"]),
                ram=int(data["ram"]),
                kvm=bool(data["kvm"]),
                os_installed=bool(data.get("os_installed", False)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid VM config: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def vm_path(program_dir: Path, name: str) -> Path:
    return program_dir / name


def read_vm_details(vm_dir: Path) -> VmDetails:
    """Read <vm_dir>/config.json.

    Raises:
        OSError: config.json cannot be read
        ValueError: config.json is not a valid VM config
    """
    content = (vm_dir / CONFIG_FILE).read_text(encoding="utf-8")
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError(f"{vm_dir / CONFIG_FILE} must contain a JSON object")
    return VmDetails.from_dict(data)


def write_vm_config(vm_dir: Path, vm: VmDetails) -> Path:
    """Write config.json as compact JSON followed by a newline."""
    path = vm_dir / CONFIG_FILE
    payload = json.dumps(vm.to_dict(), separators=(",", ":"))
    path.write_text(payload + "\n", encoding="utf-8")
    return path


def mark_os_installed(vm_dir: Path) -> VmDetails:
    """Flip os_installed to true in config.json and return the new details."""
    vm = read_vm_details(vm_dir)
    vm.os_installed = True
    write_vm_config(vm_dir, vm)
    return vm


def list_vms(program_dir: Path) -> list[VmDetails]:
    """All VMs under program_dir, sorted by directory name.

    Directories without a readable config.json are skipped.
    """
    if not program_dir.is_dir():
        return []

    vms: list[VmDetails] = []
    for entry in sorted(program_dir.iterdir()):
        if not entry.is_dir() or not (entry / CONFIG_FILE).is_file():
            continue
        try:
            vms.append(read_vm_details(entry))
        except (OSError, ValueError):
            continue
    return vms


def find_vm(program_dir: Path, name: str) -> VmDetails | None:
    for vm in list_vms(program_dir):
        if vm.name == name:
            return vm
    return None


def delete_vm(program_dir: Path, name: str) -> bool:
    """Remove the VM directory. Returns False if it does not exist."""
    path = vm_path(program_dir, name)
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def dir_size(path: Path) -> int:
    """Total size in bytes of regular files below path (symlinks not followed)."""
    total = 0
    for entry in path.iterdir():
        if entry.is_symlink():
            continue
        if entry.is_file():
            total += entry.stat().st_size
        elif entry.is_dir():
            total += dir_size(entry)
    return total


def file_size(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except OSError:
        return None
