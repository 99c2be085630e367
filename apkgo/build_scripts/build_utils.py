#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_utils.py
# apkgo
#
# Copyright 2024 apkgo Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Shared helpers for the Android build scripts.

This module provides utilities used across the pipeline stages:
- Host platform detection (NDK host tag, executable suffixes)
- File operations (clean, copy)
- ELF inspection to verify the architecture of built libraries
- Printing of build results (APK tree, elapsed time, key error lines)
"""

import os
import platform
import shutil
import struct
import zipfile


def system_is_windows():
    """Check if current platform is Windows."""
    return platform.system().lower() == "windows"


def system_is_macos():
    """Check if current platform is macOS/Darwin."""
    return platform.system().lower() == "darwin"


def system_architecture_is64():
    """Check if current system architecture is 64-bit."""
    return platform.machine().endswith("64")


def get_ndk_host_tag():
    """
    Get the NDK host platform tag for toolchain paths.

    Returns:
        str: Platform tag (e.g., "darwin-x86_64", "linux-x86_64", "windows-x86_64")

    Note:
        The NDK ships x86_64 prebuilts only; Apple Silicon hosts run them
        through Rosetta, so "darwin-x86_64" is used there too.
    """
    system_str = platform.system().lower()
    if system_architecture_is64() or system_is_macos():
        system_str = system_str + "-x86_64"
    return system_str


def executable_suffix_exe():
    return ".exe" if system_is_windows() else ""


def executable_suffix_cmd():
    return ".cmd" if system_is_windows() else ""


def executable_suffix_bat():
    return ".bat" if system_is_windows() else ""


def script_command(path):
    """Argument prefix for running a tool that may be a .bat/.cmd script on Windows."""
    if system_is_windows():
        return ["cmd", "/C", str(path)]
    return [str(path)]


def clean(path):
    """
    Remove and recreate a build directory.

    Args:
        path: Directory to reset
    """
    if os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


def copy_file(src, dst):
    """
    Copy a file or directory, creating destination directories as needed.

    Args:
        src: Source file or directory path
        dst: Destination file or directory path

    Note:
        If src is a directory, the entire tree is copied recursively.
    """
    if not os.path.exists(src):
        return
    if os.path.isfile(src):
        os.makedirs(os.path.dirname(os.path.abspath(dst)), exist_ok=True)
        shutil.copy(src, dst)
    else:
        shutil.copytree(src, dst, dirs_exist_ok=True)


def is_in_lib_list(target, lib_list):
    """
    Check if a library target name is in a list of library names.

    Handles various library naming conventions:
    - Exact match
    - Match without file extension
    - Match without 'lib' prefix (Unix convention)

    Example:
        is_in_lib_list('libfoo.so', ['foo'])  # Returns True
    """
    target = os.path.basename(target)
    stem = os.path.splitext(target)[0]
    for lib in lib_list:
        if target == lib or stem == lib:
            return True
        if stem.startswith("lib") and stem[3:] == lib:
            return True
    return False


# ELF e_machine values
ELF_MACHINE_MAP = {
    0x03: "x86",
    0x3E: "x86_64",
    0x28: "arm",
    0xB7: "aarch64",
}


def elf_machine(header):
    """e_machine of a 20+ byte ELF header, None when the bytes are not ELF."""
    if len(header) < 20 or header[:4] != b"\x7fELF":
        return None
    endian = "<" if header[5] == 1 else ">"
    e_machine = struct.unpack(f"{endian}H", header[18:20])[0]
    return ELF_MACHINE_MAP.get(e_machine, f"unknown(0x{e_machine:X})")


def get_elf_arch(path):
    """
    Read the machine type from an ELF file header.

    Returns:
        str: "arm", "aarch64", "x86", "x86_64", "unknown(0x..)" or None for non-ELF files
    """
    try:
        with open(path, "rb") as f:
            return elf_machine(f.read(20))
    except OSError:
        return None


def format_elapsed_time(elapsed):
    """Format elapsed time in a human-readable format."""
    if elapsed < 60:
        return f"{elapsed:.1f}s"
    elif elapsed < 3600:
        minutes = int(elapsed // 60)
        seconds = elapsed % 60
        return f"{minutes}m {seconds:.0f}s"
    else:
        hours = int(elapsed // 3600)
        minutes = int((elapsed % 3600) // 60)
        return f"{hours}h {minutes}m"


# Keywords that indicate important error messages in compiler output
ERROR_KEYWORDS = [
    "error:", "error[", "ERROR:", "FAILED", "failed", "fatal:",
    "not found", "No such file", "Permission denied",
    "undefined reference", "linker", "could not compile",
]


def extract_key_error_lines(output, max_lines=10):
    """
    Extract key error lines from tool output, prioritizing important messages.

    Falls back to the last ``max_lines`` lines when nothing matches.
    """
    all_lines = (output or "").strip().split("\n")
    important_lines = []
    for i, line in enumerate(all_lines):
        line_stripped = line.strip()
        if not line_stripped:
            continue
        if any(kw.lower() in line_stripped.lower() for kw in ERROR_KEYWORDS):
            important_lines.append(line_stripped)
            # up to 2 lines of context after the error line
            for j in range(1, 3):
                if i + j < len(all_lines) and all_lines[i + j].strip():
                    important_lines.append(all_lines[i + j].strip())

    seen = set()
    unique_lines = []
    for line in important_lines:
        if line not in seen:
            seen.add(line)
            unique_lines.append(line)

    if not unique_lines:
        unique_lines = [l.strip() for l in all_lines[-max_lines:] if l.strip()]
    return unique_lines[:max_lines]


def print_zip_tree(zip_path, indent="    "):
    """
    Print the tree structure of an APK (ZIP) file.

    Example output:
        APK contents:
        ├── AndroidManifest.xml (1.2 KB)
        ├── lib/
        │   └── arm64-v8a/
        │       └── libdemo.so (0.89 MB) [aarch64]
        └── resources.arsc (0.4 KB)
    """
    if not os.path.exists(zip_path):
        print(f"{indent}[APK file not found]")
        return

    try:
        with zipfile.ZipFile(zip_path, "r") as zf:
            tree = {}
            for info in zf.infolist():
                parts = info.filename.split("/")
                current = tree
                for i, part in enumerate(parts):
                    if not part:
                        continue
                    if part not in current:
                        is_file = (i == len(parts) - 1) and not info.filename.endswith("/")
                        if is_file:
                            current[part] = {"__size__": info.file_size, "__path__": info.filename}
                        else:
                            current[part] = {}
                    current = current[part]

            print(f"{indent}APK contents:")
            _print_tree_level(tree, indent, "", zf)
    except zipfile.BadZipFile:
        print(f"{indent}[Invalid APK file]")


def _print_tree_level(tree, base_indent, prefix, zf):
    items = sorted(tree.items())
    for i, (name, subtree) in enumerate(items):
        is_last = i == len(items) - 1
        connector = "└── " if is_last else "├── "

        if "__size__" in subtree:
            size_mb = subtree["__size__"] / (1024 * 1024)
            if size_mb >= 0.01:
                size_str = f"({size_mb:.2f} MB)"
            else:
                size_str = f"({subtree['__size__'] / 1024:.1f} KB)"

            lib_info = ""
            if name.endswith(".so"):
                machine = elf_machine(zf.read(subtree["__path__"])[:20])
                if machine:
                    lib_info = f" [{machine}]"

            print(f"{base_indent}{prefix}{connector}{name} {size_str}{lib_info}")
        else:
            print(f"{base_indent}{prefix}{connector}{name}/")
            new_prefix = prefix + ("    " if is_last else "│   ")
            _print_tree_level(subtree, base_indent, new_prefix, zf)
